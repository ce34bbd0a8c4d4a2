"""
procurement_config -- single public entrypoint for reconciliation configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``ReconciliationConfig``:
    collection names, field-alias chains, batch-code prefix, orphan-scan
    guard and default tenant.

Architecture position:
    Configuration -- sits above ``procurement_kernel`` and below
    ``procurement_services``.  Engines never import it; services pass the
    relevant pieces (aliases, prefix) into engine calls.

Failure modes:
    - ``ConfigurationError`` -- missing file, invalid YAML, or schema
      violations.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PROCUREMENT_CONFIG_TRACE`` log entry with the config id, version and
    SHA-256 checksum of the loaded content.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procurement_config.loader import load_config
from procurement_config.schema import CollectionNames, ReconciliationConfig

_logger = logging.getLogger("procurement_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ReconciliationConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML configuration set to load.  Defaults to
            procurement_config/sets/default.yaml.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "PROCUREMENT_CONFIG_TRACE",
        extra={
            "trace_type": "PROCUREMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "ReconciliationConfig",
    "CollectionNames",
]
