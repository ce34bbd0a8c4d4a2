"""
Configuration Loader (``procurement_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``procurement_config.schema`` dataclasses.  Runtime callers use
``procurement_config.get_active_config()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` wrapping the ``yaml.YAMLError``.
* Missing ``config_id`` / ``version``, unknown keys, or wrongly typed
  values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import CollectionNames, ReconciliationConfig
from procurement_kernel.domain.aliases import FieldAliases
from procurement_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _check_keys(source: str, section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(source, f"unknown keys in {section}: {', '.join(unknown)}")


def parse_collections(source: str, data: dict[str, Any] | None) -> CollectionNames:
    if not data:
        return CollectionNames()
    allowed = {f.name for f in fields(CollectionNames)}
    _check_keys(source, "collections", data, allowed)
    for name, value in data.items():
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(source, f"collections.{name} must be a non-empty string")
    return CollectionNames(**data)


def parse_aliases(source: str, data: dict[str, Any] | None) -> FieldAliases:
    if not data:
        return FieldAliases()
    allowed = {f.name for f in fields(FieldAliases)}
    _check_keys(source, "aliases", data, allowed)
    parsed: dict[str, tuple[str, ...]] = {}
    for name, value in data.items():
        if not isinstance(value, list) or not value or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(source, f"aliases.{name} must be a non-empty list of strings")
        parsed[name] = tuple(value)
    return FieldAliases(**parsed)


def parse_config(source: str, data: dict[str, Any]) -> ReconciliationConfig:
    """Parse a loaded YAML mapping into a ReconciliationConfig."""
    for required in ("config_id", "version"):
        if required not in data:
            raise ConfigurationError(source, f"missing required key: {required}")
    _check_keys(
        source,
        "root",
        data,
        {
            "config_id",
            "version",
            "default_tenant",
            "batch_prefix",
            "skip_orphan_scan_when_sources_empty",
            "collections",
            "aliases",
        },
    )
    if not isinstance(data["version"], int):
        raise ConfigurationError(source, "version must be an integer")
    batch_prefix = data.get("batch_prefix", "P")
    if not isinstance(batch_prefix, str) or not batch_prefix:
        raise ConfigurationError(source, "batch_prefix must be a non-empty string")
    skip = data.get("skip_orphan_scan_when_sources_empty", True)
    if not isinstance(skip, bool):
        raise ConfigurationError(source, "skip_orphan_scan_when_sources_empty must be a boolean")

    return ReconciliationConfig(
        config_id=str(data["config_id"]),
        version=data["version"],
        checksum=compute_checksum(data),
        default_tenant=data.get("default_tenant"),
        batch_prefix=batch_prefix,
        skip_orphan_scan_when_sources_empty=skip,
        collections=parse_collections(source, data.get("collections")),
        aliases=parse_aliases(source, data.get("aliases")),
    )


def load_config(path: Path) -> ReconciliationConfig:
    return parse_config(str(path), load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
