"""
Reconciliation configuration schema.

Frozen dataclasses produced by ``procurement_config.loader`` from a YAML
configuration set.  ``ReconciliationConfig`` is the sole runtime artifact.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases


@dataclass(frozen=True)
class CollectionNames:
    """Document-store collection names, per role."""

    # Order collections: primary is merged first, secondary wins on collision
    purchase_orders: str = "purchase_orders"
    procurement_records: str = "procurement_records"
    open_indent_items: str = "open_indent_items"
    closed_indent_items: str = "closed_indent_items"
    indent_data: str = "indent_data"
    stock_records: str = "stock_records"
    item_master: str = "item_master"
    receipts: str = "receipts"
    inspections: str = "inspections"

    def all(self) -> tuple[str, ...]:
        return (
            self.purchase_orders,
            self.procurement_records,
            self.open_indent_items,
            self.closed_indent_items,
            self.indent_data,
            self.stock_records,
            self.item_master,
            self.receipts,
            self.inspections,
        )


@dataclass(frozen=True)
class ReconciliationConfig:
    config_id: str
    version: int
    checksum: str
    default_tenant: str | None = None
    batch_prefix: str = "P"
    # Orphan scans need both the order source and the derived records
    # to be non-empty; an empty source usually means "not loaded yet".
    skip_orphan_scan_when_sources_empty: bool = True
    collections: CollectionNames = field(default_factory=CollectionNames)
    aliases: FieldAliases = DEFAULT_ALIASES
