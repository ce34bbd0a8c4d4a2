"""
Records -- Typed views over loosely formatted store documents.

Responsibility:
    Parse the camelCase documents held by the document store into frozen
    dataclasses with Decimal quantities, and render them back.  Parsing
    applies the legacy-field migration that older documents need:
    ``originalIndentQty <- qty``, ``purchaseQty <- poQty <- qty`` and
    ``currentStock <- inStock``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Engines accept and return these records; services convert at the
    store boundary with ``from_document()`` / ``to_document()``.

Invariants enforced:
    - A ProcurementRecord's identity is ``composite_key(indentNo, itemCode)``.
    - A ReceiptRecord with no lines is empty and must not be persisted
      (see ``ReceiptRecord.is_empty``; enforced by the receipt service).

Failure modes:
    - None.  Malformed quantities coerce to zero, a missing or non-list
      ``items`` field parses as no lines.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.keys import composite_key, normalize, order_key
from procurement_kernel.domain.quantities import (
    ZERO,
    coerce_quantity,
    first_present,
    to_json_number,
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class IndentStatus(str, Enum):
    """Status of an indent line as reported by the indent collections."""

    OPEN = "Open"
    CLOSED = "Closed"
    PARTIAL = "Partial"

    @classmethod
    def parse(cls, value: Any) -> IndentStatus:
        """Case-insensitive parse; unknown or missing values are Open."""
        text = normalize(value)
        for status in cls:
            if status.value.upper() == text:
                return status
        return cls.OPEN


@dataclass(frozen=True)
class ProcurementRecord:
    """
    One purchase line: an ordered item against an indent.

    Owned by the purchasing workflow.  Received/ok/rejected quantities are
    copied in from receipts; everything else is user- or import-entered.
    """

    indent_no: str = ""
    item_code: str = ""
    item_name: str = ""
    order_no: str = ""
    order_place_date: str = ""
    supplier_name: str = ""
    indent_date: str = ""
    indent_by: str = ""
    oa_no: str = ""
    original_indent_qty: Decimal = ZERO
    purchase_qty: Decimal = ZERO
    current_stock: Decimal = ZERO
    indent_status: IndentStatus = IndentStatus.OPEN
    received_qty: Decimal = ZERO
    ok_qty: Decimal = ZERO
    rejected_qty: Decimal = ZERO
    grn_no: str = ""
    debit_note_or_qty_returned: str = ""
    remarks: str = ""
    record_id: str | None = None

    @property
    def key(self) -> str:
        return composite_key(self.indent_no, self.item_code)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ProcurementRecord:
        return cls(
            indent_no=_text(doc.get("indentNo")),
            item_code=_text(doc.get("itemCode")),
            item_name=_text(doc.get("itemName")),
            order_no=_text(doc.get("poNo")),
            order_place_date=_text(doc.get("orderPlaceDate")),
            supplier_name=_text(doc.get("supplierName")),
            indent_date=_text(doc.get("indentDate")),
            indent_by=_text(doc.get("indentBy")),
            oa_no=_text(doc.get("oaNo")),
            original_indent_qty=coerce_quantity(
                first_present(doc, ("originalIndentQty", "qty"))
            ),
            purchase_qty=coerce_quantity(
                first_present(doc, ("purchaseQty", "poQty", "qty"))
            ),
            current_stock=coerce_quantity(
                first_present(doc, ("currentStock", "inStock"))
            ),
            indent_status=IndentStatus.parse(doc.get("indentStatus")),
            received_qty=coerce_quantity(doc.get("receivedQty")),
            ok_qty=coerce_quantity(doc.get("okQty")),
            rejected_qty=coerce_quantity(doc.get("rejectedQty")),
            grn_no=_text(doc.get("grnNo")),
            debit_note_or_qty_returned=_text(doc.get("debitNoteOrQtyReturned")),
            remarks=_text(doc.get("remarks")),
            record_id=doc.get("id"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "orderPlaceDate": self.order_place_date,
            "poNo": self.order_no,
            "supplierName": self.supplier_name,
            "itemName": self.item_name,
            "itemCode": self.item_code,
            "indentNo": self.indent_no,
            "indentDate": self.indent_date,
            "indentBy": self.indent_by,
            "oaNo": self.oa_no,
            "originalIndentQty": to_json_number(self.original_indent_qty),
            "purchaseQty": to_json_number(self.purchase_qty),
            "currentStock": to_json_number(self.current_stock),
            "indentStatus": self.indent_status.value,
            "receivedQty": to_json_number(self.received_qty),
            "okQty": to_json_number(self.ok_qty),
            "rejectedQty": to_json_number(self.rejected_qty),
            "grnNo": self.grn_no,
            "debitNoteOrQtyReturned": self.debit_note_or_qty_returned,
            "remarks": self.remarks,
        }


@dataclass(frozen=True)
class ReceiptLine:
    """One received item on a goods receipt."""

    item_name: str = ""
    item_code: str = ""
    qty_received: Decimal = ZERO
    ok_qty: Decimal = ZERO
    reject_qty: Decimal = ZERO
    grn_no: str = ""
    remarks: str = ""
    # Cached MatchResolver result, never a source of truth
    po_qty: Decimal | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ReceiptLine:
        po_qty = doc.get("poQty")
        return cls(
            item_name=_text(doc.get("itemName")),
            item_code=_text(doc.get("itemCode")),
            qty_received=coerce_quantity(doc.get("qtyReceived")),
            ok_qty=coerce_quantity(doc.get("okQty")),
            reject_qty=coerce_quantity(doc.get("rejectQty")),
            grn_no=_text(doc.get("grnNo")),
            remarks=_text(doc.get("remarks")),
            po_qty=None if po_qty is None else coerce_quantity(po_qty),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "itemName": self.item_name,
            "itemCode": self.item_code,
            "qtyReceived": to_json_number(self.qty_received),
            "okQty": to_json_number(self.ok_qty),
            "rejectQty": to_json_number(self.reject_qty),
            "grnNo": self.grn_no,
            "remarks": self.remarks,
        }
        if self.po_qty is not None:
            doc["poQty"] = to_json_number(self.po_qty)
        return doc


@dataclass(frozen=True)
class ReceiptRecord:
    """
    Goods receipt header with its lines.

    Identity is the store-assigned ``record_id``; the logical key is the
    order number, falling back to ``INDENT::<indentNo>``.
    """

    received_date: str = ""
    indent_no: str = ""
    order_no: str = ""
    oa_no: str = ""
    batch_no: str = ""
    invoice_no: str = ""
    supplier_name: str = ""
    lines: tuple[ReceiptLine, ...] = field(default_factory=tuple)
    record_id: str | None = None

    @property
    def key(self) -> str:
        return order_key(self.order_no, self.indent_no)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def with_lines(self, lines: tuple[ReceiptLine, ...]) -> ReceiptRecord:
        return replace(self, lines=tuple(lines))

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ReceiptRecord:
        raw_items = doc.get("items")
        if not isinstance(raw_items, list):
            raw_items = []
        return cls(
            received_date=_text(doc.get("receivedDate")),
            indent_no=_text(doc.get("indentNo")),
            order_no=_text(doc.get("poNo")),
            oa_no=_text(doc.get("oaNo")),
            batch_no=_text(doc.get("batchNo")),
            invoice_no=_text(doc.get("invoiceNo")),
            supplier_name=_text(doc.get("supplierName")),
            lines=tuple(
                ReceiptLine.from_document(item)
                for item in raw_items
                if isinstance(item, Mapping)
            ),
            record_id=doc.get("id"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "receivedDate": self.received_date,
            "indentNo": self.indent_no,
            "poNo": self.order_no,
            "oaNo": self.oa_no,
            "batchNo": self.batch_no,
            "invoiceNo": self.invoice_no,
            "supplierName": self.supplier_name,
            "items": [line.to_document() for line in self.lines],
        }


@dataclass(frozen=True)
class InspectionRecord:
    """Quality inspection outcome for one received item (ok / rework / reject)."""

    received_date: str = ""
    indent_no: str = ""
    order_no: str = ""
    oa_no: str = ""
    purchase_batch_no: str = ""
    vendor_batch_no: str = ""
    dc_no: str = ""
    invoice_dc_no: str = ""
    vendor_name: str = ""
    item_name: str = ""
    item_code: str = ""
    qty_received: Decimal = ZERO
    ok_qty: Decimal = ZERO
    rework_qty: Decimal = ZERO
    reject_qty: Decimal = ZERO
    grn_no: str = ""
    remarks: str = ""
    record_id: str | None = None

    @property
    def key(self) -> str:
        return order_key(self.order_no, self.indent_no)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> InspectionRecord:
        return cls(
            received_date=_text(doc.get("receivedDate")),
            indent_no=_text(doc.get("indentNo")),
            order_no=_text(doc.get("poNo")),
            oa_no=_text(doc.get("oaNo")),
            purchase_batch_no=_text(doc.get("purchaseBatchNo")),
            vendor_batch_no=_text(doc.get("vendorBatchNo")),
            dc_no=_text(doc.get("dcNo")),
            invoice_dc_no=_text(doc.get("invoiceDcNo")),
            vendor_name=_text(doc.get("vendorName")),
            item_name=_text(doc.get("itemName")),
            item_code=_text(doc.get("itemCode")),
            qty_received=coerce_quantity(doc.get("qtyReceived")),
            ok_qty=coerce_quantity(doc.get("okQty")),
            rework_qty=coerce_quantity(doc.get("reworkQty")),
            reject_qty=coerce_quantity(doc.get("rejectQty")),
            grn_no=_text(doc.get("grnNo")),
            remarks=_text(doc.get("remarks")),
            record_id=doc.get("id"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "receivedDate": self.received_date,
            "indentNo": self.indent_no,
            "poNo": self.order_no,
            "oaNo": self.oa_no,
            "purchaseBatchNo": self.purchase_batch_no,
            "vendorBatchNo": self.vendor_batch_no,
            "dcNo": self.dc_no,
            "invoiceDcNo": self.invoice_dc_no,
            "vendorName": self.vendor_name,
            "itemName": self.item_name,
            "itemCode": self.item_code,
            "qtyReceived": to_json_number(self.qty_received),
            "okQty": to_json_number(self.ok_qty),
            "reworkQty": to_json_number(self.rework_qty),
            "rejectQty": to_json_number(self.reject_qty),
            "grnNo": self.grn_no,
            "remarks": self.remarks,
        }


@dataclass(frozen=True)
class StockRecord:
    """Last known on-hand quantity of an item.  Read-only input."""

    item_code: str = ""
    item_name: str = ""
    closing_stock: Decimal = ZERO

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> StockRecord:
        return cls(
            item_code=_text(doc.get("itemCode")),
            item_name=_text(doc.get("itemName")),
            closing_stock=coerce_quantity(doc.get("closingStock")),
        )


@dataclass(frozen=True)
class ItemMasterEntry:
    item_name: str = ""
    item_code: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ItemMasterEntry:
        return cls(
            item_name=_text(doc.get("itemName")),
            item_code=_text(doc.get("itemCode")),
        )
