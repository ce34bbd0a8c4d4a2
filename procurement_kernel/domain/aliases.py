"""
Field-alias chains for loosely formatted source documents.

Records written by different screens and imports over time name the same
field differently (``itemCode`` / ``Code`` / ``CodeNo``; ``purchaseQty`` /
``poQty`` / ``qty``).  Engines read through these ordered chains; the order
is the priority.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldAliases:
    """Ordered alias chains, highest priority first."""

    # Code fields compared when matching an order line by item code
    item_code: tuple[str, ...] = ("itemCode", "Code", "CodeNo", "Item")
    # Code fields that form the merge key of the two order collections
    merge_item_code: tuple[str, ...] = ("itemCode", "Code", "Item")
    # Ordered quantity of a matched order line
    order_quantity: tuple[str, ...] = ("purchaseQty", "poQty", "qty", "originalIndentQty")
    # Order quantity as used by the receipt repair heuristic
    repair_order_quantity: tuple[str, ...] = ("purchaseQty", "poQty")
    # Originally requested quantity of a matched order line
    original_quantity: tuple[str, ...] = ("originalIndentQty", "originalQty", "qty")
    # Explicit per-indent availability, bypasses the cumulative computation
    live_stock_override: tuple[str, ...] = (
        "availableForThisIndent",
        "allocatedAvailable",
        "qty1",
        "available",
    )
    # Requested quantity of an indent line
    indent_quantity: tuple[str, ...] = (
        "qty",
        "indentQty",
        "quantity",
        "Quantity",
        "requestedQty",
        "requiredQty",
        "Qty",
        "qty1",
        "originalIndentQty",
    )
    # Stock figure carried on an indent line
    indent_stock: tuple[str, ...] = (
        "stock",
        "Stock",
        "currentStock",
        "Current Stock",
        "availableStock",
        "Available",
        "available",
        "instock",
        "inStock",
        "balance",
        "Balance",
        "qty1",
    )
    # Quantity fields used as a stock figure when no stock field is set
    indent_stock_quantity: tuple[str, ...] = ("quantity", "Quantity", "qty", "Qty")
    # Code fields of an indent line
    indent_item_code: tuple[str, ...] = ("itemCode", "Code", "Item")
    # Display name of an item on an order line
    item_name: tuple[str, ...] = ("itemName", "Item", "model")
    # Display name of an item on an indent line
    indent_item_name: tuple[str, ...] = ("model", "itemName", "Item", "description")
    # Secondary order reference (OA number)
    oa_no: tuple[str, ...] = ("oaNo", "OA")
    # Supplier name
    supplier_name: tuple[str, ...] = ("supplierName", "supplier")


DEFAULT_ALIASES = FieldAliases()
