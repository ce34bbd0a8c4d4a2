"""
Module: procurement_kernel.models.document
Responsibility: ORM persistence for schemaless store documents.  Every
    collection (purchase orders, receipts, inspections, ...) shares one
    table; a row holds one JSON document scoped by tenant and collection.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``position`` preserves insertion order within a (tenant, collection)
      scope; snapshots are read ordered by it.
    - The row id is the document id exposed to callers.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base


class StoredDocument(Base):
    """One document of a named collection, owned by one tenant."""

    __tablename__ = "stored_documents"

    __table_args__ = (
        Index("idx_stored_documents_scope", "tenant_id", "collection", "position"),
    )

    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def to_document(self) -> dict[str, Any]:
        """Payload with the row id attached as ``id``."""
        return {**self.payload, "id": str(self.id)}

    def __repr__(self) -> str:
        return f"<StoredDocument {self.collection}/{self.id}>"
