"""SQLAlchemy ORM models."""

from procurement_kernel.models.document import StoredDocument

__all__ = ["StoredDocument"]
