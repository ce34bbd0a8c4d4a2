"""
procurement_services.document_store -- Document-store collaborators.

Responsibility:
    The store the reconciliation engine reads from and writes back to:
    named collections of schemaless JSON documents, scoped per tenant.

        subscribe(tenant, collection, on_change) -> unsubscribe
        snapshot(tenant, collection) -> [document, ...]
        add(tenant, collection, document) -> id
        update(tenant, collection, id, patch)
        delete(tenant, collection, id)
        replace_collection(tenant, collection, documents) -> [id, ...]

    Every snapshot carries each document's id under ``"id"``.

Architecture position:
    Services -- imperative shell.  ``InMemoryDocumentStore`` serves tests
    and embedding; ``SqlDocumentStore`` persists through SQLAlchemy.

Invariants enforced:
    - Subscribers receive the full current snapshot on subscribe and again
      after every write to that collection; never a partial diff.
    - Change notifications raised while a notification is being delivered
      are queued and delivered afterwards, each with a fresh snapshot, so
      listeners never run nested inside each other.
    - Snapshots are deep copies; mutating one never changes the store.

Failure modes:
    - StoreWriteError / StoreReadError / RecordNotFoundError propagate to
      the caller and are never retried.
    - Bulk helpers (``update_many``, ``delete_many``) are best-effort: a
      failing record is reported in ``BulkWriteResult.failures`` and logged
      at ERROR; records already written stay written.
    - A subscriber that raises is logged and does not stop delivery to the
      other subscribers.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procurement_kernel.exceptions import (
    ProcurementError,
    RecordNotFoundError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models.document import StoredDocument

logger = get_logger("services.document_store")

Document = dict[str, Any]
SnapshotListener = Callable[[list[Document]], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class BulkWriteFailure:
    record_id: str | None
    error: ProcurementError


@dataclass
class BulkWriteResult:
    """
    Outcome of a best-effort bulk write.

    Records listed in ``written_ids`` were written and stay written even
    when ``failures`` is non-empty.
    """

    written_ids: list[str] = field(default_factory=list)
    failures: list[BulkWriteFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def written_count(self) -> int:
        return len(self.written_ids)

    def merge(self, other: BulkWriteResult) -> BulkWriteResult:
        return BulkWriteResult(
            written_ids=[*self.written_ids, *other.written_ids],
            failures=[*self.failures, *other.failures],
        )


def _strip_id(document: Mapping[str, Any]) -> Document:
    return {k: copy.deepcopy(v) for k, v in document.items() if k != "id"}


class DocumentStore(ABC):
    """
    Tenant-scoped collection store with snapshot subscriptions.

    Subclasses implement the ``_read`` / ``_insert`` / ``_patch`` /
    ``_remove`` / ``_replace`` primitives; this base class owns
    subscriptions, notification delivery and the bulk helpers.
    """

    def __init__(self) -> None:
        self._listeners: dict[tuple[str, str], list[SnapshotListener]] = {}
        self._pending: deque[tuple[str, str]] = deque()
        self._delivering = False

    # -- primitives ---------------------------------------------------------

    @abstractmethod
    def _read(self, tenant_id: str, collection: str) -> list[Document]:
        ...

    @abstractmethod
    def _insert(self, tenant_id: str, collection: str, document: Document) -> str:
        ...

    @abstractmethod
    def _patch(self, tenant_id: str, collection: str, record_id: str, patch: Document) -> None:
        ...

    @abstractmethod
    def _remove(self, tenant_id: str, collection: str, record_id: str) -> None:
        ...

    @abstractmethod
    def _replace(self, tenant_id: str, collection: str, documents: list[Document]) -> list[str]:
        ...

    # -- reads --------------------------------------------------------------

    def snapshot(self, tenant_id: str, collection: str) -> list[Document]:
        """Full current contents of the collection, in insertion order."""
        return copy.deepcopy(self._read(tenant_id, collection))

    def subscribe(
        self,
        tenant_id: str,
        collection: str,
        on_change: SnapshotListener,
    ) -> Unsubscribe:
        """Deliver the current snapshot now and after every change."""
        scope = (tenant_id, collection)
        self._listeners.setdefault(scope, []).append(on_change)
        logger.debug(
            "store_subscribed",
            extra={"tenant_id": tenant_id, "collection": collection},
        )
        self._deliver(on_change, tenant_id, collection, self.snapshot(tenant_id, collection))

        def unsubscribe() -> None:
            listeners = self._listeners.get(scope, [])
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    # -- writes -------------------------------------------------------------

    def add(self, tenant_id: str, collection: str, document: Mapping[str, Any]) -> str:
        record_id = self._insert(tenant_id, collection, _strip_id(document))
        logger.info(
            "document_added",
            extra={"tenant_id": tenant_id, "collection": collection, "record_id": record_id},
        )
        self._notify(tenant_id, collection)
        return record_id

    def update(
        self,
        tenant_id: str,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> None:
        self._patch(tenant_id, collection, record_id, _strip_id(patch))
        logger.info(
            "document_updated",
            extra={
                "tenant_id": tenant_id,
                "collection": collection,
                "record_id": record_id,
                "fields": sorted(k for k in patch if k != "id"),
            },
        )
        self._notify(tenant_id, collection)

    def delete(self, tenant_id: str, collection: str, record_id: str) -> None:
        self._remove(tenant_id, collection, record_id)
        logger.info(
            "document_deleted",
            extra={"tenant_id": tenant_id, "collection": collection, "record_id": record_id},
        )
        self._notify(tenant_id, collection)

    def replace_collection(
        self,
        tenant_id: str,
        collection: str,
        documents: Iterable[Mapping[str, Any]],
    ) -> list[str]:
        """Overwrite the whole collection; returns the new ids in order."""
        ids = self._replace(tenant_id, collection, [_strip_id(d) for d in documents])
        logger.info(
            "collection_replaced",
            extra={"tenant_id": tenant_id, "collection": collection, "count": len(ids)},
        )
        self._notify(tenant_id, collection)
        return ids

    def update_many(
        self,
        tenant_id: str,
        collection: str,
        patches: Sequence[tuple[str, Mapping[str, Any]]],
    ) -> BulkWriteResult:
        """Best-effort ``update`` of each ``(record_id, patch)``."""
        result = BulkWriteResult()
        for record_id, patch in patches:
            try:
                self.update(tenant_id, collection, record_id, patch)
            except StoreError as exc:
                self._record_failure(result, collection, "update", record_id, exc)
            else:
                result.written_ids.append(record_id)
        return result

    def delete_many(
        self,
        tenant_id: str,
        collection: str,
        record_ids: Sequence[str],
    ) -> BulkWriteResult:
        """Best-effort ``delete`` of each id."""
        result = BulkWriteResult()
        for record_id in record_ids:
            try:
                self.delete(tenant_id, collection, record_id)
            except StoreError as exc:
                self._record_failure(result, collection, "delete", record_id, exc)
            else:
                result.written_ids.append(record_id)
        return result

    @staticmethod
    def _record_failure(
        result: BulkWriteResult,
        collection: str,
        operation: str,
        record_id: str | None,
        exc: StoreError,
    ) -> None:
        result.failures.append(BulkWriteFailure(record_id=record_id, error=exc))
        with LogContext.bind(collection=collection, record_id=record_id):
            logger.error(
                "bulk_write_failed",
                extra={"operation": operation},
                exc_info=exc,
            )

    # -- notification -------------------------------------------------------

    def _notify(self, tenant_id: str, collection: str) -> None:
        scope = (tenant_id, collection)
        if scope not in self._pending:
            self._pending.append(scope)
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                pending_tenant, pending_collection = self._pending.popleft()
                listeners = list(self._listeners.get((pending_tenant, pending_collection), ()))
                if not listeners:
                    continue
                documents = self.snapshot(pending_tenant, pending_collection)
                for listener in listeners:
                    self._deliver(
                        listener,
                        pending_tenant,
                        pending_collection,
                        copy.deepcopy(documents),
                    )
        finally:
            self._delivering = False

    def _deliver(
        self,
        listener: SnapshotListener,
        tenant_id: str,
        collection: str,
        documents: list[Document],
    ) -> None:
        try:
            listener(documents)
        except Exception:
            logger.exception(
                "snapshot_listener_failed",
                extra={"tenant_id": tenant_id, "collection": collection},
            )


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; documents live in ordered dicts."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[tuple[str, str], dict[str, Document]] = {}

    def _scope(self, tenant_id: str, collection: str) -> dict[str, Document]:
        return self._data.setdefault((tenant_id, collection), {})

    def _read(self, tenant_id: str, collection: str) -> list[Document]:
        return [
            {**document, "id": record_id}
            for record_id, document in self._scope(tenant_id, collection).items()
        ]

    def _insert(self, tenant_id: str, collection: str, document: Document) -> str:
        record_id = str(uuid4())
        self._scope(tenant_id, collection)[record_id] = document
        return record_id

    def _patch(self, tenant_id: str, collection: str, record_id: str, patch: Document) -> None:
        scope = self._scope(tenant_id, collection)
        if record_id not in scope:
            raise RecordNotFoundError(collection, record_id)
        scope[record_id] = {**scope[record_id], **patch}

    def _remove(self, tenant_id: str, collection: str, record_id: str) -> None:
        scope = self._scope(tenant_id, collection)
        if record_id not in scope:
            raise RecordNotFoundError(collection, record_id)
        del scope[record_id]

    def _replace(self, tenant_id: str, collection: str, documents: list[Document]) -> list[str]:
        scope: dict[str, Document] = {}
        for document in documents:
            scope[str(uuid4())] = document
        self._data[(tenant_id, collection)] = scope
        return list(scope)


class SqlDocumentStore(DocumentStore):
    """
    SQLAlchemy-backed store: one ``stored_documents`` row per document.

    ``session_factory`` returns a new Session (for example
    ``procurement_kernel.db.engine.get_session``).  Each primitive runs in
    its own transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        super().__init__()
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _scope_filter(tenant_id: str, collection: str) -> tuple:
        return (
            StoredDocument.tenant_id == tenant_id,
            StoredDocument.collection == collection,
        )

    @staticmethod
    def _parse_id(collection: str, record_id: str) -> UUID:
        try:
            return UUID(str(record_id))
        except ValueError as exc:
            raise RecordNotFoundError(collection, record_id) from exc

    def _next_position(self, session: Session, tenant_id: str, collection: str) -> int:
        current = session.execute(
            select(func.max(StoredDocument.position)).where(
                *self._scope_filter(tenant_id, collection)
            )
        ).scalar()
        return 0 if current is None else current + 1

    def _read(self, tenant_id: str, collection: str) -> list[Document]:
        try:
            with self._transaction() as session:
                rows = session.execute(
                    select(StoredDocument)
                    .where(*self._scope_filter(tenant_id, collection))
                    .order_by(StoredDocument.position)
                ).scalars()
                return [row.to_document() for row in rows]
        except SQLAlchemyError as exc:
            raise StoreReadError(collection, str(exc)) from exc

    def _insert(self, tenant_id: str, collection: str, document: Document) -> str:
        try:
            with self._transaction() as session:
                row = StoredDocument(
                    tenant_id=tenant_id,
                    collection=collection,
                    position=self._next_position(session, tenant_id, collection),
                    payload=document,
                )
                session.add(row)
                session.flush()
                return str(row.id)
        except SQLAlchemyError as exc:
            raise StoreWriteError(collection, "add", str(exc)) from exc

    def _get_row(self, session: Session, tenant_id: str, collection: str, record_id: str) -> StoredDocument:
        row = session.execute(
            select(StoredDocument).where(
                StoredDocument.id == self._parse_id(collection, record_id),
                *self._scope_filter(tenant_id, collection),
            )
        ).scalar_one_or_none()
        if row is None:
            raise RecordNotFoundError(collection, record_id)
        return row

    def _patch(self, tenant_id: str, collection: str, record_id: str, patch: Document) -> None:
        try:
            with self._transaction() as session:
                row = self._get_row(session, tenant_id, collection, record_id)
                row.payload = {**row.payload, **patch}
        except SQLAlchemyError as exc:
            raise StoreWriteError(collection, "update", str(exc), record_id) from exc

    def _remove(self, tenant_id: str, collection: str, record_id: str) -> None:
        try:
            with self._transaction() as session:
                session.delete(self._get_row(session, tenant_id, collection, record_id))
        except SQLAlchemyError as exc:
            raise StoreWriteError(collection, "delete", str(exc), record_id) from exc

    def _replace(self, tenant_id: str, collection: str, documents: list[Document]) -> list[str]:
        try:
            with self._transaction() as session:
                session.execute(
                    delete(StoredDocument).where(*self._scope_filter(tenant_id, collection))
                )
                rows = [
                    StoredDocument(
                        tenant_id=tenant_id,
                        collection=collection,
                        position=position,
                        payload=document,
                    )
                    for position, document in enumerate(documents)
                ]
                session.add_all(rows)
                session.flush()
                return [str(row.id) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreWriteError(collection, "replace", str(exc)) from exc
