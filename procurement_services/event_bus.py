"""
procurement_services.event_bus -- Typed in-process change propagation.

Responsibility:
    Notify other reconciliation consumers that a collection's derived state
    changed.  The set of events is closed and every event carries a fixed
    payload type:

        procurement-orders-changed  -> ProcurementOrdersChanged
        receipts-changed            -> ReceiptsChanged
        inspections-changed         -> InspectionsChanged
        indents-changed             -> IndentsChanged

Architecture position:
    Services -- in-process only; nothing crosses a session boundary.

Invariants enforced:
    - Dispatch is synchronous to the listeners registered when ``publish``
      is called.  A listener registered during dispatch sees only later
      events; there is no replay and no persistence of past events.
    - Each listener invocation is isolated: an exception is logged and
      reported in the DispatchReport; the remaining listeners still run.

Failure modes:
    - UnknownEventError: event name outside the closed set.
    - EventPayloadMismatchError: payload is not the event's payload type.

Usage:
    bus = ChangePropagator()
    unsubscribe = bus.subscribe(ChangeEvent.RECEIPTS_CHANGED, on_receipts)
    bus.publish(ChangeEvent.RECEIPTS_CHANGED, ReceiptsChanged(receipts))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from procurement_kernel.domain.records import InspectionRecord, ProcurementRecord, ReceiptRecord
from procurement_kernel.exceptions import EventPayloadMismatchError, UnknownEventError
from procurement_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")


class ChangeEvent(str, Enum):
    PROCUREMENT_ORDERS_CHANGED = "procurement-orders-changed"
    RECEIPTS_CHANGED = "receipts-changed"
    INSPECTIONS_CHANGED = "inspections-changed"
    INDENTS_CHANGED = "indents-changed"

    @classmethod
    def parse(cls, value: ChangeEvent | str) -> ChangeEvent:
        if isinstance(value, ChangeEvent):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownEventError(str(value)) from None


@dataclass(frozen=True)
class ProcurementOrdersChanged:
    records: tuple[ProcurementRecord, ...] = ()


@dataclass(frozen=True)
class ReceiptsChanged:
    receipts: tuple[ReceiptRecord, ...] = ()


@dataclass(frozen=True)
class InspectionsChanged:
    inspections: tuple[InspectionRecord, ...] = ()


@dataclass(frozen=True)
class IndentsChanged:
    open_items: tuple[dict[str, Any], ...] = ()
    closed_items: tuple[dict[str, Any], ...] = ()


PAYLOAD_TYPES: dict[ChangeEvent, type] = {
    ChangeEvent.PROCUREMENT_ORDERS_CHANGED: ProcurementOrdersChanged,
    ChangeEvent.RECEIPTS_CHANGED: ReceiptsChanged,
    ChangeEvent.INSPECTIONS_CHANGED: InspectionsChanged,
    ChangeEvent.INDENTS_CHANGED: IndentsChanged,
}

Listener = Callable[[Any], None]


@dataclass(frozen=True)
class ListenerFailure:
    listener: str
    error: Exception


@dataclass(frozen=True)
class DispatchReport:
    """What happened to one published event."""

    event: ChangeEvent
    delivered: int = 0
    failures: tuple[ListenerFailure, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures


def _listener_name(listener: Listener) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)


class ChangePropagator:
    """
    Publish/subscribe bridge between reconciliation consumers.

    Contract:
        ``publish`` returns after every currently registered listener for
        the event has been called once.
    Non-goals:
        Exactly-once delivery, replay, cross-process transport.
    """

    def __init__(self) -> None:
        self._listeners: dict[ChangeEvent, list[Listener]] = {event: [] for event in ChangeEvent}

    def subscribe(self, event: ChangeEvent | str, listener: Listener) -> Callable[[], None]:
        parsed = ChangeEvent.parse(event)
        self._listeners[parsed].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[parsed]:
                self._listeners[parsed].remove(listener)

        return unsubscribe

    def listener_count(self, event: ChangeEvent | str) -> int:
        return len(self._listeners[ChangeEvent.parse(event)])

    def publish(self, event: ChangeEvent | str, payload: Any) -> DispatchReport:
        parsed = ChangeEvent.parse(event)
        expected = PAYLOAD_TYPES[parsed]
        if not isinstance(payload, expected):
            raise EventPayloadMismatchError(
                parsed.value, expected.__name__, type(payload).__name__
            )

        listeners = list(self._listeners[parsed])
        delivered = 0
        failures: list[ListenerFailure] = []
        for listener in listeners:
            try:
                listener(payload)
            except Exception as exc:
                failures.append(ListenerFailure(_listener_name(listener), exc))
                logger.exception(
                    "listener_failed",
                    extra={"event": parsed.value, "listener": _listener_name(listener)},
                )
            else:
                delivered += 1

        logger.debug(
            "event_published",
            extra={
                "event": parsed.value,
                "listener_count": len(listeners),
                "failure_count": len(failures),
            },
        )
        return DispatchReport(event=parsed, delivered=delivered, failures=tuple(failures))
