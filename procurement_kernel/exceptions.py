"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementError:

    ProcurementError (base)
    |
    +-- PreconditionError            (rejected before any store call)
    |   +-- StoreUnavailableError
    |   +-- NotAuthenticatedError
    |   +-- MissingRecordIdError
    |   +-- RecordValidationError
    |
    +-- StoreError                   (store rejected a read or write)
    |   +-- StoreReadError
    |   +-- StoreWriteError
    |   +-- RecordNotFoundError
    |
    +-- EventError                   (change propagation contract)
    |   +-- UnknownEventError
    |   +-- EventPayloadMismatchError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Precondition    | STORE_UNAVAILABLE           | No document store handle
                | NOT_AUTHENTICATED           | No tenant / user scope
                | MISSING_RECORD_ID           | Update or delete without a record id
                | RECORD_VALIDATION_FAILED    | Required fields missing, bad line qty
----------------|-----------------------------|-----------------------------------------
Store           | STORE_READ_FAILED           | Snapshot or lookup rejected
                | STORE_WRITE_FAILED          | add/update/delete/replace rejected
                | RECORD_NOT_FOUND            | Record id absent from collection
----------------|-----------------------------|-----------------------------------------
Event           | UNKNOWN_EVENT               | Event name outside the closed set
                | EVENT_PAYLOAD_MISMATCH      | Payload type does not fit the event
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_INVALID       | Config file missing keys / bad types

===============================================================================
HANDLING PATTERNS
===============================================================================

Malformed input quantities never raise; they coerce to zero.  Store errors
propagate to the caller and are not retried.  Bulk writes report per-record
failures through ``BulkWriteResult`` instead of raising, so records already
written stay written:

    result = store_writer.update_many(...)
    if not result.ok:
        for failure in result.failures:
            notify(failure.record_id, failure.error.code)
"""


class ProcurementError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "PROCUREMENT_ERROR"


# Precondition failures


class PreconditionError(ProcurementError):
    """Base exception for operations rejected before touching the store."""

    code: str = "PRECONDITION_FAILED"


class StoreUnavailableError(PreconditionError):
    """No document store handle was supplied."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"No document store available for {operation}")


class NotAuthenticatedError(PreconditionError):
    """The operation needs a tenant/user scope and none is set."""

    code: str = "NOT_AUTHENTICATED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Not authenticated: {operation} requires a tenant id")


class MissingRecordIdError(PreconditionError):
    """A derived record was addressed without its store-assigned id."""

    code: str = "MISSING_RECORD_ID"

    def __init__(self, collection: str, operation: str):
        self.collection = collection
        self.operation = operation
        super().__init__(f"Cannot {operation} record in {collection}: record has no id")


class RecordValidationError(PreconditionError):
    """Record failed validation; ``field_errors`` lists each problem."""

    code: str = "RECORD_VALIDATION_FAILED"

    def __init__(self, record_type: str, field_errors: list[dict]):
        self.record_type = record_type
        self.field_errors = field_errors
        super().__init__(
            f"Validation failed for {record_type}: {len(field_errors)} error(s)"
        )


# Store failures


class StoreError(ProcurementError):
    """Base exception for document store failures."""

    code: str = "STORE_ERROR"


class StoreReadError(StoreError):
    """A snapshot or lookup was rejected by the store."""

    code: str = "STORE_READ_FAILED"

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Read from {collection} failed: {reason}")


class StoreWriteError(StoreError):
    """A write was rejected by the store."""

    code: str = "STORE_WRITE_FAILED"

    def __init__(self, collection: str, operation: str, reason: str, record_id: str | None = None):
        self.collection = collection
        self.operation = operation
        self.reason = reason
        self.record_id = record_id
        target = f"{collection}/{record_id}" if record_id else collection
        super().__init__(f"{operation} on {target} failed: {reason}")


class RecordNotFoundError(StoreError):
    """The addressed record id does not exist in the collection."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"Record not found: {collection}/{record_id}")


# Change propagation


class EventError(ProcurementError):
    """Base exception for change-propagation errors."""

    code: str = "EVENT_ERROR"


class UnknownEventError(EventError):
    """Event name is not one of the published change events."""

    code: str = "UNKNOWN_EVENT"

    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__(f"Unknown change event: {event_name}")


class EventPayloadMismatchError(EventError):
    """Payload type does not match the shape registered for the event."""

    code: str = "EVENT_PAYLOAD_MISMATCH"

    def __init__(self, event_name: str, expected_type: str, received_type: str):
        self.event_name = event_name
        self.expected_type = expected_type
        self.received_type = received_type
        super().__init__(
            f"Event {event_name} expects {expected_type}, received {received_type}"
        )


# Configuration


class ConfigurationError(ProcurementError):
    """Configuration file is missing required keys or has bad values."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
