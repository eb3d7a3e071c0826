"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The engine is consumed by API handlers that decide what the user sees (toast,
inline message, HTTP status) purely from the KIND of error raised.  Parsing
message strings for that decision is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        tracker.create_delivery(order_id, requested, actor="picker-1")
    except ReconciliationError as e:
        api_response(code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EngineError (base)
    |
    +-- ValidationError           malformed input shape
    +-- NotFoundError             referenced document/item does not exist
    +-- ReconciliationError       quantity/amount invariant would be violated
    +-- InvalidTransitionError    status not reachable for the document kind
    +-- ConflictError             concurrent modification (version mismatch)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                 | Reason values           | When Raised
---------------------|-------------------------|-------------------------------
VALIDATION_ERROR     |                         | Missing field, wrong type
NOT_FOUND            |                         | Parent/item id unknown
RECONCILIATION_ERROR | NoQuantitySelected      | All-zero delivery selection
                     | NoItemsSelected         | Empty invoice line set
                     | ExceedsReceived         | Return > received quantity
INVALID_TRANSITION   |                         | Status not in allowed-next set,
                     |                         | or mutation of a terminal doc
CONFLICT             |                         | Stale version on write

===============================================================================
PROPAGATION
===============================================================================

Every error reaches the caller verbatim.  The engine never retries and never
leaves a partial write behind: the repository transaction is rolled back
before the exception leaves the service method.
"""


class EngineError(Exception):
    """
    Base exception for all fulfillment engine errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "ENGINE_ERROR"


class ValidationError(EngineError):
    """Input payload is malformed (missing required field, wrong type)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, problem: str):
        self.field = field
        self.problem = problem
        super().__init__(f"Invalid value for '{field}': {problem}")


class NotFoundError(EngineError):
    """Referenced parent document or item does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class ReconciliationError(EngineError):
    """
    A quantity or amount invariant would be violated.

    ``reason`` is a stable, machine-readable discriminator
    (``NoQuantitySelected``, ``NoItemsSelected``, ``ExceedsReceived``).
    """

    code: str = "RECONCILIATION_ERROR"

    NO_QUANTITY_SELECTED = "NoQuantitySelected"
    NO_ITEMS_SELECTED = "NoItemsSelected"
    EXCEEDS_RECEIVED = "ExceedsReceived"

    def __init__(self, reason: str, detail: str | None = None, **context: object):
        self.reason = reason
        self.detail = detail
        self.context = {k: str(v) for k, v in context.items()}
        message = reason if detail is None else f"{reason}: {detail}"
        super().__init__(message)


class InvalidTransitionError(EngineError):
    """Requested status is not reachable from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        document_kind: str,
        current_status: str,
        requested: str,
        detail: str | None = None,
    ):
        self.document_kind = document_kind
        self.current_status = current_status
        self.requested = requested
        self.detail = detail
        message = (
            f"{document_kind}: cannot go from '{current_status}' to '{requested}'"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ConflictError(EngineError):
    """Concurrent modification detected at the storage boundary."""

    code: str = "CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: object,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
