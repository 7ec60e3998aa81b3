"""Exception hierarchy shared by the reconciliation stages and store adapters."""

from __future__ import annotations


class ReconciliationError(RuntimeError):
    """Base class for failures raised by the reconciliation pipeline."""


class PlanConstructionError(ReconciliationError):
    """Raised when an execution plan cannot be built from a diff set."""


class PlanTooLargeError(PlanConstructionError):
    """Raised when a plan exceeds the configured operation cap."""

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"Plan exceeds maximum operations ({count} > {limit})")
        self.count = count
        self.limit = limit


class ApplyInputError(ReconciliationError):
    """Raised before execution starts when the plan handed to the executor is malformed."""


class UnresolvedReferenceError(ReconciliationError):
    """Raised for an operation that references a placeholder with no resolved id."""

    def __init__(self, token: str, operation_id: str) -> None:
        super().__init__(
            f"Unresolved reference {token} in operation {operation_id}: "
            "the record it points to was not created"
        )
        self.token = token
        self.operation_id = operation_id


class RecordStoreError(ReconciliationError):
    """Raised by store adapters when the store rejects a call."""


class RecordNotFoundError(RecordStoreError):
    """Raised when a record addressed by id does not exist."""


class AccessDeniedError(RecordStoreError):
    """Raised when the store refuses an operation for permission reasons."""


class MissingRequiredFieldError(RecordStoreError):
    """Raised when a create leaves a required field unset."""
