from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass(frozen=True)
class LendingError(ValueError):
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    status_code: ClassVar[int] = 400

    def __str__(self) -> str:
        return self.message

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class NotFoundError(LendingError):
    status_code = 404


class ForbiddenError(LendingError):
    status_code = 403


class InvalidTransitionError(ForbiddenError):
    """A lifecycle action was attempted from a status that does not allow it."""

    @classmethod
    def for_action(
        cls, current_status: Any, action: str, *, resource: str = "a loan"
    ) -> "InvalidTransitionError":
        status_value = getattr(current_status, "value", current_status)
        return cls(
            code="invalid_transition",
            message=f"Cannot {action} {resource} in status {status_value}",
            details={"current_status": status_value, "action": action},
        )


class IneligibleCustomerError(ForbiddenError):
    @classmethod
    def from_reasons(cls, reasons: list[Any], message: str | None = None) -> "IneligibleCustomerError":
        serialized = [
            {"code": getattr(reason.code, "value", reason.code), "message": reason.message}
            if hasattr(reason, "code")
            else reason
            for reason in reasons
        ]
        return cls(
            code="customer_ineligible",
            message=message or "Customer is not eligible",
            details={"reasons": serialized},
        )


class IncompleteAppraisalError(LendingError):
    status_code = 422


class DuplicateResourceError(LendingError):
    status_code = 409


class ValidationError(LendingError):
    status_code = 422


class ConflictError(LendingError):
    status_code = 409


class UnavailableError(LendingError):
    status_code = 503


class ScheduleInvariantError(RuntimeError):
    """Raised when persisted loan state contradicts a lifecycle invariant."""
