"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Referenced entity does not exist or belongs to another company."""

    def __init__(self, entity: str, message: str | None = None) -> None:
        label = entity.replace("_", " ").capitalize()
        super().__init__(
            code=f"{entity.upper()}_NOT_FOUND",
            http_status=404,
            message=message or f"{label} not found",
        )


class AuthorizationError(DomainError):
    """Actor may not perform the action. Never says which role would."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(code="ACCESS_DENIED", http_status=403, message=message)


class ConflictError(DomainError):
    """Precondition about the actor's active timer does not hold."""

    def __init__(
        self,
        message: str,
        active_work_order_id: UUID | None = None,
        *,
        code: str = "TIMER_CONFLICT",
    ) -> None:
        details = None
        if active_work_order_id is not None:
            details = {"activeWorkOrderId": str(active_work_order_id)}
        super().__init__(code=code, http_status=409, message=message, details=details)
        self.active_work_order_id = active_work_order_id


class InvalidStateError(DomainError):
    """Open entry has the wrong type or belongs to another work order."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code="TIMER_INVALID_STATE", http_status=409, message=message, details=details)


class InvalidTransitionError(DomainError):
    """Lifecycle action is not permitted from the current status."""

    def __init__(self, from_status: str, action: str) -> None:
        super().__init__(
            code="WORK_ORDER_INVALID_TRANSITION",
            http_status=409,
            message=f"Cannot {action} a work order in status {from_status}",
            details={"fromStatus": from_status, "action": action},
        )
        self.from_status = from_status
        self.action = action


class DataIntegrityError(DomainError):
    """A stored invariant was found broken on read."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code="DATA_INTEGRITY_VIOLATION", http_status=500, message=message, details=details)
