"""
Position Engine - Exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
PositionEngineError (base)
├── CurrencyMismatchError      programming error, never recovered
├── InvalidTransitionError     illegal position status change
├── OrderIdAlreadySetError     order id written twice
├── PositionPersistenceError   order placed but position not saved
└── PositionRepositoryError    database operation failed

Recoverable failures (order placement refused, backup target
missing) are NOT raised: they are returned as results and
recorded as ErrorRecord entries (see errors.py).

============================================================
"""

from typing import Any, Dict, Optional


class PositionEngineError(Exception):
    """
    Base exception for the Position Engine.

    Carries a context dict for logging and the underlying cause,
    if any.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class CurrencyMismatchError(PositionEngineError):
    """Arithmetic attempted between amounts of different currencies."""

    def __init__(self, left: Any, right: Any, operation: str = "combine"):
        super().__init__(
            f"Cannot {operation} amounts in {left} and {right}",
            context={"left": str(left), "right": str(right), "operation": operation},
        )
        self.left = left
        self.right = right


class InvalidTransitionError(PositionEngineError):
    """Position status transition not allowed by the state machine."""

    def __init__(self, position_id: Any, from_status: Any, to_status: Any, reason: str):
        super().__init__(
            f"Cannot transition position {position_id} from "
            f"{from_status} to {to_status}: {reason}",
            context={
                "position_id": position_id,
                "from_status": str(from_status),
                "to_status": str(to_status),
            },
        )


class OrderIdAlreadySetError(PositionEngineError):
    """Open or close order id assigned a second time."""

    def __init__(self, position_id: Any, field_name: str, current: str, new: str):
        super().__init__(
            f"Position {position_id} already has {field_name}={current!r}, "
            f"refusing {new!r}",
            context={"position_id": position_id, "field": field_name},
        )


class PositionPersistenceError(PositionEngineError):
    """
    Buy order placed but the position record could not be saved.

    The order cannot be un-placed: durable and live state have
    diverged and need manual reconciliation.
    """

    def __init__(self, order_id: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Order {order_id} placed but position could not be persisted",
            context={"order_id": order_id},
            cause=cause,
        )
        self.order_id = order_id


class PositionRepositoryError(PositionEngineError):
    """Database operation of the position repository failed."""

    def __init__(
        self,
        operation: str,
        position_id: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            f"Position repository {operation} failed",
            context={"operation": operation, "position_id": position_id},
            cause=cause,
        )
        self.operation = operation
