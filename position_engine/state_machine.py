"""
Position Engine - Position State Machine.

============================================================
PURPOSE
============================================================
Strict status transitions of a position.

STATE MACHINE:

    OPENING ──► OPENED ──► CLOSING ──► CLOSED

    OPENING:  buy order placed, opening trades arriving
    OPENED:   buy filled, rules evaluated on every ticker
    CLOSING:  sell order placed, closing trades arriving
    CLOSED:   sell filled, position counts towards gains

INVARIANTS:
- CLOSED is final
- Each transition has a guard
- All transitions are logged

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple

from .types import PositionStatus


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[PositionStatus, Set[PositionStatus]] = {
    PositionStatus.OPENING: {PositionStatus.OPENED},
    PositionStatus.OPENED: {PositionStatus.CLOSING},
    PositionStatus.CLOSING: {PositionStatus.CLOSED},
    PositionStatus.CLOSED: set(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class PositionTransitionEvent:
    """Event representing a status transition."""

    position_id: Optional[int]
    from_status: PositionStatus
    to_status: PositionStatus

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When transition occurred."""

    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for status transitions.

    Ensures transitions are valid and provides reason for denial.
    """

    @staticmethod
    def can_transition(
        from_status: PositionStatus,
        to_status: PositionStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Args:
            from_status: Current status
            to_status: Target status

        Returns:
            Tuple of (allowed, reason)
        """
        if from_status == to_status:
            return True, "Same status"

        if to_status in VALID_TRANSITIONS.get(from_status, set()):
            return True, "Valid transition"

        if from_status.is_terminal():
            return False, f"Cannot transition from terminal status {from_status.value}"

        return False, f"Invalid transition: {from_status.value} -> {to_status.value}"

    @staticmethod
    def validate_position_for_status(
        position: Any,
        target_status: PositionStatus,
    ) -> Tuple[bool, str]:
        """
        Validate position data for target status.

        Args:
            position: Position entity
            target_status: Target status

        Returns:
            Tuple of (valid, reason)
        """
        if target_status == PositionStatus.OPENED:
            if not position.open_order_id:
                return False, "Missing open_order_id for OPENED status"
            if not position.open_trades:
                return False, "No opening trades for OPENED status"

        if target_status == PositionStatus.CLOSING:
            if not position.close_order_id:
                return False, "Missing close_order_id for CLOSING status"

        if target_status == PositionStatus.CLOSED:
            if not position.close_trades:
                return False, "No closing trades for CLOSED status"

        return True, "Position valid for status"
