"""
Position Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Classification of the failures the position engine reports
without raising.

ERROR CATEGORIES:
1. Validation Errors - creation request rejected up front
2. Order Errors - executor refused a buy or sell
3. Persistence Errors - durable copy diverged or missing
4. Computation Errors - gain undefined
5. Internal Errors - programming errors

Every reported failure becomes an ErrorRecord kept by the
PositionService and logged at the code's severity.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    VALIDATION = "VALIDATION"
    ORDER = "ORDER"
    PERSISTENCE = "PERSISTENCE"
    COMPUTATION = "COMPUTATION"
    INTERNAL = "INTERNAL"


class ErrorSeverity(Enum):
    """Error severity levels."""

    WARNING = "WARNING"
    """Non-critical, informational."""

    ERROR = "ERROR"
    """Standard error, needs attention."""

    CRITICAL = "CRITICAL"
    """Durable and live state diverged."""

    @property
    def log_level(self) -> int:
        return {
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }[self]


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    category: ErrorCategory
    severity: ErrorSeverity

    is_recoverable: bool
    """Whether the engine can carry on without intervention."""

    description: str
    recommended_action: str


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== VALIDATION ERRORS ==========
    "VAL_INVALID_PAIR": ErrorCodeInfo(
        code="VAL_INVALID_PAIR",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_recoverable=True,
        description="Currency pair missing or with identical base and quote",
        recommended_action="Request a pair of two distinct currencies",
    ),
    "VAL_INVALID_AMOUNT": ErrorCodeInfo(
        code="VAL_INVALID_AMOUNT",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_recoverable=True,
        description="Requested position amount is not strictly positive",
        recommended_action="Request a positive amount",
    ),
    "VAL_INVALID_RULES": ErrorCodeInfo(
        code="VAL_INVALID_RULES",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_recoverable=True,
        description="Stop gain or stop loss percentage is negative",
        recommended_action="Use non-negative percentages",
    ),

    # ========== ORDER ERRORS ==========
    "ORD_BUY_FAILED": ErrorCodeInfo(
        code="ORD_BUY_FAILED",
        category=ErrorCategory.ORDER,
        severity=ErrorSeverity.ERROR,
        is_recoverable=True,
        description="Opening buy order was refused",
        recommended_action="Review executor error, no position was created",
    ),
    "ORD_SELL_FAILED": ErrorCodeInfo(
        code="ORD_SELL_FAILED",
        category=ErrorCategory.ORDER,
        severity=ErrorSeverity.ERROR,
        is_recoverable=True,
        description="Closing sell order was refused",
        recommended_action="Position stays open, retried on next ticker",
    ),

    # ========== PERSISTENCE ERRORS ==========
    "PER_SAVE_AFTER_ORDER": ErrorCodeInfo(
        code="PER_SAVE_AFTER_ORDER",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.CRITICAL,
        is_recoverable=False,
        description="Buy order placed but position could not be saved",
        recommended_action="Reconcile the exchange order manually",
    ),
    "PER_BACKUP_NOT_FOUND": ErrorCodeInfo(
        code="PER_BACKUP_NOT_FOUND",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.ERROR,
        is_recoverable=True,
        description="Position has no durable record to back up into",
        recommended_action="Investigate missing position record",
    ),
    "PER_BACKUP_FAILED": ErrorCodeInfo(
        code="PER_BACKUP_FAILED",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.ERROR,
        is_recoverable=True,
        description="Position store failed during backup",
        recommended_action="Check store availability, then back up again",
    ),

    # ========== COMPUTATION ERRORS ==========
    "GAIN_UNDEFINED_PERCENTAGE": ErrorCodeInfo(
        code="GAIN_UNDEFINED_PERCENTAGE",
        category=ErrorCategory.COMPUTATION,
        severity=ErrorSeverity.WARNING,
        is_recoverable=True,
        description="Gain percentage undefined, bought notional is zero",
        recommended_action="Check closed positions without opening trades",
    ),

    # ========== INTERNAL ERRORS ==========
    "INT_CURRENCY_MISMATCH": ErrorCodeInfo(
        code="INT_CURRENCY_MISMATCH",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.CRITICAL,
        is_recoverable=False,
        description="Amounts in different currencies were combined",
        recommended_action="Fix the calling code",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo or default unknown error
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.ERROR,
        is_recoverable=False,
        description=f"Unknown error: {code}",
        recommended_action="Investigate error",
    ))


# ============================================================
# ERROR RECORD
# ============================================================

@dataclass
class ErrorRecord:
    """A reported, non-raised failure."""

    code: str
    message: str
    position_id: Optional[int] = None
    order_id: Optional[str] = None
    cause: Optional[BaseException] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def info(self) -> ErrorCodeInfo:
        return get_error_info(self.code)

    def log(self, logger: logging.Logger) -> None:
        """Log this record at its code's severity."""
        info = self.info
        logger.log(
            info.severity.log_level,
            f"[{self.code}] {self.message} "
            f"(position={self.position_id}, order={self.order_id})",
            exc_info=self.cause,
        )
