"""
Position Engine - Types.

============================================================
PURPOSE
============================================================
Value types exchanged between the position engine, its
callers and its adapters.

- PositionRules: stop gain / stop loss thresholds
- Trade: one (possibly partial) execution of an order
- Ticker: one market price observation
- PositionStatus: lifecycle states
- Results: order / position creation outcomes, gains
- PositionRecord: durable copy of a position

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from .money import CurrencyAmount, CurrencyPair


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# POSITION RULES
# ============================================================

@dataclass(frozen=True)
class PositionRules:
    """
    Automatic closing rules of a position.

    Both thresholds are percentages of the reference (average
    opening) price. An unset threshold never fires.
    """

    stop_gain_percentage: Optional[Decimal] = None
    """Close once price rises this many percent above reference."""

    stop_loss_percentage: Optional[Decimal] = None
    """Close once price falls this many percent below reference."""

    def is_stop_gain_set(self) -> bool:
        return self.stop_gain_percentage is not None

    def is_stop_loss_set(self) -> bool:
        return self.stop_loss_percentage is not None

    def __str__(self) -> str:
        parts = []
        if self.is_stop_gain_set():
            parts.append(f"stop gain {self.stop_gain_percentage}%")
        if self.is_stop_loss_set():
            parts.append(f"stop loss {self.stop_loss_percentage}%")
        return ", ".join(parts) or "no rules"


# ============================================================
# TRADES & TICKERS
# ============================================================

class TradeType(Enum):
    """Trade side."""

    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Trade:
    """
    Executed trade received from the execution feed.

    Immutable once created. Attached to the position whose open
    or close order id equals order_id.
    """

    id: str
    """Exchange trade id, unique per trade."""

    order_id: str
    """Order this trade fills."""

    currency_pair: CurrencyPair
    type: TradeType
    original_amount: Decimal
    price: Decimal
    fee: CurrencyAmount

    position_id: Optional[int] = None
    """Position this trade belongs to, once linked."""

    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def notional(self) -> Decimal:
        """Amount x price, at full precision."""
        return self.original_amount * self.price


@dataclass(frozen=True)
class Ticker:
    """Market price observation for a currency pair."""

    currency_pair: CurrencyPair
    price: Decimal
    timestamp: datetime = field(default_factory=_utcnow)


# ============================================================
# POSITION STATUS
# ============================================================

class PositionStatus(Enum):
    """
    Position lifecycle status.

    OPENING -> OPENED -> CLOSING -> CLOSED

    A position whose buy order never fills stays OPENING.
    """

    OPENING = "OPENING"
    """Buy order placed, waiting for opening trades."""

    OPENED = "OPENED"
    """Buy order fully filled, rules are evaluated on tickers."""

    CLOSING = "CLOSING"
    """Sell order placed, waiting for closing trades."""

    CLOSED = "CLOSED"
    """Sell order fully filled."""

    def is_terminal(self) -> bool:
        return self is PositionStatus.CLOSED

    def __str__(self) -> str:
        return self.value


# ============================================================
# RESULTS
# ============================================================

@dataclass
class OrderCreationResult:
    """Outcome of a market order placement by an OrderExecutor."""

    success: bool
    order_id: Optional[str] = None
    error_message: Optional[str] = None
    error_cause: Optional[BaseException] = None

    @classmethod
    def succeeded(cls, order_id: str) -> "OrderCreationResult":
        return cls(success=True, order_id=order_id)

    @classmethod
    def failed(
        cls,
        error_message: str,
        error_cause: Optional[BaseException] = None,
    ) -> "OrderCreationResult":
        return cls(success=False, error_message=error_message, error_cause=error_cause)


@dataclass
class PositionCreationResult:
    """Outcome of PositionService.create_position."""

    success: bool
    position_id: Optional[int] = None
    order_id: Optional[str] = None
    error_message: Optional[str] = None
    error_cause: Optional[BaseException] = None

    @classmethod
    def succeeded(cls, position_id: int, order_id: str) -> "PositionCreationResult":
        return cls(success=True, position_id=position_id, order_id=order_id)

    @classmethod
    def failed(
        cls,
        error_message: str,
        error_cause: Optional[BaseException] = None,
    ) -> "PositionCreationResult":
        return cls(success=False, error_message=error_message, error_cause=error_cause)


@dataclass(frozen=True)
class Gain:
    """
    Realized gain for one quote currency.

    percentage is None when nothing was bought (zero notional):
    the ratio is undefined and no default is guessed.
    """

    percentage: Optional[Decimal]
    amount: CurrencyAmount
    fees: CurrencyAmount

    @property
    def is_percentage_defined(self) -> bool:
        return self.percentage is not None


# ============================================================
# DURABLE RECORD
# ============================================================

@dataclass
class PositionRecord:
    """
    Durable copy of a position, as handled by a PositionStore.

    id is None until the store assigns one on first save.
    """

    id: Optional[int] = None
    currency_pair: Optional[CurrencyPair] = None
    amount: Optional[Decimal] = None
    status: PositionStatus = PositionStatus.OPENING
    stop_gain_percentage: Optional[Decimal] = None
    stop_loss_percentage: Optional[Decimal] = None
    open_order_id: Optional[str] = None
    close_order_id: Optional[str] = None
    trade_ids: List[str] = field(default_factory=list)
    lowest_price: Optional[Decimal] = None
    highest_price: Optional[Decimal] = None

    @property
    def rules(self) -> PositionRules:
        return PositionRules(
            stop_gain_percentage=self.stop_gain_percentage,
            stop_loss_percentage=self.stop_loss_percentage,
        )
