"""
Position Engine - Position.

============================================================
PURPOSE
============================================================
The position aggregate: a buy-then-sell trading intent with
rules for automatic closing.

RESPONSIBILITIES:
- Record opening / closing trades through its ledger
- Advance its own status as fills accumulate
- Track the high / low price watermark while OPENED
- Decide whether a ticker should close it

MUST NOT:
- Place orders (the PositionService does)
- Persist itself (the PositionService backs it up)

CONCURRENCY:
Each position owns an asyncio.Lock. Callers mutating a
position hold its lock; methods here never await.

============================================================
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from .config import PositionServiceConfig
from .exceptions import InvalidTransitionError, OrderIdAlreadySetError
from .ledger import TradeLedger, TradeSet
from .money import CurrencyPair
from .state_machine import PositionTransitionEvent, TransitionGuard
from .types import (
    PositionRecord,
    PositionRules,
    PositionStatus,
    Ticker,
    Trade,
)


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class Position:
    """
    Position aggregate.
    """

    def __init__(
        self,
        position_id: int,
        currency_pair: CurrencyPair,
        amount: Decimal,
        rules: Optional[PositionRules] = None,
        open_order_id: Optional[str] = None,
        close_order_id: Optional[str] = None,
        status: PositionStatus = PositionStatus.OPENING,
        lowest_price: Optional[Decimal] = None,
        highest_price: Optional[Decimal] = None,
        stored_trade_ids: Optional[List[str]] = None,
        config: Optional[PositionServiceConfig] = None,
    ):
        """
        Initialize position.

        Args:
            position_id: Id assigned by the position store
            currency_pair: Traded pair
            amount: Requested amount in base currency
            rules: Closing rules
            open_order_id: Buy order id
            close_order_id: Sell order id
            status: Initial status (restored positions)
            lowest_price: Restored low watermark
            highest_price: Restored high watermark
            stored_trade_ids: Trade ids of the durable record
            config: Service configuration (amount tolerance)
        """
        self._id = position_id
        self._currency_pair = currency_pair
        self._amount = amount
        self._rules = rules or PositionRules()
        self._open_order_id = open_order_id
        self._close_order_id = close_order_id
        self._status = status
        self._lowest_price = lowest_price
        self._highest_price = highest_price
        self._tolerance = (config or PositionServiceConfig()).amount_tolerance

        self._ledger = TradeLedger()
        self._stored_trade_ids: List[str] = list(stored_trade_ids or [])
        self._history: List[PositionTransitionEvent] = []
        self._close_pending = False
        self._lock = asyncio.Lock()

    # --------------------------------------------------------
    # ACCESSORS
    # --------------------------------------------------------

    @property
    def id(self) -> int:
        return self._id

    @property
    def currency_pair(self) -> CurrencyPair:
        return self._currency_pair

    @property
    def amount(self) -> Decimal:
        return self._amount

    @property
    def rules(self) -> PositionRules:
        return self._rules

    @property
    def status(self) -> PositionStatus:
        return self._status

    @property
    def open_order_id(self) -> Optional[str]:
        return self._open_order_id

    @property
    def close_order_id(self) -> Optional[str]:
        return self._close_order_id

    @property
    def lowest_price(self) -> Optional[Decimal]:
        return self._lowest_price

    @property
    def highest_price(self) -> Optional[Decimal]:
        return self._highest_price

    @property
    def ledger(self) -> TradeLedger:
        return self._ledger

    @property
    def open_trades(self) -> List[Trade]:
        return self._ledger.open_trades

    @property
    def close_trades(self) -> List[Trade]:
        return self._ledger.close_trades

    @property
    def trades(self) -> List[Trade]:
        return self._ledger.trades

    @property
    def history(self) -> List[PositionTransitionEvent]:
        """Status transitions, oldest first."""
        return list(self._history)

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def close_pending(self) -> bool:
        """Whether a sell order is being placed for this position."""
        return self._close_pending

    @property
    def opened_amount(self) -> Decimal:
        """Base amount actually bought so far."""
        return self._ledger.open_amount

    @property
    def close_limit(self) -> Decimal:
        """
        Base amount the closing trades may fill.

        The opened amount, or the requested amount when no opening
        trade is known (position restored from its record).
        """
        if self._ledger.open_trades:
            return self._ledger.open_amount
        return self._amount

    @property
    def trade_ids(self) -> List[str]:
        """Stored trade ids followed by newly recorded ones."""
        ids = list(self._stored_trade_ids)
        ids.extend(t for t in self._ledger.trade_ids if t not in ids)
        return ids

    @property
    def reference_price(self) -> Optional[Decimal]:
        """
        Average opening price, None before any opening trade.
        """
        opened = self._ledger.open_amount
        if opened == 0:
            return None
        return self._ledger.open_notional / opened

    # --------------------------------------------------------
    # ORDER IDS
    # --------------------------------------------------------

    def set_open_order_id(self, order_id: str) -> None:
        """Set the buy order id, once."""
        if self._open_order_id and self._open_order_id != order_id:
            raise OrderIdAlreadySetError(self._id, "open_order_id", self._open_order_id, order_id)
        self._open_order_id = order_id

    def set_close_order_id(self, order_id: str) -> None:
        """
        Set the sell order id, once, and move to CLOSING.

        Raises:
            OrderIdAlreadySetError: If another close order id is set
            InvalidTransitionError: If the position is not OPENED
        """
        if self._close_order_id and self._close_order_id != order_id:
            raise OrderIdAlreadySetError(self._id, "close_order_id", self._close_order_id, order_id)
        allowed, reason = TransitionGuard.can_transition(self._status, PositionStatus.CLOSING)
        if not allowed:
            raise InvalidTransitionError(self._id, self._status, PositionStatus.CLOSING, reason)
        self._close_order_id = order_id
        self._close_pending = False
        self.transition_to(PositionStatus.CLOSING, f"Sell order {order_id} placed")

    def mark_close_pending(self) -> bool:
        """
        Claim the right to place this position's sell order.

        Returns:
            False if a sell order is already being placed or set
        """
        if self._close_pending or self._close_order_id:
            return False
        self._close_pending = True
        return True

    def clear_close_pending(self) -> None:
        """Release the claim after a failed sell placement."""
        self._close_pending = False

    # --------------------------------------------------------
    # STATE TRANSITIONS
    # --------------------------------------------------------

    def transition_to(self, target: PositionStatus, reason: str = "") -> PositionTransitionEvent:
        """
        Move to a new status.

        Raises:
            InvalidTransitionError: If the guard refuses it
        """
        allowed, guard_reason = TransitionGuard.can_transition(self._status, target)
        if allowed:
            allowed, guard_reason = TransitionGuard.validate_position_for_status(self, target)
        if not allowed:
            raise InvalidTransitionError(self._id, self._status, target, guard_reason)

        event = PositionTransitionEvent(
            position_id=self._id,
            from_status=self._status,
            to_status=target,
            reason=reason,
        )
        if self._status == target:
            return event

        self._status = target
        self._history.append(event)

        logger.info(
            f"Position {self._id}: "
            f"{event.from_status.value} -> {event.to_status.value} ({reason})"
        )
        return event

    # --------------------------------------------------------
    # TRADES
    # --------------------------------------------------------

    def record_trade(self, trade: Trade) -> Optional[TradeSet]:
        """
        Record a trade if it fills this position's orders.

        Trades for other orders and already recorded trades are
        ignored. A trade that would fill more than requested is
        refused.

        Returns:
            The set the trade was recorded in, None if ignored
        """
        target = self._ledger.classify(trade, self._open_order_id, self._close_order_id)
        if target is None:
            return None

        if target is TradeSet.OPEN:
            limit = self._amount
            filled = self._ledger.open_amount
        else:
            limit = self.close_limit
            filled = self._ledger.close_amount

        if filled + trade.original_amount > limit + self._tolerance:
            logger.warning(
                f"Position {self._id}: trade {trade.id} of {trade.original_amount} "
                f"would exceed {target.value.lower()} amount {limit} "
                f"(already {filled}), ignoring"
            )
            return None

        self._ledger.add_trade(trade, self._open_order_id, self._close_order_id)
        logger.debug(
            f"Position {self._id}: {target.value.lower()} trade {trade.id} "
            f"{trade.original_amount} @ {trade.price}"
        )

        if (
            self._status == PositionStatus.OPENING
            and self._ledger.open_amount >= self._amount - self._tolerance
        ):
            self.transition_to(PositionStatus.OPENED, "Opening trades complete")
        elif (
            self._status == PositionStatus.CLOSING
            and self._ledger.close_amount >= self.close_limit - self._tolerance
        ):
            self.transition_to(PositionStatus.CLOSED, "Closing trades complete")

        return target

    # --------------------------------------------------------
    # TICKERS
    # --------------------------------------------------------

    def record_ticker(self, ticker: Ticker) -> bool:
        """
        Update watermarks and evaluate closing rules.

        Only applies to OPENED positions on the ticker's pair.

        Returns:
            True if the position should be closed
        """
        if self._status != PositionStatus.OPENED:
            return False
        if ticker.currency_pair != self._currency_pair:
            return False

        price = ticker.price
        if self._lowest_price is None or price < self._lowest_price:
            self._lowest_price = price
        if self._highest_price is None or price > self._highest_price:
            self._highest_price = price

        return self.should_close(ticker)

    def should_close(self, ticker: Ticker) -> bool:
        """Check stop gain and stop loss against the ticker price."""
        reference = self.reference_price
        if reference is None or reference == 0:
            return False

        if self._rules.is_stop_gain_set():
            gain = (ticker.price - reference) / reference * HUNDRED
            if gain >= self._rules.stop_gain_percentage:
                logger.info(
                    f"Position {self._id}: stop gain hit at {ticker.price} "
                    f"({gain:.4f}% >= {self._rules.stop_gain_percentage}%)"
                )
                return True

        if self._rules.is_stop_loss_set():
            loss = (reference - ticker.price) / reference * HUNDRED
            if loss >= self._rules.stop_loss_percentage:
                logger.info(
                    f"Position {self._id}: stop loss hit at {ticker.price} "
                    f"({loss:.4f}% >= {self._rules.stop_loss_percentage}%)"
                )
                return True

        return False

    # --------------------------------------------------------
    # DURABLE RECORD
    # --------------------------------------------------------

    def copy_to_record(self, record: PositionRecord) -> PositionRecord:
        """
        Overwrite the record's mutable fields with this position's.

        Trade ids are merged: ids already in the record are kept.
        """
        record.status = self._status
        record.stop_gain_percentage = self._rules.stop_gain_percentage
        record.stop_loss_percentage = self._rules.stop_loss_percentage
        record.open_order_id = self._open_order_id
        record.close_order_id = self._close_order_id
        record.trade_ids = list(record.trade_ids) + [
            t for t in self.trade_ids if t not in record.trade_ids
        ]
        record.lowest_price = self._lowest_price
        record.highest_price = self._highest_price
        return record

    def to_record(self) -> PositionRecord:
        return self.copy_to_record(
            PositionRecord(
                id=self._id,
                currency_pair=self._currency_pair,
                amount=self._amount,
            )
        )

    @classmethod
    def from_record(
        cls,
        record: PositionRecord,
        config: Optional[PositionServiceConfig] = None,
    ) -> "Position":
        """
        Rebuild a position from its durable record.

        Trades are stored by id only, so the ledger starts empty;
        the ids are kept and written back on the next backup.
        Replaying the trades through record_trade rebuilds it.
        """
        if record.id is None:
            raise ValueError("Cannot rebuild a position from an unsaved record")
        return cls(
            position_id=record.id,
            currency_pair=record.currency_pair,
            amount=record.amount,
            rules=record.rules,
            open_order_id=record.open_order_id,
            close_order_id=record.close_order_id,
            status=record.status,
            lowest_price=record.lowest_price,
            highest_price=record.highest_price,
            stored_trade_ids=record.trade_ids,
            config=config,
        )

    def __repr__(self) -> str:
        return (
            f"Position(id={self._id}, pair={self._currency_pair}, "
            f"amount={self._amount}, status={self._status.value})"
        )
