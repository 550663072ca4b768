"""
Position Engine - Trade Ledger.

============================================================
PURPOSE
============================================================
Append-only record of the trades filling a position's open
and close orders.

RULES:
- A trade goes to the open set if it fills the open order,
  to the close set if it fills the close order, nowhere else
- A trade id is recorded at most once (duplicate deliveries
  are ignored)
- Aggregates are computed at full Decimal precision

============================================================
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Set

from .types import Trade


logger = logging.getLogger(__name__)


class TradeSet(Enum):
    """Which side of the ledger a trade was recorded in."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"


def sum_notional(trades: Iterable[Trade]) -> Decimal:
    """
    Sum of original_amount x price over trades.

    Each term is computed exactly before summation; nothing is
    rounded. This is the figure gains are computed from.
    """
    return sum((t.original_amount * t.price for t in trades), Decimal("0"))


def sum_fees(trades: Iterable[Trade]) -> Decimal:
    """Sum of fee values over trades."""
    return sum((t.fee.value for t in trades), Decimal("0"))


def sum_amount(trades: Iterable[Trade]) -> Decimal:
    """Sum of original amounts over trades."""
    return sum((t.original_amount for t in trades), Decimal("0"))


class TradeLedger:
    """
    Opening and closing trades of one position.
    """

    def __init__(self):
        self._open_trades: List[Trade] = []
        self._close_trades: List[Trade] = []
        self._trade_ids: Set[str] = set()

    # --------------------------------------------------------
    # RECORDING
    # --------------------------------------------------------

    def classify(
        self,
        trade: Trade,
        open_order_id: Optional[str],
        close_order_id: Optional[str],
    ) -> Optional[TradeSet]:
        """
        Return the set a trade belongs to, or None.

        Already recorded trades and trades of unrelated orders
        both classify as None.
        """
        if trade.id in self._trade_ids:
            return None
        if open_order_id and trade.order_id == open_order_id:
            return TradeSet.OPEN
        if close_order_id and trade.order_id == close_order_id:
            return TradeSet.CLOSE
        return None

    def add_trade(
        self,
        trade: Trade,
        open_order_id: Optional[str],
        close_order_id: Optional[str],
    ) -> Optional[TradeSet]:
        """
        Append a trade to the matching set.

        Args:
            trade: Executed trade
            open_order_id: Position's open order id
            close_order_id: Position's close order id

        Returns:
            The set the trade was appended to, None if ignored
        """
        if trade.id in self._trade_ids:
            logger.debug(f"Trade {trade.id} already recorded, ignoring duplicate")
            return None

        target = self.classify(trade, open_order_id, close_order_id)
        if target is TradeSet.OPEN:
            self._open_trades.append(trade)
        elif target is TradeSet.CLOSE:
            self._close_trades.append(trade)
        else:
            return None

        self._trade_ids.add(trade.id)
        return target

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    @property
    def open_trades(self) -> List[Trade]:
        return list(self._open_trades)

    @property
    def close_trades(self) -> List[Trade]:
        return list(self._close_trades)

    @property
    def trades(self) -> List[Trade]:
        """All trades, opening first."""
        return self._open_trades + self._close_trades

    @property
    def trade_ids(self) -> List[str]:
        return [t.id for t in self.trades]

    def contains(self, trade_id: str) -> bool:
        return trade_id in self._trade_ids

    @property
    def open_amount(self) -> Decimal:
        return sum_amount(self._open_trades)

    @property
    def close_amount(self) -> Decimal:
        return sum_amount(self._close_trades)

    @property
    def open_notional(self) -> Decimal:
        return sum_notional(self._open_trades)

    @property
    def close_notional(self) -> Decimal:
        return sum_notional(self._close_trades)

    @property
    def fees(self) -> Decimal:
        return sum_fees(self.trades)

    def __len__(self) -> int:
        return len(self._trade_ids)
