"""
Position Engine - Adapter Interfaces.

============================================================
PURPOSE
============================================================
Abstract interfaces for the engine's external collaborators.

- OrderExecutor: places market orders on an exchange
- PositionStore: durable position records keyed by id

DESIGN PRINCIPLES:
- Exchange-agnostic interface
- Adapters own their own timeout / retry policy and report
  success or failure; they never raise for a refused order
- Fully testable with mock adapters

============================================================
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from ..money import CurrencyPair
from ..types import OrderCreationResult, PositionRecord


# ============================================================
# ORDER EXECUTOR
# ============================================================

class OrderExecutor(ABC):
    """
    Places market orders.

    Implementations return OrderCreationResult.failed(...) for
    refused orders. An exception raised anyway is handled by the
    service like a refused order.
    """

    @abstractmethod
    async def place_buy_market_order(
        self,
        currency_pair: CurrencyPair,
        amount: Decimal,
    ) -> OrderCreationResult:
        """
        Place a market buy order.

        Args:
            currency_pair: Pair to trade
            amount: Amount in base currency

        Returns:
            OrderCreationResult with order id or error
        """
        pass

    @abstractmethod
    async def place_sell_market_order(
        self,
        currency_pair: CurrencyPair,
        amount: Decimal,
    ) -> OrderCreationResult:
        """
        Place a market sell order.

        Args:
            currency_pair: Pair to trade
            amount: Amount in base currency

        Returns:
            OrderCreationResult with order id or error
        """
        pass


# ============================================================
# POSITION STORE
# ============================================================

class PositionStore(ABC):
    """Durable storage of position records."""

    @abstractmethod
    async def save(self, record: PositionRecord) -> PositionRecord:
        """
        Insert or update a record.

        A record without id is inserted and gets a new, monotonic
        id. Returns the saved record.
        """
        pass

    @abstractmethod
    async def find_by_id(self, position_id: int) -> Optional[PositionRecord]:
        """Load a record, None if absent."""
        pass
