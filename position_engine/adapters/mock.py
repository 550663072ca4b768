"""
Position Engine - Mock Adapters.

============================================================
PURPOSE
============================================================
In-process adapters for testing and dry runs.

FEATURES:
- Configurable latency
- Configurable failure injection (buy, sell, save)
- Full call tracking

============================================================
"""

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..money import CurrencyPair
from ..types import OrderCreationResult, PositionRecord, TradeType
from .base import OrderExecutor, PositionStore


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock adapters."""

    latency_ms: float = 0.0
    """Simulated latency per call."""

    fail_buy: bool = False
    """Refuse every buy order."""

    fail_sell: bool = False
    """Refuse every sell order."""

    error_message: str = "Order refused by mock exchange"
    """Error message of refused orders."""

    order_id_prefix: str = "ORDER-"


@dataclass
class MockOrder:
    """Order placed on the mock exchange."""

    order_id: str
    currency_pair: CurrencyPair
    type: TradeType
    amount: Decimal


# ============================================================
# MOCK ORDER EXECUTOR
# ============================================================

class MockOrderExecutor(OrderExecutor):
    """
    Mock order executor.

    Accepts every order unless configured to fail, and keeps the
    list of placed orders.
    """

    def __init__(self, config: Optional[MockConfig] = None):
        self._config = config or MockConfig()
        self._orders: List[MockOrder] = []
        self._failures: List[Tuple[TradeType, CurrencyPair, Decimal]] = []
        self._counter = itertools.count(1)

    @property
    def config(self) -> MockConfig:
        return self._config

    @property
    def orders(self) -> List[MockOrder]:
        return list(self._orders)

    @property
    def buy_orders(self) -> List[MockOrder]:
        return [o for o in self._orders if o.type is TradeType.BUY]

    @property
    def sell_orders(self) -> List[MockOrder]:
        return [o for o in self._orders if o.type is TradeType.SELL]

    @property
    def failure_count(self) -> int:
        return len(self._failures)

    async def place_buy_market_order(
        self,
        currency_pair: CurrencyPair,
        amount: Decimal,
    ) -> OrderCreationResult:
        return await self._place(TradeType.BUY, currency_pair, amount, self._config.fail_buy)

    async def place_sell_market_order(
        self,
        currency_pair: CurrencyPair,
        amount: Decimal,
    ) -> OrderCreationResult:
        return await self._place(TradeType.SELL, currency_pair, amount, self._config.fail_sell)

    async def _place(
        self,
        trade_type: TradeType,
        currency_pair: CurrencyPair,
        amount: Decimal,
        fail: bool,
    ) -> OrderCreationResult:
        if self._config.latency_ms > 0:
            await asyncio.sleep(self._config.latency_ms / 1000)

        if fail:
            self._failures.append((trade_type, currency_pair, amount))
            logger.debug(f"Mock {trade_type.value} {amount} {currency_pair} refused")
            return OrderCreationResult.failed(
                self._config.error_message,
                RuntimeError(self._config.error_message),
            )

        order_id = f"{self._config.order_id_prefix}{next(self._counter)}"
        self._orders.append(MockOrder(order_id, currency_pair, trade_type, amount))
        logger.debug(f"Mock {trade_type.value} {amount} {currency_pair} -> {order_id}")
        return OrderCreationResult.succeeded(order_id)


# ============================================================
# IN-MEMORY POSITION STORE
# ============================================================

class InMemoryPositionStore(PositionStore):
    """
    Dict-backed position store.

    Records are copied on the way in and out, so callers never
    share state with the store.
    """

    def __init__(self, fail_on_save: bool = False):
        self._records: Dict[int, PositionRecord] = {}
        self._ids = itertools.count(1)
        self.fail_on_save = fail_on_save
        self.save_count = 0

    async def save(self, record: PositionRecord) -> PositionRecord:
        if self.fail_on_save:
            raise ConnectionError("Mock store unavailable")

        stored = copy.deepcopy(record)
        if stored.id is None:
            stored.id = next(self._ids)
        self._records[stored.id] = stored
        self.save_count += 1
        return copy.deepcopy(stored)

    async def find_by_id(self, position_id: int) -> Optional[PositionRecord]:
        record = self._records.get(position_id)
        return copy.deepcopy(record) if record else None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, position_id: int) -> bool:
        return position_id in self._records
