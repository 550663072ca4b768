"""
Position Engine - Position Service.

============================================================
PURPOSE
============================================================
Owns the in-memory position index and reacts to the two
exchange event streams.

RESPONSIBILITIES:
- Open positions (buy order, durable record, index entry)
- Feed trades to every position
- Evaluate tickers and place closing sell orders
- Compute realized gains per quote currency
- Restore positions and back them up to the store

SAFETY CONSTRAINTS:
- At most one sell order per position
- No external call awaited while holding a lock
- One position's failure never blocks the others

============================================================
CONCURRENCY
============================================================
The index lock guards the position dict. Each position's own
lock serializes its mutation. The pattern is always:
look up under lock, call the executor / store without lock,
apply the result under lock.

============================================================
"""

import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .adapters.base import OrderExecutor, PositionStore
from .config import PositionServiceConfig
from .errors import ErrorRecord
from .exceptions import CurrencyMismatchError, PositionPersistenceError
from .ledger import sum_fees, sum_notional
from .money import Currency, CurrencyAmount, CurrencyPair
from .position import HUNDRED, Position
from .types import (
    Gain,
    PositionCreationResult,
    PositionRecord,
    PositionRules,
    PositionStatus,
    Ticker,
    Trade,
)
from .validation import PositionRequestValidator


logger = logging.getLogger(__name__)


# ============================================================
# POSITION SERVICE
# ============================================================

class PositionService:
    """
    Position lifecycle service.

    Handles:
    - Position creation
    - Trade and ticker updates
    - Gains
    - Restore / backup
    """

    def __init__(
        self,
        executor: OrderExecutor,
        store: PositionStore,
        config: Optional[PositionServiceConfig] = None,
    ):
        """
        Initialize position service.

        Args:
            executor: Places buy and sell market orders
            store: Durable position records
            config: Service configuration
        """
        self._executor = executor
        self._store = store
        self._config = config or PositionServiceConfig()
        self._validator = PositionRequestValidator()

        # Positions by id, in insertion order
        self._positions: Dict[int, Position] = {}
        self._index_lock = asyncio.Lock()

        # Reported, non-raised failures
        self._errors: List[ErrorRecord] = []

    @property
    def config(self) -> PositionServiceConfig:
        return self._config

    # --------------------------------------------------------
    # POSITION CREATION
    # --------------------------------------------------------

    async def create_position(
        self,
        currency_pair: CurrencyPair,
        amount: Decimal,
        rules: Optional[PositionRules] = None,
    ) -> PositionCreationResult:
        """
        Open a position with a market buy order.

        Args:
            currency_pair: Pair to trade
            amount: Amount in base currency
            rules: Closing rules

        Returns:
            PositionCreationResult with position and order ids

        Raises:
            PositionPersistenceError: Buy placed but record not saved
        """
        rules = rules or PositionRules()

        validation = self._validator.validate(currency_pair, amount, rules)
        if not validation.is_valid:
            self._record_error(validation.error_code, validation.error_message)
            return PositionCreationResult.failed(validation.error_message)

        try:
            result = await self._executor.place_buy_market_order(currency_pair, amount)
        except Exception as e:
            self._record_error(
                "ORD_BUY_FAILED",
                f"Buy of {amount} {currency_pair} raised: {e}",
                cause=e,
            )
            return PositionCreationResult.failed(str(e), e)

        if not result.success:
            self._record_error(
                "ORD_BUY_FAILED",
                f"Buy of {amount} {currency_pair} failed: {result.error_message}",
                cause=result.error_cause,
            )
            return PositionCreationResult.failed(result.error_message, result.error_cause)

        record = PositionRecord(
            currency_pair=currency_pair,
            amount=amount,
            status=PositionStatus.OPENING,
            stop_gain_percentage=rules.stop_gain_percentage,
            stop_loss_percentage=rules.stop_loss_percentage,
            open_order_id=result.order_id,
        )
        try:
            saved = await self._store.save(record)
        except Exception as e:
            self._record_error(
                "PER_SAVE_AFTER_ORDER",
                f"Buy order {result.order_id} placed for {amount} {currency_pair} "
                f"but position could not be saved",
                order_id=result.order_id,
                cause=e,
            )
            raise PositionPersistenceError(result.order_id, cause=e) from e

        position = Position(
            position_id=saved.id,
            currency_pair=currency_pair,
            amount=amount,
            rules=rules,
            open_order_id=result.order_id,
            config=self._config,
        )
        async with self._index_lock:
            self._positions[position.id] = position

        logger.info(
            f"Position {position.id} opening: {amount} {currency_pair} "
            f"(order={result.order_id}, rules={rules})"
        )
        return PositionCreationResult.succeeded(position.id, result.order_id)

    # --------------------------------------------------------
    # EVENT STREAMS
    # --------------------------------------------------------

    async def ticker_update(self, ticker: Ticker) -> None:
        """
        Evaluate a ticker against OPENED positions on its pair.

        Positions whose rules fire get a market sell order.
        """
        async with self._index_lock:
            candidates = [
                p for p in self._positions.values()
                if p.currency_pair == ticker.currency_pair
            ]

        to_close: List[Position] = []
        for position in candidates:
            async with position.lock:
                if position.record_ticker(ticker) and position.mark_close_pending():
                    to_close.append(position)

        for position in to_close:
            await self._close_position(position)

    async def _close_position(self, position: Position) -> None:
        """Place the sell order of a position claimed by mark_close_pending."""
        try:
            result = await self._executor.place_sell_market_order(
                position.currency_pair,
                position.amount,
            )
        except Exception as e:
            async with position.lock:
                position.clear_close_pending()
            self._record_error(
                "ORD_SELL_FAILED",
                f"Sell for position {position.id} raised: {e}",
                position_id=position.id,
                cause=e,
            )
            return

        if not result.success:
            async with position.lock:
                position.clear_close_pending()
            self._record_error(
                "ORD_SELL_FAILED",
                f"Sell for position {position.id} failed: {result.error_message}",
                position_id=position.id,
                cause=result.error_cause,
            )
            return

        async with position.lock:
            position.set_close_order_id(result.order_id)

    async def trade_update(self, trade: Trade) -> None:
        """Deliver a trade to every position."""
        async with self._index_lock:
            positions = list(self._positions.values())

        for position in positions:
            async with position.lock:
                position.record_trade(trade)

    # --------------------------------------------------------
    # GAINS
    # --------------------------------------------------------

    async def get_gains(self) -> Dict[Currency, Gain]:
        """
        Realized gains of CLOSED positions, by quote currency.

        Returns:
            Gain per quote currency; percentage is None where
            nothing was bought
        """
        async with self._index_lock:
            positions = list(self._positions.values())

        totals: Dict[Currency, Tuple[CurrencyAmount, CurrencyAmount, CurrencyAmount]] = {}
        for position in positions:
            async with position.lock:
                if position.status != PositionStatus.CLOSED:
                    continue
                quote = position.currency_pair.quote
                bought = CurrencyAmount(sum_notional(position.open_trades), quote)
                sold = CurrencyAmount(sum_notional(position.close_trades), quote)
                fees = CurrencyAmount(sum_fees(position.trades), quote)

            zero = CurrencyAmount.zero(quote)
            total_bought, total_sold, total_fees = totals.get(quote, (zero, zero, zero))
            try:
                totals[quote] = (total_bought + bought, total_sold + sold, total_fees + fees)
            except CurrencyMismatchError as e:
                self._record_error(
                    "INT_CURRENCY_MISMATCH",
                    f"Gains of position {position.id} mix currencies",
                    position_id=position.id,
                    cause=e,
                )
                raise

        gains: Dict[Currency, Gain] = {}
        for quote, (bought, sold, fees) in totals.items():
            gains[quote] = Gain(
                percentage=self._gain_percentage(quote, bought.value, sold.value),
                amount=sold - bought,
                fees=fees,
            )
        return gains

    def _gain_percentage(
        self,
        quote: Currency,
        bought: Decimal,
        sold: Decimal,
    ) -> Optional[Decimal]:
        if bought == 0:
            self._record_error(
                "GAIN_UNDEFINED_PERCENTAGE",
                f"Nothing bought in {quote}, gain percentage undefined",
            )
            return None
        exponent = Decimal(1).scaleb(-self._config.gain_percentage_scale)
        return ((sold - bought) / bought * HUNDRED).quantize(exponent, rounding=ROUND_HALF_UP)

    # --------------------------------------------------------
    # RESTORE / BACKUP
    # --------------------------------------------------------

    async def restore_position(self, position: Position) -> None:
        """Insert or replace a position in the index. Places no order."""
        async with self._index_lock:
            replaced = position.id in self._positions
            self._positions[position.id] = position
        logger.info(f"Position {position.id} {'replaced' if replaced else 'restored'}: {position}")

    async def restore_from_store(self, position_ids: Iterable[int]) -> List[Position]:
        """
        Load positions from the store and restore them.

        Trades are not reloaded: restored ledgers start empty.
        Missing ids are skipped.

        Returns:
            The restored positions
        """
        restored = []
        for position_id in position_ids:
            record = await self._store.find_by_id(position_id)
            if record is None:
                logger.warning(f"Position {position_id} not found in store, not restored")
                continue
            position = Position.from_record(record, self._config)
            await self.restore_position(position)
            restored.append(position)
        return restored

    async def backup_position(self, position: Position) -> Optional[PositionRecord]:
        """
        Write a position's mutable fields to its durable record.

        Returns:
            The saved record, None if the position has no record

        Raises:
            Exception: Whatever the store raised while saving
        """
        record = await self._store.find_by_id(position.id)
        if record is None:
            self._record_error(
                "PER_BACKUP_NOT_FOUND",
                f"Position {position.id} has no record to back up into",
                position_id=position.id,
            )
            return None

        async with position.lock:
            position.copy_to_record(record)

        try:
            saved = await self._store.save(record)
        except Exception as e:
            self._record_error(
                "PER_BACKUP_FAILED",
                f"Backup of position {position.id} failed: {e}",
                position_id=position.id,
                cause=e,
            )
            raise

        logger.debug(f"Position {position.id} backed up ({saved.status})")
        return saved

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    async def get_positions(self) -> List[Position]:
        """All positions, in insertion order."""
        async with self._index_lock:
            return list(self._positions.values())

    async def get_position_by_id(self, position_id: int) -> Optional[Position]:
        async with self._index_lock:
            position = self._positions.get(position_id)
        logger.debug(f"Position {position_id} lookup: {'found' if position else 'not found'}")
        return position

    # --------------------------------------------------------
    # ERRORS
    # --------------------------------------------------------

    @property
    def errors(self) -> List[ErrorRecord]:
        return list(self._errors)

    def clear_errors(self) -> None:
        self._errors.clear()

    def _record_error(
        self,
        code: str,
        message: str,
        position_id: Optional[int] = None,
        order_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> ErrorRecord:
        record = ErrorRecord(
            code=code,
            message=message,
            position_id=position_id,
            order_id=order_id,
            cause=cause,
        )
        record.log(logger)
        self._errors.append(record)
        return record
