"""
Position Service Tests.

============================================================
PURPOSE
============================================================
Tests for the position service against mock adapters.

TEST CATEGORIES:
- Creation: success, refused buy, invalid request, lost save
- Event streams: trades, tickers, sell placement
- Concurrency: exactly one sell per position
- Gains
- Restore / backup

============================================================
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from position_engine import (
    Currency,
    CurrencyAmount,
    CurrencyPair,
    Gain,
    InMemoryPositionStore,
    MockConfig,
    MockOrderExecutor,
    OrderCreationResult,
    OrderExecutor,
    Position,
    PositionPersistenceError,
    PositionRecord,
    PositionRules,
    PositionService,
    PositionServiceConfig,
    PositionStatus,
)


USDT = Currency("USDT")


@pytest.fixture
def executor():
    return MockOrderExecutor()


@pytest.fixture
def store():
    return InMemoryPositionStore()


@pytest.fixture
def service(executor, store):
    return PositionService(executor, store, PositionServiceConfig())


def error_codes(service):
    return [e.code for e in service.errors]


async def open_position(service, pair, make_trade, price="100", fee="0", rules=None):
    """Create a position of amount 1 and fill its buy order."""
    result = await service.create_position(pair, Decimal("1"), rules)
    await service.trade_update(make_trade(result.order_id, "1", price, fee=fee, currency_pair=pair))
    return await service.get_position_by_id(result.position_id)


async def close_position(service, position, make_trade, price, fee="0"):
    """Place a sell for an OPENED position and fill it."""
    async with position.lock:
        assert position.mark_close_pending()
    sell = await service._executor.place_sell_market_order(position.currency_pair, position.amount)
    async with position.lock:
        position.set_close_order_id(sell.order_id)
    await service.trade_update(
        make_trade(sell.order_id, "1", price, fee=fee, currency_pair=position.currency_pair)
    )
    assert position.status == PositionStatus.CLOSED


# ============================================================
# CREATION TESTS
# ============================================================

class TestCreatePosition:
    """Tests for PositionService.create_position."""

    @pytest.mark.asyncio
    async def test_successful_buy_creates_position(self, service, executor, store, btc_usdt, rules):
        result = await service.create_position(btc_usdt, Decimal("0.5"), rules)

        assert result.success
        assert result.position_id == 1
        assert result.order_id == "ORDER-1"

        position = await service.get_position_by_id(1)
        assert position.status == PositionStatus.OPENING
        assert position.open_order_id == "ORDER-1"
        assert position.rules == rules
        assert await service.get_positions() == [position]

        assert executor.buy_orders[0].amount == Decimal("0.5")
        record = await store.find_by_id(1)
        assert record.open_order_id == "ORDER-1"
        assert record.status == PositionStatus.OPENING

    @pytest.mark.asyncio
    async def test_ids_are_monotonic(self, service, btc_usdt):
        first = await service.create_position(btc_usdt, Decimal("1"))
        second = await service.create_position(btc_usdt, Decimal("1"))

        assert second.position_id > first.position_id
        assert [p.id for p in await service.get_positions()] == [1, 2]

    @pytest.mark.asyncio
    async def test_refused_buy_creates_nothing(self, store, btc_usdt):
        executor = MockOrderExecutor(MockConfig(fail_buy=True, error_message="Insufficient funds"))
        service = PositionService(executor, store)

        result = await service.create_position(btc_usdt, Decimal("1"))

        assert not result.success
        assert result.error_message == "Insufficient funds"
        assert isinstance(result.error_cause, RuntimeError)
        assert await service.get_positions() == []
        assert len(store) == 0
        assert error_codes(service) == ["ORD_BUY_FAILED"]

    @pytest.mark.asyncio
    async def test_raising_buy_creates_nothing(self, store, btc_usdt):
        executor = AsyncMock(spec=OrderExecutor)
        executor.place_buy_market_order.side_effect = RuntimeError("Exchange timeout")
        service = PositionService(executor, store)

        result = await service.create_position(btc_usdt, Decimal("1"))

        assert not result.success
        assert result.error_message == "Exchange timeout"
        assert isinstance(result.error_cause, RuntimeError)
        assert await service.get_positions() == []
        assert len(store) == 0
        assert error_codes(service) == ["ORD_BUY_FAILED"]

    @pytest.mark.asyncio
    async def test_invalid_amount_never_reaches_executor(self, service, executor, btc_usdt):
        result = await service.create_position(btc_usdt, Decimal("0"))

        assert not result.success
        assert executor.orders == []
        assert error_codes(service) == ["VAL_INVALID_AMOUNT"]

    @pytest.mark.asyncio
    async def test_negative_rule_rejected(self, service, executor, btc_usdt):
        result = await service.create_position(
            btc_usdt, Decimal("1"), PositionRules(stop_loss_percentage=Decimal("-1"))
        )

        assert not result.success
        assert executor.orders == []
        assert error_codes(service) == ["VAL_INVALID_RULES"]

    @pytest.mark.asyncio
    async def test_lost_save_raises_with_order_id(self, executor, btc_usdt):
        service = PositionService(executor, InMemoryPositionStore(fail_on_save=True))

        with pytest.raises(PositionPersistenceError) as exc_info:
            await service.create_position(btc_usdt, Decimal("1"))

        assert exc_info.value.order_id == "ORDER-1"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert len(executor.buy_orders) == 1
        assert await service.get_positions() == []
        assert error_codes(service) == ["PER_SAVE_AFTER_ORDER"]


# ============================================================
# TRADE STREAM TESTS
# ============================================================

class TestTradeUpdate:
    """Tests for PositionService.trade_update."""

    @pytest.mark.asyncio
    async def test_trade_opens_matching_position_only(self, service, btc_usdt, make_trade):
        first = await service.create_position(btc_usdt, Decimal("1"))
        second = await service.create_position(btc_usdt, Decimal("1"))

        await service.trade_update(make_trade(first.order_id, "1", "100"))

        assert (await service.get_position_by_id(first.position_id)).status == PositionStatus.OPENED
        assert (await service.get_position_by_id(second.position_id)).status == PositionStatus.OPENING

    @pytest.mark.asyncio
    async def test_duplicate_trade_counted_once(self, service, btc_usdt, make_trade):
        result = await service.create_position(btc_usdt, Decimal("2"))
        trade = make_trade(result.order_id, "1", "100", trade_id="T-1")

        await service.trade_update(trade)
        await service.trade_update(trade)

        position = await service.get_position_by_id(result.position_id)
        assert position.opened_amount == Decimal("1")
        assert position.status == PositionStatus.OPENING


# ============================================================
# TICKER STREAM TESTS
# ============================================================

class TestTickerUpdate:
    """Tests for PositionService.ticker_update."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, service, executor, btc_usdt, make_trade, make_ticker):
        rules = PositionRules(stop_gain_percentage=Decimal("10"))
        position = await open_position(service, btc_usdt, make_trade, fee="1", rules=rules)

        await service.ticker_update(make_ticker("105"))
        assert executor.sell_orders == []

        await service.ticker_update(make_ticker("110"))
        assert len(executor.sell_orders) == 1
        assert executor.sell_orders[0].amount == Decimal("1")
        assert position.status == PositionStatus.CLOSING
        assert position.close_order_id == "ORDER-2"

        await service.trade_update(make_trade("ORDER-2", "1", "110", fee="1"))
        assert position.status == PositionStatus.CLOSED

        gains = await service.get_gains()
        assert gains == {
            USDT: Gain(
                percentage=Decimal("10.00"),
                amount=CurrencyAmount(Decimal("10"), USDT),
                fees=CurrencyAmount(Decimal("2"), USDT),
            )
        }

    @pytest.mark.asyncio
    async def test_no_sell_when_rules_do_not_fire(self, service, executor, btc_usdt, make_trade, make_ticker, rules):
        position = await open_position(service, btc_usdt, make_trade, rules=rules)

        for price in ("104.9", "95.1", "100"):
            await service.ticker_update(make_ticker(price))

        assert executor.sell_orders == []
        assert position.status == PositionStatus.OPENED
        assert position.lowest_price == Decimal("95.1")
        assert position.highest_price == Decimal("104.9")

    @pytest.mark.asyncio
    async def test_stop_loss_places_sell(self, service, executor, btc_usdt, make_trade, make_ticker, rules):
        position = await open_position(service, btc_usdt, make_trade, rules=rules)

        await service.ticker_update(make_ticker("95"))

        assert len(executor.sell_orders) == 1
        assert position.status == PositionStatus.CLOSING

    @pytest.mark.asyncio
    async def test_other_pair_ignored(self, service, executor, btc_usdt, eth_btc, make_trade, make_ticker, rules):
        position = await open_position(service, btc_usdt, make_trade, rules=rules)

        await service.ticker_update(make_ticker("0.0001", currency_pair=eth_btc))

        assert executor.sell_orders == []
        assert position.lowest_price is None

    @pytest.mark.asyncio
    async def test_refused_sell_retried_on_next_ticker(self, service, executor, btc_usdt, make_trade, make_ticker, rules):
        position = await open_position(service, btc_usdt, make_trade, rules=rules)
        executor.config.fail_sell = True

        await service.ticker_update(make_ticker("106"))

        assert position.status == PositionStatus.OPENED
        assert not position.close_pending
        assert position.close_order_id is None
        assert error_codes(service) == ["ORD_SELL_FAILED"]

        executor.config.fail_sell = False
        await service.ticker_update(make_ticker("106"))

        assert position.status == PositionStatus.CLOSING
        assert len(executor.sell_orders) == 1

    @pytest.mark.asyncio
    async def test_concurrent_tickers_place_one_sell(self, store, btc_usdt, make_trade, make_ticker, rules):
        executor = MockOrderExecutor(MockConfig(latency_ms=20))
        service = PositionService(executor, store)
        position = await open_position(service, btc_usdt, make_trade, rules=rules)

        await asyncio.gather(*(service.ticker_update(make_ticker("110")) for _ in range(5)))

        assert len(executor.sell_orders) == 1
        assert position.status == PositionStatus.CLOSING

    @pytest.mark.asyncio
    async def test_failure_does_not_block_other_positions(self, store, btc_usdt, make_trade, make_ticker, rules):
        executor = AsyncMock(spec=OrderExecutor)
        executor.place_buy_market_order.side_effect = [
            OrderCreationResult.succeeded("BUY-1"),
            OrderCreationResult.succeeded("BUY-2"),
        ]
        executor.place_sell_market_order.side_effect = [
            RuntimeError("Exchange timeout"),
            OrderCreationResult.succeeded("SELL-2"),
        ]
        service = PositionService(executor, store)
        first = await open_position(service, btc_usdt, make_trade, rules=rules)
        second = await open_position(service, btc_usdt, make_trade, rules=rules)

        await service.ticker_update(make_ticker("110"))

        assert executor.place_sell_market_order.await_count == 2
        assert first.status == PositionStatus.OPENED
        assert not first.close_pending
        assert second.status == PositionStatus.CLOSING
        assert second.close_order_id == "SELL-2"
        assert error_codes(service) == ["ORD_SELL_FAILED"]
        assert service.errors[0].position_id == first.id

    @pytest.mark.asyncio
    async def test_duplicate_ticker_after_close_order(self, service, executor, btc_usdt, make_trade, make_ticker, rules):
        await open_position(service, btc_usdt, make_trade, rules=rules)

        await service.ticker_update(make_ticker("110"))
        await service.ticker_update(make_ticker("110"))

        assert len(executor.sell_orders) == 1


# ============================================================
# GAIN TESTS
# ============================================================

class TestGains:
    """Tests for PositionService.get_gains."""

    @pytest.mark.asyncio
    async def test_no_closed_positions(self, service, btc_usdt, make_trade):
        await open_position(service, btc_usdt, make_trade)

        assert await service.get_gains() == {}

    @pytest.mark.asyncio
    async def test_grouped_by_quote_currency(self, service, btc_usdt, eth_btc, make_trade):
        usdt_position = await open_position(service, btc_usdt, make_trade, price="100")
        btc_position = await open_position(service, eth_btc, make_trade, price="0.05")
        await close_position(service, usdt_position, make_trade, "90")
        await close_position(service, btc_position, make_trade, "0.06")

        gains = await service.get_gains()

        assert gains[USDT].amount == CurrencyAmount(Decimal("-10"), USDT)
        assert gains[USDT].percentage == Decimal("-10.00")
        assert gains[Currency("BTC")].amount.value == Decimal("0.01")
        assert gains[Currency("BTC")].percentage == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_positions_summed_per_currency(self, service, btc_usdt, make_trade):
        first = await open_position(service, btc_usdt, make_trade, price="100", fee="1")
        second = await open_position(service, btc_usdt, make_trade, price="200", fee="1")
        await close_position(service, first, make_trade, "110", fee="1")
        await close_position(service, second, make_trade, "200", fee="1")

        gain = (await service.get_gains())[USDT]

        assert gain.amount.value == Decimal("10")
        assert gain.percentage == Decimal("3.33")
        assert gain.fees.value == Decimal("4")

    @pytest.mark.asyncio
    async def test_percentage_rounds_half_up(self, service, btc_usdt, make_trade):
        position = await open_position(service, btc_usdt, make_trade, price="200")
        await close_position(service, position, make_trade, "200.69")

        assert (await service.get_gains())[USDT].percentage == Decimal("0.35")

    @pytest.mark.asyncio
    async def test_percentage_scale_configurable(self, executor, store, btc_usdt, make_trade):
        service = PositionService(executor, store, PositionServiceConfig(gain_percentage_scale=4))
        position = await open_position(service, btc_usdt, make_trade, price="3")
        await close_position(service, position, make_trade, "4")

        assert (await service.get_gains())[USDT].percentage == Decimal("33.3333")

    @pytest.mark.asyncio
    async def test_zero_bought_percentage_undefined(self, service, btc_usdt):
        await service.restore_position(
            Position(
                position_id=1,
                currency_pair=btc_usdt,
                amount=Decimal("1"),
                open_order_id="BUY-1",
                close_order_id="SELL-1",
                status=PositionStatus.CLOSED,
            )
        )

        gain = (await service.get_gains())[USDT]

        assert gain.percentage is None
        assert not gain.is_percentage_defined
        assert gain.amount.value == Decimal("0")
        assert error_codes(service) == ["GAIN_UNDEFINED_PERCENTAGE"]


# ============================================================
# RESTORE / BACKUP TESTS
# ============================================================

class TestRestoreAndBackup:
    """Tests for restore_position, restore_from_store and backup_position."""

    @pytest.mark.asyncio
    async def test_restore_then_get(self, service, executor, btc_usdt):
        position = Position(position_id=42, currency_pair=btc_usdt, amount=Decimal("1"))

        await service.restore_position(position)

        assert await service.get_position_by_id(42) is position
        assert executor.orders == []

    @pytest.mark.asyncio
    async def test_restore_replaces_existing_entry(self, service, btc_usdt):
        await service.restore_position(Position(position_id=1, currency_pair=btc_usdt, amount=Decimal("1")))
        replacement = Position(position_id=1, currency_pair=btc_usdt, amount=Decimal("2"))

        await service.restore_position(replacement)

        assert await service.get_positions() == [replacement]

    @pytest.mark.asyncio
    async def test_backup_of_absent_record_skips_write(self, service, store, btc_usdt):
        position = Position(position_id=99, currency_pair=btc_usdt, amount=Decimal("1"))

        assert await service.backup_position(position) is None

        assert store.save_count == 0
        assert error_codes(service) == ["PER_BACKUP_NOT_FOUND"]
        assert service.errors[0].position_id == 99

    @pytest.mark.asyncio
    async def test_backup_overwrites_mutable_fields(self, service, store, btc_usdt, make_trade, make_ticker, rules):
        position = await open_position(service, btc_usdt, make_trade, rules=rules)
        await service.ticker_update(make_ticker("103"))
        await service.ticker_update(make_ticker("110"))
        await service.trade_update(make_trade(position.close_order_id, "0.5", "110"))

        await service.backup_position(position)

        record = await store.find_by_id(position.id)
        assert record.status == PositionStatus.CLOSING
        assert record.stop_gain_percentage == Decimal("5")
        assert record.stop_loss_percentage == Decimal("5")
        assert record.open_order_id == position.open_order_id
        assert record.close_order_id == position.close_order_id
        assert record.trade_ids == [t.id for t in position.trades]
        assert record.lowest_price == Decimal("103")
        assert record.highest_price == Decimal("110")

    @pytest.mark.asyncio
    async def test_backup_store_failure_raises(self, service, store, btc_usdt):
        await service.create_position(btc_usdt, Decimal("1"))
        position = await service.get_position_by_id(1)
        store.fail_on_save = True

        with pytest.raises(ConnectionError):
            await service.backup_position(position)

        assert error_codes(service) == ["PER_BACKUP_FAILED"]

    @pytest.mark.asyncio
    async def test_restore_from_store(self, service, store, executor, btc_usdt):
        saved = await store.save(
            PositionRecord(
                currency_pair=btc_usdt,
                amount=Decimal("1"),
                status=PositionStatus.OPENED,
                open_order_id="BUY-1",
                stop_gain_percentage=Decimal("5"),
            )
        )

        restored = await service.restore_from_store([saved.id, 404])

        assert [p.id for p in restored] == [saved.id]
        position = await service.get_position_by_id(saved.id)
        assert position.status == PositionStatus.OPENED
        assert position.rules.stop_gain_percentage == Decimal("5")
        assert executor.orders == []

    @pytest.mark.asyncio
    async def test_backup_after_restore_keeps_trade_ids(self, service, store, btc_usdt, make_trade):
        saved = await store.save(
            PositionRecord(
                currency_pair=btc_usdt,
                amount=Decimal("1"),
                status=PositionStatus.OPENED,
                open_order_id="BUY-1",
                trade_ids=["T-1"],
            )
        )
        [position] = await service.restore_from_store([saved.id])

        await service.backup_position(position)
        assert (await store.find_by_id(saved.id)).trade_ids == ["T-1"]

        await service.trade_update(make_trade("BUY-1", "1", "100", trade_id="T-1"))
        await service.backup_position(position)
        assert (await store.find_by_id(saved.id)).trade_ids == ["T-1"]

    @pytest.mark.asyncio
    async def test_restored_closing_position_closes(self, service, store, btc_usdt, make_trade):
        saved = await store.save(
            PositionRecord(
                currency_pair=btc_usdt,
                amount=Decimal("1"),
                status=PositionStatus.CLOSING,
                open_order_id="BUY-1",
                close_order_id="SELL-1",
                trade_ids=["T-1"],
            )
        )
        [position] = await service.restore_from_store([saved.id])

        await service.trade_update(make_trade("SELL-1", "1", "110", trade_id="T-2"))
        await service.backup_position(position)

        assert position.status == PositionStatus.CLOSED
        record = await store.find_by_id(saved.id)
        assert record.status == PositionStatus.CLOSED
        assert record.trade_ids == ["T-1", "T-2"]


# ============================================================
# ERROR RECORD TESTS
# ============================================================

class TestErrorRecords:
    """Tests for reported errors."""

    @pytest.mark.asyncio
    async def test_errors_copy_and_clear(self, service, btc_usdt):
        await service.create_position(btc_usdt, Decimal("-1"))

        errors = service.errors
        errors.clear()
        assert len(service.errors) == 1
        assert service.errors[0].info.category.value == "VALIDATION"

        service.clear_errors()
        assert service.errors == []
