"""
Shared fixtures for position engine tests.
"""

import itertools
from decimal import Decimal

import pytest

from position_engine import (
    CurrencyAmount,
    CurrencyPair,
    PositionRules,
    Ticker,
    Trade,
    TradeType,
)


@pytest.fixture
def btc_usdt() -> CurrencyPair:
    return CurrencyPair("BTC", "USDT")


@pytest.fixture
def eth_btc() -> CurrencyPair:
    return CurrencyPair("ETH", "BTC")


@pytest.fixture
def rules() -> PositionRules:
    return PositionRules(
        stop_gain_percentage=Decimal("5"),
        stop_loss_percentage=Decimal("5"),
    )


@pytest.fixture
def make_trade(btc_usdt):
    """Factory for trades; ids are unique unless given."""
    ids = itertools.count(1)

    def _make(
        order_id,
        amount,
        price,
        fee="0",
        trade_id=None,
        trade_type=TradeType.BUY,
        currency_pair=None,
    ) -> Trade:
        pair = currency_pair or btc_usdt
        return Trade(
            id=trade_id or f"TRADE-{next(ids)}",
            order_id=order_id,
            currency_pair=pair,
            type=trade_type,
            original_amount=Decimal(str(amount)),
            price=Decimal(str(price)),
            fee=CurrencyAmount(Decimal(str(fee)), pair.quote),
        )

    return _make


@pytest.fixture
def make_ticker(btc_usdt):
    def _make(price, currency_pair=None) -> Ticker:
        return Ticker(currency_pair=currency_pair or btc_usdt, price=Decimal(str(price)))

    return _make
