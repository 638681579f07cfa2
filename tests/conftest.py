from __future__ import annotations

from typing import List, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from paper_trader.app.services.execution_simulator import ExecutionSimulator
from paper_trader.app.services.risk_manager import RiskManager
from paper_trader.app.services.signal_engine import SignalDecision
from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.app.state.portfolio_state import PortfolioState
from paper_trader.application.ports.market_data_provider import MarketDataProvider
from paper_trader.application.trading_agent import TradingAgent
from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.value_objects.strategy import StrategyName, get_strategy_config
from paper_trader.shared.config.settings import Settings

SYMBOLS = ["BTCUSDT", "ETHUSDT", "SOLUSDT"]


class FakeClock:
    """Reloj manual para timestamps deterministas."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def make_candles(
    closes: Sequence[float],
    symbol: str = "BTCUSDT",
    period: float = 300.0,
    start: float = 1_700_000_100.0,
    spread: float = 0.001,
) -> List[Candle]:
    candles = []
    for i, close in enumerate(closes):
        begin = start + i * period
        candles.append(Candle(
            symbol=symbol,
            start=begin,
            end=begin + period,
            open=close,
            high=close * (1 + spread),
            low=close * (1 - spread),
            close=close,
        ))
    return candles


def make_decision(
    symbol: str = "BTCUSDT",
    price: float = 100.0,
    long_signal: bool = False,
    short_signal: bool = False,
    candle_end: float = 0.0,
) -> SignalDecision:
    return SignalDecision(
        symbol=symbol,
        price=price,
        candle_end=candle_end,
        long_signal=long_signal,
        short_signal=short_signal,
        ema_fast=price,
        ema_slow=price,
        rsi=50.0,
        macd=0.0,
        macd_signal=0.0,
        atr=1.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        watch_symbols=list(SYMBOLS),
        backfill_batch_delay=0.0,
        scheduler_interval=0.01,
        feed_reconnect_delay=0.01,
    )


@pytest.fixture
def fake_feed():
    feed = MagicMock(spec=MarketDataProvider)
    feed.start = AsyncMock()
    feed.get_historical_candles = AsyncMock(return_value=[])
    feed.stop = MagicMock()
    feed.force_reconnect = MagicMock()
    return feed


@pytest.fixture
def agent(fake_feed, test_settings, clock) -> TradingAgent:
    return TradingAgent(feed=fake_feed, config=test_settings, clock=clock)


class Engine:
    """Servicios cableados a mano sin el TradingAgent."""

    def __init__(self, clock: FakeClock, strategy: StrategyName = StrategyName.MEDIUM,
                 starting_cash: float = 10_000.0) -> None:
        self.config = get_strategy_config(strategy)
        self.market = MarketStateManager(SYMBOLS)
        self.portfolio = PortfolioState(starting_cash)
        self.stats = StatsEngine(self.portfolio, self.market)
        self.simulator = ExecutionSimulator(self.portfolio, self.stats, clock=clock)
        self.risk = RiskManager(
            self.portfolio,
            self.market,
            self.simulator,
            self.stats,
            config_provider=lambda: self.config,
            clock=clock,
        )
        self.simulator.set_close_listener(self.risk.on_trade_closed)


@pytest.fixture
def engine(clock) -> Engine:
    return Engine(clock)
