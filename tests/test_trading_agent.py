from __future__ import annotations

import asyncio

import pytest

from paper_trader.application.ports.market_data_provider import (
    CLOCK_TOPIC,
    FEED_STATUS_TOPIC,
    TICK_TOPIC,
    FeedStatus,
    FeedStatusKind,
)
from paper_trader.application.trading_agent import TradingAgent, exchange_interval
from paper_trader.domain.entities.trade import Side
from paper_trader.domain.exceptions.domain_errors import BackfillError, InvalidStrategyError
from paper_trader.domain.value_objects.strategy import StrategyName
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.infrastructure.event_bus import Event

from conftest import make_candles

T0 = 1_700_000_100.0  # múltiplo exacto de 300


def test_symbols_are_normalized(fake_feed, test_settings):
    agent = TradingAgent(fake_feed, test_settings, symbols=["btcusdt", "BTCUSDT", " ethusdt ", ""])
    assert agent.symbols == ["BTCUSDT", "ETHUSDT"]


def test_initial_snapshot(agent):
    snap = agent.get_snapshot().to_dict()

    assert snap["is_running"] is False
    assert snap["watch_symbols"] == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
    assert snap["cash_balance"] == 10_000.0
    assert snap["equity"] == 10_000.0
    assert snap["strategy"] == "medium"
    assert snap["positions"] == {}
    assert snap["trades"] == []
    assert snap["halt_reason"] is None


@pytest.mark.parametrize("period,interval", [(60, "1m"), (300, "5m"), (900, "15m"), (3600, "5m")])
def test_exchange_interval(period, interval):
    assert exchange_interval(period) == interval


# ─── Control ────────────────────────────────────────────────────────────

def test_reset_clears_account_but_keeps_strategy(agent, clock):
    agent.set_strategy("high")
    agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)
    agent.portfolio.halt_reason = "loss_streak"
    agent.market_state.update_tick(Tick("BTCUSDT", 100.0, clock()))

    agent.reset(starting_cash=5_000.0)

    snap = agent.get_snapshot()
    assert snap.cash_balance == 5_000.0
    assert snap.positions == {}
    assert snap.trades == ()
    assert snap.prices["BTCUSDT"].price == 100.0
    assert agent.market_state.get_candles("BTCUSDT") == []
    assert len(agent.market_state.get_or_create("BTCUSDT").price_history) == 0
    assert snap.halt_reason is None
    assert snap.metrics.equity_points == 0
    assert snap.strategy == "high"


def test_reset_defaults_to_configured_cash(agent):
    agent.portfolio.cash_balance = 1.0
    agent.reset()
    assert agent.portfolio.cash_balance == 10_000.0


def test_set_strategy_keeps_positions(agent):
    agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)

    config = agent.set_strategy("LOW")

    assert config.name is StrategyName.LOW
    assert agent.strategy.candle_period == 900
    assert agent.portfolio.get_position("BTCUSDT").quantity == pytest.approx(1.0)


def test_set_strategy_rejects_unknown_name(agent):
    with pytest.raises(InvalidStrategyError):
        agent.set_strategy("aggressive")
    assert agent.strategy.name is StrategyName.MEDIUM


def test_liquidate_all_closes_everything(agent, clock):
    agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)
    agent.simulator.execute(Side.SELL, "ETHUSDT", 50.0, 2.0)
    agent.market_state.update_tick(Tick("BTCUSDT", 101.0, clock()))

    assert agent.liquidate_all() == 2
    assert agent.portfolio.positions == {}
    assert agent.is_trading_halted() is False


# ─── Handlers ───────────────────────────────────────────────────────────

def test_ticks_build_and_seal_candles(agent):
    agent.on_tick(Tick("BTCUSDT", 100.0, T0 + 10))
    agent.on_tick(Tick("BTCUSDT", 101.0, T0 + 200))
    assert agent.market_state.get_candles("BTCUSDT") == []

    agent.on_tick(Tick("BTCUSDT", 99.0, T0 + 310))

    (candle,) = agent.market_state.get_candles("BTCUSDT")
    assert candle.start == T0
    assert candle.end == T0 + 300
    assert (candle.open, candle.high, candle.low, candle.close) == (100.0, 101.0, 100.0, 101.0)
    assert agent.market_state.get_last_price("BTCUSDT") == 99.0


def test_candle_is_evaluated_once(agent, clock):
    agent.set_strategy("high")
    closes = [100.0 - 0.2 * i for i in range(45)]
    agent.market_state.replace_candles("BTCUSDT", make_candles(closes, period=60))

    assert agent.evaluate_cycle.execute(clock(), agent.symbols) == 1
    assert agent.evaluate_cycle.execute(clock(), agent.symbols) == 0

    assert len(agent.portfolio.trades) == 1
    assert agent.portfolio.get_position("BTCUSDT").is_long


def test_symbols_with_few_candles_are_skipped(agent, clock):
    agent.market_state.replace_candles("BTCUSDT", make_candles([100.0] * 39))
    assert agent.evaluate_cycle.execute(clock(), agent.symbols) == 0
    assert agent.market_state.get_or_create("BTCUSDT").last_processed_candle_end is None


def test_clock_is_ignored_while_stopped(agent, clock):
    agent.on_clock(clock())
    assert agent.evaluate_cycle.cycles_run == 0


def test_watchdog_forces_reconnect_on_stale_feed(agent, fake_feed, clock):
    agent.is_running = True
    agent.market_state.last_any_update = clock()

    agent.on_clock(clock.advance(10))
    fake_feed.force_reconnect.assert_not_called()

    agent.on_clock(clock.advance(6))
    fake_feed.force_reconnect.assert_called_once()
    assert agent.watchdog_reconnects == 1
    assert agent.market_state.last_any_update == clock()

    agent.on_clock(clock.advance(1))
    fake_feed.force_reconnect.assert_called_once()


def test_feed_status_tracking(agent, clock):
    agent.on_feed_status(FeedStatus(FeedStatusKind.OPEN, clock()))
    assert agent.feed_connected is True

    agent.on_feed_status(FeedStatus(FeedStatusKind.ERROR, clock(), "boom"))
    assert agent.feed_connected is False
    assert agent.feed_errors == 1


def test_dispatch_survives_handler_errors(agent, clock):
    agent.is_running = True

    agent.dispatch(Event(TICK_TOPIC, None))
    agent.dispatch(Event(CLOCK_TOPIC, clock()))
    agent.dispatch(Event(FEED_STATUS_TOPIC, FeedStatus(FeedStatusKind.OPEN, clock())))

    assert agent.handler_errors == 1
    assert agent.evaluate_cycle.cycles_run == 1
    assert agent.feed_connected is True


# ─── Backfill ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_backfill_runs_in_bounded_batches(fake_feed, test_settings, clock):
    symbols = [f"S{i}USDT" for i in range(12)]
    in_flight = 0
    peak = 0

    async def fetch(symbol, interval, limit):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return make_candles([100.0, 101.0], symbol=symbol)

    pauses = []

    async def fake_sleep(seconds):
        pauses.append(seconds)

    fake_feed.get_historical_candles.side_effect = fetch
    agent = TradingAgent(fake_feed, test_settings, symbols=symbols, clock=clock, sleep=fake_sleep)

    results = await agent.backfill()

    assert peak <= 5
    assert len(pauses) == 3
    assert all(r.ok and r.candles == 2 for r in results)
    assert len(agent.market_state.get_candles("S11USDT")) == 2
    assert fake_feed.get_historical_candles.await_args.args[1:] == ("5m", 60)


@pytest.mark.asyncio
async def test_backfill_failure_is_isolated(agent, fake_feed):
    async def fetch(symbol, interval, limit):
        if symbol == "ETHUSDT":
            raise BackfillError("HTTP 500", symbol=symbol)
        return make_candles([1.0, 2.0, 3.0], symbol=symbol)

    fake_feed.get_historical_candles.side_effect = fetch

    results = {r.symbol: r for r in await agent.backfill()}

    assert results["ETHUSDT"].ok is False
    assert results["BTCUSDT"].candles == 3
    assert len(agent.market_state.get_candles("SOLUSDT")) == 3
    assert agent.market_state.get_candles("ETHUSDT") == []


@pytest.mark.asyncio
async def test_backfill_results_discarded_after_stop(agent, fake_feed):
    async def fetch(symbol, interval, limit):
        agent.stop()
        return make_candles([1.0, 2.0], symbol=symbol)

    fake_feed.get_historical_candles.side_effect = fetch

    await agent.start()

    assert agent.is_running is False
    assert all(r.error == "stale" for r in agent.last_backfill)
    assert agent.market_state.get_candles("BTCUSDT") == []
    fake_feed.start.assert_not_awaited()


# ─── Ciclo de vida ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_start_and_stop(agent, fake_feed):
    await agent.start()
    await agent.start()

    assert agent.is_running is True
    fake_feed.start.assert_awaited_once()
    assert fake_feed.start.await_args.args[0] == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]

    await asyncio.sleep(0.05)
    assert agent.evaluate_cycle.cycles_run > 0

    agent.stop()
    assert agent.is_running is False
    fake_feed.stop.assert_called_once()


@pytest.mark.asyncio
async def test_published_ticks_reach_the_agent(agent, fake_feed, clock):
    await agent.start()
    publish = fake_feed.start.await_args.args[1]

    await publish(TICK_TOPIC, Tick("BTCUSDT", 123.0, clock()))
    await asyncio.sleep(0.02)

    assert agent.market_state.get_last_price("BTCUSDT") == 123.0
    agent.stop()


@pytest.mark.asyncio
async def test_restart_after_stop(agent, fake_feed):
    await agent.start()
    agent.stop()
    await agent.start()

    assert agent.is_running is True
    assert fake_feed.start.await_count == 2
    agent.stop()


@pytest.mark.asyncio
async def test_feed_start_failure_rolls_back(agent, fake_feed):
    fake_feed.start.side_effect = OSError("down")

    with pytest.raises(OSError):
        await agent.start()

    assert agent.is_running is False
    assert agent._consumer_task is None
    fake_feed.stop.assert_called_once()

    fake_feed.start.side_effect = None
    await agent.start()

    assert agent.is_running is True
    assert fake_feed.start.await_count == 2
    agent.stop()


def test_diagnostics_report_last_signal_and_management(agent, clock):
    agent.set_strategy("high")
    closes = [100.0 - 0.2 * i for i in range(45)]
    agent.market_state.replace_candles("BTCUSDT", make_candles(closes, period=60))
    agent.evaluate_cycle.execute(clock(), agent.symbols)

    diag = agent.diagnostics

    assert diag["last_signals"]["BTCUSDT"]["long_signal"] is True
    assert diag["trade_mgmt"]["BTCUSDT"]["has_taken_partial"] is False
    assert diag["market"]["BTCUSDT"]["last_candle"]["close"] == pytest.approx(closes[-1])
    assert diag["positions_opened"] == 1

    agent.reset()
    assert agent.diagnostics["last_signals"] == {}


def _falling(symbol):
    return make_candles([100.0 - 0.2 * i for i in range(45)], symbol=symbol, period=60)


def test_zero_close_does_not_block_other_symbols(agent, clock):
    agent.set_strategy("high")
    agent.is_running = True
    btc = make_candles([100.0 - 0.2 * i for i in range(44)] + [0.0], period=60)
    agent.market_state.replace_candles("BTCUSDT", btc)
    agent.market_state.replace_candles("ETHUSDT", _falling("ETHUSDT"))

    for _ in range(3):
        agent.dispatch(Event(CLOCK_TOPIC, clock.advance(1)))

    assert agent.handler_errors == 0
    assert agent.portfolio.get_position("BTCUSDT") is None
    assert agent.portfolio.get_position("ETHUSDT").is_long
    assert agent.market_state.get_or_create("BTCUSDT").last_processed_candle_end == btc[-1].end
    assert len(agent.portfolio.trades) == 1


def test_failing_symbol_is_isolated_and_marked_processed(agent, clock, monkeypatch):
    agent.set_strategy("high")
    agent.market_state.replace_candles("BTCUSDT", _falling("BTCUSDT"))
    agent.market_state.replace_candles("ETHUSDT", _falling("ETHUSDT"))
    manage = agent.risk_manager.manage

    def flaky_manage(decision):
        if decision.symbol == "BTCUSDT":
            raise RuntimeError("boom")
        manage(decision)

    monkeypatch.setattr(agent.risk_manager, "manage", flaky_manage)

    assert agent.evaluate_cycle.execute(clock(), agent.symbols) == 1
    assert agent.evaluate_cycle.execute(clock(), agent.symbols) == 0

    assert agent.evaluate_cycle.symbol_errors == 1
    assert agent.portfolio.get_position("ETHUSDT").is_long
    assert agent.market_state.get_or_create("BTCUSDT").last_processed_candle_end is not None
    assert agent.diagnostics["symbol_errors"] == 1


@pytest.mark.asyncio
async def test_close_releases_bus_subscription(agent, fake_feed):
    await agent.start()
    assert agent.diagnostics["bus_subscribers"] == 3

    await agent.close()

    assert agent.is_running is False
    assert agent.diagnostics["bus_subscribers"] == 0
    fake_feed.stop.assert_called_once()

    await agent.start()
    assert agent.diagnostics["bus_subscribers"] == 3
    await agent.close()
