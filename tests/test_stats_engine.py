from __future__ import annotations

import math

import pytest

from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.domain.entities.position import Position
from paper_trader.domain.value_objects.tick import Tick


def test_equity_marks_positions_at_live_ticker(engine, clock):
    engine.portfolio.cash_balance = 1_000.0
    engine.portfolio.set_position(Position("BTCUSDT", 2.0, 100.0))
    engine.portfolio.set_position(Position("ETHUSDT", -1.0, 50.0))
    engine.market.update_tick(Tick("BTCUSDT", 110.0, clock()))
    engine.market.update_tick(Tick("ETHUSDT", 40.0, clock()))

    equity, unrealized = engine.stats.equity_and_pnl()

    assert equity == pytest.approx(1_000.0 + 220.0 - 40.0)
    assert unrealized == pytest.approx(20.0 + 10.0)


def test_equity_skips_symbols_without_price(engine):
    engine.portfolio.cash_balance = 1_000.0
    engine.portfolio.set_position(Position("SOLUSDT", 5.0, 20.0))

    assert engine.stats.equity_and_pnl() == (1_000.0, 0.0)


def test_max_drawdown():
    assert StatsEngine.compute_max_drawdown([100, 120, 90, 130, 117]) == pytest.approx(0.25)
    assert StatsEngine.compute_max_drawdown([100, 101, 102]) == 0.0
    assert StatsEngine.compute_max_drawdown([]) == 0.0


def test_max_drawdown_ignores_non_positive_peaks():
    assert StatsEngine.compute_max_drawdown([-5.0, -10.0, 0.0]) == 0.0
    assert StatsEngine.compute_max_drawdown([-5.0, 10.0, 5.0]) == pytest.approx(0.5)


def test_sharpe_is_zero_below_min_samples():
    values = [100.0 + i for i in range(19)]
    assert StatsEngine.compute_sharpe(values, 20) == 0.0


def test_sharpe_is_zero_for_flat_series():
    assert StatsEngine.compute_sharpe([100.0] * 30, 20) == 0.0


def test_sharpe_matches_log_return_ratio():
    values = [100.0, 101.0, 100.5, 102.0, 101.0] * 5
    returns = [math.log(b / a) for a, b in zip(values, values[1:])]
    mean = sum(returns) / len(returns)
    std = math.sqrt(sum((r - mean) ** 2 for r in returns) / (len(returns) - 1))

    assert StatsEngine.compute_sharpe(values, 20) == pytest.approx(mean / std)


def test_sharpe_uses_only_positive_equity():
    values = [0.0, -1.0] + [100.0 * 1.01 ** i for i in range(10)]
    assert StatsEngine.compute_sharpe(values, 11) == 0.0


def test_win_rate_counts_gross_profit(engine):
    engine.stats.record_realized(-0.01, closed=True, gross_pnl=0.02)
    engine.stats.record_realized(-1.0, closed=True, gross_pnl=-0.9)
    engine.stats.record_realized(0.5, closed=False)

    metrics = engine.stats.metrics()
    assert metrics.total_closed_trades == 2
    assert metrics.winning_trades == 1
    assert metrics.cumulative_realized_pnl == pytest.approx(-0.51)


def test_sample_equity_updates_drawdown(engine):
    engine.stats.sample_equity(1.0)
    engine.portfolio.cash_balance = 9_000.0
    engine.stats.sample_equity(2.0)

    assert engine.stats.max_drawdown == pytest.approx(0.1)
    assert engine.stats.equity_history == [(1.0, 10_000.0), (2.0, 9_000.0)]


def test_equity_history_is_bounded(engine):
    stats = StatsEngine(engine.portfolio, engine.market, max_equity_points=3)
    for i in range(5):
        stats.sample_equity(float(i))

    assert [ts for ts, _ in stats.equity_history] == [2.0, 3.0, 4.0]


def test_reset_clears_accumulators(engine):
    engine.stats.record_realized(5.0, closed=True, gross_pnl=5.0)
    engine.stats.sample_equity(1.0)
    engine.portfolio.cash_balance = 2_000.0

    engine.stats.reset()

    metrics = engine.stats.metrics()
    assert metrics.cumulative_realized_pnl == 0.0
    assert metrics.total_closed_trades == 0
    assert metrics.equity_points == 0
    assert engine.stats.session_start_equity == 2_000.0
