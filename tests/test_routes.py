from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from paper_trader.container import AgentContainer
from paper_trader.domain.entities.trade import Side
from paper_trader.main import create_app
from paper_trader.shared.config.settings import Settings


@pytest.fixture
def container(test_settings, fake_feed):
    return AgentContainer(settings=test_settings, feed_factory=lambda s: fake_feed)


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def _control(client, action, **options):
    return client.post("/api/agent/control", json={"action": action, "options": options})


def test_health(client):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "paper-trader", "is_running": False}


def test_state_returns_snapshot(client):
    body = client.get("/api/agent/state").json()

    assert body["watch_symbols"] == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
    assert body["base_currency"] == "USDT"
    assert body["strategy"] == "medium"
    assert body["metrics"]["total_closed_trades"] == 0


def test_set_strategy(client, container):
    resp = _control(client, "set_strategy", strategy="high")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "status": "strategy_set", "strategy": "high"}
    assert container.agent.strategy.name.value == "high"


@pytest.mark.parametrize("name", ["aggressive", "", None])
def test_set_strategy_rejects_unknown(client, container, name):
    resp = _control(client, "set_strategy", strategy=name)

    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "invalid_strategy"}
    assert container.agent.strategy.name.value == "medium"


@pytest.mark.parametrize("payload", [
    {"action": "explode"},
    {},
    {"action": "reset", "options": {"startingCash": -5}},
])
def test_invalid_action(client, payload):
    resp = client.post("/api/agent/control", json=payload)

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_action"


def test_non_json_body_is_invalid_action(client):
    resp = client.post(
        "/api/agent/control", content=b"not json", headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_action"


def test_reset_with_cash_and_strategy(client, container):
    container.agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)

    resp = _control(client, "reset", startingCash=2_500, strategy="low")

    assert resp.json() == {"ok": True, "status": "reset"}
    state = client.get("/api/agent/state").json()
    assert state["cash_balance"] == 2_500
    assert state["trades"] == []
    assert state["strategy"] == "low"


def test_reset_with_bad_strategy_changes_nothing(client, container):
    container.agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)

    resp = _control(client, "reset", strategy="turbo")

    assert resp.status_code == 400
    assert len(container.agent.portfolio.trades) == 1


def test_liquidate(client, container):
    container.agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)

    resp = _control(client, "sell_all")

    assert resp.json() == {"ok": True, "status": "liquidated"}
    assert container.agent.portfolio.positions == {}


def test_start_and_stop(client, container, fake_feed):
    assert _control(client, "start").json() == {"ok": True, "status": "started"}
    assert client.get("/api/health").json()["is_running"] is True
    fake_feed.start.assert_awaited_once()

    assert _control(client, "stop").json() == {"ok": True, "status": "stopped"}
    assert container.agent.is_running is False


def test_recreate_keeps_strategy_and_cash(client, container):
    _control(client, "set_strategy", strategy="high")
    container.agent.portfolio.cash_balance = 7_000.0
    previous = container.agent

    resp = _control(client, "reload_symbols")

    assert resp.json() == {"ok": True, "status": "recreated"}
    assert container.agent is not previous
    assert container.agent.strategy.name.value == "high"
    assert container.agent.portfolio.cash_balance == 7_000.0
    assert container.agent.is_running is False


def test_diagnostics(client, container):
    container.agent.simulator.execute(Side.BUY, "BTCUSDT", 100.0, 1.0)

    body = client.get("/api/agent/diagnostics").json()

    assert body["executions_accepted"] == 1
    assert body["handler_errors"] == 0
    assert set(body["market"]) == {"BTCUSDT", "ETHUSDT", "SOLUSDT"}
    assert body["last_signals"] == {}
    assert body["strategy"]["name"] == "medium"
    assert body["strategy"]["candle_period"] == 300


def test_debug_flag_comes_from_settings(fake_feed):
    settings = Settings(watch_symbols=["BTCUSDT"], debug=True)
    app = create_app(AgentContainer(settings=settings, feed_factory=lambda s: fake_feed))
    assert app.debug is True
