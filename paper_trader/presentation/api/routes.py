"""
PaperTrader – API Routes (FastAPI)
===================================
Superficie de control delgada sobre el motor.

Endpoints disponibles:
  POST /api/agent/control   → start | stop | reset | recreate/reload_symbols |
                              sell_all/liquidate | set_strategy
  GET  /api/agent/state     → EngineSnapshot completo
  GET  /api/agent/stream    → server-sent events, un snapshot por segundo
  GET  /api/agent/diagnostics → contadores, gestión de posiciones y últimas señales
  GET  /api/health          → health check

Los nombres de estrategia se validan AQUÍ: el motor nunca recibe un
nombre desconocido.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from paper_trader.container import AgentContainer
from paper_trader.domain.exceptions.domain_errors import InvalidStrategyError
from paper_trader.domain.value_objects.strategy import StrategyName
from paper_trader.presentation.api.schemas import ControlRequest, ControlResponse, HealthResponse
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()

STREAM_INTERVAL = 1.0

# Referencia inyectada desde main.py
_container: Optional[AgentContainer] = None


def init_routes(container: AgentContainer) -> None:
    """Inyectar el contenedor desde main.py al arrancar."""
    global _container
    _container = container


def _get_container() -> AgentContainer:
    if _container is None:
        raise RuntimeError("Rutas no inicializadas: llamar a init_routes()")
    return _container


def _error(code: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ControlResponse(ok=False, error=code).model_dump(exclude_none=True),
    )


def _ok(status: str, strategy: str | None = None) -> dict:
    return ControlResponse(ok=True, status=status, strategy=strategy).model_dump(exclude_none=True)


# ─── Control ──────────────────────────────────────────────────────────

@router.post("/api/agent/control")
async def agent_control(request: Request):
    """Ejecutar una acción de control sobre el motor."""
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    try:
        body = ControlRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError:
        return _error("invalid_action")

    container = _get_container()
    agent = container.agent
    action = body.action.strip().lower()
    options = body.options

    if action == "start":
        await agent.start()
        return _ok("started")

    if action == "stop":
        agent.stop()
        return _ok("stopped")

    if action == "reset":
        strategy = None
        if options.strategy:
            try:
                strategy = StrategyName.parse(options.strategy)
            except InvalidStrategyError:
                return _error("invalid_strategy")
        agent.reset(options.starting_cash)
        if strategy is not None:
            agent.set_strategy(strategy)
        return _ok("reset")

    if action in ("recreate", "reload_symbols"):
        await container.recreate(starting_cash=options.starting_cash)
        return _ok("recreated")

    if action in ("sell_all", "liquidate"):
        agent.liquidate_all()
        return _ok("liquidated")

    if action == "set_strategy":
        try:
            config = agent.set_strategy(StrategyName.parse(options.strategy or ""))
        except InvalidStrategyError:
            return _error("invalid_strategy")
        return _ok("strategy_set", strategy=config.name.value)

    logger.debug("Acción de control desconocida: %r", body.action)
    return _error("invalid_action")


# ─── Estado ───────────────────────────────────────────────────────────

@router.get("/api/agent/state")
async def agent_state() -> dict:
    """Snapshot completo del motor."""
    return _get_container().agent.get_snapshot().to_dict()


@router.get("/api/agent/diagnostics")
async def agent_diagnostics() -> dict:
    """Contadores internos del motor para monitoreo."""
    return _get_container().agent.diagnostics


@router.get("/api/agent/stream")
async def agent_stream() -> StreamingResponse:
    """Server-sent events con un snapshot por segundo."""
    container = _get_container()

    async def event_source():
        while True:
            data = json.dumps(container.agent.get_snapshot().to_dict())
            yield f"data: {data}\n\n"
            await asyncio.sleep(STREAM_INTERVAL)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
    )


@router.get("/api/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check para monitoreo."""
    return HealthResponse(
        status="ok",
        service="paper-trader",
        is_running=_get_container().agent.is_running,
    )
