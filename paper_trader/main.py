"""
PaperTrader – Main Application Entry Point
===========================================
Host FastAPI del motor de paper trading.

ARQUITECTURA DE ARRANQUE:
  1. Configurar logging
  2. Crear el AgentContainer (dueño del motor)
  3. FastAPI lifespan:
     a. Inyectar el contenedor en el router
     b. El motor queda DETENIDO hasta POST /api/agent/control {"action":"start"}
  4. Shutdown: detener el motor (feed + scheduler)

FLUJO DE DATOS:
  Binance WS → BinanceMarketDataAdapter → EventBus(tick) → TradingAgent
       → CandleBuilder → MarketState
  Scheduler(1s) → EventBus(clock) → TradingAgent
       → watchdog → SignalEngine → RiskManager → ExecutionSimulator
       → StatsEngine (equity, drawdown, Sharpe)

  uvicorn paper_trader.main:app --host 0.0.0.0 --port 8888
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paper_trader.container import AgentContainer
from paper_trader.presentation.api.routes import init_routes, router
from paper_trader.shared.config.settings import Settings, settings
from paper_trader.shared.logging.logger import get_logger, setup_logging

logger = get_logger("main")


def create_app(container: Optional[AgentContainer] = None) -> FastAPI:
    """Construir la aplicación con un contenedor explícito."""
    owned = container or AgentContainer(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg: Settings = owned.settings
        logger.info("=" * 60)
        logger.info("  PaperTrader v%s", app.version)
        logger.info("  Símbolos: %d (%s...)", len(cfg.watch_symbols), ", ".join(cfg.watch_symbols[:5]))
        logger.info("  Estrategia inicial: %s", owned.agent.strategy.name.value)
        logger.info("  Caja inicial: %.2f %s", cfg.starting_cash, cfg.base_currency)
        logger.info("  Comisión=%.4f Slippage=%.4f", cfg.commission_rate, cfg.slippage_rate)
        logger.info("=" * 60)

        app.state.container = owned

        yield  # ← La app está corriendo aquí

        logger.info("Iniciando shutdown...")
        await owned.shutdown()
        logger.info("Shutdown completo")

    app = FastAPI(
        title="PaperTrader",
        description="Motor de paper trading con velas, indicadores, señales y gestión de riesgo",
        version="0.1.0",
        debug=owned.settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    init_routes(owned)
    return app


setup_logging(settings.log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
