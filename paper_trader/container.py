"""
Dependency Injection Container.

Este módulo es el ÚNICO lugar donde se crean dependencias concretas
(feed Binance, event bus, motor). El host (FastAPI lifespan, tests)
crea un AgentContainer y es dueño de su ciclo de vida: no hay instancia
global del motor.

RECREATE:
  Reemplazar el motor (p.ej. para recargar la lista de símbolos) es una
  secuencia explícita: close → construir → (opcional) start. Se conserva
  la estrategia y, salvo que se indique otra, la caja actual.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from paper_trader.application.ports.market_data_provider import MarketDataProvider
from paper_trader.application.trading_agent import TradingAgent
from paper_trader.domain.value_objects.strategy import StrategyName
from paper_trader.shared.config.settings import Settings
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("container")

FeedFactory = Callable[[Settings], MarketDataProvider]


def binance_feed_factory(settings: Settings) -> MarketDataProvider:
    # Import aquí: los tests con feeds falsos no necesitan la infraestructura real
    from paper_trader.infrastructure.external.binance_adapter import BinanceMarketDataAdapter
    return BinanceMarketDataAdapter(settings)


@dataclass
class AgentContainer:
    """
    Contenedor de Inyección de Dependencias del motor.

    Cada motor recibe su propio feed (creado por `feed_factory`).
    """

    settings: Settings = field(default_factory=Settings)
    feed_factory: FeedFactory = binance_feed_factory
    _agent: Optional[TradingAgent] = None

    @property
    def agent(self) -> TradingAgent:
        """Obtiene o crea el motor."""
        if self._agent is None:
            self._agent = self.build_agent()
        return self._agent

    def build_agent(
        self,
        symbols: Iterable[str] | None = None,
        strategy: "str | StrategyName | None" = None,
        starting_cash: float | None = None,
    ) -> TradingAgent:
        """Factory para TradingAgent."""
        return TradingAgent(
            feed=self.feed_factory(self.settings),
            config=self.settings,
            symbols=symbols,
            strategy=strategy,
            starting_cash=starting_cash,
        )

    async def recreate(
        self,
        symbols: Iterable[str] | None = None,
        starting_cash: float | None = None,
        resume: bool | None = None,
    ) -> TradingAgent:
        """
        Reemplazar el motor descartando todo su historial.

        Args:
            symbols: Nuevo universo; None = el de la configuración.
            starting_cash: Caja del motor nuevo; None = la caja actual.
            resume: Arrancar el motor nuevo; None = si el anterior corría.
        """
        previous = self._agent
        was_running = previous.is_running if previous is not None else False
        strategy = previous.strategy.name if previous is not None else None
        if starting_cash is None and previous is not None:
            starting_cash = previous.portfolio.cash_balance
        if previous is not None:
            await previous.close()

        self._agent = self.build_agent(
            symbols=symbols, strategy=strategy, starting_cash=starting_cash,
        )
        logger.info(
            "Motor recreado | símbolos=%d caja=%.2f",
            len(self._agent.symbols), self._agent.portfolio.cash_balance,
        )
        if resume if resume is not None else was_running:
            await self._agent.start()
        return self._agent

    async def shutdown(self) -> None:
        if self._agent is not None:
            await self._agent.close()
