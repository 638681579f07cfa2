"""
PaperTrader – Application Port: Market Data Provider
=====================================================
Interfaz del feed de mercado que consume el motor.

El motor NO implementa el transporte: solo necesita
  1. un stream de ticks {symbol, price, timestamp} para un conjunto de
     símbolos, publicado como eventos, y
  2. una consulta histórica (symbol, interval, limit) → velas OHLC.

La infraestructura decide CÓMO obtenerlos (WebSocket Binance, replay
histórico, doble de test, etc.).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Sequence

from paper_trader.domain.entities.candle import Candle

# Tópicos del EventBus
TICK_TOPIC = "tick"
FEED_STATUS_TOPIC = "feed_status"
CLOCK_TOPIC = "clock"

# publish(topic, payload) – firma de EventBus.publish
EventPublisher = Callable[[str, Any], Awaitable[None]]


class FeedStatusKind(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class FeedStatus:
    """Evento de ciclo de vida de la conexión del feed."""

    kind: FeedStatusKind
    timestamp: float
    detail: str = field(default="")


class MarketDataProvider(ABC):
    """
    Interfaz para proveer datos de mercado.

    IMPLEMENTACIONES POSIBLES:
    - BinanceMarketDataAdapter (real-time)
    - Dobles de test (AsyncMock / feeds en memoria)
    """

    @abstractmethod
    async def start(self, symbols: Sequence[str], publish: EventPublisher) -> None:
        """
        Conectar y publicar Tick en TICK_TOPIC y FeedStatus en
        FEED_STATUS_TOPIC hasta stop(). Reconecta solo mientras corre.
        """

    @abstractmethod
    def stop(self) -> None:
        """Cerrar la conexión. Síncrono y seguro si ya está detenido."""

    @abstractmethod
    def force_reconnect(self) -> None:
        """Descartar la conexión actual y reconectar de inmediato."""

    @abstractmethod
    async def get_historical_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = 60,
    ) -> List[Candle]:
        """
        Obtiene velas históricas.

        Args:
            symbol: Símbolo (e.g. "BTCUSDT")
            interval: Intervalo del exchange ("1m", "5m", "15m")
            limit: Número máximo de velas

        Returns:
            Lista de velas ordenadas por inicio ASC

        Raises:
            BackfillError: si la consulta falla
        """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True si hay una conexión abierta."""
