"""
PaperTrader – Binance Market Data Adapter
==========================================
Implementación de MarketDataProvider sobre Binance spot.

STREAM EN VIVO:
- Un solo WebSocket de streams combinados:
    <base>btcusdt@miniTicker/ethusdt@miniTicker/...
- Cada mensaje {"stream": ..., "data": {"s": "BTCUSDT", "c": "64000.1"}}
  se convierte en un Tick sellado con la hora LOCAL de recepción y se
  publica en el EventBus. Nunca bloquea.

RECONEXIÓN:
- Ante cualquier desconexión mientras corre: pausa FIJA
  (feed_reconnect_delay, 1s por defecto) y reconexión, indefinidamente.
- force_reconnect() descarta la conexión actual (ruta del watchdog).

HISTÓRICO:
- GET /api/v3/klines con `requests`, ejecutado en el executor del loop
  para no bloquear el event loop.
- kline = [openTime, open, high, low, close, volume, closeTime, ...]
  con tiempos en ms → se convierten a epoch en segundos.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from typing import Any, Callable, List, Optional, Sequence

import requests
import websockets
from websockets.asyncio.client import ClientConnection

from paper_trader.application.ports.market_data_provider import (
    FEED_STATUS_TOPIC,
    TICK_TOPIC,
    EventPublisher,
    FeedStatus,
    FeedStatusKind,
    MarketDataProvider,
)
from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.exceptions.domain_errors import BackfillError, FeedMessageError
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.shared.config.settings import Settings, settings as default_settings
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("binance_adapter")


def parse_mini_ticker(raw: str | bytes, received_at: float) -> Tick:
    """
    Parsear un mensaje del stream combinado.

    Raises:
        FeedMessageError: JSON inválido, sin `data`, sin símbolo o con
            precio no finito.
    """
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FeedMessageError(f"Mensaje no-JSON: {exc}", raw=str(raw)[:200]) from exc

    data = message.get("data") if isinstance(message, dict) else None
    if not isinstance(data, dict):
        raise FeedMessageError("Mensaje sin 'data'", raw=str(raw)[:200])

    symbol = data.get("s") or ""
    try:
        price = float(data.get("c"))
    except (TypeError, ValueError) as exc:
        raise FeedMessageError(f"Precio inválido: {data.get('c')!r}", raw=str(raw)[:200]) from exc

    if not symbol or not math.isfinite(price) or price <= 0:
        raise FeedMessageError("Símbolo vacío o precio no positivo", raw=str(raw)[:200])

    return Tick(symbol=str(symbol).upper(), price=price, timestamp=received_at)


def parse_klines(symbol: str, rows: Any) -> List[Candle]:
    """Convertir la respuesta REST en velas; descarta filas no finitas o <= 0."""
    if not isinstance(rows, list):
        raise BackfillError(f"Respuesta inesperada para {symbol}", symbol=symbol)

    candles: List[Candle] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 7:
            continue
        try:
            start = float(row[0]) / 1000.0
            end = float(row[6]) / 1000.0
            o, h, l, c = (float(row[i]) for i in range(1, 5))
        except (TypeError, ValueError):
            continue
        if not all(math.isfinite(v) and v > 0 for v in (o, h, l, c)):
            continue
        candles.append(Candle(
            symbol=symbol, start=start, end=end,
            open=o, high=h, low=l, close=c,
        ))
    return candles


class BinanceMarketDataAdapter(MarketDataProvider):
    """
    Cliente asíncrono del stream miniTicker de Binance.

    Ciclo de vida:
      1. start()          → lanza el task de conexión
      2. _connect_loop()  → reconexión perpetua con delay fijo
      3. _listen()        → parsear mensajes y publicar ticks
      4. stop()           → flag + cancelación (síncrono)
    """

    def __init__(
        self,
        config: Settings | None = None,
        clock: Callable[[], float] = time.time,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._clock = clock
        self._session = session or requests.Session()
        self._symbols: List[str] = []
        self._publish: Optional[EventPublisher] = None
        self._ws: Optional[ClientConnection] = None
        self._running = False
        self._connect_task: Optional[asyncio.Task] = None

        # Estadísticas de monitoreo
        self.ticks_received = 0
        self.messages_dropped = 0
        self.reconnects = 0
        self._connected_since = 0.0

    # ──────────────────────── Lifecycle ──────────────────────────────────

    async def start(self, symbols: Sequence[str], publish: EventPublisher) -> None:
        """Iniciar el stream. Idempotente."""
        if self._running:
            logger.warning("Adapter ya está corriendo, ignorando start()")
            return
        self._symbols = [s.upper() for s in symbols]
        self._publish = publish
        self._running = True
        self._spawn()
        logger.info("Feed Binance iniciado (%d símbolos)", len(self._symbols))

    def stop(self) -> None:
        if not self._running and self._connect_task is None:
            return
        self._running = False
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
        self._connect_task = None
        self._ws = None
        logger.info("Feed Binance detenido. Total ticks recibidos: %d", self.ticks_received)

    def force_reconnect(self) -> None:
        if not self._running:
            return
        logger.warning("Reconexión forzada del feed")
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
        self._ws = None
        self.reconnects += 1
        self._spawn()

    def _spawn(self) -> None:
        self._connect_task = asyncio.get_running_loop().create_task(
            self._connect_loop(), name="binance-connect-loop"
        )

    def stream_url(self) -> str:
        streams = "/".join(f"{s.lower()}@miniTicker" for s in self._symbols)
        return f"{self._settings.binance_ws_url}{streams}"

    # ──────────────────────── Connection Loop ───────────────────────────

    async def _connect_loop(self) -> None:
        """
        Loop de reconexión con delay fijo.
        Se ejecuta indefinidamente hasta que self._running = False.
        """
        url = self.stream_url()
        while self._running:
            try:
                logger.info("Conectando a Binance (%d streams)", len(self._symbols))
                async with websockets.connect(
                    url,
                    close_timeout=5,
                    max_size=2**20,
                ) as ws:
                    self._ws = ws
                    self._connected_since = self._clock()
                    logger.info("Conectado a Binance WebSocket")
                    await self._emit_status(FeedStatusKind.OPEN)
                    await self._listen(ws)
                await self._emit_status(FeedStatusKind.CLOSE)
            except websockets.exceptions.ConnectionClosed as e:
                logger.warning("Conexión cerrada: %s", e)
                await self._emit_status(FeedStatusKind.CLOSE, str(e))
            except OSError as e:
                logger.error("Error de red: %s", e)
                await self._emit_status(FeedStatusKind.ERROR, str(e))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error inesperado en connect_loop: %s", e, exc_info=True)
                await self._emit_status(FeedStatusKind.ERROR, str(e))
            finally:
                self._ws = None

            if not self._running:
                break

            self.reconnects += 1
            logger.info("Reconectando en %.1fs...", self._settings.feed_reconnect_delay)
            await asyncio.sleep(self._settings.feed_reconnect_delay)

    async def _listen(self, ws: ClientConnection) -> None:
        async for raw_msg in ws:
            if not self._running:
                break
            await self.handle_message(raw_msg)

    async def handle_message(self, raw_msg: str | bytes) -> Optional[Tick]:
        """Parsear y publicar un mensaje. Mensajes inválidos se descartan."""
        try:
            tick = parse_mini_ticker(raw_msg, self._clock())
        except FeedMessageError as exc:
            self.messages_dropped += 1
            logger.warning("Mensaje descartado: %s", exc.message)
            return None

        self.ticks_received += 1
        if self._publish is not None:
            await self._publish(TICK_TOPIC, tick)
        return tick

    async def _emit_status(self, kind: FeedStatusKind, detail: str = "") -> None:
        if self._publish is not None:
            await self._publish(
                FEED_STATUS_TOPIC,
                FeedStatus(kind=kind, timestamp=self._clock(), detail=detail),
            )

    # ──────────────────────── Histórico ─────────────────────────────────

    async def get_historical_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = 60,
    ) -> List[Candle]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetch_klines, symbol, interval, limit)

    def fetch_klines(self, symbol: str, interval: str, limit: int = 60) -> List[Candle]:
        """Petición REST bloqueante (usar vía executor)."""
        try:
            resp = self._session.get(
                self._settings.binance_rest_url,
                params={"symbol": symbol, "interval": interval, "limit": limit},
                timeout=self._settings.backfill_timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise BackfillError(f"Klines de {symbol} fallaron: {exc}", symbol=symbol) from exc
        return parse_klines(symbol, rows)

    # ──────────────────────── Stats ─────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    @property
    def stats(self) -> dict:
        """Estadísticas del adapter para monitoreo."""
        return {
            "running": self._running,
            "connected": self.is_connected,
            "ticks_received": self.ticks_received,
            "messages_dropped": self.messages_dropped,
            "reconnects": self.reconnects,
            "connected_since": self._connected_since,
        }
