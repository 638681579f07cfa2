"""
PaperTrader – Market State Manager
===================================
Estado de mercado en memoria por símbolo: último ticker, ring de
precios recientes y buffer de velas cerradas.

PROTECCIÓN DE MEMORIA:
- El ring de precios y el buffer de velas usan collections.deque con
  maxlen → descartan automáticamente lo más antiguo. O(1) en append.

RACE CONDITIONS:
- Todas las operaciones se ejecutan dentro del mismo event loop asyncio
  y solo desde los handlers del TradingAgent. No hay threads.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("market_state")


@dataclass
class SymbolState:
    """Estado de mercado para UN símbolo."""

    symbol: str
    price_history: Deque[float]
    candles: Deque[Candle]
    ticker: Optional[Tick] = None
    # Fin de la última vela ya evaluada (idempotencia por vela)
    last_processed_candle_end: Optional[float] = None
    total_ticks: int = 0
    total_candles: int = 0


class MarketStateManager:
    """
    Gestor centralizado del estado de mercado de los símbolos vigilados.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        price_history_size: int = 120,
        max_candles: int = 1000,
    ) -> None:
        self._price_history_size = price_history_size
        self._max_candles = max_candles
        self._states: Dict[str, SymbolState] = {}
        # Epoch del último tick de cualquier símbolo (watchdog)
        self.last_any_update: float = 0.0
        for symbol in symbols:
            self.get_or_create(symbol)

    def get_or_create(self, symbol: str) -> SymbolState:
        """Obtener estado de un símbolo; crearlo si no existe."""
        state = self._states.get(symbol)
        if state is None:
            state = SymbolState(
                symbol=symbol,
                price_history=deque(maxlen=self._price_history_size),
                candles=deque(maxlen=self._max_candles),
            )
            self._states[symbol] = state
        return state

    # ─── Escritura ───────────────────────────────────────────────────────

    def update_tick(self, tick: Tick) -> None:
        """Reemplazar ticker y alimentar el ring de precios."""
        state = self.get_or_create(tick.symbol)
        state.ticker = tick
        state.price_history.append(tick.price)
        state.total_ticks += 1
        self.last_any_update = tick.timestamp

    def add_candle(self, candle: Candle) -> None:
        """Añadir una vela sellada; la más antigua se descarta al superar el cap."""
        state = self.get_or_create(candle.symbol)
        state.candles.append(candle)
        state.total_candles += 1

    def replace_candles(self, symbol: str, candles: Iterable[Candle]) -> None:
        """Reemplazar el historial completo (backfill)."""
        state = self.get_or_create(symbol)
        state.candles = deque(candles, maxlen=self._max_candles)

    def mark_processed(self, symbol: str, candle_end: float) -> None:
        self.get_or_create(symbol).last_processed_candle_end = candle_end

    def reset(self) -> None:
        """
        Vaciar rings, velas y marcadores de procesamiento.

        El último ticker de cada símbolo se conserva: es precio de
        mercado en vivo, no historial de la sesión.
        """
        for state in self._states.values():
            state.price_history.clear()
            state.candles.clear()
            state.last_processed_candle_end = None
            state.total_ticks = 0
            state.total_candles = 0
        self.last_any_update = 0.0

    # ─── Consultas ───────────────────────────────────────────────────────

    def get_candles(self, symbol: str) -> List[Candle]:
        return list(self.get_or_create(symbol).candles)

    def get_last_price(self, symbol: str) -> Optional[float]:
        """Precio del ticker en vivo, o None."""
        state = self._states.get(symbol)
        if state is None or state.ticker is None:
            return None
        return state.ticker.price

    def get_latest_known_price(self, symbol: str) -> Optional[float]:
        """
        Mejor precio conocido: ticker en vivo → último del ring de precios
        → cierre de la última vela. None si no hay ninguno finito.
        """
        state = self._states.get(symbol)
        if state is None:
            return None
        if state.ticker is not None and math.isfinite(state.ticker.price):
            return state.ticker.price
        if state.price_history and math.isfinite(state.price_history[-1]):
            return state.price_history[-1]
        if state.candles and math.isfinite(state.candles[-1].close):
            return state.candles[-1].close
        return None

    def tickers(self) -> Dict[str, Tick]:
        return {s: st.ticker for s, st in self._states.items() if st.ticker is not None}

    @property
    def symbols(self) -> List[str]:
        return list(self._states.keys())

    def snapshot(self) -> dict:
        """Snapshot completo para diagnóstico / API."""
        result = {}
        for symbol, s in self._states.items():
            result[symbol] = {
                "last_price": s.ticker.price if s.ticker else None,
                "total_ticks": s.total_ticks,
                "total_candles": s.total_candles,
                "candles_in_buffer": len(s.candles),
                "last_processed_candle_end": s.last_processed_candle_end,
                "last_candle": s.candles[-1].to_dict() if s.candles else None,
            }
        return result
