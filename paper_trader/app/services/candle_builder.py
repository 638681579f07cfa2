"""
PaperTrader – Candle Builder Service
=====================================
Construye velas OHLC a partir de ticks en tiempo real.

ALGORITMO:
  1. period_start = floor(timestamp / periodo) × periodo
  2. Si no hay vela en construcción para el símbolo, o su inicio difiere
     de period_start: se sella la anterior (si existe) y se abre una
     nueva con open = high = low = close = precio.
  3. Si coincide: se actualizan high (max), low (min) y close in-place.

No se interpolan huecos: el primer tick de un periodo nuevo SIEMPRE
abre una vela nueva, aunque hayan pasado varios periodos sin ticks.
Un tick produce como mucho UNA vela sellada.

El periodo depende de la estrategia activa (1, 5 o 15 minutos) y se
pasa en cada llamada: un cambio de estrategia sella la vela en curso
en cuanto llega el siguiente tick con un inicio de periodo distinto.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("candle_builder")


@dataclass
class _BuildingCandle:
    """Vela mutable en construcción (solo uso interno)."""

    symbol: str
    start: float
    end: float
    open: float
    high: float
    low: float
    close: float
    tick_count: int = 1

    def update(self, price: float) -> None:
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price
        self.tick_count += 1

    def freeze(self) -> Candle:
        """Convertir en Candle inmutable."""
        return Candle(
            symbol=self.symbol,
            start=self.start,
            end=self.end,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            tick_count=self.tick_count,
        )


class CandleBuilder:
    """
    Construye velas OHLC por símbolo a partir de ticks.

    Uso:
        sealed = builder.process_tick(tick, period=300)
        if sealed:
            # vela completada → MarketState
    """

    def __init__(self) -> None:
        # symbol → vela en construcción
        self._building: Dict[str, _BuildingCandle] = {}

    @staticmethod
    def align(timestamp: float, period: float) -> float:
        """Inicio del periodo que contiene `timestamp`."""
        return math.floor(timestamp / period) * period

    def process_tick(self, tick: Tick, period: float) -> Optional[Candle]:
        """
        Procesar un tick. Retorna la vela sellada si se cruzó un límite de
        periodo, None si no.

        Operación O(1) – sin I/O, sin bloqueo.
        """
        start = self.align(tick.timestamp, period)
        building = self._building.get(tick.symbol)

        if building is not None and building.start == start:
            building.update(tick.price)
            return None

        sealed = building.freeze() if building is not None else None
        self._building[tick.symbol] = _BuildingCandle(
            symbol=tick.symbol,
            start=start,
            end=start + period,
            open=tick.price,
            high=tick.price,
            low=tick.price,
            close=tick.price,
        )

        if sealed is not None:
            logger.debug(
                "Vela cerrada: %s O=%.6f H=%.6f L=%.6f C=%.6f ticks=%d",
                sealed.symbol, sealed.open, sealed.high,
                sealed.low, sealed.close, sealed.tick_count,
            )
        return sealed

    def drop(self, symbol: str) -> None:
        """Descartar la vela en construcción (tras un backfill)."""
        self._building.pop(symbol, None)

    def reset(self) -> None:
        self._building.clear()

    def get_building_candle(self, symbol: str) -> Optional[Candle]:
        """Vista inmutable de la vela en construcción (preview)."""
        building = self._building.get(symbol)
        if building is None:
            return None
        return building.freeze()
