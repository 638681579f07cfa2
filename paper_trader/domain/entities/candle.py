"""
PaperTrader – Domain Entity: Candle
====================================
Vela OHLC inmutable, sellada a partir de ticks agregados o recibida
del backfill histórico.

Decisiones de diseño:
- frozen=True → inmutable una vez cerrada, evita repainting.
  La única vela mutable es la vela "en construcción" del CandleBuilder.
- Se usa dataclass por rendimiento (más ligera que Pydantic para hot-path).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Candle:
    """Vela OHLC con inicio/fin de periodo."""

    symbol: str
    start: float         # epoch de apertura, múltiplo exacto del periodo
    end: float           # epoch de cierre esperado
    open: float
    high: float
    low: float
    close: float
    tick_count: int = 0  # 0 para velas del backfill

    def to_dict(self) -> dict:
        """Serialización para API / frontend."""
        return {
            "symbol": self.symbol,
            "start": self.start,
            "end": self.end,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "tick_count": self.tick_count,
        }
