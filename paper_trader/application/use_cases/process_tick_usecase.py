"""
PaperTrader – Process Tick Use Case
====================================
Manejo de un tick del feed dentro del consumidor único del motor.

FLUJO:
  Tick (EventBus, tópico "tick")
       │
       ▼
  ProcessTickUseCase.execute(tick, period)
       │
       ├── MarketState.update_tick(tick)        → ticker + ring + watchdog
       └── CandleBuilder.process_tick(tick)     → vela en construcción
               │
               └── Si se selló una vela:
                       MarketState.add_candle(candle)

CÓMO SE EVITA REPAINTING:
- Solo las velas SELLADAS entran al historial que alimenta indicadores.
- La vela en construcción permanece privada en CandleBuilder.
- La evaluación de señales NO ocurre aquí: la dispara el scheduler
  (EvaluateCycleUseCase), una vez por vela.
"""

from __future__ import annotations

from typing import Optional

from paper_trader.app.services.candle_builder import CandleBuilder
from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("process_tick")


class ProcessTickUseCase:
    """Tick → estado de mercado → vela."""

    def __init__(
        self,
        candle_builder: CandleBuilder,
        market_state: MarketStateManager,
    ) -> None:
        self._candle_builder = candle_builder
        self._market_state = market_state
        self.processed_count = 0
        self.candles_sealed = 0

    def execute(self, tick: Tick, period: float) -> Optional[Candle]:
        """
        Procesar un tick con el periodo de vela de la estrategia activa.

        Returns:
            La vela sellada por este tick, si la hubo.
        """
        self._market_state.update_tick(tick)
        sealed = self._candle_builder.process_tick(tick, period)
        if sealed is not None:
            self._market_state.add_candle(sealed)
            self.candles_sealed += 1
        self.processed_count += 1
        return sealed
