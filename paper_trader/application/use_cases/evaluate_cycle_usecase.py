"""
PaperTrader – Evaluate Cycle Use Case
======================================
Lo que ocurre en cada tick del scheduler (1s), después del watchdog.

FLUJO:
  1. StatsEngine.sample_equity(now)          → serie equity-vs-tiempo
  2. Para cada símbolo vigilado:
       ├── < 40 velas selladas               → saltar
       ├── última vela ya procesada          → saltar (idempotencia)
       ├── SignalEngine.evaluate()
       │     └── None (indefinido)           → marcar procesada, saltar
       ├── RiskManager.manage(decision)
       └── marcar procesada (también si algo falla: el error
           queda aislado en ese símbolo y se cuenta en symbol_errors)

IDEMPOTENCIA:
  last_processed_candle_end por símbolo. Repetir el ciclo dentro del
  mismo periodo de vela NUNCA re-evalúa ni produce trades adicionales.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List

from paper_trader.app.services.risk_manager import RiskManager
from paper_trader.app.services.signal_engine import SignalDecision, SignalEngine
from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.value_objects.strategy import StrategyConfig
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("evaluate_cycle")


class EvaluateCycleUseCase:
    """Evaluación periódica de señales y gestión de posiciones."""

    def __init__(
        self,
        market_state: MarketStateManager,
        signal_engine: SignalEngine,
        risk_manager: RiskManager,
        stats: StatsEngine,
        config_provider: Callable[[], StrategyConfig],
        min_candles: int = 40,
    ) -> None:
        self._market_state = market_state
        self._signal_engine = signal_engine
        self._risk_manager = risk_manager
        self._stats = stats
        self._config = config_provider
        self._min_candles = min_candles
        self.cycles_run = 0
        self.candles_evaluated = 0
        self.signals_emitted = 0
        self.symbol_errors = 0
        # Última decisión por símbolo (diagnóstico)
        self.last_decisions: Dict[str, SignalDecision] = {}

    def execute(self, now: float, symbols: Iterable[str]) -> int:
        """
        Ejecutar un ciclo.

        Returns:
            Número de velas evaluadas en este ciclo.
        """
        self.cycles_run += 1
        self._stats.sample_equity(now)

        config = self._config()
        evaluated = 0
        for symbol in symbols:
            state = self._market_state.get_or_create(symbol)
            if len(state.candles) < self._min_candles:
                continue
            latest = state.candles[-1]
            if state.last_processed_candle_end == latest.end:
                continue

            try:
                if self._evaluate_symbol(symbol, list(state.candles), config):
                    evaluated += 1
            except Exception as e:
                self.symbol_errors += 1
                logger.error("Error evaluando %s: %s", symbol, e, exc_info=True)
            finally:
                # Una vela fallida tampoco se reintenta
                self._market_state.mark_processed(symbol, latest.end)

        self.candles_evaluated += evaluated
        return evaluated

    def _evaluate_symbol(self, symbol: str, candles: List[Candle], config: StrategyConfig) -> bool:
        decision = self._signal_engine.evaluate(symbol, candles, config)
        if decision is None:
            logger.debug("Indicadores indefinidos para %s, vela saltada", symbol)
            return False

        self.last_decisions[symbol] = decision
        if decision.long_signal or decision.short_signal:
            self.signals_emitted += 1
        self._risk_manager.manage(decision)
        return True
