"""Application use cases."""
from paper_trader.application.use_cases.evaluate_cycle_usecase import EvaluateCycleUseCase
from paper_trader.application.use_cases.process_tick_usecase import ProcessTickUseCase

__all__ = ["EvaluateCycleUseCase", "ProcessTickUseCase"]
