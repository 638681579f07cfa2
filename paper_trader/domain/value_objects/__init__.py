"""Domain value objects."""
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.domain.value_objects.performance_metrics import PerformanceMetrics
from paper_trader.domain.value_objects.strategy import (
    StrategyName,
    StrategyMode,
    StrategyConfig,
    STRATEGY_PRESETS,
    get_strategy_config,
)
from paper_trader.domain.value_objects.engine_snapshot import EngineSnapshot

__all__ = [
    "Tick",
    "PerformanceMetrics",
    "StrategyName",
    "StrategyMode",
    "StrategyConfig",
    "STRATEGY_PRESETS",
    "get_strategy_config",
    "EngineSnapshot",
]
