"""
PaperTrader – Domain Value Object: Strategy presets
====================================================
Las tres estrategias son una variante cerrada (StrategyName) y cada una
lleva su propio StrategyConfig inmutable. Seleccionar una estrategia es
reemplazar el registro completo; nunca se mutan campos sueltos.

═══════════════════════════════════════════════════════════════
  PRESETS
═══════════════════════════════════════════════════════════════

  low     → trend, 15m, 1 posición, 2% del equity por trade
  medium  → trend, 5m, 3 posiciones, 5% del equity por trade
  high    → mean_reversion, 1m, 5 posiciones, 10% del equity por trade

NOTA: max_daily_loss y daily_profit_target viajan en todos los presets
pero ningún componente los lee hoy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from paper_trader.domain.exceptions.domain_errors import InvalidStrategyError

_MINUTE = 60.0


class StrategyName(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: "str | StrategyName") -> "StrategyName":
        """Convertir un nombre externo; rechaza nombres desconocidos."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidStrategyError(f"Estrategia desconocida: {value!r}", value=value) from None


class StrategyMode(str, Enum):
    TREND = "trend"
    MEAN_REVERSION = "mean_reversion"


@dataclass(frozen=True, slots=True)
class StrategyConfig:
    """Parámetros fijos de una estrategia."""

    name: StrategyName
    max_concurrent_positions: int
    position_size_pct: float
    stop_loss_pct: float
    take_profit_half_pct: float
    trailing_pct: float
    atr_filter_pct: float
    candle_period: float            # segundos
    rsi_long_threshold: float
    rsi_short_threshold: float
    mode: StrategyMode
    allow_shorts: bool
    max_daily_loss: float
    daily_profit_target: float
    max_consecutive_losing_trades: int
    cooldown_after_loss_streak: float   # segundos

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "max_concurrent_positions": self.max_concurrent_positions,
            "position_size_pct": self.position_size_pct,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_half_pct": self.take_profit_half_pct,
            "trailing_pct": self.trailing_pct,
            "atr_filter_pct": self.atr_filter_pct,
            "candle_period": self.candle_period,
            "rsi_long_threshold": self.rsi_long_threshold,
            "rsi_short_threshold": self.rsi_short_threshold,
            "mode": self.mode.value,
            "allow_shorts": self.allow_shorts,
            "max_daily_loss": self.max_daily_loss,
            "daily_profit_target": self.daily_profit_target,
            "max_consecutive_losing_trades": self.max_consecutive_losing_trades,
            "cooldown_after_loss_streak": self.cooldown_after_loss_streak,
        }


STRATEGY_PRESETS: Mapping[StrategyName, StrategyConfig] = MappingProxyType({
    StrategyName.LOW: StrategyConfig(
        name=StrategyName.LOW,
        max_concurrent_positions=1,
        position_size_pct=0.02,
        stop_loss_pct=0.002,
        take_profit_half_pct=0.0045,
        trailing_pct=0.002,
        atr_filter_pct=0.0015,
        candle_period=15 * _MINUTE,
        rsi_long_threshold=60.0,
        rsi_short_threshold=40.0,
        mode=StrategyMode.TREND,
        allow_shorts=True,
        max_daily_loss=200.0,
        daily_profit_target=300.0,
        max_consecutive_losing_trades=3,
        cooldown_after_loss_streak=90 * _MINUTE,
    ),
    StrategyName.MEDIUM: StrategyConfig(
        name=StrategyName.MEDIUM,
        max_concurrent_positions=3,
        position_size_pct=0.05,
        stop_loss_pct=0.0025,
        take_profit_half_pct=0.003,
        trailing_pct=0.0015,
        atr_filter_pct=0.001,
        candle_period=5 * _MINUTE,
        rsi_long_threshold=55.0,
        rsi_short_threshold=45.0,
        mode=StrategyMode.TREND,
        allow_shorts=True,
        max_daily_loss=300.0,
        daily_profit_target=400.0,
        max_consecutive_losing_trades=3,
        cooldown_after_loss_streak=60 * _MINUTE,
    ),
    StrategyName.HIGH: StrategyConfig(
        name=StrategyName.HIGH,
        max_concurrent_positions=5,
        position_size_pct=0.1,
        stop_loss_pct=0.004,
        take_profit_half_pct=0.002,
        trailing_pct=0.001,
        atr_filter_pct=0.0005,
        candle_period=1 * _MINUTE,
        rsi_long_threshold=30.0,
        rsi_short_threshold=70.0,
        mode=StrategyMode.MEAN_REVERSION,
        allow_shorts=True,
        max_daily_loss=600.0,
        daily_profit_target=800.0,
        max_consecutive_losing_trades=5,
        cooldown_after_loss_streak=30 * _MINUTE,
    ),
})


def get_strategy_config(name: "str | StrategyName") -> StrategyConfig:
    """Preset inmutable de una estrategia."""
    return STRATEGY_PRESETS[StrategyName.parse(name)]
