"""Domain services (stateless)."""
from paper_trader.domain.services.indicator_calculator import IndicatorCalculator, MacdResult

__all__ = ["IndicatorCalculator", "MacdResult"]
