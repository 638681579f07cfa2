"""
PaperTrader – Engine Snapshot
==============================
Composición de solo lectura de todo el estado del motor. Es la ÚNICA
representación que se expone a colaboradores externos (API, dashboard).

Las colecciones se copian al construir el snapshot: mutar el motor
después no altera un snapshot ya entregado.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from paper_trader.domain.entities.position import Position
from paper_trader.domain.entities.trade import Trade
from paper_trader.domain.value_objects.performance_metrics import PerformanceMetrics
from paper_trader.domain.value_objects.tick import Tick


@dataclass(frozen=True)
class EngineSnapshot:
    is_running: bool
    watch_symbols: Tuple[str, ...]
    base_currency: str
    cash_balance: float
    positions: Dict[str, Position]
    prices: Dict[str, Tick]
    trades: Tuple[Trade, ...]
    equity: float
    unrealized_pnl: float
    halt_reason: Optional[str]
    trading_halted_until: Optional[float]
    strategy: str
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def to_dict(self) -> dict:
        """Serialización JSON para la API."""
        trades: List[dict] = [t.to_dict() for t in self.trades]
        return {
            "is_running": self.is_running,
            "watch_symbols": list(self.watch_symbols),
            "base_currency": self.base_currency,
            "cash_balance": self.cash_balance,
            "positions": {s: p.to_dict() for s, p in self.positions.items()},
            "prices": {
                s: {"symbol": t.symbol, "last_price": t.price, "updated_at": t.timestamp}
                for s, t in self.prices.items()
            },
            "trades": trades,
            "equity": self.equity,
            "unrealized_pnl": self.unrealized_pnl,
            "halt_reason": self.halt_reason,
            "trading_halted_until": self.trading_halted_until,
            "strategy": self.strategy,
            "metrics": self.metrics.to_dict(),
        }
