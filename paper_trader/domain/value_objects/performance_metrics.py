"""
PaperTrader - Performance Metrics (Value Object)
=================================================
Foto inmutable de las métricas de la cuenta simulada.

POR QUE FROZEN:
  Las métricas son una foto instantánea. El StatsEngine mantiene sus
  acumuladores y genera un PerformanceMetrics NUEVO en cada consulta,
  así el snapshot expuesto nunca cambia bajo los pies del lector.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PerformanceMetrics:
    """
    Atributos:
    ----------
    cumulative_realized_pnl : float
        PnL realizado neto de comisiones (cierres totales y parciales).

    total_closed_trades : int
        Posiciones cerradas por completo.

    winning_trades : int
        Cierres totales con PnL bruto > 0.

    max_drawdown : float
        Mayor caída relativa pico→valle en la serie de equity retenida.
        0.12 = 12%.

    sharpe : float
        media / desviación de los log-returns de equity (sin anualizar).
        0.0 con menos de 20 muestras o desviación nula.

    equity_points : int
        Muestras retenidas en la serie equity-vs-tiempo.
    """

    cumulative_realized_pnl: float = 0.0
    total_closed_trades: int = 0
    winning_trades: int = 0
    max_drawdown: float = 0.0
    sharpe: float = 0.0
    equity_points: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_closed_trades == 0:
            return 0.0
        return self.winning_trades / self.total_closed_trades

    def to_dict(self) -> dict:
        return {
            "cumulative_realized_pnl": round(self.cumulative_realized_pnl, 8),
            "total_closed_trades": self.total_closed_trades,
            "winning_trades": self.winning_trades,
            "win_rate": round(self.win_rate * 100, 2),
            "max_drawdown": round(self.max_drawdown, 6),
            "sharpe": round(self.sharpe, 6),
            "equity_points": self.equity_points,
        }
