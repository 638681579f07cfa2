"""
PaperTrader - Stats Engine (Accounting & Metrics)
==================================================
Contabilidad derivada de la cuenta simulada.

PRINCIPIO CENTRAL:
  El equity y el PnL no realizado NO se guardan: se derivan en cada
  consulta desde caja + posiciones + último ticker. Lo único que se
  acumula es el PnL realizado, los contadores de cierre y una serie
  acotada (deque maxlen) de muestras (timestamp, equity).

CUANDO SE MUESTREA:
  - Tras cada ejecución exitosa (ExecutionSimulator → on_execution).
  - Una vez por tick del scheduler (TradingAgent → sample_equity).

══════════════════════════════════════════════════════════════════
  FORMULAS (referencia rapida)
══════════════════════════════════════════════════════════════════

  equity       = cash + Σ(qty × last_price)
  unrealized   = Σ((last_price − avg_entry) × qty)
      Solo símbolos con ticker en vivo (precio > 0).

  Max Drawdown = max((peak_i − equity_i) / peak_i)  para todo i
      peak <= 0 → drawdown 0 en ese punto.

  Sharpe-like  = mean(r) / std(r),  r_i = ln(e_i / e_{i-1})
      Solo muestras con equity > 0, varianza muestral (n−1),
      sin anualizar. 0.0 con < 20 muestras o std == 0.

══════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import math
from collections import deque
from typing import Deque, List, Sequence, Tuple

from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.app.state.portfolio_state import PortfolioState
from paper_trader.domain.value_objects.performance_metrics import PerformanceMetrics
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("stats_engine")


class StatsEngine:
    """
    Motor de contabilidad y métricas.

    Responsabilidades:
      1. Derivar equity y PnL no realizado.
      2. Acumular PnL realizado y contadores de cierre / wins.
      3. Mantener la serie equity-vs-tiempo y recalcular drawdown y
         Sharpe sobre ella.
    """

    def __init__(
        self,
        portfolio: PortfolioState,
        market_state: MarketStateManager,
        max_equity_points: int = 5000,
        sharpe_min_samples: int = 20,
    ) -> None:
        self._portfolio = portfolio
        self._market = market_state
        self._sharpe_min_samples = sharpe_min_samples
        self._equity_history: Deque[Tuple[float, float]] = deque(maxlen=max_equity_points)

        self.cumulative_realized_pnl: float = 0.0
        self.total_closed_trades: int = 0
        self.winning_trades: int = 0
        self.max_drawdown: float = 0.0
        self.sharpe: float = 0.0
        self.session_start_equity: float = portfolio.cash_balance

    # ═══════════════════════════════════════════════════════════════
    #  EQUITY
    # ═══════════════════════════════════════════════════════════════

    def equity_and_pnl(self) -> Tuple[float, float]:
        """(equity, unrealized_pnl) marcando posiciones al último ticker."""
        equity = self._portfolio.cash_balance
        unrealized = 0.0
        for symbol, position in self._portfolio.positions.items():
            price = self._market.get_last_price(symbol)
            if not price:
                continue
            equity += position.quantity * price
            unrealized += (price - position.avg_entry_price) * position.quantity
        return equity, unrealized

    def equity(self) -> float:
        return self.equity_and_pnl()[0]

    # ═══════════════════════════════════════════════════════════════
    #  ACUMULADORES
    # ═══════════════════════════════════════════════════════════════

    def record_realized(self, net_pnl: float, closed: bool, gross_pnl: float = 0.0) -> None:
        """
        Acumular PnL realizado neto de una reducción de posición.

        Args:
            net_pnl: PnL neto de comisión.
            closed: True si la posición quedó plana (cuenta como trade cerrado).
            gross_pnl: PnL bruto; un cierre con bruto > 0 cuenta como win.
        """
        self.cumulative_realized_pnl += net_pnl
        if closed:
            self.total_closed_trades += 1
            if gross_pnl > 0:
                self.winning_trades += 1

    def sample_equity(self, timestamp: float) -> float:
        """Añadir (timestamp, equity) a la serie y recalcular DD y Sharpe."""
        equity = self.equity()
        self._equity_history.append((timestamp, equity))
        values = [e for _, e in self._equity_history]
        self.max_drawdown = self.compute_max_drawdown(values)
        self.sharpe = self.compute_sharpe(values, self._sharpe_min_samples)
        return equity

    def on_execution(self, timestamp: float) -> None:
        """Muestreo post-ejecución + línea de resumen en log."""
        equity = self.sample_equity(timestamp)
        win_rate = (
            self.winning_trades / self.total_closed_trades * 100
            if self.total_closed_trades else 0.0
        )
        logger.info(
            "PnL=%.4f | WinRate=%.1f%% | MaxDD=%.2f%% | Sharpe=%.3f | Equity=%.2f",
            self.cumulative_realized_pnl, win_rate,
            self.max_drawdown * 100, self.sharpe, equity,
        )

    # ═══════════════════════════════════════════════════════════════
    #  CALCULO PURO
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def compute_max_drawdown(values: Sequence[float]) -> float:
        peak = -math.inf
        max_dd = 0.0
        for equity in values:
            if equity > peak:
                peak = equity
            if peak <= 0:
                continue
            dd = (peak - equity) / peak
            if dd > max_dd:
                max_dd = dd
        return max_dd

    @staticmethod
    def compute_sharpe(values: Sequence[float], min_samples: int = 20) -> float:
        positives = [e for e in values if e > 0]
        if len(positives) < min_samples:
            return 0.0

        returns: List[float] = [
            math.log(curr / prev) for prev, curr in zip(positives, positives[1:])
        ]
        if not returns:
            return 0.0

        mean = sum(returns) / len(returns)
        variance = sum((r - mean) ** 2 for r in returns) / max(1, len(returns) - 1)
        std = math.sqrt(max(variance, 0.0))
        if std == 0:
            return 0.0
        return mean / std

    # ═══════════════════════════════════════════════════════════════
    #  API PUBLICA
    # ═══════════════════════════════════════════════════════════════

    def metrics(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            cumulative_realized_pnl=self.cumulative_realized_pnl,
            total_closed_trades=self.total_closed_trades,
            winning_trades=self.winning_trades,
            max_drawdown=self.max_drawdown,
            sharpe=self.sharpe,
            equity_points=len(self._equity_history),
        )

    @property
    def equity_history(self) -> List[Tuple[float, float]]:
        return list(self._equity_history)

    def mark_session_start(self) -> float:
        self.session_start_equity = self.equity()
        return self.session_start_equity

    def reset(self) -> None:
        self._equity_history.clear()
        self.cumulative_realized_pnl = 0.0
        self.total_closed_trades = 0
        self.winning_trades = 0
        self.max_drawdown = 0.0
        self.sharpe = 0.0
        self.session_start_equity = self._portfolio.cash_balance
