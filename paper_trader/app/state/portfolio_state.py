"""
PaperTrader – Portfolio State Manager
======================================
Estado centralizado de la cuenta simulada: caja, posiciones, historial
de trades, estado de gestión por posición y estado de riesgo/halt.

DISEÑO:
  - Máximo una posición por símbolo (cantidad con signo).
  - Una posición con |qty| <= 1e-12 NO existe: se elimina junto con su
    TradeManagement en el mismo paso.
  - Historial de trades acotado (deque maxlen) → protección de memoria.

THREADING:
  Todo corre en un solo event-loop asyncio. No se necesitan locks.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional

from paper_trader.domain.entities.position import Position, TradeManagement
from paper_trader.domain.entities.trade import Trade


class PortfolioState:
    """
    Invariantes:
      - positions solo contiene posiciones abiertas.
      - trade_mgmt[symbol] existe solo si positions[symbol] existe.
    """

    def __init__(self, starting_cash: float, max_trades: int = 5000) -> None:
        self._max_trades = max_trades
        self.cash_balance: float = starting_cash
        self._positions: Dict[str, Position] = {}
        self._trade_mgmt: Dict[str, TradeManagement] = {}
        self._trades: Deque[Trade] = deque(maxlen=max_trades)

        # ── Riesgo / halt ──
        self.trading_halted_until: Optional[float] = None
        self.halt_reason: Optional[str] = None
        self.consecutive_losing_trades: int = 0

    # ════════════════════════════════════════════════════════════════
    #  POSICIONES
    # ════════════════════════════════════════════════════════════════

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def set_position(self, position: Position) -> None:
        """Reemplazar la posición; si queda plana se elimina con su gestión."""
        if position.is_open:
            self._positions[position.symbol] = position
        else:
            self.remove_position(position.symbol)

    def remove_position(self, symbol: str) -> None:
        self._positions.pop(symbol, None)
        self._trade_mgmt.pop(symbol, None)

    @property
    def positions(self) -> Dict[str, Position]:
        return dict(self._positions)

    def count_open_positions(self) -> int:
        return sum(1 for p in self._positions.values() if p.is_open)

    # ════════════════════════════════════════════════════════════════
    #  GESTIÓN (TP parcial / trailing)
    # ════════════════════════════════════════════════════════════════

    def get_trade_mgmt(self, symbol: str) -> Optional[TradeManagement]:
        return self._trade_mgmt.get(symbol)

    def open_trade_mgmt(self, symbol: str, entry_price: float) -> TradeManagement:
        mgmt = TradeManagement.opened_at(entry_price)
        self._trade_mgmt[symbol] = mgmt
        return mgmt

    def drop_trade_mgmt(self, symbol: str) -> None:
        self._trade_mgmt.pop(symbol, None)

    @property
    def trade_mgmt(self) -> Dict[str, TradeManagement]:
        return dict(self._trade_mgmt)

    # ════════════════════════════════════════════════════════════════
    #  TRADES
    # ════════════════════════════════════════════════════════════════

    def record_trade(self, trade: Trade) -> None:
        self._trades.append(trade)

    @property
    def trades(self) -> List[Trade]:
        return list(self._trades)

    # ════════════════════════════════════════════════════════════════
    #  RESET
    # ════════════════════════════════════════════════════════════════

    def clear_halt(self) -> None:
        self.trading_halted_until = None
        self.halt_reason = None
        self.consecutive_losing_trades = 0

    def reset(self, starting_cash: float) -> None:
        self.cash_balance = starting_cash
        self._positions.clear()
        self._trade_mgmt.clear()
        self._trades.clear()
        self.clear_halt()
