"""
PaperTrader – Execution Simulator
==================================
Convierte una orden deseada en un fill simulado con slippage y
comisión, y actualiza caja, posición y PnL realizado.

═══════════════════════════════════════════════════════════════
            FLUJO DEL SIMULADOR
═══════════════════════════════════════════════════════════════

    execute(side, symbol, reference_price, quantity)
        │
        ├── quantity <= 0 / precio no finito → False (sin efectos)
        │
        ▼
    effective = ref × (1 ± slippage)     (BUY paga más, SELL recibe menos)
    fee       = effective × qty × commission
        │
        ├── BUY sin caja suficiente (notional + fee) → False
        │
        ▼
    BUY:  cash −= notional + fee
          sin posición / long → abrir o promediar long
          short               → cubrir hasta |short| (PnL = (entry − fill) × q)
    SELL: cash += notional − fee
          sin posición / short → abrir o promediar short
          long                 → reducir hasta qty long (PnL = (fill − entry) × q)
        │
        ▼
    Trade → historial, métricas recalculadas, listener de cierre

ORDEN DEL HISTORIAL:
    El listener de cierre corre después de registrar el trade y su
    muestra de equity. Si dispara una liquidación por racha de pérdidas,
    los trades de liquidación quedan en el historial DESPUÉS del cierre
    que la provocó.

CONTRATO "BEST-EFFORT":
    Nunca lanza. Un rechazo se registra (DEBUG + contador) y se devuelve
    False; los llamadores que ignoran el booleano pierden la orden en
    silencio. Los tests deben verificar el post-estado, no excepciones.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Optional

from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.app.state.portfolio_state import PortfolioState
from paper_trader.domain.entities.position import QTY_EPSILON, Position
from paper_trader.domain.entities.trade import Side, Trade
from paper_trader.domain.exceptions.domain_errors import ExecutionRejected
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("execution_simulator")

# Recibe el PnL neto de un cierre TOTAL de posición
CloseListener = Callable[[float], None]


class ExecutionSimulator:
    """
    Motor de ejecución simulada.

    Responsabilidades:
      1. Aplicar slippage y comisión.
      2. Mantener caja y posición con signo por símbolo.
      3. Acumular PnL realizado en el StatsEngine.
      4. Notificar cierres totales (racha de pérdidas).
    """

    def __init__(
        self,
        portfolio: PortfolioState,
        stats: StatsEngine,
        commission_rate: float = 0.0005,
        slippage_rate: float = 0.0005,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._portfolio = portfolio
        self._stats = stats
        self.commission_rate = commission_rate
        self.slippage_rate = slippage_rate
        self._clock = clock
        self._close_listener: Optional[CloseListener] = None

        self.executions_accepted = 0
        self.executions_rejected = 0

    def set_close_listener(self, listener: Optional[CloseListener]) -> None:
        self._close_listener = listener

    def slipped_price(self, side: Side, reference_price: float) -> float:
        """Precio efectivo: en contra del trader."""
        if side is Side.BUY:
            return reference_price * (1 + self.slippage_rate)
        return reference_price * (1 - self.slippage_rate)

    # ════════════════════════════════════════════════════════════════
    #  EJECUCIÓN
    # ════════════════════════════════════════════════════════════════

    def execute(
        self,
        side: Side,
        symbol: str,
        reference_price: float,
        quantity: float,
    ) -> bool:
        """
        Ejecutar una orden simulada.

        Returns:
            True si se ejecutó; False si fue un no-op (sin efectos).
        """
        if quantity <= 0 or not math.isfinite(quantity):
            return self._reject(symbol, ExecutionRejected(
                f"Cantidad inválida: {quantity}", reason="invalid_quantity",
            ))
        if reference_price is None or not math.isfinite(reference_price):
            return self._reject(symbol, ExecutionRejected(
                f"Precio inválido: {reference_price}", reason="invalid_price",
            ))

        effective = self.slipped_price(side, reference_price)
        notional = effective * quantity
        fee = notional * self.commission_rate
        portfolio = self._portfolio

        if side is Side.BUY and portfolio.cash_balance < notional + fee:
            return self._reject(symbol, ExecutionRejected(
                f"Caja insuficiente: {portfolio.cash_balance:.4f} < {notional + fee:.4f}",
                reason="insufficient_cash",
            ))

        existing = portfolio.get_position(symbol)
        closed_net: Optional[float] = None

        if side is Side.BUY:
            portfolio.cash_balance -= notional + fee
            if existing is None or existing.quantity >= 0:
                portfolio.set_position(self._increase(symbol, existing, effective, quantity, 1))
            else:
                closed_net = self._reduce(existing, effective, quantity, fee)
        else:
            portfolio.cash_balance += notional - fee
            if existing is None or existing.quantity <= 0:
                portfolio.set_position(self._increase(symbol, existing, effective, quantity, -1))
            else:
                closed_net = self._reduce(existing, effective, quantity, fee)

        now = self._clock()
        portfolio.record_trade(Trade(
            timestamp=now,
            side=side,
            symbol=symbol,
            price=effective,
            quantity=quantity,
            fee_paid=fee,
        ))
        self.executions_accepted += 1
        logger.info(
            "%s %s qty=%.6f @ %.6f fee=%.6f cash=%.4f",
            side.value, symbol, quantity, effective, fee, portfolio.cash_balance,
        )
        self._stats.on_execution(now)

        if closed_net is not None and self._close_listener is not None:
            self._close_listener(closed_net)
        return True

    # ════════════════════════════════════════════════════════════════
    #  REGLAS DE POSICIÓN
    # ════════════════════════════════════════════════════════════════

    @staticmethod
    def _increase(
        symbol: str,
        existing: Optional[Position],
        price: float,
        quantity: float,
        sign: int,
    ) -> Position:
        """Abrir o promediar en la misma dirección (media ponderada)."""
        if existing is None or not existing.is_open:
            return Position(symbol=symbol, quantity=sign * quantity, avg_entry_price=price)
        held = abs(existing.quantity)
        total = held + quantity
        avg = (existing.avg_entry_price * held + price * quantity) / total
        return Position(symbol=symbol, quantity=sign * total, avg_entry_price=avg)

    def _reduce(
        self,
        existing: Position,
        price: float,
        quantity: float,
        fee: float,
    ) -> Optional[float]:
        """
        Reducir una posición contraria hasta su tamaño.

        Returns:
            PnL neto si la posición quedó plana; None en un cierre parcial.
        """
        held = abs(existing.quantity)
        reduce_qty = min(quantity, held)
        remaining = held - reduce_qty
        # long: (fill − entry); short: (entry − fill)
        direction = 1.0 if existing.quantity > 0 else -1.0

        if remaining <= QTY_EPSILON:
            gross = (price - existing.avg_entry_price) * held * direction
            net = gross - fee
            self._portfolio.remove_position(existing.symbol)
            self._stats.record_realized(net, closed=True, gross_pnl=gross)
            return net

        gross = (price - existing.avg_entry_price) * reduce_qty * direction
        self._portfolio.set_position(Position(
            symbol=existing.symbol,
            quantity=direction * remaining,
            avg_entry_price=existing.avg_entry_price,
        ))
        self._stats.record_realized(gross - fee, closed=False)
        return None

    def _reject(self, symbol: str, reason: ExecutionRejected) -> bool:
        self.executions_rejected += 1
        logger.debug("Ejecución rechazada [%s]: %s (%s)", symbol, reason.message, reason.reason)
        return False

    @property
    def stats(self) -> dict:
        return {
            "executions_accepted": self.executions_accepted,
            "executions_rejected": self.executions_rejected,
        }
