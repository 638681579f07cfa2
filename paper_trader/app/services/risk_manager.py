"""
PaperTrader – Position & Risk Manager
======================================
Máquina de estados por símbolo {flat, long, short} evaluada una vez por
vela cerrada.

═══════════════════════════════════════════════════════════════
            GESTIÓN DE UNA POSICIÓN LONG (SHORT simétrico)
═══════════════════════════════════════════════════════════════

    highest = max(highest, price)
        │
        ├── (a) price <= entry × (1 − SL)              → cierre total
        ├── (b) sin parcial y price >= entry × (1 + TP) → cierre 50%
        └── (c) con parcial y price <= highest − entry × trailing
                                                        → cierre del resto

    Independientemente: señal SHORT con long abierto → cierre total y
    apertura SHORT al precio actual (reversión).

    entry = precio medio de la posición.

═══════════════════════════════════════════════════════════════
            CIRCUIT BREAKER
═══════════════════════════════════════════════════════════════

    Cada cierre TOTAL informa su PnL neto:
      neto < 0 → racha += 1
      neto > 0 → racha = 0
      neto = 0 → sin cambios
    racha >= max_consecutive_losing_trades →
      halt_reason = "loss_streak", halted_until = now + cooldown,
      liquidación de todas las posiciones.

    is_trading_halted() es SIEMPRE False: el halt queda registrado para
    observabilidad pero no bloquea nuevas entradas.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Optional

from paper_trader.app.services.execution_simulator import ExecutionSimulator
from paper_trader.app.services.signal_engine import SignalDecision
from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.app.state.portfolio_state import PortfolioState
from paper_trader.domain.entities.position import Direction, Position, TradeManagement
from paper_trader.domain.entities.trade import Side
from paper_trader.domain.value_objects.strategy import StrategyConfig
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("risk_manager")

HALT_LOSS_STREAK = "loss_streak"
PARTIAL_FRACTION = 0.5


class RiskManager:
    """
    Gestor de posiciones y riesgo.

    Lee la estrategia activa a través de `config_provider` en cada
    llamada: un cambio de estrategia aplica en el siguiente ciclo sin
    tocar posiciones abiertas.
    """

    def __init__(
        self,
        portfolio: PortfolioState,
        market_state: MarketStateManager,
        simulator: ExecutionSimulator,
        stats: StatsEngine,
        config_provider: Callable[[], StrategyConfig],
        min_order_notional: float = 5.0,
        quantity_precision: float = 1e6,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._portfolio = portfolio
        self._market = market_state
        self._simulator = simulator
        self._stats = stats
        self._config = config_provider
        self._min_order_notional = min_order_notional
        self._quantity_precision = quantity_precision
        self._clock = clock
        self._liquidating = False

        self.positions_opened = 0
        self.halts_triggered = 0

    # ════════════════════════════════════════════════════════════════
    #  CICLO POR SÍMBOLO
    # ════════════════════════════════════════════════════════════════

    def manage(self, decision: SignalDecision) -> None:
        """Aplicar la decisión de señales de una vela cerrada."""
        symbol = decision.symbol
        price = decision.price
        position = self._portfolio.get_position(symbol)

        if position is None or not position.is_open:
            if decision.long_signal:
                self.open_position(Direction.LONG, symbol, price)
            elif decision.short_signal:
                self.open_position(Direction.SHORT, symbol, price)
            return

        mgmt = self._portfolio.get_trade_mgmt(symbol)
        if mgmt is not None:
            if position.is_long:
                self._manage_long(position, mgmt, price)
            else:
                self._manage_short(position, mgmt, price)

        # Reversión sobre la posición vigente tras la gestión de salidas
        if position.is_long and decision.short_signal:
            self._reverse(symbol, price, Side.SELL, Direction.SHORT)
        elif position.is_short and decision.long_signal:
            self._reverse(symbol, price, Side.BUY, Direction.LONG)

    def _manage_long(self, position: Position, mgmt: TradeManagement, price: float) -> None:
        config = self._config()
        symbol = position.symbol
        entry = position.avg_entry_price
        qty = abs(position.quantity)
        mgmt.highest_since_entry = max(mgmt.highest_since_entry, price)

        stop_loss = entry * (1 - config.stop_loss_pct)
        take_half = entry * (1 + config.take_profit_half_pct)
        trailing_stop = mgmt.highest_since_entry - entry * config.trailing_pct

        if price <= stop_loss:
            logger.info("Stop-loss LONG [%s] price=%.6f <= %.6f", symbol, price, stop_loss)
            self._simulator.execute(Side.SELL, symbol, price, qty)
            self._portfolio.drop_trade_mgmt(symbol)
        elif not mgmt.has_taken_partial and price >= take_half:
            logger.info("TP parcial LONG [%s] price=%.6f >= %.6f", symbol, price, take_half)
            self._simulator.execute(Side.SELL, symbol, price, qty * PARTIAL_FRACTION)
            mgmt.has_taken_partial = True
        elif mgmt.has_taken_partial and price <= trailing_stop:
            logger.info("Trailing LONG [%s] price=%.6f <= %.6f", symbol, price, trailing_stop)
            self._simulator.execute(Side.SELL, symbol, price, qty)
            self._portfolio.drop_trade_mgmt(symbol)

    def _manage_short(self, position: Position, mgmt: TradeManagement, price: float) -> None:
        config = self._config()
        symbol = position.symbol
        entry = position.avg_entry_price
        qty = abs(position.quantity)
        mgmt.lowest_since_entry = min(mgmt.lowest_since_entry, price)

        stop_loss = entry * (1 + config.stop_loss_pct)
        take_half = entry * (1 - config.take_profit_half_pct)
        trailing_stop = mgmt.lowest_since_entry + entry * config.trailing_pct

        if price >= stop_loss:
            logger.info("Stop-loss SHORT [%s] price=%.6f >= %.6f", symbol, price, stop_loss)
            self._simulator.execute(Side.BUY, symbol, price, qty)
            self._portfolio.drop_trade_mgmt(symbol)
        elif not mgmt.has_taken_partial and price <= take_half:
            logger.info("TP parcial SHORT [%s] price=%.6f <= %.6f", symbol, price, take_half)
            self._simulator.execute(Side.BUY, symbol, price, qty * PARTIAL_FRACTION)
            mgmt.has_taken_partial = True
        elif mgmt.has_taken_partial and price >= trailing_stop:
            logger.info("Trailing SHORT [%s] price=%.6f >= %.6f", symbol, price, trailing_stop)
            self._simulator.execute(Side.BUY, symbol, price, qty)
            self._portfolio.drop_trade_mgmt(symbol)

    def _reverse(self, symbol: str, price: float, close_side: Side, direction: Direction) -> None:
        # La gestión de salidas pudo haber cerrado ya la posición
        current = self._portfolio.get_position(symbol)
        if current is not None and current.is_open:
            self._simulator.execute(close_side, symbol, price, abs(current.quantity))
            self._portfolio.drop_trade_mgmt(symbol)
        logger.info("Reversión [%s] → %s @ %.6f", symbol, direction.value, price)
        self.open_position(direction, symbol, price)

    # ════════════════════════════════════════════════════════════════
    #  APERTURA
    # ════════════════════════════════════════════════════════════════

    def open_position(self, direction: Direction, symbol: str, price: float) -> bool:
        """
        Abrir (o ampliar) una posición dimensionada por equity.

        Returns:
            True si se ejecutó la entrada.
        """
        config = self._config()
        existing = self._portfolio.get_position(symbol)
        already_open = existing is not None and existing.is_open
        if not already_open and self._portfolio.count_open_positions() >= config.max_concurrent_positions:
            logger.debug(
                "Entrada %s [%s] omitida: límite de %d posiciones",
                direction.value, symbol, config.max_concurrent_positions,
            )
            return False

        equity = self._stats.equity()
        notional = max(0.0, equity * config.position_size_pct)
        if notional < self._min_order_notional:
            logger.debug("Entrada [%s] omitida: nocional %.4f < mínimo", symbol, notional)
            return False

        side = Side.BUY if direction is Direction.LONG else Side.SELL
        exec_price = self._simulator.slipped_price(side, price)
        if not math.isfinite(exec_price) or exec_price <= 0:
            logger.debug("Entrada [%s] omitida: precio inválido %r", symbol, price)
            return False
        precision = self._quantity_precision
        qty = math.floor(notional / exec_price * precision) / precision
        if qty <= 0:
            return False

        if not self._simulator.execute(side, symbol, price, qty):
            return False

        self._portfolio.open_trade_mgmt(symbol, exec_price)
        self.positions_opened += 1
        logger.info(
            "Posición %s abierta [%s] qty=%.6f entry=%.6f notional=%.2f",
            direction.value, symbol, qty, exec_price, notional,
        )
        return True

    # ════════════════════════════════════════════════════════════════
    #  CIRCUIT BREAKER
    # ════════════════════════════════════════════════════════════════

    def on_trade_closed(self, net_pnl: float) -> None:
        """Listener del simulador para cada cierre total."""
        portfolio = self._portfolio
        if net_pnl < 0:
            portfolio.consecutive_losing_trades += 1
            config = self._config()
            if portfolio.consecutive_losing_trades >= config.max_consecutive_losing_trades:
                now = self._clock()
                portfolio.trading_halted_until = now + config.cooldown_after_loss_streak
                portfolio.halt_reason = HALT_LOSS_STREAK
                self.halts_triggered += 1
                logger.warning(
                    "Racha de %d pérdidas → halt hasta %.0f y liquidación total",
                    portfolio.consecutive_losing_trades, portfolio.trading_halted_until,
                )
                self.liquidate_all()
        elif net_pnl > 0:
            portfolio.consecutive_losing_trades = 0

    def is_trading_halted(self) -> bool:
        # El halt se registra pero nunca bloquea entradas
        return False

    def liquidate_all(self) -> int:
        """
        Cerrar todas las posiciones al mejor precio conocido:
        ticker → ring de precios → cierre de vela → precio medio de entrada.

        Returns:
            Número de órdenes de cierre ejecutadas.
        """
        if self._liquidating:
            return 0
        self._liquidating = True
        closed = 0
        try:
            for symbol in list(self._portfolio.positions):
                position = self._portfolio.get_position(symbol)
                if position is None or not position.is_open:
                    continue
                price: Optional[float] = self._market.get_latest_known_price(symbol)
                if price is None:
                    price = position.avg_entry_price
                if not math.isfinite(price):
                    continue
                side = Side.SELL if position.is_long else Side.BUY
                if self._simulator.execute(side, symbol, price, abs(position.quantity)):
                    closed += 1
        finally:
            self._liquidating = False
        if closed:
            logger.info("Liquidación total: %d posiciones cerradas", closed)
        return closed

    @property
    def stats(self) -> dict:
        return {
            "positions_opened": self.positions_opened,
            "halts_triggered": self.halts_triggered,
            "consecutive_losing_trades": self._portfolio.consecutive_losing_trades,
        }
