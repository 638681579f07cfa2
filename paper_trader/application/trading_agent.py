"""
PaperTrader – Trading Agent (motor de paper trading)
=====================================================
Dueño de TODO el estado del motor y de la superficie de control.

ARQUITECTURA DE EJECUCIÓN:

  ┌──────────────┐ tick / feed_status
  │ Market feed  │──────────────────┐
  └──────────────┘                  ▼
                              ┌───────────┐   Event   ┌─────────────────────┐
  ┌──────────────┐  clock     │ Event Bus │──────────▸│ consumer (1 task)   │
  │ Scheduler 1s │───────────▸│  (queue)  │           │ on_tick / on_clock /│
  └──────────────┘            └───────────┘           │ on_feed_status      │
                                                      └─────────────────────┘

UN SOLO ESCRITOR:
  Los handlers son síncronos y corren uno detrás de otro en el consumidor.
  Los métodos de control (stop, reset, set_strategy, liquidate_all,
  get_snapshot) también son síncronos y corren en el mismo event loop,
  así que nunca se intercalan con un handler: no hacen falta locks y un
  snapshot siempre es consistente.

CICLO DE VIDA:
  start()  → backfill histórico (best-effort, lotes de 5) → feed →
             scheduler. Idempotente.
  stop()   → síncrono: flag + generación + cancelación + cierre del feed.
             Un backfill en vuelo termina por su cuenta y se ignora.
  close()  → stop() + baja del consumidor en el bus (motor descartado).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from paper_trader.app.services.candle_builder import CandleBuilder
from paper_trader.app.services.execution_simulator import ExecutionSimulator
from paper_trader.app.services.risk_manager import RiskManager
from paper_trader.app.services.signal_engine import SignalEngine
from paper_trader.app.services.stats_engine import StatsEngine
from paper_trader.app.state.market_state import MarketStateManager
from paper_trader.app.state.portfolio_state import PortfolioState
from paper_trader.application.ports.market_data_provider import (
    CLOCK_TOPIC,
    FEED_STATUS_TOPIC,
    TICK_TOPIC,
    FeedStatus,
    FeedStatusKind,
    MarketDataProvider,
)
from paper_trader.application.use_cases.evaluate_cycle_usecase import EvaluateCycleUseCase
from paper_trader.application.use_cases.process_tick_usecase import ProcessTickUseCase
from paper_trader.domain.exceptions.domain_errors import BackfillError
from paper_trader.domain.value_objects.engine_snapshot import EngineSnapshot
from paper_trader.domain.value_objects.strategy import (
    StrategyConfig,
    StrategyName,
    get_strategy_config,
)
from paper_trader.domain.value_objects.tick import Tick
from paper_trader.infrastructure.event_bus import Event, EventBus
from paper_trader.shared.config.settings import Settings, settings as default_settings
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("trading_agent")

CONSUMER_NAME = "trading_agent"


@dataclass(frozen=True, slots=True)
class BackfillResult:
    """Resultado del backfill de UN símbolo."""

    symbol: str
    candles: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def exchange_interval(candle_period: float) -> str:
    """Intervalo de klines equivalente al periodo de vela (segundos)."""
    if candle_period <= 60:
        return "1m"
    if candle_period <= 5 * 60:
        return "5m"
    if candle_period <= 15 * 60:
        return "15m"
    return "5m"


class TradingAgent:
    """
    Motor de paper trading.

    Responsabilidades:
      1. Consumir ticks y construir velas.
      2. Evaluar señales y gestionar posiciones una vez por vela.
      3. Vigilar el feed (watchdog) y el backfill de arranque.
      4. Exponer la superficie de control y el snapshot.
    """

    def __init__(
        self,
        feed: MarketDataProvider,
        config: Settings | None = None,
        symbols: Iterable[str] | None = None,
        strategy: "str | StrategyName | None" = None,
        starting_cash: float | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        cfg = config or default_settings
        self._settings = cfg
        self._feed = feed
        self._clock = clock
        self._sleep = sleep
        self._bus = event_bus or EventBus(max_queue_size=cfg.event_bus_max_queue_size)

        raw_symbols = symbols if symbols is not None else cfg.watch_symbols
        self.symbols: List[str] = list(dict.fromkeys(s.strip().upper() for s in raw_symbols if s.strip()))
        self.base_currency = cfg.base_currency
        self._strategy: StrategyConfig = get_strategy_config(strategy or cfg.default_strategy)

        # ── Estado ──
        self.market_state = MarketStateManager(
            self.symbols,
            price_history_size=cfg.price_history_size,
            max_candles=cfg.max_candles,
        )
        self.portfolio = PortfolioState(
            starting_cash if starting_cash is not None else cfg.starting_cash,
            max_trades=cfg.max_trades,
        )

        # ── Servicios ──
        self.candle_builder = CandleBuilder()
        self.stats = StatsEngine(
            self.portfolio,
            self.market_state,
            max_equity_points=cfg.max_equity_points,
            sharpe_min_samples=cfg.sharpe_min_samples,
        )
        self.simulator = ExecutionSimulator(
            self.portfolio,
            self.stats,
            commission_rate=cfg.commission_rate,
            slippage_rate=cfg.slippage_rate,
            clock=clock,
        )
        self.risk_manager = RiskManager(
            self.portfolio,
            self.market_state,
            self.simulator,
            self.stats,
            config_provider=lambda: self._strategy,
            min_order_notional=cfg.min_order_notional,
            quantity_precision=cfg.quantity_precision,
            clock=clock,
        )
        self.simulator.set_close_listener(self.risk_manager.on_trade_closed)
        self.signal_engine = SignalEngine()

        # ── Casos de uso ──
        self.process_tick = ProcessTickUseCase(self.candle_builder, self.market_state)
        self.evaluate_cycle = EvaluateCycleUseCase(
            self.market_state,
            self.signal_engine,
            self.risk_manager,
            self.stats,
            config_provider=lambda: self._strategy,
            min_candles=cfg.min_candles_for_signals,
        )

        # ── Ciclo de vida ──
        self.is_running = False
        self._starting = False
        self._generation = 0
        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._scheduler_task: Optional[asyncio.Task] = None

        # ── Observabilidad ──
        self.feed_connected = False
        self.watchdog_reconnects = 0
        self.handler_errors = 0
        self.feed_errors = 0
        self.last_backfill: List[BackfillResult] = []

    # ════════════════════════════════════════════════════════════════
    #  SUPERFICIE DE CONTROL
    # ════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """Backfill (best-effort) → feed → scheduler. Idempotente."""
        if self.is_running or self._starting:
            return
        self._starting = True
        generation = self._generation
        try:
            await self.backfill()
        finally:
            self._starting = False

        if generation != self._generation:
            logger.info("start() abandonado: el motor se detuvo durante el backfill")
            return

        if self._queue is None:
            self._queue = await self._bus.subscribe(
                CONSUMER_NAME, TICK_TOPIC, FEED_STATUS_TOPIC, CLOCK_TOPIC,
            )
        self._drain_queue()

        self.is_running = True
        self.portfolio.clear_halt()
        self.stats.mark_session_start()
        self.market_state.last_any_update = self._clock()

        loop = asyncio.get_running_loop()
        self._consumer_task = loop.create_task(self._consume(), name="agent-consumer")
        try:
            await self._feed.start(self.symbols, self._bus.publish)
        except Exception as e:
            # Sin feed no hay motor: revertir para que start() pueda reintentarse
            logger.error("No se pudo iniciar el feed: %s", e, exc_info=True)
            self.stop()
            raise
        self._scheduler_task = loop.create_task(self._schedule(), name="agent-scheduler")

        logger.info(
            "Motor iniciado | estrategia=%s símbolos=%d equity=%.2f",
            self._strategy.name.value, len(self.symbols), self.stats.session_start_equity,
        )

    def stop(self) -> None:
        """Detener scheduler y feed. Seguro si ya está detenido."""
        was_running = self.is_running
        self.is_running = False
        self._generation += 1
        for task in (self._scheduler_task, self._consumer_task):
            if task is not None and not task.done():
                task.cancel()
        self._scheduler_task = None
        self._consumer_task = None
        self._feed.stop()
        self.feed_connected = False
        if was_running:
            logger.info("Motor detenido")

    async def close(self) -> None:
        """Detener y soltar la suscripción al bus (motor descartado)."""
        self.stop()
        if self._queue is not None:
            await self._bus.unsubscribe(self._queue)
            self._queue = None

    def reset(self, starting_cash: float | None = None) -> None:
        """Vaciar posiciones, trades, métricas, velas y halt. No toca la estrategia."""
        cash = starting_cash if starting_cash is not None else self._settings.starting_cash
        self.portfolio.reset(cash)
        self.stats.reset()
        self.market_state.reset()
        self.candle_builder.reset()
        self.evaluate_cycle.last_decisions.clear()
        logger.info("Motor reseteado | caja=%.2f", cash)

    def set_strategy(self, name: "str | StrategyName") -> StrategyConfig:
        """
        Reemplazar la estrategia activa. No toca posiciones ni caja.

        Raises:
            InvalidStrategyError: nombre desconocido.
        """
        config = get_strategy_config(name)
        previous = self._strategy.name
        self._strategy = config
        logger.info("Estrategia cambiada: %s → %s", previous.value, config.name.value)
        return config

    def liquidate_all(self) -> int:
        return self.risk_manager.liquidate_all()

    def get_snapshot(self) -> EngineSnapshot:
        equity, unrealized = self.stats.equity_and_pnl()
        return EngineSnapshot(
            is_running=self.is_running,
            watch_symbols=tuple(self.symbols),
            base_currency=self.base_currency,
            cash_balance=self.portfolio.cash_balance,
            positions=self.portfolio.positions,
            prices=self.market_state.tickers(),
            trades=tuple(self.portfolio.trades),
            equity=equity,
            unrealized_pnl=unrealized,
            halt_reason=self.portfolio.halt_reason,
            trading_halted_until=self.portfolio.trading_halted_until,
            strategy=self._strategy.name.value,
            metrics=self.stats.metrics(),
        )

    @property
    def strategy(self) -> StrategyConfig:
        return self._strategy

    def is_trading_halted(self) -> bool:
        return self.risk_manager.is_trading_halted()

    # ════════════════════════════════════════════════════════════════
    #  HANDLERS (consumidor único)
    # ════════════════════════════════════════════════════════════════

    def on_tick(self, tick: Tick) -> None:
        self.process_tick.execute(tick, self._strategy.candle_period)

    def on_clock(self, now: float) -> None:
        """Watchdog + ciclo de evaluación."""
        if not self.is_running:
            return
        self._watchdog(now)
        self.evaluate_cycle.execute(now, self.symbols)

    def on_feed_status(self, status: FeedStatus) -> None:
        if status.kind is FeedStatusKind.OPEN:
            self.feed_connected = True
            logger.info("Feed conectado")
        elif status.kind is FeedStatusKind.CLOSE:
            self.feed_connected = False
            logger.info("Feed desconectado %s", status.detail)
        else:
            self.feed_connected = False
            self.feed_errors += 1
            logger.warning("Error del feed: %s", status.detail)

    def _watchdog(self, now: float) -> None:
        last = self.market_state.last_any_update
        if last > 0 and now - last > self._settings.feed_stale_after:
            self.watchdog_reconnects += 1
            logger.warning("Sin ticks hace %.1fs → reconexión forzada del feed", now - last)
            self._feed.force_reconnect()
            self.market_state.last_any_update = now

    def dispatch(self, event: Event) -> None:
        """Enrutar un evento a su handler; un fallo nunca detiene el loop."""
        try:
            if event.topic == TICK_TOPIC:
                self.on_tick(event.payload)
            elif event.topic == CLOCK_TOPIC:
                self.on_clock(event.payload)
            elif event.topic == FEED_STATUS_TOPIC:
                self.on_feed_status(event.payload)
            else:
                logger.debug("Tópico ignorado: %s", event.topic)
        except Exception as e:
            self.handler_errors += 1
            logger.error("Error en handler '%s': %s", event.topic, e, exc_info=True)

    # ════════════════════════════════════════════════════════════════
    #  TASKS
    # ════════════════════════════════════════════════════════════════

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event: Event = await self._queue.get()
            self.dispatch(event)

    async def _schedule(self) -> None:
        while True:
            await self._sleep(self._settings.scheduler_interval)
            await self._bus.publish(CLOCK_TOPIC, self._clock())

    def _drain_queue(self) -> None:
        assert self._queue is not None
        while not self._queue.empty():
            self._queue.get_nowait()

    # ════════════════════════════════════════════════════════════════
    #  BACKFILL
    # ════════════════════════════════════════════════════════════════

    async def backfill(self) -> List[BackfillResult]:
        """
        Cargar velas históricas de todos los símbolos en lotes paralelos.
        Los fallos quedan aislados por símbolo.
        """
        cfg = self._settings
        generation = self._generation
        interval = exchange_interval(self._strategy.candle_period)
        batch_size = max(1, cfg.backfill_batch_size)
        results: List[BackfillResult] = []

        for i in range(0, len(self.symbols), batch_size):
            batch = self.symbols[i:i + batch_size]
            results.extend(await asyncio.gather(
                *(self._backfill_symbol(s, interval, generation) for s in batch)
            ))
            await self._sleep(cfg.backfill_batch_delay)

        failed = [r.symbol for r in results if not r.ok]
        logger.info(
            "Backfill %s: %d/%d símbolos OK%s",
            interval, len(results) - len(failed), len(results),
            f" (fallidos: {', '.join(failed)})" if failed else "",
        )
        self.last_backfill = results
        return results

    async def _backfill_symbol(self, symbol: str, interval: str, generation: int) -> BackfillResult:
        try:
            candles = await self._feed.get_historical_candles(
                symbol, interval, self._settings.backfill_limit,
            )
        except BackfillError as exc:
            logger.warning("Backfill fallido [%s]: %s", symbol, exc.message)
            return BackfillResult(symbol=symbol, error=exc.message)
        except Exception as exc:
            logger.warning("Backfill fallido [%s]: %s", symbol, exc)
            return BackfillResult(symbol=symbol, error=str(exc) or type(exc).__name__)

        if generation != self._generation:
            return BackfillResult(symbol=symbol, error="stale")

        self.market_state.replace_candles(symbol, candles)
        self.candle_builder.drop(symbol)
        return BackfillResult(symbol=symbol, candles=len(candles))

    # ════════════════════════════════════════════════════════════════
    #  DIAGNÓSTICO
    # ════════════════════════════════════════════════════════════════

    @property
    def diagnostics(self) -> dict:
        return {
            "is_running": self.is_running,
            "feed_connected": self.feed_connected,
            "ticks_processed": self.process_tick.processed_count,
            "candles_sealed": self.process_tick.candles_sealed,
            "cycles_run": self.evaluate_cycle.cycles_run,
            "signals_emitted": self.evaluate_cycle.signals_emitted,
            "symbol_errors": self.evaluate_cycle.symbol_errors,
            "watchdog_reconnects": self.watchdog_reconnects,
            "handler_errors": self.handler_errors,
            "feed_errors": self.feed_errors,
            "bus_subscribers": self._bus.subscriber_count,
            "events_dropped": self._bus.events_dropped,
            **self.simulator.stats,
            **self.risk_manager.stats,
            "signal_engine": self.signal_engine.stats,
            "strategy": self._strategy.to_dict(),
            "backfill_failed": [r.symbol for r in self.last_backfill if not r.ok],
            "trade_mgmt": {s: m.to_dict() for s, m in self.portfolio.trade_mgmt.items()},
            "last_signals": {
                s: d.to_dict() for s, d in self.evaluate_cycle.last_decisions.items()
            },
            "market": self.market_state.snapshot(),
        }
