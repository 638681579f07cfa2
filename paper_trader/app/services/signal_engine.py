"""
PaperTrader – Signal Engine
============================
Evalúa las condiciones de entrada/salida de la estrategia activa sobre
la última vela CERRADA de un símbolo.

═══════════════════════════════════════════════════════════════
          INDICADORES (vela actual y vela anterior)
═══════════════════════════════════════════════════════════════

  EMA 9 / EMA 21   → actual y anterior (cruce)
  MACD(12,26,9)    → actual y anterior (cruce con su señal)
  RSI 14           → actual
  ATR 14           → actual (filtro de volatilidad mínima)

"Anterior" = indicadores calculados sobre el historial sin la última
vela. Si cualquier valor requerido es indefinido → None (el llamador
marca la vela como procesada y salta el símbolo).

═══════════════════════════════════════════════════════════════
          CONDICIONES
═══════════════════════════════════════════════════════════════

  ema_cross_up    prev(EMA9 <= EMA21) AND curr(EMA9 > EMA21)
  ema_cross_down  prev(EMA9 >= EMA21) AND curr(EMA9 < EMA21)
  macd_cross_up   prev(MACD <= signal) AND curr(MACD > signal)
  macd_cross_down prev(MACD >= signal) AND curr(MACD < signal)
  atr_ok          ATR > close × atr_filter_pct

  trend:
    LONG  = ema_cross_up AND RSI > rsi_long AND macd_cross_up AND atr_ok
    SHORT = ema_cross_down AND RSI < rsi_short AND macd_cross_down AND atr_ok

  mean_reversion:
    LONG  = RSI < rsi_long AND atr_ok
    SHORT = RSI > rsi_short AND atr_ok

  allow_shorts = False → SHORT siempre False.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.services.indicator_calculator import IndicatorCalculator
from paper_trader.domain.value_objects.strategy import StrategyConfig, StrategyMode
from paper_trader.shared.logging.logger import get_logger

logger = get_logger("signal_engine")

EMA_FAST = 9
EMA_SLOW = 21
RSI_PERIOD = 14
ATR_PERIOD = 14


@dataclass(frozen=True, slots=True)
class SignalDecision:
    """Resultado de evaluar una vela cerrada."""

    symbol: str
    price: float          # cierre de la vela evaluada
    candle_end: float
    long_signal: bool
    short_signal: bool
    ema_fast: float
    ema_slow: float
    rsi: float
    macd: float
    macd_signal: float
    atr: float
    ema_cross_up: bool = False
    ema_cross_down: bool = False
    macd_cross_up: bool = False
    macd_cross_down: bool = False
    atr_ok: bool = False

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "candle_end": self.candle_end,
            "long_signal": self.long_signal,
            "short_signal": self.short_signal,
            "ema_9": self.ema_fast,
            "ema_21": self.ema_slow,
            "rsi_14": self.rsi,
            "macd": self.macd,
            "macd_signal": self.macd_signal,
            "atr_14": self.atr,
        }


class SignalEngine:
    """
    Motor de señales por estrategia.

    Stateless respecto al mercado: todo se recalcula desde las velas
    recibidas. Solo guarda contadores para monitoreo.
    """

    def __init__(self, calculator: IndicatorCalculator | None = None) -> None:
        self._calc = calculator or IndicatorCalculator()
        self._evaluations = 0
        self._undefined = 0
        self._long_signals = 0
        self._short_signals = 0

    def evaluate(
        self,
        symbol: str,
        candles: Sequence[Candle],
        config: StrategyConfig,
    ) -> Optional[SignalDecision]:
        """
        Evaluar la última vela de `candles`.

        Returns:
            SignalDecision, o None si algún indicador es indefinido.
        """
        self._evaluations += 1
        if len(candles) < 2:
            self._undefined += 1
            return None

        calc = self._calc
        closes = [c.close for c in candles]
        prev_closes = closes[:-1]

        ema_fast_prev = calc.ema(prev_closes, EMA_FAST)
        ema_slow_prev = calc.ema(prev_closes, EMA_SLOW)
        ema_fast = calc.ema(closes, EMA_FAST)
        ema_slow = calc.ema(closes, EMA_SLOW)
        if None in (ema_fast_prev, ema_slow_prev, ema_fast, ema_slow):
            self._undefined += 1
            return None

        rsi = calc.rsi(closes, RSI_PERIOD)
        macd_prev = calc.macd(prev_closes)
        macd = calc.macd(closes)
        atr = calc.atr(candles, ATR_PERIOD)
        if rsi is None or macd_prev is None or macd is None or atr is None:
            self._undefined += 1
            return None

        latest = candles[-1]
        price = latest.close

        atr_ok = atr > price * config.atr_filter_pct
        ema_cross_up = ema_fast_prev <= ema_slow_prev and ema_fast > ema_slow
        ema_cross_down = ema_fast_prev >= ema_slow_prev and ema_fast < ema_slow
        macd_cross_up = macd_prev.macd <= macd_prev.signal and macd.macd > macd.signal
        macd_cross_down = macd_prev.macd >= macd_prev.signal and macd.macd < macd.signal

        if config.mode is StrategyMode.TREND:
            long_signal = (
                ema_cross_up and rsi > config.rsi_long_threshold
                and macd_cross_up and atr_ok
            )
            short_signal = (
                ema_cross_down and rsi < config.rsi_short_threshold
                and macd_cross_down and atr_ok
            )
        elif config.mode is StrategyMode.MEAN_REVERSION:
            long_signal = rsi < config.rsi_long_threshold and atr_ok
            short_signal = rsi > config.rsi_short_threshold and atr_ok
        else:
            raise ValueError(f"Modo de estrategia no soportado: {config.mode!r}")

        if not config.allow_shorts:
            short_signal = False

        if long_signal:
            self._long_signals += 1
        if short_signal:
            self._short_signals += 1
        if long_signal or short_signal:
            logger.info(
                "Señal %s [%s] C=%.6f EMA9=%.6f EMA21=%.6f RSI=%.2f MACD=%.6f/%.6f ATR=%.6f",
                "LONG" if long_signal else "SHORT", symbol, price,
                ema_fast, ema_slow, rsi, macd.macd, macd.signal, atr,
            )

        return SignalDecision(
            symbol=symbol,
            price=price,
            candle_end=latest.end,
            long_signal=long_signal,
            short_signal=short_signal,
            ema_fast=ema_fast,
            ema_slow=ema_slow,
            rsi=rsi,
            macd=macd.macd,
            macd_signal=macd.signal,
            atr=atr,
            ema_cross_up=ema_cross_up,
            ema_cross_down=ema_cross_down,
            macd_cross_up=macd_cross_up,
            macd_cross_down=macd_cross_down,
            atr_ok=atr_ok,
        )

    @property
    def stats(self) -> dict:
        return {
            "evaluations": self._evaluations,
            "undefined": self._undefined,
            "long_signals": self._long_signals,
            "short_signals": self._short_signals,
        }
