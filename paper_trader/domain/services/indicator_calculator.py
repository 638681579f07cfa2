"""
PaperTrader – Domain Service: Indicator Calculator
===================================================
Cálculos de indicadores técnicos puros sobre la serie de cierres
(o de velas) de un símbolo.

Todas las funciones son stateless: el SignalEngine las recalcula desde
el historial en cada evaluación. Cuando no hay historial suficiente
devuelven None ("indefinido"), NUNCA 0 ni una excepción; el llamador
debe saltar el símbolo en ese ciclo.

═══════════════════════════════════════════════════════════════════
  REQUISITOS DE HISTORIAL
═══════════════════════════════════════════════════════════════════

  SMA(n)   → n cierres
  EMA(n)   → n cierres (seed = SMA de los n primeros)
  RSI(n)   → n + 1 cierres
  MACD     → 26 + 9 = 35 cierres
  ATR(n)   → n + 1 velas
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from paper_trader.domain.entities.candle import Candle

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


@dataclass(frozen=True, slots=True)
class MacdResult:
    """Línea MACD, línea de señal e histograma."""

    macd: float
    signal: float
    histogram: float


class IndicatorCalculator:
    """
    Calculadora de indicadores técnicos puros.

    NO mantiene estado. Todas las entradas van de más antiguo a más reciente.
    """

    @staticmethod
    def sma(
        prices: Sequence[float],
        period: int,
    ) -> Optional[float]:
        """
        Calcula SMA (Simple Moving Average) de los últimos `period` valores.

        FÓRMULA:
        SMA = sum(prices[-period:]) / period
        """
        if period <= 0 or len(prices) < period:
            return None

        return sum(prices[-period:]) / period

    @staticmethod
    def ema(
        prices: Sequence[float],
        period: int,
    ) -> Optional[float]:
        """
        Calcula EMA (Exponential Moving Average).

        FÓRMULA:
        EMA_t = price_t × k + EMA_{t-1} × (1-k)
        k = 2 / (period + 1)

        INICIALIZACIÓN:
        EMA inicial = SMA de los primeros `period` valores.
        """
        series = IndicatorCalculator.ema_series(prices, period)
        if not series:
            return None
        return series[-1]

    @staticmethod
    def ema_series(
        prices: Sequence[float],
        period: int,
    ) -> List[float]:
        """
        EMA de cada prefijo de `prices` con longitud >= period.

        El elemento j equivale a ema(prices[:period + j]): el seed SMA es
        el mismo para todos los prefijos y la recurrencia es idéntica,
        así que una sola pasada reproduce exactamente el recálculo
        prefijo a prefijo.
        """
        if period <= 0 or len(prices) < period:
            return []

        k = 2.0 / (period + 1)
        ema = sum(prices[:period]) / period
        series = [ema]
        for price in prices[period:]:
            ema = price * k + ema * (1 - k)
            series.append(ema)
        return series

    @staticmethod
    def rsi(
        prices: Sequence[float],
        period: int = 14,
    ) -> Optional[float]:
        """
        Calcula RSI sobre las últimas `period` variaciones (media simple,
        sin suavizado de Wilder).

        FÓRMULA:
        RSI = 100 - (100 / (1 + RS))
        RS = avg_gain / avg_loss

        Edge case: avg_loss == 0 → 100 (también si no hubo movimiento).
        """
        if period <= 0 or len(prices) < period + 1:
            return None

        gain = 0.0
        loss = 0.0
        for i in range(len(prices) - period, len(prices)):
            change = prices[i] - prices[i - 1]
            if change > 0:
                gain += change
            else:
                loss += -change

        avg_gain = gain / period
        avg_loss = loss / period

        # Protección división por cero
        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    @staticmethod
    def macd(prices: Sequence[float]) -> Optional[MacdResult]:
        """
        MACD(12, 26, 9).

        La línea MACD se forma con EMA12 − EMA26 de cada prefijo creciente
        de cierres (desde 26 cierres hasta la serie completa); la señal es
        la EMA9 de esa línea y el histograma su diferencia.

        Requiere al menos 35 cierres.
        """
        if len(prices) < MACD_SLOW + MACD_SIGNAL:
            return None

        fast = IndicatorCalculator.ema_series(prices, MACD_FAST)
        slow = IndicatorCalculator.ema_series(prices, MACD_SLOW)
        # fast[j] corresponde al prefijo de longitud MACD_FAST + j
        offset = MACD_SLOW - MACD_FAST
        macd_line = [fast[offset + j] - slow[j] for j in range(len(slow))]

        signal = IndicatorCalculator.ema(macd_line, MACD_SIGNAL)
        if signal is None:
            return None

        macd_value = macd_line[-1]
        return MacdResult(
            macd=macd_value,
            signal=signal,
            histogram=macd_value - signal,
        )

    @staticmethod
    def atr(
        candles: Sequence[Candle],
        period: int = 14,
    ) -> Optional[float]:
        """
        Calcula ATR (Average True Range) sobre las últimas `period` velas.

        FÓRMULA:
        TR = max(high-low, |high-prev_close|, |low-prev_close|)
        ATR = media simple de los últimos `period` TR
        """
        if period <= 0 or len(candles) < period + 1:
            return None

        window = candles[-(period + 1):]
        total = 0.0
        for prev, curr in zip(window, window[1:]):
            total += max(
                curr.high - curr.low,
                abs(curr.high - prev.close),
                abs(curr.low - prev.close),
            )
        return total / period
