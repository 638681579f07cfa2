"""
PaperTrader – Settings (Pydantic BaseSettings)
==============================================
Configuración centralizada cargada desde variables de entorno / .env.
Se usa pydantic-settings para validación estricta al arranque.

NOTA: los presets de estrategia (low / medium / high) NO viven aquí.
Son constantes inmutables del dominio, ver domain/value_objects/strategy.py.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List

# Universo por defecto: 30 pares USDT populares de Binance
DEFAULT_WATCH_SYMBOLS: List[str] = [
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT", "XRPUSDT",
    "ADAUSDT", "DOGEUSDT", "TRXUSDT", "TONUSDT", "AVAXUSDT",
    "DOTUSDT", "POLUSDT", "LINKUSDT", "LTCUSDT", "BCHUSDT",
    "ATOMUSDT", "NEARUSDT", "ETCUSDT", "XLMUSDT", "FILUSDT",
    "ICPUSDT", "ARBUSDT", "OPUSDT", "APTUSDT", "SUIUSDT",
    "SEIUSDT", "INJUSDT", "AAVEUSDT", "RUNEUSDT", "UNIUSDT",
]


class Settings(BaseSettings):
    # ─── Binance (feed) ─────────────────────────────────────────────────
    binance_ws_url: str = Field(
        default="wss://stream.binance.com:9443/stream?streams=",
        description="Endpoint de streams combinados de Binance",
    )
    binance_rest_url: str = Field(
        default="https://api.binance.com/api/v3/klines",
        description="Endpoint REST de klines históricas",
    )
    watch_symbols: List[str] = Field(
        default_factory=lambda: list(DEFAULT_WATCH_SYMBOLS),
        description="Símbolos vigilados (se normalizan a mayúsculas)",
    )
    base_currency: str = Field(default="USDT", description="Moneda de la caja")

    # ─── Portfolio / Ejecución ──────────────────────────────────────────
    starting_cash: float = Field(default=10_000.0, description="Caja inicial y tras reset")
    default_strategy: str = Field(default="medium", description="Estrategia inicial")
    commission_rate: float = Field(default=0.0005, description="Comisión sobre el nocional")
    slippage_rate: float = Field(
        default=0.0005, description="Slippage plano en contra del trader",
    )
    min_order_notional: float = Field(
        default=5.0, description="Nocional mínimo para abrir posición",
    )
    quantity_precision: float = Field(
        default=1e6, description="Las cantidades se truncan a 1/precision",
    )

    # ─── Buffers en memoria ─────────────────────────────────────────────
    price_history_size: int = Field(default=120, description="Ring de precios recientes")
    max_candles: int = Field(default=1000, description="Velas cerradas por símbolo")
    max_trades: int = Field(default=5000, description="Historial de trades")
    max_equity_points: int = Field(default=5000, description="Serie equity-vs-tiempo")

    # ─── Señales / Métricas ─────────────────────────────────────────────
    min_candles_for_signals: int = Field(
        default=40, description="Velas cerradas mínimas antes de evaluar un símbolo",
    )
    sharpe_min_samples: int = Field(
        default=20, description="Muestras de equity mínimas para el ratio tipo Sharpe",
    )

    # ─── Scheduler / Watchdog ───────────────────────────────────────────
    scheduler_interval: float = Field(default=1.0, description="Periodo del tick de evaluación (seg)")
    feed_stale_after: float = Field(
        default=15.0, description="Segundos sin ticks antes de forzar reconexión",
    )
    feed_reconnect_delay: float = Field(
        default=1.0, description="Delay fijo (seg) entre reconexiones",
    )

    # ─── Backfill histórico ─────────────────────────────────────────────
    backfill_limit: int = Field(default=60, description="Klines por símbolo")
    backfill_batch_size: int = Field(default=5, description="Símbolos en paralelo por lote")
    backfill_batch_delay: float = Field(default=0.15, description="Pausa entre lotes (seg)")
    backfill_timeout: float = Field(default=10.0, description="Timeout HTTP por petición")

    # ─── Event Bus ──────────────────────────────────────────────────────
    event_bus_max_queue_size: int = Field(
        default=10_000,
        description="Tamaño máximo de cola del Event Bus para contrapresión",
    )

    # ─── Server ─────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8888)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Instancia por defecto – el container la usa si no se inyecta otra
settings = Settings()
