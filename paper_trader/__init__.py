"""PaperTrader – motor de paper trading sobre el feed spot de Binance."""

__version__ = "0.1.0"
