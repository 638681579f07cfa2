"""
PaperTrader – Domain Layer
===========================
Núcleo puro del sistema. CERO dependencias de frameworks.

Este módulo contiene:
- entities/: Candle, Position, TradeManagement, Trade
- value_objects/: Tick, StrategyConfig, PerformanceMetrics, EngineSnapshot
- services/: IndicatorCalculator
- exceptions/: Excepciones de dominio

REGLA DE DEPENDENCIA:
Este módulo NO puede importar de application/, app/, infrastructure/
ni presentation/.
"""
