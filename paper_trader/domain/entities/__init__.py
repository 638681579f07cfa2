"""Domain entities."""
from paper_trader.domain.entities.candle import Candle
from paper_trader.domain.entities.position import Direction, Position, TradeManagement, QTY_EPSILON
from paper_trader.domain.entities.trade import Trade, Side

__all__ = ["Candle", "Direction", "Position", "TradeManagement", "QTY_EPSILON", "Trade", "Side"]
