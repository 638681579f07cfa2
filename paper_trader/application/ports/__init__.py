"""Application ports (interfaces hacia la infraestructura)."""
from paper_trader.application.ports.market_data_provider import (
    CLOCK_TOPIC,
    FEED_STATUS_TOPIC,
    TICK_TOPIC,
    EventPublisher,
    FeedStatus,
    FeedStatusKind,
    MarketDataProvider,
)

__all__ = [
    "CLOCK_TOPIC",
    "FEED_STATUS_TOPIC",
    "TICK_TOPIC",
    "EventPublisher",
    "FeedStatus",
    "FeedStatusKind",
    "MarketDataProvider",
]
