"""Domain exceptions."""
from paper_trader.domain.exceptions.domain_errors import (
    DomainError,
    FeedMessageError,
    BackfillError,
    InvalidStrategyError,
    ExecutionRejected,
)

__all__ = [
    "DomainError",
    "FeedMessageError",
    "BackfillError",
    "InvalidStrategyError",
    "ExecutionRejected",
]
