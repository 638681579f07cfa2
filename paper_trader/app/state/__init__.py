"""Estado en memoria (mercado y portfolio)."""
from paper_trader.app.state.market_state import MarketStateManager, SymbolState
from paper_trader.app.state.portfolio_state import PortfolioState

__all__ = ["MarketStateManager", "SymbolState", "PortfolioState"]
