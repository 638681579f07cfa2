"""
PaperTrader – Domain Entity: Trade
===================================
Registro inmutable de una ejecución simulada.

El precio registrado es el precio EFECTIVO (post-slippage):
  BUY:  price = referencia × (1 + slippage)
  SELL: price = referencia × (1 − slippage)

La comisión se calcula sobre el nocional efectivo (price × quantity).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Side(str, Enum):
    """Lado de la ejecución."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Trade:
    """Fill simulado. Se añade al historial acotado del portfolio."""

    timestamp: float
    side: Side
    symbol: str
    price: float       # precio efectivo tras slippage
    quantity: float
    fee_paid: float

    @property
    def notional(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "action": self.side.value,
            "symbol": self.symbol,
            "price": self.price,
            "quantity": self.quantity,
            "fee_paid": self.fee_paid,
        }
