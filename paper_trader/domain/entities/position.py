"""
PaperTrader – Domain Entity: Position / TradeManagement
========================================================
Posición abierta (cantidad con signo) y estado de gestión asociado.

CONVENCIÓN DE SIGNO:
  quantity > 0  → LONG
  quantity < 0  → SHORT
  |quantity| <= QTY_EPSILON → sin posición (la entrada se elimina)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Cantidades por debajo de este umbral se consideran cero
QTY_EPSILON = 1e-12


class Direction(str, Enum):
    """Dirección de una entrada nueva."""
    LONG = "LONG"
    SHORT = "SHORT"


@dataclass(frozen=True, slots=True)
class Position:
    """Posición spot con signo. Se reemplaza completa en cada ejecución."""

    symbol: str
    quantity: float
    avg_entry_price: float

    @property
    def is_open(self) -> bool:
        return abs(self.quantity) > QTY_EPSILON

    @property
    def is_long(self) -> bool:
        return self.is_open and self.quantity > 0

    @property
    def is_short(self) -> bool:
        return self.is_open and self.quantity < 0

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "avg_entry_price": self.avg_entry_price,
        }


@dataclass(slots=True)
class TradeManagement:
    """
    Estado de gestión de una posición abierta (TP parcial + trailing).

    Se crea al abrir la posición y se borra exactamente cuando la
    cantidad restante llega a cero.
    """

    entry_price: float
    has_taken_partial: bool = False
    highest_since_entry: float = 0.0   # LONG
    lowest_since_entry: float = 0.0    # SHORT

    @classmethod
    def opened_at(cls, entry_price: float) -> "TradeManagement":
        return cls(
            entry_price=entry_price,
            highest_since_entry=entry_price,
            lowest_since_entry=entry_price,
        )

    def to_dict(self) -> dict:
        return {
            "entry_price": self.entry_price,
            "has_taken_partial": self.has_taken_partial,
            "highest_since_entry": self.highest_since_entry,
            "lowest_since_entry": self.lowest_since_entry,
        }
