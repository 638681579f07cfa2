"""
PaperTrader – Domain Value Object: Tick
========================================
Representa un tick de precio (último precio negociado) recibido del feed.

- frozen=True → inmutable, seguro para pasar entre coroutines.
- slots=True  → menor footprint de memoria en hot-path.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Tick:
    """Tick de precio atómico recibido del feed."""

    symbol: str        # e.g. "BTCUSDT"
    price: float       # último precio negociado
    timestamp: float   # epoch (seg) de recepción local
