"""
PaperTrader – Domain Exceptions
================================
Excepciones específicas del dominio.

Ninguna de estas excepciones debe terminar el proceso: se capturan en
el borde donde ocurren (parser del feed, backfill, API de control),
se registran en log y se cuentan.

JERARQUÍA:
    DomainError (base)
    ├── FeedMessageError
    ├── BackfillError
    ├── InvalidStrategyError
    └── ExecutionRejected
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
        }


class FeedMessageError(DomainError):
    """Mensaje del feed malformado o imposible de parsear."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message, code="FEED_MESSAGE")
        self.raw = raw


class BackfillError(DomainError):
    """Falló la descarga histórica de un símbolo."""

    def __init__(self, message: str, symbol: str | None = None):
        super().__init__(message, code="BACKFILL_FAILED")
        self.symbol = symbol


class InvalidStrategyError(DomainError):
    """Nombre de estrategia no reconocido."""

    def __init__(self, message: str, value: Any = None):
        super().__init__(message, code="invalid_strategy")
        self.value = value


class ExecutionRejected(DomainError):
    """
    Motivo por el que una ejecución fue un no-op.

    El simulador NO la lanza hacia arriba: la construye como valor para
    log/contadores y devuelve False.
    """

    def __init__(self, message: str, reason: str = "rejected"):
        super().__init__(message, code="EXECUTION_REJECTED")
        self.reason = reason
