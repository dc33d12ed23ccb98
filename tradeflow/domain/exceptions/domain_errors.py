"""
TradeFlow – Domain Exceptions
=============================
Excepciones del motor de trading.

JERARQUÍA:
    DomainError (base)
    ├── ValidationError          → configuración / datos inválidos
    ├── PersistenceError         → el store de trades rechazó la operación
    │   └── TransientPersistenceError  → reintentable (lock, deadlock, red)
    ├── BootstrapError           → no se pudo sembrar un pipeline (fatal)
    ├── OrderPlacementError      → el exchange rechazó una orden
    └── TransportError           → el stream de mercado no es recuperable

Los rechazos de decisión (RSI fuera de rango, falta de velas, etc.) NO son
excepciones: viajan como EntryDecision / ExitDecision con su razón.
"""

from __future__ import annotations

from typing import Any, Optional


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


class ValidationError(DomainError):
    """Error de validación general de datos de dominio."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field
        self.value = value


class PersistenceError(DomainError):
    """El almacenamiento de trades falló de forma definitiva."""

    def __init__(self, message: str, code: str = "PERSISTENCE_ERROR"):
        super().__init__(message, code=code)


class TransientPersistenceError(PersistenceError):
    """Fallo temporal del almacenamiento; la operación puede reintentarse."""

    def __init__(self, message: str):
        super().__init__(message, code="PERSISTENCE_TRANSIENT")


class BootstrapError(DomainError):
    """Fallo al sembrar históricos o portafolio de un pipeline."""

    def __init__(self, message: str, config_id: Optional[str] = None):
        super().__init__(message, code="BOOTSTRAP_FAILED")
        self.config_id = config_id


class OrderPlacementError(DomainError):
    """
    El exchange rechazó o no confirmó una orden de mercado.

    `uncertain=True` cuando no hubo respuesta clara (timeout, respuesta
    ilegible): la orden pudo haberse ejecutado igual.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        side: Optional[str] = None,
        uncertain: bool = False,
    ):
        super().__init__(message, code="ORDER_REJECTED")
        self.symbol = symbol
        self.side = side
        self.uncertain = uncertain

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["symbol"] = self.symbol
        data["side"] = self.side
        data["uncertain"] = self.uncertain
        return data


class TransportError(DomainError):
    """El stream de mercado se perdió y no pudo restablecerse."""

    def __init__(self, message: str):
        super().__init__(message, code="TRANSPORT_ERROR")
