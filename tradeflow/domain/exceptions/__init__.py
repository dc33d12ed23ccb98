"""Domain exceptions."""

from tradeflow.domain.exceptions.domain_errors import (
    BootstrapError,
    DomainError,
    OrderPlacementError,
    PersistenceError,
    TransientPersistenceError,
    TransportError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "PersistenceError",
    "TransientPersistenceError",
    "BootstrapError",
    "OrderPlacementError",
    "TransportError",
]
