# Overview: Error taxonomy raised by the business store and its persistence port.

from __future__ import annotations


class StoreError(Exception):
    """Base class for every error the business store raises."""


class ValidationError(StoreError, ValueError):
    """400-level input problem. Raised before any state change."""


class ConflictError(ValidationError):
    """409-level business rule conflict (e.g., duplicate SKU or invoice number)."""


class NotFoundError(StoreError, LookupError):
    """Referenced entity id is absent from the current collection."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ReferentialIntegrityError(StoreError):
    """Delete blocked by dependent entities (e.g., a customer with invoices)."""

    def __init__(self, message: str, *, dependents: int = 0):
        super().__init__(message)
        self.dependents = dependents


class StoreNotReadyError(StoreError):
    """Mutation attempted before the initial load completed."""


class PersistenceError(StoreError):
    """
    Durable load or write failed.

    Writes fail asynchronously: the in-memory mutation has already been
    applied and is never rolled back.
    """

    def __init__(self, message: str, *, operation=None):
        super().__init__(message)
        self.operation = operation
