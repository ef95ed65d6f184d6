"""
Centralized Error Handling for the Accounting Engine

Every error the engine raises carries a category and an HTTP status code so
the gateway router can translate it without knowing engine internals.

Taxonomy:
- NotFoundError: referenced Truck/Load/FuelPurchase/CostBreakdown is missing
- ExternalLookupFailure: Distance Resolver error or timeout (recovered locally)
  - UnknownLocation: the resolver has no data for a city (not a service fault)
- InvariantViolation: derived state would be corrupted, the write is rolled back
- ConcurrentRecomputation: a pipeline for the same truck is already running
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Categories for engine errors"""

    NOT_FOUND = "not_found"
    EXTERNAL_SERVICE = "external_service"
    INVARIANT = "invariant"
    CONCURRENCY = "concurrency"
    VALIDATION = "validation"
    DATABASE = "database"
    INTERNAL = "internal"


class AccountingError(Exception):
    """Base error for the accounting engine."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.category.value,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(AccountingError):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} not found: {entity_id}",
            status_code=404,
            category=ErrorCategory.NOT_FOUND,
            details={"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ExternalLookupFailure(AccountingError):
    """Distance lookup failed (unknown city, network error, timeout)."""

    def __init__(self, service: str, message: str):
        super().__init__(
            f"{service}: {message}",
            status_code=502,
            category=ErrorCategory.EXTERNAL_SERVICE,
            details={"service": service},
        )
        self.service = service


class UnknownLocation(ExternalLookupFailure):
    """The resolver has no data for a city; says nothing about the service's health."""

    def __init__(self, service: str, location: str, message: Optional[str] = None):
        super().__init__(service, message or f"unknown city '{location}'")
        self.details["location"] = location
        self.location = location


class InvariantViolation(AccountingError):
    """A derived value would violate an accounting invariant."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
            details["value"] = value
        super().__init__(
            message,
            status_code=422,
            category=ErrorCategory.INVARIANT,
            details=details,
        )


class InvalidStatusTransition(InvariantViolation):
    """Load status change that is not allowed (e.g. un-delivering)."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change load status from '{current}' to '{requested}'",
            field="status",
            value=requested,
        )
        self.details["current"] = current
        self.current = current
        self.requested = requested


class ConcurrentRecomputation(AccountingError):
    """Another recomputation pipeline holds the truck's lock."""

    def __init__(self, truck_id: str):
        super().__init__(
            f"Recomputation already in progress for truck {truck_id}",
            status_code=409,
            category=ErrorCategory.CONCURRENCY,
            details={"truck_id": truck_id},
        )
        self.truck_id = truck_id


class DatabaseError(AccountingError):
    """Repository backend failure."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503, category=ErrorCategory.DATABASE)


def register_exception_handlers(app) -> None:
    """Translate AccountingError into JSON responses on a FastAPI app."""
    from fastapi import Request
    from fastapi.responses import JSONResponse

    @app.exception_handler(AccountingError)
    async def accounting_error_handler(request: Request, exc: AccountingError):
        if exc.status_code >= 500:
            logger.error(f"{exc.category.value} error on {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.category.value} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
