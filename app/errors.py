"""Typed failures raised by the catalog components."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for errors raised by the catalog service."""


class NotFoundError(CatalogError, LookupError):
    """Raised when an id, external id or email has no matching record."""

    def __init__(self, entity: str, field: str, value: object):
        super().__init__(f'{entity} with {field} "{value}" not found')
        self.entity = entity
        self.field = field
        self.value = value


class ConflictError(CatalogError, ValueError):
    """Raised when creating a record that collides with a unique key."""


class UpstreamError(CatalogError):
    """Raised when the metadata provider could not serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CacheUnavailableError(CatalogError):
    """Raised by cache stores that cannot reach their backend."""
