"""
Error taxonomy for the catalog cache.
"""
from typing import Optional


class CatalogCacheError(Exception):
    """Base class for all catalog cache errors."""


class StoreUnavailable(CatalogCacheError):
    """The local database could not be resolved or opened."""


class RemoteFetchFailed(CatalogCacheError):
    """A remote catalog call failed (network, HTTP status or payload)."""

    def __init__(self, target: str, cause: Optional[BaseException] = None):
        self.target = target
        self.cause = cause
        message = f"Remote fetch failed for {target}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DecodeFailed(CatalogCacheError):
    """A stored payload could not be parsed back into a record."""


class SchemaMigrationSkipped(CatalogCacheError):
    """An additive migration was already applied."""
