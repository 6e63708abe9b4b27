"""
Custom exception classes for the Kontent.ai content-type migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class MigrationConfigError(MigrationError):
    """Raised when a migration cannot start because its configuration is incomplete."""


class CodenameCollisionError(MigrationConfigError):
    """Raised when two items would be migrated to the same codename."""


class SourceNotFoundError(MigrationError):
    """Raised when a source item cannot be read in any of the attempted languages."""


class TargetSchemaError(MigrationError):
    """Raised when a target type or one of its fields is missing."""


class ReferenceResolutionError(MigrationError):
    """Raised when a reference codename cannot be resolved to an item id or field."""


class PublishError(MigrationError):
    """Raised when the repository rejects a publish request."""


class RepositoryError(MigrationError):
    """Raised when a request to the content repository fails."""

    status_code: int | None

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ItemNotFoundError(RepositoryError):
    """Raised when an item, variant or type does not exist in the repository."""


class TransientRepositoryError(RepositoryError):
    """Raised on network failures and rate limiting that outlived transport retries."""
