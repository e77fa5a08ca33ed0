"""
Error Taxonomy

Explicit error codes and the exceptions that carry them.

Structural errors (bad names, unknown ids) are raised synchronously to the
caller. Per-item ingestion problems are never raised past the normalizer;
they are recorded in reports instead.
"""

from __future__ import annotations
from enum import Enum, auto
from typing import Optional, Tuple


class ErrorCode(Enum):
    """Every error state the library can surface."""
    # Validation
    EMPTY_NAME = auto()
    DUPLICATE_NAME = auto()
    SYSTEM_CATALOG_READ_ONLY = auto()

    # Lookup
    CATALOG_NOT_FOUND = auto()
    FOLDER_NOT_FOUND = auto()
    WALLET_NOT_FOUND = auto()
    ARTIFACT_NOT_FOUND = auto()

    # References
    DANGLING_REFERENCE = auto()

    # Ingestion
    MALFORMED_TOKEN = auto()
    PROVIDER_UNREACHABLE = auto()
    UNSUPPORTED_NETWORK = auto()

    # Persistence
    PERSISTENCE_FAILED = auto()
    FOREIGN_KEY_VIOLATION = auto()
    ROW_CONFLICT = auto()
    ROW_NOT_FOUND = auto()


class LibraryError(Exception):
    """Base exception; carries an ErrorCode and key/value context."""

    default_code = ErrorCode.PERSISTENCE_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        context: Tuple[Tuple[str, str], ...] = ()
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context

    def with_context(self, key: str, value: str) -> 'LibraryError':
        self.context = self.context + ((key, value),)
        return self


class ValidationError(LibraryError):
    """Empty or otherwise invalid input to a mutation."""
    default_code = ErrorCode.EMPTY_NAME


class ConflictError(ValidationError):
    """A unique value (e.g. catalog name) is already taken."""
    default_code = ErrorCode.DUPLICATE_NAME


class NotFoundError(LibraryError):
    """Unknown catalog, folder, wallet or artifact."""
    default_code = ErrorCode.CATALOG_NOT_FOUND


class ReferentialError(LibraryError):
    """A reference points at an entity that does not exist."""
    default_code = ErrorCode.DANGLING_REFERENCE


class ProviderError(LibraryError):
    """External chain-data or delegation fetch failed for one address/network."""
    default_code = ErrorCode.PROVIDER_UNREACHABLE

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        network: Optional[str] = None,
        code: Optional[ErrorCode] = None
    ):
        context = tuple(
            (k, v) for k, v in (('address', address), ('network', network)) if v
        )
        super().__init__(message, code=code, context=context)
        self.address = address
        self.network = network


class PersistenceError(LibraryError):
    """The remote store rejected or failed an operation."""
    default_code = ErrorCode.PERSISTENCE_FAILED


class ForeignKeyViolation(PersistenceError):
    """The remote row references an entity that no longer exists."""
    default_code = ErrorCode.FOREIGN_KEY_VIOLATION


class MalformedTokenError(LibraryError):
    """Raised inside the normalizer for a record that cannot be an artifact."""
    default_code = ErrorCode.MALFORMED_TOKEN
