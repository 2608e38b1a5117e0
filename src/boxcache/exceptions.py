"""
Custom exception hierarchy for the box cache.

All exceptions inherit from BoxCacheError, which provides optional context
for structured error handling and logging.

Two tiers matter to callers:
    - NamespaceMismatchError is fatal and always reaches the caller.
    - ContentStoreError (and FetchError) is transient; the coordinator logs it
      and leaves repair to the healing pass.
"""

from __future__ import annotations

from typing import Any


class BoxCacheError(Exception):
    """Base exception for all box cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(BoxCacheError):
    """Raised when loaded settings cannot be used.

    Examples:
        - CACHE_DIR or LEDGER_PATH pointing somewhere that cannot be created

    Context should include:
        - cache_dir: The configured cache directory
        - ledger_path: The resolved ledger path
    """

    pass


class NamespaceMismatchError(BoxCacheError):
    """Raised when a cache name disagrees with the one a box is bound to.

    A box's namespace is fixed by its first write and is never migrated.

    Context should include:
        - box: The box name
        - expected: The namespace the box is bound to
        - got: The namespace the caller supplied
    """

    pass


class ContentStoreError(BoxCacheError):
    """Raised when the content store cannot complete an operation.

    Context should include:
        - namespace: The store namespace
        - operation: The failing operation (keys, match, add_all, delete)
    """

    pass


class FetchError(ContentStoreError):
    """Raised when fetching a resource for the content store fails.

    Context should include:
        - url: The URL that was being fetched (single fetch)
        - failed: The URLs that failed (batch fetch)
        - status_code: HTTP status code if applicable
    """

    pass


class LedgerError(BoxCacheError):
    """Raised when a ledger value cannot be read or written.

    Context should include:
        - key: The ledger key
    """

    pass


class InvalidURLError(BoxCacheError, ValueError):
    """Raised when a URL cannot be canonicalized.

    Context should include:
        - url: The offending URL
    """

    pass


class InvalidBoxNameError(BoxCacheError, ValueError):
    """Raised when a box name is empty or collides with the registry key."""

    pass
