"""Custom exception hierarchy for memostore."""


class MemoStoreError(Exception):
    """Base exception for all memostore errors."""


class ConfigError(MemoStoreError):
    """Raised when configuration values are missing or malformed."""


class ValidationError(MemoStoreError):
    """Raised when input is rejected before any I/O is attempted."""


class ProviderError(MemoStoreError):
    """Raised when the embedding provider returns an error or a malformed response."""


class ProviderTimeoutError(ProviderError):
    """Raised when an embedding provider call exceeds its timeout."""


class CacheError(MemoStoreError):
    """Raised on embedding cache read/write failures.

    Always logged and swallowed by the cache itself; callers never see it.
    """


class StoreError(MemoStoreError):
    """Raised on embedded store failures (connection, SQL, disk I/O)."""


class StoreTimeoutError(StoreError):
    """Raised when a store query exceeds its timeout."""


class StoreDuplicateError(StoreError):
    """Raised when the store reports an already-exists / duplicate condition."""


class RecordNotFoundError(MemoStoreError):
    """Raised when a record looked up by id does not exist."""


class MigrationError(MemoStoreError):
    """Raised when a migration fails. Fatal at startup."""


class BackupError(MemoStoreError):
    """Raised on backup export or retention failures."""
