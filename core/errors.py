"""Exception hierarchy for the sync engine.

Every error raised by the engine, the providers and the storage adapters
derives from SyncError, so the job boundary can record a human-readable
message without leaking stack traces into job progress.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all sync errors."""
    pass


# =============================================================================
# Provider Errors
# =============================================================================

class ProviderError(SyncError):
    """Base exception for errors raised while talking to a provider."""
    pass


class ProviderApiError(ProviderError):
    """Non-2xx response from a provider API.

    Attributes:
        status_code: HTTP status returned by the provider
        body: Response body, kept for debugging
    """

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_permanent(self) -> bool:
        """Auth and not-found errors cannot be fixed by retrying."""
        return self.status_code in (401, 403, 404)


class ProviderConnectionError(ProviderError):
    """Network-level failure (timeout, DNS, connection reset)."""
    pass


class ProviderConfigurationError(ProviderError):
    """Invalid provider setup: unknown provider, bad credentials, unsupported type."""
    pass


class UnsupportedResourceError(ProviderConfigurationError):
    """Resource type or sub-resource not supported by the provider."""
    pass


# =============================================================================
# Mapping / Storage / Job Errors
# =============================================================================

class EntityMappingError(SyncError):
    """A raw provider record could not be mapped to a canonical record."""

    def __init__(self, message: str, external_id: Optional[str] = None):
        super().__init__(message)
        self.external_id = external_id


class StorageError(SyncError):
    """Storage adapter failure. Fails the whole job."""
    pass


class SyncJobConflictError(SyncError):
    """A job is already active for the connection, or the job id is taken."""
    pass


class SIEDecodeError(SyncError):
    """SIE export bytes could not be decoded to text."""
    pass
