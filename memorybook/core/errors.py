"""
Error taxonomy for the generation pipeline.

Every failure a caller can observe maps to exactly one exception class,
and every exception class maps to exactly one HTTP status.
"""

from typing import Any, Optional


class MemorybookError(Exception):
    """Base class for all pipeline and storage errors.

    Attributes:
        code: Short machine-readable error code returned to callers
        details: Upstream diagnostic payload (response body, message)
        stage: Pipeline stage at which the failure occurred, if any
    """
    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None,
                 details: Any = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        self.stage = stage


class AuthError(MemorybookError):
    """Missing or invalid caller credential."""
    status_code = 401
    default_code = "Unauthorized"


class ValidationError(MemorybookError):
    """A required identifier is missing or malformed."""
    status_code = 400
    default_code = "validation_failed"


class NotFoundError(MemorybookError):
    """A referenced record does not exist or is not owned by the caller."""
    status_code = 404
    default_code = "not_found"


class QuotaExceeded(MemorybookError):
    """The caller has used up the free calls for this billing period."""
    status_code = 429
    default_code = "quota_exceeded"

    def __init__(self, quota: int, current_calls: int, stage: Optional[str] = None):
        super().__init__(
            f"Monthly quota of {quota} reached",
            stage=stage,
        )
        self.quota = quota
        self.current_calls = current_calls


class StorageReadError(MemorybookError):
    """The ledger or memory store could not be read."""
    default_code = "storage_read_failed"


class StorageWriteError(MemorybookError):
    """The ledger or memory store could not be written."""
    default_code = "storage_write_failed"


class ProviderError(MemorybookError):
    """The language model call failed or returned an unusable response."""
    default_code = "ai_failed"


class RenderError(MemorybookError):
    """The PDF delegate rejected the request or failed to render/store."""
    default_code = "worker_failed"
