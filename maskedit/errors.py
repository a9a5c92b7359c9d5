"""Error types for mask-editing requests.

Every error a caller can see derives from :class:`MaskEditError` and carries a
``kind`` (the taxonomy name), a ``category`` telling the caller whether the
input was invalid, the backend failed, or the request should be retried later.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorCategory(str, enum.Enum):
    """Caller-facing grouping of failures."""

    invalid_input = "invalid_input"
    backend_failure = "backend_failure"
    retry_later = "retry_later"


_CATEGORY_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.invalid_input: "Your input was invalid.",
    ErrorCategory.backend_failure: "The image backend failed.",
    ErrorCategory.retry_later: "Please try again later.",
}


class MaskEditError(Exception):
    """Base exception for mask-editing operations."""

    category: ErrorCategory = ErrorCategory.backend_failure

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def hint(self) -> str:
        return _CATEGORY_HINTS[self.category]

    def to_dict(self) -> dict[str, Any]:
        """Structured payload suitable for an HTTP error body."""
        return {
            "kind": self.kind,
            "category": self.category.value,
            "message": self.message,
            "hint": self.hint,
        }


# ---------------------------------------------------------------------------
# Input errors (raised before any remote call)
# ---------------------------------------------------------------------------


class InputError(MaskEditError):
    category = ErrorCategory.invalid_input


class InvalidMaskFormat(InputError):
    """Mask has an unsupported channel layout or cannot be decoded."""


class InvalidImageDimensions(InputError):
    """Image is too small, too large, or the wrong shape for the backend."""


class InvalidImageFormat(InputError):
    """Image bytes cannot be decoded, or the channel layout is unsupported."""


class InvalidPrompt(InputError):
    """Prompt is missing or empty."""


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------


class RemoteError(MaskEditError):
    """Raised when a backend call fails."""

    def __init__(self, provider: str, message: str, retryable: bool = False) -> None:
        self.provider = provider
        self.retryable = retryable
        super().__init__(f"[{provider}] {message}")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["provider"] = self.provider
        return payload


class RemoteAuthError(RemoteError):
    """Backend credential is missing or was rejected."""


class RemoteApiError(RemoteError):
    """Backend answered with a non-2xx status or an unusable body."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        self.status_code = status_code
        super().__init__(provider, message, retryable=retryable)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        return payload


class RemoteTimeout(RemoteError):
    """Polling exceeded its wall-clock budget."""

    category = ErrorCategory.retry_later

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(provider, message, retryable=True)


# ---------------------------------------------------------------------------
# Result-level errors
# ---------------------------------------------------------------------------


class NoArtifactsProduced(MaskEditError):
    """Every artifact returned by the backend failed post-processing."""

    def __init__(self, provider: str, failures: list[PartialArtifactFailure] | None = None) -> None:
        self.provider = provider
        self.failures = list(failures or [])
        detail = "; ".join(str(f) for f in self.failures) or "backend returned no artifacts"
        super().__init__(f"[{provider}] No images were produced ({detail})")


class RequestCancelled(MaskEditError):
    """The caller's cancellation token fired while the request was in flight."""

    category = ErrorCategory.retry_later


class PartialArtifactFailure(MaskEditError):
    """One artifact could not be processed.  Logged and recorded, never raised."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"artifact {index + 1}: {reason}")
