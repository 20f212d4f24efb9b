"""
Error taxonomy for video generation.

Every failure surfaced by the orchestration layer is one of these types, so
callers can branch on the kind of error instead of matching message text:

- RequestError: bad input, fix the request
- AuthError / QuotaError: user action needed (re-authenticate, buy credits)
- RateLimitError / ProviderError / GenerationTimeoutError: try again later
- ProtocolError: provider broke its response contract
- UploadError: source image could not be made public
"""

from typing import Optional


class VideoGenerationError(Exception):
    """Base class for all video generation failures."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        provider: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.provider = provider
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class RequestError(VideoGenerationError):
    """Malformed or policy-violating request. Never retried."""


class AuthError(VideoGenerationError):
    """Invalid or expired API credential."""


class QuotaError(VideoGenerationError):
    """Insufficient provider credits."""


class RateLimitError(VideoGenerationError):
    """Provider-side throttling."""

    retryable = True


class ProviderError(VideoGenerationError):
    """Provider-side failure (server error, maintenance, failed generation)."""

    retryable = True


class GenerationTimeoutError(VideoGenerationError, TimeoutError):
    """A single HTTP call exceeded its timeout."""

    retryable = True


class PollTimeoutError(GenerationTimeoutError):
    """The polling budget ran out before the task reached a terminal state.

    The task may still be running on the provider side.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        task_id: str,
        last_state: Optional[str] = None,
        attempts: int = 0,
        provider: Optional[str] = None,
    ):
        self.task_id = task_id
        self.last_state = last_state
        self.attempts = attempts
        super().__init__(message, error_code="POLL_TIMEOUT", provider=provider)


class ProtocolError(VideoGenerationError):
    """Provider response violated its contract (e.g. success without a URL)."""


class UploadError(VideoGenerationError):
    """Local file read or upload submission failed."""


class GenerationCancelled(VideoGenerationError):
    """The caller cancelled the generation at a suspension point."""
