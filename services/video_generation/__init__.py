"""
Video Generation Service

Multi-provider orchestration over the Kie.ai API:
- VEO 3.1: text or first/last-frame conditioned video
- Sora 2: text-to-video and image-to-video clips
- Watermark Remover: post-processing of an existing video

Requests are routed, source images uploaded, jobs submitted and polled
until a playable URL is available.
"""

from .client import VideoGenerationClient
from .errors import (
    AuthError,
    GenerationCancelled,
    GenerationTimeoutError,
    PollTimeoutError,
    ProtocolError,
    ProviderError,
    QuotaError,
    RateLimitError,
    RequestError,
    UploadError,
    VideoGenerationError,
)
from .models import (
    AspectRatio,
    GenerationRequest,
    ProgressState,
    ProviderFamily,
    Task,
    TaskState,
    VideoModel,
)
from .poller import CancellationToken, CompletionPoller
from .provider_client import KieProviderClient
from .router import GenerationRouter, Route
from .upload import UploadAdapter

__all__ = [
    "VideoGenerationClient",
    "GenerationRequest",
    "VideoModel",
    "AspectRatio",
    "ProviderFamily",
    "ProgressState",
    "TaskState",
    "Task",
    "GenerationRouter",
    "Route",
    "KieProviderClient",
    "UploadAdapter",
    "CompletionPoller",
    "CancellationToken",
    # Errors
    "VideoGenerationError",
    "RequestError",
    "AuthError",
    "QuotaError",
    "RateLimitError",
    "ProviderError",
    "GenerationTimeoutError",
    "PollTimeoutError",
    "ProtocolError",
    "UploadError",
    "GenerationCancelled",
]
