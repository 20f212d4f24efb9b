"""
Generation Router

Picks the provider family and request shape for a GenerationRequest and
rejects invalid combinations before any network call is made.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .builders import build_request
from .errors import RequestError
from .models import (
    FAMILY_STATUS_SHAPES,
    MAX_CONDITIONING_FRAMES,
    GenerationRequest,
    ProviderFamily,
    ProviderPayload,
    StatusShape,
    VideoModel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """Where a request goes and how its status must be read."""
    family: ProviderFamily
    payload: ProviderPayload

    @property
    def status_shape(self) -> StatusShape:
        return FAMILY_STATUS_SHAPES[self.family]


class GenerationRouter:
    """Dispatches requests on model and input modality."""

    def validate(self, request: GenerationRequest) -> ProviderFamily:
        """Check request invariants. Raises RequestError, returns the family."""
        if not request.prompt or not request.prompt.strip():
            if request.model != VideoModel.WATERMARK_REMOVER:
                raise RequestError("Prompt must not be empty", error_code="EMPTY_PROMPT")

        if request.model == VideoModel.WATERMARK_REMOVER:
            if not request.video_url:
                raise RequestError(
                    "Video URL is required for watermark removal",
                    error_code="MISSING_VIDEO_URL",
                )
            if request.image_urls:
                raise RequestError(
                    "Watermark removal does not accept images",
                    error_code="UNEXPECTED_IMAGES",
                )
        else:
            if request.video_url:
                raise RequestError(
                    f"{request.model.value} does not accept a source video",
                    error_code="UNEXPECTED_VIDEO_URL",
                )
            if len(request.image_urls) > MAX_CONDITIONING_FRAMES:
                raise RequestError(
                    f"{request.model.value} supports at most {MAX_CONDITIONING_FRAMES} "
                    f"conditioning images, got {len(request.image_urls)}",
                    error_code="TOO_MANY_IMAGES",
                )

        return request.family

    def route(
        self,
        request: GenerationRequest,
        resolved_image_urls: Optional[Sequence[str]] = None,
    ) -> Route:
        """
        Validate the request and build its provider payload.

        Args:
            request: The generation request
            resolved_image_urls: Public image URLs replacing request.image_urls

        Returns:
            Route with the provider family and payload
        """
        family = self.validate(request)
        payload = build_request(request, resolved_image_urls)

        logger.info(
            f"Routed {request.model.value} request to {family.value} "
            f"({len(request.image_urls)} images)"
        )
        return Route(family=family, payload=payload)
