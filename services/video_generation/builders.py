"""
Provider request builders.

Pure functions translating a GenerationRequest into each provider family's
wire schema. No I/O happens here; image URLs must already be public.
"""

from typing import Callable, Optional, Sequence

from .errors import RequestError
from .models import (
    MAX_CONDITIONING_FRAMES,
    AspectRatio,
    GenerationRequest,
    GenerationType,
    ProviderFamily,
    ProviderPayload,
    SoraGenerateRequest,
    SoraInput,
    VeoGenerateRequest,
    WatermarkInput,
    WatermarkRemoverRequest,
)

VEO_MODEL = "veo3_fast"
SORA_TEXT_TO_VIDEO = "sora-2-text-to-video"
SORA_IMAGE_TO_VIDEO = "sora-2-image-to-video"
WATERMARK_REMOVER_MODEL = "sora-watermark-remover"

# Sora takes orientation names instead of ratios
SORA_ASPECT_RATIOS = {
    AspectRatio.PORTRAIT: "portrait",
    AspectRatio.LANDSCAPE: "landscape",
}
SORA_DEFAULT_ASPECT_RATIO = "landscape"

SORA_DEFAULT_DURATION = "10"
VEO_FIXED_DURATION = "8"


def _frame_urls(
    request: GenerationRequest,
    resolved_image_urls: Optional[Sequence[str]],
) -> list[str]:
    urls = list(request.image_urls if resolved_image_urls is None else resolved_image_urls)
    if len(urls) > MAX_CONDITIONING_FRAMES:
        raise RequestError(
            f"{request.model.value} supports at most {MAX_CONDITIONING_FRAMES} "
            f"conditioning images, got {len(urls)}",
            error_code="TOO_MANY_IMAGES",
        )
    return urls


def build_veo_request(
    request: GenerationRequest,
    resolved_image_urls: Optional[Sequence[str]] = None,
) -> ProviderPayload:
    """
    Frame-conditioned family (VEO 3.1).

    No images -> TEXT_2_VIDEO. One image anchors the clip around it, two
    images become first and last frame; both use FIRST_AND_LAST_FRAMES_2_VIDEO.
    """
    urls = _frame_urls(request, resolved_image_urls)
    generation_type = (
        GenerationType.FIRST_AND_LAST_FRAMES_2_VIDEO if urls
        else GenerationType.TEXT_2_VIDEO
    )

    body = VeoGenerateRequest(
        prompt=request.prompt,
        model=VEO_MODEL,
        image_urls=urls or None,
        aspect_ratio=request.aspect_ratio.value,
        generation_type=generation_type,
        callback_url=request.callback_url,
        enable_translation=True,
    )
    return ProviderPayload(family=ProviderFamily.FRAME_CONDITIONED, body=body)


def build_sora_request(
    request: GenerationRequest,
    resolved_image_urls: Optional[Sequence[str]] = None,
) -> ProviderPayload:
    """Clip-synthesis family (Sora 2)."""
    urls = _frame_urls(request, resolved_image_urls)

    # "8" is the VEO-only length; Sora falls back to its 10s default
    duration = request.duration
    if not duration or duration == "0" or duration == VEO_FIXED_DURATION:
        duration = SORA_DEFAULT_DURATION

    body = SoraGenerateRequest(
        model=SORA_IMAGE_TO_VIDEO if urls else SORA_TEXT_TO_VIDEO,
        callback_url=request.callback_url,
        input=SoraInput(
            prompt=request.prompt,
            image_urls=urls or None,
            aspect_ratio=SORA_ASPECT_RATIOS.get(request.aspect_ratio, SORA_DEFAULT_ASPECT_RATIO),
            n_frames=duration,
            remove_watermark=True,
        ),
    )
    return ProviderPayload(family=ProviderFamily.CLIP_SYNTHESIS, body=body)


def build_watermark_removal_request(
    request: GenerationRequest,
    resolved_image_urls: Optional[Sequence[str]] = None,
) -> ProviderPayload:
    """Post-processing family: carries only the source video URL."""
    if not request.video_url:
        raise RequestError(
            "Video URL is required for watermark removal",
            error_code="MISSING_VIDEO_URL",
        )
    images = request.image_urls if resolved_image_urls is None else resolved_image_urls
    if images:
        raise RequestError(
            "Watermark removal does not accept images",
            error_code="UNEXPECTED_IMAGES",
        )

    body = WatermarkRemoverRequest(
        model=WATERMARK_REMOVER_MODEL,
        callback_url=request.callback_url,
        input=WatermarkInput(video_url=request.video_url),
    )
    return ProviderPayload(family=ProviderFamily.POST_PROCESS, body=body)


RequestBuilder = Callable[[GenerationRequest, Optional[Sequence[str]]], ProviderPayload]

BUILDERS: dict[ProviderFamily, RequestBuilder] = {
    ProviderFamily.FRAME_CONDITIONED: build_veo_request,
    ProviderFamily.CLIP_SYNTHESIS: build_sora_request,
    ProviderFamily.POST_PROCESS: build_watermark_removal_request,
}


def build_request(
    request: GenerationRequest,
    resolved_image_urls: Optional[Sequence[str]] = None,
) -> ProviderPayload:
    """Build the payload for whichever family serves request.model."""
    return BUILDERS[request.family](request, resolved_image_urls)
