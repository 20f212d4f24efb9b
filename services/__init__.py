"""
Services

- video_generation: routing, upload, submission and completion polling
  for Kie.ai hosted video models
"""

from .video_generation import (
    GenerationRequest,
    VideoGenerationClient,
    VideoModel,
)

__all__ = [
    "VideoGenerationClient",
    "GenerationRequest",
    "VideoModel",
]
