"""
Data model for the video generation orchestration layer.

Covers the provider-agnostic request, the task record tracked by the poller,
the provider wire payloads and the two raw status shapes returned by Kie.ai.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import RequestError


class VideoModel(str, Enum):
    """User-facing model selection."""
    VEO_3_1 = "VEO 3.1"                      # Frame-conditioned text/image video
    SORA_2 = "Sora 2"                        # Clip synthesis
    WATERMARK_REMOVER = "Watermark Remover"  # Post-processing


class ProviderFamily(str, Enum):
    """Backend service families with distinct request/response shapes."""
    FRAME_CONDITIONED = "veo"
    CLIP_SYNTHESIS = "sora"
    POST_PROCESS = "watermark"


class StatusShape(str, Enum):
    """The two raw status payload shapes."""
    SUCCESS_FLAG = "success_flag"  # /veo/record-info
    STATE = "state"                # /jobs/recordInfo


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    AUTO = "Auto"


class GenerationType(str, Enum):
    TEXT_2_VIDEO = "TEXT_2_VIDEO"
    FIRST_AND_LAST_FRAMES_2_VIDEO = "FIRST_AND_LAST_FRAMES_2_VIDEO"


class TaskState(str, Enum):
    """Canonical, provider-agnostic task state."""
    QUEUEING = "queueing"
    GENERATING = "generating"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCESS, TaskState.FAIL)


class ProgressState(str, Enum):
    """Progress exposed by the facade: canonical states plus pre-submission states."""
    IDLE = "idle"
    SUBMITTING = "submitting"
    QUEUEING = "queueing"
    GENERATING = "generating"
    SUCCESS = "success"
    FAIL = "fail"


MODEL_FAMILIES: dict[VideoModel, ProviderFamily] = {
    VideoModel.VEO_3_1: ProviderFamily.FRAME_CONDITIONED,
    VideoModel.SORA_2: ProviderFamily.CLIP_SYNTHESIS,
    VideoModel.WATERMARK_REMOVER: ProviderFamily.POST_PROCESS,
}

FAMILY_STATUS_SHAPES: dict[ProviderFamily, StatusShape] = {
    ProviderFamily.FRAME_CONDITIONED: StatusShape.SUCCESS_FLAG,
    ProviderFamily.CLIP_SYNTHESIS: StatusShape.STATE,
    ProviderFamily.POST_PROCESS: StatusShape.STATE,
}

# Providers accept at most a first and a last frame
MAX_CONDITIONING_FRAMES = 2

VALID_DURATIONS = ("8", "10", "15")
# "0" means unspecified and falls back to the family default
UNSPECIFIED_DURATION = "0"


def _coerce_enum(enum_cls, value, field_name: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise RequestError(
            f"Invalid {field_name} {value!r} (expected one of: {allowed})",
            error_code="INVALID_FIELD",
        )


@dataclass
class GenerationRequest:
    """Provider-agnostic generation request."""
    prompt: str
    model: VideoModel
    image_urls: list[str] = field(default_factory=list)
    video_url: Optional[str] = None        # Watermark Remover only
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    duration: Optional[str] = None         # "10"/"15" for Sora 2, "8" for VEO 3.1
    callback_url: Optional[str] = None

    def __post_init__(self):
        self.model = _coerce_enum(VideoModel, self.model, "model")
        self.aspect_ratio = _coerce_enum(AspectRatio, self.aspect_ratio, "aspect ratio")
        self.image_urls = list(self.image_urls or [])
        if self.duration is not None:
            self.duration = str(self.duration)
            if self.duration not in VALID_DURATIONS + (UNSPECIFIED_DURATION,):
                raise RequestError(
                    f"Invalid duration {self.duration!r} (expected one of: {', '.join(VALID_DURATIONS)})",
                    error_code="INVALID_FIELD",
                )

    @property
    def family(self) -> ProviderFamily:
        return MODEL_FAMILIES[self.model]


@dataclass
class StatusSnapshot:
    """One normalized reading of a provider status record."""
    state: TaskState
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass
class Task:
    """
    A submitted generation job.

    Created in QUEUEING when the provider accepts the job and mutated only by
    the poller. Once SUCCESS or FAIL is reached the record no longer changes.
    """
    task_id: str
    model: VideoModel
    state: TaskState = TaskState.QUEUEING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def elapsed_seconds(self) -> float:
        """Seconds between submission and the last applied status reading."""
        if self.updated_at is None:
            return 0.0
        return (self.updated_at - self.created_at).total_seconds()

    def apply(self, snapshot: StatusSnapshot) -> bool:
        """Apply a status reading. Returns False if the task was already terminal."""
        if self.is_terminal:
            return False
        self.state = snapshot.state
        self.result_url = snapshot.result_url
        self.failure_reason = snapshot.failure_reason
        self.updated_at = datetime.now(timezone.utc)
        return True


# ============================================================
# Wire payloads
# ============================================================

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class VeoGenerateRequest(_WireModel):
    """Body for POST /veo/generate."""
    prompt: str
    model: str = "veo3_fast"
    image_urls: Optional[list[str]] = Field(default=None, alias="imageUrls")
    aspect_ratio: str = Field(default=AspectRatio.LANDSCAPE.value, alias="aspectRatio")
    generation_type: GenerationType = Field(alias="generationType")
    callback_url: Optional[str] = Field(default=None, alias="callBackUrl")
    enable_translation: bool = Field(default=True, alias="enableTranslation")


class SoraInput(_WireModel):
    prompt: str
    image_urls: Optional[list[str]] = None
    aspect_ratio: str = "landscape"
    n_frames: str = "10"
    remove_watermark: bool = True


class SoraGenerateRequest(_WireModel):
    """Body for POST /jobs/createTask (Sora 2)."""
    model: str
    callback_url: Optional[str] = Field(default=None, alias="callBackUrl")
    input: SoraInput


class WatermarkInput(_WireModel):
    video_url: str


class WatermarkRemoverRequest(_WireModel):
    """Body for POST /jobs/createTask (watermark removal)."""
    model: str = "sora-watermark-remover"
    callback_url: Optional[str] = Field(default=None, alias="callBackUrl")
    input: WatermarkInput


ProviderRequestBody = Union[VeoGenerateRequest, SoraGenerateRequest, WatermarkRemoverRequest]


@dataclass(frozen=True)
class ProviderPayload:
    """A built request body tagged with the family that must receive it."""
    family: ProviderFamily
    body: ProviderRequestBody

    def to_wire(self) -> dict[str, Any]:
        return self.body.to_wire()


# ============================================================
# Raw status records
# ============================================================

class _StatusRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    task_id: Optional[str] = Field(default=None, alias="taskId")


class VeoStatusRecord(_StatusRecord):
    """Flag-based shape from /veo/record-info.

    successFlag: 0 generating, 1 success, 2 failed, 3 generation failed.
    """
    shape: StatusShape = Field(default=StatusShape.SUCCESS_FLAG, exclude=True)
    success_flag: Optional[int] = Field(default=None, alias="successFlag")
    response: Optional[dict[str, Any]] = None
    error_code: Optional[Union[str, int]] = Field(default=None, alias="errorCode")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class JobStatusRecord(_StatusRecord):
    """String-state shape from /jobs/recordInfo.

    resultJson is itself a JSON-encoded string.
    """
    shape: StatusShape = Field(default=StatusShape.STATE, exclude=True)
    state: Optional[str] = None
    result_json: Optional[str] = Field(default=None, alias="resultJson")
    fail_code: Optional[Union[str, int]] = Field(default=None, alias="failCode")
    fail_msg: Optional[str] = Field(default=None, alias="failMsg")


ProviderStatusRecord = Union[VeoStatusRecord, JobStatusRecord]

STATUS_RECORD_TYPES: dict[StatusShape, type] = {
    StatusShape.SUCCESS_FLAG: VeoStatusRecord,
    StatusShape.STATE: JobStatusRecord,
}
