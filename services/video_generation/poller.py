"""
Completion Poller

Drives a submitted task to a terminal state:

    submitting -> queueing -> generating -> success | fail

Each cycle fetches one raw status record, normalizes it into a canonical
TaskState, applies it to the Task and reports the state to the caller.
Transient fetch failures are retried inside the same attempt budget, so a
brief network blip never reaches the caller.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional
from urllib.parse import urlparse

from .errors import (
    GenerationCancelled,
    PollTimeoutError,
    ProtocolError,
    ProviderError,
)
from .models import (
    FAMILY_STATUS_SHAPES,
    JobStatusRecord,
    ProviderFamily,
    ProviderStatusRecord,
    StatusShape,
    StatusSnapshot,
    Task,
    TaskState,
    VeoStatusRecord,
)
from .provider_client import PROVIDER_NAME, KieProviderClient
from .retry import AttemptsExhausted, retry_until_done

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 60

DEFAULT_FAILURE_MESSAGE = "Video generation failed"

# Candidate result fields, highest priority first.
# NOTE: first match wins even if later fields disagree.
RESULT_URL_FIELDS = (
    "resultUrls",
    "resultUrl",
    "resultWaterMarkUrls",
    "resultWatermarkUrls",
    "resultVideoUrls",
    "resultVideoUrl",
    "videoUrls",
    "videoUrl",
    "url",
)

# VEO puts originUrls next to resultUrls
VEO_RESULT_URL_FIELDS = ("resultUrls", "originUrls") + RESULT_URL_FIELDS[1:]

JOB_STATES: dict[str, TaskState] = {
    "wait": TaskState.QUEUEING,
    "waiting": TaskState.QUEUEING,
    "queuing": TaskState.QUEUEING,
    "queueing": TaskState.QUEUEING,
    "generating": TaskState.GENERATING,
    "success": TaskState.SUCCESS,
    "fail": TaskState.FAIL,
}

VEO_FLAGS: dict[int, TaskState] = {
    0: TaskState.GENERATING,
    1: TaskState.SUCCESS,
    2: TaskState.FAIL,
    3: TaskState.FAIL,
}

ProgressCallback = Callable[[TaskState], None]


# ============================================================
# Result-URL extraction
# ============================================================

def is_absolute_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_result_url(
    payload: Optional[Mapping[str, Any]],
    fields: Iterable[str] = RESULT_URL_FIELDS,
) -> Optional[str]:
    """First absolute URL found in fields, trying each field in order."""
    if not isinstance(payload, Mapping):
        return None

    for name in fields:
        value = payload.get(name)
        if not value:
            continue
        candidates = value if isinstance(value, (list, tuple)) else [value]
        for candidate in candidates:
            if is_absolute_url(candidate):
                return candidate.strip()

    return None


def parse_result_json(result_json: Optional[str]) -> Optional[dict[str, Any]]:
    if not result_json or not isinstance(result_json, str):
        return None
    try:
        parsed = json.loads(result_json)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse resultJson: {result_json[:100]}")
        return None
    return parsed if isinstance(parsed, dict) else None


# ============================================================
# Normalization, one function per status shape
# ============================================================

def normalize_veo_record(record: VeoStatusRecord) -> StatusSnapshot:
    """successFlag: 0 generating, 1 success, 2/3 fail."""
    state = VEO_FLAGS.get(record.success_flag)
    if state is None:
        logger.warning(f"Unknown successFlag {record.success_flag!r}, treating as generating")
        state = TaskState.GENERATING

    if state == TaskState.SUCCESS:
        return StatusSnapshot(
            state=state,
            result_url=extract_result_url(record.response, VEO_RESULT_URL_FIELDS),
        )
    if state == TaskState.FAIL:
        return StatusSnapshot(
            state=state,
            failure_reason=record.error_message or DEFAULT_FAILURE_MESSAGE,
        )
    return StatusSnapshot(state=state)


def normalize_job_record(record: JobStatusRecord) -> StatusSnapshot:
    """waiting/queuing collapse to queueing, everything else maps 1:1."""
    raw_state = (record.state or "").lower()
    state = JOB_STATES.get(raw_state)
    if state is None:
        logger.warning(f"Unknown task state {record.state!r}, treating as generating")
        state = TaskState.GENERATING

    if state == TaskState.SUCCESS:
        return StatusSnapshot(
            state=state,
            result_url=extract_result_url(parse_result_json(record.result_json)),
        )
    if state == TaskState.FAIL:
        return StatusSnapshot(
            state=state,
            failure_reason=record.fail_msg or DEFAULT_FAILURE_MESSAGE,
        )
    return StatusSnapshot(state=state)


NORMALIZERS: dict[StatusShape, Callable[[Any], StatusSnapshot]] = {
    StatusShape.SUCCESS_FLAG: normalize_veo_record,
    StatusShape.STATE: normalize_job_record,
}


def normalize_record(record: ProviderStatusRecord) -> StatusSnapshot:
    """Normalize either raw status shape into a canonical snapshot."""
    return NORMALIZERS[record.shape](record)


# ============================================================
# Cancellation
# ============================================================

class CancellationToken:
    """Cooperative cancellation, checked at each suspension point."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True

    def raise_if_cancelled(self, task_id: Optional[str] = None):
        if self._cancelled:
            suffix = f" (task {task_id})" if task_id else ""
            raise GenerationCancelled(f"Generation cancelled{suffix}", error_code="CANCELLED")


# ============================================================
# Poller
# ============================================================

class CompletionPoller:
    """
    Polls a task until success, failure or budget exhaustion.

    Usage:
        poller = CompletionPoller(provider_client)
        task = Task(task_id=task_id, model=request.model)
        url = await poller.wait_for_completion(task, ProviderFamily.CLIP_SYNTHESIS)
    """

    def __init__(
        self,
        provider_client: KieProviderClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider_client = provider_client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _emit(self, on_progress: Optional[ProgressCallback], state: TaskState):
        if on_progress:
            try:
                on_progress(state)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def poll_once(
        self,
        task: Task,
        family: ProviderFamily,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StatusSnapshot:
        """Run one poll cycle: fetch, normalize, apply, report."""
        if task.is_terminal:
            return StatusSnapshot(task.state, task.result_url, task.failure_reason)

        record = await self.provider_client.fetch_status(task.task_id, family)
        if record.shape != FAMILY_STATUS_SHAPES[family]:
            raise ProtocolError(
                f"Status record shape {record.shape.value} does not match family {family.value}",
                error_code="SHAPE_MISMATCH",
                provider=PROVIDER_NAME,
            )
        snapshot = normalize_record(record)

        if snapshot.state == TaskState.SUCCESS and not snapshot.result_url:
            reason = "Provider reported success but no result URL could be extracted"
            task.apply(StatusSnapshot(state=TaskState.FAIL, failure_reason=reason))
            self._emit(on_progress, TaskState.FAIL)
            logger.error(f"Task {task.task_id}: {reason}: {record.model_dump(by_alias=True)}")
            raise ProtocolError(reason, error_code="NO_RESULT_URL", provider=PROVIDER_NAME)

        task.apply(snapshot)
        self._emit(on_progress, snapshot.state)
        return snapshot

    async def wait_for_completion(
        self,
        task: Task,
        family: ProviderFamily,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Poll until the task is terminal and return its result URL.

        Raises:
            ProviderError: The provider reported a failed generation
            ProtocolError: Success without a usable result URL
            PollTimeoutError: No terminal state within max_attempts
            GenerationCancelled: cancel_token was cancelled
        """

        async def attempt() -> StatusSnapshot:
            if cancel_token:
                cancel_token.raise_if_cancelled(task.task_id)
            return await self.poll_once(task, family, on_progress)

        try:
            await retry_until_done(
                attempt,
                is_done=lambda snapshot: snapshot.state.is_terminal,
                max_attempts=self.max_attempts,
                interval=self.interval,
                sleep=self._sleep,
            )
        except AttemptsExhausted as e:
            raise PollTimeoutError(
                f"Video generation timeout after {e.attempts} status checks. "
                f"Please check task {task.task_id} later.",
                task_id=task.task_id,
                last_state=task.state.value,
                attempts=e.attempts,
                provider=PROVIDER_NAME,
            ) from None

        if task.state == TaskState.FAIL:
            logger.error(f"Task {task.task_id} failed: {task.failure_reason}")
            raise ProviderError(
                task.failure_reason or DEFAULT_FAILURE_MESSAGE,
                error_code="GENERATION_FAILED",
                provider=PROVIDER_NAME,
                retryable=False,
            )

        logger.info(f"Task {task.task_id} completed in {task.elapsed_seconds:.1f}s: {task.result_url}")
        return task.result_url
