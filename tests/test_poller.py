"""
Completion poller tests.

Covers status normalization for both record shapes, result-URL extraction,
the bounded retry budget and transient-failure handling. Sleeps are
replaced with AsyncMock so no real delays occur.

Run with:
    python -m pytest tests/test_poller.py -v
"""

import json
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.video_generation.errors import (
    AuthError,
    GenerationCancelled,
    GenerationTimeoutError,
    PollTimeoutError,
    ProtocolError,
    ProviderError,
    RateLimitError,
)
from services.video_generation.models import (
    JobStatusRecord,
    ProviderFamily,
    Task,
    TaskState,
    VeoStatusRecord,
    VideoModel,
)
from services.video_generation.poller import (
    CancellationToken,
    CompletionPoller,
    extract_result_url,
    normalize_job_record,
    normalize_record,
    normalize_veo_record,
)
from services.video_generation.retry import AttemptsExhausted, retry_until_done

VEO = ProviderFamily.FRAME_CONDITIONED
SORA = ProviderFamily.CLIP_SYNTHESIS


def veo_record(flag, response=None, error_message=None) -> VeoStatusRecord:
    return VeoStatusRecord.model_validate({
        "taskId": "t1",
        "successFlag": flag,
        "response": response,
        "errorMessage": error_message,
    })


def job_record(state, result=None, fail_msg=None) -> JobStatusRecord:
    return JobStatusRecord.model_validate({
        "taskId": "t1",
        "state": state,
        "resultJson": json.dumps(result) if result is not None else None,
        "failMsg": fail_msg,
    })


def make_poller(statuses, max_attempts=60):
    provider_client = MagicMock()
    provider_client.fetch_status = AsyncMock(side_effect=statuses)
    sleep = AsyncMock()
    poller = CompletionPoller(provider_client, interval=5, max_attempts=max_attempts, sleep=sleep)
    return poller, provider_client, sleep


class TestExtractResultUrl:

    def test_first_valid_url_in_array(self):
        payload = {"resultUrls": ["", "not-a-url", "https://x/y.mp4", "https://x/z.mp4"]}
        assert extract_result_url(payload) == "https://x/y.mp4"

    def test_priority_order(self):
        payload = {
            "url": "https://x/last.mp4",
            "resultVideoUrl": "https://x/video.mp4",
            "resultWaterMarkUrls": ["https://x/wm.mp4"],
        }
        assert extract_result_url(payload) == "https://x/wm.mp4"

    def test_singular_field(self):
        assert extract_result_url({"videoUrl": "https://x/v.mp4"}) == "https://x/v.mp4"

    @pytest.mark.parametrize("payload", [
        None,
        {},
        {"resultUrls": []},
        {"resultUrls": ["/relative/path.mp4", "https://"]},
        {"resultUrls": [123]},
    ])
    def test_nothing_usable(self, payload):
        assert extract_result_url(payload) is None


class TestNormalizeVeo:

    @pytest.mark.parametrize("flag, state", [
        (0, TaskState.GENERATING),
        (2, TaskState.FAIL),
        (3, TaskState.FAIL),
        (None, TaskState.GENERATING),
        (7, TaskState.GENERATING),
    ])
    def test_flag_mapping(self, flag, state):
        assert normalize_veo_record(veo_record(flag)).state == state

    def test_success_takes_first_result_url(self):
        record = veo_record(1, {"resultUrls": ["ftp://bad", "https://x/y.mp4"], "originUrls": []})
        snapshot = normalize_veo_record(record)

        assert snapshot.state == TaskState.SUCCESS
        assert snapshot.result_url == "https://x/y.mp4"

    def test_origin_urls_fallback(self):
        record = veo_record(1, {"resultUrls": [], "originUrls": ["https://x/origin.mp4"]})
        assert normalize_veo_record(record).result_url == "https://x/origin.mp4"

    def test_failure_reason(self):
        assert normalize_veo_record(veo_record(2, error_message="nsfw")).failure_reason == "nsfw"
        assert normalize_veo_record(veo_record(3)).failure_reason == "Video generation failed"


class TestNormalizeJob:

    @pytest.mark.parametrize("raw, state", [
        ("waiting", TaskState.QUEUEING),
        ("queuing", TaskState.QUEUEING),
        ("generating", TaskState.GENERATING),
        ("fail", TaskState.FAIL),
        ("mystery", TaskState.GENERATING),
    ])
    def test_state_mapping(self, raw, state):
        assert normalize_job_record(job_record(raw)).state == state

    def test_success_parses_result_json(self):
        record = job_record("success", {"resultUrls": ["https://x/sora.mp4"]})
        snapshot = normalize_job_record(record)

        assert snapshot.state == TaskState.SUCCESS
        assert snapshot.result_url == "https://x/sora.mp4"

    def test_invalid_result_json(self):
        record = JobStatusRecord.model_validate({"state": "success", "resultJson": "{not json"})
        assert normalize_job_record(record).result_url is None

    def test_same_terminal_record_twice(self):
        record = job_record("success", {"resultUrls": ["https://x/sora.mp4"]})
        assert normalize_record(record) == normalize_record(record)


class TestRetryUntilDone:

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self):
        operation = AsyncMock(side_effect=AuthError("bad key"))

        with pytest.raises(AuthError):
            await retry_until_done(operation, lambda r: True, max_attempts=5, interval=0, sleep=AsyncMock())

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_reports_last_result(self):
        operation = AsyncMock(return_value="pending")

        with pytest.raises(AttemptsExhausted) as exc_info:
            await retry_until_done(operation, lambda r: False, max_attempts=3, interval=0, sleep=AsyncMock())

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_result == "pending"
        assert operation.await_count == 3


class TestCompletionPoller:

    @pytest.mark.asyncio
    async def test_veo_success(self):
        """Two generating polls then success."""
        poller, provider_client, sleep = make_poller([
            veo_record(0),
            veo_record(0),
            veo_record(1, {"resultUrls": ["https://x/y.mp4"]}),
        ])
        task = Task(task_id="t1", model=VideoModel.VEO_3_1)
        states = []

        url = await poller.wait_for_completion(task, VEO, on_progress=states.append)

        assert url == "https://x/y.mp4"
        assert states == [TaskState.GENERATING, TaskState.GENERATING, TaskState.SUCCESS]
        assert task.state == TaskState.SUCCESS
        assert task.result_url == "https://x/y.mp4"
        provider_client.fetch_status.assert_awaited_with("t1", VEO)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(5)

    @pytest.mark.asyncio
    async def test_job_queueing_then_success(self):
        poller, _, _ = make_poller([
            job_record("waiting"),
            job_record("queuing"),
            job_record("generating"),
            job_record("success", {"resultUrls": ["https://x/sora.mp4"]}),
        ])
        task = Task(task_id="t1", model=VideoModel.SORA_2)
        states = []

        url = await poller.wait_for_completion(task, SORA, on_progress=states.append)

        assert url == "https://x/sora.mp4"
        assert states == [
            TaskState.QUEUEING,
            TaskState.QUEUEING,
            TaskState.GENERATING,
            TaskState.SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_budget_exhausted_after_exactly_max_attempts(self):
        poller, provider_client, sleep = make_poller(
            [veo_record(0) for _ in range(10)], max_attempts=4
        )
        task = Task(task_id="t1", model=VideoModel.VEO_3_1)

        with pytest.raises(PollTimeoutError) as exc_info:
            await poller.wait_for_completion(task, VEO)

        assert provider_client.fetch_status.await_count == 4
        assert sleep.await_count == 3
        assert exc_info.value.attempts == 4
        assert exc_info.value.task_id == "t1"
        assert exc_info.value.last_state == "generating"
        assert task.state == TaskState.GENERATING

    @pytest.mark.asyncio
    async def test_transient_failures_are_invisible(self):
        """Timeouts on attempts 1-2, generating on 3: polling carries on."""
        poller, provider_client, _ = make_poller([
            GenerationTimeoutError("timeout"),
            GenerationTimeoutError("timeout"),
            job_record("generating"),
            RateLimitError("slow down"),
            job_record("success", {"resultUrl": "https://x/sora.mp4"}),
        ])
        task = Task(task_id="t1", model=VideoModel.SORA_2)
        states = []

        url = await poller.wait_for_completion(task, SORA, on_progress=states.append)

        assert url == "https://x/sora.mp4"
        assert provider_client.fetch_status.await_count == 5
        assert states == [TaskState.GENERATING, TaskState.SUCCESS]

    @pytest.mark.asyncio
    async def test_final_attempt_error_surfaced(self):
        poller, provider_client, _ = make_poller(
            [job_record("generating"), GenerationTimeoutError("timeout"), GenerationTimeoutError("timeout")],
            max_attempts=3,
        )
        task = Task(task_id="t1", model=VideoModel.SORA_2)

        with pytest.raises(GenerationTimeoutError) as exc_info:
            await poller.wait_for_completion(task, SORA)

        assert not isinstance(exc_info.value, PollTimeoutError)
        assert provider_client.fetch_status.await_count == 3

    @pytest.mark.asyncio
    async def test_terminal_failure(self):
        poller, provider_client, _ = make_poller([
            job_record("generating"),
            job_record("fail", fail_msg="content policy"),
            job_record("generating"),
        ])
        task = Task(task_id="t1", model=VideoModel.SORA_2)

        with pytest.raises(ProviderError) as exc_info:
            await poller.wait_for_completion(task, SORA)

        assert str(exc_info.value) == "content policy"
        assert exc_info.value.retryable is False
        assert provider_client.fetch_status.await_count == 2
        assert task.state == TaskState.FAIL

    @pytest.mark.asyncio
    async def test_success_without_response_is_protocol_error(self):
        poller, provider_client, _ = make_poller([veo_record(1, None), veo_record(1, None)])
        task = Task(task_id="t1", model=VideoModel.VEO_3_1)
        states = []

        with pytest.raises(ProtocolError):
            await poller.wait_for_completion(task, VEO, on_progress=states.append)

        assert provider_client.fetch_status.await_count == 1
        assert states == [TaskState.FAIL]
        assert task.state == TaskState.FAIL
        assert task.result_url is None

    @pytest.mark.asyncio
    async def test_non_retryable_fetch_error(self):
        poller, provider_client, _ = make_poller([AuthError("bad key")])

        with pytest.raises(AuthError):
            await poller.wait_for_completion(Task(task_id="t1", model=VideoModel.SORA_2), SORA)

        assert provider_client.fetch_status.await_count == 1

    @pytest.mark.asyncio
    async def test_terminal_task_is_not_polled_again(self):
        poller, provider_client, _ = make_poller([veo_record(1, {"resultUrls": ["https://x/y.mp4"]})])
        task = Task(task_id="t1", model=VideoModel.VEO_3_1)

        first = await poller.poll_once(task, VEO)
        second = await poller.poll_once(task, VEO)

        assert first == second
        assert provider_client.fetch_status.await_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_checked_before_each_fetch(self):
        token = CancellationToken()
        poller, provider_client, _ = make_poller([veo_record(0) for _ in range(5)])

        def on_progress(state):
            token.cancel()

        with pytest.raises(GenerationCancelled):
            await poller.wait_for_completion(
                Task(task_id="t1", model=VideoModel.VEO_3_1),
                VEO,
                on_progress=on_progress,
                cancel_token=token,
            )

        assert provider_client.fetch_status.await_count == 1

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_abort(self):
        poller, _, _ = make_poller([veo_record(1, {"resultUrls": ["https://x/y.mp4"]})])

        def broken(state):
            raise RuntimeError("UI gone")

        url = await poller.wait_for_completion(
            Task(task_id="t1", model=VideoModel.VEO_3_1), VEO, on_progress=broken
        )
        assert url == "https://x/y.mp4"

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            CompletionPoller(MagicMock(), max_attempts=0)


class TestTask:

    def test_terminal_task_is_immutable(self):
        from services.video_generation.models import StatusSnapshot

        task = Task(task_id="t1", model=VideoModel.SORA_2)
        assert task.state == TaskState.QUEUEING

        assert task.apply(StatusSnapshot(TaskState.SUCCESS, result_url="https://x/y.mp4"))
        assert not task.apply(StatusSnapshot(TaskState.FAIL, failure_reason="late"))

        assert task.state == TaskState.SUCCESS
        assert task.result_url == "https://x/y.mp4"
        assert task.failure_reason is None

    def test_apply_records_update_time(self):
        from services.video_generation.models import StatusSnapshot

        task = Task(task_id="t1", model=VideoModel.VEO_3_1)
        assert task.updated_at is None
        assert task.elapsed_seconds == 0.0

        task.apply(StatusSnapshot(TaskState.GENERATING))
        first_update = task.updated_at
        assert first_update >= task.created_at
        assert task.elapsed_seconds >= 0.0

        task.apply(StatusSnapshot(TaskState.SUCCESS, result_url="https://x/y.mp4"))
        finished_at = task.updated_at
        assert finished_at >= first_update

        assert not task.apply(StatusSnapshot(TaskState.FAIL))
        assert task.updated_at == finished_at
