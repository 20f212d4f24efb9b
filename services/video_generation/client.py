"""
Unified Video Generation Client

Single entry point for the rest of the application:
- generate(request) -> playable result URL
- progress: idle, submitting, queueing, generating, success, fail
- cancel() / reset()

Pipeline (strictly sequential, any failure short-circuits the rest):
    route -> upload images -> submit -> poll
"""

import asyncio
import logging
from typing import Callable, Optional

from core.config import Config

from .errors import VideoGenerationError
from .models import GenerationRequest, ProgressState, Task, TaskState
from .poller import CancellationToken, CompletionPoller
from .provider_client import KieProviderClient
from .router import GenerationRouter
from .upload import UploadAdapter

logger = logging.getLogger(__name__)


class VideoGenerationClient:
    """
    Facade over router, uploader, provider client and poller.

    Usage:
        async with VideoGenerationClient.from_config(get_config()) as client:
            url = await client.generate(
                GenerationRequest(prompt="A cat surfing", model=VideoModel.VEO_3_1)
            )

    One instance tracks one generation at a time. Independent concurrent
    generations should use separate instances sharing the provider client.
    """

    def __init__(
        self,
        provider_client: KieProviderClient,
        uploader: UploadAdapter,
        router: Optional[GenerationRouter] = None,
        poller: Optional[CompletionPoller] = None,
        on_progress: Optional[Callable[[ProgressState], None]] = None,
    ):
        """
        Initialize the client.

        Args:
            provider_client: Kie.ai transport holding the API credential
            uploader: Adapter turning local images into public URLs
            router: Request router (default GenerationRouter())
            poller: Completion poller (default 5s interval, 60 attempts)
            on_progress: Callback receiving every progress state
        """
        self.provider_client = provider_client
        self.uploader = uploader
        self.router = router or GenerationRouter()
        self.poller = poller or CompletionPoller(provider_client)
        self.on_progress = on_progress

        self._cancel_token: Optional[CancellationToken] = None
        self._reset_state()

    @classmethod
    def from_config(
        cls,
        config: Config,
        on_progress: Optional[Callable[[ProgressState], None]] = None,
    ) -> "VideoGenerationClient":
        """Build a client and its collaborators from configuration."""
        provider_client = KieProviderClient(
            api_key=config.api.kie_api_key,
            base_url=config.api.kie_api_base,
            timeout=config.http.request_timeout,
        )
        uploader = UploadAdapter(
            api_key=config.api.kie_api_key,
            base_url=config.api.kie_upload_base,
            upload_path=config.upload.upload_path,
            timeout=config.http.upload_timeout,
            inter_upload_delay=config.upload.inter_upload_delay,
        )
        poller = CompletionPoller(
            provider_client,
            interval=config.polling.interval_seconds,
            max_attempts=config.polling.max_attempts,
        )
        logger.debug(
            f"Polling every {config.polling.interval_seconds}s for up to "
            f"{config.polling.budget_seconds:.0f}s"
        )
        return cls(provider_client, uploader, poller=poller, on_progress=on_progress)

    async def close(self):
        """Close the HTTP clients."""
        await self.provider_client.close()
        await self.uploader.close()

    async def __aenter__(self) -> "VideoGenerationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def _reset_state(self):
        self.progress: ProgressState = ProgressState.IDLE
        self.loading: bool = False
        self.error: Optional[VideoGenerationError] = None
        self.video_url: Optional[str] = None
        self.task: Optional[Task] = None

    @property
    def task_id(self) -> Optional[str]:
        return self.task.task_id if self.task else None

    def _set_progress(self, state: ProgressState):
        self.progress = state
        if self.on_progress:
            try:
                self.on_progress(state)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    def _is_current(self, token: CancellationToken) -> bool:
        # A reset() or a newer generate() detaches older calls
        return self._cancel_token is token

    async def generate(self, request: GenerationRequest) -> str:
        """
        Generate a video and return its playable URL.

        Only the most recent call updates the observable state; a call
        detached by reset() or a newer generate() still returns or raises
        normally.

        Raises:
            VideoGenerationError: A typed subclass describing what went wrong
        """
        token = CancellationToken()
        self._cancel_token = token
        self.loading = True
        self.error = None
        self.video_url = None
        self.task = None
        self._set_progress(ProgressState.SUBMITTING)

        def on_task_state(state: TaskState):
            if self._is_current(token):
                self._set_progress(ProgressState(state.value))

        try:
            # Fail fast on bad input before touching the network
            self.router.validate(request)

            resolved_image_urls = None
            if request.image_urls:
                token.raise_if_cancelled()
                resolved_image_urls = await self.uploader.resolve_public_urls(request.image_urls)

            route = self.router.route(request, resolved_image_urls)

            token.raise_if_cancelled()
            task_id = await self.provider_client.submit(route.payload)

            task = Task(task_id=task_id, model=request.model)
            logger.info(f"Video generation task submitted: {task_id}")
            if self._is_current(token):
                self.task = task
                self._set_progress(ProgressState.QUEUEING)

            url = await self.poller.wait_for_completion(
                task,
                route.family,
                on_progress=on_task_state,
                cancel_token=token,
            )

        except VideoGenerationError as e:
            logger.error(f"Video generation failed: {type(e).__name__}: {e}")
            if self._is_current(token):
                self.error = e
                self.loading = False
                self._set_progress(ProgressState.FAIL)
            raise
        except asyncio.CancelledError:
            # Caller stopped awaiting; progress keeps the last observed state
            logger.info("Video generation abandoned by caller")
            if self._is_current(token):
                self.loading = False
            raise

        if self._is_current(token):
            self.video_url = url
            self.loading = False
            if self.progress != ProgressState.SUCCESS:
                self._set_progress(ProgressState.SUCCESS)
        logger.info(f"Video generation completed: {url}")
        return url

    def cancel(self):
        """
        Ask the in-flight generation to stop at its next suspension point.

        An HTTP call already in flight runs to completion; its result is
        discarded and generate() raises GenerationCancelled.
        """
        if self._cancel_token:
            self._cancel_token.cancel()

    def reset(self):
        """Clear terminal or error state between independent generations."""
        self._cancel_token = None
        self._reset_state()
