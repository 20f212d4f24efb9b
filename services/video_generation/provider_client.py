"""
Kie.ai Provider Client

Thin transport over the Kie.ai API:
- submit(payload) -> taskId
- fetch_status(taskId, family) -> raw status record
- get_credits() -> remaining account credits

Every method makes exactly one HTTP call. Retry policy lives in the poller.

API Documentation: https://docs.kie.ai
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .errors import (
    AuthError,
    GenerationTimeoutError,
    ProtocolError,
    ProviderError,
    QuotaError,
    RateLimitError,
    RequestError,
    VideoGenerationError,
)
from .models import (
    FAMILY_STATUS_SHAPES,
    STATUS_RECORD_TYPES,
    ProviderFamily,
    ProviderPayload,
    ProviderStatusRecord,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "kie"

DEFAULT_BASE_URL = "https://api.kie.ai/api/v1"
DEFAULT_TIMEOUT = 30.0

SUBMIT_ENDPOINTS: dict[ProviderFamily, str] = {
    ProviderFamily.FRAME_CONDITIONED: "/veo/generate",
    ProviderFamily.CLIP_SYNTHESIS: "/jobs/createTask",
    ProviderFamily.POST_PROCESS: "/jobs/createTask",
}

STATUS_ENDPOINTS: dict[ProviderFamily, str] = {
    ProviderFamily.FRAME_CONDITIONED: "/veo/record-info",
    ProviderFamily.CLIP_SYNTHESIS: "/jobs/recordInfo",
    ProviderFamily.POST_PROCESS: "/jobs/recordInfo",
}

CREDITS_ENDPOINT = "/common/credits"

# Kie.ai response codes (body "code" field, mirrored in HTTP status)
CODE_SUCCESS = 200
CODE_BAD_REQUEST = 400
CODE_UNAUTHORIZED = 401
CODE_INSUFFICIENT_CREDITS = 402
CODE_NOT_FOUND = 404
CODE_VALIDATION_ERROR = 422
CODE_RATE_LIMITED = 429
CODE_MAINTENANCE = 455
CODE_SERVER_ERROR = 500
CODE_GENERATION_FAILED = 501
CODE_FEATURE_DISABLED = 505


def map_error_code(code: Any, msg: Optional[str] = None) -> VideoGenerationError:
    """Translate a Kie.ai error code into a typed error."""
    error_code = f"KIE_{code}"

    if code == CODE_UNAUTHORIZED:
        return AuthError("Unauthorized: invalid API key", error_code, PROVIDER_NAME)
    if code == CODE_INSUFFICIENT_CREDITS:
        return QuotaError(
            "Insufficient credits. Please top up your account.", error_code, PROVIDER_NAME
        )
    if code == CODE_RATE_LIMITED:
        return RateLimitError(
            "Rate limit exceeded. Please try again later.", error_code, PROVIDER_NAME
        )
    if code in (CODE_BAD_REQUEST, CODE_NOT_FOUND, CODE_VALIDATION_ERROR):
        return RequestError(f"Validation error: {msg or 'invalid request'}", error_code, PROVIDER_NAME)
    if code == CODE_GENERATION_FAILED:
        return ProviderError(f"Video generation failed: {msg or 'unknown reason'}", error_code, PROVIDER_NAME)
    if code == CODE_MAINTENANCE:
        return ProviderError(
            "Service is under maintenance. Please try again later.", error_code, PROVIDER_NAME
        )
    return ProviderError(msg or "An error occurred with the Kie.ai API", error_code, PROVIDER_NAME)


class KieProviderClient:
    """
    Client for the Kie.ai generation API.

    Usage:
        async with KieProviderClient(api_key) as client:
            task_id = await client.submit(payload)
            record = await client.fetch_status(task_id, payload.family)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            logger.warning("Kie.ai API key not set. API calls will fail.")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "KieProviderClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Perform one API call and return the envelope's data field."""
        client = self._get_client()

        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(
                f"Kie API timeout: {type(e).__name__}",
                error_code="TIMEOUT",
                provider=PROVIDER_NAME,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Kie API request failed: {type(e).__name__}: {e}",
                error_code="NETWORK_ERROR",
                provider=PROVIDER_NAME,
            ) from e

        try:
            body = response.json()
        except ValueError:
            if response.is_error:
                raise map_error_code(response.status_code, response.text[:200])
            raise ProtocolError(
                f"Kie API returned a non-JSON response for {path}",
                error_code="INVALID_RESPONSE",
                provider=PROVIDER_NAME,
            )

        if not isinstance(body, dict):
            raise ProtocolError(
                f"Kie API returned an unexpected body for {path}",
                error_code="INVALID_RESPONSE",
                provider=PROVIDER_NAME,
            )

        code = body.get("code")
        if code is None or (response.is_error and code == CODE_SUCCESS):
            code = response.status_code

        if code != CODE_SUCCESS:
            logger.error(f"Kie API error on {method} {path}: code={code} msg={body.get('msg')}")
            raise map_error_code(code, body.get("msg"))

        data = body.get("data")
        return {} if data is None else data

    async def submit(self, payload: ProviderPayload) -> str:
        """Submit a generation job and return the provider task id."""
        endpoint = SUBMIT_ENDPOINTS[payload.family]
        data = await self._request("POST", endpoint, json=payload.to_wire())

        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            raise ProtocolError(
                "No taskId in Kie API response",
                error_code="NO_TASK_ID",
                provider=PROVIDER_NAME,
            )

        logger.info(f"Kie task created: {task_id} ({payload.family.value})")
        return task_id

    async def fetch_status(self, task_id: str, family: ProviderFamily) -> ProviderStatusRecord:
        """Fetch the raw status record for a task."""
        endpoint = STATUS_ENDPOINTS[family]
        data = await self._request("GET", endpoint, params={"taskId": task_id})

        record_type = STATUS_RECORD_TYPES[FAMILY_STATUS_SHAPES[family]]
        try:
            return record_type.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                f"Malformed status record for task {task_id}: {e}",
                error_code="INVALID_STATUS",
                provider=PROVIDER_NAME,
            ) from e

    async def get_credits(self) -> float:
        """Get the remaining account credits."""
        data = await self._request("GET", CREDITS_ENDPOINT)
        if isinstance(data, dict):
            data = data.get("credits")
        return float(data or 0)
