"""Async client for the Vertex AI Imagen and Veo publisher models.

:class:`VertexClient` wraps three remote operations:

- :meth:`~VertexClient.generate_image` — one ``:predict`` round trip on the
  Imagen generation model.
- :meth:`~VertexClient.edit_image` — one ``:predict`` round trip on the
  Imagen capability model, sending the base image as a raw reference image.
- :meth:`~VertexClient.generate_video` — ``:predictLongRunning`` on the Veo
  model followed by ``:fetchPredictOperation`` polls until the operation
  finishes, fails or the :class:`~vertexstudio.core.polling.PollPolicy` is
  exhausted.

Every response is decoded by :mod:`vertexstudio.core.responses` before the
client looks at it.

Usage Example
-------------
    client = VertexClient(config, ServiceAccountTokenProvider(key_file))
    images = await client.generate_image("a red fox", sample_count=2)
    video = await client.generate_video(images[0].data, "the fox runs")
    await client.aclose()
"""

from __future__ import annotations

import asyncio
import base64
import io
import json
import logging
from collections.abc import Awaitable, Callable

import httpx
from PIL import Image, UnidentifiedImageError

from .config import StudioConfig
from .errors import (
    ContentFilteredError,
    EmptyResultError,
    GenerationFailedError,
    OperationStartError,
    PollTimeoutError,
    UnsupportedStorageError,
    UpstreamError,
)
from .polling import PollPolicy
from .responses import (
    DEFAULT_IMAGE_MIME_TYPE,
    GeneratedImage,
    OperationFailed,
    OperationPending,
    VideoFiltered,
    VideoMissing,
    VideoReady,
    VideoStoredExternally,
    decode_operation_name,
    decode_operation_status,
    decode_predictions,
)

logger = logging.getLogger(__name__)

MIN_SAMPLE_COUNT = 1
MAX_SAMPLE_COUNT = 4
DEFAULT_SAMPLE_COUNT = 1
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_SAFETY_SETTING = "block_medium_and_above"
DEFAULT_PERSON_GENERATION = "allow_adult"
DEFAULT_VIDEO_ASPECT_RATIO = "16:9"
# Veo 3 image-to-video supports 4, 6 or 8 seconds.
DEFAULT_VIDEO_DURATION = 8


def clamp_sample_count(sample_count: int | None) -> int:
    """Clamp a requested sample count into the range Imagen accepts."""
    if not sample_count:
        return DEFAULT_SAMPLE_COUNT
    return max(MIN_SAMPLE_COUNT, min(MAX_SAMPLE_COUNT, int(sample_count)))


def sniff_image_mime_type(data: bytes) -> str:
    """Detect the MIME type of encoded image bytes, defaulting to PNG."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format or "", DEFAULT_IMAGE_MIME_TYPE)
    except (UnidentifiedImageError, OSError):
        return DEFAULT_IMAGE_MIME_TYPE


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class VertexClient:
    """Client for the Imagen and Veo REST endpoints.

    Args:
        config: Application configuration (project, region, model names).
        token_provider: Object with an async ``get_token()`` method.
        poll_policy: Polling schedule for video operations.  Defaults to
            the ``video_poll_*`` settings of *config*.
        transport: Optional ``httpx`` transport, used by tests to fake the
            remote service.
        sleep: Coroutine used to wait between polls.
    """

    def __init__(
        self,
        config: StudioConfig,
        token_provider,
        *,
        poll_policy: PollPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.token_provider = token_provider
        self.poll_policy = poll_policy or PollPolicy.from_config(config)
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> VertexClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, endpoint: str, body: dict, api_name: str) -> dict:
        """POST *body* as JSON and return the parsed response.

        Raises:
            UpstreamError: On transport failure, non-2xx status or a
                non-JSON body.
        """
        token = await self.token_provider.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        try:
            response = await self._http.post(endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{api_name} API request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"{api_name} API error: {response.status_code} {response.reason_phrase}. "
                f"{response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise UpstreamError(f"{api_name} API returned invalid JSON: {e}") from e

    # ------------------------------------------------------------------
    # Imagen
    # ------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        safety_setting: str = DEFAULT_SAFETY_SETTING,
        person_generation: str = DEFAULT_PERSON_GENERATION,
    ) -> list[GeneratedImage]:
        """Generate images from a text prompt.

        Returns:
            Decoded images; ``enhanced_prompt`` is set when the service
            rewrote the prompt.

        Raises:
            UpstreamError: If the call does not succeed.
            EmptyResultError: If the service returned no predictions.
        """
        endpoint = self.config.model_endpoint(self.config.imagen_model, "predict")
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": clamp_sample_count(sample_count),
                "aspectRatio": aspect_ratio,
                "safetySetting": safety_setting,
                "personGeneration": person_generation,
            },
        }
        count = body["parameters"]["sampleCount"]
        logger.info(f"Requesting {count} image(s) from {self.config.imagen_model}")
        return decode_predictions(await self._post(endpoint, body, "Imagen"))

    async def edit_image(
        self,
        image: bytes,
        edit_prompt: str,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        safety_setting: str = DEFAULT_SAFETY_SETTING,
        person_generation: str = DEFAULT_PERSON_GENERATION,
    ) -> list[GeneratedImage]:
        """Apply *edit_prompt* to an existing image in a single round trip."""
        endpoint = self.config.model_endpoint(self.config.imagen_edit_model, "predict")
        body = {
            "instances": [
                {
                    "referenceImages": [
                        {
                            "referenceType": "REFERENCE_TYPE_RAW",
                            "referenceId": 1,
                            "referenceImage": {"bytesBase64Encoded": _b64encode(image)},
                        }
                    ],
                    "prompt": edit_prompt,
                }
            ],
            "parameters": {
                "sampleCount": clamp_sample_count(sample_count),
                "safetySetting": safety_setting,
                "personGeneration": person_generation,
            },
        }
        logger.info(f"Requesting image edit from {self.config.imagen_edit_model}")
        return decode_predictions(await self._post(endpoint, body, "Imagen"))

    # ------------------------------------------------------------------
    # Veo
    # ------------------------------------------------------------------

    def build_video_request(
        self,
        image: bytes,
        prompt: str,
        aspect_ratio: str = DEFAULT_VIDEO_ASPECT_RATIO,
        duration_seconds: int = DEFAULT_VIDEO_DURATION,
    ) -> dict:
        body = {
            "instances": [
                {
                    "prompt": prompt,
                    "image": {
                        "bytesBase64Encoded": _b64encode(image),
                        "mimeType": sniff_image_mime_type(image),
                    },
                }
            ],
            "parameters": {
                "aspectRatio": aspect_ratio,
                "durationSeconds": duration_seconds,
                "sampleCount": 1,
            },
        }
        # Veo 3 models reject image-to-video requests without this flag.
        if self.config.is_veo3:
            body["parameters"]["generateAudio"] = True
        return body

    async def start_video_operation(self, body: dict) -> str:
        """Start a Veo long-running operation and return its handle.

        Raises:
            OperationStartError: If the response carries no operation name.
        """
        endpoint = self.config.model_endpoint(self.config.veo_model, "predictLongRunning")
        operation_name = decode_operation_name(await self._post(endpoint, body, "Veo"))
        if not operation_name:
            raise OperationStartError("Failed to start video generation operation")
        logger.info(f"Started video operation {operation_name}")
        return operation_name

    async def wait_for_video(self, operation_name: str) -> bytes:
        """Poll *operation_name* until it yields a video.

        Raises:
            GenerationFailedError: The operation reported an error.
            UnsupportedStorageError: The video was written to Cloud Storage.
            ContentFilteredError: Safety filters suppressed the output.
            EmptyResultError: The operation finished without a video.
            PollTimeoutError: The poll policy was exhausted.
        """
        endpoint = self.config.model_endpoint(self.config.veo_model, "fetchPredictOperation")
        policy = self.poll_policy

        for attempt in range(policy.max_attempts):
            await self._sleep(policy.delay(attempt))

            payload = await self._post(endpoint, {"operationName": operation_name}, "Veo")
            status = decode_operation_status(payload)

            if isinstance(status, OperationPending):
                logger.debug(
                    f"Operation {operation_name} pending "
                    f"(attempt {attempt + 1}/{policy.max_attempts})"
                )
                continue
            if isinstance(status, OperationFailed):
                raise GenerationFailedError(status.error)
            if isinstance(status, VideoReady):
                logger.info(f"Operation {operation_name} finished after {attempt + 1} poll(s)")
                return status.data
            if isinstance(status, VideoStoredExternally):
                raise UnsupportedStorageError(status.uri)
            if isinstance(status, VideoFiltered):
                raise ContentFilteredError(status.filtered_count)
            if isinstance(status, VideoMissing):
                raise EmptyResultError(status.reason)

        raise PollTimeoutError(policy.max_attempts)

    async def generate_video(
        self,
        image: bytes,
        prompt: str,
        aspect_ratio: str = DEFAULT_VIDEO_ASPECT_RATIO,
        duration_seconds: int = DEFAULT_VIDEO_DURATION,
    ) -> bytes:
        """Animate *image* according to *prompt* and return MP4 bytes.

        This may take up to the poll policy ceiling (ten minutes by
        default).  The caller's task is suspended between polls.
        """
        body = self.build_video_request(image, prompt, aspect_ratio, duration_seconds)
        operation_name = await self.start_video_operation(body)
        return await self.wait_for_video(operation_name)
