"""Shared pytest fixtures for Vertex Studio tests."""

import base64
import io
import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from vertexstudio.api.main import create_app
from vertexstudio.core.auth import StaticTokenProvider
from vertexstudio.core.config import StudioConfig
from vertexstudio.core.polling import PollPolicy
from vertexstudio.core.vertex_client import VertexClient


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_image_bytes(fmt: str = "PNG", color: str = "red") -> bytes:
    """Encode a tiny solid-colour image in *fmt*."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, format=fmt)
    return buffer.getvalue()


VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42fake-video"


class FakeVertexAPI:
    """In-process stand-in for the Vertex AI publisher-model endpoints.

    Requests are recorded in :attr:`requests` as ``(verb, model, body)``
    tuples.  Responses are driven by the public attributes:

    - ``predictions``: list returned by ``:predict``
    - ``operation_name``: handle returned by ``:predictLongRunning``
    - ``operation_statuses``: successive ``:fetchPredictOperation`` bodies;
      the last one repeats once the list is exhausted
    - ``fail_status``: if set, requests answer with this status
    - ``fail_verbs``: restricts ``fail_status`` to these verbs (all when empty)
    """

    def __init__(self) -> None:
        self.requests: list[tuple[str, str, dict]] = []
        self.headers: list[httpx.Headers] = []
        self.predictions = [
            {
                "bytesBase64Encoded": b64(make_image_bytes()),
                "mimeType": "image/png",
                "prompt": "An enhanced prompt",
            }
        ]
        self.operation_name: str | None = "projects/test-project/operations/op-1"
        self.operation_statuses: list[dict] = [
            {"done": True, "response": {"videos": [{"bytesBase64Encoded": b64(VIDEO_BYTES)}]}}
        ]
        self.fail_status: int | None = None
        self.fail_verbs: set[str] = set()

    def calls(self, verb: str) -> list[dict]:
        return [body for v, _, body in self.requests if v == verb]

    def handler(self, request: httpx.Request) -> httpx.Response:
        model, verb = request.url.path.rsplit("/", 1)[-1].split(":")
        self.requests.append((verb, model, json.loads(request.content)))
        self.headers.append(request.headers)

        if self.fail_status is not None and (not self.fail_verbs or verb in self.fail_verbs):
            return httpx.Response(self.fail_status, text='{"error": "quota exceeded"}')

        if verb == "predict":
            return httpx.Response(200, json={"predictions": self.predictions})
        if verb == "predictLongRunning":
            body = {"name": self.operation_name} if self.operation_name else {}
            return httpx.Response(200, json=body)
        if verb == "fetchPredictOperation":
            if len(self.operation_statuses) > 1:
                return httpx.Response(200, json=self.operation_statuses.pop(0))
            return httpx.Response(200, json=self.operation_statuses[0])
        return httpx.Response(404, text="unknown verb")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> StudioConfig:
    """Create a test configuration writing into a temporary outputs directory."""
    return StudioConfig(
        _env_file=None,
        project_id="test-project",
        location="us-central1",
        imagen_model="imagen-3.0-generate-001",
        imagen_edit_model="imagen-3.0-capability-001",
        veo_model="veo-3.0-generate-001",
        outputs_dir=str(temp_dir / "outputs"),
        service_account_key=str(temp_dir / "missing-key.json"),
        google_application_credentials=None,
    )


@pytest.fixture
def fake_api() -> FakeVertexAPI:
    return FakeVertexAPI()


@pytest.fixture
def poll_sleeps() -> list[float]:
    """Delays requested by the polling loop, in order."""
    return []


@pytest.fixture
def vertex_client(test_config: StudioConfig, fake_api: FakeVertexAPI, poll_sleeps) -> VertexClient:
    """VertexClient wired to :class:`FakeVertexAPI` with a three-poll policy."""

    async def record_sleep(delay: float) -> None:
        poll_sleeps.append(delay)

    return VertexClient(
        test_config,
        StaticTokenProvider("test-token"),
        poll_policy=PollPolicy.fixed(0, 3),
        transport=httpx.MockTransport(fake_api.handler),
        sleep=record_sleep,
    )


@pytest.fixture
def test_client(test_config: StudioConfig, vertex_client: VertexClient):
    """FastAPI TestClient running the app against the fake remote API."""
    app = create_app(test_config, client=vertex_client)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def existing_image(test_config: StudioConfig, png_bytes: bytes) -> Path:
    """An image of generation 123 already present in the outputs directory."""
    path = test_config.outputs_dir / "result-123.png"
    path.write_bytes(png_bytes)
    return path
