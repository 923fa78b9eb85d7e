"""Tests for vertexstudio.core.vertex_client — the remote generation client.

The Vertex AI API is replaced by ``FakeVertexAPI`` (see ``conftest.py``)
mounted on an ``httpx.MockTransport``; the polling loop uses a zero-delay
policy with a recording ``sleep``.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import VIDEO_BYTES, b64, make_image_bytes
from vertexstudio.core.errors import (
    ContentFilteredError,
    EmptyResultError,
    GenerationFailedError,
    OperationStartError,
    PollTimeoutError,
    UnsupportedStorageError,
    UpstreamError,
)
from vertexstudio.core.vertex_client import clamp_sample_count, sniff_image_mime_type


def run(coro):
    return asyncio.run(coro)


class TestHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [(None, 1), (0, 1), (1, 1), (3, 3), (4, 4), (9, 4), (-2, 1)],
    )
    def test_clamp_sample_count(self, value, expected):
        assert clamp_sample_count(value) == expected

    def test_sniff_png(self):
        assert sniff_image_mime_type(make_image_bytes("PNG")) == "image/png"

    def test_sniff_jpeg(self):
        assert sniff_image_mime_type(make_image_bytes("JPEG")) == "image/jpeg"

    def test_sniff_unknown_defaults_to_png(self):
        assert sniff_image_mime_type(b"definitely not an image") == "image/png"


class TestGenerateImage:
    def test_request_shape(self, vertex_client, fake_api):
        run(vertex_client.generate_image("a red fox", sample_count=2, aspect_ratio="16:9"))

        verb, model, body = fake_api.requests[0]
        assert (verb, model) == ("predict", "imagen-3.0-generate-001")
        assert body == {
            "instances": [{"prompt": "a red fox"}],
            "parameters": {
                "sampleCount": 2,
                "aspectRatio": "16:9",
                "safetySetting": "block_medium_and_above",
                "personGeneration": "allow_adult",
            },
        }

    def test_bearer_token_sent(self, vertex_client, fake_api):
        run(vertex_client.generate_image("a red fox"))
        assert fake_api.headers[0]["authorization"] == "Bearer test-token"

    def test_sample_count_clamped(self, vertex_client, fake_api):
        run(vertex_client.generate_image("a red fox", sample_count=10))
        assert fake_api.calls("predict")[0]["parameters"]["sampleCount"] == 4

    def test_decoded_result(self, vertex_client):
        images = run(vertex_client.generate_image("a red fox"))
        assert len(images) == 1
        assert images[0].mime_type == "image/png"
        assert images[0].enhanced_prompt == "An enhanced prompt"
        assert images[0].data == make_image_bytes()

    def test_upstream_error(self, vertex_client, fake_api):
        fake_api.fail_status = 429
        with pytest.raises(UpstreamError, match="Imagen API error: 429") as excinfo:
            run(vertex_client.generate_image("a red fox"))
        assert excinfo.value.status == 429
        assert "quota exceeded" in excinfo.value.body

    def test_empty_predictions(self, vertex_client, fake_api):
        fake_api.predictions = []
        with pytest.raises(EmptyResultError):
            run(vertex_client.generate_image("a red fox"))


class TestEditImage:
    def test_request_shape(self, vertex_client, fake_api, png_bytes):
        run(vertex_client.edit_image(png_bytes, "add snow", sample_count=1))

        verb, model, body = fake_api.requests[0]
        assert (verb, model) == ("predict", "imagen-3.0-capability-001")
        instance = body["instances"][0]
        assert instance["prompt"] == "add snow"
        assert instance["referenceImages"] == [
            {
                "referenceType": "REFERENCE_TYPE_RAW",
                "referenceId": 1,
                "referenceImage": {"bytesBase64Encoded": b64(png_bytes)},
            }
        ]
        assert "aspectRatio" not in body["parameters"]


class TestGenerateVideo:
    def test_success(self, vertex_client, fake_api, png_bytes, poll_sleeps):
        video = run(vertex_client.generate_video(png_bytes, "the fox runs"))

        assert video == VIDEO_BYTES
        assert [verb for verb, _, _ in fake_api.requests] == [
            "predictLongRunning",
            "fetchPredictOperation",
        ]
        assert fake_api.calls("fetchPredictOperation")[0] == {
            "operationName": "projects/test-project/operations/op-1"
        }
        assert poll_sleeps == [0]

    def test_request_shape_veo3_enables_audio(self, vertex_client, fake_api, png_bytes):
        run(
            vertex_client.generate_video(
                png_bytes, "the fox runs", aspect_ratio="9:16", duration_seconds=6
            )
        )

        body = fake_api.calls("predictLongRunning")[0]
        assert body["instances"][0]["prompt"] == "the fox runs"
        assert body["instances"][0]["image"] == {
            "bytesBase64Encoded": b64(png_bytes),
            "mimeType": "image/png",
        }
        assert body["parameters"] == {
            "aspectRatio": "9:16",
            "durationSeconds": 6,
            "sampleCount": 1,
            "generateAudio": True,
        }

    def test_other_models_do_not_get_audio_flag(self, vertex_client, png_bytes):
        vertex_client.config = vertex_client.config.model_copy(
            update={"veo_model": "veo-2.0-generate-001"}
        )
        body = vertex_client.build_video_request(png_bytes, "the fox runs")
        assert "generateAudio" not in body["parameters"]

    def test_jpeg_source_mime_type(self, vertex_client):
        body = vertex_client.build_video_request(make_image_bytes("JPEG"), "the fox runs")
        assert body["instances"][0]["image"]["mimeType"] == "image/jpeg"

    def test_missing_operation_name(self, vertex_client, fake_api, png_bytes):
        fake_api.operation_name = None
        with pytest.raises(OperationStartError):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))
        assert fake_api.calls("fetchPredictOperation") == []

    def test_polls_until_done(self, vertex_client, fake_api, png_bytes, poll_sleeps):
        fake_api.operation_statuses = [
            {"name": "op"},
            {"done": False},
            {"done": True, "response": {"videos": [{"bytesBase64Encoded": b64(b"late")}]}},
        ]
        assert run(vertex_client.generate_video(png_bytes, "the fox runs")) == b"late"
        assert len(fake_api.calls("fetchPredictOperation")) == 3
        assert len(poll_sleeps) == 3

    def test_error_stops_polling_immediately(self, vertex_client, fake_api, png_bytes):
        error = {"code": 13, "message": "internal"}
        fake_api.operation_statuses = [{"done": True, "error": error}]
        with pytest.raises(GenerationFailedError) as excinfo:
            run(vertex_client.generate_video(png_bytes, "the fox runs"))
        assert excinfo.value.error == error
        assert len(fake_api.calls("fetchPredictOperation")) == 1

    def test_gcs_output_unsupported(self, vertex_client, fake_api, png_bytes):
        fake_api.operation_statuses = [
            {"done": True, "response": {"videos": [{"gcsUri": "gs://bucket/out.mp4"}]}}
        ]
        with pytest.raises(UnsupportedStorageError):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))

    def test_content_filtered(self, vertex_client, fake_api, png_bytes):
        fake_api.operation_statuses = [{"done": True, "response": {"raiMediaFilteredCount": 2}}]
        with pytest.raises(ContentFilteredError, match="Filtered count: 2"):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))

    def test_done_without_video(self, vertex_client, fake_api, png_bytes):
        fake_api.operation_statuses = [{"done": True, "response": {}}]
        with pytest.raises(EmptyResultError):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))

    def test_timeout_after_max_attempts(self, vertex_client, fake_api, png_bytes, poll_sleeps):
        fake_api.operation_statuses = [{"done": False}]
        with pytest.raises(PollTimeoutError, match="timed out"):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))
        assert len(fake_api.calls("fetchPredictOperation")) == 3
        assert poll_sleeps == [0, 0, 0]

    def test_poll_failure_status(self, vertex_client, fake_api, png_bytes):
        fake_api.fail_status = 503
        fake_api.fail_verbs = {"fetchPredictOperation"}
        with pytest.raises(UpstreamError, match="Veo API error: 503"):
            run(vertex_client.generate_video(png_bytes, "the fox runs"))
