"""Decoding of Vertex AI JSON responses into explicit result types.

The Imagen and Veo endpoints answer with loosely-typed JSON in which most
fields are optional.  This module inspects that JSON exactly once, at the
client boundary, and turns it into a closed set of small dataclasses so the
rest of the code never has to probe optional keys.

``:predict`` responses decode to a list of :class:`GeneratedImage` (or raise
:class:`~vertexstudio.core.errors.EmptyResultError`).

``:fetchPredictOperation`` responses decode to exactly one of:

=========================  ==================================================
Variant                    Meaning
=========================  ==================================================
:class:`OperationFailed`   the operation reported an explicit ``error``
:class:`OperationPending`  not done yet, poll again
:class:`VideoReady`        done, video bytes delivered inline
:class:`VideoStoredExternally`  done, video written to Cloud Storage
:class:`VideoFiltered`     done, output suppressed by safety filters
:class:`VideoMissing`      done, but no usable video in the response
=========================  ==================================================
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Union

from .errors import EmptyResultError, UpstreamError

DEFAULT_IMAGE_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class GeneratedImage:
    """One image returned by ``:predict``."""

    data: bytes
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE
    enhanced_prompt: str | None = None


@dataclass(frozen=True)
class OperationPending:
    pass


@dataclass(frozen=True)
class OperationFailed:
    error: Any


@dataclass(frozen=True)
class VideoReady:
    data: bytes


@dataclass(frozen=True)
class VideoStoredExternally:
    uri: str


@dataclass(frozen=True)
class VideoFiltered:
    filtered_count: int


@dataclass(frozen=True)
class VideoMissing:
    reason: str


OperationStatus = Union[
    OperationPending,
    OperationFailed,
    VideoReady,
    VideoStoredExternally,
    VideoFiltered,
    VideoMissing,
]


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UpstreamError(f"Upstream returned invalid base64 payload: {e}") from e


def decode_predictions(payload: Any) -> list[GeneratedImage]:
    """Decode an Imagen ``:predict`` response.

    Args:
        payload: Parsed JSON body.

    Returns:
        One :class:`GeneratedImage` per prediction, in response order.

    Raises:
        EmptyResultError: If the response holds no predictions.
    """
    predictions = payload.get("predictions") if isinstance(payload, dict) else None
    if not predictions:
        raise EmptyResultError("Imagen API returned no predictions")

    images = []
    for prediction in predictions:
        if not isinstance(prediction, dict):
            continue
        images.append(
            GeneratedImage(
                data=_b64decode(prediction.get("bytesBase64Encoded") or ""),
                mime_type=prediction.get("mimeType") or DEFAULT_IMAGE_MIME_TYPE,
                enhanced_prompt=prediction.get("prompt"),
            )
        )

    if not images:
        raise EmptyResultError("Imagen API returned no predictions")
    return images


def decode_operation_name(payload: Any) -> str | None:
    """Extract the operation handle from a ``:predictLongRunning`` response."""
    if isinstance(payload, dict):
        name = payload.get("name")
        if isinstance(name, str) and name:
            return name
    return None


def _malformed_status(payload: dict) -> UpstreamError:
    return UpstreamError("Veo API returned malformed operation status", body=repr(payload)[:500])


def decode_operation_status(payload: Any) -> OperationStatus:
    """Classify a ``:fetchPredictOperation`` response.

    An explicit ``error`` wins over everything else, whether or not the
    operation claims to be done.
    """
    if not isinstance(payload, dict):
        return OperationPending()

    if payload.get("error"):
        return OperationFailed(payload["error"])

    if not payload.get("done"):
        return OperationPending()

    response = payload.get("response") or {}
    if not isinstance(response, dict):
        raise _malformed_status(payload)
    videos = response.get("videos") or []
    if not isinstance(videos, list):
        raise _malformed_status(payload)
    if videos:
        video = videos[0] or {}
        if not isinstance(video, dict):
            raise _malformed_status(payload)
        if video.get("bytesBase64Encoded"):
            return VideoReady(_b64decode(video["bytesBase64Encoded"]))
        if video.get("gcsUri"):
            return VideoStoredExternally(video["gcsUri"])
        return VideoMissing("Video object found but missing bytesBase64Encoded or gcsUri")

    filtered = response.get("raiMediaFilteredCount") or 0
    if not isinstance(filtered, int) or isinstance(filtered, bool):
        raise _malformed_status(payload)
    if filtered > 0:
        return VideoFiltered(filtered)

    return VideoMissing("Video generation completed but no video data found.")
