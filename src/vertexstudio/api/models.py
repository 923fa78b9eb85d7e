"""Pydantic request models for the Vertex Studio API.

These models define the JSON schema for every POST endpoint.  FastAPI uses
them for request validation and OpenAPI documentation; validation failures
are answered with ``400`` by the exception handlers in
:mod:`vertexstudio.api.main`.

Field names are snake_case in Python and camelCase on the wire
(``sample_count`` <-> ``sampleCount``), matching the frontend.

Models
------
GenerateImageRequest
    Payload for ``POST /api/generate-image``.
EditImageRequest
    Payload for ``POST /api/edit-image``.
GenerateVideoRequest
    Payload for ``POST /api/generate-video``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from vertexstudio.core.vertex_client import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_PERSON_GENERATION,
    DEFAULT_SAFETY_SETTING,
    DEFAULT_VIDEO_ASPECT_RATIO,
    DEFAULT_VIDEO_DURATION,
    clamp_sample_count,
)


def _require_text(value: str | None, message: str) -> str:
    if value is None or not value.strip():
        raise ValueError(message)
    return value.strip()


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator(
        "aspect_ratio",
        "safety_setting",
        "person_generation",
        mode="before",
        check_fields=False,
    )
    @classmethod
    def _blank_to_default(cls, value, info):
        # Empty strings fall back to the field default, as omitted fields do.
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("sample_count", mode="before", check_fields=False)
    @classmethod
    def _clamp_sample_count(cls, value):
        if value is None or value == "":
            return clamp_sample_count(None)
        try:
            return clamp_sample_count(int(value))
        except (TypeError, ValueError) as e:
            raise ValueError("sampleCount must be an integer") from e


class GenerateImageRequest(_RequestModel):
    """Request body for ``POST /api/generate-image``.

    Attributes:
        prompt: Text description of the image.  Required, trimmed.
        sample_count: Number of images, clamped to 1–4.  Defaults to 1.
        aspect_ratio: Imagen aspect ratio such as ``"1:1"`` or ``"16:9"``.
        safety_setting: Imagen safety filter level.
        person_generation: Imagen person generation policy.
    """

    prompt: str | None = Field(
        default=None,
        validate_default=True,
        description="Text prompt for the image.",
    )
    sample_count: int = Field(default=1, description="Number of images (1–4).")
    aspect_ratio: str = Field(default=DEFAULT_ASPECT_RATIO)
    safety_setting: str = Field(default=DEFAULT_SAFETY_SETTING)
    person_generation: str = Field(default=DEFAULT_PERSON_GENERATION)

    @field_validator("prompt")
    @classmethod
    def _validate_prompt(cls, value):
        return _require_text(value, "Prompt is required and must be a non-empty string")


class EditImageRequest(_RequestModel):
    """Request body for ``POST /api/edit-image``.

    Attributes:
        image_path: Public path of the image to edit, e.g.
            ``/outputs/result-123.png``.
        edit_prompt: Instruction describing the edit.  Required, trimmed.
        sample_count: Number of edited variants, clamped to 1–4.
        safety_setting: Imagen safety filter level.
        person_generation: Imagen person generation policy.
    """

    image_path: str | None = Field(
        default=None,
        validate_default=True,
        description="Public path of the source image.",
    )
    edit_prompt: str | None = Field(
        default=None,
        validate_default=True,
        description="Edit instruction.",
    )
    sample_count: int = Field(default=1)
    safety_setting: str = Field(default=DEFAULT_SAFETY_SETTING)
    person_generation: str = Field(default=DEFAULT_PERSON_GENERATION)

    @field_validator("image_path")
    @classmethod
    def _validate_image_path(cls, value):
        return _require_text(value, "Image path is required")

    @field_validator("edit_prompt")
    @classmethod
    def _validate_edit_prompt(cls, value):
        return _require_text(value, "Prompt is required and must be a non-empty string")


class GenerateVideoRequest(_RequestModel):
    """Request body for ``POST /api/generate-video``.

    Attributes:
        image_path: Public path of the image to animate.
        prompt: Description of the motion.  Required, trimmed.
        aspect_ratio: Veo aspect ratio.  Defaults to ``"16:9"``.
        duration: Clip length in seconds.  Defaults to 8.
    """

    image_path: str | None = Field(
        default=None,
        validate_default=True,
        description="Public path of the source image.",
    )
    prompt: str | None = Field(
        default=None,
        validate_default=True,
        description="Motion prompt.",
    )
    aspect_ratio: str = Field(default=DEFAULT_VIDEO_ASPECT_RATIO)
    duration: int = Field(default=DEFAULT_VIDEO_DURATION, ge=1, le=60)

    @field_validator("image_path")
    @classmethod
    def _validate_image_path(cls, value):
        return _require_text(value, "Image path is required")

    @field_validator("prompt")
    @classmethod
    def _validate_prompt(cls, value):
        return _require_text(value, "Prompt is required and must be a non-empty string")

    @field_validator("duration", mode="before")
    @classmethod
    def _default_duration(cls, value):
        return value or DEFAULT_VIDEO_DURATION
