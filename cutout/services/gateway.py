"""
Remote inference gateway backed by the Google GenAI SDK.

Three independent operations share one request shape: an inline image part
followed by a text instruction. Nothing is cached or retried here; every call
reaches the remote model.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, ValidationError

from cutout.core.errors import (
    BackgroundRemovalError,
    DetectionError,
    NoCandidateError,
    NoImageDataError,
    ParseError,
    SchemaError,
    TextDetectionError,
)
from cutout.services.geometry import BoundingBox

logger = logging.getLogger(__name__)


class QualityLevel(str, Enum):
    STANDARD = "standard"
    HIGH = "high"


REMOVAL_INSTRUCTIONS = {
    QualityLevel.STANDARD: (
        "remove the background. return only the subject with a transparent background."
    ),
    QualityLevel.HIGH: (
        "Remove the background from this image with maximum precision. Preserve fine "
        "edge detail such as hair, fur and semi-transparent regions. Return only the "
        "subject on a fully transparent background, at the original resolution."
    ),
}

DETECTION_INSTRUCTION = (
    "Identify the main subject of this image and return its bounding box. "
    "Use normalized coordinates between 0 and 1 relative to the image size: "
    "x and y for the top-left corner, width and height for the box size."
)

TEXT_INSTRUCTION = (
    "Extract all text visible in this image. Return only the extracted text, "
    "preserving line breaks. If there is no text, return an empty response."
)

BOUNDING_BOX_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "x": types.Schema(type=types.Type.NUMBER),
        "y": types.Schema(type=types.Type.NUMBER),
        "width": types.Schema(type=types.Type.NUMBER),
        "height": types.Schema(type=types.Type.NUMBER),
    },
    required=["x", "y", "width", "height"],
)


@dataclass(frozen=True)
class ImagePart:
    """Encoded image sent inline with a request."""

    data: bytes
    mime_type: str

    def to_content(self) -> types.Part:
        return types.Part.from_bytes(data=self.data, mime_type=self.mime_type)


class _BoundingBoxPayload(BaseModel):
    # strict: "0.5" or true must not pass as numbers; NaN and Infinity are valid JSON to json.loads
    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    x: float
    y: float
    width: float
    height: float


def build_client(
    api_key: str | None,
    api_base: str | None = None,
    timeout_seconds: float = 120.0,
) -> genai.Client:
    """Create an AI Studio client; ``api_base`` allows routing through a proxy."""

    timeout_ms = int(timeout_seconds * 1000)
    http_options = (
        types.HttpOptions(base_url=api_base, timeout=timeout_ms)
        if api_base
        else types.HttpOptions(timeout=timeout_ms)
    )
    return genai.Client(api_key=api_key, http_options=http_options)


class InferenceGateway:
    def __init__(
        self,
        client: Any,
        image_model: str = "gemini-2.5-flash-image",
        vision_model: str = "gemini-2.5-flash",
    ):
        self.client = client
        self.image_model = image_model
        self.vision_model = vision_model

    async def _generate(
        self, model: str, part: ImagePart, instruction: str, config: types.GenerateContentConfig
    ) -> Any:
        return await self.client.aio.models.generate_content(
            model=model,
            contents=[part.to_content(), instruction],
            config=config,
        )

    async def detect_subject(self, part: ImagePart) -> BoundingBox:
        """Ask the model for the main subject's normalized bounding box."""

        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=BOUNDING_BOX_SCHEMA,
        )
        try:
            response = await self._generate(self.vision_model, part, DETECTION_INSTRUCTION, config)
        except Exception as exc:
            raise DetectionError(f"Subject detection request failed: {exc}") from exc

        raw = getattr(response, "text", None)
        if not raw:
            raise DetectionError("Subject detection returned no structured result")

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Subject detection returned malformed JSON: {raw[:200]!r}") from exc

        try:
            box = _BoundingBoxPayload.model_validate(payload)
        except ValidationError as exc:
            raise SchemaError(f"Subject detection payload failed validation: {exc}") from exc

        logger.debug("Detected subject box %s", box.model_dump())
        return BoundingBox(x=box.x, y=box.y, width=box.width, height=box.height)

    async def remove_background(self, part: ImagePart, quality: QualityLevel) -> bytes:
        """Return the raw bytes of the model's background-free image."""

        config = types.GenerateContentConfig(response_modalities=["IMAGE"])
        instruction = REMOVAL_INSTRUCTIONS[QualityLevel(quality)]
        try:
            response = await self._generate(self.image_model, part, instruction, config)
        except Exception as exc:
            raise BackgroundRemovalError(f"Background removal request failed: {exc}") from exc

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise NoCandidateError("No candidates returned from the API")

        content = getattr(candidates[0], "content", None)
        for response_part in getattr(content, "parts", None) or []:
            inline = getattr(response_part, "inline_data", None)
            if inline is not None and inline.data:
                return inline.data

        raise NoImageDataError("No image data found in the API response")

    async def detect_text(self, part: ImagePart) -> str:
        """Return the text found in the image; an empty string means none."""

        config = types.GenerateContentConfig(response_modalities=["TEXT"])
        try:
            response = await self._generate(self.vision_model, part, TEXT_INSTRUCTION, config)
            text = response.text or ""
        except Exception as exc:
            raise TextDetectionError(f"Text detection request failed: {exc}") from exc
        return text.strip()
