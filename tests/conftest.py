from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from cutout.core.errors import DetectionError
from cutout.services.gateway import ImagePart, QualityLevel
from cutout.services.geometry import BoundingBox


def _create_png(width: int, height: int | None = None, color=(255, 0, 0, 255)) -> bytes:
    image = Image.new("RGBA", (width, height or width), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeGateway:
    """Stands in for InferenceGateway; records every call it receives."""

    def __init__(self):
        self.calls: list[tuple[str, ImagePart, QualityLevel | None]] = []
        self.box: BoundingBox | None = None
        self.removal_result = _create_png(8, color=(0, 128, 255, 128))
        self.removal_error: Exception | None = None
        self.text_result = "hello"
        self.text_error: Exception | None = None
        self.detect_gate: asyncio.Event | None = None
        self.operation_gate: asyncio.Event | None = None

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def detect_subject(self, part: ImagePart) -> BoundingBox:
        self.calls.append(("detect_subject", part, None))
        if self.detect_gate is not None:
            await self.detect_gate.wait()
        if self.box is None:
            raise DetectionError("no subject found")
        return self.box

    async def remove_background(self, part: ImagePart, quality: QualityLevel) -> bytes:
        self.calls.append(("remove_background", part, quality))
        if self.operation_gate is not None:
            await self.operation_gate.wait()
        if self.removal_error is not None:
            raise self.removal_error
        return self.removal_result

    async def detect_text(self, part: ImagePart) -> str:
        self.calls.append(("detect_text", part, None))
        if self.operation_gate is not None:
            await self.operation_gate.wait()
        if self.text_error is not None:
            raise self.text_error
        return self.text_result


class FakeModels:
    """Mimics ``client.aio.models`` of the google-genai SDK."""

    def __init__(self):
        self.requests: list[dict] = []
        self.response = None
        self.error: Exception | None = None

    async def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def genai_client() -> SimpleNamespace:
    return SimpleNamespace(aio=SimpleNamespace(models=FakeModels()))
