from __future__ import annotations

import base64
import binascii
import io
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np
from PIL import Image, ImageColor, UnidentifiedImageError

from cutout.core.errors import DecodeError, DegenerateCropError, RasterizationError

# Slack for float noise when checking that a crop stays inside the image.
CROP_TOLERANCE = 1e-6


class CropUnit(str, Enum):
    PERCENT = "%"
    PIXELS = "px"


@dataclass(frozen=True)
class CropRegion:
    """Crop rectangle relative to the displayed image, not its natural pixels."""

    x: float
    y: float
    width: float
    height: float
    unit: CropUnit = CropUnit.PERCENT

    def to_display_pixels(self, displayed_width: float, displayed_height: float) -> tuple[float, float, float, float]:
        if self.unit is CropUnit.PIXELS:
            return self.x, self.y, self.width, self.height
        return (
            self.x * displayed_width / 100,
            self.y * displayed_height / 100,
            self.width * displayed_width / 100,
            self.height * displayed_height / 100,
        )

    def fits_within(self, displayed_width: float, displayed_height: float) -> bool:
        """Return True when the rectangle lies inside the displayed image."""

        if not all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height)):
            return False
        if min(self.x, self.y, self.width, self.height) < 0:
            return False
        max_x, max_y = (100.0, 100.0) if self.unit is CropUnit.PERCENT else (displayed_width, displayed_height)
        return (
            self.x + self.width <= max_x + CROP_TOLERANCE
            and self.y + self.height <= max_y + CROP_TOLERANCE
        )


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    w: int
    h: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Pillow crop box (left, upper, right, lower)."""

        return self.x, self.y, self.x + self.w, self.y + self.h


@dataclass(frozen=True)
class BoundingBox:
    """Normalized subject box, every field in [0, 1]."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class RasterizedImage:
    data: bytes
    file_name: str
    media_type: str = "image/png"


def full_image_crop() -> CropRegion:
    return CropRegion(x=0, y=0, width=100, height=100, unit=CropUnit.PERCENT)


def crop_from_bounding_box(box: BoundingBox) -> CropRegion:
    """Convert a normalized box into a percent crop clamped into the image."""

    x = min(max(box.x, 0.0), 1.0) * 100
    y = min(max(box.y, 0.0), 1.0) * 100
    width = min(max(box.width, 0.0) * 100, 100 - x)
    height = min(max(box.height, 0.0) * 100, 100 - y)
    return CropRegion(x=x, y=y, width=width, height=height, unit=CropUnit.PERCENT)


def compute_crop_in_pixels(
    displayed_width: float,
    displayed_height: float,
    natural_width: int,
    natural_height: int,
    crop: CropRegion,
) -> PixelRect:
    """Map a display-relative crop onto the source image's natural pixels.

    Each field is scaled by ``natural / displayed`` for its axis and rounded to
    the nearest pixel. The result is clipped to the natural bounds. A crop
    whose width or height ends up as zero pixels is rejected rather than
    widened.
    """

    fields = (displayed_width, displayed_height, crop.x, crop.y, crop.width, crop.height)
    if not all(math.isfinite(v) for v in fields):
        raise DegenerateCropError("Crop and displayed size must be finite numbers")
    if displayed_width <= 0 or displayed_height <= 0:
        raise DegenerateCropError("Image has no displayed size")
    if crop.width <= 0 or crop.height <= 0:
        raise DegenerateCropError("Crop dimensions cannot be zero")

    scale_x = natural_width / displayed_width
    scale_y = natural_height / displayed_height
    left, top, width, height = crop.to_display_pixels(displayed_width, displayed_height)

    x = min(max(round(left * scale_x), 0), natural_width)
    y = min(max(round(top * scale_y), 0), natural_height)
    w = min(round(width * scale_x), natural_width - x)
    h = min(round(height * scale_y), natural_height - y)

    if w <= 0 or h <= 0:
        raise DegenerateCropError(
            f"Crop collapses to {max(w, 0)}x{max(h, 0)} pixels on a {natural_width}x{natural_height} image"
        )
    return PixelRect(x=x, y=y, w=w, h=h)


def read_dimensions(content: bytes) -> tuple[int, int]:
    """Return the natural (width, height) of an encoded image."""

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.verify()
        with Image.open(io.BytesIO(content)) as image:
            return image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise DecodeError("Uploaded file is not a valid image") from exc


def rasterize_crop(content: bytes, rect: PixelRect, output_file_name: str) -> RasterizedImage:
    """Render ``rect`` of the source image into a standalone PNG.

    PNG keeps any transparency of the source; converting to the requested
    download format happens later, on the background-removal result.
    """

    try:
        source = Image.open(io.BytesIO(content))
        source.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise DecodeError("Source image could not be decoded") from exc

    try:
        cropped = source.convert("RGBA").crop(rect.box)
        buffer = io.BytesIO()
        cropped.save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise RasterizationError("Could not render the selected region") from exc

    data = buffer.getvalue()
    if not data:
        raise RasterizationError("Rendered region is empty")
    return RasterizedImage(data=data, file_name=output_file_name)


def flatten_onto_background(image: Image.Image, background_color: str = "#FFFFFF") -> Image.Image:
    """Composite ``image`` over a solid colour; opaque pixels are kept as-is."""

    try:
        background = np.array(ImageColor.getrgb(background_color)[:3], dtype=np.float64)
    except ValueError as exc:
        raise DecodeError(f"Invalid background colour {background_color!r}") from exc

    array = np.asarray(image.convert("RGBA"), dtype=np.float64)
    rgb = array[:, :, :3]
    alpha = array[:, :, 3:4] / 255.0
    blended = rgb * alpha + background * (1.0 - alpha)
    return Image.fromarray(np.rint(blended).astype(np.uint8))


def recode_to_opaque(
    alpha_image: bytes | str,
    background_color: str = "#FFFFFF",
    quality: int = 95,
) -> bytes:
    """Flatten an alpha-preserving image onto ``background_color`` and encode JPEG.

    ``alpha_image`` may be raw bytes or a ``data:`` URL. ``quality`` uses
    Pillow's 1-100 scale, so the default 95 is the 0.95 factor browsers use.
    """

    content = decode_data_url(alpha_image)[0] if isinstance(alpha_image, str) else alpha_image
    try:
        image = Image.open(io.BytesIO(content))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise DecodeError("Result image could not be decoded") from exc

    flattened = flatten_onto_background(image, background_color)
    buffer = io.BytesIO()
    try:
        flattened.save(buffer, format="JPEG", quality=quality)
    except OSError as exc:
        raise RasterizationError("Could not encode JPEG") from exc
    if not buffer.getbuffer().nbytes:
        raise RasterizationError("JPEG encoder produced no output")
    return buffer.getvalue()


def encode_data_url(content: bytes, media_type: str = "image/png") -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def decode_data_url(url: str) -> tuple[bytes, str]:
    """Split a base64 ``data:`` URL into (bytes, media type)."""

    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise DecodeError("Expected a base64 data URL")
    media_type = header[len("data:") : -len(";base64")] or "application/octet-stream"
    try:
        return base64.b64decode(payload, validate=True), media_type
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Data URL payload is not valid base64") from exc
