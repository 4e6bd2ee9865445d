from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Coroutine
from uuid import uuid4

from cutout.core.config import settings
from cutout.core.errors import (
    CutoutError,
    DecodeError,
    DegenerateCropError,
    DetectionError,
    FormatConversionError,
    InvalidCropError,
    InvalidFileTypeError,
    NoImageLoadedError,
    OperationFailedError,
    RasterizationError,
    SessionBusyError,
    UploadTooLargeError,
)
from cutout.core.logging import bind_session_id
from cutout.services.gateway import ImagePart, InferenceGateway, QualityLevel
from cutout.services.geometry import (
    CropRegion,
    PixelRect,
    compute_crop_in_pixels,
    crop_from_bounding_box,
    encode_data_url,
    full_image_crop,
    rasterize_crop,
    read_dimensions,
    recode_to_opaque,
)
from cutout.services.progress import ProgressSimulator

logger = logging.getLogger(__name__)

DOWNLOAD_BASENAME = "background-removed"
CROP_FILE_NAME = "cropped-image.png"
NO_TEXT_PLACEHOLDER = "No text found."

INVALID_FILE_MESSAGE = "Please upload a valid image file (PNG, JPG, etc.)."
NO_IMAGE_MESSAGE = "Please upload an image first."
SELECT_REGION_MESSAGE = "Please select a region of the image to process."
REMOVAL_FAILED_MESSAGE = (
    "Failed to process image. The model may be unable to handle this request. "
    "Please try another image."
)
TEXT_FAILED_MESSAGE = "Failed to detect text in the image. Please try again."
CONVERSION_FAILED_MESSAGE = "Failed to convert the image to JPG."


class SessionPhase(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"


class ActiveOperation(str, Enum):
    REMOVING = "removing"
    EXTRACTING = "extracting"


class OutputFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"

    @property
    def extension(self) -> str:
        return "jpg" if self is OutputFormat.JPEG else "png"

    @property
    def media_type(self) -> str:
        return f"image/{self.value}"

    @property
    def file_name(self) -> str:
        return f"{DOWNLOAD_BASENAME}.{self.extension}"

    @property
    def requires_recode(self) -> bool:
        return self is OutputFormat.JPEG


@dataclass(frozen=True)
class SourceImage:
    content: bytes
    media_type: str
    file_name: str
    natural_width: int
    natural_height: int
    displayed_width: float
    displayed_height: float

    @property
    def preview(self) -> str:
        return encode_data_url(self.content, self.media_type)


@dataclass(frozen=True)
class OperationResult:
    value: bytes | str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DownloadArtifact:
    data: bytes
    file_name: str
    media_type: str


@dataclass
class SessionState:
    phase: SessionPhase = SessionPhase.EMPTY
    image: SourceImage | None = None
    crop: CropRegion | None = None
    quality: QualityLevel = QualityLevel.STANDARD
    output_format: OutputFormat = OutputFormat.PNG
    active: ActiveOperation | None = None
    detecting: bool = False
    removal: OperationResult | None = None
    text: OperationResult | None = None
    download: DownloadArtifact | None = None
    error: str | None = None


@dataclass
class _DetectionTicket:
    stale: bool = field(default=False)


class EditingSession:
    """One user's editing session over a single source image.

    Every user event maps onto one method; all state lives in :attr:`state`.
    Background removal and text extraction share a single busy slot
    (``state.active``). Results of work started before the latest ingestion or
    clear are dropped when they arrive.
    """

    def __init__(
        self,
        gateway: InferenceGateway,
        session_id: str | None = None,
        *,
        progress_interval: float | None = None,
        progress_ceiling: int | None = None,
        display_delay: float | None = None,
        background_color: str | None = None,
        jpeg_quality: int | None = None,
        max_upload_size: int | None = None,
    ):
        self.gateway = gateway
        self.session_id = session_id or uuid4().hex
        self.display_delay = (
            settings.result_display_delay_seconds if display_delay is None else display_delay
        )
        self.background_color = (
            settings.jpeg_background_color if background_color is None else background_color
        )
        self.jpeg_quality = settings.jpeg_quality if jpeg_quality is None else jpeg_quality
        self.max_upload_size = (
            settings.max_upload_size_bytes if max_upload_size is None else max_upload_size
        )
        self.progress = ProgressSimulator(
            interval=settings.progress_tick_seconds if progress_interval is None else progress_interval,
            ceiling=settings.progress_ceiling if progress_ceiling is None else progress_ceiling,
        )
        self.state = SessionState()
        self.closed = False
        self._epoch = 0
        self._recode_generation = 0
        self._detection: _DetectionTicket | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def status(self) -> str:
        return self.state.active.value if self.state.active else self.state.phase.value

    async def ingest(self, content: bytes, media_type: str, file_name: str = "image") -> SessionState:
        with bind_session_id(self.session_id):
            if not (media_type or "").startswith("image/"):
                self._reset()
                self.state.error = INVALID_FILE_MESSAGE
                raise InvalidFileTypeError(f"Unsupported media type {media_type!r}")
            if len(content) > self.max_upload_size:
                raise UploadTooLargeError("Uploaded file exceeds maximum size limit")

            try:
                width, height = await asyncio.to_thread(read_dimensions, content)
            except DecodeError:
                self._reset()
                self.state.error = INVALID_FILE_MESSAGE
                raise

            self._reset()
            image = SourceImage(
                content=content,
                media_type=media_type,
                file_name=file_name,
                natural_width=width,
                natural_height=height,
                displayed_width=width,
                displayed_height=height,
            )
            self.state.phase = SessionPhase.LOADED
            self.state.image = image
            self.state.crop = full_image_crop()

            ticket = _DetectionTicket()
            self._detection = ticket
            self.state.detecting = True
            self._spawn(self._auto_detect(ticket, image))

            logger.info("Loaded %s (%dx%d, %s)", file_name, width, height, media_type)
            return self.state

    def clear(self) -> SessionState:
        with bind_session_id(self.session_id):
            self._reset()
            logger.info("Session cleared")
            return self.state

    def close(self) -> None:
        self._reset()
        for task in list(self._tasks):
            task.cancel()
        self.closed = True

    async def settle(self) -> None:
        """Wait for background detection and conversion tasks to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def set_display_size(self, width: float, height: float) -> SessionState:
        image = self._require_image()
        if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
            raise InvalidCropError("Displayed size must be a positive finite number")
        self.state.image = dataclasses.replace(image, displayed_width=width, displayed_height=height)
        crop = self.state.crop
        if crop is not None and not crop.fits_within(width, height):
            logger.info("Pixel crop no longer fits the %gx%g display, resetting to the full image", width, height)
            self.state.crop = full_image_crop()
        return self.state

    def update_crop(self, crop: CropRegion) -> SessionState:
        image = self._require_image()
        if not crop.fits_within(image.displayed_width, image.displayed_height):
            raise InvalidCropError("Crop must lie inside the displayed image")
        if self._detection is not None:
            # a manual edit wins over any detection still in flight
            self._detection.stale = True
        self.state.crop = crop
        return self.state

    def set_quality(self, quality: QualityLevel | str) -> SessionState:
        self.state.quality = QualityLevel(quality)
        return self.state

    async def set_output_format(self, output_format: OutputFormat | str) -> SessionState:
        with bind_session_id(self.session_id):
            self.state.output_format = OutputFormat(output_format)
            await self._refresh_download()
            return self.state

    async def remove_background(self) -> OperationResult | None:
        with bind_session_id(self.session_id):
            image, rect = self._claim(ActiveOperation.REMOVING)
            epoch = self._epoch
            self._recode_generation += 1
            self.state.removal = None
            self.state.download = None
            self.progress.start()
            quality = self.state.quality

            try:
                raster = await asyncio.to_thread(rasterize_crop, image.content, rect, CROP_FILE_NAME)
                data = await self.gateway.remove_background(
                    ImagePart(raster.data, raster.media_type), quality
                )
                if epoch != self._epoch:
                    logger.info("Discarding background removal result from a replaced image")
                    return None
                self.progress.finish()
                await asyncio.sleep(self.display_delay)
                if epoch != self._epoch:
                    return None
                self.state.removal = OperationResult(value=data)
            except CutoutError as exc:
                logger.exception("Background removal failed (quality=%s, rect=%s)", quality.value, rect)
                if epoch == self._epoch:
                    self.progress.reset()
                    self.state.error = REMOVAL_FAILED_MESSAGE
                    self.state.removal = OperationResult(error=REMOVAL_FAILED_MESSAGE)
                raise OperationFailedError(REMOVAL_FAILED_MESSAGE) from exc
            finally:
                if epoch == self._epoch:
                    self.progress.stop()
                    self.state.active = None

            logger.info("Background removed (%d bytes, quality=%s)", len(data), quality.value)
            await self._refresh_download()
            return self.state.removal

    async def detect_text(self) -> OperationResult | None:
        with bind_session_id(self.session_id):
            image, rect = self._claim(ActiveOperation.EXTRACTING)
            epoch = self._epoch
            self.state.text = None

            try:
                raster = await asyncio.to_thread(rasterize_crop, image.content, rect, CROP_FILE_NAME)
                text = await self.gateway.detect_text(ImagePart(raster.data, raster.media_type))
            except CutoutError as exc:
                logger.exception("Text detection failed (rect=%s)", rect)
                if epoch == self._epoch:
                    self.state.error = TEXT_FAILED_MESSAGE
                    self.state.text = OperationResult(error=TEXT_FAILED_MESSAGE)
                raise OperationFailedError(TEXT_FAILED_MESSAGE) from exc
            finally:
                if epoch == self._epoch:
                    self.state.active = None

            if epoch != self._epoch:
                logger.info("Discarding text detection result from a replaced image")
                return None
            self.state.text = OperationResult(value=text.strip() or NO_TEXT_PLACEHOLDER)
            return self.state.text

    def _require_image(self) -> SourceImage:
        if self.state.image is None:
            raise NoImageLoadedError(NO_IMAGE_MESSAGE)
        return self.state.image

    def _claim(self, operation: ActiveOperation) -> tuple[SourceImage, PixelRect]:
        """Check preconditions and take the busy slot for ``operation``."""

        if self.state.image is None or self.state.crop is None:
            self.state.error = NO_IMAGE_MESSAGE
            raise NoImageLoadedError(NO_IMAGE_MESSAGE)
        if self.state.active is not None:
            raise SessionBusyError(
                f"Cannot start {operation.value} while {self.state.active.value} is in progress"
            )

        image = self.state.image
        try:
            rect = compute_crop_in_pixels(
                image.displayed_width,
                image.displayed_height,
                image.natural_width,
                image.natural_height,
                self.state.crop,
            )
        except DegenerateCropError as exc:
            self.state.error = SELECT_REGION_MESSAGE
            raise DegenerateCropError(SELECT_REGION_MESSAGE) from exc

        self.state.active = operation
        self.state.error = None
        return image, rect

    def _reset(self) -> None:
        self.progress.reset()
        self._epoch += 1
        self._recode_generation += 1
        if self._detection is not None:
            self._detection.stale = True
            self._detection = None
        self.state = SessionState()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _auto_detect(self, ticket: _DetectionTicket, image: SourceImage) -> None:
        try:
            box = await self.gateway.detect_subject(ImagePart(image.content, image.media_type))
            crop = crop_from_bounding_box(box)
            if crop.width <= 0 or crop.height <= 0:
                raise DetectionError(f"Detected box has no area: {box}")
        except DetectionError as exc:
            logger.warning("Subject auto-detection failed, keeping full-image crop: %s", exc)
        else:
            if ticket.stale:
                logger.info("Discarding stale subject detection %s", box)
            else:
                self.state.crop = crop
                logger.info("Applied detected subject crop %s", crop)
        finally:
            if self._detection is ticket:
                self.state.detecting = False

    async def _refresh_download(self) -> None:
        self._recode_generation += 1
        generation = self._recode_generation
        output_format = self.state.output_format
        removal = self.state.removal
        self.state.download = None

        if removal is None or not removal.ok or not isinstance(removal.value, bytes):
            return
        if not output_format.requires_recode:
            self.state.download = DownloadArtifact(
                data=removal.value,
                file_name=output_format.file_name,
                media_type=output_format.media_type,
            )
            return

        try:
            data = await asyncio.to_thread(
                recode_to_opaque, removal.value, self.background_color, self.jpeg_quality
            )
        except (DecodeError, RasterizationError) as exc:
            if generation != self._recode_generation:
                return
            logger.exception("Converting result to %s failed", output_format.value)
            self.state.error = CONVERSION_FAILED_MESSAGE
            raise FormatConversionError(CONVERSION_FAILED_MESSAGE) from exc

        if generation != self._recode_generation:
            logger.debug(
                "Dropping stale %s conversion (generation %d, now %d)",
                output_format.value,
                generation,
                self._recode_generation,
            )
            return
        self.state.download = DownloadArtifact(
            data=data,
            file_name=output_format.file_name,
            media_type=output_format.media_type,
        )
