from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from cutout.services.session import EditingSession


class CropResponse(BaseModel):
    x: float
    y: float
    width: float
    height: float
    unit: str


class ImageInfo(BaseModel):
    file_name: str
    media_type: str
    natural_width: int
    natural_height: int
    displayed_width: float
    displayed_height: float


class SessionResponse(BaseModel):
    session_id: str
    status: str = Field(..., description="empty, loaded, removing or extracting")
    detecting: bool = Field(..., description="Subject auto-detection still running")
    image: Optional[ImageInfo] = None
    crop: Optional[CropResponse] = None
    quality: str
    output_format: str
    progress: int = Field(..., ge=0, le=100, description="Cosmetic progress estimate")
    has_result: bool
    text: Optional[str] = None
    download_file_name: Optional[str] = Field(
        None, description="Set once the download artifact for the current format is ready"
    )
    error: Optional[str] = Field(None, description="Message safe to show to the user")

    @classmethod
    def from_session(cls, session: EditingSession) -> "SessionResponse":
        state = session.state
        image = state.image
        crop = state.crop
        removal = state.removal
        text = state.text
        return cls(
            session_id=session.session_id,
            status=session.status,
            detecting=state.detecting,
            image=ImageInfo(
                file_name=image.file_name,
                media_type=image.media_type,
                natural_width=image.natural_width,
                natural_height=image.natural_height,
                displayed_width=image.displayed_width,
                displayed_height=image.displayed_height,
            )
            if image
            else None,
            crop=CropResponse(
                x=crop.x, y=crop.y, width=crop.width, height=crop.height, unit=crop.unit.value
            )
            if crop
            else None,
            quality=state.quality.value,
            output_format=state.output_format.value,
            progress=session.progress.value,
            has_result=bool(removal and removal.ok),
            text=text.value if text and text.ok else None,
            download_file_name=state.download.file_name if state.download else None,
            error=state.error,
        )


class PreviewResponse(BaseModel):
    session_id: str
    original_base64: Optional[str] = Field(None, description="Data URL of the uploaded image")
    result_base64: Optional[str] = Field(None, description="Data URL of the background-removed PNG")
