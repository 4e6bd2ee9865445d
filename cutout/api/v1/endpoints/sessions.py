from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, File, Response, UploadFile
from starlette import status

from cutout.core.deps import get_session_store
from cutout.models.requests import CropRequest, DisplaySizeRequest, FormatRequest, QualityRequest
from cutout.models.responses import SessionResponse
from cutout.services.session import EditingSession
from cutout.services.session_store import SessionStore

router = APIRouter(prefix="/sessions", tags=["sessions"])

StoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_session(session_id: str, store: StoreDep) -> EditingSession:
    return store.get(session_id)


SessionDep = Annotated[EditingSession, Depends(get_session)]


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(store: StoreDep) -> SessionResponse:
    return SessionResponse.from_session(store.create())


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_state(session: SessionDep) -> SessionResponse:
    return SessionResponse.from_session(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, store: StoreDep) -> Response:
    store.discard(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/image", response_model=SessionResponse)
async def upload_image(
    session: SessionDep,
    file: Annotated[UploadFile, File(..., description="Source image")],
) -> SessionResponse:
    content = await file.read()
    await session.ingest(content, file.content_type or "", file.filename or "upload")
    return SessionResponse.from_session(session)


@router.delete("/{session_id}/image", response_model=SessionResponse)
async def clear_image(session: SessionDep) -> SessionResponse:
    session.clear()
    return SessionResponse.from_session(session)


@router.put("/{session_id}/display", response_model=SessionResponse)
async def set_display_size(session: SessionDep, body: DisplaySizeRequest) -> SessionResponse:
    session.set_display_size(body.width, body.height)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/crop", response_model=SessionResponse)
async def update_crop(session: SessionDep, body: CropRequest) -> SessionResponse:
    session.update_crop(body.to_region())
    return SessionResponse.from_session(session)


@router.put("/{session_id}/quality", response_model=SessionResponse)
async def set_quality(session: SessionDep, body: QualityRequest) -> SessionResponse:
    session.set_quality(body.quality)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/format", response_model=SessionResponse)
async def set_output_format(session: SessionDep, body: FormatRequest) -> SessionResponse:
    await session.set_output_format(body.output_format)
    return SessionResponse.from_session(session)
