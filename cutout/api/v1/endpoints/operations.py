from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from starlette import status

from cutout.api.v1.endpoints.sessions import SessionDep
from cutout.models.responses import PreviewResponse, SessionResponse
from cutout.services.geometry import encode_data_url

router = APIRouter(prefix="/sessions", tags=["operations"])


@router.post("/{session_id}/remove-background", response_model=SessionResponse)
async def remove_background(session: SessionDep) -> SessionResponse:
    await session.remove_background()
    return SessionResponse.from_session(session)


@router.post("/{session_id}/detect-text", response_model=SessionResponse)
async def detect_text(session: SessionDep) -> SessionResponse:
    await session.detect_text()
    return SessionResponse.from_session(session)


@router.get("/{session_id}/preview", response_model=PreviewResponse)
async def get_preview(session: SessionDep) -> PreviewResponse:
    state = session.state
    removal = state.removal
    result = removal.value if removal and removal.ok else None
    return PreviewResponse(
        session_id=session.session_id,
        original_base64=state.image.preview if state.image else None,
        result_base64=encode_data_url(result) if isinstance(result, bytes) else None,
    )


@router.get("/{session_id}/download", response_class=Response)
async def download(session: SessionDep) -> Response:
    artifact = session.state.download
    if artifact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No download is available for the current output format",
        )

    headers = {"Content-Disposition": f"attachment; filename=\"{artifact.file_name}\""}
    return Response(content=artifact.data, media_type=artifact.media_type, headers=headers)
