from __future__ import annotations

from contextlib import asynccontextmanager
from http import HTTPStatus
from logging import getLogger
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cutout.api.v1.router import api_router
from cutout.core.config import settings
from cutout.core.deps import get_session_store
from cutout.core.errors import CutoutError
from cutout.core.logging import configure_logging, get_request_id, request_id_ctx_var

logger = getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup and tear down live sessions on shutdown."""

    configure_logging(settings.log_level)
    yield
    get_session_store().close_all()


app = FastAPI(title=settings.project_name, lifespan=lifespan)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Inject request ID into request state and logging context."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(settings.request_id_header) or str(uuid4())
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        response.headers[settings.request_id_header] = request_id
        return response


app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


def problem_response(
    request: Request,
    status_code: int,
    title: str,
    detail: str | None = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    response = JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": title,
            "status": status_code,
            "detail": detail,
            "instance": str(request.url),
            "request_id": request_id,
        },
    )
    response.headers[settings.request_id_header] = request_id
    return response


@app.exception_handler(CutoutError)
async def cutout_error_handler(request: Request, exc: CutoutError) -> JSONResponse:
    logger.info("%s: %s", type(exc).__name__, exc)
    return problem_response(
        request,
        status_code=exc.status_code,
        title=exc.title,
        detail=str(exc),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    try:
        title = HTTPStatus(exc.status_code).phrase
    except ValueError:
        title = "HTTP Error"

    return problem_response(
        request,
        status_code=exc.status_code,
        title=title,
        detail=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return problem_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        title="Validation Failed",
        detail=str(exc),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error", exc_info=exc)
    return problem_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title="Internal Server Error",
        detail="An unexpected error occurred. Please try again later.",
    )
