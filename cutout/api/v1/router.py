from fastapi import APIRouter

from cutout.api.v1.endpoints import operations, sessions

api_router = APIRouter()


@api_router.get("/ping", tags=["health"])
async def ping() -> dict[str, str]:
    return {"message": "pong"}


api_router.include_router(sessions.router)
api_router.include_router(operations.router)
