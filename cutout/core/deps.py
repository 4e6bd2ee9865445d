from functools import lru_cache

from cutout.core.config import settings
from cutout.services.gateway import InferenceGateway, build_client
from cutout.services.session import EditingSession
from cutout.services.session_store import SessionStore


@lru_cache(maxsize=1)
def get_gateway() -> InferenceGateway:
    client = build_client(
        api_key=settings.gemini_api_key,
        api_base=settings.gemini_api_base,
        timeout_seconds=settings.genai_timeout_seconds,
    )
    return InferenceGateway(
        client, image_model=settings.image_model, vision_model=settings.vision_model
    )


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    # the gateway is resolved on first session so the app boots without credentials
    return SessionStore(
        factory=lambda: EditingSession(get_gateway()),
        ttl_seconds=settings.session_ttl_seconds,
    )
