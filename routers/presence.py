from fastapi import APIRouter, Request
from schemas.chat import PresenceResponse, HealthResponse
from logging_config import get_logger

logger = get_logger(__name__)

presence_router = APIRouter(tags=["presence"])


@presence_router.get("/users", response_model=PresenceResponse)
async def get_online_users(request: Request):
    """
    Current participant list, in join order.

    Returns:
    - online_users: display names of every joined connection
    - online_users_count: number of joined connections
    """
    hub = request.app.state.hub
    online_users = await hub.registry.snapshot()
    client_host = request.client.host if request.client else 'unknown'
    logger.debug(f"Presence request from {client_host}: {len(online_users)} users online")
    return PresenceResponse(online_users=online_users, online_users_count=len(online_users))


@presence_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    return HealthResponse(status="ok", connections=len(request.app.state.hub.broadcaster))
