"""
Handshake Routes
================

FastAPI endpoints that stand in for the session authority.

Endpoints:
----------
- POST /session/minecraft/join: record a join (local credential) or relay it
- GET /session/minecraft/hasJoined: answer from the local store or relay it

UpstreamUnavailableError is not handled here; the application-level handler
turns it into 503 for every route.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from ..models import HasJoinedQuery, JoinRequest
from .service import HandshakeService, HandshakeUnauthorizedError

logger = logging.getLogger(__name__)

handshake_router = APIRouter(prefix="/session/minecraft")


# ============================================================================
# Dependencies
# ============================================================================

def get_handshake_service(request: Request) -> HandshakeService:
    """
    Dependency to get the handshake service from app state.

    Raises:
        HTTPException: 503 if the service has not been initialised
    """
    app_state = getattr(request.app.state, "app_state", None)
    service = getattr(app_state, "handshake_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Handshake service not initialized"
        )
    return service


# ============================================================================
# Endpoints
# ============================================================================

@handshake_router.post("/join")
async def join(
    request: Request,
    payload: JoinRequest,
    service: HandshakeService = Depends(get_handshake_service),
) -> Response:
    """
    Join a destination server as the selected profile.

    Returns:
        204 when recorded locally, otherwise the authority's status

    Raises:
        HTTPException: 401 if the local credential is rejected
    """
    raw_body = await request.body()

    try:
        status_code = await service.join(payload, raw_body)
    except HandshakeUnauthorizedError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    return Response(status_code=status_code)


@handshake_router.get("/hasJoined")
async def has_joined(
    username: str = Query(...),
    serverId: str = Query(...),
    ip: Optional[str] = Query(None),
    service: HandshakeService = Depends(get_handshake_service),
) -> Response:
    """Relay the authority's answer for (username, serverId) unchanged."""
    query = HasJoinedQuery(username=username, serverId=serverId, ip=ip)
    upstream = await service.has_joined(query)

    return Response(
        content=upstream.body,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
    )
