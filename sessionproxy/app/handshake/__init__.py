"""
Handshake Package
=================

The join / hasJoined protocol: service logic and the FastAPI router that
exposes it.

Main Components:
----------------
- service.py: HandshakeService orchestrating accounts, sessions and upstream
- routes.py: /session/minecraft/join and /session/minecraft/hasJoined

Usage:
------
    from sessionproxy.app.handshake import handshake_router
    app.include_router(handshake_router)
"""

from .routes import handshake_router
from .service import HandshakeService, HandshakeUnauthorizedError

__all__ = [
    "HandshakeService",
    "HandshakeUnauthorizedError",
    "handshake_router",
]
