"""
Data Models Module

Pydantic models for the handshake wire format and the persisted session
table.

Models are organized by functional area:
- Handshake request models (join body, hasJoined query)
- Session store models (one entry per username)
- Account backend models (remote lookup reply)
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Handshake Models
# ============================================================================

class JoinRequest(BaseModel):
    """
    Body of POST /session/minecraft/join.

    Fields the proxy does not interpret (accessToken and friends) are kept so
    the body can be relayed to the authority unchanged.
    """
    model_config = ConfigDict(extra="allow")

    selectedProfile: str = Field(..., description="Profile identity the client asserts")
    serverId: str = Field(..., description="Per-connection server token")
    authString: Optional[str] = Field(None, description="Local account credential")


class HasJoinedQuery(BaseModel):
    """Query parameters of GET /session/minecraft/hasJoined."""
    username: str = Field(..., description="Name the client joined as")
    serverId: str = Field(..., description="Per-connection server token")
    ip: Optional[str] = Field(None, description="Optional client IP, forwarded upstream")


# ============================================================================
# Session Store Models
# ============================================================================

class Session(BaseModel):
    """One profile's recent joins: server token -> Unix seconds of the join."""
    profileId: str
    servers: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Account Backend Models
# ============================================================================

class AccountLookupResponse(BaseModel):
    """Successful reply of the remote account lookup service."""
    username: str
