"""
Sessions Package

In-memory, file-backed record of recent joins used to answer hasJoined
queries locally.
"""

from .store import SESSION_TTL_SECONDS, SessionStore

__all__ = [
    "SESSION_TTL_SECONDS",
    "SessionStore",
]
