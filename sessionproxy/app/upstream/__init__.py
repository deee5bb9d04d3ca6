"""
Upstream Package
================

Connector for the real session authority, reached by IP through a trusted
resolver with its hostname presented in the Host header and TLS SNI.

Usage:
------
    from sessionproxy.app.upstream import UpstreamConnector
    connector = UpstreamConnector(settings.trusted_nameservers_list)
"""

from .connector import (
    AUTHORITY_HOST,
    UpstreamConnector,
    UpstreamResponse,
    UpstreamUnavailableError,
)

__all__ = [
    "AUTHORITY_HOST",
    "UpstreamConnector",
    "UpstreamResponse",
    "UpstreamUnavailableError",
]
