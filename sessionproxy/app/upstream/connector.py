"""
Upstream Authority Connector
============================

Reaches the real session authority even though this host's DNS for
sessionserver.mojang.com has been pointed at the proxy itself.

Connection Model:
-----------------
1. The authority's address is looked up through a trusted public resolver,
   never the system resolver (which would hand back this proxy).
2. Requests go to https://<ip>/session/minecraft/... directly.
3. The Host header and TLS SNI carry the authority's real hostname so its
   front end routes the request as if it had been addressed by name.
4. Certificate verification is disabled: the certificate can never match
   the bare IP the connection is made to.

Point 4 is a deliberate exception that applies to AUTHORITY_HOST only.
Nothing else in the service should reuse this client.
"""

import ipaddress
import logging
from typing import Any, Dict, List, NamedTuple, Optional
from urllib.parse import quote

import dns.asyncresolver
import dns.exception
import dns.resolver
import httpx

logger = logging.getLogger(__name__)


AUTHORITY_HOST = "sessionserver.mojang.com"
AUTHORITY_PATH = "/session/minecraft/"


# =============================================================================
# Exceptions
# =============================================================================

class UpstreamUnavailableError(Exception):
    """Raised when the authority cannot be resolved, reached, or understood"""
    pass


class UpstreamResponse(NamedTuple):
    """Status, raw body and content type of an authority reply."""
    status_code: int
    body: bytes
    content_type: Optional[str] = None


# =============================================================================
# Connector
# =============================================================================

class UpstreamConnector:
    """
    HTTP client for the session authority.

    Attributes:
        nameservers: Trusted resolver addresses
        timeout: Seconds allowed for each DNS lookup and each HTTP call
    """

    def __init__(
        self,
        nameservers: List[str],
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        resolver: Optional[dns.asyncresolver.Resolver] = None,
    ):
        self.nameservers = list(nameservers)
        self.timeout = timeout

        if resolver is None:
            resolver = dns.asyncresolver.Resolver(configure=False)
            resolver.nameservers = self.nameservers
            resolver.lifetime = timeout
        self._resolver = resolver

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            verify=False,
            timeout=httpx.Timeout(timeout),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve_upstream_address(self) -> str:
        """
        Look up the authority's address through the trusted resolver.

        A records are tried first, AAAA only when the name has no A record.

        Returns:
            First address of the answer

        Raises:
            UpstreamUnavailableError: On any resolver error or empty answer
        """
        qname = AUTHORITY_HOST + "."

        for rdtype in ("A", "AAAA"):
            try:
                answer = await self._resolver.resolve(qname, rdtype)
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.DNSException as e:
                logger.error(
                    f"Trusted resolver lookup failed: {type(e).__name__}",
                    extra={"host": AUTHORITY_HOST, "nameservers": self.nameservers}
                )
                raise UpstreamUnavailableError(
                    f"Cannot resolve {AUTHORITY_HOST}: {e}"
                ) from e

            for record in answer:
                return record.address

        raise UpstreamUnavailableError(f"No address records for {AUTHORITY_HOST}")

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> UpstreamResponse:
        """
        Send a request to the authority, addressed by IP.

        Args:
            method: HTTP method
            path: Path below /session/minecraft/ (e.g. 'join', 'profile/<id>')
            params: Query parameters
            content: Raw request body
            headers: Extra request headers

        Returns:
            UpstreamResponse with the authority's status and body, unchanged

        Raises:
            UpstreamUnavailableError: On resolver, connection, TLS or timeout errors
        """
        address = await self.resolve_upstream_address()
        url = f"https://{_url_host(address)}{AUTHORITY_PATH}{path}"

        request_headers = dict(headers or {})
        request_headers["Host"] = AUTHORITY_HOST

        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                content=content,
                headers=request_headers,
                extensions={"sni_hostname": AUTHORITY_HOST},
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Upstream request failed: {type(e).__name__}: {e}",
                extra={"method": method, "path": path, "address": address}
            )
            raise UpstreamUnavailableError(
                f"{method} {AUTHORITY_PATH}{path} failed: {e}"
            ) from e

        logger.debug(
            f"Upstream {method} {AUTHORITY_PATH}{path} -> {response.status_code}",
            extra={"address": address}
        )

        return UpstreamResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
        )

    # =========================================================================
    # Authority Endpoints
    # =========================================================================

    async def fetch_profile(
        self,
        profile_id: str,
        unsigned: Optional[bool] = None,
    ) -> UpstreamResponse:
        params = None
        if unsigned is not None:
            params = {"unsigned": "true" if unsigned else "false"}
        return await self.request(
            "GET", f"profile/{quote(profile_id, safe='')}", params=params
        )

    async def forward_join(self, body: bytes) -> UpstreamResponse:
        return await self.request(
            "POST",
            "join",
            content=body,
            headers={"Content-Type": "application/json"},
        )

    async def forward_has_joined(
        self,
        username: str,
        server_id: str,
        ip: Optional[str] = None,
    ) -> UpstreamResponse:
        params = {"serverId": server_id, "username": username}
        if ip:
            params["ip"] = ip
        return await self.request("GET", "hasJoined", params=params)


def _url_host(address: str) -> str:
    if ipaddress.ip_address(address).version == 6:
        return f"[{address}]"
    return address
