"""
Handshake Service
=================

Protocol logic for the two session handshake calls.

join:
-----
- No authString: the body is relayed to the authority unchanged and its
  status returned. Nothing is recorded locally.
- authString present: the credential must resolve, through the account
  backend, to exactly the selectedProfile the client asserted. The profile
  is then looked up at the authority to get its canonical name, and the join
  is recorded under that name.

hasJoined:
----------
- A fresh local record for (username, serverId) is answered with the
  authority's signed profile for the stored profile id.
- Anything else is forwarded to the authority's own hasJoined endpoint.

Both paths return the authority's status and body byte for byte.
"""

import json
import logging
import time
from typing import Callable, Optional

from ..accounts import AccountResolver
from ..models import HasJoinedQuery, JoinRequest
from ..sessions import SessionStore
from ..upstream import UpstreamConnector, UpstreamResponse, UpstreamUnavailableError

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class HandshakeUnauthorizedError(Exception):
    """Raised when a credential is unknown or belongs to another profile"""
    pass


# =============================================================================
# Service
# =============================================================================

class HandshakeService:
    """
    Orchestrates join and hasJoined over the account backend, the session
    store and the upstream connector.
    """

    def __init__(
        self,
        accounts: AccountResolver,
        store: SessionStore,
        upstream: UpstreamConnector,
        clock: Callable[[], float] = time.time,
    ):
        self.accounts = accounts
        self.store = store
        self.upstream = upstream
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def join(self, payload: JoinRequest, raw_body: bytes) -> int:
        """
        Handle a join request.

        Args:
            payload: Parsed join body
            raw_body: Body exactly as received, relayed on the plain path

        Returns:
            HTTP status code for the caller (204 when recorded locally)

        Raises:
            HandshakeUnauthorizedError: Credential unknown or profile mismatch
            UpstreamUnavailableError: Authority unreachable or profile malformed
        """
        logger.info(
            f"{payload.selectedProfile} joining {payload.serverId}",
            extra={
                "selected_profile": payload.selectedProfile,
                "server_id": payload.serverId,
                "local_credential": payload.authString is not None,
            }
        )

        if payload.authString is None:
            response = await self.upstream.forward_join(raw_body)
            logger.info(
                f"Relayed join for {payload.selectedProfile}: {response.status_code}"
            )
            return response.status_code

        account_name = await self.accounts.resolve(payload.authString)
        if account_name is None or account_name != payload.selectedProfile:
            logger.warning(
                f"Rejected local credential for {payload.selectedProfile}",
                extra={"account_found": account_name is not None}
            )
            raise HandshakeUnauthorizedError("Invalid credentials")

        profile = await self.upstream.fetch_profile(payload.selectedProfile)
        name = _profile_name(profile)
        if name is None:
            logger.error(
                f"Authority profile for {payload.selectedProfile} has no name",
                extra={"upstream_status": profile.status_code}
            )
            raise UpstreamUnavailableError("Malformed profile from authority")

        await self.store.record_join(
            name.lower(),
            payload.selectedProfile,
            payload.serverId,
            self._now(),
        )
        return 204

    async def has_joined(self, query: HasJoinedQuery) -> UpstreamResponse:
        """
        Handle a hasJoined query.

        Returns:
            The authority's response, either the stored profile or the
            forwarded hasJoined answer

        Raises:
            UpstreamUnavailableError: Authority unreachable
        """
        profile_id = await self.store.check_join(
            query.username, query.serverId, self._now()
        )

        if profile_id is not None:
            logger.info(
                f"Local session hit for {query.username}",
                extra={"server_id": query.serverId, "profile_id": profile_id}
            )
            return await self.upstream.fetch_profile(profile_id, unsigned=False)

        logger.debug(
            f"No local session for {query.username}, forwarding",
            extra={"server_id": query.serverId}
        )
        return await self.upstream.forward_has_joined(
            query.username.lower(), query.serverId, query.ip
        )


def _profile_name(response: UpstreamResponse) -> Optional[str]:
    try:
        profile = json.loads(response.body)
    except ValueError:
        return None

    if not isinstance(profile, dict):
        return None

    name = profile.get("name")
    if isinstance(name, str):
        return name
    return None
