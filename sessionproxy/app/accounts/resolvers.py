"""
Account Resolvers
=================

Turn an opaque, locally issued credential into the profile name it belongs
to. Two backends implement the same interface:

- StaticAccountResolver: a credential -> name table loaded once from a JSON file
- RemoteAccountResolver: GET <endpoint>?token=<credential> against an account service

The backend is picked at startup by build_account_resolver() and never
changes afterwards.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import AccountLookupResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class AccountFileError(Exception):
    """Raised when the static account file cannot be loaded"""
    pass


# =============================================================================
# Resolver Interface
# =============================================================================

class AccountResolver(ABC):
    """Resolves a credential to a profile name."""

    backend_name: str = ""

    @abstractmethod
    async def resolve(self, credential: str) -> Optional[str]:
        """
        Look up the profile name for a credential.

        Args:
            credential: Opaque credential supplied by the client

        Returns:
            Profile name, or None if the credential is unknown
        """

    async def aclose(self) -> None:
        """Release any resources held by the backend."""


# =============================================================================
# Static Table Backend
# =============================================================================

class StaticAccountResolver(AccountResolver):
    """Exact-key lookup in a table that never changes after startup."""

    backend_name = "file"

    def __init__(self, accounts: Mapping[str, str]):
        self._accounts: Dict[str, str] = dict(accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    async def resolve(self, credential: str) -> Optional[str]:
        return self._accounts.get(credential)


def load_account_file(path: str) -> Dict[str, str]:
    """
    Load the static credential -> profile name table.

    Args:
        path: Path of a JSON document holding a single object

    Returns:
        Mapping of credential to profile name

    Raises:
        AccountFileError: If the file is unreadable, not valid JSON, or not
                          an object of string values
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise AccountFileError(f"Cannot read account file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AccountFileError(f"Account file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AccountFileError(f"Account file {path} must contain a JSON object")

    for name in data.values():
        if not isinstance(name, str):
            raise AccountFileError(
                f"Account file {path}: value for an entry is not a string"
            )

    return data


# =============================================================================
# Remote Lookup Backend
# =============================================================================

class RemoteAccountResolver(AccountResolver):
    """
    Queries an account service for every call.

    Transport failures, non-2xx replies and malformed bodies are all reported
    as "not found"; the caller never sees the difference.
    """

    backend_name = "api"

    def __init__(
        self,
        endpoint: str,
        secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self._endpoint = endpoint
        self._secret = secret
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def resolve(self, credential: str) -> Optional[str]:
        headers = {}
        if self._secret:
            headers["Authorization"] = f"Bearer {self._secret}"

        try:
            response = await self._client.get(
                self._endpoint,
                params={"token": credential},
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(
                f"Account lookup failed: {type(e).__name__}",
                extra={"endpoint": self._endpoint}
            )
            return None

        if not response.is_success:
            logger.warning(
                f"Account lookup returned {response.status_code}",
                extra={"endpoint": self._endpoint}
            )
            return None

        try:
            return AccountLookupResponse.model_validate_json(response.content).username
        except ValidationError:
            logger.warning(
                "Account lookup returned a malformed body",
                extra={"endpoint": self._endpoint}
            )
            return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Factory
# =============================================================================

def build_account_resolver(settings: Settings) -> AccountResolver:
    """
    Create the account backend selected by ACCOUNT_BACKEND.

    Raises:
        AccountFileError: If the file backend is selected and the file is bad
    """
    if settings.ACCOUNT_BACKEND == "api":
        logger.info(
            "Using remote account lookup",
            extra={
                "endpoint": settings.ACCOUNTS_ENDPOINT,
                "authenticated": bool(settings.ACCOUNTS_SECRET),
            }
        )
        return RemoteAccountResolver(
            endpoint=settings.ACCOUNTS_ENDPOINT,
            secret=settings.ACCOUNTS_SECRET,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )

    accounts = load_account_file(settings.ACCOUNTS_FILE)
    logger.info(
        f"Loaded {len(accounts)} accounts",
        extra={"accounts_file": settings.ACCOUNTS_FILE}
    )
    return StaticAccountResolver(accounts)
