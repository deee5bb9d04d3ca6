"""
Session Store
=============

Remembers which profile joined which destination server, and when, so that a
later hasJoined query can be answered locally.

- Keys are usernames, lower-cased before every lookup or insert.
- A join stays valid for SESSION_TTL_SECONDS.
- Stale entries are pruned lazily, on the next record_join; there is no timer.
- Every record_join rewrites the persisted JSON document in full.

All access goes through one asyncio.Lock, held across the whole
prune/insert/persist span so concurrent joins never lose updates or leave a
torn file behind.
"""

import asyncio
import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from ..models import Session

logger = logging.getLogger(__name__)


SESSION_TTL_SECONDS = 60
NEW_FILE_MODE = 0o644


class SessionStore:
    """
    Lock-guarded table of recent joins, persisted to a JSON file.

    Attributes:
        path: File the table is written to, or None to keep it in memory only
    """

    def __init__(
        self,
        path: Optional[str] = None,
        sessions: Optional[Dict[str, Session]] = None,
    ):
        self.path = Path(path) if path else None
        self._sessions: Dict[str, Session] = dict(sessions or {})
        self._lock = asyncio.Lock()

    @classmethod
    def load(cls, path: str) -> "SessionStore":
        """
        Build a store from the persisted document at path.

        A missing or unparseable file gives an empty store; startup never
        fails because of it.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.info(f"No session file at {path}, starting empty")
            return cls(path)

        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("session document is not a JSON object")
            sessions = {
                str(username).lower(): Session.model_validate(entry)
                for username, entry in raw.items()
            }
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                f"Ignoring unreadable session file {path}: {e}",
                extra={"sessions_file": path}
            )
            return cls(path)

        logger.info(
            f"Loaded {len(sessions)} sessions",
            extra={"sessions_file": path}
        )
        return cls(path, sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> Dict[str, Session]:
        """Deep copy of the current table."""
        return _copy_table(self._sessions)

    async def record_join(
        self,
        username: str,
        profile_id: str,
        server_token: str,
        now: int,
    ) -> None:
        """
        Record that username joined the server identified by server_token.

        Prunes every expired entry across all sessions first. A session that
        already exists keeps its original profile id. The change is applied
        to a copy of the table, which replaces the live table only after it
        has been written, so a failed write leaves memory and disk unchanged.

        Args:
            username: Profile name (any case)
            profile_id: Profile identity stored when the session is created
            server_token: Per-connection server token
            now: Current Unix time in seconds
        """
        key = username.lower()

        async with self._lock:
            sessions = _copy_table(self._sessions)
            pruned = _prune(sessions, now)

            session = sessions.get(key)
            if session is None:
                session = Session(profileId=profile_id)
                sessions[key] = session

            session.servers[server_token] = now
            self._persist(sessions)
            self._sessions = sessions

        logger.debug(
            f"Recorded join for {key}",
            extra={"server_id": server_token, "pruned": pruned}
        )

    async def check_join(
        self,
        username: str,
        server_token: str,
        now: int,
    ) -> Optional[str]:
        """
        Return the stored profile id if username joined server_token within
        the validity window, otherwise None. Never prunes or persists.
        """
        key = username.lower()

        async with self._lock:
            session = self._sessions.get(key)
            if session is None:
                return None

            joined_at = session.servers.get(server_token)
            if joined_at is None or now - joined_at > SESSION_TTL_SECONDS:
                return None

            return session.profileId

    def _persist(self, sessions: Dict[str, Session]) -> None:
        if self.path is None:
            return

        document = {
            username: session.model_dump()
            for username, session in sessions.items()
        }

        # mkstemp creates 0600; keep the mode the file already had
        try:
            mode = stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            mode = NEW_FILE_MODE

        # write-then-rename so readers never see a partial file
        directory = self.path.parent
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _copy_table(sessions: Dict[str, Session]) -> Dict[str, Session]:
    return {
        username: session.model_copy(deep=True)
        for username, session in sessions.items()
    }


def _prune(sessions: Dict[str, Session], now: int) -> int:
    removed = 0
    for session in sessions.values():
        expired = [
            token for token, joined_at in session.servers.items()
            if now - joined_at > SESSION_TTL_SECONDS
        ]
        for token in expired:
            del session.servers[token]
        removed += len(expired)
    return removed
