import asyncio
import json
import os
import secrets
import shutil
import time
from typing import Callable

from pydantic import ValidationError

from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import mask_key
from shared.models.session import Session

SESSION_FILE_NAME = "session.json"
DEFAULT_SESSION_EXPIRY_SECONDS = 24 * 60 * 60


class SessionRegistry:
    """Tracks session-mode isolation keys and expires inactive ones.

    The registry owns the in-memory session map. Every record is mirrored to
    <sessions_dir>/<key>/session.json so sessions survive a restart. The
    registry knows nothing about vector stores or uploads; the caller of
    sweep() purges those for the returned keys.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        sessions_dir: str | None = None,
        expiry_seconds: float = DEFAULT_SESSION_EXPIRY_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._sessions_dir = sessions_dir
        self._expiry_seconds = expiry_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _get_session_dir(self, key: str) -> str | None:
        if not self._sessions_dir:
            return None
        return os.path.join(self._sessions_dir, key)

    ##########################################
    ############### TRACKING #################
    ##########################################

    async def track(self, key: str) -> Session:
        """Record a request for a session key.

        Idempotent: an existing session only gets its last_accessed_at refreshed,
        an unknown key is created with created_at = last_accessed_at = now.

        Args:
            key (str): The session's isolation key.

        Returns:
            Session: The created or refreshed record.
        """
        now = self._clock()
        session = self._sessions.get(key)
        if session is None:
            session = Session(id=key, created_at=now, last_accessed_at=now)
            self._sessions[key] = session
            self.logging.info("New session %s registered.", mask_key(key))
        else:
            session.last_accessed_at = now

        await self._persist(session)
        return session

    async def _persist(self, session: Session) -> None:
        if not self._sessions_dir:
            return
        try:
            await asyncio.to_thread(self._write_session_file, session)
        except OSError as exc:
            # the in-memory record stays authoritative
            self.logging.warning("Could not persist session %s: %s", mask_key(session.id), exc)

    def _write_session_file(self, session: Session) -> None:
        session_dir = self._get_session_dir(session.id)
        os.makedirs(session_dir, exist_ok=True)
        tmp_path = os.path.join(session_dir, f"{SESSION_FILE_NAME}.{secrets.token_hex(4)}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(session.model_dump_json())
        os.replace(tmp_path, os.path.join(session_dir, SESSION_FILE_NAME))

    ##########################################
    ################ EXPIRY ##################
    ##########################################

    def is_expired(self, session: Session, now: float) -> bool:
        return now - session.last_accessed_at > self._expiry_seconds

    async def sweep(self, now: float | None = None) -> list[str]:
        """Remove every session inactive for longer than the expiry window.

        A single `now` is taken at the start and compared against each record's
        own last_accessed_at, so a session tracked after that snapshot is never
        removed by this sweep. No lock is held; requests keep being served.

        Args:
            now (float | None): Reference timestamp, defaults to the registry clock.

        Returns:
            list[str]: The removed session keys.
        """
        now = self._clock() if now is None else now
        expired = [key for key, session in list(self._sessions.items()) if self.is_expired(session, now)]

        removed: list[str] = []
        for key in expired:
            session = self._sessions.get(key)
            # re-check, the record may have been refreshed while we were suspended
            if session is None or not self.is_expired(session, now):
                continue
            del self._sessions[key]
            removed.append(key)
            await self._remove_session_dir(key)

        if removed:
            self.logging.info("Session sweep removed %d expired session(s).", len(removed))
        return removed

    async def _remove_session_dir(self, key: str) -> None:
        session_dir = self._get_session_dir(key)
        if session_dir is None:
            return
        try:
            await asyncio.to_thread(shutil.rmtree, session_dir, True)
        except OSError as exc:
            self.logging.warning("Could not remove session directory for %s: %s", mask_key(key), exc)

    ##########################################
    ############### STARTUP ##################
    ##########################################

    async def load(self) -> int:
        """Re-read persisted sessions from the sessions directory.

        Unreadable or malformed session files are logged and skipped.

        Returns:
            int: Number of sessions loaded.
        """
        if not self._sessions_dir:
            return 0
        sessions = await asyncio.to_thread(self._read_session_files)
        for session in sessions:
            self._sessions.setdefault(session.id, session)
        self.logging.info("Loaded %d persisted session(s) from %s.", len(sessions), self._sessions_dir)
        return len(sessions)

    def _read_session_files(self) -> list[Session]:
        if not os.path.isdir(self._sessions_dir):
            return []
        sessions: list[Session] = []
        for entry in os.listdir(self._sessions_dir):
            path = os.path.join(self._sessions_dir, entry, SESSION_FILE_NAME)
            if not os.path.isfile(path):
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    session = Session.model_validate(json.load(f))
            except (OSError, ValueError, ValidationError) as exc:
                self.logging.warning("Skipping unreadable session file %s: %s", path, exc)
                continue
            if session.id != entry:
                self.logging.warning("Skipping session file %s: id does not match its directory.", path)
                continue
            sessions.append(session)
        return sessions
