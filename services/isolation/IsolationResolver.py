import re
import secrets
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, Field

from services.isolation.SessionRegistry import SessionRegistry
from shared.helper.HelperConfig import HelperConfig

SESSION_HEADER = "x-session-id"
ISOLATION_KEY_HEADER = "x-isolation-key"

_SESSION_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")


class IsolationMode(str, Enum):
    NONE = "none"
    SESSION = "session"
    CUSTOM = "custom"


class IsolationResult(BaseModel):
    """Outcome of resolving a request's isolation key.

    Attributes:
        key:              The isolation key, None for the shared store.
        response_headers: Headers to set on the response (the echoed session id).
    """

    key: str | None = None
    response_headers: dict[str, str] = Field(default_factory=dict)


def is_valid_session_id(value: str | None) -> bool:
    return bool(value) and _SESSION_ID_PATTERN.match(value) is not None


def generate_session_id() -> str:
    """16 cryptographically random bytes, hex-encoded to 32 characters."""
    return secrets.token_hex(16)


class IsolationResolver:
    """Derives the isolation key of a request according to ISOLATION_MODE.

    - none:    every request goes to the shared store.
    - session: the x-session-id header is reused when it is 32 lowercase hex
               characters, otherwise a new id is generated. The key is
               registered with the SessionRegistry and echoed back.
    - custom:  the key asserted by the host's own auth layer wins, the
               x-isolation-key header is the fallback. Nothing is validated,
               registered or echoed.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        mode: IsolationMode | str = IsolationMode.NONE,
        session_registry: SessionRegistry | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.mode = IsolationMode(mode)
        self._session_registry = session_registry
        if self.mode == IsolationMode.SESSION and session_registry is None:
            raise ValueError("Isolation mode 'session' requires a SessionRegistry.")

    async def resolve(self, headers: Mapping[str, str], asserted_key: str | None = None) -> IsolationResult:
        """Resolve the isolation key for one request.

        Args:
            headers (Mapping[str, str]): Request headers (case-insensitive mapping,
                or a dict with lowercase keys).
            asserted_key (str | None): Key set on the request context by an
                upstream authentication layer (custom mode only).

        Returns:
            IsolationResult: The key plus any headers to echo on the response.
        """
        if self.mode == IsolationMode.NONE:
            return IsolationResult()

        if self.mode == IsolationMode.CUSTOM:
            key = asserted_key or headers.get(ISOLATION_KEY_HEADER) or None
            return IsolationResult(key=key)

        incoming = headers.get(SESSION_HEADER)
        if is_valid_session_id(incoming):
            key = incoming
        else:
            if incoming:
                self.logging.debug("Ignoring malformed %s header, issuing a new session id.", SESSION_HEADER)
            key = generate_session_id()

        await self._session_registry.track(key)
        return IsolationResult(key=key, response_headers={SESSION_HEADER: key})
