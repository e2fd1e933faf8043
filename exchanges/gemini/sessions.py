"""
Gemini Session Registry

Gemini API keys are created with a single role ("trader" or "fundmanager")
and may require heartbeats. Separating roles means running several
GeminiExchange instances with different keys side by side; the registry keeps
them by session id.

The registry is an ordinary object owned by whoever creates it. Nothing is
registered globally.

Usage:
    sessions = GeminiSessionRegistry()
    sessions.add_session(1, GeminiExchange(), key, secret, role=ROLE_TRADER)
    trader = sessions.get(1)
"""

from typing import TYPE_CHECKING, Dict, Iterator, Optional

from core.logging import get_logger
from core.signer import Credentials

if TYPE_CHECKING:
    from exchanges.gemini import GeminiExchange

logger = get_logger(__name__)

ROLE_TRADER = "trader"
ROLE_FUND_MANAGER = "fundmanager"


class GeminiSessionRegistry:
    """Gemini exchange instances keyed by session id."""

    def __init__(self):
        self._sessions: Dict[int, "GeminiExchange"] = {}

    def add_session(
        self,
        session_id: int,
        exchange: "GeminiExchange",
        api_key: str,
        api_secret: str,
        role: str = ROLE_TRADER,
        needs_heartbeat: bool = False,
        sandbox: bool = False,
    ) -> "GeminiExchange":
        """
        Bind credentials and role to an exchange instance and register it.

        Raises:
            ValueError: If session_id is already in use
        """
        if session_id in self._sessions:
            raise ValueError(f"Gemini session id {session_id} already in use")

        context = exchange.context
        context.credentials = Credentials(api_key=api_key, api_secret=api_secret)
        context.authenticated_api_support = True
        context.use_sandbox = sandbox
        exchange.role = role
        exchange.requires_heartbeat = needs_heartbeat
        exchange.bind_client()

        self._sessions[session_id] = exchange
        logger.info(f"gemini: session {session_id} added (role={role}, sandbox={sandbox})")
        return exchange

    def get(self, session_id: int) -> Optional["GeminiExchange"]:
        return self._sessions.get(session_id)

    def remove(self, session_id: int) -> Optional["GeminiExchange"]:
        return self._sessions.pop(session_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def heartbeat_sessions(self) -> Iterator["GeminiExchange"]:
        """Sessions whose keys require heartbeats."""
        return (s for s in self._sessions.values() if s.requires_heartbeat)

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
