"""Session Table for the router.

Router sessions are bookkeeping records in the router's own namespace.
Domain servers keep their own sessions; this module also owns the
translation from a router session to the id a domain expects.
"""

import asyncio
import itertools
import re
import time
from typing import Any, Literal, Optional

from shared.logging import get_logger
from shared.models import Session, ToolResult

logger = get_logger(__name__)

SessionIdStyle = Literal["composite", "passthrough"]

# Trailing session id in a domain's startsession text, e.g.
# "... started with session ID: developer_1712345678_ab12cd"
_SESSION_ID_TEXT = re.compile(r"session\s*id[:\s]+[`'\"]?([A-Za-z0-9_.:-]+)", re.IGNORECASE)


def extract_domain_session_id(result: ToolResult) -> Optional[str]:
    """
    Find the session id a domain server reported from startsession.

    The structured ``sessionId`` field wins. Older domain servers only
    mention the id in their response text, so fall back to the last
    "session ID: <id>" phrase. Anything else yields None.
    """
    if result.is_error:
        return None

    structured = result.structured_content or {}
    for key in ("sessionId", "session_id"):
        value = structured.get(key)
        if isinstance(value, str) and value:
            return value

    matches = _SESSION_ID_TEXT.findall(result.text)
    if matches:
        return matches[-1].rstrip(".:")
    return None


class SessionTable:
    """
    Append-only table of router sessions.

    Sessions are never removed, only flagged inactive, so the table can be
    inspected after the fact. Mutations are serialized with a lock.
    """

    def __init__(self, id_style: SessionIdStyle = "composite") -> None:
        self.id_style = id_style
        self._sessions: list[Session] = []
        self._counter = itertools.count(1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _next_id(self, domain: str) -> str:
        return f"cm_session_{domain}_{next(self._counter)}_{int(time.time() * 1000)}"

    async def create(self, domain: str) -> Session:
        """
        Allocate a new active session for a domain.

        Args:
            domain: Canonical domain name

        Returns:
            The new session
        """
        async with self._lock:
            session = Session(id=self._next_id(domain), domain=domain, active=True)
            self._sessions.append(session)

        logger.info("Session created", session_id=session.id, domain=domain)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """Find a session by id, active or not."""
        return next((s for s in self._sessions if s.id == session_id), None)

    def first_active(self, domain: str) -> Optional[Session]:
        """The first active session of a domain, in creation order."""
        return next((s for s in self._sessions if s.domain == domain and s.active), None)

    async def set_entity(self, session: Session, entity_name: str, entity_type: Optional[str]) -> None:
        async with self._lock:
            session.entity_name = entity_name
            session.entity_type = entity_type or "unknown"

    async def set_domain_session_id(self, session: Session, domain_session_id: Optional[str]) -> None:
        async with self._lock:
            session.domain_session_id = domain_session_id

    async def deactivate(self, session: Session) -> None:
        async with self._lock:
            session.active = False
        logger.info("Session ended", session_id=session.id, domain=session.domain)

    def domain_session_id(self, session: Session) -> str:
        """
        Session id to send to the session's domain server.

        Uses the id the domain reported when one was captured, otherwise
        derives one from the router id according to ``id_style``.
        """
        if session.domain_session_id:
            return session.domain_session_id
        if self.id_style == "passthrough":
            return session.id
        return f"{session.domain}_session_{session.id}"

    def list_sessions(self, domain: Optional[str] = None, active_only: bool = False) -> list[Session]:
        sessions = self._sessions
        if domain:
            sessions = [s for s in sessions if s.domain == domain]
        if active_only:
            sessions = [s for s in sessions if s.active]
        return list(sessions)

    def get_stats(self) -> dict[str, Any]:
        active = sum(1 for s in self._sessions if s.active)
        return {
            "total_sessions": len(self._sessions),
            "active_sessions": active,
        }
