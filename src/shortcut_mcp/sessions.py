"""In-memory session registry.

The registry is the only shared mutable state of the server: one entry per
established MCP session, keyed by the transport-assigned session id. All access
goes through the methods below. Handlers and the idle sweeper run on the same
event loop and no table mutation spans an await, so no lock is needed.
"""
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import anyio

if TYPE_CHECKING:
    from .transport import Transport

logger = logging.getLogger("shortcut-mcp.sessions")

DEFAULT_SESSION_TIMEOUT_SECONDS = 30 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60


@dataclass
class Session:
    """One established conversation, bound to the credential that created it."""

    session_id: str
    transport: "Transport"
    credential_digest: bytes
    created_at: float
    last_accessed_at: float


class SessionRegistry:
    """
    Table of live sessions with idle-timeout eviction.

    Args:
        timeout_seconds: Idle time after which the sweeper evicts a session
        sweep_interval_seconds: Delay between sweeps in run_sweeper()
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_SESSION_TIMEOUT_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        # Credentials are kept only as salted digests
        self._salt = secrets.token_bytes(16)
        self._closed = False

    def __len__(self) -> int:
        return len(self._sessions)

    def _digest(self, credential: str) -> bytes:
        return hashlib.sha256(self._salt + credential.encode("utf-8")).digest()

    def create(self, transport: "Transport", credential: str) -> str:
        """
        Register the session a transport has just established.

        Returns:
            The session id reported by the transport

        Raises:
            ValueError: If the transport has no id yet or the id is already registered
        """
        session_id = transport.session_id
        if not session_id:
            raise ValueError("Transport has not been assigned a session id")
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} is already registered")

        now = self._clock()
        self._sessions[session_id] = Session(
            session_id=session_id,
            transport=transport,
            credential_digest=self._digest(credential),
            created_at=now,
            last_accessed_at=now,
        )
        logger.info(f"Session initialized: {session_id} ({len(self._sessions)} active)")
        return session_id

    def get(self, session_id: str) -> Optional[Session]:
        """Look up a session and mark it as accessed."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_accessed_at = self._clock()
        return session

    def has(self, session_id: str) -> bool:
        """Existence check that does not count as an access."""
        return session_id in self._sessions

    def validate_credential(self, session_id: str, candidate: str) -> bool:
        """True iff the session exists and candidate equals its bound credential."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        return hmac.compare_digest(session.credential_digest, self._digest(candidate))

    def remove(self, session_id: str) -> None:
        """
        Drop a session from the table.

        The transport is not closed here; whoever triggers the removal owns the close.
        """
        if self._sessions.pop(session_id, None) is not None:
            logger.info(f"Session removed: {session_id} ({len(self._sessions)} active)")

    async def sweep(self) -> list[str]:
        """
        Evict every session idle for at least the timeout, closing its transport.

        Returns:
            Ids of the evicted sessions
        """
        now = self._clock()
        stale: list[Session] = []
        for session_id in list(self._sessions):
            session = self._sessions.get(session_id)
            if session is not None and now - session.last_accessed_at >= self.timeout_seconds:
                stale.append(session)

        if not stale:
            return []

        logger.info(f"Cleaning up {len(stale)} stale sessions")
        for session in stale:
            self.remove(session.session_id)
        await self._close_transports(stale, reason="stale")
        return [session.session_id for session in stale]

    async def run_sweeper(self) -> None:
        """Sweep on a fixed interval until close_all() is called or the task is cancelled."""
        logger.debug(
            f"Session sweeper started (interval={self.sweep_interval_seconds}s, "
            f"timeout={self.timeout_seconds}s)"
        )
        while not self._closed:
            await anyio.sleep(self.sweep_interval_seconds)
            if self._closed:
                break
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    async def close_all(self) -> None:
        """
        Close every transport and empty the table (shutdown).

        Returns only once every close attempt has settled. A failing close is
        logged and does not prevent the others.
        """
        logger.info("Shutting down sessions...")
        self._closed = True
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await self._close_transports(sessions, reason="shutdown")
        logger.info(f"Session shutdown complete ({len(sessions)} closed)")

    async def _close_transports(self, sessions: list[Session], reason: str) -> None:
        async def close_one(session: Session) -> None:
            logger.debug(f"Closing session {session.session_id} ({reason})")
            try:
                await session.transport.close()
            except Exception:
                logger.exception(f"Error closing transport for session {session.session_id} ({reason})")

        async with anyio.create_task_group() as tg:
            for session in sessions:
                tg.start_soon(close_one, session)
