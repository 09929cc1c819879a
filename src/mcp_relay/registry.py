# registry.py
# Keyed collection of provider sessions plus the "active" pointer.
#
# Invariant: when the mapping is non-empty, active_id names one of its
# entries; when it is empty, active_id is None. Every mutation notifies the
# observer with a fresh list() snapshot.

import asyncio
import logging
import uuid

from mcp_relay.errors import UnknownSessionError
from mcp_relay.models import SessionInfo
from mcp_relay.observer import NullObserver, ProgressObserver, notify
from mcp_relay.session import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_LIST_TIMEOUT,
    ProviderSession,
    StdioTransport,
    TransportFactory,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "New server"


def _new_session_id() -> str:
    return f"mcp-{uuid.uuid4().hex[:12]}"


class ProviderRegistry:
    """Owns every connected ProviderSession and which one is active."""

    def __init__(
        self,
        observer: ProgressObserver | None = None,
        *,
        transport_factory: TransportFactory = StdioTransport,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        list_timeout: float = DEFAULT_LIST_TIMEOUT,
    ) -> None:
        self._sessions: dict[str, ProviderSession] = {}
        self._active_id: str | None = None
        self._observer = observer or NullObserver()
        self._transport_factory = transport_factory
        self._connect_timeout = connect_timeout
        self._list_timeout = list_timeout
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active(self) -> ProviderSession | None:
        if self._active_id is None:
            return None
        return self._sessions.get(self._active_id)

    def get(self, session_id: str) -> ProviderSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownSessionError(session_id) from None

    def list(self) -> list[SessionInfo]:
        return [
            SessionInfo(
                id=session.id,
                name=session.name,
                path=session.script_path,
                active=session.id == self._active_id,
                connected=session.connected,
            )
            for session in self._sessions.values()
        ]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def connect(self, script_path: str, name: str | None = None) -> str:
        """
        Spawn and connect a new tool server; it becomes the active session.

        Raises UnsupportedScriptError or ConnectTimeoutError (or whatever the
        transport raised) without touching the existing sessions.
        """
        session = ProviderSession(
            _new_session_id(),
            name or DEFAULT_SERVER_NAME,
            script_path,
            transport_factory=self._transport_factory,
        )
        try:
            await session.connect(self._connect_timeout, self._list_timeout)
        except Exception as exc:
            logger.warning("Failed to connect tool server %s: %s", script_path, exc)
            raise

        async with self._lock:
            self._sessions[session.id] = session
            self._active_id = session.id
        self._notify()
        return session.id

    async def switch_active(self, session_id: str) -> ProviderSession:
        async with self._lock:
            session = self.get(session_id)
            self._active_id = session_id
        logger.info("Active tool server is now %s (%s)", session.name, session_id)
        self._notify()
        return session

    async def remove(self, session_id: str) -> str | None:
        """
        Close and drop a session. Returns the new active id (None when empty).

        Transport close errors are logged, never raised.
        """
        async with self._lock:
            session = self.get(session_id)
            try:
                await session.close()
            except Exception:
                logger.exception("Error while closing tool server %s", session_id)

            del self._sessions[session_id]
            if self._active_id == session_id:
                self._active_id = next(iter(self._sessions), None)
                if self._active_id is None:
                    logger.info("No tool servers left; no active session.")
                else:
                    logger.info("Falling back to tool server %s", self._active_id)
            new_active = self._active_id
        self._notify()
        return new_active

    async def aclose(self) -> None:
        """Close every session at shutdown, best-effort."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._active_id = None
        for session in sessions:
            try:
                await session.close()
            except Exception:
                logger.exception("Error while closing tool server %s", session.id)

    def _notify(self) -> None:
        notify(self._observer, "on_session_list_changed", self.list())
