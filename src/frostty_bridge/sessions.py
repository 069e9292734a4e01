"""sessions.py — Which agent session the chat is talking to.

The agent owns sessions; the bridge only remembers one id. Sessions are
scoped to the workspace they were created in, so a workspace switch
clears the active id and nothing reuses it until a session is created
or selected again.
"""

from __future__ import annotations

import logfire

from .agent import AgentClient, SessionDescriptor
from .state import BridgeState


class SessionNotFound(Exception):
    """The requested id is not in the agent's session listing."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} not found")
        self.session_id = session_id


class SessionRouter:
    """Maps the chat to at most one active agent session."""

    def __init__(self, client: AgentClient, state: BridgeState):
        self._client = client
        self._state = state

    @property
    def active(self) -> str | None:
        return self._state.active_session_id

    async def list_sessions(self) -> list[SessionDescriptor]:
        """Fetch the agent's sessions. Raises AgentError."""
        return await self._client.list_sessions()

    async def create_session(self) -> str:
        """Create a session and make it active.

        On failure the active session is left untouched and AgentError
        propagates.
        """
        session_id = await self._client.create_session()
        self._state.active_session_id = session_id
        logfire.info("Session created: {session_id}", session_id=session_id)
        return session_id

    async def select_session(self, session_id: str) -> SessionDescriptor:
        """Adopt `session_id` if the agent lists it.

        Raises SessionNotFound if absent, AgentError if listing fails.
        """
        for session in await self._client.list_sessions():
            if session.id == session_id:
                self._state.active_session_id = session.id
                logfire.info("Session selected: {session_id}", session_id=session_id)
                return session
        raise SessionNotFound(session_id)

    def clear_session(self) -> None:
        self._state.active_session_id = None
