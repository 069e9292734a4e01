"""bridge.py — Chat events in, agent calls out.

The controller composes:
  - AgentClient: HTTP calls to the agent
  - LivenessManager: the agent process (start, wake, probe)
  - SessionRouter: which agent session the chat is bound to
  - BridgeState: what the bridge knows right now

The chat side is a Chat object: anything with reply() and typing().
The transport decides where text comes from; dispatch() decides what
it means.

Every session- or message-related command probes the agent first and
answers "sleeping" if it is unreachable. Errors from the agent become
chat replies; nothing escapes dispatch().

Usage:
    controller = BridgeController.from_config(config)
    await controller.boot()
    await controller.dispatch(chat, "/new")
    await controller.dispatch(chat, "fix the failing test")
    await controller.shutdown()
"""

from __future__ import annotations

import asyncio
import os
from typing import Awaitable, Callable, Protocol

import httpx
import logfire

from .agent import AgentClient, AgentError, SessionDescriptor
from .config import BridgeConfig
from .events import STATUS_EXITED, STATUS_IDLE, STATUS_THINKING, StreamInterpreter, strip_ansi
from .frames import iter_records
from .liveness import WAKE_POLL_INTERVAL, LivenessManager, Spawner
from .sessions import SessionNotFound, SessionRouter
from .state import BridgeState


# -- Replies ------------------------------------------------------------------

SLEEPING = "Frostty is sleeping. Reply 'wake' to start."
NO_SESSION = "No active session. Type /new or /start."
NO_SESSIONS = "No active sessions. Use /new to create one."
WAKING = "Waking up Frostty... 💤 -> ⚡"
WOKE = "Frostty is online! 🟢"
WAKE_FAILED = "Failed to wake Frostty. Check process logs or path."
QUEUED = "⏳ Still working on the previous message. Yours is next."
SESSION_NOT_FOUND = "Session ID not found."
INVALID_DIRECTORY = "Invalid directory path."
USAGE_SESSION = "Usage: /session <ID>"
USAGE_PROJECT = "Usage: /project <Absolute Path>"
UNKNOWN_COMMAND = (
    "Unknown command. Try /start, /sessions, /new, /session <ID>, "
    "/project <path>, /status or 'wake'."
)
INTERNAL_ERROR = "Something went wrong handling that. Check the bridge logs."


class Chat(Protocol):
    """The chat conversation a command came from."""

    async def reply(self, text: str, *, markdown: bool = False) -> None:
        ...

    async def typing(self) -> None:
        ...


def format_session_list(
    sessions: list[SessionDescriptor],
    footer: str,
    untitled: str | None = None,
) -> str:
    """Numbered session list. Titles fall back to `untitled`, else the id."""
    lines = ["Active Sessions:"]
    for i, session in enumerate(sessions, start=1):
        label = session.title or untitled or session.id
        lines.append(f"{i}. {label} (ID: `{session.id}`)")
    return "\n".join(lines) + "\n\n" + footer


# -- Controller ---------------------------------------------------------------


class BridgeController:
    """Orchestrates chat commands against the agent."""

    def __init__(
        self,
        client: AgentClient,
        liveness: LivenessManager,
        state: BridgeState,
        is_directory: Callable[[str], bool] = os.path.isdir,
    ):
        self.state = state
        self._client = client
        self._liveness = liveness
        self._sessions = SessionRouter(client, state)
        self._is_directory = is_directory
        # Message turns run one at a time; commands are not serialized
        self._turn_lock = asyncio.Lock()

        self._commands: dict[str, Callable[[Chat, str], Awaitable[None]]] = {
            "start": self.cmd_start,
            "sessions": self.cmd_sessions,
            "new": self.cmd_new,
            "session": self.cmd_session,
            "project": self.cmd_project,
            "status": self.cmd_status,
            "wake": self.cmd_wake,
        }

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        spawner: Spawner | None = None,
        poll_interval: float = WAKE_POLL_INTERVAL,
    ) -> BridgeController:
        state = BridgeState(cwd=config.default_project_path)
        client = AgentClient(port=config.port, transport=transport)

        def on_exit(code: int | None) -> None:
            state.set_status(STATUS_EXITED)

        liveness = LivenessManager(
            config.frostty_binary_path,
            client,
            poll_interval=poll_interval,
            spawner=spawner,
            on_exit=on_exit,
        )
        return cls(client, liveness, state)

    @property
    def liveness(self) -> LivenessManager:
        return self._liveness

    @property
    def sessions(self) -> SessionRouter:
        return self._sessions

    # -- Lifecycle ------------------------------------------------------------

    async def boot(self) -> None:
        """Start the agent in the configured workspace."""
        await self._liveness.start(self.state.cwd)

    async def shutdown(self) -> None:
        """Kill the agent and release the HTTP client."""
        await self._liveness.stop()
        await self._client.aclose()

    # -- Dispatch -------------------------------------------------------------

    async def dispatch(self, chat: Chat, text: str) -> None:
        """Handle one inbound chat event."""
        stripped = text.strip()
        if not stripped:
            return

        try:
            if stripped == "?":
                await self.cmd_status(chat, "")
            elif stripped.lower() == "wake":
                await self.cmd_wake(chat, "")
            elif stripped.startswith("/"):
                name, *rest = stripped[1:].split(maxsplit=1) or [""]
                handler = self._commands.get(name.lower())
                if handler is None:
                    await chat.reply(UNKNOWN_COMMAND)
                else:
                    await handler(chat, rest[0] if rest else "")
            else:
                await self.on_message(chat, text)
        except Exception:
            logfire.exception("Unhandled error for chat event: {text}", text=stripped[:80])
            await chat.reply(INTERNAL_ERROR)

    async def _require_awake(self, chat: Chat) -> bool:
        if await self._liveness.probe():
            return True
        await chat.reply(SLEEPING)
        return False

    # -- Commands -------------------------------------------------------------

    async def cmd_start(self, chat: Chat, args: str) -> None:
        """List sessions to resume, or create the first one."""
        if not await self._require_awake(chat):
            return

        try:
            sessions = await self._sessions.list_sessions()
        except AgentError as e:
            logfire.warning("Listing sessions failed: {error}", error=str(e))
            await chat.reply("Error fetching sessions.")
            return

        if not sessions:
            await self._create_session(chat)
            return

        footer = "Reply `/session <id>` to resume or `/new` to start fresh."
        await chat.reply(format_session_list(sessions, footer), markdown=True)

    async def cmd_sessions(self, chat: Chat, args: str) -> None:
        if not await self._require_awake(chat):
            return

        try:
            sessions = await self._sessions.list_sessions()
        except AgentError as e:
            await chat.reply(f"Error: {e}")
            return

        if not sessions:
            await chat.reply(NO_SESSIONS)
            return

        footer = "Reply `/session <ID>` to switch."
        await chat.reply(format_session_list(sessions, footer, untitled="Untitled"), markdown=True)

    async def cmd_new(self, chat: Chat, args: str) -> None:
        if not await self._require_awake(chat):
            return
        await self._create_session(chat)

    async def cmd_session(self, chat: Chat, args: str) -> None:
        """Switch to an existing session by id."""
        if not args:
            await chat.reply(USAGE_SESSION)
            return
        session_id = args.split()[0]

        if not await self._require_awake(chat):
            return

        try:
            await self._sessions.select_session(session_id)
        except SessionNotFound:
            await chat.reply(SESSION_NOT_FOUND)
            return
        except AgentError as e:
            logfire.warning("Verifying session failed: {error}", error=str(e))
            await chat.reply("Error verifying session.")
            return

        await chat.reply(f"Switched to session `{session_id}`.", markdown=True)

    async def cmd_project(self, chat: Chat, args: str) -> None:
        """Move the agent to another workspace."""
        if not args:
            await chat.reply(USAGE_PROJECT)
            return

        if not await self.set_workspace(args):
            await chat.reply(INVALID_DIRECTORY)
            return

        await chat.reply(
            f"📂 Switched workspace to `{args}`.\nPlease start a /new session.",
            markdown=True,
        )

    async def cmd_status(self, chat: Chat, args: str) -> None:
        state = self.state
        await chat.reply(
            f"Status: {strip_ansi(state.latest_status)} ({state.status_age()})\n"
            f"Session: {state.active_session_id or 'None'}\n"
            f"Workspace: {state.cwd}"
        )

    async def cmd_wake(self, chat: Chat, args: str) -> None:
        """Restart the agent and report whether it came up."""
        await chat.reply(WAKING)
        if await self._liveness.wake(self.state.cwd):
            self.state.set_status(STATUS_IDLE)
            await chat.reply(WOKE)
        else:
            await chat.reply(WAKE_FAILED)

    # -- Workspace & sessions -------------------------------------------------

    async def set_workspace(self, path: str) -> bool:
        """Restart the agent in `path` and drop the active session.

        Returns False (and changes nothing) if `path` is not a directory.
        """
        if not self._is_directory(path):
            return False

        # Sessions belong to the workspace they were created in
        self._sessions.clear_session()
        self.state.cwd = path
        logfire.info("Workspace switched to {path}", path=path)
        await self._liveness.start(path)
        return True

    async def _create_session(self, chat: Chat) -> None:
        try:
            session_id = await self._sessions.create_session()
        except AgentError as e:
            await chat.reply(f"Failed to create session: {e}")
            return
        await chat.reply(f"New session started. 📝\nID: `{session_id}`", markdown=True)

    # -- Message turns --------------------------------------------------------

    async def on_message(self, chat: Chat, text: str) -> None:
        """Send free text to the active session and reply with the result."""
        if not await self._require_awake(chat):
            return
        if self.state.active_session_id is None:
            await chat.reply(NO_SESSION)
            return

        if self._turn_lock.locked():
            await chat.reply(QUEUED)

        async with self._turn_lock:
            # Re-read: a workspace switch may have happened while queued
            session_id = self.state.active_session_id
            if session_id is None:
                await chat.reply(NO_SESSION)
                return

            await chat.typing()
            reply = await self._run_turn(session_id, text)

        await chat.reply(reply)

    async def _run_turn(self, session_id: str, text: str) -> str:
        """Stream one message through the decoder and interpreter."""
        interpreter = StreamInterpreter(on_status=self.state.set_status)
        self.state.set_status(STATUS_THINKING)

        with logfire.span("message turn", session_id=session_id):
            try:
                async for record in iter_records(self._client.stream_message(session_id, text)):
                    interpreter.feed(record)
            except AgentError as e:
                logfire.warning("Message turn failed: {error}", error=str(e))
                return f"Error calling Frostty: {e}"
            finally:
                self.state.set_status(STATUS_IDLE)

        return interpreter.finish()
