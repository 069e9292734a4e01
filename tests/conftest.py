"""Shared test fixtures for the Frostty bridge.

The agent is faked at the HTTP layer with httpx.MockTransport and at the
process layer with FakeProcess, so no binary is ever spawned. Record
fixtures mirror what the agent streams back for a message.
"""

import asyncio
import json
import re

import httpx
import logfire
import pytest

from frostty_bridge.bridge import BridgeController
from frostty_bridge.config import BridgeConfig


# -- Markers ------------------------------------------------------------------


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: marks tests that open real loopback sockets",
    )
    logfire.configure(send_to_logfire=False, console=False)


# -- Canned protocol fixtures ------------------------------------------------


@pytest.fixture
def sample_tool_use_record():
    return {"type": "tool_use", "tool": "bash"}


@pytest.fixture
def sample_text_record():
    return {"type": "text", "content": "Hello"}


@pytest.fixture
def sample_sessions():
    """The agent's session listing."""
    return [
        {"id": "A", "title": "Fix the flaky test"},
        {"id": "B"},
    ]


# -- Helpers ------------------------------------------------------------------


@pytest.fixture
def ndjson_lines():
    """Helper: convert a list of dicts to newline-delimited JSON bytes."""
    def _make(events: list[dict]) -> bytes:
        lines = [json.dumps(e) for e in events]
        return ("\n".join(lines) + "\n").encode()
    return _make


class FakeChat:
    """Collects replies instead of sending them anywhere."""

    def __init__(self):
        self.replies: list[str] = []
        self.markdown: list[bool] = []
        self.typing_count = 0

    async def reply(self, text: str, *, markdown: bool = False) -> None:
        self.replies.append(text)
        self.markdown.append(markdown)

    async def typing(self) -> None:
        self.typing_count += 1

    @property
    def last(self) -> str:
        return self.replies[-1]


_MESSAGE_PATH = re.compile(r"^/api/session/([^/]+)/message$")


class FakeAgent:
    """In-memory agent API behind httpx.MockTransport.

    up: Whether requests are answered at all (False = connection refused).
    down_probes: Listing requests to refuse before coming up.
    chunks: Body chunks streamed back for every message.
    gate: If set, streaming pauses after the first chunk until it is set.
    """

    def __init__(self, sessions: list[dict] | None = None):
        self.up = True
        self.down_probes = 0
        self.sessions = list(sessions) if sessions else []
        self.chunks: list[bytes] = []
        self.gate: asyncio.Event | None = None
        self.fail_create = False
        self.fail_message_after: int | None = None
        self.listing_requests = 0
        self.messages: list[tuple[str, dict]] = []
        self._next_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/session":
            self.listing_requests += 1
            if self.down_probes > 0:
                self.down_probes -= 1
                raise httpx.ConnectError("Connection refused", request=request)

        if not self.up:
            raise httpx.ConnectError("Connection refused", request=request)

        if request.method == "GET" and path == "/api/session":
            return httpx.Response(200, json=self.sessions)

        if request.method == "POST" and path == "/api/session":
            if self.fail_create:
                return httpx.Response(500, json={"error": "boom"})
            session = {"id": f"sess-{self._next_id}"}
            self._next_id += 1
            self.sessions.append(session)
            return httpx.Response(200, json=session)

        match = _MESSAGE_PATH.match(path)
        if request.method == "POST" and match:
            self.messages.append((match.group(1), json.loads(request.content)))
            return httpx.Response(200, content=self._stream())

        return httpx.Response(404)

    async def _stream(self):
        for i, chunk in enumerate(self.chunks):
            if self.fail_message_after is not None and i >= self.fail_message_after:
                raise httpx.ReadError("Connection reset")
            yield chunk
            if i == 0 and self.gate is not None:
                await self.gate.wait()


class FakeProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self, pid: int, cwd: str):
        self.pid = pid
        self.cwd = cwd
        self.returncode: int | None = None
        self.stderr = None
        self.killed = False
        self._exited = asyncio.Event()

    def kill(self) -> None:
        if self.returncode is not None:
            raise ProcessLookupError
        self.killed = True
        self.exit(-9)

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawner:
    """Spawner that hands out FakeProcess objects and remembers them."""

    def __init__(self):
        self.processes: list[FakeProcess] = []
        self.fail = False

    async def __call__(self, cwd: str) -> FakeProcess:
        if self.fail:
            raise FileNotFoundError(2, "No such file or directory", "frostty")
        proc = FakeProcess(pid=1000 + len(self.processes), cwd=cwd)
        self.processes.append(proc)
        return proc

    @property
    def current(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def agent(sample_sessions):
    return FakeAgent(sessions=sample_sessions)


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def config(tmp_path):
    return BridgeConfig(
        bot_token="test-token",
        frostty_binary_path="frostty",
        default_project_path=str(tmp_path),
        port=3000,
    )


@pytest.fixture
def make_controller(agent, spawner, config):
    """Factory: a controller wired to the fake agent and fake processes."""
    def _make(poll_interval: float = 0.0) -> BridgeController:
        return BridgeController.from_config(
            config,
            transport=agent.transport,
            spawner=spawner,
            poll_interval=poll_interval,
        )
    return _make
