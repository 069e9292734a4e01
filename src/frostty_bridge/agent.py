"""agent.py — HTTP client for the agent's session API.

Endpoints (all relative to http://localhost:<port>):
  GET  /api/session                -> [{"id": ..., "title": ...}, ...]
  POST /api/session                -> {"id": ...}
  POST /api/session/{id}/message   -> chunked NDJSON stream

Every transport failure is raised as AgentError except in probe(),
which folds failures into False.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator
from urllib.parse import quote

import httpx


DEFAULT_PORT = 3000
PROBE_TIMEOUT = 2.0


class AgentError(Exception):
    """The agent could not be reached or answered with something unusable."""


@dataclass(frozen=True)
class SessionDescriptor:
    """A session as reported by the agent's listing. Not owned locally."""

    id: str
    title: str | None = None

    @classmethod
    def from_raw(cls, raw: object) -> SessionDescriptor:
        if not isinstance(raw, dict) or not raw.get("id"):
            raise AgentError(f"Malformed session entry: {raw!r}")
        title = raw.get("title")
        return cls(id=str(raw["id"]), title=title if isinstance(title, str) and title else None)


class AgentClient:
    """Thin async wrapper over the agent's HTTP API."""

    def __init__(self, port: int = DEFAULT_PORT, transport: httpx.AsyncBaseTransport | None = None):
        self._port = port
        # Only the probe is time-bounded
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=None)

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    async def probe(self, timeout: float = PROBE_TIMEOUT) -> bool:
        """One liveness check. Never raises."""
        try:
            response = await self._http.get("/api/session", timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError:
            return False
        return True

    async def list_sessions(self) -> list[SessionDescriptor]:
        try:
            response = await self._http.get("/api/session")
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise AgentError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise AgentError("Session listing is not valid JSON") from e

        if not isinstance(body, list):
            raise AgentError("Session listing is not a list")
        return [SessionDescriptor.from_raw(entry) for entry in body]

    async def create_session(self) -> str:
        """Create a session. Returns its identifier."""
        try:
            response = await self._http.post("/api/session", json={})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise AgentError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise AgentError("Session creation reply is not valid JSON") from e

        if not isinstance(body, dict) or not body.get("id"):
            raise AgentError("Session creation reply has no id")
        return str(body["id"])

    async def stream_message(self, session_id: str, text: str) -> AsyncIterator[bytes]:
        """Submit a message and yield the raw response body as it arrives."""
        url = f"/api/session/{quote(session_id, safe='')}/message"
        try:
            async with self._http.stream("POST", url, json={"text": text}) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            raise AgentError(str(e) or type(e).__name__) from e

    async def aclose(self) -> None:
        await self._http.aclose()
