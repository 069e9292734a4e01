"""liveness.py — The agent subprocess and whether it is answering.

The agent is an external process (`<executable> serve --port <port>`)
started in a workspace directory. Its readiness is only observable
through the HTTP API, so liveness is a probe, not a flag.

States:
  DOWN      no process (never started, spawn failed, or stopped)
  STARTING  process spawned, not yet seen healthy
  UP        a wake() probe succeeded
  EXITED    the process terminated on its own

Exactly one process is owned at a time. start() replaces the old one.

Usage:
    liveness = LivenessManager("frostty", client)
    await liveness.start("/path/to/project")
    if not await liveness.probe():
        ok = await liveness.wake()
    await liveness.stop()
"""

from __future__ import annotations

import asyncio
from enum import Enum, auto
from typing import Awaitable, Callable

import logfire

from .agent import AgentClient
from .frames import LineDecoder


WAKE_POLL_INTERVAL = 1.0
WAKE_MAX_ATTEMPTS = 10
KILL_GRACE_SECONDS = 5.0
STDERR_CHUNK_SIZE = 4096


class LivenessState(Enum):
    """Lifecycle states for the agent subprocess."""

    DOWN = auto()
    STARTING = auto()
    UP = auto()
    EXITED = auto()


Spawner = Callable[[str], Awaitable[asyncio.subprocess.Process]]


class LivenessManager:
    """Owns the agent process handle. Start, wake, probe, stop."""

    def __init__(
        self,
        executable: str,
        client: AgentClient,
        *,
        poll_interval: float = WAKE_POLL_INTERVAL,
        max_attempts: int = WAKE_MAX_ATTEMPTS,
        spawner: Spawner | None = None,
        on_exit: Callable[[int | None], None] | None = None,
    ):
        """
        Args:
            executable: Path to the agent binary.
            client: API client used for probing.
            poll_interval: Seconds between wake probes.
            max_attempts: Probes before wake() gives up.
            spawner: Async callable taking a working directory and returning
                     a process. Defaults to spawning the real binary.
            on_exit: Called with the exit code when the current process
                     terminates on its own.
        """
        self._executable = executable
        self._client = client
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._spawner = spawner or self._spawn
        self._on_exit = on_exit

        self._state = LivenessState.DOWN
        self._proc: asyncio.subprocess.Process | None = None
        self._watch_task: asyncio.Task | None = None
        self._cwd: str | None = None

    @property
    def state(self) -> LivenessState:
        return self._state

    @property
    def cwd(self) -> str | None:
        """Workspace of the most recent start()."""
        return self._cwd

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def running(self) -> bool:
        return self._proc is not None

    # -- Lifecycle ------------------------------------------------------------

    async def start(self, cwd: str) -> None:
        """Replace any running agent with a fresh one in `cwd`.

        Kill and spawn failures are logged, never raised.
        """
        await self._terminate()
        self._cwd = cwd

        with logfire.span("spawn agent", cwd=cwd, port=self._client.port):
            try:
                proc = await self._spawner(cwd)
            except OSError as e:
                logfire.error("Agent spawn failed: {error}", error=str(e))
                self._state = LivenessState.DOWN
                return

        self._proc = proc
        self._state = LivenessState.STARTING
        self._watch_task = asyncio.create_task(self._watch(proc))
        logfire.info("Agent spawned (pid {pid}) in {cwd}", pid=proc.pid, cwd=cwd)

    async def probe(self) -> bool:
        """Is the agent answering? Pure read, never raises."""
        return await self._client.probe()

    async def wake(self, cwd: str | None = None) -> bool:
        """Restart the agent and wait for it to become healthy.

        Args:
            cwd: Workspace to start in. Defaults to the last one used.

        Returns True as soon as one probe succeeds, False once the attempt
        bound is exhausted.
        """
        cwd = cwd or self._cwd
        if cwd is None:
            raise RuntimeError("Cannot wake without a workspace")

        with logfire.span("wake agent", cwd=cwd):
            await self.start(cwd)
            for attempt in range(1, self._max_attempts + 1):
                if await self.probe():
                    self._state = LivenessState.UP
                    logfire.info("Agent healthy after {attempt} probe(s)", attempt=attempt)
                    return True
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._poll_interval)

            logfire.warning("Agent not healthy after {attempts} probes", attempts=self._max_attempts)
            return False

    async def stop(self) -> None:
        """Kill the owned process, if any."""
        await self._terminate()
        self._state = LivenessState.DOWN

    # -- Subprocess management ------------------------------------------------

    async def _spawn(self, cwd: str) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            self._executable,
            "serve",
            "--port",
            str(self._client.port),
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _watch(self, proc: asyncio.subprocess.Process) -> None:
        """Drain stderr, then report the exit of `proc`."""
        try:
            if proc.stderr is not None:
                await self._drain_stderr(proc.stderr)
        finally:
            code = await proc.wait()
            self._exited(proc, code)

    async def _drain_stderr(self, stderr: asyncio.StreamReader) -> None:
        """Log stderr line by line. Reads fixed-size chunks, so no line is too long."""
        decoder = LineDecoder()
        while chunk := await stderr.read(STDERR_CHUNK_SIZE):
            lines = decoder.feed(chunk)
            # Progress bars rewrite one line with \r and never end it
            if len(decoder.pending) > STDERR_CHUNK_SIZE:
                lines.extend(decoder.flush())
            for line in lines:
                logfire.debug("agent: {line}", line=line.rstrip())
        for line in decoder.flush():
            logfire.debug("agent: {line}", line=line.rstrip())

    def _exited(self, proc: asyncio.subprocess.Process, code: int | None) -> None:
        logfire.info("Agent process exited with code {code}", code=code)

        # A replaced process must not clobber its successor
        if proc is not self._proc:
            return
        self._proc = None
        self._state = LivenessState.EXITED
        if self._on_exit:
            self._on_exit(code)

    async def _terminate(self) -> None:
        """Best-effort kill of the current process."""
        proc, self._proc = self._proc, None
        watch, self._watch_task = self._watch_task, None
        if proc is None:
            return

        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass  # Already gone
            except OSError as e:
                logfire.warning("Failed to kill agent (pid {pid}): {error}", pid=proc.pid, error=str(e))

            try:
                await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logfire.warning("Agent (pid {pid}) did not exit after kill", pid=proc.pid)

        if watch and not watch.done():
            watch.cancel()
            try:
                await watch
            except asyncio.CancelledError:
                pass
