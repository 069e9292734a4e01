"""console.py — A chat transport on stdin/stdout.

Stands in for the chat platform when running the bridge locally: each
input line is one chat event, each reply is printed. Events are handled
as independent tasks, so `/status` answers while a long turn streams.

Usage:
    # Default: reads from stdin
    console = ConsoleTransport(controller)
    await console.run()

    # Custom input source (for testing)
    console = ConsoleTransport(controller, input_fn=my_async_reader)
    await console.run()
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Awaitable, Callable, TextIO

if TYPE_CHECKING:
    from .bridge import BridgeController


class _StdinReader:
    """Non-blocking line reader over stdin. Returns None on EOF."""

    def __init__(self):
        self._reader: asyncio.StreamReader | None = None

    async def __call__(self) -> str | None:
        if self._reader is None:
            loop = asyncio.get_running_loop()
            self._reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(self._reader)
            await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        line = await self._reader.readline()
        if not line:
            return None  # EOF
        return line.decode(errors="replace").rstrip("\n")


class ConsoleChat:
    """Chat that prints replies."""

    def __init__(self, out: TextIO | None = None, prefix: str = "frostty> "):
        self._out = out or sys.stdout
        self._prefix = prefix

    async def reply(self, text: str, *, markdown: bool = False) -> None:
        print(f"{self._prefix}{text}", file=self._out, flush=True)

    async def typing(self) -> None:
        print(f"{self._prefix}...", file=self._out, flush=True)


class ConsoleTransport:
    """Reads chat events and hands each to the controller."""

    def __init__(
        self,
        controller: BridgeController,
        input_fn: Callable[[], Awaitable[str | None]] | None = None,
        chat: ConsoleChat | None = None,
    ):
        """
        Args:
            controller: Where events are dispatched.
            input_fn: Async function that returns the next input line,
                      or None to signal EOF. Defaults to stdin.
            chat: Reply sink. Defaults to stdout.
        """
        self._controller = controller
        self._input_fn = input_fn or _StdinReader()
        self._chat = chat or ConsoleChat()
        self._pending: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    async def run(self) -> None:
        """Read until EOF or stop()."""
        try:
            while not self._stopped.is_set():
                content = await self._next_line()
                if content is None:
                    break
                if not content.strip():
                    continue

                task = asyncio.create_task(self._controller.dispatch(self._chat, content))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        finally:
            # EOF lets in-flight turns finish; stop() abandons them
            if self._stopped.is_set():
                for task in self._pending:
                    task.cancel()
            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)

    def stop(self) -> None:
        """Stop accepting chat events."""
        self._stopped.set()

    async def _next_line(self) -> str | None:
        """Next input, or None once EOF is hit or stop() is called."""
        read = asyncio.ensure_future(self._input_fn())
        stopped = asyncio.ensure_future(self._stopped.wait())
        done, _ = await asyncio.wait({read, stopped}, return_when=asyncio.FIRST_COMPLETED)
        if read not in done:
            read.cancel()
            return None
        stopped.cancel()
        return read.result()
