"""test_console.py — The stdin/stdout chat transport."""

import asyncio
import io

import pytest

from frostty_bridge.console import ConsoleChat, ConsoleTransport


class RecordingController:
    """Minimal controller mock: remembers what was dispatched."""

    def __init__(self, delay: float = 0.0):
        self.dispatched: list[str] = []
        self.finished: list[str] = []
        self._delay = delay

    async def dispatch(self, chat, text: str) -> None:
        self.dispatched.append(text)
        await asyncio.sleep(self._delay)
        await chat.reply(f"echo: {text}")
        self.finished.append(text)


def _inputs(*lines):
    it = iter([*lines, None])

    async def fake_input():
        return next(it)

    return fake_input


class TestConsoleTransport:
    @pytest.mark.asyncio
    async def test_dispatches_each_line(self):
        controller = RecordingController()
        out = io.StringIO()
        transport = ConsoleTransport(controller, input_fn=_inputs("/new", "hello"), chat=ConsoleChat(out=out))
        await transport.run()

        assert controller.dispatched == ["/new", "hello"]
        assert "frostty> echo: hello" in out.getvalue()

    @pytest.mark.asyncio
    async def test_skips_empty_lines(self):
        controller = RecordingController()
        transport = ConsoleTransport(controller, input_fn=_inputs("", "  ", "hi"), chat=ConsoleChat(out=io.StringIO()))
        await transport.run()
        assert controller.dispatched == ["hi"]

    @pytest.mark.asyncio
    async def test_eof_waits_for_in_flight_events(self):
        controller = RecordingController(delay=0.05)
        transport = ConsoleTransport(controller, input_fn=_inputs("slow"), chat=ConsoleChat(out=io.StringIO()))
        await transport.run()
        assert controller.finished == ["slow"]

    @pytest.mark.asyncio
    async def test_stop_abandons_in_flight_events(self):
        controller = RecordingController(delay=10)
        never = asyncio.Event()
        lines = iter(["slow"])

        async def blocking_input():
            try:
                return next(lines)
            except StopIteration:
                await never.wait()

        transport = ConsoleTransport(controller, input_fn=blocking_input, chat=ConsoleChat(out=io.StringIO()))
        runner = asyncio.create_task(transport.run())
        while not controller.dispatched:
            await asyncio.sleep(0.001)

        transport.stop()
        await asyncio.wait_for(runner, timeout=1)
        assert controller.finished == []


class TestConsoleChat:
    @pytest.mark.asyncio
    async def test_reply_and_typing(self):
        out = io.StringIO()
        chat = ConsoleChat(out=out, prefix="> ")
        await chat.typing()
        await chat.reply("done", markdown=True)
        assert out.getvalue() == "> ...\n> done\n"
