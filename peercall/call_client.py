"""
Console call client.

Commands:
    /call [room]   start a call, asking for the room when none is given
    /hangup        end the current call
    /status        show the current session state
    /quit          hang up and exit
Any other line is sent to the peer over the data channel.
"""
import asyncio
import signal
import sys
from typing import Optional

from .core.config import CallConfig
from .core.exceptions import PeerCallError
from .core.logging import debug_log, setup_logging
from .services.session_manager import CallSessionManager
from .webrtc.data_channel import Transcript, TranscriptEntry


def print_entry(entry: TranscriptEntry):
    print(entry.render(), flush=True)


def show_notice(text: str):
    print(f"[!] {text}", flush=True)


class ConsoleInput:
    """Line reader over a pipe or tty, driven by the event loop itself."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self.reader: Optional[asyncio.StreamReader] = None

    async def open(self):
        loop = asyncio.get_running_loop()
        self.reader = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(self.reader), self.stream)

    async def read_line(self, prompt: str = "") -> Optional[str]:
        """Return the next line without its newline; None on EOF."""
        if self.reader is None:
            await self.open()
        if prompt:
            print(prompt, end="", flush=True)
        line = await self.reader.readline()
        if not line:
            return None
        return line.decode(errors="replace").rstrip("\r\n")


class CallClient:
    """Maps console commands onto the session manager."""

    def __init__(self, config: CallConfig, console: Optional[ConsoleInput] = None,
                 manager: Optional[CallSessionManager] = None):
        self.config = config
        self.console = console or ConsoleInput()
        self.manager = manager or CallSessionManager(
            config,
            room_prompt=lambda: self.console.read_line("Enter room name: "),
            notify=show_notice,
            transcript=Transcript(listener=print_entry),
        )
        self.stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def handle_line(self, line: str):
        command, _, argument = line.strip().partition(" ")

        if command == "/call":
            await self.manager.start(argument.strip() or None)
        elif command == "/hangup":
            await self.manager.hang_up()
        elif command == "/status":
            print(self.manager.get_status(), flush=True)
        elif command == "/quit":
            self.stopping.set()
        elif line:
            self.manager.send_message(line)

    def request_stop(self):
        """First signal stops the loop; a second one cancels the client outright."""
        if self.stopping.is_set():
            if self._task is not None:
                self._task.cancel()
            return
        self.stopping.set()

    async def run(self):
        self._task = asyncio.current_task()
        print(__doc__, flush=True)
        try:
            await self._loop()
        finally:
            await self.manager.shutdown()

    async def _loop(self):
        while not self.stopping.is_set():
            reader = asyncio.ensure_future(self.console.read_line())
            stopper = asyncio.ensure_future(self.stopping.wait())
            done, _ = await asyncio.wait({reader, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()
            if reader not in done:
                reader.cancel()
                break

            line = reader.result()
            if line is None:
                break
            try:
                await self.handle_line(line)
            except PeerCallError as e:
                show_notice(str(e))
            except Exception as e:
                debug_log(f"❌ [Client] Command failed", {
                    "line": line,
                    "error": str(e),
                    "error_type": type(e).__name__
                }, "ERROR")


async def main(config: Optional[CallConfig] = None):
    config = config or CallConfig()
    setup_logging(level=config.log_level, log_file="peercall_client.log")

    client = CallClient(config)
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, client.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support.
            pass

    try:
        await client.run()
    except asyncio.CancelledError:
        debug_log(f"🛑 [Client] Stopped by second signal")


if __name__ == "__main__":
    asyncio.run(main())
