"""
Pytest configuration for ID003 controller tests.

Provides an in-memory transport port that answers every status request
with the next scripted frame.
"""

import asyncio
import sys
from collections import deque
from pathlib import Path
from typing import Iterable, Optional

import pytest

# Add the project root to the path for imports
project_dir = Path(__file__).parent.parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

from jcm_acceptor.catalog import COMMAND_FRAMES, CommandName  # noqa: E402
from jcm_acceptor.driver import JCMController  # noqa: E402
from jcm_acceptor.exceptions import TransportError, TransportTimeoutError  # noqa: E402
from jcm_acceptor.transport import ID003Frame, TransportPort  # noqa: E402


_FRAME_NAMES = {frame: name for name, frame in COMMAND_FRAMES.items()}


def status_frame(status: int, *data: int) -> bytes:
    """Build a valid acceptor reply frame."""
    return ID003Frame(command=status, data=bytes(data)).to_bytes()


class ScriptedTransport(TransportPort):
    """
    Transport port backed by a reply script.

    Every STATUS_REQUEST written pops the next reply. Once the script is
    exhausted the default reply is used. A reply of None leaves the line
    silent, so the read times out after its timeout has elapsed.
    """

    def __init__(
        self,
        replies: Iterable[Optional[bytes]] = (),
        fail_open: bool = False,
        fail_write: bool = False,
        default: Optional[bytes] = None,
    ) -> None:
        self.replies: deque[Optional[bytes]] = deque(replies)
        self.default = default
        self.fail_open = fail_open
        self.fail_write = fail_write
        self.written: list[bytes] = []
        self.open_count = 0
        self.close_count = 0
        self._rx = bytearray()
        self._open = False

    def queue(self, *replies: Optional[bytes]) -> None:
        self.replies.extend(replies)

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def commands(self) -> list[CommandName]:
        """Every command written, in order."""
        return [_FRAME_NAMES[frame] for frame in self.written]

    @property
    def sent(self) -> list[CommandName]:
        """Commands written other than status requests."""
        return [c for c in self.commands if c is not CommandName.STATUS_REQUEST]

    async def open(self) -> None:
        if self.fail_open:
            raise TransportError("Port busy")
        self._open = True
        self.open_count += 1

    async def close(self) -> None:
        if self._open:
            self.close_count += 1
        self._open = False
        self._rx.clear()

    async def write(self, data: bytes, timeout: float) -> None:
        assert self._open, "write on closed port"
        if self.fail_write:
            raise TransportError("Write failed")
        self.written.append(bytes(data))
        if data == COMMAND_FRAMES[CommandName.STATUS_REQUEST]:
            reply = self.replies.popleft() if self.replies else self.default
            if reply:
                self._rx.extend(reply)

    async def read(self, size: int, timeout: float) -> bytes:
        assert self._open, "read on closed port"
        if len(self._rx) < size:
            await asyncio.sleep(timeout)
            raise TransportTimeoutError("Read timed out")
        data = bytes(self._rx[:size])
        del self._rx[:size]
        return data


@pytest.fixture
def transport():
    """Empty scripted transport."""
    return ScriptedTransport()


@pytest.fixture
def controller(transport):
    """Controller with fast timings bound to the scripted transport."""
    return JCMController(
        port='test',
        read_timeout=0.01,
        write_timeout=0.01,
        polling_cycle=0,
        error_recovery=0,
        status_retry_window=0.05,
        transport=transport,
    )
