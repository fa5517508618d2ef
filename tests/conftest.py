"""
pytest configuration and fixtures.
"""

import threading
from collections import Counter, deque
from typing import Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from netstream import SocketConfig
from netstream.core.transport import Resolver, Transport
from netstream.errors import ConnectTimeoutError


LOOPBACK = 0x7F000001


class FakeTransport(Transport):
    """
    In-memory transport that records every call.

    Handles are small ints. recv() results are scripted per handle with
    ``script_recv``; sent bytes are collected in ``sent``.
    """

    def __init__(self):
        self.calls: Counter = Counter()
        self._next_handle = 100
        self._next_port = 40000
        self.local: dict = {}
        self.remote: dict = {}
        self.recv_script: dict = {}
        self.sent: dict = {}
        self.closed: set = set()
        self.pending: deque = deque()

        # Behaviour knobs
        self.connect_delay: float = 0.0
        self.connect_error: Optional[Exception] = None
        self.accept_error: Optional[Exception] = None
        self.send_limit: Optional[int] = None
        self.send_error: Optional[Exception] = None
        self.send_result: Optional[int] = None

    # ─── scripting helpers ────────────────────────────────────────────────

    def script_recv(self, handle, *chunks: bytes) -> None:
        self.recv_script.setdefault(handle, deque()).extend(chunks)

    def queue_connection(self, addr: int, port: int) -> None:
        self.pending.append((addr, port))

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _ephemeral(self) -> int:
        self._next_port += 1
        return self._next_port

    # ─── Transport interface ──────────────────────────────────────────────

    def init(self):
        self.calls["init"] += 1

    def create(self):
        self.calls["create"] += 1
        self._next_handle += 1
        return self._next_handle

    def connect(self, handle, addr, port):
        self.calls["connect"] += 1
        if self.connect_error is not None:
            raise self.connect_error
        self.remote[handle] = (addr, port)
        self.local.setdefault(handle, (LOOPBACK, self._ephemeral()))

    def connect_with_timeout(self, handle, addr, port, timeout):
        self.calls["connect_with_timeout"] += 1
        if timeout and self.connect_delay > timeout:
            raise ConnectTimeoutError(f"Connection timed out after {timeout}s")
        if self.connect_error is not None:
            raise self.connect_error
        self.remote[handle] = (addr, port)
        self.local.setdefault(handle, (LOOPBACK, self._ephemeral()))

    def bind(self, handle, addr, port):
        self.calls["bind"] += 1
        self.local[handle] = (addr, port or self._ephemeral())

    def bind_any(self, handle):
        self.calls["bind_any"] += 1
        self.local[handle] = (0, self._ephemeral())

    def listen(self, handle, backlog):
        self.calls["listen"] += 1
        self.last_backlog = backlog

    def accept(self, handle):
        self.calls["accept"] += 1
        if self.accept_error is not None:
            error, self.accept_error = self.accept_error, None
            raise error
        addr, port = self.pending.popleft()
        new_handle = self.create()
        self.local[new_handle] = self.local[handle]
        self.remote[new_handle] = (addr, port)
        return new_handle

    def send(self, handle, buffer, offset, length):
        self.calls["send"] += 1
        if self.send_error is not None:
            raise self.send_error
        if self.send_result is not None:
            return self.send_result
        count = length if self.send_limit is None else min(length, self.send_limit)
        self.sent.setdefault(handle, bytearray()).extend(bytes(buffer[offset:offset + count]))
        return count

    def recv(self, handle, buffer, offset, length):
        self.calls["recv"] += 1
        self.last_recv_length = length
        script = self.recv_script.get(handle)
        if not script:
            return 0
        chunk = script.popleft()
        if len(chunk) > length:
            script.appendleft(chunk[length:])
            chunk = chunk[:length]
        buffer[offset:offset + len(chunk)] = chunk
        return len(chunk)

    def available(self, handle):
        self.calls["available"] += 1
        return sum(len(c) for c in self.recv_script.get(handle, ()))

    def close(self, handle):
        self.calls["close"] += 1
        self.closed.add(handle)

    def shutdown_read(self, handle):
        self.calls["shutdown_read"] += 1

    def shutdown_write(self, handle):
        self.calls["shutdown_write"] += 1

    def get_local_address(self, handle):
        return self.local.get(handle, (0, 0))[0]

    def get_local_port(self, handle):
        return self.local.get(handle, (0, 0))[1]

    def get_remote_address(self, handle):
        return self.remote[handle][0]

    def get_remote_port(self, handle):
        return self.remote[handle][1]


class BlockingRecvTransport(FakeTransport):
    """
    FakeTransport whose recv() blocks once the script runs dry.

    A blocked recv() is woken by shutdown_read() and then returns 0,
    the way a real socket behaves when its read side is shut down.
    """

    def __init__(self):
        super().__init__()
        self.reading = threading.Event()
        self._woken = threading.Event()

    def recv(self, handle, buffer, offset, length):
        if self.recv_script.get(handle):
            return super().recv(handle, buffer, offset, length)
        self.calls["recv"] += 1
        self.reading.set()
        self._woken.wait(timeout=5)
        return 0

    def shutdown_read(self, handle):
        super().shutdown_read(handle)
        self._woken.set()


class FakeResolver(Resolver):
    """Resolver backed by a dict; unknown names raise OSError."""

    def __init__(self, table: dict):
        self.table = table
        self.lookups = 0

    def resolve_ipv4(self, name: str) -> int:
        self.lookups += 1
        if name not in self.table:
            raise OSError(f"no such host: {name}")
        return self.table[name]


@pytest.fixture
def fake_transport() -> FakeTransport:
    """A fresh recording transport."""
    return FakeTransport()


@pytest.fixture
def fake_resolver() -> FakeResolver:
    """Resolver that knows a couple of names and maps 'nowhere' to 0."""
    return FakeResolver({
        "localhost": LOOPBACK,
        "127.0.0.1": LOOPBACK,
        "server.test": 0x0A000005,   # 10.0.0.5
        "nowhere": 0,
    })


@pytest.fixture
def small_config() -> SocketConfig:
    """Configuration with a tiny transfer unit to force chunking."""
    return SocketConfig(transfer_unit=4)
