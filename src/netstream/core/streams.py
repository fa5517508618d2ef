"""
=============================================================================
HALF-CLOSABLE SOCKET STREAMS
=============================================================================

A TCP connection is two independent byte pipes, one in each direction.
Each socket hands out one stream per direction:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Local socket                               Remote socket           │
    │                                                                      │
    │   SocketOutputStream  ── bytes ──────────►   input side              │
    │   SocketInputStream   ◄────────── bytes ──   output side             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Closing a stream closes ONLY its direction (a "half-close"):

    output.close()  →  shutdown(SHUT_WR)  →  peer's reads return EOF
    input.close()   →  shutdown(SHUT_RD)  →  our reads return nothing

The other direction keeps working. That's the classic way to say "I'm
done sending, now give me your answer":

    out.write(request)
    out.close()              # peer sees EOF, knows the request is complete
    reply = inp.read()       # still readable!

=============================================================================
CHUNKED TRANSFER
=============================================================================

Neither stream ever hands the transport more than ``transfer_unit`` bytes
at once. Reads keep asking until the buffer is full or the peer stops
sending:

    readinto(buffer of 10)         transport.recv() results
        ├── ask for 10               4 bytes       filled = 4
        ├── ask for 6                6 bytes       filled = 10   → return 10

    readinto(buffer of 10)
        ├── ask for 10               4 bytes       filled = 4
        ├── ask for 6                0 bytes       EOF!          → return 4

A short count is NOT an error here, it just means the peer half-closed.

Both classes subclass io.RawIOBase, so they slot into the rest of the io
machinery (io.BufferedReader, shutil.copyfileobj, ...).

=============================================================================
"""

import io
import logging
import threading

from ..errors import InvalidArgumentError, SocketClosedError, SocketError


logger = logging.getLogger(__name__)


EOF = -1
"""Returned by SocketInputStream.read_byte() when the peer has half-closed."""


class _SocketStream(io.RawIOBase):
    """
    Shared plumbing: the handle back-reference and an idempotent close.

    The stream does not own the handle. Closing it shuts down one
    direction; releasing the handle is the SocketImpl's job.
    """

    _direction = "?"

    def __init__(self, transport, handle, transfer_unit: int):
        super().__init__()
        self._transport = transport
        self._handle = handle
        self._transfer_unit = transfer_unit
        self._close_lock = threading.Lock()
        self._closing = False

    def _shutdown_direction(self) -> None:
        raise NotImplementedError

    def _check_open(self) -> None:
        if self.closed:
            raise SocketClosedError(f"{self._direction} stream is closed")

    def close(self) -> None:
        """
        Shut down this direction of the connection.

        Safe to call more than once and from several threads: only the
        first caller talks to the transport.
        """
        with self._close_lock:
            if self.closed:
                return
            # Set before the shutdown so a reader woken by it can tell
            # a local close from the peer half-closing
            self._closing = True
            try:
                self._shutdown_direction()
            finally:
                super().close()
        logger.debug(f"{self._direction} stream closed")

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<{type(self).__name__} {state}>"


class SocketInputStream(_SocketStream):
    """The receiving half of a connection."""

    _direction = "Input"

    def __init__(self, transport, handle, transfer_unit: int):
        super().__init__(transport, handle, transfer_unit)
        self._eof = False

    @property
    def at_eof(self) -> bool:
        """True once the peer has shut down its sending side."""
        return self._eof

    def readable(self) -> bool:
        return True

    def _shutdown_direction(self) -> None:
        self._transport.shutdown_read(self._handle)

    def read_byte(self) -> int:
        """
        Read a single byte.

        Returns:
            The byte value (0-255), or EOF (-1) at end of stream.
        """
        self._check_open()
        if self._eof:
            return EOF
        buffer = bytearray(1)
        if self._transport.recv(self._handle, buffer, 0, 1) == 0:
            self._end_of_stream()
            return EOF
        return buffer[0]

    def readinto(self, buffer) -> int:
        """
        Fill ``buffer`` from the connection.

        Blocks until the buffer is full or the peer half-closes.

        Returns:
            Number of bytes filled; less than len(buffer) only at EOF.

        Raises:
            SocketClosedError: The stream was closed, including by another
                               thread while this read was blocked.
        """
        self._check_open()
        view = memoryview(buffer).cast("B")
        wanted = len(view)
        filled = 0

        while filled < wanted and not self._eof:
            chunk = min(wanted - filled, self._transfer_unit)
            size = self._transport.recv(self._handle, view, filled, chunk)
            if size == 0:
                self._end_of_stream()
                break
            filled += size

        return filled

    def _end_of_stream(self) -> None:
        if self._closing:
            raise SocketClosedError("Input stream was closed during a read")
        self._eof = True

    def available(self) -> int:
        """Bytes that can be read right now without blocking."""
        self._check_open()
        return self._transport.available(self._handle)


class SocketOutputStream(_SocketStream):
    """The sending half of a connection."""

    _direction = "Output"

    def writable(self) -> bool:
        return True

    def _shutdown_direction(self) -> None:
        self._transport.shutdown_write(self._handle)

    def write_byte(self, value: int) -> None:
        """Send one byte (0-255)."""
        self._check_open()
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 255:
            raise InvalidArgumentError(f"byte value must be an int in 0..255, got {value!r}")
        self._send_all(memoryview(bytes((value,))))

    def write(self, buffer) -> int:
        """
        Send all of ``buffer``.

        Unlike a raw socket send(), this never returns a short count: it
        keeps sending until every byte is out or the transport raises.

        Returns:
            len(buffer)
        """
        self._check_open()
        view = memoryview(buffer).cast("B")
        self._send_all(view)
        return len(view)

    def _send_all(self, view: memoryview) -> None:
        total = len(view)
        offset = 0
        while offset < total:
            chunk = min(total - offset, self._transfer_unit)
            sent = self._transport.send(self._handle, view, offset, chunk)
            if sent <= 0:
                raise SocketError(f"Transport sent {sent} bytes; connection is broken")
            offset += sent
