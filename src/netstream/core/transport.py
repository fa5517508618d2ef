"""
=============================================================================
TRANSPORT PROVIDER
=============================================================================

The transport provider is the ONLY code in this package that touches an
operating-system socket. Everything above it (SocketImpl, the streams,
Socket, ServerSocket) talks to it through an opaque handle:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          LAYERING                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Socket / ServerSocket         facades callers use                  │
    │          │                                                           │
    │          ▼                                                           │
    │   DefaultSocketImpl             owns ONE handle + the two streams    │
    │          │                                                           │
    │          ▼                                                           │
    │   Transport (this module)       create/connect/bind/listen/accept    │
    │          │                      send/recv/shutdown/close             │
    │          ▼                                                           │
    │   OS socket                     what the handle really is            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Keeping the seam this narrow means tests can swap in a fake transport
that counts calls and scripts recv() results, without a network.

=============================================================================
ONE-TIME INITIALIZATION
=============================================================================

Some platforms need process-wide setup before the first socket exists
(historically WSAStartup on Windows). Transport.init() is that hook.
It is invoked through ensure_initialized(), which guarantees:

    - init() runs before the first create() on a transport
    - init() runs at most once per transport object
    - concurrent first calls from several threads still run it once

The shared SystemTransport is one object per process, so for the
default stack this is "once per process".

=============================================================================
ERRORS
=============================================================================

Every OSError raised by the stdlib is re-raised as a SocketError subclass
with the original chained as __cause__:

    socket.timeout (connect w/ deadline)   → ConnectTimeoutError
    connect() failure                      → ConnectError
    bind() failure                         → BindError
    anything else                          → SocketError

=============================================================================
"""

import errno
import logging
import select
import socket
import threading
import weakref
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..errors import BindError, ConnectError, ConnectTimeoutError, SocketError


logger = logging.getLogger(__name__)


Handle = Any


class Transport(ABC):
    """
    Raw socket primitives over an opaque handle.

    Addresses are 32-bit ints (see address.py), ports are ints, timeouts
    are seconds. Implementations raise SocketError subclasses on failure.
    """

    @abstractmethod
    def init(self) -> None:
        """One-time setup, called before the first create()."""

    @abstractmethod
    def create(self) -> Handle:
        """Allocate a new TCP handle."""

    @abstractmethod
    def connect(self, handle: Handle, addr: int, port: int) -> None:
        ...

    @abstractmethod
    def connect_with_timeout(self, handle: Handle, addr: int, port: int, timeout: float) -> None:
        """
        Connect, giving up after ``timeout`` seconds with ConnectTimeoutError.
        A timeout of 0 means no deadline.
        """

    @abstractmethod
    def bind(self, handle: Handle, addr: int, port: int) -> None:
        ...

    @abstractmethod
    def bind_any(self, handle: Handle) -> None:
        """Bind to a provider-chosen address and port."""

    @abstractmethod
    def listen(self, handle: Handle, backlog: int) -> None:
        ...

    @abstractmethod
    def accept(self, handle: Handle) -> Handle:
        """Block until a connection arrives; return its new handle."""

    @abstractmethod
    def send(self, handle: Handle, buffer, offset: int, length: int) -> int:
        """Send up to ``length`` bytes of ``buffer[offset:]``; return bytes sent."""

    @abstractmethod
    def recv(self, handle: Handle, buffer, offset: int, length: int) -> int:
        """
        Receive up to ``length`` bytes into ``buffer[offset:]``.
        Returns 0 when the peer has shut down its sending side.
        """

    @abstractmethod
    def available(self, handle: Handle) -> int:
        """Number of bytes that can be read without blocking."""

    @abstractmethod
    def close(self, handle: Handle) -> None:
        ...

    @abstractmethod
    def shutdown_read(self, handle: Handle) -> None:
        ...

    @abstractmethod
    def shutdown_write(self, handle: Handle) -> None:
        ...

    @abstractmethod
    def get_local_address(self, handle: Handle) -> int:
        ...

    @abstractmethod
    def get_local_port(self, handle: Handle) -> int:
        ...

    @abstractmethod
    def get_remote_address(self, handle: Handle) -> int:
        ...

    @abstractmethod
    def get_remote_port(self, handle: Handle) -> int:
        ...


class Resolver(ABC):
    """Host name to IPv4 resolution."""

    @abstractmethod
    def resolve_ipv4(self, name: str) -> int:
        """
        Return the 32-bit address for ``name``.
        0 or an OSError both mean "not found".
        """


# =============================================================================
# ONE-TIME INITIALIZER
# =============================================================================


class _Initializer:
    """Runs Transport.init() exactly once per transport object."""

    def __init__(self):
        self._lock = threading.Lock()
        self._done: "weakref.WeakSet[Transport]" = weakref.WeakSet()

    def ensure(self, transport: Transport) -> None:
        # Fast path without the lock once a transport is initialized
        if transport in self._done:
            return
        with self._lock:
            if transport in self._done:
                return
            transport.init()
            self._done.add(transport)
            logger.debug(f"Initialized transport {type(transport).__name__}")


_initializer = _Initializer()


def ensure_initialized(transport: Transport) -> None:
    """Run ``transport.init()`` if it has not run yet."""
    _initializer.ensure(transport)


# =============================================================================
# SYSTEM TRANSPORT (stdlib socket module)
# =============================================================================


def _ip(addr: int) -> str:
    return socket.inet_ntoa(addr.to_bytes(4, "big"))


def _raw(ip: str) -> int:
    return int.from_bytes(socket.inet_aton(ip), "big")


class SystemTransport(Transport):
    """
    Transport backed by the stdlib ``socket`` module.

    A handle is a blocking ``socket.socket`` (AF_INET, SOCK_STREAM).
    """

    def init(self) -> None:
        # The interpreter already performs platform socket startup when
        # the socket module is imported; nothing else to do.
        logger.debug("System transport ready")

    def create(self) -> socket.socket:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        except OSError as e:
            raise SocketError(f"Can't create the socket: {e}") from e
        logger.debug(f"Created socket fd={sock.fileno()}")
        return sock

    def connect(self, handle: socket.socket, addr: int, port: int) -> None:
        try:
            handle.connect((_ip(addr), port))
        except OSError as e:
            raise ConnectError(f"Can't connect the socket to address {_ip(addr)}:{port}: {e}") from e

    def connect_with_timeout(self, handle: socket.socket, addr: int, port: int, timeout: float) -> None:
        if not timeout:
            self.connect(handle, addr, port)
            return

        # ─────────────────────────────────────────────────────────────────
        # BOUNDED CONNECT
        # ─────────────────────────────────────────────────────────────────
        # settimeout() makes connect() give up after the deadline with
        # socket.timeout. The handle goes back to fully blocking afterwards
        # so reads and writes keep their blocking semantics.

        handle.settimeout(timeout)
        try:
            handle.connect((_ip(addr), port))
        except socket.timeout as e:
            raise ConnectTimeoutError(
                f"Connection to {_ip(addr)}:{port} timed out after {timeout}s"
            ) from e
        except OSError as e:
            raise ConnectError(f"Can't connect the socket to address {_ip(addr)}:{port}: {e}") from e
        finally:
            handle.settimeout(None)

    def bind(self, handle: socket.socket, addr: int, port: int) -> None:
        try:
            handle.bind((_ip(addr), port))
        except OSError as e:
            raise BindError(f"Can't bind the socket to address {_ip(addr)}:{port}: {e}") from e

    def bind_any(self, handle: socket.socket) -> None:
        self.bind(handle, 0, 0)

    def listen(self, handle: socket.socket, backlog: int) -> None:
        try:
            handle.listen(backlog)
        except OSError as e:
            raise SocketError(f"Can't set the socket to the listening state: {e}") from e

    def accept(self, handle: socket.socket) -> socket.socket:
        try:
            client, address = handle.accept()
        except OSError as e:
            raise SocketError(f"Can't accept the incoming connection: {e}") from e
        # accept() inherits the listening socket's timeout; client handles
        # are always blocking.
        client.settimeout(None)
        logger.debug(f"Accepted connection from {address[0]}:{address[1]}")
        return client

    def send(self, handle: socket.socket, buffer, offset: int, length: int) -> int:
        try:
            return handle.send(memoryview(buffer)[offset:offset + length])
        except OSError as e:
            raise SocketError(f"Can't send data through the socket: {e}") from e

    def recv(self, handle: socket.socket, buffer, offset: int, length: int) -> int:
        try:
            return handle.recv_into(memoryview(buffer)[offset:offset + length], length)
        except OSError as e:
            raise SocketError(f"Can't receive data through the socket: {e}") from e

    def available(self, handle: socket.socket) -> int:
        # Peek without consuming. select() first so a socket with nothing
        # queued answers 0 instead of blocking.
        try:
            readable, _, _ = select.select([handle], [], [], 0)
            if not readable:
                return 0
            flags = socket.MSG_PEEK | getattr(socket, "MSG_DONTWAIT", 0)
            return len(handle.recv(65535, flags))
        except BlockingIOError:
            return 0
        except OSError as e:
            raise SocketError(f"Can't query available bytes: {e}") from e

    def close(self, handle: socket.socket) -> None:
        # shutdown() wakes threads blocked in accept()/recv() on this
        # handle; close() alone does not on Linux.
        try:
            handle.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            handle.close()
        except OSError as e:
            raise SocketError(f"Can't close the socket: {e}") from e

    def shutdown_read(self, handle: socket.socket) -> None:
        self._shutdown(handle, socket.SHUT_RD)

    def shutdown_write(self, handle: socket.socket) -> None:
        self._shutdown(handle, socket.SHUT_WR)

    def _shutdown(self, handle: socket.socket, how: int) -> None:
        try:
            handle.shutdown(how)
        except OSError as e:
            # A socket that never connected has nothing to shut down
            if e.errno == errno.ENOTCONN:
                return
            raise SocketError(f"Can't shutdown the socket: {e}") from e

    def get_local_address(self, handle: socket.socket) -> int:
        return _raw(self._sockname(handle)[0])

    def get_local_port(self, handle: socket.socket) -> int:
        return self._sockname(handle)[1]

    def get_remote_address(self, handle: socket.socket) -> int:
        return _raw(self._peername(handle)[0])

    def get_remote_port(self, handle: socket.socket) -> int:
        return self._peername(handle)[1]

    def _sockname(self, handle: socket.socket):
        try:
            return handle.getsockname()
        except OSError as e:
            raise SocketError(f"Can't get the socket local address: {e}") from e

    def _peername(self, handle: socket.socket):
        try:
            return handle.getpeername()
        except OSError as e:
            raise SocketError(f"Can't get the socket remote address: {e}") from e


class SystemResolver(Resolver):
    """Resolver backed by ``socket.gethostbyname``."""

    def resolve_ipv4(self, name: str) -> int:
        return _raw(socket.gethostbyname(name))


# =============================================================================
# PROCESS-WIDE DEFAULTS
# =============================================================================

_defaults_lock = threading.Lock()
_default_transport: Optional[Transport] = None
_default_resolver: Optional[Resolver] = None


def default_transport() -> Transport:
    """The shared SystemTransport used when no transport is passed in."""
    global _default_transport
    with _defaults_lock:
        if _default_transport is None:
            _default_transport = SystemTransport()
        return _default_transport


def default_resolver() -> Resolver:
    """The shared SystemResolver used when no resolver is passed in."""
    global _default_resolver
    with _defaults_lock:
        if _default_resolver is None:
            _default_resolver = SystemResolver()
        return _default_resolver
