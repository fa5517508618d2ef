"""
=============================================================================
CLIENT SOCKET
=============================================================================

Socket is the connected-socket type callers use. It wraps one SocketImpl
and exposes streams, endpoints, connect and bind.

=============================================================================
STATE MACHINE
=============================================================================

    UNCONNECTED ──── connect() ────► CONNECTED
         │                               │
         │                               │
         └──────── close() ──────► CLOSED ◄────── close()

    Socket("example.com", 80)   goes straight to CONNECTED (or raises)
    Socket()                    starts UNCONNECTED

Anything other than close(), the stream accessors and the endpoint
accessors raises SocketClosedError once the socket is CLOSED.

=============================================================================
ENDPOINT ACCESSORS
=============================================================================

    Property                 Unset value    Meaning
    ───────────────────────  ───────────    ───────────────────────────
    inet_address             None           remote address
    port                     0              remote port
    local_address            None           local address
    local_port               -1             local port
    remote_socket_address    None           remote Endpoint
    local_socket_address     None           local Endpoint

They keep returning the last known values after close(), so a caller
can still log who it was talking to after tearing the socket down.

=============================================================================
USAGE
=============================================================================

    with Socket("127.0.0.1", 8080) as sock:
        sock.output_stream.write(b"ping")
        sock.shutdown_output()                 # half-close: "done sending"
        reply = sock.input_stream.read()       # read until peer closes

=============================================================================
"""

import logging
from enum import Enum
from typing import Optional

from .config import SocketConfig
from .core.address import Endpoint, HostLike, InetAddress, check_port, to_endpoint
from .core.socket_impl import DefaultSocketImpl
from .core.streams import SocketInputStream, SocketOutputStream
from .core.transport import Resolver, Transport
from .errors import InvalidArgumentError, SocketClosedError, SocketError


logger = logging.getLogger(__name__)


class SocketState(Enum):
    """Client socket lifecycle states."""
    UNCONNECTED = "unconnected"  # Handle exists, no remote endpoint
    CONNECTED = "connected"      # Remote endpoint set, streams usable
    CLOSED = "closed"            # Streams and handle released


class Socket:
    """
    A blocking TCP client socket.

    Args:
        host: Remote host name or InetAddress. If given, the socket
              connects before the constructor returns.
        port: Remote port (required with host).
        local_address: Local address to bind before connecting.
        local_port: Local port to bind before connecting.
        timeout: Connect deadline in seconds (defaults to
                 config.connect_timeout).
        transport: Transport provider (defaults to the system one).
        resolver: Host name resolver (defaults to the system one).
        config: Socket configuration.

    Raises:
        InvalidArgumentError: Bad port or missing port for host. Raised
                              before any handle exists.
        UnknownHostError: host does not resolve. Also raised before any
                          handle exists.
        ConnectError, ConnectTimeoutError, BindError: Connecting failed;
                          the handle has been released.
    """

    def __init__(
        self,
        host: Optional[HostLike] = None,
        port: Optional[int] = None,
        local_address: Optional[HostLike] = None,
        local_port: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[Transport] = None,
        resolver: Optional[Resolver] = None,
        config: Optional[SocketConfig] = None,
    ):
        self._config = config if config is not None else SocketConfig()
        self._resolver = resolver

        # ─────────────────────────────────────────────────────────────────
        # VALIDATE EVERYTHING BEFORE ALLOCATING A HANDLE
        # ─────────────────────────────────────────────────────────────────
        # A bad port or an unknown host must fail without an OS socket
        # ever having been created.

        remote = None
        if host is not None:
            if port is None:
                raise InvalidArgumentError("port is required when host is given")
            remote = Endpoint.of(host, port, resolver)
        elif port is not None:
            raise InvalidArgumentError("host is required when port is given")

        local = None
        if local_address is not None or local_port is not None:
            if remote is None:
                raise InvalidArgumentError("a local binding needs a remote host to connect to")
            local_port = 0 if local_port is None else check_port(local_port, "local_port")
            if local_address is None:
                local = Endpoint(InetAddress.any(), local_port)
            else:
                local = Endpoint.of(local_address, local_port, resolver)

        if timeout is not None and timeout < 0:
            raise InvalidArgumentError(f"timeout should be 0 or positive, got {timeout}")

        self._impl = DefaultSocketImpl(transport, self._config)
        self._impl.create()

        if remote is None:
            return

        try:
            if local is not None:
                self._impl.bind(local)
            self._impl.connect(remote, self._effective_timeout(timeout))
        except BaseException:
            self._impl.close()
            raise

    @classmethod
    def _from_impl(cls, impl: DefaultSocketImpl, config: Optional[SocketConfig] = None) -> "Socket":
        """Wrap an impl that already owns a connected handle (used by accept)."""
        sock = cls.__new__(cls)
        sock._config = config if config is not None else SocketConfig()
        sock._resolver = None
        sock._impl = impl
        return sock

    def _effective_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self._config.connect_timeout

    def _check_open(self) -> None:
        if self._impl.closed:
            raise SocketClosedError("Socket is closed")

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> SocketState:
        if self._impl.closed:
            return SocketState.CLOSED
        if self._impl.remote is not None:
            return SocketState.CONNECTED
        return SocketState.UNCONNECTED

    @property
    def is_connected(self) -> bool:
        """True once connected; stays True after close."""
        return self._impl.remote is not None

    @property
    def is_bound(self) -> bool:
        return self._impl.local is not None

    @property
    def is_closed(self) -> bool:
        return self._impl.closed

    # =========================================================================
    # CONNECT / BIND
    # =========================================================================

    def connect(self, endpoint, timeout: Optional[float] = None) -> None:
        """
        Connect to ``endpoint`` (an Endpoint or a (host, port) tuple).

        Args:
            timeout: Deadline in seconds; None uses config.connect_timeout.
                     0 means no deadline.

        Raises:
            SocketClosedError: The socket was closed.
            SocketError: The socket is already connected.
            ConnectTimeoutError: The deadline passed.
        """
        self._check_open()
        if timeout is not None and timeout < 0:
            raise InvalidArgumentError(f"timeout should be 0 or positive, got {timeout}")
        endpoint = to_endpoint(endpoint, self._resolver)
        if self._impl.remote is not None:
            raise SocketError(f"Socket is already connected to {self._impl.remote}")
        self._impl.connect(endpoint, self._effective_timeout(timeout))

    def bind(self, endpoint=None) -> None:
        """
        Bind to a local endpoint before connecting.

        Args:
            endpoint: Endpoint, (host, port) tuple, or None for any
                      address and an ephemeral port.

        Raises:
            AlreadyBoundError: A local endpoint is already known.
        """
        self._check_open()
        if endpoint is not None:
            endpoint = to_endpoint(endpoint, self._resolver)
        self._impl.bind(endpoint)

    # =========================================================================
    # ENDPOINTS (valid before, during and after the connection)
    # =========================================================================

    @property
    def inet_address(self) -> Optional[InetAddress]:
        remote = self._impl.remote
        return remote.address if remote is not None else None

    @property
    def port(self) -> int:
        remote = self._impl.remote
        return remote.port if remote is not None else 0

    @property
    def local_address(self) -> Optional[InetAddress]:
        local = self._local_endpoint()
        return local.address if local is not None else None

    @property
    def local_port(self) -> int:
        local = self._local_endpoint()
        return local.port if local is not None else -1

    @property
    def remote_socket_address(self) -> Optional[Endpoint]:
        return self._impl.remote

    @property
    def local_socket_address(self) -> Optional[Endpoint]:
        return self._local_endpoint()

    def _local_endpoint(self) -> Optional[Endpoint]:
        return self._impl.query_local_endpoint()

    # =========================================================================
    # STREAMS
    # =========================================================================

    @property
    def input_stream(self) -> SocketInputStream:
        return self._impl.input_stream

    @property
    def output_stream(self) -> SocketOutputStream:
        return self._impl.output_stream

    def shutdown_input(self) -> None:
        """Stop reading; further reads raise SocketClosedError."""
        self._check_open()
        self._impl.shutdown_input()

    def shutdown_output(self) -> None:
        """Stop writing; the peer sees end of stream."""
        self._check_open()
        self._impl.shutdown_output()

    # =========================================================================
    # OPTIONS
    # =========================================================================

    def set_tcp_no_delay(self, on: bool) -> None:
        """Accepted for API compatibility; socket options are not applied."""
        self._check_open()

    # =========================================================================
    # CLOSE
    # =========================================================================

    def close(self) -> None:
        """Close both streams and release the handle. Idempotent."""
        self._impl.close()

    def __enter__(self) -> "Socket":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"<Socket {self.state.value} "
            f"local={self._impl.local} remote={self._impl.remote}>"
        )
