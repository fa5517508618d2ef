"""
=============================================================================
SERVER SOCKET
=============================================================================

ServerSocket is the listening-socket type. It owns one SocketImpl whose
handle is only ever bound, put into the listening state and accepted
from. Data never flows over it.

    ┌───────────────────────┐
    │   ServerSocket        │ ◄── bound to 127.0.0.1:8080
    │   (listening handle)  │     never sends/receives data
    └───────────┬───────────┘
                │ accept()
        ┌───────┼───────────────┐
        ▼       ▼               ▼
    ┌──────┐ ┌──────┐       ┌──────┐
    │Socket│ │Socket│  ...  │Socket│   one new handle per connection
    └──────┘ └──────┘       └──────┘

=============================================================================
STATE MACHINE
=============================================================================

    UNBOUND ── bind() ──► BOUND ── listen()/accept() ──► LISTENING
       │                    │                               │  ▲
       │                    │                               └──┘ accept()
       └────────────────────┴────────── close() ──────────► CLOSED

accept() re-issues listen(backlog) before every blocking accept, so a
backlog changed between calls takes effect on the next accept. A failed
accept leaves the server LISTENING; just call accept() again.

=============================================================================
USAGE
=============================================================================

    with ServerSocket(0) as server:            # ephemeral port on 127.0.0.1
        server.listen()
        print("listening on", server.local_port)
        while True:
            client = server.accept()           # BLOCKS
            threading.Thread(target=handle, args=(client,)).start()

=============================================================================
"""

import logging
from enum import Enum
from typing import Optional

from .client import Socket
from .config import SocketConfig
from .core.address import Endpoint, HostLike, InetAddress, check_port, to_endpoint
from .core.socket_impl import DefaultSocketImpl
from .core.transport import Resolver, Transport
from .errors import InvalidArgumentError, SocketClosedError, SocketError


logger = logging.getLogger(__name__)


class ServerSocketState(Enum):
    """Server socket lifecycle states."""
    UNBOUND = "unbound"      # Handle exists, no local endpoint
    BOUND = "bound"          # Local endpoint set, not yet listening
    LISTENING = "listening"  # Ready to accept
    CLOSED = "closed"        # Handle released


class ServerSocket:
    """
    A blocking TCP listening socket.

    Args:
        port: Port to bind. None leaves the socket unbound; 0 picks an
              ephemeral port.
        backlog: Listen backlog (defaults to config.backlog).
        bind_address: Address to bind (defaults to config.bind_host).
        transport: Transport provider (defaults to the system one).
        resolver: Host name resolver (defaults to the system one).
        config: Socket configuration.
    """

    def __init__(
        self,
        port: Optional[int] = None,
        backlog: Optional[int] = None,
        bind_address: Optional[HostLike] = None,
        *,
        transport: Optional[Transport] = None,
        resolver: Optional[Resolver] = None,
        config: Optional[SocketConfig] = None,
    ):
        self._config = config if config is not None else SocketConfig()
        self._transport = transport
        self._resolver = resolver
        self._backlog = self._check_backlog(backlog) if backlog is not None else self._config.backlog
        self._listening = False

        local = None
        if port is not None:
            check_port(port)
            host = bind_address if bind_address is not None else self._config.bind_host
            local = Endpoint.of(host, port, resolver)
        elif bind_address is not None:
            raise InvalidArgumentError("port is required when bind_address is given")

        self._impl = DefaultSocketImpl(transport, self._config)
        self._impl.create()

        if local is None:
            return

        try:
            self._impl.bind(local)
        except BaseException:
            self._impl.close()
            raise
        logger.info(f"Server socket bound to {self._impl.local}")

    @staticmethod
    def _check_backlog(backlog: int) -> int:
        if isinstance(backlog, bool) or not isinstance(backlog, int) or backlog < 0:
            raise InvalidArgumentError(f"backlog must be a non-negative int, got {backlog!r}")
        return backlog

    def _check_open(self) -> None:
        if self._impl.closed:
            raise SocketClosedError("Server socket is closed")

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerSocketState:
        if self._impl.closed:
            return ServerSocketState.CLOSED
        if self._listening:
            return ServerSocketState.LISTENING
        if self._impl.local is not None:
            return ServerSocketState.BOUND
        return ServerSocketState.UNBOUND

    @property
    def is_bound(self) -> bool:
        return self._impl.local is not None

    @property
    def is_closed(self) -> bool:
        return self._impl.closed

    @property
    def backlog(self) -> int:
        return self._backlog

    # =========================================================================
    # BIND / LISTEN / ACCEPT
    # =========================================================================

    def bind(self, endpoint=None, backlog: Optional[int] = None) -> None:
        """
        Bind to ``endpoint`` (an Endpoint or (host, port) tuple), or to
        any address and an ephemeral port if None.

        Raises:
            AlreadyBoundError: The socket is already bound.
        """
        self._check_open()
        if backlog is not None:
            backlog = self._check_backlog(backlog)
        if endpoint is not None:
            endpoint = to_endpoint(endpoint, self._resolver)
        self._impl.bind(endpoint)
        if backlog is not None:
            self._backlog = backlog
        logger.info(f"Server socket bound to {self._impl.local}")

    def listen(self, backlog: Optional[int] = None) -> None:
        """
        Start queueing incoming connections.

        Calling this before accept() lets clients connect before the
        first accept() call is made.
        """
        self._check_open()
        if backlog is not None:
            self._backlog = self._check_backlog(backlog)
        if self._impl.local is None:
            raise SocketError("Server socket is not bound")
        self._impl.listen(self._backlog)
        self._listening = True

    def accept(self) -> Socket:
        """
        Wait for a connection and return a new Socket for it.

        This BLOCKS until a client connects. The listening handle is not
        consumed; call accept() again for the next client.

        Raises:
            SocketClosedError: The server socket was closed.
            SocketError: The socket is not bound, or the accept failed.
                         The server stays usable after a failed accept.
        """
        self.listen()

        client_impl = DefaultSocketImpl(self._transport, self._config)
        try:
            self._impl.accept(client_impl)
        except BaseException:
            client_impl.close()
            raise

        client = Socket._from_impl(client_impl, self._config)
        logger.debug(f"Accepted {client_impl.remote} on {self._impl.local}")
        return client

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    @property
    def inet_address(self) -> Optional[InetAddress]:
        local = self._impl.local
        return local.address if local is not None else None

    @property
    def local_port(self) -> int:
        local = self._impl.local
        return local.port if local is not None else -1

    @property
    def local_socket_address(self) -> Optional[Endpoint]:
        return self._impl.local

    # =========================================================================
    # CLOSE
    # =========================================================================

    def close(self) -> None:
        """Release the listening handle. Idempotent."""
        if not self._impl.closed:
            logger.info(f"Closing server socket {self._impl.local or ''}".rstrip())
        self._impl.close()
        self._listening = False

    def __enter__(self) -> "ServerSocket":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"<ServerSocket {self.state.value} local={self._impl.local}>"
