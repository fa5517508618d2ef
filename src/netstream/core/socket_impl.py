"""
=============================================================================
SOCKET IMPLEMENTATION (HANDLE OWNER)
=============================================================================

SocketImpl is the one object that owns an OS socket handle. The public
facades (Socket, ServerSocket) never see the handle; they hold exactly one
SocketImpl each and delegate to it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      OWNERSHIP CHAIN                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Socket ──owns──► DefaultSocketImpl ──owns──► handle                │
    │                          │                       ▲                   │
    │                          ├──► SocketInputStream ─┤ (read half only)  │
    │                          └──► SocketOutputStream ┘ (write half only) │
    │                                                                      │
    │   - one handle per impl, never shared, never duplicated             │
    │   - the streams borrow the handle; they can only shut down          │
    │     their own direction                                             │
    │   - only the impl releases the handle                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LOCAL ENDPOINT: POPULATE-ONCE
=============================================================================

A handle is bound at most once, either explicitly (bind) or implicitly
(the OS picks an ephemeral port during connect). The impl records the
local endpoint the first time it becomes known and never overwrites it:

    bind(1.2.3.4:5000)  → local = 1.2.3.4:5000
    connect(...)        → local already set, left alone

    connect(...)        → local = whatever the OS picked (queried once)
    bind(...)           → AlreadyBoundError

=============================================================================
ACCEPT
=============================================================================

Accepting does NOT consume the listening handle. The provider returns a
brand-new handle, which is installed into a fresh impl that owns nothing
yet:

    server_impl.accept(target)
        ├── new_handle = transport.accept(server_handle)     BLOCKS
        └── target._install(new_handle)
                ├── streams built on new_handle
                └── local/remote endpoints queried from the transport

=============================================================================
CLOSE ORDER
=============================================================================

    close()
      ├── input_stream.close()    shutdown(SHUT_RD), once
      ├── output_stream.close()   shutdown(SHUT_WR), once
      └── transport.close(handle) released, once

Streams go first so neither is left holding a released handle. Close is
idempotent and thread-safe: concurrent callers race for a lock and only
the winner tears down.

=============================================================================
"""

import logging
import threading
import warnings
from abc import ABC, abstractmethod
from typing import Optional

from ..config import SocketConfig
from ..errors import (
    AlreadyBoundError,
    InvalidArgumentError,
    SocketClosedError,
    SocketError,
)
from .address import Endpoint, InetAddress
from .streams import SocketInputStream, SocketOutputStream
from .transport import Transport, default_transport, ensure_initialized


logger = logging.getLogger(__name__)


class SocketImpl(ABC):
    """
    The capability a facade needs from a socket.

    DefaultSocketImpl is the transport-backed variant. Another variant
    (an in-memory loopback, say) only has to implement the abstract
    methods below.
    """

    def __init__(self):
        self.local: Optional[Endpoint] = None
        self.remote: Optional[Endpoint] = None

    @abstractmethod
    def create(self) -> None:
        """Allocate the handle. Calling it again is a no-op."""

    @abstractmethod
    def connect(self, endpoint: Endpoint, timeout: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def bind(self, endpoint: Optional[Endpoint]) -> None:
        ...

    @abstractmethod
    def listen(self, backlog: int) -> None:
        ...

    @abstractmethod
    def accept(self, target: "SocketImpl") -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @property
    @abstractmethod
    def input_stream(self) -> SocketInputStream:
        ...

    @property
    @abstractmethod
    def output_stream(self) -> SocketOutputStream:
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    def shutdown_input(self) -> None:
        """Half-close the receiving direction."""
        self.input_stream.close()

    def shutdown_output(self) -> None:
        """Half-close the sending direction."""
        self.output_stream.close()

    def supports_urgent_data(self) -> bool:
        return False

    def send_urgent_data(self, data: int) -> None:
        raise NotImplementedError("urgent data is not supported")


class DefaultSocketImpl(SocketImpl):
    """
    SocketImpl backed by a Transport.

    Args:
        transport: Provider of the raw primitives. Defaults to the shared
                   SystemTransport.
        config: Supplies the transfer unit and finalizer warning flag.

    The constructor does NOT allocate a handle; call create(), or let
    accept() install one.
    """

    def __init__(self, transport: Optional[Transport] = None, config: Optional[SocketConfig] = None):
        super().__init__()
        self._config = config if config is not None else SocketConfig()
        # The dataclass is mutable; re-check whatever was changed after construction
        self._config.validate()
        self._transport = transport if transport is not None else default_transport()
        self._handle = None
        self._input: Optional[SocketInputStream] = None
        self._output: Optional[SocketOutputStream] = None
        self._closed = False
        self._lock = threading.Lock()

    # =========================================================================
    # HANDLE LIFECYCLE
    # =========================================================================

    @property
    def has_handle(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def create(self) -> None:
        with self._lock:
            if self._closed:
                raise SocketClosedError("Socket is closed")
            if self._handle is not None:
                return
            ensure_initialized(self._transport)
            self._adopt(self._transport.create())

    def _adopt(self, handle) -> None:
        """Take ownership of ``handle`` and build its streams. Caller holds the lock."""
        self._handle = handle
        unit = self._config.transfer_unit
        self._input = SocketInputStream(self._transport, handle, unit)
        self._output = SocketOutputStream(self._transport, handle, unit)

    def _install(self, handle) -> None:
        """Adopt a handle produced by accept() and learn both endpoints."""
        with self._lock:
            if self._closed:
                raise SocketClosedError("Socket is closed")
            if self._handle is not None:
                raise InvalidArgumentError("accept target already owns a handle")
            self._adopt(handle)

        self.remote = Endpoint(
            InetAddress(self._transport.get_remote_address(handle)),
            self._transport.get_remote_port(handle),
        )
        self._retrieve_local_endpoint()

    def _require_handle(self):
        if self._closed:
            raise SocketClosedError("Socket is closed")
        if self._handle is None:
            raise SocketError("Socket has not been created")
        return self._handle

    def _retrieve_local_endpoint(self) -> None:
        """Ask the transport for the implicit binding, unless already known."""
        if self.local is not None:
            return
        handle = self._require_handle()
        self.local = Endpoint(
            InetAddress(self._transport.get_local_address(handle)),
            self._transport.get_local_port(handle),
        )

    def query_local_endpoint(self) -> Optional[Endpoint]:
        """
        Return the local endpoint, asking the transport if it isn't known yet.

        Returns None for a handle the OS hasn't bound (nothing to ask about).
        """
        if self.local is None and not self._closed and self._handle is not None:
            if self._transport.get_local_port(self._handle) != 0:
                self._retrieve_local_endpoint()
        return self.local

    # =========================================================================
    # CONNECT / BIND / LISTEN / ACCEPT
    # =========================================================================

    def connect(self, endpoint: Endpoint, timeout: Optional[float] = None) -> None:
        """
        Connect to ``endpoint``.

        Args:
            endpoint: Where to connect.
            timeout: Seconds to wait. None blocks without a deadline;
                     0 also means no deadline.

        Raises:
            InvalidArgumentError: endpoint is None / not an Endpoint, or
                                  timeout is negative.
            ConnectTimeoutError: The deadline passed.
            ConnectError: The connection failed for any other reason.
        """
        if endpoint is None:
            raise InvalidArgumentError("endpoint can't be None")
        if not isinstance(endpoint, Endpoint):
            raise InvalidArgumentError(f"unsupported endpoint type: {type(endpoint).__name__}")
        if timeout is not None and timeout < 0:
            raise InvalidArgumentError(f"timeout should be 0 or positive, got {timeout}")

        handle = self._require_handle()
        addr = endpoint.address.raw

        if timeout is None:
            self._transport.connect(handle, addr, endpoint.port)
        else:
            self._transport.connect_with_timeout(handle, addr, endpoint.port, timeout)

        self.remote = endpoint
        self._retrieve_local_endpoint()
        logger.debug(f"Connected {self.local} -> {endpoint}")

    def bind(self, endpoint: Optional[Endpoint]) -> None:
        """
        Bind the handle to ``endpoint``, or to any address if None.

        Raises:
            AlreadyBoundError: The handle already has a local endpoint.
            BindError: The transport refused the address.
        """
        if endpoint is not None and not isinstance(endpoint, Endpoint):
            raise InvalidArgumentError(f"unsupported endpoint type: {type(endpoint).__name__}")

        with self._lock:
            handle = self._require_handle()
            if self.local is not None:
                raise AlreadyBoundError(f"Socket already bound to {self.local}")

            if endpoint is None:
                self._transport.bind_any(handle)
                self._retrieve_local_endpoint()
            else:
                self._transport.bind(handle, endpoint.address.raw, endpoint.port)
                if endpoint.port == 0:
                    # Record the port the OS actually handed out
                    endpoint = Endpoint(endpoint.address, self._transport.get_local_port(handle))
                self.local = endpoint

        logger.debug(f"Bound to {self.local}")

    def listen(self, backlog: int) -> None:
        handle = self._require_handle()
        self._transport.listen(handle, backlog)

    def accept(self, target: SocketImpl) -> None:
        """
        Block until a connection arrives and install it into ``target``.

        Args:
            target: A DefaultSocketImpl that does not own a handle yet.
        """
        if not isinstance(target, DefaultSocketImpl):
            raise InvalidArgumentError(f"unsupported socket implementation: {type(target).__name__}")
        if target.has_handle:
            raise InvalidArgumentError("accept target already owns a handle")

        handle = self._require_handle()
        new_handle = self._transport.accept(handle)
        try:
            target._install(new_handle)
        except BaseException:
            if not target.has_handle:
                self._transport.close(new_handle)
            raise

    # =========================================================================
    # STREAMS
    # =========================================================================

    @property
    def input_stream(self) -> SocketInputStream:
        if self._input is None:
            raise SocketError("Socket has not been created")
        return self._input

    @property
    def output_stream(self) -> SocketOutputStream:
        if self._output is None:
            raise SocketError("Socket has not been created")
        return self._output

    def shutdown_input(self) -> None:
        self._require_handle()
        super().shutdown_input()

    def shutdown_output(self) -> None:
        self._require_handle()
        super().shutdown_output()

    def available(self) -> int:
        self._require_handle()
        return self.input_stream.available()

    # =========================================================================
    # CLOSE
    # =========================================================================

    def close(self) -> None:
        """
        Close both stream halves, then release the handle.

        Safe to call repeatedly and concurrently.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handle = self._handle

        if handle is None:
            return

        try:
            try:
                self._input.close()
            finally:
                self._output.close()
        finally:
            self._transport.close(handle)
            logger.debug(f"Released handle for {self.local or 'unbound socket'}")

    def __del__(self):
        # Safety net only; callers are expected to close explicitly.
        if getattr(self, "_closed", True) or getattr(self, "_handle", None) is None:
            return
        if self._config.warn_unclosed:
            warnings.warn(f"unclosed socket {self!r}", ResourceWarning, source=self)
        logger.warning(f"Releasing unclosed socket handle for {self.local or 'unbound socket'}")
        try:
            self.close()
        except OSError:
            pass

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("open" if self._handle is not None else "new")
        return f"<DefaultSocketImpl {state} local={self.local} remote={self.remote}>"
