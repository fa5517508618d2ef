"""
=============================================================================
NETSTREAM - Blocking TCP Sockets With Half-Closable Streams
=============================================================================

A small socket layer: client and server TCP sockets, each backed by
exactly one OS handle, exposing independent input and output streams.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    netstream/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m netstream)
    ├── client.py            # Socket (connected socket facade)
    ├── server.py            # ServerSocket (listening socket facade)
    ├── config.py            # SocketConfig dataclass
    ├── errors.py            # Error taxonomy
    └── core/                # Low-level components
        ├── address.py       # InetAddress, Endpoint
        ├── transport.py     # Transport provider + system implementation
        ├── socket_impl.py   # Handle owner (SocketImpl)
        └── streams.py       # Half-closable input/output streams

=============================================================================
QUICK START
=============================================================================

    from netstream import ServerSocket, Socket

    server = ServerSocket(0)       # bind 127.0.0.1, ephemeral port
    server.listen()

    client = Socket("127.0.0.1", server.local_port)
    peer = server.accept()

    client.output_stream.write(b"hello")
    client.shutdown_output()
    assert peer.input_stream.read() == b"hello"

    for s in (client, peer, server):
        s.close()

=============================================================================
"""

__version__ = "1.0.0"

from .client import Socket, SocketState
from .config import SocketConfig
from .core.address import Endpoint, InetAddress
from .core.streams import EOF
from .errors import (
    AlreadyBoundError,
    BindError,
    ConnectError,
    ConnectTimeoutError,
    InvalidArgumentError,
    SocketClosedError,
    SocketError,
    UnknownHostError,
)
from .server import ServerSocket, ServerSocketState

__all__ = [
    "Socket",
    "SocketState",
    "ServerSocket",
    "ServerSocketState",
    "SocketConfig",
    "InetAddress",
    "Endpoint",
    "EOF",
    "InvalidArgumentError",
    "SocketError",
    "UnknownHostError",
    "AlreadyBoundError",
    "ConnectTimeoutError",
    "ConnectError",
    "BindError",
    "SocketClosedError",
    "__version__",
]
