"""
=============================================================================
SOCKET CONFIGURATION
=============================================================================

Centralized configuration for the socket layer.

Almost everything in this package works with the defaults. The few knobs
that exist are collected here so they can be set from code or from the
environment in one place:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Explicit arguments                                             │
    │      └── Socket(host, port, timeout=2.0)                           │
    │                                                                      │
    │   2. A SocketConfig passed to the facade                            │
    │      └── Socket(host, port, config=SocketConfig(...))              │
    │                                                                      │
    │   3. Environment variables (SocketConfig.from_env())                │
    │      └── NETSTREAM_CONNECT_TIMEOUT=5 python -m netstream send ...  │
    │                                                                      │
    │   4. Defaults below                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE TRANSFER UNIT
=============================================================================

Streams never hand the transport more than ``transfer_unit`` bytes in one
call. A 200 KB write becomes four sends:

    write(200_000 bytes)
        ├── send(65535)
        ├── send(65535)
        ├── send(65535)
        └── send(3395)

65535 keeps every call's length inside 16 bits, which some platform
socket APIs still require.

=============================================================================
"""

import os
import socket
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidArgumentError


MAX_TRANSFER_UNIT = 65535


@dataclass
class SocketConfig:
    """
    Configuration shared by Socket and ServerSocket.

    Development:
        SocketConfig(log_level="DEBUG", connect_timeout=2.0)

    Tests with a fake transport:
        SocketConfig(transfer_unit=4)   # force chunking on tiny buffers
    """

    # ─────────────────────────────────────────────────────────────────────
    # STREAMS
    # ─────────────────────────────────────────────────────────────────────

    transfer_unit: int = MAX_TRANSFER_UNIT
    """
    Maximum number of bytes passed to one transport send/recv call.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER SOCKETS
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = socket.SOMAXCONN
    """
    Default listen backlog for ServerSocket.
    The kernel clamps it to its own limit.
    """

    bind_host: str = "127.0.0.1"
    """
    Address a ServerSocket binds to when only a port is given.
    Use "0.0.0.0" to accept connections on every interface.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CLIENT SOCKETS
    # ─────────────────────────────────────────────────────────────────────

    connect_timeout: Optional[float] = None
    """
    Connect deadline in seconds used when connect() is called without one.
    None = block until the OS gives up.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    warn_unclosed: bool = True
    """
    Emit a ResourceWarning when a socket is garbage collected without
    being closed. The handle is released either way.
    """

    log_level: str = "WARNING"
    """
    Logging level used by the command line tool.
    The library itself never configures logging handlers.
    """

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_env(cls) -> "SocketConfig":
        """
        Create configuration from environment variables.

        NETSTREAM_TRANSFER_UNIT     Max bytes per send/recv (default: 65535)
        NETSTREAM_BACKLOG           Listen backlog (default: SOMAXCONN)
        NETSTREAM_BIND_HOST         Default server address (default: 127.0.0.1)
        NETSTREAM_CONNECT_TIMEOUT   Connect deadline in seconds (default: none)
        NETSTREAM_LOG_LEVEL         Logging level (default: WARNING)
        """
        timeout = os.getenv("NETSTREAM_CONNECT_TIMEOUT")
        return cls(
            transfer_unit=int(os.getenv("NETSTREAM_TRANSFER_UNIT", str(MAX_TRANSFER_UNIT))),
            backlog=int(os.getenv("NETSTREAM_BACKLOG", str(socket.SOMAXCONN))),
            bind_host=os.getenv("NETSTREAM_BIND_HOST", "127.0.0.1"),
            connect_timeout=float(timeout) if timeout else None,
            log_level=os.getenv("NETSTREAM_LOG_LEVEL", "WARNING"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Fail fast: a bad transfer unit would otherwise only show up as a
        hung or failing read much later.
        """
        if not 0 < self.transfer_unit <= MAX_TRANSFER_UNIT:
            raise InvalidArgumentError(
                f"transfer_unit must be between 1 and {MAX_TRANSFER_UNIT}, got {self.transfer_unit}"
            )

        if self.backlog < 0:
            raise InvalidArgumentError(f"backlog must be >= 0, got {self.backlog}")

        if self.connect_timeout is not None and self.connect_timeout < 0:
            raise InvalidArgumentError(f"connect_timeout must be >= 0, got {self.connect_timeout}")

        if not self.bind_host:
            raise InvalidArgumentError("bind_host must not be empty")
