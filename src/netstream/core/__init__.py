"""
=============================================================================
CORE SOCKET COMPONENTS
=============================================================================

The low-level pieces the Socket and ServerSocket facades are built from.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ADDRESS / ENDPOINT                           │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • InetAddress: immutable IPv4 value, optional display name         │
    │  • Endpoint: (InetAddress, port), port validated on construction    │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          SOCKET IMPL                                 │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Owns exactly one transport handle                                │
    │  • connect / bind / listen / accept / close                         │
    │  • Tracks local and remote endpoints (local is populate-once)       │
    └─────────────────────────────────────────────────────────────────────┘
                │                                       │
                ▼                                       ▼
    ┌───────────────────────────┐         ┌───────────────────────────────┐
    │  SocketInputStream        │         │  SocketOutputStream           │
    │  chunked reads, EOF,      │         │  chunked writes,              │
    │  half-close (SHUT_RD)     │         │  half-close (SHUT_WR)         │
    └───────────────────────────┘         └───────────────────────────────┘
                │                                       │
                └───────────────────┬───────────────────┘
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                            TRANSPORT                                 │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Abstract provider of raw socket primitives over a handle         │
    │  • SystemTransport: the stdlib socket module                        │
    │  • Swappable, which is how the tests run without a network          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .address import Endpoint, InetAddress
from .socket_impl import DefaultSocketImpl, SocketImpl
from .streams import EOF, SocketInputStream, SocketOutputStream
from .transport import (
    Resolver,
    SystemResolver,
    SystemTransport,
    Transport,
    default_resolver,
    default_transport,
    ensure_initialized,
)

__all__ = [
    "Endpoint",             # (address, port) pair
    "InetAddress",          # Resolved IPv4 host
    "SocketImpl",           # Abstract handle owner
    "DefaultSocketImpl",    # Transport-backed handle owner
    "SocketInputStream",    # Receiving half
    "SocketOutputStream",   # Sending half
    "EOF",                  # read_byte() end-of-stream sentinel
    "Transport",            # Provider interface
    "Resolver",             # Name resolution interface
    "SystemTransport",      # stdlib socket provider
    "SystemResolver",       # stdlib gethostbyname resolver
    "default_transport",
    "default_resolver",
    "ensure_initialized",
]
