"""
=============================================================================
SOCKET ERRORS
=============================================================================

Every failure this package reports belongs to one of five kinds:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ERROR TAXONOMY                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ValueError                                                         │
    │     └── InvalidArgumentError   bad port, None endpoint, negative    │
    │                                timeout, unsupported endpoint type   │
    │                                                                      │
    │   OSError                                                            │
    │     └── SocketError            any transport failure (I/O)           │
    │           ├── UnknownHostError     name did not resolve              │
    │           ├── AlreadyBoundError    second bind on one handle         │
    │           ├── ConnectTimeoutError  timed connect ran out (also a     │
    │           │                        TimeoutError)                     │
    │           ├── ConnectError         connection refused/unreachable    │
    │           ├── BindError            address in use, permission, ...   │
    │           └── SocketClosedError    operation on a closed socket      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

InvalidArgumentError is raised BEFORE any transport call, so a bad
argument never leaves a half-created handle behind.

SocketError subclasses OSError on purpose: callers that already write
``except OSError`` around socket code keep working.

=============================================================================
"""


class InvalidArgumentError(ValueError):
    """An argument was rejected before any transport call was made."""


class SocketError(OSError):
    """A transport-level failure. The original error is chained as ``__cause__``."""


class UnknownHostError(SocketError):
    """A host name could not be resolved to an IPv4 address."""


class AlreadyBoundError(SocketError):
    """The socket already has a local endpoint."""


class ConnectTimeoutError(SocketError, TimeoutError):
    """A connect with a deadline did not complete in time."""


class ConnectError(SocketError):
    """The remote side could not be reached or refused the connection."""


class BindError(SocketError):
    """The local address could not be bound."""


class SocketClosedError(SocketError):
    """The socket or stream has already been closed."""


__all__ = [
    "InvalidArgumentError",
    "SocketError",
    "UnknownHostError",
    "AlreadyBoundError",
    "ConnectTimeoutError",
    "ConnectError",
    "BindError",
    "SocketClosedError",
]
