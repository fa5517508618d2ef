"""
=============================================================================
ADDRESSES AND ENDPOINTS
=============================================================================

Two small immutable values describe "where" for every socket operation:

    InetAddress   one resolved IPv4 host        1.2.3.4  (or example.com/1.2.3.4)
    Endpoint      an address plus a TCP port    1.2.3.4:8080

=============================================================================
RAW ADDRESS FORMAT
=============================================================================

An IPv4 address is stored as a single 32-bit unsigned integer whose most
significant octet is the first octet of the dotted quad (network order):

    "192.168.1.50"
        │   │  │  │
        ▼   ▼  ▼  ▼
      0xC0 A8 01 32   →   raw = 0xC0A80132

This is the value the transport provider takes and returns, so no
conversions happen between a facade and the wire.

=============================================================================
RESOLUTION
=============================================================================

    InetAddress.by_name("localhost")
        └──► resolver.resolve_ipv4("localhost")
                ├── returns 0x7F000001   → InetAddress(raw, name="localhost")
                ├── returns 0            → UnknownHostError
                └── raises OSError       → UnknownHostError (cause chained)

The caller can't tell the last two apart. Both mean "no such host".

=============================================================================
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import Optional, Union

from ..errors import InvalidArgumentError, UnknownHostError


logger = logging.getLogger(__name__)


MIN_PORT = 0
MAX_PORT = 65535


def check_port(port: int, name: str = "port") -> int:
    """
    Validate a TCP port number.

    Raises:
        InvalidArgumentError: If port is not an int in [0, 65535].
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidArgumentError(f"{name} must be an int, got {type(port).__name__}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise InvalidArgumentError(f"{name} should be between {MIN_PORT} and {MAX_PORT}, got {port}")
    return port


@dataclass(frozen=True)
class InetAddress:
    """
    An immutable IPv4 address, optionally carrying the name it was resolved from.

    Two addresses are equal when their raw values are equal; the display
    name does not take part in comparisons.

    Attributes:
        raw: 32-bit address, first octet in the most significant byte.
        name: Host name used for resolution, if any.
    """

    raw: int
    name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise InvalidArgumentError(f"raw address must be an int, got {type(self.raw).__name__}")
        if not 0 <= self.raw <= 0xFFFFFFFF:
            raise InvalidArgumentError(f"raw address out of IPv4 range: {self.raw:#x}")

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def by_name(cls, name: str, resolver=None) -> "InetAddress":
        """
        Resolve a host name (or dotted quad) to an address.

        Args:
            name: Host name such as "localhost" or "10.0.0.1".
            resolver: Resolver to use. Defaults to the system resolver.

        Raises:
            UnknownHostError: If the name does not resolve.
        """
        if not isinstance(name, str):
            raise InvalidArgumentError(f"host name must be a str, got {type(name).__name__}")

        if resolver is None:
            from .transport import default_resolver
            resolver = default_resolver()

        try:
            raw = resolver.resolve_ipv4(name)
        except OSError as e:
            raise UnknownHostError(f"Unknown host: {name}") from e

        if not raw:
            raise UnknownHostError(f"Unknown host: {name}")

        logger.debug(f"Resolved {name} to {_format_raw(raw)}")
        return cls(raw, name)

    @classmethod
    def from_packed(cls, packed: bytes) -> "InetAddress":
        """Build an address from its 4-byte network representation."""
        if len(packed) != 4:
            raise InvalidArgumentError(f"packed IPv4 address must be 4 bytes, got {len(packed)}")
        return cls(int.from_bytes(packed, "big"))

    @classmethod
    def any(cls) -> "InetAddress":
        """The wildcard address 0.0.0.0."""
        return cls(0)

    @classmethod
    def loopback(cls) -> "InetAddress":
        """127.0.0.1"""
        return cls(0x7F000001, "localhost")

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def packed(self) -> bytes:
        """The address as 4 bytes in network order."""
        return self.raw.to_bytes(4, "big")

    @property
    def host_address(self) -> str:
        """Dotted-quad text form, e.g. "127.0.0.1"."""
        return _format_raw(self.raw)

    @property
    def host_name(self) -> str:
        """The name this address was resolved from, or the dotted quad."""
        return self.name if self.name is not None else self.host_address

    @property
    def is_any(self) -> bool:
        return self.raw == 0

    def __str__(self) -> str:
        if self.name is None:
            return self.host_address
        return f"{self.name}/{self.host_address}"


def _format_raw(raw: int) -> str:
    return socket.inet_ntoa(raw.to_bytes(4, "big"))


HostLike = Union[str, InetAddress]


@dataclass(frozen=True)
class Endpoint:
    """
    An (address, port) pair used to bind, connect and report sockets.

    The port is validated on construction, so an Endpoint that exists is
    always usable as a transport argument.
    """

    address: InetAddress
    port: int

    def __post_init__(self):
        if not isinstance(self.address, InetAddress):
            raise InvalidArgumentError(
                f"address must be an InetAddress, got {type(self.address).__name__}"
            )
        check_port(self.port)

    @classmethod
    def of(cls, host: HostLike, port: int, resolver=None) -> "Endpoint":
        """
        Build an endpoint from a host name or address and a port.

        The port is checked before the name is resolved, so an invalid
        port never costs a DNS lookup.
        """
        check_port(port)
        if isinstance(host, InetAddress):
            return cls(host, port)
        return cls(InetAddress.by_name(host, resolver), port)

    @property
    def host_name(self) -> str:
        return self.address.host_name

    def as_tuple(self) -> tuple[str, int]:
        """The (ip, port) tuple form used by the stdlib socket module."""
        return (self.address.host_address, self.port)

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


def to_endpoint(value, resolver=None) -> Endpoint:
    """
    Coerce an Endpoint or a (host, port) tuple into an Endpoint.

    Raises:
        InvalidArgumentError: For None or any other type.
    """
    if isinstance(value, Endpoint):
        return value
    if isinstance(value, tuple) and len(value) == 2:
        return Endpoint.of(value[0], value[1], resolver)
    if value is None:
        raise InvalidArgumentError("endpoint can't be None")
    raise InvalidArgumentError(f"unsupported endpoint type: {type(value).__name__}")
