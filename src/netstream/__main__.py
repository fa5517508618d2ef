"""
=============================================================================
NETSTREAM CLI ENTRY POINT
=============================================================================

A tiny echo server and client, handy for poking at the socket layer by
hand.

=============================================================================
USAGE
=============================================================================

    # Echo server on an ephemeral port (the port is printed)
    python -m netstream serve

    # Fixed port, all interfaces, stop after one connection
    python -m netstream serve --host 0.0.0.0 --port 9000 --once

    # Send a message and print the echo
    python -m netstream send 127.0.0.1 9000 "hello"

=============================================================================
THE EXCHANGE
=============================================================================

    client                                   server
      │                                        │
      │── connect ────────────────────────────►│ accept()
      │── "hello" ────────────────────────────►│
      │── shutdown_output() (FIN) ────────────►│ read() hits EOF
      │                                        │
      │◄──────────────────────────── "hello" ──│ write()
      │◄───────────────────────────────── FIN ─│ close()
      │ read() hits EOF                        │

The half-close is what tells the server the message is complete; no
framing protocol needed.

=============================================================================
"""

import argparse
import logging
import sys
import threading

from . import __version__
from .client import Socket
from .config import SocketConfig
from .errors import SocketError
from .server import ServerSocket


logger = logging.getLogger("netstream.cli")


def _setup_logging(level_name: str) -> None:
    """Configure logging the same way for both subcommands."""
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("netstream").setLevel(level)


def _echo(conn: Socket) -> None:
    """Read until the peer half-closes, send it all back, close."""
    with conn:
        try:
            data = conn.input_stream.read()
            conn.output_stream.write(data)
            logger.info(f"Echoed {len(data)} bytes to {conn.remote_socket_address}")
        except SocketError as e:
            logger.error(f"Echo to {conn.remote_socket_address} failed: {e}")


def serve(args: argparse.Namespace, config: SocketConfig) -> int:
    with ServerSocket(args.port, args.backlog, args.host, config=config) as server:
        server.listen()
        print(f"Listening on {server.local_socket_address}", flush=True)

        try:
            while True:
                conn = server.accept()
                if args.once:
                    _echo(conn)
                    break
                threading.Thread(target=_echo, args=(conn,), daemon=True).start()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
    return 0


def send(args: argparse.Namespace, config: SocketConfig) -> int:
    with Socket(args.host, args.port, timeout=args.timeout, config=config) as sock:
        sock.output_stream.write(args.message.encode("utf-8"))
        sock.shutdown_output()
        reply = sock.input_stream.read()
    sys.stdout.write(reply.decode("utf-8", errors="replace") + "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netstream",
        description="Echo server and client built on netstream sockets",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: NETSTREAM_LOG_LEVEL or WARNING)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"netstream {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve_parser = commands.add_parser("serve", help="Run an echo server")
    serve_parser.add_argument("--host", "-H", default=None, help="Address to bind (default: 127.0.0.1)")
    serve_parser.add_argument("--port", "-p", type=int, default=0, help="Port to bind (default: ephemeral)")
    serve_parser.add_argument("--backlog", "-b", type=int, default=None, help="Listen backlog")
    serve_parser.add_argument("--once", action="store_true", help="Exit after one connection")
    serve_parser.set_defaults(handler=serve)

    send_parser = commands.add_parser("send", help="Send a message and print the reply")
    send_parser.add_argument("host")
    send_parser.add_argument("port", type=int)
    send_parser.add_argument("message")
    send_parser.add_argument("--timeout", "-t", type=float, default=None, help="Connect timeout in seconds")
    send_parser.set_defaults(handler=send)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = SocketConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    config.validate()
    _setup_logging(config.log_level)

    try:
        return args.handler(args, config)
    except (SocketError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
