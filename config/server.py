"""
Command-line entry point for the live tracker relay.

Runs the ASGI application under Daphne on a single host/port. The address
is probed before Daphne starts so that a port already in use aborts the
process with a non-zero status instead of leaving a server that never
listens.
"""

import argparse
import logging
import os
import socket
import sys

import django

from relay.exceptions import ListenError

logger = logging.getLogger(__name__)


def ensure_port_available(host: str, port: int) -> None:
    """
    Check that the relay can bind its listening address.

    Args:
        host: Interface to bind
        port: TCP port to bind

    Raises:
        ListenError: The address cannot be bound
    """
    try:
        with socket.socket(socket.AF_INET6 if ':' in host else socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
    except OSError as e:
        raise ListenError(host, port, e.strerror or str(e)) from e


def build_parser(default_host: str, default_port: int) -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog='live-tracker-relay',
        description='Relay live tracker locations between WebSocket clients.',
    )
    parser.add_argument(
        '--host', default=default_host,
        help=f'Address to listen on (default: {default_host})',
    )
    parser.add_argument(
        '--port', type=int, default=default_port,
        help=f'Port to listen on (default: {default_port})',
    )
    return parser


def run_server(host: str, port: int) -> None:
    """Serve the relay until interrupted."""
    from daphne.endpoints import build_endpoint_description_strings
    from daphne.server import Server

    from config.asgi import application

    logger.info("Live tracker relay listening on ws://%s:%d", host, port)
    Server(
        application=application,
        endpoints=build_endpoint_description_strings(host=host, port=port),
        signal_handlers=True,
    ).run()
    logger.info("Live tracker relay shut down")


def main(argv: list[str] | None = None) -> int:
    """
    Start the relay.

    Returns:
        Process exit status: 0 after a clean shutdown, 1 if the listening
        address cannot be bound
    """
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
    django.setup()

    from django.conf import settings

    args = build_parser(settings.RELAY_HOST, settings.RELAY_PORT).parse_args(argv)

    try:
        ensure_port_available(args.host, args.port)
    except ListenError as e:
        logger.error("Startup failed: %s", e)
        return 1

    run_server(args.host, args.port)
    return 0


if __name__ == '__main__':
    sys.exit(main())
