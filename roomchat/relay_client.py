"""A client that sends and receives relay chat messages at the same time."""

from __future__ import annotations

import argparse
import contextlib
import socket
import sys
import threading
from typing import Iterable, TextIO

PORT = 1004
RECV_SIZE = 512


def receive_loop(sock: socket.socket, output: TextIO) -> None:
    """Print each message from the server until the connection closes."""
    while data := sock.recv(RECV_SIZE):
        output.write(f"\n{data.decode(errors='replace')}\n")
        output.flush()


def send_loop(sock: socket.socket, lines: Iterable[str]) -> None:
    """Send each line to the server; an empty line ends the session."""
    for line in lines:
        if line in ("", "\n"):
            break
        sock.sendall(line.encode())


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Relay chat client.")
    parser.add_argument("host")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)
    print(f"Try connecting to {args.host}...", flush=True)
    try:
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"ERROR connecting: {exc}", file=sys.stderr)
        return 1
    with sock:
        receiver = threading.Thread(
            target=receive_loop, args=(sock, sys.stdout), daemon=True
        )
        receiver.start()
        send_loop(sock, sys.stdin)
        with contextlib.suppress(OSError):
            sock.shutdown(socket.SHUT_RDWR)
    return 0


if __name__ == "__main__":
    sys.exit(main())