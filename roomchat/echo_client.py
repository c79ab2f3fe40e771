"""A client that sends lines to the echo server and prints the replies."""

from __future__ import annotations

import argparse
import socket
import sys
from typing import Iterable, TextIO

PORT = 1004
RECV_SIZE = 255
PROMPT = "Please enter the message: "


def chat(sock: socket.socket, lines: Iterable[str], output: TextIO) -> None:
    """Send each line and print the reply; an empty line ends the session."""
    source = iter(lines)
    while True:
        output.write(PROMPT)
        output.flush()
        line = next(source, "")
        if line in ("", "\n"):
            break
        sock.sendall(line.encode())
        reply = sock.recv(RECV_SIZE)
        if not reply:
            break
        output.write(f"Message from server: {reply.decode(errors='replace')}\n")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Echo chat client.")
    parser.add_argument("host")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)
    try:
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"ERROR connecting: {exc}", file=sys.stderr)
        return 1
    with sock:
        chat(sock, sys.stdin, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())