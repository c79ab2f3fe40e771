"""A server that sends every message straight back to its sender."""

from __future__ import annotations

import argparse
import socket
import sys
import threading

PORT = 1004
RECV_SIZE = 256
BACKLOG = 5


def serve_client(conn: socket.socket) -> None:
    """Echo everything received on ``conn`` until the peer closes it."""
    with conn:
        while data := conn.recv(RECV_SIZE):
            conn.sendall(data)


def run_server(host: str = "", port: int = PORT) -> None:
    """Accept clients forever, echoing each one on its own thread."""
    with socket.create_server((host, port), backlog=BACKLOG) as listener:
        while True:
            conn, address = listener.accept()
            print(f"Connected: {address[0]}", flush=True)
            threading.Thread(target=serve_client, args=(conn,), daemon=True).start()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Echo chat server.")
    parser.add_argument("--host", default="")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)
    try:
        run_server(args.host, args.port)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())