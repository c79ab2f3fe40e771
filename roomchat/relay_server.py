"""A server that relays each message to every other connected client."""

from __future__ import annotations

import argparse
import socket
import sys
import threading

PORT = 1004
RECV_SIZE = 255
BACKLOG = 5


def _peer_host(conn: socket.socket) -> str:
    peer = conn.getpeername()
    return peer[0] if isinstance(peer, tuple) else str(peer)


class RelayServer:
    """Keeps the connected clients and passes messages between them."""

    def __init__(self) -> None:
        self.clients: list[socket.socket] = []
        self._lock = threading.Lock()

    def add(self, conn: socket.socket) -> None:
        with self._lock:
            self.clients.append(conn)

    def _remove(self, conn: socket.socket) -> None:
        with self._lock:
            if conn in self.clients:
                self.clients.remove(conn)

    def broadcast(self, sender: socket.socket, message: bytes | str) -> None:
        """Send ``message``, tagged with the sender's address, to everyone else."""
        body = message.encode() if isinstance(message, str) else bytes(message)
        packet = f"[{_peer_host(sender)}]:".encode() + body
        with self._lock:
            targets = [conn for conn in self.clients if conn is not sender]
        for conn in targets:
            conn.sendall(packet)

    def handle(self, conn: socket.socket) -> None:
        """Relay messages from one client until it disconnects."""
        try:
            while data := conn.recv(RECV_SIZE):
                self.broadcast(conn, data)
        finally:
            self._remove(conn)
            conn.close()

    def serve(self, host: str = "", port: int = PORT) -> None:
        """Accept clients forever, each handled on its own thread."""
        with socket.create_server((host, port), backlog=BACKLOG) as listener:
            while True:
                conn, address = listener.accept()
                print(f"Connected: {address[0]}", flush=True)
                self.add(conn)
                threading.Thread(target=self.handle, args=(conn,), daemon=True).start()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Relay chat server.")
    parser.add_argument("--host", default="")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)
    try:
        RelayServer().serve(args.host, args.port)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())