"""The room chat server: named users in numbered rooms, with file relay."""

from __future__ import annotations

import argparse
import contextlib
import itertools
import socket
import sys
import threading
from typing import Any, Iterable

from roomchat.protocol import (
    BUFFER_SIZE,
    COMMAND_PREFIX,
    LIST_ROOMS,
    PORT,
    Command,
    decode_room_number,
    format_error,
)
from roomchat.registry import MAX_ROOMS, Registry, Transfer

BACKLOG = 5
USERNAME_SIZE = 50
ROOM_NUMBER_SIZE = 4
CLEANUP_EVERY = 10
ROOM_MISSING = "Error: Room does not exist\n"
NAME_TAKEN = "Error: Username already exists in this room\n"
RECEIVER_MISSING = "User not found or not in the same room"
ROOM_OPTIONS_HEADER = "Server says following options are available:\n"

_DATA_KINDS = (Command.START, Command.CHUNK, Command.END)
_FORWARDED_KINDS = (Command.START, Command.CHUNK, Command.END, Command.ERROR)


def _host(address: Any) -> str:
    if isinstance(address, tuple) and address:
        return str(address[0])
    return str(address)


def _send(conn: Any, data: bytes | str) -> None:
    """Send to a client, ignoring a connection that has gone away."""
    payload = data.encode() if isinstance(data, str) else data
    with contextlib.suppress(OSError):
        conn.sendall(payload)


def _recv_exact(conn: socket.socket, size: int) -> bytes | None:
    buffer = b""
    while len(buffer) < size:
        chunk = conn.recv(size - len(buffer))
        if not chunk:
            return None
        buffer += chunk
    return buffer


class ChatServer:
    """Serves clients against a shared registry of users and transfers."""

    def __init__(self, registry: Registry | None = None) -> None:
        self.registry = registry if registry is not None else Registry()
        self._messages = itertools.count(1)
        self._counter_lock = threading.Lock()

    def _deliver(self, notices: Iterable[tuple[Any, bytes]]) -> None:
        for conn, message in notices:
            _send(conn, message)

    def _tick(self) -> None:
        with self._counter_lock:
            count = next(self._messages)
        if count % CLEANUP_EVERY == 0:
            self._deliver(self.registry.expire_transfers())

    def handle_client(self, conn: socket.socket, address: Any) -> None:
        """Run one client's session from room choice until it disconnects."""
        host = _host(address)
        with conn:
            try:
                raw_room = _recv_exact(conn, ROOM_NUMBER_SIZE)
            except OSError:
                return
            if raw_room is None:
                return
            room = decode_room_number(raw_room)

            if room == LIST_ROOMS:
                _send(conn, self.registry.room_list_message())
                return

            try:
                raw_name = conn.recv(USERNAME_SIZE)
            except OSError:
                raw_name = b""

            if room < 0:
                room = self.registry.new_room()
            elif room <= 0 or room > MAX_ROOMS:
                _send(conn, ROOM_MISSING)
                return

            if not raw_name:
                return
            username = raw_name.split(b"\0", 1)[0].decode(errors="replace")

            if self.registry.find_by_name(username, room) is not None:
                _send(conn, NAME_TAKEN)
                return

            _send(conn, f"Connected to {host} with room number {room}\n")
            self.registry.add_user(conn, address, username, room)
            print(f"{username} ({host}) joined the chat room!", flush=True)

            try:
                self._session(conn)
            finally:
                print(f"{username} ({host}) left the room!", flush=True)
                self._deliver(self.registry.remove_user(conn))

    def _session(self, conn: socket.socket) -> None:
        while True:
            try:
                data = conn.recv(BUFFER_SIZE - 1)
            except OSError:
                return
            if not data:
                return
            self._dispatch(conn, data)
            self._tick()

    def _dispatch(self, conn: socket.socket, data: bytes) -> None:
        text = data.decode(errors="replace")
        if data.startswith(COMMAND_PREFIX.encode()):
            if Command.SEND.value in text:
                self.handle_transfer_command(conn, text)
            elif Command.ACCEPT.value in text or Command.REJECT.value in text:
                self.handle_transfer_response(conn, text)
        elif any(data.startswith(kind.value.encode()) for kind in _FORWARDED_KINDS):
            self.forward_transfer_data(conn, data)
        else:
            self.broadcast(conn, text.split("\n", 1)[0].split("\0", 1)[0])

    def broadcast(self, conn: Any, message: str) -> None:
        """Send a chat line from the user on ``conn`` to the rest of its room."""
        sender = self.registry.find_by_conn(conn)
        if sender is None:
            return
        packet = f"[{sender.username}] {message}\n".encode()
        for peer in self.registry.peers(conn):
            _send(peer.conn, packet)

    def handle_transfer_command(self, conn: Any, text: str) -> Transfer | None:
        """Handle ``CMD SEND id receiver filename`` and notify the receiver."""
        parts = text.split()
        if len(parts) < 5:
            return None
        cmd, subcmd, id_text, receiver_name, filename = parts[:5]
        try:
            transfer_id = int(id_text)
        except ValueError:
            return None
        if cmd != COMMAND_PREFIX or subcmd != Command.SEND.value:
            return None

        sender = self.registry.find_by_conn(conn)
        if sender is None:
            return None
        receiver = self.registry.find_by_name(receiver_name, sender.room)
        if receiver is None:
            _send(conn, format_error(transfer_id, RECEIVER_MISSING))
            return None

        request = (
            f"{Command.REQUEST.value} {transfer_id} {sender.username} {filename} 0"
        )
        _send(receiver.conn, request)
        transfer = Transfer(
            transfer_id=transfer_id,
            sender_conn=conn,
            receiver_conn=receiver.conn,
            sender_name=sender.username,
            receiver_name=receiver_name,
            filename=filename,
        )
        self.registry.add_transfer(transfer)
        print(
            f"File transfer request: {sender.username} wants to send {filename} "
            f"to {receiver_name} (ID: {transfer_id})",
            flush=True,
        )
        return transfer

    def handle_transfer_response(self, conn: Any, text: str) -> None:
        """Pass the receiver's accept or reject on to the sender."""
        parts = text.split()
        if len(parts) < 3:
            return
        cmd, subcmd, id_text = parts[:3]
        try:
            transfer_id = int(id_text)
        except ValueError:
            return
        if cmd != COMMAND_PREFIX:
            return

        transfer = self.registry.find_transfer(transfer_id)
        if transfer is None or not transfer.active:
            return
        if transfer.receiver_conn is not conn:
            return

        if subcmd == Command.ACCEPT.value:
            _send(transfer.sender_conn, f"{Command.ACCEPT.value} {transfer_id}")
            print(
                f"File transfer accepted: {transfer.receiver_name} will receive "
                f"{transfer.filename} from {transfer.sender_name} (ID: {transfer_id})",
                flush=True,
            )
        elif subcmd == Command.REJECT.value:
            _send(transfer.sender_conn, f"{Command.REJECT.value} {transfer_id}")
            transfer.active = False
            print(
                f"File transfer rejected: {transfer.receiver_name} declined "
                f"{transfer.filename} from {transfer.sender_name} (ID: {transfer_id})",
                flush=True,
            )

    def forward_transfer_data(self, conn: Any, data: bytes) -> None:
        """Relay start, chunk and end messages from a sender to its receiver."""
        if not any(data.startswith(kind.value.encode()) for kind in _DATA_KINDS):
            return
        words = data.split(None, 2)
        if len(words) < 2:
            return
        try:
            transfer_id = int(words[1])
        except ValueError:
            return
        protocol_type = words[0].decode(errors="replace")

        transfer = self.registry.find_transfer(transfer_id)
        if transfer is None or not transfer.active:
            return
        if transfer.sender_conn is not conn:
            return
        _send(transfer.receiver_conn, data)
        if protocol_type == Command.END.value:
            transfer.active = False
            print(
                f"File transfer completed: {transfer.sender_name} sent "
                f"{transfer.filename} to {transfer.receiver_name} (ID: {transfer_id})",
                flush=True,
            )

    def send_room_list(self, conn: Any) -> None:
        """Send the occupied rooms below the room limit with their head counts."""
        lines = "".join(
            f"Room {room}: {count} people\n"
            for room, count in self.registry.room_counts().items()
            if 1 <= room < MAX_ROOMS and count > 0
        )
        _send(conn, ROOM_OPTIONS_HEADER + lines)

    def serve(self, host: str = "", port: int = PORT) -> None:
        """Accept clients forever, each handled on its own thread."""
        with socket.create_server((host, port), backlog=BACKLOG) as listener:
            print(f"Server started on port {port}", flush=True)
            while True:
                conn, address = listener.accept()
                print(f"Connected: {_host(address)}", flush=True)
                threading.Thread(
                    target=self.handle_client, args=(conn, address), daemon=True
                ).start()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Room chat server.")
    parser.add_argument("--host", default="")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)
    try:
        ChatServer(Registry()).serve(args.host, args.port)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())