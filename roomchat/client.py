"""Interactive client for the room chat server, with file transfer."""

from __future__ import annotations

import argparse
import contextlib
import os
import random
import re
import socket
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Iterable, TextIO

from roomchat.colors import ColorPicker, colorize_message
from roomchat.files import IncomingFile, send_file, unique_filename
from roomchat.protocol import (
    BUFFER_SIZE,
    COMMAND_PREFIX,
    LIST_ROOMS,
    NEW_ROOM,
    PORT,
    Command,
    encode_room_number,
    message_kind,
    parse_chunk,
    parse_error,
    parse_send_command,
)

ROOM_LIST_SIZE = 1023
WELCOME_SIZE = 255
MAX_TRANSFER_ID = 10000
ROOM_PROMPT = "Choose the room number or type [new] to create a new room: "
NAME_PROMPT = "Type your user name: "
START_DELAY = 0.1

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    """Read a leading integer the lenient way; anything else counts as 0."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


@dataclass
class _Offer:
    """A transfer another user has offered to us."""

    transfer_id: int
    sender: str
    filename: str
    filesize: int
    output_filename: str = ""


@dataclass
class _Outgoing:
    """A transfer we have asked another user to accept."""

    transfer_id: int
    receiver: str
    filename: str


class ChatClient:
    """One chat session: shows incoming messages and sends typed lines."""

    def __init__(self, sock: Any, username: str, output: TextIO) -> None:
        self.sock = sock
        self.username = username
        self.output = output
        self.picker = ColorPicker()
        self.offer: _Offer | None = None
        self.outgoing: _Outgoing | None = None
        self.incoming: IncomingFile | None = None
        self.sender_thread: threading.Thread | None = None
        self._waiting = False
        self._last_update = 0
        self._lock = threading.Lock()
        self._out_lock = threading.Lock()

    @property
    def waiting(self) -> bool:
        """True while an offered transfer awaits a yes or no."""
        with self._lock:
            return self._waiting

    def _write(self, text: str) -> None:
        with self._out_lock:
            self.output.write(text)
            self.output.flush()

    def handle_special(self, text: bytes | str) -> bool:
        """Handle a transfer message or a local SEND command.

        Returns False when ``text`` is ordinary chat.
        """
        raw = text.encode() if isinstance(text, str) else bytes(text)
        kind = message_kind(raw)
        if kind is Command.REQUEST:
            return self._on_request(raw)
        if kind is Command.ACCEPT:
            return self._on_accept(raw)
        if kind is Command.START:
            return self._on_start(raw)
        if kind is Command.CHUNK:
            return self._on_chunk(raw)
        if kind is Command.END:
            return self._on_end(raw)
        if kind is Command.ERROR:
            return self._on_error(raw)
        if kind is Command.SEND:
            return self._on_send(raw.decode(errors="replace"))
        return False

    def _on_request(self, raw: bytes) -> bool:
        parts = raw.decode(errors="replace").split()
        try:
            transfer_id = int(parts[1])
            sender, filename = parts[2], parts[3]
            filesize = int(parts[4])
        except (IndexError, ValueError):
            return False
        self._write(
            f"\nFile transfer request from {sender}:\n"
            f"File: {filename} (Size: {filesize} bytes)\n"
            "Accept? (Y/N): "
        )
        with self._lock:
            self._waiting = True
            self.offer = _Offer(transfer_id, sender, filename, filesize)
        return True

    def _on_accept(self, raw: bytes) -> bool:
        parts = raw.split()
        try:
            transfer_id = int(parts[1])
        except (IndexError, ValueError):
            return False
        with self._lock:
            outgoing = self.outgoing
        if outgoing is None or outgoing.transfer_id != transfer_id:
            return False
        self.sender_thread = threading.Thread(
            target=send_file,
            args=(self.sock, transfer_id, outgoing.filename, self.output),
            daemon=True,
        )
        self.sender_thread.start()
        return True

    def _on_start(self, raw: bytes) -> bool:
        parts = raw.decode(errors="replace").split()
        try:
            transfer_id = int(parts[1])
            filename = parts[2]
            filesize = int(parts[3])
        except (IndexError, ValueError):
            return False
        output_filename = unique_filename(filename)
        try:
            incoming = IncomingFile(transfer_id, filename, output_filename, filesize)
        except OSError:
            self._write(f"Error: Could not create file {output_filename}\n")
            return True
        with self._lock:
            self.incoming = incoming
        self._write(f"Receiving file: {filename} (Size: {filesize} bytes)\n")
        return True

    def _on_chunk(self, raw: bytes) -> bool:
        try:
            chunk = parse_chunk(raw)
        except ValueError:
            return False
        with self._lock:
            incoming = self.incoming
        if (
            incoming is None
            or not incoming.active
            or incoming.transfer_id != chunk.transfer_id
        ):
            return True
        try:
            size = incoming.write_chunk(chunk.payload)
        except OSError:
            return True
        now = int(time.time())
        if now > self._last_update or size == incoming.filesize:
            self._write(
                f"\rReceiving {incoming.filename}: {incoming.progress():.2f}% "
                f"({size}/{incoming.filesize} bytes)"
            )
            self._last_update = now
        return True

    def _on_end(self, raw: bytes) -> bool:
        parts = raw.split()
        try:
            transfer_id = int(parts[1])
        except (IndexError, ValueError):
            return True
        with self._lock:
            incoming = self.incoming
            if incoming is None or incoming.transfer_id != transfer_id:
                return True
            incoming.active = False
            self.incoming = None
        self._write(
            "\nFile transfer completed!\n"
            f"\nFile received and saved as: {incoming.output_filename}\n"
        )
        return True

    def _on_error(self, raw: bytes) -> bool:
        try:
            transfer_id, message = parse_error(raw)
        except ValueError:
            return False
        self._write(f"\nFile transfer error: {message}\n")
        with self._lock:
            if self.incoming is not None and self.incoming.transfer_id == transfer_id:
                self.incoming.active = False
                self.incoming = None
            if (
                self._waiting
                and self.offer is not None
                and self.offer.transfer_id == transfer_id
            ):
                self._waiting = False
        return True

    def _on_send(self, text: str) -> bool:
        parsed = parse_send_command(text)
        if parsed is None:
            return False
        receiver, filename = parsed
        if not os.path.exists(filename):
            self._write(f"Error: File '{filename}' not found.\n")
            return True
        transfer_id = random.randrange(MAX_TRANSFER_ID)
        request = f"{COMMAND_PREFIX} {Command.SEND.value} {transfer_id} {receiver} {filename}"
        self.sock.sendall(request.encode())
        self._write(f"File transfer request sent to {receiver} for file '{filename}'.\n")
        with self._lock:
            self.outgoing = _Outgoing(transfer_id, receiver, filename)
        return True

    def handle_incoming(self, data: bytes) -> None:
        """Act on one message from the server, showing chat in colour."""
        if self.handle_special(data):
            return
        text = data.decode(errors="replace")
        self._write(colorize_message(text, self.picker) + "\n")

    def handle_input(self, line: str) -> bool:
        """Act on one typed line; returns False when the session should end."""
        if len(line) == 1:
            line = ""
        if self.handle_special(line):
            return True
        if not line:
            return False
        self.sock.sendall(line.encode())
        return True

    def respond_to_transfer(self, answer: str) -> bool:
        """Answer the pending offer; returns True if it was accepted."""
        with self._lock:
            self._waiting = False
            offer = self.offer
        if offer is None:
            return False
        accepted = answer.strip()[:1] in ("y", "Y")
        kind = Command.ACCEPT if accepted else Command.REJECT
        self.sock.sendall(f"{COMMAND_PREFIX} {kind.value} {offer.transfer_id}".encode())
        if accepted:
            offer.output_filename = unique_filename(offer.filename)
            self._write(
                f"Transfer accepted. File will be saved as {offer.output_filename}\n"
            )
        else:
            self._write("Transfer rejected.\n")
        return accepted

    def receive_loop(self) -> None:
        """Handle server messages until the connection closes."""
        while True:
            try:
                data = self.sock.recv(BUFFER_SIZE - 1)
            except OSError:
                return
            if not data:
                return
            self.handle_incoming(data)

    def send_loop(self, lines: Iterable[str]) -> None:
        """Send typed lines until an empty one or the end of input."""
        for line in lines:
            if self.waiting:
                self.respond_to_transfer(line)
                continue
            if not self.handle_input(line):
                break


def choose_room(host: str, port: int, lines: Iterable[str], output: TextIO) -> int:
    """Ask the server for its rooms and let the user pick one."""
    with socket.create_connection((host, port)) as sock:
        sock.sendall(encode_room_number(LIST_ROOMS))
        listing = sock.recv(ROOM_LIST_SIZE)
        if not listing:
            raise ConnectionError("ERROR receiving room list")
        output.write(listing.decode(errors="replace") + "\n")
        output.write(ROOM_PROMPT)
        output.flush()
        choice = next(iter(lines), "").split("\n", 1)[0]
    return NEW_ROOM if choice == "new" else _atoi(choice)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Room chat client.")
    parser.add_argument("host")
    parser.add_argument("room", nargs="?")
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args(argv)

    lines = iter(sys.stdin)
    out = sys.stdout
    print(f"Try connecting to {args.host}...", flush=True)
    try:
        if args.room is None:
            room = choose_room(args.host, args.port, lines, out)
        elif args.room == "new":
            room = NEW_ROOM
        else:
            room = _atoi(args.room)
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"ERROR connecting: {exc}", file=sys.stderr)
        return 1

    with sock:
        try:
            sock.sendall(encode_room_number(room))
            out.write(NAME_PROMPT)
            out.flush()
            username = next(lines, "").split("\n", 1)[0]
            sock.sendall(username.encode())
            welcome = sock.recv(WELCOME_SIZE).decode(errors="replace")
        except OSError as exc:
            print(f"ERROR connecting: {exc}", file=sys.stderr)
            return 1
        if "Error:" in welcome:
            print(welcome)
            return 1
        print(welcome, end="")
        print(f"{username} joined the chat room!", flush=True)

        client = ChatClient(sock, username, out)
        time.sleep(START_DELAY)
        receiver = threading.Thread(target=client.receive_loop, daemon=True)
        receiver.start()
        try:
            client.send_loop(lines)
        except OSError as exc:
            print(f"ERROR writing to socket: {exc}", file=sys.stderr)
            return 1
        finally:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
    return 0


if __name__ == "__main__":
    sys.exit(main())