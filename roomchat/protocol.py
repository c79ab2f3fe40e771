"""Wire format shared by the room chat server and client."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

PORT = 3000
BUFFER_SIZE = 512
FILE_CHUNK_SIZE = 4096
COMMAND_PREFIX = "CMD"
LIST_ROOMS = -2
NEW_ROOM = -1
MAX_ERROR_MESSAGE = 255

_ROOM = struct.Struct("<i")


class Command(str, enum.Enum):
    """Message kinds recognised by their leading word."""

    REQUEST = "FILE_TRANSFER_REQUEST"
    ACCEPT = "FILE_TRANSFER_ACCEPT"
    REJECT = "FILE_TRANSFER_REJECT"
    START = "FILE_TRANSFER_START"
    CHUNK = "FILE_TRANSFER_CHUNK"
    END = "FILE_TRANSFER_END"
    ERROR = "FILE_TRANSFER_ERROR"
    SEND = "SEND"


@dataclass(frozen=True)
class Chunk:
    """One piece of a file in transit."""

    transfer_id: int
    chunk_num: int
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode() if isinstance(data, str) else bytes(data)


def message_kind(data: bytes | str) -> Command | None:
    """Return the command a message starts with, or None for plain chat."""
    raw = _as_bytes(data)
    for command in Command:
        if raw.startswith(command.value.encode()):
            return command
    return None


def parse_send_command(line: str) -> tuple[str, str] | None:
    """Split ``SEND receiver filename`` into its receiver and filename."""
    parts = line.split()
    if len(parts) < 3 or parts[0] != Command.SEND.value:
        return None
    return parts[1], parts[2]


def encode_room_number(number: int) -> bytes:
    """Pack a room number as the four bytes sent right after connecting."""
    return _ROOM.pack(number)


def decode_room_number(data: bytes) -> int:
    """Unpack a room number from the first four bytes of ``data``."""
    if len(data) < _ROOM.size:
        raise ValueError(f"room number needs {_ROOM.size} bytes, got {len(data)}")
    return _ROOM.unpack_from(data)[0]


def format_chunk(transfer_id: int, chunk_num: int, payload: bytes) -> bytes:
    """Build a chunk message: header words followed by the raw payload."""
    header = f"{Command.CHUNK.value} {transfer_id} {chunk_num} {len(payload)} "
    return header.encode() + bytes(payload)


def parse_chunk(data: bytes) -> Chunk:
    """Parse a chunk message; the payload is cut to the size in its header."""
    raw = _as_bytes(data)
    if message_kind(raw) is not Command.CHUNK:
        raise ValueError("not a chunk message")
    parts = raw.split(b" ", 4)
    if len(parts) < 5:
        raise ValueError("incomplete chunk header")
    _, transfer_id, chunk_num, size, rest = parts
    try:
        transfer_id_value = int(transfer_id)
        chunk_num_value = int(chunk_num)
        size_value = int(size)
    except ValueError as exc:
        raise ValueError("malformed chunk header") from exc
    if size_value < 0:
        raise ValueError("negative chunk size")
    return Chunk(transfer_id_value, chunk_num_value, rest[:size_value])


def format_error(transfer_id: int, message: str) -> bytes:
    """Build a transfer error message."""
    return f"{Command.ERROR.value} {transfer_id} {message}".encode()


def parse_error(data: bytes | str) -> tuple[int, str]:
    """Return the transfer id and text of a transfer error message."""
    raw = _as_bytes(data)
    if message_kind(raw) is not Command.ERROR:
        raise ValueError("not an error message")
    parts = raw.decode(errors="replace").split(" ", 2)
    if len(parts) < 3:
        raise ValueError("error message has no text")
    try:
        transfer_id = int(parts[1])
    except ValueError as exc:
        raise ValueError("malformed transfer id") from exc
    return transfer_id, parts[2][:MAX_ERROR_MESSAGE]