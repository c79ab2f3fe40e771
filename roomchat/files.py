"""Sending and receiving files in chunks over a chat connection."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, Iterator, TextIO

from roomchat.protocol import FILE_CHUNK_SIZE, Command, format_chunk, format_error

MAX_PATH = 256
MAX_COUNTER = 1000
CHUNK_DELAY = 0.001
OPEN_FAILED = "Could not open file"


def unique_filename(base: str) -> str:
    """Return ``base`` or, if taken, ``name_N.ext`` for the first free N."""
    if not os.path.exists(base):
        return base
    dot = base.rfind(".")
    if dot >= 0:
        stem, extension = base[:dot], base[dot:]
    else:
        stem, extension = base, ""
    if len(stem) + len(extension) + 2 > MAX_PATH - 4:
        stem = stem[: max(MAX_PATH - len(extension) - 6, 0)]

    counter = 1
    while True:
        candidate = f"{stem}_{counter}{extension}"
        if len(candidate) >= MAX_PATH:
            candidate = f"file_{counter}{extension}"
        counter += 1
        if not os.path.exists(candidate) or counter >= MAX_COUNTER:
            return candidate


def _percent(done: int, total: int) -> float:
    return 100.0 if total == 0 else done / total * 100


class IncomingFile:
    """A file being written chunk by chunk as a transfer arrives."""

    def __init__(
        self, transfer_id: int, filename: str, output_filename: str, filesize: int
    ) -> None:
        self.transfer_id = transfer_id
        self.filename = filename
        self.output_filename = output_filename
        self.filesize = filesize
        self.active = True
        Path(output_filename).write_bytes(b"")

    @property
    def received(self) -> int:
        """Bytes written to the output file so far."""
        return Path(self.output_filename).stat().st_size

    def write_chunk(self, data: bytes) -> int:
        """Append ``data`` to the output file and return its new size."""
        with open(self.output_filename, "ab") as handle:
            handle.write(data)
        return self.received

    def progress(self) -> float:
        """Percentage of the announced size received so far."""
        return _percent(self.received, self.filesize)


def _read_pieces(path: str | os.PathLike[str], chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as handle:
        while piece := handle.read(chunk_size):
            yield piece


def iter_chunks(
    path: str | os.PathLike[str],
    transfer_id: int,
    chunk_size: int = FILE_CHUNK_SIZE,
) -> Iterator[bytes]:
    """Yield the chunk messages that carry the file at ``path``."""
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")
    for number, piece in enumerate(_read_pieces(path, chunk_size)):
        yield format_chunk(transfer_id, number, piece)


def send_file(
    sock: Any, transfer_id: int, path: str | os.PathLike[str], output: TextIO
) -> bool:
    """Send a whole file as start, chunk and end messages.

    Returns False when the file cannot be opened (an error message is sent
    instead) or the connection fails part way.
    """
    name = os.fspath(path)
    try:
        filesize = os.path.getsize(name)
        chunks = iter_chunks(name, transfer_id)
        with open(name, "rb"):
            pass
    except OSError:
        try:
            sock.sendall(format_error(transfer_id, OPEN_FAILED))
        except OSError:
            pass
        return False

    try:
        sock.sendall(f"{Command.START.value} {transfer_id} {name} {filesize}".encode())
        sent = 0
        for message, piece in zip(chunks, _read_pieces(name, FILE_CHUNK_SIZE)):
            sock.sendall(message)
            sent += len(piece)
            output.write(
                f"\rSending {name}: {_percent(sent, filesize):.2f}% "
                f"({sent}/{filesize} bytes)"
            )
            output.flush()
            time.sleep(CHUNK_DELAY)
        sock.sendall(f"{Command.END.value} {transfer_id}".encode())
    except OSError:
        return False

    output.write(f"\nFile {name} sent successfully!\n")
    output.flush()
    return True