"""Connected users, chat rooms and file transfers known to the room server."""

from __future__ import annotations

import itertools
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from roomchat.protocol import format_error

MAX_ROOMS = 100
TRANSFER_TIMEOUT = 600.0
DISCONNECT_MESSAGE = "Other party disconnected\n"
TIMEOUT_MESSAGE = "Transfer timeout"
NO_ROOMS_MESSAGE = "No rooms available. Type 'new' to create one.\n"
ROOM_LIST_HEADER = "Available chat rooms:\n"

Notice = tuple[Any, bytes]


@dataclass
class User:
    """A client that has joined a room."""

    conn: Any
    address: Any
    username: str
    room: int

    @property
    def host(self) -> str:
        if isinstance(self.address, tuple) and self.address:
            return str(self.address[0])
        return str(self.address)


@dataclass
class Transfer:
    """A file transfer negotiated between two users."""

    transfer_id: int
    sender_conn: Any
    receiver_conn: Any
    sender_name: str
    receiver_name: str
    filename: str
    filesize: int = 0
    active: bool = True
    start_time: float = field(default_factory=time.time)


def _in_range(room: int) -> bool:
    return 1 <= room <= MAX_ROOMS


class Registry:
    """Thread-safe store of users, room occupancy and pending transfers."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: list[User] = []
        self._transfers: list[Transfer] = []
        self._counts: Counter[int] = Counter()
        self._room_ids = itertools.count(1)
        self.active_rooms: set[int] = set()

    def add_user(self, conn: Any, address: Any, username: str, room: int) -> User:
        """Register a user in ``room`` and return it."""
        user = User(conn, address, username, room)
        with self._lock:
            self._users.append(user)
            if _in_range(room):
                self._counts[room] += 1
        return user

    def remove_user(self, conn: Any) -> list[Notice]:
        """Forget the user on ``conn`` and cancel its active transfers.

        Returns the messages to send to the other party of each cancelled
        transfer that is still connected.
        """
        with self._lock:
            user = self.find_by_conn(conn)
            if user is not None:
                self._users.remove(user)
                if _in_range(user.room):
                    self._counts[user.room] -= 1
                    if self._counts[user.room] <= 0:
                        del self._counts[user.room]
            notices: list[Notice] = []
            for transfer in self._transfers:
                if not transfer.active:
                    continue
                if transfer.sender_conn is conn:
                    other = transfer.receiver_conn
                elif transfer.receiver_conn is conn:
                    other = transfer.sender_conn
                else:
                    continue
                if self.find_by_conn(other) is not None:
                    notices.append(
                        (other, format_error(transfer.transfer_id, DISCONNECT_MESSAGE))
                    )
                transfer.active = False
            return notices

    def find_by_conn(self, conn: Any) -> User | None:
        with self._lock:
            return next((u for u in self._users if u.conn is conn), None)

    def find_by_name(self, username: str, room: int) -> User | None:
        with self._lock:
            return next(
                (u for u in self._users if u.room == room and u.username == username),
                None,
            )

    def peers(self, conn: Any) -> list[User]:
        """Users sharing a room with the user on ``conn``, excluding it."""
        with self._lock:
            sender = self.find_by_conn(conn)
            if sender is None:
                return []
            return [
                u for u in self._users if u.conn is not conn and u.room == sender.room
            ]

    def room_counts(self) -> dict[int, int]:
        """Number of users in each occupied room, in room order."""
        with self._lock:
            return {room: self._counts[room] for room in sorted(self._counts)}

    def room_list_message(self) -> str:
        """Text sent to a client that asks which rooms exist."""
        counts = self.room_counts()
        if not counts:
            return NO_ROOMS_MESSAGE
        lines = "".join(f"Room {room}: {n} people\n" for room, n in counts.items())
        return ROOM_LIST_HEADER + lines

    def new_room(self) -> int:
        """Allocate the next room number, starting from 1."""
        with self._lock:
            room = next(self._room_ids)
            self.active_rooms.add(room)
            return room

    def add_transfer(self, transfer: Transfer) -> None:
        with self._lock:
            self._transfers.append(transfer)

    def find_transfer(self, transfer_id: int) -> Transfer | None:
        with self._lock:
            return next(
                (t for t in self._transfers if t.transfer_id == transfer_id), None
            )

    def remove_transfer(self, transfer_id: int) -> Transfer | None:
        """Drop the first transfer with ``transfer_id`` and return it."""
        with self._lock:
            transfer = self.find_transfer(transfer_id)
            if transfer is not None:
                self._transfers.remove(transfer)
            return transfer

    def expire_transfers(self, now: float | None = None) -> list[Notice]:
        """Drop transfers older than the timeout.

        Returns timeout messages for both parties of each dropped transfer
        that was still active, for those parties still connected.
        """
        current = time.time() if now is None else now
        with self._lock:
            kept: list[Transfer] = []
            notices: list[Notice] = []
            for transfer in self._transfers:
                if current - transfer.start_time <= TRANSFER_TIMEOUT:
                    kept.append(transfer)
                    continue
                if transfer.active:
                    message = format_error(transfer.transfer_id, TIMEOUT_MESSAGE)
                    for conn in (transfer.sender_conn, transfer.receiver_conn):
                        if self.find_by_conn(conn) is not None:
                            notices.append((conn, message))
            self._transfers = kept
            return notices