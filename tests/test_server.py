import socket
import threading
import time

import pytest

from roomchat.protocol import (
    LIST_ROOMS,
    NEW_ROOM,
    encode_room_number,
    format_error,
)
from roomchat.registry import Registry, Transfer
from roomchat.server import ChatServer

ADDRESS = ("127.0.0.1", 5555)


@pytest.fixture
def sockets():
    opened = []

    def make():
        a, b = socket.socketpair()
        opened.extend([a, b])
        b.settimeout(5)
        return a, b

    yield make
    for s in opened:
        s.close()


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def server(registry):
    return ChatServer(registry)


def add_user(registry, sockets, name, room):
    server_side, client_side = sockets()
    registry.add_user(server_side, ADDRESS, name, room)
    return server_side, client_side


def read_exactly(sock, size):
    sock.settimeout(5)
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def read_available(sock):
    sock.settimeout(0.2)
    try:
        return sock.recv(4096)
    except socket.timeout:
        return b""


def read_to_end(sock):
    sock.settimeout(5)
    data = b""
    while chunk := sock.recv(4096):
        data += chunk
    return data


def start_session(server, sockets):
    server_side, client_side = sockets()
    thread = threading.Thread(
        target=server.handle_client, args=(server_side, ADDRESS), daemon=True
    )
    thread.start()
    return client_side, thread


def wait_for(predicate):
    deadline = time.time() + 5
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_broadcast_reaches_only_same_room(server, registry, sockets):
    alice, _ = add_user(registry, sockets, "alice", 1)
    _, bob_client = add_user(registry, sockets, "bob", 1)
    _, carol_client = add_user(registry, sockets, "carol", 2)
    server.broadcast(alice, "hello")
    assert read_exactly(bob_client, len(b"[alice] hello\n")) == b"[alice] hello\n"
    assert read_available(carol_client) == b""


def test_broadcast_from_unknown_sender_sends_nothing(server, registry, sockets):
    _, bob_client = add_user(registry, sockets, "bob", 1)
    stranger, _ = sockets()
    server.broadcast(stranger, "hello")
    assert read_available(bob_client) == b""


def test_transfer_command_notifies_receiver(server, registry, sockets):
    alice, _ = add_user(registry, sockets, "alice", 1)
    bob, bob_client = add_user(registry, sockets, "bob", 1)
    transfer = server.handle_transfer_command(alice, "CMD SEND 42 bob file.txt")
    expected = b"FILE_TRANSFER_REQUEST 42 alice file.txt 0"
    assert read_exactly(bob_client, len(expected)) == expected
    stored = registry.find_transfer(42)
    assert stored is transfer
    assert stored.sender_conn is alice
    assert stored.receiver_conn is bob
    assert stored.filename == "file.txt"
    assert stored.active


def test_transfer_command_unknown_receiver(server, registry, sockets):
    alice, alice_client = add_user(registry, sockets, "alice", 1)
    add_user(registry, sockets, "bob", 2)
    assert server.handle_transfer_command(alice, "CMD SEND 42 bob file.txt") is None
    expected = format_error(42, "User not found or not in the same room")
    assert read_exactly(alice_client, len(expected)) == expected
    assert registry.find_transfer(42) is None


@pytest.mark.parametrize(
    "text",
    ["CMD SEND 42 bob", "CMD SEND x bob file.txt", "XYZ SEND 42 bob file.txt"],
)
def test_transfer_command_malformed_is_ignored(server, registry, sockets, text):
    alice, alice_client = add_user(registry, sockets, "alice", 1)
    _, bob_client = add_user(registry, sockets, "bob", 1)
    assert server.handle_transfer_command(alice, text) is None
    assert registry.find_transfer(42) is None
    assert read_available(bob_client) == b""
    assert read_available(alice_client) == b""


def _pending(registry, sockets):
    alice, alice_client = add_user(registry, sockets, "alice", 1)
    bob, bob_client = add_user(registry, sockets, "bob", 1)
    transfer = Transfer(42, alice, bob, "alice", "bob", "file.txt")
    registry.add_transfer(transfer)
    return transfer, alice, alice_client, bob, bob_client


def test_accept_is_passed_to_sender(server, registry, sockets):
    transfer, _, alice_client, bob, _ = _pending(registry, sockets)
    server.handle_transfer_response(bob, "CMD FILE_TRANSFER_ACCEPT 42")
    expected = b"FILE_TRANSFER_ACCEPT 42"
    assert read_exactly(alice_client, len(expected)) == expected
    assert transfer.active


def test_reject_deactivates_transfer(server, registry, sockets):
    transfer, _, alice_client, bob, _ = _pending(registry, sockets)
    server.handle_transfer_response(bob, "CMD FILE_TRANSFER_REJECT 42")
    expected = b"FILE_TRANSFER_REJECT 42"
    assert read_exactly(alice_client, len(expected)) == expected
    assert transfer.active is False


def test_response_from_non_receiver_is_ignored(server, registry, sockets):
    transfer, alice, alice_client, _, _ = _pending(registry, sockets)
    server.handle_transfer_response(alice, "CMD FILE_TRANSFER_REJECT 42")
    assert transfer.active
    assert read_available(alice_client) == b""


def test_forward_chunk_is_byte_identical(server, registry, sockets):
    transfer, alice, _, _, bob_client = _pending(registry, sockets)
    data = b"FILE_TRANSFER_CHUNK 42 0 3 \x00\xff\n"
    server.forward_transfer_data(alice, data)
    assert read_exactly(bob_client, len(data)) == data
    assert transfer.active


def test_forward_end_completes_transfer(server, registry, sockets):
    transfer, alice, _, _, bob_client = _pending(registry, sockets)
    data = b"FILE_TRANSFER_END 42"
    server.forward_transfer_data(alice, data)
    assert read_exactly(bob_client, len(data)) == data
    assert transfer.active is False


def test_forward_from_receiver_is_ignored(server, registry, sockets):
    transfer, _, alice_client, bob, _ = _pending(registry, sockets)
    server.forward_transfer_data(bob, b"FILE_TRANSFER_END 42")
    assert transfer.active
    assert read_available(alice_client) == b""


def test_send_room_list(server, registry, sockets):
    add_user(registry, sockets, "alice", 1)
    add_user(registry, sockets, "bob", 1)
    target, target_client = sockets()
    server.send_room_list(target)
    expected = b"Server says following options are available:\nRoom 1: 2 people\n"
    assert read_exactly(target_client, len(expected)) == expected


def test_session_lists_rooms(server, registry, sockets):
    add_user(registry, sockets, "alice", 1)
    add_user(registry, sockets, "bob", 3)
    client, thread = start_session(server, sockets)
    client.sendall(encode_room_number(LIST_ROOMS))
    reply = read_to_end(client).decode()
    thread.join(5)
    assert reply == "Available chat rooms:\nRoom 1: 1 people\nRoom 3: 1 people\n"


def test_session_lists_no_rooms(server, sockets):
    client, thread = start_session(server, sockets)
    client.sendall(encode_room_number(LIST_ROOMS))
    reply = read_to_end(client).decode()
    thread.join(5)
    assert reply == "No rooms available. Type 'new' to create one.\n"


@pytest.mark.parametrize("room", [0, 101])
def test_session_rejects_missing_room(server, registry, sockets, room):
    client, thread = start_session(server, sockets)
    client.sendall(encode_room_number(room))
    client.sendall(b"alice")
    reply = read_to_end(client)
    thread.join(5)
    assert reply == b"Error: Room does not exist\n"
    assert registry.find_by_name("alice", room) is None


def test_session_rejects_taken_name(server, registry, sockets):
    add_user(registry, sockets, "alice", 1)
    client, thread = start_session(server, sockets)
    client.sendall(encode_room_number(1))
    client.sendall(b"alice")
    reply = read_to_end(client)
    thread.join(5)
    assert reply == b"Error: Username already exists in this room\n"
    assert registry.room_counts() == {1: 1}


def test_session_without_username_closes(server, registry, sockets):
    client, thread = start_session(server, sockets)
    client.sendall(encode_room_number(1))
    client.shutdown(socket.SHUT_WR)
    assert read_to_end(client) == b""
    thread.join(5)
    assert registry.room_counts() == {}


def test_session_join_chat_and_leave(server, registry, sockets):
    alice, alice_thread = start_session(server, sockets)
    alice.sendall(encode_room_number(NEW_ROOM))
    alice.sendall(b"alice")
    welcome = b"Connected to 127.0.0.1 with room number 1\n"
    assert read_exactly(alice, len(welcome)) == welcome
    assert wait_for(lambda: registry.find_by_name("alice", 1) is not None)

    bob, bob_thread = start_session(server, sockets)
    bob.sendall(encode_room_number(1))
    bob.sendall(b"bob")
    assert read_exactly(bob, len(welcome)) == welcome
    assert registry.room_counts() == {1: 2}

    bob.sendall(b"hi\n")
    assert read_exactly(alice, len(b"[bob] hi\n")) == b"[bob] hi\n"

    bob.close()
    bob_thread.join(5)
    assert registry.find_by_name("bob", 1) is None
    assert registry.room_counts() == {1: 1}

    alice.close()
    alice_thread.join(5)
    assert registry.room_counts() == {}


def test_session_disconnect_cancels_transfer(server, registry, sockets):
    _, bob_client = add_user(registry, sockets, "bob", 1)
    alice, thread = start_session(server, sockets)
    alice.sendall(encode_room_number(1))
    alice.sendall(b"alice")
    welcome = b"Connected to 127.0.0.1 with room number 1\n"
    assert read_exactly(alice, len(welcome)) == welcome
    alice.sendall(b"CMD SEND 7 bob notes.txt")
    request = b"FILE_TRANSFER_REQUEST 7 alice notes.txt 0"
    assert read_exactly(bob_client, len(request)) == request

    alice.close()
    thread.join(5)
    notice = format_error(7, "Other party disconnected\n")
    assert read_exactly(bob_client, len(notice)) == notice
    assert registry.find_transfer(7).active is False