import socket
import threading

from roomchat.echo_server import main, serve_client


def test_serve_client_echoes_messages():
    server_side, client_side = socket.socketpair()
    client_side.settimeout(5)
    messages = (b"hello\n", b"second line\n")
    replies = []

    def talk():
        with client_side:
            for message in messages:
                client_side.sendall(message)
                replies.append(client_side.recv(256))

    peer = threading.Thread(target=talk, daemon=True)
    peer.start()
    serve_client(server_side)
    peer.join(5)
    assert replies == list(messages)
    assert server_side.fileno() == -1


def test_serve_client_closes_connection_when_peer_leaves():
    server_side, client_side = socket.socketpair()
    client_side.close()
    serve_client(server_side)
    assert server_side.fileno() == -1


def test_main_reports_bind_failure(capsys):
    with socket.create_server(("127.0.0.1", 0)) as taken:
        port = taken.getsockname()[1]
        assert main(["--host", "127.0.0.1", "--port", str(port)]) == 1
    assert "ERROR on binding" in capsys.readouterr().err