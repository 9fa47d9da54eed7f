import socket
import threading

import pytest

from dfdl.client_networking import (
    PeerError,
    attempt_download_handshake,
    connect_to_source,
    send_and_recv,
)
from dfdl.file_parsing import DEFAULT_CHUNK_SIZE, set_chunk_size
from dfdl.messages import MessageCode, SourceInfo, parse_fail_message
from dfdl.net import recv_message, send_message
from dfdl.peer_messages import (
    create_chunk_request,
    create_download_init,
    parse_data_chunk,
    parse_download_confirm,
)
from dfdl.seed import ClientListener, init_handshake, seed_to_peer

CONTENT = b"hello world"


@pytest.fixture(autouse=True)
def default_chunk_size():
    set_chunk_size(DEFAULT_CHUNK_SIZE)
    yield
    set_chunk_size(DEFAULT_CHUNK_SIZE)


@pytest.fixture
def shared_file(tmp_path):
    path = tmp_path / "shared.txt"
    path.write_bytes(CONTENT)
    return path


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


def test_init_handshake_confirms_size_and_name(pair, shared_file):
    client, server = pair
    send_message(client, create_download_init(7))
    path = init_handshake(server, {7: str(shared_file)}, threading.Lock(), 2.0)
    assert path == shared_file
    size, name = parse_download_confirm(recv_message(client, 2.0))
    assert size == len(CONTENT)
    assert name == "shared.txt"


def test_init_handshake_unknown_file_closes_socket(pair, shared_file):
    client, server = pair
    send_message(client, create_download_init(8))
    with pytest.raises(PeerError):
        init_handshake(server, {7: str(shared_file)}, threading.Lock(), 2.0)
    assert server.fileno() == -1
    with pytest.raises(ConnectionError):
        recv_message(client, 1.0)


def test_init_handshake_dropped_file_sends_fail(pair):
    client, server = pair
    send_message(client, create_download_init(7))
    with pytest.raises(PeerError):
        init_handshake(server, {7: ""}, threading.Lock(), 2.0)
    reply = recv_message(client, 2.0)
    assert reply[0] == MessageCode.FAIL
    assert parse_fail_message(reply) == "[err] Could not find file. Sorry."


def test_init_handshake_wrong_message(pair, shared_file):
    client, server = pair
    send_message(client, create_chunk_request(0))
    with pytest.raises(PeerError):
        init_handshake(server, {7: str(shared_file)}, threading.Lock(), 2.0)


def test_seed_to_peer_serves_chunks(pair, shared_file):
    client, server = pair
    worker = threading.Thread(
        target=seed_to_peer,
        args=(threading.Event(), server, {7: str(shared_file)}, threading.Lock()),
    )
    worker.start()
    try:
        size, name = attempt_download_handshake(client, 7, 2.0)
        assert (size, name) == (len(CONTENT), "shared.txt")

        reply = send_and_recv(client, create_chunk_request(0), MessageCode.DATA_CHUNK, 2.0)
        chunk = parse_data_chunk(reply)
        assert chunk.index == 0
        assert chunk.data == CONTENT

        send_message(client, create_chunk_request(9))
        failure = recv_message(client, 2.0)
        assert parse_fail_message(failure) == "Sorry, file appears to be unavailable."
    finally:
        worker.join(5)
    assert not worker.is_alive()


def test_client_listener_serves_handshake(shared_file):
    listener = ClientListener({5: str(shared_file)}, threading.Lock())
    port = listener.start()
    try:
        assert port == listener.port
        sock = connect_to_source(SourceInfo(ip_addr="127.0.0.1", port=port), 2.0)
        with sock:
            size, name = attempt_download_handshake(sock, 5, 2.0)
        assert size == len(CONTENT)
        assert name == shared_file.name
    finally:
        listener.stop()
    assert listener.shutdown.is_set()