import socket
import threading
from collections import deque

import pytest

from dfdl.client_networking import PeerError
from dfdl.file_parsing import set_download_dir
from dfdl.messages import MessageCode, SourceInfo
from dfdl.net import open_socket, recv_message, send_message, tcp_accept, tcp_listen
from dfdl.peer_download import (
    DownloadJob,
    attempt_initial_chunk_download,
    download_chunk,
    download_thread,
    select_peer_source,
)
from dfdl.peer_messages import (
    DataChunk,
    create_chunk_request,
    create_data_chunk,
    create_download_confirm,
    parse_chunk_request,
    parse_download_init,
)


class _Seeder:
    def __init__(self, name, content, size):
        self.name = name
        self.content = content
        self.size = size
        self.log = []
        self._listener, port = open_socket(True, 0)
        tcp_listen(self._listener, 1)
        self.info = SourceInfo(peer_id=3, ip_addr="127.0.0.1", port=port)
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc):
        self._thread.join(5)
        self._listener.close()

    def _serve(self):
        try:
            conn, _ = tcp_accept(self._listener, 5)
        except OSError:
            return
        with conn:
            try:
                self.log.append(recv_message(conn, 5))
                send_message(conn, create_download_confirm(len(self.content), self.name))
            except OSError:
                return
            while True:
                try:
                    message = recv_message(conn, 5)
                except OSError:
                    break
                self.log.append(message)
                if message[0] == MessageCode.FINISH_DOWNLOAD:
                    break
                index = parse_chunk_request(message)
                data = self.content[index * self.size:(index + 1) * self.size]
                send_message(conn, create_data_chunk(DataChunk(index, data)))


def _free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def download_dir(tmp_path):
    path = tmp_path / "downloads"
    set_download_dir(path)
    return path


def test_select_peer_source_claims_first_free():
    stats = [False, True, True]
    assert select_peer_source(stats) == 1
    assert stats == [False, False, True]


def test_select_peer_source_none_free():
    stats = [False, False]
    assert select_peer_source(stats) is None
    assert stats == [False, False]


def test_job_defaults_all_peers_free():
    peers = [SourceInfo(1, "127.0.0.1", 2000), SourceInfo(2, "127.0.0.1", 2001)]
    job = DownloadJob(f_uuid=7, sources=peers, remaining_chunks=[1, 2, 3])
    assert job.f_stats == [True, True]
    assert job.select_peer() == 0
    assert job.select_peer() == 1
    assert job.select_peer() is None


def test_job_chunk_queue_order_and_requeue():
    job = DownloadJob(f_uuid=7, sources=[], remaining_chunks=[1, 2])
    assert job.next_chunk() == 1
    job.requeue_chunk(1)
    assert [job.next_chunk(), job.next_chunk(), job.next_chunk()] == [2, 1, None]


def test_job_add_bad_peer():
    peer = SourceInfo(1, "127.0.0.1", 2000)
    job = DownloadJob(f_uuid=7, sources=[peer])
    job.add_bad_peer(peer)
    assert job.bad_peers == [peer]


def test_job_mark_done_wakes_waiter():
    job = DownloadJob(f_uuid=7, sources=[])
    results = []

    def wait():
        with job.chunk_ready:
            results.append(job.chunk_ready.wait_for(lambda: bool(job.done_chunks), 5))

    waiter = threading.Thread(target=wait)
    waiter.start()
    job.mark_done(4)
    waiter.join(5)
    assert results == [True]
    assert job.done_chunks == deque([4])


def test_download_chunk_stores_data(download_dir):
    a, b = socket.socketpair()
    with a, b:
        payload = b"chunk three data"

        def reply():
            recv_message(b, 5)
            send_message(b, create_data_chunk(DataChunk(3, payload)))

        thread = threading.Thread(target=reply, daemon=True)
        thread.start()
        download_chunk(a, 3, "doc.txt", 5)
        thread.join(5)
    assert (download_dir / "doc.txt-3").read_bytes() == payload


def test_download_chunk_wrong_reply_raises(download_dir):
    a, b = socket.socketpair()
    with a, b:
        def reply():
            recv_message(b, 5)
            send_message(b, bytes([MessageCode.FINISH_OK]))

        thread = threading.Thread(target=reply, daemon=True)
        thread.start()
        with pytest.raises(PeerError):
            download_chunk(a, 3, "doc.txt", 5)
        thread.join(5)
    assert not (download_dir / "doc.txt-3").exists()


def test_initial_chunk_download_creates_file(download_dir):
    content = b"hello world"
    with _Seeder("doc.txt", content, 1024) as seeder:
        name, size, file = attempt_initial_chunk_download(55, seeder.info, 2, 5)
        file.close()
    assert (name, size) == ("doc.txt", len(content))
    assert (download_dir / "doc.txt").read_bytes() == content
    assert not (download_dir / "doc.txt-0").exists()
    assert parse_download_init(seeder.log[0]) == (55, None)
    assert seeder.log[1] == create_chunk_request(0)
    assert seeder.log[-1] == bytes([MessageCode.FINISH_DOWNLOAD])


def test_initial_chunk_download_refuses_existing_file(download_dir):
    (download_dir / "doc.txt").write_bytes(b"old")
    with _Seeder("doc.txt", b"new content", 1024) as seeder:
        with pytest.raises(FileExistsError):
            attempt_initial_chunk_download(55, seeder.info, 2, 5)
    assert (download_dir / "doc.txt").read_bytes() == b"old"


def test_initial_chunk_download_unreachable_peer(download_dir):
    peer = SourceInfo(ip_addr="127.0.0.1", port=_free_port())
    with pytest.raises(PeerError):
        attempt_initial_chunk_download(55, peer, 1, 1)


def test_download_thread_fetches_all_remaining_chunks(download_dir):
    content = b"abcdefghij"
    with _Seeder("doc.txt", content, 4) as seeder:
        job = DownloadJob(
            f_uuid=55,
            sources=[seeder.info],
            remaining_chunks=[1, 2],
            connection_timeout=2,
            response_timeout=5,
        )
        download_thread(job)
    assert job.done_chunks == deque([1, 2])
    assert (download_dir / "doc.txt-1").read_bytes() == content[4:8]
    assert (download_dir / "doc.txt-2").read_bytes() == content[8:]
    assert job.f_stats == [True]
    assert job.bad_peers == []
    assert seeder.log[-1] == bytes([MessageCode.FINISH_DOWNLOAD])


def test_download_thread_records_unreachable_peer(download_dir):
    peer = SourceInfo(ip_addr="127.0.0.1", port=_free_port())
    job = DownloadJob(
        f_uuid=55,
        sources=[peer],
        remaining_chunks=[1, 2],
        connection_timeout=1,
        response_timeout=1,
    )
    download_thread(job)
    assert job.bad_peers == [peer]
    assert list(job.remaining_chunks) == [1, 2]
    assert job.f_stats == [False]
    assert not job.done_chunks