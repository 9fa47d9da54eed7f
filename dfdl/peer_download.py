"""Downloading file chunks from peers, first alone and then in worker threads."""

from __future__ import annotations

import socket
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from dfdl.client_networking import (
    PeerError,
    attempt_download_handshake,
    connect_to_source,
    send_and_recv,
    send_okay,
)
from dfdl.file_parsing import get_download_dir, open_file, unpack_file_chunk
from dfdl.messages import MessageCode, MessageError, SourceInfo
from dfdl.peer_messages import create_chunk_request, parse_data_chunk

_FINISH = bytes([MessageCode.FINISH_DOWNLOAD])


def select_peer_source(f_stats: list[bool]) -> Optional[int]:
    """Claim the first free peer in ``f_stats`` and return its index.

    The claimed entry is marked busy. Returns None if no peer is free.
    """
    index = next((i for i, free in enumerate(f_stats) if free), None)
    if index is not None:
        f_stats[index] = False
    return index


def _fetch_chunk(
    sock: socket.socket, chunk_index: int, response_timeout: Optional[float]
) -> bytes:
    response = send_and_recv(
        sock,
        create_chunk_request(chunk_index),
        MessageCode.DATA_CHUNK,
        response_timeout,
    )
    try:
        return parse_data_chunk(response).data
    except MessageError as exc:
        raise PeerError(f"malformed data chunk: {exc}") from exc


def attempt_initial_chunk_download(
    f_uuid: int,
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> tuple[str, int, BinaryIO]:
    """Fetch chunk 0 of ``f_uuid`` from ``server`` and start the file with it.

    Returns the file's name, its size and the new file, open for writing
    the remaining chunks. Raises FileExistsError if the download directory
    already holds a file of that name, and PeerError on any other failure.
    """
    sock = connect_to_source(server, connection_timeout)
    f_size, f_name = attempt_download_handshake(sock, f_uuid, response_timeout)

    with sock:
        if (get_download_dir() / f_name).exists():
            raise FileExistsError(
                f"{f_name} already exists in the download directory"
            )
        data = _fetch_chunk(sock, 0, response_timeout)
        send_okay(sock, _FINISH)

    try:
        unpack_file_chunk(f_name, data, 0)
        file = open_file(f_name)
    except FileExistsError:
        raise
    except (OSError, ValueError) as exc:
        raise PeerError(f"could not start {f_name!r}: {exc}") from exc
    return f_name, f_size, file


@dataclass
class DownloadJob:
    """State shared by the threads downloading one file.

    ``f_stats`` marks which of ``sources`` are free to be used; by default
    all are. ``chunk_ready`` guards ``done_chunks`` and is notified when a
    chunk is stored.
    """

    f_uuid: int
    sources: list[SourceInfo]
    remaining_chunks: deque[int] = field(default_factory=deque)
    connection_timeout: Optional[float] = None
    response_timeout: Optional[float] = None
    f_stats: list[bool] = field(default_factory=list)
    bad_peers: list[SourceInfo] = field(default_factory=list)
    done_chunks: deque[int] = field(default_factory=deque)
    stat_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )
    bad_peers_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )
    remaining_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )
    chunk_ready: threading.Condition = field(
        default_factory=threading.Condition, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.remaining_chunks = deque(self.remaining_chunks)
        if not self.f_stats:
            self.f_stats = [True] * len(self.sources)

    def select_peer(self) -> Optional[int]:
        """Claim a free peer and return its index, or None if none is free."""
        with self.stat_lock:
            return select_peer_source(self.f_stats)

    def _release_peer(self, index: int) -> None:
        with self.stat_lock:
            self.f_stats[index] = True

    def add_bad_peer(self, peer: SourceInfo) -> None:
        """Record ``peer`` as having failed to serve the file."""
        with self.bad_peers_lock:
            self.bad_peers.append(peer)

    def next_chunk(self) -> Optional[int]:
        """Take the next chunk still to download, or None if none are left."""
        with self.remaining_lock:
            if not self.remaining_chunks:
                return None
            return self.remaining_chunks.popleft()

    def requeue_chunk(self, chunk: int) -> None:
        """Put a chunk whose download failed back in the queue."""
        with self.remaining_lock:
            self.remaining_chunks.append(chunk)

    def mark_done(self, chunk: int) -> None:
        """Record ``chunk`` as stored and wake whoever waits for chunks."""
        with self.chunk_ready:
            self.done_chunks.append(chunk)
            self.chunk_ready.notify()


def download_chunk(
    sock: socket.socket,
    chunk_index: int,
    f_name: str,
    response_timeout: Optional[float] = None,
) -> None:
    """Fetch chunk ``chunk_index`` over a handshaken peer socket and store it."""
    data = _fetch_chunk(sock, chunk_index, response_timeout)
    try:
        unpack_file_chunk(f_name, data, chunk_index)
    except (OSError, ValueError) as exc:
        raise PeerError(f"could not store chunk {chunk_index}: {exc}") from exc


def download_thread(job: DownloadJob) -> None:
    """Download chunks of ``job`` from free peers until none are left.

    A peer that cannot be reached, or fails before giving a single chunk,
    is recorded as bad; a chunk it failed on goes back in the queue.
    """
    while (peer_index := job.select_peer()) is not None:
        peer = job.sources[peer_index]

        try:
            sock = connect_to_source(peer, job.connection_timeout)
        except PeerError:
            job.add_bad_peer(peer)
            continue

        try:
            _, f_name = attempt_download_handshake(
                sock, job.f_uuid, job.response_timeout
            )
        except PeerError:
            job.add_bad_peer(peer)
            return

        obtained = 0
        with sock:
            while (chunk := job.next_chunk()) is not None:
                try:
                    download_chunk(sock, chunk, f_name, job.response_timeout)
                except PeerError:
                    break
                job.mark_done(chunk)
                obtained += 1
            send_okay(sock, _FINISH)

        if chunk is None:
            job._release_peer(peer_index)
            return
        if obtained == 0:
            job.add_bad_peer(peer)
        job.requeue_chunk(chunk)