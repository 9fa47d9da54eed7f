"""Serving indexed files to peers that download them from this client."""

from __future__ import annotations

import logging
import socket
import threading
import time
from pathlib import Path
from typing import Mapping, Optional

from dfdl.client_networking import PeerError, recv_okay, send_okay
from dfdl.file_parsing import file_size, package_file_chunk, set_chunk_size
from dfdl.messages import MessageCode, MessageError, create_fail_message
from dfdl.net import open_socket, tcp_accept, tcp_listen
from dfdl.peer_messages import (
    DataChunk,
    create_data_chunk,
    create_download_confirm,
    parse_chunk_request,
    parse_download_init,
)

log = logging.getLogger(__name__)

MAX_PEER_THREADS = 5
SEED_TIMEOUT = 3.0
ACCEPT_TIMEOUT = 1.0
_SEED_GRACE = 2.0


def _fail_and_close(message: str, sock: socket.socket) -> PeerError:
    """Tell the peer what went wrong, close the socket and build the error."""
    send_okay(sock, create_fail_message(message))
    sock.close()
    return PeerError(message)


def init_handshake(
    peer_sock: socket.socket,
    indexed_files: Mapping[int, str],
    indexed_files_lock: threading.Lock,
    timeout: Optional[float] = SEED_TIMEOUT,
) -> Path:
    """Answer a peer's DOWNLOAD_INIT with a DOWNLOAD_CONFIRM.

    Returns the path of the requested file. On failure the socket is
    closed and PeerError is raised; where it helps the peer, a FAIL
    message explaining why is sent first.
    """
    try:
        message = recv_okay(peer_sock, MessageCode.DOWNLOAD_INIT, timeout)
        uuid, chunk_size = parse_download_init(message)
    except (PeerError, MessageError) as exc:
        peer_sock.close()
        raise PeerError(f"bad download request: {exc}") from exc

    with indexed_files_lock:
        f_path = indexed_files.get(uuid) if uuid else None
    if f_path is None:
        peer_sock.close()
        raise PeerError(f"file {uuid} is not indexed here")
    if not f_path:
        raise _fail_and_close("[err] Could not find file. Sorry.", peer_sock)

    path = Path(f_path)
    if chunk_size is not None:
        set_chunk_size(chunk_size)

    try:
        size = file_size(path)
        confirm = create_download_confirm(size, path.name)
    except (OSError, MessageError):
        raise _fail_and_close(
            "[err] Could not determine file size. Sorry.", peer_sock
        ) from None

    if not send_okay(peer_sock, confirm):
        peer_sock.close()
        raise PeerError("could not send the download confirmation")
    return path


def seed_to_peer(
    shutdown: threading.Event,
    peer_sock: socket.socket,
    indexed_files: Mapping[int, str],
    indexed_files_lock: threading.Lock,
) -> None:
    """Serve chunk requests from one connected peer until it stops asking."""
    try:
        path = init_handshake(peer_sock, indexed_files, indexed_files_lock)
    except PeerError as exc:
        log.debug("handshake with peer failed: %s", exc)
        return

    with peer_sock:
        while not shutdown.is_set():
            try:
                request = recv_okay(peer_sock, MessageCode.REQUEST_CHUNK, SEED_TIMEOUT)
            except PeerError:
                break
            try:
                chunk_id = parse_chunk_request(request)
                data = package_file_chunk(path, chunk_id)
            except (OSError, ValueError):
                send_okay(
                    peer_sock,
                    create_fail_message("Sorry, file appears to be unavailable."),
                )
                break
            if not send_okay(peer_sock, create_data_chunk(DataChunk(chunk_id, data))):
                break


class ClientListener:
    """Accepts peer connections and serves each one in its own thread."""

    def __init__(
        self,
        indexed_files: Mapping[int, str],
        indexed_files_lock: threading.Lock,
        shutdown: Optional[threading.Event] = None,
        max_pending: int = MAX_PEER_THREADS,
    ) -> None:
        self.indexed_files = indexed_files
        self.indexed_files_lock = indexed_files_lock
        self.shutdown = shutdown if shutdown is not None else threading.Event()
        self.max_pending = max_pending
        self.port = 0
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._seeds: list[threading.Thread] = []

    def start(self) -> int:
        """Open the listening socket, start accepting and return its port.

        Raises OSError if the socket cannot be opened or put into listening.
        """
        sock, port = open_socket(True, 0)
        try:
            tcp_listen(sock, self.max_pending)
        except BaseException:
            sock.close()
            raise
        self._sock = sock
        self.port = port
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()
        return port

    def _serve(self) -> None:
        assert self._sock is not None
        while not self.shutdown.is_set():
            try:
                conn, _ = tcp_accept(self._sock, ACCEPT_TIMEOUT)
            except TimeoutError:
                continue
            except OSError:
                if self.shutdown.is_set():
                    break
                continue
            seed = threading.Thread(
                target=seed_to_peer,
                args=(self.shutdown, conn, self.indexed_files, self.indexed_files_lock),
                daemon=True,
            )
            seed.start()
            self._seeds = [t for t in self._seeds if t.is_alive()]
            self._seeds.append(seed)

    def stop(self) -> None:
        """Stop accepting, give running seeds a moment to end, and close."""
        self.shutdown.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        deadline = time.monotonic() + _SEED_GRACE
        for seed in self._seeds:
            seed.join(max(0.0, deadline - time.monotonic()))
        self._seeds.clear()
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "ClientListener":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()