"""Downloading a file from the peers that index it."""

from __future__ import annotations

import math
import os
import threading
from collections import deque
from pathlib import Path
from typing import BinaryIO

from dfdl.client_networking import PeerError
from dfdl.file_parsing import assemble_chunk, file_chunks, get_download_dir, save_file
from dfdl.messages import SourceInfo
from dfdl.operations import DEFAULT_TIMEOUTS, Timeouts, do_attempts
from dfdl.peer_download import (
    DownloadJob,
    attempt_initial_chunk_download,
    download_thread,
    select_peer_source,
)
from dfdl.server_requests import attempt_control, attempt_source_retrieval

BAR_WIDTH = 80
MAX_DOWNLOAD_THREADS = 5
CHUNK_WAIT = 10.0


def progress_bar(chunks_written: int, f_chunks: int) -> str:
    """Return an 80-column progress bar for ``chunks_written`` of ``f_chunks``."""
    fraction = chunks_written / f_chunks if f_chunks else 1.0
    threshold = BAR_WIDTH * fraction
    bar = "".join("#" if i < threshold else "-" for i in range(BAR_WIDTH))
    return f"[{bar}] {math.floor(fraction * 100)}%"


def _assemble(file: BinaryIO, f_name: str, chunks: list[int]) -> int:
    for chunk in chunks:
        assemble_chunk(file, f_name, chunk)
    return len(chunks)


def _take_done(job: DownloadJob) -> list[int]:
    with job.chunk_ready:
        ready = list(job.done_chunks)
        job.done_chunks.clear()
    return ready


def _fetch_remaining(
    f_uuid: int,
    f_name: str,
    f_size: int,
    file: BinaryIO,
    sources: list[SourceInfo],
    f_stats: list[bool],
    bad_peers: list[SourceInfo],
    server_list: list[SourceInfo],
    timeouts: Timeouts,
) -> None:
    f_chunks = file_chunks(f_size)
    if f_chunks <= 1:
        return

    job = DownloadJob(
        f_uuid,
        sources,
        deque(range(1, f_chunks)),
        timeouts.connection,
        timeouts.response,
        f_stats=f_stats,
        bad_peers=bad_peers,
    )
    num_threads = min(
        len(sources), os.cpu_count() or 1, f_chunks - 1, MAX_DOWNLOAD_THREADS
    )
    workers = [
        threading.Thread(target=download_thread, args=(job,), daemon=True)
        for _ in range(num_threads)
    ]
    for worker in workers:
        worker.start()

    written = 0
    timed_out = False
    while True:
        print(progress_bar(written, f_chunks), end="\r", flush=True)
        with job.chunk_ready:
            if not job.chunk_ready.wait_for(lambda: job.done_chunks, CHUNK_WAIT):
                timed_out = True
                break
        written += _assemble(file, f_name, _take_done(job))
        with job.remaining_lock:
            if not job.remaining_chunks:
                break

    for worker in workers:
        worker.join()

    for faulty in job.bad_peers:
        print(f"{faulty.ip_addr} {faulty.port}")
        do_attempts(server_list, attempt_control, f_uuid, faulty)

    if timed_out:
        raise PeerError("All peers have dropped out mid-download. Cannot continue, sorry.")

    written += _assemble(file, f_name, _take_done(job))
    print(progress_bar(f_chunks, f_chunks))

    if written != f_chunks - 1:
        raise PeerError(
            "Some chunks were corrupted and no peers remain to re-request from. Sorry."
        )


def do_download(f_uuid: int, server_list: list[SourceInfo]) -> Path:
    """Download file ``f_uuid`` from its peers into the download directory.

    Returns the path of the finished file. Raises PeerError if no server or
    peer can supply it, and FileExistsError if a file of the same name is
    already in the download directory.
    """
    timeouts = DEFAULT_TIMEOUTS
    print("Sourcing file...")

    try:
        sources = do_attempts(server_list, attempt_source_retrieval, f_uuid)
    except PeerError as exc:
        raise PeerError(f"{exc}; could not find any peers") from exc
    if not sources:
        raise PeerError("Server responded, but no sources available. Sorry.")

    f_stats = [True] * len(sources)
    bad_peers: list[SourceInfo] = []
    started = None
    while (index := select_peer_source(f_stats)) is not None:
        peer = sources[index]
        try:
            started = attempt_initial_chunk_download(
                f_uuid, peer, timeouts.connection, timeouts.response
            )
        except PeerError:
            bad_peers.append(peer)
            continue
        f_stats[index] = True
        break

    if started is None:
        raise PeerError(
            "Exhausted peer list before a peer responded. Please try again later."
        )

    f_name, f_size, file = started
    try:
        _fetch_remaining(
            f_uuid,
            f_name,
            f_size,
            file,
            sources,
            f_stats,
            bad_peers,
            server_list,
            timeouts,
        )
        save_file(file)
    finally:
        file.close()

    print("Downloaded file.")
    return get_download_dir() / f_name