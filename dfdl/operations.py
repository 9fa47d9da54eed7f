"""Client requests to the server network: indexing and dropping files."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, MutableMapping

from dfdl.client_networking import PeerError
from dfdl.file_parsing import file_size, sha256_hash
from dfdl.messages import FileId, SourceInfo
from dfdl.server_requests import attempt_drop, attempt_index, attempt_server_update

_ROUNDS = 2
_TRIES = 3


@dataclass(frozen=True)
class Timeouts:
    """Timeouts, in seconds, for talking to servers."""

    connection: float = 0.5
    response: float = 2.0
    update: float = 1.0


DEFAULT_TIMEOUTS = Timeouts()


def update_server_list(
    server_list: list[SourceInfo], timeouts: Timeouts = DEFAULT_TIMEOUTS
) -> bool:
    """Refresh ``server_list`` in place from the first server that answers.

    The answering server is kept at the end of the new list. Returns
    whether any server answered.
    """
    for server in list(server_list):
        try:
            others = attempt_server_update(
                server, timeouts.connection, timeouts.response
            )
        except PeerError:
            continue
        server_list[:] = [*others, server]
        return True
    return False


def parse_file(my_listener: SourceInfo, f_path: str | os.PathLike) -> FileId:
    """Return the FileId of the file at ``f_path`` as indexed by ``my_listener``.

    Raises FileNotFoundError if the file does not exist.
    """
    path = Path(f_path)
    if not path.exists():
        raise FileNotFoundError(f"file cannot be found: {path}")
    uuid = sha256_hash(path)
    if uuid == 0:
        raise ValueError(f"file uuid could not be computed: {path}")
    return FileId(uuid, my_listener, file_size(path))


def do_attempts(
    server_list: list[SourceInfo], fn: Callable[..., Any], *args: Any
) -> Any:
    """Call ``fn(*args, server, connection_timeout, response_timeout)`` until one succeeds.

    The server list is refreshed first. Every server is tried three times
    with the connection timeout doubling each time, and the whole round is
    repeated once. Returns what the successful call returned; raises
    PeerError if every attempt failed.
    """
    timeouts = DEFAULT_TIMEOUTS
    update_server_list(server_list, timeouts)

    for _ in range(_ROUNDS):
        for attempt in range(_TRIES):
            connection_timeout = timeouts.connection * (2**attempt)
            for server in list(server_list):
                try:
                    return fn(*args, server, connection_timeout, timeouts.response)
                except (PeerError, OSError):
                    continue
    raise PeerError(
        "tried all known servers twice, and received no response from any"
    )


def do_index(
    my_listener: SourceInfo,
    file_path: str | os.PathLike,
    indexed_files: MutableMapping[int, str],
    indexed_files_lock: threading.Lock,
    server_list: list[SourceInfo],
) -> int:
    """Index the file at ``file_path`` with the network and return its uuid."""
    f_info = parse_file(my_listener, file_path)
    print("Indexing...")
    do_attempts(server_list, attempt_index, f_info)
    with indexed_files_lock:
        indexed_files[f_info.uuid] = str(Path(file_path).absolute())
    print(f"File: '{f_info.uuid}' is now indexed with the DFD network.")
    return f_info.uuid


def do_drop(
    my_listener: SourceInfo,
    file_path: str | os.PathLike,
    indexed_files: MutableMapping[int, str],
    indexed_files_lock: threading.Lock,
    server_list: list[SourceInfo],
) -> int:
    """Drop the file at ``file_path`` from the network and return its uuid.

    The file stays listed with an empty path, so that peers asking for it
    are told it is gone. Raises LookupError if the file is not indexed.
    """
    f_info = parse_file(my_listener, file_path)
    with indexed_files_lock:
        indexed = f_info.uuid in indexed_files
    if not indexed:
        raise LookupError("This file is not currently indexed.")

    print("Dropping...")
    do_attempts(server_list, attempt_drop, (f_info.uuid, my_listener.peer_id))
    with indexed_files_lock:
        indexed_files[f_info.uuid] = ""
    print(f"File: '{f_info.uuid}' is now dropped from the DFD network.")
    return f_info.uuid