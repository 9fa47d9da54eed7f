"""Low-level file reading and writing used by chunk assembly.

None of these functions guard against concurrent use of the same file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO


def bytes_in_file(f_path: str | os.PathLike) -> int:
    """Return the size of the file at ``f_path`` in bytes.

    Raises OSError if the file cannot be examined or is not a regular file.
    """
    path = Path(f_path)
    if not path.is_file():
        raise FileNotFoundError(f"not a regular file: {path}")
    return path.stat().st_size


def read_file(f_path: str | os.PathLike, read_size: int, offset: int) -> bytes:
    """Read up to ``read_size`` bytes from ``f_path`` starting at ``offset``.

    Fewer bytes than asked for means end of file was reached.
    """
    if read_size < 0 or offset < 0:
        raise ValueError("read_size and offset must not be negative")
    with open(f_path, "rb") as handle:
        handle.seek(offset)
        return handle.read(read_size)


def write_to_new_file(f_path: str | os.PathLike, data: bytes) -> BinaryIO:
    """Create ``f_path``, write ``data`` to it and return the open file.

    Raises FileExistsError if the file already exists.
    """
    handle = open(f_path, "xb")
    try:
        handle.write(data)
    except BaseException:
        handle.close()
        raise
    return handle


def write_to_file(file: BinaryIO, data: bytes, offset: int) -> None:
    """Write ``data`` at ``offset`` in ``file``.

    Writing past the end of the file fills the gap with NUL bytes.
    """
    if file is None or file.closed:
        raise ValueError("file is not open")
    if offset < 0:
        raise ValueError("offset must not be negative")
    file.seek(offset)
    file.write(data)


def delete_file(f_path: str | os.PathLike) -> None:
    """Delete the file at ``f_path``; raises FileNotFoundError if missing."""
    Path(f_path).unlink()