"""Peer-to-peer download messages: handshake, chunk requests and data chunks.

All integers are big-endian and unsigned 64-bit. The first byte of every
message is its :class:`~dfdl.messages.MessageCode`.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from dfdl.messages import MessageCode, MessageError

_U64 = struct.Struct(">Q")
_U64_PAIR = struct.Struct(">QQ")


@dataclass(frozen=True)
class DataChunk:
    """A chunk of file data and its 0-based index."""

    index: int
    data: bytes


def _pack(fmt: struct.Struct, *values: int) -> bytes:
    try:
        return fmt.pack(*values)
    except struct.error as exc:
        raise MessageError(f"value out of range: {exc}") from exc


def _body(message: bytes, code: MessageCode) -> bytes:
    if not message or message[0] != code:
        raise MessageError(f"expected a {code.name} message")
    return bytes(message[1:])


def _head(body: bytes, code: MessageCode) -> tuple[int, bytes]:
    if len(body) < _U64.size:
        raise MessageError(f"{code.name} body is truncated")
    (value,) = _U64.unpack_from(body)
    return value, body[_U64.size:]


def create_download_init(uuid: int, chunk_size: Optional[int] = None) -> bytes:
    """Build a DOWNLOAD_INIT for file ``uuid``.

    ``chunk_size`` is sent only when given; otherwise the peer assumes the
    default chunk size.
    """
    if chunk_size is None:
        body = _pack(_U64, uuid)
    else:
        body = _pack(_U64_PAIR, uuid, chunk_size)
    return bytes([MessageCode.DOWNLOAD_INIT]) + body


def parse_download_init(message: bytes) -> tuple[int, Optional[int]]:
    """Return the (file uuid, chunk size or None) pair of a DOWNLOAD_INIT."""
    code = MessageCode.DOWNLOAD_INIT
    body = _body(message, code)
    if len(body) == _U64.size:
        (uuid,) = _U64.unpack(body)
        return uuid, None
    if len(body) == _U64_PAIR.size:
        uuid, chunk_size = _U64_PAIR.unpack(body)
        return uuid, chunk_size
    raise MessageError(f"{code.name} body has invalid length {len(body)}")


def create_download_confirm(f_size: int, f_name: str) -> bytes:
    """Build a DOWNLOAD_CONFIRM telling a downloader the file's size and name."""
    if not f_name:
        raise MessageError("file name must not be empty")
    body = _pack(_U64, f_size) + f_name.encode("utf-8")
    return bytes([MessageCode.DOWNLOAD_CONFIRM]) + body


def parse_download_confirm(message: bytes) -> tuple[int, str]:
    """Return the (file size, file name) pair of a DOWNLOAD_CONFIRM."""
    code = MessageCode.DOWNLOAD_CONFIRM
    f_size, rest = _head(_body(message, code), code)
    if not rest:
        raise MessageError(f"{code.name} carries no file name")
    try:
        name = rest.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MessageError(f"{code.name} file name is not valid UTF-8") from exc
    return f_size, name


def create_chunk_request(chunk: int) -> bytes:
    """Build a REQUEST_CHUNK asking for chunk ``chunk`` (0-based)."""
    return bytes([MessageCode.REQUEST_CHUNK]) + _pack(_U64, chunk)


def parse_chunk_request(message: bytes) -> int:
    """Return the chunk index of a REQUEST_CHUNK."""
    code = MessageCode.REQUEST_CHUNK
    body = _body(message, code)
    if len(body) != _U64.size:
        raise MessageError(f"{code.name} body must be {_U64.size} bytes")
    (chunk,) = _U64.unpack(body)
    return chunk


def create_data_chunk(chunk: DataChunk) -> bytes:
    """Build a DATA_CHUNK carrying ``chunk``."""
    return bytes([MessageCode.DATA_CHUNK]) + _pack(_U64, chunk.index) + bytes(chunk.data)


def parse_data_chunk(message: bytes) -> DataChunk:
    """Return the DataChunk carried by a DATA_CHUNK.

    The data may be of any length; checking it is left to the caller.
    """
    code = MessageCode.DATA_CHUNK
    index, data = _head(_body(message, code), code)
    return DataChunk(index, data)