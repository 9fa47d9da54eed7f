"""Message codes and the client/server wire messages built on them.

Every message starts with a one-byte :class:`MessageCode`. Integers are
big-endian; IPv4 addresses travel as their four network-order bytes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable

from dfdl.byte_order import get_ip_bytes, ip_bytes_to_string


class MessageCode(IntEnum):
    """The first byte of every message."""

    FAIL = 0x00

    INDEX_REQUEST = 0x01
    INDEX_FORWARD = 0x21
    INDEX_OK = 0x02
    DROP_REQUEST = 0x03
    DROP_FORWARD = 0x23
    DROP_OK = 0x04
    REREGISTER_REQUEST = 0x05
    REREGISTER_FORWARD = 0x25
    REREGISTER_OK = 0x06
    SOURCE_REQUEST = 0x07
    SOURCE_LIST = 0x08
    FORWARD_OK = 0x2F
    CONTROL_REQUEST = 0xA1
    CONTROL_OK = 0xA2
    MIGRATE_OK = 0xB1

    DOWNLOAD_INIT = 0x09
    DOWNLOAD_CONFIRM = 0x0A
    REQUEST_CHUNK = 0x0B
    DATA_CHUNK = 0x0C
    FINISH_DOWNLOAD = 0x0D
    FINISH_OK = 0x0E

    SERVER_REG = 0x0F
    CLIENT_REG = 0x10
    REG_SERVERS_LIST = 0x11
    FORWARD_SERVER_REG = 0x12
    FORWARD_SERVER_OK = 0x13

    ELECT_LEADER = 0x14
    ELECT_X = 0x15
    LEADER_X = 0x16
    BULLY = 0x17

    KEEP_ALIVE = 0x18


class MessageError(ValueError):
    """A message could not be built or parsed."""


@dataclass(frozen=True)
class SourceInfo:
    """A peer or server: its id, IPv4 address and port."""

    peer_id: int = 0
    ip_addr: str = ""
    port: int = 0


@dataclass(frozen=True)
class FileId:
    """Everything needed to index a file: its uuid, indexer and size."""

    uuid: int
    indexer: SourceInfo
    f_size: int


_U64 = struct.Struct(">Q")
_PAIR = struct.Struct(">QQ")
_SOURCE = struct.Struct(">Q4sH")
_ADDR = struct.Struct(">4sH")
_INDEX = struct.Struct(">QQ4sHQ")
_CONTROL = struct.Struct(">QQ4sH")


def _pack(fmt: struct.Struct, *values: object) -> bytes:
    try:
        return fmt.pack(*values)
    except struct.error as exc:
        raise MessageError(f"value out of range: {exc}") from exc


def _ip(ip_addr: str) -> bytes:
    try:
        return get_ip_bytes(ip_addr)
    except ValueError as exc:
        raise MessageError(str(exc)) from exc


def _body(message: bytes, code: MessageCode) -> bytes:
    if not message or message[0] != code:
        raise MessageError(f"expected a {code.name} message")
    return bytes(message[1:])


def _unpack(fmt: struct.Struct, body: bytes, code: MessageCode) -> tuple:
    if len(body) != fmt.size:
        raise MessageError(
            f"{code.name} body must be {fmt.size} bytes, got {len(body)}"
        )
    return fmt.unpack(body)


def _message(code: MessageCode, body: bytes = b"") -> bytes:
    return bytes([code]) + body


def _recode(message: bytes, expected: MessageCode, new: MessageCode) -> bytes:
    if not message or message[0] != expected:
        raise MessageError(f"expected a {expected.name} message")
    return bytes([new]) + bytes(message[1:])


def create_fail_message(error_message: str) -> bytes:
    """Build a FAIL message carrying ``error_message``."""
    return _message(MessageCode.FAIL, error_message.encode("utf-8"))


def parse_fail_message(message: bytes) -> str:
    """Return the error text of a FAIL message."""
    return _body(message, MessageCode.FAIL).decode("utf-8", errors="replace")


def create_index_request(file_info: FileId) -> bytes:
    """Build an INDEX_REQUEST for ``file_info``."""
    indexer = file_info.indexer
    body = _pack(
        _INDEX,
        file_info.uuid,
        indexer.peer_id,
        _ip(indexer.ip_addr),
        indexer.port,
        file_info.f_size,
    )
    return _message(MessageCode.INDEX_REQUEST, body)


def parse_index_request(message: bytes) -> FileId:
    """Return the FileId carried by an INDEX_REQUEST."""
    code = MessageCode.INDEX_REQUEST
    uuid, peer_id, ip, port, f_size = _unpack(_INDEX, _body(message, code), code)
    return FileId(uuid, SourceInfo(peer_id, ip_bytes_to_string(ip), port), f_size)


def create_drop_request(uuids: tuple[int, int]) -> bytes:
    """Build a DROP_REQUEST from a (file uuid, client uuid) pair."""
    file_uuid, client_uuid = uuids
    return _message(MessageCode.DROP_REQUEST, _pack(_PAIR, file_uuid, client_uuid))


def parse_drop_request(message: bytes) -> tuple[int, int]:
    """Return the (file uuid, client uuid) pair of a DROP_REQUEST."""
    code = MessageCode.DROP_REQUEST
    return _unpack(_PAIR, _body(message, code), code)


def _encode_source(source: SourceInfo) -> bytes:
    return _pack(_SOURCE, source.peer_id, _ip(source.ip_addr), source.port)


def _decode_source(peer_id: int, ip: bytes, port: int) -> SourceInfo:
    return SourceInfo(peer_id, ip_bytes_to_string(ip), port)


def create_reregister_request(indexer: SourceInfo) -> bytes:
    """Build a REREGISTER_REQUEST announcing a new address for ``indexer``."""
    return _message(MessageCode.REREGISTER_REQUEST, _encode_source(indexer))


def parse_reregister_request(message: bytes) -> SourceInfo:
    """Return the indexer carried by a REREGISTER_REQUEST."""
    code = MessageCode.REREGISTER_REQUEST
    return _decode_source(*_unpack(_SOURCE, _body(message, code), code))


def create_source_request(uuid: int) -> bytes:
    """Build a SOURCE_REQUEST asking for the sources of file ``uuid``."""
    return _message(MessageCode.SOURCE_REQUEST, _pack(_U64, uuid))


def parse_source_request(message: bytes) -> int:
    """Return the file uuid of a SOURCE_REQUEST."""
    code = MessageCode.SOURCE_REQUEST
    (uuid,) = _unpack(_U64, _body(message, code), code)
    return uuid


def create_source_list(source_list: Iterable[SourceInfo]) -> bytes:
    """Build a SOURCE_LIST of every source indexing a file."""
    body = b"".join(_encode_source(s) for s in source_list)
    return _message(MessageCode.SOURCE_LIST, body)


def parse_source_list(message: bytes) -> list[SourceInfo]:
    """Return the sources carried by a SOURCE_LIST."""
    body = _body(message, MessageCode.SOURCE_LIST)
    if len(body) % _SOURCE.size:
        raise MessageError("SOURCE_LIST body is truncated")
    return [_decode_source(*entry) for entry in _SOURCE.iter_unpack(body)]


def create_control_request(faulty_client: SourceInfo, file_id: int) -> bytes:
    """Build a CONTROL_REQUEST reporting ``faulty_client`` for file ``file_id``."""
    body = _pack(
        _CONTROL,
        file_id,
        faulty_client.peer_id,
        _ip(faulty_client.ip_addr),
        faulty_client.port,
    )
    return _message(MessageCode.CONTROL_REQUEST, body)


def parse_control_request(message: bytes) -> tuple[int, SourceInfo]:
    """Return the (file uuid, faulty client) pair of a CONTROL_REQUEST."""
    code = MessageCode.CONTROL_REQUEST
    file_id, peer_id, ip, port = _unpack(_CONTROL, _body(message, code), code)
    return file_id, _decode_source(peer_id, ip, port)


def _encode_addr(server: SourceInfo) -> bytes:
    return _pack(_ADDR, _ip(server.ip_addr), server.port)


def _decode_addr(ip: bytes, port: int) -> SourceInfo:
    return SourceInfo(ip_addr=ip_bytes_to_string(ip), port=port)


def create_new_server_reg(new_server: SourceInfo) -> bytes:
    """Build a SERVER_REG asking to join the server network."""
    return _message(MessageCode.SERVER_REG, _encode_addr(new_server))


def parse_new_server_reg(message: bytes) -> SourceInfo:
    """Return the address of the server sending a SERVER_REG."""
    code = MessageCode.SERVER_REG
    return _decode_addr(*_unpack(_ADDR, _body(message, code), code))


def create_server_reg_response(servers: Iterable[SourceInfo]) -> bytes:
    """Build a REG_SERVERS_LIST holding the address of each server."""
    body = b"".join(_encode_addr(s) for s in servers)
    return _message(MessageCode.REG_SERVERS_LIST, body)


def parse_server_reg_response(message: bytes) -> list[SourceInfo]:
    """Return the servers carried by a REG_SERVERS_LIST."""
    body = _body(message, MessageCode.REG_SERVERS_LIST)
    if len(body) % _ADDR.size:
        raise MessageError("REG_SERVERS_LIST body is truncated")
    return [_decode_addr(*entry) for entry in _ADDR.iter_unpack(body)]


def create_forward_server_reg(message: bytes) -> bytes:
    """Turn a SERVER_REG into the FORWARD_SERVER_REG sent to known servers."""
    return _recode(message, MessageCode.SERVER_REG, MessageCode.FORWARD_SERVER_REG)


def parse_forward_server_reg(message: bytes) -> SourceInfo:
    """Return the address of the new server named by a FORWARD_SERVER_REG."""
    code = MessageCode.FORWARD_SERVER_REG
    return _decode_addr(*_unpack(_ADDR, _body(message, code), code))


def create_forward_index(message: bytes) -> bytes:
    """Turn an INDEX_REQUEST into an INDEX_FORWARD."""
    return _recode(message, MessageCode.INDEX_REQUEST, MessageCode.INDEX_FORWARD)


def create_forward_drop(message: bytes) -> bytes:
    """Turn a DROP_REQUEST into a DROP_FORWARD."""
    return _recode(message, MessageCode.DROP_REQUEST, MessageCode.DROP_FORWARD)


def create_forward_rereg(message: bytes) -> bytes:
    """Turn a REREGISTER_REQUEST into a REREGISTER_FORWARD."""
    return _recode(
        message, MessageCode.REREGISTER_REQUEST, MessageCode.REREGISTER_FORWARD
    )