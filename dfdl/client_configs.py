"""Client configuration files: the known-host list and the client's uuid."""

from __future__ import annotations

import logging
import os
import secrets
import struct
from pathlib import Path
from typing import Iterable

from dfdl.messages import SourceInfo

log = logging.getLogger(__name__)

_MAX_U64 = 2**64 - 1
_MAX_PORT = 65535
_UUID = struct.Struct("=Q")


class HostFileError(Exception):
    """The host file could not be read, parsed or written."""


def _parse_unsigned(token: str, limit: int, what: str, line: str) -> int:
    digits = token[1:] if token.startswith("+") else token
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise HostFileError(f"invalid {what} {token!r} in line {line!r}")
    value = int(digits)
    if value > limit:
        raise HostFileError(f"{what} out of range in line {line!r}")
    return value


def get_host_list_from_disk(host_path: str | os.PathLike) -> list[SourceInfo]:
    """Read the host list at ``host_path``.

    Each non-blank line not starting with ``#`` holds a peer id, an IPv4
    address and a port, separated by commas or whitespace. The parent
    directory is created if missing. Raises HostFileError if the file
    cannot be read or a line is malformed.
    """
    path = Path(host_path).absolute()
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        text = path.read_text()
    except OSError as exc:
        raise HostFileError(f"cannot read host file {path}: {exc}") from exc

    hosts = []
    for raw_line in text.splitlines():
        line = raw_line.strip(" \t\r\n")
        if not line or line.startswith("#"):
            continue
        tokens = line.replace(",", " ").split()
        if len(tokens) != 3:
            raise HostFileError(f"expected 3 fields in line {line!r}")
        peer_str, ip, port_str = tokens
        peer_id = _parse_unsigned(peer_str, _MAX_U64, "peer id", line)
        port = _parse_unsigned(port_str, _MAX_PORT, "port", line)
        hosts.append(SourceInfo(peer_id=peer_id, ip_addr=ip, port=port))
    return hosts


def store_host_list_to_disk(
    hosts: Iterable[SourceInfo], host_path: str | os.PathLike
) -> None:
    """Write ``hosts`` to ``host_path``, one ``0, ip, port`` line each.

    Raises HostFileError if the file cannot be written.
    """
    path = Path(host_path)
    lines = "".join(f"0, {h.ip_addr}, {h.port}\n" for h in hosts)
    try:
        if path.parent != Path("."):
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(lines)
    except OSError as exc:
        raise HostFileError(f"cannot write host file {path}: {exc}") from exc


def _new_uuid() -> int:
    uuid = int.from_bytes(os.urandom(4), "little")
    if uuid == 0:
        log.warning("falling back to a 64-bit random generator for the uuid")
        while uuid == 0:
            uuid = secrets.randbits(64)
    return uuid


def get_my_uuid(uuid_path: str | os.PathLike) -> int:
    """Return this client's uuid, loading it from ``uuid_path`` or creating it.

    A file holding at least eight bytes supplies the uuid. Otherwise a new
    one is generated and saved to ``uuid_path``.
    """
    path = Path(uuid_path)
    try:
        with path.open("rb") as handle:
            data = handle.read(_UUID.size)
    except OSError:
        data = None

    if data is not None:
        if len(data) == _UUID.size:
            (uuid,) = _UUID.unpack(data)
            log.info("loaded uuid %d from %s", uuid, path)
            return uuid
        log.error("uuid file %s exists but does not hold valid data", path)

    uuid = _new_uuid()
    try:
        path.write_bytes(_UUID.pack(uuid))
        log.info("generated new uuid %d and saved it to %s", uuid, path)
    except OSError:
        log.error("could not write the new uuid to %s", path)
    return uuid