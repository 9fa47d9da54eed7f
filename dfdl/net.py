"""Socket helpers: framed TCP messages and single-datagram UDP messages.

A TCP message is sent as an eight-byte big-endian length followed by the
message bytes. Timeouts are given in seconds; ``None`` blocks.
"""

from __future__ import annotations

import socket
import struct
import time
from typing import Optional

from dfdl.byte_order import get_ip_bytes
from dfdl.messages import SourceInfo

MSG_LEN_BYTES = 8
MAX_UDP_PAYLOAD = 1472
_MAX_DATAGRAM = 65535
_LEN = struct.Struct(">Q")


def msg_len_to_bytes(val: int) -> bytes:
    """Encode a message length as eight big-endian bytes."""
    try:
        return _LEN.pack(val)
    except struct.error as exc:
        raise ValueError(f"message length out of range: {val}") from exc


def bytes_to_msg_len(data: bytes) -> int:
    """Decode a message length from the first eight bytes of ``data``."""
    if len(data) < MSG_LEN_BYTES:
        raise ValueError(f"need {MSG_LEN_BYTES} bytes for a length, got {len(data)}")
    (length,) = _LEN.unpack_from(data)
    return length


def open_socket(
    is_server: bool, port: int = 0, udp: bool = False
) -> tuple[socket.socket, int]:
    """Open a TCP (or UDP) socket.

    A server socket, or any socket given a port, is bound on all interfaces;
    port 0 lets the system choose. Returns the socket and its bound port,
    which is 0 for an unbound client socket.
    """
    kind = socket.SOCK_DGRAM if udp else socket.SOCK_STREAM
    sock = socket.socket(socket.AF_INET, kind)
    try:
        if is_server or port:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("0.0.0.0", port))
            return sock, sock.getsockname()[1]
        return sock, 0
    except BaseException:
        sock.close()
        raise


def tcp_connect(
    sock: socket.socket, connect_to: SourceInfo, timeout: Optional[float] = None
) -> None:
    """Connect ``sock`` to ``connect_to``, giving up after ``timeout``."""
    sock.settimeout(timeout)
    try:
        sock.connect((connect_to.ip_addr, connect_to.port))
    finally:
        sock.settimeout(None)


def tcp_listen(sock: socket.socket, max_pending: int) -> None:
    """Start listening, queueing at most ``max_pending`` connections."""
    sock.listen(max_pending)


def tcp_accept(
    server_sock: socket.socket, timeout: Optional[float] = None
) -> tuple[socket.socket, SourceInfo]:
    """Accept a connection, returning the socket and the peer's address.

    Raises TimeoutError if none arrives within ``timeout``.
    """
    server_sock.settimeout(timeout)
    try:
        conn, (ip, port) = server_sock.accept()
    finally:
        server_sock.settimeout(None)
    conn.settimeout(None)
    return conn, SourceInfo(ip_addr=ip, port=port)


def recv_bytes(
    sock: socket.socket, try_to_recv: int, timeout: Optional[float] = None
) -> bytes:
    """Read up to ``try_to_recv`` bytes within ``timeout``.

    Returns fewer bytes if the time runs out or the peer closes the
    connection.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    received = bytearray()
    previous = sock.gettimeout()
    try:
        while len(received) < try_to_recv:
            if deadline is None:
                sock.settimeout(None)
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
            try:
                part = sock.recv(try_to_recv - len(received))
            except TimeoutError:
                break
            if not part:
                break
            received += part
    finally:
        sock.settimeout(previous)
    return bytes(received)


def send_message(sock: socket.socket, data: bytes) -> None:
    """Send ``data`` as one length-prefixed message."""
    sock.sendall(msg_len_to_bytes(len(data)) + bytes(data))


def recv_message(sock: socket.socket, timeout: Optional[float] = None) -> bytes:
    """Receive one length-prefixed message within ``timeout``.

    Raises ConnectionError if the message does not arrive whole.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    header = recv_bytes(sock, MSG_LEN_BYTES, timeout)
    if len(header) < MSG_LEN_BYTES:
        raise ConnectionError("no complete message header received")
    length = bytes_to_msg_len(header)
    remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
    body = recv_bytes(sock, length, remaining)
    if len(body) < length:
        raise ConnectionError(f"message truncated: got {len(body)} of {length} bytes")
    return body


def udp_send(sock: socket.socket, receiver_info: SourceInfo, data: bytes) -> None:
    """Send ``data`` as one datagram to ``receiver_info``.

    The payload may not exceed 1472 bytes. Delivery is not guaranteed.
    """
    if len(data) > MAX_UDP_PAYLOAD:
        raise ValueError(f"datagram exceeds {MAX_UDP_PAYLOAD} bytes")
    if not 0 < receiver_info.port <= 65535:
        raise ValueError(f"invalid port: {receiver_info.port}")
    get_ip_bytes(receiver_info.ip_addr)
    sock.sendto(bytes(data), (receiver_info.ip_addr, receiver_info.port))


def udp_recv(
    sock: socket.socket, timeout: Optional[float] = None
) -> tuple[bytes, SourceInfo]:
    """Receive the next datagram and its sender.

    Raises TimeoutError if none arrives within ``timeout``.
    """
    sock.settimeout(timeout)
    try:
        data, (ip, port) = sock.recvfrom(_MAX_DATAGRAM)
    finally:
        sock.settimeout(None)
    return data, SourceInfo(ip_addr=ip, port=port)