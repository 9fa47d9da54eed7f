"""Connecting to peers and servers and exchanging checked messages with them."""

from __future__ import annotations

import socket
from typing import Optional

from dfdl.messages import MessageCode, MessageError, SourceInfo, parse_fail_message
from dfdl.net import open_socket, recv_message, send_message, tcp_connect
from dfdl.peer_messages import create_download_init, parse_download_confirm


class PeerError(Exception):
    """Communication with a peer or server failed."""


def connect_to_source(
    connect_to: SourceInfo, connection_timeout: Optional[float] = None
) -> socket.socket:
    """Open a TCP connection to ``connect_to`` within ``connection_timeout``.

    Raises PeerError if the connection cannot be made.
    """
    try:
        sock, _ = open_socket(False, 0)
    except OSError as exc:
        raise PeerError(f"could not open a socket: {exc}") from exc
    try:
        tcp_connect(sock, connect_to, connection_timeout)
    except OSError as exc:
        sock.close()
        raise PeerError(
            f"could not connect to {connect_to.ip_addr}:{connect_to.port}: {exc}"
        ) from exc
    return sock


def send_okay(sock: socket.socket, message: bytes) -> bool:
    """Send ``message``; return whether it was sent."""
    try:
        send_message(sock, message)
    except OSError:
        return False
    return True


def recv_okay(
    sock: socket.socket, expected_code: int, timeout: Optional[float] = None
) -> bytes:
    """Receive one message and check that it starts with ``expected_code``.

    ``timeout`` of None blocks. Raises PeerError if nothing arrives, the
    message is empty, or it carries another code; a FAIL message's text is
    included in the error.
    """
    try:
        message = recv_message(sock, timeout)
    except OSError as exc:
        raise PeerError(f"no response received: {exc}") from exc
    if not message:
        raise PeerError("received an empty message")
    if message[0] != expected_code:
        if message[0] == MessageCode.FAIL:
            raise PeerError(f"remote side reported failure: {parse_fail_message(message)}")
        raise PeerError(
            f"expected message code {expected_code:#04x}, got {message[0]:#04x}"
        )
    return message


def send_and_recv(
    sock: socket.socket,
    out: bytes,
    expected_code: int,
    timeout: Optional[float] = None,
) -> bytes:
    """Send ``out`` and return the reply, which must carry ``expected_code``."""
    if not send_okay(sock, out):
        raise PeerError("could not send the request")
    return recv_okay(sock, expected_code, timeout)


def attempt_download_handshake(
    sock: socket.socket, f_uuid: int, response_timeout: Optional[float] = None
) -> tuple[int, str]:
    """Ask a connected peer for file ``f_uuid``; return its (size, name).

    On a failed exchange the socket is closed and PeerError is raised.
    """
    try:
        download_init = create_download_init(f_uuid)
    except MessageError as exc:
        raise PeerError(f"could not build the download request: {exc}") from exc

    try:
        response = send_and_recv(
            sock, download_init, MessageCode.DOWNLOAD_CONFIRM, response_timeout
        )
        f_size, f_name = parse_download_confirm(response)
    except MessageError as exc:
        sock.close()
        raise PeerError(f"malformed download confirmation: {exc}") from exc
    except PeerError:
        sock.close()
        raise

    if f_size == 0:
        sock.close()
        raise PeerError("peer reported an empty file")
    return f_size, f_name