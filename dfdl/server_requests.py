"""Single request/response exchanges between a client and one server."""

from __future__ import annotations

from typing import Callable, Optional

from dfdl.client_networking import PeerError, connect_to_source, send_and_recv
from dfdl.messages import (
    FileId,
    MessageCode,
    MessageError,
    SourceInfo,
    create_control_request,
    create_drop_request,
    create_index_request,
    create_source_request,
    parse_server_reg_response,
    parse_source_list,
)


def attempt_server_communication(
    server: SourceInfo,
    request: bytes,
    msg_code: int,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> bytes:
    """Connect to ``server``, send ``request`` and return its reply.

    The reply must carry ``msg_code``. Raises PeerError on any failure.
    """
    sock = connect_to_source(server, connection_timeout)
    with sock:
        return send_and_recv(sock, request, msg_code, response_timeout)


def _build(factory: Callable[..., bytes], *args: object) -> bytes:
    try:
        return factory(*args)
    except MessageError as exc:
        raise PeerError(f"could not build the request: {exc}") from exc


def attempt_index(
    file: FileId,
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> None:
    """Ask ``server`` to index ``file``."""
    request = _build(create_index_request, file)
    attempt_server_communication(
        server, request, MessageCode.INDEX_OK, connection_timeout, response_timeout
    )


def attempt_drop(
    file: tuple[int, int],
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> None:
    """Ask ``server`` to drop the (file uuid, client uuid) index ``file``."""
    request = _build(create_drop_request, file)
    attempt_server_communication(
        server, request, MessageCode.DROP_OK, connection_timeout, response_timeout
    )


def attempt_control(
    file_uuid: int,
    faulty_client: SourceInfo,
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> None:
    """Report to ``server`` that ``faulty_client`` failed to serve ``file_uuid``."""
    request = _build(create_control_request, faulty_client, file_uuid)
    attempt_server_communication(
        server, request, MessageCode.CONTROL_OK, connection_timeout, response_timeout
    )


def attempt_source_retrieval(
    file_uuid: int,
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> list[SourceInfo]:
    """Return the peers that ``server`` knows to be indexing ``file_uuid``."""
    request = _build(create_source_request, file_uuid)
    response = attempt_server_communication(
        server, request, MessageCode.SOURCE_LIST, connection_timeout, response_timeout
    )
    try:
        return parse_source_list(response)
    except MessageError as exc:
        raise PeerError(f"malformed source list: {exc}") from exc


def attempt_server_update(
    server: SourceInfo,
    connection_timeout: Optional[float] = None,
    response_timeout: Optional[float] = None,
) -> list[SourceInfo]:
    """Return the other servers that ``server`` knows about."""
    response = attempt_server_communication(
        server,
        bytes([MessageCode.CLIENT_REG]),
        MessageCode.REG_SERVERS_LIST,
        connection_timeout,
        response_timeout,
    )
    try:
        return parse_server_reg_response(response)
    except MessageError as exc:
        raise PeerError(f"malformed server list: {exc}") from exc