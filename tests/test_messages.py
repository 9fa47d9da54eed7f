import pytest

from dfdl.messages import (
    FileId,
    MessageCode,
    MessageError,
    SourceInfo,
    create_control_request,
    create_drop_request,
    create_fail_message,
    create_forward_drop,
    create_forward_index,
    create_forward_rereg,
    create_forward_server_reg,
    create_index_request,
    create_new_server_reg,
    create_reregister_request,
    create_server_reg_response,
    create_source_list,
    create_source_request,
    parse_control_request,
    parse_drop_request,
    parse_fail_message,
    parse_forward_server_reg,
    parse_index_request,
    parse_new_server_reg,
    parse_reregister_request,
    parse_server_reg_response,
    parse_source_list,
    parse_source_request,
)

PEER = SourceInfo(peer_id=42, ip_addr="10.0.0.7", port=5000)
OTHER = SourceInfo(peer_id=7, ip_addr="192.168.1.2", port=6001)
MAX64 = 2**64 - 1


def test_fail_message_wire_bytes():
    assert create_fail_message("oops") == b"\x00oops"


def test_fail_message_round_trip():
    assert parse_fail_message(create_fail_message("file gone")) == "file gone"


def test_parse_fail_rejects_other_code():
    with pytest.raises(MessageError):
        parse_fail_message(bytes([MessageCode.INDEX_OK]) + b"x")


def test_index_request_round_trip():
    file_id = FileId(uuid=123456789, indexer=PEER, f_size=2048)
    message = create_index_request(file_id)
    assert message[0] == MessageCode.INDEX_REQUEST
    assert parse_index_request(message) == file_id


def test_index_request_bad_ip():
    with pytest.raises(MessageError):
        create_index_request(FileId(1, SourceInfo(1, "not-an-ip", 80), 1))


def test_index_request_port_out_of_range():
    with pytest.raises(MessageError):
        create_index_request(FileId(1, SourceInfo(1, "10.0.0.1", 70000), 1))


def test_index_request_truncated():
    message = create_index_request(FileId(5, PEER, 10))
    with pytest.raises(MessageError):
        parse_index_request(message[:-1])


def test_drop_request_wire_layout():
    message = create_drop_request((1, 2))
    expected = bytes([0x03]) + (1).to_bytes(8, "big") + (2).to_bytes(8, "big")
    assert message == expected


def test_drop_request_round_trip_extremes():
    assert parse_drop_request(create_drop_request((MAX64, 0))) == (MAX64, 0)


def test_drop_request_negative_uuid():
    with pytest.raises(MessageError):
        create_drop_request((-1, 1))


def test_reregister_round_trip():
    assert parse_reregister_request(create_reregister_request(PEER)) == PEER


def test_source_request_round_trip():
    message = create_source_request(987654321)
    assert message[0] == MessageCode.SOURCE_REQUEST
    assert parse_source_request(message) == 987654321


def test_source_request_empty_message():
    with pytest.raises(MessageError):
        parse_source_request(b"")


def test_source_list_round_trip():
    sources = [PEER, OTHER]
    assert parse_source_list(create_source_list(sources)) == sources


def test_source_list_empty():
    message = create_source_list([])
    assert message == bytes([MessageCode.SOURCE_LIST])
    assert parse_source_list(message) == []


def test_source_list_truncated():
    message = create_source_list([PEER])
    with pytest.raises(MessageError):
        parse_source_list(message[:-2])


def test_control_request_round_trip():
    message = create_control_request(OTHER, 555)
    assert message[0] == MessageCode.CONTROL_REQUEST
    assert parse_control_request(message) == (555, OTHER)


def test_new_server_reg_drops_peer_id():
    message = create_new_server_reg(PEER)
    parsed = parse_new_server_reg(message)
    assert parsed == SourceInfo(ip_addr=PEER.ip_addr, port=PEER.port)


def test_server_reg_response_round_trip():
    servers = [SourceInfo(ip_addr="127.0.0.1", port=9000), SourceInfo(ip_addr="10.1.1.1", port=9001)]
    assert parse_server_reg_response(create_server_reg_response(servers)) == servers


def test_forward_server_reg_keeps_body():
    original = create_new_server_reg(PEER)
    forwarded = create_forward_server_reg(original)
    assert forwarded[0] == MessageCode.FORWARD_SERVER_REG
    assert forwarded[1:] == original[1:]
    assert parse_forward_server_reg(forwarded) == parse_new_server_reg(original)


def test_forward_server_reg_rejects_wrong_code():
    with pytest.raises(MessageError):
        create_forward_server_reg(create_source_request(1))


def test_parse_new_server_reg_rejects_forward():
    forwarded = create_forward_server_reg(create_new_server_reg(PEER))
    with pytest.raises(MessageError):
        parse_new_server_reg(forwarded)


def test_forward_index():
    original = create_index_request(FileId(9, PEER, 100))
    forwarded = create_forward_index(original)
    assert forwarded[0] == MessageCode.INDEX_FORWARD
    assert forwarded[1:] == original[1:]


def test_forward_drop():
    original = create_drop_request((3, 4))
    forwarded = create_forward_drop(original)
    assert forwarded[0] == MessageCode.DROP_FORWARD
    assert forwarded[1:] == original[1:]


def test_forward_rereg():
    original = create_reregister_request(PEER)
    forwarded = create_forward_rereg(original)
    assert forwarded[0] == MessageCode.REREGISTER_FORWARD
    assert forwarded[1:] == original[1:]


def test_forward_drop_rejects_index():
    with pytest.raises(MessageError):
        create_forward_drop(create_index_request(FileId(9, PEER, 100)))


def test_forward_rereg_rejects_empty():
    with pytest.raises(MessageError):
        create_forward_rereg(b"")