import pytest

from wgrouter.messages import (
    SIZE_MESSAGE_PREFIX,
    SIZE_TAG,
    TYPE_TRANSPORT,
    message_data_len,
    pack_header,
    unpack_header,
)
from wgrouter.types import MalformedTransportMessage, RouterError


def test_header_round_trip():
    data = pack_header(0x646E6573, 123456789)
    header = unpack_header(data)
    assert header.type == TYPE_TRANSPORT
    assert header.receiver == 0x646E6573
    assert header.counter == 123456789


def test_header_wire_layout():
    data = pack_header(0x76636572, 0)
    assert len(data) == SIZE_MESSAGE_PREFIX
    assert data[:4] == TYPE_TRANSPORT.to_bytes(4, "little")
    assert data[4:8] == (0x76636572).to_bytes(4, "little")
    assert data[8:] == bytes(8)


def test_unpack_ignores_trailing_payload():
    data = pack_header(7, 9) + b"payload"
    assert unpack_header(data) == (TYPE_TRANSPORT, 7, 9)


def test_unpack_short_buffer_raises():
    with pytest.raises(MalformedTransportMessage):
        unpack_header(bytes(SIZE_MESSAGE_PREFIX - 1))
    with pytest.raises(RouterError):
        unpack_header(b"")


@pytest.mark.parametrize("payload", [0, 1, 1500, 1 << 15])
def test_message_data_len_grows_with_payload(payload):
    assert message_data_len(payload) - message_data_len(0) == payload
    assert message_data_len(0) == SIZE_MESSAGE_PREFIX + SIZE_TAG