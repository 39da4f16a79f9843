"""Transport message layout and router sizing constants."""

from __future__ import annotations

import struct
from typing import NamedTuple

from .types import MalformedTransportMessage

TYPE_TRANSPORT = 4

SIZE_TAG = 16

_HEADER = struct.Struct("<IIQ")

SIZE_MESSAGE_PREFIX = _HEADER.size
CAPACITY_MESSAGE_POSTFIX = SIZE_TAG

# Counter value at which a key must no longer be used (protocol limit).
REJECT_AFTER_MESSAGES = 2**64 - 2**13 - 1

MAX_QUEUED_PACKETS = 1024
PARALLEL_QUEUE_SIZE = 4 * MAX_QUEUED_PACKETS
INORDER_QUEUE_SIZE = MAX_QUEUED_PACKETS


class TransportHeader(NamedTuple):
    """Decoded fields of a transport message header."""

    type: int
    receiver: int
    counter: int


def message_data_len(payload: int) -> int:
    """Size on the wire of a transport message carrying ``payload`` bytes."""
    return payload + SIZE_MESSAGE_PREFIX + SIZE_TAG


def pack_header(receiver: int, counter: int) -> bytes:
    """Encode a transport header for the given receiver id and counter."""
    return _HEADER.pack(TYPE_TRANSPORT, receiver, counter)


def unpack_header(data: bytes) -> TransportHeader:
    """Decode the transport header at the start of ``data``."""
    if len(data) < SIZE_MESSAGE_PREFIX:
        raise MalformedTransportMessage()
    return TransportHeader(*_HEADER.unpack_from(data))