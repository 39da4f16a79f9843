import ipaddress
import struct
from dataclasses import dataclass
from typing import Any

import pytest

from wgrouter.anti_replay import AntiReplay
from wgrouter.keys import Key, KeyPair
from wgrouter.messages import (
    REJECT_AFTER_MESSAGES,
    SIZE_MESSAGE_PREFIX,
    message_data_len,
)
from wgrouter.receive import ReceiveJob
from wgrouter.route import RoutingTable
from wgrouter.send import SendJob
from wgrouter.sequential import SequentialQueue
from wgrouter.types import Callbacks


def dummy_keypair(initiator):
    k1 = Key(key=bytes([0x53]) * 32, id=0x646E6573)
    k2 = Key(key=bytes([0x52]) * 32, id=0x76636572)
    if initiator:
        return KeyPair(initiator=True, send=k1, recv=k2)
    return KeyPair(initiator=False, send=k2, recv=k1)


def make_ipv4(src, dst, payload):
    header = struct.pack(
        "!BBHHHBBH4s4s",
        0x45, 0, 20 + len(payload), 0, 0, 64, 17, 0,
        ipaddress.IPv4Address(src).packed,
        ipaddress.IPv4Address(dst).packed,
    )
    return header + payload


class Recorder(Callbacks):
    def __init__(self):
        self.events = []

    def send(self, size, sent, keypair, counter):
        self.events.append(("send", size, sent, counter))

    def recv(self, size, sent, keypair):
        self.events.append(("recv", size, sent))


class FakeTun:
    def __init__(self):
        self.written = []

    def write(self, packet):
        self.written.append(packet)


class FakeDevice:
    def __init__(self):
        self.table = RoutingTable()
        self.inbound = FakeTun()


class FakePeer:
    def __init__(self):
        self.opaque = Recorder()
        self.outbound = SequentialQueue()
        self.inbound = SequentialQueue()
        self.device = FakeDevice()
        self.endpoint = None
        self.confirmed = []
        self.sent = []

    def send_raw(self, msg):
        self.sent.append(msg)

    def set_endpoint(self, endpoint):
        self.endpoint = endpoint

    def confirm_key(self, keypair):
        self.confirmed.append(keypair)


@dataclass
class State:
    keypair: KeyPair
    peer: Any
    confirmed: bool = False
    protector: AntiReplay = None

    def __post_init__(self):
        self.protector = AntiReplay()


def encrypt(packet, counter):
    job = SendJob(bytes(SIZE_MESSAGE_PREFIX) + packet, counter, dummy_keypair(True), FakePeer())
    job.parallel_work()
    return job.message


@pytest.fixture
def receiver():
    peer = FakePeer()
    peer.device.table.insert("192.168.1.0", 24, peer)
    state = State(keypair=dummy_keypair(False), peer=peer)
    return peer, state


def process(job):
    job.parallel_work()
    job.sequential_work()


def test_valid_packet_is_delivered(receiver):
    peer, state = receiver
    packet = make_ipv4("192.168.1.20", "10.0.0.1", b"some data")
    wire = encrypt(packet, 0)
    process(ReceiveJob(wire, state, "endpoint-a"))
    assert peer.device.inbound.written == [packet]
    assert peer.opaque.events == [("recv", len(wire), True)]
    assert peer.endpoint == "endpoint-a"


def test_first_message_confirms_key(receiver):
    peer, state = receiver
    process(ReceiveJob(encrypt(b"", 0), state, "ep"))
    assert peer.confirmed == [state.keypair]
    assert state.confirmed is True
    process(ReceiveJob(encrypt(b"", 1), state, "ep"))
    assert peer.confirmed == [state.keypair]


def test_confirmed_state_does_not_confirm_again(receiver):
    peer, state = receiver
    state.confirmed = True
    process(ReceiveJob(encrypt(b"", 0), state, "ep"))
    assert peer.confirmed == []
    assert len(peer.opaque.events) == 1


def test_keepalive_reports_but_writes_nothing(receiver):
    peer, state = receiver
    wire = encrypt(b"", 4)
    process(ReceiveJob(wire, state, "ep"))
    assert peer.device.inbound.written == []
    assert peer.opaque.events == [("recv", message_data_len(0), True)]


def test_tampered_message_is_dropped(receiver):
    peer, state = receiver
    wire = bytearray(encrypt(make_ipv4("192.168.1.20", "10.0.0.1", b"x"), 0))
    wire[-1] ^= 0x01
    job = ReceiveJob(bytes(wire), state, "ep")
    process(job)
    assert job.message == b""
    assert peer.opaque.events == []
    assert peer.endpoint is None


def test_unrouted_source_is_dropped(receiver):
    peer, state = receiver
    wire = encrypt(make_ipv4("172.16.0.1", "10.0.0.1", b"x"), 0)
    job = ReceiveJob(wire, state, "ep")
    process(job)
    assert job.message == b""
    assert peer.device.inbound.written == []
    assert peer.opaque.events == []


def test_replayed_message_is_ignored(receiver):
    peer, state = receiver
    wire = encrypt(make_ipv4("192.168.1.20", "10.0.0.1", b"data"), 9)
    process(ReceiveJob(wire, state, "ep"))
    process(ReceiveJob(wire, state, "ep"))
    assert len(peer.opaque.events) == 1
    assert len(peer.device.inbound.written) == 1


def test_counter_at_reject_limit_is_dropped(receiver):
    peer, state = receiver
    job = ReceiveJob(encrypt(b"", REJECT_AFTER_MESSAGES), state, "ep")
    process(job)
    assert job.message == b""
    assert peer.opaque.events == []


def test_short_message_is_dropped(receiver):
    peer, state = receiver
    job = ReceiveJob(b"\x04\x00\x00", state, "ep")
    process(job)
    assert job.message == b""
    assert peer.opaque.events == []


def test_wrong_key_is_dropped():
    peer = FakePeer()
    state = State(keypair=dummy_keypair(True), peer=peer)
    job = ReceiveJob(encrypt(b"", 0), state, "ep")
    process(job)
    assert job.message == b""
    assert peer.opaque.events == []


def test_ready_state_transitions(receiver):
    _, state = receiver
    job = ReceiveJob(encrypt(b"", 0), state, "ep")
    assert not job.is_ready()
    with pytest.raises(RuntimeError):
        job.sequential_work()
    job.parallel_work()
    assert job.is_ready()
    with pytest.raises(RuntimeError):
        job.parallel_work()


def test_queue_is_peer_inbound(receiver):
    peer, state = receiver
    assert ReceiveJob(b"", state, "ep").queue() is peer.inbound