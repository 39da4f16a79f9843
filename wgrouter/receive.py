"""Inbound transport jobs: decryption in parallel, delivery in order."""

from __future__ import annotations

import logging
import struct
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .ip import inner_length
from .messages import REJECT_AFTER_MESSAGES, SIZE_MESSAGE_PREFIX, SIZE_TAG, unpack_header
from .sequential import SequentialJob, SequentialQueue
from .types import MalformedTransportMessage

log = logging.getLogger(__name__)


def _nonce(counter: int) -> bytes:
    return b"\x00" * 4 + struct.pack("<Q", counter)


class ReceiveJob(SequentialJob):
    """An encrypted transport message received from ``endpoint``.

    ``state`` is the decryption state of the receiver id: it carries the
    key pair, the replay protector, the confirmation flag and the peer.
    """

    def __init__(self, buffer: bytes, state: Any, endpoint: Any) -> None:
        self._buffer = bytearray(buffer)
        self.state = state
        self._endpoint = endpoint
        self._ready = False

    @property
    def message(self) -> bytes:
        """The current contents of the job's buffer (empty after a failure)."""
        return bytes(self._buffer)

    def queue(self) -> SequentialQueue:
        """The peer's in-order inbound queue this job belongs to."""
        return self.state.peer.inbound

    def _open(self) -> bool:
        try:
            header = unpack_header(self._buffer)
        except MalformedTransportMessage:
            return False
        sealed = bytes(self._buffer[SIZE_MESSAGE_PREFIX:])
        aead = ChaCha20Poly1305(self.state.keypair.recv.key)
        try:
            plain = aead.decrypt(_nonce(header.counter), sealed, None)
        except (InvalidTag, ValueError):
            return False
        if header.counter >= REJECT_AFTER_MESSAGES:
            return False
        self._buffer[SIZE_MESSAGE_PREFIX:SIZE_MESSAGE_PREFIX + len(plain)] = plain
        packet = bytes(self._buffer[SIZE_MESSAGE_PREFIX:])
        peer = self.state.peer
        return len(packet) == SIZE_TAG or peer.device.table.check_route(peer, packet)

    def parallel_work(self) -> None:
        """Authenticate, decrypt and check the source route.

        On any failure the buffer is emptied so that no unauthenticated
        data is used later.
        """
        if self._ready:
            raise RuntimeError("parallel work on a completed job")
        log.debug("processing parallel receive job")
        if not self._open():
            self._buffer.clear()
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def sequential_work(self) -> None:
        """Apply replay protection, confirm keys, roam and deliver the packet."""
        if not self._ready:
            raise RuntimeError("sequential work on an incomplete job")
        log.debug("processing sequential receive job")
        state = self.state
        peer = state.peer
        endpoint, self._endpoint = self._endpoint, None

        try:
            header = unpack_header(self._buffer)
        except MalformedTransportMessage:
            return

        if not state.protector.update(header.counter):
            log.debug("inbound worker: replay detected")
            return

        if not state.confirmed:
            state.confirmed = True
            log.debug("inbound worker: message confirms key")
            peer.confirm_key(state.keypair)

        peer.set_endpoint(endpoint)

        packet = bytes(self._buffer[SIZE_MESSAGE_PREFIX:])
        inner = inner_length(packet)
        if inner is not None and inner + SIZE_TAG <= len(packet):
            try:
                peer.device.inbound.write(packet[:inner])
            except Exception as error:  # the TUN writer's failure must not stop the queue
                log.debug("failed to write inbound packet to TUN: %r", error)

        peer.opaque.recv(len(self._buffer), True, state.keypair)