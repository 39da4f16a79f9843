"""Outbound transport jobs: encryption in parallel, transmission in order."""

from __future__ import annotations

import logging
import struct
from typing import TYPE_CHECKING, Any

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .messages import SIZE_MESSAGE_PREFIX, pack_header
from .sequential import SequentialJob, SequentialQueue
from .types import RouterError

if TYPE_CHECKING:
    from .keys import KeyPair

log = logging.getLogger(__name__)


def _nonce(counter: int) -> bytes:
    return b"\x00" * 4 + struct.pack("<Q", counter)


class SendJob(SequentialJob):
    """A plaintext packet, prefixed by room for the transport header, bound for a peer."""

    def __init__(self, buffer: bytes, counter: int, keypair: KeyPair, peer: Any) -> None:
        self._buffer = bytearray(buffer)
        self.counter = counter
        self.keypair = keypair
        self.peer = peer
        self._ready = False

    @property
    def message(self) -> bytes:
        """The current contents of the job's buffer."""
        return bytes(self._buffer)

    def queue(self) -> SequentialQueue:
        """The peer's in-order outbound queue this job belongs to."""
        return self.peer.outbound

    def parallel_work(self) -> None:
        """Fill in the header and encrypt the body, appending the tag."""
        if self._ready:
            raise RuntimeError("parallel work on a completed job")
        if len(self._buffer) < SIZE_MESSAGE_PREFIX:
            raise ValueError("buffer has no room for the transport header")
        log.debug("processing parallel send job")
        body = bytes(self._buffer[SIZE_MESSAGE_PREFIX:])
        sealed = ChaCha20Poly1305(self.keypair.send.key).encrypt(
            _nonce(self.counter), body, None
        )
        self._buffer = bytearray(pack_header(self.keypair.send.id, self.counter) + sealed)
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def sequential_work(self) -> None:
        """Transmit the message and report the send event to the peer's callbacks."""
        if not self._ready:
            raise RuntimeError("sequential work on an incomplete job")
        log.debug("processing sequential send job")
        message = bytes(self._buffer)
        try:
            self.peer.send_raw(message)
            sent = True
        except RouterError as error:
            log.debug("failed to transmit transport message: %s", error)
            sent = False
        self.peer.opaque.send(len(message), sent, self.keypair, self.counter)