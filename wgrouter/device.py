"""The cryptokey router device: allowed-IP routing, receiver ids and the worker pool."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from typing import Any

from .messages import PARALLEL_QUEUE_SIZE, SIZE_MESSAGE_PREFIX, unpack_header
from .peer import DecryptionState, Peer
from .receive import ReceiveJob
from .route import RoutingTable
from .types import Callbacks, NoCryptoKeyRoute, UnknownReceiverId
from .worker import worker

log = logging.getLogger(__name__)

_STOP = object()


class _DeviceState:
    """State shared between a device, its peers and its jobs."""

    def __init__(self, inbound: Any) -> None:
        self.inbound = inbound
        self.outbound: tuple[bool, Any] = (True, None)
        self.outbound_lock = threading.Lock()
        self.recv: dict[int, DecryptionState] = {}
        self.recv_lock = threading.RLock()
        self.table: RoutingTable[Peer] = RoutingTable()
        self.work: queue.Queue[Any] = queue.Queue(maxsize=PARALLEL_QUEUE_SIZE)


class Device:
    """A router that encrypts IP packets for peers and decrypts transport messages.

    ``inbound`` is the TUN writer receiving decrypted packets through ``write``.
    Outbound messages go to the writer set with :meth:`set_outbound_writer`,
    whose ``write(msg, endpoint)`` sends one message to an endpoint.
    """

    def __init__(self, num_workers: int, inbound: Any) -> None:
        if num_workers < 1:
            raise ValueError("a device needs at least one worker")
        self._state = _DeviceState(inbound)
        self._closed = False
        self._close_lock = threading.Lock()
        self._workers = [
            threading.Thread(
                target=worker, args=(self._jobs(),), name=f"router-worker-{n}", daemon=True
            )
            for n in range(num_workers)
        ]
        for thread in self._workers:
            thread.start()

    def _jobs(self) -> Iterator[Any]:
        while True:
            job = self._state.work.get()
            if job is _STOP:
                return
            yield job

    @property
    def closed(self) -> bool:
        """Whether the worker pool has been shut down."""
        return self._closed

    def send_raw(self, msg: bytes, dst: Any) -> None:
        """Write ``msg`` as is to ``dst``; nothing is sent while down or without a writer."""
        enabled, writer = self._state.outbound
        if enabled and writer is not None:
            writer.write(msg, dst)

    def down(self) -> None:
        """Stop transmission of outbound messages."""
        with self._state.outbound_lock:
            self._state.outbound = (False, self._state.outbound[1])

    def up(self) -> None:
        """Allow transmission of outbound messages."""
        with self._state.outbound_lock:
            self._state.outbound = (True, self._state.outbound[1])

    def clear_sending_keys(self) -> None:
        """Called when a new private key is set; the device keeps no peer list to clear."""
        log.debug("clear sending keys")

    def new_peer(self, opaque: Callbacks) -> Peer:
        """Add a peer whose events are reported to ``opaque``."""
        return Peer(self._state, opaque)

    def send(self, msg: bytes) -> None:
        """Route and schedule encryption of an IP packet.

        ``msg`` starts with room for the transport header, followed by the packet.
        Raises NoCryptoKeyRoute if no peer is routed the packet's destination.
        """
        packet = bytes(msg[SIZE_MESSAGE_PREFIX:])
        peer = self._state.table.get_route(packet)
        if peer is None:
            raise NoCryptoKeyRoute()
        peer.send(msg, True)

    def recv(self, src: Any, msg: bytes) -> None:
        """Accept an encrypted transport message received from endpoint ``src``.

        Raises MalformedTransportMessage if the header is truncated and
        UnknownReceiverId if no key is registered under its receiver id.
        """
        header = unpack_header(msg)
        log.debug("transport message: receiver = %d, counter = %d", header.receiver, header.counter)
        with self._state.recv_lock:
            dec = self._state.recv.get(header.receiver)
        if dec is None:
            raise UnknownReceiverId()
        job = ReceiveJob(msg, dec, src)
        if dec.peer.inbound.push(job):
            self._state.work.put(job)

    def set_outbound_writer(self, writer: Any) -> None:
        """Set the writer used for all outbound messages."""
        with self._state.outbound_lock:
            self._state.outbound = (self._state.outbound[0], writer)

    def close(self) -> None:
        """Stop the workers once queued jobs are done, and wait for them."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        for _ in self._workers:
            self._state.work.put(_STOP)
        for thread in self._workers:
            thread.join()
        log.debug("router: joined with all workers from pool")

    def __enter__(self) -> Device:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()