"""Router state of a single peer: key wheel, staged packets and endpoint."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from .anti_replay import AntiReplay
from .keys import KeyPair
from .messages import MAX_QUEUED_PACKETS, REJECT_AFTER_MESSAGES, SIZE_MESSAGE_PREFIX
from .send import SendJob
from .sequential import SequentialQueue
from .types import Callbacks, NoEndpoint, SendError

log = logging.getLogger(__name__)


class Endpoint(Protocol):
    """A destination on the outer network a peer can be reached at."""

    def into_address(self) -> Any: ...

    def clear_src(self) -> None: ...


@dataclass
class KeyWheel:
    """The up to three key pairs a peer holds, plus ids awaiting release."""

    next: KeyPair | None = None
    current: KeyPair | None = None
    previous: KeyPair | None = None
    retired: list[int] = field(default_factory=list)

    def pairs(self) -> list[KeyPair]:
        return [k for k in (self.next, self.current, self.previous) if k is not None]


@dataclass
class EncryptionState:
    """The key pair used for outbound messages and the next unused nonce."""

    keypair: KeyPair
    nonce: int = 0


class DecryptionState:
    """Everything needed to authenticate messages arriving under one receiver id."""

    def __init__(self, peer: Peer, keypair: KeyPair) -> None:
        self.keypair = keypair
        self.confirmed = keypair.initiator
        self.protector = AntiReplay()
        self.peer = peer


class Peer:
    """A peer known to a router device.

    ``device`` supplies ``table`` (a routing table), ``recv`` (receiver id to
    decryption state) guarded by ``recv_lock``, ``outbound`` (a pair of the
    transmission flag and the outbound writer, or None), ``inbound`` (the TUN
    writer) and ``work`` (a queue accepting jobs through ``put``).
    ``opaque`` receives the peer's events through the :class:`Callbacks` hooks.
    """

    def __init__(self, device: Any, opaque: Callbacks) -> None:
        self.device = device
        self.opaque = opaque
        self.outbound = SequentialQueue()
        self.inbound = SequentialQueue()
        self._staged: deque[bytes] = deque(maxlen=MAX_QUEUED_PACKETS)
        self._staged_lock = threading.Lock()
        self._keys = KeyWheel()
        self._keys_lock = threading.RLock()
        self._enc_key: EncryptionState | None = None
        self._enc_lock = threading.RLock()
        self._endpoint: Endpoint | None = None
        self._endpoint_lock = threading.Lock()
        self._is_up = True

    @property
    def is_up(self) -> bool:
        """Whether the peer was last brought up rather than down."""
        return self._is_up

    def send_raw(self, msg: bytes) -> None:
        """Send a message as is to the peer's endpoint (used for handshakes).

        Raises NoEndpoint if the endpoint is unknown and SendError if there is
        no writer or writing fails. Nothing is sent while the device is down.
        """
        with self._endpoint_lock:
            endpoint = self._endpoint
            if endpoint is None:
                raise NoEndpoint()
            enabled, writer = self.device.outbound
            if not enabled:
                return
            if writer is None:
                raise SendError()
            try:
                writer.write(msg, endpoint)
            except Exception as error:
                raise SendError() from error

    def send(self, msg: bytes, stage: bool) -> None:
        """Encrypt and send a message whose first bytes are room for the header.

        Without a usable key the message is staged (if ``stage``) and a key
        is requested through ``need_key``.
        """
        job = None
        need_key = False
        with self._enc_lock:
            state = self._enc_key
            if state is not None and state.nonce >= REJECT_AFTER_MESSAGES - 1:
                log.debug("encryption key expired")
                self._enc_key = state = None
            if state is None:
                log.debug("no encryption key available")
                if stage:
                    with self._staged_lock:
                        self._staged.append(bytes(msg))
                need_key = True
            else:
                log.debug("encryption state available, nonce = %d", state.nonce)
                candidate = SendJob(msg, state.nonce, state.keypair, self)
                if self.outbound.push(candidate):
                    state.nonce += 1
                    job = candidate

        if need_key:
            log.debug("request new key")
            self.opaque.need_key()
        if job is not None:
            self.device.work.put(job)

    def _send_staged(self) -> bool:
        with self._staged_lock:
            staged = list(self._staged)
            self._staged.clear()
        for msg in staged:
            self.send(msg, False)
        return bool(staged)

    def confirm_key(self, keypair: KeyPair) -> None:
        """Promote ``keypair`` to the current key if it is the pending one."""
        with self._keys_lock:
            keys = self._keys
            if keys.next is None or keys.next is not keypair:
                return
            keys.previous, keys.current, keys.next = keys.current, keys.next, None
            self.opaque.key_confirmed()
            with self._enc_lock:
                self._enc_key = EncryptionState(keypair)
        self._send_staged()

    def set_endpoint(self, endpoint: Endpoint | None) -> None:
        """Set where messages to the peer are sent."""
        with self._endpoint_lock:
            self._endpoint = endpoint

    def get_endpoint(self) -> Any:
        """The address of the current endpoint, or None."""
        with self._endpoint_lock:
            return None if self._endpoint is None else self._endpoint.into_address()

    def zero_keys(self) -> None:
        """Discard all key material; the freed ids are returned by the next add_keypair."""
        with self._keys_lock:
            keys = self._keys
            release = [k.local_id() for k in keys.pairs()]
            keys.next = keys.current = keys.previous = None
            keys.retired.extend(release)
            with self.device.recv_lock:
                for key_id in release:
                    self.device.recv.pop(key_id, None)
            with self._enc_lock:
                self._enc_key = None

    def down(self) -> None:
        """Mark the peer down and discard its key material."""
        self._is_up = False
        self.zero_keys()

    def up(self) -> None:
        """Mark the peer up; keys come back through new handshakes."""
        self._is_up = True

    def add_keypair(self, new: KeyPair) -> list[int]:
        """Install a new key pair and return the receiver ids it released.

        An initiator's pair is used at once and confirmed by sending the
        staged packets, or a keepalive if none are staged.
        """
        log.debug("add_keypair: %r", new)
        with self._keys_lock:
            keys = self._keys
            release, keys.retired = keys.retired, []
            if new.initiator:
                with self._enc_lock:
                    self._enc_key = EncryptionState(new)
                keys.previous, keys.current = keys.current, new
            else:
                keys.previous, keys.next = keys.next, new
            with self.device.recv_lock:
                if keys.previous is not None:
                    self.device.recv.pop(keys.previous.local_id(), None)
                    release.append(keys.previous.local_id())
                self.device.recv[new.recv.id] = DecryptionState(self, new)

        if new.initiator and not self._send_staged():
            log.debug("add_keypair: keepalive for confirmation")
            self.send_keepalive()
        return release

    def send_keepalive(self) -> None:
        """Send an empty transport message."""
        self.send(bytes(SIZE_MESSAGE_PREFIX), False)

    def add_allowed_ip(self, ip: Any, masklen: int) -> None:
        """Route the subnet ``ip/masklen`` to this peer, taking it from any other."""
        self.device.table.insert(ip, masklen, self)

    def list_allowed_ips(self) -> list[tuple[Any, int]]:
        """The subnets routed to this peer as (network, prefix length) pairs."""
        return self.device.table.list(self)

    def remove_allowed_ips(self) -> None:
        """Stop routing any subnet to this peer."""
        self.device.table.remove(self)

    def clear_src(self) -> None:
        """Forget the local source address bound to the endpoint."""
        with self._endpoint_lock:
            if self._endpoint is not None:
                self._endpoint.clear_src()

    def purge_staged_packets(self) -> None:
        """Drop every packet waiting for a key."""
        with self._staged_lock:
            self._staged.clear()

    def remove(self) -> None:
        """Detach the peer from its device: routes, receiver ids, keys and endpoint."""
        self.device.table.remove(self)
        with self._keys_lock:
            keys = self._keys
            release = [k.recv.id for k in keys.pairs()]
            if release:
                with self.device.recv_lock:
                    for key_id in release:
                        self.device.recv.pop(key_id, None)
            keys.next = keys.current = keys.previous = None
        with self._enc_lock:
            self._enc_key = None
        with self._endpoint_lock:
            self._endpoint = None
        log.debug("peer removed from device")