"""Symmetric transport keys and the key pairs negotiated by a handshake."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

KEY_SIZE = 32


@dataclass
class Key:
    """A 32 byte symmetric key together with the receiver id it is bound to."""

    key: bytes
    id: int

    def __post_init__(self) -> None:
        self.key = bytes(self.key)
        if len(self.key) != KEY_SIZE:
            raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(self.key)}")
        if not 0 <= self.id < 2**32:
            raise ValueError(f"key id out of range: {self.id}")

    def __repr__(self) -> str:
        return f"Key {{ id = {self.id} }}"


@dataclass(eq=False)
class KeyPair:
    """Keys for one session; pairs compare by identity, not by content."""

    initiator: bool
    send: Key
    recv: Key
    birth: float = field(default_factory=time.monotonic)

    def local_id(self) -> int:
        """The receiver id under which inbound messages for this pair arrive."""
        return self.recv.id

    def __repr__(self) -> str:
        age = int(time.monotonic() - self.birth)
        return (
            f"KeyPair {{ initator = {str(self.initiator).lower()}, age = {age} secs, "
            f"send = {self.send!r}, recv = {self.recv!r}}}"
        )