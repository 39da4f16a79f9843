"""Router errors and the callback interface used to report peer events."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .keys import KeyPair


class RouterError(Exception):
    """Base class of all errors raised by the router."""

    default_message = "router error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoCryptoKeyRoute(RouterError):
    default_message = "No cryptokey route configured for subnet"


class MalformedTransportMessage(RouterError):
    default_message = "Transport header is malformed"


class UnknownReceiverId(RouterError):
    default_message = "No decryption state associated with receiver id"


class NoEndpoint(RouterError):
    default_message = "No endpoint for peer"


class SendError(RouterError):
    default_message = "Failed to send packet on bind"


class Callbacks:
    """Hooks the router invokes on the object attached to each peer.

    By default the hooks keep simple traffic statistics; override the ones
    of interest to react to events differently.
    """

    tx_bytes: int = 0
    rx_bytes: int = 0
    keys_requested: int = 0
    keys_confirmed: int = 0

    def send(self, size: int, sent: bool, keypair: KeyPair, counter: int) -> None:
        """A transport message of ``size`` bytes was encrypted (and sent if ``sent``)."""
        self.tx_bytes += size

    def recv(self, size: int, sent: bool, keypair: KeyPair) -> None:
        """A transport message of ``size`` bytes was authenticated and decrypted."""
        self.rx_bytes += size

    def need_key(self) -> None:
        """A packet needs encryption but no usable key is available."""
        self.keys_requested += 1

    def key_confirmed(self) -> None:
        """The pending key was confirmed by the peer."""
        self.keys_confirmed += 1