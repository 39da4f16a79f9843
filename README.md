# wgrouter

`wgrouter` is the data-plane router of a WireGuard-style tunnel. It is a library and has
no command-line tool. It handles:

- **cryptokey routing**: longest-prefix matching of IPv4 and IPv6 destinations to peers,
  and a check that the source address of a decrypted packet belongs to the peer it came
  from (`wgrouter.route.RoutingTable`);
- **transport encryption**: ChaCha20-Poly1305 sealing and opening of transport messages.
  Worker threads do this work in parallel, and each peer keeps its packets in order
  (`wgrouter.send.SendJob`, `wgrouter.receive.ReceiveJob`,
  `wgrouter.sequential.SequentialQueue`, `wgrouter.worker.worker`);
- **replay protection** with a sliding bitmap window as described in RFC 6479
  (`wgrouter.anti_replay.AntiReplay`);
- **key rotation**: every peer has a key wheel of next, current and previous key pairs
  (`wgrouter.peer.Peer`, `wgrouter.peer.KeyWheel`). While no key exists, the router stages
  packets and asks for a key. A new responder key is confirmed by the first message that
  arrives under it.

## What you supply

The package does no handshakes and does no TUN or UDP I/O. You supply:

- a TUN writer: any object with a `write(packet)` method. It receives decrypted IP packets;
- a UDP writer: any object with a `write(msg, endpoint)` method. It sends outbound
  messages;
- endpoints: objects with `into_address()` and `clear_src()` methods;
- keys: `wgrouter.keys.KeyPair` objects, which a handshake would normally produce;
- a `wgrouter.types.Callbacks` object for each peer. The router calls its `send`, `recv`,
  `need_key` and `key_confirmed` hooks. By default these hooks only count bytes and events
  (`tx_bytes`, `rx_bytes`, `keys_requested`, `keys_confirmed`). Override them to start
  handshakes or timers.

## Installation

```
pip install wgrouter
```

## Usage

```python
from ipaddress import ip_address

from wgrouter.device import Device
from wgrouter.keys import Key, KeyPair
from wgrouter.messages import SIZE_MESSAGE_PREFIX
from wgrouter.types import Callbacks


class Events(Callbacks):
    def send(self, size, sent, keypair, counter):
        print("sent", size, sent)

    def recv(self, size, sent, keypair):
        print("received", size, sent)

    def need_key(self):
        print("a handshake is needed")

    def key_confirmed(self):
        print("key confirmed")


with Device(2, my_tun_writer) as router:
    router.set_outbound_writer(my_udp_writer)

    peer = router.new_peer(Events())
    peer.add_allowed_ip(ip_address("192.168.1.0"), 24)
    peer.set_endpoint(my_endpoint)

    # Keys normally come from the handshake.
    peer.add_keypair(KeyPair(
        initiator=True,
        send=Key(key=bytes(32), id=1),
        recv=Key(key=bytes(32), id=2),
    ))

    # The first SIZE_MESSAGE_PREFIX bytes are room for the transport header.
    router.send(bytes(SIZE_MESSAGE_PREFIX) + ip_packet)

    # Encrypted transport messages that arrive over UDP:
    router.recv(source_endpoint, datagram)
```

`Device(num_workers, inbound)` starts `num_workers` worker threads. Calling `close()`, or
leaving the `with` block, lets them finish the jobs already queued and then joins them.
`down()` and `up()` stop and resume outbound transmission.

A `Peer` also provides these methods:

- `list_allowed_ips()` and `remove_allowed_ips()` list and clear the subnets routed to the
  peer;
- `get_endpoint()` returns the address of the current endpoint;
- `send_keepalive()` sends an empty transport message;
- `zero_keys()` discards all key material;
- `purge_staged_packets()` drops the packets waiting for a key;
- `remove()` detaches the peer from its device.

`add_keypair` returns the receiver ids that are no longer in use.

## Errors

All router errors are subclasses of `wgrouter.types.RouterError`:

- `Device.send` raises `NoCryptoKeyRoute` when no peer is routed the packet's destination;
- `Device.recv` raises `MalformedTransportMessage` when the header is truncated, and
  `UnknownReceiverId` when no key is registered under the message's receiver id;
- `Peer.send_raw` raises `NoEndpoint` when the peer has no endpoint, and `SendError` when
  there is no writer or the write fails.

Messages that fail authentication, replay protection or the source-route check are
dropped without an error.

## What this package does not do

It does not perform the key-exchange handshake. It does not manage peers by public key. It
has no timers for rekeying or keepalives. It does not open TUN devices or UDP sockets.
These belong to the code that uses the router, through the writers and callbacks
described above.

## Running the tests

```
pip install -e ".[test]"
pytest
```