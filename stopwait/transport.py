"""
Datagram transports - the unreliable layer underneath a Connection.

A transport moves whole datagrams and promises nothing: they may be lost,
duplicated or reordered. The Connection only needs three operations:

- send_to(data, addr): send to an explicit peer
- send(data): send to the peer the transport is connected to
- receive(): block until a datagram arrives, returning (data, source)

Implementations:
- UdpTransport: a real UDP socket
- simulator.network.SimulatedEndpoint: an in-process lossy network for tests
"""

import socket
import threading
import logging
from typing import Any, Optional, Tuple

from .errors import TransportReadError, TransportWriteError


logger = logging.getLogger(__name__)

Address = Tuple[str, int]

MAX_DATAGRAM_SIZE = 65535

# How often a blocked receive() checks whether the transport was closed
POLL_INTERVAL = 0.1


class DatagramTransport:
    """
    Abstract unreliable, unordered, message-oriented transport.

    receive() raises TransportReadError once the transport is closed or
    the underlying read fails; send_to()/send() raise TransportWriteError.
    """

    @property
    def connected(self) -> bool:
        """True when the transport is bound to a single peer."""
        return False

    def send_to(self, data: bytes, addr: Any):
        """Send one datagram to addr."""
        raise NotImplementedError

    def send(self, data: bytes):
        """Send one datagram to the connected peer."""
        raise NotImplementedError

    def receive(self, max_size: int = MAX_DATAGRAM_SIZE) -> Tuple[bytes, Any]:
        """Block until a datagram arrives. Returns (data, source address)."""
        raise NotImplementedError

    def close(self):
        """Release the transport. Pending and future receive() calls fail."""
        raise NotImplementedError


class UdpTransport(DatagramTransport):
    """
    UDP socket transport.

        # Unconnected: replies are routed by source address
        server = UdpTransport.bind("0.0.0.0", 9000)

        # Connected to one peer
        client = UdpTransport.connect(("127.0.0.1", 9000))
    """

    def __init__(self, sock: socket.socket, remote_addr: Optional[Address] = None):
        """
        Args:
            sock: A bound SOCK_DGRAM socket
            remote_addr: Peer the socket is connected to, if any
        """
        self._sock = sock
        self._remote_addr = remote_addr
        self._closed = threading.Event()
        self._local_addr = sock.getsockname()
        # Closing a socket does not wake a thread blocked in recvfrom,
        # so receive() polls and checks _closed between attempts.
        self._sock.settimeout(POLL_INTERVAL)

    @classmethod
    def bind(cls, host: str = "0.0.0.0", port: int = 0) -> "UdpTransport":
        """Create an unconnected transport listening on host:port."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((host, port))
        logger.debug(f"UDP transport bound to {sock.getsockname()}")
        return cls(sock)

    @classmethod
    def connect(cls, remote_addr: Address,
                local_addr: Address = ("0.0.0.0", 0)) -> "UdpTransport":
        """Create a transport connected to remote_addr."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(local_addr)
        sock.connect(remote_addr)
        logger.debug(f"UDP transport {sock.getsockname()} connected to {remote_addr}")
        return cls(sock, remote_addr)

    @property
    def connected(self) -> bool:
        return self._remote_addr is not None

    @property
    def local_address(self) -> Address:
        return self._local_addr

    @property
    def remote_address(self) -> Optional[Address]:
        return self._remote_addr

    def send_to(self, data: bytes, addr: Address):
        try:
            self._sock.sendto(data, addr)
        except OSError as e:
            raise TransportWriteError(f"sendto {addr} failed: {e}") from e

    def send(self, data: bytes):
        if not self.connected:
            raise TransportWriteError("transport is not connected")
        try:
            self._sock.send(data)
        except OSError as e:
            raise TransportWriteError(f"send failed: {e}") from e

    def receive(self, max_size: int = MAX_DATAGRAM_SIZE) -> Tuple[bytes, Address]:
        while not self._closed.is_set():
            try:
                return self._sock.recvfrom(max_size)
            except socket.timeout:
                continue
            except ConnectionRefusedError:
                # ICMP port unreachable from an earlier send on a connected
                # socket; the datagram is lost, nothing to read.
                logger.debug("Peer port unreachable")
                continue
            except OSError as e:
                if self._closed.is_set():
                    break
                raise TransportReadError(f"recvfrom failed: {e}") from e
        raise TransportReadError("transport closed")

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        self._sock.close()

    def __str__(self) -> str:
        state = "closed" if self._closed.is_set() else "open"
        return f"UdpTransport({self._local_addr}, {state})"
