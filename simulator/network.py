#!/usr/bin/env python3
"""
Network Simulator for stop-and-wait testing

This module provides an in-process datagram network, so connections can be
exercised without real sockets. It allows you to:

1. Create endpoints that behave like unconnected or connected UDP sockets
2. Simulate packet loss, delay, reordering, and duplication
3. Drop or duplicate specific datagrams deterministically (for tests)
4. Capture every datagram sent through the network

Every endpoint is a DatagramTransport, so a Connection can sit on top of it
exactly as it would sit on a UdpTransport.
"""

import random
import time
import threading
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from queue import Queue, Empty

from stopwait.errors import TransportReadError, TransportWriteError
from stopwait.transport import DatagramTransport, MAX_DATAGRAM_SIZE, POLL_INTERVAL

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

# Decides per datagram: (data, src, dst) -> True to drop / duplicate
PacketFilter = Callable[[bytes, Address, Address], bool]


@dataclass(order=True)
class ScheduledPacket:
    """A packet scheduled for future delivery."""
    delivery_time: float
    order: int
    packet: bytes = field(compare=False)
    src: Address = field(compare=False)
    dst: Address = field(compare=False)


@dataclass
class NetworkStats:
    """Statistics about network behavior."""
    packets_sent: int = 0
    packets_delivered: int = 0
    packets_dropped: int = 0
    packets_reordered: int = 0
    packets_duplicated: int = 0
    bytes_sent: int = 0
    bytes_delivered: int = 0

    def __str__(self) -> str:
        loss_rate = self.packets_dropped / max(1, self.packets_sent) * 100
        return (
            f"Network Stats:\n"
            f"  Packets sent: {self.packets_sent}\n"
            f"  Packets delivered: {self.packets_delivered}\n"
            f"  Packets dropped: {self.packets_dropped} ({loss_rate:.1f}%)\n"
            f"  Packets reordered: {self.packets_reordered}\n"
            f"  Packets duplicated: {self.packets_duplicated}\n"
            f"  Bytes sent: {self.bytes_sent}\n"
            f"  Bytes delivered: {self.bytes_delivered}"
        )


class SimulatedEndpoint(DatagramTransport):
    """
    One address on a SimulatedNetwork.

    Created through SimulatedNetwork.endpoint(). If remote_addr is given
    the endpoint behaves like a connected socket and send() goes there.
    """

    def __init__(self, network: "SimulatedNetwork", address: Address,
                 remote_addr: Optional[Address] = None):
        self._network = network
        self.address = address
        self._remote_addr = remote_addr
        self._inbox: Queue = Queue()
        self._closed = threading.Event()

    @property
    def connected(self) -> bool:
        return self._remote_addr is not None

    def send_to(self, data: bytes, addr: Address):
        if self._closed.is_set():
            raise TransportWriteError(f"endpoint {self.address} is closed")
        self._network.send(bytes(data), self.address, addr)

    def send(self, data: bytes):
        if not self.connected:
            raise TransportWriteError("endpoint is not connected")
        self.send_to(data, self._remote_addr)

    def receive(self, max_size: int = MAX_DATAGRAM_SIZE) -> Tuple[bytes, Address]:
        while not self._closed.is_set():
            try:
                data, src = self._inbox.get(timeout=POLL_INTERVAL)
            except Empty:
                continue
            return data[:max_size], src
        raise TransportReadError(f"endpoint {self.address} is closed")

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        self._network.unregister_endpoint(self.address)

    def _deliver(self, data: bytes, src: Address):
        """Called by the network when a datagram arrives."""
        self._inbox.put((data, src))

    def __str__(self) -> str:
        return f"SimulatedEndpoint({self.address[0]}:{self.address[1]})"


class SimulatedNetwork:
    """
    A network simulator that models an unreliable datagram service.

    Features:
    - Configurable latency (base + jitter)
    - Random packet loss, reordering and duplication
    - Deterministic drop / duplicate filters
    - Multiple endpoints

    Usage:
        net = SimulatedNetwork()
        a = net.endpoint(("10.0.0.1", 5000))
        b = net.endpoint(("10.0.0.2", 5000))
        ...
        net.stop()
    """

    def __init__(self, latency: float = 0.0, jitter: float = 0.0,
                 loss_rate: float = 0.0, duplicate_rate: float = 0.0,
                 reorder_rate: float = 0.0, seed: Optional[int] = None):
        self._endpoints: Dict[Address, SimulatedEndpoint] = {}
        self._scheduled: List[ScheduledPacket] = []  # heap
        self._order = itertools.count()
        self._cond = threading.Condition()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stats = NetworkStats()
        self._random = random.Random(seed)

        # Network characteristics
        self.latency = latency
        self.jitter = jitter
        self.loss_rate = loss_rate
        self.duplicate_rate = duplicate_rate
        self.reorder_rate = reorder_rate

        # Deterministic hooks, consulted before the random ones
        self.drop_filter: Optional[PacketFilter] = None
        self.duplicate_filter: Optional[PacketFilter] = None

        self.capture: Optional["PacketCapture"] = None

    def endpoint(self, address: Address,
                 remote_addr: Optional[Address] = None) -> SimulatedEndpoint:
        """
        Create and register an endpoint at address.

        The network starts delivering packets on first use.
        """
        with self._cond:
            if address in self._endpoints:
                raise ValueError(f"Address already in use: {address}")
            ep = SimulatedEndpoint(self, address, remote_addr)
            self._endpoints[address] = ep
        self.start()
        return ep

    def unregister_endpoint(self, address: Address):
        """Unregister an endpoint."""
        with self._cond:
            self._endpoints.pop(address, None)

    def send(self, packet: bytes, src: Address, dst: Address):
        """
        Send a packet through the simulated network.

        The packet may be delayed, dropped, reordered, or duplicated
        based on the network characteristics.
        """
        if self.capture:
            self.capture.capture(packet, src, dst)

        with self._cond:
            self._stats.packets_sent += 1
            self._stats.bytes_sent += len(packet)

            if self._should_drop(packet, src, dst):
                self._stats.packets_dropped += 1
                logger.debug(f"Dropped: {src} -> {dst} ({len(packet)} bytes)")
                return

            now = time.monotonic()
            delay = self._calculate_delay()

            if self._should_duplicate(packet, src, dst):
                self._stats.packets_duplicated += 1
                self._schedule_packet(packet, src, dst, now + self._calculate_delay())

            # Reordering: hold this packet back so later ones overtake it
            if self.reorder_rate and self._random.random() < self.reorder_rate:
                self._stats.packets_reordered += 1
                delay += self._random.uniform(0.01, 0.05)

            self._schedule_packet(packet, src, dst, now + delay)
            self._cond.notify()

    def _should_drop(self, packet: bytes, src: Address, dst: Address) -> bool:
        if self.drop_filter and self.drop_filter(packet, src, dst):
            return True
        return bool(self.loss_rate) and self._random.random() < self.loss_rate

    def _should_duplicate(self, packet: bytes, src: Address, dst: Address) -> bool:
        if self.duplicate_filter and self.duplicate_filter(packet, src, dst):
            return True
        return bool(self.duplicate_rate) and self._random.random() < self.duplicate_rate

    def _calculate_delay(self) -> float:
        """Calculate packet delay."""
        if not self.jitter:
            return self.latency
        return max(0.0, self.latency + self._random.uniform(-self.jitter, self.jitter))

    def _schedule_packet(self, packet: bytes, src: Address, dst: Address,
                         delivery_time: float):
        """Schedule a packet for delivery. Caller holds the lock."""
        heapq.heappush(self._scheduled, ScheduledPacket(
            delivery_time=delivery_time,
            order=next(self._order),
            packet=packet,
            src=src,
            dst=dst
        ))

    def start(self):
        """Start the delivery thread."""
        with self._cond:
            if self._running:
                return
            self._running = True
            self._thread = threading.Thread(target=self._delivery_loop, daemon=True)
            self._thread.start()

    def stop(self):
        """Stop the simulator and close every endpoint."""
        with self._cond:
            self._running = False
            endpoints = list(self._endpoints.values())
            self._cond.notify_all()
        for ep in endpoints:
            ep.close()
        if self._thread:
            self._thread.join(timeout=1.0)

    def _delivery_loop(self):
        """Background thread that delivers packets at scheduled times."""
        with self._cond:
            while self._running:
                if not self._scheduled:
                    self._cond.wait()
                    continue

                wait_time = self._scheduled[0].delivery_time - time.monotonic()
                if wait_time > 0:
                    self._cond.wait(wait_time)
                    continue

                self._deliver_packet(heapq.heappop(self._scheduled))

    def _deliver_packet(self, packet: ScheduledPacket):
        """Deliver a packet to its destination. Caller holds the lock."""
        ep = self._endpoints.get(packet.dst)
        if ep is None:
            logger.debug(f"No endpoint for {packet.dst}")
            return

        self._stats.packets_delivered += 1
        self._stats.bytes_delivered += len(packet.packet)
        ep._deliver(packet.packet, packet.src)

    def get_stats(self) -> NetworkStats:
        """Get network statistics."""
        return self._stats

    def reset_stats(self):
        """Reset network statistics."""
        with self._cond:
            self._stats = NetworkStats()

    def configure_lossy(self, loss_rate: float = 0.05):
        """Configure for a lossy network (e.g., wireless)."""
        self.loss_rate = loss_rate
        self.latency = 0.005
        self.jitter = 0.002
        logger.info(f"Configured lossy network: {loss_rate*100}% loss")

    def configure_lan(self):
        """Configure for LAN characteristics."""
        self.latency = 0.001
        self.jitter = 0.0005
        self.loss_rate = 0.0
        logger.info("Configured LAN: 1ms latency")


class PacketCapture:
    """
    Capture and analyze datagrams in the simulated network.

    Useful for checking exactly what a connection put on the wire.
    """

    def __init__(self):
        self._packets: List[dict] = []
        self._lock = threading.Lock()

    def capture(self, packet: bytes, src: Any, dst: Any):
        """Capture a packet."""
        with self._lock:
            self._packets.append({
                'timestamp': time.monotonic(),
                'src': src,
                'dst': dst,
                'size': len(packet),
                'raw': packet
            })

    def get_packets(self) -> List[dict]:
        """Get all captured packets."""
        with self._lock:
            return list(self._packets)

    def clear(self):
        """Clear captured packets."""
        with self._lock:
            self._packets.clear()

    def summary(self) -> str:
        """Generate a summary of captured packets."""
        with self._lock:
            if not self._packets:
                return "No packets captured"

            lines = [f"Captured {len(self._packets)} packets:"]
            start_time = self._packets[0]['timestamp']

            for i, pkt in enumerate(self._packets[:50]):  # Limit to 50
                rel_time = (pkt['timestamp'] - start_time) * 1000
                lines.append(
                    f"  {i:4d} [{rel_time:8.1f}ms] "
                    f"{pkt['src']} -> {pkt['dst']} "
                    f"({pkt['size']} bytes)"
                )

            if len(self._packets) > 50:
                lines.append(f"  ... and {len(self._packets) - 50} more")

            return '\n'.join(lines)
