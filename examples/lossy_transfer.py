#!/usr/bin/env python3
"""
Lossy Transfer Example

Demonstrates reliable delivery over a simulated network that loses datagrams:
- Fragmentation of a payload larger than the MSS
- Retransmission on timeout (lost PUSH or lost ACK)
- Re-acknowledgment of duplicates (a lost ACK makes the sender resend)
- In-order reassembly on the receiving side

Everything runs in one process, no sockets needed.

ACKs carry no sequence number, so a duplicated ACK can be taken for the
next fragment's. Keep network duplication off for this protocol.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stopwait import Connection, ConnectionConfig, WouldBlockError
from simulator import SimulatedNetwork
import logging
import hashlib
import threading
import time

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

SENDER = ("10.0.0.1", 5000)
RECEIVER = ("10.0.0.2", 5000)


def transfer(size: int = 64 * 1024, loss_rate: float = 0.1,
             mss: int = 1400, seed: int = 7):
    """Send `size` random-looking bytes across a lossy network and verify them."""
    payload = hashlib.sha256(b"seed").digest() * (size // 32 + 1)
    payload = payload[:size]

    net = SimulatedNetwork(latency=0.002, jitter=0.001, loss_rate=loss_rate,
                           seed=seed)
    config = ConnectionConfig(mss=mss, rto=0.02)
    sender = Connection(net.endpoint(SENDER), config)
    receiver = Connection(net.endpoint(RECEIVER), config)

    received = bytearray()

    def consume():
        while len(received) < size:
            try:
                received.extend(receiver.receive_one(timeout=1.0))
            except WouldBlockError:
                continue

    consumer = threading.Thread(target=consume, daemon=True)
    consumer.start()

    print(f"Sending {size} bytes in {(size + mss - 1) // mss} fragments")
    print(f"Loss: {loss_rate*100:.0f}%")

    start_time = time.time()
    sender.send(payload, RECEIVER)
    consumer.join(timeout=10.0)
    elapsed = time.time() - start_time

    ok = bytes(received) == payload
    print(f"Transfer {'verified' if ok else 'FAILED'} in {elapsed:.2f}s")
    print(f"Retransmissions: {sender.stats.retransmissions}")
    print(f"Duplicates re-acknowledged: {receiver.stats.duplicates}")
    print(f"RTT last={sender.rtt_last}us min={sender.rtt_min}us max={sender.rtt_max}us")
    print(net.get_stats())

    net.stop()
    return ok


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Stop-and-wait over a lossy network")
    parser.add_argument("--size", type=int, default=64 * 1024, help="Bytes to send")
    parser.add_argument("--loss", type=float, default=0.1, help="Loss rate (0-1)")
    parser.add_argument("--mss", type=int, default=1400, help="Max segment size")

    args = parser.parse_args()
    sys.exit(0 if transfer(args.size, args.loss, args.mss) else 1)
