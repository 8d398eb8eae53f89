#!/usr/bin/env python3
"""
Stop-and-Wait Echo Client Example

A simple echo client that demonstrates:
- Connecting a UDP transport to one peer
- Sending a payload reliably (fragmented if larger than the MSS)
- Receiving the echo

Run the echo server first, then run this client.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stopwait import Connection, ConnectionConfig, UdpTransport, WouldBlockError
import logging
import time

# Enable logging to see protocol internals
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def receive_exact(conn: Connection, size: int, timeout: float = 5.0) -> bytes:
    """Collect echoed fragments until `size` bytes have arrived."""
    data = bytearray()
    deadline = time.monotonic() + timeout
    while len(data) < size:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError(f"received {len(data)} of {size} bytes")
        try:
            data.extend(conn.receive_one(timeout=remaining))
        except WouldBlockError:
            continue
    return bytes(data)


def echo_client(host: str = "127.0.0.1", port: int = 8080, local_port: int = 8081,
                message: str = "Hello, stop-and-wait!"):
    """
    Run a stop-and-wait echo client.

    The client:
    1. Connects its transport to the server
    2. Sends a message
    3. Receives the echo
    4. Prints the response and RTT statistics
    """
    transport = UdpTransport.connect((host, port), ("0.0.0.0", local_port))
    conn = Connection(transport)

    try:
        data = message.encode('utf-8')
        print(f"Sending: {message}")
        conn.send(data)
        print(f"Sent {len(data)} bytes")

        response = receive_exact(conn, len(data))
        print(f"Received {len(response)} bytes: {response.decode('utf-8')}")

        if response == data:
            print("Echo verified!")
        else:
            print("WARNING: Response doesn't match sent data!")

        print(f"RTT last={conn.rtt_last}us min={conn.rtt_min}us max={conn.rtt_max}us")

    except TimeoutError as e:
        print(f"Timed out: {e}")
    finally:
        conn.close()
        print("Connection closed")


def benchmark_client(host: str = "127.0.0.1", port: int = 8080, local_port: int = 8081,
                     message_size: int = 1024, count: int = 100):
    """
    Benchmark the echo server with multiple messages.
    """
    print(f"Benchmarking {host}:{port}")
    print(f"Message size: {message_size} bytes, Count: {count}")

    transport = UdpTransport.connect((host, port), ("0.0.0.0", local_port))
    conn = Connection(transport)

    try:
        test_data = b'X' * message_size

        start_time = time.time()
        for i in range(count):
            conn.send(test_data)
            receive_exact(conn, message_size)

            if (i + 1) % 10 == 0:
                print(f"  Completed {i + 1}/{count} iterations")

        elapsed = time.time() - start_time

        print(f"\nResults:")
        print(f"  Total time: {elapsed:.2f} seconds")
        print(f"  Messages: {count}")
        print(f"  Throughput: {message_size * count / elapsed / 1024:.2f} KB/s")
        print(f"  Avg round trip: {elapsed / count * 1000:.2f} ms")
        print(f"  Retransmissions: {conn.stats.retransmissions}")

    except TimeoutError as e:
        print(f"Timed out: {e}")
    finally:
        conn.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Stop-and-Wait Echo Client")
    parser.add_argument("--host", default="127.0.0.1", help="Server host")
    parser.add_argument("--port", type=int, default=8080, help="Server port")
    parser.add_argument("--local-port", type=int, default=8081, help="Local port")
    parser.add_argument("--message", "-m", default="Hello, stop-and-wait!", help="Message to send")
    parser.add_argument("--benchmark", "-b", action="store_true", help="Benchmark mode")
    parser.add_argument("--size", type=int, default=1024, help="Message size for benchmark")
    parser.add_argument("--count", type=int, default=100, help="Message count for benchmark")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    if not args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    if args.benchmark:
        benchmark_client(args.host, args.port, args.local_port, args.size, args.count)
    else:
        echo_client(args.host, args.port, args.local_port, args.message)
