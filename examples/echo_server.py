#!/usr/bin/env python3
"""
Stop-and-Wait Echo Server Example

A simple echo server that demonstrates:
- Binding an unconnected UDP transport
- Receiving in-order payloads from a connection
- Replying to the peer by address

A connection keeps a single receive sequence counter, so the server talks
to one client per run. Start it, then run the echo client.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stopwait import Connection, ConnectionConfig, UdpTransport, WouldBlockError
import logging

# Enable logging to see protocol internals
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def echo_server(host: str = "127.0.0.1", port: int = 8080, peer_port: int = 8081):
    """
    Run a stop-and-wait echo server.

    The server:
    1. Binds to the specified port
    2. Receives each payload in order
    3. Sends it back to the client, blocking until it is acknowledged
    """
    print(f"Starting echo server on {host}:{port}")

    transport = UdpTransport.bind(host, port)
    conn = Connection(transport, ConnectionConfig(receive_timeout=1.0))
    client_addr = (host, peer_port)

    try:
        while conn.is_alive:
            try:
                data = conn.receive_one()
            except WouldBlockError:
                continue

            print(f"Received {len(data)} bytes: {data[:50]}...")
            conn.send(data, client_addr)
            print(f"Echoed {len(data)} bytes back (rtt {conn.rtt_last}us)")

    except KeyboardInterrupt:
        print("\nShutting down server...")
    finally:
        print(conn.get_statistics())
        conn.close()
        print("Server closed")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Stop-and-Wait Echo Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    parser.add_argument("--peer-port", type=int, default=8081, help="Client's port")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    if not args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    echo_server(args.host, args.port, args.peer_port)
