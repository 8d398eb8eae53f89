# Stop-and-wait transport - Network Simulator
from .network import SimulatedNetwork, SimulatedEndpoint, PacketCapture, NetworkStats

__all__ = ["SimulatedNetwork", "SimulatedEndpoint", "PacketCapture", "NetworkStats"]
