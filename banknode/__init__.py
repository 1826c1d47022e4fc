"""P2P bank node: line protocol server, peer discovery and robbery planning."""

__version__ = "1.0.0"
