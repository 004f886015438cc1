"""Battle server, wire protocol and tornado bot client for a multiplayer snowball shooter."""

__version__ = "0.1.0"

__all__ = [
    "protocol",
    "lockqueue",
    "framing",
    "world",
    "timers",
    "items",
    "manager",
    "server",
    "client",
]