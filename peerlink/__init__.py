"""LAN peer discovery, framed JSON messaging over TCP, shared-directory watching and chunked transfers."""

__version__ = "0.1.0"