"""HTTP transport: the only component touching the network."""

from .client import TransportClient

__all__ = ["TransportClient"]
