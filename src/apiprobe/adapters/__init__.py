"""Protocol adapters translating probe intents into requests."""

from apiprobe.core.models import Protocol

from .base import ProtocolAdapter, ProbeIntent, PreparedRequest
from .rest import RestAdapter
from .graphql import GraphQLAdapter
from .soap import SoapAdapter

ADAPTERS = {
    Protocol.REST: RestAdapter,
    Protocol.GRAPHQL: GraphQLAdapter,
    Protocol.SOAP: SoapAdapter,
}


def adapter_for(protocol: Protocol, transport, context) -> ProtocolAdapter:
    """Adapter instance for a protocol."""
    return ADAPTERS[protocol](transport, context)


__all__ = [
    "ProtocolAdapter",
    "ProbeIntent",
    "PreparedRequest",
    "RestAdapter",
    "GraphQLAdapter",
    "SoapAdapter",
    "adapter_for",
]
