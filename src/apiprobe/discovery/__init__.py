"""Endpoint discovery per protocol."""

from apiprobe.core.models import Protocol

from .base import Discoverer, DiscoveryResult, DiscoveryState, SPEC_SOURCES, merge_endpoints
from .rest import RestDiscoverer, OpenAPIParser, load_document
from .graphql import GraphQLDiscoverer
from .soap import SoapDiscoverer, parse_wsdl

DISCOVERERS = {
    Protocol.REST: RestDiscoverer,
    Protocol.GRAPHQL: GraphQLDiscoverer,
    Protocol.SOAP: SoapDiscoverer,
}


def discoverer_for(protocol: Protocol, transport, context) -> Discoverer:
    return DISCOVERERS[protocol](transport, context)


__all__ = [
    "Discoverer",
    "DiscoveryResult",
    "DiscoveryState",
    "SPEC_SOURCES",
    "merge_endpoints",
    "RestDiscoverer",
    "OpenAPIParser",
    "load_document",
    "GraphQLDiscoverer",
    "SoapDiscoverer",
    "parse_wsdl",
    "discoverer_for",
]
