"""Discovery framework."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from apiprobe.core.context import ScanContext
from apiprobe.core.logging import get_logger
from apiprobe.core.models import Endpoint, Finding, Protocol

logger = get_logger("discovery")

# Endpoints from these sources carry authoritative parameter specs
SPEC_SOURCES = {"openapi", "introspection", "wsdl"}


class DiscoveryState(Enum):
    STRUCTURED_SPEC = "structured_spec"
    COMMON_PATHS = "common_paths"
    PATH_FUZZ = "path_fuzz"
    INTROSPECTION = "introspection"
    WSDL = "wsdl"
    COMPLETE = "discovery_complete"


@dataclass
class DiscoveryResult:
    """Endpoints, discovery-time findings and notes from one discoverer."""
    protocol: Protocol
    endpoints: list[Endpoint] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    state: DiscoveryState = DiscoveryState.COMPLETE

    def __post_init__(self):
        self._keys: set[tuple] = {e.key for e in self.endpoints}

    def add_endpoint(self, endpoint: Endpoint) -> bool:
        """Add unless the identity is already known."""
        if endpoint.key in self._keys:
            return False
        self._keys.add(endpoint.key)
        self.endpoints.append(endpoint)
        return True

    def add_note(self, note: str) -> None:
        logger.debug(note)
        self.notes.append(note)


class Discoverer(ABC):
    """Enumerates the operations of one protocol."""

    protocol: Protocol
    name: str = "Discoverer"

    def __init__(self, transport, context: ScanContext):
        self.transport = transport
        self.context = context

    @abstractmethod
    async def discover(self) -> DiscoveryResult:
        """Run discovery to DiscoveryComplete."""
        pass


def merge_endpoints(results: list[DiscoveryResult]) -> list[Endpoint]:
    """Flatten results, spec-sourced endpoints first so their parameters win."""
    endpoints = [e for r in results for e in r.endpoints]
    return sorted(endpoints, key=lambda e: 0 if e.source in SPEC_SOURCES else 1)
