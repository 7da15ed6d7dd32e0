"""Protocol adapter interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from apiprobe.core.context import CredentialTier, ScanContext
from apiprobe.core.models import Endpoint, ParameterSpec, ProbeResult


@dataclass
class ProbeIntent:
    """What a probe wants to send, independent of protocol.

    ``params`` overrides parameter values by name; parameters not named get a
    type-appropriate default. ``raw_body`` bypasses body encoding entirely.
    """
    endpoint: Endpoint
    tier: CredentialTier = CredentialTier.ANONYMOUS
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    method: Optional[str] = None
    raw_body: Optional[str] = None
    content_type: Optional[str] = None
    timeout: Optional[float] = None


@dataclass
class PreparedRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Optional[str] = None


DEFAULT_VALUES = {
    "integer": "1",
    "int": "1",
    "number": "1",
    "float": "1",
    "boolean": "true",
    "bool": "true",
    "id": "1",
}


class ProtocolAdapter(ABC):
    """Translates a ProbeIntent into a protocol-correct request."""

    def __init__(self, transport, context: ScanContext):
        self.transport = transport
        self.context = context

    @abstractmethod
    def build_request(self, intent: ProbeIntent) -> PreparedRequest:
        """Build the request without sending it."""
        pass

    def injection_points(self, endpoint: Endpoint) -> list[ParameterSpec]:
        """Parameters that can carry a payload."""
        return list(endpoint.parameters)

    def default_value(self, param: ParameterSpec) -> str:
        return DEFAULT_VALUES.get(param.data_type.lower().rstrip("!"), "test")

    def value_for(self, param: ParameterSpec, intent: ProbeIntent) -> str:
        if param.name in intent.params:
            return intent.params[param.name]
        return self.default_value(param)

    def succeeded(self, result: ProbeResult) -> bool:
        """The operation was executed, by this protocol's definition of success."""
        return result.is_success

    def base_headers(self, intent: ProbeIntent) -> dict[str, str]:
        headers = self.context.headers_for(intent.tier)
        headers.update(intent.headers)
        return headers

    async def send(self, intent: ProbeIntent) -> ProbeResult:
        request = self.build_request(intent)
        return await self.transport.send(
            request.method,
            request.url,
            headers=request.headers,
            body=request.body,
            timeout=intent.timeout or self.context.request_timeout,
        )
