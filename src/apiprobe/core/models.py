"""Data model shared by discovery, probes, aggregation and reporting."""

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx

from .errors import TransportError


class Severity(Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def cvss_band(self) -> tuple[float, float]:
        """Inclusive CVSS v3 range for this qualitative rating."""
        return _CVSS_BANDS[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

_CVSS_BANDS = {
    Severity.INFO: (0.0, 0.0),
    Severity.LOW: (0.1, 3.9),
    Severity.MEDIUM: (4.0, 6.9),
    Severity.HIGH: (7.0, 8.9),
    Severity.CRITICAL: (9.0, 10.0),
}


class Protocol(Enum):
    REST = "rest"
    GRAPHQL = "graphql"
    SOAP = "soap"


class ParameterLocation(Enum):
    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"


@dataclass(frozen=True)
class ParameterSpec:
    """A parameter an operation accepts."""
    name: str
    location: ParameterLocation
    data_type: str = "string"
    required: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "location": self.location.value,
            "dataType": self.data_type,
            "required": self.required,
        }


_PLACEHOLDER_STYLES = [
    re.compile(r"/:([A-Za-z_][A-Za-z0-9_]*)"),  # express style /:id
    re.compile(r"/<(?:[a-z]+:)?([A-Za-z_][A-Za-z0-9_]*)>"),  # flask style /<int:id>
]


def normalize_path(path: str) -> str:
    """Canonical form of a path used for endpoint identity.

    Collapses duplicate slashes, drops a trailing slash and rewrites
    ``:id`` / ``<id>`` placeholders to ``{id}``. A ``#operation`` suffix
    (GraphQL fields, SOAP operations) is preserved.
    """
    base, sep, fragment = path.partition("#")
    base = base.split("?", 1)[0].strip() or "/"
    if not base.startswith("/"):
        base = "/" + base
    base = re.sub(r"/{2,}", "/", base)
    for pattern in _PLACEHOLDER_STYLES:
        base = pattern.sub(r"/{\1}", base)
    if len(base) > 1:
        base = base.rstrip("/")
    return f"{base}{sep}{fragment}"


@dataclass(frozen=True)
class Endpoint:
    """One discovered, addressable operation.

    REST endpoints use a plain path. GraphQL fields and SOAP operations use
    ``<service path>#<operation>`` so identity stays (protocol, path, method).
    """
    path: str
    method: str
    protocol: Protocol
    parameters: tuple[ParameterSpec, ...] = field(default=(), compare=False)
    source: str = field(default="unknown", compare=False)
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_path(self.path))
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "parameters", tuple(self.parameters))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.protocol.value, self.path, self.method)

    @property
    def ref(self) -> str:
        """Stable string reference used by findings."""
        return f"{self.protocol.value}:{self.method} {self.path}"

    @property
    def service_path(self) -> str:
        return self.path.partition("#")[0]

    @property
    def operation(self) -> Optional[str]:
        return self.path.partition("#")[2] or None

    @property
    def is_service(self) -> bool:
        """True for the protocol-level endpoint (GraphQL URL, SOAP address)."""
        return self.protocol != Protocol.REST and self.operation is None

    @property
    def display(self) -> str:
        if self.operation:
            return f"{self.protocol.value.upper()} {self.operation} ({self.service_path})"
        return f"{self.method} {self.path}"

    def parameters_in(self, location: ParameterLocation) -> list[ParameterSpec]:
        return [p for p in self.parameters if p.location == location]

    def to_dict(self) -> dict:
        return {
            "ref": self.ref,
            "path": self.path,
            "method": self.method,
            "protocol": self.protocol.value,
            "parameters": [p.to_dict() for p in self.parameters],
            "sourceOfDiscovery": self.source,
        }


@dataclass
class ProbeResult:
    """Raw outcome of one transport call."""
    method: str
    url: str
    status_code: int = 0
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: str = ""
    elapsed_ms: float = 0.0
    error: Optional[TransportError] = None

    @property
    def ok(self) -> bool:
        """Transport succeeded (any HTTP status)."""
        return self.error is None

    @property
    def is_success(self) -> bool:
        return self.ok and 200 <= self.status_code < 300

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def json(self) -> Any:
        """Parsed JSON body, or None when the body is not JSON."""
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError:
            return None

    def raise_for_transport(self) -> "ProbeResult":
        if self.error is not None:
            raise self.error
        return self


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Finding:
    """A confirmed or strongly-evidenced vulnerability on one endpoint.

    Severity and CVSS score are fixed together at creation; a correction
    is a new Finding.
    """
    type: str
    title: str
    severity: Severity
    cvss_score: float
    weakness_id: str
    endpoint_ref: str
    evidence: str = ""
    description: str = ""
    recommendation: str = ""
    references: tuple[str, ...] = ()
    probe: str = ""
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        low, high = self.severity.cvss_band
        if not low <= self.cvss_score <= high:
            raise ValueError(
                f"CVSS {self.cvss_score} outside {self.severity.value} band {low}-{high}"
            )
        object.__setattr__(self, "references", tuple(self.references))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "severity": self.severity.value.upper(),
            "cvssScore": self.cvss_score,
            "weaknessId": self.weakness_id,
            "endpointRef": self.endpoint_ref,
            "evidence": self.evidence,
            "description": self.description,
            "recommendation": self.recommendation,
            "references": list(self.references),
            "probe": self.probe,
        }


@dataclass(frozen=True)
class Inconclusive:
    """A probe invocation that could not reach a verdict."""
    probe: str
    endpoint_ref: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "probe": self.probe,
            "endpointRef": self.endpoint_ref,
            "reason": self.reason,
            "detail": self.detail,
        }
