"""Scan session: the state of one assessment run."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from .logging import get_logger
from .models import Endpoint, Finding, Inconclusive

logger = get_logger("session")


class SessionStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    TRUNCATED = "truncated"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"


class EndpointSetClosed(RuntimeError):
    """Endpoints were added after discovery finished."""


@dataclass
class ScanSession:
    """Endpoints, findings and lifecycle of a single assessment.

    The endpoint set is append-only during discovery and closed before
    probing. Findings are an append-only log guarded by one lock.
    """
    target: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.RUNNING
    truncated: bool = False
    overall_risk: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    def __post_init__(self):
        self._endpoints: dict[tuple, Endpoint] = {}
        self._by_ref: dict[str, Endpoint] = {}
        self._findings: list[Finding] = []
        self._inconclusive: list[Inconclusive] = []
        self._lock = asyncio.Lock()
        self._endpoints_closed = False

    # -- endpoints ---------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> bool:
        """Add an endpoint; an already-known identity is dropped silently."""
        if self._endpoints_closed:
            raise EndpointSetClosed(f"cannot add {endpoint.ref} after discovery")
        if endpoint.key in self._endpoints:
            return False
        self._endpoints[endpoint.key] = endpoint
        self._by_ref[endpoint.ref] = endpoint
        return True

    def add_endpoints(self, endpoints: Iterable[Endpoint]) -> int:
        return sum(1 for e in endpoints if self.add_endpoint(e))

    def close_endpoints(self) -> None:
        self._endpoints_closed = True

    @property
    def endpoints_closed(self) -> bool:
        return self._endpoints_closed

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        return tuple(self._endpoints.values())

    def endpoint_by_ref(self, ref: str) -> Optional[Endpoint]:
        return self._by_ref.get(ref)

    # -- findings ----------------------------------------------------------

    def _check_ref(self, ref: str) -> None:
        if self.endpoint_by_ref(ref) is None:
            raise ValueError(f"finding references unknown endpoint {ref}")

    def record_finding(self, finding: Finding) -> None:
        """Synchronous append, for single-task phases such as discovery."""
        self._check_ref(finding.endpoint_ref)
        self._findings.append(finding)

    async def add_finding(self, finding: Finding) -> None:
        self._check_ref(finding.endpoint_ref)
        async with self._lock:
            self._findings.append(finding)

    async def add_findings(self, findings: Iterable[Finding]) -> None:
        findings = list(findings)
        for finding in findings:
            self._check_ref(finding.endpoint_ref)
        async with self._lock:
            self._findings.extend(findings)

    async def add_inconclusive(self, entry: Inconclusive) -> None:
        async with self._lock:
            self._inconclusive.append(entry)

    @property
    def findings(self) -> tuple[Finding, ...]:
        return tuple(self._findings)

    @property
    def inconclusive(self) -> tuple[Inconclusive, ...]:
        return tuple(self._inconclusive)

    def add_note(self, note: str) -> None:
        logger.debug(f"Session note: {note}")
        self.notes.append(note)

    # -- lifecycle ---------------------------------------------------------

    def finalize(self, status: Optional[SessionStatus] = None) -> None:
        if status is not None:
            self.status = status
        elif self.status == SessionStatus.RUNNING:
            self.status = SessionStatus.COMPLETED
        if self.status == SessionStatus.TRUNCATED:
            self.truncated = True
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration(self) -> float:
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()
