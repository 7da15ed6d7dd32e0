"""Probe framework."""

import asyncio
import statistics
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from fnmatch import fnmatch
from typing import Optional

from apiprobe.adapters import ProbeIntent, ProtocolAdapter
from apiprobe.core.context import CredentialTier, ScanContext
from apiprobe.core.errors import ProbeError, ProbeInconclusive, ScanCancelled, TransportError
from apiprobe.core.logging import endpoint_logger, get_logger
from apiprobe.core.models import Endpoint, Finding, Inconclusive, ProbeResult, Protocol, Severity
from apiprobe.core.patterns import PatternMatcher, default_matcher
from apiprobe.core.payloads import PayloadManager
from apiprobe.core.weaknesses import make_finding

logger = get_logger("probes")

ALL_PROTOCOLS = frozenset(Protocol)

TIMING_KEYWORDS = ("SLEEP", "WAITFOR", "BENCHMARK")


def is_timing_payload(payload: str) -> bool:
    return any(k in payload.upper() for k in TIMING_KEYWORDS)


class ProbeScope(Enum):
    ENDPOINT = "endpoint"  # once per operation
    SERVICE = "service"  # once per protocol surface


@dataclass
class ProbeOutcome:
    """Findings, or the reason there is no verdict, for one probe invocation."""
    probe: str
    endpoint: Endpoint
    findings: list[Finding] = field(default_factory=list)
    inconclusive: Optional[Inconclusive] = None


class BaselineRegistry:
    """Median latency per endpoint, measured once and shared by all probes."""

    def __init__(self):
        self._values: dict[tuple, float] = {}
        self._locks: dict[tuple, asyncio.Lock] = {}

    def known(self, endpoint: Endpoint) -> Optional[float]:
        return self._values.get(endpoint.key)

    async def baseline(self, endpoint: Endpoint, context: ScanContext, adapter: ProtocolAdapter,
                       tier: CredentialTier = CredentialTier.ANONYMOUS) -> float:
        lock = self._locks.setdefault(endpoint.key, asyncio.Lock())
        async with lock:
            if endpoint.key not in self._values:
                timings = []
                for _ in range(context.baseline_samples):
                    result = await adapter.send(ProbeIntent(endpoint=endpoint, tier=tier))
                    result.raise_for_transport()
                    timings.append(result.elapsed_ms)
                self._values[endpoint.key] = statistics.median(timings)
                logger.debug(f"Baseline for {endpoint.ref}: {self._values[endpoint.key]:.0f} ms")
            return self._values[endpoint.key]


class Probe(ABC):
    """Base class for all probes.

    A probe tests one vulnerability class on one endpoint and talks to the
    target only through the adapter it is given.
    """

    name: str = "probe"
    description: str = "Base probe class"
    scope: ProbeScope = ProbeScope.ENDPOINT
    protocols: frozenset = ALL_PROTOCOLS
    severity_cap: Optional[Severity] = None

    def __init__(
        self,
        baselines: Optional[BaselineRegistry] = None,
        payloads: Optional[PayloadManager] = None,
        matcher: Optional[PatternMatcher] = None,
    ):
        self.baselines = baselines or BaselineRegistry()
        self.payloads = payloads or PayloadManager()
        self.matcher = matcher or default_matcher

    def applies_to(self, endpoint: Endpoint, context: ScanContext) -> bool:
        if endpoint.protocol not in self.protocols:
            return False
        if self.scope == ProbeScope.ENDPOINT and endpoint.is_service:
            return False
        return True

    @abstractmethod
    async def run(self, endpoint: Endpoint, context: ScanContext, adapter: ProtocolAdapter) -> list[Finding]:
        """Test the endpoint and return findings."""
        pass

    async def execute(self, endpoint: Endpoint, context: ScanContext, adapter: ProtocolAdapter) -> ProbeOutcome:
        """Run the probe, isolating every failure to this invocation."""
        outcome = ProbeOutcome(probe=self.name, endpoint=endpoint)
        try:
            outcome.findings = list(await self.run(endpoint, context, adapter))
        except ScanCancelled as e:
            outcome.inconclusive = self._inconclusive(endpoint, "cancelled", str(e))
        except TransportError as e:
            outcome.inconclusive = self._inconclusive(endpoint, e.kind, str(e))
        except ProbeInconclusive as e:
            outcome.inconclusive = self._inconclusive(endpoint, e.reason, e.detail)
        except Exception as e:
            error = ProbeError(f"{self.name} failed on {endpoint.ref}: {e!r}")
            endpoint_logger(logger, self.name, endpoint.ref).warning(f"probe error: {e!r}")
            outcome.inconclusive = self._inconclusive(endpoint, "probe-error", str(error))
        return outcome

    def _inconclusive(self, endpoint: Endpoint, reason: str, detail: str) -> Inconclusive:
        endpoint_logger(logger, self.name, endpoint.ref).debug(f"inconclusive ({reason}) {detail}")
        return Inconclusive(probe=self.name, endpoint_ref=endpoint.ref, reason=reason, detail=detail)

    # -- helpers -----------------------------------------------------------

    def finding(self, finding_type: str, severity: Severity, endpoint: Endpoint, evidence: str,
                title: Optional[str] = None, description: str = "") -> Finding:
        if self.severity_cap is not None and severity.rank > self.severity_cap.rank:
            severity = self.severity_cap
        return make_finding(
            finding_type,
            severity,
            endpoint,
            evidence=evidence,
            title=title,
            description=description,
            probe=self.name,
        )

    def best_tier(self, context: ScanContext) -> CredentialTier:
        """Most useful credential for reaching the operation's logic."""
        for tier in (CredentialTier.NORMAL, CredentialTier.ELEVATED):
            if context.has_tier(tier):
                return tier
        return CredentialTier.ANONYMOUS

    async def request(self, adapter: ProtocolAdapter, intent: ProbeIntent) -> ProbeResult:
        """Send and raise on transport failure, aborting this invocation."""
        result = await adapter.send(intent)
        return result.raise_for_transport()

    async def timed(self, endpoint: Endpoint, context: ScanContext, adapter: ProtocolAdapter,
                    intent: ProbeIntent) -> Optional[tuple[float, float]]:
        """Send a timing payload against the endpoint's baseline.

        Returns (elapsed_ms, baseline_ms) when the delay over baseline reaches
        the threshold, None otherwise. Endpoints whose baseline already
        reaches the threshold are not tested. A timeout is inconclusive.
        """
        threshold = context.timing_threshold_ms
        baseline = await self.baselines.baseline(endpoint, context, adapter, intent.tier)
        if baseline >= threshold:
            logger.debug(f"{self.name}: {endpoint.ref} baseline {baseline:.0f} ms, timing checks suppressed")
            return None

        budget = max(context.request_timeout, (baseline + threshold) / 1000 * 2)
        result = await self.request(adapter, replace(intent, timeout=budget))
        if result.elapsed_ms - baseline >= threshold:
            return result.elapsed_ms, baseline
        return None

    @staticmethod
    def is_public(endpoint: Endpoint, context: ScanContext) -> bool:
        if endpoint.attributes.get("public"):
            return True
        return any(fnmatch(endpoint.service_path, pattern) or fnmatch(endpoint.path, pattern)
                   for pattern in context.public_paths)
