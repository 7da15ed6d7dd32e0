"""Vulnerability probe library."""

from typing import Optional

from apiprobe.core.patterns import PatternMatcher
from apiprobe.core.payloads import PayloadManager

from .base import (
    BaselineRegistry,
    Probe,
    ProbeOutcome,
    ProbeScope,
    is_timing_payload,
)
from .auth import MissingAuthenticationProbe
from .authorization import HorizontalEscalationProbe, VerticalEscalationProbe
from .injection import (
    InjectionProbe,
    SqlInjectionProbe,
    CommandInjectionProbe,
    PathTraversalProbe,
    ReflectedXssProbe,
    XxeProbe,
)
from .rate_limit import RateLimitProbe
from .headers import SecurityHeadersProbe
from .exposure import SensitiveDataProbe
from .cors import CorsProbe
from .dos import ResourceExhaustionProbe
from .graphql import GraphQLHardeningProbe

PROBE_CLASSES: list[type[Probe]] = [
    MissingAuthenticationProbe,
    HorizontalEscalationProbe,
    VerticalEscalationProbe,
    SqlInjectionProbe,
    CommandInjectionProbe,
    PathTraversalProbe,
    XxeProbe,
    ReflectedXssProbe,
    SensitiveDataProbe,
    RateLimitProbe,
    SecurityHeadersProbe,
    CorsProbe,
    ResourceExhaustionProbe,
    GraphQLHardeningProbe,
]


def default_probes(
    payloads: Optional[PayloadManager] = None,
    baselines: Optional[BaselineRegistry] = None,
    matcher: Optional[PatternMatcher] = None,
    only: Optional[list[str]] = None,
) -> list[Probe]:
    """Instantiate every registered probe sharing one baseline registry."""
    baselines = baselines or BaselineRegistry()
    payloads = payloads or PayloadManager()
    probes = [cls(baselines=baselines, payloads=payloads, matcher=matcher) for cls in PROBE_CLASSES]
    if only:
        probes = [p for p in probes if p.name in only]
    return probes


__all__ = [
    "BaselineRegistry",
    "Probe",
    "ProbeOutcome",
    "ProbeScope",
    "is_timing_payload",
    "MissingAuthenticationProbe",
    "HorizontalEscalationProbe",
    "VerticalEscalationProbe",
    "InjectionProbe",
    "SqlInjectionProbe",
    "CommandInjectionProbe",
    "PathTraversalProbe",
    "ReflectedXssProbe",
    "XxeProbe",
    "RateLimitProbe",
    "SecurityHeadersProbe",
    "SensitiveDataProbe",
    "CorsProbe",
    "ResourceExhaustionProbe",
    "GraphQLHardeningProbe",
    "PROBE_CLASSES",
    "default_probes",
]
