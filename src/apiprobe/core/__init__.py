"""Core data model, configuration and shared services."""

from .models import (
    Severity,
    Protocol,
    ParameterLocation,
    ParameterSpec,
    Endpoint,
    ProbeResult,
    Finding,
    Inconclusive,
    normalize_path,
)
from .errors import (
    ApiProbeError,
    ConfigError,
    TransportError,
    ScanCancelled,
    DiscoveryError,
    ProbeError,
    ProbeInconclusive,
    AggregationError,
)
from .context import ScanContext, Credentials, CredentialTier, CancellationToken
from .session import ScanSession, SessionStatus
from .logging import setup_logging, get_logger
from .payloads import PayloadManager, get_payloads
from .patterns import (
    PatternMatcher,
    SignaturePattern,
    DetectionResult,
    default_matcher,
    detect_sql_error,
    detect_cmd_output,
    detect_sensitive_data,
)

__all__ = [
    "Severity",
    "Protocol",
    "ParameterLocation",
    "ParameterSpec",
    "Endpoint",
    "ProbeResult",
    "Finding",
    "Inconclusive",
    "normalize_path",
    "ApiProbeError",
    "ConfigError",
    "TransportError",
    "ScanCancelled",
    "DiscoveryError",
    "ProbeError",
    "ProbeInconclusive",
    "AggregationError",
    "ScanContext",
    "Credentials",
    "CredentialTier",
    "CancellationToken",
    "ScanSession",
    "SessionStatus",
    "setup_logging",
    "get_logger",
    "PayloadManager",
    "get_payloads",
    "PatternMatcher",
    "SignaturePattern",
    "DetectionResult",
    "default_matcher",
    "detect_sql_error",
    "detect_cmd_output",
    "detect_sensitive_data",
]
