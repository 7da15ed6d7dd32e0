"""Error taxonomy for the scan engine."""


class ApiProbeError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigError(ApiProbeError):
    """Invalid or missing scan configuration."""
    pass


class TransportError(ApiProbeError):
    """Network-level failure: DNS, refused connection, timeout, reset.

    Never raised by the transport client itself; it is carried on
    ``ProbeResult.error`` and raised by ``ProbeResult.raise_for_transport``.
    """

    def __init__(self, message: str, kind: str = "network"):
        super().__init__(message)
        self.kind = kind


class ScanCancelled(TransportError):
    """The session was cancelled or its deadline elapsed mid-request."""

    def __init__(self, message: str = "scan cancelled"):
        super().__init__(message, kind="cancelled")


class DiscoveryError(ApiProbeError):
    """A discovery source was unreachable or could not be parsed."""
    pass


class ProbeError(ApiProbeError):
    """A probe implementation fault (bad payload construction, parsing bug)."""
    pass


class AggregationError(ApiProbeError):
    """Risk aggregation could not complete."""
    pass


class ProbeInconclusive(ApiProbeError):
    """A probe ran but could not reach a verdict (missing credentials, mixed evidence)."""

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail
