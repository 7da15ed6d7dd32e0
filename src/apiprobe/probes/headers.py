"""Security header audit."""

import re

from apiprobe.adapters import ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import Severity
from apiprobe.core.weaknesses import MISSING_SECURITY_HEADER, TECHNOLOGY_DISCLOSURE, UNSAFE_SECURITY_HEADER

from .base import Probe, ProbeScope

UNSAFE_CSP = re.compile(r"'unsafe-(?:inline|eval)'", re.I)


class SecurityHeadersProbe(Probe):
    """Inspects one unauthenticated response against a header checklist.

    Each absence or unsafe value is reported as its own finding.
    """

    name = "security-headers"
    description = "Checks for missing or misconfigured security headers"
    scope = ProbeScope.SERVICE

    # header -> (severity when missing, purpose)
    REQUIRED_HEADERS = {
        "X-Content-Type-Options": (Severity.MEDIUM, "Prevents MIME type sniffing"),
        "X-XSS-Protection": (Severity.MEDIUM, "Legacy XSS filter (deprecated but still expected)"),
        "Content-Security-Policy": (Severity.MEDIUM, "Prevents XSS and injection attacks"),
    }

    DISCLOSURE_HEADERS = ["Server", "X-Powered-By", "X-AspNet-Version", "X-AspNetMvc-Version"]

    async def run(self, endpoint, context, adapter):
        result = await self.request(adapter, ProbeIntent(endpoint=endpoint, tier=CredentialTier.ANONYMOUS))
        findings = []

        def missing(header: str, severity: Severity, purpose: str):
            findings.append(self.finding(
                MISSING_SECURITY_HEADER,
                severity,
                endpoint,
                evidence=f"Header '{header}' is not present on {result.method} {result.url}",
                title=f"{header} not set",
                description=purpose,
            ))

        for header, (severity, purpose) in self.REQUIRED_HEADERS.items():
            if not result.header(header):
                missing(header, severity, purpose)

        csp = result.header("Content-Security-Policy")
        if not result.header("X-Frame-Options") and "frame-ancestors" not in csp.lower():
            missing("X-Frame-Options", Severity.MEDIUM, "Prevents clickjacking attacks")

        if context.is_encrypted and not result.header("Strict-Transport-Security"):
            missing("Strict-Transport-Security", Severity.HIGH, "Enforces HTTPS connections")

        if csp and UNSAFE_CSP.search(csp):
            findings.append(self.finding(
                UNSAFE_SECURITY_HEADER,
                Severity.HIGH,
                endpoint,
                evidence=f"Content-Security-Policy: {csp}",
                title="Unsafe Content-Security-Policy",
                description="The policy allows inline or eval'd script, defeating its XSS protection.",
            ))

        if result.header("X-Content-Type-Options") and result.header("X-Content-Type-Options").lower() != "nosniff":
            findings.append(self.finding(
                UNSAFE_SECURITY_HEADER,
                Severity.MEDIUM,
                endpoint,
                evidence=f"X-Content-Type-Options: {result.header('X-Content-Type-Options')}",
                title="Invalid X-Content-Type-Options",
                description="Only 'nosniff' disables MIME sniffing.",
            ))

        for header in self.DISCLOSURE_HEADERS:
            value = result.header(header)
            if value:
                findings.append(self.finding(
                    TECHNOLOGY_DISCLOSURE,
                    Severity.LOW,
                    endpoint,
                    evidence=f"{header}: {value}",
                    title=f"{header} exposed",
                    description="Reveals server software or framework version.",
                ))
        return findings
