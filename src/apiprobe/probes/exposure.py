"""Sensitive data exposure probe."""

from apiprobe.adapters import ProbeIntent
from apiprobe.core import patterns

from .base import Probe

# Credentials CRITICAL, personal data HIGH, internal/debug info MEDIUM
EXPOSURE_CATEGORIES = (patterns.CREDENTIALS, patterns.PERSONAL_DATA, patterns.INTERNAL_INFO)


class SensitiveDataProbe(Probe):
    """Scans the operation's response body against the sensitive-data signatures.

    Each pattern class that matches is reported once, at the class severity.
    """

    name = "sensitive-data"
    description = "Detects credentials, personal data and debug information in responses"

    def applies_to(self, endpoint, context):
        return super().applies_to(endpoint, context) and endpoint.method != "DELETE"

    async def run(self, endpoint, context, adapter):
        result = await self.request(adapter, ProbeIntent(endpoint=endpoint, tier=self.best_tier(context)))
        if not result.body:
            return []

        findings = []
        for category in EXPOSURE_CATEGORIES:
            matches = self.matcher.match_all(category, result.body)
            if not matches:
                continue
            signature = matches[0].signature
            detail = "; ".join(f"{m.pattern_name}: {m.match_text}" for m in matches[:5])
            findings.append(self.finding(
                signature.weakness_type,
                signature.severity,
                endpoint,
                evidence=f"{result.method} {result.url} -> {result.status_code}\n{detail}",
                description=f"Response of {endpoint.display} contains {category.replace('_', ' ')} "
                            f"({len(matches)} signature(s)).",
            ))
        return findings
