"""Rate-limit absence probe."""

import asyncio
from collections import Counter

from apiprobe.adapters import ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.errors import ProbeInconclusive, ScanCancelled
from apiprobe.core.models import Severity
from apiprobe.core.weaknesses import MISSING_RATE_LIMITING

from .base import Probe, ProbeScope


class RateLimitProbe(Probe):
    """Fires one burst of anonymous requests and looks for any throttling signal.

    A 429 or a Retry-After header on any response is a pass. The burst
    yields at most one finding.
    """

    name = "rate-limit"
    description = "Detects missing request rate limiting"
    scope = ProbeScope.SERVICE

    def applies_to(self, endpoint, context):
        return super().applies_to(endpoint, context) and endpoint.method != "DELETE"

    async def run(self, endpoint, context, adapter):
        burst = context.rate_limit_burst_size
        intent = ProbeIntent(endpoint=endpoint, tier=CredentialTier.ANONYMOUS)
        results = await asyncio.gather(*(adapter.send(intent) for _ in range(burst)))

        if any(isinstance(r.error, ScanCancelled) for r in results):
            raise ScanCancelled(context.cancel_token.reason or "scan cancelled")

        answered = [r for r in results if r.ok]
        if any(r.status_code == 429 or r.header("Retry-After") for r in answered):
            return []

        failed = burst - len(answered)
        if failed:
            # Dropped connections may themselves be throttling
            raise ProbeInconclusive("transport", f"{failed} of {burst} burst requests failed without a 429")

        statuses = Counter(r.status_code for r in answered)
        summary = ", ".join(f"{status} x{count}" for status, count in sorted(statuses.items()))
        return [self.finding(
            MISSING_RATE_LIMITING,
            Severity.MEDIUM,
            endpoint,
            evidence=f"Sent {burst} anonymous requests without being throttled (no 429, no Retry-After): {summary}",
            description=f"{endpoint.display} accepts bursts of {burst}+ requests without rate limiting.",
        )]
