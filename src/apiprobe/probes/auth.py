"""Missing authentication probe."""

from apiprobe.adapters import ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import Severity
from apiprobe.core.weaknesses import MISSING_AUTHENTICATION

from .base import Probe


class MissingAuthenticationProbe(Probe):
    """Calls each non-public operation with no credentials at all."""

    name = "missing-authentication"
    description = "Detects operations that answer anonymous requests"

    async def run(self, endpoint, context, adapter):
        if self.is_public(endpoint, context):
            return []

        result = await self.request(adapter, ProbeIntent(endpoint=endpoint, tier=CredentialTier.ANONYMOUS))

        # 401/403 is a pass; only a full 200 counts
        if result.status_code == 200 and adapter.succeeded(result):
            return [self.finding(
                MISSING_AUTHENTICATION,
                Severity.HIGH,
                endpoint,
                evidence=f"{result.method} {result.url} without credentials returned 200 "
                         f"({len(result.body)} bytes)",
                description=f"{endpoint.display} is not declared public but serves anonymous requests.",
            )]
        return []
