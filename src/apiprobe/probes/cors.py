"""CORS misconfiguration probe."""

from apiprobe.adapters import ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import Severity
from apiprobe.core.weaknesses import CORS_MISCONFIGURATION

from .base import Probe, ProbeScope

FOREIGN_ORIGIN = "https://evil.apiprobe.example"


class CorsProbe(Probe):
    """Sends a deliberately foreign Origin and inspects the CORS response headers."""

    name = "cors"
    description = "Detects permissive cross-origin resource sharing"
    scope = ProbeScope.SERVICE

    async def run(self, endpoint, context, adapter):
        for origin in (FOREIGN_ORIGIN, "null"):
            result = await self.request(adapter, ProbeIntent(
                endpoint=endpoint,
                tier=CredentialTier.ANONYMOUS,
                headers={"Origin": origin},
            ))
            acao = result.header("Access-Control-Allow-Origin")
            acac = result.header("Access-Control-Allow-Credentials").lower() == "true"
            evidence = f"Origin: {origin} -> Access-Control-Allow-Origin: {acao}"
            if acac:
                evidence += ", Access-Control-Allow-Credentials: true"

            if acao == "*" and acac:
                return [self._finding(endpoint, Severity.HIGH, evidence, "Permissive CORS with Credentials",
                                      "CORS allows all origins with credentials.")]
            if acao == origin:
                return [self._finding(endpoint, Severity.HIGH, evidence, "CORS Origin Reflection",
                                      "CORS reflects arbitrary origins.")]
            if acao == "*":
                return [self._finding(endpoint, Severity.MEDIUM, evidence, "Permissive CORS",
                                      "CORS allows all origins.")]
        return []

    def _finding(self, endpoint, severity, evidence, title, description):
        return self.finding(CORS_MISCONFIGURATION, severity, endpoint, evidence=evidence,
                            title=title, description=description)
