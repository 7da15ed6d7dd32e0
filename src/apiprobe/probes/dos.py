"""Resource exhaustion self-checks.

Latency over baseline is evidence, not proof: findings from this module are
capped at HIGH.
"""

from dataclasses import replace

from apiprobe.adapters import GraphQLAdapter, ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import ParameterLocation, ParameterSpec, Protocol, Severity
from apiprobe.core.weaknesses import RESOURCE_EXHAUSTION

from .base import Probe, ProbeScope

NESTING_DEPTH = 12

# Four levels of ten: 10^4 expansions, enough to be measurable without harming the target
ENTITY_EXPANSION = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE lolz [
 <!ENTITY lol "lol">
 <!ENTITY lol1 "&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;">
 <!ENTITY lol2 "&lol1;&lol1;&lol1;&lol1;&lol1;&lol1;&lol1;&lol1;&lol1;&lol1;">
 <!ENTITY lol3 "&lol2;&lol2;&lol2;&lol2;&lol2;&lol2;&lol2;&lol2;&lol2;&lol2;">
 <!ENTITY lol4 "&lol3;&lol3;&lol3;&lol3;&lol3;&lol3;&lol3;&lol3;&lol3;&lol3;">
]>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body><lolz>&lol4;</lolz></soap:Body></soap:Envelope>"""

OVERSIZED_QUERY = {"limit": "1000000", "per_page": "1000000", "page_size": "1000000", "size": "1000000"}


def nested_introspection(depth: int) -> str:
    """Introspection document nesting ``fields { type { ... } }`` depth times."""
    inner = "name"
    for _ in range(depth):
        inner = f"fields {{ type {{ {inner} }} }}"
    return f"{{ __schema {{ types {{ {inner} }} }} }}"


class ResourceExhaustionProbe(Probe):
    """Sends one expensive request per protocol and measures it against baseline.

    GraphQL: deeply nested query. SOAP: nested entity expansion. REST:
    oversized page-size parameters.
    """

    name = "resource-exhaustion"
    description = "Detects unbounded query depth, entity expansion and page sizes"
    scope = ProbeScope.SERVICE
    severity_cap = Severity.HIGH

    def intent_for(self, endpoint) -> ProbeIntent:
        if endpoint.protocol == Protocol.GRAPHQL:
            return ProbeIntent(
                endpoint=endpoint,
                tier=CredentialTier.ANONYMOUS,
                raw_body=GraphQLAdapter.query_body(nested_introspection(NESTING_DEPTH)),
            )
        if endpoint.protocol == Protocol.SOAP:
            return ProbeIntent(
                endpoint=endpoint,
                tier=CredentialTier.ANONYMOUS,
                method="POST",
                raw_body=ENTITY_EXPANSION,
            )
        return ProbeIntent(endpoint=endpoint, tier=CredentialTier.ANONYMOUS, params=dict(OVERSIZED_QUERY))

    async def run(self, endpoint, context, adapter):
        if endpoint.protocol == Protocol.REST:
            endpoint = self._with_size_params(endpoint)

        timing = await self.timed(endpoint, context, adapter, self.intent_for(endpoint))
        if not timing:
            return []
        elapsed, baseline = timing
        severity = Severity.CRITICAL if elapsed - baseline >= 2 * context.timing_threshold_ms else Severity.MEDIUM
        kind = {
            Protocol.GRAPHQL: f"{NESTING_DEPTH}-level nested query",
            Protocol.SOAP: "nested XML entity expansion",
            Protocol.REST: "oversized page-size parameters",
        }[endpoint.protocol]
        return [self.finding(
            RESOURCE_EXHAUSTION,
            severity,
            endpoint,
            evidence=f"{kind} took {elapsed:.0f} ms against a {baseline:.0f} ms baseline",
            description="Request cost appears unbounded. The verdict rests on a latency heuristic.",
        )]

    def _with_size_params(self, endpoint):
        extra = tuple(ParameterSpec(name, ParameterLocation.QUERY, "integer") for name in OVERSIZED_QUERY
                      if name not in {p.name for p in endpoint.parameters})
        return replace(endpoint, parameters=endpoint.parameters + extra)
