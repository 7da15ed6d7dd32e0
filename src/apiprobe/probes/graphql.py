"""GraphQL hardening checks: batching and field suggestions."""

import json

from apiprobe.adapters import GraphQLAdapter, ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import Protocol, Severity
from apiprobe.core.weaknesses import GRAPHQL_BATCHING, GRAPHQL_FIELD_SUGGESTIONS

from .base import Probe, ProbeScope

BATCH_SIZE = 5


class GraphQLHardeningProbe(Probe):
    """Checks that the GraphQL service rejects batches and hides field names."""

    name = "graphql-hardening"
    description = "Detects GraphQL batching and field suggestions"
    scope = ProbeScope.SERVICE
    protocols = frozenset({Protocol.GRAPHQL})

    async def run(self, endpoint, context, adapter):
        findings = []
        tier = self.best_tier(context)

        batch = [{"query": "{ __typename }"} for _ in range(BATCH_SIZE)]
        result = await self.request(adapter, ProbeIntent(endpoint=endpoint, tier=tier, raw_body=json.dumps(batch)))
        data = result.json()
        if result.is_success and isinstance(data, list) and len(data) == BATCH_SIZE:
            findings.append(self.finding(
                GRAPHQL_BATCHING,
                Severity.MEDIUM,
                endpoint,
                evidence=f"{BATCH_SIZE} batched queries were accepted in one request",
                description="GraphQL allows batching multiple operations in one request, "
                            "bypassing per-request rate limits.",
            ))

        # Typo of __typename; servers with suggestions answer "Did you mean ..."
        result = await self.request(adapter, ProbeIntent(
            endpoint=endpoint, tier=tier, raw_body=GraphQLAdapter.query_body("{ __typenam }"),
        ))
        data = result.json()
        errors = data.get("errors", []) if isinstance(data, dict) else []
        for error in errors:
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            if "did you mean" in message.lower() or "suggestion" in message.lower():
                findings.append(self.finding(
                    GRAPHQL_FIELD_SUGGESTIONS,
                    Severity.LOW,
                    endpoint,
                    evidence=message[:300],
                    description="GraphQL suggests field names in error messages, leaking the schema "
                                "even with introspection disabled.",
                ))
                break
        return findings
