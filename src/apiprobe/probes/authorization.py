"""Authorization escalation probes (object level and function level)."""

import re
from typing import Any

from apiprobe.adapters import ProbeIntent
from apiprobe.core.context import CredentialTier
from apiprobe.core.models import Severity
from apiprobe.core.weaknesses import HORIZONTAL_ESCALATION, VERTICAL_ESCALATION

from .base import Probe

# Parameters that address an object
IDENTIFIER_PARAM = re.compile(r"^(?:id|ID|uuid|pk)$|(?:_id|Id|ID)$|^(?:user|account|owner|customer|order)$")

# Response fields that name the owner of an object
OWNER_FIELDS = {"id", "user_id", "userid", "owner_id", "ownerid", "account_id", "accountid",
                "customer_id", "customerid", "uid"}

ADMIN_LEXICON = re.compile(r"admin|delete|config|system|role", re.I)


def find_owned(data: Any, identifier: str, depth: int = 0) -> str:
    """Path of the first owner field equal to identifier, or ''."""
    if depth > 6:
        return ""
    if isinstance(data, dict):
        for key, value in data.items():
            if key.lower() in OWNER_FIELDS and not isinstance(value, (dict, list)) and str(value) == identifier:
                return key
            nested = find_owned(value, identifier, depth + 1)
            if nested:
                return f"{key}.{nested}"
    elif isinstance(data, list):
        for index, item in enumerate(data[:50]):
            nested = find_owned(item, identifier, depth + 1)
            if nested:
                return f"[{index}].{nested}"
    return ""


class HorizontalEscalationProbe(Probe):
    """Requests objects owned by another principal with the normal credential."""

    name = "horizontal-escalation"
    description = "Detects access to other users' objects (BOLA/IDOR)"

    def applies_to(self, endpoint, context):
        return (
            super().applies_to(endpoint, context)
            and context.has_tier(CredentialTier.NORMAL)
            and any(IDENTIFIER_PARAM.search(p.name) for p in endpoint.parameters)
        )

    async def run(self, endpoint, context, adapter):
        id_params = [p for p in endpoint.parameters if IDENTIFIER_PARAM.search(p.name)]
        foreign_ids = [i for i in context.foreign_identifiers if i != context.own_identifier]

        for param in id_params:
            for foreign in foreign_ids:
                result = await self.request(adapter, ProbeIntent(
                    endpoint=endpoint,
                    tier=CredentialTier.NORMAL,
                    params={param.name: foreign},
                ))
                if result.status_code in (401, 403, 404) or not adapter.succeeded(result):
                    continue
                owner_field = find_owned(result.json(), foreign)
                if owner_field:
                    return [self.finding(
                        HORIZONTAL_ESCALATION,
                        Severity.HIGH,
                        endpoint,
                        evidence=f"{param.name}={foreign} as the normal user returned {result.status_code} "
                                 f"with {owner_field}={foreign}",
                        description="Objects belonging to another principal are returned without an ownership check.",
                    )]
        return []


class VerticalEscalationProbe(Probe):
    """Invokes administrative-looking operations with the normal credential."""

    name = "vertical-escalation"
    description = "Detects administrative functions reachable by normal users"

    def applies_to(self, endpoint, context):
        return (
            super().applies_to(endpoint, context)
            and context.has_tier(CredentialTier.NORMAL)
            and bool(ADMIN_LEXICON.search(endpoint.path))
        )

    async def run(self, endpoint, context, adapter):
        result = await self.request(adapter, ProbeIntent(endpoint=endpoint, tier=CredentialTier.NORMAL))
        if not adapter.succeeded(result):
            return []

        term = ADMIN_LEXICON.search(endpoint.path).group(0)
        return [self.finding(
            VERTICAL_ESCALATION,
            Severity.CRITICAL,
            endpoint,
            evidence=f"{result.method} {result.url} as the normal user returned {result.status_code}",
            description=f"Administrative operation ('{term}') is executed for a non-privileged principal.",
        )]
