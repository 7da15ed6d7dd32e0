"""Catalogue of the vulnerability classes the engine reports.

Each entry carries the CWE, CVSS scores per severity, the risk weight used by
the aggregator, and the remediation text shown once per finding type.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from .models import Finding, Severity

# Representative CVSS v3 base scores, one per qualitative band.
DEFAULT_CVSS: Dict[Severity, float] = {
    Severity.CRITICAL: 9.1,
    Severity.HIGH: 7.5,
    Severity.MEDIUM: 5.3,
    Severity.LOW: 3.1,
    Severity.INFO: 0.0,
}

DEFAULT_WEIGHTS: Dict[Severity, int] = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 5,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


@dataclass(frozen=True)
class Weakness:
    """One vulnerability class."""
    type: str
    weakness_id: str
    recommendation: str
    references: tuple[str, ...] = ()
    cvss: Dict[Severity, float] = field(default_factory=dict)
    weights: Dict[Severity, int] = field(default_factory=dict)
    # False for informational notes that need no remediation
    actionable: bool = True

    def cvss_for(self, severity: Severity) -> float:
        return self.cvss.get(severity, DEFAULT_CVSS[severity])

    def weight_for(self, severity: Severity) -> int:
        return self.weights.get(severity, DEFAULT_WEIGHTS[severity])


OWASP_API = "https://owasp.org/API-Security/editions/2023/en/"

MISSING_AUTHENTICATION = "Missing Authentication"
HORIZONTAL_ESCALATION = "Horizontal Privilege Escalation"
VERTICAL_ESCALATION = "Vertical Privilege Escalation"
SQL_INJECTION = "SQL Injection"
COMMAND_INJECTION = "Command Injection"
PATH_TRAVERSAL = "Path Traversal"
XXE = "XML External Entity"
REFLECTED_XSS = "Reflected XSS"
MISSING_RATE_LIMITING = "Missing Rate Limiting"
MISSING_SECURITY_HEADER = "Missing Security Header"
UNSAFE_SECURITY_HEADER = "Unsafe Security Header"
TECHNOLOGY_DISCLOSURE = "Technology Disclosure"
CREDENTIAL_EXPOSURE = "Credential Exposure"
PERSONAL_DATA_EXPOSURE = "Personal Data Exposure"
DEBUG_INFO_EXPOSURE = "Debug Information Exposure"
CORS_MISCONFIGURATION = "CORS Misconfiguration"
RESOURCE_EXHAUSTION = "Resource Exhaustion"
SCHEMA_DISCLOSURE = "Schema Disclosure"
INTROSPECTION_DISABLED = "Introspection Disabled"
MISSING_WS_SECURITY = "Missing WS-Security Policy"
GRAPHQL_BATCHING = "GraphQL Batching Allowed"
GRAPHQL_FIELD_SUGGESTIONS = "GraphQL Field Suggestions"


_CATALOGUE = [
    Weakness(
        type=MISSING_AUTHENTICATION,
        weakness_id="CWE-306",
        recommendation="Require authentication on every non-public operation and reject anonymous requests with 401.",
        references=(f"{OWASP_API}0xa2-broken-authentication/",),
        cvss={Severity.HIGH: 8.2},
        weights={Severity.HIGH: 20},
    ),
    Weakness(
        type=HORIZONTAL_ESCALATION,
        weakness_id="CWE-639",
        recommendation="Check object ownership on every request; never trust client-supplied identifiers alone.",
        references=(f"{OWASP_API}0xa1-broken-object-level-authorization/",),
        cvss={Severity.HIGH: 8.1},
        weights={Severity.HIGH: 20},
    ),
    Weakness(
        type=VERTICAL_ESCALATION,
        weakness_id="CWE-285",
        recommendation="Enforce role checks on administrative operations server-side; deny by default.",
        references=(f"{OWASP_API}0xa5-broken-function-level-authorization/",),
        cvss={Severity.CRITICAL: 9.1},
        weights={Severity.CRITICAL: 30},
    ),
    Weakness(
        type=SQL_INJECTION,
        weakness_id="CWE-89",
        recommendation="Use parameterized queries or an ORM. Never concatenate user input in SQL.",
        references=("https://owasp.org/www-community/attacks/SQL_Injection",),
        cvss={Severity.CRITICAL: 9.8},
        weights={Severity.CRITICAL: 30},
    ),
    Weakness(
        type=COMMAND_INJECTION,
        weakness_id="CWE-78",
        recommendation="Never pass user input to shell commands. Use safe APIs or subprocess with an argument list.",
        references=("https://owasp.org/www-community/attacks/Command_Injection",),
        cvss={Severity.CRITICAL: 9.8},
        weights={Severity.CRITICAL: 30},
    ),
    Weakness(
        type=PATH_TRAVERSAL,
        weakness_id="CWE-22",
        recommendation="Resolve file names against an allow-list or a fixed base directory and reject '..' sequences.",
        references=("https://owasp.org/www-community/attacks/Path_Traversal",),
        cvss={Severity.HIGH: 7.5},
        weights={Severity.HIGH: 20},
    ),
    Weakness(
        type=XXE,
        weakness_id="CWE-611",
        recommendation="Disable DTD processing and external entity resolution in every XML parser.",
        references=("https://cheatsheetseries.owasp.org/cheatsheets/XML_External_Entity_Prevention_Cheat_Sheet.html",),
        cvss={Severity.CRITICAL: 9.1},
        weights={Severity.CRITICAL: 30},
    ),
    Weakness(
        type=REFLECTED_XSS,
        weakness_id="CWE-79",
        recommendation="Encode output for its context and return JSON with a strict application/json content type.",
        references=("https://owasp.org/www-community/attacks/xss/",),
        cvss={Severity.HIGH: 7.1},
        weights={Severity.HIGH: 15},
    ),
    Weakness(
        type=MISSING_RATE_LIMITING,
        weakness_id="CWE-770",
        recommendation="Apply per-client rate limits and answer excess requests with 429 and Retry-After.",
        references=(f"{OWASP_API}0xa4-unrestricted-resource-consumption/",),
        weights={Severity.MEDIUM: 8},
    ),
    Weakness(
        type=MISSING_SECURITY_HEADER,
        weakness_id="CWE-693",
        recommendation="Send the standard security response headers on every API response.",
        references=("https://owasp.org/www-project-secure-headers/",),
    ),
    Weakness(
        type=UNSAFE_SECURITY_HEADER,
        weakness_id="CWE-693",
        recommendation="Tighten security header values; avoid 'unsafe-inline', 'unsafe-eval' and wildcard sources.",
        references=("https://owasp.org/www-project-secure-headers/",),
    ),
    Weakness(
        type=TECHNOLOGY_DISCLOSURE,
        weakness_id="CWE-200",
        recommendation="Remove or obfuscate headers that reveal server software and framework versions.",
        references=("https://owasp.org/www-project-secure-headers/",),
        weights={Severity.LOW: 1},
    ),
    Weakness(
        type=CREDENTIAL_EXPOSURE,
        weakness_id="CWE-522",
        recommendation="Never return secrets, keys or password hashes in API responses; rotate anything exposed.",
        references=(f"{OWASP_API}0xa3-broken-object-property-level-authorization/",),
        weights={Severity.CRITICAL: 30},
    ),
    Weakness(
        type=PERSONAL_DATA_EXPOSURE,
        weakness_id="CWE-359",
        recommendation="Filter responses through explicit output schemas so personal data is only returned when required.",
        references=(f"{OWASP_API}0xa3-broken-object-property-level-authorization/",),
    ),
    Weakness(
        type=DEBUG_INFO_EXPOSURE,
        weakness_id="CWE-209",
        recommendation="Disable debug mode in production and return generic error messages.",
        references=(f"{OWASP_API}0xa8-security-misconfiguration/",),
    ),
    Weakness(
        type=CORS_MISCONFIGURATION,
        weakness_id="CWE-942",
        recommendation="Validate Origin against an allow-list; never combine a wildcard or reflected origin with credentials.",
        references=("https://owasp.org/www-project-web-security-testing-guide/",),
        cvss={Severity.HIGH: 7.4},
    ),
    Weakness(
        type=RESOURCE_EXHAUSTION,
        weakness_id="CWE-400",
        recommendation="Bound query depth, complexity, payload size and entity expansion; enforce server-side timeouts.",
        references=(f"{OWASP_API}0xa4-unrestricted-resource-consumption/",),
    ),
    Weakness(
        type=SCHEMA_DISCLOSURE,
        weakness_id="CWE-200",
        recommendation="Disable GraphQL introspection in production.",
        references=("https://cheatsheetseries.owasp.org/cheatsheets/GraphQL_Cheat_Sheet.html",),
    ),
    Weakness(
        type=INTROSPECTION_DISABLED,
        weakness_id="CWE-200",
        recommendation="Introspection is disabled; GraphQL operations were not enumerated.",
        actionable=False,
        references=("https://cheatsheetseries.owasp.org/cheatsheets/GraphQL_Cheat_Sheet.html",),
    ),
    Weakness(
        type=MISSING_WS_SECURITY,
        weakness_id="CWE-311",
        recommendation="Attach a WS-Security policy (signing, encryption, UsernameToken or X.509) to SOAP bindings.",
        references=("https://www.oasis-open.org/standard/wss-v1-1-spec-os-soapmessagesecurity/",),
    ),
    Weakness(
        type=GRAPHQL_BATCHING,
        weakness_id="CWE-770",
        recommendation="Limit batch size or disable query batching.",
        references=("https://cheatsheetseries.owasp.org/cheatsheets/GraphQL_Cheat_Sheet.html",),
    ),
    Weakness(
        type=GRAPHQL_FIELD_SUGGESTIONS,
        weakness_id="CWE-200",
        recommendation="Disable field suggestions in production error messages.",
        references=("https://cheatsheetseries.owasp.org/cheatsheets/GraphQL_Cheat_Sheet.html",),
    ),
]

WEAKNESSES: Dict[str, Weakness] = {w.type: w for w in _CATALOGUE}


def register_weakness(weakness: Weakness) -> None:
    """Add or replace a vulnerability class."""
    WEAKNESSES[weakness.type] = weakness


def get_weakness(finding_type: str) -> Weakness:
    """Catalogue entry for a finding type, with a generic fallback."""
    weakness: Optional[Weakness] = WEAKNESSES.get(finding_type)
    if weakness is None:
        return Weakness(
            type=finding_type,
            weakness_id="CWE-1000",
            recommendation="Review the evidence and apply the relevant secure coding guidance.",
        )
    return weakness


def make_finding(
    finding_type: str,
    severity,
    endpoint,
    evidence: str = "",
    title: Optional[str] = None,
    description: str = "",
    probe: str = "",
    cvss_score: Optional[float] = None,
):
    """Build a Finding with CWE, CVSS and remediation from the catalogue."""

    weakness = get_weakness(finding_type)
    return Finding(
        type=finding_type,
        title=title or finding_type,
        severity=severity,
        cvss_score=cvss_score if cvss_score is not None else weakness.cvss_for(severity),
        weakness_id=weakness.weakness_id,
        endpoint_ref=endpoint.ref,
        evidence=evidence,
        description=description,
        recommendation=weakness.recommendation,
        references=weakness.references,
        probe=probe,
    )
