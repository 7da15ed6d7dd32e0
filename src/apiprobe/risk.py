"""Risk aggregation: per-endpoint scores, session bucket, grouped recommendations."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from apiprobe.core.errors import AggregationError
from apiprobe.core.logging import get_logger
from apiprobe.core.models import Endpoint, Finding, Severity
from apiprobe.core.weaknesses import get_weakness

logger = get_logger("risk")

MAX_ENDPOINT_SCORE = 100

# Lower bound of the mean endpoint score for each bucket
RISK_BUCKETS = [
    (50, "CRITICAL"),
    (30, "HIGH"),
    (15, "MEDIUM"),
]
SECURE = "SECURE"


@dataclass
class Recommendation:
    """One remediation item for every finding of a type."""
    type: str
    weakness_id: str
    severity: Severity
    count: int
    endpoints: list[str]
    recommendation: str
    references: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "weaknessId": self.weakness_id,
            "severity": self.severity.value.upper(),
            "count": self.count,
            "endpoints": self.endpoints,
            "recommendation": self.recommendation,
            "references": list(self.references),
        }


@dataclass
class RiskSummary:
    total_endpoints: int
    vulnerable_endpoints: int
    by_severity: dict[str, int]
    overall_risk: str
    mean_score: float
    endpoint_scores: dict[str, int] = field(default_factory=dict)
    recommendations: list[Recommendation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalEndpoints": self.total_endpoints,
            "vulnerableEndpoints": self.vulnerable_endpoints,
            "bySeverity": self.by_severity,
            "overallRisk": self.overall_risk,
            "meanScore": self.mean_score,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "endpointScores": self.endpoint_scores,
        }


def risk_bucket(mean_score: float) -> str:
    for lower, bucket in RISK_BUCKETS:
        if mean_score >= lower:
            return bucket
    return "LOW" if mean_score > 0 else SECURE


class RiskAggregator:
    """Turns the findings of a session into scores and recommendations.

    An endpoint's score is the weighted sum of its findings, with weights
    tuned per finding type, capped at 100. The session bucket is taken from
    the mean score over every endpoint of the session.
    """

    def score(self, findings: Iterable[Finding]) -> int:
        total = sum(get_weakness(f.type).weight_for(f.severity) for f in findings)
        return min(MAX_ENDPOINT_SCORE, total)

    def aggregate(self, endpoints: Iterable[Endpoint], findings: Iterable[Finding]) -> RiskSummary:
        endpoints = list(endpoints)
        findings = list(findings)
        refs = {e.ref for e in endpoints}

        by_endpoint: dict[str, list[Finding]] = defaultdict(list)
        for finding in findings:
            if finding.endpoint_ref not in refs:
                raise AggregationError(f"finding {finding.id} references unknown endpoint {finding.endpoint_ref}")
            by_endpoint[finding.endpoint_ref].append(finding)

        scores = {ref: self.score(items) for ref, items in by_endpoint.items()}
        vulnerable = [score for score in scores.values() if score > 0]
        # Endpoints without findings score 0 and count toward the mean
        mean = round(sum(scores.values()) / len(endpoints), 2) if endpoints else 0.0

        by_severity = {s.value.upper(): 0 for s in sorted(Severity, key=lambda s: -s.rank)}
        for finding in findings:
            by_severity[finding.severity.value.upper()] += 1

        summary = RiskSummary(
            total_endpoints=len(endpoints),
            vulnerable_endpoints=len(vulnerable),
            by_severity=by_severity,
            overall_risk=risk_bucket(mean),
            mean_score=mean,
            endpoint_scores=dict(sorted(scores.items(), key=lambda item: -item[1])),
            recommendations=self.recommendations(findings),
        )
        logger.debug(f"Aggregated {len(findings)} findings: {summary.overall_risk} (mean {mean})")
        return summary

    def recommendations(self, findings: list[Finding]) -> list[Recommendation]:
        """One recommendation per finding type, most severe first."""
        groups: dict[str, list[Finding]] = defaultdict(list)
        for finding in findings:
            groups[finding.type].append(finding)

        items = []
        for finding_type, group in groups.items():
            weakness = get_weakness(finding_type)
            if not weakness.actionable and all(f.severity == Severity.INFO for f in group):
                continue
            endpoints = list(dict.fromkeys(f.endpoint_ref for f in group))
            items.append(Recommendation(
                type=finding_type,
                weakness_id=weakness.weakness_id,
                severity=max((f.severity for f in group), key=lambda s: s.rank),
                count=len(group),
                endpoints=endpoints,
                recommendation=weakness.recommendation,
                references=weakness.references,
            ))
        items.sort(key=lambda r: (-r.severity.rank, -r.count, r.type))
        return items
