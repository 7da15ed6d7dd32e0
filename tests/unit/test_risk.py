"""Tests for risk aggregation."""

import pytest

from apiprobe.core import AggregationError, Endpoint, Protocol, Severity
from apiprobe.core import weaknesses as w
from apiprobe.core.weaknesses import make_finding
from apiprobe.risk import RiskAggregator, risk_bucket


@pytest.fixture
def endpoints():
    return [
        Endpoint("/api/users/{id}", "GET", Protocol.REST),
        Endpoint("/api/products", "GET", Protocol.REST),
        Endpoint("/api/health", "GET", Protocol.REST),
    ]


class TestRiskBucket:
    """Tests for the overall risk bucket."""

    @pytest.mark.parametrize("mean,bucket", [
        (0, "SECURE"),
        (0.5, "LOW"),
        (14.9, "LOW"),
        (15, "MEDIUM"),
        (30, "HIGH"),
        (50, "CRITICAL"),
        (100, "CRITICAL"),
    ])
    def test_thresholds(self, mean, bucket):
        assert risk_bucket(mean) == bucket


class TestRiskAggregator:
    """Tests for RiskAggregator."""

    def test_no_findings_is_secure(self, endpoints):
        summary = RiskAggregator().aggregate(endpoints, [])
        assert summary.overall_risk == "SECURE"
        assert summary.vulnerable_endpoints == 0
        assert summary.total_endpoints == 3
        assert summary.recommendations == []

    def test_weighted_score(self, endpoints):
        user, products, _ = endpoints
        findings = [
            make_finding(w.SQL_INJECTION, Severity.CRITICAL, user),
            make_finding(w.MISSING_AUTHENTICATION, Severity.HIGH, user),
            make_finding(w.MISSING_RATE_LIMITING, Severity.MEDIUM, products),
        ]

        summary = RiskAggregator().aggregate(endpoints, findings)

        assert summary.endpoint_scores == {user.ref: 50, products.ref: 8}
        assert summary.vulnerable_endpoints == 2
        # The clean health endpoint counts as 0: (50 + 8 + 0) / 3
        assert summary.mean_score == 19.33
        assert summary.overall_risk == "MEDIUM"
        assert summary.by_severity == {"CRITICAL": 1, "HIGH": 1, "MEDIUM": 1, "LOW": 0, "INFO": 0}

    def test_score_capped(self, endpoints):
        user = endpoints[0]
        findings = [make_finding(w.SQL_INJECTION, Severity.CRITICAL, user) for _ in range(5)]

        summary = RiskAggregator().aggregate(endpoints, findings)

        assert summary.endpoint_scores[user.ref] == 100
        assert summary.mean_score == 33.33
        assert summary.overall_risk == "HIGH"

    def test_clean_endpoints_lower_the_mean(self):
        endpoints = [Endpoint(f"/api/items{i}", "GET", Protocol.REST) for i in range(10)]
        finding = make_finding(w.SQL_INJECTION, Severity.CRITICAL, endpoints[0])

        summary = RiskAggregator().aggregate(endpoints, [finding])

        assert summary.endpoint_scores == {endpoints[0].ref: 30}
        assert summary.mean_score == 3.0
        assert summary.overall_risk == "LOW"

    def test_info_findings_do_not_score(self, endpoints):
        finding = make_finding(w.SCHEMA_DISCLOSURE, Severity.INFO, endpoints[0])

        summary = RiskAggregator().aggregate(endpoints, [finding])

        assert summary.overall_risk == "SECURE"
        assert summary.by_severity["INFO"] == 1

    def test_unknown_endpoint(self, endpoints):
        orphan = make_finding(w.SQL_INJECTION, Severity.CRITICAL, Endpoint("/gone", "GET", Protocol.REST))
        with pytest.raises(AggregationError):
            RiskAggregator().aggregate(endpoints, [orphan])

    def test_recommendations_grouped_and_ordered(self, endpoints):
        user, products, health = endpoints
        findings = [
            make_finding(w.MISSING_SECURITY_HEADER, Severity.MEDIUM, products, title="CSP not set"),
            make_finding(w.MISSING_SECURITY_HEADER, Severity.MEDIUM, products, title="XFO not set"),
            make_finding(w.MISSING_SECURITY_HEADER, Severity.MEDIUM, health, title="CSP not set"),
            make_finding(w.SQL_INJECTION, Severity.CRITICAL, user),
            make_finding(w.MISSING_RATE_LIMITING, Severity.MEDIUM, products),
        ]

        recommendations = RiskAggregator().recommendations(findings)

        assert [r.type for r in recommendations] == [
            w.SQL_INJECTION,
            w.MISSING_SECURITY_HEADER,
            w.MISSING_RATE_LIMITING,
        ]
        headers = recommendations[1]
        assert headers.count == 3
        assert headers.endpoints == [products.ref, health.ref]
        assert headers.to_dict()["weaknessId"] == w.get_weakness(w.MISSING_SECURITY_HEADER).weakness_id

    def test_informational_notes_have_no_recommendation(self):
        service = Endpoint("/graphql", "POST", Protocol.GRAPHQL)
        findings = [
            make_finding(w.INTROSPECTION_DISABLED, Severity.INFO, service),
            make_finding(w.SCHEMA_DISCLOSURE, Severity.INFO, service),
        ]

        recommendations = RiskAggregator().recommendations(findings)

        assert [r.type for r in recommendations] == [w.SCHEMA_DISCLOSURE]
