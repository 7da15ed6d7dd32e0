"""Tests for the core data model, context, session and logging."""

import asyncio
import logging

import pytest

from apiprobe.core import (
    ConfigError,
    Credentials,
    CredentialTier,
    Endpoint,
    Finding,
    ParameterLocation,
    ParameterSpec,
    Protocol,
    ScanContext,
    ScanSession,
    SessionStatus,
    Severity,
    normalize_path,
)
from apiprobe.core.logging import endpoint_logger, get_logger, setup_logging
from apiprobe.core.session import EndpointSetClosed
from apiprobe.core.weaknesses import MISSING_AUTHENTICATION, SQL_INJECTION, get_weakness, make_finding


class TestNormalizePath:
    """Tests for endpoint path normalization."""

    def test_trailing_and_duplicate_slashes(self):
        assert normalize_path("/api//users/") == "/api/users"

    def test_root_path(self):
        assert normalize_path("") == "/"
        assert normalize_path("/") == "/"

    def test_placeholder_styles(self):
        assert normalize_path("/users/:id") == "/users/{id}"
        assert normalize_path("/users/<int:user_id>/posts") == "/users/{user_id}/posts"

    def test_query_string_dropped(self):
        assert normalize_path("/search?q=1") == "/search"

    def test_operation_suffix_preserved(self):
        assert normalize_path("/graphql/#Query.users") == "/graphql#Query.users"


class TestEndpoint:
    """Tests for Endpoint identity."""

    def test_identity_ignores_parameters_and_source(self):
        a = Endpoint("/api/users/", "get", Protocol.REST, source="openapi",
                     parameters=(ParameterSpec("id", ParameterLocation.QUERY),))
        b = Endpoint("/api/users", "GET", Protocol.REST, source="path-fuzz")
        assert a == b
        assert a.key == b.key == ("rest", "/api/users", "GET")

    def test_ref(self):
        endpoint = Endpoint("/api/users/{id}", "GET", Protocol.REST)
        assert endpoint.ref == "rest:GET /api/users/{id}"

    def test_service_and_operation(self):
        service = Endpoint("/graphql", "POST", Protocol.GRAPHQL)
        field = Endpoint("/graphql#Query.users", "POST", Protocol.GRAPHQL)
        assert service.is_service
        assert not field.is_service
        assert field.operation == "Query.users"
        assert field.service_path == "/graphql"

    def test_rest_is_never_service(self):
        assert not Endpoint("/api", "GET", Protocol.REST).is_service

    def test_to_dict(self):
        endpoint = Endpoint("/api/users", "GET", Protocol.REST,
                            parameters=(ParameterSpec("q", ParameterLocation.QUERY),), source="openapi")
        data = endpoint.to_dict()
        assert data["sourceOfDiscovery"] == "openapi"
        assert data["parameters"][0] == {"name": "q", "location": "query", "dataType": "string", "required": False}


class TestFinding:
    """Tests for Finding construction."""

    def test_cvss_inside_band(self):
        finding = Finding(type=SQL_INJECTION, title="x", severity=Severity.CRITICAL, cvss_score=9.8,
                          weakness_id="CWE-89", endpoint_ref="rest:GET /")
        assert finding.to_dict()["severity"] == "CRITICAL"

    def test_cvss_outside_band_rejected(self):
        with pytest.raises(ValueError):
            Finding(type=SQL_INJECTION, title="x", severity=Severity.LOW, cvss_score=9.8,
                    weakness_id="CWE-89", endpoint_ref="rest:GET /")

    def test_make_finding_uses_catalogue(self, user_endpoint):
        finding = make_finding(MISSING_AUTHENTICATION, Severity.HIGH, user_endpoint, evidence="200")
        weakness = get_weakness(MISSING_AUTHENTICATION)
        assert finding.weakness_id == weakness.weakness_id == "CWE-306"
        assert finding.endpoint_ref == user_endpoint.ref
        low, high = Severity.HIGH.cvss_band
        assert low <= finding.cvss_score <= high

    def test_every_catalogue_score_inside_band(self):
        from apiprobe.core.weaknesses import WEAKNESSES

        for weakness in WEAKNESSES.values():
            for severity in Severity:
                low, high = severity.cvss_band
                assert low <= weakness.cvss_for(severity) <= high, (weakness.type, severity)

    def test_unknown_type_falls_back(self):
        assert get_weakness("Something New").weakness_id == "CWE-1000"

    def test_register_weakness_extends_catalogue(self, monkeypatch, user_endpoint):
        from apiprobe.core import weaknesses

        monkeypatch.setattr(weaknesses, "WEAKNESSES", dict(weaknesses.WEAKNESSES))
        weaknesses.register_weakness(weaknesses.Weakness(
            type="Open Redirect",
            weakness_id="CWE-601",
            recommendation="Validate redirect targets against an allow-list.",
            weights={Severity.MEDIUM: 7},
        ))

        finding = make_finding("Open Redirect", Severity.MEDIUM, user_endpoint)
        assert finding.weakness_id == "CWE-601"
        assert get_weakness("Open Redirect").weight_for(Severity.MEDIUM) == 7


class TestScanContext:
    """Tests for scan configuration."""

    def test_invalid_url(self):
        with pytest.raises(ConfigError):
            ScanContext(target_base_url="not-a-url")

    def test_trailing_slash_stripped(self):
        context = ScanContext(target_base_url="http://api.local/")
        assert context.url_for("users") == "http://api.local/users"

    def test_non_positive_values_rejected(self):
        with pytest.raises(ConfigError):
            ScanContext(target_base_url="http://api.local", concurrency=0)

    def test_from_dict(self):
        context = ScanContext.from_dict({
            "target": "http://api.local",
            "protocols": ["rest", "graphql"],
            "credentials": {"normal": "abc"},
            "public_paths": ["/health"],
        })
        assert context.protocols == frozenset({Protocol.REST, Protocol.GRAPHQL})
        assert context.has_tier(CredentialTier.NORMAL)
        assert not context.has_tier(CredentialTier.ELEVATED)
        assert context.public_paths == ("/health",)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            ScanContext.from_dict({"target": "http://api.local", "threads": 4})

    def test_unknown_protocol(self):
        with pytest.raises(ConfigError):
            ScanContext.from_dict({"target": "http://api.local", "protocols": ["grpc"]})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "scan.yaml"
        path.write_text("target: http://api.local\nconcurrency: 2\ncredentials:\n  normal: t0k3n\n")
        context = ScanContext.from_yaml(str(path))
        assert context.concurrency == 2
        assert context.headers_for(CredentialTier.NORMAL) == {"Authorization": "Bearer t0k3n"}
        assert context.headers_for(CredentialTier.ANONYMOUS) == {}

    def test_with_credentials_shares_cancel_token(self, context):
        copy = context.with_credentials(Credentials(normal="x"))
        context.cancel_token.cancel("stop")
        assert copy.cancelled
        assert copy.credentials.normal == "x"


class TestScanSession:
    """Tests for session state."""

    def test_duplicate_endpoint_dropped(self):
        session = ScanSession(target="http://api.local")
        assert session.add_endpoint(Endpoint("/a", "GET", Protocol.REST, source="openapi"))
        assert not session.add_endpoint(Endpoint("/a/", "get", Protocol.REST, source="path-fuzz"))
        assert len(session.endpoints) == 1
        assert session.endpoints[0].source == "openapi"

    def test_closed_endpoint_set(self):
        session = ScanSession(target="http://api.local")
        session.close_endpoints()
        with pytest.raises(EndpointSetClosed):
            session.add_endpoint(Endpoint("/a", "GET", Protocol.REST))

    async def test_finding_must_reference_known_endpoint(self, user_endpoint):
        session = ScanSession(target="http://api.local")
        finding = make_finding(MISSING_AUTHENTICATION, Severity.HIGH, user_endpoint)
        with pytest.raises(ValueError):
            await session.add_finding(finding)

        session.add_endpoint(user_endpoint)
        await session.add_finding(finding)
        assert session.findings == (finding,)

    async def test_concurrent_appends_keep_every_finding(self):
        session = ScanSession(target="http://api.local")
        endpoints = [Endpoint(f"/api/items/{i}", "GET", Protocol.REST) for i in range(50)]
        session.add_endpoints(endpoints)

        async def single(endpoint):
            await asyncio.sleep(0)
            await session.add_finding(make_finding(SQL_INJECTION, Severity.CRITICAL, endpoint))

        async def batch(endpoint):
            await asyncio.sleep(0)
            await session.add_findings(
                make_finding(MISSING_AUTHENTICATION, Severity.HIGH, endpoint) for _ in range(3))

        await asyncio.gather(
            *(single(e) for e in endpoints for _ in range(6)),
            *(batch(e) for e in endpoints for _ in range(2)),
        )

        assert len(session.findings) == 50 * 6 + 50 * 2 * 3
        assert len({f.id for f in session.findings}) == len(session.findings)

    def test_endpoint_by_ref(self, user_endpoint):
        session = ScanSession(target="http://api.local")
        session.add_endpoint(user_endpoint)
        # A later duplicate does not replace the first endpoint
        session.add_endpoint(Endpoint(user_endpoint.path, user_endpoint.method, user_endpoint.protocol,
                                      source="path-fuzz"))

        assert session.endpoint_by_ref(user_endpoint.ref) is user_endpoint
        assert session.endpoint_by_ref("rest:GET /missing") is None

    def test_finalize_statuses(self):
        session = ScanSession(target="http://api.local")
        session.finalize()
        assert session.status == SessionStatus.COMPLETED
        assert not session.truncated

        truncated = ScanSession(target="http://api.local")
        truncated.finalize(SessionStatus.TRUNCATED)
        assert truncated.truncated
        assert truncated.completed_at is not None


class TestLogging:
    """Tests for logging setup."""

    def test_setup_is_idempotent(self):
        setup_logging()
        logger = setup_logging()
        assert logger.name == "apiprobe"
        assert len(logger.handlers) == 1

    def test_log_file_receives_debug(self, tmp_path):
        log_file = tmp_path / "scan.log"
        setup_logging(log_file=str(log_file))

        get_logger("transport").debug("GET http://api.local/ -> 200")
        for handler in logging.getLogger("apiprobe").handlers:
            handler.flush()

        assert "apiprobe.transport - DEBUG - GET http://api.local/ -> 200" in log_file.read_text()
        setup_logging()

    def test_http_client_logs_quiet_unless_verbose(self):
        setup_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        setup_logging(verbose=True)
        assert logging.getLogger("httpx").level == logging.DEBUG
        setup_logging()

    def test_endpoint_prefix(self):
        adapter = endpoint_logger(get_logger("probes"), "cors", "rest:GET /api")
        msg, _ = adapter.process("origin reflected", {})
        assert msg == "[cors rest:GET /api] origin reflected"
