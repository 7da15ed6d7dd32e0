"""Shared test fixtures for apiprobe."""

import json as jsonlib
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import pytest
import respx

from apiprobe.adapters import adapter_for
from apiprobe.core import Credentials, Endpoint, ParameterLocation, ParameterSpec, ProbeResult, Protocol, ScanContext
from apiprobe.core.errors import TransportError
from apiprobe.transport import TransportClient


@dataclass
class SentRequest:
    method: str
    url: str
    headers: dict
    body: Optional[str]
    timeout: Optional[float]

    def json(self):
        return jsonlib.loads(self.body) if self.body else None


def reply(
    status: int = 200,
    body: str = "",
    headers: Optional[dict] = None,
    elapsed_ms: float = 20.0,
    json=None,
    error: Optional[TransportError] = None,
) -> ProbeResult:
    """A scripted ProbeResult; method and url are filled in by FakeTransport."""
    hdrs = dict(headers or {})
    if json is not None:
        body = jsonlib.dumps(json)
        hdrs.setdefault("Content-Type", "application/json")
    return ProbeResult(
        method="",
        url="",
        status_code=0 if error else status,
        headers=httpx.Headers(hdrs),
        body=body,
        elapsed_ms=elapsed_ms,
        error=error,
    )


class FakeTransport:
    """Scripted transport recording every request.

    ``handler(request)`` returns the ProbeResult for a SentRequest.
    """

    def __init__(self, handler: Optional[Callable[[SentRequest], ProbeResult]] = None):
        self.handler = handler or (lambda request: reply())
        self.requests: list[SentRequest] = []

    async def send(self, method, url, headers=None, body=None, timeout=None) -> ProbeResult:
        request = SentRequest(method.upper(), url, dict(headers or {}), body, timeout)
        self.requests.append(request)
        result = self.handler(request)
        result.method = request.method
        result.url = url
        return result

    async def aclose(self):
        pass


@pytest.fixture
def base_url():
    """Base URL for testing."""
    return "http://testserver:8000"


@pytest.fixture
def context(base_url):
    """Anonymous-only scan context."""
    return ScanContext(target_base_url=base_url, concurrency=2, session_timeout=30)


@pytest.fixture
def auth_context(base_url):
    """Scan context with normal and elevated tokens."""
    return ScanContext(
        target_base_url=base_url,
        credentials=Credentials(normal="normal-token", elevated="admin-token"),
        own_identifier="5",
        concurrency=2,
        session_timeout=30,
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
async def mock_transport(base_url):
    """Real TransportClient over respx; unrouted requests answer 200 with no body."""
    with respx.mock(base_url=base_url, assert_all_called=False, assert_all_mocked=False) as respx_mock:
        async with TransportClient(timeout=5) as transport:
            yield transport, respx_mock


@pytest.fixture
def user_endpoint():
    return Endpoint(
        path="/api/users/{id}",
        method="GET",
        protocol=Protocol.REST,
        parameters=(ParameterSpec("id", ParameterLocation.PATH, "integer", True),),
        source="openapi",
    )


@pytest.fixture
def search_endpoint():
    return Endpoint(
        path="/api/products",
        method="GET",
        protocol=Protocol.REST,
        parameters=(ParameterSpec("search", ParameterLocation.QUERY),),
        source="openapi",
    )


@pytest.fixture
def rest_adapter(fake_transport, context):
    return adapter_for(Protocol.REST, fake_transport, context)


@pytest.fixture
def user_response():
    """User data response."""
    return {
        "id": 1,
        "username": "testuser",
        "email": "test@example.com",
        "role": "user",
    }


@pytest.fixture
def user_with_sensitive_data():
    """User data with sensitive fields exposed."""
    return {
        "id": 1,
        "username": "testuser",
        "ssn": "123-45-6789",
        "credit_card": "4111111111111111",
        "password": "hunter2",
    }


@pytest.fixture
def sql_error_response():
    """Response containing SQL error."""
    return "Error: You have an error in your SQL syntax near ''"


@pytest.fixture
def command_output_response():
    """Response containing command execution output."""
    return {"output": "uid=1000(www-data) gid=1000(www-data) groups=1000(www-data)"}


def graphql_type(name: str, fields: list[dict], kind: str = "OBJECT") -> dict:
    return {"kind": kind, "name": name, "fields": fields}


def graphql_field(name: str, type_name: str, kind: str = "SCALAR", args: Optional[list] = None) -> dict:
    return {"name": name, "args": args or [], "type": {"kind": kind, "name": type_name, "ofType": None}}


@pytest.fixture
def graphql_introspection_response():
    """Introspection response with Query/Mutation roots and 150 types."""
    user_id_arg = {
        "name": "id",
        "type": {"kind": "NON_NULL", "name": None, "ofType": {"kind": "SCALAR", "name": "ID", "ofType": None}},
    }
    types = [
        graphql_type("Query", [
            graphql_field("users", "User", "OBJECT"),
            graphql_field("user", "User", "OBJECT", [user_id_arg]),
            graphql_field("products", "Product", "OBJECT"),
        ]),
        graphql_type("Mutation", [
            graphql_field("deleteUser", "Boolean", args=[user_id_arg]),
            graphql_field("updateProfile", "User", "OBJECT", [
                {"name": "bio", "type": {"kind": "SCALAR", "name": "String", "ofType": None}},
            ]),
        ]),
        graphql_type("User", [graphql_field("id", "ID"), graphql_field("username", "String")]),
        graphql_type("Product", [graphql_field("id", "ID"), graphql_field("name", "String")]),
    ]
    types += [graphql_type(f"Type{i}", [graphql_field("id", "ID")]) for i in range(146)]
    types.append({"kind": "SCALAR", "name": "__Schema", "fields": None})
    return {
        "data": {
            "__schema": {
                "queryType": {"name": "Query"},
                "mutationType": {"name": "Mutation"},
                "subscriptionType": None,
                "types": types,
            }
        }
    }
