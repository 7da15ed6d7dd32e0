"""Tests for REST, GraphQL and SOAP discovery."""

import json

import httpx
import pytest

from apiprobe.core import DiscoveryError, Endpoint, ParameterLocation, Protocol, ScanContext, Severity
from apiprobe.core.weaknesses import INTROSPECTION_DISABLED, MISSING_WS_SECURITY, SCHEMA_DISCLOSURE
from apiprobe.discovery import (
    GraphQLDiscoverer,
    OpenAPIParser,
    RestDiscoverer,
    SoapDiscoverer,
    load_document,
    merge_endpoints,
    parse_wsdl,
)
from apiprobe.discovery.base import DiscoveryResult


@pytest.fixture
def openapi_doc():
    """OpenAPI 3 document with a public login and $ref'd parameters."""
    return {
        "openapi": "3.0.0",
        "security": [{"bearer": []}],
        "paths": {
            "/api/users/{id}": {
                "parameters": [{"$ref": "#/components/parameters/UserId"}],
                "get": {"operationId": "getUser"},
                "delete": {},
            },
            "/api/login": {
                "post": {
                    "security": [],
                    "requestBody": {
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Login"}}},
                    },
                },
            },
            "/api/products": {
                "get": {"parameters": [{"name": "search", "in": "query", "schema": {"type": "string"}}]},
            },
        },
        "components": {
            "parameters": {
                "UserId": {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
            },
            "schemas": {
                "Login": {
                    "type": "object",
                    "required": ["username", "password"],
                    "properties": {"username": {"type": "string"}, "password": {"type": "string"}},
                },
            },
        },
    }


SWAGGER_YAML = """
swagger: "2.0"
basePath: /v1
paths:
  /pets:
    post:
      parameters:
        - name: body
          in: body
          schema:
            properties:
              name:
                type: string
              age:
                type: integer
  /pets/{petId}:
    get:
      parameters:
        - name: petId
          in: path
          type: string
"""


def _wsdl(policy: str = "") -> str:
    return f"""<?xml version="1.0"?>
<definitions xmlns="http://schemas.xmlsoap.org/wsdl/"
             xmlns:soap="http://schemas.xmlsoap.org/wsdl/soap/"
             xmlns:xsd="http://www.w3.org/2001/XMLSchema"
             xmlns:tns="urn:users"
             targetNamespace="urn:users">
  {policy}
  <types>
    <xsd:schema targetNamespace="urn:users">
      <xsd:element name="GetUser">
        <xsd:complexType>
          <xsd:sequence>
            <xsd:element name="userId" type="xsd:int"/>
            <xsd:element name="verbose" type="xsd:boolean" minOccurs="0"/>
          </xsd:sequence>
        </xsd:complexType>
      </xsd:element>
    </xsd:schema>
  </types>
  <message name="GetUserRequest"><part name="parameters" element="tns:GetUser"/></message>
  <message name="PingRequest"><part name="text" type="xsd:string"/></message>
  <portType name="UserPort">
    <operation name="GetUser"><input message="tns:GetUserRequest"/></operation>
    <operation name="Ping"><input message="tns:PingRequest"/></operation>
  </portType>
  <binding name="UserBinding" type="tns:UserPort">
    <soap:binding transport="http://schemas.xmlsoap.org/soap/http"/>
    <operation name="GetUser"><soap:operation soapAction="urn:GetUser"/></operation>
    <operation name="Ping"><soap:operation soapAction="urn:Ping"/></operation>
  </binding>
  <service name="UserService">
    <port name="UserPort" binding="tns:UserBinding">
      <soap:address location="http://testserver:8000/ws/users"/>
    </port>
  </service>
</definitions>"""


def _by_path(endpoints):
    return {(e.method, e.path): e for e in endpoints}


class TestOpenAPIParser:
    """Tests for OpenAPI/Swagger parsing."""

    def test_load_json_and_yaml(self, openapi_doc):
        assert load_document(json.dumps(openapi_doc))["openapi"] == "3.0.0"
        assert load_document(SWAGGER_YAML)["swagger"] == "2.0"

    def test_rejects_non_spec(self):
        with pytest.raises(DiscoveryError):
            load_document('{"status": "ok"}')
        with pytest.raises(DiscoveryError):
            load_document("<html>not found</html>")

    def test_endpoints(self, openapi_doc):
        endpoints = _by_path(OpenAPIParser(openapi_doc).endpoints())

        assert set(endpoints) == {
            ("GET", "/api/users/{id}"),
            ("DELETE", "/api/users/{id}"),
            ("POST", "/api/login"),
            ("GET", "/api/products"),
        }
        user = endpoints[("GET", "/api/users/{id}")]
        assert user.parameters[0].location == ParameterLocation.PATH
        assert user.parameters[0].data_type == "integer"
        assert user.parameters[0].required
        assert user.attributes["operation_id"] == "getUser"
        assert user.source == "openapi"

    def test_security_declarations(self, openapi_doc):
        endpoints = _by_path(OpenAPIParser(openapi_doc).endpoints())
        assert endpoints[("POST", "/api/login")].attributes["public"] is True
        assert endpoints[("GET", "/api/products")].attributes["public"] is False

    def test_request_body_ref(self, openapi_doc):
        login = _by_path(OpenAPIParser(openapi_doc).endpoints())[("POST", "/api/login")]
        assert {(p.name, p.location, p.required) for p in login.parameters} == {
            ("username", ParameterLocation.BODY, True),
            ("password", ParameterLocation.BODY, True),
        }

    def test_swagger_base_path_and_body(self):
        endpoints = _by_path(OpenAPIParser(load_document(SWAGGER_YAML)).endpoints())
        pets = endpoints[("POST", "/v1/pets")]
        assert {p.name for p in pets.parameters} == {"name", "age"}
        assert ("GET", "/v1/pets/{petId}") in endpoints

    def test_servers_base_path(self):
        doc = {"openapi": "3.1.0", "servers": [{"url": "https://api.example.com/v2/"}],
               "paths": {"/items": {"get": {}}}}
        assert OpenAPIParser(doc).endpoints()[0].path == "/v2/items"


class TestRestDiscoverer:
    """Tests for the REST discovery state machine."""

    async def test_spec_is_authoritative(self, mock_transport, context, openapi_doc):
        transport, respx_mock = mock_transport
        respx_mock.get("/openapi.json").mock(return_value=httpx.Response(200, json=openapi_doc))
        fuzzed = respx_mock.get("/api/v1/orders").mock(return_value=httpx.Response(200, json=[]))

        result = await RestDiscoverer(transport, context).discover()

        assert len(result.endpoints) == 4
        assert all(e.source == "openapi" for e in result.endpoints)
        assert not fuzzed.called

    async def test_yaml_spec_at_later_path(self, mock_transport, context):
        transport, respx_mock = mock_transport
        respx_mock.get("/openapi.json").mock(return_value=httpx.Response(404))
        respx_mock.get("/openapi.yaml").mock(return_value=httpx.Response(200, text=SWAGGER_YAML))

        result = await RestDiscoverer(transport, context).discover()

        assert ("POST", "/v1/pets") in _by_path(result.endpoints)

    async def test_local_spec_document(self, mock_transport, base_url, openapi_doc, tmp_path):
        transport, _ = mock_transport
        path = tmp_path / "openapi.json"
        path.write_text(json.dumps(openapi_doc))
        context = ScanContext(target_base_url=base_url, openapi_document=str(path))

        result = await RestDiscoverer(transport, context).discover()

        assert len(result.endpoints) == 4

    async def test_fallback_common_paths_and_fuzz(self, mock_transport, context):
        """Without a spec, common paths and fuzzed resources become endpoints."""
        transport, respx_mock = mock_transport
        respx_mock.get("/api/users").mock(return_value=httpx.Response(200, json=[{"id": 1}]))
        respx_mock.get("/api/v1/orders").mock(return_value=httpx.Response(200, json=[{"id": 1}]))
        respx_mock.get("/api/v1/orders/1").mock(return_value=httpx.Response(200, json={"id": 1}))

        result = await RestDiscoverer(transport, context).discover()
        endpoints = _by_path(result.endpoints)

        assert endpoints[("GET", "/api/users")].source == "common-path"
        assert endpoints[("GET", "/api/v1/orders")].source == "path-fuzz"
        item = endpoints[("GET", "/api/v1/orders/{id}")]
        assert item.parameters_in(ParameterLocation.PATH)[0].name == "id"
        # Every unrouted path answers the same empty 200 as the random probe path
        assert ("GET", "/api/admin") not in endpoints

    async def test_options_allow_header(self, mock_transport, context):
        transport, respx_mock = mock_transport
        respx_mock.options("/api/items").mock(
            return_value=httpx.Response(204, headers={"Allow": "GET, POST, OPTIONS"}))

        result = await RestDiscoverer(transport, context).discover()
        endpoints = _by_path(result.endpoints)

        assert ("GET", "/api/items") in endpoints
        assert ("POST", "/api/items") in endpoints


class TestGraphQLDiscoverer:
    """Tests for GraphQL introspection discovery."""

    async def test_introspection(self, mock_transport, context, graphql_introspection_response):
        transport, respx_mock = mock_transport
        respx_mock.post("/graphql").mock(return_value=httpx.Response(200, json=graphql_introspection_response))

        result = await GraphQLDiscoverer(transport, context).discover()
        endpoints = _by_path(result.endpoints)

        assert len(result.endpoints) == 6
        assert endpoints[("POST", "/graphql")].is_service
        user = endpoints[("POST", "/graphql#Query.user")]
        assert user.attributes["root"] == "query"
        assert user.attributes["arg_types"] == {"id": "ID!"}
        assert user.attributes["selection"] == "id username"
        assert user.parameters[0].required
        assert endpoints[("POST", "/graphql#Mutation.deleteUser")].attributes["root"] == "mutation"

    async def test_schema_disclosure_finding(self, mock_transport, context, graphql_introspection_response):
        transport, respx_mock = mock_transport
        respx_mock.post("/graphql").mock(return_value=httpx.Response(200, json=graphql_introspection_response))

        result = await GraphQLDiscoverer(transport, context).discover()

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.type == SCHEMA_DISCLOSURE
        assert finding.severity == Severity.INFO
        assert finding.endpoint_ref == "graphql:POST /graphql"
        assert finding.evidence.startswith("Exposed types (150)")

    async def test_introspection_disabled(self, mock_transport, context):
        transport, respx_mock = mock_transport
        respx_mock.post("/graphql").mock(return_value=httpx.Response(
            400, json={"errors": [{"message": "GraphQL introspection is not allowed"}]}))

        result = await GraphQLDiscoverer(transport, context).discover()

        assert [e.path for e in result.endpoints] == ["/graphql"]
        assert result.findings[0].type == INTROSPECTION_DISABLED
        assert "not allowed" in result.findings[0].evidence
        assert any("disabled" in note for note in result.notes)

    async def test_no_graphql_service(self, mock_transport, context):
        transport, respx_mock = mock_transport
        respx_mock.post("/graphql").mock(return_value=httpx.Response(404, text="Not Found"))

        result = await GraphQLDiscoverer(transport, context).discover()

        assert result.endpoints == []
        assert result.findings == []


class TestSoapDiscoverer:
    """Tests for WSDL discovery."""

    @pytest.fixture
    def soap_context(self, base_url):
        return ScanContext(target_base_url=base_url, wsdl_paths=("/missing.wsdl", "/service.wsdl"))

    def test_parse_wsdl(self):
        tables = parse_wsdl(_wsdl())
        assert tables.target_namespace == "urn:users"
        assert tables.bindings["UserBinding"]["actions"] == {"GetUser": "urn:GetUser", "Ping": "urn:Ping"}
        assert tables.services == [("UserService", "UserBinding", "http://testserver:8000/ws/users")]
        assert not tables.has_security_policy

    def test_parse_invalid(self):
        with pytest.raises(DiscoveryError):
            parse_wsdl("<definitions")

    async def test_operations(self, mock_transport, soap_context):
        transport, respx_mock = mock_transport
        respx_mock.get("/missing.wsdl").mock(return_value=httpx.Response(404))
        respx_mock.get("/service.wsdl").mock(return_value=httpx.Response(200, text=_wsdl()))

        result = await SoapDiscoverer(transport, soap_context).discover()
        endpoints = _by_path(result.endpoints)

        assert endpoints[("POST", "/ws/users")].is_service
        get_user = endpoints[("POST", "/ws/users#GetUser")]
        assert get_user.attributes["soap_action"] == "urn:GetUser"
        assert get_user.attributes["namespace"] == "urn:users"
        assert [(p.name, p.data_type, p.required) for p in get_user.parameters] == [
            ("userId", "int", True),
            ("verbose", "boolean", False),
        ]
        ping = endpoints[("POST", "/ws/users#Ping")]
        assert [p.name for p in ping.parameters] == ["text"]

    async def test_missing_ws_security(self, mock_transport, soap_context):
        transport, respx_mock = mock_transport
        respx_mock.get("/service.wsdl").mock(return_value=httpx.Response(200, text=_wsdl()))

        result = await SoapDiscoverer(transport, soap_context).discover()

        assert [f.type for f in result.findings] == [MISSING_WS_SECURITY]
        assert result.findings[0].severity == Severity.MEDIUM
        assert result.findings[0].endpoint_ref == "soap:POST /ws/users"

    async def test_ws_policy_present(self, mock_transport, soap_context):
        transport, respx_mock = mock_transport
        policy = '<wsp:Policy xmlns:wsp="http://www.w3.org/ns/ws-policy"/>'
        respx_mock.get("/service.wsdl").mock(return_value=httpx.Response(200, text=_wsdl(policy)))

        result = await SoapDiscoverer(transport, soap_context).discover()

        assert result.findings == []
        assert len(result.endpoints) == 3

    async def test_no_wsdl(self, mock_transport, soap_context):
        transport, respx_mock = mock_transport
        respx_mock.get("/missing.wsdl").mock(return_value=httpx.Response(404))
        respx_mock.get("/service.wsdl").mock(return_value=httpx.Response(404))

        result = await SoapDiscoverer(transport, soap_context).discover()

        assert result.endpoints == []
        assert "No WSDL document found" in result.notes


def test_merge_prefers_spec_sources(user_endpoint):
    fuzzed = DiscoveryResult(protocol=Protocol.REST)
    fuzzed.add_endpoint(Endpoint(user_endpoint.path, "GET", Protocol.REST, source="path-fuzz"))
    spec = DiscoveryResult(protocol=Protocol.REST, endpoints=[user_endpoint])

    merged = merge_endpoints([fuzzed, spec])

    assert merged[0].source == "openapi"
