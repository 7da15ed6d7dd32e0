"""GraphQL adapter."""

import json

from .base import PreparedRequest, ProbeIntent, ProtocolAdapter

SCALAR_DEFAULTS = {
    "Int": 1,
    "Float": 1.0,
    "Boolean": True,
    "ID": "1",
    "String": "test",
}


class GraphQLAdapter(ProtocolAdapter):
    """Builds a single-field operation document with variables.

    Field endpoints are ``<graphql path>#<Root>.<field>``; the endpoint's
    attributes carry ``root`` (query/mutation/subscription), ``arg_types``
    and ``selection``. The service endpoint takes a raw document.
    """

    def build_document(self, intent: ProbeIntent) -> tuple[str, dict]:
        endpoint = intent.endpoint
        root = endpoint.attributes.get("root", "query")
        field_name = (endpoint.operation or "").split(".", 1)[-1]
        arg_types: dict = endpoint.attributes.get("arg_types", {})
        selection = endpoint.attributes.get("selection") or ""

        definitions, arguments, variables = [], [], {}
        for param in endpoint.parameters:
            gql_type = arg_types.get(param.name, param.data_type or "String")
            definitions.append(f"${param.name}: {gql_type}")
            arguments.append(f"{param.name}: ${param.name}")
            variables[param.name] = self._variable(param, gql_type, intent)

        header = f"{root} Probe({', '.join(definitions)})" if definitions else f"{root} Probe"
        call = f"{field_name}({', '.join(arguments)})" if arguments else field_name
        body = f"{call} {{ {selection} }}" if selection else call
        return f"{header} {{ {body} }}", variables

    def _variable(self, param, gql_type: str, intent: ProbeIntent):
        if param.name in intent.params:
            return intent.params[param.name]
        named = gql_type.strip("[]!")
        return SCALAR_DEFAULTS.get(named, "test")

    def build_request(self, intent: ProbeIntent) -> PreparedRequest:
        endpoint = intent.endpoint
        url = self.context.url_for(endpoint.service_path)
        headers = self.base_headers(intent)
        headers.setdefault("Content-Type", intent.content_type or "application/json")

        if intent.raw_body is not None:
            body = intent.raw_body
        elif endpoint.is_service:
            body = json.dumps({"query": "{ __typename }"})
        else:
            document, variables = self.build_document(intent)
            body = json.dumps({"query": document, "variables": variables})

        return PreparedRequest(method="POST", url=url, headers=headers, body=body)

    def succeeded(self, result) -> bool:
        """HTTP 2xx with a non-null ``data`` entry and no ``errors``."""
        if not result.is_success:
            return False
        payload = result.json()
        if not isinstance(payload, dict) or payload.get("errors"):
            return False
        data = payload.get("data")
        if not isinstance(data, dict):
            return False
        return any(value is not None for value in data.values())

    @staticmethod
    def query_body(query: str, variables: dict | None = None) -> str:
        """JSON request body for an ad-hoc document."""
        payload: dict = {"query": query}
        if variables:
            payload["variables"] = variables
        return json.dumps(payload)
