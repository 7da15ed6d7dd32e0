"""GraphQL discovery via introspection."""

import json
from typing import Optional

from apiprobe.core.models import Endpoint, ParameterLocation, ParameterSpec, Protocol, Severity
from apiprobe.core.logging import get_logger
from apiprobe.core.weaknesses import INTROSPECTION_DISABLED, SCHEMA_DISCLOSURE, make_finding

from .base import Discoverer, DiscoveryResult, DiscoveryState

logger = get_logger("discovery.graphql")

INTROSPECTION_QUERY = """
query IntrospectionQuery {
    __schema {
        queryType { name }
        mutationType { name }
        subscriptionType { name }
        types {
            kind
            name
            fields(includeDeprecated: true) {
                name
                args {
                    name
                    type { ...TypeRef }
                }
                type { ...TypeRef }
            }
        }
    }
}

fragment TypeRef on __Type {
    kind
    name
    ofType {
        kind
        name
        ofType {
            kind
            name
            ofType { kind name }
        }
    }
}
"""

ROOTS = (("queryType", "query", "Query"), ("mutationType", "mutation", "Mutation"),
         ("subscriptionType", "subscription", "Subscription"))

LEAF_KINDS = {"SCALAR", "ENUM"}


def type_signature(ref: Optional[dict]) -> str:
    """Render an introspection type reference, e.g. ``[ID!]!``."""
    if not ref:
        return "String"
    kind = ref.get("kind")
    if kind == "NON_NULL":
        return f"{type_signature(ref.get('ofType'))}!"
    if kind == "LIST":
        return f"[{type_signature(ref.get('ofType'))}]"
    return ref.get("name") or "String"


def named_type(ref: Optional[dict]) -> tuple[str, str]:
    """Innermost (kind, name) of a type reference."""
    while ref and ref.get("kind") in ("NON_NULL", "LIST"):
        ref = ref.get("ofType")
    if not ref:
        return ("SCALAR", "String")
    return (ref.get("kind") or "SCALAR", ref.get("name") or "String")


class SchemaTable:
    """Flat name -> type table built from the introspection ``types`` list."""

    def __init__(self, types: list[dict]):
        self.types = {t["name"]: t for t in types if isinstance(t, dict) and t.get("name")}

    def fields(self, type_name: str) -> list[dict]:
        return (self.types.get(type_name) or {}).get("fields") or []

    def selection(self, type_ref: Optional[dict]) -> str:
        """Scalar sub-selection for an object return type, one level deep."""
        kind, name = named_type(type_ref)
        if kind in LEAF_KINDS:
            return ""
        if kind in ("INTERFACE", "UNION") or not self.fields(name):
            return "__typename"
        leaves = [
            f["name"] for f in self.fields(name)
            if named_type(f.get("type"))[0] in LEAF_KINDS and not _required_args(f)
        ]
        return " ".join(leaves[:10]) or "__typename"

    @property
    def user_type_names(self) -> list[str]:
        return [n for n in self.types if not n.startswith("__")]


class GraphQLDiscoverer(Discoverer):
    """Introspects the GraphQL service and emits one Endpoint per root field."""

    protocol = Protocol.GRAPHQL
    name = "GraphQLDiscoverer"

    async def discover(self) -> DiscoveryResult:
        result = DiscoveryResult(protocol=Protocol.GRAPHQL, state=DiscoveryState.INTROSPECTION)
        path = self.context.graphql_path
        service = Endpoint(path=path, method="POST", protocol=Protocol.GRAPHQL, source="introspection")

        response = await self.transport.send(
            "POST",
            self.context.url_for(path),
            headers={**self.context.extra_headers, "Content-Type": "application/json"},
            body=json.dumps({"query": INTROSPECTION_QUERY}),
            timeout=self.context.request_timeout,
        )
        result.state = DiscoveryState.COMPLETE

        if not response.ok:
            result.add_note(f"GraphQL introspection at {path} failed: {response.error}")
            return result

        data = response.json()
        if not isinstance(data, dict) or ("data" not in data and "errors" not in data):
            result.add_note(f"No GraphQL service at {path} (HTTP {response.status_code})")
            return result

        schema = (data.get("data") or {}).get("__schema")
        result.add_endpoint(service)

        if not schema:
            result.findings.append(make_finding(
                INTROSPECTION_DISABLED,
                Severity.INFO,
                service,
                evidence=_error_text(data) or "introspection returned no __schema",
                description="The GraphQL service rejects introspection; field-level endpoints could not be enumerated.",
                probe="discovery",
            ))
            result.add_note(f"GraphQL introspection disabled at {path}; no field endpoints emitted")
            return result

        table = SchemaTable(schema.get("types") or [])
        for key, root, default_name in ROOTS:
            # Minimal schemas omit the root type pointers; fall back to conventional names
            type_name = (schema.get(key) or {}).get("name") or default_name
            for gql_field in table.fields(type_name):
                result.add_endpoint(self._field_endpoint(path, root, type_name, gql_field, table))

        names = table.user_type_names
        result.findings.append(make_finding(
            SCHEMA_DISCLOSURE,
            Severity.INFO,
            service,
            evidence=f"Exposed types ({len(names)}): {', '.join(names[:10])}{'...' if len(names) > 10 else ''}",
            description="GraphQL introspection is enabled, exposing the entire schema.",
            probe="discovery",
        ))
        logger.info(f"Introspection exposed {len(result.endpoints) - 1} GraphQL fields")
        return result

    def _field_endpoint(self, path: str, root: str, type_name: str, gql_field: dict,
                        table: SchemaTable) -> Endpoint:
        params, arg_types = [], {}
        for arg in gql_field.get("args") or []:
            signature = type_signature(arg.get("type"))
            arg_types[arg["name"]] = signature
            params.append(ParameterSpec(
                name=arg["name"],
                location=ParameterLocation.BODY,
                data_type=named_type(arg.get("type"))[1],
                required=signature.endswith("!"),
            ))
        return Endpoint(
            path=f"{path}#{type_name}.{gql_field['name']}",
            method="POST",
            protocol=Protocol.GRAPHQL,
            parameters=tuple(params),
            source="introspection",
            attributes={
                "root": root,
                "arg_types": arg_types,
                "selection": table.selection(gql_field.get("type")),
            },
        )


def _required_args(gql_field: dict) -> bool:
    return any((a.get("type") or {}).get("kind") == "NON_NULL" for a in gql_field.get("args") or [])


def _error_text(data: dict) -> str:
    errors = data.get("errors") or []
    messages = [e.get("message", "") for e in errors if isinstance(e, dict)]
    return "; ".join(m for m in messages if m)[:300]
