"""REST discovery: OpenAPI documents, common paths, then path fuzzing."""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

from apiprobe.core.errors import DiscoveryError
from apiprobe.core.logging import get_logger
from apiprobe.core.models import Endpoint, ParameterLocation, ParameterSpec, ProbeResult, Protocol

from .base import Discoverer, DiscoveryResult, DiscoveryState

logger = get_logger("discovery.rest")

HTTP_METHODS = ["get", "post", "put", "patch", "delete", "head", "options"]

LOCATIONS = {
    "path": ParameterLocation.PATH,
    "query": ParameterLocation.QUERY,
    "header": ParameterLocation.HEADER,
    "body": ParameterLocation.BODY,
    "formData": ParameterLocation.BODY,
}

# Used for endpoints whose parameters are unknown, so probes have something to mutate
FALLBACK_PARAMETERS = (
    ParameterSpec("id", ParameterLocation.QUERY, "string"),
    ParameterSpec("q", ParameterLocation.QUERY, "string"),
    ParameterSpec("search", ParameterLocation.QUERY, "string"),
    ParameterSpec("name", ParameterLocation.QUERY, "string"),
    ParameterSpec("file", ParameterLocation.QUERY, "string"),
)

EXISTS_STATUSES = {200, 201, 204, 401, 403, 405}


def load_document(text: str) -> dict:
    """Parse an OpenAPI/Swagger document in JSON or YAML."""
    try:
        doc = json.loads(text)
    except ValueError:
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DiscoveryError(f"unparsable spec document: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("paths"), dict):
        raise DiscoveryError("document has no 'paths' mapping")
    if "openapi" not in doc and "swagger" not in doc:
        raise DiscoveryError("document is neither OpenAPI nor Swagger")
    return doc


class OpenAPIParser:
    """Turns an OpenAPI v2/v3 document into Endpoints."""

    def __init__(self, doc: dict):
        self.doc = doc

    def base_path(self) -> str:
        if "swagger" in self.doc:
            return (self.doc.get("basePath") or "").rstrip("/")
        servers = self.doc.get("servers") or []
        if servers and isinstance(servers[0], dict):
            return urlparse(servers[0].get("url", "")).path.rstrip("/")
        return ""

    def resolve(self, node: Any) -> Any:
        """Follow a local $ref, one hop at a time."""
        seen = 0
        while isinstance(node, dict) and "$ref" in node and seen < 10:
            ref = node["$ref"]
            if not isinstance(ref, str) or not ref.startswith("#/"):
                return {}
            target: Any = self.doc
            for part in ref[2:].split("/"):
                target = target.get(part, {}) if isinstance(target, dict) else {}
            node = target
            seen += 1
        return node

    def _schema_params(self, schema: Any, required_default: bool = False) -> list[ParameterSpec]:
        schema = self.resolve(schema)
        if not isinstance(schema, dict):
            return []
        required = set(schema.get("required") or [])
        params = []
        for name, prop in (schema.get("properties") or {}).items():
            prop = self.resolve(prop)
            params.append(ParameterSpec(
                name=name,
                location=ParameterLocation.BODY,
                data_type=(prop or {}).get("type", "string") if isinstance(prop, dict) else "string",
                required=name in required or required_default,
            ))
        return params

    def _parameter(self, raw: Any) -> list[ParameterSpec]:
        raw = self.resolve(raw)
        if not isinstance(raw, dict) or "name" not in raw:
            return []
        location = LOCATIONS.get(raw.get("in", ""))
        if location is None:
            return []
        if raw.get("in") == "body" and "schema" in raw:
            return self._schema_params(raw["schema"])
        schema = self.resolve(raw.get("schema") or {})
        data_type = raw.get("type") or (schema.get("type") if isinstance(schema, dict) else None) or "string"
        return [ParameterSpec(
            name=raw["name"],
            location=location,
            data_type=data_type,
            required=bool(raw.get("required", location == ParameterLocation.PATH)),
        )]

    def _request_body(self, operation: dict) -> list[ParameterSpec]:
        body = self.resolve(operation.get("requestBody") or {})
        content = body.get("content") or {} if isinstance(body, dict) else {}
        for media_type in ("application/json", "application/x-www-form-urlencoded", "multipart/form-data"):
            if media_type in content:
                return self._schema_params((content[media_type] or {}).get("schema"))
        return []

    def endpoints(self) -> list[Endpoint]:
        base = self.base_path()
        global_security = self.doc.get("security")
        endpoints = []
        for path, item in self.doc["paths"].items():
            item = self.resolve(item)
            if not isinstance(item, dict):
                continue
            shared = [p for raw in item.get("parameters") or [] for p in self._parameter(raw)]
            for method in HTTP_METHODS:
                operation = item.get(method)
                if not isinstance(operation, dict):
                    continue
                params: dict[tuple, ParameterSpec] = {(p.name, p.location): p for p in shared}
                for raw in operation.get("parameters") or []:
                    for p in self._parameter(raw):
                        params[(p.name, p.location)] = p
                for p in self._request_body(operation):
                    params.setdefault((p.name, p.location), p)
                security = operation.get("security", global_security)
                endpoints.append(Endpoint(
                    path=f"{base}{path}",
                    method=method,
                    protocol=Protocol.REST,
                    parameters=tuple(params.values()),
                    source="openapi",
                    attributes={
                        "public": security == [],
                        "operation_id": operation.get("operationId"),
                    },
                ))
        return endpoints


class RestDiscoverer(Discoverer):
    """REST discovery state machine.

    Structured spec -> (authoritative, done) or common paths -> path fuzz.
    """

    protocol = Protocol.REST
    name = "RestDiscoverer"

    SPEC_PATHS = [
        "/openapi.json",
        "/swagger.json",
        "/openapi.yaml",
        "/swagger.yaml",
        "/api-docs",
        "/v3/api-docs",
        "/v2/api-docs",
        "/api/openapi.json",
        "/api/swagger.json",
        "/docs/openapi.json",
        "/swagger/v1/swagger.json",
        "/api/v1/openapi.json",
    ]

    COMMON_PATHS = [
        "/api",
        "/api/v1",
        "/api/v2",
        "/v1",
        "/v2",
        "/api/users",
        "/api/user",
        "/api/users/me",
        "/api/me",
        "/api/profile",
        "/api/accounts",
        "/api/products",
        "/api/orders",
        "/api/items",
        "/api/search",
        "/api/login",
        "/api/auth",
        "/api/token",
        "/api/register",
        "/api/admin",
        "/api/config",
        "/api/settings",
        "/api/files",
        "/api/upload",
        "/api/health",
        "/api/status",
        "/api/v1/users",
        "/api/v1/products",
        "/users",
        "/health",
        "/status",
        "/admin",
    ]

    # Common REST resources to fuzz
    RESOURCES = [
        "users", "accounts", "customers", "products", "items",
        "orders", "invoices", "payments", "transactions", "posts",
        "comments", "files", "documents", "reports", "roles",
        "permissions", "tokens", "sessions", "logs", "events",
        "messages", "notifications", "settings", "config", "export",
    ]
    FUZZ_PREFIXES = ["/api", "/api/v1", ""]

    def __init__(self, transport, context):
        super().__init__(transport, context)
        self._semaphore = asyncio.Semaphore(context.concurrency)
        self._soft_404: Optional[tuple[int, int]] = None

    async def discover(self) -> DiscoveryResult:
        result = DiscoveryResult(protocol=Protocol.REST, state=DiscoveryState.STRUCTURED_SPEC)

        if await self._from_spec(result):
            result.state = DiscoveryState.COMPLETE
            return result

        result.state = DiscoveryState.COMMON_PATHS
        await self._calibrate_soft_404()
        await self._common_paths(result)

        result.state = DiscoveryState.PATH_FUZZ
        await self._fuzz(result)

        result.state = DiscoveryState.COMPLETE
        logger.info(f"REST discovery found {len(result.endpoints)} endpoints without a spec document")
        return result

    # -- structured spec ---------------------------------------------------

    async def _from_spec(self, result: DiscoveryResult) -> bool:
        if self.context.openapi_document:
            try:
                text = Path(self.context.openapi_document).read_text(encoding="utf-8")
                return self._emit_spec(load_document(text), self.context.openapi_document, result)
            except (OSError, DiscoveryError) as e:
                result.add_note(f"Local spec document {self.context.openapi_document} unusable: {e}")

        for spec_path in self.SPEC_PATHS:
            response = await self._get(spec_path)
            if not response.ok:
                result.add_note(f"Spec fetch {spec_path} failed: {response.error}")
                if self.context.cancelled:
                    return False
                continue
            if response.status_code != 200 or not response.body:
                continue
            try:
                doc = load_document(response.body)
            except DiscoveryError as e:
                result.add_note(f"Spec document at {spec_path} ignored: {e}")
                continue
            return self._emit_spec(doc, spec_path, result)
        return False

    def _emit_spec(self, doc: dict, source: str, result: DiscoveryResult) -> bool:
        endpoints = OpenAPIParser(doc).endpoints()
        if not endpoints:
            result.add_note(f"Spec document at {source} declares no operations")
            return False
        for endpoint in endpoints:
            result.add_endpoint(endpoint)
        logger.info(f"Found {len(endpoints)} operations in {source}")
        return True

    # -- common paths and fuzzing -----------------------------------------

    async def _get(self, path: str, method: str = "GET") -> ProbeResult:
        async with self._semaphore:
            return await self.transport.send(
                method,
                self.context.url_for(path),
                headers=dict(self.context.extra_headers),
                timeout=self.context.request_timeout,
            )

    async def _calibrate_soft_404(self) -> None:
        """Servers answering 200 for everything would make every path 'exist'."""
        response = await self._get(f"/{uuid.uuid4().hex}")
        if response.ok and response.status_code in EXISTS_STATUSES:
            self._soft_404 = (response.status_code, len(response.body))

    def _exists(self, response: ProbeResult) -> bool:
        if not response.ok or response.status_code not in EXISTS_STATUSES:
            return False
        if self._soft_404 and (response.status_code, len(response.body)) == self._soft_404:
            return False
        return True

    def _fallback_endpoint(self, path: str, method: str, source: str) -> Endpoint:
        params = FALLBACK_PARAMETERS
        if "{id}" in path:
            params = (ParameterSpec("id", ParameterLocation.PATH, "string", True),) + tuple(
                p for p in FALLBACK_PARAMETERS if p.name != "id"
            )
        return Endpoint(path=path, method=method, protocol=Protocol.REST, parameters=params, source=source)

    async def _probe_path(self, path: str) -> list[str]:
        """Methods a path answers to: OPTIONS Allow header, else GET."""
        options = await self._get(path, "OPTIONS")
        methods: list[str] = []
        if self._exists(options) and options.status_code < 400:
            allow = options.header("allow")
            methods = [m.strip().upper() for m in allow.split(",") if m.strip().lower() in HTTP_METHODS[:5]]
        if methods:
            return methods
        response = await self._get(path)
        if self._exists(response):
            return ["GET"] if response.status_code != 405 else ["POST"]
        return []

    async def _common_paths(self, result: DiscoveryResult) -> None:
        found = await asyncio.gather(*(self._probe_path(p) for p in self.COMMON_PATHS))
        for path, methods in zip(self.COMMON_PATHS, found):
            for method in methods:
                result.add_endpoint(self._fallback_endpoint(path, method, "common-path"))

    async def _fuzz(self, result: DiscoveryResult) -> None:
        budget = self.context.max_fuzz_requests
        candidates = []
        for prefix in self.FUZZ_PREFIXES:
            for resource in self.RESOURCES:
                candidates.append(f"{prefix}/{resource}")
        candidates = [c for c in candidates if c not in self.COMMON_PATHS][:budget // 2]

        responses = await asyncio.gather(*(self._get(c) for c in candidates))
        collections = [c for c, r in zip(candidates, responses) if self._exists(r)]
        for path in collections:
            result.add_endpoint(self._fallback_endpoint(path, "GET", "path-fuzz"))

        items = await asyncio.gather(*(self._get(f"{c}/1") for c in collections))
        for path, response in zip(collections, items):
            if self._exists(response):
                result.add_endpoint(self._fallback_endpoint(f"{path}/{{id}}", "GET", "path-fuzz"))
