"""REST adapter."""

import json
import re
from urllib.parse import quote, urlencode

from apiprobe.core.models import ParameterLocation

from .base import PreparedRequest, ProbeIntent, ProtocolAdapter

_PLACEHOLDER = re.compile(r"\{([^}/]+)\}")

BODY_METHODS = {"POST", "PUT", "PATCH"}


class RestAdapter(ProtocolAdapter):
    """Maps parameters onto path, query string, JSON body and headers."""

    def build_request(self, intent: ProbeIntent) -> PreparedRequest:
        endpoint = intent.endpoint
        method = (intent.method or endpoint.method).upper()
        declared = {p.name: p for p in endpoint.parameters}

        def fill(match: re.Match) -> str:
            name = match.group(1)
            param = declared.get(name)
            if name in intent.params:
                value = intent.params[name]
            elif param is not None:
                value = self.default_value(param)
            else:
                value = "1"
            return quote(str(value), safe="")

        path = _PLACEHOLDER.sub(fill, endpoint.path)
        url = self.context.url_for(path)

        query = [(p.name, self.value_for(p, intent)) for p in endpoint.parameters_in(ParameterLocation.QUERY)]
        if query:
            url = f"{url}?{urlencode(query)}"

        headers = self.base_headers(intent)
        for param in endpoint.parameters_in(ParameterLocation.HEADER):
            headers[param.name] = self.value_for(param, intent)

        body = intent.raw_body
        if body is None:
            body_params = endpoint.parameters_in(ParameterLocation.BODY)
            if body_params or method in BODY_METHODS:
                body = json.dumps({p.name: self._typed(p, intent) for p in body_params})
                headers.setdefault("Content-Type", "application/json")
        if intent.content_type:
            headers["Content-Type"] = intent.content_type

        return PreparedRequest(method=method, url=url, headers=headers, body=body)

    def _typed(self, param, intent: ProbeIntent):
        """JSON value for a body parameter; injected payloads stay strings."""
        value = self.value_for(param, intent)
        if param.name in intent.params:
            return value
        if param.data_type in ("integer", "number"):
            return int(value) if value.lstrip("-").isdigit() else value
        if param.data_type == "boolean":
            return value == "true"
        return value
