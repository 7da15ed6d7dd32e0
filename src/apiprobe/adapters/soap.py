"""SOAP adapter."""

import re
from xml.sax.saxutils import escape

from .base import PreparedRequest, ProbeIntent, ProtocolAdapter

SOAP11_ENV = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP12_ENV = "http://www.w3.org/2003/05/soap-envelope"

_FAULT = re.compile(r"<(?:\w+:)?Fault[\s>]")


class SoapAdapter(ProtocolAdapter):
    """Wraps parameters in a SOAP envelope for the endpoint's operation.

    Operation endpoints are ``<address path>#<operation>`` with attributes
    ``namespace``, ``soap_action`` and ``soap_version``.
    """

    def envelope(self, intent: ProbeIntent) -> str:
        endpoint = intent.endpoint
        namespace = endpoint.attributes.get("namespace", "")
        version = endpoint.attributes.get("soap_version", "1.1")
        env_ns = SOAP12_ENV if version == "1.2" else SOAP11_ENV
        operation = endpoint.operation or ""

        parts = []
        for param in endpoint.parameters:
            value = escape(str(self.value_for(param, intent)))
            parts.append(f"<tns:{param.name}>{value}</tns:{param.name}>")

        return (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<soap:Envelope xmlns:soap="{env_ns}" xmlns:tns="{namespace}">'
            "<soap:Body>"
            f"<tns:{operation}>{''.join(parts)}</tns:{operation}>"
            "</soap:Body>"
            "</soap:Envelope>"
        )

    def succeeded(self, result) -> bool:
        return result.is_success and not _FAULT.search(result.body)

    def build_request(self, intent: ProbeIntent) -> PreparedRequest:
        endpoint = intent.endpoint
        url = self.context.url_for(endpoint.service_path)
        headers = self.base_headers(intent)
        action = endpoint.attributes.get("soap_action", "")

        if endpoint.attributes.get("soap_version") == "1.2":
            content_type = f'application/soap+xml; charset=utf-8; action="{action}"'
        else:
            content_type = "text/xml; charset=utf-8"
            headers["SOAPAction"] = f'"{action}"'
        headers["Content-Type"] = intent.content_type or content_type

        if intent.raw_body is not None:
            body = intent.raw_body
        elif endpoint.is_service:
            body = None
        else:
            body = self.envelope(intent)

        method = intent.method or ("GET" if body is None else "POST")
        return PreparedRequest(method=method, url=url, headers=headers, body=body)
