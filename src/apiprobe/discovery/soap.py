"""SOAP discovery from WSDL documents."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from apiprobe.core.errors import DiscoveryError
from apiprobe.core.logging import get_logger
from apiprobe.core.models import Endpoint, ParameterLocation, ParameterSpec, Protocol, Severity
from apiprobe.core.weaknesses import MISSING_WS_SECURITY, make_finding

from .base import Discoverer, DiscoveryResult, DiscoveryState

logger = get_logger("discovery.soap")

WSDL_NS = "http://schemas.xmlsoap.org/wsdl/"
SOAP11_NS = "http://schemas.xmlsoap.org/wsdl/soap/"
SOAP12_NS = "http://schemas.xmlsoap.org/wsdl/soap12/"
XSD_NS = "http://www.w3.org/2001/XMLSchema"

# Namespaces whose elements indicate a WS-Security policy is attached
SECURITY_NAMESPACES = (
    "http://schemas.xmlsoap.org/ws/2004/09/policy",
    "http://www.w3.org/ns/ws-policy",
    "http://docs.oasis-open.org/ws-sx/ws-securitypolicy",
    "http://schemas.xmlsoap.org/ws/2005/07/securitypolicy",
    "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity",
)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _ns(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else ""


def _strip_prefix(qname: Optional[str]) -> str:
    return (qname or "").rsplit(":", 1)[-1]


@dataclass
class WsdlTables:
    """Flat lookup tables of a WSDL document, keyed by local name."""
    target_namespace: str = ""
    messages: dict[str, list[tuple[str, str, str]]] = field(default_factory=dict)
    elements: dict[str, list[tuple[str, str, bool]]] = field(default_factory=dict)
    port_types: dict[str, list[tuple[str, str]]] = field(default_factory=dict)
    bindings: dict[str, dict] = field(default_factory=dict)
    services: list[tuple[str, str, str]] = field(default_factory=list)
    has_security_policy: bool = False


def parse_wsdl(text: str) -> WsdlTables:
    """Parse a WSDL 1.1 document into flat tables."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise DiscoveryError(f"unparsable WSDL: {e}") from e
    if _local(root.tag) != "definitions":
        raise DiscoveryError("document root is not wsdl:definitions")

    tables = WsdlTables(target_namespace=root.get("targetNamespace", ""))
    tables.has_security_policy = any(
        _ns(el.tag).startswith(SECURITY_NAMESPACES) or _local(el.tag) in ("Policy", "PolicyReference")
        for el in root.iter()
    )

    for schema_el in root.iter(f"{{{XSD_NS}}}element"):
        name = schema_el.get("name")
        if not name:
            continue
        children = []
        for child in schema_el.iter(f"{{{XSD_NS}}}element"):
            if child is schema_el or not child.get("name"):
                continue
            children.append((child.get("name"), _strip_prefix(child.get("type")) or "string",
                             child.get("minOccurs", "1") != "0"))
        tables.elements.setdefault(name, children)

    for message in root.findall(f"{{{WSDL_NS}}}message"):
        parts = [
            (part.get("name", ""), _strip_prefix(part.get("element")), _strip_prefix(part.get("type")))
            for part in message.findall(f"{{{WSDL_NS}}}part")
        ]
        tables.messages[message.get("name", "")] = parts

    for port_type in root.findall(f"{{{WSDL_NS}}}portType"):
        operations = []
        for op in port_type.findall(f"{{{WSDL_NS}}}operation"):
            input_el = op.find(f"{{{WSDL_NS}}}input")
            message = _strip_prefix(input_el.get("message")) if input_el is not None else ""
            operations.append((op.get("name", ""), message))
        tables.port_types[port_type.get("name", "")] = operations

    for binding in root.findall(f"{{{WSDL_NS}}}binding"):
        version = "1.2" if binding.find(f"{{{SOAP12_NS}}}binding") is not None else "1.1"
        actions = {}
        for op in binding.findall(f"{{{WSDL_NS}}}operation"):
            soap_op = op.find(f"{{{SOAP11_NS}}}operation")
            if soap_op is None:
                soap_op = op.find(f"{{{SOAP12_NS}}}operation")
            actions[op.get("name", "")] = soap_op.get("soapAction", "") if soap_op is not None else ""
        tables.bindings[binding.get("name", "")] = {
            "type": _strip_prefix(binding.get("type")),
            "version": version,
            "actions": actions,
        }

    for service in root.findall(f"{{{WSDL_NS}}}service"):
        for port in service.findall(f"{{{WSDL_NS}}}port"):
            address = ""
            for child in port:
                if _local(child.tag) == "address":
                    address = child.get("location", "")
            tables.services.append((service.get("name", ""), _strip_prefix(port.get("binding")), address))

    return tables


class SoapDiscoverer(Discoverer):
    """Fetches the WSDL and emits one Endpoint per bound operation."""

    protocol = Protocol.SOAP
    name = "SoapDiscoverer"

    async def discover(self) -> DiscoveryResult:
        result = DiscoveryResult(protocol=Protocol.SOAP, state=DiscoveryState.WSDL)
        for wsdl_path in self.context.wsdl_paths:
            response = await self.transport.send(
                "GET",
                self.context.url_for(wsdl_path),
                headers=dict(self.context.extra_headers),
                timeout=self.context.request_timeout,
            )
            if not response.ok:
                result.add_note(f"WSDL fetch {wsdl_path} failed: {response.error}")
                if self.context.cancelled:
                    break
                continue
            if response.status_code != 200 or "definitions" not in response.body:
                continue
            try:
                tables = parse_wsdl(response.body)
            except DiscoveryError as e:
                result.add_note(f"WSDL at {wsdl_path} ignored: {e}")
                continue
            self._emit(tables, wsdl_path, result)
            break
        else:
            result.add_note("No WSDL document found")

        result.state = DiscoveryState.COMPLETE
        return result

    def _address_path(self, address: str, wsdl_path: str) -> str:
        if address:
            return urlparse(address).path or "/"
        return urlparse(wsdl_path).path or "/"

    def _parameters(self, tables: WsdlTables, message_name: str) -> list[ParameterSpec]:
        params = []
        for part_name, element, part_type in tables.messages.get(message_name, []):
            if element and element in tables.elements:
                for name, data_type, required in tables.elements[element]:
                    params.append(ParameterSpec(name, ParameterLocation.BODY, data_type, required))
            elif part_name:
                params.append(ParameterSpec(part_name, ParameterLocation.BODY, part_type or "string", True))
        return params

    def _emit(self, tables: WsdlTables, wsdl_path: str, result: DiscoveryResult) -> None:
        services = tables.services or [("", name, "") for name in tables.bindings]
        for _service_name, binding_name, address in services:
            binding = tables.bindings.get(binding_name)
            if binding is None:
                continue
            path = self._address_path(address, wsdl_path)
            service = Endpoint(path=path, method="POST", protocol=Protocol.SOAP, source="wsdl",
                               attributes={"namespace": tables.target_namespace,
                                           "soap_version": binding["version"]})
            is_new_service = result.add_endpoint(service)

            for op_name, message in tables.port_types.get(binding["type"], []):
                if op_name not in binding["actions"]:
                    continue
                result.add_endpoint(Endpoint(
                    path=f"{path}#{op_name}",
                    method="POST",
                    protocol=Protocol.SOAP,
                    parameters=tuple(self._parameters(tables, message)),
                    source="wsdl",
                    attributes={
                        "namespace": tables.target_namespace,
                        "soap_action": binding["actions"][op_name],
                        "soap_version": binding["version"],
                    },
                ))

            if is_new_service and not tables.has_security_policy:
                result.findings.append(make_finding(
                    MISSING_WS_SECURITY,
                    Severity.MEDIUM,
                    service,
                    evidence=f"WSDL {wsdl_path} declares no WS-Policy or WS-Security element",
                    description="SOAP bindings carry no WS-Security policy; messages are neither signed nor encrypted.",
                    probe="discovery",
                ))
        logger.info(f"WSDL {wsdl_path} declared {len(result.endpoints)} SOAP endpoints")
