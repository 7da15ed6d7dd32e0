"""Injection probes: SQL, command, path traversal, XXE and reflected XSS."""

from typing import Optional

from apiprobe.adapters import ProbeIntent, SoapAdapter
from apiprobe.core.models import Endpoint, Protocol, ProbeResult, Severity
from apiprobe.core import patterns
from apiprobe.core.patterns import DetectionResult
from apiprobe.core import weaknesses as w

from .base import Probe, is_timing_payload


class InjectionProbe(Probe):
    """Substitutes each payload of one class into every injection point.

    A match is a signature hit in the response body or, for timing payloads,
    a delay over the endpoint's baseline. One finding per endpoint: the first
    confirmed payload is reported and the probe stops.
    """

    payload_category: str = ""
    signature_category: str = ""
    weakness_type: str = ""
    severity: Severity = Severity.CRITICAL

    def payload_list(self) -> list[str]:
        return [str(p) for p in self.payloads.get(self.payload_category)]

    def detect(self, result: ProbeResult, payload: str) -> DetectionResult:
        return self.matcher.match(self.signature_category, result.body)

    def applies_to(self, endpoint, context):
        return super().applies_to(endpoint, context) and bool(endpoint.parameters)

    async def run(self, endpoint, context, adapter):
        tier = self.best_tier(context)
        payloads = self.payload_list()

        for param in adapter.injection_points(endpoint):
            for payload in payloads:
                intent = ProbeIntent(endpoint=endpoint, tier=tier, params={param.name: payload})

                if is_timing_payload(payload):
                    timing = await self.timed(endpoint, context, adapter, intent)
                    if timing:
                        elapsed, baseline = timing
                        return [self._report(endpoint, param.name, payload,
                                             f"Response delayed {elapsed:.0f} ms against a "
                                             f"{baseline:.0f} ms baseline")]
                    continue

                result = await self.request(adapter, intent)
                detection = self.detect(result, payload)
                if detection.matched:
                    return [self._report(endpoint, param.name, payload,
                                         f"Detected {detection.pattern_name}: {detection.match_text}",
                                         detection.confidence)]
        return []

    def _report(self, endpoint: Endpoint, param: str, payload: str, detail: str,
                confidence: Optional[float] = None):
        description = f"Parameter '{param}' of {endpoint.display} is vulnerable to {self.weakness_type}"
        if confidence is not None:
            description += f" (confidence: {confidence:.0%})"
        return self.finding(
            self.weakness_type,
            self.severity,
            endpoint,
            evidence=f"Parameter: {param}\nPayload: {payload}\n{detail}",
            description=description + ".",
        )


class SqlInjectionProbe(InjectionProbe):
    name = "sql-injection"
    description = "Detects SQL injection via database errors and time delays"
    payload_category = "sql_injection"
    signature_category = patterns.SQL_ERROR
    weakness_type = w.SQL_INJECTION


class CommandInjectionProbe(InjectionProbe):
    name = "command-injection"
    description = "Detects OS command injection via command output and time delays"
    payload_category = "command_injection"
    signature_category = patterns.CMD_OUTPUT
    weakness_type = w.COMMAND_INJECTION


class PathTraversalProbe(InjectionProbe):
    name = "path-traversal"
    description = "Detects file reads outside the intended directory"
    payload_category = "path_traversal"
    signature_category = patterns.PATH_TRAVERSAL
    weakness_type = w.PATH_TRAVERSAL
    severity = Severity.HIGH


class ReflectedXssProbe(InjectionProbe):
    name = "reflected-xss"
    description = "Detects script payloads reflected verbatim in responses"
    payload_category = "xss"
    signature_category = patterns.XSS
    weakness_type = w.REFLECTED_XSS
    severity = Severity.HIGH

    def detect(self, result, payload):
        return self.matcher.detect_xss_reflection(result.body, payload)

    async def run(self, endpoint, context, adapter):
        tier = self.best_tier(context)
        for param in adapter.injection_points(endpoint):
            for payload in self.payload_list():
                result = await self.request(adapter, ProbeIntent(
                    endpoint=endpoint, tier=tier, params={param.name: payload},
                ))
                detection = self.detect(result, payload)
                if detection.matched:
                    # The reflected payload itself is the evidence
                    return [self.finding(
                        self.weakness_type,
                        self.severity,
                        endpoint,
                        evidence=detection.match_text,
                        description=f"Parameter '{param.name}' of {endpoint.display} is reflected "
                                    f"unencoded ({detection.pattern_name}).",
                    )]
        return []


class XxeProbe(InjectionProbe):
    """Posts XML documents declaring an external entity.

    REST operations that take a body receive the payload documents as-is;
    SOAP operations receive their own envelope with the entity referenced
    from the first parameter.
    """

    name = "xxe"
    description = "Detects XML external entity resolution"
    payload_category = "xxe"
    signature_category = patterns.XXE
    weakness_type = w.XXE
    protocols = frozenset({Protocol.REST, Protocol.SOAP})

    ENTITY_TARGETS = ["file:///etc/passwd", "file:///c:/windows/win.ini"]
    MARKER = "apiprobexxemarker"

    def applies_to(self, endpoint, context):
        if not Probe.applies_to(self, endpoint, context):
            return False
        if endpoint.protocol == Protocol.SOAP:
            return True
        return endpoint.method in ("POST", "PUT", "PATCH")

    def documents(self, endpoint: Endpoint, adapter) -> list[str]:
        if endpoint.protocol != Protocol.SOAP or not isinstance(adapter, SoapAdapter):
            return self.payload_list()

        params = {}
        if endpoint.parameters:
            params[endpoint.parameters[0].name] = self.MARKER
        envelope = adapter.envelope(ProbeIntent(endpoint=endpoint, params=params))
        _declaration, _, body = envelope.partition("?>")
        documents = []
        for target in self.ENTITY_TARGETS:
            doctype = f'<?xml version="1.0" encoding="utf-8"?><!DOCTYPE foo [<!ENTITY xxe SYSTEM "{target}">]>'
            if params:
                documents.append(doctype + body.replace(self.MARKER, "&xxe;"))
            else:
                documents.append(doctype + body.replace("</soap:Body>", "&xxe;</soap:Body>"))
        return documents

    async def run(self, endpoint, context, adapter):
        tier = self.best_tier(context)
        content_type = None if endpoint.protocol == Protocol.SOAP else "application/xml"
        for document in self.documents(endpoint, adapter):
            result = await self.request(adapter, ProbeIntent(
                endpoint=endpoint, tier=tier, raw_body=document, content_type=content_type,
            ))
            detection = self.detect(result, document)
            if detection.matched:
                return [self._report(endpoint, "request body", document[:200],
                                     f"Detected {detection.pattern_name}: {detection.match_text}",
                                     detection.confidence)]
        return []
