"""SARIF reporter - generates SARIF format for CI/CD integration."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from apiprobe import __version__
from apiprobe.core.models import Finding
from apiprobe.core.session import ScanSession, SessionStatus
from apiprobe.core.weaknesses import get_weakness


class SARIFReporter:
    """Generate SARIF (Static Analysis Results Interchange Format) reports.

    SARIF is supported by:
    - GitHub Code Scanning
    - Azure DevOps
    - GitLab SAST
    - Many other CI/CD platforms
    """

    TOOL_NAME = "apiprobe"
    SARIF_VERSION = "2.1.0"
    SCHEMA_URI = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"

    # Severity mapping to SARIF levels
    SEVERITY_MAP = {
        "critical": "error",
        "high": "error",
        "medium": "warning",
        "low": "note",
        "info": "note",
    }

    def report(self, session: ScanSession, output_path: Optional[str] = None) -> Dict[str, Any]:
        """Generate SARIF report."""
        findings = list(session.findings)
        sarif = {
            "$schema": self.SCHEMA_URI,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": self._generate_tool_info(findings),
                    "results": [self._result(f, session.target) for f in findings],
                    "invocations": [
                        {
                            "executionSuccessful": session.status == SessionStatus.COMPLETED,
                            "startTimeUtc": _utc(session.started_at),
                            "endTimeUtc": _utc(session.completed_at or datetime.now(timezone.utc)),
                            "toolExecutionNotifications": [
                                {"level": "note", "message": {"text": note}} for note in session.notes
                            ],
                        }
                    ],
                }
            ],
        }

        if output_path:
            Path(output_path).write_text(json.dumps(sarif, indent=2), encoding="utf-8")

        return sarif

    def _generate_tool_info(self, findings: List[Finding]) -> Dict[str, Any]:
        return {
            "driver": {
                "name": self.TOOL_NAME,
                "version": __version__,
                "rules": self._generate_rules(findings),
            }
        }

    def _generate_rules(self, findings: List[Finding]) -> List[Dict[str, Any]]:
        """One rule per finding type present, described from the weakness catalogue."""
        rules = []
        for finding_type in dict.fromkeys(f.type for f in findings):
            weakness = get_weakness(finding_type)
            rule = {
                "id": rule_id(finding_type),
                "name": finding_type.title().replace(" ", "").replace("-", ""),
                "shortDescription": {"text": finding_type},
                "fullDescription": {"text": weakness.recommendation},
                "properties": {"tags": ["security", "api", weakness.weakness_id]},
            }
            if weakness.references:
                rule["helpUri"] = weakness.references[0]
            rules.append(rule)
        return rules

    def _result(self, finding: Finding, target_url: str) -> Dict[str, Any]:
        path = finding.endpoint_ref.split(" ", 1)[-1]
        return {
            "ruleId": rule_id(finding.type),
            "level": self.SEVERITY_MAP.get(finding.severity.value, "note"),
            "message": {
                "text": f"{finding.title}: {finding.description}" if finding.description else finding.title,
            },
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {
                            "uri": target_url + path,
                            "uriBaseId": "APIROOT",
                        }
                    },
                    "logicalLocations": [{"fullyQualifiedName": finding.endpoint_ref}],
                }
            ],
            # Fingerprint for deduplication
            "fingerprints": {"primary": f"{finding.type}:{finding.endpoint_ref}:{finding.title}"},
            "properties": {
                # GitHub Code Scanning uses a 0.0-10.0 scale
                "security-severity": f"{max(finding.cvss_score, 1.0):.1f}",
                "cwe": finding.weakness_id,
                "evidence": finding.evidence,
                "remediation": finding.recommendation,
            },
        }


def rule_id(finding_type: str) -> str:
    """Stable SARIF rule id for a finding type, e.g. ``missing-rate-limiting``."""
    return re.sub(r"[^a-z0-9]+", "-", finding_type.lower()).strip("-")


def _utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
