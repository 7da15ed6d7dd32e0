"""JSON reporter."""

import json
from pathlib import Path
from typing import Optional

from apiprobe import __version__
from apiprobe.core.models import Severity
from apiprobe.core.session import ScanSession
from apiprobe.risk import RiskSummary


class JSONReporter:
    """JSON output for a scan session: the stable report contract."""

    def report(self, session: ScanSession, summary: Optional[RiskSummary], output_path: Optional[str] = None) -> dict:
        """Generate JSON report."""
        report = {
            "target": session.target,
            "timestamp": (session.completed_at or session.started_at).isoformat(),
            "startedAt": session.started_at.isoformat(),
            "completedAt": session.completed_at.isoformat() if session.completed_at else None,
            "status": session.status.value,
            "truncated": session.truncated,
            "tool": {"name": "apiprobe", "version": __version__},
            "endpoints": [e.to_dict() for e in session.endpoints],
            "findings": [f.to_dict() for f in self._sorted(session.findings)],
            "inconclusive": [i.to_dict() for i in session.inconclusive],
            "notes": list(session.notes),
            "summary": summary.to_dict() if summary else self._fallback_summary(session),
        }

        if output_path:
            Path(output_path).write_text(json.dumps(report, indent=2), encoding="utf-8")

        return report

    @staticmethod
    def _sorted(findings):
        return sorted(findings, key=lambda f: (-f.severity.rank, f.endpoint_ref, f.type))

    def _fallback_summary(self, session: ScanSession) -> dict:
        """Counts only, for sessions whose aggregation failed."""
        by_severity = {s.value.upper(): 0 for s in sorted(Severity, key=lambda s: -s.rank)}
        for finding in session.findings:
            by_severity[finding.severity.value.upper()] += 1
        return {
            "totalEndpoints": len(session.endpoints),
            "vulnerableEndpoints": len({f.endpoint_ref for f in session.findings}),
            "bySeverity": by_severity,
            "overallRisk": session.overall_risk,
            "recommendations": [],
            "endpointScores": {},
        }
