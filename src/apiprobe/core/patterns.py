"""Detection signatures for response inspection.

Signatures are data: a regex plus the weakness class and severity it
evidences. Probes ask the matcher for a category; new signatures are added
with ``PatternMatcher.register`` without touching probe logic.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern

from .models import Severity
from . import weaknesses as w


@dataclass(frozen=True)
class SignaturePattern:
    """A regex signature tied to a weakness class."""
    name: str
    category: str
    regex: Pattern
    weakness_type: str
    severity: Severity
    confidence: float = 0.9

    @classmethod
    def compile(
        cls,
        name: str,
        category: str,
        pattern: str,
        weakness_type: str,
        severity: Severity,
        confidence: float = 0.9,
        flags: int = re.I,
    ) -> "SignaturePattern":
        return cls(name, category, re.compile(pattern, flags), weakness_type, severity, confidence)


@dataclass
class DetectionResult:
    """Result of pattern detection."""
    matched: bool
    pattern_name: str
    match_text: str = ""
    confidence: float = 1.0  # 0.0 to 1.0
    signature: Optional[SignaturePattern] = None


SQL_ERROR = "sql_error"
CMD_OUTPUT = "cmd_output"
PATH_TRAVERSAL = "path_traversal"
XXE = "xxe"
XSS = "xss"
CREDENTIALS = "credentials"
PERSONAL_DATA = "personal_data"
INTERNAL_INFO = "internal_info"


def _sig(name, category, pattern, weakness_type, severity, confidence=0.9, flags=re.I):
    return SignaturePattern.compile(name, category, pattern, weakness_type, severity, confidence, flags)


_DEFAULT_SIGNATURES: List[SignaturePattern] = [
    # SQL errors by database type
    _sig("sql_error_generic", SQL_ERROR, r"SQL\s*syntax.*?error", w.SQL_INJECTION, Severity.CRITICAL, 0.8),
    _sig("sql_error_generic", SQL_ERROR, r"syntax\s+error\s+at\s+or\s+near", w.SQL_INJECTION, Severity.CRITICAL, 0.8),
    _sig("sql_error_generic", SQL_ERROR, r"unclosed\s+quotation\s+mark", w.SQL_INJECTION, Severity.CRITICAL, 0.8),
    _sig("sql_error_generic", SQL_ERROR, r"quoted\s+string\s+not\s+properly\s+terminated", w.SQL_INJECTION, Severity.CRITICAL, 0.8),
    _sig("sql_error_mysql", SQL_ERROR, r"you\s+have\s+an\s+error\s+in\s+your\s+SQL\s+syntax", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_mysql", SQL_ERROR, r"mysql_fetch|com\.mysql\.jdbc|MySqlClient", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_postgresql", SQL_ERROR, r"pg_query|pg_exec|PostgreSQL.*?ERROR|psycopg2?\.|org\.postgresql", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_postgresql", SQL_ERROR, r"SQLSTATE\[\d{5}\]", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_sqlite", SQL_ERROR, r"SQLite.*?error|SQLITE_ERROR|sqlite3\.OperationalError", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_mssql", SQL_ERROR, r"Microsoft\s+SQL\s+Server|ODBC\s+SQL\s+Server\s+Driver|System\.Data\.SqlClient", w.SQL_INJECTION, Severity.CRITICAL),
    _sig("sql_error_oracle", SQL_ERROR, r"ORA-\d{5}|oracle\.jdbc|PLS-\d{5}", w.SQL_INJECTION, Severity.CRITICAL),
    # Command execution output
    _sig("cmd_output_unix_id", CMD_OUTPUT, r"uid=\d+\([^)]+\)\s+gid=\d+", w.COMMAND_INJECTION, Severity.CRITICAL, 0.95),
    _sig("cmd_output_unix_passwd", CMD_OUTPUT, r"root:[x*]?:0:0:", w.COMMAND_INJECTION, Severity.CRITICAL, 0.95),
    _sig("cmd_output_windows", CMD_OUTPUT, r"\[extensions\]|\[fonts\]|Volume Serial Number is", w.COMMAND_INJECTION, Severity.CRITICAL, 0.8),
    # Path traversal file content
    _sig("path_traversal_passwd", PATH_TRAVERSAL, r"(?:root|nobody|daemon):[x*]?:\d+:\d+:", w.PATH_TRAVERSAL, Severity.HIGH, 0.95),
    _sig("path_traversal_boot_ini", PATH_TRAVERSAL, r"\[boot\s+loader\]|\[operating\s+systems\]", w.PATH_TRAVERSAL, Severity.HIGH, 0.95),
    _sig("path_traversal_win_ini", PATH_TRAVERSAL, r"; for 16-bit app support|\[extensions\]", w.PATH_TRAVERSAL, Severity.HIGH, 0.85),
    # XXE: resolved entity content or parser errors mentioning the entity
    _sig("xxe_file_read", XXE, r"(?:root|nobody|daemon):[x*]?:\d+:\d+:", w.XXE, Severity.CRITICAL, 0.95),
    _sig("xxe_parser_error", XXE, r"(?:external\s+entity|SYSTEM\s+identifier|failed\s+to\s+load\s+external\s+entity)", w.XXE, Severity.CRITICAL, 0.7),
    # Reflected script contexts
    _sig("xss_script_tag", XSS, r"<script[^>]*>.*?</script>", w.REFLECTED_XSS, Severity.HIGH, 0.9, re.I | re.S),
    _sig("xss_event_handler", XSS, r"<(?:img|svg|body|iframe)[^>]+on(?:error|load)\s*=", w.REFLECTED_XSS, Severity.HIGH, 0.9),
    _sig("xss_javascript_uri", XSS, r"javascript\s*:", w.REFLECTED_XSS, Severity.HIGH, 0.7),
    # Credentials and secrets
    _sig("sensitive_jwt", CREDENTIALS, r"eyJ[A-Za-z0-9_-]*\.eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.95, 0),
    _sig("sensitive_api_key", CREDENTIALS, r"\b(?:api[_-]?key|apikey|access[_-]?token|secret[_-]?key)[\"']?\s*[:=]\s*[\"']?[a-zA-Z0-9_\-]{16,}", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.85),
    _sig("sensitive_password_field", CREDENTIALS, r"\"(?:password|passwd|pwd)\"\s*:\s*\"[^\"]+\"", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.9),
    _sig("sensitive_password_hash", CREDENTIALS, r"\$(?:2[aby]?|5|6)\$[./A-Za-z0-9$]{22,}", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.95, 0),
    _sig("sensitive_private_key", CREDENTIALS, r"-----BEGIN\s+(?:RSA\s+|EC\s+)?PRIVATE\s+KEY-----", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.99),
    _sig("sensitive_aws_key", CREDENTIALS, r"(?:AKIA|ABIA|ACCA|ASIA)[A-Z0-9]{16}", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.95, 0),
    _sig("sensitive_github_token", CREDENTIALS, r"gh[pousr]_[A-Za-z0-9_]{36,}", w.CREDENTIAL_EXPOSURE, Severity.CRITICAL, 0.95, 0),
    # Personal data
    _sig("sensitive_ssn", PERSONAL_DATA, r"\b\d{3}-\d{2}-\d{4}\b", w.PERSONAL_DATA_EXPOSURE, Severity.HIGH, 0.9, 0),
    _sig("sensitive_credit_card", PERSONAL_DATA, r"\b(?:4[0-9]{12}(?:[0-9]{3})?|5[1-5][0-9]{14}|3[47][0-9]{13}|6(?:011|5[0-9]{2})[0-9]{12})\b", w.PERSONAL_DATA_EXPOSURE, Severity.HIGH, 0.95, 0),
    _sig("sensitive_iban", PERSONAL_DATA, r"\b[A-Z]{2}\d{2}[A-Z0-9]{11,30}\b", w.PERSONAL_DATA_EXPOSURE, Severity.HIGH, 0.6, 0),
    _sig("sensitive_birth_date", PERSONAL_DATA, r"\"(?:dob|date_?of_?birth|birth_?date)\"\s*:\s*\"[^\"]+\"", w.PERSONAL_DATA_EXPOSURE, Severity.HIGH, 0.8),
    # Internal / debug information
    _sig("debug_python_traceback", INTERNAL_INFO, r"Traceback \(most recent call last\)", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.95, 0),
    _sig("debug_java_stack", INTERNAL_INFO, r"(?:Exception in thread|\bat (?:java|javax|org|com)\.[\w.$]+\([\w]+\.java:\d+\))", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.9, 0),
    _sig("debug_dotnet_stack", INTERNAL_INFO, r"System\.[A-Za-z]+Exception:|   at [\w.]+\(.*\) in .*:line \d+", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.9, 0),
    _sig("debug_flag", INTERNAL_INFO, r"\"(?:debug|stack_?trace|stacktrace)\"\s*:\s*(?:true|\"[^\"]{8,}\"|\[)", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.8),
    _sig("internal_ip", INTERNAL_INFO, r"\b(?:10\.\d{1,3}|192\.168|172\.(?:1[6-9]|2\d|3[01]))\.\d{1,3}\.\d{1,3}\b", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.7, 0),
    _sig("internal_path", INTERNAL_INFO, r"(?:/var/www/|/home/\w+/|/usr/src/app/|[A-Z]:\\(?:inetpub|Users)\\)", w.DEBUG_INFO_EXPOSURE, Severity.MEDIUM, 0.7),
]


class PatternMatcher:
    """Registry of detection signatures grouped by category."""

    def __init__(self, signatures: Optional[List[SignaturePattern]] = None):
        self._signatures: Dict[str, List[SignaturePattern]] = {}
        for signature in signatures if signatures is not None else _DEFAULT_SIGNATURES:
            self.register(signature)

    def register(self, signature: SignaturePattern) -> None:
        self._signatures.setdefault(signature.category, []).append(signature)

    def categories(self) -> List[str]:
        return list(self._signatures)

    def signatures(self, category: str) -> List[SignaturePattern]:
        return list(self._signatures.get(category, []))

    def match(self, category: str, text: str) -> DetectionResult:
        """First signature of the category found in text."""
        for signature in self._signatures.get(category, []):
            found = signature.regex.search(text)
            if found:
                return DetectionResult(
                    matched=True,
                    pattern_name=signature.name,
                    match_text=found.group(0)[:100],
                    confidence=signature.confidence,
                    signature=signature,
                )
        return DetectionResult(matched=False, pattern_name=category)

    def match_all(self, category: str, text: str) -> List[DetectionResult]:
        """Every signature of the category found in text."""
        results = []
        for signature in self._signatures.get(category, []):
            found = signature.regex.search(text)
            if found:
                results.append(DetectionResult(
                    matched=True,
                    pattern_name=signature.name,
                    match_text=found.group(0)[:50],  # Truncate for safety
                    confidence=signature.confidence,
                    signature=signature,
                ))
        return results

    def detect_xss_reflection(self, text: str, payload: str) -> DetectionResult:
        """Payload reflected verbatim in a dangerous context."""
        if payload and payload in text:
            for signature in self._signatures.get(XSS, []):
                found = signature.regex.search(text)
                if found:
                    return DetectionResult(
                        matched=True,
                        pattern_name=signature.name,
                        match_text=payload,
                        confidence=signature.confidence,
                        signature=signature,
                    )
        return DetectionResult(matched=False, pattern_name="xss_reflection")


default_matcher = PatternMatcher()


# Convenience functions
def detect_sql_error(text: str) -> DetectionResult:
    """Detect SQL error in text."""
    return default_matcher.match(SQL_ERROR, text)


def detect_cmd_output(text: str) -> DetectionResult:
    """Detect command output in text."""
    return default_matcher.match(CMD_OUTPUT, text)


def detect_sensitive_data(text: str) -> List[DetectionResult]:
    """Detect credential, personal and internal data patterns."""
    results = []
    for category in (CREDENTIALS, PERSONAL_DATA, INTERNAL_INFO):
        results.extend(default_matcher.match_all(category, text))
    return results
