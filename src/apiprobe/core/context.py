"""Scan configuration and session-wide signals."""

import asyncio
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

import yaml

from .errors import ConfigError
from .models import Protocol


class CredentialTier(Enum):
    ANONYMOUS = "anonymous"
    NORMAL = "normal"
    ELEVATED = "elevated"


@dataclass(frozen=True)
class Credentials:
    """Tokens for each privilege tier. Anonymous carries no token."""
    normal: Optional[str] = None
    elevated: Optional[str] = None
    anonymous: Optional[str] = None
    auth_header: str = "Authorization"
    auth_prefix: str = "Bearer"

    def token_for(self, tier: CredentialTier) -> Optional[str]:
        return getattr(self, tier.value)

    def headers_for(self, tier: CredentialTier) -> dict[str, str]:
        """Authorization header for a tier, empty when no token is set."""
        token = self.token_for(tier)
        if not token:
            return {}
        value = f"{self.auth_prefix} {token}" if self.auth_prefix else token
        return {self.auth_header: value}


class CancellationToken:
    """Cooperative cancellation signal shared by every in-flight request."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


DEFAULT_WSDL_PATHS = ["/ws?wsdl", "/soap?wsdl", "/service?wsdl", "/services?wsdl", "/ws/service.wsdl", "/wsdl"]


@dataclass(frozen=True)
class ScanContext:
    """Scan target configuration, read-only for the session."""
    target_base_url: str
    protocols: frozenset = frozenset({Protocol.REST, Protocol.GRAPHQL, Protocol.SOAP})
    credentials: Credentials = field(default_factory=Credentials)
    concurrency: int = 4
    session_timeout: float = 300.0
    request_timeout: float = 10.0
    payload_lists: dict = field(default_factory=dict, hash=False)
    payload_file: Optional[str] = None
    rate_limit_burst_size: int = 20
    timing_threshold_ms: float = 4500.0
    baseline_samples: int = 3
    max_fuzz_requests: int = 120

    graphql_path: str = "/graphql"
    wsdl_paths: tuple = tuple(DEFAULT_WSDL_PATHS)
    openapi_document: Optional[str] = None

    # Paths declared public are exempt from the missing-authentication check
    public_paths: tuple = ()
    # Identifiers owned by another principal, used for horizontal escalation
    foreign_identifiers: tuple = ("1", "2", "1001")
    own_identifier: Optional[str] = None

    extra_headers: dict = field(default_factory=dict, hash=False)
    verify_ssl: bool = True
    cancel_token: CancellationToken = field(default_factory=CancellationToken, compare=False, hash=False)

    def __post_init__(self):
        parsed = urlparse(self.target_base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Invalid target URL: {self.target_base_url!r}")
        object.__setattr__(self, "target_base_url", self.target_base_url.rstrip("/"))
        object.__setattr__(self, "protocols", frozenset(_coerce_protocol(p) for p in self.protocols))
        if not self.protocols:
            raise ConfigError("At least one protocol must be scanned")
        for name in ("concurrency", "session_timeout", "request_timeout", "rate_limit_burst_size",
                     "timing_threshold_ms", "baseline_samples"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        object.__setattr__(self, "wsdl_paths", tuple(self.wsdl_paths))
        object.__setattr__(self, "public_paths", tuple(self.public_paths))
        object.__setattr__(self, "foreign_identifiers", tuple(str(i) for i in self.foreign_identifiers))

    @property
    def is_encrypted(self) -> bool:
        return self.target_base_url.startswith("https://")

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.target_base_url}{path}"

    def headers_for(self, tier: CredentialTier) -> dict[str, str]:
        headers = dict(self.extra_headers)
        headers.update(self.credentials.headers_for(tier))
        return headers

    def has_tier(self, tier: CredentialTier) -> bool:
        return tier == CredentialTier.ANONYMOUS or bool(self.credentials.token_for(tier))

    def with_credentials(self, credentials: Credentials) -> "ScanContext":
        """Copy of this context with other credentials, sharing the cancel token."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["credentials"] = credentials
        return ScanContext(**values)

    @classmethod
    def from_dict(cls, data: dict) -> "ScanContext":
        """Create a context from a configuration mapping."""
        data = dict(data)
        known = {f.name for f in fields(cls)} - {"cancel_token"}
        if "target" in data and "target_base_url" not in data:
            data["target_base_url"] = data.pop("target")
        creds = data.pop("credentials", None) or {}
        if not isinstance(creds, dict):
            raise ConfigError("credentials must be a mapping")
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if "target_base_url" not in data:
            raise ConfigError("target_base_url is required")
        for key in ("protocols", "wsdl_paths", "public_paths", "foreign_identifiers"):
            if key in data and data[key] is not None:
                data[key] = tuple(data[key]) if key != "protocols" else frozenset(data[key])
        try:
            return cls(credentials=Credentials(**creds), **data)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "ScanContext":
        """Load a context from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a mapping")
        return cls.from_dict(data)


def _coerce_protocol(value) -> Protocol:
    if isinstance(value, Protocol):
        return value
    try:
        return Protocol(str(value).lower())
    except ValueError:
        raise ConfigError(f"Unknown protocol: {value!r}") from None
