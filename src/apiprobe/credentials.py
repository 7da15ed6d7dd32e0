"""Credential providers supplying privilege-tier tokens."""

import json
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode

from apiprobe.core.context import Credentials, ScanContext
from apiprobe.core.logging import get_logger
from apiprobe.transport import TransportClient

logger = get_logger("credentials")


class CredentialProvider(ABC):
    """Supplies the anonymous / normal / elevated credential material."""

    @abstractmethod
    async def credentials(self, context: ScanContext) -> Credentials:
        pass


class StaticCredentialProvider(CredentialProvider):
    """Tokens taken as-is from configuration."""

    def __init__(self, credentials: Optional[Credentials] = None):
        self._credentials = credentials

    async def credentials(self, context: ScanContext) -> Credentials:
        return self._credentials or context.credentials


class LoginCredentialProvider(CredentialProvider):
    """Obtains tokens by logging in with username/password pairs.

    Tries a JSON body first (Express, Go, PHP, Java), then form data
    (FastAPI OAuth2). Tiers whose login fails keep their configured token.
    """

    def __init__(
        self,
        transport: TransportClient,
        login_path: str = "/api/login",
        normal: Optional[tuple[str, str]] = None,
        elevated: Optional[tuple[str, str]] = None,
        token_field: str = "access_token",
    ):
        self.transport = transport
        self.login_path = login_path
        self.normal = normal
        self.elevated = elevated
        self.token_field = token_field

    async def credentials(self, context: ScanContext) -> Credentials:
        base = context.credentials
        normal = await self._login(context, self.normal) if self.normal else None
        elevated = await self._login(context, self.elevated) if self.elevated else None
        return Credentials(
            normal=normal or base.normal,
            elevated=elevated or base.elevated,
            anonymous=base.anonymous,
            auth_header=base.auth_header,
            auth_prefix=base.auth_prefix,
        )

    async def _login(self, context: ScanContext, pair: tuple[str, str]) -> Optional[str]:
        username, password = pair
        url = context.url_for(self.login_path)
        attempts = [
            ("application/json", json.dumps({"username": username, "password": password})),
            ("application/x-www-form-urlencoded", urlencode({"username": username, "password": password})),
        ]
        for content_type, body in attempts:
            result = await self.transport.send("POST", url, headers={"Content-Type": content_type}, body=body)
            if not result.is_success:
                continue
            data = result.json()
            if isinstance(data, dict) and data.get(self.token_field):
                return str(data[self.token_field])
        logger.warning(f"Login failed for user {username} at {self.login_path}")
        return None
