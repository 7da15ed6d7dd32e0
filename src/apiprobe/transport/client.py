"""Async HTTP transport client."""

import asyncio
import time
from typing import Awaitable, Optional, Union

import httpx

from apiprobe.core.context import CancellationToken
from apiprobe.core.errors import ScanCancelled, TransportError
from apiprobe.core.logging import get_logger
from apiprobe.core.models import ProbeResult

logger = get_logger("transport")

Body = Union[str, bytes, None]

# Bodies beyond this are truncated; signatures only need the head of a response
MAX_BODY_CHARS = 2_000_000


class TransportClient:
    """Issues one HTTP request per call and never raises for HTTP errors.

    4xx/5xx are ordinary results. DNS failures, refused connections,
    timeouts and cancellation come back as ``ProbeResult.error``. No
    retries: repeating a request is a probe-level decision.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: float = 10.0,
        verify: bool = True,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, verify=verify, follow_redirects=False)
        self.cancel_token = cancel_token
        self.timeout = timeout

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: Body = None,
        timeout: Optional[float] = None,
    ) -> ProbeResult:
        """Send a request and return its outcome with elapsed wall-clock time."""
        result = ProbeResult(method=method.upper(), url=url)
        if self.cancel_token is not None and self.cancel_token.cancelled:
            result.error = ScanCancelled(self.cancel_token.reason or "scan cancelled")
            return result

        start = time.perf_counter()
        try:
            response = await self._with_cancellation(self.client.request(
                method.upper(),
                url,
                headers=headers,
                content=body,
                timeout=timeout or self.timeout,
            ))
            result.status_code = response.status_code
            result.headers = response.headers
            result.body = response.text[:MAX_BODY_CHARS]
        except ScanCancelled as e:
            result.error = e
        except httpx.TimeoutException as e:
            result.error = TransportError(f"Timeout after {timeout or self.timeout}s: {e!r}", kind="timeout")
        except httpx.RequestError as e:
            result.error = TransportError(f"Request failed: {e!r}", kind="network")
        finally:
            result.elapsed_ms = round((time.perf_counter() - start) * 1000, 3)

        if result.error is not None:
            logger.debug(f"{method.upper()} {url} -> {result.error} ({result.elapsed_ms:.0f} ms)")
        else:
            logger.debug(f"{method.upper()} {url} -> {result.status_code} ({result.elapsed_ms:.0f} ms)")
        return result

    async def _with_cancellation(self, request: Awaitable[httpx.Response]) -> httpx.Response:
        """Race the request against the session's cancellation signal."""
        if self.cancel_token is None:
            return await request

        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(self.cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            request_task.cancel()
            cancel_task.cancel()
            raise

        if request_task in done:
            cancel_task.cancel()
            return request_task.result()

        request_task.cancel()
        try:
            await request_task
        except (asyncio.CancelledError, httpx.HTTPError):
            pass
        raise ScanCancelled(self.cancel_token.reason or "scan cancelled")
