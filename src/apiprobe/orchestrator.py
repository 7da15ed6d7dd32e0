"""Scan orchestration: discovery, bounded-concurrency probing, aggregation."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from apiprobe.adapters import adapter_for
from apiprobe.core.context import ScanContext
from apiprobe.core.errors import AggregationError
from apiprobe.core.logging import get_logger
from apiprobe.core.models import Endpoint, Protocol
from apiprobe.core.payloads import PayloadManager
from apiprobe.core.session import ScanSession, SessionStatus
from apiprobe.credentials import CredentialProvider
from apiprobe.discovery import DiscoveryResult, discoverer_for, merge_endpoints
from apiprobe.probes import Probe, ProbeScope, default_probes
from apiprobe.risk import RiskAggregator, RiskSummary
from apiprobe.transport import TransportClient

logger = get_logger("orchestrator")

PROTOCOL_ORDER = [Protocol.REST, Protocol.GRAPHQL, Protocol.SOAP]

# (completed, total, description)
ProgressCallback = Callable[[int, int, str], None]


@dataclass
class ScanOutcome:
    """Finalized session and its risk summary (None when aggregation failed)."""
    session: ScanSession
    summary: Optional[RiskSummary]


class ScanOrchestrator:
    """Owns one ScanSession from discovery to the final risk summary.

    Discovery runs per protocol concurrently. Once the endpoint set is
    closed, a fixed pool of ``context.concurrency`` workers drains a queue
    of (probe, endpoint) pairs. The session deadline cancels the shared
    token; in-flight requests abort and collected results are kept.
    """

    def __init__(
        self,
        context: ScanContext,
        transport: Optional[TransportClient] = None,
        probes: Optional[list[Probe]] = None,
        credential_provider: Optional[CredentialProvider] = None,
        aggregator: Optional[RiskAggregator] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.context = context
        self._owns_transport = transport is None
        self.transport = transport or TransportClient(
            cancel_token=context.cancel_token,
            timeout=context.request_timeout,
            verify=context.verify_ssl,
        )
        if probes is None:
            payloads = PayloadManager(context.payload_file, overrides=context.payload_lists)
            probes = default_probes(payloads=payloads)
        self.probes = probes
        self.credential_provider = credential_provider
        self.aggregator = aggregator or RiskAggregator()
        self.on_progress = on_progress
        self._deadline_hit = False

    def cancel(self, reason: str = "cancelled by operator") -> None:
        self.context.cancel_token.cancel(reason)

    def _expire(self) -> None:
        if not self.context.cancelled:
            self._deadline_hit = True
            logger.warning(f"Session deadline of {self.context.session_timeout}s elapsed, cancelling")
            self.context.cancel_token.cancel("session deadline elapsed")

    async def run(self) -> ScanOutcome:
        session = ScanSession(target=self.context.target_base_url)
        loop = asyncio.get_running_loop()
        deadline = loop.call_later(self.context.session_timeout, self._expire)
        logger.info(f"Starting scan of {self.context.target_base_url}")

        try:
            if self.credential_provider is not None:
                credentials = await self.credential_provider.credentials(self.context)
                self.context = self.context.with_credentials(credentials)

            await self._discover(session)
            session.close_endpoints()
            logger.info(f"Discovery complete: {len(session.endpoints)} endpoints")

            if not self.context.cancelled:
                await self._probe(session)
        finally:
            deadline.cancel()
            if self._owns_transport:
                await self.transport.aclose()

        return self._finalize(session)

    # -- discovery ---------------------------------------------------------

    async def _discover(self, session: ScanSession) -> None:
        protocols = [p for p in PROTOCOL_ORDER if p in self.context.protocols]
        results = await asyncio.gather(*(self._run_discoverer(p) for p in protocols))

        session.add_endpoints(merge_endpoints(results))
        for result in results:
            for note in result.notes:
                session.add_note(f"[{result.protocol.value}] {note}")
            for finding in result.findings:
                session.record_finding(finding)

    async def _run_discoverer(self, protocol: Protocol) -> DiscoveryResult:
        """Discovery for one protocol; failures never reach sibling protocols."""
        discoverer = discoverer_for(protocol, self.transport, self.context)
        try:
            return await discoverer.discover()
        except Exception as e:
            logger.warning(f"{discoverer.name} failed: {e!r}")
            result = DiscoveryResult(protocol=protocol)
            result.add_note(f"Discovery aborted: {e}")
            return result

    # -- probing -----------------------------------------------------------

    @staticmethod
    def representatives(endpoints: tuple[Endpoint, ...]) -> dict[Protocol, Endpoint]:
        """The endpoint each protocol's service-scope probes run against."""
        chosen: dict[Protocol, Endpoint] = {}
        for protocol in PROTOCOL_ORDER:
            candidates = [e for e in endpoints if e.protocol == protocol]
            if not candidates:
                continue
            if protocol == Protocol.REST:
                candidates.sort(key=lambda e: (e.method != "GET", "{" in e.path, len(e.path)))
            else:
                candidates.sort(key=lambda e: not e.is_service)
            chosen[protocol] = candidates[0]
        return chosen

    def work_items(self, session: ScanSession) -> list[tuple[Probe, Endpoint]]:
        services = self.representatives(session.endpoints)
        items = []
        for probe in self.probes:
            targets = services.values() if probe.scope == ProbeScope.SERVICE else session.endpoints
            for endpoint in targets:
                if probe.applies_to(endpoint, self.context):
                    items.append((probe, endpoint))
        return items

    async def _probe(self, session: ScanSession) -> None:
        items = self.work_items(session)
        if not items:
            return

        queue: asyncio.Queue = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        adapters = {p: adapter_for(p, self.transport, self.context) for p in Protocol}
        progress = {"done": 0, "total": len(items)}
        workers = [
            asyncio.create_task(self._worker(queue, session, adapters, progress))
            for _ in range(min(self.context.concurrency, len(items)))
        ]

        drained = asyncio.ensure_future(queue.join())
        cancelled = asyncio.ensure_future(self.context.cancel_token.wait())
        try:
            await asyncio.wait({drained, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            drained.cancel()
            cancelled.cancel()
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        skipped = progress["total"] - progress["done"]
        if skipped:
            session.add_note(f"{skipped} of {progress['total']} probe runs did not complete")

    async def _worker(self, queue: asyncio.Queue, session: ScanSession, adapters: dict, progress: dict) -> None:
        while True:
            probe, endpoint = await queue.get()
            try:
                if self.context.cancelled:
                    continue
                outcome = await probe.execute(endpoint, self.context, adapters[endpoint.protocol])
                await session.add_findings(outcome.findings)
                if outcome.inconclusive is not None:
                    await session.add_inconclusive(outcome.inconclusive)
                progress["done"] += 1
                if self.on_progress:
                    self.on_progress(progress["done"], progress["total"], f"{probe.name} {endpoint.display}")
            finally:
                queue.task_done()

    # -- finalization ------------------------------------------------------

    def _finalize(self, session: ScanSession) -> ScanOutcome:
        if self._deadline_hit:
            status = SessionStatus.TRUNCATED
            session.add_note(f"Scan truncated: session deadline of {self.context.session_timeout}s elapsed; "
                             "partial results reported")
        elif self.context.cancelled:
            status = SessionStatus.CANCELLED
            session.add_note(f"Scan cancelled: {self.context.cancel_token.reason}")
        else:
            status = SessionStatus.COMPLETED

        summary = None
        try:
            summary = self.aggregator.aggregate(session.endpoints, session.findings)
            session.overall_risk = summary.overall_risk
        except AggregationError as e:
            logger.error(f"Risk aggregation failed: {e}")
            session.add_note(f"Risk aggregation failed: {e}")
            status = SessionStatus.INCOMPLETE

        session.finalize(status)
        logger.info(f"Scan {status.value}: {len(session.findings)} findings, risk {session.overall_risk}")
        return ScanOutcome(session=session, summary=summary)


async def run_scan(context: ScanContext, **kwargs) -> ScanOutcome:
    """Convenience wrapper: build an orchestrator and run it."""
    return await ScanOrchestrator(context, **kwargs).run()
