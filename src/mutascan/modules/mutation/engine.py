"""Mutation engine: baseline, injection requests, detection and classification."""

from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING

from mutascan.config import ScanConfig
from mutascan.errors import NetworkError
from mutascan.modules.classifier import FINDING, SAFE, SUPPRESSED, ResponseClassifier
from mutascan.modules.events import EventBus
from mutascan.modules.models import DiscoveredURL, Finding, InjectionAttempt
from mutascan.modules.workers import CancelToken, ThrottleController, WorkerPool
from mutascan.tools.http import HTTPClient

from .catalog import PayloadArena, load_catalog
from .detector import Baseline, detect
from .injection import plan_attempts
from .transforms import mutate_arena

if TYPE_CHECKING:
    from mutascan.modules.coordinator.state import ScanStats

# Slack on top of the request timeout before the pool abandons a unit.
POOL_TIMEOUT_SLACK = 1.0


def build_payload_arena(config: ScanConfig) -> PayloadArena:
    """Catalog payloads plus their deterministic mutations."""
    arena = PayloadArena()
    for category, template in load_catalog(config.payloads, config.replace_payloads):
        arena.add(category, template)
    return mutate_arena(arena, advanced=config.advanced, seed=config.mutation_seed)


class MutationEngine:
    """Test discovered URLs against the payload arena through the worker pool."""

    def __init__(
        self,
        config: ScanConfig,
        arena: PayloadArena,
        pool: WorkerPool,
        client: HTTPClient | None,
        classifier: ResponseClassifier,
        bus: EventBus,
        stats: "ScanStats",
        cancel: CancelToken,
        on_finding: Callable[[Finding], None],
        throttle: ThrottleController | None = None,
    ):
        self.config = config
        self.arena = arena
        self.pool = pool
        self.client = client
        self.classifier = classifier
        self.bus = bus
        self.stats = stats
        self.cancel = cancel
        self.on_finding = on_finding
        self.throttle = throttle or ThrottleController()
        self._planned: set[tuple[str, str, str | None, str | None]] = set()
        self.attempts_planned = 0

    async def scan(self, urls: list[DiscoveredURL]) -> int:
        """Send every attempt for ``urls``. Returns how many were dispatched (or planned)."""
        if self.config.dry_run:
            return self._dry_run(urls)
        if self.client is None:
            raise RuntimeError("MutationEngine needs an HTTP client outside dry-run mode")

        baselines: dict[str, Baseline] = {}
        for discovered in urls:
            await self.pool.submit(
                partial(self._baseline, discovered, baselines),
                label=f"baseline {discovered.url}",
                timeout=self.config.timeout + POOL_TIMEOUT_SLACK,
            )
        await self.pool.join()

        dispatched = 0
        for discovered in urls:
            for attempt in plan_attempts(discovered, self.arena, self.config, self._planned):
                queued = await self.pool.submit(
                    partial(self._send_attempt, attempt, baselines.get(discovered.url)),
                    label=f"{attempt.method} {attempt.url}",
                    timeout=attempt.timeout + POOL_TIMEOUT_SLACK,
                )
                if not queued:
                    break
                dispatched += 1
            if self.cancel.cancelled:
                break
        await self.pool.join()
        self.attempts_planned += dispatched
        return dispatched

    def _dry_run(self, urls: list[DiscoveredURL]) -> int:
        total = 0
        for discovered in urls:
            attempts = list(plan_attempts(discovered, self.arena, self.config, self._planned))
            total += len(attempts)
            self.bus.log(
                "info", f"[DRY RUN] {len(attempts)} injection attempts for {discovered.url}"
            )
            for attempt in attempts:
                self.bus.debug(f"[DRY RUN] {self.describe(attempt)}")
        self.attempts_planned += total
        return total

    def describe(self, attempt: InjectionAttempt) -> str:
        lineage_items = self.arena.lineage(attempt.payload.id)
        steps = [item.transform for item in lineage_items if item.transform]
        lineage = " > ".join(steps) if steps else "base"
        return (
            f"{attempt.method} {attempt.url} [{attempt.point.kind}: {attempt.point.name}] "
            f"{attempt.payload.category} ({lineage})"
        )

    async def _baseline(self, discovered: DiscoveredURL, baselines: dict[str, Baseline]) -> None:
        assert self.client is not None
        await self.throttle.wait()
        try:
            response = await self.client.request(
                "GET",
                discovered.url,
                headers=self.config.parsed_headers(),
                timeout=self.config.timeout,
            )
        except NetworkError as exc:
            self.stats.increment("errors")
            self.bus.debug(f"Baseline failed: {exc}")
            return
        self.stats.increment("requests")
        self.throttle.record_response(response.status_code)
        baselines[discovered.url] = Baseline.from_response(response)

    async def _send_attempt(self, attempt: InjectionAttempt, baseline: Baseline | None) -> None:
        assert self.client is not None
        await self.throttle.wait()
        if self.cancel.cancelled:
            return
        try:
            response = await self.client.request(
                attempt.method,
                attempt.url,
                headers=dict(attempt.headers),
                content=attempt.body,
                timeout=attempt.timeout,
            )
        except NetworkError as exc:
            self.stats.increment("errors")
            self.bus.debug(f"Injection request failed: {exc}")
            return
        self.stats.increment("requests")
        if self.throttle.record_response(response.status_code):
            self.bus.debug(
                f"Target returned {response.status_code}; backing off {self.throttle.delay_ms} ms"
            )
        # Responses that arrive after stop() never become findings.
        if self.cancel.cancelled:
            return

        detection = detect(attempt, response, baseline, self.config)
        verdict = self.classifier.classify(
            attempt, response, detection, self.arena.root_of(attempt.payload.id)
        )
        if verdict.outcome == SAFE:
            self.stats.increment("safe")
        elif verdict.outcome == SUPPRESSED:
            self.stats.increment("suppressed")
            self.bus.debug(f"Suppressed {attempt.url}: {verdict.reason}")
        elif verdict.outcome == FINDING and verdict.finding is not None:
            if self.cancel.cancelled:
                return
            self.on_finding(verdict.finding)
