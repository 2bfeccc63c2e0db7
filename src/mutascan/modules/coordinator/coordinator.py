"""Scan coordinator: owns the lifecycle of one scan at a time."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from mutascan.config import ScanConfig
from mutascan.errors import ConfigError, ScanInProgressError
from mutascan.modules.classifier import ResponseClassifier
from mutascan.modules.events import SCAN_COMPLETE, SCAN_FINDING, EventBus
from mutascan.modules.models import DiscoveredURL, Finding, Target
from mutascan.modules.mutation.catalog import PayloadArena
from mutascan.modules.mutation.engine import (
    POOL_TIMEOUT_SLACK,
    MutationEngine,
    build_payload_arena,
)
from mutascan.modules.targets import build_targets, resolve_targets
from mutascan.modules.webscan import KatanaCrawler, NucleiScanner
from mutascan.modules.workers import (
    CancelToken,
    ThrottleController,
    TokenBucket,
    WorkerPool,
    split_rate,
)
from mutascan.tools.http import HTTPClient

from .checkpoint import ScanCheckpoint
from .output import build_document, write_json_atomic
from .state import ScanState, ScanStats, StatsSnapshot, check_transition

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ScanConfig], HTTPClient]


def default_client_factory(config: ScanConfig) -> HTTPClient:
    return HTTPClient(timeout=config.timeout, proxy=config.proxy)


@dataclass
class ScanReport:
    """Outcome of a finished scan."""

    state: ScanState
    stats: StatsSnapshot
    targets: list[Target] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    output_path: Path | None = None
    error: str | None = None


class ScanCoordinator:
    """Drive crawl, template scan and mutation testing for every target.

    Targets run one after another. Within a target the template scan and the
    mutation engine run concurrently over the crawled URL set. All progress
    is published on :attr:`bus`; exactly one ``scan-complete`` event ends a
    scan that reached RUNNING.
    """

    def __init__(
        self,
        bus: EventBus | None = None,
        crawler: KatanaCrawler | None = None,
        scanner: NucleiScanner | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.bus = bus or EventBus()
        self.crawler = crawler or KatanaCrawler(report=self.bus.log)
        self.scanner = scanner or NucleiScanner(report=self.bus.log)
        self.client_factory = client_factory or default_client_factory
        self._state = ScanState.IDLE
        self.stats = ScanStats()
        self.findings: list[Finding] = []
        self.classifier = ResponseClassifier()
        self._cancel = CancelToken()
        self._task: asyncio.Task | None = None
        self._started_at: datetime | None = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == ScanState.RUNNING

    def _transition(self, new: ScanState) -> None:
        check_transition(self._state, new)
        logger.debug("Scan state %s -> %s", self._state.value, new.value)
        self._state = new

    async def start(self, config: ScanConfig) -> None:
        """Resolve targets and launch the pipeline in the background.

        With ``config.resume`` the settings, pending targets and findings come
        from the checkpoint at ``config.state_file`` instead.

        Raises :class:`ScanInProgressError` while a scan runs, and
        :class:`ConfigError` when the scan cannot be set up; in the latter
        case the state ends in ERROR and no ``scan-complete`` is emitted.
        """
        if self.running:
            raise ScanInProgressError()

        self._state = ScanState.IDLE
        self._cancel = CancelToken()
        self._cancel.bind()
        self.stats = ScanStats()
        self.findings = []
        self.bus.verbose = config.verbose
        checkpoint: ScanCheckpoint | None = None

        try:
            config.validate()
            if config.resume:
                checkpoint = ScanCheckpoint.load(config.state_file)
                if not checkpoint.pending:
                    raise ConfigError("State file has no pending targets; nothing to resume.")
                config = checkpoint.restore_config(config)
                targets = build_targets(
                    checkpoint.completed + checkpoint.pending, config.state_file
                )
            else:
                targets = resolve_targets(
                    config.target,
                    config.list_file,
                    warn=lambda message: self.bus.log("warn", f"[!] {message}"),
                )
            arena = build_payload_arena(config)
        except ConfigError as exc:
            self._transition(ScanState.ERROR)
            logger.error("Scan setup failed: %s", exc)
            self.bus.log("error", f"[!] {exc}")
            raise

        self.classifier = ResponseClassifier(noise_threshold=config.noise_threshold)
        self.stats.reset()
        if checkpoint is None:
            todo = targets
            if not config.dry_run:
                checkpoint = ScanCheckpoint.begin(config, [target.url for target in targets])
        else:
            done = set(checkpoint.completed)
            todo = [target for target in targets if target.url not in done]
            restored = checkpoint.restore_findings()
            for finding in restored:
                if self.classifier.admit(finding):
                    self.stats.increment(
                        "critical" if finding.severity == "critical" else "medium"
                    )
                    self.findings.append(finding)
            self.stats.increment("targets", len(targets) - len(todo))
            self.bus.log(
                "success",
                f"[+] Resuming scan with {len(todo)} pending target(s), "
                f"{len(restored)} prior finding(s)",
            )

        self._started_at = datetime.now(UTC)
        self._transition(ScanState.RUNNING)
        self.bus.log(
            "phase",
            f"[*] Scan started: {len(todo)} target(s), mode {config.mode}, "
            f"{len(arena)} payloads",
        )
        self._task = asyncio.create_task(
            self._pipeline(config, targets, todo, arena, checkpoint), name="scan"
        )

    async def wait(self) -> ScanReport:
        if self._task is None:
            raise RuntimeError("no scan has been started")
        return await self._task

    async def run(self, config: ScanConfig) -> ScanReport:
        await self.start(config)
        return await self.wait()

    def stop(self) -> bool:
        """Request cancellation. Safe from any thread; repeated calls are no-ops."""
        if not self.running:
            return False
        return self._cancel.cancel()

    def _record(self, finding: Finding) -> None:
        self.stats.increment("critical" if finding.severity == "critical" else "medium")
        self.findings.append(finding)
        self.bus.emit(SCAN_FINDING, finding.to_event())
        self.bus.log("success", f"[+] {finding.vuln_type} @ {finding.url}")

    def _save_checkpoint(self, config: ScanConfig, checkpoint: ScanCheckpoint | None) -> None:
        if checkpoint is None:
            return
        try:
            checkpoint.save(config.state_file)
        except OSError as exc:
            logger.error("Could not write %s: %s", config.state_file, exc)
            self.bus.log("error", f"[!] Could not save progress to {config.state_file}: {exc}")

    async def _pipeline(
        self,
        config: ScanConfig,
        targets: list[Target],
        todo: list[Target],
        arena: PayloadArena,
        checkpoint: ScanCheckpoint | None = None,
    ) -> ScanReport:
        final = ScanState.FINISHED
        error: str | None = None
        interrupted = False
        self._save_checkpoint(config, checkpoint)
        try:
            async with contextlib.AsyncExitStack() as stack:
                client = None
                if not config.dry_run:
                    client = await stack.enter_async_context(self.client_factory(config))
                limiter = TokenBucket(config.rate_limit)
                pool = await stack.enter_async_context(
                    WorkerPool(
                        config.threads,
                        self._cancel,
                        limiter,
                        timeout=config.timeout + POOL_TIMEOUT_SLACK,
                    )
                )
                engine = MutationEngine(
                    config=config,
                    arena=arena,
                    pool=pool,
                    client=client,
                    classifier=self.classifier,
                    bus=self.bus,
                    stats=self.stats,
                    cancel=self._cancel,
                    on_finding=self._record,
                    throttle=ThrottleController(),
                )
                for target in todo:
                    if self._cancel.cancelled:
                        break
                    await self._scan_target(target, len(targets), config, engine, limiter)
                    # A target cut short by a stop is scanned again on resume.
                    if self._cancel.cancelled:
                        break
                    self.stats.increment("targets")
                    if checkpoint is not None:
                        checkpoint.mark_done(target.url, self.findings)
                        self._save_checkpoint(config, checkpoint)
        except asyncio.CancelledError:
            self._cancel.cancel()
            interrupted = True
        except Exception as exc:
            logger.exception("Scan aborted")
            final = ScanState.ERROR
            error = str(exc) or exc.__class__.__name__
            self.bus.log("error", f"[!] Scan aborted: {error}")

        if final != ScanState.ERROR and self._cancel.cancelled:
            final = ScanState.CANCELLED
            self.bus.log("warn", "[!] Scan stopped; keeping results gathered so far")
        report = self._finish(config, targets, final, error, checkpoint)
        if interrupted:
            raise asyncio.CancelledError()
        return report

    async def _scan_target(
        self,
        target: Target,
        total: int,
        config: ScanConfig,
        engine: MutationEngine,
        limiter: TokenBucket | None = None,
    ) -> None:
        self.bus.log("phase", f"[*] Target {target.index + 1}/{total}: {target.url}")
        if config.dry_run:
            self.bus.log("info", f"[DRY RUN] Would scan target: {target.url}")
            if config.enable_crawler:
                self.bus.log(
                    "info",
                    f"[DRY RUN] Would crawl {target.url} to depth {config.crawler_depth}",
                )
            if config.enable_nuclei:
                self.bus.log("info", f"[DRY RUN] Would run nuclei templates on {target.url}")
            urls = [DiscoveredURL(target=target, url=target.url)]
            self.stats.increment("urls", len(urls))
            await engine.scan(urls)
            return

        try:
            urls = (await self.crawler.crawl(target, config, self._cancel)).urls
        except Exception as exc:
            self._stage_failed("crawler", target, exc)
            urls = [DiscoveredURL(target=target, url=target.url)]
        self.stats.increment("urls", len(urls))
        if self._cancel.cancelled:
            return

        nuclei_rate: int | None = None
        shares = None
        if self.scanner.available(config):
            shares = split_rate(config.rate_limit)
            if shares is None:
                # Too small a budget to share: nuclei runs first, then the engine.
                nuclei_result = await _settle(self.scanner.scan(target, urls, config, self._cancel))
                engine_result = await _settle(engine.scan(urls))
                self._collect(target, nuclei_result, engine_result)
                return
            nuclei_rate, engine_rate = shares
            if limiter is not None:
                limiter.set_rate(engine_rate)

        try:
            nuclei_result, engine_result = await asyncio.gather(
                self.scanner.scan(target, urls, config, self._cancel, rate_limit=nuclei_rate),
                engine.scan(urls),
                return_exceptions=True,
            )
        finally:
            if shares is not None and limiter is not None:
                limiter.set_rate(config.rate_limit)
        self._collect(target, nuclei_result, engine_result)

    def _collect(self, target: Target, nuclei_result: object, engine_result: object) -> None:
        if isinstance(nuclei_result, BaseException):
            self._stage_failed("nuclei", target, nuclei_result)
        else:
            for finding in nuclei_result.findings:
                if self.classifier.admit(finding):
                    self._record(finding)
        if isinstance(engine_result, BaseException):
            self._stage_failed("mutation engine", target, engine_result)
        else:
            self.bus.debug(f"{engine_result} injection attempts dispatched for {target.url}")

    def _stage_failed(self, stage: str, target: Target, exc: BaseException) -> None:
        if isinstance(exc, asyncio.CancelledError):
            raise exc
        logger.error("%s failed on %s", stage, target.url, exc_info=exc)
        self.stats.increment("errors")
        self.bus.log("error", f"[!] {stage} failed on {target.url}: {exc}")

    def _finish(
        self,
        config: ScanConfig,
        targets: list[Target],
        final: ScanState,
        error: str | None,
        checkpoint: ScanCheckpoint | None = None,
    ) -> ScanReport:
        self.stats.freeze()
        snapshot = self.stats.snapshot()
        output_path = None
        if not config.dry_run:
            document = build_document(
                config,
                final,
                targets,
                snapshot,
                self.findings,
                started_at=self._started_at or datetime.now(UTC),
            )
            try:
                output_path = write_json_atomic(config.output, document)
            except OSError as exc:
                logger.error("Could not write %s: %s", config.output, exc)
                self.bus.log("error", f"[!] Could not write results to {config.output}: {exc}")
            else:
                self.bus.log("info", f"[*] Results saved to {output_path}")

        if checkpoint is not None:
            if final == ScanState.FINISHED:
                try:
                    ScanCheckpoint.discard(config.state_file)
                except OSError as exc:
                    logger.warning("Could not remove %s: %s", config.state_file, exc)
            else:
                self.bus.log(
                    "info",
                    f"[*] Progress saved to {config.state_file}; continue with --resume",
                )

        self._transition(final)
        self.bus.emit(SCAN_COMPLETE, {**snapshot.to_event(), "state": final.value})
        return ScanReport(
            state=final,
            stats=snapshot,
            targets=targets,
            findings=list(self.findings),
            output_path=output_path,
            error=error,
        )


async def _settle(awaitable) -> object:
    """Await ``awaitable``, returning its exception instead of raising it."""
    try:
        return await awaitable
    except Exception as exc:
        return exc
