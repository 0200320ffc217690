"""Periodic background workers.

Each worker runs one timer-driven loop. A tick fans out per-symbol work
bounded by a semaphore; a failure for one symbol or one chain is logged and
isolated from the rest of the tick.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import uuid4

from rwa_oracle.chain.factory import PublisherFactory
from rwa_oracle.chain.publisher import FundingRatePublisher
from rwa_oracle.config import PublisherSettings
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.funding.engine import FundingRateEngine
from rwa_oracle.logging import bind_context, clear_context, get_logger
from rwa_oracle.models import FundingRate, OnChainPublishResult
from rwa_oracle.risk.windows import RiskWindowService

logger = get_logger(__name__)


@dataclass
class TickReport:
    """Outcome of one worker tick."""

    tick_id: str
    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class PeriodicWorker(ABC):
    """Runs `run_once` every `interval_seconds` until stopped.

    Stopping interrupts the wait between ticks. An in-flight tick is allowed
    to finish for up to `stop_grace_seconds`, then it is cancelled.
    """

    name = "worker"

    def __init__(self, interval_seconds: float, stop_grace_seconds: float = 30.0) -> None:
        self._interval = interval_seconds
        self._grace = stop_grace_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("worker_already_running", worker=self.name)
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("worker_started", worker=self.name, interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=self._grace)
        except asyncio.TimeoutError:
            logger.warning("worker_stop_timeout", worker=self.name)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("worker_stopped", worker=self.name)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("worker_tick_error", worker=self.name, exc_info=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    @abstractmethod
    async def run_once(self) -> TickReport:
        """Execute a single tick."""
        ...


class FundingRatePublishWorker(PeriodicWorker):
    """Pushes current funding rates for tracked symbols to the configured chains."""

    name = "funding_rate_publisher"

    def __init__(
        self,
        engine: FundingRateEngine,
        publishers: PublisherFactory,
        settings: PublisherSettings,
    ) -> None:
        super().__init__(settings.interval_minutes * 60, settings.stop_grace_seconds)
        self._engine = engine
        self._publishers = publishers
        self._settings = settings
        self._semaphore = asyncio.Semaphore(max(settings.max_concurrency, 1))

    async def run_once(self) -> TickReport:
        report = TickReport(tick_id=uuid4().hex[:12])
        bind_context(tick_id=report.tick_id)
        try:
            symbols = [s.upper() for s in self._settings.tracked_symbols]
            outcomes = await asyncio.gather(*(self._process_symbol(s) for s in symbols))
            for symbol, outcome in zip(symbols, outcomes):
                getattr(report, outcome).append(symbol)
            logger.info(
                "publish_tick_complete",
                succeeded=len(report.succeeded),
                skipped=len(report.skipped),
                failed=len(report.failed),
            )
        finally:
            clear_context("tick_id")
        return report

    async def _process_symbol(self, symbol: str) -> str:
        """Returns the TickReport bucket name for the symbol."""
        async with self._semaphore:
            result = await self._engine.get_current_funding_rate(symbol)
            if not result.ok or result.value is None:
                logger.warning(
                    "funding_rate_skipped",
                    symbol=symbol,
                    failure=result.failure.value if result.failure else None,
                    reason=result.message,
                )
                return "skipped"
            rate = result.value

            if self._settings.publish_to_all_chains:
                targets = self._publishers.get_all_publishers()
            else:
                targets = [self._publishers.get_primary_publisher()]

            results = await asyncio.gather(
                *(self._publish(p, symbol, rate) for p in targets)
            )

            primary = self._publishers.primary_provider
            for publish_result in results:
                if (
                    publish_result.success
                    and publish_result.provider_type == primary
                    and publish_result.transaction_hash
                ):
                    await self._engine.record_transaction_hash(
                        rate.id, publish_result.transaction_hash
                    )
            return "succeeded" if all(r.success for r in results) else "failed"

    async def _publish(
        self, publisher: FundingRatePublisher, symbol: str, rate: FundingRate
    ) -> OnChainPublishResult:
        try:
            return await publisher.publish_funding_rate(symbol, rate)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "publish_error",
                provider=publisher.provider_type.value,
                symbol=symbol,
                exc_info=True,
            )
            return OnChainPublishResult(
                success=False,
                provider_type=publisher.provider_type,
                published_at=rate.calculated_at,
                error_message=str(e),
            )


class CorporateActionRefreshWorker(PeriodicWorker):
    """Refreshes stored corporate actions for tracked symbols."""

    name = "corporate_action_refresh"

    def __init__(
        self,
        registry: CorporateActionRegistry,
        symbols: list[str],
        interval_minutes: int,
        stop_grace_seconds: float = 30.0,
    ) -> None:
        super().__init__(interval_minutes * 60, stop_grace_seconds)
        self._registry = registry
        self._symbols = [s.upper() for s in symbols]

    async def run_once(self) -> TickReport:
        report = TickReport(tick_id=uuid4().hex[:12])
        for symbol in self._symbols:
            try:
                result = await self._registry.fetch_corporate_actions(symbol)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("corporate_action_refresh_error", symbol=symbol, exc_info=True)
                report.failed.append(symbol)
                continue
            if result.ok:
                report.succeeded.append(symbol)
            else:
                logger.warning(
                    "corporate_action_refresh_failed",
                    symbol=symbol,
                    failure=result.failure.value if result.failure else None,
                    reason=result.message,
                )
                report.failed.append(symbol)
        return report


class RiskUpdateWorker(PeriodicWorker):
    """Re-identifies risk windows for tracked symbols."""

    name = "risk_update"

    def __init__(
        self,
        window_service: RiskWindowService,
        symbols: list[str],
        interval_minutes: int,
        stop_grace_seconds: float = 30.0,
    ) -> None:
        super().__init__(interval_minutes * 60, stop_grace_seconds)
        self._windows = window_service
        self._symbols = [s.upper() for s in symbols]

    async def run_once(self) -> TickReport:
        report = TickReport(tick_id=uuid4().hex[:12])
        for symbol in self._symbols:
            try:
                window = await self._windows.identify_risk_window(symbol)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("risk_update_error", symbol=symbol, exc_info=True)
                report.failed.append(symbol)
                continue
            (report.succeeded if window is not None else report.skipped).append(symbol)
        return report
