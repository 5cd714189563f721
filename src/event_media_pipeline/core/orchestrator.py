"""Bounded-concurrency batch orchestrator."""

import asyncio
import time
from typing import Any, AsyncIterator, List, Optional

from .error_handling import BatchOperationContext
from .exceptions import BatchAbortedError
from .models import (
    BatchResult,
    CompleteEvent,
    ErrorEvent,
    ItemOutcome,
    ItemProgressEvent,
    PipelineConfig,
    StatusEvent,
)
from .observability import LogContext, MetricsCollector, PerformanceMetrics
from .progress import ProgressChannel
from .protocols import BatchJob, LoggerProtocol


class _Tally:
    """Running counters; only touched between awaits by the orchestrator."""

    def __init__(self, total: int):
        self.total = total
        self.succeeded = 0
        self.skipped = 0
        self.failed = 0

    @property
    def visited(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def add(self, outcome: ItemOutcome) -> None:
        if outcome.status == "succeeded":
            self.succeeded += 1
        elif outcome.status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1


class BatchOrchestrator:
    """
    Drives a ``BatchJob`` through enumerate, process and finalize.

    Items are processed in slices of ``config.concurrency``: every task in a
    slice starts together and the next slice starts only once all of them have
    resolved. Item failures are counted, never propagated; only enumeration
    failures and the batch timeout abort the run.
    """

    def __init__(
        self,
        config: PipelineConfig,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._config = config
        self._logger = logger
        self._metrics_collector = metrics_collector

    async def stream(self, job: BatchJob[Any]) -> AsyncIterator[Any]:
        """
        Run the job and yield its progress events as they are produced.

        Closing the iterator early cancels the running batch. Writes already
        committed by finished items stay in place.
        """
        channel = ProgressChannel()
        task = asyncio.create_task(self.execute(job, channel))
        try:
            async for event in channel:
                yield event
        finally:
            if not task.done():
                task.cancel()
                await asyncio.wait({task})

    async def run(self, job: BatchJob[Any]) -> BatchResult:
        """
        Run the job to completion and return the aggregate result.

        Raises:
            BatchAbortedError: If the batch ended with an error event.
        """
        terminal = None
        async for event in self.stream(job):
            terminal = event
        if terminal is None or terminal.type != "complete":
            message = terminal.message if terminal is not None else "Batch ended without a result"
            raise BatchAbortedError(message)
        return terminal.to_result()

    async def execute(self, job: BatchJob[Any], channel: ProgressChannel) -> None:
        """Run the job, writing every event to ``channel``; never raises."""
        log_context = LogContext(operation=job.name, component="batch_orchestrator")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.batch_timeout
        tally: Optional[_Tally] = None
        metrics = self._metrics_collector if self._metrics_collector is not None else MetricsCollector()

        def notify(message: str) -> None:
            channel.send(StatusEvent(message=message))

        try:
            try:
                items: List[Any] = await asyncio.wait_for(
                    job.enumerate(notify), timeout=self._config.batch_timeout
                )
            except asyncio.TimeoutError:
                raise
            except Exception as e:
                self._logger.error(f"Enumeration failed: {e}", log_context)
                channel.send(ErrorEvent(message=str(e) or type(e).__name__))
                return

            if not items:
                self._logger.info("No items to process", log_context)
                result = BatchResult(message=job.empty_message, demo=job.is_demo)
                channel.send(CompleteEvent.from_result(result))
                return

            tally = _Tally(len(items))
            channel.send(
                StatusEvent(
                    message=f"Found {tally.total} items. Starting {job.name}...",
                    total=tally.total,
                )
            )
            self._logger.info(
                "Starting batch",
                log_context,
                total=tally.total,
                concurrency=self._config.concurrency,
            )

            width = self._config.concurrency
            with BatchOperationContext(f"{job.name} batch") as batch_ops:
                for start in range(0, tally.total, width):
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    self._logger.debug(
                        f"Processing slice {start // width + 1}", log_context
                    )
                    await self._run_slice(
                        job, items[start : start + width], tally, channel,
                        batch_ops, remaining, log_context, metrics,
                    )

            result = BatchResult(
                attempted=tally.total,
                succeeded=tally.succeeded,
                skipped=tally.skipped,
                failed=tally.failed,
                last_error=batch_ops.last_error or None,
                demo=job.is_demo,
            )
            result.message = job.summarize(result)
            self._log_summary(result, log_context, metrics)
            channel.send(CompleteEvent.from_result(result))

        except asyncio.TimeoutError:
            done = f" with {tally.visited} of {tally.total} items processed" if tally else ""
            message = f"Batch timed out after {self._config.batch_timeout:g}s{done}"
            self._logger.error(message, log_context)
            channel.send(ErrorEvent(message=message))
        except Exception as e:
            self._logger.error(f"Batch failed: {e}", log_context)
            if not channel.closed:
                channel.send(ErrorEvent(message=f"Batch failed: {e}"))
        finally:
            channel.close()

    async def _run_slice(
        self,
        job: BatchJob[Any],
        chunk: List[Any],
        tally: _Tally,
        channel: ProgressChannel,
        batch_ops: BatchOperationContext,
        timeout: float,
        log_context: LogContext,
        metrics: MetricsCollector,
    ) -> None:
        tasks = [
            asyncio.create_task(self._process_one(job, item, log_context, metrics))
            for item in chunk
        ]
        try:
            for next_done in asyncio.as_completed(tasks, timeout=timeout):
                outcome = await next_done
                tally.add(outcome)
                if outcome.status == "failed":
                    batch_ops.add_error(outcome.error, outcome.item_id)
                channel.send(
                    ItemProgressEvent(
                        imported=tally.succeeded,
                        skipped=tally.skipped,
                        failed=tally.failed,
                        current=tally.visited,
                        total=tally.total,
                        item_id=outcome.item_id,
                        file_name=outcome.file_name,
                        error=outcome.error if outcome.status == "failed" else None,
                    )
                )
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)

    async def _process_one(
        self,
        job: BatchJob[Any],
        item: Any,
        log_context: LogContext,
        metrics: MetricsCollector,
    ) -> ItemOutcome:
        start_time = time.time()
        try:
            outcome = await job.process(item)
        except Exception as e:
            outcome = ItemOutcome(
                item_id=job.item_id(item),
                status="failed",
                error=str(e) or type(e).__name__,
            )
        end_time = time.time()
        outcome.duration = end_time - start_time

        item_context = log_context.with_metadata(item_id=outcome.item_id)
        if outcome.status == "failed":
            self._logger.error(f"Item failed: {outcome.error}", item_context)
        elif outcome.status == "skipped":
            self._logger.warning(f"Item skipped: {outcome.error}", item_context)
        else:
            self._logger.debug(
                "Item completed", item_context, duration_ms=round(outcome.duration * 1000)
            )

        metrics.record_metric(
            PerformanceMetrics(
                operation=job.name,
                start_time=start_time,
                end_time=end_time,
                success=outcome.status != "failed",
                error_message=outcome.error or None,
                metadata={"item_id": outcome.item_id, "status": outcome.status},
            )
        )
        return outcome

    def _log_summary(
        self, result: BatchResult, log_context: LogContext, metrics: MetricsCollector
    ) -> None:
        summary = metrics.get_summary()
        self._logger.info(
            result.message,
            log_context,
            attempted=result.attempted,
            succeeded=result.succeeded,
            skipped=result.skipped,
            failed=result.failed,
            avg_duration_ms=round(summary.get("avg_duration", 0.0) * 1000),
        )
