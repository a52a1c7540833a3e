"""Reconciliation runner — run every check on a fixed pool of workers.

At most ``concurrency`` checks are in flight at once. Results are
collected into one accumulator and the final report is ordered by check
name, so the report does not depend on completion order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from orgglue.config import DEFAULT_CONCURRENCY
from orgglue.engine.checks import Check
from orgglue.engine.context import ReconContext
from orgglue.errors import ConfigError
from orgglue.models import CheckResult, CheckStatus, Report

logger = logging.getLogger(__name__)


class _Results:
    """Accumulator shared by the workers. One entry per check name."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_name: dict[str, CheckResult] = {}

    async def add(self, result: CheckResult) -> None:
        async with self._lock:
            if result.name in self._by_name:
                raise RuntimeError(f"check '{result.name}' reported twice")
            self._by_name[result.name] = result

    def values(self) -> list[CheckResult]:
        return list(self._by_name.values())


class ReconciliationRunner:
    """Run a set of checks against one context and build the report."""

    def __init__(self, checks: Sequence[Check], concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        names = [check.name for check in checks]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigError(f"duplicate check name(s): {', '.join(duplicates)}")
        self.checks = list(checks)
        self.concurrency = concurrency

    def validate(self, context: ReconContext) -> None:
        """Fail before any fetch if a check needs a backend the run lacks."""
        for check in self.checks:
            for backend in check.backends:
                if backend not in context.clients:
                    raise ConfigError(
                        f"check '{check.name}' needs backend '{backend}', which is not configured"
                    )

    async def run(self, context: ReconContext) -> Report:
        self.validate(context)
        queue: asyncio.Queue[Check] = asyncio.Queue()
        for check in self.checks:
            queue.put_nowait(check)
        results = _Results()

        workers = [
            asyncio.create_task(self._worker(index, queue, context, results))
            for index in range(min(self.concurrency, len(self.checks)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()

        report = Report.from_results(results.values(), dry_run=context.dry_run)
        logger.info(
            "%d check(s) finished, worst status %s", len(report.results), report.status.value
        )
        return report

    async def _worker(
        self,
        index: int,
        queue: asyncio.Queue[Check],
        context: ReconContext,
        results: _Results,
    ) -> None:
        while True:
            try:
                check = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug("worker %d: running %s", index, check.name)
            await results.add(await _run_one(check, context))
            queue.task_done()


async def _run_one(check: Check, context: ReconContext) -> CheckResult:
    try:
        return await check.run(context)
    except ConfigError as exc:
        logger.error("%s: %s", check.name, exc)
        error = f"ConfigError: {exc}"
    except Exception as exc:
        logger.exception("%s: unexpected error", check.name)
        error = f"{type(exc).__name__}: {exc}"
    return CheckResult(
        name=check.name,
        check_type=check.type_name(),
        status=CheckStatus.fetch_failed,
        error=error,
    )

