from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Optional, Sequence

from opscheck.config import check_unique_names
from opscheck.probes import ProbeContext, abandoned_probes, invoke_probe

from .models import ProbeResult, ProbeSpec, Report
from .report import seal
from .rules import RuleBook, evaluate

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

ProbeRunner = Callable[[ProbeSpec, ProbeContext], ProbeResult]


class Aggregator:
    """Runs one reporting cycle over a set of probes."""

    def __init__(
        self,
        rulebook: RuleBook,
        context: ProbeContext,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        cycle_timeout: Optional[float] = None,
        probe_runner: ProbeRunner = invoke_probe,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.rulebook = rulebook
        self.context = context
        self.max_concurrency = max_concurrency
        self.cycle_timeout = cycle_timeout
        self.probe_runner = probe_runner

    def _fault(self, spec: ProbeSpec, detail: str) -> ProbeResult:
        return ProbeResult(
            name=spec.name,
            kind=spec.kind,
            timestamp=self.context.clock().isoformat(),
            success=False,
            error_detail=detail,
        )

    def _run_one(self, spec: ProbeSpec) -> ProbeResult:
        try:
            return self.probe_runner(spec, self.context)
        except Exception as e:
            logger.exception("Probe %s raised an unexpected error", spec.name)
            return self._fault(spec, f"internal error: {type(e).__name__}: {e}")

    def run(self, specs: Sequence[ProbeSpec]) -> Report:
        check_unique_names(specs)
        lingering = abandoned_probes()
        if lingering:
            logger.warning("Timed-out probes still running from earlier cycles: %s", ", ".join(lingering))
        started = time.monotonic()
        generated_at = self.context.clock().isoformat()

        slots: list[Optional[ProbeResult]] = [None] * len(specs)
        lock = threading.Lock()

        def work(i: int, spec: ProbeSpec) -> None:
            result = self._run_one(spec)
            with lock:
                slots[i] = result

        if specs:
            workers = min(len(specs), self.max_concurrency)
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="opscheck")
            try:
                pending = {pool.submit(work, i, s) for i, s in enumerate(specs)}
                deadline = None if self.cycle_timeout is None else started + self.cycle_timeout
                while pending:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        break
                    _, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                if pending:
                    logger.error("Cycle timeout after %ss; %d probe(s) unfinished", self.cycle_timeout, len(pending))
            finally:
                pool.shutdown(wait=False, cancel_futures=True)

        with lock:
            results = [
                r if r is not None else self._fault(specs[i], "cycle timeout")
                for i, r in enumerate(slots)
            ]

        evaluated = [evaluate(r, self.rulebook.resolve(r.name, r.kind)) for r in results]
        for e in evaluated:
            logger.debug("%s: %s (%s)", e.name, e.severity.value, e.reason)
        duration_ms = int((time.monotonic() - started) * 1000)
        report = seal(evaluated, generated_at, duration_ms)
        logger.info(
            "Cycle finished: %d probe(s), overall %s in %d ms",
            len(evaluated),
            report.overall_severity.value,
            duration_ms,
        )
        return report
