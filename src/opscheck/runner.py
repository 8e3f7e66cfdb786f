from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from opscheck.backends.docker import DockerBackend
from opscheck.backends.linux import LinuxBackend
from opscheck.config import Config
from opscheck.core.aggregate import Aggregator
from opscheck.core.errors import ReportWriteError
from opscheck.core.models import Report, Severity
from opscheck.notify import build_sink
from opscheck.probes import ProbeContext
from opscheck.reporter import Publication, Reporter, load_state

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WARN = 1
EXIT_CRITICAL = 2
EXIT_CONFIG = 3


def exit_code_for(severity: Severity) -> int:
    if severity is Severity.OK:
        return EXIT_OK
    if severity is Severity.WARN:
        return EXIT_WARN
    return EXIT_CRITICAL


@dataclass(frozen=True)
class CycleOutcome:
    report: Report
    exit_code: int
    publication: Optional[Publication] = None
    write_error: Optional[str] = None


class Runner:
    def __init__(
        self,
        config: Config,
        aggregator: Optional[Aggregator] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.config = config
        s = config.settings
        if aggregator is None:
            ctx = ProbeContext(services=LinuxBackend(), containers=DockerBackend(), default_timeout=s.timeout)
            aggregator = Aggregator(
                config.rulebook(),
                ctx,
                max_concurrency=s.concurrency,
                cycle_timeout=s.cycle_timeout,
            )
        if reporter is None:
            reporter = Reporter(
                s.report_path,
                s.report_format,
                sinks=[build_sink(c) for c in s.notify.sinks],
                min_severity=s.notify.min_severity,
                state_path=s.state_path,
            )
        self.aggregator = aggregator
        self.reporter = reporter
        self.stop_event = threading.Event()
        self._previous: Optional[Report] = load_state(s.state_path)

    def run_once(self) -> CycleOutcome:
        report = self.aggregator.run(self.config.probes)
        code = exit_code_for(report.overall_severity)
        previous, self._previous = self._previous, report
        try:
            pub = self.reporter.publish(report, previous)
        except ReportWriteError as e:
            logger.error("Report write failed: %s", e)
            return CycleOutcome(report, code, write_error=str(e))
        return CycleOutcome(report, code, publication=pub)

    def stop(self, *_args) -> None:
        if not self.stop_event.is_set():
            logger.info("Stop requested; finishing current cycle")
        self.stop_event.set()

    def install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self.stop)

    def watch(self, interval: float, max_cycles: Optional[int] = None, on_cycle=None) -> int:
        """Run cycles every *interval* seconds until stopped.

        Returns the exit code of the last completed cycle.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        code = EXIT_OK
        cycles = 0
        while not self.stop_event.is_set():
            outcome = self.run_once()
            code = outcome.exit_code
            cycles += 1
            if on_cycle is not None:
                on_cycle(outcome)
            if max_cycles is not None and cycles >= max_cycles:
                break
            self.stop_event.wait(interval)
        logger.info("Watch stopped after %d cycle(s)", cycles)
        return code
