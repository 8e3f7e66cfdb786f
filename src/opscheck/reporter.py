from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from opscheck.core.errors import ReportWriteError
from opscheck.core.models import Report, Severity, Transition
from opscheck.core.report import diff_reports
from opscheck.notify import Alert, Sink, dispatch
from opscheck.output.jsonout import from_json, to_json
from opscheck.output.text import render_text

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
EXTENSIONS = {"text": "txt", "json": "json"}

_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.Lock())


def render(report: Report, fmt: str) -> str:
    if fmt == "json":
        return to_json(report) + "\n"
    return render_text(report)


def destination(template: str, report: Report, fmt: str) -> Path:
    ts = datetime.fromisoformat(report.generated_at).strftime(TIMESTAMP_FORMAT)
    try:
        return Path(template.format(timestamp=ts, format=EXTENSIONS.get(fmt, fmt)))
    except (KeyError, IndexError, ValueError) as e:
        raise ReportWriteError(f"bad report path template {template!r}: {type(e).__name__}: {e}") from e


def write_atomically(path: Path, text: str) -> None:
    """Write *text* to *path* under the per-path lock."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with _lock_for(path):
            tmp = path.with_name(path.name + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
            tmp.replace(path)
    except OSError as e:
        raise ReportWriteError(f"cannot write report to {path}: {e.strerror or e}") from e


def load_state(path: Optional[str]) -> Optional[Report]:
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        return None
    try:
        return from_json(p.read_text(encoding="utf-8"))
    except (OSError, ValueError, KeyError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", p, e)
        return None


@dataclass(frozen=True)
class Publication:
    path: Optional[Path]
    transitions: tuple[Transition, ...]
    notified: int


class Reporter:
    """Persists a report and fires notifications for it."""

    def __init__(
        self,
        report_path: Optional[str],
        report_format: str = "text",
        sinks: Sequence[Sink] = (),
        min_severity: Severity = Severity.WARN,
        state_path: Optional[str] = None,
    ):
        self.report_path = report_path
        self.report_format = report_format
        self.sinks = list(sinks)
        self.min_severity = min_severity
        self.state_path = state_path

    def persist(self, report: Report) -> Optional[Path]:
        if not self.report_path:
            return None
        path = destination(self.report_path, report, self.report_format)
        write_atomically(path, render(report, self.report_format))
        logger.info("Report written to %s", path)
        return path

    def save_state(self, report: Report) -> None:
        if not self.state_path:
            return
        try:
            write_atomically(Path(self.state_path), to_json(report))
        except ReportWriteError as e:
            logger.warning("State not saved: %s", e)

    def should_notify(self, report: Report) -> bool:
        return bool(report.problems) and report.overall_severity.rank >= self.min_severity.rank

    def notify(self, report: Report, transitions: Sequence[Transition] = ()) -> int:
        if not self.sinks or not self.should_notify(report):
            return 0
        alert = Alert(report, tuple(report.problems), tuple(transitions))
        return dispatch(self.sinks, alert)

    def publish(self, report: Report, previous: Optional[Report] = None) -> Publication:
        """Notify sinks, then save state and write the report.

        Sinks are called before the write; ReportWriteError propagates.
        """
        transitions = tuple(diff_reports(previous, report))
        for t in transitions:
            logger.info(
                "%s changed: %s -> %s",
                t.name,
                t.before.value if t.before else "new",
                t.after.value if t.after else "removed",
            )
        notified = self.notify(report, transitions)
        self.save_state(report)
        path = self.persist(report)
        return Publication(path, transitions, notified)
