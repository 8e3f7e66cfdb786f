from __future__ import annotations

import logging
import shlex
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

import requests

from opscheck.backends.base import run_command
from opscheck.config import SinkConfig
from opscheck.core.errors import NotificationError
from opscheck.core.models import EvaluatedResult, Report, Transition
from opscheck.output.text import render_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Alert:
    report: Report
    problems: tuple[EvaluatedResult, ...]
    transitions: tuple[Transition, ...] = ()
    host: str = field(default_factory=socket.gethostname)

    @property
    def subject(self) -> str:
        return f"opscheck {self.report.overall_severity.value} on {self.host}: {len(self.problems)} problem(s)"

    def payload(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "generated_at": self.report.generated_at,
            "overall_severity": self.report.overall_severity.value,
            "problems": [
                {
                    "name": p.name,
                    "kind": p.result.kind.value,
                    "severity": p.severity.value,
                    "value": p.result.raw_value,
                    "reason": p.reason,
                }
                for p in self.problems
            ],
            "transitions": [
                {
                    "name": t.name,
                    "before": t.before.value if t.before else None,
                    "after": t.after.value if t.after else None,
                }
                for t in self.transitions
            ],
        }


class Sink(ABC):
    name = "sink"

    @abstractmethod
    def send(self, alert: Alert) -> None:
        """Deliver *alert*; raise NotificationError on failure."""
        ...


class LogSink(Sink):
    name = "log"

    def send(self, alert: Alert) -> None:
        logger.warning(alert.subject)
        for p in alert.problems:
            logger.warning("  [%s] %s: %s", p.severity.value, p.name, p.reason)


@dataclass
class WebhookSink(Sink):
    url: str
    timeout: float = 5.0
    headers: dict[str, str] = field(default_factory=dict)
    name = "webhook"

    def send(self, alert: Alert) -> None:
        body = alert.payload()
        body["text"] = alert.subject
        try:
            resp = requests.post(self.url, json=body, headers=self.headers or None, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"webhook {self.url} failed: {e}") from e


@dataclass
class CommandSink(Sink):
    """Pipes the text report into a command, e.g. ``mail -s subject addr``."""

    command: str
    timeout: float = 30.0
    name = "command"

    def send(self, alert: Alert) -> None:
        argv = [a.replace("{subject}", alert.subject) for a in shlex.split(self.command)]
        r = run_command(argv, timeout_s=self.timeout, stdin=render_text(alert.report))
        if r.rc != 0:
            raise NotificationError(f"command {argv[0]} exited {r.rc}: {r.err or r.out}")


def build_sink(cfg: SinkConfig) -> Sink:
    o = cfg.options
    if cfg.type == "log":
        return LogSink()
    if cfg.type == "webhook":
        return WebhookSink(str(o["url"]), timeout=float(o.get("timeout", 5.0)), headers=dict(o.get("headers") or {}))
    if cfg.type == "command":
        return CommandSink(str(o["command"]), timeout=float(o.get("timeout", 30.0)))
    raise NotificationError(f"unknown sink type: {cfg.type}")


def dispatch(sinks: Sequence[Sink], alert: Alert) -> int:
    """Send *alert* to every sink once. Returns the number delivered."""
    delivered = 0
    for sink in sinks:
        try:
            sink.send(alert)
            delivered += 1
        except Exception as e:
            logger.warning("Notification via %s failed: %s", sink.name, e)
    return delivered
