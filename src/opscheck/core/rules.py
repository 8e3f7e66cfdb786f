from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .models import EvaluatedResult, ProbeKind, ProbeResult, Severity, ThresholdRule

NO_THRESHOLD = "no threshold configured"

# Kinds where a *lower* value is worse.
LESS_THAN_KINDS = frozenset({ProbeKind.AVAILABLE_MEMORY, ProbeKind.CERTIFICATE_EXPIRY})


def default_rules() -> dict[ProbeKind, ThresholdRule]:
    def n(warn: float, crit: float) -> ThresholdRule:
        return ThresholdRule(warn_at=warn, critical_at=crit)

    def c(allowed: set[str], bad: set[str]) -> ThresholdRule:
        return ThresholdRule(allowed=frozenset(allowed), critical_values=frozenset(bad))

    return {
        ProbeKind.SERVICE_STATUS: c({"active"}, {"inactive", "failed"}),
        ProbeKind.CONTAINER_STATUS: c({"running"}, {"exited", "dead"}),
        ProbeKind.DISK_USAGE: n(80, 90),
        ProbeKind.MEMORY_USAGE: n(80, 90),
        ProbeKind.AVAILABLE_MEMORY: n(15, 5),
        ProbeKind.LOAD_AVERAGE: n(1.0, 2.0),
        ProbeKind.LOG_PATTERN_COUNT: n(5, 20),
        ProbeKind.PROCESS_RESOURCE: n(80, 95),
        ProbeKind.FILE_AGE: n(25, 49),
        ProbeKind.TCP_PORT: c({"reachable"}, {"unreachable"}),
        ProbeKind.DNS_RESOLUTION: c({"resolved"}, {"unresolved"}),
        ProbeKind.CERTIFICATE_EXPIRY: n(30, 7),
        ProbeKind.UPTIME_DAYS: ThresholdRule(warn_at=100),
    }


@dataclass(frozen=True)
class RuleBook:
    """Threshold lookup: a probe-name rule layered over its kind rule."""

    by_name: Mapping[str, ThresholdRule] = field(default_factory=dict)
    by_kind: Mapping[ProbeKind, ThresholdRule] = field(default_factory=default_rules)

    def resolve(self, name: str, kind: ProbeKind) -> Optional[ThresholdRule]:
        rule = self.by_name.get(name)
        base = self.by_kind.get(kind)
        if rule is None:
            return base
        return base.merged(rule) if base is not None else rule


def _crosses(value: float, limit: Optional[float], less_than: bool) -> bool:
    if limit is None:
        return False
    return value <= limit if less_than else value >= limit


def _fmt(value: float) -> str:
    return f"{value:g}"


def _evaluate_categorical(result: ProbeResult, rule: ThresholdRule) -> EvaluatedResult:
    value = "" if result.raw_value is None else str(result.raw_value).strip()
    if value in rule.allowed:
        return EvaluatedResult(result, Severity.OK, f"status {value} is allowed")
    if value in rule.critical_values:
        return EvaluatedResult(result, Severity.CRITICAL, f"status {value}")
    return EvaluatedResult(result, Severity.WARN, f"unexpected status: {value or '<empty>'}")


def _evaluate_numeric(result: ProbeResult, rule: ThresholdRule) -> EvaluatedResult:
    try:
        value = float(result.raw_value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return EvaluatedResult(result, Severity.UNKNOWN, f"non-numeric value: {result.raw_value!r}")

    less_than = result.kind in LESS_THAN_KINDS
    op = "<=" if less_than else ">="
    if _crosses(value, rule.critical_at, less_than):
        return EvaluatedResult(
            result, Severity.CRITICAL, f"{_fmt(value)} {op} critical_at {_fmt(rule.critical_at)}"
        )
    if _crosses(value, rule.warn_at, less_than):
        return EvaluatedResult(result, Severity.WARN, f"{_fmt(value)} {op} warn_at {_fmt(rule.warn_at)}")
    return EvaluatedResult(result, Severity.OK, f"{_fmt(value)} within thresholds")


def evaluate(result: ProbeResult, rule: Optional[ThresholdRule]) -> EvaluatedResult:
    """Classify one probe result. Pure: no I/O, no state."""
    if not result.success:
        return EvaluatedResult(result, Severity.UNKNOWN, result.error_detail or "probe failed")
    if rule is None:
        return EvaluatedResult(result, Severity.OK, NO_THRESHOLD)
    if rule.categorical:
        return _evaluate_categorical(result, rule)
    if rule.warn_at is None and rule.critical_at is None:
        return EvaluatedResult(result, Severity.OK, NO_THRESHOLD)
    return _evaluate_numeric(result, rule)
