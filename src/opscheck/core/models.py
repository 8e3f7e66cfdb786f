from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

RawValue = Union[float, int, str, None]


class Severity(str, Enum):
    OK = "OK"
    WARN = "WARN"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def parse(cls, value: str) -> "Severity":
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"unknown severity: {value!r}") from None


_RANK: dict[Severity, int] = {
    Severity.OK: 0,
    Severity.WARN: 1,
    Severity.CRITICAL: 2,
    Severity.UNKNOWN: 3,
}


class ProbeKind(str, Enum):
    SERVICE_STATUS = "service_status"
    CONTAINER_STATUS = "container_status"
    DISK_USAGE = "disk_usage"
    MEMORY_USAGE = "memory_usage"
    AVAILABLE_MEMORY = "available_memory"
    LOAD_AVERAGE = "load_average"
    LOG_PATTERN_COUNT = "log_pattern_count"
    PROCESS_RESOURCE = "process_resource"
    FILE_AGE = "file_age"
    CUSTOM_COMMAND = "custom_command"
    TCP_PORT = "tcp_port"
    DNS_RESOLUTION = "dns_resolution"
    CERTIFICATE_EXPIRY = "certificate_expiry"
    UPTIME_DAYS = "uptime_days"


@dataclass(frozen=True)
class ThresholdRule:
    warn_at: Optional[float] = None
    critical_at: Optional[float] = None
    allowed: frozenset[str] = frozenset()
    critical_values: frozenset[str] = frozenset()

    @property
    def categorical(self) -> bool:
        return bool(self.allowed or self.critical_values)

    def merged(self, overrides: "ThresholdRule") -> "ThresholdRule":
        """Return a copy with every field set on *overrides* replaced."""
        return ThresholdRule(
            warn_at=overrides.warn_at if overrides.warn_at is not None else self.warn_at,
            critical_at=overrides.critical_at if overrides.critical_at is not None else self.critical_at,
            allowed=overrides.allowed or self.allowed,
            critical_values=overrides.critical_values or self.critical_values,
        )


@dataclass(frozen=True)
class ProbeSpec:
    name: str
    kind: ProbeKind
    target: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    threshold: Optional[ThresholdRule] = None


@dataclass(frozen=True)
class ProbeResult:
    name: str
    kind: ProbeKind
    timestamp: str
    raw_value: RawValue = None
    success: bool = True
    error_detail: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EvaluatedResult:
    result: ProbeResult
    severity: Severity
    reason: str

    @property
    def name(self) -> str:
        return self.result.name


@dataclass(frozen=True)
class Report:
    results: tuple[EvaluatedResult, ...]
    generated_at: str
    overall_severity: Severity
    run_duration_ms: int

    @property
    def counts(self) -> dict[Severity, int]:
        out = {s: 0 for s in Severity}
        for r in self.results:
            out[r.severity] += 1
        return out

    @property
    def problems(self) -> list[EvaluatedResult]:
        return [r for r in self.results if r.severity is not Severity.OK]


@dataclass(frozen=True)
class Transition:
    name: str
    before: Optional[Severity]
    after: Optional[Severity]
