from __future__ import annotations

import re
from collections import deque
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Pattern
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeSpec

from .base import Measurement, ProbeContext, param, register

ISO_8601 = "iso8601"

# (regex matching the timestamp at the start of a line, strptime format)
DEFAULT_TIMESTAMP_FORMATS: list[tuple[str, str]] = [
    (r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?", ISO_8601),
    (r"[A-Z][a-z]{2} [ \d]\d \d{2}:\d{2}:\d{2}", "%b %d %H:%M:%S"),
]

_ISO_PARTS = re.compile(r"(?P<base>.{19})(?:[.,](?P<frac>\d+))?(?P<tz>.*)")


def parse_iso(text: str) -> datetime:
    m = _ISO_PARTS.fullmatch(text)
    if m is None:
        raise ValueError(f"not an ISO timestamp: {text!r}")
    fmt = f"%Y-%m-%d{text[10]}%H:%M:%S"
    value = m.group("base")
    if m.group("frac"):
        fmt += ".%f"
        value += "." + m.group("frac")[:6]
    if m.group("tz"):
        fmt += "%z"
        value += m.group("tz")
    return datetime.strptime(value, fmt)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """None means the host's local zone."""
    if name is None or str(name).strip().lower() == "local":
        return None
    if str(name).strip().lower() in ("utc", "z"):
        return timezone.utc
    try:
        return ZoneInfo(str(name).strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise ProbeExecutionError(f"unknown timezone {name!r}") from None


class TimestampParser:
    """Reads the leading timestamp of a log line.

    Timestamps carrying an offset keep it. The rest are read in *tz*, or in
    the host's local zone when *tz* is None, the way syslog writes them.
    Syslog timestamps without a year get the year of *now*, or the previous
    year when that would put them more than a day in the future.
    """

    def __init__(self, now: datetime, formats: Iterable[tuple[str, str]], tz: Optional[tzinfo] = None):
        self.now = now
        self.tz = tz
        self._formats = [(re.compile(r"^\s*\[?(" + rx + ")"), fmt) for rx, fmt in formats]

    def _localize(self, ts: datetime) -> datetime:
        if ts.tzinfo is not None:
            return ts
        if self.tz is None:
            return ts.astimezone()
        return ts.replace(tzinfo=self.tz)

    def _strptime(self, text: str, fmt: str) -> datetime:
        if fmt == ISO_8601:
            return parse_iso(text)
        if "%Y" in fmt or "%y" in fmt:
            return datetime.strptime(text, fmt)
        ts = self._localize(datetime.strptime(f"{self.now.year} {text}", "%Y " + fmt))
        if ts > self.now + timedelta(days=1):
            ts = self._localize(datetime.strptime(f"{self.now.year - 1} {text}", "%Y " + fmt))
        return ts

    def parse(self, line: str) -> Optional[datetime]:
        for rx, fmt in self._formats:
            m = rx.match(line)
            if not m:
                continue
            try:
                ts = self._strptime(m.group(1), fmt)
            except ValueError:
                continue
            return self._localize(ts)
        return None


def count_matches(
    lines: Iterable[str],
    pattern: Pattern[str],
    since: Optional[datetime] = None,
    parser: Optional[TimestampParser] = None,
) -> int:
    """Count lines matching *pattern*, optionally only those at or after *since*.

    A line without its own timestamp belongs to the last timestamped line
    above it; lines before the first timestamp are skipped when windowed.
    """
    n = 0
    current: Optional[datetime] = None
    for line in lines:
        if since is not None and parser is not None:
            ts = parser.parse(line)
            if ts is not None:
                current = ts
            if current is None or current < since:
                continue
        if pattern.search(line):
            n += 1
    return n


def _timestamp_formats(spec: ProbeSpec) -> list[tuple[str, str]]:
    rx = param(spec, "timestamp_regex")
    fmt = param(spec, "timestamp_format")
    if rx and fmt:
        return [(str(rx), str(fmt))]
    if rx or fmt:
        raise ProbeExecutionError("timestamp_regex and timestamp_format must be set together")
    return DEFAULT_TIMESTAMP_FORMATS


@register(ProbeKind.LOG_PATTERN_COUNT)
def log_pattern_count(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    raw = param(spec, "pattern")
    if not raw:
        raise ProbeExecutionError("pattern required")
    flags = re.IGNORECASE if param(spec, "ignore_case", True) else 0
    try:
        pattern = re.compile(str(raw), flags)
    except re.error as e:
        raise ProbeExecutionError(f"invalid pattern: {e}") from None

    window = param(spec, "window_minutes")
    tail = param(spec, "tail")
    now = ctx.clock()

    try:
        with open(spec.target, encoding="utf-8", errors="replace") as f:
            lines = deque(f, maxlen=int(tail)) if tail else list(f)
    except OSError as e:
        raise ProbeExecutionError(f"cannot read {spec.target}: {e.strerror or e}") from None

    detail = {"path": spec.target, "lines_scanned": len(lines)}
    if window:
        since = now - timedelta(minutes=float(window))
        tz = resolve_timezone(param(spec, "timezone"))
        parser = TimestampParser(now, _timestamp_formats(spec), tz)
        detail["timezone"] = "local" if tz is None else str(tz)
        detail["since"] = since.isoformat()
        return Measurement(count_matches(lines, pattern, since, parser), detail)
    return Measurement(count_matches(lines, pattern), detail)
