from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from opscheck.core.models import Report, Severity

TOOL = "opscheck"

_HEADER_RE = re.compile(rf"^{TOOL} report @ (?P<ts>\S+)$")
_OVERALL_RE = re.compile(r"^Overall: (?P<sev>\w+) \| (?P<rest>.*)$")
_ROW_RE = re.compile(r"^- \[(?P<sev>\w+)\] (?P<name>.+?) \((?P<kind>\w+)\): (?P<value>.*)$")


def _escape(value) -> str:
    if value is None:
        return "-"
    return str(value).replace("\\", "\\\\").replace("\n", "\\n")


def _unescape(text: str) -> str:
    return re.sub(r"\\(\\|n)", lambda m: "\n" if m.group(1) == "n" else "\\", text)


def render_text(report: Report) -> str:
    counts = report.counts
    lines = [
        f"{TOOL} report @ {report.generated_at}",
        f"Overall: {report.overall_severity.value} | probes: {len(report.results)} | "
        + " | ".join(f"{s.value.lower()}: {counts[s]}" for s in Severity)
        + f" | duration_ms: {report.run_duration_ms}",
        "",
        "Results:",
    ]
    if not report.results:
        lines.append("- none")
    for r in report.results:
        lines.append(f"- [{r.severity.value}] {r.name} ({r.result.kind.value}): {_escape(r.result.raw_value)}")
        label = "could not evaluate" if r.severity is Severity.UNKNOWN else "reason"
        lines.append(f"  {label}: {_escape(r.reason)}")

    problems = report.problems
    lines.append("")
    lines.append("Summary:")
    if not problems:
        lines.append("- all probes OK")
    else:
        unknown = counts[Severity.UNKNOWN]
        unhealthy = len(problems) - unknown
        if unhealthy:
            lines.append(f"- {unhealthy} probe(s) evaluated and unhealthy")
        if unknown:
            lines.append(f"- {unknown} probe(s) could not be evaluated")
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ParsedRow:
    name: str
    kind: str
    severity: Severity
    value: Optional[str]
    reason: str


@dataclass(frozen=True)
class ParsedReport:
    generated_at: str
    overall_severity: Severity
    rows: tuple[ParsedRow, ...]


def parse_text(text: str) -> ParsedReport:
    """Read back the output of :func:`render_text`.

    Raw values come back as their rendered strings (``None`` for a missing
    value).
    """
    lines = text.splitlines()
    if len(lines) < 2:
        raise ValueError("not an opscheck text report")
    h = _HEADER_RE.match(lines[0])
    o = _OVERALL_RE.match(lines[1])
    if not h or not o:
        raise ValueError("not an opscheck text report")

    rows: list[ParsedRow] = []
    pending = None
    for line in lines[2:]:
        if line == "Summary:":
            break
        m = _ROW_RE.match(line)
        if m:
            pending = m
            continue
        if pending is not None and line.startswith("  ") and ": " in line:
            reason = line.split(": ", 1)[1]
            value = pending.group("value")
            rows.append(
                ParsedRow(
                    name=pending.group("name"),
                    kind=pending.group("kind"),
                    severity=Severity.parse(pending.group("sev")),
                    value=None if value == "-" else _unescape(value),
                    reason=_unescape(reason),
                )
            )
            pending = None
    return ParsedReport(h.group("ts"), Severity.parse(o.group("sev")), tuple(rows))
