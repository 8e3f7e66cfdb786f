from __future__ import annotations

from typing import Iterable, Optional

from .models import EvaluatedResult, Report, Severity, Transition


def worst_severity(results: Iterable[EvaluatedResult]) -> Severity:
    worst = Severity.OK
    for r in results:
        if r.severity.rank > worst.rank:
            worst = r.severity
    return worst


def seal(results: Iterable[EvaluatedResult], generated_at: str, duration_ms: int) -> Report:
    ordered = tuple(results)
    return Report(
        results=ordered,
        generated_at=generated_at,
        overall_severity=worst_severity(ordered),
        run_duration_ms=max(0, int(duration_ms)),
    )


def diff_reports(previous: Optional[Report], current: Report) -> list[Transition]:
    """Probes whose severity changed since *previous*, in current order.

    Probes that disappeared from the configuration are listed last with
    ``after=None``.
    """
    if previous is None:
        return []
    before = {r.name: r.severity for r in previous.results}
    out: list[Transition] = []
    seen: set[str] = set()
    for r in current.results:
        seen.add(r.name)
        old = before.get(r.name)
        if old is not r.severity:
            out.append(Transition(r.name, old, r.severity))
    for name, old in before.items():
        if name not in seen:
            out.append(Transition(name, old, None))
    return out
