from __future__ import annotations

import json
from dataclasses import asdict

from opscheck.core.models import EvaluatedResult, ProbeKind, ProbeResult, Report, Severity
from opscheck.core.report import seal


def report_to_dict(report: Report) -> dict:
    d = asdict(report)
    d["counts"] = {s.value: n for s, n in report.counts.items()}
    return d


def to_json(report: Report) -> str:
    return json.dumps(report_to_dict(report), indent=2, ensure_ascii=False, default=str)


def from_dict(data: dict) -> Report:
    results = []
    for item in data.get("results") or []:
        r = item["result"]
        results.append(
            EvaluatedResult(
                result=ProbeResult(
                    name=r["name"],
                    kind=ProbeKind(r["kind"]),
                    timestamp=r["timestamp"],
                    raw_value=r.get("raw_value"),
                    success=bool(r.get("success", True)),
                    error_detail=r.get("error_detail"),
                    detail=dict(r.get("detail") or {}),
                ),
                severity=Severity.parse(item["severity"]),
                reason=item.get("reason", ""),
            )
        )
    return seal(results, data["generated_at"], int(data.get("run_duration_ms", 0)))


def from_json(text: str) -> Report:
    return from_dict(json.loads(text))
