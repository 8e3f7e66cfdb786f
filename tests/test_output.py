from opscheck.core.models import EvaluatedResult, ProbeKind, Severity
from opscheck.core.report import seal
from opscheck.output.jsonout import from_json, to_json
from opscheck.output.text import parse_text, render_text

from .conftest import NOW, make_result


def sample_report():
    return seal(
        [
            EvaluatedResult(make_result("nginx", ProbeKind.SERVICE_STATUS, "active"), Severity.OK, "status active is allowed"),
            EvaluatedResult(make_result("root disk", ProbeKind.DISK_USAGE, 85.0), Severity.WARN, "85 >= warn_at 80"),
            EvaluatedResult(
                make_result("cmd", ProbeKind.CUSTOM_COMMAND, None, success=False, error="timeout"),
                Severity.UNKNOWN,
                "timeout",
            ),
            EvaluatedResult(make_result("multi", ProbeKind.CUSTOM_COMMAND, "a\nb"), Severity.OK, "no threshold configured"),
        ],
        NOW.isoformat(),
        42,
    )


def test_render_is_deterministic():
    report = sample_report()
    assert render_text(report) == render_text(report)


def test_render_layout():
    text = render_text(sample_report())
    lines = text.splitlines()
    assert lines[0] == f"opscheck report @ {NOW.isoformat()}"
    assert lines[1].startswith("Overall: UNKNOWN | probes: 4 | ok: 2 | warn: 1 | critical: 0 | unknown: 1")
    assert "- [WARN] root disk (disk_usage): 85.0" in lines
    assert "  could not evaluate: timeout" in lines
    assert "- 1 probe(s) evaluated and unhealthy" in lines
    assert "- 1 probe(s) could not be evaluated" in lines


def test_text_parses_back():
    report = sample_report()
    parsed = parse_text(render_text(report))
    assert parsed.generated_at == report.generated_at
    assert parsed.overall_severity is Severity.UNKNOWN
    assert [(r.name, r.kind, r.severity, r.reason) for r in parsed.rows] == [
        (r.name, r.result.kind.value, r.severity, r.reason) for r in report.results
    ]
    assert [r.value for r in parsed.rows] == ["active", "85.0", None, "a\nb"]


def test_empty_report_text():
    text = render_text(seal([], NOW.isoformat(), 0))
    assert "- all probes OK" in text
    assert parse_text(text).rows == ()


def test_json_round_trip():
    report = sample_report()
    assert from_json(to_json(report)) == report
