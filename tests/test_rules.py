import pytest

from opscheck.core.models import ProbeKind, Severity, ThresholdRule
from opscheck.core.rules import NO_THRESHOLD, RuleBook, default_rules, evaluate

from .conftest import make_result

DISK = ThresholdRule(warn_at=80, critical_at=90)
SERVICE = default_rules()[ProbeKind.SERVICE_STATUS]


def test_active_service_is_ok():
    r = make_result("nginx", ProbeKind.SERVICE_STATUS, "active")
    assert evaluate(r, SERVICE).severity is Severity.OK


def test_failed_service_is_critical():
    r = make_result("nginx", ProbeKind.SERVICE_STATUS, "failed")
    e = evaluate(r, SERVICE)
    assert e.severity is Severity.CRITICAL
    assert "failed" in e.reason


def test_unexpected_service_state_warns():
    e = evaluate(make_result("cron", ProbeKind.SERVICE_STATUS, "activating"), SERVICE)
    assert e.severity is Severity.WARN
    assert e.reason == "unexpected status: activating"


@pytest.mark.parametrize(
    "value,expected",
    [(10, Severity.OK), (79.9, Severity.OK), (80, Severity.WARN), (85, Severity.WARN), (90, Severity.CRITICAL), (100, Severity.CRITICAL)],
)
def test_disk_usage_thresholds(value, expected):
    assert evaluate(make_result("root", ProbeKind.DISK_USAGE, value), DISK).severity is expected


def test_disk_usage_85_warns_with_reason():
    e = evaluate(make_result("root", ProbeKind.DISK_USAGE, 85), DISK)
    assert e.severity is Severity.WARN
    assert "warn_at 80" in e.reason


def test_available_memory_uses_less_than():
    rule = default_rules()[ProbeKind.AVAILABLE_MEMORY]
    assert evaluate(make_result("mem", ProbeKind.AVAILABLE_MEMORY, 50), rule).severity is Severity.OK
    assert evaluate(make_result("mem", ProbeKind.AVAILABLE_MEMORY, 12), rule).severity is Severity.WARN
    assert evaluate(make_result("mem", ProbeKind.AVAILABLE_MEMORY, 3), rule).severity is Severity.CRITICAL


@pytest.mark.parametrize("rule", [None, DISK, SERVICE, ThresholdRule(warn_at=0, critical_at=0)])
def test_failed_probe_is_always_unknown(rule):
    r = make_result("x", ProbeKind.DISK_USAGE, 99, success=False, error="timeout")
    e = evaluate(r, rule)
    assert e.severity is Severity.UNKNOWN
    assert e.reason == "timeout"


def test_missing_rule_fails_open():
    e = evaluate(make_result("cmd", ProbeKind.CUSTOM_COMMAND, "whatever"), None)
    assert e.severity is Severity.OK
    assert e.reason == NO_THRESHOLD


def test_non_numeric_value_is_unknown():
    e = evaluate(make_result("cmd", ProbeKind.CUSTOM_COMMAND, "n/a"), ThresholdRule(warn_at=1))
    assert e.severity is Severity.UNKNOWN
    assert "non-numeric" in e.reason


def test_evaluation_is_pure():
    r = make_result("root", ProbeKind.DISK_USAGE, 91)
    assert evaluate(r, DISK) == evaluate(r, DISK)


def test_reason_present_for_every_non_ok():
    values = [0, 50, 80, 95, "x", None]
    for v in values:
        e = evaluate(make_result("root", ProbeKind.DISK_USAGE, v), DISK)
        if e.severity is not Severity.OK:
            assert e.reason


def test_rulebook_prefers_name_then_kind():
    special = ThresholdRule(warn_at=50, critical_at=60)
    book = RuleBook(by_name={"data": special})
    assert book.resolve("data", ProbeKind.DISK_USAGE) == special
    assert book.resolve("root", ProbeKind.DISK_USAGE) == default_rules()[ProbeKind.DISK_USAGE]
    assert book.resolve("cmd", ProbeKind.CUSTOM_COMMAND) is None


def test_merged_keeps_unset_fields():
    base = ThresholdRule(warn_at=80, critical_at=90)
    assert base.merged(ThresholdRule(warn_at=70)) == ThresholdRule(warn_at=70, critical_at=90)


def test_name_rule_layers_over_kind_rule():
    book = RuleBook(by_name={"data": ThresholdRule(warn_at=70), "cmd": ThresholdRule(warn_at=3)})
    rule = book.resolve("data", ProbeKind.DISK_USAGE)
    assert rule == ThresholdRule(warn_at=70, critical_at=90)
    assert evaluate(make_result("data", ProbeKind.DISK_USAGE, 95), rule).severity is Severity.CRITICAL
    assert evaluate(make_result("data", ProbeKind.DISK_USAGE, 75), rule).severity is Severity.WARN
    assert book.resolve("cmd", ProbeKind.CUSTOM_COMMAND) == ThresholdRule(warn_at=3)
