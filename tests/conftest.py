from datetime import datetime, timezone

import pytest

from opscheck.backends.base import Backend
from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeResult, ProbeSpec
from opscheck.probes import ProbeContext

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeBackend(Backend):
    """Service/container backend answering from a dict."""

    def __init__(self, states=None):
        self.states = dict(states or {})
        self.calls = []

    def check_available(self):
        return True, "fake"

    def state(self, target, timeout_s=10):
        self.calls.append(target)
        if target not in self.states:
            raise ProbeExecutionError(f"unit not found: {target}")
        return self.states[target], {}


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def services():
    return FakeBackend({"nginx": "active", "mysql": "failed", "cron": "activating"})


@pytest.fixture
def ctx(clock, services):
    return ProbeContext(services=services, containers=FakeBackend({"web": "running"}), default_timeout=5, clock=clock)


def make_result(name="probe", kind=ProbeKind.DISK_USAGE, value=None, success=True, error=None):
    return ProbeResult(
        name=name,
        kind=kind,
        timestamp=NOW.isoformat(),
        raw_value=value,
        success=success,
        error_detail=error,
    )


def make_spec(name, kind=ProbeKind.CUSTOM_COMMAND, target="", **kw):
    return ProbeSpec(name=name, kind=kind, target=target, **kw)
