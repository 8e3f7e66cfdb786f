from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from opscheck.backends.base import Backend
from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeResult, ProbeSpec, RawValue

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0

# Share of the probe timeout handed to subprocesses and sockets, so they end
# before invoke_probe stops waiting on the handler thread.
BUDGET_SHARE = 0.8

_abandoned: dict[threading.Thread, str] = {}
_abandoned_lock = threading.Lock()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Measurement:
    value: RawValue
    detail: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass(frozen=True)
class ProbeContext:
    """Collaborators shared by every handler during a cycle."""

    services: Optional[Backend] = None
    containers: Optional[Backend] = None
    default_timeout: float = DEFAULT_TIMEOUT_S
    clock: Callable[[], datetime] = utc_now

    def timeout_for(self, spec: ProbeSpec) -> float:
        return spec.timeout if spec.timeout is not None else self.default_timeout

    def budget(self, spec: ProbeSpec) -> float:
        return self.timeout_for(spec) * BUDGET_SHARE


Handler = Callable[[ProbeSpec, ProbeContext], Measurement]

HANDLERS: dict[ProbeKind, Handler] = {}


def register(kind: ProbeKind) -> Callable[[Handler], Handler]:
    def deco(fn: Handler) -> Handler:
        HANDLERS[kind] = fn
        return fn

    return deco


def param(spec: ProbeSpec, key: str, default: Any = None) -> Any:
    return spec.parameters.get(key, default)


def abandoned_probes() -> list[str]:
    """Names of timed-out probes whose handler thread is still running."""
    with _abandoned_lock:
        for t in [t for t in _abandoned if not t.is_alive()]:
            del _abandoned[t]
        return sorted(_abandoned.values())


def failed(spec: ProbeSpec, timestamp: str, detail: str) -> ProbeResult:
    return ProbeResult(
        name=spec.name,
        kind=spec.kind,
        timestamp=timestamp,
        success=False,
        error_detail=detail,
    )


def invoke_probe(spec: ProbeSpec, ctx: ProbeContext) -> ProbeResult:
    """Run one probe under its timeout.

    Expected failures (missing target, permission, timeout) come back as a
    ``success=False`` result. Anything else is re-raised for the caller.
    """
    timestamp = ctx.clock().isoformat()
    handler = HANDLERS.get(spec.kind)
    if handler is None:
        return failed(spec, timestamp, f"no handler for kind {spec.kind.value}")

    timeout = ctx.timeout_for(spec)
    box: dict[str, Any] = {}

    def target() -> None:
        try:
            box["m"] = handler(spec, ctx)
        except Exception as e:
            box["e"] = e

    t = threading.Thread(target=target, name=f"probe-{spec.name}", daemon=True)
    t.start()
    t.join(timeout)

    if t.is_alive():
        with _abandoned_lock:
            _abandoned[t] = spec.name
        logger.warning("Probe %s timed out after %ss; thread %s left running", spec.name, timeout, t.name)
        return failed(spec, timestamp, "timeout")

    err = box.get("e")
    if err is not None:
        if isinstance(err, (ProbeExecutionError, OSError)):
            logger.debug("Probe %s failed: %s", spec.name, err)
            return failed(spec, timestamp, str(err) or type(err).__name__)
        raise err

    m: Measurement = box["m"]
    logger.debug("Probe %s -> %r", spec.name, m.value)
    return ProbeResult(
        name=spec.name,
        kind=spec.kind,
        timestamp=timestamp,
        raw_value=m.value,
        success=m.error is None,
        error_detail=m.error,
        detail=dict(m.detail),
    )
