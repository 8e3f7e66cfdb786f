from __future__ import annotations

from typing import Optional

from opscheck.backends.base import Backend
from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeSpec

from .base import Measurement, ProbeContext, register


def _state(backend: Optional[Backend], spec: ProbeSpec, ctx: ProbeContext, what: str) -> Measurement:
    if backend is None:
        raise ProbeExecutionError(f"no {what} backend configured")
    if not spec.target:
        raise ProbeExecutionError(f"{what} name required")
    state, detail = backend.state(spec.target, timeout_s=ctx.budget(spec))
    return Measurement(state, detail)


@register(ProbeKind.SERVICE_STATUS)
def service_status(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    return _state(ctx.services, spec, ctx, "service")


@register(ProbeKind.CONTAINER_STATUS)
def container_status(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    return _state(ctx.containers, spec, ctx, "container")
