from __future__ import annotations

import shlex

from opscheck.backends.base import run_command
from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeSpec, RawValue
from opscheck.core.redact import redact_text

from .base import Measurement, ProbeContext, param, register

MAX_OUTPUT = 4000


def _as_value(text: str) -> RawValue:
    try:
        n = float(text)
    except ValueError:
        return text
    return int(n) if n.is_integer() and "." not in text else n


@register(ProbeKind.CUSTOM_COMMAND)
def custom_command(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    if not spec.target.strip():
        raise ProbeExecutionError("command required")
    shell = bool(param(spec, "shell", False))
    try:
        cmd = spec.target if shell else shlex.split(spec.target)
    except ValueError as e:
        raise ProbeExecutionError(f"cannot parse command: {e}") from None

    r = run_command(cmd, timeout_s=ctx.budget(spec), shell=shell)
    if r.timed_out:
        raise ProbeExecutionError("timeout")

    out = redact_text(r.out)[:MAX_OUTPUT]
    detail = {"exit_code": r.rc}
    if r.err:
        detail["output"] = redact_text(r.combined)[:MAX_OUTPUT]
    if r.rc != 0:
        msg = redact_text(r.err or r.out)[:400]
        return Measurement(_as_value(out), detail, error=f"exit code {r.rc}" + (f": {msg}" if msg else ""))
    return Measurement(_as_value(out), detail)
