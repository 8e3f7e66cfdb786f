from __future__ import annotations

import json
from dataclasses import dataclass

from opscheck.core.errors import ProbeExecutionError

from .base import Backend, run_command


@dataclass(frozen=True)
class DockerBackend(Backend):
    binary: str = "docker"

    def check_available(self) -> tuple[bool, str]:
        r = run_command([self.binary, "version", "--format", "{{json .}}"], timeout_s=10)
        return (r.rc == 0, r.out or r.err)

    def inspect(self, target: str, timeout_s: float = 20) -> dict:
        r = run_command([self.binary, "inspect", target], timeout_s=timeout_s)
        if r.timed_out:
            raise ProbeExecutionError("timeout")
        if r.rc != 0 or not r.out:
            raise ProbeExecutionError(r.err or r.out or f"inspect failed for {target}")
        try:
            arr = json.loads(r.out)
        except json.JSONDecodeError:
            raise ProbeExecutionError("invalid JSON from docker inspect") from None
        if not arr:
            raise ProbeExecutionError(f"no such container: {target}")
        return arr[0]

    def state(self, target: str, timeout_s: float = 10) -> tuple[str, dict]:
        ins = self.inspect(target, timeout_s=timeout_s)
        st = ins.get("State") or {}
        detail = {"restart_count": ins.get("RestartCount", 0)}
        health = (st.get("Health") or {}).get("Status")
        if health:
            detail["health"] = health
        status = st.get("Status") or ("running" if st.get("Running") else "unknown")
        # an unhealthy container is reported by its health, not its run state
        if status == "running" and health and health != "healthy":
            status = health
        return status, detail
