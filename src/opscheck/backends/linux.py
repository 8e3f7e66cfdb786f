from __future__ import annotations

from opscheck.backends.base import Backend, CmdResult, run_command
from opscheck.core.errors import ProbeExecutionError


class LinuxBackend(Backend):
    """Service manager backend for systemd hosts.

    ``target`` is a unit name; ``.service`` is implied when no suffix is given.
    """

    def _systemctl(self, args: list[str], timeout_s: float) -> CmdResult:
        return run_command(["systemctl", *args], timeout_s=timeout_s)

    def check_available(self) -> tuple[bool, str]:
        r = self._systemctl(["--version"], timeout_s=5)
        ok = r.rc == 0
        return (ok, "systemctl found" if ok else "systemctl not found (systemd required)")

    def state(self, target: str, timeout_s: float = 10) -> tuple[str, dict]:
        r = self._systemctl(
            ["show", target, "--property=ActiveState,SubState,LoadState", "--no-pager"],
            timeout_s=timeout_s,
        )
        if r.timed_out:
            raise ProbeExecutionError("timeout")
        if r.rc != 0:
            raise ProbeExecutionError(r.err or r.out or f"systemctl show failed for {target}")

        props: dict[str, str] = {}
        for line in r.out.splitlines():
            k, sep, v = line.partition("=")
            if sep:
                props[k.strip()] = v.strip()

        # systemd reports unknown units as inactive with LoadState=not-found
        if props.get("LoadState") == "not-found":
            return "unknown", {"load_state": "not-found"}
        active = props.get("ActiveState")
        if not active:
            raise ProbeExecutionError(f"no ActiveState reported for {target}")
        return active, {"sub_state": props.get("SubState", "")}
