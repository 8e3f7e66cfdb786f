from __future__ import annotations

import os
import signal
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Union

TIMEOUT_RC = 124
NOT_FOUND_RC = 127


@dataclass(frozen=True)
class CmdResult:
    rc: int
    out: str
    err: str

    @property
    def timed_out(self) -> bool:
        return self.rc == TIMEOUT_RC and self.err == "timeout"

    @property
    def combined(self) -> str:
        return "\n".join(s for s in (self.out, self.err) if s)


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


def run_command(
    cmd: Union[Sequence[str], str],
    timeout_s: float,
    shell: bool = False,
    stdin: Optional[str] = None,
) -> CmdResult:
    """Run *cmd*, capturing output.

    The child gets its own session; on timeout the whole process group is
    killed, so shell pipelines do not outlive the probe.
    """
    try:
        proc = subprocess.Popen(
            cmd,
            shell=shell,
            stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except FileNotFoundError:
        name = cmd if isinstance(cmd, str) else cmd[0]
        return CmdResult(NOT_FOUND_RC, "", f"Command not found: {name}")
    except PermissionError as e:
        return CmdResult(126, "", f"Permission denied: {e.filename or cmd}")

    try:
        out, err = proc.communicate(input=stdin, timeout=timeout_s)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.communicate()
        return CmdResult(TIMEOUT_RC, "", "timeout")
    return CmdResult(proc.returncode, (out or "").strip(), (err or "").strip())


class Backend(ABC):
    @abstractmethod
    def check_available(self) -> tuple[bool, str]:
        ...

    @abstractmethod
    def state(self, target: str, timeout_s: float = 10) -> tuple[str, dict]:
        """Return the reported state of *target* and any extra detail.

        Raises ProbeExecutionError when the state cannot be read.
        """
        ...
