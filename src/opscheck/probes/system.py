from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from pathlib import Path

import psutil

from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeSpec

from .base import Measurement, ProbeContext, param, register


@register(ProbeKind.DISK_USAGE)
def disk_usage(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    path = spec.target or "/"
    if not os.path.exists(path):
        raise ProbeExecutionError(f"path does not exist: {path}")
    u = psutil.disk_usage(path)
    return Measurement(
        round(u.percent, 1),
        {"path": path, "free_gb": round(u.free / 1024**3, 2), "total_gb": round(u.total / 1024**3, 2)},
    )


@register(ProbeKind.MEMORY_USAGE)
def memory_usage(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    vm = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return Measurement(round(vm.percent, 1), {"swap_percent": round(swap.percent, 1)})


@register(ProbeKind.AVAILABLE_MEMORY)
def available_memory(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    vm = psutil.virtual_memory()
    pct = vm.available * 100.0 / vm.total if vm.total else 0.0
    return Measurement(round(pct, 1), {"available_gb": round(vm.available / 1024**3, 2)})


@register(ProbeKind.LOAD_AVERAGE)
def load_average(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    load1, load5, load15 = psutil.getloadavg()
    cores = psutil.cpu_count() or 1
    return Measurement(
        round(load1 / cores, 2),
        {"load1": round(load1, 2), "load5": round(load5, 2), "load15": round(load15, 2), "cores": cores},
    )


@register(ProbeKind.UPTIME_DAYS)
def uptime_days(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    booted = datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc)
    days = (ctx.clock() - booted).total_seconds() / 86400.0
    return Measurement(round(max(days, 0.0), 2), {"boot_time": booted.isoformat()})


def _matching_processes(target: str) -> list[psutil.Process]:
    if target.isdigit():
        try:
            return [psutil.Process(int(target))]
        except psutil.NoSuchProcess:
            return []
    procs = []
    for p in psutil.process_iter(["name"]):
        if p.info.get("name") == target:
            procs.append(p)
    return procs


@register(ProbeKind.PROCESS_RESOURCE)
def process_resource(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    if not spec.target:
        raise ProbeExecutionError("process name or PID required")
    metric = str(param(spec, "metric", "cpu")).lower()
    if metric not in ("cpu", "memory"):
        raise ProbeExecutionError(f"unknown metric: {metric}")
    sample_s = min(float(param(spec, "sample_seconds", 0.5)), ctx.budget(spec) / 2)

    procs = _matching_processes(spec.target)
    if not procs:
        raise ProbeExecutionError(f"process not found: {spec.target}")

    cpu = mem = 0.0
    pids: list[int] = []
    for p in procs:
        try:
            with p.oneshot():
                p.cpu_percent(None)
                mem += p.memory_percent()
            pids.append(p.pid)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            raise ProbeExecutionError(f"permission denied reading process {p.pid}") from e
    if not pids:
        raise ProbeExecutionError(f"process not found: {spec.target}")

    # cpu_percent needs two samples; the first call above primes the counters
    if sample_s > 0:
        time.sleep(sample_s)
    for p in procs:
        if p.pid not in pids:
            continue
        try:
            cpu += p.cpu_percent(None)
        except psutil.NoSuchProcess:
            continue

    detail = {"cpu_percent": round(cpu, 1), "memory_percent": round(mem, 1), "pids": pids}
    value = detail["memory_percent"] if metric == "memory" else detail["cpu_percent"]
    return Measurement(value, detail)


@register(ProbeKind.FILE_AGE)
def file_age(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    """Hours since the newest file matching ``pattern`` under ``target``."""
    root = Path(spec.target)
    if not root.is_dir():
        raise ProbeExecutionError(f"directory does not exist: {root}")
    pattern = str(param(spec, "pattern", "*"))
    glob = root.rglob if param(spec, "recursive", True) else root.glob

    newest = None
    newest_mtime = 0.0
    for p in glob(pattern):
        if not p.is_file():
            continue
        mtime = p.stat().st_mtime
        if newest is None or mtime > newest_mtime:
            newest, newest_mtime = p, mtime
    if newest is None:
        raise ProbeExecutionError(f"no files matching {pattern} in {root}")

    modified = datetime.fromtimestamp(newest_mtime, tz=timezone.utc)
    hours = (ctx.clock() - modified).total_seconds() / 3600.0
    return Measurement(round(max(hours, 0.0), 2), {"newest": str(newest), "modified": modified.isoformat()})
