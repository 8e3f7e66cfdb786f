from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from opscheck.core.errors import ConfigError
from opscheck.core.models import ProbeKind, ProbeSpec, Severity, ThresholdRule
from opscheck.core.rules import RuleBook, default_rules
from opscheck.probes.base import DEFAULT_TIMEOUT_S

DEFAULT_REPORT_PATH = "reports/opscheck-{timestamp}.{format}"
REPORT_FORMATS = ("text", "json")
SINK_TYPES = ("log", "webhook", "command")


@dataclass(frozen=True)
class SinkConfig:
    type: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotifyConfig:
    min_severity: Severity = Severity.WARN
    sinks: tuple[SinkConfig, ...] = ()


@dataclass(frozen=True)
class Settings:
    concurrency: int = 8
    timeout: float = DEFAULT_TIMEOUT_S
    cycle_timeout: Optional[float] = None
    report_path: Optional[str] = DEFAULT_REPORT_PATH
    report_format: str = "text"
    state_path: Optional[str] = None
    notify: NotifyConfig = field(default_factory=NotifyConfig)


@dataclass(frozen=True)
class Config:
    probes: tuple[ProbeSpec, ...]
    settings: Settings = field(default_factory=Settings)
    kind_rules: dict[ProbeKind, ThresholdRule] = field(default_factory=default_rules)

    def rulebook(self) -> RuleBook:
        by_name = {p.name: p.threshold for p in self.probes if p.threshold is not None}
        return RuleBook(by_name=by_name, by_kind=self.kind_rules)


def check_unique_names(specs) -> None:
    seen: set[str] = set()
    dupes: list[str] = []
    for s in specs:
        if s.name in seen and s.name not in dupes:
            dupes.append(s.name)
        seen.add(s.name)
    if dupes:
        raise ConfigError(f"duplicate probe names: {', '.join(dupes)}")


def check_report_path(template: Any, where: str = "settings.report_path") -> Optional[str]:
    """Dry-run the destination template; only {timestamp} and {format} are known."""
    if template is None:
        return None
    template = str(template)
    try:
        template.format(timestamp="x", format="txt")
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(
            f"{where}: invalid template {template!r} ({type(e).__name__}: {e}); "
            "use {timestamp} and {format} only, doubling literal braces"
        ) from None
    return template


def _number(value: Any, where: str, positive: bool = False) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{where}: expected a number, got {value!r}")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where}: expected a number, got {value!r}") from None
    if positive and n <= 0:
        raise ConfigError(f"{where}: must be positive")
    return n


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return value


def _values(value: Any, where: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        raise ConfigError(f"{where}: expected a list of values")
    return frozenset(str(v) for v in value)


def parse_rule(data: Any, where: str) -> ThresholdRule:
    data = _mapping(data, where)
    unknown = set(data) - {"warn_at", "critical_at", "allowed", "critical_values"}
    if unknown:
        raise ConfigError(f"{where}: unknown keys {sorted(unknown)}")
    warn = data.get("warn_at")
    crit = data.get("critical_at")
    return ThresholdRule(
        warn_at=None if warn is None else _number(warn, f"{where}.warn_at"),
        critical_at=None if crit is None else _number(crit, f"{where}.critical_at"),
        allowed=_values(data.get("allowed"), f"{where}.allowed"),
        critical_values=_values(data.get("critical_values"), f"{where}.critical_values"),
    )


def parse_kind(value: Any, where: str) -> ProbeKind:
    try:
        return ProbeKind(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(k.value for k in ProbeKind)
        raise ConfigError(f"{where}: unknown kind {value!r} (expected one of: {choices})") from None


def parse_probe(data: Any, index: int) -> ProbeSpec:
    where = f"probes[{index}]"
    data = _mapping(data, where)
    name = str(data.get("name") or "").strip()
    if not name:
        raise ConfigError(f"{where}: name is required")
    where = f"probes[{name}]"
    if "kind" not in data:
        raise ConfigError(f"{where}: kind is required")
    timeout = data.get("timeout")
    threshold = data.get("threshold")
    return ProbeSpec(
        name=name,
        kind=parse_kind(data["kind"], where),
        target=str(data.get("target") or ""),
        parameters=dict(_mapping(data.get("parameters"), f"{where}.parameters")),
        timeout=None if timeout is None else _number(timeout, f"{where}.timeout", positive=True),
        threshold=None if threshold is None else parse_rule(threshold, f"{where}.threshold"),
    )


def parse_notify(data: Any) -> NotifyConfig:
    data = _mapping(data, "settings.notify")
    try:
        min_sev = Severity.parse(data.get("min_severity", "WARN"))
    except ValueError as e:
        raise ConfigError(f"settings.notify.min_severity: {e}") from None
    sinks = []
    for i, raw in enumerate(data.get("sinks") or []):
        raw = dict(_mapping(raw, f"settings.notify.sinks[{i}]"))
        kind = str(raw.pop("type", "")).lower()
        if kind not in SINK_TYPES:
            raise ConfigError(f"settings.notify.sinks[{i}]: unknown type {kind!r}")
        if kind == "webhook" and not raw.get("url"):
            raise ConfigError(f"settings.notify.sinks[{i}]: webhook requires url")
        if kind == "command" and not raw.get("command"):
            raise ConfigError(f"settings.notify.sinks[{i}]: command sink requires command")
        sinks.append(SinkConfig(kind, raw))
    return NotifyConfig(min_severity=min_sev, sinks=tuple(sinks))


def parse_settings(data: Any) -> Settings:
    data = _mapping(data, "settings")
    concurrency = int(_number(data.get("concurrency", 8), "settings.concurrency", positive=True))
    cycle_timeout = data.get("cycle_timeout")
    fmt = str(data.get("report_format", "text")).lower()
    if fmt not in REPORT_FORMATS:
        raise ConfigError(f"settings.report_format: expected one of {REPORT_FORMATS}")
    return Settings(
        concurrency=concurrency,
        timeout=_number(data.get("timeout", DEFAULT_TIMEOUT_S), "settings.timeout", positive=True),
        cycle_timeout=None
        if cycle_timeout is None
        else _number(cycle_timeout, "settings.cycle_timeout", positive=True),
        report_path=check_report_path(data.get("report_path", DEFAULT_REPORT_PATH)),
        report_format=fmt,
        state_path=data.get("state_path"),
        notify=parse_notify(data.get("notify")),
    )


def build_config(data: Any) -> Config:
    data = _mapping(data, "config")
    probes_raw = data.get("probes") or []
    if not isinstance(probes_raw, list):
        raise ConfigError("probes: expected a list")
    probes = tuple(parse_probe(p, i) for i, p in enumerate(probes_raw))
    check_unique_names(probes)

    kind_rules = default_rules()
    for key, raw in _mapping(data.get("thresholds"), "thresholds").items():
        kind = parse_kind(key, "thresholds")
        rule = parse_rule(raw, f"thresholds.{kind.value}")
        base = kind_rules.get(kind)
        kind_rules[kind] = base.merged(rule) if base else rule

    return Config(probes=probes, settings=parse_settings(data.get("settings")), kind_rules=kind_rules)


def read_config_file(path: str | Path) -> dict:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yml", ".yaml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e.strerror or e}") from None
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"invalid config {path}: {e}") from None
    return data or {}


def apply_override(data: dict, assignment: str) -> dict:
    """Apply one ``dotted.path=value`` override and return the new mapping.

    The value is parsed as YAML, so numbers, booleans and lists keep their
    type. Inside ``probes`` a path segment selects a probe by name.
    """
    key, sep, raw = assignment.partition("=")
    if not sep or not key.strip():
        raise ConfigError(f"invalid override {assignment!r}: expected key=value")
    try:
        value = yaml.safe_load(raw) if raw.strip() else None
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid override value in {assignment!r}: {e}") from None

    out = copy.deepcopy(data)
    parts = key.strip().split(".")
    node: Any = out
    for i, part in enumerate(parts[:-1]):
        if isinstance(node, list):
            match = [p for p in node if isinstance(p, dict) and p.get("name") == part]
            if not match:
                raise ConfigError(f"override {key}: no probe named {part!r}")
            node = match[0]
            continue
        if not isinstance(node, dict):
            raise ConfigError(f"override {key}: {'.'.join(parts[:i])} is not a mapping")
        node = node.setdefault(part, {})
    if not isinstance(node, dict):
        raise ConfigError(f"override {key}: cannot set {parts[-1]!r} here")
    node[parts[-1]] = value
    return out


def load_config(path: str | Path | None, overrides: Optional[list[str]] = None) -> Config:
    data = read_config_file(path) if path else {}
    for item in overrides or []:
        data = apply_override(data, item)
    return build_config(data)
