from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from typing import Optional

from opscheck import __version__
from opscheck.backends.docker import DockerBackend
from opscheck.backends.linux import LinuxBackend
from opscheck.config import Config, check_report_path, load_config
from opscheck.core.errors import ConfigError
from opscheck.core.models import ProbeKind, Severity
from opscheck.log import setup_logging
from opscheck.output.jsonout import to_json
from opscheck.output.text import render_text
from opscheck.runner import EXIT_CONFIG, CycleOutcome, Runner


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("-c", "--config", help="YAML or JSON configuration file")
    p.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a configuration value, e.g. thresholds.disk_usage.warn_at=70",
    )
    p.add_argument("--json", action="store_true", help="Print the JSON report instead of text")
    p.add_argument("-o", "--output", help="Report destination (may contain {timestamp} and {format})")
    p.add_argument("-v", "--verbose", action="store_true", help="Log INFO messages to stderr")
    p.add_argument("--log-file", help="Append log messages to this file")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="opscheck",
        description="Service health and log analysis reporting tool",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one reporting cycle")
    _add_common(run)

    watch = sub.add_parser("watch", help="Run reporting cycles on a fixed interval")
    _add_common(watch)
    watch.add_argument("--interval", type=float, required=True, help="Seconds between cycles")
    watch.add_argument("--count", type=int, default=None, help="Stop after this many cycles")

    validate = sub.add_parser("validate", help="Load and check the configuration")
    _add_common(validate)
    return ap


def _load(args: argparse.Namespace) -> Config:
    config = load_config(args.config, args.overrides)
    if args.output:
        path = check_report_path(args.output, "--output")
        config = replace(config, settings=replace(config.settings, report_path=path))
    return config


def _print_outcome(outcome: CycleOutcome, as_json: bool) -> None:
    report = outcome.report
    print(to_json(report) if as_json else render_text(report), end="\n" if as_json else "")
    for r in report.problems:
        if r.severity is Severity.UNKNOWN:
            print(f"opscheck: could not evaluate {r.name}: {r.reason}", file=sys.stderr)
        else:
            print(f"opscheck: unhealthy {r.name} [{r.severity.value}]: {r.reason}", file=sys.stderr)
    if outcome.write_error:
        print(f"opscheck: report not written: {outcome.write_error}", file=sys.stderr)


def _print_backends(config: Config) -> None:
    kinds = {p.kind for p in config.probes}
    checks = [
        (ProbeKind.SERVICE_STATUS, "service manager", LinuxBackend()),
        (ProbeKind.CONTAINER_STATUS, "docker", DockerBackend()),
    ]
    for kind, label, backend in checks:
        if kind in kinds:
            ok, info = backend.check_available()
            print(f"{label}: {'available' if ok else 'unavailable'} ({info.splitlines()[0] if info else '-'})")


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "watch" and args.interval <= 0:
        parser.error("--interval must be positive")
    setup_logging(args.verbose, args.log_file)

    try:
        config = _load(args)
    except ConfigError as e:
        print(f"opscheck: configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "validate":
        print(f"Configuration OK: {len(config.probes)} probe(s)")
        for p in config.probes:
            print(f"- {p.name} ({p.kind.value}) {p.target}".rstrip())
        _print_backends(config)
        return 0

    runner = Runner(config)
    if args.command == "run":
        outcome = runner.run_once()
        _print_outcome(outcome, args.json)
        return outcome.exit_code

    runner.install_signal_handlers()
    return runner.watch(
        args.interval,
        max_cycles=args.count,
        on_cycle=lambda outcome: _print_outcome(outcome, args.json),
    )


if __name__ == "__main__":
    sys.exit(main())
