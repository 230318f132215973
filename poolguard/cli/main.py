"""poolguard CLI — AMM pool invariant harness.

Usage:
    poolguard run                      Run the default suite against a simulated pool
    poolguard run --scenario KIND      Run only the scenarios of the given kind(s)
    poolguard config                   Show current configuration
    poolguard --version                Print version

Examples:
    poolguard run
    poolguard run --scenario flash_loan --scenario reentrancy
    poolguard run --format json -o results.json
    poolguard run --parallel
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from poolguard.core.errors import ConfigurationError
from poolguard.core.types import ScenarioKind, SuiteReport

VERSION = "0.1.0"


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = f"""
{_BOLD}{_CYAN}poolguard{_RESET} {_DIM}AMM pool invariant harness v{VERSION}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="poolguard",
        description="poolguard — adversarial invariant harness for concentrated-liquidity pools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── run ──────────────────────────────────────────────────────────────────
    run_p = sub.add_parser("run", help="Run scenarios and check invariants")
    run_p.add_argument(
        "--scenario",
        "-s",
        action="append",
        choices=[k.value for k in ScenarioKind],
        help="Scenario kind to run (repeatable; default: all)",
    )
    run_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json"],
        help="Output format (default: table)",
    )
    run_p.add_argument("--output", "-o", help="Write output to file instead of stdout")
    run_p.add_argument(
        "--parallel",
        action="store_true",
        help="Run each scenario on its own pool, concurrently",
    )

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Output ───────────────────────────────────────────────────────────────────


def _print_table(report: SuiteReport, quiet: bool = False) -> None:
    """Pretty-print one line per scenario, plus violation details."""
    for result in report.results:
        mark = _c("PASS", _GREEN) if result.passed else _c("FAIL", _RED + _BOLD)
        outcome = f"reverted ({result.revert_reason})" if result.reverted else "completed"
        print(
            f"  {mark}  {_c(result.spec.label, _BOLD):<40} "
            f"{_DIM}{result.spec.kind.value} · {outcome} · "
            f"{len(result.invariant_verdicts)} checks · {result.duration_seconds * 1000:.0f}ms{_RESET}"
        )
        for violation in result.violations:
            print(f"        {_c('✗', _RED)} {violation.name}: {_DIM}{violation.detail}{_RESET}")
        if not quiet:
            for warning in result.warnings:
                print(f"        {_c('!', _YELLOW)} {warning}")

    for skipped in report.skipped:
        print(f"  {_c('SKIP', _YELLOW)}  {skipped}")

    print()
    if report.violation_count:
        print(_c(f"  {report.violation_count} invariant violation(s)", _RED + _BOLD))
    else:
        print(_c(f"  ✓ All invariants held across {len(report.results)} scenario(s).", _GREEN))


# ── Run command ──────────────────────────────────────────────────────────────


def _run_scenarios(args: argparse.Namespace) -> int:
    """Deploy simulated pools, run the suite and print results."""
    from poolguard.core.config import get_settings
    from poolguard.core.logging import setup_logging
    from poolguard.core.types import CallerIdentities
    from poolguard.pipeline.orchestrator import ScenarioOrchestrator
    from poolguard.pipeline.parallel import ParallelScenarioRunner
    from poolguard.pipeline.suites import default_suite
    from poolguard.pool.facade import PoolFacade
    from poolguard.pool.simulated import deploy_simulated_pool

    settings = get_settings()
    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)
    identities = CallerIdentities.from_settings(settings)

    specs = default_suite(settings)
    if args.scenario:
        wanted = set(args.scenario)
        specs = [s for s in specs if s.kind.value in wanted]

    try:
        if args.parallel:
            runner = ParallelScenarioRunner(
                lambda: deploy_simulated_pool(settings, identities), identities, settings,
            )
            report = asyncio.run(runner.run(specs))
        else:
            facade = PoolFacade(deploy_simulated_pool(settings, identities))
            report = ScenarioOrchestrator(facade, identities, settings).run_suite(specs)
    except ConfigurationError as exc:
        print(_c(f"Configuration error: {exc}", _RED), file=sys.stderr)
        return 2

    if args.format == "json":
        output = json.dumps(report.to_dict(), indent=2, default=str)
        if args.output:
            Path(args.output).write_text(output)
            if not args.quiet:
                print(f"  Written to {_c(args.output, _CYAN)}")
        else:
            print(output)
    else:
        _print_table(report, quiet=args.quiet)

    return report.exit_code


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings."""
    from poolguard.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}poolguard configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        print(f"  {_DIM}{field_name}:{_RESET}  {getattr(s, field_name, '')}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"poolguard {VERSION}")
        return 0

    if not args.no_banner and not args.quiet:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        return _run_config()

    if args.command == "run":
        return _run_scenarios(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
