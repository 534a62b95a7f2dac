"""synthops CLI — remove synths from a deployed protocol.

Usage:
    synthops remove-synths -s <key> [-s <key> ...]   Remove synths on a network
    synthops config                                  Show current configuration
    synthops --version                               Print version

Examples:
    synthops remove-synths -n goerli -s sETH -s sBTC
    synthops remove-synths -n mainnet -s sXAU -g 30 --max-priority-fee-per-gas 2
    synthops remove-synths -n mainnet -s sXAU --use-fork --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

from synthops import __version__
from synthops.chain.cast import CastRunner
from synthops.chain.contracts import ContractAccessor, resolve_signer
from synthops.core.chains import NETWORKS, ensure_network, resolve_provider_url
from synthops.core.config import Settings, get_settings
from synthops.core.errors import SynthOpsError
from synthops.core.logging import bind_run, setup_logging
from synthops.core.session import DeploymentSession
from synthops.core.types import (
    CONFIG_FILENAME,
    DEPLOYMENT_FILENAME,
    GasParams,
    RemovalReport,
    StepOutcome,
)
from synthops.pipeline.orchestrator import RemovalOrchestrator

logger = logging.getLogger(__name__)


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

_OUTCOME_COLOR = {
    StepOutcome.EXECUTED: _GREEN,
    StepOutcome.SKIPPED: _DIM,
    StepOutcome.QUEUED_FOR_OWNER: _YELLOW,
    StepOutcome.DRY_RUN: _CYAN,
    StepOutcome.ABORTED: _RED,
}


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Confirmation gate ────────────────────────────────────────────────────────


def confirm_action(prompt: str) -> bool:
    """Blocking yes/no prompt. Anything but y/yes (or EOF/^C) declines."""
    try:
        answer = input(_c(prompt, _CYAN) + "\nDo you want to continue? (y/n) ")
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer.strip().lower() in ("y", "yes")


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(
        prog="synthops",
        description="synthops — guarded synth decommissioning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")

    sub = parser.add_subparsers(dest="command")

    # ── remove-synths ────────────────────────────────────────────────────────
    remove_p = sub.add_parser("remove-synths", help="Remove a number of synths from the system")
    remove_p.add_argument(
        "-n",
        "--network",
        default=settings.default_network,
        type=str.lower,
        choices=sorted(NETWORKS),
        help=f"The network to run off (default: {settings.default_network})",
    )
    remove_p.add_argument(
        "-d",
        "--deployment-path",
        help=(
            f"Path to a folder that has your input configuration file {CONFIG_FILENAME} "
            f"and your {DEPLOYMENT_FILENAME}"
        ),
    )
    remove_p.add_argument(
        "-g",
        "--max-fee-per-gas",
        default=settings.max_fee_per_gas_gwei,
        help="Maximum base gas fee price in GWEI",
    )
    remove_p.add_argument(
        "--max-priority-fee-per-gas",
        default=settings.max_priority_fee_per_gas_gwei,
        help="Priority gas fee price in GWEI",
    )
    remove_p.add_argument(
        "-l", "--gas-limit", type=int, default=settings.gas_limit, help="Gas limit"
    )
    remove_p.add_argument(
        "-s",
        "--synths-to-remove",
        action="append",
        default=[],
        metavar="KEY",
        help="A synth to remove (repeatable)",
    )
    remove_p.add_argument("-y", "--yes", action="store_true", help="Dont prompt, just reply yes")
    remove_p.add_argument(
        "-r", "--dry-run", action="store_true", help="Dry run - no changes transacted"
    )
    remove_p.add_argument(
        "-k",
        "--use-fork",
        action="store_true",
        help="Run against a forked chain on localhost, signing as the unlocked owner",
    )
    remove_p.add_argument(
        "-p",
        "--private-key",
        help="Private key to sign with (defaults to SYNTHOPS_PRIVATE_KEY off local/fork)",
    )

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Report output ────────────────────────────────────────────────────────────


def _print_report(report: RemovalReport, quiet: bool = False) -> None:
    """Pretty-print step outcomes per synth."""
    if not quiet:
        mode = " (dry run)" if report.dry_run else ""
        print(f"\n{_BOLD}Removal run {report.run_id}{_RESET} on {report.network}{mode}")

    if report.cancelled:
        print(_c("  Operation cancelled", _DIM))
        return

    for synth in report.synths:
        state = _c(synth.state.value, _RED if synth.error and not synth.declined else _BOLD)
        print(f"  {_BOLD}{synth.synth}{_RESET}  {state}")
        if synth.declined:
            print(f"       {_DIM}declined by operator{_RESET}")
        for step in synth.steps:
            color = _OUTCOME_COLOR.get(step.outcome, "")
            line = f"       {step.contract}.{step.method}: {_c(step.outcome.value, color)}"
            if step.tx_hash:
                line += f"  {_DIM}{step.tx_hash}{_RESET}"
            if step.duplicate_owner_action:
                line += f"  {_YELLOW}(already pending){_RESET}"
            print(line)
            if step.calldata and step.outcome is StepOutcome.QUEUED_FOR_OWNER:
                print(f"       {_DIM}data: {step.calldata}{_RESET}")
        if synth.mirror_updated:
            print(f"       {_DIM}local deployment documents updated{_RESET}")

    if report.error:
        print(_c(f"\n  {report.error['code']}: {report.error['message']}", _RED), file=sys.stderr)
    print()


# ── remove-synths command ───────────────────────────────────────────────────


def _run_remove_synths(
    args: argparse.Namespace, settings: Settings, log_handler: logging.Handler
) -> int:
    network = ensure_network(args.network)
    deployment_path = Path(args.deployment_path or Path(settings.deployment_root) / network.name)

    if not args.synths_to_remove:
        logger.info("No synths provided. Please use --synths-to-remove option")
        return 0

    session = DeploymentSession.load(deployment_path, read_only=args.dry_run)

    # A local node or fork signs as the unlocked owner unless a key is passed.
    private_key = args.private_key
    if not private_key and not network.is_local and not args.use_fork:
        private_key = settings.private_key or None

    runner = CastRunner(
        resolve_provider_url(network, settings, use_fork=args.use_fork),
        foundry_bin_path=settings.foundry_bin_path,
        timeout_seconds=settings.cast_timeout_seconds,
    )
    signer = resolve_signer(runner, private_key, settings.owner_address or None)

    run_id = str(uuid.uuid4())
    bind_run(log_handler, run_id, network.name)

    orchestrator = RemovalOrchestrator(
        session,
        ContractAccessor(session, runner, signer),
        signer.address,
        network,
        GasParams(
            gas_limit=args.gas_limit,
            max_fee_per_gas=args.max_fee_per_gas,
            max_priority_fee_per_gas=args.max_priority_fee_per_gas,
        ),
        confirm_action,
        dry_run=args.dry_run,
        yes=args.yes,
        base_synth=settings.base_synth,
        protected_synths=settings.protected_synths,
    )
    report = orchestrator.run(args.synths_to_remove, run_id=run_id)
    _print_report(report, quiet=args.quiet)
    return report.exit_code


# ── Config command ───────────────────────────────────────────────────────────


_SECRET_SETTINGS = ("private_key", "infura_api_key")


def _run_config(settings: Settings) -> int:
    """Print the effective settings with secrets masked."""
    print(f"\n{_BOLD}synthops {__version__}{_RESET} ({settings.app_env})\n")
    values = settings.model_dump()
    width = max(len(name) for name in values)
    for name, value in values.items():
        if name in _SECRET_SETTINGS:
            value = "set" if value else "unset"
        print(f"  {_DIM}{name.ljust(width)}{_RESET}  {value}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if args.version:
        print(f"synthops {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        return _run_config(settings)

    log_handler = setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if args.command == "remove-synths":
        try:
            return _run_remove_synths(args, settings, log_handler)
        except SynthOpsError as exc:
            logger.error("%s", exc.message)
            print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
            return exc.code.exit_code

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
