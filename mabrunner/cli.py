#!/usr/bin/env python3
"""
mabrunner/cli.py - Command line interface for mab-runner

Usage:
    mab-runner init --agents <N> [--seed <S>]
    mab-runner select
    mab-runner update <agent_id> <score>
    mab-runner status
    mab-runner winner
    mab-runner reset

Successful commands print one line of JSON on stdout. Failures print one
"Error: ..." line on stderr (argument errors follow it with the usage line)
and exit with:
    1  bad arguments / unknown command / bad score
    2  tournament not initialized
    3  unknown agent id
    4  state file corrupted
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from mabrunner.config import load_config, resolve_state_path
from mabrunner.errors import InvalidScoreError, MabRunnerError, UsageError
from mabrunner.state import StateStore
from mabrunner.tournament import Tournament

logger = logging.getLogger(__name__)

EPILOG = """\
typical loop:
  mab-runner reset
  mab-runner init --agents 5 --seed 42
  agent=$(mab-runner select | tr -d '"')
  mab-runner update "$agent" 0.83
  mab-runner winner | jq .complete
"""


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on bad input; we need 2 for "not initialized"."""

    def error(self, message):
        raise UsageError(message, usage=self.format_usage())


def _emit(result) -> None:
    print(json.dumps(result))


# ============================================================================
# Commands
# ============================================================================


def cmd_init(args, tournament: Tournament) -> int:
    _emit(tournament.init(args.agents, args.seed))
    return 0


def cmd_select(args, tournament: Tournament) -> int:
    _emit(tournament.select())
    return 0


def cmd_update(args, tournament: Tournament) -> int:
    try:
        score = float(args.score)
    except ValueError:
        raise InvalidScoreError(f"score must be a number, got {args.score!r}") from None
    _emit(tournament.update(args.agent_id, score))
    return 0


def cmd_status(args, tournament: Tournament) -> int:
    _emit(tournament.status())
    return 0


def cmd_winner(args, tournament: Tournament) -> int:
    _emit(tournament.winner())
    return 0


def cmd_reset(args, tournament: Tournament) -> int:
    _emit(tournament.reset())
    return 0


# ============================================================================
# Entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="mab-runner",
        description="Thompson sampling tournament runner for agent selection",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--state-file", default=None, help="State file path (default: $MAB_RUNNER_STATE, config, or <tmp>/mab-runner-state.json)")
    parser.add_argument("--config", default=None, help="Config file (default: ~/.mab-runner/config.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # init command
    init_parser = subparsers.add_parser("init", help="Start a new tournament (replaces any existing one)")
    init_parser.add_argument("--agents", "-a", type=int, required=True, help="Number of agents (must be > 0)")
    init_parser.add_argument("--seed", "-s", type=int, default=None, help="Seed for reproducible selection (default: random, then fixed)")
    init_parser.set_defaults(func=cmd_init)

    # select command
    select_parser = subparsers.add_parser("select", help="Pick the next agent to evaluate")
    select_parser.set_defaults(func=cmd_select)

    # update command
    update_parser = subparsers.add_parser("update", help="Record an evaluation score")
    update_parser.add_argument("agent_id", help="Agent identifier (e.g. agent_0)")
    update_parser.add_argument("score", help="Score between 0 and 1 (inclusive)")
    update_parser.set_defaults(func=cmd_update)

    # status command
    status_parser = subparsers.add_parser("status", help="Per-agent statistics and convergence progress")
    status_parser.set_defaults(func=cmd_status)

    # winner command
    winner_parser = subparsers.add_parser("winner", help="Current leader and whether the tournament is complete")
    winner_parser.set_defaults(func=cmd_winner)

    # reset command
    reset_parser = subparsers.add_parser("reset", help="Clear all tournament state")
    reset_parser.set_defaults(func=cmd_reset)

    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse argv, run one command, return the exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.usage:
            sys.stderr.write(e.usage)
        return e.exit_code

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    config = load_config(Path(args.config).expanduser() if args.config else None)
    store = StateStore(resolve_state_path(args.state_file, config))
    logger.debug(f"State file: {store.path}")
    tournament = Tournament(store, params=config.params)

    try:
        return args.func(args, tournament)
    except MabRunnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
