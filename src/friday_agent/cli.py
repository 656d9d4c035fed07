import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from friday_agent import __version__
from friday_agent.agent.orchestrator import Orchestrator
from friday_agent.approval import RichApprovalGate
from friday_agent.config import (
    ConfigurationError,
    CredentialStore,
    apply_env_defaults,
    build_task_invocation,
    check_invocation,
    default_env_path,
    load_env_file,
)
from friday_agent.domain.tasks import DEFAULT_MAX_TOOL_CALLS, DEFAULT_MAX_TURNS, WriteMode
from friday_agent.interactive import InteractiveSession, SessionState, ensure_primary_key
from friday_agent.presentation.console import ConsoleRenderer
from friday_agent.providers.errors import ModelInvocationError
from friday_agent.tools.git import git_diff
from friday_agent.tools.search import repo_search
from friday_agent.tools.shell import run_command
from friday_agent.workspace import resolve_workspace

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

COMMANDS = ("ask", "interactive", "search", "diff", "run")
_GLOBAL_VALUE_OPTIONS = ("--log-level", "--env-file")


def _configure_logging(level: str) -> None:
    level = (level or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _add_task_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--advisors",
        default="",
        help="Comma-separated advisor models Claude can consult (openai,gemini)",
    )
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument("--apply", action="store_true", help="Write files immediately (requires --workspace)")
    modes.add_argument("--approve", action="store_true", help="Confirm each file write (requires --workspace)")
    parser.add_argument("--workspace", help="Directory where file writes are allowed")
    parser.add_argument("--maxToolCalls", type=int, default=DEFAULT_MAX_TOOL_CALLS, dest="max_tool_calls")
    parser.add_argument("--maxTurns", type=int, default=DEFAULT_MAX_TURNS, dest="max_turns")
    parser.add_argument("--cwd", help="Working directory for reading and searching")
    parser.add_argument("--verbose", action="store_true", help="Show the tool-call ledger")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="friday",
        description="Claude-primary coding assistant with optional advisor models",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"))
    parser.add_argument("--env-file", help="Path to a .env file (default: ./.env)")
    sub = parser.add_subparsers(dest="command")

    ask = sub.add_parser("ask", help="Run one task and print the result")
    ask.add_argument("--task", required=True, help="The task or question to work on")
    _add_task_options(ask)

    interactive = sub.add_parser("interactive", help="Start a multi-turn session (default)")
    _add_task_options(interactive)

    search = sub.add_parser("search", help="Search repository files for a string")
    search.add_argument("query")
    search.add_argument("--cwd", help="Directory to search")

    diff = sub.add_parser("diff", help="Show staged and unstaged git changes")
    diff.add_argument("--cwd", help="Repository directory")

    run = sub.add_parser("run", help="Run an allow-listed command")
    run.add_argument("--cwd", help="Working directory (must come before the command)")
    run.add_argument("cmd", nargs=argparse.REMAINDER)
    return parser


def _resolve_cwd(raw: Optional[str]) -> Path:
    if not raw:
        return Path.cwd()
    return Path(os.path.abspath(os.path.expanduser(raw)))


def _resolve_workspace_arg(raw: Optional[str]) -> Optional[Path]:
    if raw is None or not raw.strip():
        return None
    return resolve_workspace(raw, Path.cwd())


def _invocation_options(args: argparse.Namespace) -> dict:
    return {
        "cwd": _resolve_cwd(args.cwd),
        "workspace": _resolve_workspace_arg(args.workspace),
        "write_mode": WriteMode.from_flags(apply=args.apply, approve=args.approve),
        "advisors": args.advisors,
        "max_tool_calls": args.max_tool_calls,
        "max_turns": args.max_turns,
        "verbose": args.verbose,
    }


def _run_ask(args: argparse.Namespace, credentials: CredentialStore, renderer: ConsoleRenderer) -> int:
    invocation = build_task_invocation(task=args.task, **_invocation_options(args))
    check_invocation(invocation, credentials)
    orchestrator = Orchestrator(credentials, approval_gate=RichApprovalGate(console=renderer.console))
    orchestrator.bus.subscribe(renderer.on_activity)
    renderer.ask_header(invocation)
    result = asyncio.run(orchestrator.run(invocation))
    renderer.result(result, verbose=invocation.verbose)
    return EXIT_OK


def _run_interactive(args: argparse.Namespace, credentials: CredentialStore, renderer: ConsoleRenderer) -> int:
    # Validated with a placeholder task; every REPL line builds its own invocation.
    options = build_task_invocation(task="interactive", **_invocation_options(args))
    ensure_primary_key(credentials, renderer)
    check_invocation(options, credentials)
    state = SessionState(
        cwd=options.cwd,
        invocation_cwd=Path.cwd(),
        workspace=options.workspace,
        write_mode=options.write_mode,
        advisors=options.advisors,
        max_tool_calls=options.max_tool_calls,
        max_turns=options.max_turns,
        verbose=options.verbose,
    )
    return InteractiveSession(state, credentials, renderer=renderer).run()


def _run_search(args: argparse.Namespace, renderer: ConsoleRenderer) -> int:
    matches = repo_search(args.query, _resolve_cwd(args.cwd))
    renderer.search_results(args.query, matches)
    return EXIT_OK


def _run_diff(args: argparse.Namespace, renderer: ConsoleRenderer) -> int:
    result = git_diff(_resolve_cwd(args.cwd))
    renderer.diff(result.diff)
    return EXIT_OK if result.ok else EXIT_ERROR


def _run_command(args: argparse.Namespace, renderer: ConsoleRenderer) -> int:
    cmd = " ".join(args.cmd).strip()
    if not cmd:
        renderer.warning("Usage: friday run [--cwd DIR] <command>")
        return EXIT_ERROR
    renderer.info(f"Running: {cmd}")
    outcome = run_command(cmd, _resolve_cwd(args.cwd))
    renderer.command_result(cmd, outcome)
    return EXIT_OK if outcome.get("exitCode") == 0 else EXIT_ERROR


def with_default_command(argv: List[str]) -> List[str]:
    """Insert ``interactive`` where the subcommand would go when none was given.

    Task options such as ``--approve`` belong to the subcommand, so the
    default has to be in place before argparse sees them.
    """
    index = 0
    while index < len(argv):
        token = argv[index]
        if token in COMMANDS or token in ("-h", "--help", "--version"):
            return list(argv)
        if token in _GLOBAL_VALUE_OPTIONS:
            index += 2
            continue
        if token.split("=", 1)[0] in _GLOBAL_VALUE_OPTIONS:
            index += 1
            continue
        break
    return list(argv[:index]) + ["interactive"] + list(argv[index:])


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(with_default_command(raw_argv))

    _configure_logging(args.log_level)

    env_path = Path(args.env_file).expanduser() if args.env_file else default_env_path()
    env_file = load_env_file(env_path)
    apply_env_defaults(env_file)
    credentials = CredentialStore(env_file=env_file)
    renderer = ConsoleRenderer()

    try:
        if args.command == "ask":
            return _run_ask(args, credentials, renderer)
        if args.command == "interactive":
            return _run_interactive(args, credentials, renderer)
        if args.command == "search":
            return _run_search(args, renderer)
        if args.command == "diff":
            return _run_diff(args, renderer)
        return _run_command(args, renderer)
    except (ConfigurationError, ModelInvocationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
