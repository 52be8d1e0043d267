"""Entry point for `ccal` / `python -m ccal`.

Subcommands:
    ccal [run] [ARGS...]    Start CCAL (default); ARGS go to claude
    ccal shell [ARGS...]    Start an interactive shell in the container
    ccal stop               Stop the container
    ccal logs               Follow container logs
    ccal build              Rebuild the image from scratch
    ccal clean [--images]   Remove containers and volumes (and the image)
    ccal setup              First-time setup: docker, GitHub, new project
    ccal help               Show usage
"""

from __future__ import annotations

import argparse
import sys

from pydantic import ValidationError

from ccal.errors import CcalError, PermissionPendingError, UsageError
from ccal.logger import logger

_EPILOG = """\
examples:
  ccal             # Start CCAL
  ccal shell       # Get interactive shell
  ccal logs        # View logs
"""

_PASSTHROUGH = ("run", "shell")


class _Parser(argparse.ArgumentParser):
    """Raise instead of exiting so bad usage maps to exit status 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="ccal",
        description="Run Claude Code in a local Docker container",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--plain", action="store_true", help="Plain ASCII output")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    # run/shell forward everything (including --help) to the inner tool
    sub.add_parser("run", help="Start CCAL (default)", add_help=False)
    sub.add_parser("shell", help="Start interactive shell", add_help=False)
    sub.add_parser("stop", help="Stop container")
    sub.add_parser("logs", help="View container logs")
    sub.add_parser("build", help="Rebuild image")
    clean = sub.add_parser("clean", help="Remove containers and volumes")
    clean.add_argument(
        "--images",
        action="store_true",
        default=None,
        help="Also remove the shared image (affects other projects using it)",
    )
    sub.add_parser("setup", help="First-time setup and new project")
    sub.add_parser("help", help="Show this help")
    return parser


def parse_args(argv: list[str]) -> tuple[argparse.Namespace, list[str]]:
    """Parse *argv*; returns (namespace, args forwarded to the inner tool)."""
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)
    if args.command is None:
        args.command = "run"
    if extra and args.command not in _PASSTHROUGH:
        raise UsageError(f"unrecognized arguments: {' '.join(extra)}")
    return args, extra


def _dispatch(orchestrator, command: str, args: argparse.Namespace, forwarded: list[str]) -> int:
    match command:
        case "run":
            orchestrator.reporter.banner("Container Manager")
            return orchestrator.run(forwarded)
        case "shell":
            orchestrator.reporter.banner("Container Manager")
            return orchestrator.shell(forwarded)
        case "stop":
            return orchestrator.stop()
        case "logs":
            return orchestrator.logs()
        case "build":
            return orchestrator.build()
        case "clean":
            return orchestrator.clean(remove_image=args.images)
        case "setup":
            orchestrator.reporter.banner("Project Setup")
            return orchestrator.setup()
        case _:
            raise UsageError(f"Unknown command: {command}")


def run_cli(argv: list[str] | None = None, *, orchestrator_factory=None) -> int:
    """Parse, build the orchestrator, dispatch, and map errors to exit codes."""
    from ccal.config import get_settings
    from ccal.reporter import PlainReporter, select_reporter

    argv = sys.argv[1:] if argv is None else argv
    try:
        args, forwarded = parse_args(argv)
    except UsageError as exc:
        PlainReporter().error(str(exc))
        build_parser().print_usage(sys.stderr)
        return exc.exit_code

    if args.command == "help":
        build_parser().print_help()
        return 0

    try:
        settings = get_settings()
    except ValidationError as exc:
        PlainReporter().error(f"Invalid configuration: {exc}")
        return 1

    reporter = select_reporter(force_plain=args.plain or settings.output.plain)
    factory = orchestrator_factory or _default_orchestrator

    from ccal.session import Session

    try:
        with Session(args.command, forwarded) as session:
            orchestrator = factory(settings, reporter, session)
            return _dispatch(orchestrator, args.command, args, forwarded)
    except PermissionPendingError as exc:
        reporter.warning(str(exc))
        return exc.exit_code
    except CcalError as exc:
        logger.debug("Command failed", command=args.command, error=type(exc).__name__)
        reporter.error(str(exc))
        return exc.exit_code
    except KeyboardInterrupt:
        reporter.error("Interrupted")
        return 130


def _default_orchestrator(settings, reporter, session):
    from ccal.engine import ComposeEngine
    from ccal.identity import GhIdentity
    from ccal.orchestrator import Orchestrator

    engine = ComposeEngine(
        service=settings.service.name,
        image=settings.service.image,
        project_dir=settings.project_root,
        compose_file=settings.service.compose_file,
        start_command=settings.daemon.start_command,
    )
    identity = GhIdentity(settings.auth.cli)
    return Orchestrator(settings, engine=engine, identity=identity, reporter=reporter, session=session)


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
