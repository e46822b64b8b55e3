"""stdio-tap — run a command transparently while logging all of its stdio traffic."""

import argparse
import logging
import sys

from stdio_tap.config import load_config
from stdio_tap.supervisor import ProcessSupervisor, UsageError

logger = logging.getLogger("stdio_tap")

EXIT_USAGE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stdio-tap",
        description="Run a command, relaying and logging its stdin, stdout and stderr.",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to a YAML config file (env vars take precedence)",
    )
    parser.add_argument(
        "command", nargs=argparse.REMAINDER,
        help="Command to run, followed by its arguments",
    )
    return parser


def _setup_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [stdio-tap] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = args.command
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        print(f"Usage: {parser.prog} [--config FILE] <command> [args...]", file=sys.stderr)
        return EXIT_USAGE

    try:
        config = load_config(args.config)
    except (ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE
    _setup_logging(config.diagnostic_level)

    supervisor = ProcessSupervisor(config, handle_signals=True)
    try:
        return supervisor.run(command)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except OSError as e:
        logger.error("Error creating log file: %s", e)
        return config.failure_exit_code


if __name__ == "__main__":
    sys.exit(main())
