"""Command construction and log placement helpers used by the supervisor."""

import os
import sys


def build_command(argv: list[str], use_shell: bool = True,
                  platform: str | None = None) -> list[str]:
    """Turn the wrapper's argv into the child's Popen argument list.

    With ``use_shell`` the command and its arguments are joined into one string
    and handed to the platform interpreter, so built-ins, pipes and redirects
    behave as they would on an interactive shell. Without it the argv is
    executed directly.
    """
    if not argv:
        raise ValueError("empty command")
    if not use_shell:
        return list(argv)

    platform = platform or sys.platform
    if platform.startswith("win"):
        return ["cmd.exe", "/C", *argv]
    return ["sh", "-c", " ".join(argv)]


def default_log_dir() -> str:
    """Directory holding the wrapper's own executable (or entry script)."""
    entry = sys.argv[0] if sys.argv and sys.argv[0] else sys.executable
    return os.path.dirname(os.path.abspath(entry))
