import sys

import pytest

from stdio_tap.config import Config


@pytest.fixture
def make_config(tmp_path):
    """Config writing logs under tmp_path, executing argv directly by default."""

    def _make(**overrides):
        defaults = dict(
            log_dir=str(tmp_path / "logs"),
            use_shell=False,
            fsync=False,
            stdin_grace_seconds=0.2,
        )
        defaults.update(overrides)
        return Config(**defaults)

    return _make


@pytest.fixture
def python_cmd():
    """argv running a Python snippet in a child interpreter."""

    def _cmd(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return _cmd
