# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures."""

from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from credagent.config import _active_aad
from credagent.dotenv_loader import reset_dotenv_state
from credagent.logging import SecretFilter


MINIMAL_HCL = """\
auto_auth {
  method {
    type = "aws-iam"
  }

  sink "file" {
    path = "/tmp/token"
  }
}
"""


@pytest.fixture(autouse=True)
def _isolate_global_state(tmp_path: Path) -> Iterator[None]:
    """Keep XDG paths, dotenv state and redaction registry per-test.

    ``user_config_path`` is redirected into ``tmp_path`` so tests never read
    or write the real ``~/.config/credagent``.
    """
    config_root = tmp_path / "xdg-config"
    reset_dotenv_state()
    SecretFilter.clear_secrets()
    _active_aad.clear()
    with patch(
        "credagent.config.user_config_path",
        side_effect=lambda app: config_root / app,
    ):
        yield
    reset_dotenv_state()
    SecretFilter.clear_secrets()
    _active_aad.clear()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    """Return a helper that writes HCL text to a file and returns its path."""

    def _write(text: str, name: str = "agent.hcl") -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def no_env() -> Callable[[str], str | None]:
    """Environment lookup that never finds anything."""
    return lambda name: None
