# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""One-shot ``.env`` loading for environment-backed sink settings.

Sinks may take their AAD from an environment variable (``aad_env_var``).
Before the loader consults the process environment it reads, in order:

1. ``$XDG_CONFIG_HOME/credagent/.env`` (next to ``agent.hcl``)
2. ``.env`` in the current working directory

``python-dotenv`` never overwrites variables that are already set, so the
real environment wins over both files and the XDG file wins over the CWD one.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_dotenv_loaded = False


def load_dotenv_once() -> None:
    """Load the ``.env`` files on first call; later calls do nothing."""
    global _dotenv_loaded
    if _dotenv_loaded:
        return

    from credagent.config import get_dotenv_path

    for candidate in (get_dotenv_path(), Path.cwd() / ".env"):
        if candidate.is_file():
            load_dotenv(candidate)
            logger.debug("Loaded .env from %s", candidate)

    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Allow the next :func:`load_dotenv_once` call to load again (tests)."""
    global _dotenv_loaded
    _dotenv_loaded = False
