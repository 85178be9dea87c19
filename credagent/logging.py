# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging setup for credagent, with redaction of sink key material.

Entry points call :func:`configure_logging` once; library modules use
``logging.getLogger(__name__)`` as usual.

The config loader registers every resolved sink ``aad`` value with
:class:`SecretFilter`, so log lines that happen to echo a sink's config
never print the additional authenticated data in clear text.
"""

import logging
import re
import sys
from collections.abc import Mapping
from typing import ClassVar


_REDACTED = "[REDACTED]"

_DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class SecretFilter(logging.Filter):
    """Replace registered secret strings in log records with ``[REDACTED]``.

    The registry is class-level: a value registered anywhere in the process
    is redacted by every handler carrying a ``SecretFilter``.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from the message and its arguments.

        Records are never dropped, so this always returns True.
        """
        pattern = self._pattern
        if pattern is None:
            return True

        record.msg = pattern.sub(_REDACTED, str(record.msg))
        if isinstance(record.args, Mapping):
            record.args = {
                key: self._scrub(pattern, value)
                for key, value in record.args.items()
            }
        elif record.args:
            record.args = tuple(
                self._scrub(pattern, arg) for arg in record.args
            )
        return True

    @staticmethod
    def _scrub(pattern: re.Pattern[str], value: object) -> object:
        if isinstance(value, str):
            return pattern.sub(_REDACTED, value)
        return value

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Add *secret* to the redaction set.  Empty strings are ignored."""
        if not secret or secret in cls._secrets:
            return
        cls._secrets.add(secret)
        cls._rebuild_pattern()

    @classmethod
    def unregister_secret(cls, secret: str) -> None:
        """Drop *secret* from the redaction set; unknown values are ignored."""
        if secret not in cls._secrets:
            return
        cls._secrets.discard(secret)
        cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget every registered secret (used by tests)."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        if not cls._secrets:
            cls._pattern = None
            return
        # Longest first so a secret containing another is replaced whole.
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Root logger level.
        format_string: Record format; defaults to
            ``"<time> [<level>] <logger>: <message>"``.
        add_secret_filter: Attach a :class:`SecretFilter` to the handler.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or _DEFAULT_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``."""
    return logging.getLogger(name)
