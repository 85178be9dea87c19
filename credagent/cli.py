# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""credagent CLI.

Subcommands:

* ``check``: load and validate an agent config and print what it resolves to
* ``init``: write a stub agent config to the default location

Running ``credagent`` with no arguments prints usage.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from credagent.config import (
    Config,
    ConfigError,
    SinkErrors,
    get_config_path,
)
from credagent.logging import configure_logging


_USAGE = """\
usage: credagent <command> [args]

commands:
  check   Validate an agent config and show the resolved settings
  init    Create a stub agent config

Run 'credagent <command> --help' for command-specific help.\
"""


# ── Terminal colors ─────────────────────────────────────────────────


def _use_color() -> bool:
    """Color only on a TTY, and never with ``NO_COLOR`` or ``TERM=dumb``."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return sys.stdout.isatty()


class _Style:
    """ANSI escape helpers.  All methods return plain text when color is off."""

    def __init__(self, color: bool) -> None:
        self._on = color

    def _wrap(self, code: str, text: str) -> str:
        if not self._on:
            return text
        return f"\033[{code}m{text}\033[0m"

    def bold(self, text: str) -> str:
        return self._wrap("1", text)

    def green(self, text: str) -> str:
        return self._wrap("32", text)

    def red(self, text: str) -> str:
        return self._wrap("31", text)

    def dim(self, text: str) -> str:
        return self._wrap("2", text)


# ── check subcommand ────────────────────────────────────────────────


def _format_ttl(seconds: float) -> str:
    if not seconds:
        return "off"
    if seconds.is_integer():
        return f"{int(seconds)}s"
    return f"{seconds}s"


def _print_summary(config: Config, s: _Style) -> None:
    method = config.auto_auth.method
    print(s.bold("Method"))
    print(f"  type:       {method.type}")
    print(f"  mount_path: {method.mount_path}")
    if method.config:
        print(f"  config:     {', '.join(sorted(method.config))}")
    print()

    print(s.bold(f"Sinks ({len(config.auto_auth.sinks)})"))
    for i, sink in enumerate(config.auto_auth.sinks, start=1):
        dh = f"{sink.dh_type} ({sink.dh_path})" if sink.dh_enabled else "off"
        print(f"  {i}. {sink.type}")
        print(f"     wrap_ttl: {_format_ttl(sink.wrap_ttl.total_seconds())}")
        print(f"     dh:       {dh}")
        print(f"     aad:      {'set' if sink.aad else 'none'}")

    if config.pid_file:
        print()
        print(f"PID file: {s.dim(config.pid_file)}")


def cmd_check(argv: list[str]) -> int:
    """Validate the agent config and print the resolved settings.

    Args:
        argv: ``[--config PATH] [--debug] [--json]``.

    Returns:
        0 if the config is valid, 1 otherwise.
    """
    parser = argparse.ArgumentParser(
        prog="credagent check",
        description="Validate an agent config file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to the agent config"
            " (default: ~/.config/credagent/agent.hcl)"
        ),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the resolved config as JSON",
    )
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)

    s = _Style(_use_color())
    config_path = args.config or get_config_path()

    try:
        config = Config.from_hcl(config_path)
    except SinkErrors as e:
        print(f"{s.red('error')}: {config_path}", file=sys.stderr)
        print(str(e), file=sys.stderr)
        if e.parsed:
            valid = ", ".join(sink.type for sink in e.parsed)
            print(f"valid sinks: {valid}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"{s.red('error')}: {config_path}", file=sys.stderr)
        print(str(e), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(config.to_dict(), indent=2, sort_keys=True))
        return 0

    print(f"{s.green('ok')}: {s.dim(str(config_path))}")
    print()
    _print_summary(config, s)
    return 0


# ── init subcommand ─────────────────────────────────────────────────


def cmd_init(argv: list[str]) -> int:
    """Create a stub agent config unless one already exists.

    Args:
        argv: Extra arguments (currently unused).

    Returns:
        Exit code (always 0).
    """
    config_path = get_config_path()

    if config_path.exists():
        print(f"Config already exists: {config_path}")
        return 0

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STUB_CONFIG)
    print(f"Created stub config: {config_path}")
    return 0


# ── dispatch ────────────────────────────────────────────────────────

_DISPATCH: dict[str, str] = {
    "check": "cmd_check",
    "init": "cmd_init",
}


def cli() -> None:
    """Entry point for the ``credagent`` console script."""
    argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _DISPATCH:
        print(f"credagent: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    # Look up handler by name so tests can mock individual commands.
    import credagent.cli as _self

    handler = getattr(_self, _DISPATCH[argv[0]])
    sys.exit(handler(argv[1:]))


#: Stub configuration written by ``credagent init``.
_STUB_CONFIG = """\
# credagent configuration

# pid_file = "/run/credagent/credagent.pid"

auto_auth {
  method {
    type = "approle"
    # mount_path = "auth/approle"
    config = {
      role_id_file_path   = "/etc/credagent/role-id"
      secret_id_file_path = "/etc/credagent/secret-id"
    }
  }

  sink "file" {
    path = "/run/credagent/token"
    # wrap_ttl    = "5m"
    # dh_type     = "curve25519"
    # dh_path     = "/run/credagent/dh.pub"
    # aad_env_var = "CREDAGENT_AAD"
  }
}
"""
