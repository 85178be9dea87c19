# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Agent configuration: the ``auto_auth`` stanza.

The agent reads a single HCL file.  The default location follows the XDG
Base Directory Specification:

    ``$XDG_CONFIG_HOME/credagent/agent.hcl``
    (typically ``~/.config/credagent/agent.hcl``)

Shape of the document::

    pid_file = "/run/credagent.pid"

    auto_auth {
      method {
        type       = "aws-iam"
        mount_path = "auth/aws"        # default: auth/<type>
        config     = { role = "web" }
      }

      sink "file" {
        path        = "/run/token"
        wrap_ttl    = "5m"
        dh_type     = "curve25519"
        dh_path     = "/run/dh.pub"
        aad_env_var = "TOKEN_AAD"
      }
    }

Exactly one ``auto_auth`` block with exactly one ``method`` and at least one
labelled ``sink`` is required.  ``method.config`` and the sink bodies are
passed through untouched for the method and sink implementations.

Errors from independent sinks are collected and raised together as
:class:`SinkErrors`; everything else fails on the first problem.
"""

import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

from platformdirs import user_config_path

from credagent.document import (
    DocumentSyntaxError,
    ObjectItem,
    ObjectList,
    parse_document,
)
from credagent.dotenv_loader import load_dotenv_once
from credagent.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "credagent"

#: Accepted ``dh_type`` values.
DH_TYPES = frozenset({"curve25519"})

#: Environment lookup used for ``aad_env_var``; returns None when unset.
EnvLookup = Callable[[str], str | None]

#: AAD values of the most recent successful load, still registered with
#: :class:`SecretFilter`.  Values a later load no longer uses are dropped.
_active_aad: set[str] = set()


def get_config_path() -> Path:
    """Return the default agent config path (``agent.hcl`` under XDG config)."""
    return user_config_path(_APP_NAME) / "agent.hcl"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Base exception for configuration errors.

    Callers add context with :meth:`wrap`, which keeps the exception's class
    so ``except SchemaViolation`` still works after the error has bubbled up
    through ``auto_auth``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.context: list[str] = []

    def wrap(self, prefix: str) -> "ConfigError":
        """Prepend *prefix* to the rendered message and return self."""
        self.context.insert(0, prefix)
        return self

    def __str__(self) -> str:
        return ": ".join([*self.context, self._render()])

    def _render(self) -> str:
        return self.message


class ConfigIOError(ConfigError):
    """The config path is missing, unreadable or a directory."""


class ConfigSyntaxError(ConfigError):
    """The config text is not valid HCL."""


class SchemaViolation(ConfigError):
    """Wrong block cardinality, wrong value type or unknown enum value."""


class CrossFieldViolation(ConfigError):
    """Fields that are only valid together were given inconsistently."""


class SinkErrors(ConfigError):
    """Every per-sink error from one load, in declaration order.

    Attributes:
        errors: The individual errors, each prefixed with ``sink.<type>``.
        parsed: Sinks that decoded cleanly despite their siblings failing.
    """

    def __init__(
        self, errors: list[ConfigError], parsed: tuple["Sink", ...] = ()
    ) -> None:
        self.errors = list(errors)
        self.parsed = parsed
        super().__init__(f"{len(self.errors)} sink error(s)")

    def _render(self) -> str:
        noun = "error" if len(self.errors) == 1 else "errors"
        lines = [f"{len(self.errors)} {noun} occurred:"]
        lines.extend(f"\t* {e}" for e in self.errors)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_DURATION_UNITS_US = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}

_DURATION_TERM = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_PLAIN_SECONDS = re.compile(r"[+-]?\d+")


def _to_timedelta(text: object, **kwargs: float) -> timedelta:
    try:
        return timedelta(**kwargs)
    except OverflowError as e:
        raise ValueError(f"duration {text!r} is out of range") from e


def _parse_duration_literal(text: str) -> timedelta:
    """Parse ``"1h30m"``-style literals: one or more number+unit terms."""
    body = text
    sign = 1
    if body[:1] in ("+", "-"):
        sign = -1 if body[0] == "-" else 1
        body = body[1:]

    total_us = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_TERM.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total_us += float(match.group(1)) * _DURATION_UNITS_US[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ValueError(f"invalid duration {text!r}")
    return _to_timedelta(text, microseconds=sign * total_us)


def parse_duration_second(value: object) -> timedelta:
    """Parse a duration given as a literal or as a number of seconds.

    Accepts:
        - ``int`` / ``float``: seconds.
        - ``str`` ending in a unit (``"5m"``, ``"250ms"``, ``"1h30m"``):
          duration literal.
        - any other ``str``: whole seconds (``"300"``); ``""`` is zero.
        - ``timedelta``: returned unchanged.

    Raises:
        ValueError: For any other type, an unparsable string or a duration
            too large for :class:`~datetime.timedelta`.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError("could not parse duration from input")
    if isinstance(value, (int, float)):
        return _to_timedelta(value, seconds=value)
    if isinstance(value, str):
        if value == "":
            return timedelta(0)
        if value.endswith(("s", "m", "h")):
            return _parse_duration_literal(value)
        if not _PLAIN_SECONDS.fullmatch(value):
            raise ValueError(f"invalid duration {value!r}")
        return _to_timedelta(value, seconds=int(value))
    raise ValueError("could not parse duration from input")


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Method:
    """How the agent authenticates.

    Attributes:
        type: Authentication mechanism, e.g. ``"aws-iam"``.
        mount_path: Where the mechanism is mounted, without trailing slash.
        config: Mechanism-specific settings, passed through untouched.
    """

    type: str
    mount_path: str
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate the method.

        Raises:
            SchemaViolation: If ``type`` is empty.
        """
        if not self.type:
            raise SchemaViolation("'type' must be specified")


@dataclass(frozen=True)
class Sink:
    """A destination for the obtained token.

    Attributes:
        type: Lower-cased sink label, e.g. ``"file"``.
        wrap_ttl: Response-wrapping TTL; zero means no wrapping.
        dh_type: Key agreement scheme (``"curve25519"``) or ``""``.
        dh_path: Path of the peer's DH public key; set iff ``dh_type`` is.
        aad: Additional authenticated data for the encrypted token.
        config: The full sink body, well-known fields included.
    """

    type: str
    wrap_ttl: timedelta = timedelta(0)
    dh_type: str = ""
    dh_path: str = ""
    aad: str = ""
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate the DH settings and register ``aad`` for redaction.

        Raises:
            CrossFieldViolation: If only one of ``dh_type``/``dh_path`` is
                set, or ``aad`` is set without DH.
        """
        if not self.dh_type and not self.dh_path:
            if self.aad:
                raise CrossFieldViolation(
                    "specifying AAD data without 'dh_type' does not make sense"
                )
        elif not (self.dh_type and self.dh_path):
            raise CrossFieldViolation(
                "'dh_type' and 'dh_path' must be specified together"
            )

        if self.aad:
            SecretFilter.register_secret(self.aad)

    @property
    def dh_enabled(self) -> bool:
        """True when the token is written encrypted to a DH peer."""
        return bool(self.dh_type)


@dataclass(frozen=True)
class AutoAuth:
    """The ``auto_auth`` stanza: one method, one or more sinks."""

    method: Method
    sinks: tuple[Sink, ...]

    def __post_init__(self) -> None:
        """Validate presence of the method and sinks.

        Raises:
            SchemaViolation: If the method is missing or there are no sinks.
        """
        if self.method is None:
            raise SchemaViolation("no 'method' block found")
        if not self.sinks:
            raise SchemaViolation("at least one 'sink' block must be provided")


@dataclass(frozen=True)
class Config:
    """Complete agent configuration.

    Attributes:
        auto_auth: Authentication method and token sinks.
        pid_file: Where the agent writes its PID; ``""`` when unset.
    """

    auto_auth: AutoAuth
    pid_file: str = ""

    @classmethod
    def from_hcl(
        cls,
        config_path: Path | None = None,
        *,
        getenv: EnvLookup | None = None,
    ) -> "Config":
        """Load configuration from an HCL file.

        Args:
            config_path: Path to the config file.  Defaults to
                ``~/.config/credagent/agent.hcl`` (XDG).
            getenv: Lookup for ``aad_env_var``.  Defaults to the process
                environment, after loading ``.env`` files once.

        Returns:
            Config instance.

        Raises:
            ConfigError: If the file cannot be read, parsed or validated.
        """
        if config_path is None:
            config_path = get_config_path()
        return load_config(config_path, getenv=getenv)

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-friendly view with ``aad`` values masked."""
        method = self.auto_auth.method
        return {
            "pid_file": self.pid_file,
            "auto_auth": {
                "method": {
                    "type": method.type,
                    "mount_path": method.mount_path,
                    "config": method.config,
                },
                "sinks": [_sink_to_dict(s) for s in self.auto_auth.sinks],
            },
        }


def _sink_to_dict(sink: Sink) -> dict[str, Any]:
    config = dict(sink.config)
    if "aad" in config:
        config["aad"] = "[REDACTED]"
    return {
        "type": sink.type,
        "wrap_ttl": sink.wrap_ttl.total_seconds(),
        "dh_type": sink.dh_type,
        "dh_path": sink.dh_path,
        "aad": "[REDACTED]" if sink.aad else "",
        "config": config,
    }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config(
    path: str | os.PathLike[str],
    *,
    getenv: EnvLookup | None = None,
) -> Config:
    """Read, parse and validate the agent config at *path*.

    Args:
        path: Config file path.
        getenv: Lookup for ``aad_env_var``.  When omitted, ``.env`` files are
            loaded once and ``os.environ`` is consulted.

    Returns:
        A fully validated Config.

    Raises:
        ConfigIOError: If the path is missing, a directory or unreadable.
        ConfigSyntaxError: If the text is not valid HCL.
        SchemaViolation: On cardinality or type errors.
        CrossFieldViolation: On inconsistent method/sink settings.
        SinkErrors: If one or more sinks are invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigIOError(f"Config file not found: {path}")
    if path.is_dir():
        raise ConfigIOError("location is a directory, not a file")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigIOError(f"Cannot read config file {path}: {e}") from e

    try:
        root = parse_document(text)
    except DocumentSyntaxError as e:
        raise ConfigSyntaxError(f"Cannot parse {path}: {e}") from e

    if getenv is None:
        load_dotenv_once()
        getenv = os.environ.get

    config = _decode(root, getenv)
    _retire_stale_aad(config)
    logger.info(
        "Agent config loaded from %s: method=%s at %s, %d sink(s)",
        path,
        config.auto_auth.method.type,
        config.auto_auth.method.mount_path,
        len(config.auto_auth.sinks),
    )
    return config


def _retire_stale_aad(config: Config) -> None:
    """Unregister AAD values the previous load used and this one does not.

    Keeps the redaction set bounded when ``aad_env_var`` values rotate
    between reloads.
    """
    current = {sink.aad for sink in config.auto_auth.sinks if sink.aad}
    for stale in _active_aad - current:
        SecretFilter.unregister_secret(stale)
    _active_aad.clear()
    _active_aad.update(current)


def _decode(root: ObjectList, getenv: EnvLookup) -> Config:
    """Build a Config from a parsed document."""
    pid_file = _decode_root(root)
    try:
        auto_auth = _parse_auto_auth(root, getenv)
    except ConfigError as e:
        e.wrap("error parsing 'auto_auth'")
        raise
    return Config(auto_auth=auto_auth, pid_file=pid_file)


def _decode_root(root: ObjectList) -> str:
    """Decode top-level scalars.  Only ``pid_file`` exists today."""
    matches = root.filter("pid_file")
    if not matches:
        return ""
    value = matches.items[-1].value
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise SchemaViolation("cannot convert 'pid_file' to string")
    return str(value)


def _parse_auto_auth(root: ObjectList, getenv: EnvLookup) -> AutoAuth:
    name = "auto_auth"

    matches = root.filter(name)
    if len(matches) != 1:
        raise SchemaViolation(f"one and only one {name!r} block is required")

    item = matches.items[0]
    if not isinstance(item.value, dict):
        raise SchemaViolation(f"could not parse {name!r} as an object")
    children = item.children()

    for key in children.keys():
        if key not in ("method", "sink"):
            logger.warning("Ignoring unknown setting %r in %r", key, name)

    try:
        method = _parse_method(children)
    except ConfigError as e:
        e.wrap("error parsing 'method'")
        raise

    try:
        sinks = _parse_sinks(children, getenv)
    except ConfigError as e:
        e.wrap("error parsing 'sink' stanzas")
        raise

    return AutoAuth(method=method, sinks=sinks)


def _parse_method(children: ObjectList) -> Method:
    name = "method"

    matches = children.filter(name)
    if len(matches) != 1:
        raise SchemaViolation(f"one and only one {name!r} block is required")

    body = _block_body(matches.items[0])
    method_type = _optional_str(body, "type")
    mount_path = _optional_str(body, "mount_path")
    config = _optional_mapping(body, "config")

    if not mount_path:
        mount_path = f"auth/{method_type}"
    # Standardize on no trailing slash
    mount_path = mount_path.removesuffix("/")

    return Method(type=method_type, mount_path=mount_path, config=config)


def _parse_sinks(children: ObjectList, getenv: EnvLookup) -> tuple[Sink, ...]:
    name = "sink"

    matches = children.filter(name)
    if not matches:
        raise SchemaViolation(f"at least one {name!r} block is required")

    sinks: list[Sink] = []
    errors: list[ConfigError] = []
    for item in matches:
        if not item.labels:
            errors.append(SchemaViolation("sink type must be specified"))
            continue
        sink_type = item.labels[0].lower()
        try:
            sinks.append(_parse_sink(sink_type, item, getenv))
        except ConfigError as e:
            errors.append(e.wrap(f"sink.{sink_type}"))

    if errors:
        raise SinkErrors(errors, parsed=tuple(sinks))
    return tuple(sinks)


def _parse_sink(sink_type: str, item: ObjectItem, getenv: EnvLookup) -> Sink:
    body = _block_body(item)

    wrap_ttl = timedelta(0)
    if "wrap_ttl" in body:
        try:
            wrap_ttl = parse_duration_second(body["wrap_ttl"])
        except ValueError as e:
            raise SchemaViolation(f"cannot parse 'wrap_ttl': {e}") from e

    dh_type = _optional_str(body, "dh_type")
    if "dh_type" in body and dh_type not in DH_TYPES:
        raise SchemaViolation("invalid value for 'dh_type'")

    dh_path = _optional_str(body, "dh_path")

    if "aad" in body:
        aad = _optional_str(body, "aad")
    elif "aad_env_var" in body:
        aad = getenv(_optional_str(body, "aad_env_var")) or ""
    else:
        aad = ""

    sink = Sink(
        type=sink_type,
        wrap_ttl=wrap_ttl,
        dh_type=dh_type,
        dh_path=dh_path,
        aad=aad,
        config=dict(body),
    )
    logger.debug(
        "Sink %r: dh=%s, wrap_ttl=%ss",
        sink.type,
        sink.dh_type or "off",
        sink.wrap_ttl.total_seconds(),
    )
    return sink


# ---------------------------------------------------------------------------
# Typed field readers
# ---------------------------------------------------------------------------


def _block_body(item: ObjectItem) -> dict[str, Any]:
    if not isinstance(item.value, dict):
        raise SchemaViolation(f"could not parse {item.key!r} as an object")
    return item.value


def _optional_str(body: dict[str, Any], key: str) -> str:
    """Return ``body[key]`` if it is a string, ``""`` if absent."""
    if key not in body:
        return ""
    value = body[key]
    if not isinstance(value, str):
        raise SchemaViolation(f"cannot convert {key!r} to string")
    return value


def _optional_mapping(body: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``body[key]`` as a dict, ``{}`` if absent.

    Accepts both ``key = { ... }`` and a single ``key { ... }`` block.
    """
    if key not in body:
        return {}
    value = body[key]
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if not isinstance(value, dict):
        raise SchemaViolation(f"{key!r} must be a mapping")
    return dict(value)
