# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""credagent: agent configuration for credential bootstrap.

Loads the ``auto_auth`` stanza of an HCL agent config (authentication
method plus token sinks) into validated, immutable dataclasses.
"""

from credagent.config import (
    AutoAuth,
    Config,
    ConfigError,
    ConfigIOError,
    ConfigSyntaxError,
    CrossFieldViolation,
    Method,
    SchemaViolation,
    Sink,
    SinkErrors,
    load_config,
    parse_duration_second,
)


__all__ = [
    "AutoAuth",
    "Config",
    "ConfigError",
    "ConfigIOError",
    "ConfigSyntaxError",
    "CrossFieldViolation",
    "Method",
    "SchemaViolation",
    "Sink",
    "SinkErrors",
    "load_config",
    "parse_duration_second",
]
