"""
Configuration module for netsink

Options are resolved once at startup from command line flags, NETSINK_*
environment variables (optionally seeded from a .env file), an INI file and
built-in defaults, in that order of precedence.
"""

import argparse
import configparser
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .constants import (
    CONFIG_SECTION,
    DEFAULT_INTERFACE,
    DEFAULT_LOG_BACKUPS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TCP_PORT,
    ENV_PREFIX,
)


class ConfigError(ValueError):
    """Raised when the startup options cannot be resolved"""


@dataclass(frozen=True)
class ServerConfig:
    """Immutable startup configuration shared read-only by both modes"""

    interface: str = DEFAULT_INTERFACE
    port: int = DEFAULT_TCP_PORT
    serve: Optional[int] = None
    tls_cert: str = ""
    tls_key: str = ""
    auth_user: str = ""
    auth_pass: str = ""
    log_file: str = ""
    log_level: str = DEFAULT_LOG_LEVEL
    log_max_bytes: int = 0
    log_backups: int = DEFAULT_LOG_BACKUPS
    root: str = "."

    @property
    def http_mode(self) -> bool:
        return self.serve is not None

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert and self.tls_key)

    @property
    def auth_enabled(self) -> bool:
        # Partial credentials disable auth instead of failing startup
        return bool(self.auth_user and self.auth_pass)

    @property
    def debug(self) -> bool:
        return self.log_level.lower() == "debug"

    @property
    def tcp_address(self) -> Tuple[str, int]:
        return self.interface, self.port


# Option name -> (flags, help text). Names double as INI keys and, upper-cased
# with ENV_PREFIX, as environment variable names.
OPTIONS: Dict[str, Tuple[List[str], str]] = {
    "interface": (["-i", "--interface"], f"Interface to listen on for TCP connections (default: {DEFAULT_INTERFACE})"),
    "port": (["-p", "--port"], f"Port to listen on for TCP connections (default: {DEFAULT_TCP_PORT})"),
    "serve": (["--serve"], "Port to serve the current directory over HTTP; enables HTTP mode"),
    "tls_cert": (["--tls-cert"], "Path to TLS certificate file"),
    "tls_key": (["--tls-key"], "Path to TLS key file"),
    "auth_user": (["--auth-user"], "Username for basic authentication"),
    "auth_pass": (["--auth-pass"], "Password for basic authentication"),
    "log_file": (["--log-file"], "Path to log file (default: standard error)"),
    "log_level": (["--log-level"], f"Log level; debug adds microsecond timestamps and debug output (default: {DEFAULT_LOG_LEVEL})"),
    "log_max_bytes": (["--log-max-bytes"], "Rotate the log file at this size in bytes (default: 0, never)"),
    "log_backups": (["--log-backups"], f"Rotated log files to keep (default: {DEFAULT_LOG_BACKUPS})"),
}

PORT_OPTIONS = ("port", "serve")
COUNT_OPTIONS = ("log_max_bytes", "log_backups")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser; every default is None so unset flags can fall through"""
    parser = argparse.ArgumentParser(
        prog="netsink",
        description="Stream TCP connections to stdout, or serve the current directory over HTTP(S)",
    )
    for name, (flags, help_text) in OPTIONS.items():
        parser.add_argument(*flags, dest=name, default=None, help=help_text)
    parser.add_argument("--config", default=None, help="Path to an INI configuration file")
    return parser


def read_config_file(path: str) -> Dict[str, str]:
    """
    Read the [netsink] section of an INI file

    Args:
        path: Path to the configuration file

    Returns:
        Dictionary of option name -> raw string value
    """
    if not os.path.exists(path):
        raise ConfigError(f"Configuration file not found: {path}")

    # Values are taken literally; a password may well contain %
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path)
        items = parser.items(CONFIG_SECTION) if parser.has_section(CONFIG_SECTION) else []
    except configparser.Error as e:
        raise ConfigError(f"Error reading configuration file '{path}': {e}") from e

    values = {}
    for key, value in items:
        name = key.replace("-", "_")
        if name not in OPTIONS:
            raise ConfigError(f"Unknown option '{key}' in {path}")
        values[name] = value
    return values


def parse_port(value: str, name: str) -> int:
    try:
        port = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Invalid {name}: {value!r} is not a number") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"Invalid {name}: {port} is out of range")
    return port


def parse_count(value: str, name: str) -> int:
    try:
        count = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Invalid {name}: {value!r} is not a number") from None
    if count < 0:
        raise ConfigError(f"Invalid {name}: {count} is negative")
    return count


def build_config(raw: Mapping[str, str]) -> ServerConfig:
    """
    Convert raw option strings into a ServerConfig

    Args:
        raw: Option name -> string value; missing names keep their defaults

    Returns:
        The validated configuration
    """
    values = {}
    for name, value in raw.items():
        if name == "serve":
            # An empty serve value means TCP mode
            values[name] = parse_port(value, name) if str(value).strip() else None
        elif name in PORT_OPTIONS:
            values[name] = parse_port(value, name)
        elif name in COUNT_OPTIONS:
            values[name] = parse_count(value, name)
        elif name == "log_level":
            values[name] = value.strip().lower() or DEFAULT_LOG_LEVEL
        elif name in OPTIONS or name == "root":
            values[name] = value
        else:
            raise ConfigError(f"Unknown option: {name}")
    return ServerConfig(**values)


def load_config(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """
    Resolve the startup configuration

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])
        environ: Environment mapping; when omitted, .env is loaded into os.environ and used

    Returns:
        The resolved configuration
    """
    args = build_parser().parse_args(argv)

    if environ is None:
        load_dotenv()
        environ = os.environ

    config_file = args.config or environ.get(f"{ENV_PREFIX}CONFIG")
    file_values = read_config_file(config_file) if config_file else {}

    raw = {}
    for name in OPTIONS:
        value = getattr(args, name)
        if value is None:
            value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            value = file_values.get(name)
        if value is not None:
            raw[name] = value

    return build_config(raw)
