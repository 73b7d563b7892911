"""TOML-based configuration.

Loads ~/.nodescale/defaults.toml (global) and nodescale.toml (project),
merges them, and builds frozen settings objects. Every section is
optional; missing keys fall back to the defaults in ``nodescale.constants``.

Example nodescale.toml::

    [ssh]
    connect_timeout = 10
    strict_host_key_checking = true

    [credentials]
    username = "serengeti"
    private_key_file = "~/.ssh/id_rsa"

    [scaling]
    dns_timeout = 180
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeAlias, TypeVar

from nodescale.constants import (
    DEFAULT_CONNECT_ATTEMPTS,
    DEFAULT_CONNECT_RETRY_DELAY,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DNS_POLL_INTERVAL,
    DEFAULT_DNS_TIMEOUT,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_VERIFY_POLL_INTERVAL,
    DEFAULT_VERIFY_TIMEOUT,
)
from nodescale.errors import ConfigError
from nodescale.logging import LogConfig
from nodescale.types import Credentials

RawConfig: TypeAlias = dict[str, Any]

T = TypeVar("T")

GLOBAL_CONFIG_PATH = Path.home() / ".nodescale" / "defaults.toml"
PROJECT_CONFIG_NAME = "nodescale.toml"


@dataclass(frozen=True, slots=True)
class SshSettings:
    """Remote shell transport settings.

    Attributes:
        connect_timeout: Seconds allowed for a single connect attempt.
        connect_attempts: Total connect attempts before giving up.
        connect_retry_delay: Fixed wait between connect attempts.
        idle_timeout: Seconds without remote output before exec aborts.
        poll_interval: Sleep between output polls.
        strict_host_key_checking: Verify host keys against known_hosts.
            Off by default; unknown keys are accepted with a warning.
    """

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    connect_attempts: int = DEFAULT_CONNECT_ATTEMPTS
    connect_retry_delay: float = DEFAULT_CONNECT_RETRY_DELAY
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    strict_host_key_checking: bool = False

    def __post_init__(self) -> None:
        if self.connect_attempts < 1:
            raise ConfigError(f"ssh.connect_attempts must be >= 1, got {self.connect_attempts}")
        if self.idle_timeout <= 0:
            raise ConfigError(f"ssh.idle_timeout must be > 0, got {self.idle_timeout}")


@dataclass(frozen=True, slots=True)
class ScalingSettings:
    dns_timeout: float = DEFAULT_DNS_TIMEOUT
    dns_poll_interval: float = DEFAULT_DNS_POLL_INTERVAL


@dataclass(frozen=True, slots=True)
class MembershipSettings:
    """Coordinator commands used by ``SshMembership``."""

    remote_dir: str = "/tmp/nodescale"
    exclude_file: str = "excludes"
    exclude_perms: str = "644"
    refresh_command: str = "hadoop mradmin -refreshNodes"
    list_active_command: str = "hadoop job -list-active-trackers"
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT
    verify_poll_interval: float = DEFAULT_VERIFY_POLL_INTERVAL


@dataclass(frozen=True, slots=True)
class Settings:
    ssh: SshSettings = field(default_factory=SshSettings)
    scaling: ScalingSettings = field(default_factory=ScalingSettings)
    membership: MembershipSettings = field(default_factory=MembershipSettings)
    logging: LogConfig = field(default_factory=LogConfig)
    credentials: Credentials | None = None


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def _build(cls: type[T], section: str, raw: RawConfig) -> T:
    allowed = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(raw) - allowed
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in [{section}]: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(allowed))}"
        )
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigError(f"Invalid [{section}] section: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_cfg = _read_toml((project_dir or Path.cwd()) / PROJECT_CONFIG_NAME)
    return _deep_merge(global_cfg, project_cfg)


def settings_from_dict(raw: RawConfig) -> Settings:
    """Build ``Settings`` from an already parsed mapping."""
    sections = {"ssh", "scaling", "membership", "logging", "credentials"}
    unknown = set(raw) - sections
    if unknown:
        raise ConfigError(f"Unknown section(s): {', '.join(sorted(unknown))}")

    credentials = None
    if "credentials" in raw:
        creds = dict(raw["credentials"])
        if key_file := creds.get("private_key_file"):
            creds["private_key_file"] = str(Path(key_file).expanduser())
        credentials = _build(Credentials, "credentials", creds)

    return Settings(
        ssh=_build(SshSettings, "ssh", raw.get("ssh", {})),
        scaling=_build(ScalingSettings, "scaling", raw.get("scaling", {})),
        membership=_build(MembershipSettings, "membership", raw.get("membership", {})),
        logging=_build(LogConfig, "logging", raw.get("logging", {})),
        credentials=credentials,
    )


def load_settings(
    path: Path | None = None,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Settings:
    """Load settings from an explicit file or the global/project pair."""
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return settings_from_dict(_read_toml(path))
    return settings_from_dict(load_config(project_dir=project_dir, global_path=global_path))
