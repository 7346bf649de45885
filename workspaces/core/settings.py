"""Configuration loaded from ``/etc/workspaces/workspaces.toml``.

The TOML file is the primary source; ``WORKSPACES_*`` environment variables
override scalar fields (``WORKSPACES_LOG_LEVEL=DEBUG`` maps to ``log_level``).
Set ``WORKSPACES_CONFIG`` to read a different file.

Example::

    default_filesystem = "tank"

    [filesystems.tank]
    root = "tank/workspaces"
    max_duration = 90
    expired_retention = 30
    expiry_notifications_on_days = [14, 3, -7]
    snapshot = true

    [smtp]
    relay = "mail.example.org:587"
    username = "workspaces@example.org"
    password = "..."

Settings are loaded once per invocation and passed explicitly to the
lifecycle engine and the maintenance sweep; nothing reads them globally.
"""

from __future__ import annotations

import os
import stat
import tomllib
from datetime import timedelta
from enum import StrEnum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, NameEmail, SecretStr, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
    TomlConfigSettingsSource,
)

from workspaces.core.errors import ConfigError

CONFIG_PATH = Path("/etc/workspaces/workspaces.toml")
"""Default location of the configuration file."""

DB_PATH = Path("/usr/local/lib/workspaces/workspaces.db")
LEGACY_DB_PATH = Path("/usr/local/share/workspaces/workspaces.db")


def config_path() -> Path:
    """Return the configuration file path, honouring ``WORKSPACES_CONFIG``."""
    return Path(os.environ.get("WORKSPACES_CONFIG", CONFIG_PATH))


def default_db_path() -> Path:
    """Current database location, or the pre-0.3 one if only that exists."""
    if DB_PATH.exists():
        return DB_PATH
    if LEGACY_DB_PATH.exists():
        logger.warning(
            "DEPRECATION WARNING: the workspaces default database location has been moved from "
            "`{}` to `{}`. Please either move your database to the new location, "
            "or manually specify `db_path` in `{}`",
            LEGACY_DB_PATH,
            DB_PATH,
            config_path(),
        )
        return LEGACY_DB_PATH
    return DB_PATH


# -- Filesystems ---------------------------------------------------------------


class FilesystemPolicy(BaseModel):
    """A filesystem workspaces can be created in.

    Durations are configured in whole days.
    """

    model_config = ConfigDict(frozen=True)

    root: str
    """ZFS dataset acting as the parent of all workspace datasets."""

    max_duration: timedelta
    """Longest duration a workspace may be created or extended for."""

    expired_retention: timedelta
    """Grace period after expiry before the workspace is destroyed."""

    expiry_notifications_on_days: list[timedelta] = Field(default_factory=list)
    """Offsets relative to expiry at which owners are reminded, ascending.

    Negative offsets send reminders after expiry, but before deletion.
    """

    snapshot: bool = False
    """Snapshot ``root`` recursively on every maintenance run."""

    disabled: bool = False
    """Disabled filesystems reject create / extend for unprivileged callers."""

    @field_validator("max_duration", "expired_retention", mode="before")
    @classmethod
    def _days(cls, value: object) -> object:
        if isinstance(value, int):
            return timedelta(days=value)
        return value

    @field_validator("expiry_notifications_on_days", mode="before")
    @classmethod
    def _sorted_days(cls, value: object) -> object:
        if isinstance(value, list):
            days = [timedelta(days=v) if isinstance(v, int) else v for v in value]
            return sorted(days)
        return value

    def volume(self, owner: str, name: str) -> str:
        """Dataset name of a workspace on this filesystem."""
        return f"{self.root}/{owner}/{name}"


# -- SMTP ------------------------------------------------------------------------


class TlsMode(StrEnum):
    STARTTLS = "starttls"
    WRAPPER = "wrapper"


class AuthMethod(StrEnum):
    PLAIN = "plain"
    LOGIN = "login"


class SmtpSettings(BaseModel):
    """Mail transport used for reminders and lifecycle notifications."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    relay: str
    """``host``, ``host:port`` or ``[ipv6]:port``."""

    username: str
    password: SecretStr

    from_: NameEmail | None = Field(default=None, alias="from")
    """Sender address.  Falls back to ``username`` if that is an address."""

    tls: TlsMode = TlsMode.STARTTLS
    auth: AuthMethod | None = None
    """Force a specific SMTP auth mechanism instead of negotiating one."""


# -- Settings --------------------------------------------------------------------


class WorkspacesSettings(BaseSettings):
    """Workspaces settings.

    Read from the TOML configuration file with ``WORKSPACES_`` environment
    variable overrides.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKSPACES_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "WARNING"

    # -- Store -----------------------------------------------------------------
    db_path: Path = Field(default_factory=default_db_path)
    """SQLite database holding workspace records and notification history."""

    # -- Filesystems -----------------------------------------------------------
    default_filesystem: str | None = None
    filesystems: dict[str, FilesystemPolicy] = Field(default_factory=dict)

    # -- Mail ------------------------------------------------------------------
    smtp: SmtpSettings | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_file = settings_cls.model_config.get("toml_file") or config_path()
        return (init_settings, env_settings, TomlConfigSettingsSource(settings_cls, toml_file=toml_file))

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"


def load_settings(path: Path | None = None) -> WorkspacesSettings:
    """Load and validate the configuration file.

    The file holds the SMTP password, so it must not be accessible by group
    or others.  Raises ``ConfigError`` if it is missing, too permissive or
    invalid.
    """
    if path is None:
        path = config_path()

    try:
        mode = path.stat().st_mode
    except FileNotFoundError:
        msg = f"could not find configuration file {path}"
        raise ConfigError(msg) from None
    if stat.S_IMODE(mode) & 0o077:
        msg = f"config file permissions too liberal: {path} should be 600"
        raise ConfigError(msg)

    class _FileSettings(WorkspacesSettings):
        model_config = SettingsConfigDict(toml_file=path)

    try:
        return _FileSettings()
    except (ValidationError, SettingsError, tomllib.TOMLDecodeError) as exc:
        msg = f"error parsing configuration file {path}: {exc}"
        raise ConfigError(msg) from exc
