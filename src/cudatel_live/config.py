"""Persisted client configuration.

The YAML file names the active environment, the server and credentials of
each environment, the channel sets and the last socket session id::

    environment: production
    environments:
      production:
        host: cudatel.example.com
        user:
          __auth_user: admin
          __auth_pass: secret
    sets:
      join: [meteor_alive]
      boot: [calls, queues]
    ws_sessid: null

The session id is written back after every successful login.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self, cast

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from cudatel_live.const import CUDATEL_CONFIG_DEFAULTS_PATH, CUDATEL_CONFIG_FILE_PATH, CUDATEL_WS_PATH
from cudatel_live.logging_abstraction import get_logger

__all__ = [
    "ChannelSets",
    "ClientConfig",
    "ConfigError",
    "ConfigStore",
    "EnvironmentConfig",
    "Session",
]

logger = get_logger(__name__)


class ConfigError(Exception):
    """Configuration file is missing, unreadable or invalid."""


class EnvironmentConfig(BaseModel):
    """Server address and GUI credentials of one environment."""

    host: str
    user: dict[str, Any] = Field(default_factory=dict)

    @field_validator("host")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        host = value.strip()
        for scheme in ("ws://", "wss://", "http://", "https://"):
            if host.startswith(scheme):
                host = host[len(scheme) :]
        return host.rstrip("/")


class ChannelSets(BaseModel):
    """Join-only and join-and-bootstrap channel lists (disjoint, lower-cased)."""

    join: list[str] = Field(default_factory=list)
    boot: list[str] = Field(default_factory=list)

    @field_validator("join", "boot", mode="before")
    @classmethod
    def _lower(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(channel).lower() for channel in cast("list[object]", value)]
        return value

    @model_validator(mode="after")
    def _disjoint(self) -> Self:
        overlap = set(self.join) & set(self.boot)
        if overlap:
            msg = f"channels in both join and boot sets: {sorted(overlap)}"
            raise ValueError(msg)
        return self


class ClientConfig(BaseModel):
    environment: str = Field(validation_alias=AliasChoices("environment", "def_env"))
    environments: dict[str, EnvironmentConfig]
    sets: ChannelSets = Field(default_factory=ChannelSets)
    ws_sessid: str | None = None

    @model_validator(mode="after")
    def _environment_exists(self) -> Self:
        if self.environment not in self.environments:
            msg = f"environment {self.environment!r} is not defined"
            raise ValueError(msg)
        return self

    @property
    def active(self) -> EnvironmentConfig:
        return self.environments[self.environment]

    def session(self) -> Session:
        return Session(
            session_id=self.ws_sessid,
            environment=self.environment,
            server_address=self.active.host,
        )


@dataclass
class Session:
    """Socket session of one connection.

    Attributes:
        session_id: Socket session id sent with every envelope but CONNECT
        environment: Active environment name
        server_address: Host (and optional port) of the CudaTel server
    """

    session_id: str | None
    environment: str
    server_address: str

    @property
    def ws_url(self) -> str:
        return f"ws://{self.server_address}{CUDATEL_WS_PATH}"

    @property
    def origin(self) -> str:
        return f"http://{self.server_address}/"

    @property
    def http_base(self) -> str:
        return f"http://{self.server_address}"


class ConfigStore:
    """Loads and persists the YAML configuration file."""

    lp: str = "ConfigStore"

    def __init__(
        self,
        path: str | Path | None = None,
        defaults_path: str | Path | None = None,
    ) -> None:
        self.path = Path(path or CUDATEL_CONFIG_FILE_PATH)
        defaults = defaults_path or CUDATEL_CONFIG_DEFAULTS_PATH
        self.defaults_path = Path(defaults) if defaults else None
        self.config: ClientConfig | None = None

    async def load(self) -> ClientConfig:
        """Read and validate the configuration file.

        When the file is missing and a defaults file exists, the defaults are
        copied into place first.

        Raises:
            ConfigError: If no file can be found or the contents are invalid
        """
        lp = f"{self.lp}:load:"

        def _read_yaml() -> object:
            """Read YAML file synchronously (runs in thread pool)."""
            if not self.path.exists() and self.defaults_path is not None and self.defaults_path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                _ = shutil.copyfile(self.defaults_path, self.path)
                logger.info("%s Copied default configuration into place", lp, extra={"path": str(self.path)})
            with self.path.open("r", encoding="utf-8") as f:
                return cast("object", yaml.safe_load(f))

        try:
            raw_config = await asyncio.to_thread(_read_yaml)
        except FileNotFoundError as e:
            msg = f"configuration file not found: {self.path}"
            raise ConfigError(msg) from e
        except (OSError, yaml.YAMLError) as e:
            logger.exception("%s Failed to read config file: %s", lp, self.path)
            msg = f"cannot read configuration file {self.path}: {e}"
            raise ConfigError(msg) from e

        self.config = self.parse(raw_config)
        logger.info(
            "%s Loaded configuration",
            lp,
            extra={
                "environment": self.config.environment,
                "join": len(self.config.sets.join),
                "boot": len(self.config.sets.boot),
            },
        )
        return self.config

    @staticmethod
    def parse(raw_config: object) -> ClientConfig:
        """Validate an already-parsed YAML document.

        Raises:
            ConfigError: If the document is not a mapping or fails validation
        """
        if not isinstance(raw_config, Mapping):
            msg = "invalid config structure: expected mapping at root"
            raise ConfigError(msg)
        try:
            return ClientConfig.model_validate(dict(cast("Mapping[str, object]", raw_config)))
        except ValidationError as e:
            msg = f"invalid configuration: {e}"
            raise ConfigError(msg) from e

    async def save_session_id(self, session_id: str | None) -> bool:
        """Store ``session_id`` in the configuration and write the file back.

        Returns:
            True when the file was written
        """
        lp = f"{self.lp}:save_session_id:"
        if self.config is None:
            logger.error("%s Configuration not loaded, cannot save session id", lp)
            return False

        self.config.ws_sessid = session_id
        document = self.config.model_dump(mode="json")

        def _write_yaml() -> None:
            """Write YAML file synchronously (runs in thread pool)."""
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                _ = f.write(yaml.safe_dump(document, sort_keys=False))

        try:
            await asyncio.to_thread(_write_yaml)
        except OSError:
            logger.exception("%s Failed to write config file: %s", lp, self.path)
            return False
        else:
            logger.debug("%s Session id persisted", lp, extra={"path": str(self.path)})
            return True
