"""Configuration loader for postrpc."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import tomlkit
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from postrpc.limits import (
    CONNECT_TIMEOUT_SECONDS,
    HANDSHAKE_INITIAL_DELAY_SECONDS,
    HANDSHAKE_RETRY_INTERVAL_SECONDS,
)
from postrpc.paths import get_config_path

if TYPE_CHECKING:
    from pydantic_settings import PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

type LogLevelLiteral = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

ENV_PREFIX = "POSTRPC_"
_SECTION = "rpc"


def atomic_write(path: Path, content: str) -> None:
    """Write file atomically to avoid partial/corrupt writes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        Path(tmp_path).replace(path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class RpcConfig(BaseSettings):
    """Handshake timing and server defaults.

    ``POSTRPC_<FIELD>`` environment variables override values from the config
    file and keyword arguments.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    connect_timeout_seconds: float = Field(
        default=CONNECT_TIMEOUT_SECONDS,
        gt=0,
        description="Give up connecting after this many seconds",
    )
    retry_interval_seconds: float = Field(
        default=HANDSHAKE_RETRY_INTERVAL_SECONDS,
        gt=0,
        description="Delay between handshake attempts",
    )
    initial_delay_seconds: float = Field(
        default=HANDSHAKE_INITIAL_DELAY_SECONDS,
        ge=0,
        description="Delay before the first handshake attempt",
    )
    access_control: bool = Field(
        default=False,
        description="Inject caller identity as first argument of served methods",
    )
    log_level: LogLevelLiteral = Field(default="WARNING")
    socket_path: str | None = Field(
        default=None,
        description="Unix socket used by `postrpc serve` and `postrpc call` (None = runtime dir)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings

    @classmethod
    def load(cls, config_path: Path | None = None) -> RpcConfig:
        """Load configuration from TOML, then apply ``POSTRPC_*`` overrides."""
        path = config_path or get_config_path()
        data: dict[str, Any] = {}
        if path.exists():
            with path.open("rb") as f:
                document = tomllib.load(f)
            section = document.get(_SECTION, {})
            if isinstance(section, dict):
                data.update(section)
            else:
                logger.warning("Ignoring malformed [%s] section in %s", _SECTION, path)
        return cls(**data)

    async def save(self, path: Path | None = None) -> Path:
        """Serialize current config to TOML file."""
        target = path or get_config_path()
        doc = tomlkit.document()
        table = tomlkit.table()
        for key, value in self.model_dump().items():
            if value is not None:
                table[key] = value
        doc[_SECTION] = table
        await asyncio.to_thread(atomic_write, target, tomlkit.dumps(doc))
        return target


__all__ = ["ENV_PREFIX", "RpcConfig", "atomic_write"]
