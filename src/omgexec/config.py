"""Runtime settings for omgexec, loaded from omgexec.toml, .env and the environment.

Environment variables override file settings using the ``OMGEXEC_`` prefix
and ``__`` as the nested delimiter (e.g. ``OMGEXEC_HTTP__MAX_ATTEMPTS=3``).

Priority (highest wins): init args > env vars > .env > omgexec.toml

Usage::

    from omgexec.config import get_settings

    s = get_settings()
    print(s.runtime.cli)
    print(s.state.path)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in omgexec.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Sections reject unknown keys."""

    model_config = {"extra": "forbid"}


class RuntimeConfig(_StrictModel):
    cli: str = "docker"
    command_timeout: float = 60.0  # seconds per runtime CLI call


class PortsConfig(_StrictModel):
    low: int = 2000
    high: int = 17000  # exclusive
    max_probes: int = 50  # bind attempts allowed per requested port

    @model_validator(mode="after")
    def _check_range(self) -> PortsConfig:
        if not 0 < self.low < self.high <= 65536:
            raise ValueError(f"Invalid port range [{self.low}, {self.high})")
        return self


class ProvisioningConfig(_StrictModel):
    max_start_attempts: int = 5
    timeout: float = 120.0  # seconds for the whole allocate-and-start loop
    keepalive_command: list[str] = ["tail", "-f", "/dev/null"]

    @field_validator("max_start_attempts")
    @classmethod
    def clamp_attempts(cls, v: int) -> int:
        return max(1, v)


class HttpConfig(_StrictModel):
    host: str = "localhost"
    max_attempts: int = 10
    backoff: float = 0.5  # seconds, multiplied by the attempt number
    timeout: float = 30.0  # seconds per request

    @field_validator("max_attempts")
    @classmethod
    def clamp_attempts(cls, v: int) -> int:
        return max(1, v)


class EventsConfig(_StrictModel):
    container_host: str = "host.docker.internal"  # how a container addresses the host
    callback_argument: str = "endpoint"


class StateConfig(_StrictModel):
    model_config = {"extra": "forbid", "validate_default": True}

    path: Path = Path("~/.omg.json")  # expanded by expand_home, default included

    @field_validator("path")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return v.expanduser()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="omgexec.toml",
        env_file=".env",
        env_prefix="OMGEXEC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    runtime: RuntimeConfig = RuntimeConfig()
    ports: PortsConfig = PortsConfig()
    provisioning: ProvisioningConfig = ProvisioningConfig()
    http: HttpConfig = HttpConfig()
    events: EventsConfig = EventsConfig()
    state: StateConfig = StateConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > omgexec.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Settings loaded on first use and cached."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached Settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
