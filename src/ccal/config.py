"""Centralized configuration — Pydantic BaseSettings with a TOML source.

Project settings live in ``ccal.toml`` next to ``docker-compose.yml``.
Environment variables override it using the ``CCAL_`` prefix and ``__`` as
the nested delimiter (e.g. ``CCAL_READINESS__ATTEMPTS=30``).

There is no ``.env`` source and no secrets section: the only
credential this tool handles is fetched fresh from ``gh`` for each session
and never touches disk.

Priority (highest wins): init args > env vars > ccal.toml

Usage::

    from ccal.config import get_settings

    s = get_settings()
    print(s.service.name)
    print(s.readiness.attempts)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in ccal.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class ServiceConfig(_StrictModel):
    name: str = "claude-code"  # service key in docker-compose.yml
    image: str = "claude-code:latest"
    compose_file: str = "docker-compose.yml"
    dockerfile: str = "Dockerfile"


class DaemonConfig(_StrictModel):
    attempts: int = 10
    interval: float = 1.0  # seconds
    start_command: list[str] = ["sudo", "systemctl", "start", "docker"]

    @field_validator("attempts")
    @classmethod
    def clamp_attempts(cls, v: int) -> int:
        return max(1, v)


class ReadinessConfig(_StrictModel):
    attempts: int = 15
    interval: float = 2.0  # seconds
    probe: list[str] = ["claude", "--version"]  # run inside the service

    @field_validator("attempts")
    @classmethod
    def clamp_attempts(cls, v: int) -> int:
        return max(1, v)


class AuthConfig(_StrictModel):
    cli: str = "gh"
    token_timeout: float = 30.0  # seconds, excludes interactive login
    token_env: str = "GITHUB_TOKEN"  # variable the in-container shim exports

    @field_validator("token_env")
    @classmethod
    def validate_env_name(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"not a valid environment variable name: {v!r}")
        return v


class PermissionsConfig(_StrictModel):
    group: str = "docker"


class ToolsConfig(_StrictModel):
    run: list[str] = ["claude", "--dangerously-skip-permissions"]
    shell: list[str] = ["bash"]


class CleanConfig(_StrictModel):
    # The image is shared by every project on this host; only remove on request.
    remove_image: bool = False


class OutputConfig(_StrictModel):
    plain: bool = False


class ProjectConfig(_StrictModel):
    dev_dir: str = "~/Development"
    # fetched into new projects by `ccal setup`; empty string skips the download
    claude_md_url: str = "https://raw.githubusercontent.com/nicholascsmith/claude-config/main/CLAUDE.md"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="ccal.toml",
        env_prefix="CCAL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    service: ServiceConfig = ServiceConfig()
    daemon: DaemonConfig = DaemonConfig()
    readiness: ReadinessConfig = ReadinessConfig()
    auth: AuthConfig = AuthConfig()
    permissions: PermissionsConfig = PermissionsConfig()
    tools: ToolsConfig = ToolsConfig()
    clean: CleanConfig = CleanConfig()
    output: OutputConfig = OutputConfig()
    project: ProjectConfig = ProjectConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > ccal.toml."""
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    # --- Computed properties ---

    @cached_property
    def project_root(self) -> Path:
        return Path.cwd()

    @cached_property
    def dev_dir(self) -> Path:
        return Path(self.project.dev_dir).expanduser()

    @cached_property
    def required_files(self) -> list[str]:
        return [self.service.compose_file, self.service.dockerfile]


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
