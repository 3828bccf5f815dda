"""Configuration loading for Sitehook."""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")

ENV_LISTEN_IP = "GIT_WEBHOOK_SERVICE_LISTEN_IP"
ENV_LISTEN_PORT = "GIT_WEBHOOK_SERVICE_LISTEN_PORT"
ENV_REPOSITORY = "GIT_WEBHOOK_SERVICE_REPOSITORY"

_ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    (ENV_LISTEN_IP, "service", "listen_ip"),
    (ENV_LISTEN_PORT, "service", "listen_port"),
    (ENV_REPOSITORY, "site", "repository"),
)


class MissingSettingError(ValueError):
    """Raised when settings required to run the service are absent."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__("Missing required settings: " + ", ".join(missing))
        self.missing = missing


def _split_command(value: Any) -> list[str]:
    if isinstance(value, str):
        parts = shlex.split(value)
    elif isinstance(value, (list, tuple)):
        parts = [str(item) for item in value]
    else:
        raise ValueError("Commands must be a string or a list of arguments.")
    if not parts:
        raise ValueError("Commands must not be empty.")
    return parts


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path | None = None
    level: str = Field(default="info")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warn", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported logging level: {value!r}")
        return normalized


class ServiceSettings(BaseModel):
    """Webhook listener settings."""

    model_config = ConfigDict(extra="forbid")

    listen_ip: str | None = None
    listen_port: int | None = Field(default=None, ge=1, le=65535)
    trigger_path: str = "/trigger"
    concurrency: Literal["reject", "queue"] = "reject"
    exit_on_failure: bool = False

    @field_validator("listen_ip", mode="before")
    @classmethod
    def _blank_ip_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("listen_port", mode="before")
    @classmethod
    def _blank_port_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("trigger_path")
    @classmethod
    def _normalize_trigger_path(cls, value: str) -> str:
        path = value.strip()
        if not path.startswith("/"):
            raise ValueError("trigger_path must start with '/'.")
        return path


class SiteSettings(BaseModel):
    """Repository, generator and server settings."""

    model_config = ConfigDict(extra="forbid")

    repository: Path | None = None
    output_subdir: str = "public"
    pull_command: list[str] = Field(default_factory=lambda: ["git", "pull"])
    generate_command: list[str] = Field(default_factory=lambda: ["hugo"])
    serve_command: list[str] = Field(default_factory=lambda: ["hugo", "server"])
    server_log: Path | None = None
    stop_timeout_seconds: float | None = Field(default=10.0, gt=0.0)

    @field_validator("repository", mode="before")
    @classmethod
    def _blank_repository_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("pull_command", "generate_command", "serve_command", mode="before")
    @classmethod
    def _normalize_command(cls, value: Any) -> list[str]:
        return _split_command(value)

    @field_validator("output_subdir")
    @classmethod
    def _validate_output_subdir(cls, value: str) -> str:
        candidate = value.strip().strip("/")
        if not candidate or candidate in {".", ".."} or Path(candidate).is_absolute():
            raise ValueError("output_subdir must name a directory inside the repository.")
        if ".." in Path(candidate).parts:
            raise ValueError("output_subdir must not contain '..'.")
        if len(Path(candidate).parts) != 1:
            raise ValueError("output_subdir must be a single directory name.")
        return candidate


class ConfigModel(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    site: SiteSettings = Field(default_factory=SiteSettings)


@dataclass(slots=True)
class Config:
    """Validated configuration with convenience helpers."""

    model: ConfigModel
    raw: Mapping[str, Any] = field(repr=False)
    loaded_from: tuple[str, ...] = field(default_factory=tuple, repr=False)

    @property
    def logging(self) -> LoggingSettings:
        """Return logging settings."""

        return self.model.logging

    @property
    def service(self) -> ServiceSettings:
        """Return webhook listener settings."""

        return self.model.service

    @property
    def site(self) -> SiteSettings:
        """Return repository and command settings."""

        return self.model.site

    def require_service(self) -> None:
        """Ensure every setting needed to serve webhooks is present."""

        missing: list[str] = []
        if not self.service.listen_ip:
            missing.append(f"service.listen_ip ({ENV_LISTEN_IP})")
        if self.service.listen_port is None:
            missing.append(f"service.listen_port ({ENV_LISTEN_PORT})")
        if self.site.repository is None:
            missing.append(f"site.repository ({ENV_REPOSITORY})")
        if missing:
            raise MissingSettingError(missing)

    def model_dump(self) -> Mapping[str, Any]:
        """Expose the parsed configuration as a mapping."""

        return self.model.model_dump()


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Load configuration from defaults/local overrides or an explicit document, then the environment."""

    merged: dict[str, Any] = {}
    loaded_from: list[str] = []

    if path is not None:
        override_path = _resolve_path(path)
        if override_path is None or not override_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        merged = _merge_dicts(merged, _read_yaml(override_path))
        loaded_from.append(str(override_path))
    else:
        default_candidate = _resolve_path(DEFAULT_CONFIG_PATH)
        packaged_default = _resolve_packaged_path(DEFAULT_CONFIG_PATH)
        if default_candidate and default_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(default_candidate))
            loaded_from.append(str(default_candidate))
        elif packaged_default and packaged_default.exists():
            merged = _merge_dicts(merged, _read_yaml(packaged_default))
            loaded_from.append(str(packaged_default))
        else:
            packaged_payload = _read_packaged_yaml("sitehook.config", "default.yaml")
            if packaged_payload is not None:
                merged = _merge_dicts(merged, packaged_payload)
                loaded_from.append("sitehook.config:default.yaml")

        local_candidate = _resolve_path(LOCAL_CONFIG_PATH)
        if local_candidate and local_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(local_candidate))
            loaded_from.append(str(local_candidate))

    env_overrides = _environment_overrides(os.environ if environ is None else environ)
    if env_overrides:
        merged = _merge_dicts(merged, env_overrides)
        loaded_from.append("environment")

    try:
        model = ConfigModel.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    return Config(model=model, raw=merged, loaded_from=tuple(loaded_from))


def _environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect settings supplied through environment variables."""

    overrides: dict[str, Any] = {}
    for variable, section, key in _ENV_OVERRIDES:
        value = environ.get(variable)
        if value is None or not value.strip():
            continue
        overrides.setdefault(section, {})[key] = value.strip()
    return overrides


def _resolve_path(path: Path) -> Path | None:
    """Resolve configuration paths relative to the current working directory."""

    if path is None:
        return None
    return path if path.is_absolute() else Path.cwd() / path


def _resolve_packaged_path(path: Path) -> Path | None:
    """Resolve paths embedded in packaged binaries (e.g., PyInstaller)."""

    base = getattr(sys, "_MEIPASS", None)
    if not base:
        return None
    return Path(base) / path


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file into a dictionary."""

    content = path.read_text(encoding="utf-8")
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must define a mapping at the top level.")
    return data


def _read_packaged_yaml(package: str, name: str) -> dict[str, Any] | None:
    """Read YAML embedded in a Python package via importlib.resources."""

    try:
        content = resources.files(package).joinpath(name).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Packaged configuration {package}:{name} must define a mapping at the top level."
        )
    return data


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge two dictionaries, with override values taking precedence."""

    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
