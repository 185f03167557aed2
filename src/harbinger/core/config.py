"""Application state and configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from harbinger.core.base import BaseConfig, BaseState
from harbinger.core.errors import InvalidRefNameError
from harbinger.core.log import Level, Logger, logger, setup_logger
from harbinger.core.yaml_settings import YamlWithIncludesSettingsSource
from harbinger.git.refs import validate_ref_name

# ============================================================
# TEMPLATE SUBSTITUTION NAMESPACE
# ============================================================

# Usage in YAML: {platformdirs.user_state_dir}, {Path.home}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts numbers (seconds) and strings such as "30s", "5m", "1h"
    or "1m30s".

    Raises:
        ValueError: If the value is malformed or not positive
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ValueError(f"invalid duration: {value!r}") from None
            seconds = sum(
                float(number) * _DURATION_UNITS[unit]
                for number, unit in parts
            )
    if seconds <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds the way they are written in config ("1m30s")."""
    whole = int(seconds)
    if whole != seconds or whole == 0:
        return f"{seconds:g}s"
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    text = ""
    if hours:
        text += f"{hours}h"
    if minutes:
        text += f"{minutes}m"
    if secs:
        text += f"{secs}s"
    return text


# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class GitConfig(BaseConfig):
    """Repository selection."""

    repo_path: Path = Field(
        default=Path("."),
        description="Path inside the git work tree to monitor",
    )
    remote: str | None = Field(
        default=None,
        description=(
            "Remote to compare against. If unset, the branch's "
            "configured remote is used, else 'origin'"
        ),
    )


class MonitorConfig(BaseConfig):
    """Polling loop behaviour."""

    poll_interval: float = Field(
        default=30.0,
        description="Time between checks, e.g. '30s', '5m', '1m30s'",
    )
    target_branch: str | None = Field(
        default=None,
        description=(
            "Remote branch to compare with. If unset, each branch is "
            "compared with its own remote counterpart"
        ),
    )
    ignore_branches: list[str] = Field(
        default_factory=list,
        description="Local branches that are never checked",
    )
    notifications: bool = Field(
        default=True,
        description="Send desktop notifications",
    )
    auto_resolve: bool = Field(
        default=False,
        description=(
            "Merge incoming changes automatically; open a resolution "
            "session when they conflict"
        ),
    )
    auto_sync: bool = Field(
        default=False,
        description="Pull automatically when behind with no conflicts",
    )
    auto_pull: bool | None = Field(
        default=None,
        description="Deprecated spelling of auto_sync",
    )
    interactive: bool = Field(
        default=True,
        description=(
            "Allow opening a resolution session from the monitor "
            "(only when attached to a terminal)"
        ),
    )

    @field_validator("poll_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("target_branch")
    @classmethod
    def _check_target_branch(cls, value: str | None) -> str | None:
        if value:
            try:
                validate_ref_name(value)
            except InvalidRefNameError as e:
                raise ValueError(e.message) from e
        return value or None

    @model_validator(mode="after")
    def _apply_auto_pull(self) -> MonitorConfig:
        if self.auto_pull is not None:
            logger.warn(
                "monitor.auto_pull is deprecated; use monitor.auto_sync"
            )
            if self.auto_pull and not self.auto_sync:
                self.auto_sync = True
        return self


class ResolveConfig(BaseConfig):
    """Interactive resolution settings."""

    editor: str | None = Field(
        default=None,
        description=(
            "Editor command for the edit action (may include "
            "arguments, e.g. 'code --wait'). Falls back to $VISUAL, "
            "then $EDITOR"
        ),
    )
    fallback_editors: list[str] = Field(
        default_factory=lambda: [
            "nano", "vim", "vi", "emacs", "code", "notepad",
        ],
        description="Editors searched for on PATH when none is set",
    )
    allow_scratch_merge: bool = Field(
        default=True,
        description=(
            "When git cannot preview a merge, simulate it in the work "
            "tree and abort it afterwards"
        ),
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance"
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Repository settings",
    )
    monitor: MonitorConfig = Field(
        default_factory=MonitorConfig,
        description="Polling loop settings",
    )
    resolve: ResolveConfig = Field(
        default_factory=ResolveConfig,
        description="Conflict resolution settings",
    )

    log_level: Level = Field(
        default="info",
        alias="log-level",
        description=(
            "Console log level: 'spew', 'trace', 'debug', 'info', "
            "'warn', 'error', 'fatal'"
        ),
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir("harbinger",
                                                     appauthor=False))
        ),
        description=(
            "Root directory for log files "
            "(supports {platformdirs.*} templates)"
        ),
    )

    model_config = {"populate_by_name": True}

    @property
    def run_name(self) -> str:
        """Repository directory name, used for log paths."""
        return Path(self.git.repo_path).expanduser().resolve().name or "root"

    @model_validator(mode='after')
    def _setup_logger(self) -> Config:
        """Install the global logger once configuration is loaded."""
        if self.logger is None:
            self.logger = Logger()

        if "log_level" in self.model_fields_set:
            self.logger.console.level = self.log_level

        setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            console=self.logger.console,
            otlp=self.logger.otlp,
            file=self.logger.file,
        )
        return self

    def close(self):
        """Close config and the global logger."""
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS
# ============================================================

class MonitorState(BaseState):
    """What the polling loop remembers between ticks."""

    current_branch: str | None = Field(
        default=None,
        description="Branch seen on the previous tick",
    )
    last_remote_commit: str | None = Field(
        default=None,
        description="Remote commit id seen on the previous tick",
    )
    last_in_sync: bool | None = Field(
        default=None,
        description="Sync status on the previous tick",
    )

    def reset(self, branch: str | None = None) -> None:
        self.current_branch = branch
        self.last_remote_commit = None
        self.last_in_sync = None


class Runtime(BaseModel):
    """Runtime state, grouped by workflow."""

    monitor: MonitorState = Field(
        default_factory=MonitorState,
        description="Polling loop tracking state",
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Configuration plus runtime state.

    Configuration sources, highest priority first:
    1. Command-line arguments / constructor arguments
    2. YAML: --include files, ./harbinger.yaml, ~/.harbinger.yaml,
       the platform config dir, then package defaults
    3. .env file
    4. Environment variables (HARBINGER_CONFIG__MONITOR__POLL_INTERVAL)
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to merge. Use --include on the "
            "command line or include: in YAML files"
        ),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HARBINGER_",
        env_nested_delimiter="__",
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> State:
        """Expand {config.*} and {platformdirs.*} templates in strings."""
        self._substitute_recursive(self)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        elif isinstance(value, Path):
            substituted = self._substitute_string(str(value))
            return value if substituted == str(value) else Path(substituted)
        elif isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
            return value
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {dotted.path} templates with their values.

        Examples:
            "{platformdirs.user_state_dir}/logs"
            → "~/.local/state/harbinger/logs"
            "{config.git.repo_path}/.git"
            → "/home/user/repo/.git"
        """
        def replace_template(match):
            parts = match.group(1).split(".")

            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = obj('harbinger', appauthor=False)
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


__all__ = [
    "Config",
    "GitConfig",
    "MonitorConfig",
    "MonitorState",
    "ResolveConfig",
    "Runtime",
    "State",
    "format_duration",
    "parse_duration",
]
