"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from harbinger.core.log import logger

CONFIG_FILENAME = "harbinger.yaml"


def config_search_path() -> list[Path]:
    """Config files read on every start, lowest priority first."""
    return [
        Path(__file__).parent.parent / "defaults" / "default.yaml",
        Path(user_config_dir("harbinger", appauthor=False)) / CONFIG_FILENAME,
        Path.home() / f".{CONFIG_FILENAME}",
        Path(CONFIG_FILENAME),
    ]


def _cli_includes(argv: list[str]) -> list[str]:
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        elif argv[i].startswith("--include="):
            includes.append(argv[i].split("=", 1)[1])
        i += 1
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source with include: directive and --include
    CLI support.

    Deep merges, lowest priority first: package defaults, the
    platform config dir, ~/.harbinger.yaml, ./harbinger.yaml, then
    --include files. include: directives inside any file are loaded
    first and overridden by the including file.
    """

    def __init__(
        self, settings_cls: type[BaseSettings], yaml_file=None
    ):
        """Initialize with CLI include processing.

        Args:
            settings_cls: The Settings class being initialized
            yaml_file: Extra files to merge after the search path
        """
        # --include must be known before pydantic parses the CLI
        includes = _cli_includes(sys.argv)
        if yaml_file is not None:
            if isinstance(yaml_file, (str, os.PathLike)):
                yaml_file = [yaml_file]
            includes = [*yaml_file, *includes]

        super().__init__(settings_cls, includes or None)

    def _read_files(self, files, deep_merge: bool = True):
        """Load the search path and any include files.

        Args:
            files: --include file path(s), or None
            deep_merge: Accepted for API compatibility; files are
                always deep merged

        Returns:
            Deep-merged dictionary of all loaded data
        """
        result = {}
        files_to_load = config_search_path()

        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        for file_path in files_to_load:
            if file_path.is_file():
                with logger.span("Configuration loading",
                                 file=str(file_path)):
                    data = self._load_file_recursive(file_path, set())
                    result = self._deep_merge(result, data)
            else:
                logger.debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )

        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load a file and resolve its include: directives.

        Raises:
            ValueError: If includes form a cycle
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if "include" in data:
            includes = data.pop("include")
            if isinstance(includes, str):
                includes = [includes]

            merged = {}
            for inc in includes:
                inc_path = self._resolve_path(inc, filepath)
                inc_data = self._load_file_recursive(inc_path, visited.copy())
                merged = self._deep_merge(merged, inc_data)
            data = self._deep_merge(merged, data)

        return data

    def _resolve_path(self, include_path: str, relative_to: Path) -> Path:
        path = Path(include_path).expanduser()
        if path.is_absolute():
            return path
        return (relative_to.parent / path).resolve()

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge override into base (override wins)."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
