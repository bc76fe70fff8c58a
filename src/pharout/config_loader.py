"""
Configuration file loader for pharout.

Supports loading build definitions from:
- pharout.toml / .pharout.toml
- pharout.yml / .pharout.yml / pharout.yaml / .pharout.yaml

Example (TOML):

    [pharout]
    executable = "bin/tool"
    output = "build/tool.phar"
    sources = ["src", { path = "lib", pattern = "*.inc" }]
    packages = ["symfony/console"]
    message = "Copyright (c) Example Ltd."

CLI flags override config file values.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import DEFAULT_SOURCE_PATTERN, BuildConfig, SourceGroup
from .errors import ConfigError

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "pharout.toml",
    ".pharout.toml",
    "pharout.yml",
    ".pharout.yml",
    "pharout.yaml",
    ".pharout.yaml",
]

# Section name used when the build definition is nested
CONFIG_SECTION = "pharout"


@dataclass
class ProjectConfig:
    """
    Project-level build definition loaded from a config file.

    All fields are optional - CLI flags will override any values set here.
    """

    executable: str | None = None
    output: Path | None = None
    sources: list[SourceGroup] | None = None
    packages: list[str] | None = None
    message: str | None = None

    # File the values were read from
    config_file: Path | None = field(default=None, repr=False)


def find_config_file(project_root: Path) -> Path | None:
    """
    Find a configuration file in the project root.

    Args:
        project_root: Root directory of the project

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = project_root / name
        if config_path.is_file():
            return config_path
    return None


def _select_section(data: dict[str, Any]) -> dict[str, Any]:
    """Use the `[pharout]` section when present, else the whole document."""
    if CONFIG_SECTION in data and isinstance(data[CONFIG_SECTION], dict):
        return dict(data[CONFIG_SECTION])
    return data


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file into a dict.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed build definition.
    """
    with open(path, "rb") as f:
        data: dict[str, Any] = tomllib.load(f)
    return _select_section(data)


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed build definition (empty if the document is not a mapping).
    """
    with open(path, encoding="utf-8") as f:
        raw_data = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        return {}
    return _select_section(dict(raw_data))


def parse_source_spec(spec: str) -> SourceGroup:
    """Parse a `PATH[:PATTERN]` source specification.

    Args:
        spec: Source path, optionally followed by a colon and a file name glob.

    Returns:
        The source group (pattern defaults to `*.php`).

    Raises:
        ConfigError: If the path part is empty.
    """
    path, sep, pattern = spec.rpartition(":")
    if not sep:
        path, pattern = spec, ""
    path = path.strip()
    if not path:
        raise ConfigError(f"Invalid source specification: {spec!r}")
    return SourceGroup(path, pattern.strip() or DEFAULT_SOURCE_PATTERN)


def _normalize_sources(sources: Any) -> list[SourceGroup] | None:
    """Normalize source input to a list of source groups.

    Args:
        sources: Sources from config/CLI (string, list of strings or mappings, or None).

    Returns:
        A list of source groups or None if unset/empty.

    Raises:
        ConfigError: If an entry has an unsupported shape.
    """
    if sources is None:
        return None

    if isinstance(sources, str):
        sources = [s.strip() for s in sources.split(",")]

    if not isinstance(sources, (list, tuple)):
        raise ConfigError(f"'sources' must be a list, got {type(sources).__name__}")

    result = []
    for item in sources:
        if isinstance(item, str):
            if item.strip():
                result.append(parse_source_spec(item))
        elif isinstance(item, dict) and item.get("path"):
            result.append(
                SourceGroup(str(item["path"]), str(item.get("pattern") or DEFAULT_SOURCE_PATTERN))
            )
        else:
            raise ConfigError(f"Invalid source entry: {item!r}")

    return result if result else None


def _normalize_packages(packages: Any) -> list[str] | None:
    """Normalize package input to a list of Composer package names.

    Args:
        packages: Packages from config/CLI (comma-separated string, list, or None).

    Returns:
        A list of package names or None if unset/empty.
    """
    if packages is None:
        return None

    if isinstance(packages, str):
        packages = packages.split(",")

    if not isinstance(packages, (list, tuple)):
        raise ConfigError(f"'packages' must be a list, got {type(packages).__name__}")

    result = [str(p).strip() for p in packages if p and str(p).strip()]
    return result if result else None


def load_config(project_root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load the build definition from a config file.

    Args:
        project_root: Root directory of the project
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None).

    Raises:
        ConfigError: If an explicit config file is missing, or a config file
            cannot be parsed.
    """
    if config_path is None:
        config_path = find_config_file(project_root)
        if config_path is None:
            return ProjectConfig()
    elif not config_path.is_file():
        raise ConfigError(f"Config file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            raise ConfigError(f"Unsupported config file type: {config_path.name}")
    except (tomllib.TOMLDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e

    config = ProjectConfig(config_file=config_path)

    executable = data.get("executable") or data.get("bin")
    if executable:
        config.executable = str(executable)
    if data.get("output"):
        config.output = Path(data["output"])
    config.sources = _normalize_sources(data.get("sources"))
    config.packages = _normalize_packages(data.get("packages"))
    if data.get("message") is not None:
        config.message = str(data["message"])

    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    project_root: Path,
    # CLI arguments (None means not specified on CLI)
    executable: str | None = None,
    sources: list[str] | None = None,
    packages: list[str] | None = None,
    message: str | None = None,
    output: Path | None = None,
) -> tuple[BuildConfig, Path | None]:
    """Merge CLI arguments with config file values (CLI wins).

    Args:
        config: Config loaded from file (may have unset values).
        project_root: Project directory.
        executable: Entry script from CLI (optional).
        sources: `PATH[:PATTERN]` source specifications from CLI (optional).
        packages: Composer package names from CLI (optional).
        message: Stub message from CLI (optional).
        output: Output archive path from CLI (optional).

    Returns:
        Tuple of (build configuration, output path or None if neither side set one).
    """
    build = BuildConfig().for_project_at(project_root)

    # Executable: CLI overrides config
    if executable:
        build.with_executable(executable)
    elif config.executable is not None:
        build.with_executable(config.executable)

    # Source groups: CLI list replaces config list
    cli_sources = _normalize_sources(sources) if sources else None
    for group in cli_sources or config.sources or []:
        build.with_source_path(group.path, group.pattern)

    # Packages: CLI list replaces config list
    cli_packages = _normalize_packages(packages) if packages else None
    build.with_composer_packages(cli_packages or config.packages or [])

    # Message
    if message is not None:
        build.with_internal_message(message)
    elif config.message is not None:
        build.with_internal_message(config.message)

    return build, output if output is not None else config.output
