"""
Configuration file loader for secret-sieve.

Supports loading configuration from:
- sieve.toml / .sieve.toml
- sieve.yml / .sieve.yml / sieve.yaml / .sieve.yaml

Settings may sit at the top level or inside a [sieve] section, so they can
share a file with other tools. CLI flags override config file values, which
override the built-in defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import DEFAULT_PLACEHOLDER, HIGH_CONFIDENCE_THRESHOLD, ScanConfig
from .errors import ConfigError
from .rules import RULES_BY_ID

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "sieve.toml",
    ".sieve.toml",
    "sieve.yml",
    ".sieve.yml",
    "sieve.yaml",
    ".sieve.yaml",
]

SECTION_NAME = "sieve"

KNOWN_KEYS = frozenset({
    "high_confidence_threshold",
    "exclude_globs",
    "max_file_bytes",
    "respect_gitignore",
    "follow_symlinks",
    "max_workers",
    "baseline_path",
    "placeholder",
    "disabled_rules",
    "show_suppressed",
    "include_informational",
})


@dataclass
class ProjectConfig:
    """
    Project-level configuration loaded from config files.

    All fields are optional - CLI flags will override any values set here.
    """

    high_confidence_threshold: int | None = None
    exclude_globs: set[str] | None = None
    max_file_bytes: int | None = None
    respect_gitignore: bool | None = None
    follow_symlinks: bool | None = None
    max_workers: int | None = None
    baseline_path: Path | None = None
    placeholder: str | None = None
    disabled_rules: set[str] | None = None
    show_suppressed: bool | None = None
    include_informational: bool | None = None

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (sorted keys for determinism)."""
        result: dict[str, Any] = {}
        for key in sorted(KNOWN_KEYS):
            value = getattr(self, key)
            if value is None:
                continue
            if isinstance(value, set):
                value = sorted(value)
            elif isinstance(value, Path):
                value = str(value)
            result[key] = value

        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)

        return dict(sorted(result.items()))


def find_config_file(root: Path) -> Path | None:
    """
    Find a configuration file in a directory.

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = root / name
        if config_path.exists() and config_path.is_file():
            return config_path
    return None


def _select_section(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    section = data.get(SECTION_NAME)
    if isinstance(section, dict):
        return section
    return data


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file."""
    with open(path, "rb") as f:
        return _select_section(tomllib.load(f))


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file."""
    with open(path, encoding="utf-8") as f:
        return _select_section(yaml.safe_load(f))


def _normalize_string_set(values: Any, key: str) -> set[str] | None:
    """Accept a list or a comma-separated string."""
    if values is None:
        return None
    if isinstance(values, str):
        values = values.split(",")
    if not isinstance(values, (list, tuple, set)):
        raise ConfigError(f"{key} must be a list of strings")
    result = {str(v).strip() for v in values if v is not None and str(v).strip()}
    return result if result else None


def _as_int(data: dict[str, Any], key: str) -> int | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {type(value).__name__}")
    return value


def _as_bool(data: dict[str, Any], key: str) -> bool | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {type(value).__name__}")
    return value


def load_config(root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Args:
        root: Directory searched for a config file when none is given
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None)

    Raises:
        ConfigError: if the file cannot be parsed or holds invalid values
    """
    if config_path is None:
        config_path = find_config_file(root)

    if config_path is None:
        return ProjectConfig()

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            raise ConfigError(f"Unsupported config file type: {config_path.name}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    logger.debug("Loaded config from %s", config_path)

    for key in sorted(set(data) - KNOWN_KEYS):
        logger.warning("Unknown key %r in %s", key, config_path.name)

    config = ProjectConfig(_config_file=config_path)

    config.high_confidence_threshold = _as_int(data, "high_confidence_threshold")
    config.max_file_bytes = _as_int(data, "max_file_bytes")
    config.max_workers = _as_int(data, "max_workers")

    config.respect_gitignore = _as_bool(data, "respect_gitignore")
    config.follow_symlinks = _as_bool(data, "follow_symlinks")
    config.show_suppressed = _as_bool(data, "show_suppressed")
    config.include_informational = _as_bool(data, "include_informational")

    config.exclude_globs = _normalize_string_set(data.get("exclude_globs"), "exclude_globs")
    config.disabled_rules = _normalize_string_set(data.get("disabled_rules"), "disabled_rules")
    if config.disabled_rules:
        unknown = sorted(config.disabled_rules - set(RULES_BY_ID))
        if unknown:
            raise ConfigError(f"Unknown rule ids in disabled_rules: {', '.join(unknown)}")

    if data.get("baseline_path") is not None:
        config.baseline_path = Path(str(data["baseline_path"]))
    if data.get("placeholder") is not None:
        config.placeholder = str(data["placeholder"])

    return config


def _pick(cli_value: Any, file_value: Any, default: Any) -> Any:
    if cli_value is not None:
        return cli_value
    if file_value is not None:
        return file_value
    return default


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None means not specified on CLI)
    high_confidence_threshold: int | None = None,
    exclude_glob: str | None = None,
    max_file_bytes: int | None = None,
    no_gitignore: bool = False,
    follow_symlinks: bool | None = None,
    max_workers: int | None = None,
    baseline_path: Path | None = None,
    placeholder: str | None = None,
    disabled_rules: str | None = None,
    show_suppressed: bool | None = None,
    include_informational: bool | None = None,
) -> ScanConfig:
    """
    Merge CLI arguments with config file values.

    CLI arguments take precedence over config file values.

    Raises:
        ConfigError: if the merged values are invalid
    """
    exclude_globs = _normalize_string_set(exclude_glob, "exclude_glob") if exclude_glob else None
    disabled = _normalize_string_set(disabled_rules, "disable_rule") if disabled_rules else None
    if disabled:
        unknown = sorted(disabled - set(RULES_BY_ID))
        if unknown:
            raise ConfigError(f"Unknown rule ids: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {
        "high_confidence_threshold": _pick(
            high_confidence_threshold, config.high_confidence_threshold, HIGH_CONFIDENCE_THRESHOLD
        ),
        "max_file_bytes": _pick(max_file_bytes, config.max_file_bytes, 1_048_576),
        "respect_gitignore": False if no_gitignore else _pick(None, config.respect_gitignore, True),
        "follow_symlinks": _pick(follow_symlinks, config.follow_symlinks, False),
        "max_workers": _pick(max_workers, config.max_workers, None),
        "placeholder": _pick(placeholder, config.placeholder, DEFAULT_PLACEHOLDER),
        "disabled_rules": _pick(disabled, config.disabled_rules, set()),
        "show_suppressed": _pick(show_suppressed, config.show_suppressed, False),
        "include_informational": _pick(include_informational, config.include_informational, False),
    }

    globs = _pick(exclude_globs, config.exclude_globs, None)
    if globs is not None:
        kwargs["exclude_globs"] = set(globs)
    path = _pick(baseline_path, config.baseline_path, None)
    if path is not None:
        kwargs["baseline_path"] = path

    try:
        return ScanConfig(**kwargs)
    except ValueError as e:
        raise ConfigError(str(e)) from e
