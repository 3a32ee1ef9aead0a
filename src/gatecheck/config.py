"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for gatecheck:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.gatecheck/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~gatecheck.models.GlobalConfig`
  JSON file storing defaults for verification runs and output.
* **Project config** -- An optional ``./gatecheck.json`` with the same shape
  as the global config; any subset of keys may be given.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from gatecheck.exceptions import ConfigError
from gatecheck.models import GlobalConfig

_APP_NAME = "gatecheck"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "gatecheck.json"

ENV_TOLERATE_CYCLIC_REFS = "GATECHECK_TOLERATE_CYCLIC_REFS"
ENV_SCHEMA_VALIDATION = "GATECHECK_SCHEMA_VALIDATION"
ENV_SOURCE_ARN_MATCHER = "GATECHECK_SOURCE_ARN_MATCHER"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/gatecheck/`` (default ``~/.config/gatecheck/``).
    On macOS/Windows: ``~/.gatecheck/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/gatecheck/`` (default ``~/.local/share/gatecheck/``).
    On macOS/Windows: ``~/.gatecheck/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX systems.  On failure the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~gatecheck.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./gatecheck.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _deep_update(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


# --- Environment ---


def parse_bool(value: str, name: str) -> bool:
    """Interpret an environment variable as a boolean.

    Raises:
        ConfigError: If *value* is not a recognised boolean spelling.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(
        f"{name} must be one of {', '.join(_TRUE_VALUES + _FALSE_VALUES)}, got '{value}'"
    )


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    value = os.environ.get(ENV_TOLERATE_CYCLIC_REFS)
    if value:
        overrides["tolerate_cyclic_refs"] = parse_bool(value, ENV_TOLERATE_CYCLIC_REFS)
    value = os.environ.get(ENV_SCHEMA_VALIDATION)
    if value:
        overrides["schema_validation"] = parse_bool(value, ENV_SCHEMA_VALIDATION)
    value = os.environ.get(ENV_SOURCE_ARN_MATCHER)
    if value:
        overrides["source_arn_matcher"] = value
    return overrides


# --- Precedence resolution ---


def resolve_config(
    cli_tolerate_cycles: Optional[bool] = None,
    cli_schema_validation: Optional[bool] = None,
    cli_matcher: Optional[str] = None,
    cli_exclude: Optional[list[str]] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``GATECHECK_TOLERATE_CYCLIC_REFS``,
           ``GATECHECK_SCHEMA_VALIDATION``, ``GATECHECK_SOURCE_ARN_MATCHER``)
        3. Project config (``./gatecheck.json``)
        4. User config (``~/.config/gatecheck/config.json``)
        5. Defaults

    Exclude patterns accumulate: CLI patterns are appended to the configured
    ones instead of replacing them.

    Raises:
        ConfigError: If a config file or environment variable is invalid.
    """
    data = load_global_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        _deep_update(data, project)
        for section in ("verify", "output"):
            if not isinstance(data.get(section), dict):
                raise ConfigError(f"Invalid project config: '{section}' must be an object")

    data["verify"].update(_env_overrides())

    verify = data["verify"]
    if cli_tolerate_cycles is not None:
        verify["tolerate_cyclic_refs"] = cli_tolerate_cycles
    if cli_schema_validation is not None:
        verify["schema_validation"] = cli_schema_validation
    if cli_matcher is not None:
        verify["source_arn_matcher"] = cli_matcher
    if cli_exclude:
        verify["exclude"] = list(verify.get("exclude") or []) + list(cli_exclude)
    if cli_format is not None:
        data["output"]["format"] = cli_format

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
