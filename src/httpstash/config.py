"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.httpstash/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- a single :class:`~httpstash.models.GlobalConfig`
  JSON file holding the listen address, cache mode, and storage bounds.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the config file, and defaults into one explicit
  configuration object that is handed to
  :func:`~httpstash.cache.adapter.create_cache`.

File writes use a temp-file-then-rename strategy (:func:`_atomic_write`)
so a crash never leaves a half-written config behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from httpstash.exceptions import ConfigError
from httpstash.models import GlobalConfig

_APP_NAME = "httpstash"
_CONFIG_FILENAME = "config.json"

ENV_DIR = "HTTPSTASH_DIR"
ENV_LISTEN = "HTTPSTASH_LISTEN"
ENV_PRIVATE = "HTTPSTASH_PRIVATE"

_TRUE_VALUES = ("1", "true", "yes", "on")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms following the XDG Base Directory spec (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from *env_var*, else from segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/httpstash/`` (default ``~/.config/httpstash/``).
    On macOS/Windows: ``~/.httpstash/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the default blob store. Its contents can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/httpstash/`` (default ``~/.cache/httpstash/``).
    On macOS/Windows: ``~/.httpstash/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/httpstash/`` (default ``~/.local/share/httpstash/``).
    On macOS/Windows: ``~/.httpstash/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically using a temp file in the same directory."""
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


def global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration file.

    Returns:
        The validated :class:`~httpstash.models.GlobalConfig`, or a default
        instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist *config* atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_dir: Optional[str] = None,
    cli_listen: Optional[str] = None,
    cli_private: Optional[bool] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_dir``, ``cli_listen``, ``cli_private``)
        2. Environment variables (``HTTPSTASH_DIR``, ``HTTPSTASH_LISTEN``,
           ``HTTPSTASH_PRIVATE``)
        3. Config file (``~/.config/httpstash/config.json``)
        4. Defaults

    Naming a storage directory, by flag or environment, also turns disk
    storage on.

    Raises:
        ConfigError: If the config file is invalid or the merged values fail
            validation.
    """
    config = load_global_config()
    data = config.model_dump()

    directory = cli_dir or os.environ.get(ENV_DIR) or None
    if directory:
        data["storage"]["directory"] = directory
        data["storage"]["enabled"] = True

    listen = cli_listen or os.environ.get(ENV_LISTEN) or None
    if listen:
        data["listen"] = listen

    if cli_private is not None:
        data["private"] = cli_private
    elif os.environ.get(ENV_PRIVATE):
        data["private"] = os.environ[ENV_PRIVATE].strip().lower() in _TRUE_VALUES

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
