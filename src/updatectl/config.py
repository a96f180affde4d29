"""Configuration loader for updatectl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``/etc/updatectl/config.yml`` (or an override path).
3. Environment variables prefixed with ``UPDATECTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export UPDATECTL_RESTART__STRATEGY=direct
    export UPDATECTL_BACKUPS__RETAIN=5

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load updatectl configuration. Install with "
        "`pip install updatectl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "UPDATECTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class AppSettings:
    """Identity and layout of the application being updated."""

    name: str = "app"
    console_name: str = "app-console"
    executable: str = "app"
    console_executable: str = "app-console"
    service_name: str = "app"
    data_dir: Path = Path("/var/lib/app")
    data_files: tuple[str, ...] = ("config.xml", "app.db")
    launch_args: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "console_name": self.console_name,
            "executable": self.executable,
            "console_executable": self.console_executable,
            "service_name": self.service_name,
            "data_dir": str(self.data_dir),
            "data_files": list(self.data_files),
            "launch_args": list(self.launch_args),
        }


@dataclass(frozen=True)
class BackupConfig:
    """Snapshot storage defaults."""

    root: Path
    index: Path
    retain: int = 3

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"root": str(self.root), "index": str(self.index), "retain": self.retain}


@dataclass(frozen=True)
class RestartConfig:
    """How the application is brought back after an install attempt."""

    strategy: str = "auto"
    poll_interval: float = 1.0
    poll_attempts: int = 5
    terminate_timeout: float = 10.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "strategy": self.strategy,
            "poll_interval": self.poll_interval,
            "poll_attempts": self.poll_attempts,
            "terminate_timeout": self.terminate_timeout,
        }


@dataclass(frozen=True)
class InstallConfig:
    """Post-copy fixups applied to the installation folder."""

    executable_mode: int = 0o755

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"executable_mode": f"{self.executable_mode:04o}"}


@dataclass(frozen=True)
class ServicesConfig:
    """Service manager binaries."""

    systemctl_bin: str = "systemctl"
    sc_bin: str = "sc.exe"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"systemctl_bin": self.systemctl_bin, "sc_bin": self.sc_bin}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for updatectl."""

    config_file: Path
    update_package_dir: Path
    logs_dir: Path
    runtime_dir: Path
    lock_timeout: float
    app: AppSettings
    backups: BackupConfig
    restart: RestartConfig
    install: InstallConfig
    services: ServicesConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "update_package_dir": str(self.update_package_dir),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "lock_timeout": self.lock_timeout,
            "app": self.app.to_dict(),
            "backups": self.backups.to_dict(),
            "restart": self.restart.to_dict(),
            "install": self.install.to_dict(),
            "services": self.services.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/updatectl/config.yml",
    "update_package_dir": "/var/tmp/updatectl/package",
    "logs_dir": "/var/log/updatectl",
    "runtime_dir": "/run/updatectl",
    "lock_timeout": 30.0,
    "app": {
        "name": "app",
        "console_name": "app-console",
        "executable": "app",
        "console_executable": "app-console",
        "service_name": "app",
        "data_dir": "/var/lib/app",
        "data_files": ["config.xml", "app.db"],
        "launch_args": [],
    },
    "backups": {
        "root": "/var/backups/updatectl",
        "index": None,
        "retain": 3,
    },
    "restart": {
        "strategy": "auto",
        "poll_interval": 1.0,
        "poll_attempts": 5,
        "terminate_timeout": 10.0,
    },
    "install": {
        "executable_mode": "0755",
    },
    "services": {
        "systemctl_bin": "systemctl",
        "sc_bin": "sc.exe",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SECTION_KEYS: dict[str, set[str]] = {
    "app": {
        "name",
        "console_name",
        "executable",
        "console_executable",
        "service_name",
        "data_dir",
        "data_files",
        "launch_args",
    },
    "backups": {"root", "index", "retain"},
    "restart": {"strategy", "poll_interval", "poll_attempts", "terminate_timeout"},
    "install": {"executable_mode"},
    "services": {"systemctl_bin", "sc_bin"},
}
ALLOWED_RESTART_STRATEGIES = {"auto", "direct", "supervised"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    for section, allowed in ALLOWED_SECTION_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    restart_map = _as_dict(raw.get("restart"), "restart")
    strategy = restart_map.get("strategy")
    if strategy is not None and str(strategy) not in ALLOWED_RESTART_STRATEGIES:
        allowed_names = ", ".join(sorted(ALLOWED_RESTART_STRATEGIES))
        raise ConfigError(
            f"Unsupported restart strategy '{strategy}'. Allowed: {allowed_names}."
        )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    update_package_dir = _to_path(raw.get("update_package_dir"))
    logs_dir = _to_path(raw.get("logs_dir"))
    runtime_dir = _to_path(raw.get("runtime_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    app_mapping = _as_dict(raw.get("app"), "app")
    defaults = AppSettings()
    app = AppSettings(
        name=_expect_name(app_mapping.get("name"), "app.name", default=defaults.name),
        console_name=_expect_name(
            app_mapping.get("console_name"), "app.console_name", default=defaults.console_name
        ),
        executable=_expect_name(
            app_mapping.get("executable"), "app.executable", default=defaults.executable
        ),
        console_executable=_expect_name(
            app_mapping.get("console_executable"),
            "app.console_executable",
            default=defaults.console_executable,
        ),
        service_name=_expect_name(
            app_mapping.get("service_name"), "app.service_name", default=defaults.service_name
        ),
        data_dir=_to_path(app_mapping.get("data_dir", str(defaults.data_dir))),
        data_files=_as_str_tuple(app_mapping.get("data_files"), "app.data_files"),
        launch_args=_as_str_tuple(app_mapping.get("launch_args"), "app.launch_args"),
    )

    backups_mapping = _as_dict(raw.get("backups"), "backups")
    backups_root = _to_path(backups_mapping.get("root", "/var/backups/updatectl"))
    backups_index_value = backups_mapping.get("index")
    backups_index = (
        _to_path(backups_index_value) if backups_index_value else backups_root / "snapshots.json"
    )
    retain = _expect_int(backups_mapping.get("retain"), "backups.retain", default=3)
    if retain < 1:
        raise ConfigError("backups.retain must be at least 1.")
    backups = BackupConfig(root=backups_root, index=backups_index, retain=retain)

    restart_mapping = _as_dict(raw.get("restart"), "restart")
    poll_attempts = _expect_int(
        restart_mapping.get("poll_attempts"), "restart.poll_attempts", default=5
    )
    if poll_attempts < 1:
        raise ConfigError("restart.poll_attempts must be at least 1.")
    restart = RestartConfig(
        strategy=str(restart_mapping.get("strategy", "auto")),
        poll_interval=_expect_positive_float(
            restart_mapping.get("poll_interval"), "restart.poll_interval", default=1.0
        ),
        poll_attempts=poll_attempts,
        terminate_timeout=_expect_positive_float(
            restart_mapping.get("terminate_timeout"),
            "restart.terminate_timeout",
            default=10.0,
        ),
    )

    install_mapping = _as_dict(raw.get("install"), "install")
    install = InstallConfig(
        executable_mode=_parse_permission_mode(
            install_mapping.get("executable_mode", "0755"), "install.executable_mode"
        ),
    )

    services_mapping = _as_dict(raw.get("services"), "services")
    services = ServicesConfig(
        systemctl_bin=str(services_mapping.get("systemctl_bin", "systemctl")),
        sc_bin=str(services_mapping.get("sc_bin", "sc.exe")),
    )

    return AppConfig(
        config_file=config_file,
        update_package_dir=update_package_dir,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        lock_timeout=lock_timeout,
        app=app,
        backups=backups,
        restart=restart,
        install=install,
        services=services,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_str_tuple(value: object | None, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    items: list[str] = []
    for index, item in enumerate(_as_sequence(value, label)):
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise ConfigError(f"{label}[{index}] must be a string.")
        text = str(item).strip()
        if not text:
            raise ConfigError(f"{label}[{index}] must be a non-empty string.")
        items.append(text)
    return tuple(items)


def _parse_permission_mode(value: object, label: str) -> int:
    if value is None:
        raise ConfigError(f"{label} must be specified.")
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an octal integer string. Got boolean {value!r}.")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text:
            raise ConfigError(f"{label} must be an octal integer string.")
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ConfigError(f"{label} must be an octal integer string.") from exc
    else:
        raise ConfigError(f"{label} must be an octal integer or string.")
    if mode < 0 or mode > 0o777:
        raise ConfigError(f"{label} must be between 0000 and 0777 inclusive.")
    return mode


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_name(value: object | None, label: str, *, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a string. Got {type(value).__name__}.")
    text = str(value).strip()
    if not text:
        raise ConfigError(f"{label} must be a non-empty string.")
    return text


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AppSettings",
    "BackupConfig",
    "ConfigError",
    "InstallConfig",
    "RestartConfig",
    "ServicesConfig",
    "load_config",
]
