"""Configuration loader for cloudypad.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``<data_root>/config.yml`` (or ``CLOUDYPAD_CONFIG_FILE`` / an explicit path).
3. Environment variables prefixed with ``CLOUDYPAD_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

The data root itself is resolved first, by order of priority, from an explicit
override, ``$CLOUDYPAD_HOME`` and ``$HOME/.cloudypad``. Loading fails when none
of them is available.

Environment keys use double underscores to express nesting, e.g.::

    export CLOUDYPAD_PULUMI__BIN=/opt/pulumi/bin/pulumi
    export CLOUDYPAD_PAPERSPACE__TIMEOUT=120

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

import yaml

from .errors import ConfigError

ENV_PREFIX = "CLOUDYPAD_"
HOME_ENV_VAR = f"{ENV_PREFIX}HOME"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {HOME_ENV_VAR, CONFIG_ENV_VAR}

ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


@dataclass(frozen=True)
class PulumiConfig:
    """Pulumi CLI and backend settings."""

    bin: str
    backend_url: str
    config_passphrase: str
    projects_dir: Path

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "backend_url": self.backend_url,
            "config_passphrase": "***" if self.config_passphrase else "",
            "projects_dir": str(self.projects_dir),
        }


@dataclass(frozen=True)
class AnsibleConfig:
    """Ansible playbook settings used to configure instances."""

    playbook_bin: str
    playbook: Path
    extra_args: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "playbook_bin": self.playbook_bin,
            "playbook": str(self.playbook),
            "extra_args": list(self.extra_args),
        }


@dataclass(frozen=True)
class CloudCliConfig:
    """Provider command line tools used to start and stop machines."""

    az_bin: str = "az"
    gcloud_bin: str = "gcloud"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"az_bin": self.az_bin, "gcloud_bin": self.gcloud_bin}


@dataclass(frozen=True)
class PaperspaceConfig:
    """Paperspace API client settings."""

    api_base: str = "https://api.paperspace.com/v1"
    timeout: float = 60.0
    template_id: str = "t0nspur5"
    poll_interval: float = 10.0
    poll_attempts: int = 60

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "api_base": self.api_base,
            "timeout": self.timeout,
            "template_id": self.template_id,
            "poll_interval": self.poll_interval,
            "poll_attempts": self.poll_attempts,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for cloudypad."""

    config_file: Path
    data_root: Path
    logs_dir: Path
    log_level: str
    moonlight_bin: str
    pulumi: PulumiConfig
    ansible: AnsibleConfig
    clouds: CloudCliConfig
    paperspace: PaperspaceConfig

    @property
    def instances_dir(self) -> Path:
        """Directory holding one sub-directory per instance."""
        return self.data_root / "instances"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "data_root": str(self.data_root),
            "logs_dir": str(self.logs_dir),
            "log_level": self.log_level,
            "moonlight": {"bin": self.moonlight_bin},
            "pulumi": self.pulumi.to_dict(),
            "ansible": self.ansible.to_dict(),
            "clouds": self.clouds.to_dict(),
            "paperspace": self.paperspace.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "data_root": None,  # resolved from the environment when absent
    "logs_dir": None,  # derived from data_root when absent
    "log_level": "INFO",
    "moonlight": {"bin": "moonlight"},
    "pulumi": {
        "bin": "pulumi",
        "backend_url": None,
        "config_passphrase": None,
        "projects_dir": None,
    },
    "ansible": {
        "playbook_bin": "ansible-playbook",
        "playbook": None,
        "extra_args": [],
    },
    "clouds": {
        "az_bin": "az",
        "gcloud_bin": "gcloud",
    },
    "paperspace": {
        "api_base": "https://api.paperspace.com/v1",
        "timeout": 60.0,
        "template_id": "t0nspur5",
        "poll_interval": 10.0,
        "poll_attempts": 60,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys()) | {"config_file"}
_ALLOWED_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], value).keys())
    for section, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def resolve_data_root(env: Mapping[str, str] | None = None) -> Path:
    """Return the data root directory for the given environment.

    ``$CLOUDYPAD_HOME`` wins over ``$HOME/.cloudypad``. Raises
    :class:`ConfigError` when neither variable is set.
    """
    resolved_env = os.environ if env is None else env
    home_override = resolved_env.get(HOME_ENV_VAR)
    if home_override:
        return Path(home_override).expanduser()
    user_home = resolved_env.get("HOME")
    if not user_home:
        raise ConfigError(
            f"Neither {HOME_ENV_VAR} nor HOME environment variable is set. "
            "Could not define cloudypad data root directory."
        )
    return Path(user_home).expanduser() / ".cloudypad"


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    override_root = (overrides or {}).get("data_root")
    if override_root:
        data_root = _to_path(override_root)
    else:
        data_root = resolve_data_root(resolved_env)

    config_path = _determine_config_path(data_root, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    if not merged.get("data_root"):
        merged["data_root"] = str(data_root)
    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged, resolved_env)


def _determine_config_path(
    data_root: Path,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return data_root / "config.yml"


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

    for section, allowed in _ALLOWED_SECTION_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    log_level = str(raw.get("log_level", "INFO")).upper()
    if log_level not in ALLOWED_LOG_LEVELS:
        allowed_levels = ", ".join(sorted(ALLOWED_LOG_LEVELS))
        raise ConfigError(f"Unsupported log_level '{log_level}'. Allowed: {allowed_levels}.")


def _build_app_config(raw: Mapping[str, object], env: Mapping[str, str]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    data_root = _to_path(raw.get("data_root"))

    logs_dir_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_dir_value) if logs_dir_value else data_root / "logs"

    moonlight_mapping = _as_dict(raw.get("moonlight"), "moonlight")

    pulumi_mapping = _as_dict(raw.get("pulumi"), "pulumi")
    backend_value = pulumi_mapping.get("backend_url") or env.get("PULUMI_BACKEND_URL")
    backend_url = str(backend_value) if backend_value else f"file://{data_root}/pulumi-backend"
    passphrase_value = pulumi_mapping.get("config_passphrase")
    if passphrase_value is None:
        passphrase_value = env.get("PULUMI_CONFIG_PASSPHRASE", "")
    projects_value = pulumi_mapping.get("projects_dir")
    pulumi = PulumiConfig(
        bin=str(pulumi_mapping.get("bin", "pulumi")),
        backend_url=backend_url,
        config_passphrase=str(passphrase_value),
        projects_dir=_to_path(projects_value) if projects_value else data_root / "pulumi",
    )

    ansible_mapping = _as_dict(raw.get("ansible"), "ansible")
    playbook_value = ansible_mapping.get("playbook")
    extra_args_raw = ansible_mapping.get("extra_args") or []
    ansible = AnsibleConfig(
        playbook_bin=str(ansible_mapping.get("playbook_bin", "ansible-playbook")),
        playbook=(
            _to_path(playbook_value) if playbook_value else data_root / "ansible" / "playbook.yml"
        ),
        extra_args=tuple(str(item) for item in _as_sequence(extra_args_raw, "ansible.extra_args")),
    )

    clouds_mapping = _as_dict(raw.get("clouds"), "clouds")
    clouds = CloudCliConfig(
        az_bin=str(clouds_mapping.get("az_bin", "az")),
        gcloud_bin=str(clouds_mapping.get("gcloud_bin", "gcloud")),
    )

    paperspace_mapping = _as_dict(raw.get("paperspace"), "paperspace")
    paperspace = PaperspaceConfig(
        api_base=str(paperspace_mapping.get("api_base", PaperspaceConfig.api_base)).rstrip("/"),
        timeout=_expect_positive_float(
            paperspace_mapping.get("timeout"), "paperspace.timeout", default=60.0
        ),
        template_id=str(paperspace_mapping.get("template_id", PaperspaceConfig.template_id)),
        poll_interval=_expect_non_negative_float(
            paperspace_mapping.get("poll_interval"), "paperspace.poll_interval", default=10.0
        ),
        poll_attempts=_expect_int(
            paperspace_mapping.get("poll_attempts"), "paperspace.poll_attempts", default=60
        ),
    )
    if paperspace.poll_attempts <= 0:
        raise ConfigError("paperspace.poll_attempts must be greater than zero.")

    return AppConfig(
        config_file=config_file,
        data_root=data_root,
        logs_dir=logs_dir,
        log_level=str(raw.get("log_level", "INFO")).upper(),
        moonlight_bin=str(moonlight_mapping.get("bin", "moonlight")),
        pulumi=pulumi,
        ansible=ansible,
        clouds=clouds,
        paperspace=paperspace,
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


def _expect_non_negative_float(
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
    if numeric < 0:
        raise ConfigError(f"{label} must not be negative. Got {numeric}.")
    return numeric


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    numeric = _expect_non_negative_float(value, label, default=default)
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
    "AnsibleConfig",
    "AppConfig",
    "CloudCliConfig",
    "ConfigError",
    "PaperspaceConfig",
    "PulumiConfig",
    "load_config",
    "resolve_data_root",
]
