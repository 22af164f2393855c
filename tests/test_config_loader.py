"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from cloudypad.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults derive from the data root when no config file is present."""
    home = tmp_path / "home"
    config = load_config(env={"CLOUDYPAD_HOME": str(home)})

    assert isinstance(config, AppConfig)
    assert config.data_root == home
    assert config.config_file == home / "config.yml"
    assert config.logs_dir == home / "logs"
    assert config.instances_dir == home / "instances"
    assert config.log_level == "INFO"
    assert config.moonlight_bin == "moonlight"
    assert config.pulumi.bin == "pulumi"
    assert config.pulumi.backend_url == f"file://{home}/pulumi-backend"
    assert config.pulumi.projects_dir == home / "pulumi"
    assert config.ansible.playbook == home / "ansible" / "playbook.yml"
    assert config.clouds.gcloud_bin == "gcloud"
    assert config.paperspace.api_base == "https://api.paperspace.com/v1"


def test_data_root_falls_back_to_home(tmp_path: Path) -> None:
    """Without CLOUDYPAD_HOME the data root lives under HOME."""
    config = load_config(env={"HOME": str(tmp_path)})

    assert config.data_root == tmp_path / ".cloudypad"


def test_missing_home_is_a_config_error() -> None:
    """Loading fails when no data root can be resolved."""
    with pytest.raises(ConfigError, match="HOME"):
        load_config(env={})


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "cloudypad.yml"
    cfg.write_text(
        "log_level: debug\n"
        "pulumi:\n"
        "  bin: /opt/pulumi/bin/pulumi\n"
        "  config_passphrase: hunter2\n"
        "ansible:\n"
        "  extra_args: [--diff, -vv]\n"
        "paperspace:\n"
        "  api_base: https://example.test/v1/\n"
        "  poll_attempts: 3\n",
        encoding="utf-8",
    )

    config = load_config(config_file=cfg, env={"CLOUDYPAD_HOME": str(tmp_path / "home")})

    assert config.config_file == cfg
    assert config.log_level == "DEBUG"
    assert config.pulumi.bin == "/opt/pulumi/bin/pulumi"
    assert config.pulumi.config_passphrase == "hunter2"
    assert config.ansible.extra_args == ("--diff", "-vv")
    assert config.paperspace.api_base == "https://example.test/v1"
    assert config.paperspace.poll_attempts == 3


def test_config_file_in_data_root_is_used(tmp_path: Path) -> None:
    """The default config file location is inside the data root."""
    home = tmp_path / "home"
    home.mkdir()
    (home / "config.yml").write_text("moonlight:\n  bin: /usr/bin/moonlight-qt\n", encoding="utf-8")

    config = load_config(env={"CLOUDYPAD_HOME": str(home)})

    assert config.moonlight_bin == "/usr/bin/moonlight-qt"


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "cloudypad.yml"
    cfg.write_text("clouds:\n  az_bin: /from/file/az\n", encoding="utf-8")
    env = {
        "CLOUDYPAD_HOME": str(tmp_path / "home"),
        "CLOUDYPAD_CONFIG_FILE": str(cfg),
        "CLOUDYPAD_CLOUDS__AZ_BIN": "/from/env/az",
        "CLOUDYPAD_PAPERSPACE__TIMEOUT": "120",
        "CLOUDYPAD_LOGS_DIR": str(tmp_path / "logs"),
        "PULUMI_BACKEND_URL": "s3://bucket",
        "PULUMI_CONFIG_PASSPHRASE": "from-env",
    }

    config = load_config(env=env)

    assert config.config_file == cfg
    assert config.clouds.az_bin == "/from/env/az"
    assert config.paperspace.timeout == 120.0
    assert config.logs_dir == tmp_path / "logs"
    assert config.pulumi.backend_url == "s3://bucket"
    assert config.pulumi.config_passphrase == "from-env"


def test_overrides_replace_data_root(tmp_path: Path) -> None:
    """Programmatic overrides win over the environment."""
    config = load_config(
        env={"CLOUDYPAD_HOME": str(tmp_path / "ignored")},
        overrides={"data_root": str(tmp_path / "chosen")},
    )

    assert config.data_root == tmp_path / "chosen"
    assert config.logs_dir == tmp_path / "chosen" / "logs"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("unexpected: 1\n", "Unknown configuration keys: unexpected"),
        ("pulumi:\n  colour: blue\n", "Unknown pulumi configuration keys: colour"),
        ("log_level: chatty\n", "Unsupported log_level"),
        ("- a\n- b\n", "must contain a mapping"),
        ("paperspace:\n  timeout: 0\n", "paperspace.timeout must be greater than zero"),
        ("paperspace:\n  poll_attempts: 0\n", "poll_attempts must be greater than zero"),
        ("ansible:\n  extra_args: --diff\n", "ansible.extra_args to be a sequence"),
    ],
)
def test_invalid_config_files_are_rejected(tmp_path: Path, content: str, message: str) -> None:
    """Structural problems are reported as ConfigError."""
    cfg = tmp_path / "cloudypad.yml"
    cfg.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(config_file=cfg, env={"CLOUDYPAD_HOME": str(tmp_path / "home")})


def test_to_dict_masks_passphrase(tmp_path: Path) -> None:
    """The serialised config never exposes the Pulumi passphrase."""
    config = load_config(
        env={"CLOUDYPAD_HOME": str(tmp_path), "PULUMI_CONFIG_PASSPHRASE": "hunter2"}
    )

    payload = config.to_dict()

    assert payload["pulumi"]["config_passphrase"] == "***"  # type: ignore[index]
    assert payload["data_root"] == str(tmp_path)
