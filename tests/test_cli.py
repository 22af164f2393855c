"""Tests for the cloudypad CLI."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import Stubs
from typer.testing import CliRunner

from cloudypad import __version__
from cloudypad.cli import app
from cloudypad.config import AppConfig
from cloudypad.errors import RunnerError
from cloudypad.lifecycle import PAIR_PROMPT
from cloudypad.state import StateStore, validate_state

runner = CliRunner()


@pytest.fixture
def env(tmp_path: Path, stubs: Stubs, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Point the CLI at the temporary data root and the recording collaborators."""
    monkeypatch.setattr("cloudypad.cli.default_factory", stubs.factory)
    return {"CLOUDYPAD_HOME": str(tmp_path / "home"), "HOME": str(tmp_path)}


def _operations(app_config: AppConfig) -> list[dict[str, object]]:
    path = app_config.logs_dir / "operations.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _create_aws(*extra: str) -> list[str]:
    return [
        "create",
        "aws",
        "--name",
        "box1",
        "--private-ssh-key",
        "/home/me/.ssh/id_ed25519",
        "--region",
        "eu-central-1",
        *extra,
    ]


def test_version_flag(env: dict[str, str]) -> None:
    """--version prints the package version."""
    result = runner.invoke(app, ["--version"], env=env)

    assert result.exit_code == 0
    assert f"cloudypad {__version__}" in result.stdout


def test_invalid_config_file_exits_with_environment_code(env: dict[str, str], tmp_path: Path) -> None:
    """Configuration errors stop the CLI before any command runs."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("nonsense: true\n", encoding="utf-8")

    result = runner.invoke(app, ["--config-file", str(cfg), "list"], env=env)

    assert result.exit_code == 3
    assert "Unknown configuration keys" in result.stdout


def test_list_empty(env: dict[str, str]) -> None:
    """An empty data root lists no instances."""
    result = runner.invoke(app, ["list"], env=env)

    assert result.exit_code == 0
    assert "(none)" in result.stdout


def test_list_json(
    env: dict[str, str], store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """JSON listing reports provider, phase and host of each instance."""
    store.persist_state(validate_state(documents["aws"]))
    store.persist_state(validate_state(documents["gcp"]))

    result = runner.invoke(app, ["list", "--json"], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload == {
        "instances": [
            {"name": "box1", "provider": "aws", "phase": "provisioned", "host": "1.2.3.4"},
            {"name": "gbox", "provider": "gcp", "phase": "unprovisioned", "host": None},
        ]
    }


def test_list_reports_unreadable_instances(
    env: dict[str, str], store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """A broken document does not hide the other instances."""
    store.persist_state(validate_state(documents["aws"]))
    broken = store.state_path("broken")
    broken.parent.mkdir(parents=True)
    broken.write_text("version: '9'\n", encoding="utf-8")

    result = runner.invoke(app, ["list", "--json"], env=env)

    assert result.exit_code == 0
    phases = {row["name"]: row["phase"] for row in json.loads(result.stdout)["instances"]}
    assert phases == {"box1": "provisioned", "broken": "error"}


def test_get_masks_secrets(
    env: dict[str, str], store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """API keys never reach the terminal."""
    store.persist_state(validate_state(documents["paperspace"]))

    result = runner.invoke(app, ["get", "pbox", "--json"], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["phase"] == "paired"
    assert payload["state"]["provision"]["input"]["apiKey"] == "***"
    assert "secret-api-key" not in result.stdout

    table = runner.invoke(app, ["get", "pbox"], env=env)
    assert table.exit_code == 0
    assert "secret-api-key" not in table.stdout


def test_get_missing_instance(env: dict[str, str]) -> None:
    """Unknown instances exit with the not-found code."""
    result = runner.invoke(app, ["get", "ghost"], env=env)

    assert result.exit_code == 5
    assert "Instance named 'ghost' does not exist." in result.stdout


def test_create_with_yes_skips_pairing(
    env: dict[str, str], stubs: Stubs, store: StateStore, app_config: AppConfig
) -> None:
    """Unattended creation provisions and configures without prompts."""
    result = runner.invoke(app, _create_aws("--yes", "--spot"), env=env)

    assert result.exit_code == 0, result.stdout
    assert stubs.calls == ["verify_config", "provision", "configure"]
    state = store.load_state("box1")
    assert state.provision.input.use_spot is True  # type: ignore[attr-defined]
    assert state.status.configured is True
    assert state.status.paired is False

    record = _operations(app_config)[-1]
    assert record["command"] == "create aws"
    assert record["result"]["status"] == "success"  # type: ignore[index]


def test_create_interactive_pairs_on_confirmation(
    env: dict[str, str], stubs: Stubs, store: StateStore
) -> None:
    """Interactive creation asks before pairing Moonlight."""
    result = runner.invoke(app, _create_aws(), env=env, input="y\n")

    assert result.exit_code == 0, result.stdout
    assert PAIR_PROMPT in result.stdout
    assert stubs.calls[-1] == "pair"
    assert store.load_state("box1").status.paired is True


def test_create_existing_requires_overwrite_flag(
    env: dict[str, str], stubs: Stubs, store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """--yes alone never replaces an existing instance."""
    store.persist_state(validate_state(documents["aws"]))

    result = runner.invoke(app, _create_aws("--yes"), env=env)

    assert result.exit_code == 2
    assert "--overwrite-existing" in result.stdout
    assert stubs.calls == []


def test_create_existing_declined(
    env: dict[str, str], stubs: Stubs, store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """Declining the overwrite prompt leaves the existing instance alone."""
    original = validate_state(documents["aws"])
    store.persist_state(original)

    result = runner.invoke(app, _create_aws(), env=env, input="n\n")

    assert result.exit_code == 0
    assert "Aborted." in result.stdout
    assert stubs.calls == []
    assert store.load_state("box1") == original


def test_create_existing_with_overwrite(
    env: dict[str, str], stubs: Stubs, store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """--overwrite-existing replaces the instance with the new input."""
    store.persist_state(validate_state(documents["aws"]))

    result = runner.invoke(
        app,
        _create_aws("--yes", "--overwrite-existing", "--instance-type", "g5.xlarge"),
        env=env,
    )

    assert result.exit_code == 0, result.stdout
    assert store.load_state("box1").provision.input.instance_type == "g5.xlarge"  # type: ignore[attr-defined]


def test_create_failure_keeps_last_completed_step(
    env: dict[str, str], stubs: Stubs, store: StateStore
) -> None:
    """A failing step exits with the provider code and leaves earlier steps persisted."""
    stubs.failures["configure"] = RuntimeError("ssh timeout")

    result = runner.invoke(app, _create_aws("--yes"), env=env)

    assert result.exit_code == 4
    assert "configure 'box1': RuntimeError: ssh timeout" in result.stdout
    state = store.load_state("box1")
    assert state.output is not None
    assert state.status.configured is False


@pytest.mark.parametrize("command", ["start", "stop", "restart", "pair", "configure"])
def test_instance_commands(
    env: dict[str, str],
    stubs: Stubs,
    store: StateStore,
    documents: dict[str, dict[str, object]],
    command: str,
) -> None:
    """Each lifecycle command drives the matching collaborator."""
    store.persist_state(validate_state(documents["aws"]))

    result = runner.invoke(app, [command, "box1"], env=env)

    assert result.exit_code == 0, result.stdout
    assert stubs.calls == [command]


def test_instance_command_failure(
    env: dict[str, str],
    stubs: Stubs,
    store: StateStore,
    documents: dict[str, dict[str, object]],
    app_config: AppConfig,
) -> None:
    """Collaborator failures are reported with the instance and operation."""
    store.persist_state(validate_state(documents["aws"]))
    stubs.failures["stop"] = RunnerError("instance is busy")

    result = runner.invoke(app, ["stop", "box1"], env=env)

    assert result.exit_code == 4
    assert "stop 'box1': instance is busy" in result.stdout
    record = _operations(app_config)[-1]
    assert record["result"]["status"] == "error"  # type: ignore[index]
    assert record["result"]["rc"] == 4  # type: ignore[index]


def test_configure_unprovisioned_instance(
    env: dict[str, str],
    store: StateStore,
    unprovisioned_state: object,
) -> None:
    """Operations needing a host explain that the instance is not provisioned."""
    store.persist_state(unprovisioned_state)  # type: ignore[arg-type]

    result = runner.invoke(app, ["configure", "box1"], env=env)

    assert result.exit_code == 2
    assert "Can't build instance configurator" in result.stdout


def test_provision_prompts_unless_yes(
    env: dict[str, str],
    stubs: Stubs,
    store: StateStore,
    unprovisioned_state: object,
) -> None:
    """Provisioning asks for approval and runs with --yes."""
    store.persist_state(unprovisioned_state)  # type: ignore[arg-type]

    declined = runner.invoke(app, ["provision", "box1"], env=env, input="n\n")
    assert declined.exit_code == 0
    assert stubs.calls == []

    approved = runner.invoke(app, ["provision", "box1", "--yes"], env=env)
    assert approved.exit_code == 0, approved.stdout
    assert stubs.calls == ["verify_config", "provision"]
    assert store.load_state("box1").output is not None


def test_destroy(
    env: dict[str, str], stubs: Stubs, store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """Destroy confirms, removes resources and forgets the instance."""
    store.persist_state(validate_state(documents["aws"]))

    declined = runner.invoke(app, ["destroy", "box1"], env=env, input="n\n")
    assert declined.exit_code == 0
    assert store.instance_exists("box1")

    result = runner.invoke(app, ["destroy", "box1"], env=env, input="y\n")
    assert result.exit_code == 0, result.stdout
    assert stubs.calls == ["destroy"]
    assert not store.instance_exists("box1")


def test_config_show_json(env: dict[str, str], tmp_path: Path) -> None:
    """The effective configuration is rendered as JSON."""
    result = runner.invoke(app, ["config", "show", "--json"], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["data_root"] == str(tmp_path / "home")
    assert payload["pulumi"]["bin"] == "pulumi"


def test_config_show_table(env: dict[str, str]) -> None:
    """The table rendering lists every section."""
    result = runner.invoke(app, ["config", "show"], env=env)

    assert result.exit_code == 0
    assert "paperspace" in result.stdout


def test_update_changes_only_given_options(
    env: dict[str, str],
    stubs: Stubs,
    store: StateStore,
    documents: dict[str, dict[str, object]],
    app_config: AppConfig,
) -> None:
    """Update rewrites the named input fields and keeps everything else."""
    original = validate_state(documents["aws"])
    store.persist_state(original)

    result = runner.invoke(
        app,
        ["update", "aws", "box1", "--instance-type", "g5.2xlarge", "--disk-size", "200", "--spot"],
        env=env,
    )

    assert result.exit_code == 0, result.stdout
    assert "cloudypad provision box1" in result.stdout
    updated = store.load_state("box1")
    assert updated.provision.input.instance_type == "g5.2xlarge"  # type: ignore[attr-defined]
    assert updated.provision.input.disk_size == 200  # type: ignore[attr-defined]
    assert updated.provision.input.use_spot is True  # type: ignore[attr-defined]
    assert updated.provision.input.region == "eu-central-1"  # type: ignore[attr-defined]
    assert updated.provision.input.ssh == original.provision.input.ssh
    assert updated.output == original.output
    assert updated.status == original.status
    assert stubs.calls == []

    record = _operations(app_config)[-1]
    assert record["command"] == "update aws"
    assert record["args"]["fields"] == ["disk_size", "instance_type", "use_spot"]  # type: ignore[index]


def test_update_ssh_settings(
    env: dict[str, str], store: StateStore, documents: dict[str, dict[str, object]]
) -> None:
    """SSH user and key are updated inside the nested ssh block."""
    store.persist_state(validate_state(documents["azure"]))

    result = runner.invoke(
        app,
        ["update", "azure", "azbox", "--ssh-user", "gamer", "--private-ssh-key", "/keys/new"],
        env=env,
    )

    assert result.exit_code == 0, result.stdout
    ssh = store.load_state("azbox").provision.input.ssh
    assert ssh.user == "gamer"
    assert ssh.private_key_path == "/keys/new"


def test_update_paperspace_api_key_is_not_logged(
    env: dict[str, str],
    store: StateStore,
    documents: dict[str, dict[str, object]],
    app_config: AppConfig,
) -> None:
    """Rotating the API key records the field name only."""
    store.persist_state(validate_state(documents["paperspace"]))

    result = runner.invoke(app, ["update", "paperspace", "pbox", "--api-key", "rotated-key"], env=env)

    assert result.exit_code == 0, result.stdout
    assert store.load_state("pbox").provision.input.api_key == "rotated-key"  # type: ignore[attr-defined]
    log_text = (app_config.logs_dir / "operations.jsonl").read_text(encoding="utf-8")
    assert "rotated-key" not in log_text


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["update", "gcp", "box1", "--machine-type", "n1-standard-4"], "uses provider 'aws', not 'gcp'"),
        (["update", "aws", "box1"], "Nothing to update"),
    ],
)
def test_update_rejections(
    env: dict[str, str],
    store: StateStore,
    documents: dict[str, dict[str, object]],
    args: list[str],
    message: str,
) -> None:
    """Provider mismatches and empty updates leave the instance untouched."""
    original = validate_state(documents["aws"])
    store.persist_state(original)

    result = runner.invoke(app, args, env=env)

    assert result.exit_code == 2
    assert message in " ".join(result.stdout.split())
    assert store.load_state("box1") == original


def test_update_missing_instance(env: dict[str, str]) -> None:
    """Updating an unknown instance exits with the not-found code."""
    result = runner.invoke(app, ["update", "aws", "ghost", "--disk-size", "50"], env=env)

    assert result.exit_code == 5
