"""Typer-powered command line for ``cloudypad``.

Each command loads the instance state fresh from disk, hands it to an
:class:`~cloudypad.lifecycle.InstanceManager` and runs a single lifecycle
operation inside a structured-log operation scope. Errors are printed in red
and the process exits with the error's :class:`~cloudypad.exit_codes.ExitCode`.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, load_config
from .errors import CloudyPadError, ConfigError
from .exit_codes import ExitCode
from .lifecycle import InstanceManager, phase_of
from .logging import OperationScope, StructuredLogger, configure_logging
from .providers import ProvisionOptions, SubManagerFactory, default_factory
from .providers.paperspace import DEFAULT_SSH_USER as PAPERSPACE_SSH_USER
from .state import (
    AwsProvisionInput,
    AzureProvisionInput,
    CommonProvisionInput,
    GcpProvisionInput,
    InstanceState,
    PaperspaceProvisionInput,
    PublicIpType,
    SshConfig,
    StateStore,
    new_instance_state,
)

console = Console()

REDACTED = "***"
_SECRET_INPUT_KEYS = frozenset({"apiKey"})

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to cloudypad's YAML config file.",
)
JSON_OPTION = typer.Option(False, "--json", help="Emit JSON instead of a table.")
YES_OPTION = typer.Option(
    False,
    "--yes",
    help="Do not prompt for approval, automatically approve and continue.",
)
OVERWRITE_OPTION = typer.Option(
    False,
    "--overwrite-existing",
    help="Replace an existing instance with the same name without prompting.",
)
NAME_OPTION = typer.Option(..., "--name", help="Instance name.")
PRIVATE_KEY_OPTION = typer.Option(
    ...,
    "--private-ssh-key",
    help="Path to the private SSH key used to connect to the instance.",
)
DISK_SIZE_OPTION = typer.Option(100, "--disk-size", min=1, help="Disk size in GB.")
PUBLIC_IP_OPTION = typer.Option(
    PublicIpType.STATIC,
    "--public-ip-type",
    case_sensitive=False,
    help="Public IP type, either static or dynamic.",
)
SPOT_OPTION = typer.Option(
    False,
    "--spot",
    help="Use spot instances, cheaper but may be reclaimed at any time.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Cloud gaming instance manager.

        Create, provision, configure and pair cloud-hosted gaming machines on
        AWS, Azure, Google Cloud and Paperspace.
        """
    ).strip(),
)
create_app = typer.Typer(help="Create and initialize a new instance.")
update_app = typer.Typer(help="Update the configuration of an existing instance.")
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(create_app, name="create")
app.add_typer(update_app, name="update")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    store: StateStore
    factory: SubManagerFactory
    logger: StructuredLogger


def _ensure_runtime(ctx: typer.Context, config_file: Path | None, verbose: bool = False) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if verbose:
        overrides["log_level"] = "DEBUG"
    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(exc.exit_code)) from exc

    configure_logging(config.log_level, config.logs_dir)
    runtime = RuntimeContext(
        config=config,
        store=StateStore(config.data_root),
        factory=default_factory(config),
        logger=StructuredLogger(config.logs_dir),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the cloudypad version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"cloudypad {__version__}")
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file, verbose)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = int(ExitCode.VALIDATION),
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _cloudypad_error(op: OperationScope, exc: CloudyPadError) -> NoReturn:
    _command_error(op, str(exc), rc=int(exc.exit_code))


def _confirm_or_abort(op: OperationScope, prompt: str, *, yes: bool, default: bool = True) -> None:
    if yes:
        op.add_step("confirm", status="skipped", detail="auto-approved")
        return
    if not typer.confirm(prompt, default=default):
        op.add_step("confirm", status="declined")
        console.print("[yellow]Aborted.[/yellow]")
        op.warning("Operation aborted by user.", changed=0)
        raise typer.Exit(code=int(ExitCode.OK))
    op.add_step("confirm", status="success")


def _load_manager(runtime: RuntimeContext, name: str, op: OperationScope) -> InstanceManager:
    try:
        state = runtime.store.load_state(name)
    except CloudyPadError as exc:
        _cloudypad_error(op, exc)
    op.add_step("state.load", status="success", detail=f"provider={state.provision.provider.value}")
    return InstanceManager(state, runtime.factory, runtime.store)


def _redact(document: Mapping[str, object]) -> dict[str, object]:
    """Return a copy of a state document with secrets masked."""
    payload = json.loads(json.dumps(document))
    provision = payload.get("provision")
    if isinstance(provision, dict) and isinstance(provision.get("input"), dict):
        for key in _SECRET_INPUT_KEYS & provision["input"].keys():
            provision["input"][key] = REDACTED
    return payload


def _summary_row(state: InstanceState) -> dict[str, object]:
    output = state.provision.output
    return {
        "name": state.name,
        "provider": state.provision.provider.value,
        "phase": phase_of(state).value,
        "host": output.host if output is not None else None,
    }


def _run_instance_operation(
    ctx: typer.Context,
    command: str,
    name: str,
    action: Callable[[InstanceManager], None],
    *,
    message: str,
    args: Mapping[str, object] | None = None,
    confirm_prompt: str | None = None,
    yes: bool = False,
) -> None:
    """Load *name*, run *action* on its manager and report the outcome."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        command,
        args={"name": name, **dict(args or {})},
        target={"kind": "instance", "name": name},
    ) as op:
        manager = _load_manager(runtime, name, op)
        if confirm_prompt is not None:
            _confirm_or_abort(op, confirm_prompt, yes=yes)
        try:
            action(manager)
        except CloudyPadError as exc:
            op.add_step(command, status="error", detail=str(exc))
            _cloudypad_error(op, exc)
        op.add_step(command, status="success")
        console.print(f"[green]{message}[/green]")
        op.success(message, changed=1, context={"phase": manager.phase.value})


# ----------------------------------------------------------------------
# Inspection
# ----------------------------------------------------------------------
@app.command("list")
def list_instances(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List instances with a persisted state."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "list",
        args={"json": json_output},
        target={"kind": "instances"},
    ) as op:
        rows: list[dict[str, object]] = []
        for name in runtime.store.list_instances():
            try:
                rows.append(_summary_row(runtime.store.load_state(name)))
            except CloudyPadError as exc:
                op.add_step("state.load", status="warning", detail=f"{name}: {exc}")
                rows.append({"name": name, "provider": None, "phase": "error", "host": None})

        if json_output:
            console.print_json(data={"instances": rows})
            op.success("Reported instances as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Provider")
        table.add_column("Phase")
        table.add_column("Host")
        if not rows:
            table.add_row("(none)", "", "", "")
        for row in rows:
            table.add_row(
                str(row["name"]),
                str(row["provider"] or "-"),
                str(row["phase"]),
                str(row["host"] or "-"),
            )
        console.print(table)
        op.success("Reported instances.", changed=0)


@app.command("get")
def get_instance(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the instance to show."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the state of an instance (secrets are masked)."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "get",
        args={"name": name, "json": json_output},
        target={"kind": "instance", "name": name},
    ) as op:
        manager = _load_manager(runtime, name, op)
        document = _redact(manager.state.to_dict())
        if json_output:
            console.print_json(data={"phase": manager.phase.value, "state": document})
            op.success("Reported instance state as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        summary = _summary_row(manager.state)
        for key in ("name", "provider", "phase", "host"):
            table.add_row(key.capitalize(), str(summary[key] or "-"))
        for key, value in document.get("provision", {}).get("input", {}).items():  # type: ignore[union-attr]
            rendered = json.dumps(value, sort_keys=True) if isinstance(value, dict) else str(value)
            table.add_row(f"input.{key}", rendered)
        for key, value in document.get("status", {}).items():  # type: ignore[union-attr]
            table.add_row(f"status.{key}", str(value))
        console.print(table)
        op.success("Reported instance state.", changed=0)


# ----------------------------------------------------------------------
# Creation
# ----------------------------------------------------------------------
def _create_instance(
    ctx: typer.Context,
    provider: str,
    name: str,
    provision_input: CommonProvisionInput,
    *,
    yes: bool,
    overwrite_existing: bool,
) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"create {provider}",
        args={"name": name, "yes": yes, "overwrite_existing": overwrite_existing},
        target={"kind": "instance", "name": name, "provider": provider},
    ) as op:
        try:
            state = new_instance_state(name, provision_input)
        except CloudyPadError as exc:
            _cloudypad_error(op, exc)

        if runtime.store.instance_exists(name) and not overwrite_existing:
            if yes:
                _command_error(
                    op,
                    f"Instance '{name}' already exists. Use --overwrite-existing to replace it.",
                )
            _confirm_or_abort(
                op,
                f"Instance '{name}' already exists. Do you want to overwrite it?",
                yes=False,
                default=False,
            )

        manager = InstanceManager(state, runtime.factory, runtime.store)
        try:
            manager.persist()
            op.add_step("state.persist", status="success")
            manager.initialize(ProvisionOptions(auto_approve=yes))
        except CloudyPadError as exc:
            op.add_step("initialize", status="error", detail=str(exc))
            _cloudypad_error(op, exc)
        op.add_step("initialize", status="success", detail=f"phase={manager.phase.value}")
        console.print(f"[green]Instance '{name}' created ({manager.phase.value}).[/green]")
        op.success("Instance created.", changed=1, context={"phase": manager.phase.value})


def _ssh(user: str, private_key: Path) -> SshConfig:
    return SshConfig(user=user, private_key_path=str(private_key.expanduser()))


@create_app.command("aws")
def create_aws(
    ctx: typer.Context,
    name: str = NAME_OPTION,
    private_ssh_key: Path = PRIVATE_KEY_OPTION,
    ssh_user: str = typer.Option("ubuntu", "--ssh-user", help="SSH user of the machine image."),
    instance_type: str = typer.Option("g4dn.xlarge", "--instance-type", help="EC2 instance type."),
    region: str = typer.Option(..., "--region", help="AWS region."),
    disk_size: int = DISK_SIZE_OPTION,
    public_ip_type: PublicIpType = PUBLIC_IP_OPTION,
    spot: bool = SPOT_OPTION,
    yes: bool = YES_OPTION,
    overwrite_existing: bool = OVERWRITE_OPTION,
) -> None:
    """Create an instance on AWS."""
    provision_input = AwsProvisionInput(
        ssh=_ssh(ssh_user, private_ssh_key),
        instance_type=instance_type,
        disk_size=disk_size,
        public_ip_type=public_ip_type,
        region=region,
        use_spot=spot,
    )
    _create_instance(ctx, "aws", name, provision_input, yes=yes, overwrite_existing=overwrite_existing)


@create_app.command("azure")
def create_azure(
    ctx: typer.Context,
    name: str = NAME_OPTION,
    private_ssh_key: Path = PRIVATE_KEY_OPTION,
    ssh_user: str = typer.Option("ubuntu", "--ssh-user", help="SSH user of the machine image."),
    vm_size: str = typer.Option("Standard_NC8as_T4_v3", "--vm-size", help="Azure VM size."),
    subscription_id: str = typer.Option(..., "--subscription-id", help="Azure subscription ID."),
    location: str = typer.Option(..., "--location", help="Azure location."),
    disk_size: int = DISK_SIZE_OPTION,
    public_ip_type: PublicIpType = PUBLIC_IP_OPTION,
    spot: bool = SPOT_OPTION,
    yes: bool = YES_OPTION,
    overwrite_existing: bool = OVERWRITE_OPTION,
) -> None:
    """Create an instance on Azure."""
    provision_input = AzureProvisionInput(
        ssh=_ssh(ssh_user, private_ssh_key),
        vm_size=vm_size,
        disk_size=disk_size,
        public_ip_type=public_ip_type,
        subscription_id=subscription_id,
        location=location,
        use_spot=spot,
    )
    _create_instance(ctx, "azure", name, provision_input, yes=yes, overwrite_existing=overwrite_existing)


@create_app.command("gcp")
def create_gcp(
    ctx: typer.Context,
    name: str = NAME_OPTION,
    private_ssh_key: Path = PRIVATE_KEY_OPTION,
    ssh_user: str = typer.Option("ubuntu", "--ssh-user", help="SSH user of the machine image."),
    project_id: str = typer.Option(..., "--project-id", help="Google Cloud project ID."),
    machine_type: str = typer.Option("n1-standard-8", "--machine-type", help="Machine type."),
    accelerator_type: str = typer.Option("nvidia-tesla-p4", "--accelerator-type", help="GPU type."),
    region: str = typer.Option(..., "--region", help="Google Cloud region."),
    zone: str = typer.Option(..., "--zone", help="Google Cloud zone."),
    disk_size: int = DISK_SIZE_OPTION,
    public_ip_type: PublicIpType = PUBLIC_IP_OPTION,
    spot: bool = SPOT_OPTION,
    yes: bool = YES_OPTION,
    overwrite_existing: bool = OVERWRITE_OPTION,
) -> None:
    """Create an instance on Google Cloud."""
    provision_input = GcpProvisionInput(
        ssh=_ssh(ssh_user, private_ssh_key),
        project_id=project_id,
        machine_type=machine_type,
        accelerator_type=accelerator_type,
        disk_size=disk_size,
        public_ip_type=public_ip_type,
        region=region,
        zone=zone,
        use_spot=spot,
    )
    _create_instance(ctx, "gcp", name, provision_input, yes=yes, overwrite_existing=overwrite_existing)


@create_app.command("paperspace")
def create_paperspace(
    ctx: typer.Context,
    name: str = NAME_OPTION,
    private_ssh_key: Path = PRIVATE_KEY_OPTION,
    api_key: str = typer.Option(
        ...,
        "--api-key",
        envvar="PAPERSPACE_API_KEY",
        help="Paperspace API key.",
    ),
    machine_type: str = typer.Option("RTX4000", "--machine-type", help="Paperspace machine type."),
    region: str = typer.Option("East Coast (NY2)", "--region", help="Paperspace region."),
    disk_size: int = DISK_SIZE_OPTION,
    public_ip_type: PublicIpType = PUBLIC_IP_OPTION,
    yes: bool = YES_OPTION,
    overwrite_existing: bool = OVERWRITE_OPTION,
) -> None:
    """Create an instance on Paperspace."""
    provision_input = PaperspaceProvisionInput(
        ssh=_ssh(PAPERSPACE_SSH_USER, private_ssh_key),
        api_key=api_key,
        machine_type=machine_type,
        disk_size=disk_size,
        public_ip_type=public_ip_type,
        region=region,
    )
    _create_instance(
        ctx, "paperspace", name, provision_input, yes=yes, overwrite_existing=overwrite_existing
    )


# ----------------------------------------------------------------------
# Update
# ----------------------------------------------------------------------
UPDATE_NAME_ARGUMENT = typer.Argument(..., help="Name of the instance to update.")
UPDATE_SSH_USER_OPTION = typer.Option(None, "--ssh-user", help="SSH user of the machine image.")
UPDATE_PRIVATE_KEY_OPTION = typer.Option(
    None, "--private-ssh-key", help="Path to the private SSH key used to connect to the instance."
)
UPDATE_DISK_SIZE_OPTION = typer.Option(None, "--disk-size", min=1, help="Disk size in GB.")
UPDATE_PUBLIC_IP_OPTION = typer.Option(
    None, "--public-ip-type", case_sensitive=False, help="Public IP type, either static or dynamic."
)
UPDATE_SPOT_OPTION = typer.Option(None, "--spot/--no-spot", help="Use spot instances.")


def _update_instance(
    ctx: typer.Context,
    provider: str,
    name: str,
    changes: Mapping[str, object],
    *,
    ssh_user: str | None,
    private_ssh_key: Path | None,
) -> None:
    """Apply the options given on the command line to the recorded input of *name*."""
    runtime = _get_runtime(ctx)
    fields = {key: value for key, value in changes.items() if value is not None}
    ssh_changes: dict[str, object] = {}
    if ssh_user is not None:
        ssh_changes["user"] = ssh_user
    if private_ssh_key is not None:
        ssh_changes["private_key_path"] = str(private_ssh_key.expanduser())
    changed = sorted([*fields, *(f"ssh.{key}" for key in ssh_changes)])

    with runtime.logger.operation(
        f"update {provider}",
        args={"name": name, "fields": changed},
        target={"kind": "instance", "name": name, "provider": provider},
    ) as op:
        manager = _load_manager(runtime, name, op)
        actual = manager.state.provider.value
        if actual != provider:
            _command_error(op, f"Instance '{name}' uses provider '{actual}', not '{provider}'.")
        if not changed:
            _command_error(op, "Nothing to update. Pass at least one option to change.")

        current = manager.state.provision.input
        if ssh_changes:
            fields["ssh"] = replace(current.ssh, **ssh_changes)
        try:
            manager.update_input(replace(current, **fields))
        except CloudyPadError as exc:
            op.add_step("update", status="error", detail=str(exc))
            _cloudypad_error(op, exc)
        op.add_step("update", status="success", detail=", ".join(changed))
        console.print(
            f"[green]Instance '{name}' updated. "
            f"Run 'cloudypad provision {name}' to apply the changes.[/green]"
        )
        op.success("Instance updated.", changed=1, context={"fields": changed})


@update_app.command("aws")
def update_aws(
    ctx: typer.Context,
    name: str = UPDATE_NAME_ARGUMENT,
    ssh_user: str | None = UPDATE_SSH_USER_OPTION,
    private_ssh_key: Path | None = UPDATE_PRIVATE_KEY_OPTION,
    instance_type: str | None = typer.Option(None, "--instance-type", help="EC2 instance type."),
    disk_size: int | None = UPDATE_DISK_SIZE_OPTION,
    public_ip_type: PublicIpType | None = UPDATE_PUBLIC_IP_OPTION,
    spot: bool | None = UPDATE_SPOT_OPTION,
) -> None:
    """Update an AWS instance."""
    _update_instance(
        ctx,
        "aws",
        name,
        {
            "instance_type": instance_type,
            "disk_size": disk_size,
            "public_ip_type": public_ip_type,
            "use_spot": spot,
        },
        ssh_user=ssh_user,
        private_ssh_key=private_ssh_key,
    )


@update_app.command("azure")
def update_azure(
    ctx: typer.Context,
    name: str = UPDATE_NAME_ARGUMENT,
    ssh_user: str | None = UPDATE_SSH_USER_OPTION,
    private_ssh_key: Path | None = UPDATE_PRIVATE_KEY_OPTION,
    vm_size: str | None = typer.Option(None, "--vm-size", help="Azure VM size."),
    disk_size: int | None = UPDATE_DISK_SIZE_OPTION,
    public_ip_type: PublicIpType | None = UPDATE_PUBLIC_IP_OPTION,
    spot: bool | None = UPDATE_SPOT_OPTION,
) -> None:
    """Update an Azure instance."""
    _update_instance(
        ctx,
        "azure",
        name,
        {
            "vm_size": vm_size,
            "disk_size": disk_size,
            "public_ip_type": public_ip_type,
            "use_spot": spot,
        },
        ssh_user=ssh_user,
        private_ssh_key=private_ssh_key,
    )


@update_app.command("gcp")
def update_gcp(
    ctx: typer.Context,
    name: str = UPDATE_NAME_ARGUMENT,
    ssh_user: str | None = UPDATE_SSH_USER_OPTION,
    private_ssh_key: Path | None = UPDATE_PRIVATE_KEY_OPTION,
    machine_type: str | None = typer.Option(None, "--machine-type", help="Machine type."),
    accelerator_type: str | None = typer.Option(None, "--accelerator-type", help="GPU type."),
    disk_size: int | None = UPDATE_DISK_SIZE_OPTION,
    public_ip_type: PublicIpType | None = UPDATE_PUBLIC_IP_OPTION,
    spot: bool | None = UPDATE_SPOT_OPTION,
) -> None:
    """Update a Google Cloud instance."""
    _update_instance(
        ctx,
        "gcp",
        name,
        {
            "machine_type": machine_type,
            "accelerator_type": accelerator_type,
            "disk_size": disk_size,
            "public_ip_type": public_ip_type,
            "use_spot": spot,
        },
        ssh_user=ssh_user,
        private_ssh_key=private_ssh_key,
    )


@update_app.command("paperspace")
def update_paperspace(
    ctx: typer.Context,
    name: str = UPDATE_NAME_ARGUMENT,
    private_ssh_key: Path | None = UPDATE_PRIVATE_KEY_OPTION,
    api_key: str | None = typer.Option(None, "--api-key", help="Paperspace API key."),
    machine_type: str | None = typer.Option(None, "--machine-type", help="Paperspace machine type."),
    disk_size: int | None = UPDATE_DISK_SIZE_OPTION,
    public_ip_type: PublicIpType | None = UPDATE_PUBLIC_IP_OPTION,
) -> None:
    """Update a Paperspace instance."""
    _update_instance(
        ctx,
        "paperspace",
        name,
        {
            "api_key": api_key,
            "machine_type": machine_type,
            "disk_size": disk_size,
            "public_ip_type": public_ip_type,
        },
        ssh_user=None,
        private_ssh_key=private_ssh_key,
    )


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------
INSTANCE_ARGUMENT = typer.Argument(..., help="Name of the instance.")


@app.command("provision")
def provision_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT, yes: bool = YES_OPTION) -> None:
    """Create or update the cloud resources of an instance."""
    _run_instance_operation(
        ctx,
        "provision",
        name,
        lambda manager: manager.provision(ProvisionOptions(auto_approve=yes)),
        message=f"Instance '{name}' provisioned.",
        args={"yes": yes},
        confirm_prompt=f"Provision cloud resources for '{name}'? This may incur costs.",
        yes=yes,
    )


@app.command("configure")
def configure_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT) -> None:
    """Configure the operating system and streaming software of an instance."""
    _run_instance_operation(
        ctx, "configure", name, InstanceManager.configure, message=f"Instance '{name}' configured."
    )


@app.command("start")
def start_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT) -> None:
    """Start an instance."""
    _run_instance_operation(ctx, "start", name, InstanceManager.start, message=f"Instance '{name}' started.")


@app.command("stop")
def stop_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT) -> None:
    """Stop an instance."""
    _run_instance_operation(ctx, "stop", name, InstanceManager.stop, message=f"Instance '{name}' stopped.")


@app.command("restart")
def restart_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT) -> None:
    """Restart an instance."""
    _run_instance_operation(
        ctx, "restart", name, InstanceManager.restart, message=f"Instance '{name}' restarted."
    )


@app.command("pair")
def pair_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT) -> None:
    """Pair a Moonlight client with an instance."""
    _run_instance_operation(ctx, "pair", name, InstanceManager.pair, message=f"Instance '{name}' paired.")


@app.command("destroy")
def destroy_instance(ctx: typer.Context, name: str = INSTANCE_ARGUMENT, yes: bool = YES_OPTION) -> None:
    """Destroy the cloud resources of an instance and forget it."""
    _run_instance_operation(
        ctx,
        "destroy",
        name,
        lambda manager: manager.destroy(ProvisionOptions(auto_approve=yes)),
        message=f"Instance '{name}' destroyed.",
        args={"yes": yes},
        confirm_prompt=f"Destroy instance '{name}' and all its cloud resources?",
        yes=yes,
    )


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------
@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
