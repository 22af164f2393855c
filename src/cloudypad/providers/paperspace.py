"""Paperspace backend talking to the Paperspace REST API with httpx.

Machines are created from a template and started on creation. The public IP is
assigned asynchronously so provisioning polls the machine until it shows up.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, cast

import httpx

from ..config import AppConfig, PaperspaceConfig
from ..errors import CollaboratorError, ProvisioningError, RunnerError
from ..state import InstanceState, PaperspaceProvisionInput, PaperspaceProvisionOutput
from .base import ProviderBackend, ProvisionOptions
from .moonlight import MoonlightPairer

LOGGER = logging.getLogger(__name__)

DEFAULT_SSH_USER = "paperspace"
MACHINE_NAME_PREFIX = "CloudyPad_"


class PaperspaceApiError(CollaboratorError):
    """Error returned by the Paperspace API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PaperspaceClient:
    """Synchronous client for the machines endpoints of the Paperspace API."""

    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = "https://api.paperspace.com/v1",
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=api_base,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> PaperspaceClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        """Execute a request and return the JSON body, unwrapping ``data``."""
        try:
            resp = self._client.request(method, path, json=json)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PaperspaceApiError(
                f"API error {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise PaperspaceApiError(f"Request failed: {e}") from e
        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as e:
            raise PaperspaceApiError(f"Invalid JSON response from {path}: {e}") from e
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body

    def create_machine(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a machine and return its description."""
        result = self._request("POST", "/machines", json=payload)
        if not isinstance(result, dict) or not result.get("id"):
            raise PaperspaceApiError(f"Machine ID not found in API response: {result!r}")
        return result

    def get_machine(self, machine_id: str) -> dict[str, Any]:
        result = self._request("GET", f"/machines/{machine_id}")
        if not isinstance(result, dict):
            raise PaperspaceApiError(f"Unexpected machine description: {result!r}")
        return result

    def start_machine(self, machine_id: str) -> None:
        self._request("PATCH", f"/machines/{machine_id}/start")

    def stop_machine(self, machine_id: str) -> None:
        self._request("PATCH", f"/machines/{machine_id}/stop")

    def restart_machine(self, machine_id: str) -> None:
        self._request("PATCH", f"/machines/{machine_id}/restart")

    def delete_machine(self, machine_id: str) -> None:
        self._request("DELETE", f"/machines/{machine_id}")


ClientFactory = Callable[[str], PaperspaceClient]


def client_factory_for(config: PaperspaceConfig) -> ClientFactory:
    """Return a factory building clients from an API key with *config* settings."""

    def factory(api_key: str) -> PaperspaceClient:
        return PaperspaceClient(api_key, api_base=config.api_base, timeout=config.timeout)

    return factory


class PaperspaceProvisioner:
    """Create and delete Paperspace machines."""

    def __init__(
        self,
        name: str,
        provision_input: PaperspaceProvisionInput,
        output: PaperspaceProvisionOutput | None,
        config: PaperspaceConfig,
        *,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self.input = provision_input
        self.output = output
        self.config = config
        self._client_factory = client_factory or client_factory_for(config)
        self._sleep = sleep

    def verify_config(self) -> None:
        if not self.input.api_key.strip():
            raise ProvisioningError("Paperspace API key is empty.")
        if self.input.disk_size <= 0:
            raise ProvisioningError(f"Disk size must be positive, got {self.input.disk_size}.")

    def _existing_machine(self, client: PaperspaceClient) -> dict[str, Any] | None:
        if self.output is None:
            return None
        try:
            return client.get_machine(self.output.machine_id)
        except PaperspaceApiError as exc:
            if exc.status_code == 404:
                LOGGER.info("Machine %s no longer exists, creating a new one", self.output.machine_id)
                return None
            raise

    def _wait_for_public_ip(self, client: PaperspaceClient, machine: dict[str, Any]) -> str:
        machine_id = str(machine["id"])
        for attempt in range(self.config.poll_attempts):
            public_ip = machine.get("publicIp")
            if isinstance(public_ip, str) and public_ip:
                return public_ip
            LOGGER.debug("Waiting for public IP of %s (attempt %d)", machine_id, attempt + 1)
            self._sleep(self.config.poll_interval)
            machine = client.get_machine(machine_id)
        public_ip = machine.get("publicIp")
        if isinstance(public_ip, str) and public_ip:
            return public_ip
        raise ProvisioningError(f"Machine {machine_id} has no public IP after {self.config.poll_attempts} attempts.")

    def provision(self, options: ProvisionOptions) -> PaperspaceProvisionOutput:
        try:
            with self._client_factory(self.input.api_key) as client:
                machine = self._existing_machine(client)
                if machine is None:
                    LOGGER.info("Creating Paperspace machine for %s", self.name)
                    machine = client.create_machine(
                        {
                            "name": f"{MACHINE_NAME_PREFIX}{self.name}",
                            "machineType": self.input.machine_type,
                            "templateId": self.config.template_id,
                            "region": self.input.region,
                            "diskSize": self.input.disk_size,
                            "publicIpType": self.input.public_ip_type.value,
                            "startOnCreate": True,
                        }
                    )
                host = self._wait_for_public_ip(client, machine)
        except PaperspaceApiError as exc:
            raise ProvisioningError(f"Paperspace provisioning failed: {exc.message}") from exc
        return PaperspaceProvisionOutput(host=host, machine_id=str(machine["id"]))

    def destroy(self, options: ProvisionOptions) -> None:
        if self.output is None:
            LOGGER.info("No Paperspace machine recorded for %s, nothing to delete", self.name)
            return
        try:
            with self._client_factory(self.input.api_key) as client:
                client.delete_machine(self.output.machine_id)
        except PaperspaceApiError as exc:
            if exc.status_code == 404:
                LOGGER.info("Machine %s already deleted", self.output.machine_id)
                return
            raise ProvisioningError(f"Paperspace machine deletion failed: {exc.message}") from exc


class PaperspaceRunner:
    """Start and stop a Paperspace machine through the API."""

    def __init__(
        self,
        provision_input: PaperspaceProvisionInput,
        output: PaperspaceProvisionOutput,
        config: PaperspaceConfig,
        *,
        pairer: MoonlightPairer | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.input = provision_input
        self.output = output
        self.pairer = pairer or MoonlightPairer(output.host)
        self._client_factory = client_factory or client_factory_for(config)

    def _call(self, action: str, operation: Callable[[PaperspaceClient, str], None]) -> None:
        LOGGER.info("Paperspace %s of machine %s", action, self.output.machine_id)
        try:
            with self._client_factory(self.input.api_key) as client:
                operation(client, self.output.machine_id)
        except PaperspaceApiError as exc:
            raise RunnerError(f"Paperspace {action} failed: {exc.message}") from exc

    def start(self) -> None:
        self._call("start", PaperspaceClient.start_machine)

    def stop(self) -> None:
        self._call("stop", PaperspaceClient.stop_machine)

    def restart(self) -> None:
        self._call("restart", PaperspaceClient.restart_machine)

    def pair(self) -> None:
        self.pairer.pair()


def build_provisioner(state: InstanceState, config: AppConfig) -> PaperspaceProvisioner:
    return PaperspaceProvisioner(
        state.name,
        cast(PaperspaceProvisionInput, state.provision.input),
        cast("PaperspaceProvisionOutput | None", state.provision.output),
        config.paperspace,
    )


def build_runner(state: InstanceState, config: AppConfig) -> PaperspaceRunner:
    output = cast(PaperspaceProvisionOutput, state.provision.output)
    return PaperspaceRunner(
        cast(PaperspaceProvisionInput, state.provision.input),
        output,
        config.paperspace,
        pairer=MoonlightPairer(output.host, moonlight_bin=config.moonlight_bin),
    )


BACKEND = ProviderBackend(provisioner=build_provisioner, runner=build_runner)

__all__ = [
    "BACKEND",
    "DEFAULT_SSH_USER",
    "PaperspaceApiError",
    "PaperspaceClient",
    "PaperspaceProvisioner",
    "PaperspaceRunner",
]
