"""Provider collaborators and the factory building them."""
from __future__ import annotations

from .base import (
    InstanceConfigurator,
    InstanceProvisioner,
    InstanceRunner,
    ProviderBackend,
    ProvisionOptions,
    SubManagerFactory,
)
from .registry import default_backends, default_factory

__all__ = [
    "InstanceConfigurator",
    "InstanceProvisioner",
    "InstanceRunner",
    "ProviderBackend",
    "ProvisionOptions",
    "SubManagerFactory",
    "default_backends",
    "default_factory",
]
