"""Default provider backends."""
from __future__ import annotations

from ..config import AppConfig
from ..state import ProviderName
from . import aws, azure, gcp, paperspace
from .base import ProviderBackend, SubManagerFactory


def default_backends() -> dict[ProviderName, ProviderBackend]:
    """Return the backends shipped with cloudypad."""
    return {
        ProviderName.AWS: aws.BACKEND,
        ProviderName.AZURE: azure.BACKEND,
        ProviderName.GCP: gcp.BACKEND,
        ProviderName.PAPERSPACE: paperspace.BACKEND,
    }


def default_factory(config: AppConfig) -> SubManagerFactory:
    """Return a factory wired with :func:`default_backends`."""
    return SubManagerFactory(config, default_backends())


__all__ = ["default_backends", "default_factory"]
