"""Factory for creating blob storage instances."""

import os
from pathlib import Path
from typing import Optional

from ..config import StoreSettings
from ..constants import AZURE_CONNECTION_ENV
from ..errors import ConfigError
from .clients import ClientCache
from .transport import RemoteBlobStore


def validate_azure_config(settings: StoreSettings) -> None:
    """
    Early validation of Azure configuration.

    Args:
        settings: Store settings to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if not settings.container:
        raise ConfigError("container required for Azure blob storage")

    if AZURE_CONNECTION_ENV not in os.environ:
        raise ConfigError(
            f"Set {AZURE_CONNECTION_ENV} and container for Azure blob storage"
        )


def make_blob_store(
    settings: StoreSettings, clients: Optional[ClientCache] = None
) -> RemoteBlobStore:
    """
    Create blob store instance based on settings.

    Args:
        settings: Store settings
        clients: Shared Azure service-client cache

    Returns:
        RemoteBlobStore over the configured transport

    Raises:
        ConfigError: If configuration is invalid
    """
    if settings.provider == "azure":
        validate_azure_config(settings)
        from .azure import AzureTransport

        transport = AzureTransport.from_connection_string(
            os.environ[AZURE_CONNECTION_ENV],
            settings.container,
            prefix=settings.prefix,
            page_size=settings.page_size,
            clients=clients,
        )
        return RemoteBlobStore(transport)

    elif settings.provider == "fs":
        from .fs import FilesystemTransport

        return RemoteBlobStore(
            FilesystemTransport(Path(settings.resolved_container), page_size=settings.page_size)
        )

    else:
        raise ConfigError(f"Provider {settings.provider} not supported")
