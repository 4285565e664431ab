"""Infrastructure factory for creating the blob client from configuration."""

from typing import cast

from walrus_vault.application.services import BlobStorageClient, build_tip_config
from walrus_vault.application.services.retry_policy import SleepFn
from walrus_vault.commons.infrastructure.walrus import (
    HttpWalrusNetwork,
    WalrusNetworkBase,
)
from walrus_vault.commons.settings.models import Settings
from walrus_vault.commons.telemetry import get_logger


class InfrastructureFactory:
    """Factory for creating infrastructure service instances.

    Creates concrete implementations based on configuration settings and
    caches them, so every caller shares one endpoint selection and one
    relay flag.
    """

    def __init__(self, settings: Settings, sleep: SleepFn | None = None) -> None:
        """Initialize factory with settings.

        Args:
            settings: Application settings.
            sleep: Optional sleep override passed to every component.
        """
        self._settings = settings
        self._sleep = sleep
        self._instances: dict[str, object] = {}
        self._logger = get_logger(__name__)

    def get_network(self) -> WalrusNetworkBase:
        """Get the Walrus network client.

        Returns:
            HTTP client for the configured publisher, aggregator and relay.
        """
        if "network" not in self._instances:
            walrus = self._settings.walrus
            extra = {"sleep": self._sleep} if self._sleep else {}
            relay_host = self._settings.resolved_relay_host()
            tip = build_tip_config(self._settings.relay) if relay_host else None
            self._instances["network"] = HttpWalrusNetwork(
                aggregator_url=walrus.resolved_aggregator(),
                publisher_url=walrus.resolved_publisher(),
                relay_url=relay_host,
                relay_tip=tip,
                transport=self._settings.transport,
                probe_path=walrus.probe_path,
                **extra,
            )
            self._logger.debug(
                "Walrus network client created",
                extra={
                    "network": walrus.network,
                    "aggregator": walrus.resolved_aggregator(),
                    "publisher": walrus.resolved_publisher(),
                    "relay": relay_host,
                },
            )
        return cast("WalrusNetworkBase", self._instances["network"])

    def get_blob_client(self) -> BlobStorageClient:
        """Get the blob storage client.

        Returns:
            Client wired to the network returned by ``get_network``.
        """
        if "blob_client" not in self._instances:
            extra = {"sleep": self._sleep} if self._sleep else {}
            self._instances["blob_client"] = BlobStorageClient(
                self.get_network(), self._settings, **extra
            )
        return cast("BlobStorageClient", self._instances["blob_client"])

    async def close_all(self) -> None:
        """Close all service connections."""
        network = self._instances.get("network")
        self._instances.clear()
        if network is not None:
            await cast("WalrusNetworkBase", network).aclose()


class _FactoryHolder:
    """Holder for the factory singleton to avoid global statements."""

    instance: InfrastructureFactory | None = None


def get_factory(settings: Settings | None = None) -> InfrastructureFactory:
    """Get or create the infrastructure factory singleton.

    Args:
        settings: Settings to use. Required on first call.

    Returns:
        Infrastructure factory instance.

    Raises:
        ValueError: If settings not provided on first call.
    """
    if _FactoryHolder.instance is None:
        if settings is None:
            raise ValueError("Settings required to initialize factory")
        _FactoryHolder.instance = InfrastructureFactory(settings)

    return _FactoryHolder.instance


def reset_factory() -> None:
    """Reset the factory singleton (for testing)."""
    _FactoryHolder.instance = None
