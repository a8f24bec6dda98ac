"""
Process-wide service registry.

Routers reach the store and gateways through the ``services`` singleton.
Components are built lazily from ``Settings.from_env()``; tests call
``services.configure(...)`` to swap in their own instances.
"""

from typing import Optional

from .assets import AssetStore
from .enrichment import EnrichmentGateway
from .settings import Settings
from .store import ResourceStore


class ServiceRegistry:
    """Holds the configured store and gateways for the running app."""

    def __init__(self):
        self._settings: Optional[Settings] = None
        self._store: Optional[ResourceStore] = None
        self._assets: Optional[AssetStore] = None
        self._enrichment: Optional[EnrichmentGateway] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = Settings.from_env()
        return self._settings

    @property
    def enrichment(self) -> EnrichmentGateway:
        if self._enrichment is None:
            self._enrichment = EnrichmentGateway.from_settings(self.settings)
        return self._enrichment

    @property
    def assets(self) -> AssetStore:
        if self._assets is None:
            self._assets = AssetStore.from_settings(self.settings)
        return self._assets

    @property
    def store(self) -> ResourceStore:
        if self._store is None:
            self._store = ResourceStore.from_settings(self.settings, enrichment=self.enrichment)
        return self._store

    def configure(
        self,
        settings: Optional[Settings] = None,
        store: Optional[ResourceStore] = None,
        assets: Optional[AssetStore] = None,
        enrichment: Optional[EnrichmentGateway] = None,
    ) -> None:
        """Replace components; anything not given is rebuilt lazily."""
        self._settings = settings
        self._store = store
        self._assets = assets
        self._enrichment = enrichment

    def reset(self) -> None:
        self.configure()


services = ServiceRegistry()
