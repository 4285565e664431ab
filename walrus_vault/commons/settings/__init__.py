"""Settings management module."""

from walrus_vault.commons.settings.loader import (
    SettingsLoader,
    get_settings,
    reset_settings,
)
from walrus_vault.commons.settings.models import (
    DEFAULT_RELAY_TIP_MAX,
    NETWORK_DEFAULTS,
    AppSettings,
    RelaySettings,
    RetrievalSettings,
    Settings,
    TelemetrySettings,
    TransportSettings,
    UploadSettings,
    WalrusSettings,
)

__all__ = [
    # Loader
    "SettingsLoader",
    "get_settings",
    "reset_settings",
    # Main settings
    "Settings",
    "AppSettings",
    # Walrus
    "WalrusSettings",
    "RelaySettings",
    "NETWORK_DEFAULTS",
    "DEFAULT_RELAY_TIP_MAX",
    # Policies
    "UploadSettings",
    "RetrievalSettings",
    "TransportSettings",
    # Telemetry
    "TelemetrySettings",
]
