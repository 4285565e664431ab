"""Layered settings loader: JSON files first, environment variables last."""

import json
import os
from pathlib import Path
from typing import Any

from walrus_vault.commons.settings.models import Settings

_TRUE_FALSE = {"true": True, "false": False}


class SettingsLoader:
    """Builds a Settings instance from config files and the environment.

    Precedence (highest first):
    1. ``WALRUS_VAULT__*`` environment variables
    2. ``appsettings.{environment}.json``
    3. ``appsettings.json``
    """

    ENV_PREFIX = "WALRUS_VAULT__"

    def __init__(
        self,
        config_dir: Path | None = None,
        environment: str | None = None,
    ) -> None:
        """Initialize the settings loader.

        Args:
            config_dir: Directory holding the appsettings files. Defaults to
                ``WALRUS_VAULT__CONFIG_DIR`` or ``./config``.
            environment: Environment name (dev, staging, prod). Defaults to
                ``WALRUS_VAULT__APP__ENVIRONMENT`` or ``dev``.
        """
        self.config_dir = config_dir or Path(
            os.getenv(f"{self.ENV_PREFIX}CONFIG_DIR", "config")
        )
        self.environment = environment or os.getenv(
            f"{self.ENV_PREFIX}APP__ENVIRONMENT", "dev"
        )

    def load(self) -> Settings:
        """Load and merge every configuration layer.

        Returns:
            Fully resolved Settings instance.
        """
        config = self._load_json("appsettings.json")
        config = self._deep_merge(
            config, self._load_json(f"appsettings.{self.environment}.json")
        )
        config = self._deep_merge(config, self._load_env_vars())
        return Settings(**config)

    def _load_env_vars(self) -> dict[str, Any]:
        """Turn WALRUS_VAULT__RELAY__TIP_MAX=10 into {"relay": {"tip_max": 10}}."""
        result: dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX):
                continue
            key_path = key[len(self.ENV_PREFIX) :].lower().split("__")
            if key_path == ["config_dir"]:
                continue

            current = result
            for part in key_path[:-1]:
                current = current.setdefault(part, {})
            current[key_path[-1]] = self._coerce_value(value)

        return result

    def _coerce_value(self, value: str) -> Any:
        """Coerce an environment string to bool, int, float, JSON or str."""
        lowered = value.lower()
        if lowered in _TRUE_FALSE:
            return _TRUE_FALSE[lowered]

        for cast in (int, float):
            try:
                return cast(value)
            except ValueError:
                pass

        # Lists such as CANDIDATE_AGGREGATORS
        if value.startswith(("[", "{")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _load_json(self, filename: str) -> dict[str, Any]:
        path = self.config_dir / filename
        if path.exists():
            with path.open(encoding="utf-8") as f:
                return dict(json.load(f))
        return {}

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


_settings: Settings | None = None


def get_settings(
    config_dir: Path | None = None,
    environment: str | None = None,
    *,
    reload: bool = False,
) -> Settings:
    """Get or create the process-wide settings instance.

    Args:
        config_dir: Optional config directory override.
        environment: Optional environment override.
        reload: Force reload settings from files.

    Returns:
        Settings instance.
    """
    global _settings  # noqa: PLW0603
    if _settings is None or reload:
        loader = SettingsLoader(config_dir=config_dir, environment=environment)
        _settings = loader.load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings instance. Useful for testing."""
    global _settings  # noqa: PLW0603
    _settings = None
