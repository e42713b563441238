"""Configuration service — loads, saves, and provides access to AppConfig."""
from __future__ import annotations

import json
import logging
import os

from pydantic import ValidationError

from tvfetch.models.config import AppConfig, FetchOptions, ProviderConfig

logger = logging.getLogger(__name__)


class ConfigService:
    """Manages application configuration with file persistence.

    The config is kept in-memory after first load and re-read on explicit
    ``load()`` or ``reload()`` calls. Services are built from ``provider``
    and ``options`` rather than from the JSON file directly.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.config_file = os.path.join(data_dir, "config.json")
        self._config = AppConfig()

    # ------------------------------------------------------------------
    # Load / Save
    # ------------------------------------------------------------------

    def load(self) -> AppConfig:
        """Load configuration from disk; missing keys take their defaults."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file) as f:
                    raw = json.load(f)

                # Legacy flat layout: {"base_url", "username", "password", ...}
                if "provider" not in raw and "base_url" in raw:
                    raw = {"provider": raw, "options": raw.pop("options", {})}
                    logger.info("Migrated flat provider config to nested format")

                self._config = AppConfig.model_validate(raw)
                return self._config

            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Error loading config: {e}")

        self._config = AppConfig()
        return self._config

    def reload(self) -> AppConfig:
        """Alias for ``load()``."""
        return self.load()

    def save(self, config: AppConfig | None = None) -> None:
        """Persist the config to disk."""
        if config is not None:
            self._config = config
        os.makedirs(self.data_dir, exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self._config.model_dump(mode="json"), f, indent=2)

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def provider(self) -> ProviderConfig:
        return self._config.provider

    @property
    def options(self) -> FetchOptions:
        return self._config.options

    def get_cache_ttl(self) -> int:
        return self._config.options.cache_ttl
