"""
Integration config persistence.

The export core reads one serialized IntegrationConfig record at the start
of each call. Where it lives is decided by the ConfigProvider injected into
the orchestrator and routes: in memory for tests, or a JSON file on disk.

The JSON record uses the camelCase keys the settings UI writes. Secret
fields are encrypted with TokenManager when INTEGRATION_ENCRYPTION_KEY is
set, and are masked whenever the config is sent back to a client.

Environment:
    BUGSNAP_CONFIG_PATH: Path of the JSON record (default ~/.bugsnap/config.json)
"""

import os
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from integrations.core.tokens import TokenManager, get_token_manager
from integrations.core.types import IntegrationConfig, SECRET_FIELDS
from integrations.credentials import normalize_config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.bugsnap/config.json"
MASK = "********"


class ConfigProvider(ABC):
    """Explicit load/save of the integration config."""

    @abstractmethod
    def load(self) -> IntegrationConfig:
        pass

    @abstractmethod
    def save(self, config: IntegrationConfig) -> IntegrationConfig:
        """Normalize and persist the config; returns what was stored."""
        pass


class InMemoryConfigProvider(ConfigProvider):
    def __init__(self, config: Optional[IntegrationConfig] = None):
        self._config = config or IntegrationConfig()

    def load(self) -> IntegrationConfig:
        return self._config

    def save(self, config: IntegrationConfig) -> IntegrationConfig:
        self._config = normalize_config(config)
        return self._config


def _secret_aliases() -> list[str]:
    fields = IntegrationConfig.model_fields
    return [fields[name].alias or name for name in SECRET_FIELDS]


class JsonFileConfigProvider(ConfigProvider):
    """
    Stores the config as a single JSON object.

    A missing file loads as an empty config.
    """

    def __init__(self, path: Optional[str] = None, token_manager: Optional[TokenManager] = None):
        self.path = Path(path or os.getenv("BUGSNAP_CONFIG_PATH") or DEFAULT_CONFIG_PATH).expanduser()
        self._token_manager = token_manager if token_manager is not None else get_token_manager()

    def load(self) -> IntegrationConfig:
        if not self.path.exists():
            logger.info(f"[CONFIG] No config at {self.path}, using empty config")
            return IntegrationConfig()

        with self.path.open("r", encoding="utf-8") as f:
            record = json.load(f)

        if self._token_manager:
            record = self._token_manager.decrypt_fields(record, _secret_aliases())

        return IntegrationConfig.model_validate(record)

    def save(self, config: IntegrationConfig) -> IntegrationConfig:
        config = normalize_config(config)
        record = config.model_dump(by_alias=True, exclude_none=True)

        if self._token_manager:
            record = self._token_manager.encrypt_fields(record, _secret_aliases())
        else:
            logger.warning("[CONFIG] INTEGRATION_ENCRYPTION_KEY not set, storing tokens in plain text")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        tmp_path.replace(self.path)

        logger.info(f"[CONFIG] Saved integration config to {self.path}")
        return config


def mask_secrets(config: IntegrationConfig) -> dict[str, Any]:
    """camelCase dict of the config with every secret replaced by a mask."""
    record = config.model_dump(by_alias=True)
    for alias in _secret_aliases():
        if record.get(alias):
            record[alias] = MASK
    return record


def merge_masked(current: IntegrationConfig, incoming: IntegrationConfig) -> IntegrationConfig:
    """
    Keep stored secrets where the client sent the mask back unchanged.
    """
    updates = {
        name: getattr(current, name)
        for name in SECRET_FIELDS
        if getattr(incoming, name) == MASK
    }
    return incoming.model_copy(update=updates) if updates else incoming


# Singleton instance
_config_provider: Optional[ConfigProvider] = None


def get_config_provider() -> ConfigProvider:
    """Get or create the process-wide config provider."""
    global _config_provider
    if _config_provider is None:
        _config_provider = JsonFileConfigProvider()
    return _config_provider
