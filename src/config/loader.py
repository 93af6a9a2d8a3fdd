"""Configuration loader for the reconciliation engine.

Provides centralized access to all engine configuration parameters.
"""
from __future__ import annotations

import yaml
from pathlib import Path
from typing import Any, Optional
import structlog

logger = structlog.get_logger(__name__)

CONFIG_FILE = Path(__file__).parent / "reconcile_config.yaml"


class ConfigLoader:
    """Loads and provides access to engine configuration."""

    _instance: Optional[ConfigLoader] = None
    _config: Optional[dict[str, Any]] = None

    def __new__(cls) -> ConfigLoader:
        """Singleton pattern - ensure only one config instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize config loader (only runs once due to singleton)."""
        if self._config is None:
            self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if CONFIG_FILE.exists():
            with open(CONFIG_FILE, encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
            logger.info("config_loaded", path=str(CONFIG_FILE))
        else:
            logger.warning("config_file_not_found", path=str(CONFIG_FILE))
            self._config = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Examples:
            config.get("history.max_entries")
            config.get("reconcile.parallel_threshold")
            config.get("nonexistent.key", default=100)
        """
        if not self._config:
            return default

        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_section(self, section: str) -> dict[str, Any]:
        """Get entire configuration section.

        Examples:
            config.get_section("reconcile")
            config.get_section("metadata")
        """
        return self.get(section, default={})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config = None
        self._load_config()


# Singleton instance
_config = ConfigLoader()


def get_config() -> ConfigLoader:
    """Get the global config instance."""
    return _config


def get_keep_removed_default() -> bool:
    """Whether removed controls stay in the active control set by default."""
    return bool(_config.get("reconcile.keep_removed", False))


def get_parallel_threshold() -> int:
    """Catalog size from which fingerprinting fans out to a thread pool."""
    return int(_config.get("reconcile.parallel_threshold", 200))


def get_max_workers() -> int:
    """Thread pool size for parallel fingerprinting."""
    return int(_config.get("reconcile.max_workers", 4))


def get_fingerprint_algorithm() -> str:
    """hashlib algorithm name used for control fingerprints."""
    return _config.get("fingerprint.algorithm", "sha256")


def get_history_max_entries() -> int:
    """Cap on evidence history entries kept per control."""
    return int(_config.get("history.max_entries", 12))


def get_prop_namespace() -> str:
    """Namespace stamped on props the engine writes into an SSP."""
    return _config.get("ssp.prop_namespace", "https://ssp-reconcile.dev/ns/oscal")


def get_catalog_metadata_fields() -> list[str]:
    """Metadata keys always taken from the catalog during a merge."""
    return _config.get(
        "metadata.catalog_owned",
        default=[
            "published", "version", "oscal-version", "document-ids",
            "props", "links", "roles", "parties", "revisions", "remarks",
        ],
    )


def get_oscal_version() -> str:
    """OSCAL version stamped on written documents when the catalog has none."""
    return str(_config.get("ssp.oscal_version", "1.1.2"))
