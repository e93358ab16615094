"""Settings management for staging policies and the CRM API"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from asset_processor import (
    DEFAULT_MAX_BYTES,
    DEFAULT_THUMBNAIL_DIM,
    DEFAULT_THUMBNAIL_QUALITY,
    DOCUMENT_EXTENSIONS,
    IMAGE_EXTENSIONS,
    ValidationPolicy,
)
from crm_client import DEFAULT_BASE_URL, DEFAULT_IMAGE_FOLDER

logger = logging.getLogger("PropStage")

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "propstage"
CONFIG_FILE = CONFIG_DIR / "config.json"

NAMESPACES = ("image", "document", "api")


class SettingsManager:
    """Manages settings with precedence: per-call > runtime > config > env > hardcoded"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self._runtime_defaults: Dict[str, Dict[str, Any]] = {ns: {} for ns in NAMESPACES}
        self._config_defaults = self._load_config_defaults()
        self._hardcoded_defaults = {
            "image": {
                "allowed_extensions": sorted(IMAGE_EXTENSIONS),
                "max_bytes": DEFAULT_MAX_BYTES,
                "max_images": 50,
                "thumbnail_max_dim": DEFAULT_THUMBNAIL_DIM,
                "thumbnail_quality": DEFAULT_THUMBNAIL_QUALITY,
            },
            "document": {
                "allowed_extensions": sorted(DOCUMENT_EXTENSIONS),
                "max_bytes": DEFAULT_MAX_BYTES,
            },
            "api": {
                "base_url": DEFAULT_BASE_URL,
                "timeout": 60,
                "image_folder": DEFAULT_IMAGE_FOLDER,
            },
        }

    def _load_config_defaults(self) -> Dict[str, Dict[str, Any]]:
        """Load defaults from config file"""
        defaults = {ns: {} for ns in NAMESPACES}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
                    for ns in NAMESPACES:
                        defaults[ns] = config.get("defaults", {}).get(ns, {})
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Failed to load config file {self.config_file}: {e}")
        return defaults

    def _get_env_defaults(self) -> Dict[str, Dict[str, Any]]:
        """Load defaults from environment variables"""
        defaults = {ns: {} for ns in NAMESPACES}
        api_url = os.getenv("PROPSTAGE_API_URL")
        api_timeout = os.getenv("PROPSTAGE_API_TIMEOUT")
        max_bytes = os.getenv("PROPSTAGE_MAX_UPLOAD_BYTES")
        if api_url:
            defaults["api"]["base_url"] = api_url
        if api_timeout:
            try:
                defaults["api"]["timeout"] = float(api_timeout)
            except ValueError:
                logger.warning(f"Ignoring non-numeric PROPSTAGE_API_TIMEOUT={api_timeout!r}")
        if max_bytes:
            try:
                defaults["image"]["max_bytes"] = int(max_bytes)
                defaults["document"]["max_bytes"] = int(max_bytes)
            except ValueError:
                logger.warning(f"Ignoring non-integer PROPSTAGE_MAX_UPLOAD_BYTES={max_bytes!r}")
        return defaults

    @property
    def api_token(self) -> Optional[str]:
        # Tokens are never read from or written to the config file
        return os.getenv("PROPSTAGE_API_TOKEN") or None

    def get_default(self, namespace: str, key: str, provided_value: Any = None) -> Any:
        """Get default value with precedence: provided > runtime > config > env > hardcoded"""
        if provided_value is not None:
            return provided_value

        if key in self._runtime_defaults.get(namespace, {}):
            return self._runtime_defaults[namespace][key]

        if key in self._config_defaults.get(namespace, {}):
            return self._config_defaults[namespace][key]

        env_defaults = self._get_env_defaults()
        if key in env_defaults.get(namespace, {}):
            return env_defaults[namespace][key]

        if key in self._hardcoded_defaults.get(namespace, {}):
            return self._hardcoded_defaults[namespace][key]

        return None

    def get_all_defaults(self) -> Dict[str, Dict[str, Any]]:
        """Get all effective defaults (merged from all sources)"""
        env_defaults = self._get_env_defaults()
        result = {}
        for namespace in NAMESPACES:
            result[namespace] = self._hardcoded_defaults[namespace].copy()
            result[namespace].update(env_defaults.get(namespace, {}))
            result[namespace].update(self._config_defaults.get(namespace, {}))
            result[namespace].update(self._runtime_defaults.get(namespace, {}))
        return result

    def set_defaults(self, namespace: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Set runtime defaults for a namespace. Returns validation errors if any."""
        if namespace not in NAMESPACES:
            return {"error": f"Invalid namespace: {namespace}. Must be one of {', '.join(NAMESPACES)}"}

        errors = []
        known = self._hardcoded_defaults[namespace]
        for key, value in defaults.items():
            if key not in known:
                errors.append(f"Unknown {namespace} setting '{key}'")
            elif key == "allowed_extensions" and not isinstance(value, (list, tuple)):
                errors.append(f"{namespace}.allowed_extensions must be a list")
            elif key in ("max_bytes", "max_images", "thumbnail_max_dim", "thumbnail_quality"):
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    errors.append(f"{namespace}.{key} must be a positive integer")
        if errors:
            return {"errors": errors}

        self._runtime_defaults[namespace].update(defaults)
        return {"success": True, "updated": defaults}

    def persist_defaults(self, namespace: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Persist defaults to config file"""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        config = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}

        config.setdefault("defaults", {}).setdefault(namespace, {}).update(defaults)

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            self._config_defaults = self._load_config_defaults()
            return {"success": True, "persisted": defaults}
        except IOError as e:
            return {"error": f"Failed to write config file: {e}"}

    def image_policy(self) -> ValidationPolicy:
        return ValidationPolicy.build(
            self.get_default("image", "allowed_extensions"),
            self.get_default("image", "max_bytes"),
        )

    def document_policy(self) -> ValidationPolicy:
        return ValidationPolicy.build(
            self.get_default("document", "allowed_extensions"),
            self.get_default("document", "max_bytes"),
        )

    def store_options(self) -> Dict[str, Any]:
        """Keyword arguments for a StagingStore built from current settings"""
        return {
            "image_policy": self.image_policy(),
            "document_policy": self.document_policy(),
            "max_images": self.get_default("image", "max_images"),
            "thumbnail_max_dim": self.get_default("image", "thumbnail_max_dim"),
            "thumbnail_quality": self.get_default("image", "thumbnail_quality"),
        }
