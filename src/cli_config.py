"""Runtime configuration: YAML config file first, CLI overrides last.

Both layers write into ``Constants`` so every module reads one source of
truth; ``FamilyConfig.from_constants()`` snapshots the result.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

# YAML key under "family:" -> Constants attribute, value type
_FAMILY_KEYS = {
    "root_package": ("ROOT_PACKAGE", str),
    "prefix": ("FAMILY_PREFIX", str),
    "repository": ("CANONICAL_REPOSITORY", str),
    "raw_base_url": ("RAW_MANIFEST_BASE_URL", str),
    "registry_url": ("REGISTRY_URL_NPM", str),
    "workspace_protocol": ("WORKSPACE_PROTOCOL", str),
    "package_manager": ("PACKAGE_MANAGER", str),
    "version_order": ("VERSION_ORDER", str),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "retry_max": ("HTTP_RETRY_MAX", int),
}

_CHOICES = {
    "PACKAGE_MANAGER": Constants.SUPPORTED_PACKAGE_MANAGERS,
    "VERSION_ORDER": Constants.VERSION_ORDERS,
}


class ConfigError(ValueError):
    """The configuration file is unreadable or holds invalid values."""


def resolve_config_path(config_path: Optional[str], project_dir: str = ".") -> Optional[str]:
    """Explicit path wins; otherwise use the project's default config if it exists."""
    if config_path:
        return config_path
    default = os.path.join(project_dir, Constants.CONFIG_FILE)
    return default if os.path.isfile(default) else None


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load the ``family`` section of a YAML config file.

    Raises:
        ConfigError: file missing, not YAML, or not a mapping.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    family = data.get("family", data)
    if not isinstance(family, dict):
        raise ConfigError(f"'family' in {config_path} must be a mapping")
    return family


def _set_constant(attr: str, value: Any) -> None:
    choices = _CHOICES.get(attr)
    if choices is not None and value not in choices:
        raise ConfigError(f"Invalid value {value!r} for {attr.lower()}; expected one of {', '.join(choices)}")
    setattr(Constants, attr, value)


def apply_config_file(family: Dict[str, Any]) -> None:
    """Apply a loaded ``family`` section to Constants."""
    for key, value in family.items():
        mapping = _FAMILY_KEYS.get(key)
        if mapping is None:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        attr, kind = mapping
        try:
            converted = kind(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
        _set_constant(attr, converted)


def apply_cli_overrides(args) -> None:
    """Apply CLI overrides with highest precedence."""
    overrides = {
        "ROOT_PACKAGE": getattr(args, "ROOT_PACKAGE", None),
        "FAMILY_PREFIX": getattr(args, "FAMILY_PREFIX", None),
        "REGISTRY_URL_NPM": getattr(args, "REGISTRY_URL", None),
        "PACKAGE_MANAGER": getattr(args, "PACKAGE_MANAGER", None),
        "VERSION_ORDER": getattr(args, "VERSION_ORDER", None),
    }
    for attr, value in overrides.items():
        if value:
            _set_constant(attr, value)


def configure(args) -> None:
    """Load the config file (if any) and then the CLI overrides."""
    path = resolve_config_path(getattr(args, "CONFIG", None), getattr(args, "PROJECT_DIR", "."))
    if path:
        logger.debug("Loading configuration from %s", path)
        apply_config_file(load_config_file(path))
    apply_cli_overrides(args)
