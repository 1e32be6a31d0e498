"""Optional YAML configuration for mipowctl."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from mipowctl.core.errors import ConfigError

CONFIG_ENV_VAR = "MIPOWCTL_CONFIG"
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    scan_timeout_s: float = 15.0
    dial_timeout_s: float = 10.0
    mtu: int = 500
    settle_s: float = 1.0
    write_with_response: bool = True
    active_scan: bool = True


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def _load_schema_validator() -> Any:
    schema_text = resources.files("mipowctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "mipowctl/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def load_settings(path: Path | None = None) -> Settings:
    """Read settings from ``path`` or the default location.

    A missing file at the default location yields the defaults. A missing file
    that was asked for explicitly is an error.
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    config_path = path if path is not None else default_config_path()

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file {config_path} does not exist")
        LOGGER.debug("No config file at %s, using defaults", config_path)
        return Settings()

    doc = _read_yaml(config_path)
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise ConfigError(f"Schema validation failed for {config_path}{where}: {exc.message}") from exc

    settings = Settings(
        scan_timeout_s=float(doc.get("scan_timeout_s", Settings.scan_timeout_s)),
        dial_timeout_s=float(doc.get("dial_timeout_s", Settings.dial_timeout_s)),
        mtu=int(doc.get("mtu", Settings.mtu)),
        settle_s=float(doc.get("settle_s", Settings.settle_s)),
        write_with_response=doc.get("write_with_response", Settings.write_with_response),
        active_scan=doc.get("active_scan", Settings.active_scan),
    )
    LOGGER.debug("Loaded settings from %s: %s", config_path, settings)
    return settings


def with_overrides(settings: Settings, *, scan_timeout_s: float | None = None) -> Settings:
    if scan_timeout_s is None:
        return settings
    if scan_timeout_s <= 0:
        raise ConfigError("Scan timeout must be greater than zero")
    return replace(settings, scan_timeout_s=scan_timeout_s)
