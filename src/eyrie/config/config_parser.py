"""Configuration loading for the eyrie CLI.

Brief:
  Centralizes:
    - reading the YAML config file
    - merging config-file variables with ALL_UPPERCASE environment variables
    - JSON Schema validation (via config_schema.validate_config)
    - building zone providers and resolvers from their list entries

Inputs:
  - YAML config paths and parsed config dicts

Outputs:
  - Validated config dicts and constructed component instances
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

import yaml
from pydantic import ValidationError

from eyrie.errors import ConfigError
from eyrie.registry import discover, get_class
from eyrie.resolvers.authoritative import AuthoritativeResolver
from eyrie.resolvers.base import BaseResolver
from eyrie.zones.catalog import ZoneCatalog
from eyrie.zones.provider import BaseZoneProvider
from eyrie.zones.transfer import ZoneTransferConfig

from .config_schema import is_var_key, validate_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESOLVER_PACKAGE = "eyrie.resolvers"
ZONE_PROVIDER_PACKAGE = "eyrie.zones"


def _parse_yaml_value(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge ALL_UPPERCASE environment variables into cfg['variables'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - environ: Environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables stored back onto cfg['variables'].
        Environment values override config-file values and are parsed as YAML.

    Example:
        >>> cfg = {"variables": {"TTL": 100}}
        >>> parse_config_variables(cfg, environ={"TTL": "300", "path": "x"})["TTL"]
        300
    """
    base = cfg.get("variables")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ConfigError("config.variables must be a mapping when present")

    env = os.environ if environ is None else environ
    for key, value in env.items():
        if is_var_key(key):
            merged[key] = _parse_yaml_value(str(value))

    cfg["variables"] = merged
    return merged


def parse_config_file(
    config_path: str,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, variable-expand and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - environ: Optional environment mapping used for variables.

    Outputs:
      - dict: Validated configuration mapping.

    Raises:
      - ConfigError when the file cannot be read or parsed, or fails validation.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError("Configuration root must be a mapping")

    parse_config_variables(cfg, environ=environ)
    validate_config(cfg, config_path=config_path)
    return cfg


def _build_components(
    entries: Optional[List[Dict[str, Any]]],
    base: Type[T],
    package_name: str,
    section: str,
    extra_kwargs: Optional[Dict[Type[Any], Dict[str, Any]]] = None,
) -> List[T]:
    registry = discover(base, package_name)
    components: List[T] = []
    seen: set = set()

    for entry in entries or []:
        if not entry.get("enabled", True):
            continue
        type_name = str(entry["type"])
        name = str(entry.get("name") or type_name)
        if name in seen:
            raise ConfigError(
                f"Duplicate {section} name '{name}'; set 'name' explicitly to disambiguate"
            )
        seen.add(name)

        try:
            cls = get_class(type_name, base, package_name, registry)
        except (KeyError, TypeError, ValueError, ImportError, AttributeError) as exc:
            raise ConfigError(f"{section}[{name}]: {exc}") from exc

        kwargs = dict(entry.get("config") or {})
        for kind, injected in (extra_kwargs or {}).items():
            if issubclass(cls, kind):
                kwargs.update(injected)
        components.append(cls(name=name, **kwargs))
        logger.debug("Loaded %s %s (%s)", section, name, cls.__name__)

    return components


def load_zone_providers(cfg: Dict[str, Any]) -> List[BaseZoneProvider]:
    """Brief: Instantiate every enabled entry of cfg['zone_providers'].

    Inputs:
      - cfg: Validated configuration mapping.

    Outputs:
      - List of providers in configuration order.

    Raises:
      - ConfigError (including ZoneStoreConfigError) for unknown types,
        duplicate names or invalid provider configuration.
    """
    return _build_components(
        cfg.get("zone_providers"),
        BaseZoneProvider,
        ZONE_PROVIDER_PACKAGE,
        "zone_providers",
    )


def load_resolvers(cfg: Dict[str, Any], catalog: ZoneCatalog) -> List[BaseResolver]:
    """Brief: Instantiate and set up every enabled entry of cfg['resolvers'].

    Inputs:
      - cfg: Validated configuration mapping.
      - catalog: Zone catalog handed to authoritative resolvers.

    Outputs:
      - List of resolvers in chain order, each with setup() already run.

    Raises:
      - ConfigError (including ResolverConfigError) for unknown types,
        duplicate names or a resolver refusing to start.
    """
    resolvers = _build_components(
        cfg.get("resolvers"),
        BaseResolver,
        RESOLVER_PACKAGE,
        "resolvers",
        extra_kwargs={AuthoritativeResolver: {"catalog": catalog}},
    )
    for resolver in resolvers:
        resolver.setup()
    return resolvers


def load_zone_transfer_config(cfg: Dict[str, Any]) -> ZoneTransferConfig:
    try:
        return ZoneTransferConfig(**(cfg.get("zone_transfer") or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid zone_transfer configuration: {exc}") from exc
