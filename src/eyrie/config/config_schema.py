"""JSON Schema validation and variable expansion for the YAML configuration."""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from jsonschema import Draft202012Validator, ValidationError

from eyrie.errors import ConfigError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


def is_var_key(key: object) -> bool:
    """Return True for ALL_UPPERCASE names matching [A-Z_][A-Z0-9_]*."""
    return isinstance(key, str) and bool(_VAR_KEY.fullmatch(key))


def expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand ``${KEY}`` references using cfg['variables'] and drop the group.

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - A string that is exactly ``${KEY}`` is replaced by the variable's YAML
        value (int, list, mapping...). Inside longer strings the value is
        substituted as text.
      - Variables may reference each other; cycles raise ConfigError.
      - Unknown references are left untouched.

    Example:
        >>> cfg = {"variables": {"PORT": 5353}, "resolvers": [{"type": "forwarding", "config": {"port": "${PORT}"}}]}
        >>> expand_variables(cfg)
        >>> cfg["resolvers"][0]["config"]["port"]
        5353
    """
    variables = cfg.pop("variables", None)
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ConfigError("config.variables must be a mapping when present")
    for key in variables:
        if not is_var_key(key):
            raise ConfigError(f"config.variables key {key!r} must match [A-Z_][A-Z0-9_]*")

    resolved: Dict[str, Any] = {}

    def _resolve(key: str, stack: Set[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            raise ConfigError("config.variables contains a cycle through %s" % key)
        stack.add(key)
        value = _expand(variables[key], stack)
        stack.discard(key)
        resolved[key] = value
        return value

    def _expand_string(text: str, stack: Set[str]) -> Any:
        whole = _VAR_PATTERN.fullmatch(text)
        if whole and whole.group(1) in variables:
            return copy.deepcopy(_resolve(whole.group(1), stack))

        def _repl(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            value = _resolve(key, stack)
            if isinstance(value, bool):
                return "true" if value else "false"
            if value is None:
                return "null"
            if isinstance(value, (int, float, str)):
                return str(value)
            return json.dumps(value)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand(obj: Any, stack: Set[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            return [_expand(item, stack) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand(v, stack) for k, v in obj.items()}
        return obj

    for key in list(variables):
        _resolve(key, set())
    for top_key in list(cfg):
        cfg[top_key] = _expand(cfg[top_key], set())


def get_default_schema_path() -> Path:
    return Path(__file__).with_name("config-schema.json")


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"- {instance_path}: {err.message}")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Expand variables in *cfg* and validate it against the JSON Schema.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated by expansion).
      - schema_path: Schema file; defaults to the bundled config-schema.json.
      - config_path: Path of the YAML file, used in error messages only.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ConfigError when validation fails or the schema cannot be read.
    """
    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    expand_variables(cfg)

    path = schema_path or get_default_schema_path()
    try:
        with path.open("r", encoding="utf-8") as f:
            schema = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to load configuration schema {path}: {exc}") from exc

    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not errors:
        return None

    extra = [e for e in errors if e.validator == "additionalProperties"]
    other = [e for e in errors if e.validator != "additionalProperties"]

    if other or unknown_keys == "error":
        raise ConfigError(_format_errors(other + extra, config_path=config_path))
    if unknown_keys == "warn":
        logger.warning(_format_errors(extra, config_path=config_path))
    return None
