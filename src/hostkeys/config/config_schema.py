"""JSON Schema-based validation for hostkeys YAML configuration.

This module centralizes expanding and validating a ``hostkeys.yaml`` config
file using the JSON Schema document stored under ``assets/config-schema.json``.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


def expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand top-level ``vars`` into the config and remove the group.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - Reads cfg['vars'] (a mapping of KEY -> YAML value).
      - A string value that is exactly ``$KEY`` or ``${KEY}`` is replaced by
        the variable's value (list/int/etc.); ``${KEY}`` inside a longer string
        is replaced by its text form.
      - A ``$KEY`` list item whose variable is a list is spliced in place, so
        ``algorithms: [$MODERN, ssh-rsa]`` works.
      - Variables may reference each other; cycles raise ValueError.
      - The ``vars`` group is removed so schema validation does not see it.
    """

    variables = cfg.get("vars")
    if variables is None:
        cfg.pop("vars", None)
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")

    for k in variables.keys():
        if not isinstance(k, str) or not _VAR_KEY.fullmatch(k):
            raise ValueError(f"config.vars key {k!r} must match [A-Z_][A-Z0-9_]*")

    resolved: Dict[str, Any] = {}

    def _resolve_var(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            cycle = " -> ".join(stack + [key])
            raise ValueError(f"config.vars contains a cycle: {cycle}")
        stack.append(key)
        value = _expand_obj(variables[key], stack)
        stack.pop()
        resolved[key] = value
        return value

    def _whole_var(text: str) -> Optional[str]:
        if text.startswith("${") and text.endswith("}") and text[2:-1] in variables:
            return text[2:-1]
        if text.startswith("$") and text[1:] in variables:
            return text[1:]
        return None

    def _expand_string(text: str, stack: List[str]) -> Any:
        name = _whole_var(text)
        if name is not None:
            return copy.deepcopy(_resolve_var(name, stack))

        def _repl(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            value = _resolve_var(key, stack)
            if isinstance(value, bool):
                return "true" if value else "false"
            if value is None:
                return "null"
            if isinstance(value, (int, float, str)):
                return str(value)
            return json.dumps(value)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand_obj(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            out: List[Any] = []
            for item in obj:
                expanded = _expand_obj(item, stack)
                if isinstance(item, str) and _whole_var(item) and isinstance(expanded, list):
                    out.extend(expanded)
                else:
                    out.append(expanded)
            return out
        if isinstance(obj, dict):
            return {k: _expand_obj(v, stack) for k, v in obj.items()}
        return obj

    for key in list(variables.keys()):
        _resolve_var(key, [])

    for top_key in list(cfg.keys()):
        if top_key == "vars":
            continue
        cfg[top_key] = _expand_obj(cfg[top_key], [])

    cfg.pop("vars", None)


def get_default_schema_path() -> Path:
    """Brief: Resolve the default JSON Schema path for configuration.

    Inputs:
      - None.

    Outputs:
      - Path to ``assets/config-schema.json`` found by walking up from this
        file (source checkout or editable install).
    """

    here = Path(__file__).resolve()
    for ancestor in here.parents:
        candidate = ancestor / "assets" / "config-schema.json"
        if candidate.is_file():
            return candidate
    return here.parents[3] / "assets" / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

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
    """Brief: Expand variables and validate a parsed config against JSON Schema.

    Inputs:
      - cfg: Dict loaded from YAML (mutated in-place by variable expansion).
      - schema_path: Optional explicit path to the JSON Schema file.
      - config_path: Optional path of the YAML file, used in error messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the schema
        does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when validation fails, or when ``unknown_keys`` is "error"
        and unexpected keys are present.
      - OSError / json.JSONDecodeError: the schema file cannot be read.

    Example:
      >>> validate_config({"scan": {"concurrency": 8, "timeout_seconds": 5}})
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    expand_variables(cfg)

    validator = Draft202012Validator(_load_schema(schema_path))
    errors = sorted(validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return None

    extra = [e for e in errors if e.validator == "additionalProperties"]
    other = [e for e in errors if e.validator != "additionalProperties"]

    if other or unknown_keys == "error":
        raise ValueError(_format_errors(other + extra, config_path=config_path))

    if unknown_keys == "warn":
        logger.warning(_format_errors(extra, config_path=config_path))
    return None
