"""Configuration loading for the hostkeys CLI.

Brief:
  Reads a YAML config file, merges variables from the file, the environment
  and ``-v KEY=YAML`` CLI assignments, validates the result against the JSON
  Schema and exposes the ``scan`` section as a typed ``ScanSettings`` model.

Inputs:
  - YAML config paths and parsed config dicts.

Outputs:
  - Validated config dicts and ``ScanSettings`` instances.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

from ..algorithms import DEFAULT_KEY_ALGORITHMS
from .config_schema import _VAR_KEY, validate_config

ENV_VAR_PREFIX = "HOSTKEYS_"


class ScanSettings(BaseModel):
    """Brief: Typed settings for a host key scan.

    Inputs:
      - port: SSH TCP port used when the host string carries none.
      - concurrency: Maximum number of simultaneous probes; values below 1
        are coerced to 1 by the worker pool.
      - timeout_seconds: Deadline for each individual probe.
      - overall_timeout_seconds: Optional deadline for the whole scan.
      - algorithms: Host key algorithms to probe.
      - banner: Also read the server's version banner.

    Outputs:
      - ScanSettings instance with normalized field types.
    """

    port: int = Field(default=22, ge=1, le=65535)
    concurrency: int = Field(default=4)
    timeout_seconds: float = Field(default=60.0, gt=0)
    overall_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    algorithms: List[str] = Field(default_factory=lambda: list(DEFAULT_KEY_ALGORITHMS))
    banner: bool = False

    class Config:
        extra = "ignore"


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing a YAML scalar/list/dict.

    Outputs:
      - Any: Parsed value, or the original string when it is not valid YAML.
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI ``KEY=YAML`` assignments.
      - environ: Optional environment mapping (defaults to os.environ). Only
        ``HOSTKEYS_<KEY>`` entries are used, with the prefix stripped.

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI overrides environment overrides config-file variables.

    Example:
      >>> cfg = {'vars': {'WORKERS': 2}}
      >>> parse_config_variables(cfg, cli_vars=['WORKERS=8'])['WORKERS']
      8
    """

    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = os.environ if environ is None else environ
    for k, v in env.items():
        if not k.startswith(ENV_VAR_PREFIX):
            continue
        name = k[len(ENV_VAR_PREFIX):]
        if _VAR_KEY.fullmatch(name):
            merged[name] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _VAR_KEY.fullmatch(k):
            raise ValueError(f"Invalid variable name {k!r}; expected [A-Z_][A-Z0-9_]*")
        merged[k] = _parse_yaml_value(raw)

    if merged:
        cfg["vars"] = merged
    return merged


def load_config(
    path: Optional[str],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, expand and validate a YAML config file.

    Inputs:
      - path: Path to the YAML file, or None for an empty config.
      - cli_vars: Optional CLI ``KEY=YAML`` assignments.
      - environ: Optional environment mapping.

    Outputs:
      - dict: Validated configuration with variables expanded.

    Raises:
      - OSError: the file cannot be read.
      - ValueError: YAML is not a mapping or fails schema validation.
    """

    cfg: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path}: top-level YAML value must be a mapping")
        cfg = loaded

    parse_config_variables(cfg, cli_vars=cli_vars, environ=environ)
    validate_config(cfg, config_path=path)
    return cfg


def load_scan_settings(cfg: Optional[Mapping[str, Any]]) -> ScanSettings:
    """Return the ``scan`` section of a validated config as ``ScanSettings``."""
    section = (cfg or {}).get("scan") or {}
    return ScanSettings(**section)
