"""reqtest config - config file, .env loading and run options."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from reqtest.errors import ValidationError
from reqtest.executor import DEFAULT_PROBE_TIMEOUT, DEFAULT_TIMEOUT

GLOBAL_DIR = Path.home() / ".reqtest"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".reqtest.yaml",
    ".reqtest.yml",
    "reqtest.yaml",
    "reqtest.yml",
]

DEFAULT_VARIABLE_FILE = "variables.json"


@dataclass
class RunOptions:
    verbose: bool = False
    timeout: float = DEFAULT_TIMEOUT
    probe: bool = True
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    variable_file: Path | None = None


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (no fallthrough if missing)
      2. .reqtest.yaml (variants) in CWD
      3. ~/.reqtest/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' so relative paths (env_file, variables) resolve
    against the config file's directory.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Config file {path} must be a mapping")
    return {
        "defaults": data.get("defaults") or {},
        "_config_dir": path.resolve().parent,
    }


def load_env(env_file: str | None, base_dir: str | Path | None = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ.

    .env values take precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir or ".") / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def resolve_value(value: Any, env: dict[str, str]) -> Any:
    """Resolve $VAR and ${VAR} references in a string config value."""
    if not isinstance(value, str):
        return value

    def _replace(m: re.Match) -> str:
        var_name = m.group(1) or m.group(2)
        return env.get(var_name, m.group(0))

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", _replace, value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_seconds(value: Any, name: str) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Config value '{name}' must be a number of seconds, got {value!r}") from e
    if seconds <= 0:
        raise ValidationError(f"Config value '{name}' must be positive, got {value!r}")
    return seconds


def find_variable_file(
    cli_value: str | None,
    config: dict,
    env: dict[str, str],
    http_file: Path,
) -> Path | None:
    """Pick the variable file.

    Resolution order:
      1. --var flag (must exist)
      2. 'variables' from config defaults (relative to config file)
      3. variables.json next to the .http file, if present
    """
    if cli_value:
        path = Path(cli_value)
        if not path.exists():
            raise ValidationError(f"Variable file not found: {path}")
        return path.resolve()

    configured = resolve_value(config.get("defaults", {}).get("variables"), env)
    if configured:
        path = Path(configured)
        config_dir = config.get("_config_dir")
        if not path.is_absolute() and config_dir:
            path = Path(config_dir) / path
        if not path.exists():
            raise ValidationError(f"Variable file not found: {path}")
        return path.resolve()

    return resolve_path([http_file.resolve().parent / DEFAULT_VARIABLE_FILE])


def build_run_options(
    config: dict,
    env: dict[str, str],
    http_file: Path,
    verbose: bool = False,
    timeout: float | None = None,
    no_probe: bool = False,
    var_file: str | None = None,
) -> RunOptions:
    """Merge CLI flags over config defaults over built-in defaults."""
    defaults = {k: resolve_value(v, env) for k, v in config.get("defaults", {}).items()}

    options = RunOptions(verbose=verbose or _as_bool(defaults.get("verbose", False)))
    if timeout is not None:
        options.timeout = _as_seconds(timeout, "timeout")
    elif defaults.get("timeout") is not None:
        options.timeout = _as_seconds(defaults["timeout"], "timeout")
    if defaults.get("probe_timeout") is not None:
        options.probe_timeout = _as_seconds(defaults["probe_timeout"], "probe_timeout")
    options.probe = not no_probe and _as_bool(defaults.get("probe", True))
    options.variable_file = find_variable_file(var_file, config, env, http_file)
    return options
