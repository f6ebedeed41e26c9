"""reqtest variables - variable store, {{...}} substitution, value coercion."""

import datetime
import json
import os
import re
import time as _time
import uuid
from pathlib import Path
from typing import Any

import yaml

from reqtest.errors import ValidationError
from reqtest.log import logger

PLACEHOLDER_RE = re.compile(r"\{\{(.+?)\}\}")

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


def to_text(value: Any) -> str:
    """String form of a stored value, JSON-style for booleans and null."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, dict | list):
        return json.dumps(value)
    return str(value)


def parse_number(text: str) -> int | float | None:
    """Return text as int/float when it is a plain numeric literal."""
    text = text.strip()
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return None


def coerce_value(text: Any) -> Any:
    """Interpret a literal from the .http file.

    - true / false (any case) -> bool
    - null                    -> None
    - "quoted"                -> str without the quotes
    - 12, -3.5, 1e3           -> int / float
    - [..] or {..} valid JSON -> parsed list / dict
    - anything else           -> the string unchanged
    """
    if not isinstance(text, str):
        return text
    stripped = text.strip()
    lower = stripped.lower()
    if lower in ("true", "false"):
        return lower == "true"
    if lower == "null":
        return None
    if len(stripped) >= 2 and stripped.startswith('"') and stripped.endswith('"'):
        return stripped[1:-1]
    number = parse_number(stripped)
    if number is not None:
        return number
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return text


class VariableManager:
    """Named value store for one run.

    Not thread-safe: a run executes one request at a time.
    """

    def __init__(self, env: dict[str, str] | None = None):
        self._variables: dict[str, Any] = {}
        self.env = env if env is not None else dict(os.environ)

    def set_variable(self, key: str, value: Any) -> None:
        self._variables[key] = value
        logger.debug(f"Set variable: {key} = {value!r}")

    def get_variable(self, key: str) -> Any:
        return self._variables.get(key)

    def has_variable(self, key: str) -> bool:
        return key in self._variables

    def set_variables(self, variables: dict[str, Any]) -> None:
        self._variables.update(variables)

    def all(self) -> dict[str, Any]:
        return dict(self._variables)

    def replace_variables(self, text: str) -> str:
        """Substitute {{name}} placeholders.

        Stored variables win; then built-ins:
        - {{$uuid}}          random UUID v4
        - {{$timestamp}}     unix seconds
        - {{$timestamp_ms}}  unix milliseconds
        - {{$date}}          ISO 8601 UTC datetime
        - {{env.VAR}}        environment / .env value
        Unknown names are left as-is.
        """
        if not isinstance(text, str):
            return text

        def _replace(m: re.Match) -> str:
            key = m.group(1).strip()
            if key in self._variables:
                return to_text(self._variables[key])
            builtin = self._builtin(key)
            if builtin is not None:
                return builtin
            logger.debug(f"Unresolved variable: {{{{{key}}}}}")
            return m.group(0)

        return PLACEHOLDER_RE.sub(_replace, text)

    def _builtin(self, key: str) -> str | None:
        if key in ("$uuid", "$guid"):
            return str(uuid.uuid4())
        if key == "$timestamp":
            return str(int(_time.time()))
        if key == "$timestamp_ms":
            return str(int(_time.time() * 1000))
        if key == "$date":
            return datetime.datetime.now(datetime.timezone.utc).isoformat()
        for prefix in ("env.", "$env."):
            if key.startswith(prefix):
                return self.env.get(key[len(prefix) :])
        return None


def load_variable_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON (or YAML) object of name -> scalar."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Failed to read variable file {path}: {e}") from e
    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"Failed to load variables from {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Variable file {path} must contain an object of name -> value")
    for key, value in data.items():
        if value is not None and not isinstance(value, str | int | float | bool):
            raise ValidationError(f"Variable '{key}' in {path} must be a string, number or boolean")
    return {str(k): v for k, v in data.items()}
