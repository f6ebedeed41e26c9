"""reqtest validators - custom assertion callbacks.

A validator is any callable ``validate(response, context) -> None`` that
raises to signal failure. ``context`` is ``{"request": Request,
"variables": dict}``. Validators come from two places:

- the in-process registry (``@registry.register("name")``)
- a Python script next to the .http file that defines ``validate``
"""

import builtins
from pathlib import Path
from typing import Any, Callable

from reqtest.errors import ValidationError
from reqtest.log import logger
from reqtest.models import Response

Validator = Callable[[Response, dict[str, Any]], None]


class ValidatorRegistry:
    """Named validators supplied by the embedding program."""

    def __init__(self):
        self._validators: dict[str, Validator] = {}

    def register(self, name: str, fn: Validator | None = None):
        if fn is not None:
            self._validators[name] = fn
            return fn

        def decorator(f: Validator) -> Validator:
            self._validators[name] = f
            return f

        return decorator

    def get(self, name: str) -> Validator | None:
        return self._validators.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._validators


registry = ValidatorRegistry()


def load_script_validator(path: str | Path) -> Validator:
    """Run a validator script in a fresh namespace and return its ``validate``.

    The namespace only holds the standard builtins; nothing from reqtest
    leaks into it.
    """
    path = Path(path)
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Cannot read custom validator {path}: {e}") from e

    namespace: dict[str, Any] = {
        "__name__": f"reqtest_validator_{path.stem}",
        "__file__": str(path),
        "__builtins__": builtins,
    }
    exec(compile(source, str(path), "exec"), namespace)  # noqa: S102

    fn = namespace.get("validate")
    if not callable(fn):
        raise ValidationError(f"Custom validator {path} must define validate(response, context)")
    return fn


class ValidatorResolver:
    """Find the validator a custom assertion names.

    Registry names win; otherwise the target is a script path, relative to
    the .http file's directory unless absolute. Scripts are loaded once.
    """

    def __init__(self, base_dir: str | Path | None = None, validators: ValidatorRegistry | None = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.registry = validators if validators is not None else registry
        self._scripts: dict[Path, Validator] = {}

    def resolve(self, target: str) -> Validator:
        if target in self.registry:
            return self.registry.get(target)
        path = Path(target)
        if not path.is_absolute():
            path = self.base_dir / path
        path = path.resolve()
        if path not in self._scripts:
            logger.debug(f"Loading custom validator script: {path}")
            self._scripts[path] = load_script_validator(path)
        return self._scripts[path]
