"""reqtest processor - apply a request's variable updates to its response."""

import re
from typing import Any

from reqtest.errors import ExtractionError
from reqtest.jsonquery import query
from reqtest.log import logger
from reqtest.models import Response, VariableUpdate
from reqtest.variables import VariableManager, parse_number

_NO_BODY = object()
_WHOLE_PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")


class ResponseProcessor:
    def __init__(self, variables: VariableManager):
        self.variables = variables

    def process(self, response: Response, updates: list[VariableUpdate]) -> None:
        """Evaluate each update rule and store the result.

        The response body is only parsed when a JSONPath rule needs it.
        """
        logger.debug(f"Processing response with status {response.status}")
        body: Any = _NO_BODY
        for update in updates:
            expression = update.expression
            if expression.startswith("$.") or expression.startswith("$["):
                if body is _NO_BODY:
                    body = self._parse_body(response, update)
                value = self._extract(body, update)
            else:
                value = self.evaluate(expression)
            self.variables.set_variable(update.key, value)
            logger.debug(f"Updated variable: {update.key} = {value!r}")

    def evaluate(self, expression: str) -> Any:
        """Evaluate a non-JSONPath expression.

        - exactly {{name}}     -> copy of that variable (or built-in, '' if unknown)
        - text with {{...}}    -> template substitution
        - true / false         -> bool
        - "quoted"             -> literal without quotes
        - numeric              -> int / float, else the string as-is
        """
        whole = _WHOLE_PLACEHOLDER_RE.fullmatch(expression)
        if whole:
            name = whole.group(1).strip()
            if self.variables.has_variable(name):
                return self.variables.get_variable(name)
            resolved = self.variables.replace_variables(expression)
            return "" if resolved == expression else resolved
        if "{{" in expression:
            return self.variables.replace_variables(expression)
        if expression.lower() in ("true", "false"):
            return expression.lower() == "true"
        if len(expression) >= 2 and expression.startswith('"') and expression.endswith('"'):
            return expression[1:-1]
        number = parse_number(expression)
        return expression if number is None else number

    def _parse_body(self, response: Response, update: VariableUpdate) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ExtractionError(
                f"Cannot evaluate {update.key}={update.expression}: response body is not JSON ({e})",
            ) from e

    def _extract(self, body: Any, update: VariableUpdate) -> Any:
        matches = query(body, update.expression)
        if not matches:
            raise ExtractionError(f"JSONPath {update.expression} not found in response")
        if len(matches) > 1:
            raise ExtractionError(
                f"JSONPath {update.expression} is ambiguous: {len(matches)} matches",
            )
        return matches[0]
