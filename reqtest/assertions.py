"""reqtest assertions - evaluate test-block expectations against a response."""

import json
from pathlib import Path
from typing import Any

from reqtest.bodies import media_type
from reqtest.errors import AssertionFailure
from reqtest.jsonquery import adjust_root, query
from reqtest.log import logger
from reqtest.models import (
    Assertion,
    BodyAssertion,
    CustomAssertion,
    HeaderAssertion,
    Request,
    Response,
    StatusAssertion,
)
from reqtest.validators import ValidatorResolver
from reqtest.variables import VariableManager, coerce_value


def deep_equal(actual: Any, expected: Any) -> bool:
    """Structural equality: lists by length + pairwise, dicts by key set + pairwise.

    Booleans never equal numbers (True != 1 here).
    """
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(
            deep_equal(a, e) for a, e in zip(actual, expected, strict=True)
        )
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(
            deep_equal(actual[k], expected[k]) for k in actual
        )
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def status_matches(status: int, expected: Any) -> bool:
    if callable(expected):
        return bool(expected(status))
    if isinstance(expected, str):
        # range tag: "2xx" <=> 200..299
        low = int(expected[0]) * 100
        return low <= status < low + 100
    return status == expected


def _dump(value: Any) -> str:
    return json.dumps(value, default=str)


class AssertionEngine:
    def __init__(
        self,
        variables: VariableManager,
        base_dir: str | Path | None = None,
        validators: ValidatorResolver | None = None,
    ):
        self.variables = variables
        self.validators = validators or ValidatorResolver(base_dir)

    def evaluate(self, assertion: Assertion, response: Response, request: Request | None = None) -> None:
        """Raise AssertionFailure when the assertion does not hold."""
        logger.debug(f"Asserting {assertion} on response with status {response.status}")
        if isinstance(assertion, StatusAssertion):
            self._assert_status(assertion, response)
        elif isinstance(assertion, HeaderAssertion):
            self._assert_header(assertion, response)
        elif isinstance(assertion, BodyAssertion):
            self._assert_body(assertion, response)
        elif isinstance(assertion, CustomAssertion):
            self._assert_custom(assertion, response, request)
        else:
            raise AssertionFailure(f"Unknown assertion type: {type(assertion).__name__}")

    def _assert_status(self, assertion: StatusAssertion, response: Response) -> None:
        if status_matches(response.status, assertion.value):
            return
        if callable(assertion.value):
            raise AssertionFailure(f"Status {response.status} does not meet the assertion criteria")
        raise AssertionFailure(f"Expected status {assertion.value}, got {response.status}")

    def _assert_header(self, assertion: HeaderAssertion, response: Response) -> None:
        key = assertion.key
        expected = self.variables.replace_variables(assertion.value)
        actual = response.headers.get(key.lower())
        if actual is None:
            raise AssertionFailure(f"Expected header {key} not found in response")

        if key.lower() == "content-type":
            if media_type(actual) != media_type(expected):
                raise AssertionFailure(
                    f"Expected Content-Type to be {media_type(expected)}, got {media_type(actual)}",
                )
        elif actual != expected:
            raise AssertionFailure(f"Expected {key} to be {expected}, got {actual}")

    def _assert_body(self, assertion: BodyAssertion, response: Response) -> None:
        if assertion.path == "$":
            return  # "body:" marker line, nothing to check
        if not response.text.strip():
            raise AssertionFailure("Response body is empty, cannot perform JSON path assertion")
        try:
            data = response.json()
        except ValueError as e:
            raise AssertionFailure(f"Failed to parse response data as JSON: {e}") from e

        path = adjust_root(self.variables.replace_variables(assertion.path), data)
        try:
            matches = query(data, path)
        except Exception as e:
            raise AssertionFailure(f"Invalid JSON path {path}: {e}") from e
        if not matches:
            raise AssertionFailure(f"JSON path {path} not found in response: {_dump(data)}")

        expected = assertion.expected
        if isinstance(expected, str) and "{{" in expected:
            expected = coerce_value(self.variables.replace_variables(expected))
        actual = matches[0]
        if not deep_equal(actual, expected):
            raise AssertionFailure(f"Expected {path} to be {_dump(expected)}, got {_dump(actual)}")

    def _assert_custom(
        self,
        assertion: CustomAssertion,
        response: Response,
        request: Request | None,
    ) -> None:
        logger.debug(f"Running custom validator: {assertion.target}")
        context = {"request": request, "variables": self.variables.all()}
        try:
            validate = self.validators.resolve(assertion.target)
            validate(response, context)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.debug(f"Custom validation failed: {message}")
            raise AssertionFailure(f"Custom validation failed: {message}") from e
        logger.debug("Custom validator executed without error")
