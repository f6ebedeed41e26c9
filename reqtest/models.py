"""reqtest models - parsed requests, assertions, responses and results."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
STATUS_RANGES = ("2xx", "3xx", "4xx", "5xx")


# ── Assertions ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StatusAssertion:
    # int code, range tag like "2xx", or a predicate over the status code
    value: int | str | Callable[[int], bool]


@dataclass(frozen=True)
class HeaderAssertion:
    key: str
    value: str


@dataclass(frozen=True)
class BodyAssertion:
    path: str
    expected: Any = ""


@dataclass(frozen=True)
class CustomAssertion:
    target: str


Assertion = StatusAssertion | HeaderAssertion | BodyAssertion | CustomAssertion


# ── Requests ─────────────────────────────────────────────────────────────


@dataclass
class TestItem:
    __test__ = False  # not a pytest class

    name: str
    assertions: list[Assertion] = field(default_factory=list)


@dataclass(frozen=True)
class VariableUpdate:
    key: str
    expression: str


@dataclass(frozen=True)
class FormPart:
    """One field of a multipart or url-encoded body.

    File parts either carry inline ``value`` text or a ``path`` that is
    read from disk only when the request is sent.
    """

    name: str
    value: str = ""
    filename: str | None = None
    content_type: str | None = None
    path: str | None = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None or self.path is not None


@dataclass
class Request:
    name: str
    method: str = "GET"
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    form: list[FormPart] | None = None
    tests: list[TestItem] = field(default_factory=list)
    variable_updates: list[VariableUpdate] = field(default_factory=list)
    expect_error: bool = False
    line: int = 0

    def header(self, key: str) -> str | None:
        """Case-insensitive header lookup."""
        lower = key.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

    @property
    def content_type(self) -> str:
        return self.header("Content-Type") or ""


# ── Responses and results ────────────────────────────────────────────────

_UNSET = object()


class Response:
    """Normalized HTTP response. Headers are stored with lowercased keys."""

    def __init__(
        self,
        status: int,
        headers: dict[str, str] | None = None,
        text: str = "",
        elapsed_ms: float = 0,
    ):
        self.status = status
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.text = text
        self.elapsed_ms = elapsed_ms
        self._json: Any = _UNSET

    def json(self) -> Any:
        """Parse the body as JSON once. Raises ValueError if it is not JSON."""
        if self._json is _UNSET:
            self._json = json.loads(self.text)
        return self._json

    @property
    def data(self) -> Any:
        """Parsed JSON body, or the raw text when the body is not JSON."""
        try:
            return self.json()
        except ValueError:
            return self.text

    def __repr__(self) -> str:
        return f"Response(status={self.status}, bytes={len(self.text)})"


@dataclass
class TestResult:
    __test__ = False

    name: str
    passed: bool
    status_code: int | None = None
    error: str | None = None


@dataclass
class Summary:
    results: list[TestResult]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def success(self) -> bool:
        return self.failed == 0
