"""reqtest parser - turns .http file text into Request entities.

File format::

    @base=http://localhost:3000          # file-scope variable

    ### Create user                      # request block
    POST {{base}}/users
    Content-Type: application/json
    @userId=$.id                         # update applied after the response

    {"name": "alice"}

    #### Created                         # test block
    status: 201
    $.name: alice

The parser is a line-oriented state machine (see ParserMode). Requests live
in a per-parse arena and are referred to by index while the file is read.
"""

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path

from reqtest.bodies import strategy_for
from reqtest.errors import ParseError, ValidationError
from reqtest.log import logger
from reqtest.models import (
    HTTP_METHODS,
    STATUS_RANGES,
    Assertion,
    BodyAssertion,
    CustomAssertion,
    HeaderAssertion,
    Request,
    StatusAssertion,
    TestItem,
    VariableUpdate,
)
from reqtest.variables import VariableManager, coerce_value

REQUEST_START_RE = re.compile(r"^###(?:\s+(.*))?$")
TEST_START_RE = re.compile(r"^####(?:\s+(.*))?$")
METHOD_RE = re.compile(r"^(%s)\s+(\S+)" % "|".join(HTTP_METHODS))

CUSTOM_ASSERT_KEYS = ("custom-assert", "_customassert")
EXPECT_ERROR_KEY = "_expecterror"


class ParserMode(enum.Enum):
    IDLE = "idle"
    IN_REQUEST = "in_request"
    IN_BODY = "in_body"
    IN_TEST = "in_test"


@dataclass
class _ParseState:
    """Mutable state of one parse. Never reused across parses."""

    mode: ParserMode = ParserMode.IDLE
    requests: list[Request] = field(default_factory=list)
    current: int | None = None
    test: int | None = None
    method_seen: bool = False
    body_lines: list[str] = field(default_factory=list)
    custom_targets: set[str] = field(default_factory=set)
    base_dir: Path | None = None
    closed: bool = False

    @property
    def request(self) -> Request | None:
        return None if self.current is None else self.requests[self.current]

    @property
    def test_item(self) -> TestItem | None:
        if self.test is None or self.request is None:
            return None
        return self.request.tests[self.test]


def strip_inline_comment(line: str) -> str:
    """Cut a trailing '# ...' unless the '#' sits inside double quotes."""
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"' and (i == 0 or line[i - 1] != "\\"):
            in_quotes = not in_quotes
        elif ch == "#" and not in_quotes:
            return line[:i].rstrip()
    return line


def clean_body(lines: list[str]) -> str:
    return "\n".join(strip_inline_comment(line) for line in lines).strip()


def is_marker(line: str) -> bool:
    return bool(REQUEST_START_RE.match(line) or TEST_START_RE.match(line))


def is_comment(line: str) -> bool:
    return line.strip().startswith("#") and not is_marker(line.rstrip())


class HttpFileParser:
    """Parse .http files into an ordered list of Request objects.

    File-scope ``@name=value`` declarations are written to the
    VariableManager at parse time unless the name is already set, so a
    variable file loaded beforehand overrides in-file defaults.
    """

    def __init__(self, variables: VariableManager, base_dir: str | Path | None = None):
        self.variables = variables
        self.base_dir = Path(base_dir) if base_dir else None

    def parse(self, path: str | Path) -> list[Request]:
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ParseError(f"Failed to read file {path}: {e}") from e
        logger.debug(f"File content loaded: {path}")
        return self.parse_text(text, base_dir=self.base_dir or path.resolve().parent)

    def parse_text(self, text: str, base_dir: Path | None = None) -> list[Request]:
        state = _ParseState(base_dir=base_dir or self.base_dir or Path.cwd())
        for lineno, line in enumerate(text.splitlines(), start=1):
            self._feed(state, lineno, line)
        requests = self._close(state)
        logger.debug(f"Total parsed requests: {len(requests)}")
        return requests

    # ── State machine ────────────────────────────────────────────────────

    def _feed(self, state: _ParseState, lineno: int, line: str) -> None:
        if state.closed:
            raise ParseError("parser state from a previous run cannot be reused", lineno)
        logger.debug(f"Processing line {lineno}: {line}")

        if is_comment(line):
            return

        if line.startswith("@"):
            self._handle_variable(state, lineno, line)
            return

        marker = line.rstrip()
        m = TEST_START_RE.match(marker)
        if m:
            self._start_test(state, lineno, m.group(1) or "")
            return
        m = REQUEST_START_RE.match(marker)
        if m:
            self._start_request(state, lineno, m.group(1) or "")
            return

        if state.mode is ParserMode.IDLE:
            if line.strip():
                logger.debug(f"Ignoring line {lineno} outside any request")
            return

        if state.mode is ParserMode.IN_BODY:
            state.body_lines.append(line)
            return

        stripped = line.strip()
        if state.mode is ParserMode.IN_REQUEST:
            m = METHOD_RE.match(stripped)
            if m:
                self._set_method(state, m.group(1), m.group(2))
                return
            if not stripped:
                if state.method_seen:
                    state.mode = ParserMode.IN_BODY
                return

        if ":" in stripped:
            self._handle_key_value(state, lineno, stripped)
        elif stripped:
            logger.warning(f"Line {lineno}: cannot interpret '{stripped}', skipping")

    def _close(self, state: _ParseState) -> list[Request]:
        self._finish_request(state)
        state.closed = True
        state.mode = ParserMode.IDLE
        return state.requests

    # ── Transitions ──────────────────────────────────────────────────────

    def _start_request(self, state: _ParseState, lineno: int, name: str) -> None:
        self._finish_request(state)
        name = name.strip() or f"Request {len(state.requests) + 1}"
        state.requests.append(Request(name=name, line=lineno))
        state.current = len(state.requests) - 1
        state.test = None
        state.method_seen = False
        state.body_lines = []
        state.custom_targets = set()
        state.mode = ParserMode.IN_REQUEST
        logger.debug(f"Started new request: {name}")

    def _start_test(self, state: _ParseState, lineno: int, label: str) -> None:
        request = state.request
        if request is None:
            raise ValidationError("test block '####' appears before any request '###'", lineno)
        name = f"{request.name} {label.strip()}".strip()
        request.tests.append(TestItem(name=name))
        state.test = len(request.tests) - 1
        state.mode = ParserMode.IN_TEST
        logger.debug(f"Started new test: {name}")

    def _finish_request(self, state: _ParseState) -> None:
        request = state.request
        if request is None:
            return
        body = clean_body(state.body_lines)
        if body:
            strategy = strategy_for(request.content_type, self.variables, state.base_dir)
            request.body, request.form = strategy.parse(body, request.content_type)
        if not request.url:
            logger.warning(f"Request '{request.name}' has no method line")
        logger.debug(f"Parsed request: {request.name}, URL: {request.url}")
        state.current = None
        state.test = None

    def _set_method(self, state: _ParseState, method: str, url: str) -> None:
        request = state.request
        request.method = method
        request.url = self.variables.replace_variables(url.strip())
        state.method_seen = True
        logger.debug(f"Set method: {request.method}, URL: {request.url}")

    # ── Line handlers ────────────────────────────────────────────────────

    def _handle_variable(self, state: _ParseState, lineno: int, line: str) -> None:
        key, sep, value = line[1:].partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            logger.warning(f"Line {lineno}: malformed variable declaration '{line.strip()}'")
            return

        request = state.request
        if request is not None:
            request.variable_updates.append(VariableUpdate(key, value))
            logger.debug(f"Added variable update to request: {key} = {value}")
        elif self.variables.has_variable(key):
            logger.debug(f"Variable {key} already exists, skipping")
        else:
            self.variables.set_variable(key, self.variables.replace_variables(value))

    def _handle_key_value(self, state: _ParseState, lineno: int, line: str) -> None:
        request = state.request
        key, _, value = line.partition(":")
        key, value = key.strip(), value.strip()

        if key.lower() == EXPECT_ERROR_KEY:
            request.expect_error = value.lower() == "true"
            logger.debug(f"Set expectError: {request.expect_error}")
            return

        test = state.test_item
        if test is not None:
            assertion = self.parse_assertion(key, value, state.custom_targets)
            if assertion is not None:
                test.assertions.append(assertion)
                logger.debug(f"Added assertion to test: {assertion}")
            return

        if not key:
            logger.warning(f"Line {lineno}: header without a name, skipping")
            return
        request.headers[key] = self.variables.replace_variables(value)
        logger.debug(f"Added header to request: {key}: {request.headers[key]}")

    def parse_assertion(
        self,
        key: str,
        value: str,
        seen_custom: set[str] | None = None,
    ) -> Assertion | None:
        """Classify a 'key: value' line of a test block.

        Returns None (and logs) for lines that cannot be used.
        """
        lower = key.lower()
        if not key:
            logger.warning(f"Failed to parse assertion: ': {value}'")
            return None
        if lower == "status":
            tag = value.strip().lower()
            if tag in STATUS_RANGES:
                return StatusAssertion(tag)
            try:
                return StatusAssertion(int(value))
            except ValueError:
                logger.warning(f"Failed to parse assertion: {key}: {value}")
                return None
        if lower == "content-type":
            return HeaderAssertion("Content-Type", value)
        if lower == "body":
            return BodyAssertion("$", "")
        if key.startswith("$"):
            return BodyAssertion(key, coerce_value(value))
        if lower in CUSTOM_ASSERT_KEYS:
            if not value:
                logger.warning(f"Failed to parse assertion: {key}: (no validator given)")
                return None
            if seen_custom is not None:
                if value in seen_custom:
                    logger.debug(f"Custom assertion {value} already registered for this request")
                    return None
                seen_custom.add(value)
            return CustomAssertion(value)
        return HeaderAssertion(key, value)
