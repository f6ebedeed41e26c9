"""reqtest errors."""


class ReqtestError(Exception):
    """Base class for every error reqtest raises on purpose."""


class ParseError(ReqtestError):
    """Malformed .http file structure. Aborts the whole run."""

    def __init__(self, message: str, line: int | None = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ValidationError(ParseError):
    """Structurally invalid input, e.g. a test block outside any request."""


class RequestError(ReqtestError):
    """Transport-level failure: bad URL, unreachable server, timeout."""


class ExtractionError(ReqtestError):
    """A variable update rule could not be evaluated against the response."""


class AssertionFailure(ReqtestError, AssertionError):
    """An expectation did not hold for the received response."""
