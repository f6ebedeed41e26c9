"""reqtest runner - drive requests through execute / process / assert."""

import enum
import json
from pathlib import Path

import click
import requests

from reqtest.assertions import AssertionEngine
from reqtest.config import RunOptions
from reqtest.errors import AssertionFailure, ReqtestError
from reqtest.executor import RequestExecutor
from reqtest.log import logger
from reqtest.models import Request, Response, StatusAssertion, Summary, TestItem, TestResult
from reqtest.parser import HttpFileParser
from reqtest.processor import ResponseProcessor
from reqtest.variables import VariableManager, load_variable_file

RULE = "=" * 50


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUMMARIZED = "summarized"


class TestResultCollector:
    __test__ = False

    def __init__(self):
        self.results: list[TestResult] = []

    def add(self, result: TestResult) -> None:
        self.results.append(result)

    def summary(self) -> Summary:
        return Summary(results=list(self.results))


def default_status_test(request: Request) -> TestItem:
    """Implicit test for requests that declare none: status in 2xx."""
    return TestItem(
        name=request.name,
        assertions=[StatusAssertion(lambda status: 200 <= status < 300)],
    )


class TestManager:
    """Run parsed requests strictly in file order.

    Per request: execute -> apply variable updates -> evaluate tests.
    A transport or extraction error fails the request as a whole; an
    assertion failure fails only its test block. ``expect_error`` turns the
    request's failures into passes.
    """

    __test__ = False

    def __init__(
        self,
        variables: VariableManager,
        executor: RequestExecutor | None = None,
        base_dir: str | Path | None = None,
        engine: AssertionEngine | None = None,
    ):
        self.variables = variables
        self.executor = executor or RequestExecutor(variables)
        self.processor = ResponseProcessor(variables)
        self.engine = engine or AssertionEngine(variables, base_dir)
        self.collector = TestResultCollector()
        self.state = RunState.IDLE

    def run(self, requests: list[Request]) -> Summary:
        if self.state is not RunState.IDLE:
            raise ReqtestError("TestManager.run() can only be called once")
        self.state = RunState.RUNNING

        for request in requests:
            report_request_start(request)
            try:
                results = self.process_request(request)
            except ReqtestError as e:
                results = [self._request_failure(request, e)]
            for result in results:
                if request.expect_error and not result.passed:
                    logger.debug(f"{result.name}: failure expected (_expectError), counted as pass")
                    result.passed = True
                self.collector.add(result)
                report_result(result)

        self.state = RunState.SUMMARIZED
        summary = self.collector.summary()
        report_summary(summary)
        return summary

    def process_request(self, request: Request) -> list[TestResult]:
        response = self.executor.execute(request)
        report_response(response)
        self.processor.process(response, request.variable_updates)
        tests = request.tests or [default_status_test(request)]
        return [self.run_test(test, request, response) for test in tests]

    def run_test(self, test: TestItem, request: Request, response: Response) -> TestResult:
        """Evaluate assertions in order; the first failure ends the test."""
        logger.debug(f"Running test: {test.name}")
        try:
            for assertion in test.assertions:
                self.engine.evaluate(assertion, response, request)
        except AssertionFailure as e:
            return TestResult(test.name, passed=False, status_code=response.status, error=str(e))
        return TestResult(test.name, passed=True, status_code=response.status)

    def _request_failure(self, request: Request, error: ReqtestError) -> TestResult:
        message = f"Request failed: {request.name}\n{error}"
        logger.error(message)
        return TestResult(request.name, passed=False, error=str(error))


# ── Console output ───────────────────────────────────────────────────────


def report_request_start(request: Request) -> None:
    click.echo(f"\n{RULE}")
    click.echo(f"📌 Request: {request.name}")
    click.echo(RULE)
    logger.debug(f"Method: {request.method}")
    logger.debug(f"URL: {request.url}")
    logger.debug(f"Headers: {json.dumps(request.headers)}")
    if request.body:
        logger.debug(f"Body: {request.body}")


def report_response(response: Response) -> None:
    logger.debug(f"STATUS: {response.status}")
    logger.debug(f"TIME: {int(response.elapsed_ms)}ms")
    for key, value in response.headers.items():
        logger.debug(f"  {key}: {value}")
    if response.text:
        body = response.data
        if not isinstance(body, str):
            body = json.dumps(body, indent=2)
        logger.debug(f"BODY:\n{body}")


def _status_suffix(result: TestResult) -> str:
    return f" (Status: {result.status_code})" if result.status_code else ""


def report_result(result: TestResult) -> None:
    if result.passed:
        click.echo(click.style(f"✅ {result.name}: PASS{_status_suffix(result)}", fg="green"))
        return
    click.echo(click.style(f"❌ {result.name}: FAIL{_status_suffix(result)}", fg="red"))
    if result.error:
        click.echo(click.style(f"   {result.error}", fg="red"))


def report_summary(summary: Summary) -> None:
    click.echo(f"\n{RULE}")
    click.echo("📊 Test Summary")
    click.echo(RULE)
    click.echo(f"Total Tests: {summary.total}")
    click.echo(f"Passed Tests: {summary.passed}")
    click.echo(f"Failed Tests: {summary.failed}")
    click.echo("\n" + "".join("✅" if r.passed else "❌" for r in summary.results))
    for i, result in enumerate(summary.results, start=1):
        status = "✅ PASS" if result.passed else "❌ FAIL"
        click.echo(f"  {i}. {result.name}: {status}{_status_suffix(result)}")


# ── File runs ────────────────────────────────────────────────────────────


def run_file(
    http_file: str | Path,
    options: RunOptions | None = None,
    env: dict[str, str] | None = None,
    session: requests.Session | None = None,
) -> Summary:
    """Load variables, parse the file and run every request in it."""
    options = options or RunOptions()
    http_file = Path(http_file)
    base_dir = http_file.resolve().parent

    variables = VariableManager(env)
    if options.variable_file:
        logger.info(f"Loading variables from {options.variable_file}")
        variables.set_variables(load_variable_file(options.variable_file))
    else:
        logger.debug("No variable file specified or found. Proceeding without external variables.")

    parsed = HttpFileParser(variables, base_dir).parse(http_file)
    executor = RequestExecutor(
        variables,
        timeout=options.timeout,
        probe=options.probe,
        probe_timeout=options.probe_timeout,
        session=session,
    )
    manager = TestManager(variables, executor=executor, base_dir=base_dir)
    return manager.run(parsed)
