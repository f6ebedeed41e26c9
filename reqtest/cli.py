"""reqtest CLI - run the requests and tests declared in an .http file."""

import sys
from pathlib import Path

import click

from reqtest import __version__

TOOL_HELP = """\
reqtest — Declarative HTTP test runner.

Executes the requests in an .http file in order, chains values between
them and checks the tests declared under each request.

\b
FILE FORMAT
───────────
  @baseUrl = http://localhost:3000

  ### Login
  POST {{baseUrl}}/login
  Content-Type: application/json

  {"user": "admin", "password": "secret"}

  @token = $.token

  #### Assert: login works
  Status: 200
  Content-Type: application/json
  $.token: {{token}}

\b
REQUESTS
────────
  ### [name]              starts a request
  METHOD URL              GET, POST, PUT, DELETE or PATCH
  Key: Value              header (before the blank line)
  <blank line>            body follows (JSON, text, XML, url-encoded,
                          multipart with "< ./file" parts)
  @name = expression      variable update evaluated against the response
  _expectError: true      failures of this request count as passes

\b
TESTS
─────
  #### [label]            starts a test block for the current request
  Status: 200 | 2xx       status code or range
  Header-Name: value      header equality (Content-Type by media type)
  $.path: value           JSONPath equality against the JSON body
  _CustomAssert: ./v.py   Python script defining validate(response, context)

  A request without tests gets one implicit "status is 2xx" test.

\b
VARIABLES
─────────
  {{name}}                stored variable (unknown names stay verbatim)
  {{$uuid}} {{$timestamp}} {{$timestamp_ms}} {{$date}} {{$env.NAME}}

  Variable file: --var PATH, then 'variables' from config, then
  variables.json next to FILE. File values override in-file @ defaults.

\b
CONFIG
──────
  -c PATH, then .reqtest.yaml / reqtest.yaml in CWD, then
  ~/.reqtest/config.yaml:

    defaults:
      timeout: 5
      probe: true
      probe_timeout: 2
      env_file: .env
      variables: vars.json
      verbose: false

  String values resolve $VAR / ${VAR}. CLI flags win over config.

\b
EXIT CODES
──────────
  0  every test passed
  1  a test failed, or the file/config could not be loaded
"""


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument(
    "http_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Show parsed lines, assertions and full request/response payloads.",
)
@click.option(
    "--var",
    "var_file",
    default=None,
    help="Variable file (JSON or YAML). Default: variables.json next to FILE.",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .reqtest.yaml in CWD, then ~/.reqtest/config.yaml.",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-request timeout in seconds (default: 5).",
)
@click.option(
    "--no-probe",
    is_flag=True,
    default=False,
    help="Skip the reachability check before the first request to each server.",
)
@click.version_option(__version__, prog_name="reqtest")
def main(http_file, verbose, var_file, config_file, timeout, no_probe):
    """Run the requests and tests declared in an .http file."""
    from reqtest.config import build_run_options, load_config, load_env, resolve_config_path
    from reqtest.errors import ReqtestError
    from reqtest.log import logger, setup_logging
    from reqtest.runner import run_file

    setup_logging(verbose)

    try:
        config_path = resolve_config_path(config_file)
        if config_file and config_path is None:
            click.echo(f"ERROR: Config file not found: {config_file}", err=True)
            sys.exit(1)
        config = load_config(config_path)
        if config_path is not None:
            logger.debug(f"Using config: {config_path}")
        env = load_env(config["defaults"].get("env_file"), config["_config_dir"])
        options = build_run_options(
            config,
            env,
            http_file,
            verbose=verbose,
            timeout=timeout,
            no_probe=no_probe,
            var_file=var_file,
        )
        setup_logging(options.verbose)
        summary = run_file(http_file, options, env)
    except ReqtestError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    if not summary.success:
        click.echo(click.style(f"\n{summary.failed} test(s) failed.", fg="red"), err=True)
        sys.exit(1)
    click.echo(click.style("\nAll tests passed successfully.", fg="green"))


if __name__ == "__main__":
    main()
