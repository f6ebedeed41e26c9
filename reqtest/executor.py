"""reqtest executor - HTTP request execution."""

import contextlib
import mimetypes
import time
from typing import Any
from urllib.parse import urlsplit

import requests

from reqtest.bodies import media_type
from reqtest.errors import RequestError
from reqtest.log import logger
from reqtest.models import Request, Response
from reqtest.variables import VariableManager

DEFAULT_TIMEOUT = 5
DEFAULT_PROBE_TIMEOUT = 2


class RequestExecutor:
    """Send parsed requests and normalize what comes back.

    - Re-resolves {{...}} placeholders with the current variables, so values
      exported by earlier responses are picked up here
    - Any HTTP status, 4xx/5xx included, is a normal Response
    - Only transport failures (bad URL, DNS, connect, timeout) raise
      RequestError
    """

    def __init__(
        self,
        variables: VariableManager,
        timeout: float = DEFAULT_TIMEOUT,
        probe: bool = True,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.variables = variables
        self.timeout = timeout
        self.probe = probe
        self.probe_timeout = probe_timeout
        self.session = session or requests.Session()
        self._reachable: set[str] = set()

    def execute(self, request: Request) -> Response:
        prepared = self.prepare(request)
        if self.probe:
            self.check_reachable(prepared.url)

        logger.debug(f"Executing request: {prepared.method} {prepared.url}")
        try:
            start = time.monotonic()
            resp = self.session.send(prepared, timeout=self.timeout, allow_redirects=True)
            elapsed_ms = (time.monotonic() - start) * 1000
        except requests.exceptions.Timeout as e:
            raise RequestError(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise RequestError(f"Connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RequestError(f"Request failed: {e}") from e
        except Exception as e:
            raise RequestError(f"Unexpected error: {e}") from e

        return Response(
            status=resp.status_code,
            headers=dict(resp.headers),
            text=resp.text,
            elapsed_ms=elapsed_ms,
        )

    def prepare(self, request: Request) -> requests.PreparedRequest:
        """Resolve variables and build the exact request that will be sent.

        For multipart/form-data the payload is rebuilt from the parsed parts
        and the Content-Type (with its boundary) is taken from the generated
        payload, never from the .http file.
        """
        url = self.variables.replace_variables(request.url)
        validate_url(url)

        headers = {k: self.variables.replace_variables(v) for k, v in request.headers.items()}
        kwargs: dict[str, Any] = {"method": request.method, "url": url, "headers": headers}
        mtype = media_type(request.content_type)

        with contextlib.ExitStack() as stack:
            if request.form is not None and mtype == "multipart/form-data":
                _drop_header(headers, "Content-Type")
                kwargs["files"] = self._build_multipart(request, stack)
            elif request.form is not None:
                kwargs["data"] = [
                    (p.name, self.variables.replace_variables(p.value)) for p in request.form
                ]
            elif request.body:
                kwargs["data"] = self.variables.replace_variables(request.body).encode("utf-8")
            try:
                prepared = self.session.prepare_request(requests.Request(**kwargs))
            except requests.exceptions.InvalidURL as e:
                raise RequestError(f"Invalid URL: {url!r} ({e})") from e
            except (requests.exceptions.RequestException, ValueError) as e:
                raise RequestError(f"Cannot prepare request: {e}") from e
        return prepared

    def _build_multipart(self, request: Request, stack: contextlib.ExitStack):
        # Text fields go in as (None, value) so requests always emits
        # multipart, even when no file part is present.
        files: list[tuple[str, tuple]] = []
        for part in request.form:
            if not part.is_file:
                files.append((part.name, (None, self.variables.replace_variables(part.value))))
                continue
            mime = part.content_type or mimetypes.guess_type(part.filename or "")[0]
            mime = mime or "application/octet-stream"
            if part.path:
                try:
                    content = stack.enter_context(open(part.path, "rb"))
                except OSError as e:
                    raise RequestError(f"Cannot open multipart file {part.path}: {e}") from e
            else:
                content = self.variables.replace_variables(part.value).encode("utf-8")
            files.append((part.name, (part.filename, content, mime)))
        return files

    def check_reachable(self, url: str) -> None:
        """HEAD the origin once per run to tell 'server down' from other failures."""
        origin = origin_of(url)
        if origin in self._reachable:
            return
        try:
            self.session.head(origin, timeout=self.probe_timeout, allow_redirects=False)
        except requests.exceptions.RequestException as e:
            raise RequestError(f"Server unreachable: {origin} ({e.__class__.__name__})") from e
        self._reachable.add(origin)


def validate_url(url: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc or "{{" in url:
        raise RequestError(f"Invalid URL: {url!r}")


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def _drop_header(headers: dict[str, str], key: str) -> None:
    for k in [k for k in headers if k.lower() == key.lower()]:
        headers.pop(k)
