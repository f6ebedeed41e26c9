"""Shared fixtures for reqtest scenario tests."""

import json

import pytest
import requests
from click.testing import CliRunner
from requests.structures import CaseInsensitiveDict

from reqtest import config
from reqtest.models import Response
from reqtest.variables import VariableManager


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def global_reqtest_dir(tmp_path, monkeypatch):
    """Override the global ~/.reqtest directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".reqtest"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(config, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(config, "GLOBAL_CONFIG", fake_global / "config.yaml")
    return fake_global


@pytest.fixture
def variables():
    return VariableManager(env={"API_KEY": "secret-key"})


@pytest.fixture
def http_file(tmp_path):
    """Write an .http file into tmp_path and return its path."""

    def _write(content, name="api.http"):
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


def _encode(body, text):
    if text is not None:
        return text
    if isinstance(body, dict | list):
        return json.dumps(body)
    return str(body or "")


def make_response(status=200, body=None, headers=None, text=None, elapsed_ms=42.0):
    """Factory for reqtest Response objects."""
    if headers is None:
        headers = {"Content-Type": "application/json"} if body is not None else {}
    return Response(
        status=status,
        headers=headers,
        text=_encode(body, text),
        elapsed_ms=elapsed_ms,
    )


def make_http_response(status=200, body=None, headers=None, text=None):
    """Factory for requests.Response objects as returned by Session.send."""
    if headers is None:
        headers = {"Content-Type": "application/json"} if body is not None else {}
    r = requests.Response()
    r.status_code = status
    r.headers = CaseInsensitiveDict(headers)
    r._content = _encode(body, text).encode("utf-8")
    r.encoding = "utf-8"
    return r
