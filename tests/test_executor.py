"""Tests for RequestExecutor: request preparation, transport errors, probing."""

from unittest.mock import patch

import pytest
import requests

from reqtest.errors import RequestError
from reqtest.executor import RequestExecutor, origin_of, validate_url
from reqtest.models import FormPart, Request
from tests.conftest import make_http_response


@pytest.fixture
def executor(variables):
    return RequestExecutor(variables, timeout=3, probe=False, session=requests.Session())


class TestValidateUrl:
    def test_valid(self):
        validate_url("http://localhost:3000/api")
        validate_url("https://example.com")

    @pytest.mark.parametrize(
        "url",
        ["", "localhost:3000/api", "ftp://example.com/x", "http://", "http://x/{{id}}"],
    )
    def test_invalid(self, url):
        with pytest.raises(RequestError, match="Invalid URL"):
            validate_url(url)

    def test_origin(self):
        assert origin_of("https://api.example.com:8443/v1/users?x=1") == "https://api.example.com:8443"


class TestPrepare:
    def test_runtime_substitution(self, executor, variables):
        variables.set_variable("id", 42)
        variables.set_variable("token", "abc")
        request = Request(
            name="get",
            url="http://x/users/{{id}}",
            headers={"Authorization": "Bearer {{token}}"},
        )
        prepared = executor.prepare(request)
        assert prepared.url == "http://x/users/42"
        assert prepared.headers["Authorization"] == "Bearer abc"

    def test_unresolved_url_rejected(self, executor):
        with pytest.raises(RequestError, match="Invalid URL"):
            executor.prepare(Request(name="r", url="http://x/users/{{id}}"))

    def test_json_body_sent_verbatim(self, executor, variables):
        variables.set_variable("n", 5)
        request = Request(
            name="post",
            method="POST",
            url="http://x/items",
            headers={"Content-Type": "application/json"},
            body='{"count": {{n}}}',
        )
        prepared = executor.prepare(request)
        assert prepared.body == b'{"count": 5}'
        assert prepared.headers["Content-Type"] == "application/json"

    def test_urlencoded_form(self, executor):
        request = Request(
            name="login",
            method="POST",
            url="http://x/login",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            form=[FormPart("user", "bob"), FormPart("pass", "a b")],
        )
        prepared = executor.prepare(request)
        assert prepared.body == "user=bob&pass=a+b"

    def test_multipart_replaces_declared_content_type(self, executor, tmp_path):
        upload = tmp_path / "a.txt"
        upload.write_text("file contents")
        request = Request(
            name="upload",
            method="POST",
            url="http://x/upload",
            headers={"Content-Type": "multipart/form-data; boundary=XYZ"},
            form=[
                FormPart("title", "hello"),
                FormPart("file", filename="a.txt", path=str(upload)),
            ],
        )
        prepared = executor.prepare(request)
        content_type = prepared.headers["Content-Type"]
        assert content_type.startswith("multipart/form-data; boundary=")
        assert "XYZ" not in content_type
        assert b'name="title"' in prepared.body
        assert b"hello" in prepared.body
        assert b'filename="a.txt"' in prepared.body
        assert b"file contents" in prepared.body
        assert b"Content-Type: text/plain" in prepared.body

    def test_multipart_text_only_is_still_multipart(self, executor):
        request = Request(
            name="upload",
            method="POST",
            url="http://x/upload",
            headers={"Content-Type": "multipart/form-data; boundary=XYZ"},
            form=[FormPart("title", "hello")],
        )
        prepared = executor.prepare(request)
        assert prepared.headers["Content-Type"].startswith("multipart/form-data")

    def test_multipart_missing_file(self, executor, tmp_path):
        request = Request(
            name="upload",
            method="POST",
            url="http://x/upload",
            headers={"Content-Type": "multipart/form-data; boundary=XYZ"},
            form=[FormPart("file", filename="gone.bin", path=str(tmp_path / "gone.bin"))],
        )
        with pytest.raises(RequestError, match="Cannot open multipart file"):
            executor.prepare(request)


class TestExecute:
    @patch.object(requests.Session, "send")
    def test_response_normalized(self, mock_send, executor):
        mock_send.return_value = make_http_response(
            status=201,
            body={"id": 1},
            headers={"Content-Type": "application/json", "X-Trace": "t1"},
        )
        response = executor.execute(Request(name="r", method="POST", url="http://x/items"))
        assert response.status == 201
        assert response.json() == {"id": 1}
        assert response.headers["x-trace"] == "t1"
        assert mock_send.call_args.kwargs["timeout"] == 3

    @patch.object(requests.Session, "send")
    def test_http_error_status_is_a_response(self, mock_send, executor):
        mock_send.return_value = make_http_response(status=500, text="boom")
        response = executor.execute(Request(name="r", url="http://x/a"))
        assert response.status == 500
        assert response.text == "boom"

    @patch.object(requests.Session, "send")
    def test_timeout(self, mock_send, executor):
        mock_send.side_effect = requests.exceptions.Timeout()
        with pytest.raises(RequestError, match="timed out after 3s"):
            executor.execute(Request(name="r", url="http://x/a"))

    @patch.object(requests.Session, "send")
    def test_connection_error(self, mock_send, executor):
        mock_send.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(RequestError, match="Connection error"):
            executor.execute(Request(name="r", url="http://x/a"))

    @patch.object(requests.Session, "send")
    def test_non_requests_error(self, mock_send, executor):
        mock_send.side_effect = UnicodeEncodeError("latin-1", "é", 0, 1, "ordinal not in range(256)")
        with pytest.raises(RequestError, match="Unexpected error"):
            executor.execute(Request(name="r", url="http://x/a"))

    @patch.object(requests.Session, "send")
    def test_unparseable_url_never_sent(self, mock_send, executor):
        with pytest.raises(RequestError, match="Invalid URL"):
            executor.execute(Request(name="r", url="http://localhost:99999/x"))
        mock_send.assert_not_called()


class TestProbe:
    @patch.object(requests.Session, "send")
    @patch.object(requests.Session, "head")
    def test_probe_once_per_origin(self, mock_head, mock_send, variables):
        mock_send.return_value = make_http_response(status=200)
        executor = RequestExecutor(variables, probe=True, probe_timeout=1)
        executor.execute(Request(name="a", url="http://x/a"))
        executor.execute(Request(name="b", url="http://x/b"))
        executor.execute(Request(name="c", url="http://y/c"))
        assert [c.args[0] for c in mock_head.call_args_list] == ["http://x", "http://y"]
        assert mock_head.call_args.kwargs["timeout"] == 1

    @patch.object(requests.Session, "send")
    @patch.object(requests.Session, "head")
    def test_unreachable(self, mock_head, mock_send, variables):
        mock_head.side_effect = requests.exceptions.ConnectionError()
        executor = RequestExecutor(variables, probe=True)
        with pytest.raises(RequestError, match="Server unreachable: http://x"):
            executor.execute(Request(name="a", url="http://x/a"))
        mock_send.assert_not_called()

    @patch.object(requests.Session, "send")
    @patch.object(requests.Session, "head")
    def test_probe_disabled(self, mock_head, mock_send, executor):
        mock_send.return_value = make_http_response(status=200)
        executor.execute(Request(name="a", url="http://x/a"))
        mock_head.assert_not_called()
