"""reqtest bodies - per Content-Type interpretation of a request body."""

import re
from pathlib import Path
from urllib.parse import parse_qsl

from reqtest.log import logger
from reqtest.models import FormPart
from reqtest.variables import VariableManager

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
_NAME_RE = re.compile(r'\bname="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'\bfilename="([^"]*)"', re.IGNORECASE)


def media_type(content_type: str) -> str:
    """'application/json; charset=utf-8' -> 'application/json'."""
    return content_type.split(";", 1)[0].strip().lower()


def extract_boundary(content_type: str) -> str | None:
    m = _BOUNDARY_RE.search(content_type or "")
    if not m:
        return None
    return m.group(1) or m.group(2)


class BodyStrategy:
    """Turns the cleaned body text into (text, form parts)."""

    media_types: tuple[str, ...] = ()

    def __init__(self, variables: VariableManager, base_dir: Path | None = None):
        self.variables = variables
        self.base_dir = base_dir or Path.cwd()

    def parse(self, body: str, content_type: str) -> tuple[str, list[FormPart] | None]:
        return self.variables.replace_variables(body), None


class JsonBody(BodyStrategy):
    # Left as text; requests sends it verbatim with the declared Content-Type.
    media_types = ("application/json",)


class PlainTextBody(BodyStrategy):
    media_types = ("text/plain",)


class XmlBody(BodyStrategy):
    media_types = ("application/xml", "text/xml")


class UrlEncodedBody(BodyStrategy):
    media_types = ("application/x-www-form-urlencoded",)

    def parse(self, body, content_type):
        # Continuation lines like "&b=2" are joined into one query string.
        joined = "".join(line.strip() for line in body.splitlines())
        form = [
            FormPart(name=key, value=self.variables.replace_variables(value))
            for key, value in parse_qsl(joined, keep_blank_values=True)
        ]
        return self.variables.replace_variables(joined), form


class MultipartBody(BodyStrategy):
    """Scan boundary-delimited parts.

    Each part is a header block (Content-Disposition, optional Content-Type),
    a blank line and the content. A part whose content is a single
    ``< relative/path`` line refers to a file next to the .http file; the
    file is only opened when the request is sent.
    """

    media_types = ("multipart/form-data",)

    def parse(self, body, content_type):
        text = self.variables.replace_variables(body)
        boundary = extract_boundary(content_type)
        if not boundary:
            logger.warning("multipart/form-data body without a boundary, sending as text")
            return text, None

        form = []
        for lines in self._split_parts(text, boundary):
            part = self._parse_part(lines)
            if part is not None:
                form.append(part)
        logger.debug(f"Parsed multipart form-data: {[p.name for p in form]}")
        return text, form

    def _split_parts(self, text: str, boundary: str) -> list[list[str]]:
        delimiter = f"--{boundary}"
        parts: list[list[str]] = []
        current: list[str] | None = None
        for line in text.split("\n"):
            stripped = line.strip()
            if stripped == f"{delimiter}--":
                break
            if stripped == delimiter:
                current = []
                parts.append(current)
            elif current is not None:
                current.append(line.rstrip("\r"))
        return parts

    def _parse_part(self, lines: list[str]) -> FormPart | None:
        name = filename = part_type = None
        i = 0
        while i < len(lines) and lines[i].strip():
            key, _, value = lines[i].partition(":")
            if key.strip().lower() == "content-disposition":
                m = _NAME_RE.search(value)
                name = m.group(1) if m else None
                m = _FILENAME_RE.search(value)
                filename = m.group(1) if m else None
            elif key.strip().lower() == "content-type":
                part_type = value.strip()
            i += 1
        if not name:
            logger.warning("Skipping multipart part without a name")
            return None

        content = "\n".join(lines[i + 1 :]).rstrip("\n")
        ref = content.strip()
        if ref.startswith("< "):
            path = (self.base_dir / ref[2:].strip()).resolve()
            if not path.is_file():
                logger.warning(f"Multipart file not found: {path}")
            return FormPart(
                name=name,
                filename=filename or path.name,
                content_type=part_type,
                path=str(path),
            )
        if filename is not None:
            return FormPart(name=name, value=content, filename=filename, content_type=part_type)
        return FormPart(name=name, value=content.strip(), content_type=part_type)


STRATEGIES: tuple[type[BodyStrategy], ...] = (
    JsonBody,
    MultipartBody,
    UrlEncodedBody,
    PlainTextBody,
    XmlBody,
)


def strategy_for(
    content_type: str,
    variables: VariableManager,
    base_dir: Path | None = None,
) -> BodyStrategy:
    """Pick the body strategy for a Content-Type; plain passthrough by default."""
    mtype = media_type(content_type)
    for cls in STRATEGIES:
        if mtype in cls.media_types:
            return cls(variables, base_dir)
    logger.debug(f"No body strategy for '{mtype}', using plain text")
    return PlainTextBody(variables, base_dir)
