"""Line recognizers for the REST 1.0 text format.

Responses are classified one physical line at a time into a flat token stream
(:class:`Line`). Decoders in :mod:`rtsuite.decoder` consume that stream with
small per-shape loops instead of re-searching the raw buffer.

Recognized shapes:

* key line ``Name: value`` (letters, dots, hyphens, spaces, ``{...}`` groups)
* numeric-list line ``123: text`` (a key line with a digit-run name)
* id line ``id: ticket/123`` (a key line named ``id`` holding a digit run)
* break marker ``--``
* status header ``RT/4.4.3 200 Ok``

Continuation lines are not a kind of their own: whether an indented line
continues a value depends on the owning field's name, so the decoder decides
from :attr:`Line.indent`.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

_KEY_RE = re.compile(
    r"^(?P<name>\d+|[A-Za-z](?:[A-Za-z.\- ]|\{[^}\n]*\})*):(?: ?)(?P<value>.*)$"
)
_STATUS_RE = re.compile(r"^RT/(?P<version>[\w.]+) (?P<code>\d{3})(?: (?P<reason>.*))?$")
_BREAK = "--"
_DIGITS_RE = re.compile(r"\d+")
_ID_TOKEN_RE = re.compile(r"^[A-Za-z./]*(\d+)[A-Za-z./]*$")
# First peer reference on a links line: a ticket URI or a bare number.
_LINK_TOKEN_RE = re.compile(r"(?:/ticket/|^)(\d+)\b")
_CREATED_RE = re.compile(r"^# Ticket (\d+) created\.\s*$")


class LineKind(Enum):
    KEY = "key"
    BREAK = "break"
    BLANK = "blank"
    TEXT = "text"
    STATUS = "status"


@dataclass(frozen=True)
class Line:
    kind: LineKind
    text: str
    offset: int
    indent: int = 0
    name: str | None = None
    value: str | None = None

    @property
    def is_numeric_key(self) -> bool:
        return self.kind is LineKind.KEY and (self.name or "").isdigit()

    @property
    def is_id_line(self) -> bool:
        return (
            self.kind is LineKind.KEY
            and self.name == "id"
            and extract_id(self.value or "") is not None
        )

    def continues(self, field_name: str) -> bool:
        """True if this line is a continuation of a value owned by ``field_name``."""
        if self.kind not in (LineKind.TEXT, LineKind.BLANK):
            return False
        return self.indent > 0 and self.indent >= len(field_name)


@dataclass(frozen=True)
class Status:
    version: str
    code: int
    reason: str


def _indent_width(text: str) -> int:
    return len(text) - len(text.lstrip(" \t"))


def classify(text: str, offset: int = 0) -> Line:
    """Classify one physical line (without its terminator)."""
    indent = _indent_width(text)
    if not text.strip():
        return Line(LineKind.BLANK, text, offset, indent)
    if text == _BREAK:
        return Line(LineKind.BREAK, text, offset)
    if _STATUS_RE.match(text):
        return Line(LineKind.STATUS, text, offset)
    if indent == 0:
        m = _KEY_RE.match(text)
        if m:
            return Line(
                LineKind.KEY,
                text,
                offset,
                0,
                name=m.group("name").rstrip(),
                value=m.group("value"),
            )
    return Line(LineKind.TEXT, text, offset, indent)


def iter_lines(text: str, start: int = 0) -> Iterator[Line]:
    pos = start
    end = len(text)
    while pos < end:
        nl = text.find("\n", pos)
        stop = end if nl == -1 else nl
        raw = text[pos:stop]
        if raw.endswith("\r"):
            raw = raw[:-1]
        yield classify(raw, pos)
        pos = end if nl == -1 else nl + 1


def tokenize(text: str, start: int = 0) -> list[Line]:
    return list(iter_lines(text, start))


def extract_id(text: str) -> str | None:
    """Return the first maximal digit run of ``text`` (``ticket/42`` -> ``42``)."""
    if not text:
        return None
    m = _DIGITS_RE.search(text)
    return m.group(0) if m else None


def match_id_token(text: str) -> str | None:
    """Digits of a bare id-shaped token such as ``ticket/42`` or ``42``."""
    m = _ID_TOKEN_RE.match(text.strip())
    return m.group(1) if m else None


def match_link_token(text: str) -> str | None:
    m = _LINK_TOKEN_RE.search(text.strip())
    return m.group(1) if m else None


def match_created(text: str) -> str | None:
    m = _CREATED_RE.match(text)
    return m.group(1) if m else None


def parse_status_line(text: str) -> Status | None:
    first = text.lstrip().split("\n", 1)[0].rstrip("\r")
    m = _STATUS_RE.match(first)
    if not m:
        return None
    return Status(m.group("version"), int(m.group("code")), m.group("reason") or "")


__all__ = [
    "Line",
    "LineKind",
    "Status",
    "classify",
    "extract_id",
    "iter_lines",
    "match_created",
    "match_id_token",
    "match_link_token",
    "parse_status_line",
    "tokenize",
]
