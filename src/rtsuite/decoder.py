"""Decoders for each REST 1.0 response shape.

Every decoder takes the raw response text plus an optional start offset,
scans forward over the token stream from :mod:`rtsuite.patterns`, and
returns whatever it managed to match. Malformed or unexpected input never
raises: a decoder that matches nothing returns an empty result (empty record,
empty list, ``None``) and the caller decides what absence means.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .models import RELATION_NAMES, FieldRecord, HistoryEntry, LinkSet
from .patterns import (
    Line,
    LineKind,
    extract_id,
    match_created,
    match_id_token,
    match_link_token,
    tokenize,
)

# History records only fold continuations for these fields.
HISTORY_FOLDED_FIELDS = frozenset({"Content", "Attachments"})


def _skip_preamble(lines: list[Line], i: int = 0) -> int:
    """Advance past the status header, blank lines and ``#`` comments."""
    while i < len(lines) and lines[i].kind in (LineKind.STATUS, LineKind.BLANK, LineKind.TEXT):
        i += 1
    return i


def _fold_value(
    lines: list[Line], i: int, *, fold: bool = True, stop: int | None = None
) -> tuple[str, int]:
    """Return the value of key line ``i`` with its continuations, and the next index.

    Continuation lines are kept verbatim (leading whitespace included) and
    joined with a single newline. Folding ends at the first line that is not
    indented at least as far as the field name is long, at the next key or
    break line, or at offset ``stop``.
    """
    line = lines[i]
    name = line.name or ""
    parts = [line.value or ""]
    j = i + 1
    if fold:
        while j < len(lines):
            nxt = lines[j]
            if stop is not None and nxt.offset >= stop:
                break
            if not nxt.continues(name):
                break
            parts.append(nxt.text)
            j += 1
    return "\n".join(parts), j


def _numeric_pairs(text: str, start: int) -> list[tuple[str, str]]:
    return [
        (line.name or "", line.value or "")
        for line in tokenize(text, start)
        if line.is_numeric_key
    ]


def decode_show(text: str, start: int = 0) -> FieldRecord:
    lines = tokenize(text, start)
    i = _skip_preamble(lines)
    if i >= len(lines) or not lines[i].is_id_line:
        return FieldRecord()
    record = FieldRecord([("id", extract_id(lines[i].value or "") or "")])
    i += 1
    while i < len(lines):
        line = lines[i]
        if line.kind is LineKind.BREAK:
            break
        if line.kind is not LineKind.KEY:
            i += 1
            continue
        value, i = _fold_value(lines, i)
        record.append(line.name or "", value)
    return record


def decode_search(text: str, start: int = 0) -> list[str]:
    lines = tokenize(text, start)
    if lines and lines[0].kind is LineKind.STATUS:
        lines = lines[1:]
    ids: list[str] = []
    for line in lines:
        if line.is_numeric_key:
            ids.append(line.name or "")
            continue
        if line.kind is LineKind.KEY and line.name == "id":
            token = extract_id(line.value or "")
        elif line.kind is LineKind.TEXT:
            token = match_id_token(line.text)
        else:
            token = None
        if token:
            ids.append(token)
    return ids


def decode_queues(text: str, start: int = 0) -> list[tuple[str, str]]:
    return _numeric_pairs(text, start)


def decode_created(text: str, start: int = 0) -> str | None:
    for line in tokenize(text, start):
        if line.kind is LineKind.TEXT:
            ticket_id = match_created(line.text)
            if ticket_id:
                return ticket_id
    return None


def decode_links(text: str, start: int = 0) -> LinkSet:
    lines = tokenize(text, start)
    i = _skip_preamble(lines)
    links = LinkSet()
    if i >= len(lines) or not lines[i].is_id_line:
        return links
    i += 1
    while i < len(lines):
        line = lines[i]
        if line.kind is LineKind.BREAK:
            break
        if line.kind is not LineKind.KEY or line.name not in RELATION_NAMES:
            i += 1
            continue
        value, i = _fold_value(lines, i)
        for part in value.split("\n"):
            peer = match_link_token(part)
            if peer:
                links.add(line.name or "", peer)
    return links


def decode_history_short(text: str, start: int = 0) -> list[tuple[str, str]]:
    return _numeric_pairs(text, start)


def _history_windows(lines: list[Line], text_end: int) -> list[tuple[int, int]]:
    """(start index, end offset) for every id line in ``lines``."""
    starts = [idx for idx, line in enumerate(lines) if line.is_id_line]
    windows: list[tuple[int, int]] = []
    for n, idx in enumerate(starts):
        end = lines[starts[n + 1]].offset if n + 1 < len(starts) else text_end
        windows.append((idx, end))
    return windows


def decode_history_long(text: str, start: int = 0) -> list[HistoryEntry]:
    lines = tokenize(text, start)
    entries: list[HistoryEntry] = []
    for idx, end in _history_windows(lines, len(text)):
        history_id = extract_id(lines[idx].value or "") or ""
        record = FieldRecord()
        j = idx
        while j < len(lines) and lines[j].offset < end:
            line = lines[j]
            if line.kind is LineKind.BREAK:
                break
            if line.kind is not LineKind.KEY:
                j += 1
                continue
            value, j = _fold_value(
                lines, j, fold=line.name in HISTORY_FOLDED_FIELDS, stop=end
            )
            record.append(line.name or "", value)
        entries.append(HistoryEntry(history_id=history_id, record=record))
    return entries


def decode_history_entry(text: str, start: int = 0) -> HistoryEntry | None:
    lines = tokenize(text, start)
    windows = _history_windows(lines, len(text))
    if not windows:
        return None
    idx, end = windows[0]
    history_id = extract_id(lines[idx].value or "") or ""
    record = FieldRecord([("id", history_id)])
    j = idx
    while j < len(lines) and lines[j].offset < end:
        line = lines[j]
        if line.kind is LineKind.BREAK:
            break
        if line.kind is not LineKind.KEY:
            j += 1
            continue
        value, j = _fold_value(lines, j, stop=end)
        if value != history_id:
            record.append(line.name or "", value)
    return HistoryEntry(history_id=history_id, record=record)


def decode_description(text: str, start: int = 0) -> str | None:
    lines = tokenize(text, start)
    content_idx = next(
        (i for i, line in enumerate(lines) if line.kind is LineKind.KEY and line.name == "Content"),
        None,
    )
    if content_idx is None:
        return None
    boundary = next(
        (
            line.offset
            for line in lines[content_idx + 1 :]
            if line.kind is LineKind.KEY and line.name == "Attachments"
        ),
        None,
    )
    value, _ = _fold_value(lines, content_idx, stop=boundary)
    return value


DECODERS: dict[str, Callable[[str, int], Any]] = {
    "show": decode_show,
    "search": decode_search,
    "queues": decode_queues,
    "created": decode_created,
    "links": decode_links,
    "history_short": decode_history_short,
    "history_long": decode_history_long,
    "history_entry": decode_history_entry,
    "description": decode_description,
}


def get_decoder(name: str) -> Callable[[str, int], Any]:
    try:
        return DECODERS[name]
    except KeyError:
        raise ValueError(f"unknown decoder: {name}") from None


__all__ = [
    "DECODERS",
    "HISTORY_FOLDED_FIELDS",
    "decode_created",
    "decode_description",
    "decode_history_entry",
    "decode_history_long",
    "decode_history_short",
    "decode_links",
    "decode_queues",
    "decode_search",
    "decode_show",
    "get_decoder",
]
