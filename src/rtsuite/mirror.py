"""Local mirror of tickets and the process-wide id -> display-name cache.

The sync code only sees the :class:`PropertyStore` protocol: named string
properties and multi-valued (ordered set of strings) properties attached to a
*location*, plus a lookup from ticket id to location. :class:`JsonMirror`
implements it on a signed JSON document written with an atomic replace.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

from .models import RELATION_NAMES, REMOTE_TO_LOCAL, TicketSnapshot

logger = logging.getLogger(__name__)

EXTERNAL_ID_PROPERTY = "TicketId"


class PropertyStore(Protocol):
    def get_property(self, location: str, name: str) -> str | None: ...
    def set_property(self, location: str, name: str, value: str) -> None: ...
    def get_multi_valued_property(self, location: str, name: str) -> list[str]: ...
    def add_to_multi_valued_property(self, location: str, name: str, value: str) -> None: ...
    def remove_from_multi_valued_property(self, location: str, name: str, value: str) -> None: ...
    def find_location_by_external_id(self, ticket_id: str) -> str | None: ...


def compute_signature(entries: dict[str, Any]) -> str:
    canonical = json.dumps(entries, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


@dataclass
class MirrorDocument:
    entries: dict[str, dict[str, Any]]
    version: int = 1
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    signature: str = ""

    def ensure_signature(self) -> None:
        self.signature = compute_signature(self.entries)


def persist_mirror_document(path: Path, document: MirrorDocument) -> None:
    document.ensure_signature()
    payload = {
        "version": document.version,
        "generated_at": document.generated_at,
        "entries": document.entries,
        "signature": document.signature,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def _coerce_entries(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    entries: dict[str, dict[str, Any]] = {}
    entries_raw = raw.get("entries")
    if isinstance(entries_raw, dict):
        for location, props in entries_raw.items():
            if isinstance(props, dict):
                entries[str(location)] = {str(k): v for k, v in props.items()}
    return entries


def load_mirror_document(path: Path) -> MirrorDocument:
    if not path.exists():
        return MirrorDocument(entries={})
    try:
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read mirror document %s: %s", path, exc)
        return MirrorDocument(entries={})
    if not isinstance(raw, dict):
        return MirrorDocument(entries={})
    doc = MirrorDocument(
        entries=_coerce_entries(raw),
        version=int(raw.get("version") or 1),
        generated_at=str(raw.get("generated_at") or datetime.now(timezone.utc).isoformat()),
        signature=str(raw.get("signature") or ""),
    )
    if doc.signature and doc.signature != compute_signature(doc.entries):
        logger.warning("Mirror signature mismatch detected at %s; ignoring entries", path)
        return MirrorDocument(entries={}, version=doc.version)
    return doc


class JsonMirror:
    """File-backed :class:`PropertyStore`; every mutation is persisted when ``autosave``."""

    def __init__(self, path: Path, *, autosave: bool = True) -> None:
        self.path = path
        self.autosave = autosave
        self._doc = load_mirror_document(path)

    @property
    def entries(self) -> dict[str, dict[str, Any]]:
        return self._doc.entries

    def save(self) -> None:
        persist_mirror_document(self.path, self._doc)

    def _changed(self) -> None:
        if self.autosave:
            self.save()

    def _props(self, location: str) -> dict[str, Any]:
        return self._doc.entries.setdefault(location, {})

    def locations(self) -> list[str]:
        return list(self._doc.entries)

    def get_property(self, location: str, name: str) -> str | None:
        value = self._doc.entries.get(location, {}).get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(str(v) for v in value)
        return str(value)

    def set_property(self, location: str, name: str, value: str) -> None:
        self._props(location)[name] = value
        self._changed()

    def get_multi_valued_property(self, location: str, name: str) -> list[str]:
        value = self._doc.entries.get(location, {}).get(name)
        if value is None:
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        return str(value).split()

    def set_multi_valued_property(self, location: str, name: str, values: Iterable[str]) -> None:
        self._props(location)[name] = list(dict.fromkeys(values))
        self._changed()

    def add_to_multi_valued_property(self, location: str, name: str, value: str) -> None:
        current = self.get_multi_valued_property(location, name)
        if value in current:
            return
        current.append(value)
        self._props(location)[name] = current
        self._changed()

    def remove_from_multi_valued_property(self, location: str, name: str, value: str) -> None:
        current = self.get_multi_valued_property(location, name)
        if value not in current:
            return
        self._props(location)[name] = [v for v in current if v != value]
        self._changed()

    def find_location_by_external_id(self, ticket_id: str) -> str | None:
        for location, props in self._doc.entries.items():
            if str(props.get(EXTERNAL_ID_PROPERTY, "")) == ticket_id:
                return location
        return None

    def store_snapshot(self, snapshot: TicketSnapshot) -> str:
        """Write a snapshot into its location (created as ``ticket-<id>`` if missing)."""
        location = self.find_location_by_external_id(snapshot.ticket_id) or f"ticket-{snapshot.ticket_id}"
        props = self._props(location)
        props[EXTERNAL_ID_PROPERTY] = snapshot.ticket_id
        for name, value in snapshot.fields.items():
            if name != "id":
                props[name] = value
        if snapshot.description is not None:
            props["Description"] = snapshot.description
        for relation in RELATION_NAMES:
            props[REMOTE_TO_LOCAL[relation]] = list(dict.fromkeys(snapshot.links.peers(relation)))
        self._changed()
        return location


def mirror_names(store: JsonMirror) -> list[tuple[str, str]]:
    """(ticket id, subject) pairs for every mirrored ticket."""
    out: list[tuple[str, str]] = []
    for location in store.locations():
        ticket_id = store.get_property(location, EXTERNAL_ID_PROPERTY)
        if not ticket_id:
            continue
        out.append((ticket_id, store.get_property(location, "Subject") or ""))
    return out


class NameCache:
    """Process-wide identifier -> display-name table.

    ``refresh`` builds a complete new table and swaps it in with a single
    assignment; readers hold read-only snapshots and never see a partial table.
    """

    def __init__(self) -> None:
        self._table: Mapping[str, str] = MappingProxyType({})

    def refresh(self, loader: Callable[[], Iterable[tuple[str, str]]]) -> Mapping[str, str]:
        table = MappingProxyType(dict(loader()))
        self._table = table
        logger.debug("name cache refreshed with %d entries", len(table))
        return table

    def snapshot(self) -> Mapping[str, str]:
        return self._table

    def lookup(self, ticket_id: str) -> str | None:
        return self._table.get(ticket_id)

    def invalidate(self) -> None:
        self._table = MappingProxyType({})


_NAME_CACHE = NameCache()


def get_name_cache() -> NameCache:
    return _NAME_CACHE


__all__ = [
    "EXTERNAL_ID_PROPERTY",
    "JsonMirror",
    "MirrorDocument",
    "NameCache",
    "PropertyStore",
    "compute_signature",
    "get_name_cache",
    "load_mirror_document",
    "mirror_names",
    "persist_mirror_document",
]
