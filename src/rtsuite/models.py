from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

RELATION_NAMES: tuple[str, ...] = (
    "MemberOf",
    "Members",
    "DependsOn",
    "DependedOnBy",
    "RefersTo",
    "ReferredToBy",
)

# Ticket fields copied into a snapshot; anything else in a show response is ignored.
TICKET_FIELDS: tuple[str, ...] = (
    "id",
    "Queue",
    "Owner",
    "Creator",
    "Subject",
    "Status",
    "Priority",
    "InitialPriority",
    "FinalPriority",
    "Requestors",
    "Cc",
    "AdminCc",
    "Created",
    "Starts",
    "Started",
    "Due",
    "Resolved",
    "Told",
    "LastUpdated",
    "TimeEstimated",
    "TimeWorked",
    "TimeLeft",
)

COMMENT_TYPES = ("Comment", "Correspond")
COMMENT_FIELDS = ("Created", "Creator", "Content", "id")


class FieldRecord:
    """Ordered ``(name, value)`` pairs decoded from one response record.

    Names are not unique: repeated fields (``Attachments`` for instance) keep
    their order of appearance.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._pairs: list[tuple[str, str]] = list(pairs)

    def append(self, name: str, value: str) -> None:
        self._pairs.append((name, value))

    def prepend(self, name: str, value: str) -> None:
        self._pairs.insert(0, (name, value))

    def get(self, name: str, default: str | None = None) -> str | None:
        for key, value in self._pairs:
            if key == name:
                return value
        return default

    def get_all(self, name: str) -> list[str]:
        return [value for key, value in self._pairs if key == name]

    def names(self) -> list[str]:
        return [key for key, _ in self._pairs]

    def pairs(self) -> list[tuple[str, str]]:
        return list(self._pairs)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __bool__(self) -> bool:
        return bool(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldRecord):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"FieldRecord({self._pairs!r})"


@dataclass
class LinkSet:
    """Relation name -> peer ticket ids, in response order (no dedup)."""

    relations: dict[str, list[str]] = field(default_factory=dict)

    def peers(self, name: str) -> list[str]:
        return list(self.relations.get(name, []))

    def add(self, name: str, peer: str) -> None:
        self.relations.setdefault(name, []).append(peer)

    def __bool__(self) -> bool:
        return any(self.relations.values())


@dataclass
class TicketSnapshot:
    ticket_id: str
    fields: dict[str, str]
    links: LinkSet = field(default_factory=LinkSet)
    description: str | None = None

    @property
    def relations(self) -> dict[str, str]:
        return {name: " ".join(self.links.peers(name)) for name in RELATION_NAMES}

    def to_properties(self) -> dict[str, str]:
        """Flatten into a single property mapping (fields plus relation strings)."""
        props = dict(self.fields)
        props.update(self.relations)
        if self.description is not None:
            props["Description"] = self.description
        return props


@dataclass
class HistoryEntry:
    history_id: str
    record: FieldRecord

    @property
    def type(self) -> str | None:
        return self.record.get("Type")

    @property
    def is_comment(self) -> bool:
        return self.type in COMMENT_TYPES

    def comment_view(self) -> HistoryEntry:
        kept = FieldRecord((k, v) for k, v in self.record if k in COMMENT_FIELDS)
        return HistoryEntry(history_id=self.history_id, record=kept)


class RelationKind(Enum):
    MEMBER = "member"
    DEPENDENCY = "dependency"
    REFERENCE = "reference"

    @property
    def names(self) -> RelationNames:
        return RELATION_TABLE[self]

    @classmethod
    def parse(cls, value: str) -> RelationKind:
        lowered = value.strip().lower()
        for kind in cls:
            if kind.value == lowered or kind.name.lower() == lowered:
                return kind
        raise ValueError(f"unknown relation kind: {value!r}")


class LinkOperation(Enum):
    ATTACH = "attach"
    DETACH = "detach"


@dataclass(frozen=True)
class RelationNames:
    parent_remote: str
    child_remote: str
    parent_local: str
    child_local: str


RELATION_TABLE: dict[RelationKind, RelationNames] = {
    RelationKind.MEMBER: RelationNames("Members", "MemberOf", "Children", "Parents"),
    RelationKind.DEPENDENCY: RelationNames("DependedOnBy", "DependsOn", "Blocking", "Blockers"),
    RelationKind.REFERENCE: RelationNames("RefersTo", "ReferredToBy", "RefersTo", "ReferredToBy"),
}

REMOTE_TO_LOCAL: dict[str, str] = {}
LOCAL_TO_REMOTE: dict[str, str] = {}
for _names in RELATION_TABLE.values():
    REMOTE_TO_LOCAL[_names.parent_remote] = _names.parent_local
    REMOTE_TO_LOCAL[_names.child_remote] = _names.child_local
    LOCAL_TO_REMOTE[_names.parent_local] = _names.parent_remote
    LOCAL_TO_REMOTE[_names.child_local] = _names.child_remote
del _names


__all__ = [
    "COMMENT_FIELDS",
    "COMMENT_TYPES",
    "FieldRecord",
    "HistoryEntry",
    "LOCAL_TO_REMOTE",
    "LinkOperation",
    "LinkSet",
    "RELATION_NAMES",
    "RELATION_TABLE",
    "REMOTE_TO_LOCAL",
    "RelationKind",
    "RelationNames",
    "TICKET_FIELDS",
    "TicketSnapshot",
]
