"""Parent/child, blocker/blocking and reference link mutations.

A mutation walks a fixed sequence of states::

    COMPUTE_EXISTING -> COMPUTE_NEW_SETS -> WRITE_PARENT_SIDE
        -> WRITE_CHILD_SIDE -> UPDATE_MIRROR (optional) -> DONE

Nothing is retried. A failed parent-side write aborts the mutation with the
gateway error; a failed child-side write after a successful parent-side write
raises :class:`~rtsuite.errors.SyncInconsistencyError`. The local mirror is
only touched once both remote writes succeeded. The two remote writes are not
transactional, so a crash between them can still leave the remote sides
disagreeing.

Attach prepends the peer without deduplicating against existing peers;
repeating an attach relies on the remote service to collapse duplicates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .concurrency import BatchExecutor
from .errors import RTAPIError, SelfLinkError, SyncInconsistencyError
from .logging import get_logger
from .mirror import PropertyStore
from .models import REMOTE_TO_LOCAL, LinkOperation, LinkSet, RelationKind
from .rt_rest import format_link_list, links_request, set_links_request


class SyncState(Enum):
    COMPUTE_EXISTING = "compute_existing"
    COMPUTE_NEW_SETS = "compute_new_sets"
    WRITE_PARENT_SIDE = "write_parent_side"
    WRITE_CHILD_SIDE = "write_child_side"
    UPDATE_MIRROR = "update_mirror"
    DONE = "done"


def compute_new_peers(existing: list[str], peer: str, operation: LinkOperation) -> list[str]:
    """New peer list for one side of the link.

    Attach puts ``peer`` first; detach drops every occurrence of it.
    """
    if operation is LinkOperation.ATTACH:
        return [peer, *existing]
    return [p for p in existing if p != peer]


def format_link_payload(relation: str, peers: list[str]) -> str:
    return f"{relation}: {format_link_list(peers)}".rstrip()


@dataclass
class LinkSyncResult:
    parent_id: str
    child_id: str
    kind: RelationKind
    operation: LinkOperation
    parent_peers: list[str] = field(default_factory=list)
    child_peers: list[str] = field(default_factory=list)
    mirror_updated: bool = False
    states: list[SyncState] = field(default_factory=list)

    @property
    def parent_payload(self) -> str:
        return format_link_payload(self.kind.names.parent_remote, self.parent_peers)

    @property
    def child_payload(self) -> str:
        return format_link_payload(self.kind.names.child_remote, self.child_peers)


class LinkSynchronizer:
    def __init__(
        self,
        executor: BatchExecutor,
        mirror: PropertyStore | None = None,
        *,
        allow_self_links: bool = False,
        update_mirror: bool = True,
    ) -> None:
        self.executor = executor
        self.mirror = mirror
        self.allow_self_links = allow_self_links
        self.update_mirror = update_mirror
        self.logger = get_logger()

    def attach(self, parent_id: str, child_id: str, kind: RelationKind, **kw: bool) -> LinkSyncResult:
        return self.mutate(parent_id, child_id, kind, LinkOperation.ATTACH, **kw)

    def detach(self, parent_id: str, child_id: str, kind: RelationKind, **kw: bool) -> LinkSyncResult:
        return self.mutate(parent_id, child_id, kind, LinkOperation.DETACH, **kw)

    def mutate(
        self,
        parent_id: str,
        child_id: str,
        kind: RelationKind,
        operation: LinkOperation,
        *,
        clobber: bool = False,
        update_mirror: bool | None = None,
    ) -> LinkSyncResult:
        if parent_id == child_id and not self.allow_self_links:
            raise SelfLinkError(f"refusing to link ticket {parent_id} to itself")
        names = kind.names
        result = LinkSyncResult(parent_id, child_id, kind, operation)

        result.states.append(SyncState.COMPUTE_EXISTING)
        if clobber:
            existing: dict[str, LinkSet] = {}
        else:
            existing = dict(
                self.executor.gather(
                    [(parent_id, links_request(parent_id)), (child_id, links_request(child_id))]
                )
            )
        parent_existing = existing.get(parent_id, LinkSet()).peers(names.parent_remote)
        child_existing = existing.get(child_id, LinkSet()).peers(names.child_remote)

        result.states.append(SyncState.COMPUTE_NEW_SETS)
        result.parent_peers = compute_new_peers(parent_existing, child_id, operation)
        result.child_peers = compute_new_peers(child_existing, parent_id, operation)

        result.states.append(SyncState.WRITE_PARENT_SIDE)
        self.executor.call(set_links_request(parent_id, names.parent_remote, result.parent_peers))
        self.logger.log_ticket_action(
            f"link_{operation.value}", parent_id, child_id, relation=names.parent_remote
        )

        result.states.append(SyncState.WRITE_CHILD_SIDE)
        try:
            self.executor.call(set_links_request(child_id, names.child_remote, result.child_peers))
        except RTAPIError as exc:
            raise SyncInconsistencyError(
                f"ticket {parent_id} updated but writing {names.child_remote} on "
                f"ticket {child_id} failed: {exc}",
                written=parent_id,
                failed=child_id,
            ) from exc
        self.logger.log_ticket_action(
            f"link_{operation.value}", child_id, parent_id, relation=names.child_remote
        )

        do_mirror = self.update_mirror if update_mirror is None else update_mirror
        if do_mirror and self.mirror is not None:
            result.states.append(SyncState.UPDATE_MIRROR)
            self._update_mirror(parent_id, child_id, kind, operation)
            result.mirror_updated = True

        result.states.append(SyncState.DONE)
        return result

    def _update_mirror(
        self, parent_id: str, child_id: str, kind: RelationKind, operation: LinkOperation
    ) -> None:
        assert self.mirror is not None  # noqa: S101 - guarded by caller
        names = kind.names
        for ticket_id, remote_name, peer in (
            (parent_id, names.parent_remote, child_id),
            (child_id, names.child_remote, parent_id),
        ):
            location = self.mirror.find_location_by_external_id(ticket_id)
            if location is None:
                self.logger.warning("ticket not mirrored locally", ticket_id=ticket_id)
                continue
            local_name = REMOTE_TO_LOCAL[remote_name]
            if operation is LinkOperation.ATTACH:
                self.mirror.add_to_multi_valued_property(location, local_name, peer)
            else:
                self.mirror.remove_from_multi_valued_property(location, local_name, peer)


__all__ = [
    "LinkSyncResult",
    "LinkSynchronizer",
    "SyncState",
    "compute_new_peers",
    "format_link_payload",
]
