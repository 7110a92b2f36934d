"""Ticket operations over the REST 1.0 gateway.

``TicketService`` is the single entry point used by the CLI: it owns the
REST client, the batch executor, the entry assembler, the link synchronizer
and (optionally) the local mirror.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .assembler import EntryAssembler, compose_snapshot
from .concurrency import BatchExecutor, ConcurrencyConfig
from .config import SuiteConfig
from .links import LinkSynchronizer, LinkSyncResult
from .logging import get_logger
from .mirror import JsonMirror, NameCache, get_name_cache, mirror_names
from .models import FieldRecord, HistoryEntry, LinkOperation, LinkSet, RelationKind, TicketSnapshot
from .rt_rest import (
    Gateway,
    RTRestClient,
    comment_request,
    create_request,
    description_request,
    edit_request,
    history_entry_request,
    history_request,
    links_request,
    queues_request,
    search_request,
    show_request,
)


class TicketService:
    def __init__(
        self,
        gateway: Gateway,
        *,
        mirror: JsonMirror | None = None,
        concurrency: ConcurrencyConfig | None = None,
        allow_self_links: bool = False,
        update_mirror: bool = True,
        default_queue: str = "General",
        name_cache: NameCache | None = None,
    ) -> None:
        self.gateway = gateway
        self.mirror = mirror
        self.default_queue = default_queue
        self.executor = BatchExecutor(gateway, concurrency)
        self.assembler = EntryAssembler(self.executor)
        self.links_sync = LinkSynchronizer(
            self.executor,
            mirror,
            allow_self_links=allow_self_links,
            update_mirror=update_mirror,
        )
        self.name_cache = name_cache or get_name_cache()
        self.logger = get_logger()

    @classmethod
    def from_config(cls, cfg: SuiteConfig) -> TicketService:
        client = RTRestClient(
            base_url=cfg.server_url,
            user=cfg.server_user,
            password=cfg.server_password,
            timeout=cfg.server_timeout,
        )
        return cls(
            client,
            mirror=JsonMirror(cfg.mirror_path),
            concurrency=ConcurrencyConfig(max_workers=cfg.concurrency_max_workers),
            allow_self_links=cfg.allow_self_links,
            update_mirror=cfg.update_mirror,
            default_queue=cfg.default_queue,
        )

    def close(self) -> None:
        self.executor.close()

    # ---- reads -----------------------------------------------------------
    def show(self, ticket_id: str) -> FieldRecord:
        result: FieldRecord = self.executor.call(show_request(ticket_id))
        return result

    def links(self, ticket_id: str) -> LinkSet:
        result: LinkSet = self.executor.call(links_request(ticket_id))
        return result

    def search(self, query: str, orderby: str | None = None) -> list[str]:
        result: list[str] = self.executor.call(search_request(query, orderby))
        return result

    def queues(self) -> list[tuple[str, str]]:
        result: list[tuple[str, str]] = self.executor.call(queues_request())
        return result

    def history(self, ticket_id: str) -> list[tuple[str, str]]:
        result: list[tuple[str, str]] = self.executor.call(history_request(ticket_id))
        return result

    def history_long(self, ticket_id: str) -> list[HistoryEntry]:
        result: list[HistoryEntry] = self.executor.call(
            history_request(ticket_id, long_format=True)
        )
        return result

    def history_entry(self, ticket_id: str, history_id: str) -> HistoryEntry | None:
        result: HistoryEntry | None = self.executor.call(
            history_entry_request(ticket_id, history_id)
        )
        return result

    def comments(self, ticket_id: str) -> list[HistoryEntry]:
        return [entry.comment_view() for entry in self.history_long(ticket_id) if entry.is_comment]

    def description(self, ticket_id: str) -> str | None:
        result: str | None = self.executor.call(description_request(ticket_id))
        return result

    def snapshot(self, ticket_id: str, **parts: bool) -> TicketSnapshot | None:
        return self.assembler.fetch(ticket_id, **parts)

    def snapshots(self, ticket_ids: list[str]) -> dict[str, TicketSnapshot]:
        """Fetch many tickets' fields concurrently, keyed by ticket id."""
        results = self.executor.gather((tid, show_request(tid)) for tid in ticket_ids)
        out: dict[str, TicketSnapshot] = {}
        for ticket_id, record in results:
            snap = compose_snapshot(record)
            if snap is not None:
                out[ticket_id] = snap
        return out

    # ---- writes ----------------------------------------------------------
    def create(self, subject: str, *, queue: str | None = None, text: str = "", **fields: str) -> str | None:
        payload: dict[str, str] = {"Queue": queue or self.default_queue, "Subject": subject}
        payload.update(fields)
        if text:
            payload["Text"] = text
        ticket_id: str | None = self.executor.call(create_request(payload))
        if ticket_id is None:
            self.logger.warning("ticket creation not acknowledged", subject=subject)
        else:
            self.logger.log_ticket_action("create", ticket_id)
        return ticket_id

    def edit(self, ticket_id: str, fields: Mapping[str, str]) -> str:
        out: str = self.executor.call(edit_request(ticket_id, fields))
        self.logger.log_ticket_action("edit", ticket_id, fields=sorted(fields))
        return out

    def comment(self, ticket_id: str, text: str, *, correspond: bool = False) -> str:
        out: str = self.executor.call(comment_request(ticket_id, text, correspond=correspond))
        self.logger.log_ticket_action("correspond" if correspond else "comment", ticket_id)
        return out

    def resolve_and_comment(self, ticket_id: str, text: str) -> None:
        """Resolve first, then comment; the second call is only made after the first returns."""
        self.edit(ticket_id, {"Status": "resolved"})
        self.comment(ticket_id, text)

    def link(
        self,
        parent_id: str,
        child_id: str,
        kind: RelationKind,
        operation: LinkOperation = LinkOperation.ATTACH,
        **kw: Any,
    ) -> LinkSyncResult:
        return self.links_sync.mutate(parent_id, child_id, kind, operation, **kw)

    # ---- mirror ----------------------------------------------------------
    def pull(self, ticket_id: str) -> str | None:
        """Fetch a full snapshot and store it in the local mirror."""
        if self.mirror is None:
            raise RuntimeError("no local mirror configured")
        snap = self.snapshot(ticket_id)
        if snap is None:
            return None
        location = self.mirror.store_snapshot(snap)
        self.logger.log_ticket_action("pull", ticket_id, location=location)
        return location

    def refresh_names(self) -> Mapping[str, str]:
        mirror = self.mirror
        if mirror is None:
            return self.name_cache.refresh(list)
        return self.name_cache.refresh(lambda: mirror_names(mirror))


__all__ = ["TicketService"]
