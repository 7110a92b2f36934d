"""Compose decoded show/links/description results into one TicketSnapshot."""

from __future__ import annotations

from .concurrency import BatchExecutor
from .logging import get_logger
from .models import TICKET_FIELDS, FieldRecord, LinkSet, TicketSnapshot
from .patterns import extract_id
from .rt_rest import RemoteRequest, description_request, links_request, show_request


def compose_snapshot(
    record: FieldRecord,
    links: LinkSet | None = None,
    description: str | None = None,
) -> TicketSnapshot | None:
    """Build a snapshot, or ``None`` when the record carries no usable id."""
    ticket_id = extract_id(record.get("id") or "")
    if ticket_id is None:
        return None
    fields: dict[str, str] = {"id": ticket_id}
    for name in TICKET_FIELDS:
        if name == "id":
            continue
        value = record.get(name)
        if value is not None:
            fields[name] = value
    return TicketSnapshot(
        ticket_id=ticket_id,
        fields=fields,
        links=links if links is not None else LinkSet(),
        description=description,
    )


class EntryAssembler:
    def __init__(self, executor: BatchExecutor) -> None:
        self.executor = executor
        self.logger = get_logger()

    def fetch(
        self,
        ticket_id: str,
        *,
        fields: bool = True,
        links: bool = True,
        description: bool = True,
    ) -> TicketSnapshot | None:
        """Fetch the requested parts concurrently and wait for all of them.

        With ``fields=False`` no show request is made and the snapshot only
        carries the id given by the caller.
        """
        requests: list[tuple[str, RemoteRequest]] = []
        if fields:
            requests.append(("fields", show_request(ticket_id)))
        if links:
            requests.append(("links", links_request(ticket_id)))
        if description:
            requests.append(("description", description_request(ticket_id)))
        results = dict(self.executor.gather(requests))

        record = results["fields"] if fields else FieldRecord([("id", ticket_id)])
        snapshot = compose_snapshot(record, results.get("links"), results.get("description"))
        if snapshot is None:
            self.logger.warning("no ticket decoded", ticket_id=ticket_id)
        return snapshot


__all__ = ["EntryAssembler", "compose_snapshot"]
