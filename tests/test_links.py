from __future__ import annotations

import threading
from typing import Any

import pytest

from rtsuite.concurrency import BatchExecutor
from rtsuite.decoder import get_decoder
from rtsuite.errors import RTAPIError, SelfLinkError, SyncInconsistencyError
from rtsuite.links import LinkSynchronizer, SyncState, compute_new_peers, format_link_payload
from rtsuite.mirror import EXTERNAL_ID_PROPERTY, JsonMirror
from rtsuite.models import RELATION_NAMES, LinkOperation, RelationKind
from rtsuite.rt_rest import RemoteRequest

HOST = "rt.example.com"


class _FakeRT:
    """In-memory RT links endpoint speaking the REST 1.0 text format."""

    def __init__(self, links: dict[str, dict[str, list[str]]] | None = None):
        self.links: dict[str, dict[str, list[str]]] = links or {}
        self.calls: list[RemoteRequest] = []
        self.fail_writes_for: set[str] = set()
        self._lock = threading.Lock()

    def _render(self, ticket_id: str) -> str:
        lines = ["RT/4.4.3 200 Ok", "", f"id: ticket/{ticket_id}/links", ""]
        relations = self.links.get(ticket_id, {})
        for name in RELATION_NAMES:
            peers = relations.get(name, [])
            if not peers:
                continue
            uris = [f"fsck.com-rt://{HOST}/ticket/{p}" for p in peers]
            pad = " " * (len(name) + 2)
            lines.append(f"{name}: " + (",\n" + pad).join(uris))
        return "\n".join(lines) + "\n"

    def _apply(self, ticket_id: str, content: str) -> None:
        name, _, value = content.strip().partition(":")
        peers = [p.strip() for p in value.split(",") if p.strip()]
        self.links.setdefault(ticket_id, {})[name.strip()] = peers

    def execute(self, request: RemoteRequest) -> Any:
        with self._lock:
            self.calls.append(request)
        ticket_id = request.path.split("/")[1]
        if request.method == "POST":
            if ticket_id in self.fail_writes_for:
                raise RTAPIError(f"write to {ticket_id} failed", status=500)
            self._apply(ticket_id, dict(request.body)["content"])
            return "RT/4.4.3 200 Ok\n\n# Links for ticket updated.\n"
        text = self._render(ticket_id)
        return get_decoder(request.decoder or "links")(text, 0)

    def writes(self) -> list[tuple[str, str]]:
        return [
            (r.path, dict(r.body)["content"]) for r in self.calls if r.method == "POST"
        ]

    def reads(self) -> list[RemoteRequest]:
        return [r for r in self.calls if r.method == "GET"]


def _sync(rt: _FakeRT, mirror: JsonMirror | None = None, **kw: Any) -> LinkSynchronizer:
    return LinkSynchronizer(BatchExecutor(rt), mirror, **kw)


def _mirror(tmp_path, *ticket_ids: str) -> JsonMirror:
    mirror = JsonMirror(tmp_path / "mirror.json")
    for tid in ticket_ids:
        mirror.set_property(f"ticket-{tid}", EXTERNAL_ID_PROPERTY, tid)
    return mirror


def test_compute_new_peers():
    assert compute_new_peers(["3"], "7", LinkOperation.ATTACH) == ["7", "3"]
    assert compute_new_peers(["7", "3", "7"], "7", LinkOperation.DETACH) == ["3"]
    assert compute_new_peers(["3"], "9", LinkOperation.DETACH) == ["3"]


def test_format_link_payload():
    assert format_link_payload("Members", ["2", "3"]) == "Members: 2, 3"
    assert format_link_payload("Members", []) == "Members:"


def test_attach_dependency_writes_both_sides():
    rt = _FakeRT()
    result = _sync(rt).attach("10", "20", RelationKind.DEPENDENCY)

    assert rt.writes() == [
        ("ticket/10/links", "DependedOnBy: 20\n"),
        ("ticket/20/links", "DependsOn: 10\n"),
    ]
    assert result.parent_payload == "DependedOnBy: 20"
    assert result.child_payload == "DependsOn: 10"


def test_attach_merges_with_existing_links():
    rt = _FakeRT({"1": {"Members": ["5", "6"]}, "9": {"MemberOf": ["4"]}})
    _sync(rt).attach("1", "9", RelationKind.MEMBER)

    assert rt.links["1"]["Members"] == ["9", "5", "6"]
    assert rt.links["9"]["MemberOf"] == ["1", "4"]
    assert len(rt.reads()) == 2


def test_attach_then_detach_restores_links():
    original = {"1": {"RefersTo": ["5"]}, "2": {"ReferredToBy": ["8"]}}
    rt = _FakeRT({k: {n: list(v) for n, v in rels.items()} for k, rels in original.items()})
    sync = _sync(rt)

    sync.attach("1", "2", RelationKind.REFERENCE)
    sync.detach("1", "2", RelationKind.REFERENCE)

    assert rt.links == original


def test_detach_absent_link_rewrites_unchanged_lists():
    rt = _FakeRT({"1": {"Members": ["5"]}})
    result = _sync(rt).detach("1", "2", RelationKind.MEMBER)

    assert result.parent_peers == ["5"]
    assert result.child_peers == []
    assert rt.writes() == [("ticket/1/links", "Members: 5\n"), ("ticket/2/links", "MemberOf:\n")]


def test_clobber_skips_reads():
    rt = _FakeRT({"1": {"Members": ["5", "6"]}})
    _sync(rt).attach("1", "2", RelationKind.MEMBER, clobber=True)

    assert rt.reads() == []
    assert rt.links["1"]["Members"] == ["2"]


def test_repeated_attach_is_not_deduplicated():
    rt = _FakeRT()
    sync = _sync(rt)
    sync.attach("1", "2", RelationKind.MEMBER)
    result = sync.attach("1", "2", RelationKind.MEMBER)

    assert result.parent_peers == ["2", "2"]


def test_self_link_is_refused_by_default():
    rt = _FakeRT()
    with pytest.raises(SelfLinkError):
        _sync(rt).attach("4", "4", RelationKind.MEMBER)
    assert rt.calls == []


def test_self_link_allowed_when_enabled():
    rt = _FakeRT()
    result = _sync(rt, allow_self_links=True).attach("4", "4", RelationKind.DEPENDENCY)

    assert result.states[-1] is SyncState.DONE
    assert len(rt.writes()) == 2


def test_parent_write_failure_aborts_before_child():
    rt = _FakeRT()
    rt.fail_writes_for.add("1")
    with pytest.raises(RTAPIError):
        _sync(rt).attach("1", "2", RelationKind.MEMBER)
    assert [path for path, _ in rt.writes()] == ["ticket/1/links"]
    assert "2" not in rt.links


def test_child_write_failure_reports_inconsistency(tmp_path):
    rt = _FakeRT()
    rt.fail_writes_for.add("2")
    mirror = _mirror(tmp_path, "1", "2")

    with pytest.raises(SyncInconsistencyError) as excinfo:
        _sync(rt, mirror).attach("1", "2", RelationKind.MEMBER)

    assert excinfo.value.written == "1"
    assert excinfo.value.failed == "2"
    assert rt.links["1"]["Members"] == ["2"]
    assert mirror.get_multi_valued_property("ticket-1", "Children") == []


def test_mirror_updated_after_both_writes(tmp_path):
    rt = _FakeRT()
    mirror = _mirror(tmp_path, "10", "20")
    result = _sync(rt, mirror).attach("10", "20", RelationKind.DEPENDENCY)

    assert result.mirror_updated
    assert mirror.get_multi_valued_property("ticket-10", "Blocking") == ["20"]
    assert mirror.get_multi_valued_property("ticket-20", "Blockers") == ["10"]

    _sync(rt, mirror).detach("10", "20", RelationKind.DEPENDENCY)
    assert mirror.get_multi_valued_property("ticket-10", "Blocking") == []
    assert mirror.get_multi_valued_property("ticket-20", "Blockers") == []


def test_mirror_update_can_be_skipped(tmp_path):
    rt = _FakeRT()
    mirror = _mirror(tmp_path, "1", "2")
    result = _sync(rt, mirror).attach("1", "2", RelationKind.MEMBER, update_mirror=False)

    assert not result.mirror_updated
    assert SyncState.UPDATE_MIRROR not in result.states
    assert mirror.get_multi_valued_property("ticket-1", "Children") == []


def test_unmirrored_ticket_is_skipped(tmp_path):
    rt = _FakeRT()
    mirror = _mirror(tmp_path, "1")
    _sync(rt, mirror).attach("1", "2", RelationKind.MEMBER)

    assert mirror.get_multi_valued_property("ticket-1", "Children") == ["2"]
    assert mirror.find_location_by_external_id("2") is None


def test_states_follow_fixed_sequence(tmp_path):
    rt = _FakeRT()
    result = _sync(rt, _mirror(tmp_path, "1", "2")).attach("1", "2", RelationKind.MEMBER)

    assert result.states == [
        SyncState.COMPUTE_EXISTING,
        SyncState.COMPUTE_NEW_SETS,
        SyncState.WRITE_PARENT_SIDE,
        SyncState.WRITE_CHILD_SIDE,
        SyncState.UPDATE_MIRROR,
        SyncState.DONE,
    ]
