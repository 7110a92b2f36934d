"""rtsuite CLI.

Subcommands:
  show     -> fetch one ticket snapshot (fields, links, description)
  search   -> list ticket ids matching a query
  queues   -> list queues
  history  -> short or long ticket history, or just the comments
  comment  -> comment on / reply to a ticket (optionally resolving it first)
  create   -> create a ticket
  link     -> attach a member/dependency/reference link
  unlink   -> detach a link
  pull     -> store ticket snapshots in the local mirror
  names    -> rebuild and print the id -> subject name cache
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Iterable
from typing import Any

from rtsuite.config import SuiteConfig
from rtsuite.models import HistoryEntry, LinkOperation, RelationKind
from rtsuite.observability import configure_telemetry
from rtsuite.runtime import execute_command, prepare_config
from rtsuite.tickets import TicketService

CONFIG_DEFAULT = "rtsuite.config.yaml"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=CONFIG_DEFAULT)
    parser.add_argument("--url", help="Override server URL")
    parser.add_argument("--json", action="store_true", help="Emit JSON output")


def _add_link_args(parser: argparse.ArgumentParser) -> None:
    _add_common(parser)
    parser.add_argument("parent")
    parser.add_argument("child")
    parser.add_argument(
        "--kind",
        choices=[k.value for k in RelationKind],
        default=RelationKind.MEMBER.value,
    )
    parser.add_argument(
        "--clobber",
        action="store_true",
        help="Replace existing links instead of merging with them",
    )
    parser.add_argument("--no-mirror", action="store_true", help="Skip local mirror update")
    parser.add_argument("--allow-self-link", action="store_true")


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(prog="rtsuite", description="Request tracker ticket sync")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: RTSUITE_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ps = sub.add_parser("show", help="Show a ticket snapshot")
    _add_common(ps)
    ps.add_argument("ticket")
    ps.add_argument("--no-links", action="store_true")
    ps.add_argument("--no-description", action="store_true")

    pse = sub.add_parser("search", help="Search tickets")
    _add_common(pse)
    pse.add_argument("query")
    pse.add_argument("--orderby")

    pq = sub.add_parser("queues", help="List queues")
    _add_common(pq)

    ph = sub.add_parser("history", help="Show ticket history")
    _add_common(ph)
    ph.add_argument("ticket")
    mode = ph.add_mutually_exclusive_group()
    mode.add_argument("--long", action="store_true")
    mode.add_argument("--comments", action="store_true")

    pc = sub.add_parser("comment", help="Comment on a ticket")
    _add_common(pc)
    pc.add_argument("ticket")
    pc.add_argument("text")
    pc.add_argument("--correspond", action="store_true", help="Reply to requestors")
    pc.add_argument("--resolve", action="store_true", help="Resolve before commenting")

    pn = sub.add_parser("create", help="Create a ticket")
    _add_common(pn)
    pn.add_argument("subject")
    pn.add_argument("--queue")
    pn.add_argument("--text", default="")

    pl = sub.add_parser("link", help="Attach a link between two tickets")
    _add_link_args(pl)
    pu = sub.add_parser("unlink", help="Detach a link between two tickets")
    _add_link_args(pu)

    pp = sub.add_parser("pull", help="Store ticket snapshots in the local mirror")
    _add_common(pp)
    pp.add_argument("tickets", nargs="+")

    pm = sub.add_parser("names", help="Rebuild the ticket name cache")
    _add_common(pm)
    return p


def _print_lines(lines: Iterable[str]) -> None:
    for line in lines:
        print(line)


def _history_payload(entries: list[HistoryEntry]) -> list[dict[str, Any]]:
    return [{"id": e.history_id, "fields": e.record.pairs()} for e in entries]


def _cmd_show(service: TicketService, args: argparse.Namespace) -> int:
    snap = service.snapshot(
        args.ticket, links=not args.no_links, description=not args.no_description
    )
    if snap is None:
        print(f"[show] ticket {args.ticket} not found", file=sys.stderr)
        return 1
    props = snap.to_properties()
    if args.json:
        print(json.dumps(props, indent=2))
    else:
        _print_lines(f"{k}: {v}" for k, v in props.items())
    return 0


def _cmd_search(service: TicketService, args: argparse.Namespace) -> int:
    ids = service.search(args.query, args.orderby)
    if args.json:
        print(json.dumps(ids))
    else:
        _print_lines(ids)
    return 0


def _cmd_queues(service: TicketService, args: argparse.Namespace) -> int:
    queues = service.queues()
    if args.json:
        print(json.dumps([{"id": qid, "name": name} for qid, name in queues], indent=2))
    else:
        _print_lines(f"{qid}: {name}" for qid, name in queues)
    return 0


def _cmd_history(service: TicketService, args: argparse.Namespace) -> int:
    if args.long or args.comments:
        entries = service.comments(args.ticket) if args.comments else service.history_long(args.ticket)
        payload = _history_payload(entries)
        if args.json:
            print(json.dumps(payload, indent=2))
        else:
            for entry in entries:
                print(f"# {entry.history_id}")
                _print_lines(f"{k}: {v}" for k, v in entry.record)
        return 0
    short = service.history(args.ticket)
    if args.json:
        print(json.dumps([{"id": hid, "summary": s} for hid, s in short], indent=2))
    else:
        _print_lines(f"{hid}: {s}" for hid, s in short)
    return 0


def _cmd_comment(service: TicketService, args: argparse.Namespace) -> int:
    if args.resolve:
        service.resolve_and_comment(args.ticket, args.text)
    else:
        service.comment(args.ticket, args.text, correspond=args.correspond)
    return 0


def _cmd_create(service: TicketService, args: argparse.Namespace) -> int:
    ticket_id = service.create(args.subject, queue=args.queue, text=args.text)
    if ticket_id is None:
        print("[create] server did not acknowledge ticket creation", file=sys.stderr)
        return 1
    print(json.dumps({"id": ticket_id}) if args.json else ticket_id)
    return 0


def _cmd_link(service: TicketService, args: argparse.Namespace, operation: LinkOperation) -> int:
    result = service.link(
        args.parent,
        args.child,
        RelationKind.parse(args.kind),
        operation,
        clobber=args.clobber,
        update_mirror=False if args.no_mirror else None,
    )
    if args.json:
        print(
            json.dumps(
                {
                    "parent": result.parent_payload,
                    "child": result.child_payload,
                    "mirror_updated": result.mirror_updated,
                },
                indent=2,
            )
        )
    else:
        _print_lines([f"#{args.parent} {result.parent_payload}", f"#{args.child} {result.child_payload}"])
    return 0


def _cmd_pull(service: TicketService, args: argparse.Namespace) -> int:
    missing = 0
    for ticket_id in args.tickets:
        location = service.pull(ticket_id)
        if location is None:
            print(f"[pull] ticket {ticket_id} not found", file=sys.stderr)
            missing += 1
        elif not args.quiet:
            print(f"{ticket_id} -> {location}")
    return 1 if missing else 0


def _cmd_names(service: TicketService, args: argparse.Namespace) -> int:
    names = service.refresh_names()
    if args.json:
        print(json.dumps(dict(names), indent=2))
    else:
        _print_lines(f"{tid}: {name}" for tid, name in sorted(names.items()))
    return 0


def _build_service(cfg: SuiteConfig) -> TicketService:
    return TicketService.from_config(cfg)


def _build_handlers(args: argparse.Namespace, service: TicketService) -> dict[str, Any]:
    return {
        "show": lambda: _cmd_show(service, args),
        "search": lambda: _cmd_search(service, args),
        "queues": lambda: _cmd_queues(service, args),
        "history": lambda: _cmd_history(service, args),
        "comment": lambda: _cmd_comment(service, args),
        "create": lambda: _cmd_create(service, args),
        "link": lambda: _cmd_link(service, args, LinkOperation.ATTACH),
        "unlink": lambda: _cmd_link(service, args, LinkOperation.DETACH),
        "pull": lambda: _cmd_pull(service, args),
        "names": lambda: _cmd_names(service, args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    exporter = os.environ.get("RTSUITE_OTEL_EXPORTER")
    if exporter:
        configure_telemetry(
            service_name=os.environ.get("RTSUITE_SERVICE_NAME", "rtsuite-cli"),
            exporter="otlp" if exporter.lower() == "otlp" else "console",
            endpoint=os.environ.get("RTSUITE_OTEL_ENDPOINT"),
        )
    if not getattr(args, "quiet", False) and os.environ.get("RTSUITE_QUIET") == "1":
        args.quiet = True
    cfg = prepare_config(args)
    service = _build_service(cfg)
    try:
        handler = _build_handlers(args, service).get(args.cmd)
        if handler is None:  # pragma: no cover - argparse enforces valid choices
            parser.print_help()
            return 1
        return execute_command(handler, args, args.cmd)
    finally:
        service.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
