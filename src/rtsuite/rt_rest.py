from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import requests

from .decoder import get_decoder
from .errors import RTAPIError, redact
from .logging import get_logger
from .observability import get_tracer
from .patterns import parse_status_line

REST_PREFIX = "REST/1.0"
USER_AGENT = "rtsuite-rest/0.3.0"
HTTP_ERROR_STATUS = 400

Method = Literal["GET", "POST"]


@dataclass(frozen=True)
class RemoteRequest:
    """One call against the REST 1.0 endpoint.

    ``decoder`` names an entry of :data:`rtsuite.decoder.DECODERS`; ``None``
    returns the raw response text.
    """

    path: str
    method: Method = "GET"
    query: tuple[tuple[str, str], ...] = ()
    body: tuple[tuple[str, str], ...] = ()
    decoder: str | None = None


class Gateway(Protocol):
    def execute(self, request: RemoteRequest) -> Any: ...  # pragma: no cover - structural only


def compose_content(fields: Iterable[tuple[str, str]]) -> str:
    """Render ``Name: value`` form content; multi-line values get indented continuations."""
    lines: list[str] = []
    for name, value in fields:
        first, *rest = str(value).split("\n")
        lines.append(f"{name}: {first}".rstrip())
        lines.extend(f" {part}" for part in rest)
    return "\n".join(lines) + "\n"


def format_link_list(peers: Iterable[str]) -> str:
    return ", ".join(peers)


# ---- request builders ----------------------------------------------------
def show_request(ticket_id: str) -> RemoteRequest:
    return RemoteRequest(f"ticket/{ticket_id}/show", decoder="show")


def links_request(ticket_id: str) -> RemoteRequest:
    return RemoteRequest(f"ticket/{ticket_id}/links/show", decoder="links")


def set_links_request(ticket_id: str, relation: str, peers: Iterable[str]) -> RemoteRequest:
    content = f"{relation}: {format_link_list(peers)}".rstrip() + "\n"
    return RemoteRequest(f"ticket/{ticket_id}/links", "POST", body=(("content", content),))


def history_request(ticket_id: str, *, long_format: bool = False) -> RemoteRequest:
    if long_format:
        return RemoteRequest(
            f"ticket/{ticket_id}/history", query=(("format", "l"),), decoder="history_long"
        )
    return RemoteRequest(f"ticket/{ticket_id}/history", decoder="history_short")


def history_entry_request(ticket_id: str, history_id: str) -> RemoteRequest:
    return RemoteRequest(f"ticket/{ticket_id}/history/id/{history_id}", decoder="history_entry")


def description_request(ticket_id: str) -> RemoteRequest:
    return RemoteRequest(
        f"ticket/{ticket_id}/history", query=(("format", "l"),), decoder="description"
    )


def search_request(query: str, orderby: str | None = None) -> RemoteRequest:
    params: list[tuple[str, str]] = [("query", query), ("format", "i")]
    if orderby:
        params.append(("orderby", orderby))
    return RemoteRequest("search/ticket", query=tuple(params), decoder="search")


def queues_request() -> RemoteRequest:
    return RemoteRequest("search/queue", query=(("query", ""),), decoder="queues")


def create_request(fields: Mapping[str, str]) -> RemoteRequest:
    content = compose_content([("id", "ticket/new"), *fields.items()])
    return RemoteRequest("ticket/new", "POST", body=(("content", content),), decoder="created")


def edit_request(ticket_id: str, fields: Mapping[str, str]) -> RemoteRequest:
    content = compose_content(fields.items())
    return RemoteRequest(f"ticket/{ticket_id}/edit", "POST", body=(("content", content),))


def comment_request(ticket_id: str, text: str, *, correspond: bool = False) -> RemoteRequest:
    action = "correspond" if correspond else "comment"
    content = compose_content([("id", ticket_id), ("Action", action), ("Text", text)])
    return RemoteRequest(f"ticket/{ticket_id}/comment", "POST", body=(("content", content),))


# ---- client ----------------------------------------------------------------
@dataclass
class RTRestClient:
    """Synchronous REST 1.0 client.

    Every call either returns the (decoded) response or raises
    :class:`~rtsuite.errors.RTAPIError`; there is no automatic retry.
    """

    base_url: str
    user: str | None = None
    password: str | None = None
    timeout: float = 30.0
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{REST_PREFIX}/{path.lstrip('/')}"

    def _credentials(self) -> list[tuple[str, str]]:
        if self.user and self.password:
            return [("user", self.user), ("pass", self.password)]
        return []

    def fetch_text(self, request: RemoteRequest) -> str:
        url = self._url(request.path)
        query = list(request.query)
        body = list(request.body)
        if request.method == "POST":
            body.extend(self._credentials())
        else:
            query.extend(self._credentials())
        logger = get_logger()
        with get_tracer().start_as_current_span("rt.request") as span:
            span.set_attribute("rt.method", request.method)
            span.set_attribute("rt.path", request.path)
            try:
                response = self._session.request(
                    request.method,
                    url,
                    params=query or None,
                    data=body or None,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                logger.log_error("rt request failed", error=str(exc), path=request.path)
                raise RTAPIError(
                    redact(f"RT {request.method} {url} failed: {exc}")
                ) from exc
            span.set_attribute("http.status_code", response.status_code)
        if response.status_code >= HTTP_ERROR_STATUS:
            raise RTAPIError(
                f"RT {request.method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        text = response.text or ""
        status = parse_status_line(text)
        if status is not None and status.code >= HTTP_ERROR_STATUS:
            raise RTAPIError(
                f"RT {request.method} {request.path} returned {status.code} {status.reason}",
                status=status.code,
                response_text=text,
            )
        logger.debug("rt response", path=request.path, size=len(text))
        return text

    def execute(self, request: RemoteRequest) -> Any:
        text = self.fetch_text(request)
        if request.decoder is None:
            return text
        return get_decoder(request.decoder)(text, 0)


__all__ = [
    "Gateway",
    "RTRestClient",
    "RemoteRequest",
    "comment_request",
    "compose_content",
    "create_request",
    "description_request",
    "edit_request",
    "format_link_list",
    "history_entry_request",
    "history_request",
    "links_request",
    "queues_request",
    "search_request",
    "set_links_request",
    "show_request",
]
