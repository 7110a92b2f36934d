"""rtsuite - request tracker REST 1.0 client with a local ticket mirror.

High-level public API:

from rtsuite import TicketService, load_config, RelationKind

cfg = load_config('rtsuite.config.yaml')
service = TicketService.from_config(cfg)
snapshot = service.snapshot('42')
service.link('10', '20', RelationKind.DEPENDENCY)

The decoders in :mod:`rtsuite.decoder` can be used on their own against any
captured REST 1.0 response text.
"""

from __future__ import annotations

from .config import SuiteConfig, load_config
from .models import (
    FieldRecord,
    HistoryEntry,
    LinkOperation,
    LinkSet,
    RelationKind,
    TicketSnapshot,
)
from .tickets import TicketService

__version__ = "0.3.0"

__all__ = [
    "FieldRecord",
    "HistoryEntry",
    "LinkOperation",
    "LinkSet",
    "RelationKind",
    "SuiteConfig",
    "TicketService",
    "TicketSnapshot",
    "__version__",
    "load_config",
]
