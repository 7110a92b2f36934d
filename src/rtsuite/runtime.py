"""Runtime helpers for rtsuite CLI orchestration."""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from typing import Any, Protocol

from rtsuite.config import SuiteConfig, load_config
from rtsuite.errors import RTAPIError, SelfLinkError, SyncInconsistencyError, classify_error
from rtsuite.logging import configure_logging, get_logger

# Failures reported to the user with exit code 1 instead of a traceback.
_REPORTED_ERRORS = (RTAPIError, SyncInconsistencyError, SelfLinkError)


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str], SuiteConfig] = load_config
) -> SuiteConfig:
    """Load SuiteConfig for the given argparse namespace and apply CLI overrides."""
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    cfg = loader(args.config)
    url_override = getattr(args, "url", None)
    if url_override:
        cfg.server_url = url_override
    if getattr(args, "allow_self_link", False):
        cfg.allow_self_links = True
    level = "WARNING" if getattr(args, "quiet", False) else cfg.logging_level
    configure_logging(json_logging=cfg.logging_json_enabled, level=level)
    return cfg


def execute_command(handler: _HandlerCallable, args: Any, command: str) -> int:
    """Execute a command handler, timing it and reporting remote failures."""
    logger = get_logger()
    start = time.perf_counter()
    try:
        result = handler()
    except _REPORTED_ERRORS as exc:
        info = classify_error(exc)
        logger.log_error(
            f"command {command} failed", error=info.message, category=info.category
        )
        print(f"[{command}] {info.category}: {info.message}", file=sys.stderr)
        return 1
    exit_code = int(result) if result is not None else 0
    logger.log_performance(
        f"command_{command}", (time.perf_counter() - start) * 1000, exit_code=exit_code
    )
    return exit_code


__all__ = ["execute_command", "prepare_config"]
