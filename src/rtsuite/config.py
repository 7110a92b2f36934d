from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

DEFAULT_URL = "http://localhost/"
DEFAULT_TIMEOUT = 30.0
DOTENV_CANDIDATES = (".env", ".env.local")


class ConfigError(RuntimeError):
    pass


@dataclass
class SuiteConfig:
    server_url: str
    server_user: str | None
    server_password: str | None
    server_timeout: float
    default_queue: str
    allow_self_links: bool
    update_mirror: bool
    mirror_path: Path
    # Concurrency configuration
    concurrency_max_workers: int
    # Logging configuration
    logging_json_enabled: bool
    logging_level: str
    # Credentials file
    env_load_dotenv: bool = True
    env_dotenv_path: Path | None = None


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name, value)
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return cast(dict[str, Any], value)


def _load_dotenv(base_dir: Path, explicit: str | None) -> Path | None:
    """Load the first existing credentials file; already-set variables win."""
    candidates = [explicit] if explicit else list(DOTENV_CANDIDATES)
    for name in candidates:
        env_file = base_dir / name
        if env_file.exists():
            load_dotenv(env_file, override=False)
            return env_file
    return None


def build_config(raw: dict[str, Any], base_dir: Path) -> SuiteConfig:
    env = _section(raw, 'env')
    load_env_file = bool(env.get('load_dotenv', True))
    dotenv_path = _load_dotenv(base_dir, env.get('dotenv_path')) if load_env_file else None

    server = _section(raw, 'server')
    defaults = _section(raw, 'defaults')
    links = _section(raw, 'links')
    mirror = _section(raw, 'mirror')
    concurrency_config = _section(raw, 'concurrency')
    logging_config = _section(raw, 'logging')

    url = os.getenv('RTSUITE_URL') or server.get('url', DEFAULT_URL)
    user = os.getenv('RTSUITE_USER') or _resolve_env_var(server.get('user'))
    password = os.getenv('RTSUITE_PASSWORD') or _resolve_env_var(server.get('password'))

    return SuiteConfig(
        server_url=str(url),
        server_user=user,
        server_password=password,
        server_timeout=float(server.get('timeout', DEFAULT_TIMEOUT)),
        default_queue=str(defaults.get('queue', 'General')),
        # Self links are refused unless explicitly enabled.
        allow_self_links=bool(links.get('allow_self_links', False)),
        update_mirror=bool(links.get('update_mirror', True)),
        mirror_path=base_dir / mirror.get('path', '.rtsuite/mirror.json'),
        concurrency_max_workers=int(concurrency_config.get('max_workers', 4)),
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=logging_config.get('level', 'INFO'),
        env_load_dotenv=load_env_file,
        env_dotenv_path=dotenv_path,
    )


def load_config(path: str | Path) -> SuiteConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    try:
        raw = yaml.safe_load(p.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(raw, dict):
        raise ConfigError(f'Configuration root must be a mapping: {p}')
    return build_config(cast(dict[str, Any], raw), p.parent)


__all__ = ["ConfigError", "SuiteConfig", "build_config", "load_config"]
