from __future__ import annotations

from types import SimpleNamespace

import pytest

from rtsuite import runtime
from rtsuite.errors import RTAPIError, SelfLinkError, SyncInconsistencyError


class StubConfig:
    def __init__(self) -> None:
        self.server_url = "http://localhost/"
        self.allow_self_links = False
        self.logging_json_enabled = False
        self.logging_level = "INFO"


def test_prepare_config_requires_config_attribute() -> None:
    args = SimpleNamespace(cmd="show")
    with pytest.raises(AttributeError):
        runtime.prepare_config(args)


def test_prepare_config_applies_overrides() -> None:
    args = SimpleNamespace(
        cmd="link", config="config.yml", url="https://rt.example.com", allow_self_link=True
    )

    def loader(path: str) -> StubConfig:
        assert path == "config.yml"
        return StubConfig()

    cfg = runtime.prepare_config(args, loader=loader)
    assert cfg.server_url == "https://rt.example.com"
    assert cfg.allow_self_links is True


def test_prepare_config_keeps_defaults() -> None:
    args = SimpleNamespace(cmd="show", config="config.yml", quiet=True)
    cfg = runtime.prepare_config(args, loader=lambda path: StubConfig())
    assert cfg.server_url == "http://localhost/"
    assert cfg.allow_self_links is False


def test_execute_command_success() -> None:
    assert runtime.execute_command(lambda: 5, SimpleNamespace(), "show") == 5
    assert runtime.execute_command(lambda: None, SimpleNamespace(), "show") == 0


@pytest.mark.parametrize(
    ("exc", "category"),
    [
        (RTAPIError("denied", status=401), "rt.auth"),
        (SyncInconsistencyError("half", written="1", failed="2"), "sync.inconsistent"),
        (SelfLinkError("refusing to link 4 to itself"), "generic"),
    ],
)
def test_execute_command_reports_remote_failures(
    exc: Exception, category: str, capsys: pytest.CaptureFixture[str]
) -> None:
    def boom() -> None:
        raise exc

    assert runtime.execute_command(boom, SimpleNamespace(), "link") == 1
    assert f"[link] {category}:" in capsys.readouterr().err


def test_execute_command_propagates_unexpected_exceptions() -> None:
    def boom() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        runtime.execute_command(boom, SimpleNamespace(), "show")
