"""
End-to-end tests for the refresh entry point, using the offline GTA source or stub adapters.
"""

import asyncio

import pytest
import yaml

import main
from core.interfaces import SourceAdapter
from core.models import AdapterFailure, FailureKind, SourceDescriptor

ENV_VARS = ("NEXTRESET_CONFIG", "NEXTRESET_DATA_DIR", "NEXTRESET_DEBUG_DIR", "NEXTRESET_BROWSER_BUDGET")


@pytest.fixture
def config(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    def write(**values):
        values.setdefault("data_dir", str(tmp_path / "data"))
        values.setdefault("debug_dir", None)
        values.setdefault("sources", ["gta"])
        path = tmp_path / "sources.yml"
        path.write_text(yaml.safe_dump(values), encoding="utf-8")
        monkeypatch.setenv("NEXTRESET_CONFIG", str(path))
        return path

    return write


def test_refresh_writes_live_and_lkg(tmp_path, config):
    config()

    assert asyncio.run(main.main([])) == main.EXIT_OK
    assert (tmp_path / "data" / "gta.weekly-reset.json").is_file()
    assert (tmp_path / "data" / "_lkg" / "gta.weekly-reset.json").is_file()


def test_command_line_ids_override_config(tmp_path, config):
    config(sources=["cs2"])

    assert asyncio.run(main.main(["gta"])) == main.EXIT_OK
    assert not (tmp_path / "data" / "cs2.last-update.json").exists()


def test_unknown_source_is_fatal(config):
    config()

    assert asyncio.run(main.main(["minecraft"])) == main.EXIT_FATAL


def test_invalid_config_is_fatal(config):
    config(browser_budget=-3)

    assert asyncio.run(main.main([])) == main.EXIT_FATAL


def test_unusable_data_dir_is_fatal(tmp_path, config):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    config(data_dir=str(blocker))

    assert asyncio.run(main.main([])) == main.EXIT_FATAL


class _AlwaysFailing(SourceAdapter):
    def __init__(self, source_id):
        self.descriptor = SourceDescriptor(
            source_id=source_id, entity=source_id, event_kind="next-event", display_name=source_id
        )

    async def run(self, http):
        return AdapterFailure(failure_kind=FailureKind.UNAVAILABLE, explanation="HTTP 503")


def test_majority_failure_exits_with_one(config, monkeypatch):
    config()
    monkeypatch.setattr(main, "build_adapters", lambda ids: [_AlwaysFailing("a"), _AlwaysFailing("b")])

    assert asyncio.run(main.main([])) == 1
