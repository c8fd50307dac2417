"""
Tests for adapter discovery under plugins/.
"""

import sys
import textwrap

import pytest

from core import plugin_loader
from core.adapters import ComputedAdapter, PageAdapter

SHIPPED = {"cs2", "fortnite", "gta", "lol", "roblox"}

DEMO_PLUGIN = textwrap.dedent(
    '''
    from core.adapters import ComputedAdapter, Extraction
    from core.models import Confidence, SourceDescriptor


    class DemoAdapter(ComputedAdapter):
        descriptor = SourceDescriptor(source_id="demo", entity="demo", event_kind="tick", display_name="Demo")
        source_url = "https://example.test/demo"

        def compute(self, now):
            return Extraction(event_time_utc=now, confidence=Confidence.LOW)
    '''
)


@pytest.fixture
def restore_registry():
    yield
    for name in ("plugins.demo.adapter", "plugins.broken.adapter"):
        sys.modules.pop(name, None)
    plugin_loader.refresh_registry()


def test_discovers_shipped_adapters():
    plugin_loader.refresh_registry()

    assert set(plugin_loader.list_available()) == SHIPPED


def test_get_returns_adapter_class():
    cls = plugin_loader.get("lol")

    assert issubclass(cls, PageAdapter)
    assert cls.descriptor.event_kind == "next-patch"


def test_unknown_source_raises_key_error():
    with pytest.raises(KeyError):
        plugin_loader.get("minecraft")


def test_build_adapters_defaults_to_all_sorted():
    adapters = plugin_loader.build_adapters()

    assert [a.name for a in adapters] == sorted(SHIPPED)


def test_build_adapters_keeps_requested_order():
    adapters = plugin_loader.build_adapters(["gta", "cs2"])

    assert [a.name for a in adapters] == ["gta", "cs2"]
    assert isinstance(adapters[0], ComputedAdapter)


def test_broken_plugin_is_skipped(tmp_path, restore_registry):
    (tmp_path / "demo").mkdir()
    (tmp_path / "demo" / "adapter.py").write_text(DEMO_PLUGIN, encoding="utf-8")
    (tmp_path / "broken").mkdir()
    (tmp_path / "broken" / "adapter.py").write_text("raise RuntimeError('bad plugin')\n", encoding="utf-8")

    plugin_loader.refresh_registry(tmp_path)

    assert set(plugin_loader.list_available()) == {"demo"}
    assert "plugins.broken.adapter" not in sys.modules
