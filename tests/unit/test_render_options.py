from __future__ import annotations

import logging
from datetime import datetime
from typing import List

import pytest

from common.render_options import DEFAULT_REGISTRY, RAMBUTAN_OPTION, RenderOption, RenderOptions
from state.models import ToggleState, Viewer


MEMBER = Viewer(user_id="42", is_registered=True)


class FakeLookup:
    def __init__(self, toggle: ToggleState) -> None:
        self.toggle = toggle
        self.calls: List[Viewer] = []

    def __call__(self, viewer: Viewer) -> ToggleState:
        self.calls.append(viewer)
        return self.toggle


@pytest.fixture
def noon(florida):
    return lambda: datetime(2026, 10, 17, 12, 0, tzinfo=florida)


def test_option_contract():
    assert RAMBUTAN_OPTION.name == "rambutanmode"
    assert RAMBUTAN_OPTION.default is False
    assert RAMBUTAN_OPTION.in_cache_key is True
    assert DEFAULT_REGISTRY["rambutanmode"] is RAMBUTAN_OPTION


def test_value_is_loaded_lazily_and_once(florida, noon):
    lookup = FakeLookup(ToggleState(enabled=True))
    opts = RenderOptions(MEMBER, lookup=lookup, zone=florida, clock=noon)
    assert lookup.calls == []
    assert opts.resolved() == {}

    assert opts.rambutan_active is True
    assert opts.get("rambutanmode") is True
    opts.cache_key("{{#rambutan:Madonna}}")
    assert len(lookup.calls) == 1
    assert opts.resolved() == {"rambutanmode": True}


def test_value_is_frozen_for_the_render(florida, noon):
    lookup = FakeLookup(ToggleState(enabled=True))
    opts = RenderOptions(MEMBER, lookup=lookup, zone=florida, clock=noon)
    key_before = opts.cache_key("x")
    lookup.toggle = ToggleState(enabled=False)
    assert opts.rambutan_active is True
    assert opts.cache_key("x") == key_before


def test_expired_toggle_resolves_false(florida, noon, local_ts):
    lookup = FakeLookup(ToggleState(enabled=True, enabled_at=local_ts(2026, 10, 16, 8, 0)))
    opts = RenderOptions(MEMBER, lookup=lookup, zone=florida, clock=noon)
    assert opts.rambutan_active is False


def test_anonymous_viewer_skips_lookup(florida, noon):
    lookup = FakeLookup(ToggleState(enabled=True))
    opts = RenderOptions(Viewer(), lookup=lookup, zone=florida, clock=noon)
    assert opts.rambutan_active is False
    assert lookup.calls == []


def test_failing_lookup_falls_back_to_default(florida, noon, caplog):
    def broken(_viewer):
        raise ValueError("store unavailable")

    opts = RenderOptions(MEMBER, lookup=broken, zone=florida, clock=noon)
    with caplog.at_level(logging.WARNING, logger="common.render_options"):
        assert opts.rambutan_active is False
    assert "rambutanmode" in caplog.text


def test_cache_key_partitions_by_mode(florida, noon):
    on = RenderOptions(MEMBER, lookup=FakeLookup(ToggleState(enabled=True)), zone=florida, clock=noon)
    off = RenderOptions(MEMBER, lookup=FakeLookup(ToggleState()), zone=florida, clock=noon)
    content = "{{#rambutan:Elton John}}"

    assert on.cache_key(content).endswith("!rambutanmode=1")
    assert off.cache_key(content).endswith("!rambutanmode=0")
    assert on.cache_key(content) != off.cache_key(content)
    assert on.cache_key(content).split("!")[0] == off.cache_key(content).split("!")[0]


def test_cache_key_without_used_options_skips_loading(florida, noon):
    lookup = FakeLookup(ToggleState(enabled=True))
    opts = RenderOptions(MEMBER, lookup=lookup, zone=florida, clock=noon)
    key = opts.cache_key("plain", used=[])
    assert "!" not in key
    assert lookup.calls == []


def test_custom_registry_only_keys_cache_varying_options(florida, noon):
    registry = {
        "rambutanmode": RAMBUTAN_OPTION,
        "skin": RenderOption(name="skin", default="vector", in_cache_key=False, loader=lambda _o: "vector"),
    }
    opts = RenderOptions(
        MEMBER,
        lookup=FakeLookup(ToggleState()),
        zone=florida,
        clock=noon,
        registry=registry,
    )
    assert opts.cache_key("x").endswith("!rambutanmode=0")
    assert "skin" not in opts.cache_key("x")
    assert opts.get("skin") == "vector"


def test_toggle_is_shared_with_option_loading(florida, noon):
    toggle = ToggleState(enabled=True, enabled_at=1760670000)
    lookup = FakeLookup(toggle)
    opts = RenderOptions(MEMBER, lookup=lookup, zone=florida, clock=noon)
    opts.rambutan_active
    assert opts.toggle() == toggle
    assert len(lookup.calls) == 1

    anon = RenderOptions(Viewer(), lookup=lookup, zone=florida, clock=noon)
    assert anon.toggle() == ToggleState()
    assert len(lookup.calls) == 1
