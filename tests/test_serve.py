"""Tests for wiring a controller from settings."""

import pytest

from fungi.config import FungiSettings
from fungi.serve import build_controller

from conftest import FakeFeed


def test_build_controller_from_settings(tmp_path):
    cfg = FungiSettings(
        mycelial_hashtag="spores",
        history_path=tmp_path / "history.jsonl",
        cycle_interval_seconds=60,
        evolution_seed=1,
    )
    controller = build_controller(cfg, feed=FakeFeed())
    assert controller.phase.value == "created"
    assert len(controller.history) == 0


def test_build_controller_requires_mastodon_settings():
    with pytest.raises(SystemExit):
        build_controller(FungiSettings(mastodon_url="", mastodon_api_key=""))


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("FUNGI_MYCELIAL_HASHTAG", "myco")
    monkeypatch.setenv("FUNGI_ANSWER_INTERVAL_SECONDS", "30")
    cfg = FungiSettings()
    assert cfg.mycelial_hashtag == "myco"
    assert cfg.answer_interval_seconds == 30
