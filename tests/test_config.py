"""
Tests for settings and .env loading.
"""

from pathlib import Path

import pytest

from curtaincall.config import Settings, load_settings
from curtaincall.env import load_env


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.neutral_score == 62
        assert settings.spread_threshold == 5.0
        assert settings.two_model_delta_threshold == 15.0
        assert settings.excerpt_length_floor == 300
        assert settings.corroboration_tolerance == 0.10
        assert settings.db_path == Path("data/reviews.db")

    def test_overrides(self):
        settings = load_settings({
            "CURTAINCALL_NEUTRAL_SCORE": "60",
            "CURTAINCALL_SPREAD_THRESHOLD": "7.5",
            "CURTAINCALL_SCORING_VERSION": "v2",
            "CURTAINCALL_DB_PATH": "/tmp/x.db",
            "CURTAINCALL_ALIAS_PATH": "aliases.json",
            "CURTAINCALL_CHECKPOINT_EVERY": "10",
        })
        assert settings.neutral_score == 60
        assert settings.spread_threshold == 7.5
        assert settings.scoring_version == "v2"
        assert settings.db_path == Path("/tmp/x.db")
        assert settings.alias_path == Path("aliases.json")
        assert settings.checkpoint_every == 10

    def test_blank_values_use_defaults(self):
        assert load_settings({"CURTAINCALL_NEUTRAL_SCORE": "  "}).neutral_score == 62

    def test_model_endpoints(self):
        settings = load_settings({
            "CURTAINCALL_MODELS": "claude=https://a.example/score, gpt=https://b.example/score,",
        })
        assert settings.model_endpoints == (
            ("claude", "https://a.example/score"),
            ("gpt", "https://b.example/score"),
        )

    @pytest.mark.parametrize("env", [
        {"CURTAINCALL_NEUTRAL_SCORE": "sixty"},
        {"CURTAINCALL_SPREAD_THRESHOLD": "wide"},
        {"CURTAINCALL_NEUTRAL_SCORE": "140"},
        {"CURTAINCALL_CHECKPOINT_EVERY": "0"},
        {"CURTAINCALL_MODELS": "https://no-label.example"},
        {"CURTAINCALL_MODELS": "claude=https://a.example, claude=https://b.example"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            load_settings(env)

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            Settings().neutral_score = 50


class TestLoadEnv:

    def test_missing_file(self, tmp_path):
        assert load_env(tmp_path / ".env") is False

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("CURTAINCALL_SCORING_VERSION=v9\nCURTAINCALL_NEUTRAL_SCORE=58\n")
        monkeypatch.setenv("CURTAINCALL_NEUTRAL_SCORE", "61")
        monkeypatch.delenv("CURTAINCALL_SCORING_VERSION", raising=False)

        assert load_env(env_file) is True
        settings = load_settings()
        assert settings.scoring_version == "v9"
        assert settings.neutral_score == 61
        monkeypatch.delenv("CURTAINCALL_SCORING_VERSION")
