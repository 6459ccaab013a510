# tests/unit/config/test_settings.py — v1
"""Tests for config/settings.py — Settings loading and validation."""

from __future__ import annotations

import pytest

from scriptconveyor.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_defaults(self):
        s = load_settings(db_path=":memory:")
        assert s.llm_provider == "anthropic"
        assert s.max_retries == 3
        assert s.max_revisions == 3
        assert s.max_qc_iterations == 2
        assert s.stage_timeout_auto_retries == 1
        assert s.scheduler_timezone == "UTC"
        assert len(s.stage_duration_estimates_s) == 8

    def test_default_weights_sum_to_one(self):
        s = Settings()
        for weights in s.analyst_weights.values():
            assert sum(weights.values()) == pytest.approx(1.0)

    def test_overrides(self):
        s = load_settings(max_retries=5, score_threshold=60)
        assert s.max_retries == 5
        assert s.score_threshold == 60


class TestSettingsValidation:
    def test_weights_must_sum_to_one(self):
        with pytest.raises(ConfigurationError, match="sum to 1"):
            Settings(analyst_weights={
                "news": {"hook": 0.5, "structure": 0.5, "emotional": 0.5, "cta": 0.5},
            })

    def test_weights_need_all_dimensions(self):
        with pytest.raises(ConfigurationError, match="must define"):
            Settings(analyst_weights={"news": {"hook": 1.0}})

    def test_verdict_thresholds_decreasing(self):
        with pytest.raises(ConfigurationError, match="VERDICT"):
            Settings(verdict_viral=60, verdict_strong=70)

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError, match="SCHEDULER_TIMEZONE"):
            Settings(scheduler_timezone="Mars/Olympus_Mons")

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            Settings(max_retries=-1)

    def test_reset_hour_range(self):
        with pytest.raises(ValueError):
            Settings(daily_reset_hour=24)


class TestSettingsHelpers:
    def test_weights_for_known_type(self):
        s = Settings()
        assert s.weights_for("news")["hook"] == 0.35

    def test_weights_for_unknown_type_is_equal(self):
        s = Settings()
        assert set(s.weights_for("podcast").values()) == {0.25}

    def test_synthesis_model_falls_back(self):
        assert Settings(llm_model="m1").synthesis_model == "m1"
        assert Settings(llm_model="m1", llm_synthesis_model="m2").synthesis_model == "m2"
