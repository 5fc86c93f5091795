"""Tests for the runtime settings."""

from fakes import make_settings


class TestSettings:
    def test_modes(self):
        assert not make_settings().expert
        assert make_settings(mode="expert").expert
        assert make_settings(mode="expert").replan_enabled
        assert make_settings(replan=True).replan_enabled
        assert not make_settings(mode="normal").replan_enabled

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AGENT_MAX_RETRY_NUM", "7")
        monkeypatch.setenv("AGENT_MODE", "expert")
        settings = make_settings()
        assert settings.max_retry_num == 7
        assert settings.expert
