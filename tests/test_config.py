"""Tests for Settings loading from ccal.toml and CCAL_ environment variables."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ccal.config import DaemonConfig, ReadinessConfig, Settings, get_settings, reset_settings


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ("CCAL_READINESS__ATTEMPTS", "CCAL_SERVICE__NAME", "CCAL_OUTPUT__PLAIN"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


class TestDefaults:
    def test_defaults_without_file(self, in_tmp):
        s = Settings()
        assert s.service.name == "claude-code"
        assert s.service.image == "claude-code:latest"
        assert s.daemon.attempts == 10
        assert s.daemon.interval == 1.0
        assert s.readiness.attempts == 15
        assert s.readiness.interval == 2.0
        assert s.auth.token_timeout == 30.0
        assert s.clean.remove_image is False

    def test_required_files_follow_service_section(self, in_tmp):
        s = Settings()
        assert s.required_files == ["docker-compose.yml", "Dockerfile"]

    def test_project_root_is_cwd(self, in_tmp):
        assert Settings().project_root.resolve() == in_tmp.resolve()

    def test_dev_dir_expands_user(self, in_tmp, monkeypatch):
        monkeypatch.setenv("HOME", str(in_tmp))
        assert Settings().dev_dir == in_tmp / "Development"


class TestSources:
    def test_toml_file_is_read(self, in_tmp):
        (in_tmp / "ccal.toml").write_text('[service]\nname = "agent"\n\n[readiness]\nattempts = 5\n')
        s = Settings()
        assert s.service.name == "agent"
        assert s.readiness.attempts == 5

    def test_env_overrides_toml(self, in_tmp, monkeypatch):
        (in_tmp / "ccal.toml").write_text("[readiness]\nattempts = 5\n")
        monkeypatch.setenv("CCAL_READINESS__ATTEMPTS", "30")
        assert Settings().readiness.attempts == 30

    def test_unknown_key_in_section_rejected(self, in_tmp):
        (in_tmp / "ccal.toml").write_text("[readiness]\nattemps = 5\n")
        with pytest.raises(ValidationError):
            Settings()

    def test_invalid_token_env_rejected(self, in_tmp):
        (in_tmp / "ccal.toml").write_text('[auth]\ntoken_env = "NOT VALID"\n')
        with pytest.raises(ValidationError):
            Settings()


class TestValidators:
    def test_attempts_clamped_to_one(self):
        assert ReadinessConfig(attempts=0).attempts == 1
        assert DaemonConfig(attempts=-3).attempts == 1


class TestSingleton:
    def test_reset_rebuilds(self, in_tmp):
        reset_settings()
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
