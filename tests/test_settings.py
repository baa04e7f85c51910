"""
Tests for environment-driven settings.
"""
from __future__ import annotations

from pathlib import Path

from exprsec.settings import REPO_ROOT, Settings


def test_defaults_point_into_the_repository(monkeypatch):
    monkeypatch.delenv("EXPRSEC_DB_URL", raising=False)

    settings = Settings()

    assert settings.db_url == f"sqlite:///{REPO_ROOT / 'exprsec.db'}"
    assert settings.security_config_path == REPO_ROOT / "config" / "security_config.yaml"
    assert settings.seed_demo_data is True
    assert settings.is_sqlite


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EXPRSEC_DB_URL", "postgresql://db/exprsec")
    monkeypatch.setenv("EXPRSEC_SECURITY_CONFIG_PATH", "/etc/exprsec/rules.yaml")
    monkeypatch.setenv("EXPRSEC_SEED_DEMO_DATA", "false")

    settings = Settings()

    assert settings.db_url == "postgresql://db/exprsec"
    assert settings.security_config_path == Path("/etc/exprsec/rules.yaml")
    assert settings.seed_demo_data is False
    assert not settings.is_sqlite
