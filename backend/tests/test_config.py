from __future__ import annotations

from app import config


def test_database_url_rewrites_legacy_postgres_scheme(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db:5432/listings")
    assert config.database_url() == "postgresql://u:p@db:5432/listings"

    monkeypatch.delenv("DATABASE_URL")
    assert config.database_url().startswith("sqlite:///")


def test_reward_and_limits_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("ORIGINAL_UPLOAD_TOKENS", "-5")
    assert config.original_upload_tokens() == 100
    monkeypatch.setenv("ORIGINAL_UPLOAD_TOKENS", "250")
    assert config.original_upload_tokens() == 250

    monkeypatch.setenv("MAX_UPLOAD_BYTES", "lots")
    assert config.max_upload_bytes() == 500 * 1024 * 1024
    monkeypatch.setenv("SERVER_PORT", "")
    assert config.server_port() == 8080


def test_host_lists_are_comma_separated(monkeypatch):
    monkeypatch.setenv("ALLOWED_HOSTS", " api.example.com, ,example.com ")
    assert config.allowed_hosts() == ["api.example.com", "example.com"]
    monkeypatch.setenv("ALLOWED_HOSTS", " , ")
    assert config.allowed_hosts() == ["*"]
    monkeypatch.setenv("CORS_ORIGINS", "https://a.test,https://b.test")
    assert config.cors_origins() == ["https://a.test", "https://b.test"]


def test_only_live_settings_are_exported():
    assert not hasattr(config, "app_env")
    assert not hasattr(config, "is_local_dev")
