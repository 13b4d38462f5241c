"""Tests for DriverDocs configuration helpers."""

from __future__ import annotations

import re

import pytest
from pydantic import ValidationError

import driverdocs.config as config


def test_default_cors_regex_allows_local_network(monkeypatch):
    """The default regex should allow localhost and local-network origins."""

    monkeypatch.delenv("CORS_ALLOW_ORIGIN_REGEX", raising=False)
    settings = config.Settings()

    pattern = re.compile(settings.cors_allow_origin_regex)

    assert pattern.fullmatch("http://localhost:8000")
    assert pattern.fullmatch("http://192.168.68.136:3600")


def test_blank_cors_regex_disables_pattern(monkeypatch):
    """Blank regex env vars should be treated as disabled (None)."""

    monkeypatch.setenv("CORS_ALLOW_ORIGIN_REGEX", "   ")
    settings = config.Settings()

    assert settings.cors_allow_origin_regex is None


def test_persistence_defaults(monkeypatch):
    for name in (
        "PERSIST_MAX_ATTEMPTS",
        "PERSIST_TIMEOUT_S",
        "PERSIST_WORKERS",
        "APPROVED_REUPLOAD_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = config.Settings()

    assert settings.persist_max_attempts == 3
    assert settings.persist_timeout_s == 10
    assert settings.persist_workers == 4
    assert settings.approved_reupload_policy == "deny"


def test_attempts_are_clamped_and_policy_normalised(monkeypatch):
    monkeypatch.setenv("PERSIST_MAX_ATTEMPTS", "0")
    monkeypatch.setenv("PERSIST_WORKERS", "0")
    monkeypatch.setenv("APPROVED_REUPLOAD_POLICY", " Reopen ")
    settings = config.Settings()

    assert settings.persist_max_attempts == 1
    assert settings.persist_workers == 1
    assert settings.approved_reupload_policy == "reopen"


@pytest.mark.parametrize(
    ("name", "value"),
    [("PERSIST_TIMEOUT_S", "0"), ("APPROVED_REUPLOAD_POLICY", "always")],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        config.Settings()


def test_settings_loaded_from_env_file(monkeypatch, tmp_path):
    """Values in the file named by DRIVERDOCS_ENV_FILE should be picked up."""

    env_file = tmp_path / ".env"
    env_file.write_text("PERSIST_MAX_ATTEMPTS=7\n", encoding="utf-8")

    monkeypatch.delenv("PERSIST_MAX_ATTEMPTS", raising=False)
    monkeypatch.setenv("DRIVERDOCS_ENV_FILE", str(env_file))

    config._load_environment()

    settings = config.Settings()

    assert settings.persist_max_attempts == 7

    monkeypatch.delenv("PERSIST_MAX_ATTEMPTS", raising=False)
