"""
Tests for settings and the shared validators.
"""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from encroachment_auditor.config import DEFAULT_TOKEN_URL, AuditorSettings, is_placeholder
from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

ENV_VARS = [
    "SENTINEL_CLIENT_ID", "SENTINEL_CLIENT_SECRET", "SENTINEL_TOKEN_URL", "SENTINEL_STATS_URL",
    "TELEMETRY_TIMEOUT_S", "AUDIT_TIMEOUT_S", "LEDGER_URL", "LEDGER_LATENCY_S",
    "ANCHOR_RETRY_BACKOFF_S", "DETECTIONS_PATH", "PROTECTED_ZONES_PATH",
]


@pytest.fixture()
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAuditorSettings:
    def test_defaults(self, clean_env):
        settings = AuditorSettings.from_env()
        assert settings.token_url == DEFAULT_TOKEN_URL
        assert settings.audit_timeout_s == 60.0
        assert settings.telemetry_timeout_s == 20.0
        assert settings.ledger_url is None
        assert settings.detections_path == Path("detections.jsonl")
        assert settings.zones_path is None
        assert not settings.has_credentials

    def test_reads_environment(self, clean_env):
        clean_env.setenv("SENTINEL_CLIENT_ID", "abc")
        clean_env.setenv("AUDIT_TIMEOUT_S", "15")
        clean_env.setenv("LEDGER_URL", "https://ledger.example.org")
        clean_env.setenv("PROTECTED_ZONES_PATH", "zones.gpkg")
        settings = AuditorSettings.from_env()
        assert settings.has_credentials
        assert settings.audit_timeout_s == 15.0
        assert settings.ledger_url == "https://ledger.example.org"
        assert settings.zones_path == Path("zones.gpkg")

    def test_blank_values_use_defaults(self, clean_env):
        clean_env.setenv("AUDIT_TIMEOUT_S", "  ")
        assert AuditorSettings.from_env().audit_timeout_s == 60.0

    @pytest.mark.parametrize("secret, expected", [
        (None, True), ("", True), ("YOUR_CLIENT_ID", True), ("a1b2c3", False),
    ])
    def test_placeholder(self, secret, expected):
        assert is_placeholder(secret) is expected


class TestValidators:
    @pytest.mark.parametrize("lat, lng", [(0, 0), (-90, 180), (28.5, 77.3)])
    def test_valid_coordinates(self, lat, lng):
        Validators.assert_coordinate_valid(lat, lng)

    @pytest.mark.parametrize("lat, lng", [(91, 0), (0, -181), (math.nan, 0), (None, 77), ("north", 77)])
    def test_invalid_coordinates(self, lat, lng):
        with pytest.raises(InputValidationError):
            Validators.assert_coordinate_valid(lat, lng)

    @pytest.mark.parametrize("code", [None, "DELHI", "UP", "TAMIL_NADU"])
    def test_valid_state_codes(self, code):
        Validators.assert_state_code_valid(code)

    @pytest.mark.parametrize("code", ["", "d", "delhi", "DL-1"])
    def test_invalid_state_codes(self, code):
        with pytest.raises(InputValidationError):
            Validators.assert_state_code_valid(code)

    def test_unit_interval(self):
        Validators.assert_unit_interval(0.0)
        Validators.assert_unit_interval(1.0)
        with pytest.raises(InputValidationError):
            Validators.assert_unit_interval(1.01, "confidence")
