"""
Tests for the Change Detector
==============================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import make_reading
from encroachment_auditor.change import (
    ChangeAssessment,
    ChangeDetector,
    deviation_ratio,
    exceeds_threshold,
)
from encroachment_auditor.telemetry import SensorKind, TelemetryClient
from shared.python.exceptions import AuthenticationError


def _detector(current: float, past: float) -> tuple[ChangeDetector, MagicMock]:
    client = MagicMock(spec=TelemetryClient)
    client.get_reading.side_effect = [
        make_reading(SensorKind.OPTICAL, current),
        make_reading(SensorKind.OPTICAL, past),
    ]
    return ChangeDetector(client), client


class TestDeviation:
    def test_relative_change(self):
        assert deviation_ratio(2.5, 2.0) == pytest.approx(0.25)

    def test_floor_near_zero_baseline(self):
        assert deviation_ratio(0.05, 0.0) == pytest.approx(0.5)
        assert deviation_ratio(0.05, -0.02) == pytest.approx(0.7)

    def test_threshold_is_strict(self):
        assert not exceeds_threshold(0.15)
        assert exceeds_threshold(0.1500001)


class TestDetectChange:
    def test_large_change_is_candidate(self):
        detector, _ = _detector(current=2.5, past=2.0)
        result = detector.detect_change(28.42, 77.10)
        assert result.is_violation_candidate
        assert result.deviation_ratio == pytest.approx(0.25)
        assert (result.current_value, result.past_value) == (2.5, 2.0)

    def test_small_change_is_not_candidate(self):
        detector, _ = _detector(current=2.1, past=2.0)
        result = detector.detect_change(28.42, 77.10)
        assert not result.is_violation_candidate

    def test_past_reading_uses_lookback(self):
        detector, client = _detector(current=0.3, past=0.3)
        detector.detect_change(28.42, 77.10, reference_lookback_days=30)

        (cur_call, past_call) = client.get_reading.call_args_list
        assert cur_call.args[2] is SensorKind.OPTICAL
        delta = cur_call.kwargs["as_of"] - past_call.kwargs["as_of"]
        assert delta.days == 30

    @pytest.mark.parametrize("exc", [AuthenticationError("Sentinel Hub", "x"), RuntimeError("boom")])
    def test_failure_is_fail_safe(self, exc):
        client = MagicMock(spec=TelemetryClient)
        client.get_reading.side_effect = exc
        result = ChangeDetector(client).detect_change(28.42, 77.10)
        assert result == ChangeAssessment.no_change()
        assert not result.is_violation_candidate

    def test_custom_threshold(self):
        client = MagicMock(spec=TelemetryClient)
        client.get_reading.side_effect = [
            make_reading(SensorKind.OPTICAL, 2.1),
            make_reading(SensorKind.OPTICAL, 2.0),
        ]
        assert ChangeDetector(client, threshold=0.01).detect_change(28.42, 77.10).is_violation_candidate
