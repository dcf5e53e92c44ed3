"""
Tests for the Fusion Engine
============================
The telemetry client is a ``MagicMock`` so no HTTP requests are made.
"""

from __future__ import annotations

import random
import time
from unittest.mock import MagicMock

import pytest

from conftest import make_reading
from encroachment_auditor.fusion import CO_REGISTRATION_ERROR_M, FusionEngine
from encroachment_auditor.telemetry import SensorKind, TelemetryClient
from shared.python.exceptions import AuthenticationError, FusionError


def _telemetry(sar=-8.0, optical=0.4, sar_conf=1.0, optical_conf=1.0) -> MagicMock:
    client = MagicMock(spec=TelemetryClient)

    def _reading(lat, lng, kind):
        if kind is SensorKind.SAR:
            return make_reading(SensorKind.SAR, sar, sar_conf)
        return make_reading(SensorKind.OPTICAL, optical, optical_conf)

    client.get_reading.side_effect = _reading
    return client


class TestFuse:
    def test_scene_carries_one_reading_per_sensor(self):
        engine = FusionEngine(_telemetry(), rng=random.Random(1))
        scene = engine.fuse(28.42, 77.10, "DELHI")

        assert scene.radar.sensor_kind is SensorKind.SAR
        assert scene.optical.sensor_kind is SensorKind.OPTICAL
        assert scene.centroid == (28.42, 77.10)
        assert scene.state_code == "DELHI"
        assert scene.co_registration_error_m == CO_REGISTRATION_ERROR_M
        assert scene.scene_id.startswith("SCENE-")
        assert scene.timestamp.endswith("Z")

    def test_both_sensors_requested(self):
        client = _telemetry()
        FusionEngine(client).fuse(28.42, 77.10)
        kinds = {c.args[2] for c in client.get_reading.call_args_list}
        assert kinds == {SensorKind.SAR, SensorKind.OPTICAL}

    def test_co_registration_score_bounded(self):
        engine = FusionEngine(_telemetry(), rng=random.Random(42))
        for _ in range(20):
            score = engine.fuse(28.42, 77.10).co_registration_score
            assert 0.98 <= score <= 1.0

    def test_confidence_is_weakest_reading_times_score(self):
        scene = FusionEngine(_telemetry(optical_conf=0.0)).fuse(28.42, 77.10)
        assert scene.confidence == 0.0
        assert scene.degraded

        scene = FusionEngine(_telemetry(), rng=random.Random(3)).fuse(28.42, 77.10)
        assert scene.confidence == round(scene.co_registration_score, 4)
        assert not scene.degraded

    def test_authentication_error_propagates(self):
        client = MagicMock(spec=TelemetryClient)
        client.get_reading.side_effect = AuthenticationError("Sentinel Hub", "no key")
        with pytest.raises(AuthenticationError):
            FusionEngine(client).fuse(28.42, 77.10)

    def test_unexpected_failure_becomes_fusion_error(self):
        client = MagicMock(spec=TelemetryClient)
        client.get_reading.side_effect = RuntimeError("socket closed")
        with pytest.raises(FusionError, match="socket closed"):
            FusionEngine(client).fuse(28.42, 77.10)

    def test_timeout_becomes_fusion_error(self):
        client = MagicMock(spec=TelemetryClient)

        def _slow(lat, lng, kind):
            time.sleep(0.3)
            return make_reading(kind, 0.0)

        client.get_reading.side_effect = _slow
        with pytest.raises(FusionError, match="no response"):
            FusionEngine(client, timeout=0.05).fuse(28.42, 77.10)

    def test_to_dict_layers(self):
        scene = FusionEngine(_telemetry()).fuse(28.42, 77.10)
        d = scene.to_dict()
        assert set(d["layers"]) == {"sar", "optical"}
        assert d["layers"]["sar"]["unit"] == "dB"
