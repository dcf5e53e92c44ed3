"""
Encroachment Auditor — Fusion Engine
=====================================
Pulls a radar (SAR backscatter) and an optical (NDVI) reading for the same
point concurrently and assembles them into one :class:`FusedScene`.

Both fetches must finish before the scene is built.  A hard failure in
either one (no credential, unexpected error, timeout) aborts the fusion.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any

from shared.python.exceptions import AuthenticationError, FusionError

from encroachment_auditor.telemetry import (
    SensorKind,
    SensorReading,
    TelemetryClient,
    to_iso,
    utc_now,
)

logger = logging.getLogger("geoaudit.encroachment_auditor.fusion")

# Nominal residual misalignment between the Sentinel-1 and Sentinel-2 grids
CO_REGISTRATION_ERROR_M = 0.5


@dataclass(frozen=True)
class FusedScene:
    """One synchronised radar + optical pair for a single point.

    Attributes:
        scene_id: ``SCENE-<epoch ms>-<nnn>`` identifier.
        centroid: ``(lat, lng)`` of the audited point.
        timestamp: ISO-8601 UTC time the scene was assembled.
        radar: SAR backscatter reading (dB).
        optical: Optical NDVI reading.
        state_code: Optional jurisdiction code carried from the request.
        co_registration_error_m: Residual grid misalignment in metres.
        co_registration_score: Alignment quality in ``[0, 1]``.
    """

    scene_id: str
    centroid: tuple[float, float]
    timestamp: str
    radar: SensorReading
    optical: SensorReading
    state_code: str | None = None
    co_registration_error_m: float = CO_REGISTRATION_ERROR_M
    co_registration_score: float = 1.0

    @property
    def confidence(self) -> float:
        """Weakest reading confidence scaled by alignment quality, 4 d.p."""
        weakest = min(self.radar.confidence, self.optical.confidence)
        return round(weakest * self.co_registration_score, 4)

    @property
    def degraded(self) -> bool:
        return self.radar.degraded or self.optical.degraded

    def source_breakdown(self) -> dict[str, Any]:
        """Per-sensor provenance for results and persisted detections."""
        return {"sar": self.radar.to_dict(), "optical": self.optical.to_dict()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.scene_id,
            "centroid": list(self.centroid),
            "timestamp": self.timestamp,
            "state_code": self.state_code,
            "layers": self.source_breakdown(),
            "co_registration_error_m": self.co_registration_error_m,
            "co_registration_score": self.co_registration_score,
        }


class FusionEngine:
    """Concurrent two-sensor acquisition around a target point.

    Args:
        telemetry: Client used for both sensor pulls.
        timeout: Seconds to wait for both readings; ``None`` waits for the
                 client's own per-request timeouts.
        rng: Random source for the co-registration score; seed it for
             reproducible scenes.
    """

    def __init__(
        self,
        telemetry: TelemetryClient,
        timeout: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.telemetry = telemetry
        self.timeout = timeout
        self._rng = rng or random.Random()

    def fuse(self, lat: float, lng: float, state_code: str | None = None) -> FusedScene:
        """Acquire SAR and optical readings concurrently and fuse them.

        Raises:
            AuthenticationError: If the telemetry client has no credential.
            FusionError: If either fetch failed hard or timed out.
        """
        logger.info("Initialising multi-source ingest for %.5f, %.5f", lat, lng)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="fusion") as pool:
            futures = {
                kind: pool.submit(self.telemetry.get_reading, lat, lng, kind)
                for kind in (SensorKind.SAR, SensorKind.OPTICAL)
            }
            readings: dict[SensorKind, SensorReading] = {}
            for kind, future in futures.items():
                try:
                    readings[kind] = future.result(timeout=self.timeout)
                except AuthenticationError:
                    raise
                except FuturesTimeout as exc:
                    raise FusionError(kind.value, f"no response within {self.timeout}s") from exc
                except Exception as exc:
                    raise FusionError(kind.value, str(exc)) from exc

        radar = readings[SensorKind.SAR]
        optical = readings[SensorKind.OPTICAL]
        logger.info(
            "Streams received (SAR: %s, optical: %s). Aligning geometries...",
            radar.source_label,
            optical.source_label,
        )

        now_ms = int(time.time() * 1000)
        return FusedScene(
            scene_id=f"SCENE-{now_ms}-{self._rng.randrange(1000):03d}",
            centroid=(lat, lng),
            timestamp=to_iso(utc_now()),
            radar=radar,
            optical=optical,
            state_code=state_code,
            co_registration_error_m=CO_REGISTRATION_ERROR_M,
            co_registration_score=self.align(radar, optical),
        )

    def align(self, radar: SensorReading, optical: SensorReading) -> float:
        """Co-registration quality score in ``[0.98, 1.0]``.

        Stands in for a ground-control-point alignment of the two grids.
        """
        return 0.98 + self._rng.random() * 0.02
