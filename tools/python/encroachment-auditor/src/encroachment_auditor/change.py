"""
Encroachment Auditor — Change Detector
=======================================
Compares the current optical reading at a point against a historical one
and flags a violation candidate when the relative deviation exceeds a fixed
threshold.

    deviation = |current - past| / max(|past|, 0.1)
    candidate = deviation > 0.15

Any failure while fetching either reading yields a zero-deviation,
non-candidate assessment: the detector never fails open to a violation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from encroachment_auditor.telemetry import SensorKind, TelemetryClient, utc_now

logger = logging.getLogger("geoaudit.encroachment_auditor.change")

DEVIATION_THRESHOLD = 0.15
BASELINE_FLOOR = 0.1
DEFAULT_REFERENCE_LOOKBACK_DAYS = 30


def deviation_ratio(current: float, past: float) -> float:
    """Relative change of *current* against *past*, floored near zero baselines."""
    return abs(current - past) / max(abs(past), BASELINE_FLOOR)


def exceeds_threshold(ratio: float, threshold: float = DEVIATION_THRESHOLD) -> bool:
    """Strict comparison: a ratio exactly at the threshold is not a candidate."""
    return ratio > threshold


@dataclass(frozen=True)
class ChangeAssessment:
    """Outcome of one current-vs-historical comparison.

    Attributes:
        deviation_ratio: Relative deviation, see :func:`deviation_ratio`.
        is_violation_candidate: ``True`` when the deviation exceeds the threshold.
        current_value: Current optical value (NDVI).
        past_value: Historical optical value (NDVI).
    """

    deviation_ratio: float
    is_violation_candidate: bool
    current_value: float
    past_value: float

    @classmethod
    def no_change(cls) -> "ChangeAssessment":
        """The fail-safe default used when either reading is unavailable."""
        return cls(deviation_ratio=0.0, is_violation_candidate=False, current_value=0.0, past_value=0.0)

    @classmethod
    def from_values(cls, current: float, past: float, threshold: float = DEVIATION_THRESHOLD) -> "ChangeAssessment":
        ratio = deviation_ratio(current, past)
        return cls(
            deviation_ratio=ratio,
            is_violation_candidate=exceeds_threshold(ratio, threshold),
            current_value=current,
            past_value=past,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviation": self.deviation_ratio,
            "is_violation_candidate": self.is_violation_candidate,
            "current": self.current_value,
            "past": self.past_value,
        }


class ChangeDetector:
    """Optical change detection between now and a reference date.

    Args:
        telemetry: Client used for both optical pulls.
        threshold: Relative-deviation threshold; tunable, default ``0.15``.
    """

    def __init__(self, telemetry: TelemetryClient, threshold: float = DEVIATION_THRESHOLD) -> None:
        self.telemetry = telemetry
        self.threshold = threshold

    def detect_change(
        self,
        lat: float,
        lng: float,
        reference_lookback_days: int = DEFAULT_REFERENCE_LOOKBACK_DAYS,
    ) -> ChangeAssessment:
        """Assess optical change at ``(lat, lng)`` over *reference_lookback_days*."""
        now = utc_now()
        try:
            current = self.telemetry.get_reading(lat, lng, SensorKind.OPTICAL, as_of=now)
            past = self.telemetry.get_reading(
                lat,
                lng,
                SensorKind.OPTICAL,
                as_of=now - timedelta(days=reference_lookback_days),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Change detection failed, assuming no change: %s", exc)
            return ChangeAssessment.no_change()

        assessment = ChangeAssessment.from_values(current.value, past.value, self.threshold)
        logger.debug(
            "T0=%.4f T-%d=%.4f deviation=%.4f candidate=%s",
            current.value,
            reference_lookback_days,
            past.value,
            assessment.deviation_ratio,
            assessment.is_violation_candidate,
        )
        return assessment
