"""
Encroachment Auditor — Legal Notice
====================================
Plain-text first-information notice attached to CRITICAL verdicts, and a
lookup helper that re-renders the notice for a stored detection given either
its UUID or its ``0x`` evidence hash.
"""

from __future__ import annotations

import re
from typing import Any

from shared.python.exceptions import InputValidationError, PersistenceError

from encroachment_auditor.store import Detection, DetectionStore
from encroachment_auditor.telemetry import to_iso, utc_now

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_RULE = "-" * 64


def generate_legal_notice(
    verdict: dict[str, Any],
    centroid: tuple[float, float],
    timestamp: str,
    confidence: float,
    evidence_hash: str,
    transaction_id: str | None = None,
    detection_id: str | None = None,
) -> str:
    """Render the notice text.

    Args:
        verdict: Serialised verdict, as produced by ``LegalVerdict.to_dict``.
        centroid: ``(lat, lng)`` of the detection.
        timestamp: Detection (scene) timestamp.
        confidence: Scene confidence in ``[0, 1]``.
        evidence_hash: Canonical evidence hash.
        transaction_id: Ledger transaction id; ``PENDING`` when absent.
        detection_id: Store id; ``UNRECORDED`` when persistence failed.
    """
    lat, lng = centroid
    lines = [
        "FIRST INFORMATION NOTICE: ENCROACHMENT ON PROTECTED LAND",
        f"Notice Generated: {to_iso(utc_now())}",
        _RULE,
        f"Violation ID:   {detection_id or 'UNRECORDED'}",
        f"Detection Time: {timestamp}",
        f"Location:       {lat:.6f}, {lng:.6f}",
        f"Zone:           {verdict.get('zone', 'N/A')}",
        "",
        "LEGAL VIOLATION",
        f"  Law:          {verdict.get('law', 'N/A')}",
        f"  Article:      {verdict.get('article') or 'N/A'}",
        f"  Section:      {verdict.get('section', 'N/A')}",
        f"  Severity:     {verdict.get('severity', 'N/A')}",
        f"  Penalty:      {verdict.get('penalty_type') or 'N/A'}",
        f"  Jurisdiction: {verdict.get('jurisdiction') or 'N/A'}",
    ]
    area = verdict.get("encroachment_area_m2") or 0.0
    if area > 0:
        lines.append(
            f"  Encroached:   {area:,.1f} m² ({verdict.get('overlap_percentage', 0.0):.1f}% of footprint)"
        )
    lines += [
        "",
        "FORENSIC EVIDENCE",
        "  Source:        Multi-sensor fusion (Sentinel-1 SAR + Sentinel-2 optical)",
        f"  Confidence:    {confidence * 100:.2f}%",
        f"  Evidence Hash: {evidence_hash}",
        f"  Ledger Tx:     {transaction_id or 'PENDING'}",
        _RULE,
        "The occupant is directed to halt all construction at the above location",
        "and appear before the stated jurisdiction with proof of authorisation.",
    ]
    return "\n".join(lines)


def notice_for_detection(detection: Detection) -> str:
    return generate_legal_notice(
        verdict=detection.verdict,
        centroid=detection.centroid,
        timestamp=detection.timestamp,
        confidence=detection.confidence,
        evidence_hash=detection.evidence_hash,
        transaction_id=detection.transaction_id,
        detection_id=detection.detection_id,
    )


def lookup_notice(store: DetectionStore, reference: str) -> str:
    """Render the notice for a stored detection.

    Args:
        store: Store to read from.
        reference: Detection UUID or ``0x`` evidence hash.

    Raises:
        InputValidationError: If *reference* is neither a UUID nor a hash.
        PersistenceError: If no detection matches.
    """
    if _UUID_RE.match(reference):
        detection = store.get(reference)
    elif reference.startswith("0x"):
        detection = store.find_by_hash(reference)
    else:
        raise InputValidationError(
            f"Invalid detection reference {reference!r}: expected a UUID or a 0x evidence hash."
        )
    if detection is None:
        raise PersistenceError(f"Detection {reference!r} not found")
    return notice_for_detection(detection)
