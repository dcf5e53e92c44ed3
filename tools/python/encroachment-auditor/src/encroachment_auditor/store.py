"""
Encroachment Auditor — Detection Store
=======================================
Persistence for confirmed detections.  A :class:`Detection` is written once
by the orchestrator after a violation was verified and anchored, and is read
back later (by id or by evidence hash) by report and notification consumers.

Backends
    :class:`InMemoryDetectionStore` for tests and one-off runs, and
    :class:`JsonlDetectionStore`, an append-only JSON-lines file.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from shared.python.exceptions import PersistenceError
from shared.python.validators import Validators

from encroachment_auditor.anchoring import EvidenceRecord, LedgerReceipt
from encroachment_auditor.compliance import LegalVerdict
from encroachment_auditor.fusion import FusedScene
from encroachment_auditor.telemetry import to_iso, utc_now

logger = logging.getLogger("geoaudit.encroachment_auditor.store")


class DetectionStatus(Enum):
    VERIFIED = "VERIFIED"
    IGNORED = "IGNORED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class Detection:
    """Persisted record of one confirmed violation.

    Attributes:
        detection_id: Store-assigned identifier; ``None`` until inserted.
        status: Lifecycle status.
        scene_id: Identifier of the fused scene that triggered it.
        centroid: ``(lat, lng)``.
        timestamp: Scene timestamp (the one that was hashed).
        state_code: Jurisdiction code, if the audit carried one.
        confidence: Scene confidence (the one that was hashed).
        sensors: Per-sensor provenance, see :meth:`FusedScene.source_breakdown`.
        verdict: Serialised :class:`LegalVerdict`.
        evidence_hash: Canonical evidence hash.
        transaction_id: Ledger transaction id.
        network: Ledger network name.
        explorer_link: Ledger explorer URL.
        encroachment_area_m2: Change-footprint area inside the protected zone.
        overlap_percentage: That area as a share of the footprint.
        created_at: ISO-8601 UTC time the record was built.
    """

    status: DetectionStatus
    scene_id: str
    centroid: tuple[float, float]
    timestamp: str
    confidence: float
    sensors: dict[str, Any]
    verdict: dict[str, Any]
    evidence_hash: str
    transaction_id: str
    network: str
    explorer_link: str
    state_code: str | None = None
    encroachment_area_m2: float = 0.0
    overlap_percentage: float = 0.0
    detection_id: str | None = None
    created_at: str = field(default_factory=lambda: to_iso(utc_now()))

    @classmethod
    def from_audit(
        cls,
        scene: FusedScene,
        verdict: LegalVerdict,
        record: EvidenceRecord,
        receipt: LedgerReceipt,
    ) -> "Detection":
        return cls(
            status=DetectionStatus.VERIFIED,
            scene_id=scene.scene_id,
            centroid=scene.centroid,
            timestamp=scene.timestamp,
            state_code=scene.state_code,
            confidence=scene.confidence,
            sensors=scene.source_breakdown(),
            verdict=verdict.to_dict(),
            evidence_hash=record.canonical_hash,
            transaction_id=receipt.transaction_id,
            network=receipt.network,
            explorer_link=receipt.explorer_link,
            encroachment_area_m2=verdict.encroachment_area_m2,
            overlap_percentage=verdict.overlap_percentage,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.detection_id,
            "status": self.status.value,
            "scene_id": self.scene_id,
            "centroid": list(self.centroid),
            "timestamp": self.timestamp,
            "state_code": self.state_code,
            "confidence": self.confidence,
            "sensors": self.sensors,
            "verdict": self.verdict,
            "evidence_hash": self.evidence_hash,
            "transaction_id": self.transaction_id,
            "network": self.network,
            "explorer_link": self.explorer_link,
            "encroachment_area_m2": self.encroachment_area_m2,
            "overlap_percentage": self.overlap_percentage,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Detection":
        lat, lng = d["centroid"]
        return cls(
            detection_id=d.get("id"),
            status=DetectionStatus(d["status"]),
            scene_id=d["scene_id"],
            centroid=(float(lat), float(lng)),
            timestamp=d["timestamp"],
            state_code=d.get("state_code"),
            confidence=float(d["confidence"]),
            sensors=d.get("sensors", {}),
            verdict=d["verdict"],
            evidence_hash=d["evidence_hash"],
            transaction_id=d["transaction_id"],
            network=d["network"],
            explorer_link=d["explorer_link"],
            encroachment_area_m2=float(d.get("encroachment_area_m2", 0.0)),
            overlap_percentage=float(d.get("overlap_percentage", 0.0)),
            created_at=d["created_at"],
        )


# ---------------------------------------------------------------------------
# Store backends
# ---------------------------------------------------------------------------


class DetectionStore(ABC):
    """Abstract base for detection persistence backends."""

    @abstractmethod
    def insert(self, detection: Detection) -> str:
        """Persist *detection* and return its new identifier.

        Backends should wrap their own failures in :class:`PersistenceError`;
        the orchestrator still treats any exception raised here as a
        non-fatal persistence failure.

        Raises:
            PersistenceError: If the record could not be written.
        """

    @abstractmethod
    def get(self, detection_id: str) -> Detection | None:
        """Return the detection with *detection_id*, or ``None``."""

    @abstractmethod
    def find_by_hash(self, evidence_hash: str) -> Detection | None:
        """Return the first detection anchored under *evidence_hash*."""

    @abstractmethod
    def ping(self) -> bool:
        """``True`` when the backend is reachable."""


class InMemoryDetectionStore(DetectionStore):
    """Dict-backed store; contents are lost when the process exits."""

    def __init__(self) -> None:
        self._rows: dict[str, Detection] = {}
        self._lock = threading.Lock()

    def insert(self, detection: Detection) -> str:
        detection_id = str(uuid.uuid4())
        with self._lock:
            self._rows[detection_id] = replace(detection, detection_id=detection_id)
        return detection_id

    def get(self, detection_id: str) -> Detection | None:
        return self._rows.get(detection_id)

    def find_by_hash(self, evidence_hash: str) -> Detection | None:
        with self._lock:
            rows = list(self._rows.values())
        return next((r for r in rows if r.evidence_hash == evidence_hash), None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._rows)


class JsonlDetectionStore(DetectionStore):
    """Append-only JSON-lines file, one detection per line.

    Reads scan the whole file; fine for audit volumes, not for analytics.

    Args:
        path: Target ``.jsonl`` file; parent directories are created.

    Raises:
        OutputWriteError: If the parent directory cannot be created.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        Validators.assert_output_dir_writable(self.path)
        self._lock = threading.Lock()

    def insert(self, detection: Detection) -> str:
        detection_id = str(uuid.uuid4())
        line = json.dumps(replace(detection, detection_id=detection_id).to_dict())
        try:
            with self._lock, self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            raise PersistenceError(f"Could not append detection to '{self.path}': {exc}") from exc
        logger.info("Detection %s written to %s", detection_id, self.path)
        return detection_id

    def _iter_rows(self):
        if not self.path.exists():
            return
        try:
            with self.path.open(encoding="utf-8") as fh:
                lines = fh.readlines()
        except OSError as exc:
            raise PersistenceError(f"Could not read '{self.path}': {exc}") from exc
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                yield Detection.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping malformed row %d in %s: %s", lineno, self.path, exc)

    def get(self, detection_id: str) -> Detection | None:
        return next((d for d in self._iter_rows() if d.detection_id == detection_id), None)

    def find_by_hash(self, evidence_hash: str) -> Detection | None:
        return next((d for d in self._iter_rows() if d.evidence_hash == evidence_hash), None)

    def ping(self) -> bool:
        parent = self.path.parent
        return parent.is_dir() and (not self.path.exists() or self.path.is_file())
