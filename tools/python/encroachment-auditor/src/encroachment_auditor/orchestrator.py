"""
Encroachment Auditor — Orchestrator
====================================
Drives one audit of a coordinate through the pipeline::

    START → FUSED → CHANGE_CHECKED ─┬─ IGNORED  ("No Change Detected")
                                    └─ LEGAL_CHECKED ─┬─ IGNORED  ("Change in Unregulated Zone")
                                                      └─ VERIFIED
    any hard failure → ERROR

Every transition writes a line to the module logger and to an optional
caller-supplied *log sink* so an observer can rebuild the path from the log
stream alone.

Failure policy
    * no credential, fusion failure, anchoring failure after one retry
      → terminal ``ERROR`` with a readable message
    * persistence failure (any exception from the store) → logged, result
      stays ``VERIFIED`` with ``detection_id = None``
    * wall-clock budget exceeded → ``ERROR``; the pipeline thread is
      abandoned, its late log lines are dropped and it stops before any
      later ledger submission or store insert

Usage::

    from encroachment_auditor.config import AuditorSettings
    from encroachment_auditor.orchestrator import AuditOrchestrator

    orchestrator = AuditOrchestrator.from_settings(AuditorSettings.from_env())
    for event in orchestrator.stream_audit(28.545, 77.300, "DELHI"):
        print(event.to_json())
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator

from shared.python.base_tool import GeoTool
from shared.python.exceptions import AnchoringError, AuditAbortedError, GeoAuditError
from shared.python.validators import Validators

from encroachment_auditor.anchoring import (
    EvidenceAnchor,
    EvidenceRecord,
    HttpLedgerClient,
    LedgerReceipt,
    SimulatedLedgerClient,
)
from encroachment_auditor.change import ChangeAssessment, ChangeDetector
from encroachment_auditor.compliance import LegalComplianceEngine, LegalVerdict, ZoneCatalog
from encroachment_auditor.config import AuditorSettings
from encroachment_auditor.fusion import FusionEngine
from encroachment_auditor.notice import generate_legal_notice
from encroachment_auditor.store import Detection, DetectionStore, JsonlDetectionStore
from encroachment_auditor.telemetry import TelemetryClient

logger = logging.getLogger("geoaudit.encroachment_auditor.orchestrator")

LogSink = Callable[[str], None]

MSG_NO_CHANGE = "No Change Detected"
MSG_UNREGULATED = "Change in Unregulated Zone"


class AuditState(Enum):
    START = "START"
    FUSED = "FUSED"
    CHANGE_CHECKED = "CHANGE_CHECKED"
    LEGAL_CHECKED = "LEGAL_CHECKED"
    IGNORED = "IGNORED"
    VERIFIED = "VERIFIED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (AuditState.IGNORED, AuditState.VERIFIED, AuditState.ERROR)


# ---------------------------------------------------------------------------
# Results & events
# ---------------------------------------------------------------------------


@dataclass
class OrchestrationResult:
    """Outcome of one audit.

    Attributes:
        status: Terminal state: ``IGNORED``, ``VERIFIED`` or ``ERROR``.
        message: Short human-readable status line.
        centroid: ``(lat, lng)`` audited.
        state_code: Jurisdiction code, if any.
        confidence: Scene confidence (``0.0`` if no scene was fused).
        path: States visited, in order, ending with ``status``.
        scene_id: Fused scene id, when fusion succeeded.
        change: Change assessment, when it ran.
        verdict: Legal verdict, when it ran.
        evidence_hash: Canonical evidence hash (VERIFIED, or ERROR after
                       a failed anchoring).
        transaction_id: Ledger transaction id (VERIFIED only).
        network: Ledger network (VERIFIED only).
        explorer_link: Ledger explorer URL (VERIFIED only).
        detection_id: Store id; ``None`` when persistence failed.
        encroachment_area_m2: Change-footprint area inside a protected
                              polygon (violations only).
        overlap_percentage: That area as a share of the footprint.
        legal_notice: Notice text for CRITICAL verdicts.
        source_breakdown: Per-sensor provenance.
    """

    status: AuditState
    message: str
    centroid: tuple[float, float]
    state_code: str | None = None
    confidence: float = 0.0
    path: list[AuditState] = field(default_factory=list)
    scene_id: str | None = None
    change: ChangeAssessment | None = None
    verdict: LegalVerdict | None = None
    evidence_hash: str | None = None
    transaction_id: str | None = None
    network: str | None = None
    explorer_link: str | None = None
    detection_id: str | None = None
    encroachment_area_m2: float | None = None
    overlap_percentage: float | None = None
    legal_notice: str | None = None
    source_breakdown: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "centroid": list(self.centroid),
            "state_code": self.state_code,
            "confidence": self.confidence,
            "path": [s.value for s in self.path],
            "scene_id": self.scene_id,
            "change": self.change.to_dict() if self.change else None,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "evidence_hash": self.evidence_hash,
            "transaction_id": self.transaction_id,
            "network": self.network,
            "explorer_link": self.explorer_link,
            "detection_id": self.detection_id,
            "encroachment_area_m2": self.encroachment_area_m2,
            "overlap_percentage": self.overlap_percentage,
            "legal_notice": self.legal_notice,
            "source_breakdown": self.source_breakdown,
        }


@dataclass(frozen=True)
class AuditEvent:
    """One item of the audit event stream.

    ``kind`` is ``"log"``, ``"result"`` or ``"error"``; a stream always ends
    with exactly one ``result`` or ``error`` event.
    """

    kind: str
    message: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def log(cls, message: str) -> "AuditEvent":
        return cls(kind="log", message=message)

    @classmethod
    def terminal(cls, result: OrchestrationResult) -> "AuditEvent":
        if result.status is AuditState.ERROR:
            return cls(kind="error", message=result.message, data=result.to_dict())
        return cls(kind="result", message=result.message, data=result.to_dict())

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.kind}
        if self.kind == "result":
            out["data"] = self.data
        else:
            out["message"] = self.message
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# ---------------------------------------------------------------------------
# One audit
# ---------------------------------------------------------------------------


class EncroachmentAudit(GeoTool):
    """A single audit run; build one per request.

    Args:
        lat: Latitude in decimal degrees.
        lng: Longitude in decimal degrees.
        state_code: Optional jurisdiction code (normalised to upper case).
        fusion: Fusion engine.
        detector: Change detector.
        compliance: Legal compliance engine.
        anchor: Evidence anchor.
        store: Detection store; ``None`` skips persistence.
        log: Caller-supplied log sink.
        anchor_retry_backoff_s: Pause before the single anchoring retry.
        verbose: Enable DEBUG logging.
    """

    def __init__(
        self,
        lat: float,
        lng: float,
        state_code: str | None = None,
        *,
        fusion: FusionEngine,
        detector: ChangeDetector,
        compliance: LegalComplianceEngine,
        anchor: EvidenceAnchor,
        store: DetectionStore | None = None,
        log: LogSink | None = None,
        anchor_retry_backoff_s: float = 1.0,
        verbose: bool = False,
    ) -> None:
        super().__init__(verbose=verbose)
        self.lat = lat
        self.lng = lng
        self.state_code = state_code.strip().upper() if state_code else None
        self.fusion = fusion
        self.detector = detector
        self.compliance = compliance
        self.anchor = anchor
        self.store = store
        self.anchor_retry_backoff_s = anchor_retry_backoff_s
        self.path: list[AuditState] = [AuditState.START]
        self.evidence: EvidenceRecord | None = None
        self._sink = log
        self._closed = threading.Event()

    def describe(self) -> str:
        return f"EncroachmentAudit({self.lat}, {self.lng}, {self.state_code or '-'})"

    def close(self) -> None:
        """Abandon the audit after a timeout.

        Log lines stop reaching the sink, and the pipeline raises
        :class:`AuditAbortedError` before its next ledger submission or
        store insert.
        """
        self._closed.set()

    # ------------------------------------------------------------------
    # GeoTool interface
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        Validators.assert_coordinate_valid(self.lat, self.lng)
        Validators.assert_state_code_valid(self.state_code)

    def process(self) -> OrchestrationResult:
        lat, lng = self.lat, self.lng
        self._emit(
            f"[System] Initialising audit for ({lat:.4f}, {lng:.4f})"
            + (f" in {self.state_code}" if self.state_code else "")
        )

        # START → FUSED
        scene = self.fusion.fuse(lat, lng, self.state_code)
        self._advance(AuditState.FUSED)
        self._emit(
            f"[Fusion] Scene {scene.scene_id}: SAR {scene.radar.value:.2f} {scene.radar.unit} "
            f"({scene.radar.source_label}), optical {scene.optical.value:.3f} {scene.optical.unit} "
            f"({scene.optical.source_label}); confidence {scene.confidence:.4f}"
        )
        if scene.degraded:
            self._emit("[Fusion] Warning: at least one sensor returned a fallback value")

        result = OrchestrationResult(
            status=AuditState.START,
            message="",
            centroid=scene.centroid,
            state_code=scene.state_code,
            confidence=scene.confidence,
            scene_id=scene.scene_id,
            source_breakdown=scene.source_breakdown(),
        )

        # FUSED → CHANGE_CHECKED
        self._emit("[Change] Comparing current optical reading against the 30-day baseline...")
        change = self.detector.detect_change(lat, lng)
        result.change = change
        self._advance(AuditState.CHANGE_CHECKED)
        self._emit(
            f"[Change] Deviation {change.deviation_ratio:.1%} "
            f"(T0 {change.current_value:.3f} vs T-30 {change.past_value:.3f})"
        )
        if not change.is_violation_candidate:
            return self._finish(result, AuditState.IGNORED, MSG_NO_CHANGE)

        # CHANGE_CHECKED → LEGAL_CHECKED
        if scene.state_code:
            self._emit(f"[Legal] Applying jurisdiction rules for {scene.state_code}...")
            verdict = self.compliance.evaluate_jurisdiction(lat, lng, scene.state_code)
        else:
            self._emit("[Legal] Checking protected-zone catalog...")
            verdict = self.compliance.evaluate_geometry(lat, lng)
        result.verdict = verdict
        self._advance(AuditState.LEGAL_CHECKED)
        self._emit(f"[Legal] {verdict.zone_name}: {verdict.law} {verdict.section} [{verdict.severity.value}]")
        if not verdict.is_violation:
            return self._finish(result, AuditState.IGNORED, MSG_UNREGULATED)

        overlap = self.compliance.measure_footprint(lat, lng)
        verdict = verdict.with_footprint(overlap)
        result.verdict = verdict
        result.encroachment_area_m2 = verdict.encroachment_area_m2
        result.overlap_percentage = verdict.overlap_percentage
        if overlap is not None:
            self._emit(
                f"[Legal] Change footprint overlaps {overlap.zone_name}: "
                f"{overlap.overlap_area_m2:,.0f} m² ({overlap.overlap_percentage:.1f}%)"
            )
        else:
            self._emit("[Legal] Change footprint overlaps no catalogued zone")

        # LEGAL_CHECKED → VERIFIED
        record = self.anchor.anchor(lat, lng, verdict, scene.timestamp, scene.confidence)
        self.evidence = record
        result.evidence_hash = record.canonical_hash
        self._emit(f"[Evidence] Canonical hash {record.canonical_hash}; anchoring on ledger...")
        receipt = self._submit_with_retry(record)
        result.transaction_id = receipt.transaction_id
        result.network = receipt.network
        result.explorer_link = receipt.explorer_link
        self._emit(f"[Evidence] Anchored on {receipt.network}: {receipt.transaction_id}")

        result.detection_id = self._persist(Detection.from_audit(scene, verdict, record, receipt))

        if verdict.is_critical:
            result.legal_notice = generate_legal_notice(
                verdict=verdict.to_dict(),
                centroid=scene.centroid,
                timestamp=scene.timestamp,
                confidence=scene.confidence,
                evidence_hash=record.canonical_hash,
                transaction_id=receipt.transaction_id,
                detection_id=result.detection_id,
            )
            self._emit("[Legal] CRITICAL verdict: legal notice generated")

        return self._finish(result, AuditState.VERIFIED, f"Encroachment verified: {verdict.zone_name}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_open(self, step: str) -> None:
        if self._closed.is_set():
            raise AuditAbortedError(self.describe(), step)

    def _submit_with_retry(self, record: EvidenceRecord) -> LedgerReceipt:
        self._ensure_open("ledger submission")
        try:
            return self.anchor.submit(record)
        except AnchoringError as exc:
            self._emit(f"[Evidence] Ledger submission failed ({exc.reason}); retrying once...")
        if self.anchor_retry_backoff_s > 0:
            time.sleep(self.anchor_retry_backoff_s)
        self._ensure_open("ledger retry")
        return self.anchor.submit(record)

    def _persist(self, detection: Detection) -> str | None:
        if self.store is None:
            return None
        self._ensure_open("detection insert")
        try:
            detection_id = self.store.insert(detection)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to persist detection: %s", exc)
            self._emit("[Storage] Warning: detection could not be saved; result is still valid")
            return None
        self._emit(f"[Storage] Detection saved as {detection_id}")
        return detection_id

    def _advance(self, state: AuditState) -> None:
        self.path.append(state)
        logger.debug("%s → %s", self.describe(), state.value)

    def _finish(self, result: OrchestrationResult, state: AuditState, message: str) -> OrchestrationResult:
        self._advance(state)
        result.status = state
        result.message = message
        result.path = list(self.path)
        self._emit(f"[{state.value}] {message}")
        return result

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self._sink is None or self._closed.is_set():
            return
        try:
            self._sink(message)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Log sink raised, ignoring: %s", exc)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AuditOrchestrator:
    """Runs audits against a fixed set of components.

    Thread-safe: each call builds its own :class:`EncroachmentAudit`, so
    many audits may run concurrently.  The only shared mutable state is the
    telemetry client's credential cache.

    Args:
        fusion: Fusion engine.
        detector: Change detector.
        compliance: Legal compliance engine.
        anchor: Evidence anchor.
        store: Detection store; ``None`` disables persistence.
        audit_timeout_s: Wall-clock budget per audit; ``None`` or ``<= 0``
                         disables the budget.
        anchor_retry_backoff_s: Pause before the anchoring retry.
        verbose: Enable DEBUG logging.
    """

    def __init__(
        self,
        fusion: FusionEngine,
        detector: ChangeDetector,
        compliance: LegalComplianceEngine,
        anchor: EvidenceAnchor,
        store: DetectionStore | None = None,
        *,
        audit_timeout_s: float | None = 60.0,
        anchor_retry_backoff_s: float = 1.0,
        verbose: bool = False,
    ) -> None:
        self.fusion = fusion
        self.detector = detector
        self.compliance = compliance
        self.anchor = anchor
        self.store = store
        self.audit_timeout_s = audit_timeout_s if audit_timeout_s and audit_timeout_s > 0 else None
        self.anchor_retry_backoff_s = anchor_retry_backoff_s
        self.verbose = verbose

    @classmethod
    def from_settings(
        cls,
        settings: AuditorSettings,
        store: DetectionStore | None = None,
        *,
        verbose: bool = False,
    ) -> "AuditOrchestrator":
        """Wire every component from *settings*.

        Uses a :class:`JsonlDetectionStore` at ``settings.detections_path``
        unless *store* is given, and the HTTP ledger only when
        ``settings.ledger_url`` is set.
        """
        telemetry = TelemetryClient.from_settings(settings)
        ledger = (
            HttpLedgerClient(settings.ledger_url)
            if settings.ledger_url
            else SimulatedLedgerClient(latency_s=settings.ledger_latency_s)
        )
        return cls(
            fusion=FusionEngine(telemetry, timeout=settings.telemetry_timeout_s * 2),
            detector=ChangeDetector(telemetry),
            compliance=LegalComplianceEngine(ZoneCatalog.load(settings.zones_path)),
            anchor=EvidenceAnchor(ledger),
            store=store if store is not None else JsonlDetectionStore(settings.detections_path),
            audit_timeout_s=settings.audit_timeout_s,
            anchor_retry_backoff_s=settings.anchor_retry_backoff_s,
            verbose=verbose,
        )

    @property
    def telemetry(self) -> TelemetryClient:
        return self.fusion.telemetry

    def build_audit(
        self, lat: float, lng: float, state_code: str | None = None, log: LogSink | None = None
    ) -> EncroachmentAudit:
        return EncroachmentAudit(
            lat,
            lng,
            state_code,
            fusion=self.fusion,
            detector=self.detector,
            compliance=self.compliance,
            anchor=self.anchor,
            store=self.store,
            log=log,
            anchor_retry_backoff_s=self.anchor_retry_backoff_s,
            verbose=self.verbose,
        )

    def run_audit(
        self,
        lat: float,
        lng: float,
        state_code: str | None = None,
        log: LogSink | None = None,
    ) -> OrchestrationResult:
        """Run one audit to a terminal state.  Never raises.

        Args:
            lat: Latitude in decimal degrees.
            lng: Longitude in decimal degrees.
            state_code: Optional jurisdiction code.
            log: Optional sink receiving one line per transition.
        """
        audit = self.build_audit(lat, lng, state_code, log)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit")
        future = pool.submit(audit.run)
        try:
            return future.result(timeout=self.audit_timeout_s)
        except FuturesTimeout:
            audit.close()
            message = f"Audit exceeded its {self.audit_timeout_s:g}s budget"
            logger.error("%s: %s", audit.describe(), message)
            return self._error(audit, lat, lng, message, log)
        except GeoAuditError as exc:
            logger.error("%s failed: %s", audit.describe(), exc.message)
            return self._error(audit, lat, lng, exc.message, log)
        except Exception:
            logger.exception("%s failed unexpectedly", audit.describe())
            return self._error(audit, lat, lng, "Internal error during audit", log)
        finally:
            pool.shutdown(wait=False)

    def stream_audit(
        self, lat: float, lng: float, state_code: str | None = None
    ) -> Iterator[AuditEvent]:
        """Yield ``log`` events as the audit runs, then one terminal event."""
        events: queue.Queue[AuditEvent] = queue.Queue()

        def _work() -> None:
            result = self.run_audit(lat, lng, state_code, log=lambda m: events.put(AuditEvent.log(m)))
            events.put(AuditEvent.terminal(result))

        threading.Thread(target=_work, name="audit-stream", daemon=True).start()
        while True:
            event = events.get()
            yield event
            if event.kind != "log":
                return

    @staticmethod
    def _error(
        audit: EncroachmentAudit,
        lat: float,
        lng: float,
        message: str,
        log: LogSink | None,
    ) -> OrchestrationResult:
        path = list(audit.path) + [AuditState.ERROR]
        if log is not None:
            try:
                log(f"[ERROR] {message}")
            except Exception as exc:  # noqa: BLE001
                logger.debug("Log sink raised, ignoring: %s", exc)
        return OrchestrationResult(
            status=AuditState.ERROR,
            message=message,
            centroid=(lat, lng),
            state_code=audit.state_code,
            path=path,
            evidence_hash=audit.evidence.canonical_hash if audit.evidence else None,
        )
