"""
Encroachment Auditor
=====================
Fuse SAR and optical satellite statistics for a coordinate, detect change
against a 30-day baseline, evaluate it against protected zones and
jurisdiction rules, and anchor verified violations on a ledger.
"""

from encroachment_auditor.anchoring import (
    EvidenceAnchor,
    EvidenceRecord,
    HttpLedgerClient,
    LedgerClient,
    LedgerReceipt,
    SimulatedLedgerClient,
    build_canonical_payload,
)
from encroachment_auditor.change import ChangeAssessment, ChangeDetector
from encroachment_auditor.compliance import (
    FootprintOverlap,
    JurisdictionRule,
    LegalComplianceEngine,
    LegalVerdict,
    ProtectedZone,
    Severity,
    ZoneCatalog,
)
from encroachment_auditor.config import AuditorSettings
from encroachment_auditor.fusion import FusedScene, FusionEngine
from encroachment_auditor.health import SystemHealth, check_system_health
from encroachment_auditor.notice import generate_legal_notice, lookup_notice
from encroachment_auditor.orchestrator import (
    AuditEvent,
    AuditOrchestrator,
    AuditState,
    EncroachmentAudit,
    OrchestrationResult,
)
from encroachment_auditor.scheduler import AuditScheduler, ScanTarget
from encroachment_auditor.store import (
    Detection,
    DetectionStatus,
    DetectionStore,
    InMemoryDetectionStore,
    JsonlDetectionStore,
)
from encroachment_auditor.telemetry import (
    Credential,
    CredentialCache,
    SensorKind,
    SensorReading,
    TelemetryClient,
)

__all__ = [
    "AuditorSettings",
    "TelemetryClient",
    "Credential",
    "CredentialCache",
    "SensorKind",
    "SensorReading",
    "FusionEngine",
    "FusedScene",
    "ChangeDetector",
    "ChangeAssessment",
    "FootprintOverlap",
    "LegalComplianceEngine",
    "LegalVerdict",
    "Severity",
    "ProtectedZone",
    "ZoneCatalog",
    "JurisdictionRule",
    "EvidenceAnchor",
    "EvidenceRecord",
    "LedgerReceipt",
    "LedgerClient",
    "SimulatedLedgerClient",
    "HttpLedgerClient",
    "build_canonical_payload",
    "Detection",
    "DetectionStatus",
    "DetectionStore",
    "InMemoryDetectionStore",
    "JsonlDetectionStore",
    "generate_legal_notice",
    "lookup_notice",
    "AuditState",
    "AuditEvent",
    "OrchestrationResult",
    "EncroachmentAudit",
    "AuditOrchestrator",
    "SystemHealth",
    "check_system_health",
    "AuditScheduler",
    "ScanTarget",
]
