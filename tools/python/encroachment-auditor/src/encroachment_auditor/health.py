"""
Encroachment Auditor — System Health
=====================================
Probes the three external capabilities an audit depends on: the detection
store, the satellite statistics link (a credential can be obtained) and the
local hashing engine.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any

from encroachment_auditor.store import DetectionStore
from encroachment_auditor.telemetry import TelemetryClient, to_iso, utc_now

logger = logging.getLogger("geoaudit.encroachment_auditor.health")

_SELF_TEST_INPUT = b"HEALTH_CHECK"
_SELF_TEST_DIGEST = hashlib.sha256(_SELF_TEST_INPUT).hexdigest()


@dataclass(frozen=True)
class SystemHealth:
    database: str  # ONLINE | OFFLINE
    satellite: str  # LINKED | OFFLINE
    hashing: str  # ACTIVE | ERROR
    latency_ms: int
    last_checked: str

    @property
    def healthy(self) -> bool:
        return (self.database, self.satellite, self.hashing) == ("ONLINE", "LINKED", "ACTIVE")

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "satellite": self.satellite,
            "hashing": self.hashing,
            "latency_ms": self.latency_ms,
            "last_checked": self.last_checked,
        }


def check_system_health(telemetry: TelemetryClient, store: DetectionStore | None) -> SystemHealth:
    """Probe every dependency; never raises."""
    start = time.perf_counter()

    database = "OFFLINE"
    if store is not None:
        try:
            if store.ping():
                database = "ONLINE"
        except Exception as exc:  # noqa: BLE001
            logger.error("Health check: store failed: %s", exc)

    satellite = "OFFLINE"
    try:
        if telemetry.get_credential() is not None:
            satellite = "LINKED"
    except Exception as exc:  # noqa: BLE001
        logger.error("Health check: satellite link failed: %s", exc)

    hashing = "ERROR"
    try:
        if hashlib.sha256(_SELF_TEST_INPUT).hexdigest() == _SELF_TEST_DIGEST:
            hashing = "ACTIVE"
    except Exception as exc:  # noqa: BLE001
        logger.error("Health check: hashing failed: %s", exc)

    return SystemHealth(
        database=database,
        satellite=satellite,
        hashing=hashing,
        latency_ms=round((time.perf_counter() - start) * 1000),
        last_checked=to_iso(utc_now()),
    )
