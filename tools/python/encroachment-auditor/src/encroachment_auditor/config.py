"""
Encroachment Auditor — Configuration
=====================================
Environment-driven settings shared by the CLI, scheduler and orchestrator.

Every value can be overridden on the command line (see :mod:`cli`); the
environment supplies defaults, optionally loaded from a ``.env`` file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TOKEN_URL = "https://services.sentinel-hub.com/oauth/token"
DEFAULT_STATS_URL = "https://services.sentinel-hub.com/api/v1/statistics"


def env_float(name: str, default: float) -> float:
    v = os.environ.get(name)
    if v is None or not v.strip():
        return default
    return float(v)


def env_str(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name)
    if v is None or not v.strip():
        return default
    return v.strip()


def is_placeholder(secret: str | None) -> bool:
    """``True`` for unset or template credentials such as ``YOUR_CLIENT_ID``."""
    return not secret or "YOUR_" in secret


@dataclass(frozen=True)
class AuditorSettings:
    """Runtime configuration for one auditor process.

    Attributes:
        client_id: OAuth2 client id for the statistics service.
        client_secret: OAuth2 client secret.
        token_url: Client-credentials token endpoint.
        stats_url: Statistical aggregation endpoint.
        telemetry_timeout_s: Per-request HTTP timeout for telemetry calls.
        audit_timeout_s: Wall-clock budget for one complete audit.
        ledger_url: Anchoring service endpoint; ``None`` selects the
                    simulated ledger.
        ledger_latency_s: Simulated ledger confirmation latency.
        anchor_retry_backoff_s: Pause before the single anchoring retry.
        detections_path: JSONL file used by the default detection store.
        zones_path: Protected-zone catalog; ``None`` uses the bundled one.
    """

    client_id: str | None = None
    client_secret: str | None = None
    token_url: str = DEFAULT_TOKEN_URL
    stats_url: str = DEFAULT_STATS_URL
    telemetry_timeout_s: float = 20.0
    audit_timeout_s: float = 60.0
    ledger_url: str | None = None
    ledger_latency_s: float = 2.0
    anchor_retry_backoff_s: float = 1.0
    detections_path: Path = Path("detections.jsonl")
    zones_path: Path | None = None

    @classmethod
    def from_env(cls) -> "AuditorSettings":
        """Build settings from ``SENTINEL_*``, ``AUDIT_*`` and ``LEDGER_*`` variables."""
        zones = env_str("PROTECTED_ZONES_PATH")
        return cls(
            client_id=env_str("SENTINEL_CLIENT_ID"),
            client_secret=env_str("SENTINEL_CLIENT_SECRET"),
            token_url=env_str("SENTINEL_TOKEN_URL", DEFAULT_TOKEN_URL) or DEFAULT_TOKEN_URL,
            stats_url=env_str("SENTINEL_STATS_URL", DEFAULT_STATS_URL) or DEFAULT_STATS_URL,
            telemetry_timeout_s=env_float("TELEMETRY_TIMEOUT_S", 20.0),
            audit_timeout_s=env_float("AUDIT_TIMEOUT_S", 60.0),
            ledger_url=env_str("LEDGER_URL"),
            ledger_latency_s=env_float("LEDGER_LATENCY_S", 2.0),
            anchor_retry_backoff_s=env_float("ANCHOR_RETRY_BACKOFF_S", 1.0),
            detections_path=Path(env_str("DETECTIONS_PATH", "detections.jsonl") or "detections.jsonl"),
            zones_path=Path(zones) if zones else None,
        )

    @property
    def has_credentials(self) -> bool:
        """``False`` when the client id is missing or still a placeholder."""
        return not is_placeholder(self.client_id)
