"""
Encroachment Auditor — Evidence Anchoring
==========================================
Builds a canonical, order-sensitive evidence payload for a confirmed
violation, hashes it with SHA-256 and submits the hash to a ledger.

Canonical payload (version 1)::

    "{lat},{lng}|{timestamp}|{law_section}|{confidence}"

Field order and separators are frozen; any change must bump
:data:`CANONICAL_PAYLOAD_VERSION` because every historical hash would stop
being reproducible.  The hash is a pure function of the payload, so a record
whose submission failed can be resubmitted later without recomputing it.

Ledger backends
    :class:`SimulatedLedgerClient` mimics a testnet confirmation (seconds of
    latency, random 64-hex transaction id).  :class:`HttpLedgerClient` posts
    the hash to a real anchoring service.  Both raise
    :class:`~shared.python.exceptions.AnchoringError` on failure; retrying is
    the caller's job.
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests

from shared.python.exceptions import AnchoringError
from shared.python.validators import Validators

from encroachment_auditor.compliance import LegalVerdict

logger = logging.getLogger("geoaudit.encroachment_auditor.anchoring")

CANONICAL_PAYLOAD_VERSION = 1
HASH_PREFIX = "0x"

SIMULATED_NETWORK = "Polygon Amoy Testnet"
SIMULATED_EXPLORER_URL = "https://amoy.polygonscan.com/tx/"


def build_canonical_payload(
    lat: float,
    lng: float,
    law_section: str,
    timestamp: str,
    confidence: float,
) -> str:
    """Return the version-1 canonical payload string."""
    return f"{lat},{lng}|{timestamp}|{law_section}|{confidence}"


def canonical_hash(payload: str) -> str:
    """``0x``-prefixed lowercase SHA-256 hex digest of *payload* (UTF-8)."""
    return HASH_PREFIX + hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvidenceRecord:
    """Hashed evidence for one confirmed violation.

    Attributes:
        canonical_hash: ``0x`` + 64 lowercase hex digits.
        timestamp_ms: Epoch milliseconds when the record was built.
        serialized_metadata: JSON of the hashed fields plus payload version.
        payload: The exact string that was hashed.
    """

    canonical_hash: str
    timestamp_ms: int
    serialized_metadata: str
    payload: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical_hash": self.canonical_hash,
            "timestamp_ms": self.timestamp_ms,
            "serialized_metadata": self.serialized_metadata,
        }


@dataclass(frozen=True)
class LedgerReceipt:
    """Ledger confirmation for an anchored hash."""

    transaction_id: str
    network: str
    explorer_link: str

    def to_dict(self) -> dict[str, str]:
        return {
            "transaction_id": self.transaction_id,
            "network": self.network,
            "explorer_link": self.explorer_link,
        }


# ---------------------------------------------------------------------------
# Ledger backends
# ---------------------------------------------------------------------------


class LedgerClient(ABC):
    """Abstract base for ledger submission backends."""

    @abstractmethod
    def submit(self, evidence_hash: str) -> LedgerReceipt:
        """Anchor *evidence_hash* and return the confirmation.

        Raises:
            AnchoringError: If the ledger rejected or never confirmed the hash.
        """


class SimulatedLedgerClient(LedgerClient):
    """Testnet stand-in with fixed latency and random transaction ids.

    Args:
        latency_s: Seconds to block before "confirming".
        rng: Random source for transaction ids; seed for reproducible tests.
    """

    def __init__(self, latency_s: float = 2.0, rng: random.Random | None = None) -> None:
        self.latency_s = latency_s
        self._rng = rng or random.Random()

    def submit(self, evidence_hash: str) -> LedgerReceipt:
        logger.debug("Simulated ledger: anchoring %s", evidence_hash)
        if self.latency_s > 0:
            time.sleep(self.latency_s)
        tx_id = HASH_PREFIX + "".join(self._rng.choice("0123456789abcdef") for _ in range(64))
        return LedgerReceipt(
            transaction_id=tx_id,
            network=SIMULATED_NETWORK,
            explorer_link=f"{SIMULATED_EXPLORER_URL}{tx_id}",
        )


class HttpLedgerClient(LedgerClient):
    """POST the hash as JSON to an anchoring service.

    The service is expected to answer with
    ``{"transaction_id": ..., "network": ..., "explorer_link": ...}``.

    Args:
        url: Anchoring endpoint.
        timeout: Request timeout in seconds.
        session: Optional shared :class:`requests.Session`.
    """

    def __init__(self, url: str, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def submit(self, evidence_hash: str) -> LedgerReceipt:
        try:
            response = self._session.post(self.url, json={"hash": evidence_hash}, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
            tx_id = body["transaction_id"]
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise AnchoringError(evidence_hash, str(exc)) from exc
        logger.info("Ledger confirmed %s as %s", evidence_hash, tx_id)
        return LedgerReceipt(
            transaction_id=str(tx_id),
            network=str(body.get("network", "unknown")),
            explorer_link=str(body.get("explorer_link", "")),
        )


# ---------------------------------------------------------------------------
# Anchor
# ---------------------------------------------------------------------------


class EvidenceAnchor:
    """Builds evidence records and hands them to a :class:`LedgerClient`.

    Args:
        ledger: Submission backend; simulated when omitted.
    """

    def __init__(self, ledger: LedgerClient | None = None) -> None:
        self.ledger = ledger or SimulatedLedgerClient()

    def anchor(
        self,
        lat: float,
        lng: float,
        verdict: LegalVerdict,
        timestamp: str,
        confidence: float,
    ) -> EvidenceRecord:
        """Compute the evidence record for a verdict.

        Identical inputs (notably an identical *timestamp*) always yield the
        same ``canonical_hash``.

        Raises:
            InputValidationError: On invalid coordinates or a confidence
                outside ``[0, 1]``.
        """
        Validators.assert_coordinate_valid(lat, lng)
        Validators.assert_unit_interval(confidence, "confidence")

        payload = build_canonical_payload(lat, lng, verdict.section, timestamp, confidence)
        metadata = json.dumps(
            {
                "version": CANONICAL_PAYLOAD_VERSION,
                "lat": lat,
                "lng": lng,
                "timestamp": timestamp,
                "law_section": verdict.section,
                "confidence": confidence,
            }
        )
        record = EvidenceRecord(
            canonical_hash=canonical_hash(payload),
            timestamp_ms=int(time.time() * 1000),
            serialized_metadata=metadata,
            payload=payload,
        )
        logger.debug("Evidence payload %r → %s", payload, record.canonical_hash)
        return record

    def submit(self, record: EvidenceRecord) -> LedgerReceipt:
        """Anchor *record* on the ledger once; no retry here.

        Raises:
            AnchoringError: On any ledger failure.
        """
        try:
            return self.ledger.submit(record.canonical_hash)
        except AnchoringError:
            raise
        except Exception as exc:
            raise AnchoringError(record.canonical_hash, str(exc)) from exc
