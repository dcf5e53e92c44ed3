"""
Tests — Evidence Anchoring
===========================
Hash determinism, canonical payload layout and the two ledger backends.
HTTP calls are mocked via ``responses``.
"""

from __future__ import annotations

import hashlib
import json
import random
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import responses as rsps_lib

from encroachment_auditor.anchoring import (
    CANONICAL_PAYLOAD_VERSION,
    EvidenceAnchor,
    HttpLedgerClient,
    LedgerClient,
    SimulatedLedgerClient,
    build_canonical_payload,
)
from encroachment_auditor.compliance import LegalVerdict, Severity
from shared.python.exceptions import AnchoringError, InputValidationError

LEDGER_URL = "https://ledger.example.org/anchor"
TIMESTAMP = "2024-06-01T10:00:00.000Z"


@pytest.fixture()
def verdict() -> LegalVerdict:
    return LegalVerdict(
        is_violation=True,
        law="Indian Forest Act, 1927",
        article="Reserved Forest",
        section="Section 26",
        severity=Severity.CRITICAL,
        zone_name="Test Forest",
        penalty_type="Immediate Sealing",
        jurisdiction="Supreme Court of India",
    )


@pytest.fixture()
def anchor() -> EvidenceAnchor:
    return EvidenceAnchor(SimulatedLedgerClient(latency_s=0, rng=random.Random(7)))


class TestCanonicalPayload:
    def test_field_order_and_separators(self):
        payload = build_canonical_payload(28.42, 77.1, "Section 26", TIMESTAMP, 0.99)
        assert payload == "28.42,77.1|2024-06-01T10:00:00.000Z|Section 26|0.99"

    def test_hash_is_prefixed_sha256(self, anchor, verdict):
        record = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        expected = hashlib.sha256(record.payload.encode("utf-8")).hexdigest()
        assert record.canonical_hash == "0x" + expected
        assert len(record.canonical_hash) == 66

    def test_metadata_records_version(self, anchor, verdict):
        record = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        meta = json.loads(record.serialized_metadata)
        assert meta["version"] == CANONICAL_PAYLOAD_VERSION
        assert meta["law_section"] == "Section 26"


class TestHashDeterminism:
    def test_identical_inputs_identical_hash(self, anchor, verdict):
        a = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        b = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        assert a.canonical_hash == b.canonical_hash

    def test_only_section_of_verdict_is_hashed(self, anchor, verdict):
        other = replace(verdict, zone_name="Elsewhere", severity=Severity.HIGH)
        a = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        b = anchor.anchor(28.42, 77.1, other, TIMESTAMP, 0.99)
        assert a.canonical_hash == b.canonical_hash

    @pytest.mark.parametrize(
        "changes",
        [
            {"lat": 28.43},
            {"lng": 77.2},
            {"timestamp": "2024-06-01T10:00:00.001Z"},
            {"section": "Section 27"},
            {"confidence": 0.98},
        ],
    )
    def test_any_field_change_changes_hash(self, anchor, verdict, changes):
        base = {"lat": 28.42, "lng": 77.1, "timestamp": TIMESTAMP, "section": "Section 26", "confidence": 0.99}
        args = {**base, **changes}
        original = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        changed = anchor.anchor(
            args["lat"], args["lng"], replace(verdict, section=args["section"]),
            args["timestamp"], args["confidence"],
        )
        assert original.canonical_hash != changed.canonical_hash

    def test_invalid_confidence(self, anchor, verdict):
        with pytest.raises(InputValidationError):
            anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 1.5)


class TestSimulatedLedger:
    def test_receipt_shape(self, anchor, verdict):
        receipt = anchor.submit(anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99))
        assert receipt.transaction_id.startswith("0x")
        assert len(receipt.transaction_id) == 66
        assert receipt.network == "Polygon Amoy Testnet"
        assert receipt.explorer_link == f"https://amoy.polygonscan.com/tx/{receipt.transaction_id}"

    def test_seeded_rng_is_reproducible(self):
        a = SimulatedLedgerClient(latency_s=0, rng=random.Random(1)).submit("0xabc")
        b = SimulatedLedgerClient(latency_s=0, rng=random.Random(1)).submit("0xabc")
        assert a == b


class TestHttpLedger:
    @rsps_lib.activate
    def test_success(self):
        rsps_lib.add(
            rsps_lib.POST,
            LEDGER_URL,
            json={"transaction_id": "0xfeed", "network": "mainnet", "explorer_link": "https://x/0xfeed"},
            status=200,
        )
        receipt = HttpLedgerClient(LEDGER_URL).submit("0xabc")
        assert receipt.transaction_id == "0xfeed"
        assert receipt.network == "mainnet"
        assert json.loads(rsps_lib.calls[0].request.body) == {"hash": "0xabc"}

    @rsps_lib.activate
    def test_server_error_raises_anchoring_error(self):
        rsps_lib.add(rsps_lib.POST, LEDGER_URL, json={"error": "down"}, status=503)
        with pytest.raises(AnchoringError) as exc_info:
            HttpLedgerClient(LEDGER_URL).submit("0xabc")
        assert exc_info.value.evidence_hash == "0xabc"

    @rsps_lib.activate
    def test_malformed_body_raises_anchoring_error(self):
        rsps_lib.add(rsps_lib.POST, LEDGER_URL, json={"ok": True}, status=200)
        with pytest.raises(AnchoringError):
            HttpLedgerClient(LEDGER_URL).submit("0xabc")


class TestSubmit:
    def test_unexpected_backend_error_is_wrapped(self, verdict):
        ledger = MagicMock(spec=LedgerClient)
        ledger.submit.side_effect = RuntimeError("nonce too low")
        anchor = EvidenceAnchor(ledger)
        record = anchor.anchor(28.42, 77.1, verdict, TIMESTAMP, 0.99)
        with pytest.raises(AnchoringError, match="nonce too low"):
            anchor.submit(record)
