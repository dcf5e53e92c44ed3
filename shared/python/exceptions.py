"""
GeoAudit: Custom Exception Hierarchy
======================================
Every GeoAudit component raises exceptions from this module so callers can
catch them at the right level of granularity.

Hierarchy::

    GeoAuditError                        ← catch-all base
    ├── InputValidationError             ← bad coordinates, state codes, files
    │   └── ColumnNotFoundError          ← catalog property missing
    ├── CatalogError                     ← protected-zone catalog unusable
    ├── AuthenticationError              ← no usable telemetry credential
    ├── DegradedSignalError              ← telemetry band missing (soft)
    ├── FusionError                      ← a sensor fetch hard-failed
    ├── AnchoringError                   ← ledger submission failed
    ├── PersistenceError                 ← detection store insert/read failed
    ├── AuditAbortedError                ← audit closed after its time budget
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import AuthenticationError

    raise AuthenticationError("statistics service", "no client credentials configured")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class GeoAuditError(Exception):
    """Base exception for all GeoAudit components.

    Catch this to handle any audit-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(GeoAuditError):
    """Raised when a component's inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected property is absent from a tabular dataset.

    Args:
        column: The name of the missing column / feature property.
        available: Column names that ARE present, used to generate a
                   helpful error message.

    Example::

        raise ColumnNotFoundError("severity", gdf.columns.tolist())
    """

    def __init__(self, column: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = available


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class CatalogError(GeoAuditError):
    """Raised when the protected-zone catalog cannot be loaded or holds
    geometry the compliance engine cannot reason about.

    Args:
        source: Path or label of the catalog.
        reason: Short explanation of what is wrong.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Protected-zone catalog '{source}' is unusable: {reason}")
        self.source: str = source
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class AuthenticationError(GeoAuditError):
    """Raised when no usable access credential can be obtained.

    Fatal to the current audit and never retried.

    Args:
        provider: Name of the service that refused or is unconfigured.
        reason: Short explanation (missing keys, rejected exchange, ...).

    Example::

        raise AuthenticationError("Sentinel Hub", "no client credentials configured")
    """

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"Authentication with {provider} failed: {reason}")
        self.provider: str = provider
        self.reason: str = reason


class DegradedSignalError(GeoAuditError):
    """Raised inside the telemetry client when a statistics response carries
    no usable band value (cloud cover, empty aggregation).

    Always absorbed by the client, which substitutes a fallback reading
    with zero confidence.
    """


class FusionError(GeoAuditError):
    """Raised when either sensor fetch of a fusion cycle hard-failed.

    Args:
        sensor: The sensor kind whose fetch failed (``"SAR"``/``"OPTICAL"``).
        reason: Underlying error message.
    """

    def __init__(self, sensor: str, reason: str) -> None:
        super().__init__(f"Fusion aborted: {sensor} acquisition failed ({reason})")
        self.sensor: str = sensor
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class AnchoringError(GeoAuditError):
    """Raised when an evidence hash could not be anchored on the ledger.

    Args:
        evidence_hash: The canonical hash that was being submitted.  The
                       record stays valid and may be re-submitted later.
        reason: Underlying ledger / transport error message.
    """

    def __init__(self, evidence_hash: str, reason: str) -> None:
        super().__init__(f"Failed to anchor evidence {evidence_hash}: {reason}")
        self.evidence_hash: str = evidence_hash
        self.reason: str = reason


class PersistenceError(GeoAuditError):
    """Raised when the detection store cannot insert or read a record."""


class AuditAbortedError(GeoAuditError):
    """Raised inside an audit that was closed (its caller already reported
    ERROR) before it reached a ledger or store write.

    Args:
        audit: Description of the audit, e.g. ``EncroachmentAudit(28.42, 77.1, -)``.
        step: The side-effecting step that was skipped.
    """

    def __init__(self, audit: str, step: str) -> None:
        super().__init__(f"{audit} was closed before {step}; nothing was written")
        self.audit: str = audit
        self.step: str = step


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(GeoAuditError):
    """Raised when a component cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.

    Example::

        raise OutputWriteError("/read-only/dir/detections.jsonl", "Permission denied")
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
