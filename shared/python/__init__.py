"""
GeoAudit: Shared Python Package
=================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so individual tools can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import AuthenticationError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    AnchoringError,
    AuditAbortedError,
    AuthenticationError,
    CatalogError,
    ColumnNotFoundError,
    DegradedSignalError,
    FusionError,
    GeoAuditError,
    InputValidationError,
    OutputWriteError,
    PersistenceError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "GeoAuditError",
    "InputValidationError",
    "ColumnNotFoundError",
    "CatalogError",
    "AuthenticationError",
    "DegradedSignalError",
    "FusionError",
    "AnchoringError",
    "PersistenceError",
    "AuditAbortedError",
    "OutputWriteError",
]
