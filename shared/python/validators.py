"""
GeoAudit: Shared Input Validators
===================================
Static utility methods used across GeoAudit components to validate common
preconditions before processing begins.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans; this
makes ``validate_inputs`` implementations simple and readable::

    class MyAudit(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_coordinate_valid(self.lat, self.lng)
            Validators.assert_state_code_valid(self.state_code)
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Sequence

from shared.python.exceptions import (
    ColumnNotFoundError,
    InputValidationError,
    OutputWriteError,
)

_STATE_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]{1,31}$")


class Validators:
    """Collection of static precondition checks shared across all components.

    All methods are ``@staticmethod``; this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Args:
            path: Path object to check.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.

        Example::

            Validators.assert_file_exists(Path("data/protected_zones.geojson"))
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Assert that the parent directory of *output_path* is writable.

        Creates the parent directory (and any missing parents) if it does
        not yet exist.

        Args:
            output_path: Intended output file path.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot
                        (e.g. ``[".geojson", ".json", ".gpkg"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # Coordinate checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_coordinate_valid(lat: float, lng: float) -> None:
        """Assert that ``(lat, lng)`` is a finite WGS84 coordinate.

        Args:
            lat: Latitude in decimal degrees, ``-90 <= lat <= 90``.
            lng: Longitude in decimal degrees, ``-180 <= lng <= 180``.

        Raises:
            InputValidationError: If either value is not a finite number
                or falls outside its valid range.

        Example::

            Validators.assert_coordinate_valid(28.545, 77.300)
        """
        try:
            lat_f, lng_f = float(lat), float(lng)
        except (TypeError, ValueError) as exc:
            raise InputValidationError(
                f"Coordinate must be numeric, got lat={lat!r}, lng={lng!r}"
            ) from exc
        if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
            raise InputValidationError(
                f"Coordinate must be finite, got lat={lat!r}, lng={lng!r}"
            )
        if not -90.0 <= lat_f <= 90.0:
            raise InputValidationError(f"Latitude out of range [-90, 90]: {lat_f}")
        if not -180.0 <= lng_f <= 180.0:
            raise InputValidationError(f"Longitude out of range [-180, 180]: {lng_f}")

    @staticmethod
    def assert_state_code_valid(state_code: str | None) -> None:
        """Assert that an optional jurisdiction code is well-formed.

        ``None`` is accepted (no jurisdiction context).  Otherwise the code
        must be upper-case letters, digits or underscores, e.g. ``"DELHI"``.

        Raises:
            InputValidationError: If the code is empty or malformed.
        """
        if state_code is None:
            return
        if not isinstance(state_code, str) or not _STATE_CODE_RE.match(state_code):
            raise InputValidationError(
                f"Malformed jurisdiction code: {state_code!r}. "
                "Use an upper-case identifier such as 'DELHI' or 'UP'."
            )

    @staticmethod
    def assert_unit_interval(value: float, label: str = "value") -> None:
        """Assert that *value* lies in the closed interval ``[0, 1]``.

        Raises:
            InputValidationError: If *value* is outside ``[0, 1]`` or NaN.
        """
        if not (0.0 <= value <= 1.0):
            raise InputValidationError(f"{label} must be within [0, 1], got {value!r}")

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: object,  # pandas / geopandas frame, typed loosely to avoid hard dep
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Args:
            df: A ``pandas.DataFrame`` or ``geopandas.GeoDataFrame``.
            required_columns: Column names that must be present.

        Raises:
            ColumnNotFoundError: On the first missing column found.

        Example::

            Validators.assert_columns_exist(gdf, ["name", "severity", "law"])
        """
        available = list(df.columns)  # type: ignore[union-attr]
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)
