"""
GeoAudit: Shared Base Tool
============================
Abstract base class for every GeoAudit unit of work.

Design Pattern:
    Template Method: the public ``run()`` method defines a fixed
    pipeline (validate → process → report) that subclasses fill in
    by implementing the abstract methods ``validate_inputs`` and
    ``process``.

Usage:
    Do NOT instantiate this class directly.  Subclass it and implement
    the two abstract methods::

        from shared.python.base_tool import GeoTool

        class MyAudit(GeoTool):
            def validate_inputs(self) -> None:
                ...
            def process(self) -> MyResult:
                ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

# ---------------------------------------------------------------------------
# Module-level logger; each component gets its own child logger via
#   logging.getLogger("geoaudit.<component>") inside its own module.
# ---------------------------------------------------------------------------
logger = logging.getLogger("geoaudit")


class GeoTool(ABC):
    """Abstract base class for GeoAudit units of work.

    Every concrete tool must inherit from this class and implement
    :meth:`validate_inputs` and :meth:`process`.  Calling :meth:`run`
    executes the full pipeline in the correct order and returns whatever
    :meth:`process` produced.

    Attributes:
        verbose: When ``True`` the tool logs DEBUG-level messages in
            addition to INFO/WARNING/ERROR.
        elapsed: Seconds taken by the last :meth:`run`, or ``None``.
    """

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose: bool = verbose
        self.elapsed: float | None = None

        self._configure_logging()

    # ------------------------------------------------------------------
    # Abstract interface: subclasses MUST implement these
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Validate all inputs before processing begins.

        Raises:
            InputValidationError: If a coordinate, code or file is invalid.
        """

    @abstractmethod
    def process(self) -> Any:
        """Execute the core processing logic and return its result.

        Called by :meth:`run` after :meth:`validate_inputs` has succeeded.
        Any exception raised here propagates up through :meth:`run`.
        """

    # ------------------------------------------------------------------
    # Template method: the public API callers use
    # ------------------------------------------------------------------

    def run(self) -> Any:
        """Execute the full tool pipeline.

        Runs the steps in order:

        1. :meth:`validate_inputs` — verify all preconditions.
        2. :meth:`process` — perform the work.
        3. :meth:`_report_success` — log the elapsed time.

        Returns:
            The value returned by :meth:`process`.

        Raises:
            Any exception raised by ``validate_inputs`` or ``process``
            propagates unchanged so callers can handle it appropriately.
        """
        logger.info("Starting %s", self.describe())
        start = time.perf_counter()

        self.validate_inputs()
        result = self.process()

        self.elapsed = time.perf_counter() - start
        self._report_success(self.elapsed)
        return result

    # ------------------------------------------------------------------
    # Protected helpers: subclasses may override if needed
    # ------------------------------------------------------------------

    def describe(self) -> str:
        """Short label used in start/finish log lines."""
        return self.__class__.__name__

    def _report_success(self, elapsed: float) -> None:
        """Log a completion message with the elapsed time."""
        logger.info("%s completed in %.2fs", self.describe(), elapsed)

    def _configure_logging(self) -> None:
        """Set up console logging for the ``geoaudit`` logger tree.

        Attaches a :class:`logging.StreamHandler` to the root ``geoaudit``
        logger if no handlers are already present.  Uses DEBUG level when
        ``self.verbose`` is ``True``, otherwise INFO.
        """
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s — %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(verbose={self.verbose!r})"
