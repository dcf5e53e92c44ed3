"""
Encroachment Auditor — Legal Compliance Engine
===============================================
Turns a coordinate into a :class:`LegalVerdict` using one of two mutually
exclusive paths.

Geometry path
    Walks the protected-zone catalog in priority order (smallest polygon
    first, ties broken by name).  For each zone the point is tested for
    strict containment first, then against a 100 m buffer ring around the
    polygon.  The first hit wins:

    * inside the polygon  → the zone's own severity and law metadata
    * inside the ring     → severity HIGH, "(Buffer)" zone / article labels
    * no hit anywhere     → the neutral "Unregulated Zone" verdict

Jurisdiction path
    Looks the state code up in a small rule table; each rule picks one of
    two verdicts depending on whether the point falls inside a sub-region
    box (e.g. a floodplain inside a state).  Unknown codes get a generic
    WARNING "Unauthorized Development" verdict.  This path has no negative
    branch: callers only take it after a change candidate was confirmed.

Footprint intersection
    :meth:`LegalComplianceEngine.measure_footprint` intersects the change
    footprint (a ±0.0005° box, roughly 50 m, around the point) with the
    catalog polygons and reports the encroached area in square metres
    (local UTM) and as a share of the footprint.

Verdicts never carry ``None`` fields; the neutral verdict uses ``"N/A"``
placeholders so renderers never branch on absence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import geopandas as gpd
from pyproj import CRS
from shapely.geometry import MultiPolygon, Point, Polygon, box
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import CatalogError, InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("geoaudit.encroachment_auditor.compliance")

BUFFER_RADIUS_M = 100.0
FOOTPRINT_HALF_SIZE_DEG = 0.0005
DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "protected_zones.geojson"
CATALOG_EXTENSIONS = [".geojson", ".json", ".gpkg", ".shp"]
REQUIRED_ZONE_PROPERTIES = ["name", "zone_type", "severity", "law", "section"]

UNREGULATED_ZONE = "Unregulated Zone"
NOT_APPLICABLE = "N/A"


# ---------------------------------------------------------------------------
# Enums & verdict
# ---------------------------------------------------------------------------


class Severity(Enum):
    """Severity of a legal verdict, most to least serious."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    WARNING = "WARNING"
    INFO = "INFO"

    @classmethod
    def parse(cls, value: "Severity | str") -> "Severity":
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise InputValidationError(f"Unknown severity {value!r}") from exc


@dataclass(frozen=True)
class LegalVerdict:
    """Structured legal outcome for one coordinate.

    Attributes:
        is_violation: ``True`` when a rule or zone was breached.
        law: Statute name, e.g. ``"Indian Forest Act, 1927"``.
        article: Article / provision label.
        section: Section reference; part of the evidence hash.
        severity: :class:`Severity` of the breach.
        zone_name: Protected zone or jurisdiction sub-region name.
        penalty_type: Expected enforcement action.
        jurisdiction: Authority competent for the breach.
        encroachment_area_m2: Change-footprint area inside a protected
                              polygon; ``0.0`` until measured.
        overlap_percentage: That area as a share of the footprint.
    """

    is_violation: bool
    law: str
    article: str
    section: str
    severity: Severity
    zone_name: str
    penalty_type: str
    jurisdiction: str
    encroachment_area_m2: float = 0.0
    overlap_percentage: float = 0.0

    @classmethod
    def neutral(cls) -> "LegalVerdict":
        """The "no violation" verdict with placeholder fields."""
        return cls(
            is_violation=False,
            law=NOT_APPLICABLE,
            article=NOT_APPLICABLE,
            section=NOT_APPLICABLE,
            severity=Severity.INFO,
            zone_name=UNREGULATED_ZONE,
            penalty_type="None",
            jurisdiction=NOT_APPLICABLE,
        )

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def with_footprint(self, overlap: "FootprintOverlap | None") -> "LegalVerdict":
        """Copy of this verdict carrying the measured encroachment."""
        if overlap is None:
            return self
        return replace(
            self,
            encroachment_area_m2=round(overlap.overlap_area_m2, 2),
            overlap_percentage=round(overlap.overlap_percentage, 2),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_violation": self.is_violation,
            "law": self.law,
            "article": self.article,
            "section": self.section,
            "severity": self.severity.value,
            "zone": self.zone_name,
            "penalty_type": self.penalty_type,
            "jurisdiction": self.jurisdiction,
            "encroachment_area_m2": self.encroachment_area_m2,
            "overlap_percentage": self.overlap_percentage,
        }


@dataclass(frozen=True)
class FootprintOverlap:
    """Intersection of a change footprint with one protected zone.

    Attributes:
        zone_name: Zone the footprint overlaps.
        footprint_area_m2: Area of the whole footprint.
        overlap_area_m2: Area of the footprint inside the zone polygon.
    """

    zone_name: str
    footprint_area_m2: float
    overlap_area_m2: float

    @property
    def overlap_percentage(self) -> float:
        if self.footprint_area_m2 <= 0:
            return 0.0
        return 100.0 * self.overlap_area_m2 / self.footprint_area_m2

    def to_dict(self) -> dict[str, Any]:
        return {
            "zone": self.zone_name,
            "footprint_area_m2": round(self.footprint_area_m2, 2),
            "encroachment_area_m2": round(self.overlap_area_m2, 2),
            "overlap_percentage": round(self.overlap_percentage, 2),
        }


def change_footprint(lat: float, lng: float, half_size_deg: float = FOOTPRINT_HALF_SIZE_DEG) -> Polygon:
    """Square WGS84 footprint of a detected change centred on the point."""
    return box(lng - half_size_deg, lat - half_size_deg, lng + half_size_deg, lat + half_size_deg)


# ---------------------------------------------------------------------------
# Protected-zone catalog
# ---------------------------------------------------------------------------


def _utm_crs_from_lonlat(lon: float, lat: float) -> CRS:
    """Return the EPSG UTM CRS that covers *lon*, *lat*."""
    zone = int((lon + 180) / 6) + 1
    base = 32600 if lat >= 0 else 32700
    return CRS.from_epsg(base + zone)


@dataclass(frozen=True)
class ProtectedZone:
    """One catalog polygon with its law metadata.

    Attributes:
        name: Display name.
        zone_type: Category such as ``"forest"``, ``"wetland"``, ``"heritage"``.
        severity: Severity of a direct (in-polygon) hit.
        law: Statute protecting the zone.
        article: Provision label; ``"N/A"`` when the catalog omits it.
        section: Section reference.
        geometry: Polygon in WGS84.
        buffer_geometry: Polygon grown by :data:`BUFFER_RADIUS_M` metres, WGS84.
        area_m2: Polygon area in square metres (local UTM).
    """

    name: str
    zone_type: str
    severity: Severity
    law: str
    article: str
    section: str
    geometry: BaseGeometry
    buffer_geometry: BaseGeometry
    area_m2: float

    def contains(self, pt: Point) -> bool:
        """Strict containment: points on the boundary are not inside."""
        return self.geometry.contains(pt)

    def buffer_contains(self, pt: Point) -> bool:
        return self.buffer_geometry.contains(pt)

    def direct_verdict(self) -> LegalVerdict:
        return LegalVerdict(
            is_violation=True,
            law=self.law,
            article=self.article,
            section=self.section,
            severity=self.severity,
            zone_name=self.name,
            penalty_type="Immediate Sealing",
            jurisdiction="Supreme Court of India",
        )

    def buffer_verdict(self) -> LegalVerdict:
        return LegalVerdict(
            is_violation=True,
            law=self.law,
            article=f"{self.article} (Buffer Zone)",
            section=f"{self.section} - {BUFFER_RADIUS_M:.0f}m Buffer",
            severity=Severity.HIGH,
            zone_name=f"{self.name} (Buffer)",
            penalty_type="Notice & Fine",
            jurisdiction="Local Magistrate",
        )


class ZoneCatalog:
    """Immutable, priority-ordered collection of :class:`ProtectedZone`.

    Priority is smallest area first (most specific zone wins when polygons
    nest or overlap), ties broken by name, so editing the source file
    never silently reorders matches.

    Args:
        zones: Zones in any order; they are sorted on construction.
        source: Label used in log and error messages.
    """

    def __init__(self, zones: list[ProtectedZone], source: str = "<memory>") -> None:
        self.source = source
        self._zones: tuple[ProtectedZone, ...] = tuple(
            sorted(zones, key=lambda z: (z.area_m2, z.name))
        )

    @classmethod
    def load(cls, path: Path | None = None) -> "ZoneCatalog":
        """Read a catalog file (GeoJSON, GeoPackage, Shapefile).

        Args:
            path: Catalog path; defaults to the bundled catalog.

        Raises:
            InputValidationError: Missing file or unsupported extension.
            ColumnNotFoundError: A required feature property is absent.
            CatalogError: The file cannot be parsed or holds no polygons.
        """
        path = Path(path) if path is not None else DEFAULT_CATALOG_PATH
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, CATALOG_EXTENSIONS)
        try:
            gdf = gpd.read_file(path)
        except Exception as exc:
            raise CatalogError(str(path), str(exc)) from exc
        return cls.from_geodataframe(gdf, source=str(path))

    @classmethod
    def from_geodataframe(cls, gdf: gpd.GeoDataFrame, source: str = "<memory>") -> "ZoneCatalog":
        """Build a catalog from a GeoDataFrame of polygon features."""
        Validators.assert_columns_exist(gdf, REQUIRED_ZONE_PROPERTIES)
        if gdf.crs is None:
            logger.warning("Catalog %s has no CRS, assuming WGS84 (EPSG:4326).", source)
            gdf = gdf.set_crs("EPSG:4326")
        gdf = gdf.to_crs("EPSG:4326")

        zones: list[ProtectedZone] = []
        for idx, row in gdf.iterrows():
            geom = row.geometry
            if geom is None or geom.is_empty or not isinstance(geom, (Polygon, MultiPolygon)):
                logger.warning("Skipping catalog feature %s: not a polygon.", idx)
                continue
            if not geom.is_valid:
                raise CatalogError(source, f"feature '{row['name']}' has invalid geometry")
            zones.append(cls._build_zone(row, geom))

        if not zones:
            raise CatalogError(source, "no polygon features found")
        logger.info("Loaded %d protected zone(s) from %s", len(zones), source)
        return cls(zones, source=source)

    @staticmethod
    def _build_zone(row: Any, geom: BaseGeometry) -> ProtectedZone:
        # Area and buffer in a local UTM CRS for metric accuracy, then back to WGS84
        centroid = geom.centroid
        utm = _utm_crs_from_lonlat(centroid.x, centroid.y)
        geom_utm = gpd.GeoSeries([geom], crs="EPSG:4326").to_crs(utm)
        ring = geom_utm.buffer(BUFFER_RADIUS_M).to_crs("EPSG:4326").iloc[0]

        article = row.get("article")
        return ProtectedZone(
            name=str(row["name"]),
            zone_type=str(row["zone_type"]),
            severity=Severity.parse(row["severity"]),
            law=str(row["law"]),
            article=str(article) if isinstance(article, str) and article else NOT_APPLICABLE,
            section=str(row["section"]),
            geometry=geom,
            buffer_geometry=ring,
            area_m2=float(geom_utm.area.iloc[0]),
        )

    @property
    def zones(self) -> tuple[ProtectedZone, ...]:
        """Zones in match priority order."""
        return self._zones

    def __len__(self) -> int:
        return len(self._zones)

    def __iter__(self):
        return iter(self._zones)


# ---------------------------------------------------------------------------
# Jurisdiction rule table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubRegion:
    """Axis-aligned WGS84 box inside a jurisdiction.

    Attributes:
        name: Display name, e.g. ``"Yamuna Floodplain (Okhla)"``.
        bbox: ``(min_lng, min_lat, max_lng, max_lat)``.
    """

    name: str
    bbox: tuple[float, float, float, float]

    def contains(self, lat: float, lng: float) -> bool:
        min_lng, min_lat, max_lng, max_lat = self.bbox
        return min_lng <= lng <= max_lng and min_lat <= lat <= max_lat


@dataclass(frozen=True)
class JurisdictionRule:
    """Two-way rule for one state code.

    Attributes:
        code: Upper-case state code, e.g. ``"DELHI"``.
        name: Jurisdiction display name.
        sub_region: Box selecting the ``inside`` verdict.
        inside: Verdict for points inside ``sub_region``.
        outside: Verdict for every other point.
    """

    code: str
    name: str
    sub_region: SubRegion
    inside: LegalVerdict
    outside: LegalVerdict

    def verdict_for(self, lat: float, lng: float) -> LegalVerdict:
        return self.inside if self.sub_region.contains(lat, lng) else self.outside


DEFAULT_JURISDICTION_RULES: dict[str, JurisdictionRule] = {
    "DELHI": JurisdictionRule(
        code="DELHI",
        name="NCT of Delhi",
        sub_region=SubRegion("Yamuna Floodplain (Okhla)", (77.27, 28.50, 77.33, 28.60)),
        inside=LegalVerdict(
            is_violation=True,
            law="Environment (Protection) Act, 1986",
            article="NGT Order O.A. 6/2012 (Yamuna Floodplain)",
            section="Section 15",
            severity=Severity.CRITICAL,
            zone_name="Yamuna Floodplain (Okhla)",
            penalty_type="Demolition & Environmental Compensation",
            jurisdiction="National Green Tribunal",
        ),
        outside=LegalVerdict(
            is_violation=True,
            law="Delhi Development Act, 1957",
            article="Unauthorized Construction",
            section="Section 14",
            severity=Severity.HIGH,
            zone_name="NCT of Delhi (Master Plan Area)",
            penalty_type="Sealing & Demolition Notice",
            jurisdiction="Delhi Development Authority",
        ),
    ),
    "UP": JurisdictionRule(
        code="UP",
        name="Uttar Pradesh",
        sub_region=SubRegion("Sonbhadra Mining Belt", (82.70, 24.00, 83.10, 24.30)),
        inside=LegalVerdict(
            is_violation=True,
            law="Mines and Minerals (Development and Regulation) Act, 1957",
            article="Illegal Mining",
            section="Section 21",
            severity=Severity.CRITICAL,
            zone_name="Sonbhadra Mining Belt",
            penalty_type="Seizure & Prosecution",
            jurisdiction="District Magistrate, Sonbhadra",
        ),
        outside=LegalVerdict(
            is_violation=True,
            law="Uttar Pradesh Urban Planning and Development Act, 1973",
            article="Unauthorized Development",
            section="Section 27",
            severity=Severity.HIGH,
            zone_name="Uttar Pradesh (Development Area)",
            penalty_type="Demolition Notice",
            jurisdiction="Development Authority",
        ),
    ),
}


def generic_development_verdict(state_code: str) -> LegalVerdict:
    """Low-severity fallback for a state code with no rule."""
    return LegalVerdict(
        is_violation=True,
        law="Local Building Bye-Laws",
        article="Unauthorized Development",
        section="General Provisions",
        severity=Severity.WARNING,
        zone_name=f"{state_code} (Unmapped Jurisdiction)",
        penalty_type="Show-Cause Notice",
        jurisdiction="Municipal Authority",
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class LegalComplianceEngine:
    """Evaluates coordinates against zones and jurisdiction rules.

    Args:
        catalog: Protected-zone catalog; the bundled one when omitted.
        rules: State-code rule table; :data:`DEFAULT_JURISDICTION_RULES`
               when omitted.
    """

    def __init__(
        self,
        catalog: ZoneCatalog | None = None,
        rules: Mapping[str, JurisdictionRule] | None = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else ZoneCatalog.load()
        self.rules: dict[str, JurisdictionRule] = dict(
            rules if rules is not None else DEFAULT_JURISDICTION_RULES
        )

    def knows(self, state_code: str | None) -> bool:
        return state_code is not None and state_code.upper() in self.rules

    def evaluate(self, lat: float, lng: float, state_code: str | None = None) -> LegalVerdict:
        """Dispatch to the jurisdiction path for a known code, else geometry."""
        if self.knows(state_code):
            return self.evaluate_jurisdiction(lat, lng, state_code)  # type: ignore[arg-type]
        return self.evaluate_geometry(lat, lng)

    def evaluate_geometry(self, lat: float, lng: float) -> LegalVerdict:
        """First-match walk over the catalog: direct hit, then buffer ring."""
        pt = Point(lng, lat)
        for zone in self.catalog:
            if zone.contains(pt):
                logger.info("Point %.5f, %.5f inside %s", lat, lng, zone.name)
                return zone.direct_verdict()
            if zone.buffer_contains(pt):
                logger.info("Point %.5f, %.5f inside buffer of %s", lat, lng, zone.name)
                return zone.buffer_verdict()
        return LegalVerdict.neutral()

    def measure_footprint(
        self, lat: float, lng: float, half_size_deg: float = FOOTPRINT_HALF_SIZE_DEG
    ) -> FootprintOverlap | None:
        """Intersect the change footprint around a point with the catalog.

        Zones containing the point are tried first, then the rest, each
        group in catalog priority order.  The first zone with a non-empty
        overlap wins; ``None`` when the footprint touches no zone.
        """
        footprint = change_footprint(lat, lng, half_size_deg)
        pt = Point(lng, lat)
        utm = _utm_crs_from_lonlat(lng, lat)
        for zone in sorted(self.catalog, key=lambda z: not z.contains(pt)):
            if not zone.geometry.intersects(footprint):
                continue
            overlap = zone.geometry.intersection(footprint)
            if overlap.is_empty:
                continue
            areas = gpd.GeoSeries([footprint, overlap], crs="EPSG:4326").to_crs(utm).area
            if areas.iloc[1] <= 0:
                continue
            result = FootprintOverlap(zone.name, float(areas.iloc[0]), float(areas.iloc[1]))
            logger.info(
                "Footprint at %.5f, %.5f overlaps %s: %.1f m² (%.1f%%)",
                lat, lng, zone.name, result.overlap_area_m2, result.overlap_percentage,
            )
            return result
        return None

    def evaluate_jurisdiction(self, lat: float, lng: float, state_code: str) -> LegalVerdict:
        """Rule-table verdict for *state_code*; always a violation.

        Only call this after a change candidate has been confirmed.
        """
        code = state_code.upper()
        rule = self.rules.get(code)
        if rule is None:
            logger.info("No rule for jurisdiction %s, using generic verdict", code)
            return generic_development_verdict(code)
        verdict = rule.verdict_for(lat, lng)
        logger.info("Jurisdiction %s → %s (%s)", code, verdict.zone_name, verdict.severity.value)
        return verdict
