"""
Shared fixtures for the Encroachment Auditor tests.

Catalog coordinates used throughout:

* ``Test Forest``  forest, CRITICAL, lng 77.08–77.12 / lat 28.40–28.44
* ``Test Wetland`` wetland, HIGH,   lng 76.95–77.00 / lat 28.50–28.54
* ``Outer Reserve`` forest, CRITICAL, lng 80.00–80.20 / lat 20.00–20.20
  with ``Inner Heritage Site`` (HIGH, lng 80.09–80.11 / lat 20.09–20.11)
  nested inside it.
"""

from __future__ import annotations

import geopandas as gpd
import pytest
from shapely.geometry import box

from encroachment_auditor.compliance import LegalComplianceEngine, ZoneCatalog
from encroachment_auditor.fusion import FusedScene
from encroachment_auditor.telemetry import SensorKind, SensorReading

FOREST_INSIDE = (28.42, 77.10)
FAR_AWAY = (12.97, 77.59)
DELHI_FLOODPLAIN = (28.545, 77.300)
DELHI_OUTSIDE_FLOODPLAIN = (28.65, 77.20)


def make_reading(kind: SensorKind, value: float, confidence: float = 1.0) -> SensorReading:
    return SensorReading(
        reading_id=f"TEST-{kind.value}",
        sensor_kind=kind,
        value=value,
        unit=kind.unit,
        timestamp="2024-06-01T10:00:00.000Z",
        source_label="test",
        confidence=confidence,
    )


def make_scene(
    lat: float,
    lng: float,
    state_code: str | None = None,
    score: float = 0.99,
) -> FusedScene:
    return FusedScene(
        scene_id="SCENE-1717236000000-001",
        centroid=(lat, lng),
        timestamp="2024-06-01T10:00:00.000Z",
        radar=make_reading(SensorKind.SAR, -8.5),
        optical=make_reading(SensorKind.OPTICAL, 0.31),
        state_code=state_code,
        co_registration_score=score,
    )


def _zone(name, zone_type, severity, law, section, geometry, article="Protected Area"):
    return {
        "name": name,
        "zone_type": zone_type,
        "severity": severity,
        "law": law,
        "article": article,
        "section": section,
        "geometry": geometry,
    }


@pytest.fixture(scope="session")
def zones_gdf() -> gpd.GeoDataFrame:
    rows = [
        _zone("Test Forest", "forest", "CRITICAL", "Indian Forest Act, 1927", "Section 26",
              box(77.08, 28.40, 77.12, 28.44), article="Reserved Forest"),
        _zone("Test Wetland", "wetland", "HIGH", "Wetlands (Conservation and Management) Rules, 2017",
              "Rule 4", box(76.95, 28.50, 77.00, 28.54)),
        _zone("Outer Reserve", "forest", "CRITICAL", "Indian Forest Act, 1927", "Section 26",
              box(80.00, 20.00, 80.20, 20.20)),
        _zone("Inner Heritage Site", "heritage", "HIGH",
              "Ancient Monuments and Archaeological Sites and Remains Act, 1958", "Section 20A",
              box(80.09, 20.09, 80.11, 20.11)),
    ]
    return gpd.GeoDataFrame(rows, geometry="geometry", crs="EPSG:4326")


@pytest.fixture(scope="session")
def zone_catalog(zones_gdf: gpd.GeoDataFrame) -> ZoneCatalog:
    return ZoneCatalog.from_geodataframe(zones_gdf, source="test-catalog")


@pytest.fixture()
def compliance(zone_catalog: ZoneCatalog) -> LegalComplianceEngine:
    return LegalComplianceEngine(zone_catalog)
