"""
Tests for the Legal Compliance Engine
======================================
Geometry-path tests run against the fixture catalog from ``conftest.py``;
a separate class checks that the bundled catalog loads.

Test classes:
    TestZoneCatalog          Loading, validation and priority order.
    TestGeometryPath         Direct hits, buffer ring, neutral verdict.
    TestJurisdictionPath     Rule table and sub-region boxes.
    TestEvaluateDispatch     Which path ``evaluate`` takes.
    TestFootprint            Change-footprint intersection areas.
"""

from __future__ import annotations

import json
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString

from conftest import DELHI_FLOODPLAIN, DELHI_OUTSIDE_FLOODPLAIN, FAR_AWAY, FOREST_INSIDE
from encroachment_auditor.compliance import (
    DEFAULT_JURISDICTION_RULES,
    FootprintOverlap,
    LegalComplianceEngine,
    LegalVerdict,
    Severity,
    ZoneCatalog,
    change_footprint,
)
from shared.python.exceptions import CatalogError, ColumnNotFoundError, InputValidationError


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestZoneCatalog:
    def test_bundled_catalog_loads(self):
        catalog = ZoneCatalog.load()
        assert len(catalog) >= 5
        assert any(z.zone_type == "forest" and z.severity is Severity.CRITICAL for z in catalog)

    def test_priority_is_smallest_area_first(self, zone_catalog):
        areas = [z.area_m2 for z in zone_catalog]
        assert areas == sorted(areas)
        assert zone_catalog.zones[0].name == "Inner Heritage Site"

    def test_buffer_is_about_100m_wider(self, zone_catalog):
        forest = next(z for z in zone_catalog if z.name == "Test Forest")
        # 100 m is roughly 0.0009 degrees of latitude
        assert forest.buffer_geometry.bounds[3] == pytest.approx(28.44 + 0.0009, abs=0.0002)

    def test_missing_article_becomes_placeholder(self, zones_gdf):
        gdf = zones_gdf.drop(columns=["article"])
        catalog = ZoneCatalog.from_geodataframe(gdf)
        assert all(z.article == "N/A" for z in catalog)

    def test_missing_required_column(self, zones_gdf):
        with pytest.raises(ColumnNotFoundError):
            ZoneCatalog.from_geodataframe(zones_gdf.drop(columns=["law"]))

    def test_non_polygons_skipped(self, zones_gdf):
        extra = gpd.GeoDataFrame(
            [{"name": "Road", "zone_type": "road", "severity": "HIGH", "law": "x", "article": "y",
              "section": "z", "geometry": LineString([(0, 0), (1, 1)])}],
            geometry="geometry",
            crs="EPSG:4326",
        )
        combined = pd.concat([zones_gdf, extra], ignore_index=True)
        assert len(ZoneCatalog.from_geodataframe(combined)) == len(zones_gdf)

    def test_no_polygons_is_catalog_error(self):
        gdf = gpd.GeoDataFrame(
            [{"name": "Road", "zone_type": "road", "severity": "HIGH", "law": "x",
              "section": "z", "geometry": LineString([(0, 0), (1, 1)])}],
            geometry="geometry",
            crs="EPSG:4326",
        )
        with pytest.raises(CatalogError):
            ZoneCatalog.from_geodataframe(gdf)

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "zones.geojson"
        path.write_text(json.dumps({
            "type": "FeatureCollection",
            "features": [{
                "type": "Feature",
                "properties": {"name": "Pond", "zone_type": "wetland", "severity": "HIGH",
                               "law": "Wetlands Rules", "section": "Rule 4"},
                "geometry": {"type": "Polygon", "coordinates": [[[1, 1], [1.01, 1], [1.01, 1.01],
                                                                [1, 1.01], [1, 1]]]},
            }],
        }))
        catalog = ZoneCatalog.load(path)
        assert [z.name for z in catalog] == ["Pond"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(InputValidationError):
            ZoneCatalog.load(tmp_path / "nope.geojson")

    def test_unsupported_extension(self, tmp_path: Path):
        path = tmp_path / "zones.csv"
        path.write_text("name\n")
        with pytest.raises(InputValidationError):
            ZoneCatalog.load(path)


# ---------------------------------------------------------------------------
# Geometry path
# ---------------------------------------------------------------------------


class TestGeometryPath:
    def test_point_inside_polygon(self, compliance):
        verdict = compliance.evaluate_geometry(*FOREST_INSIDE)
        assert verdict.is_violation
        assert verdict.severity is Severity.CRITICAL
        assert verdict.law == "Indian Forest Act, 1927"
        assert verdict.section == "Section 26"
        assert verdict.zone_name == "Test Forest"

    def test_severity_follows_declared_zone_severity(self, compliance):
        verdict = compliance.evaluate_geometry(28.52, 76.97)
        assert verdict.zone_name == "Test Wetland"
        assert verdict.severity is Severity.HIGH

    def test_point_in_buffer_ring_is_high(self, compliance):
        # ~50 m east of the forest's eastern edge
        verdict = compliance.evaluate_geometry(28.42, 77.1205)
        assert verdict.is_violation
        assert verdict.severity is Severity.HIGH
        assert verdict.zone_name == "Test Forest (Buffer)"
        assert "Buffer" in verdict.article
        assert verdict.section == "Section 26 - 100m Buffer"

    def test_point_on_boundary_is_not_inside(self, compliance):
        verdict = compliance.evaluate_geometry(28.42, 77.12)
        assert verdict.zone_name == "Test Forest (Buffer)"

    def test_point_beyond_buffer_is_neutral(self, compliance):
        # ~1 km east of the forest
        verdict = compliance.evaluate_geometry(28.42, 77.13)
        assert verdict == LegalVerdict.neutral()

    def test_far_point_is_neutral_without_nulls(self, compliance):
        verdict = compliance.evaluate_geometry(*FAR_AWAY)
        assert not verdict.is_violation
        assert verdict.zone_name == "Unregulated Zone"
        assert all(v is not None for v in verdict.to_dict().values())
        assert verdict.law == "N/A"

    def test_nested_zone_wins(self, compliance):
        assert compliance.evaluate_geometry(20.10, 80.10).zone_name == "Inner Heritage Site"
        assert compliance.evaluate_geometry(20.05, 80.05).zone_name == "Outer Reserve"


# ---------------------------------------------------------------------------
# Jurisdiction path
# ---------------------------------------------------------------------------


class TestJurisdictionPath:
    def test_delhi_floodplain_is_critical(self, compliance):
        verdict = compliance.evaluate_jurisdiction(*DELHI_FLOODPLAIN, "DELHI")
        assert verdict.is_violation
        assert verdict.severity is Severity.CRITICAL
        assert "Floodplain" in verdict.zone_name

    def test_delhi_outside_floodplain_is_high(self, compliance):
        verdict = compliance.evaluate_jurisdiction(*DELHI_OUTSIDE_FLOODPLAIN, "DELHI")
        assert verdict.is_violation
        assert verdict.severity is Severity.HIGH

    def test_up_mining_belt(self, compliance):
        assert compliance.evaluate_jurisdiction(24.15, 82.90, "UP").severity is Severity.CRITICAL
        assert compliance.evaluate_jurisdiction(26.85, 80.95, "UP").severity is Severity.HIGH

    def test_unknown_code_is_generic_warning(self, compliance):
        verdict = compliance.evaluate_jurisdiction(12.97, 77.59, "ka")
        assert verdict.is_violation
        assert verdict.severity is Severity.WARNING
        assert verdict.article == "Unauthorized Development"
        assert verdict.zone_name.startswith("KA")

    def test_code_is_case_insensitive(self, compliance):
        verdict = compliance.evaluate_jurisdiction(*DELHI_FLOODPLAIN, "delhi")
        assert verdict.severity is Severity.CRITICAL


class TestEvaluateDispatch:
    def test_known_code_uses_rule_table(self, compliance):
        # Far from every catalog zone, but DELHI rules always flag a violation
        verdict = compliance.evaluate(*DELHI_OUTSIDE_FLOODPLAIN, state_code="DELHI")
        assert verdict.is_violation
        assert verdict.law == DEFAULT_JURISDICTION_RULES["DELHI"].outside.law

    def test_unknown_code_uses_geometry(self, compliance):
        assert compliance.evaluate(*FAR_AWAY, state_code="KA") == LegalVerdict.neutral()
        assert compliance.evaluate(*FOREST_INSIDE, state_code="KA").zone_name == "Test Forest"

    def test_no_code_uses_geometry(self, compliance):
        assert compliance.evaluate(*FOREST_INSIDE).zone_name == "Test Forest"

    def test_custom_rules(self, zone_catalog):
        engine = LegalComplianceEngine(zone_catalog, rules={})
        assert engine.evaluate(*DELHI_FLOODPLAIN, state_code="DELHI") == LegalVerdict.neutral()

    def test_verdict_serialisation(self, compliance):
        d = compliance.evaluate_geometry(*FOREST_INSIDE).to_dict()
        assert d["severity"] == "CRITICAL"
        assert d["zone"] == "Test Forest"
        assert d["encroachment_area_m2"] == 0.0


# ---------------------------------------------------------------------------
# Footprint intersection
# ---------------------------------------------------------------------------


class TestFootprint:
    def test_footprint_is_centred_box(self):
        minx, miny, maxx, maxy = change_footprint(28.42, 77.10).bounds
        assert (minx, maxx) == pytest.approx((77.0995, 77.1005))
        assert (miny, maxy) == pytest.approx((28.4195, 28.4205))

    def test_footprint_inside_zone(self, compliance):
        overlap = compliance.measure_footprint(*FOREST_INSIDE)
        assert overlap.zone_name == "Test Forest"
        # 0.001° x 0.001° at lat 28.4 is roughly 98 m x 111 m
        assert 10_000 < overlap.overlap_area_m2 < 12_500
        assert overlap.overlap_percentage == pytest.approx(100.0, abs=0.01)

    def test_footprint_straddling_edge(self, compliance):
        overlap = compliance.measure_footprint(28.42, 77.12)
        assert overlap.zone_name == "Test Forest"
        assert overlap.overlap_percentage == pytest.approx(50.0, abs=1.0)
        assert overlap.overlap_area_m2 < overlap.footprint_area_m2

    def test_no_overlap(self, compliance):
        assert compliance.measure_footprint(*FAR_AWAY) is None
        # buffer-ring hit whose footprint stays outside the polygon
        assert compliance.measure_footprint(28.42, 77.1208) is None

    def test_containing_zone_measured_first(self, compliance):
        assert compliance.measure_footprint(20.10, 80.10).zone_name == "Inner Heritage Site"

    def test_verdict_carries_footprint(self, compliance):
        verdict = compliance.evaluate_geometry(*FOREST_INSIDE)
        assert verdict.with_footprint(None) is verdict

        measured = verdict.with_footprint(FootprintOverlap("Test Forest", 10_000.0, 2_512.3))
        assert measured.encroachment_area_m2 == 2512.3
        assert measured.overlap_percentage == 25.12
        assert measured.section == verdict.section
        d = json.loads(json.dumps(measured.to_dict()))
        assert d["encroachment_area_m2"] == 2512.3
        assert d["overlap_percentage"] == 25.12
