"""Shared NYC-shaped fixtures for stage and CLI tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from publicspace.common.fs import write_json

REPO_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

# Rectangles standing in for borough polygons; Manhattan and Brooklyn share
# the lat=40.70 edge over part of their extent.
MANHATTAN = [[-74.02, 40.70], [-73.93, 40.70], [-73.93, 40.88], [-74.02, 40.88], [-74.02, 40.70]]
BROOKLYN = [[-74.05, 40.57], [-73.85, 40.57], [-73.85, 40.70], [-74.05, 40.70], [-74.05, 40.57]]


def point_feature(lon: float, lat: float, **properties) -> dict:
    return {"type": "Feature", "geometry": {"type": "Point", "coordinates": [lon, lat]}, "properties": properties}


def square_feature(lon: float, lat: float, half: float = 0.001, **properties) -> dict:
    ring = [
        [lon - half, lat - half],
        [lon + half, lat - half],
        [lon + half, lat + half],
        [lon - half, lat + half],
        [lon - half, lat - half],
    ]
    return {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}, "properties": properties}


def collection(*features: dict) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


@pytest.fixture
def borough_collection() -> dict:
    return collection(
        {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [MANHATTAN]}, "properties": {"boro_name": "Manhattan"}},
        {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [BROOKLYN]}, "properties": {"boro_name": "Brooklyn"}},
    )


@pytest.fixture
def school_collection() -> dict:
    return collection(
        point_feature(-73.9900, 40.6600, Name="P.S. 321 William Penn"),
        point_feature(-73.9500, 40.6200, Name="P.S. 193 Gil Hodges"),
    )


@pytest.fixture
def nyc_data_dir(tmp_path: Path, borough_collection: dict, school_collection: dict) -> Path:
    """A data dir holding one raw file per configured source plus references."""
    data_dir = tmp_path / "data"
    write_json(
        data_dir / "tmp" / "parks-properties.geojson",
        collection(
            square_feature(-73.9654, 40.7829, signname="Central Park", address="5TH AVE AND CENTRAL PARK S"),
            {"type": "Feature", "geometry": None, "properties": {"signname": "Paper Park"}},
        ),
    )
    write_json(
        data_dir / "tmp" / "pedestrian-plazas.geojson",
        collection(
            square_feature(
                -73.9897,
                40.7411,
                plazaname="Flatiron Plaza",
                onstreet="Broadway",
                fromstreet="22nd St",
                tostreet="23rd St",
            )
        ),
    )
    write_json(
        data_dir / "tmp" / "pops.geojson",
        collection(point_feature(-73.9800, 40.7500, bldg_name="Brooklyn Tower", add_number="9", streetname="DEKALB AVE", popsnumber="M070001")),
    )
    write_json(
        data_dir / "tmp" / "waterfront-public-access-areas.geojson",
        collection(point_feature(-73.9990, 40.6990, WPAA_Name="Brooklyn Bridge Park Pier 1", Intersect_="Furman St", WPAA_ID="101")),
    )
    write_json(
        data_dir / "tmp" / "schoolyards-to-playgrounds.geojson",
        collection(square_feature(-73.9899, 40.6601, address="180 6TH AVENUE", location="Park Slope")),
    )
    write_json(data_dir / "reference" / "new-york-city-boroughs.geojson", borough_collection)
    write_json(data_dir / "reference" / "schools.geojson", school_collection)
    return data_dir


class StaticOracle:
    """Description oracle that rewrites every description the same way."""

    def describe(self, feature: dict) -> str:
        return f"Reviewed description for {feature['properties'].get('name')}."


@pytest.fixture
def overlay_dir(tmp_path: Path) -> Path:
    path = tmp_path / "overlay"
    path.mkdir()
    return path
