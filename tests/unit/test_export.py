import csv
import json

from publicspace.common.store import InMemoryDocumentStore
from publicspace.pipeline.export import build_export_features, csv_table, run_export


def _store():
    return InMemoryDocumentStore(
        {
            "spaces": {
                "doc-a": {
                    "space_id": "park-a",
                    "type": "park",
                    "name": "A",
                    "amenities": ["benches", "toilets"],
                    "geometry": json.dumps({"type": "Point", "coordinates": [-73.123456789, 40.987654321]}),
                },
                "doc-b": {
                    "space_id": "plaza-b",
                    "type": "plaza",
                    "name": "B",
                    "url": "https://example.com/b",
                    "archived": False,
                    "geometry": json.dumps(
                        {"type": "Polygon", "coordinates": [[[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]]]}
                    ),
                },
                "doc-c": {"space_id": "park-c", "type": "park", "archived": True, "geometry": "{}"},
                "doc-d": {"space_id": "park-d", "type": "park", "geometry": "not json"},
            }
        }
    )


def test_build_export_features_skips_archived_and_bad_geometry():
    features = build_export_features(_store().query("spaces"))

    assert [feature["properties"]["document_id"] for feature in features] == ["doc-a", "doc-b"]
    assert features[0]["geometry"]["coordinates"] == [-73.123457, 40.987654]
    assert features[0]["properties"]["amenities"] == '["benches", "toilets"]'
    assert "geometry" not in features[0]["properties"]


def test_csv_table_header_is_union_in_first_seen_order():
    features = build_export_features(_store().query("spaces"))

    header, rows = csv_table(features)

    assert header == [
        "space_id",
        "type",
        "name",
        "amenities",
        "document_id",
        "longitude",
        "latitude",
        "url",
        "archived",
    ]
    assert (rows[1]["longitude"], rows[1]["latitude"]) == (1.0, 1.0)


def test_run_export_formats_agree(tmp_path):
    result = run_export(_store(), "spaces", tmp_path, "nyc-public-space", 6, "run-test")

    geojson = json.loads((tmp_path / "out" / "nyc-public-space.geojson").read_text(encoding="utf-8"))
    ndjson = [
        json.loads(line)
        for line in (tmp_path / "out" / "nyc-public-space.ndjson").read_text(encoding="utf-8").splitlines()
    ]
    with (tmp_path / "out" / "nyc-public-space.csv").open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))

    assert geojson["type"] == "FeatureCollection"
    assert geojson["features"] == ndjson
    assert [row["document_id"] for row in rows] == ["doc-a", "doc-b"]
    assert rows[0]["url"] == ""
    assert rows[1]["archived"] == "false"
    assert rows[0]["longitude"] == "-73.123457"
    assert (result["documents"], result["archived"], result["skipped"], result["rows_out"]) == (4, 1, 1, 2)
    assert result["written"] == {"geojson": 2, "ndjson": 2, "csv": 2}


def test_csv_empty_cells_are_quoted(tmp_path):
    run_export(_store(), "spaces", tmp_path, "out", 6, "run-test")

    lines = (tmp_path / "out" / "out.csv").read_text(encoding="utf-8").splitlines()

    assert lines[1].endswith(',"",""')


def test_run_export_of_empty_collection_writes_empty_files(tmp_path):
    run_export(InMemoryDocumentStore(), "spaces", tmp_path, "empty", 6, "run-test")

    assert json.loads((tmp_path / "out" / "empty.geojson").read_text(encoding="utf-8")) == {
        "type": "FeatureCollection",
        "features": [],
    }
    assert (tmp_path / "out" / "empty.ndjson").read_text(encoding="utf-8") == ""
    assert (tmp_path / "out" / "empty.csv").exists()
