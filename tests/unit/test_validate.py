import json

import pytest

from publicspace.common.errors import ValidationError
from publicspace.common.models import CanonicalSpace
from publicspace.common.store import InMemoryDocumentStore
from publicspace.pipeline.validate import run_check_slugs, run_validate, validate_space, validation_problems

POINT = {"type": "Point", "coordinates": [-73.97, 40.78]}


def _space(**overrides):
    fields = {
        "space_id": "park-central-park",
        "type": "park",
        "name": "Central Park",
        "description": "A large park.",
        "geometry": POINT,
    }
    fields.update(overrides)
    return CanonicalSpace(**fields)


def test_valid_space_has_no_problems():
    assert validation_problems(_space()) == []
    assert validate_space(_space()).space_id == "park-central-park"


def test_every_problem_is_reported():
    record = _space(
        space_id="Bad ID",
        type="garden",
        name=" ",
        description=None,
        geometry={"type": "Point", "coordinates": [1, 2, 3]},
    )

    assert validation_problems(record) == [
        "Invalid space_id: Bad ID",
        "Invalid type: garden",
        "Name should not be empty",
        "Description should not be empty",
        "Invalid GeoJSON Point geometry",
    ]


@pytest.mark.parametrize(
    "geometry",
    [
        None,
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        {"type": "Point", "coordinates": [True, 1]},
        {"type": "Point", "coordinates": [float("nan"), 1]},
        {"type": "Point", "coordinates": ["1", "2"]},
    ],
)
def test_bad_point_geometries_are_rejected(geometry):
    with pytest.raises(ValidationError) as excinfo:
        validate_space(_space(geometry=geometry))
    assert excinfo.value.problems == ["Invalid GeoJSON Point geometry"]
    assert excinfo.value.space_id == "park-central-park"


def test_run_validate_splits_valid_and_invalid_records(tmp_path):
    input_path = tmp_path / "enriched.ndjson"
    good = _space().to_feature()
    duplicate = _space(name="Other").to_feature()
    missing_description = _space(space_id="park-other", description=None).to_feature()
    input_path.write_text(
        "\n".join(json.dumps(item) for item in (good, duplicate, missing_description)) + "\n",
        encoding="utf-8",
    )

    result = run_validate(input_path, tmp_path, "run-test")

    validated = (tmp_path / "ld" / "validated.ndjson").read_text(encoding="utf-8").splitlines()
    assert len(validated) == 1
    errors = (tmp_path / "out" / "reports" / "validation-errors.csv").read_text(encoding="utf-8").splitlines()
    assert errors[1] == '"2","park-central-park","VALIDATION_ERROR","Duplicate space_id: park-central-park"'
    assert errors[2] == '"3","park-other","VALIDATION_ERROR","Description should not be empty"'
    assert result["validation_errors"] == 2
    assert result["duplicate_space_ids"] == ["park-central-park"]


def test_run_validate_reads_curated_csv_sheet(tmp_path):
    sheet = tmp_path / "sheet.csv"
    sheet.write_text(
        "space_id,type,name,description,geometry\n"
        'park-a,park,A,Nice,"{""type"": ""Point"", ""coordinates"": [-73.9, 40.7]}"\n'
        "park-b,park,B,Nice,not-json\n",
        encoding="utf-8",
    )

    result = run_validate(sheet, tmp_path, "run-test")

    assert result["rows_out"] == 1
    assert result["validation_errors"] == 1
    errors = (tmp_path / "out" / "reports" / "validation-errors.csv").read_text(encoding="utf-8").splitlines()
    assert errors[1].startswith('"3","park-b","VALIDATION_ERROR"')


def test_run_check_slugs_reports_invalid_and_colliding_ids(tmp_path):
    store = InMemoryDocumentStore(
        {
            "spaces": {
                "doc-1": {"space_id": "park-a"},
                "doc-2": {"space_id": "Park A!"},
                "doc-3": {"space_id": "park-a"},
            }
        }
    )

    result = run_check_slugs(store, "spaces", tmp_path, "run-test")

    report = (tmp_path / "out" / "reports" / "invalid-slugs.csv").read_text(encoding="utf-8")
    assert report == '"document_id","current_space_id","suggested_space_id"\n"doc-2","Park A!","park-a"\n'
    assert result["invalid_slugs"] == 1
    assert result["collisions"] == {"park-a": 2}
    assert result["validation_errors"] == 2
    assert store.get("spaces", "doc-2")["space_id"] == "Park A!"


def test_run_validate_skips_undecodable_line(tmp_path):
    input_path = tmp_path / "enriched.ndjson"
    good = json.dumps(_space().to_feature()).encode("utf-8")
    other = json.dumps(_space(space_id="park-other").to_feature()).encode("utf-8")
    input_path.write_bytes(good + b"\n" + b'{"x": "\xff\xfe"}\n' + other + b"\n")

    result = run_validate(input_path, tmp_path, "run-test")

    assert (result["rows_out"], result["skipped"]) == (2, 1)
    errors = (tmp_path / "out" / "reports" / "validation-errors.csv").read_text(encoding="utf-8").splitlines()
    assert errors[1].startswith('"2","","PARSE_ERROR","Invalid UTF-8')
