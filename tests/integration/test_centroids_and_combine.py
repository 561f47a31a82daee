import json
from pathlib import Path

import pytest

from conftest import REPO_CONFIG_DIR
from publicspace.common.config_loader import load_all_configs
from publicspace.common.errors import StageError
from publicspace.harvest.centroids import run_centroids
from publicspace.pipeline.normalise import run_combine


@pytest.mark.integration
def test_centroids_then_combine_over_all_sources(nyc_data_dir: Path):
    sources = load_all_configs(REPO_CONFIG_DIR).sources

    centroids = run_centroids(sources, nyc_data_dir, "run-test")
    combined = run_combine(sources, nyc_data_dir, "run-test")

    assert centroids["written"] == {"parks-properties": 1, "pedestrian-plazas": 1, "schoolyards-to-playgrounds": 1}
    assert centroids["skipped"] == 1
    assert combined["rows_out"] == 5
    assert combined["id_collisions"] == []

    for line in (nyc_data_dir / "ld" / "combined.ndjson").read_text(encoding="utf-8").splitlines():
        assert json.loads(line)["geometry"]["type"] == "Point"


@pytest.mark.integration
def test_centroids_require_raw_source(tmp_path: Path):
    source = {"id": "parks-properties", "type": "park", "centroid": True}

    with pytest.raises(StageError):
        run_centroids([source], tmp_path, "run-test")
