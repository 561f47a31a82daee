import pytest

from publicspace.cli import parse_args, resolve_stages, validate_input_path
from publicspace.common.constants import STAGES


def test_parse_args_defaults():
    args = parse_args(["combine"])
    assert args.command == "combine"
    assert args.source == "all"
    assert args.input is None
    assert args.overlay_config_dir is None
    assert args.strict is False


def test_parse_args_accepts_overlay_config_dir():
    args = parse_args(["all", "--overlay-config-dir", "config/live"])
    assert args.overlay_config_dir == "config/live"


def test_resolve_stages_for_all_and_single_commands():
    assert resolve_stages(parse_args(["all"])) == STAGES
    assert resolve_stages(parse_args(["all", "--skip-fetch"]))[0] == "centroids"
    assert resolve_stages(parse_args(["check-slugs"])) == ("check-slugs",)


def test_validate_input_prefers_curated_sheet(tmp_path):
    assert validate_input_path(tmp_path, {"validate": {"sheet_path": "sheets/curated.csv"}}) == tmp_path / "sheets" / "curated.csv"
    assert validate_input_path(tmp_path, {"validate": {"sheet_path": None}}) == tmp_path / "ld" / "enriched.ndjson"
    assert validate_input_path(tmp_path, {}) == tmp_path / "ld" / "enriched.ndjson"


def test_help_explains_what_all_exports(capsys):
    with pytest.raises(SystemExit):
        parse_args(["--help"])

    help_text = " ".join(capsys.readouterr().out.split())
    assert "validate.sheet_path" in help_text
    assert "describe" in help_text
