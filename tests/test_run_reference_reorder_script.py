"""Tests for scripts/run_reference_reorder.py."""

import importlib.util
import json
from pathlib import Path

import pytest


def _load_script():
    path = Path(__file__).resolve().parents[1] / "scripts" / "run_reference_reorder.py"
    spec = importlib.util.spec_from_file_location("run_reference_reorder", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.unit
def test_show_prints_reference_list(seeded_store, capsys):
    script = _load_script()
    code = script.main([str(seeded_store.store_folder), "doc-1", "--tenant", "tenant-a", "show"])

    out = capsys.readouterr().out
    assert code == 0
    assert "[1] Smith, J. (2010). Alpha (citations: 2)" in out


@pytest.mark.unit
def test_sort_year_json_output(seeded_store, capsys):
    script = _load_script()
    code = script.main(
        [str(seeded_store.store_folder), "doc-1", "--tenant", "tenant-a", "--json", "sort", "year", "--order", "asc"]
    )

    result = json.loads(capsys.readouterr().out)
    assert code == 0
    assert [r["id"] for r in result["references"]] == ["r1", "r3", "r2"]


@pytest.mark.unit
def test_engine_error_exits_with_code_2(seeded_store, capsys):
    script = _load_script()
    code = script.main([str(seeded_store.store_folder), "doc-1", "--tenant", "tenant-a", "move", "r1", "9"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 2
    assert payload["error"]["code"] == "INVALID_POSITION"
