"""
Tests for the `ppktab validate` command.
The ontology loader is patched so the command runs against the small test
ontology instead of a full HPO release.
"""

import json
import re

import pandas as pd
import pytest
from click.testing import CliRunner
from stairval.notepad import create_notepad

import ppktab.__main__ as cli
from ppktab.__main__ import _prepare_output_dir, _report_issues, main
from ppktab.errors import OntologyLoadError


@pytest.fixture
def hpo_file(tmp_path, monkeypatch, ontology):
    path = tmp_path / "hp.json"
    path.write_text("{}")
    monkeypatch.setattr(cli, "load_ontology_index", lambda hpo_path, with_synonyms=False: ontology)
    return str(path)


@pytest.fixture
def write_template(tmp_path, make_grid):
    def _write_template(rows, name="template.xlsx") -> str:
        path = tmp_path / name
        pd.DataFrame(make_grid(rows)).to_excel(path, header=False, index=False, engine="openpyxl")
        return str(path)

    return _write_template


def test_accepted_template_writes_phenopackets(tmp_path, hpo_file, write_template, make_row):
    excel = write_template([make_row(individual_id="A"), make_row(individual_id="B", sex="F")])
    out = tmp_path / "out"

    result = CliRunner().invoke(main, ["validate", "-e", excel, "--hpo", hpo_file, "--out", str(out)])

    assert result.exit_code == 0, result.output
    assert "Wrote 2 phenopacket files" in result.output
    written = sorted(p.name for p in out.glob("*.json"))
    assert written == ["PMID_29482508_A.json", "PMID_29482508_B.json"]
    payload = json.loads((out / "PMID_29482508_B.json").read_text())
    assert payload["subject"]["sex"] == "FEMALE"
    assert payload["metaData"]["resources"][0]["version"] == "2024-04-26"


def test_rejected_template_exits_with_error(tmp_path, hpo_file, write_template, make_row):
    excel = write_template([make_row(individual_id="A"), make_row(individual_id="A")])
    out = tmp_path / "out"

    result = CliRunner().invoke(main, ["validate", "-e", excel, "--hpo", hpo_file, "--out", str(out)])

    assert result.exit_code == 1
    assert "Errors found in template" in result.output
    assert "DuplicateSubjectIdentifier" in result.output
    assert not out.exists()


def test_replace_obsolete_flag(tmp_path, hpo_file, write_template, make_row, make_grid, monkeypatch):
    monkeypatch.delenv("PPKTAB_REPLACE_OBSOLETE", raising=False)
    titles, types, *_ = make_grid([])
    rows = [titles + ["Joint laxity"], types + ["HP:0001388"], make_row(hpo=("observed", "na", "na", "na", "na"))]
    excel = tmp_path / "obsolete.xlsx"
    pd.DataFrame(rows).to_excel(excel, header=False, index=False, engine="openpyxl")
    args = ["validate", "-e", str(excel), "--hpo", hpo_file, "--out", str(tmp_path / "out")]

    rejected = CliRunner().invoke(main, args)
    assert rejected.exit_code == 1
    assert "ObsoleteHpoTerm" in rejected.output

    accepted = CliRunner().invoke(main, args + ["--replace-obsolete", "--workers", "2"])
    assert accepted.exit_code == 0, accepted.output
    assert "Warnings found in template" in accepted.output


def test_ontology_load_error_is_fatal(tmp_path, write_template, make_row, monkeypatch):
    def failing_loader(hpo_path, with_synonyms=False):
        raise OntologyLoadError("Cycle in is-a graph")

    monkeypatch.setattr(cli, "load_ontology_index", failing_loader)
    hpo = tmp_path / "hp.json"
    hpo.write_text("{}")
    excel = write_template([make_row()])

    result = CliRunner().invoke(main, ["validate", "-e", excel, "--hpo", str(hpo)])

    assert result.exit_code == 1
    assert "Cycle in is-a graph" in result.output


def test_synonyms_are_loaded_unless_disabled(tmp_path, ontology, write_template, make_row, monkeypatch):
    calls = []

    def recording_loader(hpo_path, with_synonyms=False):
        calls.append(with_synonyms)
        return ontology

    monkeypatch.setattr(cli, "load_ontology_index", recording_loader)
    hpo = tmp_path / "hp.json"
    hpo.write_text("{}")
    excel = write_template([make_row()])
    args = ["validate", "-e", excel, "--hpo", str(hpo), "--out", str(tmp_path / "out")]

    assert CliRunner().invoke(main, args).exit_code == 0
    assert CliRunner().invoke(main, args + ["--without-synonyms"]).exit_code == 0
    assert calls == [True, False]


def test_validate_with_hpo_file(tmp_path, fpath_hpo, write_template, make_row):
    """Runs against a real obographs file, without patching the loader."""
    excel = write_template([make_row(individual_id="A")])
    out = tmp_path / "out"

    result = CliRunner().invoke(main, ["validate", "-e", excel, "--hpo", fpath_hpo, "--out", str(out)])

    assert result.exit_code == 0, result.output
    payload = json.loads((out / "PMID_29482508_A.json").read_text())
    features = [(f["type"]["id"], f.get("excluded", False)) for f in payload["phenotypicFeatures"]]
    assert features == [("HP:0001250", False), ("HP:0000505", True)]


def test_missing_sheet_is_reported(tmp_path, hpo_file, write_template, make_row):
    excel = write_template([make_row()])
    result = CliRunner().invoke(main, ["validate", "-e", excel, "--hpo", hpo_file, "--sheet", "nope"])
    assert result.exit_code == 1
    assert "could not read" in result.output


def test_log_file(tmp_path, hpo_file, write_template, make_row):
    excel = write_template([make_row()])
    log_file = tmp_path / "ppktab.log"
    args = ["validate", "-e", excel, "--hpo", hpo_file, "--out", str(tmp_path / "out"), "--log-file-path", str(log_file)]

    result = CliRunner().invoke(main, args)

    assert result.exit_code == 0, result.output
    assert "Template accepted: 1 subject(s)" in log_file.read_text()


def test_prepare_output_dir_creates_timestamped_folder(tmp_path, monkeypatch):
    """
    Without --out the path should look like:
    <cwd>/phenopackets_from_template/YYYY-MM-DD_HH-MM-SS
    """
    monkeypatch.chdir(tmp_path)
    out = _prepare_output_dir(None)
    assert out.exists() and out.is_dir()
    assert re.search(r"phenopackets_from_template/\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}$", str(out))


def test_report_issues_outputs_both_blocks(capsys):
    """
    When notepad contains both warnings and errors, the helper should print both sections.
    """
    n = create_notepad("report")
    n.add_warning("warn 1")
    n.add_error("err 1")

    _report_issues(n)
    out = capsys.readouterr().out
    assert "Warnings found in template" in out
    assert "warn 1" in out
    assert "Errors found in template" in out
    assert "err 1" in out
