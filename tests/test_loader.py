"""
Tests for reading template workbooks with pandas/openpyxl.
"""

import pandas as pd
import pytest

from ppktab.loader import load_template
from ppktab.table import TableValidator


def _write_workbook(path, grid, sheet_name="Sheet1"):
    pd.DataFrame(grid).to_excel(path, sheet_name=sheet_name, header=False, index=False, engine="openpyxl")


def test_load_template_keeps_header_rows_and_na(tmp_path, make_row, make_grid):
    grid = make_grid([make_row()])
    path = tmp_path / "template.xlsx"
    _write_workbook(path, grid)

    df = load_template(str(path))

    assert df.shape == (3, 21)
    assert list(df.iloc[0, :3]) == ["PMID", "title", "individual_id"]
    assert df.iloc[1, 17] == "HP:0001250"
    # "na" must stay text, not become NaN
    assert df.iloc[2, 10] == "na"
    assert df.iloc[2, 3] == ""


def test_load_template_by_sheet_name(tmp_path, make_row, make_grid):
    path = tmp_path / "template.xlsx"
    _write_workbook(path, make_grid([make_row()]), sheet_name="STXBP1")
    assert load_template(str(path), sheet_name="STXBP1").shape[0] == 3


def test_load_template_missing_sheet(tmp_path, make_row, make_grid):
    path = tmp_path / "template.xlsx"
    _write_workbook(path, make_grid([make_row()]))
    with pytest.raises(ValueError):
        load_template(str(path), sheet_name="nope")


def test_trailing_blank_rows_are_dropped(tmp_path, make_row, make_grid):
    grid = make_grid([make_row()]) + [[""] * 21, [""] * 21]
    path = tmp_path / "template.xlsx"
    _write_workbook(path, grid)
    assert load_template(str(path)).shape == (3, 21)


def test_loaded_template_validates(tmp_path, ontology, make_row, make_grid):
    grid = make_grid([make_row(individual_id="A"), make_row(individual_id="B")])
    path = tmp_path / "template.xlsx"
    _write_workbook(path, grid)

    result = TableValidator(ontology).validate(load_template(str(path)))
    assert result.is_accepted
    assert [s.subject_id for s in result.subjects] == ["A", "B"]
