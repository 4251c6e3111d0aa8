import logging
import typing

import pandas as pd

logger = logging.getLogger(__name__)


def load_template(workbook_path: str, sheet_name: typing.Union[int, str] = 0) -> pd.DataFrame:
    """
    Read one worksheet into a DataFrame of strings:
      - no header inference (both header rows stay in the grid)
      - no NA conversion ("na" and blank cells keep their text)
      - fully blank trailing rows and columns are dropped
    """
    df = pd.read_excel(
        workbook_path,
        sheet_name=sheet_name,
        header=None,
        dtype=str,
        keep_default_na=False,
        engine="openpyxl",
    )
    df = df.fillna("")
    # Excel formatting residue shows up as blank trailing rows/columns
    non_blank = df.apply(lambda col: col.str.strip() != "")
    n_rows = _last_true(non_blank.any(axis=1).tolist())
    n_cols = _last_true(non_blank.any(axis=0).tolist())
    df = df.iloc[:n_rows, :n_cols].reset_index(drop=True)
    df.columns = range(df.shape[1])
    logger.info("Loaded sheet %r of %s: %d rows x %d columns", sheet_name, workbook_path, *df.shape)
    return df


def _last_true(flags: list[bool]) -> int:
    """Length of the prefix that ends at the last True."""
    for i in range(len(flags), 0, -1):
        if flags[i - 1]:
            return i
    return 0
