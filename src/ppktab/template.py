"""
Declared template layout.

The first 17 columns of a template are fixed (two header rows each); every
column after the "HPO" separator is an HPO column whose header names a term.
Each column is resolved to a ColumnSpec exactly once, so row validation never
has to look at header strings again.
"""

from dataclasses import dataclass
from enum import Enum, auto
from functools import partial
from typing import Callable, Optional, Sequence

from .cells import (
    TypedCell,
    parse_age,
    parse_allele,
    parse_choice,
    parse_curie,
    parse_free_text,
    parse_observation,
    parse_separator,
    parse_subject_id,
    parse_transcript,
)


class ColumnKind(Enum):
    PMID = auto()
    TITLE = auto()
    INDIVIDUAL_ID = auto()
    COMMENT = auto()
    DISEASE_ID = auto()
    DISEASE_LABEL = auto()
    HGNC_ID = auto()
    GENE_SYMBOL = auto()
    TRANSCRIPT = auto()
    ALLELE_1 = auto()
    ALLELE_2 = auto()
    VARIANT_COMMENT = auto()
    AGE_OF_ONSET = auto()
    AGE_AT_LAST_ENCOUNTER = auto()
    DECEASED = auto()
    SEX = auto()
    SEPARATOR = auto()
    HPO_TERM = auto()


DECEASED_VALUES = ("yes", "no", "na")
SEX_VALUES = ("M", "F", "O", "U")

# (row 0 title, row 1 type line, kind, required)
FIXED_COLUMNS: tuple[tuple[str, str, ColumnKind, bool], ...] = (
    ("PMID", "CURIE", ColumnKind.PMID, True),
    ("title", "str", ColumnKind.TITLE, True),
    ("individual_id", "str", ColumnKind.INDIVIDUAL_ID, True),
    ("comment", "optional", ColumnKind.COMMENT, False),
    ("disease_id", "CURIE", ColumnKind.DISEASE_ID, True),
    ("disease_label", "str", ColumnKind.DISEASE_LABEL, True),
    ("HGNC_id", "CURIE", ColumnKind.HGNC_ID, False),
    ("gene_symbol", "str", ColumnKind.GENE_SYMBOL, False),
    ("transcript", "str", ColumnKind.TRANSCRIPT, False),
    ("allele_1", "str", ColumnKind.ALLELE_1, False),
    ("allele_2", "str", ColumnKind.ALLELE_2, False),
    ("variant.comment", "optional", ColumnKind.VARIANT_COMMENT, False),
    ("age_of_onset", "age", ColumnKind.AGE_OF_ONSET, False),
    ("age_at_last_encounter", "age", ColumnKind.AGE_AT_LAST_ENCOUNTER, False),
    ("deceased", "yes/no/na", ColumnKind.DECEASED, True),
    ("sex", "M:F:O:U", ColumnKind.SEX, True),
    ("HPO", "na", ColumnKind.SEPARATOR, False),
)

HEADER_ROWS = 2
FIRST_HPO_COLUMN = len(FIXED_COLUMNS)

CellParser = Callable[[str], TypedCell]

PARSERS: dict[ColumnKind, CellParser] = {
    ColumnKind.PMID: partial(parse_curie, prefixes=frozenset({"PMID"})),
    ColumnKind.TITLE: parse_free_text,
    ColumnKind.INDIVIDUAL_ID: parse_subject_id,
    ColumnKind.COMMENT: parse_free_text,
    ColumnKind.DISEASE_ID: partial(parse_curie, prefixes=frozenset({"OMIM", "MONDO"})),
    ColumnKind.DISEASE_LABEL: parse_free_text,
    ColumnKind.HGNC_ID: partial(parse_curie, prefixes=frozenset({"HGNC"})),
    ColumnKind.GENE_SYMBOL: parse_free_text,
    ColumnKind.TRANSCRIPT: parse_transcript,
    ColumnKind.ALLELE_1: parse_allele,
    ColumnKind.ALLELE_2: parse_allele,
    ColumnKind.VARIANT_COMMENT: parse_free_text,
    ColumnKind.AGE_OF_ONSET: parse_age,
    ColumnKind.AGE_AT_LAST_ENCOUNTER: parse_age,
    ColumnKind.DECEASED: partial(parse_choice, allowed=DECEASED_VALUES, field_name="deceased"),
    ColumnKind.SEX: partial(parse_choice, allowed=SEX_VALUES, field_name="sex"),
    ColumnKind.SEPARATOR: parse_separator,
    ColumnKind.HPO_TERM: parse_observation,
}


@dataclass(frozen=True)
class ColumnSpec:
    """
    One resolved column.

    Attributes:
        position: 0-based column index in the grid.
        kind: Which parser applies to the cells below the header.
        title: Row 0 header text.
        required: A blank cell in this column is a MissingRequiredValue.
        term_id: Resolved HPO id for HPO columns (None if the header failed to resolve).
        term_label: Ontology label of term_id.
    """

    position: int
    kind: ColumnKind
    title: str
    required: bool = False
    term_id: Optional[str] = None
    term_label: Optional[str] = None

    @property
    def parser(self) -> CellParser:
        return PARSERS[self.kind]


def fixed_column_specs() -> list[ColumnSpec]:
    return [
        ColumnSpec(position=i, kind=kind, title=title, required=required)
        for i, (title, _, kind, required) in enumerate(FIXED_COLUMNS)
    ]


def header_mismatches(titles: Sequence[str], types: Sequence[str]) -> list[tuple[int, int, str]]:
    """
    Compare the two header rows with the declared template.
    Returns (row, column, detail) for every difference in the fixed columns.
    """
    problems: list[tuple[int, int, str]] = []
    for i, (title, type_line, _, _) in enumerate(FIXED_COLUMNS):
        if i >= len(titles):
            problems.append((0, -1, f"Missing column {title!r} at position {i + 1}"))
            continue
        if titles[i] != title:
            problems.append((0, i, f"Malformed header: expected {title!r} but got {titles[i]!r}"))
        if types[i] != type_line:
            problems.append((1, i, f"Malformed {title} header: expected {type_line!r} but got {types[i]!r}"))
    return problems


def empty_template_headers(hpo_columns: Sequence[tuple[str, str]] = ()) -> tuple[list[str], list[str]]:
    """Header rows for a new template with the given (label, HPO id) columns."""
    titles = [title for title, _, _, _ in FIXED_COLUMNS] + [label for label, _ in hpo_columns]
    types = [type_line for _, type_line, _, _ in FIXED_COLUMNS] + [term_id for _, term_id in hpo_columns]
    return titles, types
