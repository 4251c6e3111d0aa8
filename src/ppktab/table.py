"""
Table Validator.

Validates a whole template and decides accept/reject for the import as a
unit: an import with any error yields no subjects at all.

Process:
1) check the header rows against the declared template (SchemaMismatch
   rejects immediately),
2) resolve every HPO column header once,
3) validate every data row, optionally on a thread pool,
4) reduce across rows (duplicate identifiers, observed phenotype present),
5) sort all issues by (row, column) and build the ImportResult.
"""

import abc
import logging
import os
import typing

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import pandas as pd
from stairval.notepad import Notepad

from .cells import NOT_AVAILABLE, parse_hpo_reference
from .errors import CellParseError, ErrorKind, ValidationError, sort_issues
from .ontology import OntologyIndex
from .row import RowResult, RowValidator, SubjectRow
from .template import (
    FIRST_HPO_COLUMN,
    HEADER_ROWS,
    ColumnKind,
    ColumnSpec,
    fixed_column_specs,
    header_mismatches,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "t", "yes", "y"}


@dataclass(frozen=True)
class ValidationOptions:
    """
    Knobs for one import.

    Attributes:
        max_workers: Rows are validated on this many threads (1 = sequential).
        replace_obsolete_terms: Rewrite obsolete HPO columns to their replacement
            term instead of rejecting the import.
    """

    max_workers: int = 1
    replace_obsolete_terms: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "ValidationOptions":
        """
        Read defaults from the environment, then apply explicit overrides.

        PPKTAB_MAX_WORKERS=4        : validate rows on four threads
        PPKTAB_REPLACE_OBSOLETE=1   : accept replacements for obsolete terms
        """
        workers_raw = os.getenv("PPKTAB_MAX_WORKERS", "").strip()
        try:
            workers = int(workers_raw) if workers_raw else 1
        except ValueError:
            logger.warning("Ignoring non-integer PPKTAB_MAX_WORKERS=%r", workers_raw)
            workers = 1
        replace = os.getenv("PPKTAB_REPLACE_OBSOLETE", "").strip().lower() in _TRUE_VALUES
        values = {"max_workers": max(1, workers), "replace_obsolete_terms": replace}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# -------------
# Import result
# -------------


class ImportResult(metaclass=abc.ABCMeta):
    advisories: tuple[ValidationError, ...]

    @property
    @abc.abstractmethod
    def is_accepted(self) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Accepted(ImportResult):
    """Every row is valid; one SubjectRow per data row, in table order."""

    subjects: tuple[SubjectRow, ...]
    advisories: tuple[ValidationError, ...] = ()

    @property
    def is_accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected(ImportResult):
    """At least one defect; errors sorted by (row, column)."""

    errors: tuple[ValidationError, ...]
    advisories: tuple[ValidationError, ...] = ()

    @property
    def is_accepted(self) -> bool:
        return False


# ---------
# Validator
# ---------


class TableValidator:
    def __init__(self, ontology: OntologyIndex, options: Optional[ValidationOptions] = None):
        self._ontology = ontology
        self._options = options or ValidationOptions()

    def validate(self, table: typing.Union[pd.DataFrame, Sequence[Sequence[typing.Any]]]) -> ImportResult:
        grid = _as_string_grid(table)
        logger.info("Validating template with %d rows and %d columns", len(grid), len(grid[0]) if grid else 0)

        schema_errors = self._check_schema(grid)
        if schema_errors:
            logger.info("Template rejected: %d schema mismatch(es)", len(schema_errors))
            return Rejected(errors=sort_issues(schema_errors))

        columns, errors, advisories = self._resolve_columns(grid[0], grid[1])
        row_validator = RowValidator(columns, self._ontology)
        data_rows = list(enumerate(grid[HEADER_ROWS:], start=HEADER_ROWS))
        if self._options.max_workers > 1 and len(data_rows) > 1:
            with ThreadPoolExecutor(max_workers=self._options.max_workers) as pool:
                results = list(pool.map(lambda item: row_validator.validate(*item), data_rows))
        else:
            results = [row_validator.validate(row, values) for row, values in data_rows]

        for result in results:
            errors.extend(result.errors)
            advisories.extend(result.advisories)
        errors.extend(self._check_cross_row(data_rows, results))

        errors_sorted = sort_issues(errors)
        advisories_sorted = sort_issues(advisories)
        if errors_sorted:
            logger.info("Template rejected with %d error(s)", len(errors_sorted))
            return Rejected(errors=errors_sorted, advisories=advisories_sorted)
        subjects = tuple(r.subject for r in results)
        logger.info("Template accepted: %d subject(s)", len(subjects))
        return Accepted(subjects=subjects, advisories=advisories_sorted)

    def _check_schema(self, grid: list[list[str]]) -> list[ValidationError]:
        if len(grid) < HEADER_ROWS:
            return [
                ValidationError(
                    0, -1, ErrorKind.SCHEMA_MISMATCH, f"Template needs {HEADER_ROWS} header rows, found {len(grid)}"
                )
            ]
        titles, types = grid[0], grid[1]
        errors = [
            ValidationError(row, column, ErrorKind.SCHEMA_MISMATCH, detail)
            for row, column, detail in header_mismatches(titles, types)
        ]
        if len(titles) <= FIRST_HPO_COLUMN:
            errors.append(
                ValidationError(
                    0, -1, ErrorKind.SCHEMA_MISMATCH, f"No HPO column found (number of columns: {len(titles)})"
                )
            )
            return errors
        seen: dict[str, int] = {}
        for position in range(FIRST_HPO_COLUMN, len(types)):
            term_id = types[position]
            if not term_id:
                continue
            if term_id in seen:
                errors.append(
                    ValidationError(
                        1,
                        position,
                        ErrorKind.SCHEMA_MISMATCH,
                        f"HPO column {term_id} duplicates column {seen[term_id] + 1}",
                    )
                )
            else:
                seen[term_id] = position
        return errors

    def _resolve_columns(
        self, titles: Sequence[str], types: Sequence[str]
    ) -> tuple[list[ColumnSpec], list[ValidationError], list[ValidationError]]:
        """
        Resolve each HPO column header to a term. An empty id line falls back
        to the row-0 label (label or synonym lookup).
        """
        columns = fixed_column_specs()
        errors: list[ValidationError] = []
        advisories: list[ValidationError] = []
        for position in range(FIRST_HPO_COLUMN, len(titles)):
            title = titles[position]
            reference_text = types[position] or title
            try:
                reference = parse_hpo_reference(reference_text, self._ontology)
            except CellParseError as e:
                errors.append(ValidationError(1, position, e.kind, e.detail))
                columns.append(ColumnSpec(position=position, kind=ColumnKind.HPO_TERM, title=title))
                continue

            term_id, label = reference.term_id, reference.label
            if reference.obsolete:
                replacement = self._ontology.resolve(reference.replacement) if reference.replacement else None
                usable = replacement is not None and not replacement.is_obsolete
                if usable:
                    detail = f"{term_id} is obsolete; use {replacement.identifier} ({replacement.label})"
                else:
                    detail = f"{term_id} is obsolete and has no replacement"
                issue = ValidationError(1, position, ErrorKind.OBSOLETE_HPO_TERM, detail)
                if usable and self._options.replace_obsolete_terms:
                    advisories.append(issue)
                    term_id, label = replacement.identifier, replacement.label
                else:
                    errors.append(issue)
            elif title and not self._label_matches(title, term_id):
                advisories.append(
                    ValidationError(
                        0,
                        position,
                        ErrorKind.LABEL_MISMATCH,
                        f"label {title!r} does not match ontology name {label!r} of {term_id}",
                    )
                )
            columns.append(
                ColumnSpec(
                    position=position, kind=ColumnKind.HPO_TERM, title=title, term_id=term_id, term_label=label
                )
            )
        errors.extend(self._check_resolved_duplicates(columns))
        return columns, errors, advisories

    @staticmethod
    def _check_resolved_duplicates(columns: Sequence[ColumnSpec]) -> list[ValidationError]:
        """
        Two HPO columns must not resolve to the same term, whether through a
        label fallback or an obsolete id rewritten to its replacement.
        """
        errors: list[ValidationError] = []
        seen: dict[str, int] = {}
        for spec in columns:
            if spec.kind is not ColumnKind.HPO_TERM or spec.term_id is None:
                continue
            first = seen.setdefault(spec.term_id, spec.position)
            if first != spec.position:
                errors.append(
                    ValidationError(
                        1,
                        spec.position,
                        ErrorKind.SCHEMA_MISMATCH,
                        f"HPO column resolves to {spec.term_id}, already used by column {first + 1}",
                    )
                )
        return errors

    def _label_matches(self, title: str, term_id: str) -> bool:
        return self._ontology.id_for_label(title) == term_id

    @staticmethod
    def _check_cross_row(
        data_rows: Sequence[tuple[int, Sequence[str]]], results: Sequence[RowResult]
    ) -> list[ValidationError]:
        """Duplicate identifiers and the table-wide observed-phenotype requirement."""
        errors: list[ValidationError] = []
        id_column = next(s.position for s in fixed_column_specs() if s.kind is ColumnKind.INDIVIDUAL_ID)

        rows_by_id: dict[str, list[int]] = defaultdict(list)
        for row, values in data_rows:
            subject_id = values[id_column].strip()
            if subject_id and subject_id.casefold() != NOT_AVAILABLE:
                rows_by_id[subject_id].append(row)
        for subject_id, rows in rows_by_id.items():
            if len(rows) < 2:
                continue
            listed = ", ".join(str(r + 1) for r in rows)
            for row in rows:
                errors.append(
                    ValidationError(
                        row,
                        id_column,
                        ErrorKind.DUPLICATE_SUBJECT_IDENTIFIER,
                        f"Individual identifier {subject_id!r} appears in rows {listed}",
                    )
                )

        any_observed = any(r.subject is not None and r.subject.observed for r in results)
        any_failed = any(not r.ok for r in results)
        if not results:
            errors.append(
                ValidationError(HEADER_ROWS, -1, ErrorKind.NO_OBSERVED_PHENOTYPE, "Template has no data rows")
            )
        elif not any_observed and not any_failed:
            errors.append(
                ValidationError(
                    HEADER_ROWS, -1, ErrorKind.NO_OBSERVED_PHENOTYPE, "No row of the template observes a phenotype"
                )
            )
        return errors


def _as_string_grid(table: typing.Union[pd.DataFrame, Sequence[Sequence[typing.Any]]]) -> list[list[str]]:
    """Normalize any cell value (None, NaN, numbers from Excel) to a string."""
    if isinstance(table, pd.DataFrame):
        rows = table.itertuples(index=False, name=None)
    else:
        rows = table
    grid = [[_cell_text(v) for v in row] for row in rows]
    if grid:
        width = max(len(r) for r in grid)
        for r in grid:
            r.extend([""] * (width - len(r)))
    return grid


def _cell_text(value: typing.Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def report_to_notepad(result: ImportResult, notepad: Notepad) -> None:
    """Write errors (as notepad errors) and advisories (as warnings) for presentation."""
    if isinstance(result, Rejected):
        for error in result.errors:
            notepad.add_error(str(error))
    for advisory in result.advisories:
        notepad.add_warning(str(advisory))
