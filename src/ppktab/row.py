"""
Row Validator.

Turns one template row into a SubjectRow, or into the complete list of its
defects. Parsing comes first and all parse errors are collected; semantic
checks run only once every cell of the row is typed.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .age import Age
from .cells import AlleleToken, Choice, Empty, FreeText, Identifier, Observation, Polarity, TypedCell
from .errors import CellParseError, ErrorKind, ValidationError
from .ontology import OntologyIndex
from .template import ColumnKind, ColumnSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhenotypicAssertion:
    """
    One observed or excluded HPO term for a subject.

    Invariant: onset, if present, is not later than resolution.
    """

    term_id: str
    label: str
    polarity: Polarity
    column: int
    onset: Optional[Age] = None
    resolution: Optional[Age] = None

    @property
    def excluded(self) -> bool:
        return self.polarity is Polarity.EXCLUDED


@dataclass(frozen=True)
class SubjectRow:
    """
    A fully validated template row.

    Attributes:
        row: Grid row the subject came from.
        subject_id: The individual identifier, unique within the table.
        assertions: Phenotypic assertions in column order.
        alleles: allele_1 then allele_2, when present.
        demographics: Remaining typed values keyed by column kind.
    """

    row: int
    subject_id: str
    assertions: tuple[PhenotypicAssertion, ...]
    alleles: tuple[AlleleToken, ...]
    demographics: dict = field(default_factory=dict, hash=False)

    def text(self, kind: ColumnKind) -> Optional[str]:
        """String value of a demographic column, None if the cell was empty."""
        cell = self.demographics.get(kind)
        if isinstance(cell, (FreeText, Identifier, Choice)):
            return cell.value
        return None

    def age(self, kind: ColumnKind) -> Optional[Age]:
        cell = self.demographics.get(kind)
        return cell if isinstance(cell, Age) else None

    @property
    def observed(self) -> tuple[PhenotypicAssertion, ...]:
        return tuple(a for a in self.assertions if not a.excluded)

    @property
    def excluded(self) -> tuple[PhenotypicAssertion, ...]:
        return tuple(a for a in self.assertions if a.excluded)


@dataclass(frozen=True)
class RowResult:
    """Either a subject or the errors that prevented it; advisories in both cases."""

    row: int
    subject: Optional[SubjectRow] = None
    errors: tuple[ValidationError, ...] = ()
    advisories: tuple[ValidationError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.subject is not None


class RowValidator:
    def __init__(self, columns: Sequence[ColumnSpec], ontology: OntologyIndex):
        """
        columns: resolved specs for every grid column, in order.
        HPO columns whose header did not resolve (term_id None) are parsed but
        contribute no assertions.
        """
        self._columns = tuple(columns)
        self._ontology = ontology
        self._position = {spec.kind: spec.position for spec in self._columns if spec.kind is not ColumnKind.HPO_TERM}
        self._hpo_columns = tuple(spec for spec in self._columns if spec.kind is ColumnKind.HPO_TERM)

    def validate(self, row: int, values: Sequence[str]) -> RowResult:
        cells: list[TypedCell] = []
        parse_errors: list[ValidationError] = []
        for spec, raw in zip(self._columns, values):
            try:
                cells.append(spec.parser(raw))
            except CellParseError as e:
                parse_errors.append(ValidationError(row, spec.position, e.kind, e.detail))
                cells.append(Empty())
        if parse_errors:
            logger.debug("Row %d: %d parse error(s)", row, len(parse_errors))
            return RowResult(row=row, errors=tuple(parse_errors))

        errors: list[ValidationError] = []
        advisories: list[ValidationError] = []

        self._check_required(row, cells, errors)
        assertions = self._collect_assertions(cells)
        self._check_ancestor_conflicts(row, assertions, errors, advisories)
        self._check_ages(row, cells, assertions, errors)
        if not any(isinstance(cells[s.position], Observation) for s in self._hpo_columns):
            errors.append(
                ValidationError(
                    row,
                    self._hpo_columns[0].position,
                    ErrorKind.NO_PHENOTYPE_ASSERTED,
                    "Row has no observed or excluded phenotype",
                )
            )
        alleles = self._check_genotype(row, cells, errors)

        if errors:
            logger.debug("Row %d: %d semantic error(s)", row, len(errors))
            return RowResult(row=row, errors=tuple(errors), advisories=tuple(advisories))

        demographics = {kind: cells[position] for kind, position in self._position.items()}
        subject = SubjectRow(
            row=row,
            subject_id=demographics[ColumnKind.INDIVIDUAL_ID].value,
            assertions=tuple(assertions),
            alleles=alleles,
            demographics=demographics,
        )
        return RowResult(row=row, subject=subject, advisories=tuple(advisories))

    # ------
    # Checks
    # ------

    def _check_required(self, row: int, cells: Sequence[TypedCell], errors: list) -> None:
        for spec in self._columns:
            if spec.required and isinstance(cells[spec.position], Empty):
                errors.append(
                    ValidationError(row, spec.position, ErrorKind.MISSING_REQUIRED_VALUE, f"{spec.title} is required")
                )

    def _collect_assertions(self, cells: Sequence[TypedCell]) -> list[PhenotypicAssertion]:
        assertions: list[PhenotypicAssertion] = []
        for spec in self._hpo_columns:
            cell = cells[spec.position]
            if spec.term_id is None or not isinstance(cell, Observation):
                continue
            assertions.append(
                PhenotypicAssertion(
                    term_id=spec.term_id,
                    label=spec.term_label or spec.title,
                    polarity=cell.polarity,
                    column=spec.position,
                    onset=cell.onset,
                    resolution=cell.resolution,
                )
            )
        return assertions

    def _check_ancestor_conflicts(
        self, row: int, assertions: Sequence[PhenotypicAssertion], errors: list, advisories: list
    ) -> None:
        """
        Over the full transitive closure of is-a:
          same term observed and excluded -> ContradictoryAssertion
          excluded ancestor + observed descendant -> ContradictoryAssertion
          observed ancestor + observed descendant -> RedundantAssertion (advisory)
          excluded ancestor + excluded descendant -> RedundantAssertion (advisory)
        Observed ancestor + excluded descendant is allowed.
        """
        observed = [a for a in assertions if not a.excluded]
        excluded = [a for a in assertions if a.excluded]
        excluded_by_id = {a.term_id: a for a in excluded}
        observed_by_id = {a.term_id: a for a in observed}

        for child in observed:
            ancestors = self._ontology.ancestors(child.term_id)
            for term_id in sorted((ancestors | {child.term_id}) & excluded_by_id.keys()):
                ancestor = excluded_by_id[term_id]
                if term_id == child.term_id:
                    detail = f"{child.label} ({child.term_id}) is both observed and excluded"
                else:
                    detail = (
                        f"{ancestor.label} ({ancestor.term_id}) is excluded but its descendant "
                        f"{child.label} ({child.term_id}) is observed"
                    )
                errors.append(ValidationError(row, ancestor.column, ErrorKind.CONTRADICTORY_ASSERTION, detail))
            for term_id in sorted(ancestors & observed_by_id.keys()):
                ancestor = observed_by_id[term_id]
                advisories.append(
                    ValidationError(
                        row,
                        ancestor.column,
                        ErrorKind.REDUNDANT_ASSERTION,
                        f"Observed {ancestor.label} ({ancestor.term_id}) is implied by observed "
                        f"{child.label} ({child.term_id})",
                    )
                )
        for child in excluded:
            for term_id in sorted(self._ontology.ancestors(child.term_id) & excluded_by_id.keys()):
                ancestor = excluded_by_id[term_id]
                advisories.append(
                    ValidationError(
                        row,
                        child.column,
                        ErrorKind.REDUNDANT_ASSERTION,
                        f"Excluded {child.label} ({child.term_id}) is implied by excluded "
                        f"{ancestor.label} ({ancestor.term_id})",
                    )
                )

    def _check_ages(
        self, row: int, cells: Sequence[TypedCell], assertions: Sequence[PhenotypicAssertion], errors: list
    ) -> None:
        for a in assertions:
            if a.onset is not None and a.resolution is not None and a.onset.is_after(a.resolution):
                errors.append(
                    ValidationError(
                        row,
                        a.column,
                        ErrorKind.ONSET_AFTER_RESOLUTION,
                        f"{a.label}: onset {a.onset} is after resolution {a.resolution}",
                    )
                )
        onset_position = self._position.get(ColumnKind.AGE_OF_ONSET)
        last_position = self._position.get(ColumnKind.AGE_AT_LAST_ENCOUNTER)
        if onset_position is None or last_position is None:
            return
        onset, last = cells[onset_position], cells[last_position]
        if isinstance(onset, Age) and isinstance(last, Age) and onset.is_after(last):
            errors.append(
                ValidationError(
                    row,
                    onset_position,
                    ErrorKind.ONSET_AFTER_LAST_ENCOUNTER,
                    f"Age of onset {onset} is after age at last encounter {last}",
                )
            )

    def _check_genotype(self, row: int, cells: Sequence[TypedCell], errors: list) -> tuple[AlleleToken, ...]:
        """allele_2 needs allele_1; any allele needs gene context; HGVS needs a transcript."""
        allele_1 = cells[self._position[ColumnKind.ALLELE_1]]
        allele_2 = cells[self._position[ColumnKind.ALLELE_2]]
        alleles = tuple(a for a in (allele_1, allele_2) if isinstance(a, AlleleToken))

        if isinstance(allele_2, AlleleToken) and not isinstance(allele_1, AlleleToken):
            errors.append(
                ValidationError(
                    row,
                    self._position[ColumnKind.ALLELE_1],
                    ErrorKind.INCONSISTENT_GENOTYPE,
                    "allele_2 is given but allele_1 is empty",
                )
            )
        if not alleles:
            return alleles
        for kind in (ColumnKind.HGNC_ID, ColumnKind.GENE_SYMBOL):
            position = self._position[kind]
            if isinstance(cells[position], Empty):
                errors.append(
                    ValidationError(
                        row,
                        position,
                        ErrorKind.INCONSISTENT_GENOTYPE,
                        f"{self._columns[position].title} is required when an allele is given",
                    )
                )
        transcript_position = self._position[ColumnKind.TRANSCRIPT]
        if isinstance(cells[transcript_position], Empty) and any(not a.structural for a in alleles):
            errors.append(
                ValidationError(
                    row,
                    transcript_position,
                    ErrorKind.INCONSISTENT_GENOTYPE,
                    "transcript is required for HGVS alleles",
                )
            )
        return alleles
