"""
Issue model.

Every problem found while validating a template is an immutable
ValidationError addressed by grid row and column. Only OntologyLoadError is
raised out of the core; everything else is accumulated.
"""

import functools
from dataclasses import dataclass
from enum import Enum


class ErrorCategory(Enum):
    PARSE = "parse"
    SEMANTIC = "semantic"
    TABLE = "table"
    ADVISORY = "advisory"


class ErrorKind(Enum):
    """
    All issue kinds, each tagged with its category.
    The value is the name shown to curators.
    """

    MALFORMED_AGE = ("MalformedAge", ErrorCategory.PARSE)
    MALFORMED_IDENTIFIER = ("MalformedIdentifier", ErrorCategory.PARSE)
    UNRESOLVABLE_HPO_REFERENCE = ("UnresolvableHpoReference", ErrorCategory.PARSE)
    MALFORMED_ALLELE = ("MalformedAllele", ErrorCategory.PARSE)
    MALFORMED_VALUE = ("MalformedValue", ErrorCategory.PARSE)

    CONTRADICTORY_ASSERTION = ("ContradictoryAssertion", ErrorCategory.SEMANTIC)
    ONSET_AFTER_RESOLUTION = ("OnsetAfterResolution", ErrorCategory.SEMANTIC)
    NO_PHENOTYPE_ASSERTED = ("NoPhenotypeAsserted", ErrorCategory.SEMANTIC)
    MISSING_REQUIRED_VALUE = ("MissingRequiredValue", ErrorCategory.SEMANTIC)
    ONSET_AFTER_LAST_ENCOUNTER = ("OnsetAfterLastEncounter", ErrorCategory.SEMANTIC)
    INCONSISTENT_GENOTYPE = ("InconsistentGenotype", ErrorCategory.SEMANTIC)

    DUPLICATE_SUBJECT_IDENTIFIER = ("DuplicateSubjectIdentifier", ErrorCategory.TABLE)
    SCHEMA_MISMATCH = ("SchemaMismatch", ErrorCategory.TABLE)
    NO_OBSERVED_PHENOTYPE = ("NoObservedPhenotype", ErrorCategory.TABLE)

    OBSOLETE_HPO_TERM = ("ObsoleteHpoTerm", ErrorCategory.ADVISORY)
    LABEL_MISMATCH = ("LabelMismatch", ErrorCategory.ADVISORY)
    REDUNDANT_ASSERTION = ("RedundantAssertion", ErrorCategory.ADVISORY)

    def __init__(self, label: str, category: ErrorCategory):
        self.label = label
        self.category = category

    @property
    def is_advisory(self) -> bool:
        return self.category is ErrorCategory.ADVISORY


@functools.total_ordering
@dataclass(frozen=True)
class ValidationError:
    """
    One defect, addressable by position.

    Attributes:
        row: 0-based grid row (rows 0 and 1 are the header rows).
        column: 0-based grid column, or -1 for issues not tied to one column.
        kind: What went wrong.
        detail: Human-readable explanation.
    """

    row: int
    column: int
    kind: ErrorKind
    detail: str

    def sort_key(self) -> tuple:
        return self.row, self.column, self.kind.label, self.detail

    def __lt__(self, other: "ValidationError") -> bool:
        if not isinstance(other, ValidationError):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        where = f"row {self.row + 1}" if self.column < 0 else f"row {self.row + 1}, column {self.column + 1}"
        return f"{where}: [{self.kind.label}] {self.detail}"


def sort_issues(issues) -> tuple:
    """Order issues by (row, column, kind, detail) so reports are reproducible."""
    return tuple(sorted(issues, key=ValidationError.sort_key))


class CellParseError(ValueError):
    """Raised by a cell parser when a raw string cannot be typed."""

    def __init__(self, kind: ErrorKind, detail: str):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class OntologyLoadError(RuntimeError):
    """The ontology source is malformed or its is-a graph is cyclic. Fatal."""


class RecordBuildError(RuntimeError):
    """A validated subject row violated a builder invariant (programmer error)."""
