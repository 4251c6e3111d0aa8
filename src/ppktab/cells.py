"""
Cell parsers.

Each parser turns the raw string of one template cell into a typed value, or
raises CellParseError. Parsers are pure and stateless; the HPO reference
parser only reads the (immutable) ontology index.

A blank cell, or "na", is Empty: absence of data. It is never an exclusion.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .age import Age
from .errors import CellParseError, ErrorKind
from .ontology import OntologyIndex

NOT_AVAILABLE = "na"

_HPO_CURIE = re.compile(r"^HP:\d{7}$")
_CURIE = re.compile(r"^(?P<prefix>[A-Za-z][A-Za-z0-9_]*):(?P<suffix>\d+)$")
_SUBJECT_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _.:\-]*$")
_TRANSCRIPT = re.compile(r"^(?:N[MR]|X[MR])_\d+\.\d+$|^ENST\d+\.\d+$")

# HGVS c./n. forms accepted before variants are sent to an external normalizer
_HGVS_PATTERNS = (
    re.compile(r"^[cn]\.[-*]?\d+(?:[+-]\d+)?[ACGT]+>[ACGT]+$"),
    re.compile(r"^[cn]\.[-*]?\d+(?:[+-]\d+)?_[-*]?\d+(?:[+-]\d+)?ins[ACGT]+$"),
    re.compile(r"^[cn]\.[-*]?\d+(?:[+-]\d+)?_[-*]?\d+(?:[+-]\d+)?delins[A-Za-z0-9]+$"),
    re.compile(r"^[cn]\.[-*]?\d+(?:[+-]\d+)?(?:_[-*]?\d+(?:[+-]\d+)?)?del$"),
    re.compile(r"^[cn]\.[-*]?\d+(?:[+-]\d+)?(?:_[-*]?\d+(?:[+-]\d+)?)?dup$"),
)
STRUCTURAL_PREFIXES = {"DEL", "DUP", "INV", "INS", "TRANSL"}
_STRUCTURAL_TEXT = re.compile(r"^[^/\\()]+$")


class Polarity(Enum):
    OBSERVED = "observed"
    EXCLUDED = "excluded"


# ------------------
# Typed cell values
# ------------------


@dataclass(frozen=True)
class Empty:
    """No data in the cell."""


@dataclass(frozen=True)
class FreeText:
    value: str


@dataclass(frozen=True)
class Identifier:
    value: str


@dataclass(frozen=True)
class Choice:
    value: str


@dataclass(frozen=True)
class AlleleToken:
    """
    An allele as written by the curator.

    Attributes:
        value: "c.123A>G" style HGVS, or "DEL: exon 5 deletion" style structural description.
        structural: True for structural descriptions.
    """

    value: str
    structural: bool = False

    @property
    def structural_type(self) -> Optional[str]:
        if not self.structural:
            return None
        return self.value.split(":", 1)[0]

    @property
    def structural_label(self) -> Optional[str]:
        if not self.structural:
            return None
        return self.value.split(":", 1)[1].strip()


@dataclass(frozen=True)
class HpoReference:
    term_id: str
    label: str
    obsolete: bool = False
    replacement: Optional[str] = None


@dataclass(frozen=True)
class Observation:
    """Content of an HPO column cell that asserts something."""

    polarity: Polarity
    onset: Optional[Age] = None
    resolution: Optional[Age] = None


TypedCell = Union[Empty, FreeText, Identifier, Choice, AlleleToken, HpoReference, Age, Observation]

EMPTY = Empty()


def _blank(value: str) -> bool:
    return not value or value.casefold() == NOT_AVAILABLE


# -------
# Parsers
# -------


def parse_free_text(raw: str) -> TypedCell:
    value = raw.strip()
    return EMPTY if _blank(value) else FreeText(value)


def parse_curie(raw: str, prefixes: frozenset[str]) -> TypedCell:
    """A CURIE with one of the allowed prefixes and a numeric suffix."""
    value = raw.strip()
    if _blank(value):
        return EMPTY
    if any(c.isspace() for c in value):
        raise CellParseError(ErrorKind.MALFORMED_IDENTIFIER, f"Identifier contains stray whitespace: {value!r}")
    m = _CURIE.match(value)
    if not m:
        raise CellParseError(ErrorKind.MALFORMED_IDENTIFIER, f"Malformed CURIE {value!r}")
    if m.group("prefix") not in prefixes:
        raise CellParseError(
            ErrorKind.MALFORMED_IDENTIFIER,
            f"Identifier {value!r} must use prefix {' or '.join(sorted(prefixes))}",
        )
    return Identifier(value)


def parse_subject_id(raw: str) -> TypedCell:
    value = raw.strip()
    if _blank(value):
        return EMPTY
    if not _SUBJECT_ID.match(value):
        raise CellParseError(ErrorKind.MALFORMED_IDENTIFIER, f"Invalid individual identifier {value!r}")
    return Identifier(value)


def parse_transcript(raw: str) -> TypedCell:
    value = raw.strip()
    if _blank(value):
        return EMPTY
    if not _TRANSCRIPT.match(value):
        raise CellParseError(
            ErrorKind.MALFORMED_IDENTIFIER, f"Transcript {value!r} must be a versioned RefSeq or Ensembl accession"
        )
    return Identifier(value)


def parse_allele(raw: str) -> TypedCell:
    """
    HGVS (c./n.) or structural allele. Only syntax is checked; the variant is
    not normalized here.
    """
    value = raw.strip()
    if _blank(value):
        return EMPTY
    prefix, sep, rest = value.partition(":")
    if sep and prefix in STRUCTURAL_PREFIXES:
        if not rest.strip() or not _STRUCTURAL_TEXT.match(rest.strip()):
            raise CellParseError(ErrorKind.MALFORMED_ALLELE, f"Malformed structural variant {value!r}")
        return AlleleToken(value=f"{prefix}: {rest.strip()}", structural=True)
    if any(c.isspace() for c in value):
        raise CellParseError(ErrorKind.MALFORMED_ALLELE, f"Allele contains whitespace: {value!r}")
    if not any(p.match(value) for p in _HGVS_PATTERNS):
        raise CellParseError(ErrorKind.MALFORMED_ALLELE, f"Malformed HGVS {value!r}")
    return AlleleToken(value=value)


def parse_age(raw: str) -> TypedCell:
    value = raw.strip()
    return EMPTY if _blank(value) else Age.parse(value)


def parse_choice(raw: str, allowed: tuple[str, ...], field_name: str) -> TypedCell:
    value = raw.strip()
    if not value:
        return EMPTY
    if value not in allowed:
        raise CellParseError(
            ErrorKind.MALFORMED_VALUE, f"Malformed {field_name} entry {value!r} (expected {'/'.join(allowed)})"
        )
    return Choice(value)


def parse_separator(raw: str) -> TypedCell:
    value = raw.strip()
    if not _blank(value):
        raise CellParseError(ErrorKind.MALFORMED_VALUE, f"Separator column must be empty or 'na', got {value!r}")
    return EMPTY


def parse_observation(raw: str) -> TypedCell:
    """
    HPO column content:
      - "observed" / "excluded"
      - blank or "na": no information
      - an onset age: observed, with onset
      - "onset/resolution": observed, with onset and resolution
    """
    value = raw.strip()
    if _blank(value):
        return EMPTY
    lowered = value.lower()
    if lowered == Polarity.OBSERVED.value:
        return Observation(Polarity.OBSERVED)
    if lowered == Polarity.EXCLUDED.value:
        return Observation(Polarity.EXCLUDED)
    if "/" in value:
        onset_text, _, resolution_text = value.partition("/")
        if not onset_text.strip() or not resolution_text.strip() or "/" in resolution_text:
            raise CellParseError(
                ErrorKind.MALFORMED_VALUE, f"Expected 'onset/resolution' but got {value!r}"
            )
        return Observation(Polarity.OBSERVED, onset=Age.parse(onset_text), resolution=Age.parse(resolution_text))
    try:
        onset = Age.parse(value)
    except CellParseError:
        raise CellParseError(
            ErrorKind.MALFORMED_VALUE,
            f"Invalid HPO cell {value!r} (expected observed, excluded, na or an onset age)",
        ) from None
    return Observation(Polarity.OBSERVED, onset=onset)


def parse_hpo_reference(raw: str, ontology: OntologyIndex) -> HpoReference:
    """
    Resolve an HPO CURIE (or a label/synonym of a term) against the index.

    Obsolete terms resolve successfully; the caller decides how to surface them.
    """
    value = raw.strip()
    if _HPO_CURIE.match(value):
        term_id = value
    else:
        term_id = ontology.id_for_label(value) if value else None
        if term_id is None:
            raise CellParseError(ErrorKind.MALFORMED_IDENTIFIER, f"Malformed HPO identifier {value!r}")
    term = ontology.resolve(term_id)
    if term is None:
        raise CellParseError(ErrorKind.UNRESOLVABLE_HPO_REFERENCE, f"HPO ID {term_id!r} not found in ontology")
    return HpoReference(
        term_id=term.identifier,
        label=term.label,
        obsolete=term.is_obsolete,
        replacement=term.replacement,
    )
