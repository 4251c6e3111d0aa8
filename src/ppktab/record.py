"""
Record Builder.

Maps a validated SubjectRow into a SubjectRecord, the domain record that the
phenopacket mapper serializes. The mapping is pure: the same row always
yields the same record.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .age import Age
from .cells import AlleleToken
from .errors import RecordBuildError
from .row import PhenotypicAssertion, SubjectRow
from .template import ColumnKind

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]+")

# GENO allelic states: (id, label)
HETEROZYGOUS = ("GENO:0000135", "heterozygous")
HOMOZYGOUS = ("GENO:0000136", "homozygous")
COMPOUND_HETEROZYGOUS = ("GENO:0000402", "compound heterozygous")

# Structural variant type -> Sequence Ontology class
STRUCTURAL_TYPES: dict[str, tuple[str, str]] = {
    "DEL": ("SO:1000029", "chromosomal_deletion"),
    "DUP": ("SO:1000037", "chromosomal_duplication"),
    "INV": ("SO:1000030", "chromosomal_inversion"),
    "INS": ("SO:0000667", "insertion"),
    "TRANSL": ("SO:1000044", "chromosomal_translocation"),
}


@dataclass(frozen=True)
class FeatureRecord:
    term_id: str
    label: str
    excluded: bool = False
    onset: Optional[Age] = None
    resolution: Optional[Age] = None


@dataclass(frozen=True)
class DiseaseRecord:
    """
    Attributes:
        term_id: CURIE of the disease term (e.g. 'OMIM:266600').
        label: Human-readable label for the disease.
        onset: Age of onset of the subject, if given.
    """

    term_id: str
    label: str
    onset: Optional[Age] = None


@dataclass(frozen=True)
class VariantRecord:
    """
    One allele of the subject's genotype.

    Attributes:
        variant_id: Identifier unique within the phenopacket.
        allele: HGVS (c./n.) allele or structural description.
        structural: True for structural descriptions.
        gene_symbol: HGNC gene symbol.
        hgnc_id: HGNC CURIE of the gene.
        transcript: Versioned transcript accession (HGVS alleles only).
        allelic_state: (GENO id, label).
    """

    variant_id: str
    allele: AlleleToken
    gene_symbol: str
    hgnc_id: str
    transcript: Optional[str]
    allelic_state: tuple[str, str]
    comment: Optional[str] = None

    @property
    def structural(self) -> bool:
        return self.allele.structural

    @property
    def hgvs_expression(self) -> Optional[str]:
        if self.structural or self.transcript is None:
            return None
        return f"{self.transcript}:{self.allele.value}"

    @property
    def structural_type(self) -> Optional[tuple[str, str]]:
        if not self.structural:
            return None
        return STRUCTURAL_TYPES[self.allele.structural_type]


@dataclass(frozen=True)
class SubjectRecord:
    id: str
    subject_id: str
    pmid: str
    title: str
    sex: str
    deceased: str
    disease: DiseaseRecord
    observed_features: tuple[FeatureRecord, ...]
    excluded_features: tuple[FeatureRecord, ...]
    variants: tuple[VariantRecord, ...] = ()
    age_at_last_encounter: Optional[Age] = None
    comment: Optional[str] = None

    @property
    def features(self) -> tuple[FeatureRecord, ...]:
        return self.observed_features + self.excluded_features


def phenopacket_id(pmid: str, subject_id: str) -> str:
    """
    'PMID:123' + 'Family 2: II-1' -> 'PMID_123_Family_2_II_1'

    Non-alphanumerics become '_', runs of '_' are collapsed and a trailing '_'
    is dropped.
    """
    return _NON_ALPHANUMERIC.sub("_", f"{pmid}_{subject_id}").rstrip("_")


def allelic_state(alleles: tuple[AlleleToken, ...]) -> tuple[str, str]:
    if len(alleles) == 2:
        return HOMOZYGOUS if alleles[0] == alleles[1] else COMPOUND_HETEROZYGOUS
    return HETEROZYGOUS


class RecordBuilder:
    def build(self, subject: SubjectRow) -> SubjectRecord:
        if not subject.assertions:
            raise RecordBuildError(f"Subject {subject.subject_id!r} (row {subject.row + 1}) has no assertions")

        pmid = subject.text(ColumnKind.PMID)
        record_id = phenopacket_id(pmid, subject.subject_id)
        disease = DiseaseRecord(
            term_id=subject.text(ColumnKind.DISEASE_ID),
            label=subject.text(ColumnKind.DISEASE_LABEL),
            onset=subject.age(ColumnKind.AGE_OF_ONSET),
        )
        return SubjectRecord(
            id=record_id,
            subject_id=subject.subject_id,
            pmid=pmid,
            title=subject.text(ColumnKind.TITLE),
            sex=subject.text(ColumnKind.SEX),
            deceased=subject.text(ColumnKind.DECEASED),
            disease=disease,
            observed_features=tuple(_feature(a) for a in subject.observed),
            excluded_features=tuple(_feature(a) for a in subject.excluded),
            variants=self._variants(record_id, subject),
            age_at_last_encounter=subject.age(ColumnKind.AGE_AT_LAST_ENCOUNTER),
            comment=subject.text(ColumnKind.COMMENT),
        )

    @staticmethod
    def _variants(record_id: str, subject: SubjectRow) -> tuple[VariantRecord, ...]:
        if not subject.alleles:
            return ()
        state = allelic_state(subject.alleles)
        # a homozygous allele is one variant, not two
        alleles = subject.alleles[:1] if state == HOMOZYGOUS else subject.alleles
        return tuple(
            VariantRecord(
                variant_id=f"{record_id}_var{i}",
                allele=allele,
                gene_symbol=subject.text(ColumnKind.GENE_SYMBOL),
                hgnc_id=subject.text(ColumnKind.HGNC_ID),
                transcript=subject.text(ColumnKind.TRANSCRIPT),
                allelic_state=state,
                comment=subject.text(ColumnKind.VARIANT_COMMENT),
            )
            for i, allele in enumerate(alleles, start=1)
        )


def _feature(assertion: PhenotypicAssertion) -> FeatureRecord:
    return FeatureRecord(
        term_id=assertion.term_id,
        label=assertion.label,
        excluded=assertion.excluded,
        onset=assertion.onset,
        resolution=assertion.resolution,
    )
