"""
Tests for the Record Builder: identifiers, feature partitioning, disease and
variant records with allelic state.
"""

import pytest

from ppktab.errors import RecordBuildError
from ppktab.record import (
    COMPOUND_HETEROZYGOUS,
    HETEROZYGOUS,
    HOMOZYGOUS,
    RecordBuilder,
    phenopacket_id,
)
from ppktab.row import SubjectRow
from ppktab.table import TableValidator


@pytest.fixture
def subject_for(ontology, make_row, make_grid):
    """Validate a single-row template and return its SubjectRow."""

    def _subject_for(**fields) -> SubjectRow:
        result = TableValidator(ontology).validate(make_grid([make_row(**fields)]))
        assert result.is_accepted, result
        return result.subjects[0]

    return _subject_for


@pytest.mark.parametrize(
    "pmid, subject_id, expected",
    [
        ("PMID:29482508", "Individual 1", "PMID_29482508_Individual_1"),
        ("PMID:123", "Family 2: II-1", "PMID_123_Family_2_II_1"),
        ("PMID:123", "P1.", "PMID_123_P1"),
        ("PMID:123", "a__b", "PMID_123_a_b"),
    ],
)
def test_phenopacket_id(pmid, subject_id, expected):
    assert phenopacket_id(pmid, subject_id) == expected


def test_build_maps_demographics_and_features(subject_for):
    subject = subject_for(comment="index case", hpo=("P3Y/P5Y", "na", "na", "excluded"))
    record = RecordBuilder().build(subject)

    assert record.id == "PMID_29482508_Individual_1"
    assert record.subject_id == "Individual 1"
    assert record.pmid == "PMID:29482508"
    assert (record.sex, record.deceased) == ("M", "no")
    assert record.comment == "index case"
    assert record.age_at_last_encounter.text == "P10Y"
    assert record.disease.term_id == "OMIM:612164"
    assert record.disease.onset.text == "P2M"

    assert [(f.term_id, f.excluded) for f in record.observed_features] == [("HP:0001250", False)]
    assert [(f.term_id, f.excluded) for f in record.excluded_features] == [("HP:0000505", True)]
    seizure = record.observed_features[0]
    assert (seizure.onset.text, seizure.resolution.text) == ("P3Y", "P5Y")


def test_build_is_deterministic(subject_for):
    subject = subject_for()
    assert RecordBuilder().build(subject) == RecordBuilder().build(subject)


def test_single_allele_is_heterozygous(subject_for):
    record = RecordBuilder().build(subject_for())
    assert len(record.variants) == 1
    variant = record.variants[0]
    assert variant.allelic_state == HETEROZYGOUS
    assert variant.hgvs_expression == "NM_003165.6:c.1162C>T"
    assert (variant.gene_symbol, variant.hgnc_id) == ("STXBP1", "HGNC:11444")
    assert variant.variant_id == "PMID_29482508_Individual_1_var1"


def test_same_allele_twice_is_one_homozygous_variant(subject_for):
    record = RecordBuilder().build(subject_for(allele_2="c.1162C>T"))
    assert [v.allelic_state for v in record.variants] == [HOMOZYGOUS]


def test_two_alleles_are_compound_heterozygous(subject_for):
    record = RecordBuilder().build(subject_for(allele_2="c.251+1G>A"))
    assert [v.allelic_state for v in record.variants] == [COMPOUND_HETEROZYGOUS] * 2
    assert [v.allele.value for v in record.variants] == ["c.1162C>T", "c.251+1G>A"]


def test_structural_variant(subject_for):
    record = RecordBuilder().build(subject_for(allele_1="DEL: exons 3-5", transcript="na"))
    variant = record.variants[0]
    assert variant.structural
    assert variant.hgvs_expression is None
    assert variant.structural_type == ("SO:1000029", "chromosomal_deletion")


def test_no_genotype_no_variants(subject_for):
    record = RecordBuilder().build(subject_for(HGNC_id="na", gene_symbol="na", transcript="na", allele_1="na"))
    assert record.variants == ()


def test_subject_without_assertions_is_a_programming_error():
    subject = SubjectRow(row=2, subject_id="A", assertions=(), alleles=())
    with pytest.raises(RecordBuildError):
        RecordBuilder().build(subject)
