"""
Phenopacket mapping.

Builds one GA4GH Phenopacket (schema v2) per SubjectRecord:
- subject: id, sex, vital status, time at last encounter
- phenotypic features: observed and excluded, with onset/resolution
- disease with onset
- one interpretation whose diagnosis carries a genomic interpretation per variant
- metadata: resources used and the PMID as external reference
"""

import logging
import typing

from datetime import datetime, timezone
from typing import Optional

import phenopackets.schema.v2 as pps2
from google.protobuf.timestamp_pb2 import Timestamp
from phenopackets.schema.v2.phenopackets_pb2 import Phenopacket

from .age import Age, AgeKind
from .record import FeatureRecord, SubjectRecord, VariantRecord

logger = logging.getLogger(__name__)

PHENOPACKET_SCHEMA_VERSION = "2.0"

_SEX = {
    "M": "MALE",
    "F": "FEMALE",
    "O": "OTHER_SEX",
    "U": "UNKNOWN_SEX",
}
_VITAL_STATUS = {
    "yes": "DECEASED",
    "no": "ALIVE",
}

# prefix -> (name, url, iri prefix)
_RESOURCES: dict[str, tuple[str, str, str]] = {
    "HP": (
        "human phenotype ontology",
        "http://purl.obolibrary.org/obo/hp.owl",
        "http://purl.obolibrary.org/obo/HP_",
    ),
    "GENO": (
        "Genotype Ontology",
        "http://purl.obolibrary.org/obo/geno.owl",
        "http://purl.obolibrary.org/obo/GENO_",
    ),
    "SO": (
        "Sequence types and features ontology",
        "http://purl.obolibrary.org/obo/so.obo",
        "http://purl.obolibrary.org/obo/SO_",
    ),
    "OMIM": (
        "An Online Catalog of Human Genes and Genetic Disorders",
        "https://www.omim.org",
        "https://www.omim.org/entry/",
    ),
    "MONDO": (
        "Mondo Disease Ontology",
        "http://purl.obolibrary.org/obo/mondo.obo",
        "http://purl.obolibrary.org/obo/MONDO_",
    ),
    "HGNC": (
        "HUGO Gene Nomenclature Committee",
        "https://www.genenames.org",
        "https://www.genenames.org/data/gene-symbol-report/#!/hgnc_id/",
    ),
}

DEFAULT_RESOURCE_VERSIONS = {
    "GENO": "2023-10-08",
    "SO": "2021-11-22",
    "OMIM": "January 10, 2020",
    "MONDO": "2024-06-04",
    "HGNC": "06/01/23",
}


def time_element(age: Optional[Age]) -> Optional[pps2.TimeElement]:
    """ISO durations -> Age, gestational ages -> GestationalAge, onset classes -> OntologyClass."""
    if age is None or not age.is_known:
        return None
    element = pps2.TimeElement()
    if age.kind is AgeKind.ISO8601:
        element.age.iso8601duration = age.text
    elif age.kind is AgeKind.GESTATIONAL:
        weeks, days = age.gestational_weeks_days
        element.gestational_age.weeks = weeks
        element.gestational_age.days = days
    else:
        element.ontology_class.CopyFrom(pps2.OntologyClass(id=age.onset_term_id, label=age.text))
    return element


class PhenopacketMapper:
    """
    Maps SubjectRecords to Phenopackets.

    Args:
        hpo_version: Release of the HPO the template was validated against.
        created_by: Curator recorded in the metadata.
        created: Creation time recorded in the metadata (default: now, UTC).
        resource_versions: Versions of the other resources, by CURIE prefix.
    """

    def __init__(
        self,
        hpo_version: str,
        created_by: str,
        created: Optional[datetime] = None,
        resource_versions: typing.Optional[typing.Mapping[str, str]] = None,
    ):
        self._hpo_version = hpo_version
        self._created_by = created_by
        self._created = created
        self._versions = dict(DEFAULT_RESOURCE_VERSIONS)
        if resource_versions:
            self._versions.update(resource_versions)
        self._versions["HP"] = hpo_version

    def to_phenopacket(self, record: SubjectRecord) -> Phenopacket:
        phenopacket = Phenopacket()
        phenopacket.id = record.id
        self._add_subject(phenopacket, record)

        for feature in record.features:
            phenopacket.phenotypic_features.append(self._feature(feature))

        disease = phenopacket.diseases.add()
        disease.term.CopyFrom(pps2.OntologyClass(id=record.disease.term_id, label=record.disease.label))
        onset = time_element(record.disease.onset)
        if onset is not None:
            disease.onset.CopyFrom(onset)

        if record.variants:
            self._add_interpretation(phenopacket, record)

        phenopacket.meta_data.CopyFrom(self._meta_data(record))
        logger.debug(
            "Mapped %s: %d feature(s), %d variant(s)", record.id, len(record.features), len(record.variants)
        )
        return phenopacket

    @staticmethod
    def _add_subject(phenopacket: Phenopacket, record: SubjectRecord) -> None:
        subject = phenopacket.subject
        subject.id = record.subject_id
        subject.sex = pps2.Sex.Value(_SEX[record.sex])
        status = _VITAL_STATUS.get(record.deceased)
        if status is not None:
            subject.vital_status.status = pps2.VitalStatus.Status.Value(status)
        last_encounter = time_element(record.age_at_last_encounter)
        if last_encounter is not None:
            subject.time_at_last_encounter.CopyFrom(last_encounter)

    @staticmethod
    def _feature(feature: FeatureRecord) -> pps2.PhenotypicFeature:
        pf = pps2.PhenotypicFeature()
        pf.type.CopyFrom(pps2.OntologyClass(id=feature.term_id, label=feature.label))
        if feature.excluded:
            pf.excluded = True
        onset = time_element(feature.onset)
        if onset is not None:
            pf.onset.CopyFrom(onset)
        resolution = time_element(feature.resolution)
        if resolution is not None:
            pf.resolution.CopyFrom(resolution)
        return pf

    def _add_interpretation(self, phenopacket: Phenopacket, record: SubjectRecord) -> None:
        # Genotypes -> Interpretation -> Diagnosis -> GenomicInterpretation
        interpretation = phenopacket.interpretations.add()
        interpretation.id = f"{record.id}-interpretation"
        interpretation.progress_status = pps2.Interpretation.ProgressStatus.Value("SOLVED")
        diagnosis = interpretation.diagnosis
        diagnosis.disease.CopyFrom(pps2.OntologyClass(id=record.disease.term_id, label=record.disease.label))
        for variant in record.variants:
            genomic_interpretation = diagnosis.genomic_interpretations.add()
            genomic_interpretation.subject_or_biosample_id = record.subject_id
            genomic_interpretation.interpretation_status = pps2.GenomicInterpretation.InterpretationStatus.Value(
                "CAUSATIVE"
            )
            variant_interpretation = genomic_interpretation.variant_interpretation
            variant_interpretation.acmg_pathogenicity_classification = pps2.AcmgPathogenicityClassification.Value(
                "PATHOGENIC"
            )
            variant_interpretation.variation_descriptor.CopyFrom(self._variation_descriptor(variant))

    @staticmethod
    def _variation_descriptor(variant: VariantRecord) -> pps2.VariationDescriptor:
        vd = pps2.VariationDescriptor()
        vd.id = variant.variant_id
        vd.gene_context.value_id = variant.hgnc_id
        vd.gene_context.symbol = variant.gene_symbol
        vd.molecule_context = pps2.MoleculeContext.Value("genomic")
        if variant.structural:
            so_id, so_label = variant.structural_type
            vd.label = variant.allele.structural_label
            vd.structural_type.CopyFrom(pps2.OntologyClass(id=so_id, label=so_label))
        else:
            expression = vd.expressions.add()
            expression.syntax = "hgvs.c"
            expression.value = variant.hgvs_expression
        geno_id, geno_label = variant.allelic_state
        vd.allelic_state.CopyFrom(pps2.OntologyClass(id=geno_id, label=geno_label))
        if variant.comment:
            vd.description = variant.comment
        return vd

    def _meta_data(self, record: SubjectRecord) -> pps2.MetaData:
        meta_data = pps2.MetaData()
        created = Timestamp()
        created.FromDatetime(self._created or datetime.now(timezone.utc))
        meta_data.created.CopyFrom(created)
        meta_data.created_by = self._created_by
        meta_data.phenopacket_schema_version = PHENOPACKET_SCHEMA_VERSION

        for prefix in self._used_prefixes(record):
            name, url, iri_prefix = _RESOURCES[prefix]
            meta_data.resources.append(
                pps2.Resource(
                    id=prefix.lower(),
                    name=name,
                    url=url,
                    version=self._versions.get(prefix, ""),
                    namespace_prefix=prefix,
                    iri_prefix=iri_prefix,
                )
            )
        meta_data.external_references.append(
            pps2.ExternalReference(
                id=record.pmid,
                reference=f"https://pubmed.ncbi.nlm.nih.gov/{record.pmid.split(':', 1)[1]}",
                description=record.title,
            )
        )
        return meta_data

    @staticmethod
    def _used_prefixes(record: SubjectRecord) -> list[str]:
        prefixes = ["HP", record.disease.term_id.split(":", 1)[0]]
        if record.variants:
            prefixes.extend(["GENO", "HGNC"])
            if any(v.structural for v in record.variants):
                prefixes.append("SO")
        return prefixes
