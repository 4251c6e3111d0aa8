import os
import typing

import pytest

from ppktab.ontology import OntologyIndex, OntologyTerm
from ppktab.template import empty_template_headers

# Columns of the default test template: (label, HPO id)
HPO_COLUMNS = (
    ("Seizure", "HP:0001250"),
    ("Bilateral tonic-clonic seizure", "HP:0002069"),
    ("Abnormality of the nervous system", "HP:0000707"),
    ("Visual impairment", "HP:0000505"),
)

DEFAULT_FIELDS = {
    "PMID": "PMID:29482508",
    "title": "Novel STXBP1 variants in epileptic encephalopathy",
    "individual_id": "Individual 1",
    "comment": "",
    "disease_id": "OMIM:612164",
    "disease_label": "Developmental and epileptic encephalopathy 4",
    "HGNC_id": "HGNC:11444",
    "gene_symbol": "STXBP1",
    "transcript": "NM_003165.6",
    "allele_1": "c.1162C>T",
    "allele_2": "na",
    "variant.comment": "",
    "age_of_onset": "P2M",
    "age_at_last_encounter": "P10Y",
    "deceased": "no",
    "sex": "M",
    "HPO": "na",
}


@pytest.fixture(scope="session")
def fpath_test_dir() -> str:
    """
    Path to `tests/data/` folder.
    """
    return os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture(scope="session")
def fpath_hpo(fpath_test_dir: str) -> str:
    """A small obographs excerpt of HPO release 2024-04-26, readable by `hpotk`."""
    return os.path.join(fpath_test_dir, "hp.mini.json")


@pytest.fixture(scope="session")
def ontology() -> OntologyIndex:
    """
    A small HPO excerpt:

        All
        └── Phenotypic abnormality
            ├── Abnormality of the nervous system
            │   ├── Seizure
            │   │   └── Bilateral tonic-clonic seizure
            │   └── Neurodevelopmental delay
            ├── Abnormality of the eye
            │   └── Visual impairment
            └── Joint hypermobility   (replaces obsolete Joint laxity)
    """
    terms = [
        OntologyTerm("HP:0000001", "All"),
        OntologyTerm("HP:0000118", "Phenotypic abnormality", parents=("HP:0000001",)),
        OntologyTerm("HP:0000707", "Abnormality of the nervous system", parents=("HP:0000118",)),
        OntologyTerm("HP:0001250", "Seizure", parents=("HP:0000707",), synonyms=("Seizures", "Epileptic seizure")),
        OntologyTerm("HP:0002069", "Bilateral tonic-clonic seizure", parents=("HP:0001250",)),
        OntologyTerm("HP:0012758", "Neurodevelopmental delay", parents=("HP:0000707",)),
        OntologyTerm("HP:0000478", "Abnormality of the eye", parents=("HP:0000118",)),
        OntologyTerm("HP:0000505", "Visual impairment", parents=("HP:0000478",)),
        OntologyTerm("HP:0001382", "Joint hypermobility", parents=("HP:0000118",)),
        OntologyTerm("HP:0001388", "Joint laxity", is_obsolete=True, replacement="HP:0001382"),
        OntologyTerm("HP:0000008", "Obsolete abnormality of the genitalia", is_obsolete=True),
    ]
    return OntologyIndex.from_terms(terms, version="2024-04-26")


@pytest.fixture
def make_row() -> typing.Callable[..., list[str]]:
    """
    Build a data row: the fixed fields (defaults above, overridable by title)
    followed by the HPO cells.
    """

    def _make_row(hpo: typing.Sequence[str] = ("observed", "na", "na", "excluded"), **fields: str) -> list[str]:
        values = dict(DEFAULT_FIELDS)
        for key, value in fields.items():
            values[key.replace("__", ".")] = value
        titles, _ = empty_template_headers()
        return [values[t] for t in titles] + list(hpo)

    return _make_row


@pytest.fixture
def make_grid() -> typing.Callable[..., list[list[str]]]:
    """Prepend the two header rows for the given HPO columns to the data rows."""

    def _make_grid(
        rows: typing.Sequence[typing.Sequence[str]],
        hpo_columns: typing.Sequence[tuple[str, str]] = HPO_COLUMNS,
    ) -> list[list[str]]:
        titles, types = empty_template_headers(hpo_columns)
        return [titles, types] + [list(r) for r in rows]

    return _make_grid
