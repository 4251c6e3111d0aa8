"""
Ontology Index.

An immutable, arena-backed copy of an HPO release: terms are stored in a list,
identifiers map to list positions and is-a edges are tuples of parent
positions. Ancestor closures are computed on demand and memoized for the
lifetime of the index.

The index is loaded once per process and then shared read-only by every
validation, including validations running on worker threads.
"""

import logging
import threading
import typing

from dataclasses import dataclass, field
from typing import Iterable, Optional

import hpotk

from .errors import OntologyLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OntologyTerm:
    """
    A single ontology class.

    Attributes:
        identifier: CURIE, e.g. "HP:0001250".
        label: Primary label, e.g. "Seizure".
        parents: CURIEs of the direct is-a parents.
        is_obsolete: True if the term was retired.
        replacement: CURIE of the term to use instead, if known.
        synonyms: Alternative labels curators may type instead of the CURIE.
    """

    identifier: str
    label: str
    parents: tuple[str, ...] = ()
    is_obsolete: bool = False
    replacement: Optional[str] = None
    synonyms: tuple[str, ...] = field(default=(), compare=False)


class OntologyIndex:
    """Read-only term graph answering membership, ancestry and replacement queries."""

    def __init__(
        self,
        terms: list[OntologyTerm],
        positions: dict[str, int],
        parent_positions: list[tuple[int, ...]],
        labels: dict[str, str],
        version: Optional[str] = None,
    ):
        # use from_terms / from_hpotk; this constructor trusts its arguments
        self._terms = terms
        self._positions = positions
        self._parent_positions = parent_positions
        self._labels = labels
        self._version = version
        self._ancestor_memo: dict[int, frozenset[int]] = {}
        self._lock = threading.Lock()

    # ------------
    # Construction
    # ------------

    @classmethod
    def from_terms(cls, terms: Iterable[OntologyTerm], version: Optional[str] = None) -> "OntologyIndex":
        """
        Build an index from terms and their is-a edges.

        Raises OntologyLoadError if an identifier is empty or duplicated, if a
        parent or replacement is not itself a term, or if the is-a graph
        contains a cycle.
        """
        term_list: list[OntologyTerm] = []
        positions: dict[str, int] = {}
        for term in terms:
            if not term.identifier or not term.identifier.strip():
                raise OntologyLoadError("Ontology term with an empty identifier")
            if term.identifier in positions:
                raise OntologyLoadError(f"Duplicate ontology term {term.identifier!r}")
            positions[term.identifier] = len(term_list)
            term_list.append(term)

        parent_positions: list[tuple[int, ...]] = []
        for term in term_list:
            missing = [p for p in term.parents if p not in positions]
            if missing:
                raise OntologyLoadError(f"Term {term.identifier!r} has unknown parent(s): {sorted(missing)}")
            if term.replacement is not None and term.replacement not in positions:
                raise OntologyLoadError(
                    f"Term {term.identifier!r} is replaced by unknown term {term.replacement!r}"
                )
            parent_positions.append(tuple(positions[p] for p in term.parents))

        cls._check_acyclic(term_list, parent_positions)

        labels: dict[str, str] = {}
        # primary labels win over synonyms; first writer wins among equals
        for term in term_list:
            if term.is_obsolete:
                continue
            labels.setdefault(term.label.strip().casefold(), term.identifier)
        for term in term_list:
            if term.is_obsolete:
                continue
            for synonym in term.synonyms:
                labels.setdefault(synonym.strip().casefold(), term.identifier)

        logger.info("Built ontology index with %d terms (version %s)", len(term_list), version)
        return cls(term_list, positions, parent_positions, labels, version)

    @staticmethod
    def _check_acyclic(terms: list[OntologyTerm], parent_positions: list[tuple[int, ...]]) -> None:
        """Depth-first walk up the is-a edges; an edge back onto the current path is a cycle."""
        done: set[int] = set()
        for start in range(len(terms)):
            if start in done:
                continue
            visiting: set[int] = {start}
            stack: list[tuple[int, typing.Iterator[int]]] = [(start, iter(parent_positions[start]))]
            while stack:
                node, parents = stack[-1]
                advanced = False
                for parent in parents:
                    if parent in visiting:
                        raise OntologyLoadError(
                            f"Cycle in is-a graph: {terms[parent].identifier!r} "
                            f"is reachable from itself via {terms[node].identifier!r}"
                        )
                    if parent not in done:
                        visiting.add(parent)
                        stack.append((parent, iter(parent_positions[parent])))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    visiting.discard(node)
                    done.add(node)

    @classmethod
    def from_hpotk(cls, ontology: hpotk.MinimalOntology) -> "OntologyIndex":
        """
        Copy an hpotk ontology into an index.

        Every alternate id of a primary term becomes an obsolete term that
        points to the primary term as its replacement.
        """
        terms: list[OntologyTerm] = []
        seen: set[str] = set()
        retired: list[OntologyTerm] = []
        for term in ontology.terms:
            curie = term.identifier.value
            if curie in seen:
                continue
            seen.add(curie)
            synonyms: tuple[str, ...] = ()
            if isinstance(term, hpotk.Term) and term.synonyms:
                synonyms = tuple(s.name for s in term.synonyms)
            if term.is_obsolete:
                terms.append(OntologyTerm(identifier=curie, label=term.name, is_obsolete=True))
                continue
            parents = tuple(p.value for p in ontology.graph.get_parents(term.identifier))
            terms.append(OntologyTerm(identifier=curie, label=term.name, parents=parents, synonyms=synonyms))
            for alt in term.alt_term_ids:
                retired.append(
                    OntologyTerm(identifier=alt.value, label=term.name, is_obsolete=True, replacement=curie)
                )
        for term in retired:
            if term.identifier not in seen:
                seen.add(term.identifier)
                terms.append(term)
        return cls.from_terms(terms, version=ontology.version)

    # -------
    # Queries
    # -------

    @property
    def version(self) -> Optional[str]:
        return self._version

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._positions

    def resolve(self, identifier: str) -> Optional[OntologyTerm]:
        """Return the term with this CURIE, or None if the index does not know it."""
        position = self._positions.get(identifier)
        return None if position is None else self._terms[position]

    def is_obsolete(self, identifier: str) -> bool:
        term = self.resolve(identifier)
        return term is not None and term.is_obsolete

    def replacement_for(self, identifier: str) -> Optional[str]:
        term = self.resolve(identifier)
        return None if term is None else term.replacement

    def id_for_label(self, text: str) -> Optional[str]:
        """Case-insensitive lookup of a primary label or synonym."""
        return self._labels.get(text.strip().casefold())

    def ancestors(self, identifier: str) -> frozenset[str]:
        """All transitive is-a ancestors of a term (the term itself excluded)."""
        position = self._positions.get(identifier)
        if position is None:
            return frozenset()
        return frozenset(self._terms[i].identifier for i in self._ancestor_positions(position))

    def is_ancestor(self, a: str, b: str) -> bool:
        """True if `a` equals `b` or is an ancestor of `b`."""
        pa = self._positions.get(a)
        pb = self._positions.get(b)
        if pa is None or pb is None:
            return False
        return pa == pb or pa in self._ancestor_positions(pb)

    def _ancestor_positions(self, position: int) -> frozenset[int]:
        cached = self._ancestor_memo.get(position)
        if cached is not None:
            return cached
        seen: set[int] = set()
        pending = list(self._parent_positions[position])
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            known = self._ancestor_memo.get(current)
            if known is not None:
                seen.update(known)
            else:
                pending.extend(self._parent_positions[current])
        closure = frozenset(seen)
        with self._lock:
            self._ancestor_memo.setdefault(position, closure)
        return closure


def load_ontology_index(hpo_path: str, with_synonyms: bool = False) -> OntologyIndex:
    """
    Load an HPO release (obographs JSON, optionally gzipped) with hpotk.
    Any failure is fatal and reported as OntologyLoadError.
    """
    logger.info("Loading HPO from %s", hpo_path)
    try:
        if with_synonyms:
            ontology = hpotk.load_ontology(hpo_path)
        else:
            ontology = hpotk.load_minimal_ontology(hpo_path)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise OntologyLoadError(f"Could not load HPO from {hpo_path!r}: {e}") from e
    return OntologyIndex.from_hpotk(ontology)
