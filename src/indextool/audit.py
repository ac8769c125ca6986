"""Read-only integrity queries over an index corpus.

Every query returns an ordered list of findings and never writes to the
store, so any number of queries may run against one opened corpus.

Ordering is fixed so repeated runs over the same corpus print the same
lines: duplicates sort by term, collisions by the first term of the pair,
missing entries and snippets by ingestion order of the matching file.
"""
from __future__ import annotations

from indextool.corpus import CorpusStore
from indextool.records import (
    ENTITY_KINDS,
    CaseVariantCollision,
    DuplicateCitation,
    DuplicateDeclaration,
    EntityKind,
    MissingEntry,
    Snippet,
)

_KIND_TABLES: dict[str, str] = {
    "declaration": "declarations",
    "citation": "citations",
}


def _table_for(kind: EntityKind) -> str:
    if kind not in _KIND_TABLES:
        raise ValueError(
            f"Unknown entity kind {kind!r}; expected one of {', '.join(ENTITY_KINDS)}"
        )
    return _KIND_TABLES[kind]


class AuditEngine:
    """Integrity queries against a :class:`CorpusStore`."""

    def __init__(self, store: CorpusStore) -> None:
        self._store = store

    def duplicate_page_citations(self) -> list[DuplicateCitation]:
        """(file, term, page) triples cited more than once."""
        rows = self._store.query(
            """
            SELECT source_file, term, page, COUNT(*) AS n
            FROM citations
            GROUP BY source_file, term, page
            HAVING COUNT(*) > 1
            ORDER BY term, page, source_file
            """
        )
        return [
            DuplicateCitation(
                source_file=str(r[0]), term=str(r[1]), page=int(r[2]), count=int(r[3])
            )
            for r in rows
        ]

    def duplicate_index_declarations(self) -> list[DuplicateDeclaration]:
        """(file, term) pairs declared more than once."""
        rows = self._store.query(
            """
            SELECT source_file, term, COUNT(*) AS n
            FROM declarations
            GROUP BY source_file, term
            HAVING COUNT(*) > 1
            ORDER BY term, source_file
            """
        )
        return [
            DuplicateDeclaration(source_file=str(r[0]), term=str(r[1]), count=int(r[2]))
            for r in rows
        ]

    def case_variant_collisions(self, kind: EntityKind) -> list[CaseVariantCollision]:
        """Distinct terms of one kind that are equal once lower-cased.

        Only the pair with ``first < second`` is reported, so a term is
        never paired with itself and each unordered pair appears once.
        """
        table = _table_for(kind)
        rows = self._store.query(
            f"""
            SELECT DISTINCT a.term, b.term
            FROM {table} a
            JOIN {table} b
              ON lower(a.term) = lower(b.term)
             AND a.term < b.term
            ORDER BY a.term, b.term
            """
        )
        return [
            CaseVariantCollision(kind=kind, first=str(r[0]), second=str(r[1]))
            for r in rows
        ]

    def _files_declaring(self, word: str) -> set[str]:
        """Files with a declaration containing ``word``, ignoring case."""
        rows = self._store.query(
            """
            SELECT DISTINCT source_file
            FROM declarations
            WHERE contains(lower(term), lower(CAST(? AS VARCHAR)))
            """,
            [word],
        )
        return {str(r[0]) for r in rows}

    def missing_index_entries(
        self,
        word: str,
        *,
        case_sensitive: bool = False,
    ) -> list[MissingEntry]:
        """Files that use ``word`` in prose but never declare it.

        The positive side is a token match, or with ``case_sensitive`` a
        literal substring match on the verbatim body. The negative side is
        always a case-insensitive substring test against declared terms of
        the same file, even in case-sensitive mode.
        """
        if case_sensitive:
            candidates = self._store.contains_files(word)
        else:
            candidates = self._store.match_files(word)
        declared = self._files_declaring(word)

        findings: list[MissingEntry] = []
        seen: set[str] = set()
        for source_file in candidates:
            if source_file in declared or source_file in seen:
                continue
            seen.add(source_file)
            findings.append(MissingEntry(word=word, source_file=source_file))
        return findings

    def snippet_search(self, word: str, *, context_tokens: int = 8) -> list[Snippet]:
        """One bracket-marked excerpt per body matching ``word``."""
        return [
            Snippet(source_file=source_file, excerpt=excerpt)
            for source_file, excerpt in self._store.snippets(
                word, context_tokens=context_tokens
            )
        ]

    def list_distinct_terms(self, kind: EntityKind) -> list[str]:
        """Distinct terms of one kind, ascending."""
        table = _table_for(kind)
        rows = self._store.query(f"SELECT DISTINCT term FROM {table} ORDER BY term ASC")
        return [str(r[0]) for r in rows]

    def deep_scan(self) -> list[MissingEntry]:
        """Missing-entry search for every distinct cited term.

        Expect false positives: some terms are used casually in prose and
        do not belong in the index.
        """
        findings: list[MissingEntry] = []
        for term in self.list_distinct_terms("citation"):
            findings.extend(self.missing_index_entries(term))
        return findings
