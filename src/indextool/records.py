"""Typed records for the index corpus and the findings produced by audits.

Three record kinds are extracted from source files:

    IndexDeclaration — a ``\\index{TERM}`` marker in a document file
    PageCitation     — a ``\\indexentry{TERM}{PAGE}`` line in an index listing
    DocumentBody     — the whole text of a file, kept for full-text lookup

Findings are printable facts returned by the audit queries.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

EntityKind = Literal["declaration", "citation"]

ENTITY_KINDS: tuple[EntityKind, ...] = ("declaration", "citation")


@dataclass(frozen=True, slots=True)
class IndexDeclaration:
    """A term declared with ``\\index{}`` in a document file."""

    source_file: str
    term: str


@dataclass(frozen=True, slots=True)
class PageCitation:
    """A resolved (term, page) pair from a compiled index listing."""

    source_file: str
    term: str
    page: int = 0


@dataclass(frozen=True, slots=True)
class DocumentBody:
    """Full contents of one ingested file."""

    source_file: str
    body: str


# ---------------------------------------------------------------------------
# Line classification results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeclarationMatch:
    term: str


@dataclass(frozen=True, slots=True)
class CitationMatch:
    term: str
    page: int


LineMatch = DeclarationMatch | CitationMatch


@dataclass(frozen=True, slots=True)
class Extraction:
    """Everything extracted from a single file."""

    declarations: tuple[IndexDeclaration, ...] = ()
    citations: tuple[PageCitation, ...] = ()
    body: DocumentBody | None = None


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateCitation:
    """A (file, term, page) triple that occurs more than once."""

    source_file: str
    term: str
    page: int
    count: int

    def message(self) -> str:
        return f"Duplicate entry '{self.term}' on page {self.page}."


@dataclass(frozen=True, slots=True)
class DuplicateDeclaration:
    """A (file, term) pair declared more than once."""

    source_file: str
    term: str
    count: int

    def message(self) -> str:
        return f"Duplicate entry '{self.term}' in {self.source_file}."


@dataclass(frozen=True, slots=True)
class CaseVariantCollision:
    """Two distinct terms that differ only by letter case.

    ``first`` always sorts before ``second``.
    """

    kind: EntityKind
    first: str
    second: str

    def message(self) -> str:
        return f"Case variant '{self.first}' / '{self.second}' among {self.kind}s."


@dataclass(frozen=True, slots=True)
class MissingEntry:
    """Prose use of ``word`` in a file that declares no matching index term."""

    word: str
    source_file: str

    def message(self) -> str:
        return f"Missing '{self.word}' index in {self.source_file}."


@dataclass(frozen=True, slots=True)
class Snippet:
    """An excerpt of a matching document body with the hit bracket-marked."""

    source_file: str
    excerpt: str

    def message(self) -> str:
        return f"{self.source_file}:\n    {self.excerpt}"


Finding = (
    DuplicateCitation
    | DuplicateDeclaration
    | CaseVariantCollision
    | MissingEntry
    | Snippet
)
