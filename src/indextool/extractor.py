"""Line-oriented extraction of index markers from LaTeX sources.

Two fixed patterns are recognised, one line at a time:

    \\index{TERM}               -> IndexDeclaration
    \\indexentry{TERM}{PAGE}    -> PageCitation

Captures are greedy: a term runs to the *last* closing brace on the line,
so two markers on one line collapse into a single (wrong) term, and
markers split across lines are not seen at all. Both are accepted
limitations of the line-based approach.
"""
from __future__ import annotations

import re

from indextool.records import (
    CitationMatch,
    DeclarationMatch,
    DocumentBody,
    Extraction,
    IndexDeclaration,
    LineMatch,
    PageCitation,
)

_INDEX_RE = re.compile(r"\\index\{(.*)\}")
_INDEXENTRY_RE = re.compile(r"\\indexentry\{(.*)\}\{(.*)\}")
_PAGE_RE = re.compile(r"\+?[0-9]+")
# Largest value the page column (BIGINT) can hold.
_MAX_PAGE = 2**63 - 1


def parse_page(token: str) -> int:
    """Parse a page token, defaulting to 0 when it is not a plain integer.

    Roman numerals, ranges, numbers too large to store and anything else
    that is not an unsigned decimal number all become page 0.
    """
    if not _PAGE_RE.fullmatch(token):
        return 0
    try:
        page = int(token)
    except ValueError:
        # digit strings beyond the interpreter's int conversion limit
        return 0
    return page if page <= _MAX_PAGE else 0


def split_lines(contents: str) -> list[str]:
    """Split on ``\\n`` only, dropping a trailing ``\\r`` from each line."""
    if not contents:
        return []
    lines = contents.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def classify_line(line: str) -> list[LineMatch]:
    """Classify a single line against both patterns.

    Returns zero, one or two matches. A match with an empty term is
    discarded.
    """
    matches: list[LineMatch] = []

    m = _INDEX_RE.search(line)
    if m and m.group(1):
        matches.append(DeclarationMatch(term=m.group(1)))

    m = _INDEXENTRY_RE.search(line)
    if m and m.group(1):
        matches.append(CitationMatch(term=m.group(1), page=parse_page(m.group(2))))

    return matches


def extract(file_name: str, contents: str) -> Extraction:
    """Extract declarations, citations and the body candidate from a file.

    The body is always reported; the store decides whether to keep it.
    """
    declarations: list[IndexDeclaration] = []
    citations: list[PageCitation] = []

    for line in split_lines(contents):
        for match in classify_line(line):
            if isinstance(match, DeclarationMatch):
                declarations.append(IndexDeclaration(file_name, match.term))
            else:
                citations.append(PageCitation(file_name, match.term, match.page))

    return Extraction(
        declarations=tuple(declarations),
        citations=tuple(citations),
        body=DocumentBody(file_name, contents),
    )
