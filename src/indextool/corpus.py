"""DuckDB-backed corpus of index declarations, page citations and bodies.

The corpus is a single DuckDB file, rebuilt from scratch by every
ingestion run and opened read-only by audit runs.

Tables:
    declarations    — one row per ``\\index{}`` line (file, term)
    citations       — one row per ``\\indexentry{}{}`` line (file, term, page)
    bodies          — verbatim file contents, for case-sensitive substring search
    body_tokens     — case-folded word tokens of each body with char offsets,
                      for full-text matching and snippets
    _schema_version — schema version tracking

Index listings (``*.idx``) are never stored as bodies: they are not prose.
"""
from __future__ import annotations

import importlib
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from indextool.records import (
    DocumentBody,
    Extraction,
    IndexDeclaration,
    PageCitation,
)

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")


SCHEMA_VERSION = "1.0.0"
DEFAULT_DB_NAME = "indextool.duckdb"
INDEX_LISTING_SUFFIX = ".idx"

DATA_TABLES: tuple[str, ...] = (
    "declarations",
    "citations",
    "bodies",
    "body_tokens",
)

_SCHEMA_DDL = """\
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL,
    created_at TIMESTAMP DEFAULT current_timestamp
);

CREATE TABLE IF NOT EXISTS declarations (
    source_file VARCHAR NOT NULL,
    term VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS citations (
    source_file VARCHAR NOT NULL,
    term VARCHAR NOT NULL,
    page BIGINT NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS bodies (
    body_id INTEGER PRIMARY KEY,
    source_file VARCHAR NOT NULL,
    body VARCHAR NOT NULL,
    token_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS body_tokens (
    body_id INTEGER NOT NULL,
    token_index INTEGER NOT NULL,
    token VARCHAR NOT NULL,
    char_start INTEGER NOT NULL,
    char_end INTEGER NOT NULL
);
"""

# Letters and digits; punctuation, whitespace and underscores separate tokens.
_TOKEN_RE = re.compile(r"[^\W_]+")
_WS_RE = re.compile(r"\s+")


class SchemaVersionError(RuntimeError):
    """Raised when a corpus DB schema version does not match expected."""


def tokenize(text: str) -> list[tuple[str, int, int]]:
    """Split text into (case-folded token, char_start, char_end) triples."""
    return [(m.group(0).casefold(), m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]


def query_tokens(word: str) -> list[str]:
    """Distinct case-folded tokens of a query, in first-seen order."""
    seen: dict[str, None] = {}
    for token, _start, _end in tokenize(word):
        seen.setdefault(token, None)
    return list(seen)


def is_index_listing(source_file: str) -> bool:
    return source_file.endswith(INDEX_LISTING_SUFFIX)


def _read_schema_version(conn: Any) -> str:
    """Read corpus schema version from an open DuckDB connection."""
    try:
        result = conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = 'corpus'"
        ).fetchone()
    except _duckdb_mod.Error:
        return "unknown"
    return str(result[0]) if result else "unknown"


def ensure_schema_version(
    conn: Any,
    *,
    db_path: Path | None = None,
    expected: str = SCHEMA_VERSION,
) -> str:
    """Validate schema version for an open DuckDB connection.

    Returns actual schema version on success.
    Raises SchemaVersionError on mismatch.
    """
    actual = _read_schema_version(conn)
    if actual != expected:
        where = f" in {db_path}" if db_path is not None else ""
        raise SchemaVersionError(
            f"Schema version mismatch{where}: expected {expected}, got {actual}"
        )
    return actual


def _render_window(
    body: str,
    window: list[tuple[str, int, int]],
    hits: set[str],
    *,
    start_mark: str,
    end_mark: str,
) -> str:
    parts: list[str] = []
    cursor = window[0][1]
    for token, start, end in window:
        parts.append(body[cursor:start])
        text = body[start:end]
        parts.append(f"{start_mark}{text}{end_mark}" if token in hits else text)
        cursor = end
    return _WS_RE.sub(" ", "".join(parts)).strip()


class CorpusStore:
    """Read/write interface to the DuckDB index corpus.

    Writable stores create any missing tables on open. Read-only stores
    must already carry the current schema version.
    """

    def __init__(self, db_path: Path | str, *, read_only: bool = False) -> None:
        self._db_path = Path(db_path)
        self._read_only = read_only
        if not read_only:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Any = _duckdb_mod.connect(str(self._db_path), read_only=read_only)
        try:
            if read_only:
                ensure_schema_version(self._conn, db_path=self._db_path)
            else:
                self._ensure_schema()
        except Exception:
            self._conn.close()
            raise

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> CorpusStore:
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def schema_version(self) -> str:
        """Get the schema version of this corpus."""
        return _read_schema_version(self._conn)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.execute(
            """
            INSERT INTO _schema_version (table_name, version)
            SELECT 'corpus', CAST(? AS VARCHAR)
            WHERE NOT EXISTS (
                SELECT 1 FROM _schema_version WHERE table_name = 'corpus'
            )
            """,
            [SCHEMA_VERSION],
        )

    def reset(self) -> None:
        """Drop every corpus table and recreate them empty."""
        for table in (*DATA_TABLES, "_schema_version"):
            self._conn.execute(f"DROP TABLE IF EXISTS {table}")
        self._ensure_schema()

    @contextmanager
    def transaction(self) -> Iterator[CorpusStore]:
        """Run a block in one transaction; roll back on any error."""
        self._conn.begin()
        try:
            yield self
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_declaration(self, record: IndexDeclaration) -> None:
        self._conn.execute(
            "INSERT INTO declarations (source_file, term) VALUES (?, ?)",
            [record.source_file, record.term],
        )

    def add_citation(self, record: PageCitation) -> None:
        self._conn.execute(
            "INSERT INTO citations (source_file, term, page) VALUES (?, ?, ?)",
            [record.source_file, record.term, record.page],
        )

    def add_body(self, record: DocumentBody) -> bool:
        """Store a body in both representations.

        Returns False (and stores nothing) for index listings.
        """
        if is_index_listing(record.source_file):
            return False
        row = self._conn.execute(
            "SELECT COALESCE(MAX(body_id), 0) + 1 FROM bodies"
        ).fetchone()
        body_id = int(row[0]) if row else 1
        tokens = tokenize(record.body)
        self._conn.execute(
            "INSERT INTO bodies (body_id, source_file, body, token_count) VALUES (?, ?, ?, ?)",
            [body_id, record.source_file, record.body, len(tokens)],
        )
        if tokens:
            self._conn.executemany(
                """INSERT INTO body_tokens
                   (body_id, token_index, token, char_start, char_end)
                   VALUES (?, ?, ?, ?, ?)""",
                [
                    (body_id, i, token, start, end)
                    for i, (token, start, end) in enumerate(tokens)
                ],
            )
        return True

    def add_extraction(self, extraction: Extraction) -> None:
        """Write everything extracted from one file."""
        if extraction.declarations:
            self._conn.executemany(
                "INSERT INTO declarations (source_file, term) VALUES (?, ?)",
                [(d.source_file, d.term) for d in extraction.declarations],
            )
        if extraction.citations:
            self._conn.executemany(
                "INSERT INTO citations (source_file, term, page) VALUES (?, ?, ?)",
                [(c.source_file, c.term, c.page) for c in extraction.citations],
            )
        if extraction.body is not None:
            self.add_body(extraction.body)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def declarations(self) -> list[IndexDeclaration]:
        """All declarations in insertion order."""
        rows = self._conn.execute(
            "SELECT source_file, term FROM declarations ORDER BY rowid"
        ).fetchall()
        return [IndexDeclaration(source_file=str(r[0]), term=str(r[1])) for r in rows]

    def citations(self) -> list[PageCitation]:
        """All citations in insertion order."""
        rows = self._conn.execute(
            "SELECT source_file, term, page FROM citations ORDER BY rowid"
        ).fetchall()
        return [
            PageCitation(source_file=str(r[0]), term=str(r[1]), page=int(r[2]))
            for r in rows
        ]

    def bodies(self) -> list[DocumentBody]:
        """All stored bodies in insertion order."""
        rows = self._conn.execute(
            "SELECT source_file, body FROM bodies ORDER BY body_id"
        ).fetchall()
        return [DocumentBody(source_file=str(r[0]), body=str(r[1])) for r in rows]

    def row_counts(self) -> dict[str, int]:
        """Row count per data table."""
        counts: dict[str, int] = {}
        for table in DATA_TABLES:
            row = self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            counts[table] = int(row[0]) if row else 0
        return counts

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple[Any, ...]]:
        """Execute a raw SQL query against the corpus.

        For audit queries that don't fit the typed API.
        """
        if params:
            return self._conn.execute(sql, params).fetchall()
        return self._conn.execute(sql).fetchall()

    # ------------------------------------------------------------------
    # Text search
    # ------------------------------------------------------------------

    def _match_body_ids(self, word: str) -> list[tuple[int, str]]:
        """(body_id, source_file) of bodies containing every token of ``word``.

        Only the empty string matches every body; a non-empty word made of
        separators alone has no tokens and matches nothing.
        """
        tokens = query_tokens(word)
        if not word:
            rows = self._conn.execute(
                "SELECT body_id, source_file FROM bodies ORDER BY body_id"
            ).fetchall()
        elif not tokens:
            rows = []
        else:
            placeholders = ",".join(["?"] * len(tokens))
            rows = self._conn.execute(
                f"""
                SELECT b.body_id, b.source_file
                FROM bodies b
                JOIN body_tokens t ON t.body_id = b.body_id
                WHERE t.token IN ({placeholders})
                GROUP BY b.body_id, b.source_file
                HAVING COUNT(DISTINCT t.token) = ?
                ORDER BY b.body_id
                """,
                [*tokens, len(tokens)],
            ).fetchall()
        return [(int(r[0]), str(r[1])) for r in rows]

    def match_files(self, word: str) -> list[str]:
        """Files whose tokenized body contains every token of ``word``.

        Matching is case-insensitive and word-bounded. The empty string
        matches every body; a word of separators only (e.g. ``"--"``)
        matches none.
        """
        return [source_file for _body_id, source_file in self._match_body_ids(word)]

    def contains_files(self, word: str) -> list[str]:
        """Files whose verbatim body contains ``word`` as a literal substring."""
        rows = self._conn.execute(
            "SELECT source_file FROM bodies WHERE contains(body, CAST(? AS VARCHAR)) ORDER BY body_id",
            [word],
        ).fetchall()
        return [str(r[0]) for r in rows]

    def snippets(
        self,
        word: str,
        *,
        context_tokens: int = 8,
        start_mark: str = "[",
        end_mark: str = "]",
        ellipsis: str = "...",
    ) -> list[tuple[str, str]]:
        """(source_file, excerpt) for each body matching ``word``.

        The excerpt is centred on the first hit, keeps ``context_tokens``
        tokens on each side, wraps matched tokens in the marks and adds
        the ellipsis where the body was truncated.
        """
        tokens = query_tokens(word)
        results: list[tuple[str, str]] = []
        for body_id, source_file in self._match_body_ids(word):
            excerpt = self._excerpt(
                body_id,
                tokens,
                context_tokens=context_tokens,
                start_mark=start_mark,
                end_mark=end_mark,
                ellipsis=ellipsis,
            )
            results.append((source_file, excerpt))
        return results

    def _excerpt(
        self,
        body_id: int,
        tokens: list[str],
        *,
        context_tokens: int,
        start_mark: str,
        end_mark: str,
        ellipsis: str,
    ) -> str:
        row = self._conn.execute(
            "SELECT body, token_count FROM bodies WHERE body_id = ?", [body_id]
        ).fetchone()
        body, token_count = str(row[0]), int(row[1])
        if token_count == 0:
            return _WS_RE.sub(" ", body).strip()

        center = 0
        if tokens:
            placeholders = ",".join(["?"] * len(tokens))
            hit = self._conn.execute(
                f"""
                SELECT MIN(token_index) FROM body_tokens
                WHERE body_id = ? AND token IN ({placeholders})
                """,
                [body_id, *tokens],
            ).fetchone()
            if hit and hit[0] is not None:
                center = int(hit[0])

        lo = max(0, center - context_tokens)
        hi = min(token_count - 1, center + context_tokens)
        window_rows = self._conn.execute(
            """
            SELECT token, char_start, char_end FROM body_tokens
            WHERE body_id = ? AND token_index BETWEEN ? AND ?
            ORDER BY token_index
            """,
            [body_id, lo, hi],
        ).fetchall()
        window = [(str(r[0]), int(r[1]), int(r[2])) for r in window_rows]
        excerpt = _render_window(
            body, window, set(tokens), start_mark=start_mark, end_mark=end_mark
        )
        if lo > 0:
            excerpt = ellipsis + excerpt
        if hi < token_count - 1:
            excerpt = excerpt + ellipsis
        return excerpt


