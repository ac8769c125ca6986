"""Tests for indextool.corpus module."""
from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from indextool.corpus import (
    SCHEMA_VERSION,
    CorpusStore,
    SchemaVersionError,
    ensure_schema_version,
    query_tokens,
    tokenize,
)
from indextool.records import (
    DocumentBody,
    Extraction,
    IndexDeclaration,
    PageCitation,
)


def _store(tmp_path: Path) -> CorpusStore:
    return CorpusStore(tmp_path / "corpus.duckdb")


class TestTokenize:
    def test_case_folds_and_offsets(self) -> None:
        assert tokenize("Hello, World") == [("hello", 0, 5), ("world", 7, 12)]

    def test_underscore_and_backslash_split(self) -> None:
        assert [t for t, _s, _e in tokenize(r"\index{snake_case}")] == [
            "index",
            "snake",
            "case",
        ]

    def test_query_tokens_deduplicated(self) -> None:
        assert query_tokens("Turing turing Machine") == ["turing", "machine"]

    def test_query_tokens_empty(self) -> None:
        assert query_tokens("") == []
        assert query_tokens("  --  ") == []


class TestLifecycle:
    def test_new_store_has_schema(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            assert store.schema_version == SCHEMA_VERSION
            assert store.row_counts() == {
                "declarations": 0,
                "citations": 0,
                "bodies": 0,
                "body_tokens": 0,
            }

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "corpus.duckdb"
        with CorpusStore(path) as store:
            assert store.db_path == path
        assert path.exists()

    def test_reset_is_idempotent(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
            store.reset()
            store.reset()
            assert store.declarations() == []
            assert store.schema_version == SCHEMA_VERSION

    def test_reset_clears_every_table(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
            store.add_citation(PageCitation("a.idx", "Entropy", 3))
            store.add_body(DocumentBody("a.tex", "entropy rises"))
            store.reset()
            assert set(store.row_counts().values()) == {0}

    def test_data_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "corpus.duckdb"
        with CorpusStore(path) as store:
            store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
        with CorpusStore(path, read_only=True) as store:
            assert store.read_only
            assert store.declarations() == [IndexDeclaration("a.tex", "Entropy")]

    def test_read_only_rejects_db_without_schema(self, tmp_path: Path) -> None:
        path = tmp_path / "other.duckdb"
        con = duckdb.connect(str(path))
        con.execute("CREATE TABLE unrelated (x INTEGER)")
        con.close()
        with pytest.raises(SchemaVersionError):
            CorpusStore(path, read_only=True)

    def test_ensure_schema_version_mismatch(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            conn = duckdb.connect(str(tmp_path / "bare.duckdb"))
            try:
                with pytest.raises(SchemaVersionError, match="expected 9.9.9"):
                    ensure_schema_version(conn, expected="9.9.9")
            finally:
                conn.close()
            assert store.schema_version == SCHEMA_VERSION

    def test_transaction_rolls_back_on_error(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_declaration(IndexDeclaration("a.tex", "Kept"))
            with pytest.raises(ValueError):
                with store.transaction():
                    store.reset()
                    store.add_declaration(IndexDeclaration("b.tex", "Lost"))
                    raise ValueError("boom")
            assert store.declarations() == [IndexDeclaration("a.tex", "Kept")]

    def test_transaction_commits(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            with store.transaction():
                store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
            assert len(store.declarations()) == 1


class TestWritesAndReads:
    def test_round_trip(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
            store.add_declaration(IndexDeclaration("a.tex", "Entropy"))
            store.add_citation(PageCitation("a.idx", "Entropy", 42))
            assert store.add_body(DocumentBody("a.tex", "Entropy is conserved."))
            assert store.declarations() == [
                IndexDeclaration("a.tex", "Entropy"),
                IndexDeclaration("a.tex", "Entropy"),
            ]
            assert store.citations() == [PageCitation("a.idx", "Entropy", 42)]
            assert store.bodies() == [DocumentBody("a.tex", "Entropy is conserved.")]

    def test_index_listing_body_is_skipped(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            assert store.add_body(DocumentBody("book.idx", "\\indexentry{A}{1}")) is False
            assert store.bodies() == []
            assert store.row_counts()["body_tokens"] == 0

    def test_add_extraction(self, tmp_path: Path) -> None:
        extraction = Extraction(
            declarations=(IndexDeclaration("a.tex", "Heat"),),
            citations=(PageCitation("a.tex", "Heat", 9),),
            body=DocumentBody("a.tex", "heat flows"),
        )
        with _store(tmp_path) as store:
            store.add_extraction(extraction)
            counts = store.row_counts()
            assert counts["declarations"] == 1
            assert counts["citations"] == 1
            assert counts["bodies"] == 1
            assert counts["body_tokens"] == 2

    def test_bodies_keep_verbatim_text(self, tmp_path: Path) -> None:
        body = "Line one\r\n\tTabbed {braces} \\index{X}\n"
        with _store(tmp_path) as store:
            store.add_body(DocumentBody("a.tex", body))
            assert store.bodies()[0].body == body


class TestTextSearch:
    def _populate(self, store: CorpusStore) -> None:
        store.add_body(DocumentBody("a.tex", "A Turing machine reads a tape."))
        store.add_body(DocumentBody("b.tex", "turing completeness, informally"))
        store.add_body(DocumentBody("c.tex", "Turin is a city."))

    def test_match_is_case_insensitive(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.match_files("TURING") == ["a.tex", "b.tex"]

    def test_match_is_word_bounded(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.match_files("Turin") == ["c.tex"]
            assert store.match_files("uring") == []

    def test_match_requires_every_token(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.match_files("turing machine") == ["a.tex"]

    def test_empty_word_matches_every_body(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.match_files("") == ["a.tex", "b.tex", "c.tex"]

    def test_separator_only_word_matches_nothing(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.match_files("--") == []
            assert store.match_files("&") == []
            assert store.snippets(" ... ") == []

    def test_contains_is_case_sensitive_substring(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            self._populate(store)
            assert store.contains_files("Turing") == ["a.tex"]
            assert store.contains_files("turing") == ["b.tex"]
            assert store.contains_files("uring") == ["a.tex", "b.tex"]

    def test_empty_store(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            assert store.match_files("anything") == []
            assert store.contains_files("anything") == []
            assert store.snippets("anything") == []


class TestSnippets:
    def test_whole_body_fits(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(
                DocumentBody("a.tex", "The entropy of a closed system never decreases.")
            )
            assert store.snippets("Entropy") == [
                ("a.tex", "The [entropy] of a closed system never decreases")
            ]

    def test_truncated_with_ellipsis(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(
                DocumentBody("a.tex", "one two three entropy four five six")
            )
            assert store.snippets("entropy", context_tokens=1) == [
                ("a.tex", "...three [entropy] four...")
            ]

    def test_newlines_collapsed(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(DocumentBody("a.tex", "heat\n\n  and\nentropy"))
            assert store.snippets("entropy") == [("a.tex", "heat and [entropy]")]

    def test_custom_marks(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(DocumentBody("a.tex", "x Entropy y"))
            assert store.snippets("entropy", start_mark="<<", end_mark=">>") == [
                ("a.tex", "x <<Entropy>> y")
            ]

    def test_every_query_token_marked(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(DocumentBody("a.tex", "a Turing machine"))
            assert store.snippets("machine turing") == [
                ("a.tex", "a [Turing] [machine]")
            ]

    def test_body_without_tokens(self, tmp_path: Path) -> None:
        with _store(tmp_path) as store:
            store.add_body(DocumentBody("a.tex", "  ...  "))
            assert store.snippets("") == [("a.tex", "...")]
