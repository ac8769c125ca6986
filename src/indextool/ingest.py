"""Rebuild the corpus from a list of source files.

The whole run (reset plus every file) happens in one transaction: a read
or write failure on any file rolls everything back, so an aborted run
never leaves a half-built corpus behind.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from indextool.corpus import CorpusStore, is_index_listing
from indextool.extractor import extract
from indextool.io_utils import read_text_file
from indextool.records import Extraction


class IngestError(RuntimeError):
    """Raised when a file cannot be read or written during ingestion."""

    def __init__(self, source_file: str, reason: str) -> None:
        super().__init__(f"{source_file}: {reason}")
        self.source_file = source_file
        self.reason = reason


@dataclass(frozen=True, slots=True)
class IngestSummary:
    """Counts for one completed ingestion run."""

    files: int
    declarations: int
    citations: int
    bodies: int
    elapsed_sec: float


def _trace(log: Callable[[str], None], source_file: str, extraction: Extraction) -> None:
    for d in extraction.declarations:
        log(f"# Index to '{d.term}' in {source_file}.")
    for c in extraction.citations:
        log(f"# IndexEntry to '{c.term}' at page {c.page}.")


def ingest(
    store: CorpusStore,
    files: Sequence[Path | str],
    *,
    on_file: Callable[[str], None] | None = None,
    log: Callable[[str], None] | None = None,
) -> IngestSummary:
    """Reset the store and load ``files`` in the given order.

    Args:
        store: A writable corpus store.
        files: Source paths; the path string is the record's file label.
        on_file: Optional progress hook, called once per file after it is stored.
        log: Optional sink for verbose trace lines.

    Raises:
        IngestError: A file could not be read or its records not written.
    """
    start = time.monotonic()
    n_decl = n_cite = n_body = 0

    with store.transaction():
        store.reset()
        for path in files:
            source_file = str(path)
            if log is not None:
                log(f"# Parsing {source_file}")
                if not is_index_listing(source_file):
                    log(f"# Full Text Search of '{source_file}'.")
            try:
                contents = read_text_file(Path(path))
            except OSError as exc:
                raise IngestError(source_file, f"cannot read file ({exc})") from exc

            extraction = extract(source_file, contents)
            try:
                store.add_extraction(extraction)
            except Exception as exc:
                raise IngestError(source_file, f"cannot store records ({exc})") from exc

            if log is not None:
                _trace(log, source_file, extraction)
            n_decl += len(extraction.declarations)
            n_cite += len(extraction.citations)
            if not is_index_listing(source_file):
                n_body += 1
            if on_file is not None:
                on_file(source_file)

    return IngestSummary(
        files=len(files),
        declarations=n_decl,
        citations=n_cite,
        bodies=n_body,
        elapsed_sec=time.monotonic() - start,
    )
