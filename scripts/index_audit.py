#!/usr/bin/env python3
"""Audit the index of a large LaTeX document.

Given input files, rebuilds the corpus from them. Without input files,
runs audit queries against the existing corpus and prints one finding
per line to stdout. Diagnostics and progress go to stderr.

Usage:
    # Ingest (always starts from an empty corpus):
    python3 scripts/index_audit.py -f book.duckdb chapters/*.tex book.idx

    # Audit: duplicates are always reported, the rest on request.
    python3 scripts/index_audit.py -f book.duckdb -l -L -c
    python3 scripts/index_audit.py -f book.duckdb -s Turing
    python3 scripts/index_audit.py -f book.duckdb -s Turing -S
    python3 scripts/index_audit.py -f book.duckdb -x entropy
    python3 scripts/index_audit.py -f book.duckdb -d --json

Inputs are matched line by line, so each \\index or \\indexentry must sit
on a single line. Access marks confuse the matcher; audit the plain
ASCII form of the index first.
"""
from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import Any

import duckdb

from indextool.audit import AuditEngine
from indextool.corpus import DEFAULT_DB_NAME, CorpusStore, SchemaVersionError
from indextool.ingest import IngestError, ingest
from indextool.io_utils import dumps_json
from indextool.records import ENTITY_KINDS
from indextool.run_manifest import build_manifest, generate_run_id, write_manifest

DB_ENV_VAR = "INDEXTOOL_DB"


def log(msg: str) -> None:
    print(msg, file=sys.stderr)


def dump_json(obj: object) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(dumps_json(obj))
    sys.stdout.buffer.write(b"\n")
    sys.stdout.buffer.flush()


# ---------------------------------------------------------------------------
# Progress reporter
# ---------------------------------------------------------------------------


class _ProgressReporter:
    """Lightweight progress reporter for long ingestion runs."""

    def __init__(self, total: int, *, interval_sec: float = 5.0) -> None:
        self._total = total
        self._interval_sec = interval_sec
        self._count = 0
        self._start = time.monotonic()
        self._last_report = self._start

    @property
    def count(self) -> int:
        return self._count

    def tick(self, _source_file: str = "") -> None:
        self._count += 1
        now = time.monotonic()
        if now - self._last_report >= self._interval_sec:
            self._print_line()
            self._last_report = now

    def finish(self) -> None:
        self._print_line()

    def _print_line(self) -> None:
        elapsed = time.monotonic() - self._start
        rate = self._count / max(0.01, elapsed)
        remaining = self._total - self._count
        eta_sec = remaining / max(0.01, rate)
        pct = 100.0 * self._count / max(1, self._total)
        eta_str = f"{eta_sec / 60:.1f}m" if eta_sec > 60 else f"{eta_sec:.0f}s"
        log(
            f"[{self._count}/{self._total}] {pct:.1f}% | "
            f"{rate:.1f} files/sec | ETA {eta_str}"
        )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Audit the index of a LaTeX document. With input files the corpus "
            "is rebuilt; without them the audit queries run."
        )
    )
    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="Document (.tex) and index listing (.idx) files to ingest",
    )
    parser.add_argument(
        "-f",
        "--db",
        type=Path,
        default=Path(os.environ.get(DB_ENV_VAR) or DEFAULT_DB_NAME),
        help=f"Corpus database file (default: ${DB_ENV_VAR} or {DEFAULT_DB_NAME})",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Trace every record to stderr"
    )
    parser.add_argument(
        "-d",
        "--deep",
        action="store_true",
        help="Deep scan: search prose for every cited term lacking an \\index",
    )
    parser.add_argument(
        "-l",
        "--list-entries",
        action="store_true",
        help="List distinct \\indexentry terms",
    )
    parser.add_argument(
        "-L",
        "--list-indices",
        action="store_true",
        help="List distinct \\index terms",
    )
    parser.add_argument(
        "-c",
        "--case-variants",
        action="store_true",
        help="Report terms that differ only by letter case",
    )
    parser.add_argument(
        "-s",
        "--search",
        default=None,
        metavar="WORD",
        help="Search for files using WORD without declaring it",
    )
    parser.add_argument(
        "-S",
        "--case-sensitive",
        action="store_true",
        help="Make --search a literal, case-sensitive substring match",
    )
    parser.add_argument(
        "-x",
        "--snippets",
        default=None,
        metavar="WORD",
        help="Show an excerpt around WORD in every matching file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print findings as JSON instead of text lines",
    )
    return parser


def _has_query_flags(args: argparse.Namespace) -> bool:
    return bool(
        args.deep
        or args.list_entries
        or args.list_indices
        or args.case_variants
        or args.search is not None
        or args.snippets is not None
        or args.case_sensitive
        or args.json
    )


def _open_store(db_path: Path, *, read_only: bool) -> CorpusStore | None:
    try:
        return CorpusStore(db_path, read_only=read_only)
    except (duckdb.Error, OSError) as exc:
        log(f"ERROR: cannot open database {db_path}: {exc}")
        return None


def run_ingest(args: argparse.Namespace) -> int:
    files: list[Path] = list(args.files)
    store = _open_store(args.db, read_only=False)
    if store is None:
        return 1
    reporter = _ProgressReporter(len(files))
    with store:
        summary = ingest(
            store,
            files,
            on_file=reporter.tick,
            log=log if args.verbose else None,
        )
        reporter.finish()
        manifest = build_manifest(
            store,
            run_id=generate_run_id(),
            files=[str(f) for f in files],
            summary=summary,
        )
    manifest_path = write_manifest(args.db, manifest)
    log(
        f"Ingested {summary.files} files: {summary.declarations} declarations, "
        f"{summary.citations} citations, {summary.bodies} bodies "
        f"in {summary.elapsed_sec:.1f}s"
    )
    log(f"Output: {args.db}")
    log(f"Run manifest: {manifest_path}")
    return 0


def collect_findings(engine: AuditEngine, args: argparse.Namespace) -> dict[str, list[Any]]:
    """Run the enabled queries, in output order."""
    results: dict[str, list[Any]] = {
        "duplicate_page_citations": engine.duplicate_page_citations(),
        "duplicate_index_declarations": engine.duplicate_index_declarations(),
    }
    if args.case_variants:
        results["case_variant_collisions"] = [
            collision
            for kind in ENTITY_KINDS
            for collision in engine.case_variant_collisions(kind)
        ]
    if args.deep:
        if args.verbose:
            log("# Deep scan of every cited term.")
        results["deep_scan"] = engine.deep_scan()
    if args.list_entries:
        results["entry_terms"] = engine.list_distinct_terms("citation")
    if args.list_indices:
        results["index_terms"] = engine.list_distinct_terms("declaration")
    if args.search is not None:
        if args.verbose:
            log(f"# Searching for missing entries to {args.search}.")
        results["missing_index_entries"] = engine.missing_index_entries(
            args.search, case_sensitive=args.case_sensitive
        )
    if args.snippets is not None:
        results["snippets"] = engine.snippet_search(args.snippets)
    return results


def print_findings(results: dict[str, list[Any]]) -> None:
    for items in results.values():
        for item in items:
            print(item if isinstance(item, str) else item.message())


def run_audit(args: argparse.Namespace) -> int:
    if not args.db.exists():
        log(f"ERROR: database not found: {args.db} (ingest input files first)")
        return 1
    store = _open_store(args.db, read_only=True)
    if store is None:
        return 1
    with store:
        results = collect_findings(AuditEngine(store), args)
    if args.json:
        dump_json(results)
    else:
        print_findings(results)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.files and _has_query_flags(args):
        parser.error("query flags cannot be combined with input files")
    if args.case_sensitive and args.search is None:
        parser.error("-S/--case-sensitive requires -s/--search")

    try:
        if args.files:
            return run_ingest(args)
        return run_audit(args)
    except IngestError as exc:
        log(f"ERROR: ingestion aborted, corpus left unchanged: {exc}")
        return 1
    except SchemaVersionError as exc:
        log(f"ERROR: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
