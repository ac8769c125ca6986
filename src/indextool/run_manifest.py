"""Run-manifest sidecar describing the last successful ingestion."""
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from indextool.corpus import CorpusStore
from indextool.ingest import IngestSummary
from indextool.io_utils import load_json, save_json

MANIFEST_VERSION = "1.0"
MANIFEST_FILENAME = "run_manifest.json"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(UTC).isoformat()


def generate_run_id(prefix: str = "ingest") -> str:
    """Generate a compact run id suitable for artifact naming."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


def default_manifest_path_for_db(db_path: Path) -> Path:
    """Return the sidecar manifest path for a corpus file.

    Named after the DB so several corpora can share a directory.
    """
    return db_path.parent / f"{db_path.name}.{MANIFEST_FILENAME}"


def build_manifest(
    store: CorpusStore,
    *,
    run_id: str,
    files: list[str],
    summary: IngestSummary,
) -> dict[str, Any]:
    """Build the manifest payload for a freshly ingested corpus."""
    return {
        "manifest_version": MANIFEST_VERSION,
        "created_at": utc_now_iso(),
        "run_id": run_id,
        "db_path": str(store.db_path),
        "schema_version": store.schema_version,
        "input_files": files,
        "table_row_counts": store.row_counts(),
        "timings_sec": {"ingest": round(summary.elapsed_sec, 3)},
        "stats": {
            "files": summary.files,
            "declarations": summary.declarations,
            "citations": summary.citations,
            "bodies": summary.bodies,
        },
    }


def write_manifest(db_path: Path, manifest: dict[str, Any]) -> Path:
    """Write the manifest beside the DB and return its path."""
    path = default_manifest_path_for_db(db_path)
    save_json(manifest, path, pretty=True)
    return path


def load_manifest(path: Path) -> dict[str, Any]:
    """Load a manifest from JSON."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid manifest payload in {path}")
    return data
