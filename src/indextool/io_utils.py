"""I/O utilities for JSON sidecars and source-file reading."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    """Save an object as JSON with sorted keys."""
    path.parent.mkdir(parents=True, exist_ok=True)
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    path.write_bytes(orjson.dumps(obj, option=opts, default=str))


def dumps_json(obj: Any) -> bytes:
    """Serialize an object for stdout (indented, dataclasses supported)."""
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2, default=str)


def read_text_file(fpath: Path) -> str:
    """Read a text file with encoding fallback: UTF-8 -> CP1252 -> replace.

    Bytes are decoded as-is (no newline translation) so bodies stay
    verbatim. CP1252 covers sources saved by older editors with smart
    quotes. OSError propagates: an unreadable input is never silently empty.
    """
    raw = fpath.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        try:
            return raw.decode("cp1252")
        except UnicodeDecodeError:
            return raw.decode("utf-8", errors="replace")
