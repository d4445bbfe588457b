"""Exploration tree export.

Exports are serialized in memory first (YAML, or JSON for ``.json``
targets) and then written through a sibling temp file that replaces the
target in one step. A failed export leaves any earlier export untouched.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .errors import ExportError

JSON_SUFFIXES = {".json"}


def serialize_export(document: dict[str, Any], suffix: str = ".yaml") -> str:
    """Render an export document in the format implied by the file suffix.

    Raises:
        ExportError: If the document holds values the format cannot represent.
    """
    try:
        if suffix.lower() in JSON_SUFFIXES:
            return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    except (TypeError, ValueError, yaml.YAMLError) as exc:
        raise ExportError(f"Cannot serialize export: {exc}") from exc


def atomic_write(path: Path | str, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` in one step.

    Missing parent directories are created. The temp file is named after
    the target (``.tree.yaml.<random>.tmp``) and removed if anything fails.

    Raises:
        ExportError: If the write fails (wraps underlying OSError).
    """
    target = Path(path)

    fd = None
    tmp_path = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".tmp",
        )
        with os.fdopen(fd, "w", encoding=encoding) as f:
            fd = None
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except OSError as exc:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise ExportError(f"Failed to write {target}: {exc}") from exc


def write_export(path: Path | str, document: dict[str, Any]) -> Path:
    """Serialize ``document`` for ``path`` and write it atomically. Returns the path."""
    target = Path(path)
    atomic_write(target, serialize_export(document, target.suffix))
    return target
