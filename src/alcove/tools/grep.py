"""Regex content search tool."""

from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path
from typing import Any

from .output import truncate
from .security import validate_path

NO_MATCHES = "No matches found"

_MAX_FILE_SIZE = 5_000_000  # 5MB
_MAX_MATCHES = 500
_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv"}

_working_dir: str = os.getcwd()

DEFINITION: dict[str, Any] = {
    "name": "grep",
    "description": (
        "Search file contents recursively with a regex pattern. "
        "Returns matching lines as path:line_number:text."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "Regex pattern to search for"},
            "path": {
                "type": "string",
                "description": "File or directory to search in. Defaults to working directory.",
            },
            "include": {
                "type": "string",
                "description": 'Only search files whose names match this glob (e.g. "*.py").',
            },
        },
        "required": ["pattern"],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


def _search_file(file_path: Path, regex: re.Pattern[str]) -> list[str]:
    try:
        if file_path.stat().st_size > _MAX_FILE_SIZE:
            return []
        text = file_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    if "\x00" in text:
        return []  # binary

    return [f"{file_path}:{i}:{line}" for i, line in enumerate(text.splitlines(), start=1) if regex.search(line)]


def _iter_files(base: Path, include: str | None):
    for root, dirs, files in os.walk(base):
        dirs[:] = sorted(d for d in dirs if d not in _SKIP_DIRS)
        for name in sorted(files):
            if include and not fnmatch.fnmatch(name, include):
                continue
            yield Path(root) / name


async def handle(pattern: str, path: str | None = None, include: str | None = None, **_: Any) -> dict[str, Any]:
    try:
        regex = re.compile(pattern)
    except re.error as e:
        return {"error": f"Invalid regex: {e}"}

    base_path = path or _working_dir
    resolved, error = validate_path(base_path, _working_dir)
    if error:
        return {"error": error}

    base = Path(resolved)
    if base.is_file():
        files = [base]
    elif base.is_dir():
        files = _iter_files(base, include)
    else:
        return {"error": f"Path not found: {base_path}"}

    matches: list[str] = []
    for file_path in files:
        matches.extend(_search_file(file_path, regex))
        if len(matches) >= _MAX_MATCHES:
            break

    if not matches:
        return {"content": NO_MATCHES}
    content = "\n".join(matches[:_MAX_MATCHES])
    if len(matches) >= _MAX_MATCHES:
        content += f"\n... (showing first {_MAX_MATCHES} matches)"
    return {"content": truncate(content)}
