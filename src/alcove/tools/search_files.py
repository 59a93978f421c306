"""File name search tool using glob."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .output import truncate
from .security import validate_path

_MAX_RESULTS = 500

_working_dir: str = os.getcwd()

DEFINITION: dict[str, Any] = {
    "name": "search_files",
    "description": (
        "Find files under a directory whose names match a glob pattern (e.g. \"*.py\", \"config*.yaml\"). "
        "Searches recursively."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "File name glob pattern"},
            "path": {
                "type": "string",
                "description": "Directory to search in. Defaults to working directory.",
            },
        },
        "required": ["pattern"],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


async def handle(pattern: str, path: str | None = None, **_: Any) -> dict[str, Any]:
    if not pattern:
        return {"error": "Pattern is required"}
    if "\x00" in pattern:
        return {"error": "Pattern contains null bytes"}

    base_path = path or _working_dir
    resolved, error = validate_path(base_path, _working_dir)
    if error:
        return {"error": error}

    base = Path(resolved)
    if not base.is_dir():
        return {"error": f"Directory not found: {base_path}"}

    results: list[str] = []
    truncated = False
    try:
        for match in base.rglob(pattern):
            if not match.is_file():
                continue
            if len(results) >= _MAX_RESULTS:
                truncated = True
                break
            results.append(str(match))
    except (OSError, ValueError) as e:
        return {"error": f"Search failed: {e}"}

    if not results:
        return {"content": "No files found"}
    results.sort()
    content = "\n".join(results)
    if truncated:
        content += f"\n... (showing first {_MAX_RESULTS} matches)"
    return {"content": truncate(content)}
