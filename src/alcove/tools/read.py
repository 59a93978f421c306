"""Read file contents tool."""

from __future__ import annotations

import os
from typing import Any

from .output import truncate
from .security import validate_path

_working_dir: str = os.getcwd()

DEFINITION: dict[str, Any] = {
    "name": "read_file",
    "description": "Read the full text of a file. Optionally return only the first N lines.",
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path (relative to working directory or absolute)"},
            "limit": {"type": "integer", "description": "Maximum number of lines to return. Optional."},
        },
        "required": ["path"],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


async def handle(path: str, limit: int | None = None, **_: Any) -> dict[str, Any]:
    resolved, error = validate_path(path, _working_dir)
    if error:
        return {"error": error}
    if not os.path.isfile(resolved):
        return {"error": f"File not found: {path}"}
    try:
        with open(resolved, encoding="utf-8", errors="replace") as f:
            content = f.read()
    except OSError as e:
        return {"error": str(e)}

    if limit is not None and int(limit) > 0:
        lines = content.splitlines(keepends=True)
        content = "".join(lines[: int(limit)])

    return {"content": truncate(content)}
