"""Write file tool: creates missing parent directories, replaces existing files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .security import validate_path

_working_dir: str = os.getcwd()

DEFINITION: dict[str, Any] = {
    "name": "write_file",
    "description": (
        "Write text to a file, replacing it if it already exists. "
        "Missing parent directories are created."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Target file path, relative to the working directory or absolute"},
            "content": {"type": "string", "description": "Full text of the file"},
        },
        "required": ["path", "content"],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


async def handle(path: str, content: str, **_: Any) -> dict[str, Any]:
    if not isinstance(content, str):
        return {"error": "content must be a string"}
    resolved, error = validate_path(path, _working_dir)
    if error:
        return {"error": error}

    target = Path(resolved)
    if target.is_dir():
        return {"error": f"Path is a directory: {path}"}
    replaced = target.exists()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        return {"error": str(e)}

    summary = f"Wrote {len(content)} characters to {target}"
    return {"content": summary + " (replaced existing file)" if replaced else summary}
