"""Directory listing tool."""

from __future__ import annotations

import os
from typing import Any

from .output import truncate
from .security import validate_path

_working_dir: str = os.getcwd()

DEFINITION: dict[str, Any] = {
    "name": "list_directory",
    "description": "List the immediate entries of a directory, marking each as a file or a directory.",
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Directory path. Defaults to working directory."},
        },
        "required": [],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


async def handle(path: str | None = None, **_: Any) -> dict[str, Any]:
    resolved, error = validate_path(path or _working_dir, _working_dir)
    if error:
        return {"error": error}
    if not os.path.isdir(resolved):
        return {"error": f"Directory not found: {path or _working_dir}"}
    try:
        with os.scandir(resolved) as it:
            entries = sorted(it, key=lambda e: e.name)
            lines = [f"[{'dir' if e.is_dir() else 'file'}] {e.name}" for e in entries]
    except OSError as e:
        return {"error": str(e)}

    if not lines:
        return {"content": "(empty directory)"}
    return {"content": truncate("\n".join(lines))}
