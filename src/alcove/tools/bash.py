"""Shell command execution tool."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from .output import truncate
from .security import sanitize_command

logger = logging.getLogger(__name__)

_EMPTY_OUTPUT = "(no output)"
_MAX_CAPTURE_BYTES = 10 * 1024 * 1024
_READ_CHUNK = 64 * 1024

_working_dir: str = os.getcwd()
_timeout_cap: int = 120

DEFINITION: dict[str, Any] = {
    "name": "bash",
    "description": (
        "Execute a shell command and return its stdout followed by stderr. "
        "Commands run in the working directory. Default timeout is 120 seconds."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The shell command to execute"},
            "timeout": {
                "type": "integer",
                "description": "Timeout in seconds (default and maximum 120)",
            },
        },
        "required": ["command"],
    },
}


def set_working_dir(d: str) -> None:
    global _working_dir
    _working_dir = d


def set_timeout_cap(seconds: int) -> None:
    global _timeout_cap
    _timeout_cap = max(1, seconds)


async def _read_capped(stream: asyncio.StreamReader | None) -> bytes:
    """Drain ``stream`` to EOF, keeping at most ``_MAX_CAPTURE_BYTES``."""
    if stream is None:
        return b""
    kept = bytearray()
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return bytes(kept)
        room = _MAX_CAPTURE_BYTES - len(kept)
        if room > 0:
            kept += chunk[:room]


async def _collect(proc: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
    stdout, stderr = await asyncio.gather(_read_capped(proc.stdout), _read_capped(proc.stderr))
    await proc.wait()
    return stdout, stderr


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


async def handle(command: str, timeout: int | None = None, **_: Any) -> dict[str, Any]:
    command, error = sanitize_command(command)
    if error:
        return {"error": error}

    try:
        limit = min(max(1, int(timeout)), _timeout_cap) if timeout is not None else _timeout_cap
    except (TypeError, ValueError):
        limit = _timeout_cap

    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=_working_dir,
        )
        try:
            stdout, stderr = await asyncio.wait_for(_collect(proc), timeout=limit)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.info("bash command timed out after %ds", limit)
            return {"error": f"Command timed out after {limit}s"}
    except OSError as e:
        return {"error": str(e)}

    output = _decode(stdout) + _decode(stderr)
    if proc.returncode:
        return {"error": truncate(f"Command failed with exit code {proc.returncode}\n{output}")}
    return {"content": truncate(output) if output else _EMPTY_OUTPUT}
