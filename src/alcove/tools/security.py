"""Path and command validation for the local tools."""

from __future__ import annotations

import logging
import os
import re

logger = logging.getLogger(__name__)

# Paths that should never be accessible via tools
_BLOCKED_PATHS = {
    "/etc/shadow",
    "/etc/passwd",
    "/etc/sudoers",
}

_BLOCKED_PREFIXES = (
    "/proc/",
    "/sys/",
    "/dev/",
)

_BLOCKED_COMMANDS = ("mkfs", "dd if=/dev/zero", ":(){:|:&};:")
_ROOT_WIPE_RE = re.compile(r"^rm\s+-(rf|fr)\s+/(\*)?(\s|;|&|$)")


def validate_path(path: str, working_dir: str) -> tuple[str, str | None]:
    """Validate and resolve a file path.

    Returns (resolved_path, error_message).
    If error_message is not None, the path is invalid.
    """
    if not path:
        return "", "Path is required"
    if "\x00" in path:
        return "", "Path contains null bytes"

    expanded = os.path.expanduser(path)
    if os.path.isabs(expanded):
        resolved = os.path.realpath(expanded)
    else:
        resolved = os.path.realpath(os.path.join(working_dir, expanded))

    for blocked in _BLOCKED_PATHS:
        if resolved in (blocked, os.path.realpath(blocked)):
            logger.warning("Blocked access to sensitive path: %s", resolved)
            return "", f"Access denied: {path}"

    for prefix in _BLOCKED_PREFIXES:
        if resolved.startswith(prefix) or resolved.startswith(os.path.realpath(prefix)):
            logger.warning("Blocked access to system path: %s", resolved)
            return "", f"Access denied: {path}"

    return resolved, None


def sanitize_command(command: str) -> tuple[str, str | None]:
    """Basic validation for shell commands.

    Returns (command, error_message). Only the most destructive patterns are
    rejected; everything else runs as the user.
    """
    if "\x00" in command:
        return "", "Command contains null bytes"

    stripped = command.strip()
    if not stripped:
        return "", "Command is empty"

    for blocked in _BLOCKED_COMMANDS:
        if stripped.startswith(blocked) or _ROOT_WIPE_RE.match(stripped):
            logger.warning("Blocked dangerous command: %s", command[:50])
            return "", f"Blocked: {stripped.split()[0]} is not allowed"

    return command, None
