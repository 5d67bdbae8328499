"""Session listing adapter.

Runs the session-listing command and turns its JSON output into a list of raw
session records. Every failure degrades to an empty list: a monitor that is
polled unattended must show "no active subagents" rather than crash when the
backend is briefly unavailable.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Sequence
from typing import Any, cast

from submon.config import DEFAULT_SOURCE_COMMAND

logger = logging.getLogger(__name__)

RawSession = dict[str, Any]


def parse_sessions_payload(payload: str) -> list[RawSession]:
    """Decode the listing command output.

    Accepts a JSON array of session objects, or an object wrapping such an
    array under ``sessions``. Non-object items are dropped.

    Args:
        payload: Raw stdout of the listing command.

    Returns:
        List of session records, empty for anything unrecognised.
    """
    if not payload or not payload.strip():
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug("Session listing is not valid JSON: %s", e)
        return []

    if isinstance(data, dict):
        data = cast(dict[str, Any], data).get("sessions")
    if not isinstance(data, list):
        logger.debug("Session listing has unexpected shape: %s", type(data).__name__)
        return []

    return [cast(RawSession, item) for item in cast(list[Any], data) if isinstance(item, dict)]


def fetch_sessions(
    command: Sequence[str] = DEFAULT_SOURCE_COMMAND,
    timeout: float | None = None,
) -> list[RawSession]:
    """Run the session listing command and return its records.

    Args:
        command: Command line to execute.
        timeout: Optional timeout in seconds; None blocks until the command exits.

    Returns:
        List of raw session records, empty on any failure.
    """
    try:
        result = subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as e:
        logger.debug("Session listing command failed: %s", e)
        return []

    if result.returncode != 0:
        logger.debug("Session listing exited with %d: %s", result.returncode, result.stderr.strip())
        return []
    return parse_sessions_payload(result.stdout)


def select_subagent_sessions(sessions: object, pattern: str = "subagent") -> list[RawSession]:
    """Keep only sessions whose key follows the subagent naming convention.

    Args:
        sessions: Raw listing; anything that is not a list yields no sessions.
        pattern: Substring that marks a subagent session key.

    Returns:
        Matching session records in their original order.
    """
    if not isinstance(sessions, list):
        return []
    selected: list[RawSession] = []
    for item in cast(list[Any], sessions):
        if not isinstance(item, dict):
            continue
        record = cast(RawSession, item)
        key = record.get("key")
        if isinstance(key, str) and pattern in key:
            selected.append(record)
    return selected
