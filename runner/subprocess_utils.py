"""Utility functions for running Windows command-line tools.

This module wraps the subprocess calls made against ``sc.exe``, ``schtasks.exe``
and PowerShell, and turns their failures into the error taxonomy of
``nvtelemetry.errors`` so callers can tell a missing object from a privilege
problem.
"""

import subprocess
import logging
from typing import Iterable, List, Optional

from nvtelemetry.errors import AccessDenied, ArtifactNotFound, OsApiFailure

logger = logging.getLogger(__name__)

# Windows error codes surfaced as process exit codes by sc.exe
ERROR_ACCESS_DENIED = 5
ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_DOES_NOT_EXIST = 1060
ERROR_SERVICE_NOT_ACTIVE = 1062

# schtasks.exe always exits with 1, so its failures are classified by text.
# German variants are included since the tools print localized messages.
NOT_FOUND_MARKERS = (
    "cannot find the file",
    "does not exist",
    "kann die angegebene datei nicht finden",
    "ist nicht vorhanden",
)
ACCESS_DENIED_MARKERS = (
    "access is denied",
    "zugriff verweigert",
)

MAX_OUTPUT_SNIPPET = 300


def run_command(
    command: List[str],
    *,
    input: Optional[str] = None,
    encoding: str = "utf-8",
    errors: str = "replace",
) -> subprocess.CompletedProcess:
    """Run a command to completion and capture its output.

    No timeout is applied: service control calls block for as long as the
    platform makes them block.

    Raises:
        OsApiFailure: If the executable cannot be launched at all.
    """
    logger.debug("Running command: %s", " ".join(command))
    try:
        return subprocess.run(
            command,
            input=input,
            stdin=None if input is not None else subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding=encoding,
            errors=errors,
            check=False,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
    except OSError as e:
        raise OsApiFailure(f"Failed to launch {command[0]}: {e}") from e


def output_text(result: subprocess.CompletedProcess) -> str:
    """Combined, trimmed stdout/stderr of a finished command."""
    parts = [(result.stdout or "").strip(), (result.stderr or "").strip()]
    text = "\n".join(p for p in parts if p)
    if len(text) > MAX_OUTPUT_SNIPPET:
        text = text[:MAX_OUTPUT_SNIPPET] + "..."
    return text


def raise_for_failure(
    result: subprocess.CompletedProcess,
    *,
    identifier: str,
    action: str,
    ok_codes: Iterable[int] = (0,),
    not_found_codes: Iterable[int] = (),
    access_denied_codes: Iterable[int] = (ERROR_ACCESS_DENIED,),
) -> None:
    """Raise the matching TelemetryError when a command did not succeed.

    Exit codes are checked first, then the localized output text.
    """
    code = result.returncode
    if code in tuple(ok_codes):
        return

    text = output_text(result)
    lowered = text.lower()
    details = dict(identifier=identifier, action=action, returncode=code, output=text)

    if code in tuple(not_found_codes) or any(m in lowered for m in NOT_FOUND_MARKERS):
        raise ArtifactNotFound(f"{identifier} was not found", **details)
    if code in tuple(access_denied_codes) or any(m in lowered for m in ACCESS_DENIED_MARKERS):
        raise AccessDenied(f"Access denied while trying to {action} {identifier}", **details)
    raise OsApiFailure(
        f"Failed to {action} {identifier}: {text or 'no output'}", **details
    )
