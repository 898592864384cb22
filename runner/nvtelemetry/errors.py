"""Error taxonomy for OS-level service and task operations."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    OS_API_FAILURE = "os_api_failure"


class TelemetryError(Exception):
    """Base error for a failed OS operation on one artifact.

    Carries the artifact identifier and the attempted action so that logs and
    reports can name both without extra context.
    """

    kind = ErrorKind.OS_API_FAILURE

    def __init__(
        self,
        message: str,
        *,
        identifier: Optional[str] = None,
        action: Optional[str] = None,
        returncode: Optional[int] = None,
        output: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.action = action
        self.returncode = returncode
        self.output = output

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.action:
            context.append(f"action={self.action}")
        if self.identifier:
            context.append(f"target={self.identifier}")
        if self.returncode is not None:
            context.append(f"code={self.returncode}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class ArtifactNotFound(TelemetryError):
    """The service or task vanished between discovery and use."""

    kind = ErrorKind.NOT_FOUND


class AccessDenied(TelemetryError):
    """The operation needs elevated privileges."""

    kind = ErrorKind.ACCESS_DENIED


class OsApiFailure(TelemetryError):
    kind = ErrorKind.OS_API_FAILURE
