"""Identification policy for NVIDIA telemetry services and scheduled tasks.

The vendor ships no stable identifiers, and task names carry per-install GUID
suffixes (``NvTmRep_CrashReport1_{B2FE1952-...}``), so artifacts are matched by
name rules evaluated fresh on every enumeration. Order matters: for each kind
the first matching rule wins.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

from .models import ArtifactKind, MatchMode, SignaturePattern

logger = logging.getLogger(__name__)

# Bump whenever DEFAULT_SIGNATURES changes.
SIGNATURE_VERSION = 3

DEFAULT_SIGNATURES: Tuple[SignaturePattern, ...] = (
    # Services
    SignaturePattern(ArtifactKind.SERVICE, MatchMode.EXACT, "NvTelemetryContainer"),
    SignaturePattern(ArtifactKind.SERVICE, MatchMode.CONTAINS, "NvTelemetry"),
    # Scheduled tasks (root folder, GUID suffixed)
    SignaturePattern(ArtifactKind.SCHEDULED_TASK, MatchMode.PATH_PREFIX, r"\NvTmMon"),
    SignaturePattern(ArtifactKind.SCHEDULED_TASK, MatchMode.PATH_PREFIX, r"\NvTmRep"),
    SignaturePattern(ArtifactKind.SCHEDULED_TASK, MatchMode.CONTAINS, "NvTelemetry"),
)

_KIND_ALIASES = {
    "service": ArtifactKind.SERVICE,
    "services": ArtifactKind.SERVICE,
    "task": ArtifactKind.SCHEDULED_TASK,
    "tasks": ArtifactKind.SCHEDULED_TASK,
    "scheduled_task": ArtifactKind.SCHEDULED_TASK,
}


def patterns_for(
    kind: ArtifactKind, signatures: Iterable[SignaturePattern]
) -> List[SignaturePattern]:
    """Return the rules for one artifact kind, preserving table order."""
    return [p for p in signatures if p.kind is kind]


def parse_signatures(entries: Sequence[dict]) -> Tuple[SignaturePattern, ...]:
    """Build a signature table from a list of ``{kind, match, value}`` dicts.

    Raises:
        ValueError: If an entry has an unknown kind or match mode, or no value.
    """
    patterns: List[SignaturePattern] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Signature entry {index} is not an object")
        kind = _KIND_ALIASES.get(str(entry.get("kind", "")).lower())
        if kind is None:
            raise ValueError(f"Signature entry {index} has unknown kind: {entry.get('kind')!r}")
        try:
            mode = MatchMode(str(entry.get("match", "")).lower())
        except ValueError:
            raise ValueError(
                f"Signature entry {index} has unknown match mode: {entry.get('match')!r}"
            ) from None
        value = entry.get("value")
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Signature entry {index} has no value")
        patterns.append(SignaturePattern(kind, mode, value.strip()))
    return tuple(patterns)


def load_signatures(path: Union[str, Path]) -> Tuple[SignaturePattern, ...]:
    """Load a signature table from a JSON file.

    The file holds either a list of entries or ``{"version": n, "signatures": [...]}``.
    Meant to be called once at startup; the returned tuple is never mutated.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    version = None
    entries = data
    if isinstance(data, dict):
        version = data.get("version")
        entries = data.get("signatures", [])
    if not isinstance(entries, list):
        raise ValueError(f"Signature file {path} does not contain a list of signatures")

    patterns = parse_signatures(entries)
    logger.info(
        "Loaded %d signatures from %s (version %s)", len(patterns), path, version or "n/a"
    )
    return patterns
