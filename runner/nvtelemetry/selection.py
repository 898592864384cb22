"""Selection state behind a telemetry checklist.

A host UI keeps one ArtifactSelection per artifact kind and polls
``current_aggregate_state()`` / ``commit_available()`` instead of wiring
change callbacks through the engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional

from .models import LogicalState, TelemetryArtifact


class CheckState(Enum):
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    INDETERMINATE = "indeterminate"


class ArtifactSelection:
    """Artifacts of one kind plus the subset picked for the next commit.

    Initially every artifact that is still enabled is selected, matching a
    checklist that pre-ticks what can be disabled.
    """

    def __init__(
        self,
        artifacts: Iterable[TelemetryArtifact],
        selected: Optional[Iterable[str]] = None,
    ):
        self.artifacts: List[TelemetryArtifact] = list(artifacts)
        if selected is None:
            selected = (a.identifier for a in self.artifacts if a.state is LogicalState.ENABLED)
        self._selected = set()
        self.select_only(selected)

    def _key(self, identifier: str) -> Optional[str]:
        lowered = identifier.lower()
        for artifact in self.artifacts:
            if artifact.identifier.lower() == lowered:
                return artifact.identifier
        return None

    def select(self, identifier: str) -> bool:
        key = self._key(identifier)
        if key is None:
            return False
        self._selected.add(key)
        return True

    def deselect(self, identifier: str) -> None:
        key = self._key(identifier)
        if key is not None:
            self._selected.discard(key)

    def select_all(self) -> None:
        self._selected = {a.identifier for a in self.artifacts}

    def select_only(self, identifiers: Iterable[str]) -> List[str]:
        """Replace the selection; returns identifiers that matched nothing."""
        self._selected = set()
        missing = []
        for identifier in identifiers:
            if not self.select(identifier):
                missing.append(identifier)
        return missing

    def selected(self) -> List[TelemetryArtifact]:
        """Selected artifacts in discovery order."""
        return [a for a in self.artifacts if a.identifier in self._selected]

    def current_aggregate_state(self) -> CheckState:
        if not self.artifacts or not self._selected:
            return CheckState.UNCHECKED
        if len(self._selected) == len(self.artifacts):
            return CheckState.CHECKED
        return CheckState.INDETERMINATE


def commit_available(*selections: ArtifactSelection) -> bool:
    """True when at least one group is fully checked."""
    return any(s.current_aggregate_state() is CheckState.CHECKED for s in selections)
