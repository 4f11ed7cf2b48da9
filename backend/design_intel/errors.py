"""Error taxonomy shared by the catalog, trend and learning services."""
from __future__ import annotations

from typing import Any


class DesignIntelError(RuntimeError):
    pass


class NotFoundError(DesignIntelError):
    def __init__(self, entity: str, identifier: Any) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class InvalidInputError(DesignIntelError):
    pass


class InvalidTransitionError(InvalidInputError):
    def __init__(self, entity: str, identifier: Any, current: str, requested: str) -> None:
        super().__init__(f"{entity} {identifier} cannot move from {current} to {requested}")
        self.current = current
        self.requested = requested


class AnalysisCancelled(DesignIntelError):
    pass


def check_cancelled(cancel_event: Any, stage: str) -> None:
    """Raise ``AnalysisCancelled`` before ``stage`` when the event has been set."""
    if cancel_event is not None and cancel_event.is_set():
        raise AnalysisCancelled(f"cancelled before {stage}")
