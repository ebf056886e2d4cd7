"""Errors raised by the scheduling core."""
from __future__ import annotations

from typing import Iterable


class SchedulingError(RuntimeError):
    """Base class for scheduling failures."""


class InvalidSubjectConfiguration(SchedulingError, ValueError):
    """The subject's structure cannot be expanded into sessions."""


class UnknownSubjectError(InvalidSubjectConfiguration, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Matière inconnue : {name}")
        self.name = name


class GridConflictError(SchedulingError):
    """A placement would break the no-double-booking rules of the grid."""

    def __init__(self, conflicts: Iterable[str]) -> None:
        self.conflicts = list(conflicts)
        super().__init__("; ".join(self.conflicts) or "Conflit de planification")
