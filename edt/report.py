from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .domain import SchedulingPolicy, Session, SessionRequest, Subject
from .utils import as_float, format_clock


logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PLACED = "placed"
    PLACED_PARTIAL = "placedPartial"
    UNPLACED = "unplaced"
    SKIPPED = "skipped"


class Shortfall(str, Enum):
    NO_SLOT_AVAILABLE = "noSlotAvailable"
    MISSING_TEACHER = "missingTeacher"
    MISSING_ROOM = "missingRoom"
    ALREADY_SCHEDULED = "alreadyScheduled"


SHORTFALL_LABELS = {
    Shortfall.NO_SLOT_AVAILABLE: "aucun créneau libre pour le groupe",
    Shortfall.MISSING_TEACHER: "aucun enseignant disponible",
    Shortfall.MISSING_ROOM: "aucune salle compatible n'est disponible",
    Shortfall.ALREADY_SCHEDULED: "séance déjà planifiée",
}


def suggest_recovery(shortfalls: Iterable[Shortfall]) -> list[str]:
    suggestions: list[str] = []

    def add(option: str) -> None:
        if option not in suggestions:
            suggestions.append(option)

    for shortfall in shortfalls:
        if shortfall is Shortfall.NO_SLOT_AVAILABLE:
            add("Ajoutez des créneaux à la grille (jours ou plages horaires) ou déplacez des séances existantes du groupe.")
            add("Relancez la génération sans éviter les conflits puis arbitrez les chevauchements à la main.")
        elif shortfall is Shortfall.MISSING_TEACHER:
            add("Enregistrez de nouveaux enseignants ou libérez leurs créneaux en déplaçant des séances existantes.")
            add("Affectez l'enseignant manquant à la main depuis la liste des séances.")
        elif shortfall is Shortfall.MISSING_ROOM:
            add("Créez une salle du type requis (Amphi ou Standard pour un cours, Standard pour un TD, STP pour un TP).")
            add("Libérez une salle compatible sur ce créneau.")
        elif shortfall is Shortfall.ALREADY_SCHEDULED:
            add("Supprimez la séance existante pour la régénérer.")
    return suggestions


@dataclass(frozen=True)
class ReportEntry:
    request: SessionRequest
    outcome: Outcome
    session: Optional[Session] = None
    shortfalls: tuple[Shortfall, ...] = ()

    def __post_init__(self) -> None:
        if self.outcome is not Outcome.UNPLACED and self.session is None:
            raise ValueError(f"{self.request.label} : issue {self.outcome.value} sans séance")

    @property
    def level(self) -> str:
        if self.outcome is Outcome.UNPLACED:
            return "error"
        if self.outcome is Outcome.PLACED_PARTIAL:
            return "warning"
        return "info"

    @property
    def message(self) -> str:
        label = self.request.label
        if self.outcome is Outcome.UNPLACED:
            return f"Impossible de planifier {label} : {SHORTFALL_LABELS[Shortfall.NO_SLOT_AVAILABLE]}"
        session = self.session
        if session is None:
            raise ValueError(f"{label} : aucune séance associée")
        teachers = ", ".join(session.teachers) or "Aucun enseignant"
        room = session.room or "Aucune salle"
        if self.outcome is Outcome.SKIPPED:
            return f"{label} déjà planifié le {session.slot.label}, séance conservée"
        text = f"{label} planifié le {session.slot.label} avec {teachers} en salle {room}"
        if self.shortfalls:
            reasons = ", ".join(SHORTFALL_LABELS[s] for s in self.shortfalls)
            text = f"{text} ({reasons})"
        return text

    def suggestions(self) -> list[str]:
        return suggest_recovery(self.shortfalls)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.request.session_type.value,
            "group": self.request.group.label,
            "outcome": self.outcome.value,
            "level": self.level,
            "message": self.message,
            "shortfalls": [s.value for s in self.shortfalls],
            "suggestions": self.suggestions(),
            "session": serialise_session(self.session) if self.session else None,
        }


def serialise_session(session: Session) -> dict[str, object]:
    return {
        "id": session.id,
        "subject": session.subject,
        "type": session.session_type.value,
        "track": session.group.track,
        "group": session.group.label,
        "day": session.slot.day,
        "start": session.slot.period.label,
        "end": format_clock(session.slot.period.end),
        "teachers": list(session.teachers),
        "room": session.room,
        "volume": as_float(session.volume),
    }


class AllocationReport:
    """Outcome of one subject's generation, one entry per request in order."""

    LEVELS = {
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, subject: Subject, policy: SchedulingPolicy | None = None) -> None:
        self.subject = subject
        self.policy = policy or SchedulingPolicy()
        self.entries: list[ReportEntry] = []
        self.status = "success"
        self.summary: str | None = None

    def placed(
        self,
        request: SessionRequest,
        session: Session,
        shortfalls: Iterable[Shortfall] = (),
    ) -> ReportEntry:
        shortfalls = tuple(shortfalls)
        outcome = Outcome.PLACED_PARTIAL if shortfalls else Outcome.PLACED
        return self._add(ReportEntry(request, outcome, session, shortfalls))

    def unplaced(self, request: SessionRequest) -> ReportEntry:
        return self._add(
            ReportEntry(request, Outcome.UNPLACED, None, (Shortfall.NO_SLOT_AVAILABLE,))
        )

    def skipped(self, request: SessionRequest, existing: Session) -> ReportEntry:
        return self._add(
            ReportEntry(request, Outcome.SKIPPED, existing, (Shortfall.ALREADY_SCHEDULED,))
        )

    def _add(self, entry: ReportEntry) -> ReportEntry:
        self.entries.append(entry)
        if entry.level == "error":
            self.status = "error"
        elif entry.level == "warning" and self.status != "error":
            self.status = "warning"
        logger.log(self.LEVELS[entry.level], "[%s] %s", self.subject.name, entry.message)
        return entry

    @property
    def created_sessions(self) -> list[Session]:
        return [
            entry.session
            for entry in self.entries
            if entry.outcome in (Outcome.PLACED, Outcome.PLACED_PARTIAL)
            and entry.session is not None
        ]

    def counts(self) -> dict[Outcome, int]:
        totals = {outcome: 0 for outcome in Outcome}
        for entry in self.entries:
            totals[entry.outcome] += 1
        return totals

    def finalise(self) -> str:
        if self.summary is not None:
            return self.summary
        created = len(self.created_sessions)
        skipped = self.counts()[Outcome.SKIPPED]
        if created:
            if self.status == "success":
                summary = f"{created} séance(s) générée(s)"
            else:
                summary = f"{created} séance(s) générée(s) avec avertissements"
        elif self.status == "success":
            summary = "Aucune séance générée"
        else:
            summary = "Aucune séance générée, vérifier les avertissements"
        if skipped:
            summary = f"{summary}, {skipped} déjà planifiée(s)"
        self.summary = summary
        return summary

    def to_dict(self) -> dict[str, object]:
        return {
            "subject": self.subject.name,
            "status": self.status,
            "summary": self.finalise(),
            "counts": {outcome.value: count for outcome, count in self.counts().items()},
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass
class GenerationRun:
    """Reports of a multi-subject run plus the subjects that could not start."""

    reports: list[AllocationReport] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def created_sessions(self) -> list[Session]:
        return [s for report in self.reports for s in report.created_sessions]

    @property
    def status(self) -> str:
        statuses = {report.status for report in self.reports}
        if self.errors or "error" in statuses:
            return "error"
        if "warning" in statuses:
            return "warning"
        return "success"

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "created": len(self.created_sessions),
            "reports": [report.to_dict() for report in self.reports],
            "errors": dict(self.errors),
        }
