"""Domain objects shared by the scheduling core.

Everything here is a plain value: no database access, no Flask. The
:mod:`edt.catalog` module converts ORM rows into these objects before a
generation run and writes the resulting sessions back afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from fractions import Fraction
from typing import Any, Iterable, Mapping, Optional, Sequence

from .exceptions import InvalidSubjectConfiguration, UnknownSubjectError
from .utils import as_hours, format_clock, parse_clock, parse_period


DAY_ORDER = ("Lundi", "Mardi", "Mercredi", "Jeudi", "Vendredi", "Samedi", "Dimanche")
DEFAULT_DAYS = DAY_ORDER[:6]
DEFAULT_PERIODS = (
    (time(8, 30), time(10, 0)),
    (time(10, 15), time(11, 45)),
    (time(14, 0), time(15, 30)),
    (time(15, 45), time(17, 15)),
    (time(17, 30), time(19, 0)),
)
MAX_WISHES = 3
GROUP_SEPARATOR = " – "


class SessionType(str, Enum):
    COURS = "Cours"
    TD = "TD"
    TP = "TP"

    @classmethod
    def parse(cls, value: "SessionType | str") -> "SessionType":
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value.lower() == text.lower() or member.name.lower() == text.lower():
                return member
        raise ValueError(f"Type de séance inconnu : {value!r}")


class RoomType(str, Enum):
    AMPHI = "Amphi"
    STANDARD = "Standard"
    STP = "STP"

    @classmethod
    def parse(cls, value: "RoomType | str") -> "RoomType":
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        raise ValueError(f"Type de salle inconnu : {value!r}")


ROOM_COMPATIBILITY: dict[SessionType, frozenset[RoomType]] = {
    SessionType.COURS: frozenset({RoomType.AMPHI, RoomType.STANDARD}),
    SessionType.TD: frozenset({RoomType.STANDARD}),
    SessionType.TP: frozenset({RoomType.STP}),
}

DEFAULT_UNIT_VOLUMES: dict[SessionType, Fraction] = {
    SessionType.COURS: Fraction(48),
    SessionType.TD: Fraction(32),
    SessionType.TP: Fraction(36),
}


@dataclass(frozen=True, order=True)
class Period:
    start: time
    end: time

    @property
    def label(self) -> str:
        return format_clock(self.start)

    @property
    def range_label(self) -> str:
        return f"{format_clock(self.start)}-{format_clock(self.end)}"

    @property
    def duration_hours(self) -> Fraction:
        minutes = (self.end.hour * 60 + self.end.minute) - (
            self.start.hour * 60 + self.start.minute
        )
        return Fraction(minutes, 60)

    @classmethod
    def parse(cls, value: str) -> "Period":
        start, end = parse_period(value)
        return cls(start, end)


@dataclass(frozen=True)
class Slot:
    day: str
    period: Period

    @property
    def label(self) -> str:
        return f"{self.day} {self.period.label}"

    def __str__(self) -> str:
        return self.label


class TimeGrid:
    """The configured week: days times periods, in canonical order."""

    def __init__(
        self,
        days: Iterable[str] = DEFAULT_DAYS,
        periods: Iterable[Period | tuple[time, time] | str] = DEFAULT_PERIODS,
    ) -> None:
        day_set = set()
        for day in days:
            name = day.strip().capitalize()
            if name not in DAY_ORDER:
                raise ValueError(f"Jour inconnu : {day!r}")
            day_set.add(name)
        self.days: tuple[str, ...] = tuple(d for d in DAY_ORDER if d in day_set)
        normalised = {self._coerce_period(p) for p in periods}
        self.periods: tuple[Period, ...] = tuple(sorted(normalised))
        self._slots = tuple(
            Slot(day, period) for day in self.days for period in self.periods
        )
        self._positions = {slot: index for index, slot in enumerate(self._slots)}

    @staticmethod
    def _coerce_period(value: Period | tuple[time, time] | str) -> Period:
        if isinstance(value, Period):
            return value
        if isinstance(value, str):
            return Period.parse(value)
        start, end = value
        return Period(start, end)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TimeGrid":
        return cls(
            config.get("EDT_DAYS") or DEFAULT_DAYS,
            config.get("EDT_PERIODS") or DEFAULT_PERIODS,
        )

    def slots(self) -> tuple[Slot, ...]:
        return self._slots

    def position(self, slot: Slot) -> int:
        return self._positions[slot]

    def __contains__(self, slot: object) -> bool:
        return slot in self._positions

    def __len__(self) -> int:
        return len(self._slots)

    def slot(self, day: str, start: time) -> Slot:
        name = day.strip().capitalize()
        for candidate in self._slots:
            if candidate.day == name and candidate.period.start == start:
                return candidate
        raise ValueError(f"Créneau hors grille : {day} {format_clock(start)}")

    def parse_slot(self, label: str) -> Slot:
        """Resolve a ``Lundi 8h30`` label against the grid."""

        day, _, clock = (label or "").strip().partition(" ")
        if not clock:
            raise ValueError(f"Créneau invalide : {label!r}")
        return self.slot(day, parse_clock(clock))


@dataclass(frozen=True)
class StudentGroup:
    """A lecture section (``number is None``) or one of its numbered groups."""

    track: str
    section: str
    number: Optional[int] = None

    @property
    def is_section(self) -> bool:
        return self.number is None

    @property
    def label(self) -> str:
        if self.number is None:
            return self.section
        return f"{self.section}{GROUP_SEPARATOR}G{self.number}"

    @property
    def section_label(self) -> str:
        return GROUP_SEPARATOR.join(part for part in (self.track, self.section) if part)

    @property
    def qualified_label(self) -> str:
        return GROUP_SEPARATOR.join(part for part in (self.track, self.label) if part)

    def section_group(self) -> "StudentGroup":
        return StudentGroup(self.track, self.section)

    def overlaps(self, other: "StudentGroup") -> bool:
        if self.track != other.track or self.section != other.section:
            return False
        if self.is_section or other.is_section:
            return True
        return self.number == other.number


@dataclass(frozen=True)
class Subject:
    name: str
    track: str = ""
    sections_cours: int = 0
    td_groups: int = 0
    tp_groups: int = 0
    volume_cours: Fraction = DEFAULT_UNIT_VOLUMES[SessionType.COURS]
    volume_td: Fraction = DEFAULT_UNIT_VOLUMES[SessionType.TD]
    volume_tp: Fraction = DEFAULT_UNIT_VOLUMES[SessionType.TP]
    nb_enseignants_tp: int = 1

    def __post_init__(self) -> None:
        for name in ("volume_cours", "volume_td", "volume_tp"):
            object.__setattr__(self, name, as_hours(getattr(self, name)))

    def unit_volume(self, session_type: SessionType) -> Fraction:
        if session_type is SessionType.COURS:
            return self.volume_cours
        if session_type is SessionType.TD:
            return self.volume_td
        return self.volume_tp

    def validate(self) -> None:
        problems = []
        for attr, label in (
            ("sections_cours", "sections de cours"),
            ("td_groups", "groupes de TD"),
            ("tp_groups", "groupes de TP"),
        ):
            value = getattr(self, attr)
            if not isinstance(value, int) or value < 0:
                problems.append(f"nombre de {label} invalide ({value!r})")
        for session_type in SessionType:
            if self.unit_volume(session_type) < 0:
                problems.append(f"volume {session_type.value} négatif")
        if not isinstance(self.nb_enseignants_tp, int) or self.nb_enseignants_tp < 1:
            problems.append(
                f"nombre d'enseignants par TP invalide ({self.nb_enseignants_tp!r})"
            )
        if problems:
            raise InvalidSubjectConfiguration(
                f"Configuration invalide pour {self.name} : " + ", ".join(problems)
            )


@dataclass(frozen=True)
class Teacher:
    name: str
    wishes: tuple[Slot, ...] = ()
    adjustments: tuple[Fraction, ...] = ()
    forfait: Fraction = Fraction(0)
    forfait_only: bool = False

    def __post_init__(self) -> None:
        wishes = tuple(self.wishes)
        if len(wishes) > MAX_WISHES:
            raise ValueError(f"{self.name} : au plus {MAX_WISHES} vœux")
        object.__setattr__(self, "wishes", wishes)
        object.__setattr__(
            self, "adjustments", tuple(as_hours(v) for v in self.adjustments)
        )
        object.__setattr__(self, "forfait", as_hours(self.forfait))

    def wish_rank(self, slot: Slot) -> Optional[int]:
        for rank, wish in enumerate(self.wishes, start=1):
            if wish == slot:
                return rank
        return None

    @property
    def adjustment_total(self) -> Fraction:
        return sum(self.adjustments, Fraction(0))


@dataclass(frozen=True)
class Room:
    name: str
    room_type: RoomType = RoomType.STANDARD

    def accepts(self, session_type: SessionType) -> bool:
        return self.room_type in ROOM_COMPATIBILITY[session_type]


@dataclass(frozen=True)
class Session:
    subject: str
    session_type: SessionType
    group: StudentGroup
    slot: Slot
    teachers: tuple[str, ...] = ()
    room: Optional[str] = None
    volume: Fraction = Fraction(0)
    co_teachers: int = 1
    id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "teachers", tuple(self.teachers))
        object.__setattr__(self, "volume", as_hours(self.volume))

    @property
    def teacher(self) -> Optional[str]:
        return self.teachers[0] if self.teachers else None

    @property
    def track(self) -> str:
        return self.group.track

    def describe(self) -> str:
        return f"{self.session_type.value} {self.subject} ({self.group.label}) {self.slot.label}"


@dataclass(frozen=True)
class SessionRequest:
    subject: Subject
    session_type: SessionType
    group: StudentGroup

    @property
    def label(self) -> str:
        return f"{self.session_type.value} {self.group.label}"


@dataclass(frozen=True)
class SchedulingPolicy:
    assign_teachers: bool = True
    assign_rooms: bool = True
    respect_wishes: bool = True
    avoid_conflicts: bool = True

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "SchedulingPolicy":
        payload = payload or {}
        return cls(
            **{
                name: bool(payload[name])
                for name in ("assign_teachers", "assign_rooms", "respect_wishes", "avoid_conflicts")
                if name in payload and payload[name] is not None
            }
        )


@dataclass
class Catalog:
    subjects: Sequence[Subject] = field(default_factory=list)
    teachers: Sequence[Teacher] = field(default_factory=list)
    rooms: Sequence[Room] = field(default_factory=list)

    def subject(self, name: str) -> Subject:
        for subject in self.subjects:
            if subject.name == name:
                return subject
        raise UnknownSubjectError(name)

    def teacher(self, name: str) -> Optional[Teacher]:
        return next((t for t in self.teachers if t.name == name), None)

    def room(self, name: str) -> Optional[Room]:
        return next((r for r in self.rooms if r.name == name), None)
