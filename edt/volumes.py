"""Teaching-volume arithmetic.

All results are exact fractions of hours. Presentation code rounds with
:func:`edt.utils.as_float`; nothing here rounds.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, Mapping, Optional, Sequence

from .domain import Session, SessionType, Subject, Teacher
from .entities import expand
from .utils import Number, as_hours

ZERO = Fraction(0)


def session_volume(subject: Subject, session_type: SessionType) -> Fraction:
    unit = subject.unit_volume(session_type)
    if session_type is SessionType.TP:
        return unit * subject.nb_enseignants_tp
    return unit


def teacher_share(session: Session, teacher: str) -> Fraction:
    """Part of ``session.volume`` billed to ``teacher``.

    A lab is billed once per co-teacher, so each of them carries the unit
    volume even when fewer teachers than planned were found. Lectures and
    tutorials are split between their assigned teachers.
    """

    if teacher not in session.teachers:
        return ZERO
    if session.session_type is SessionType.TP:
        return session.volume / max(session.co_teachers, 1)
    return session.volume / len(set(session.teachers))


def teacher_volume(teacher: Teacher, sessions: Iterable[Session]) -> Fraction:
    assigned = sum((teacher_share(s, teacher.name) for s in sessions), ZERO)
    return assigned + teacher.adjustment_total + teacher.forfait


def teacher_volumes(
    teachers: Iterable[Teacher], sessions: Iterable[Session]
) -> dict[str, Fraction]:
    totals: dict[str, Fraction] = {
        teacher.name: teacher.adjustment_total + teacher.forfait for teacher in teachers
    }
    for session in sessions:
        for name in set(session.teachers):
            if name in totals:
                totals[name] += teacher_share(session, name)
    return totals


def subject_vht(subject: Subject) -> Fraction:
    sections = subject.sections_cours
    return (
        sections * subject.volume_cours
        + sections * subject.td_groups * subject.volume_td
        + sections * subject.tp_groups * subject.volume_tp * subject.nb_enseignants_tp
    )


def _unique_teachers(sessions: Iterable[Session]) -> set[str]:
    return {name for session in sessions for name in session.teachers}


def global_mean_volume(
    subjects: Iterable[Subject],
    sessions: Iterable[Session],
    teacher_count: Optional[int],
    adjustments: Number = 0,
) -> Fraction:
    """Theoretical volume per teacher (VHM).

    ``teacher_count=None`` falls back to the number of distinct teachers
    appearing in ``sessions``. A zero denominator yields zero.
    """

    total = sum((subject_vht(subject) for subject in subjects), ZERO) + as_hours(adjustments)
    if teacher_count is None:
        teacher_count = len(_unique_teachers(sessions))
    if not teacher_count:
        return ZERO
    return total / teacher_count


def load_bearing_count(teachers: Sequence[Teacher], exclude_forfait_only: bool = False) -> int:
    if not exclude_forfait_only:
        return len(teachers)
    return sum(1 for teacher in teachers if not teacher.forfait_only)


@dataclass(frozen=True)
class VolumeMetrics:
    global_vht: Fraction
    registered_teachers: int
    load_bearing_teachers: int
    unique_teachers: int
    global_vhm: Fraction

    def as_dict(self) -> dict[str, object]:
        return {
            "global_vht": self.global_vht,
            "registered_teachers": self.registered_teachers,
            "load_bearing_teachers": self.load_bearing_teachers,
            "unique_teachers": self.unique_teachers,
            "global_vhm": self.global_vhm,
        }


def global_metrics(
    subjects: Iterable[Subject],
    teachers: Sequence[Teacher],
    sessions: Iterable[Session],
    *,
    exclude_forfait_only: bool = False,
) -> VolumeMetrics:
    """Whole-department figures; VHT includes adjustments and forfaits."""

    sessions = list(sessions)
    adjustments = sum(
        (teacher.adjustment_total + teacher.forfait for teacher in teachers), ZERO
    )
    load_bearing = load_bearing_count(teachers, exclude_forfait_only)
    global_vht = sum((subject_vht(s) for s in subjects), ZERO) + adjustments
    return VolumeMetrics(
        global_vht=global_vht,
        registered_teachers=len(teachers),
        load_bearing_teachers=load_bearing,
        unique_teachers=len(_unique_teachers(sessions)),
        global_vhm=global_vht / load_bearing if load_bearing else ZERO,
    )


@dataclass(frozen=True)
class SubjectMetrics:
    subject: str
    vht: Fraction
    planned_volume: Fraction
    teacher_count: int
    vhm: Fraction


def subject_metrics(subject: Subject, sessions: Iterable[Session]) -> SubjectMetrics:
    own = [s for s in sessions if s.subject == subject.name]
    teachers = _unique_teachers(own)
    vht = subject_vht(subject)
    return SubjectMetrics(
        subject=subject.name,
        vht=vht,
        planned_volume=sum((s.volume for s in own), ZERO),
        teacher_count=len(teachers),
        vhm=vht / len(teachers) if teachers else ZERO,
    )


@dataclass(frozen=True)
class Coverage:
    expected: int
    planned: int
    staffed: int

    @property
    def missing(self) -> int:
        return max(self.expected - self.planned, 0)


def group_coverage(
    subject: Subject, sessions: Iterable[Session]
) -> Mapping[SessionType, Coverage]:
    """Expected groups per type against those already planned and staffed."""

    expected: dict[SessionType, set[str]] = defaultdict(set)
    for request in expand(subject):
        expected[request.session_type].add(request.group.qualified_label)
    planned: dict[SessionType, set[str]] = defaultdict(set)
    staffed: dict[SessionType, set[str]] = defaultdict(set)
    for session in sessions:
        if session.subject != subject.name:
            continue
        label = session.group.qualified_label
        if label not in expected[session.session_type]:
            continue
        planned[session.session_type].add(label)
        if session.teachers:
            staffed[session.session_type].add(label)
    return {
        session_type: Coverage(
            expected=len(expected[session_type]),
            planned=len(planned[session_type]),
            staffed=len(staffed[session_type]),
        )
        for session_type in SessionType
    }
