"""Automatic placement of a subject's sessions on the weekly grid.

Requests produced by :func:`edt.entities.expand` are handled one at a time,
in order, against the shared :class:`~edt.grid.GridState`. Each request gets
the first suitable slot, then teachers ranked by wish tier and by distance to
the mean workload (VHM), then the first compatible free room. A request that
finds no slot is reported as unplaced; a missing teacher or room still places
the session and flags it as partial.
"""
from __future__ import annotations

import logging
from fractions import Fraction
from typing import Mapping, Optional, Sequence

from .domain import (
    MAX_WISHES,
    Catalog,
    Room,
    SchedulingPolicy,
    Session,
    SessionRequest,
    SessionType,
    Slot,
    Subject,
    Teacher,
    TimeGrid,
)
from .entities import expand
from .exceptions import InvalidSubjectConfiguration
from .grid import GridState
from .report import AllocationReport, GenerationRun, Shortfall
from .volumes import ZERO, global_metrics, session_volume, teacher_share, teacher_volumes


logger = logging.getLogger(__name__)

RoomPreferences = Mapping[tuple[str, SessionType], str]


class SchedulingEngine:
    def __init__(
        self,
        catalog: Catalog,
        grid: GridState | None = None,
        time_grid: TimeGrid | None = None,
        *,
        room_preferences: RoomPreferences | None = None,
        exclude_forfait_only: bool = False,
    ) -> None:
        self.catalog = catalog
        self.grid = grid if grid is not None else GridState()
        self.time_grid = time_grid or TimeGrid()
        self.room_preferences = dict(room_preferences or {})
        self.exclude_forfait_only = exclude_forfait_only
        self._volumes: dict[str, Fraction] = {}
        self._vhm = ZERO

    def refresh_volumes(self) -> None:
        self._volumes = teacher_volumes(self.catalog.teachers, self.grid.sessions)
        self._vhm = global_metrics(
            self.catalog.subjects,
            self.catalog.teachers,
            self.grid.sessions,
            exclude_forfait_only=self.exclude_forfait_only,
        ).global_vhm

    @property
    def mean_volume(self) -> Fraction:
        return self._vhm

    def volume_of(self, teacher: str) -> Fraction:
        return self._volumes.get(teacher, ZERO)

    def auto_generate_subject_sessions(
        self,
        subject: Subject | str,
        policy: SchedulingPolicy | None = None,
        *,
        skip_existing: bool = False,
    ) -> AllocationReport:
        """Generate and place every session of ``subject``.

        Raises :class:`InvalidSubjectConfiguration` (or its
        :class:`UnknownSubjectError` subclass) before touching the grid.
        """

        policy = policy or SchedulingPolicy()
        if isinstance(subject, str):
            subject = self.catalog.subject(subject)
        subject.validate()
        requests = expand(subject)
        self.refresh_volumes()

        logger.info(
            "Génération de %s séance(s) pour %s (VHM %.2f h)",
            len(requests),
            subject.name,
            float(self._vhm),
        )
        report = AllocationReport(subject, policy)
        for request in requests:
            self._allocate(request, policy, report, skip_existing)
        report.finalise()
        logger.info("[%s] %s", subject.name, report.summary)
        return report

    def auto_generate_all_sessions(
        self,
        policy: SchedulingPolicy | None = None,
        *,
        skip_existing: bool = True,
    ) -> GenerationRun:
        run = GenerationRun()
        for subject in self.catalog.subjects:
            try:
                report = self.auto_generate_subject_sessions(
                    subject, policy, skip_existing=skip_existing
                )
            except InvalidSubjectConfiguration as exc:
                logger.error("[%s] %s", subject.name, exc)
                run.errors[subject.name] = str(exc)
                continue
            run.reports.append(report)
        return run

    def _allocate(
        self,
        request: SessionRequest,
        policy: SchedulingPolicy,
        report: AllocationReport,
        skip_existing: bool,
    ) -> None:
        subject = request.subject
        if skip_existing:
            existing = self.grid.existing(subject.name, request.session_type, request.group)
            if existing is not None:
                report.skipped(request, existing)
                return

        slot = self.select_slot(request, policy)
        if slot is None:
            report.unplaced(request)
            return

        shortfalls = []
        needed = subject.nb_enseignants_tp if request.session_type is SessionType.TP else 1
        teachers: tuple[str, ...] = ()
        if policy.assign_teachers:
            teachers = self.select_teachers(slot, policy, needed)
            if len(teachers) < needed:
                shortfalls.append(Shortfall.MISSING_TEACHER)

        room: Optional[Room] = None
        if policy.assign_rooms:
            room = self.select_room(request, slot, policy)
            if room is None:
                shortfalls.append(Shortfall.MISSING_ROOM)

        session = self.grid.place(
            Session(
                subject=subject.name,
                session_type=request.session_type,
                group=request.group,
                slot=slot,
                teachers=teachers,
                room=room.name if room else None,
                volume=session_volume(subject, request.session_type),
                co_teachers=needed,
            ),
            allow_overlap=not policy.avoid_conflicts,
        )
        for name in session.teachers:
            self._volumes[name] = self.volume_of(name) + teacher_share(session, name)
        report.placed(request, session, shortfalls)

    def select_slot(self, request: SessionRequest, policy: SchedulingPolicy) -> Optional[Slot]:
        slots = self.time_grid.slots()
        if not policy.avoid_conflicts:
            return slots[0] if slots else None
        for slot in slots:
            if self.grid.is_group_busy(slot, request.group):
                continue
            # Sessions of the same subject and type never run side by side.
            if self.grid.runs_in_parallel(slot, request.subject.name, request.session_type):
                continue
            return slot
        return None

    def rank_teachers(
        self,
        slot: Slot,
        policy: SchedulingPolicy,
        exclude: Sequence[str] = (),
    ) -> list[Teacher]:
        ranked = []
        for index, teacher in enumerate(self.catalog.teachers):
            if teacher.name in exclude:
                continue
            if policy.avoid_conflicts and self.grid.is_teacher_booked(slot, teacher.name):
                continue
            tier = 0
            if policy.respect_wishes:
                rank = teacher.wish_rank(slot)
                tier = rank if rank is not None else MAX_WISHES + 1
            key = (tier, self.volume_of(teacher.name) - self._vhm, index)
            ranked.append((key, teacher))
        ranked.sort(key=lambda item: item[0])
        return [teacher for _, teacher in ranked]

    def select_teachers(
        self, slot: Slot, policy: SchedulingPolicy, needed: int = 1
    ) -> tuple[str, ...]:
        chosen: list[str] = []
        for _ in range(needed):
            ranked = self.rank_teachers(slot, policy, exclude=chosen)
            if not ranked:
                break
            chosen.append(ranked[0].name)
        return tuple(chosen)

    def select_room(
        self, request: SessionRequest, slot: Slot, policy: SchedulingPolicy
    ) -> Optional[Room]:
        candidates = [
            room
            for room in self.catalog.rooms
            if room.accepts(request.session_type)
            and not (policy.avoid_conflicts and self.grid.is_room_booked(slot, room.name))
        ]
        preferred = self.room_preferences.get((request.group.track, request.session_type))
        if preferred is not None:
            for room in candidates:
                if room.name == preferred:
                    return room
        return candidates[0] if candidates else None
