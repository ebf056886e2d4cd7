"""Bridge between the database and the scheduling core.

The core works on plain domain objects; this module loads them from the
database before a run and stores the generated sessions afterwards.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping, Optional

from flask import current_app
from sqlalchemy.orm import selectinload

from . import domain
from .extensions import db
from .grid import GridState
from .models import GenerationLog, Room, RoomPreference, Session, Subject, Teacher
from .report import AllocationReport, GenerationRun
from .scheduler import SchedulingEngine
from .utils import as_float


logger = logging.getLogger(__name__)

# Held from loading the grid until the generated sessions are committed.
generation_lock = threading.Lock()


def time_grid_from_config(config: Optional[Mapping[str, Any]] = None) -> domain.TimeGrid:
    return domain.TimeGrid.from_config(config if config is not None else current_app.config)


def load_catalog(time_grid: domain.TimeGrid) -> domain.Catalog:
    subjects = Subject.query.order_by(Subject.name).all()
    teachers = (
        Teacher.query.options(
            selectinload(Teacher.supplementary_volumes),
            selectinload(Teacher.forfaits),
        )
        .order_by(Teacher.name)
        .all()
    )
    rooms = Room.query.order_by(Room.name).all()
    return domain.Catalog(
        subjects=[subject.to_domain() for subject in subjects],
        teachers=[teacher.to_domain(time_grid) for teacher in teachers],
        rooms=[room.to_domain() for room in rooms],
    )


def load_grid() -> GridState:
    """Grid holding every stored session.

    Stored data may already contain overlaps created by hand, so they are
    loaded as-is and left for :meth:`GridState.find_conflicts` to report.
    """

    sessions = (
        Session.query.options(
            selectinload(Session.subject),
            selectinload(Session.room),
            selectinload(Session.teachers),
        )
        .order_by(Session.id)
        .all()
    )
    return GridState((session.to_domain() for session in sessions), allow_overlap=True)


def load_room_preferences() -> dict[tuple[str, domain.SessionType], str]:
    preferences = RoomPreference.query.options(selectinload(RoomPreference.room)).all()
    return {
        (preference.track, domain.SessionType.parse(preference.session_type)): preference.room.name
        for preference in preferences
    }


def build_engine(grid: Optional[GridState] = None) -> SchedulingEngine:
    time_grid = time_grid_from_config()
    return SchedulingEngine(
        load_catalog(time_grid),
        grid if grid is not None else load_grid(),
        time_grid,
        room_preferences=load_room_preferences(),
        exclude_forfait_only=bool(current_app.config.get("EDT_VHM_EXCLUDE_FORFAIT")),
    )


def _session_row(
    session: domain.Session,
    subject: Subject,
    teachers: Mapping[str, Teacher],
    rooms: Mapping[str, Room],
) -> Session:
    return Session(
        subject=subject,
        session_type=session.session_type.value,
        track=session.group.track,
        section=session.group.section,
        group_number=session.group.number,
        day=session.slot.day,
        start_time=session.slot.period.start,
        end_time=session.slot.period.end,
        room=rooms.get(session.room) if session.room else None,
        volume=float(session.volume),
        co_teachers=session.co_teachers,
        teachers=[teachers[name] for name in session.teachers if name in teachers],
    )


def store_session(session: domain.Session) -> Session:
    """Add one domain session to the database session (no commit)."""

    subject = Subject.query.filter_by(name=session.subject).one()
    teachers = {t.name: t for t in Teacher.query.filter(Teacher.name.in_(session.teachers)).all()}
    rooms = {r.name: r for r in Room.query.filter_by(name=session.room).all()} if session.room else {}
    row = _session_row(session, subject, teachers, rooms)
    db.session.add(row)
    return row


def persist_report(report: AllocationReport, *, commit: bool = True) -> list[Session]:
    """Store the sessions created by ``report`` and its generation log."""

    subject = Subject.query.filter_by(name=report.subject.name).one()
    teachers = {teacher.name: teacher for teacher in Teacher.query.all()}
    rooms = {room.name: room for room in Room.query.all()}

    rows = [
        _session_row(session, subject, teachers, rooms)
        for session in report.created_sessions
    ]
    db.session.add_all(rows)
    db.session.add(
        GenerationLog(
            subject=subject,
            status=report.status,
            summary=report.finalise(),
            messages=json.dumps(
                [entry.to_dict() for entry in report.entries], ensure_ascii=False
            ),
        )
    )
    if commit:
        db.session.commit()
    logger.info("[%s] %s séance(s) enregistrée(s)", subject.name, len(rows))
    return rows


def persist_run(run: GenerationRun) -> list[Session]:
    rows: list[Session] = []
    for report in run.reports:
        rows.extend(persist_report(report, commit=False))
    for name, message in run.errors.items():
        subject = Subject.query.filter_by(name=name).first()
        if subject is None:
            continue
        db.session.add(
            GenerationLog(subject=subject, status="error", summary=message, messages="[]")
        )
    db.session.commit()
    return rows


def generate_subject(
    name: str,
    policy: Optional[domain.SchedulingPolicy] = None,
    *,
    skip_existing: bool = False,
    dry_run: bool = False,
) -> AllocationReport:
    """Generate one subject against the stored grid and store the result.

    Runs under :data:`generation_lock`, from loading the grid to the commit.
    """

    with generation_lock:
        report = build_engine().auto_generate_subject_sessions(
            name, policy, skip_existing=skip_existing
        )
        if not dry_run:
            persist_report(report)
    return report


def generate_all(
    policy: Optional[domain.SchedulingPolicy] = None,
    *,
    skip_existing: bool = True,
    dry_run: bool = False,
) -> GenerationRun:
    with generation_lock:
        run = build_engine().auto_generate_all_sessions(policy, skip_existing=skip_existing)
        if not dry_run:
            persist_run(run)
    return run


def teacher_volume_rows(engine: SchedulingEngine) -> list[dict[str, object]]:
    engine.refresh_volumes()
    vhm = engine.mean_volume
    rows = []
    for teacher in engine.catalog.teachers:
        volume = engine.volume_of(teacher.name)
        rows.append(
            {
                "name": teacher.name,
                "volume": as_float(volume),
                "forfait": as_float(teacher.forfait),
                "supplementary": as_float(teacher.adjustment_total),
                "deviation": as_float(volume - vhm),
                "forfait_only": teacher.forfait_only,
            }
        )
    return rows
