"""Session listing, manual entry and conflict audit."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields
from sqlalchemy.orm import selectinload

from ..catalog import load_grid, store_session, time_grid_from_config
from ..domain import Session as PlannedSession, SessionType, StudentGroup
from ..extensions import db
from ..models import Room, Session, Subject, Teacher
from ..report import serialise_session
from ..volumes import session_volume


ns = Namespace("sessions", description="Placed sessions")

session_model = ns.model(
    "Session",
    {
        "id": fields.Integer(readonly=True),
        "subject": fields.String(readonly=True),
        "type": fields.String(readonly=True),
        "track": fields.String(readonly=True),
        "group": fields.String(readonly=True),
        "day": fields.String(readonly=True),
        "start": fields.String(readonly=True),
        "end": fields.String(readonly=True),
        "teachers": fields.List(fields.String, readonly=True),
        "room": fields.String(readonly=True),
        "volume": fields.Float(readonly=True),
    },
)

session_input = ns.model(
    "SessionInput",
    {
        "subject_id": fields.Integer(required=True),
        "session_type": fields.String(required=True, enum=[t.value for t in SessionType]),
        "section": fields.String(required=True, description="e.g. 'Section A'"),
        "group_number": fields.Integer(min=1, description="Omit for a lecture section"),
        "slot": fields.String(required=True, description="e.g. 'Lundi 8h30'"),
        "teacher_ids": fields.List(fields.Integer),
        "room_id": fields.Integer,
    },
)


def serialize_session(session: Session) -> dict[str, Any]:
    return serialise_session(session.to_domain())


@ns.route("")
class SessionList(Resource):
    @ns.param("subject", "Subject name")
    @ns.param("teacher", "Teacher name")
    @ns.param("room", "Room name")
    @ns.param("day", "Day name, e.g. Lundi")
    @ns.marshal_list_with(session_model)
    def get(self) -> list[dict[str, Any]]:
        query = Session.query.options(
            selectinload(Session.subject),
            selectinload(Session.room),
            selectinload(Session.teachers),
        )
        if request.args.get("subject"):
            query = query.join(Subject).filter(Subject.name == request.args["subject"])
        if request.args.get("teacher"):
            query = query.filter(Session.teachers.any(Teacher.name == request.args["teacher"]))
        if request.args.get("room"):
            query = query.filter(Session.room.has(Room.name == request.args["room"]))
        if request.args.get("day"):
            query = query.filter(Session.day == request.args["day"])
        sessions = query.order_by(Session.id).all()
        return [serialize_session(session) for session in sessions]

    @ns.expect(session_input, validate=True)
    @ns.marshal_with(session_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        """Place a session by hand after checking it against the current grid."""
        payload = request.json or {}
        subject = db.get_or_404(Subject, payload["subject_id"])
        session_type = SessionType.parse(payload["session_type"])
        try:
            slot = time_grid_from_config().parse_slot(payload["slot"])
        except ValueError as exc:
            ns.abort(400, str(exc))

        teachers = [db.get_or_404(Teacher, tid) for tid in payload.get("teacher_ids") or []]
        room = db.get_or_404(Room, payload["room_id"]) if payload.get("room_id") else None
        if room is not None and not room.to_domain().accepts(session_type):
            ns.abort(
                400,
                f"La salle {room.name} ({room.room_type}) ne peut accueillir de {session_type.value}",
            )
        group_number = payload.get("group_number")
        if session_type is SessionType.COURS and group_number is not None:
            ns.abort(400, "Un cours magistral concerne une section entière")
        if session_type is not SessionType.COURS and group_number is None:
            ns.abort(400, "Un TD ou un TP doit préciser son numéro de groupe")

        domain_subject = subject.to_domain()
        planned = PlannedSession(
            subject=subject.name,
            session_type=session_type,
            group=StudentGroup(subject.track or "", payload["section"].strip(), group_number),
            slot=slot,
            teachers=tuple(teacher.name for teacher in teachers),
            room=room.name if room else None,
            volume=session_volume(domain_subject, session_type),
            co_teachers=domain_subject.nb_enseignants_tp if session_type is SessionType.TP else 1,
        )
        conflicts = load_grid().conflicts_for(planned)
        if conflicts:
            ns.abort(409, "Conflit de planification", conflicts=conflicts)

        row = store_session(planned)
        db.session.commit()
        return serialize_session(row), 201


@ns.route("/<int:session_id>")
@ns.param("session_id", "Session unique identifier")
class SessionResource(Resource):
    @ns.marshal_with(session_model)
    def get(self, session_id: int) -> dict[str, Any]:
        return serialize_session(db.get_or_404(Session, session_id))

    def delete(self, session_id: int) -> tuple[dict[str, str], int]:
        session = db.get_or_404(Session, session_id)
        db.session.delete(session)
        db.session.commit()
        return {"status": "deleted"}, 204


@ns.route("/conflicts")
class SessionConflicts(Resource):
    def get(self) -> list[dict[str, Any]]:
        """Double bookings present in the stored timetable."""
        return [
            {
                "kind": conflict.kind,
                "slot": conflict.slot.label,
                "key": conflict.key,
                "session_ids": list(conflict.session_ids),
                "message": conflict.describe(),
            }
            for conflict in load_grid().find_conflicts()
        ]
