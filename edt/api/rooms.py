"""Room CRUD endpoints and per-track room preferences."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields
from sqlalchemy.exc import IntegrityError

from ..domain import RoomType, SessionType
from ..extensions import db
from ..models import Room, RoomPreference


ns = Namespace("rooms", description="CRUD operations for rooms")

room_model = ns.model(
    "Room",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True, min_length=1),
        "room_type": fields.String(
            required=True, enum=[t.value for t in RoomType], default=RoomType.STANDARD.value
        ),
    },
)

preference_model = ns.model(
    "RoomPreference",
    {
        "id": fields.Integer(readonly=True),
        "track": fields.String(required=True),
        "session_type": fields.String(required=True, enum=[t.value for t in SessionType]),
        "room_id": fields.Integer(required=True),
        "room": fields.String(readonly=True),
    },
)


def serialize_room(room: Room) -> dict[str, Any]:
    return {"id": room.id, "name": room.name, "room_type": room.room_type}


def serialize_preference(preference: RoomPreference) -> dict[str, Any]:
    return {
        "id": preference.id,
        "track": preference.track,
        "session_type": preference.session_type,
        "room_id": preference.room_id,
        "room": preference.room.name,
    }


def _commit(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        ns.abort(409, message)


@ns.route("")
class RoomList(Resource):
    """List and create rooms."""

    @ns.marshal_list_with(room_model)
    def get(self) -> list[dict[str, Any]]:
        return [serialize_room(room) for room in Room.query.order_by(Room.name).all()]

    @ns.expect(room_model, validate=True)
    @ns.marshal_with(room_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        payload = request.json or {}
        room = Room(name=payload["name"].strip(), room_type=payload["room_type"])
        db.session.add(room)
        _commit(f"La salle {room.name} existe déjà")
        return serialize_room(room), 201


@ns.route("/<int:room_id>")
@ns.param("room_id", "Room unique identifier")
class RoomResource(Resource):
    """Retrieve, update or delete a room."""

    @ns.marshal_with(room_model)
    def get(self, room_id: int) -> dict[str, Any]:
        return serialize_room(db.get_or_404(Room, room_id))

    @ns.expect(room_model, validate=True)
    @ns.marshal_with(room_model)
    def put(self, room_id: int) -> dict[str, Any]:
        room = db.get_or_404(Room, room_id)
        payload = request.json or {}
        room.name = payload["name"].strip()
        room.room_type = payload["room_type"]
        _commit(f"La salle {room.name} existe déjà")
        return serialize_room(room)

    def delete(self, room_id: int) -> tuple[dict[str, str], int]:
        room = db.get_or_404(Room, room_id)
        for session in room.sessions:
            session.room = None
        db.session.delete(room)
        db.session.commit()
        return {"status": "deleted"}, 204


@ns.route("/preferences")
class RoomPreferenceList(Resource):
    """Room tried first when generating a track's sessions of one type."""

    @ns.marshal_list_with(preference_model)
    def get(self) -> list[dict[str, Any]]:
        preferences = RoomPreference.query.order_by(
            RoomPreference.track, RoomPreference.session_type
        ).all()
        return [serialize_preference(p) for p in preferences]

    @ns.expect(preference_model, validate=True)
    @ns.marshal_with(preference_model)
    def put(self) -> dict[str, Any]:
        payload = request.json or {}
        room = db.get_or_404(Room, payload["room_id"])
        session_type = SessionType.parse(payload["session_type"])
        if not room.to_domain().accepts(session_type):
            ns.abort(
                400,
                f"La salle {room.name} ({room.room_type}) ne peut accueillir de {session_type.value}",
            )
        preference = RoomPreference.query.filter_by(
            track=payload["track"], session_type=session_type.value
        ).first()
        if preference is None:
            preference = RoomPreference(track=payload["track"], session_type=session_type.value)
            db.session.add(preference)
        preference.room = room
        db.session.commit()
        return serialize_preference(preference)
