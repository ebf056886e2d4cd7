"""Teacher CRUD endpoints, with wishes, forfaits and supplementary volumes."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..catalog import load_grid, time_grid_from_config
from ..extensions import db
from ..models import Forfait, SupplementaryVolume, Teacher
from ..volumes import teacher_volume
from ..utils import as_float


ns = Namespace("teachers", description="CRUD operations for teachers")

forfait_model = ns.model(
    "Forfait",
    {
        "id": fields.Integer(readonly=True),
        "nature": fields.String(required=True, min_length=1),
        "volume": fields.Float(required=True, min=0),
        "description": fields.String,
    },
)

supplementary_model = ns.model(
    "SupplementaryVolume",
    {
        "id": fields.Integer(readonly=True),
        "volume": fields.Float(required=True),
        "description": fields.String,
    },
)

teacher_model = ns.model(
    "Teacher",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True, min_length=1),
        "wishes": fields.List(
            fields.String, description="Up to three ranked slots, e.g. 'Lundi 8h30'"
        ),
        "forfait_only": fields.Boolean(default=False),
        "forfaits": fields.List(fields.Nested(forfait_model)),
        "supplementary_volumes": fields.List(fields.Nested(supplementary_model)),
        "volume": fields.Float(readonly=True),
    },
)


def serialize_teacher(teacher: Teacher, sessions=None) -> dict[str, Any]:
    time_grid = time_grid_from_config()
    if sessions is None:
        sessions = load_grid().sessions
    return {
        "id": teacher.id,
        "name": teacher.name,
        "wishes": teacher.wishes,
        "forfait_only": teacher.forfait_only,
        "forfaits": [
            {
                "id": forfait.id,
                "nature": forfait.nature,
                "volume": forfait.volume,
                "description": forfait.description,
            }
            for forfait in teacher.forfaits
        ],
        "supplementary_volumes": [
            {"id": item.id, "volume": item.volume, "description": item.description}
            for item in teacher.supplementary_volumes
        ],
        "volume": as_float(teacher_volume(teacher.to_domain(time_grid), sessions)),
    }


@ns.route("")
class TeacherList(Resource):
    """List and create teachers."""

    @ns.marshal_list_with(teacher_model)
    def get(self) -> list[dict[str, Any]]:
        teachers = (
            Teacher.query.options(
                selectinload(Teacher.forfaits), selectinload(Teacher.supplementary_volumes)
            )
            .order_by(Teacher.name)
            .all()
        )
        sessions = load_grid().sessions
        return [serialize_teacher(teacher, sessions) for teacher in teachers]

    @ns.expect(teacher_model, validate=True)
    @ns.marshal_with(teacher_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        payload = request.json or {}
        teacher = Teacher(name=payload["name"].strip(), forfait_only=payload.get("forfait_only", False))
        db.session.add(teacher)
        _apply(teacher, payload)
        _commit(f"L'enseignant {teacher.name} existe déjà")
        return serialize_teacher(teacher), 201


@ns.route("/<int:teacher_id>")
@ns.param("teacher_id", "Teacher unique identifier")
class TeacherResource(Resource):
    """Retrieve, update or delete a teacher."""

    @ns.marshal_with(teacher_model)
    def get(self, teacher_id: int) -> dict[str, Any]:
        return serialize_teacher(db.get_or_404(Teacher, teacher_id))

    @ns.expect(teacher_model, validate=True)
    @ns.marshal_with(teacher_model)
    def put(self, teacher_id: int) -> dict[str, Any]:
        teacher = db.get_or_404(Teacher, teacher_id)
        payload = request.json or {}
        teacher.name = payload["name"].strip()
        teacher.forfait_only = payload.get("forfait_only", teacher.forfait_only)
        _apply(teacher, payload)
        _commit(f"L'enseignant {teacher.name} existe déjà")
        return serialize_teacher(teacher)

    def delete(self, teacher_id: int) -> tuple[dict[str, str], int]:
        teacher = db.get_or_404(Teacher, teacher_id)
        db.session.delete(teacher)
        db.session.commit()
        return {"status": "deleted"}, 204


@ns.route("/<int:teacher_id>/forfaits")
@ns.param("teacher_id", "Teacher unique identifier")
class TeacherForfaits(Resource):
    @ns.expect(forfait_model, validate=True)
    @ns.marshal_with(forfait_model, code=201)
    def post(self, teacher_id: int) -> tuple[dict[str, Any], int]:
        """Attach a flat-rate volume (forfait) to the teacher."""
        teacher = db.get_or_404(Teacher, teacher_id)
        payload = request.json or {}
        nature = payload["nature"].strip()
        if any(f.nature == nature for f in teacher.forfaits):
            ns.abort(409, f"Un forfait « {nature} » existe déjà pour {teacher.name}")
        forfait = Forfait(
            teacher=teacher,
            nature=nature,
            volume=payload["volume"],
            description=payload.get("description"),
        )
        db.session.add(forfait)
        db.session.commit()
        return {
            "id": forfait.id,
            "nature": forfait.nature,
            "volume": forfait.volume,
            "description": forfait.description,
        }, 201


@ns.route("/<int:teacher_id>/forfaits/<int:forfait_id>")
class TeacherForfait(Resource):
    def delete(self, teacher_id: int, forfait_id: int) -> tuple[dict[str, str], int]:
        forfait = Forfait.query.filter_by(id=forfait_id, teacher_id=teacher_id).first_or_404()
        db.session.delete(forfait)
        db.session.commit()
        return {"status": "deleted"}, 204


def _commit(conflict_message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        ns.abort(409, conflict_message)


def _apply(teacher: Teacher, payload: dict[str, Any]) -> None:
    if "wishes" in payload:
        _sync_wishes(teacher, payload.get("wishes") or [])
    if "forfaits" in payload:
        _sync_forfaits(teacher, payload.get("forfaits") or [])
    if "supplementary_volumes" in payload:
        _sync_supplementary(teacher, payload.get("supplementary_volumes") or [])


def _sync_wishes(teacher: Teacher, wishes: list[str]) -> None:
    time_grid = time_grid_from_config()
    labels = []
    for wish in wishes:
        try:
            labels.append(time_grid.parse_slot(wish).label)
        except ValueError as exc:
            db.session.rollback()
            ns.abort(400, str(exc))
    if len(set(labels)) != len(labels):
        db.session.rollback()
        ns.abort(400, "Les vœux d'un enseignant doivent être distincts")
    try:
        teacher.set_wishes(labels)
    except ValueError as exc:
        db.session.rollback()
        ns.abort(400, str(exc))


def _sync_forfaits(teacher: Teacher, payload: list[dict[str, Any]]) -> None:
    natures = [item["nature"].strip() for item in payload]
    if len(set(natures)) != len(natures):
        db.session.rollback()
        ns.abort(400, "Un même forfait ne peut être déclaré deux fois")
    # Update rows in place: re-inserting a nature before the old row is deleted
    # would trip the (teacher, nature) unique constraint.
    existing = {forfait.nature: forfait for forfait in teacher.forfaits}
    for forfait in list(teacher.forfaits):
        if forfait.nature not in natures:
            teacher.forfaits.remove(forfait)
    for nature, item in zip(natures, payload):
        forfait = existing.get(nature)
        if forfait is None:
            forfait = Forfait(nature=nature)
            teacher.forfaits.append(forfait)
        forfait.volume = item["volume"]
        forfait.description = item.get("description")


def _sync_supplementary(teacher: Teacher, payload: list[dict[str, Any]]) -> None:
    teacher.supplementary_volumes.clear()
    for item in payload:
        teacher.supplementary_volumes.append(
            SupplementaryVolume(volume=item["volume"], description=item.get("description"))
        )
