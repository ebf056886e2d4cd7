"""Subject CRUD and group-structure endpoints."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields
from sqlalchemy.exc import IntegrityError

from ..catalog import load_grid
from ..entities import student_entities
from ..exceptions import InvalidSubjectConfiguration
from ..extensions import db
from ..models import Subject
from ..volumes import group_coverage, subject_vht
from ..utils import as_float


ns = Namespace("subjects", description="Subjects and their group structure")

groups_model = ns.model(
    "SubjectGroups",
    {
        "sections_cours": fields.Integer(required=True, min=0),
        "td_groups": fields.Integer(required=True, min=0),
        "tp_groups": fields.Integer(required=True, min=0),
    },
)

subject_model = ns.model(
    "Subject",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True, min_length=1),
        "track": fields.String(default=""),
        "sections_cours": fields.Integer(default=1, min=0),
        "td_groups": fields.Integer(default=0, min=0),
        "tp_groups": fields.Integer(default=0, min=0),
        "volume_cours": fields.Float(default=48, min=0),
        "volume_td": fields.Float(default=32, min=0),
        "volume_tp": fields.Float(default=36, min=0),
        "nb_enseignants_tp": fields.Integer(default=1, min=1),
        "vht": fields.Float(readonly=True),
    },
)

FIELDS = (
    "track",
    "sections_cours",
    "td_groups",
    "tp_groups",
    "volume_cours",
    "volume_td",
    "volume_tp",
    "nb_enseignants_tp",
)


def serialize_subject(subject: Subject) -> dict[str, Any]:
    payload = {"id": subject.id, "name": subject.name}
    payload.update({name: getattr(subject, name) for name in FIELDS})
    payload["vht"] = as_float(subject_vht(subject.to_domain()))
    return payload


def _apply(subject: Subject, payload: dict[str, Any]) -> None:
    for name in FIELDS:
        if name in payload and payload[name] is not None:
            setattr(subject, name, payload[name])
    try:
        subject.to_domain().validate()
    except InvalidSubjectConfiguration as exc:
        db.session.rollback()
        ns.abort(400, str(exc))


def _commit_or_conflict(name: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        ns.abort(409, f"La matière {name} existe déjà")


@ns.route("")
class SubjectList(Resource):
    """List and create subjects."""

    @ns.marshal_list_with(subject_model)
    def get(self) -> list[dict[str, Any]]:
        return [serialize_subject(s) for s in Subject.query.order_by(Subject.name).all()]

    @ns.expect(subject_model, validate=True)
    @ns.marshal_with(subject_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        payload = request.json or {}
        subject = Subject(name=payload["name"].strip())
        for name, default in (
            ("track", ""),
            ("sections_cours", 1),
            ("td_groups", 0),
            ("tp_groups", 0),
            ("volume_cours", 48),
            ("volume_td", 32),
            ("volume_tp", 36),
            ("nb_enseignants_tp", 1),
        ):
            setattr(subject, name, default)
        _apply(subject, payload)
        db.session.add(subject)
        _commit_or_conflict(subject.name)
        return serialize_subject(subject), 201


@ns.route("/<int:subject_id>")
@ns.param("subject_id", "Subject unique identifier")
class SubjectResource(Resource):
    """Retrieve, update or delete a subject."""

    @ns.marshal_with(subject_model)
    def get(self, subject_id: int) -> dict[str, Any]:
        return serialize_subject(db.get_or_404(Subject, subject_id))

    @ns.expect(subject_model, validate=True)
    @ns.marshal_with(subject_model)
    def put(self, subject_id: int) -> dict[str, Any]:
        subject = db.get_or_404(Subject, subject_id)
        payload = request.json or {}
        subject.name = payload["name"].strip()
        _apply(subject, payload)
        _commit_or_conflict(subject.name)
        return serialize_subject(subject)

    def delete(self, subject_id: int) -> tuple[dict[str, str], int]:
        subject = db.get_or_404(Subject, subject_id)
        db.session.delete(subject)
        db.session.commit()
        return {"status": "deleted"}, 204


@ns.route("/<int:subject_id>/groups")
@ns.param("subject_id", "Subject unique identifier")
class SubjectGroups(Resource):
    @ns.expect(groups_model, validate=True)
    @ns.marshal_with(subject_model)
    def put(self, subject_id: int) -> dict[str, Any]:
        """Change the number of lecture sections, tutorial and lab groups."""
        subject = db.get_or_404(Subject, subject_id)
        _apply(subject, request.json or {})
        db.session.commit()
        return serialize_subject(subject)


@ns.route("/<int:subject_id>/entities")
@ns.param("subject_id", "Subject unique identifier")
class SubjectEntities(Resource):
    def get(self, subject_id: int) -> dict[str, Any]:
        """Student groups the subject expands to and how many are already planned."""
        subject = db.get_or_404(Subject, subject_id).to_domain()
        try:
            entities = student_entities(subject)
        except InvalidSubjectConfiguration as exc:
            ns.abort(400, str(exc))
        coverage = group_coverage(subject, load_grid().sessions)
        return {
            "subject": subject.name,
            "entities": {t.value: labels for t, labels in entities.items()},
            "coverage": {
                t.value: {
                    "expected": c.expected,
                    "planned": c.planned,
                    "staffed": c.staffed,
                    "missing": c.missing,
                }
                for t, c in coverage.items()
            },
        }
