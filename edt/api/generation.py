"""Endpoints launching automatic session generation."""
from __future__ import annotations

from typing import Any

from flask import current_app, request
from flask_restx import Namespace, Resource, fields

from ..catalog import generate_all, generate_subject
from ..domain import SchedulingPolicy
from ..exceptions import InvalidSubjectConfiguration
from ..extensions import db
from ..models import GenerationLog, Subject


ns = Namespace("generation", description="Automatic session generation")

policy_model = ns.model(
    "GenerationPolicy",
    {
        "assign_teachers": fields.Boolean(default=True),
        "assign_rooms": fields.Boolean(default=True),
        "respect_wishes": fields.Boolean(default=True),
        "avoid_conflicts": fields.Boolean(default=True),
        "skip_existing": fields.Boolean(
            description="Keep sessions already planned for a group instead of adding new ones"
        ),
        "dry_run": fields.Boolean(default=False, description="Compute without saving"),
    },
)

log_model = ns.model(
    "GenerationLog",
    {
        "id": fields.Integer,
        "subject": fields.String(attribute=lambda log: log.subject.name),
        "status": fields.String,
        "status_label": fields.String,
        "summary": fields.String,
        "created_at": fields.DateTime,
        "messages": fields.Raw(attribute=lambda log: log.parsed_messages()),
    },
)


def _run_options(default_skip: bool) -> tuple[SchedulingPolicy, bool, bool]:
    payload = request.get_json(silent=True) or {}
    policy = SchedulingPolicy.from_mapping(payload)
    skip_existing = payload.get("skip_existing")
    if skip_existing is None:
        skip_existing = default_skip
    return policy, bool(skip_existing), bool(payload.get("dry_run", False))


@ns.route("/subjects/<int:subject_id>")
@ns.param("subject_id", "Subject unique identifier")
class SubjectGeneration(Resource):
    @ns.expect(policy_model, validate=True)
    def post(self, subject_id: int) -> tuple[dict[str, Any], int]:
        """Generate and place every session of one subject."""
        subject = db.get_or_404(Subject, subject_id)
        policy, skip_existing, dry_run = _run_options(default_skip=False)
        try:
            report = generate_subject(
                subject.name, policy, skip_existing=skip_existing, dry_run=dry_run
            )
        except InvalidSubjectConfiguration as exc:
            current_app.logger.warning("Génération refusée pour %s : %s", subject.name, exc)
            ns.abort(400, str(exc))
        payload = report.to_dict()
        payload["dry_run"] = dry_run
        return payload, 200 if dry_run else 201


@ns.route("/all")
class FullGeneration(Resource):
    @ns.expect(policy_model, validate=True)
    def post(self) -> tuple[dict[str, Any], int]:
        """Generate the sessions still missing for every subject."""
        policy, skip_existing, dry_run = _run_options(default_skip=True)
        run = generate_all(policy, skip_existing=skip_existing, dry_run=dry_run)
        payload = run.to_dict()
        payload["dry_run"] = dry_run
        return payload, 200 if dry_run else 201


@ns.route("/logs")
class GenerationLogList(Resource):
    @ns.param("subject_id", "Restrict to one subject")
    @ns.marshal_list_with(log_model)
    def get(self) -> list[GenerationLog]:
        query = GenerationLog.query
        subject_id = request.args.get("subject_id", type=int)
        if subject_id is not None:
            query = query.filter_by(subject_id=subject_id)
        return query.order_by(GenerationLog.id.desc()).limit(50).all()
