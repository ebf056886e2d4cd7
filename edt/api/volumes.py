"""Teaching-volume figures (VHT, VHM, per-teacher load)."""
from __future__ import annotations

from typing import Any

from flask import current_app
from flask_restx import Namespace, Resource

from ..catalog import build_engine, teacher_volume_rows
from ..utils import as_float
from ..volumes import global_metrics, group_coverage, subject_metrics


ns = Namespace("volumes", description="Teaching volumes")


@ns.route("")
class VolumeOverview(Resource):
    def get(self) -> dict[str, Any]:
        """Department totals and each teacher's load against the mean."""
        engine = build_engine()
        catalog = engine.catalog
        metrics = global_metrics(
            catalog.subjects,
            catalog.teachers,
            engine.grid.sessions,
            exclude_forfait_only=bool(current_app.config.get("EDT_VHM_EXCLUDE_FORFAIT")),
        )
        return {
            "global_vht": as_float(metrics.global_vht),
            "global_vhm": as_float(metrics.global_vhm),
            "registered_teachers": metrics.registered_teachers,
            "load_bearing_teachers": metrics.load_bearing_teachers,
            "unique_teachers": metrics.unique_teachers,
            "teachers": teacher_volume_rows(engine),
        }


@ns.route("/subjects")
class SubjectVolumes(Resource):
    def get(self) -> list[dict[str, Any]]:
        engine = build_engine()
        sessions = engine.grid.sessions
        rows = []
        for subject in engine.catalog.subjects:
            metrics = subject_metrics(subject, sessions)
            coverage = group_coverage(subject, sessions)
            rows.append(
                {
                    "subject": subject.name,
                    "track": subject.track,
                    "vht": as_float(metrics.vht),
                    "planned_volume": as_float(metrics.planned_volume),
                    "teacher_count": metrics.teacher_count,
                    "vhm": as_float(metrics.vhm),
                    "missing_groups": {t.value: c.missing for t, c in coverage.items()},
                }
            )
        return rows
