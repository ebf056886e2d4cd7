"""REST API definition using Flask-RESTX."""
from __future__ import annotations

from flask import Flask
from flask_restx import Api

from .generation import ns as generation_ns
from .health import ns as health_ns
from .rooms import ns as rooms_ns
from .sessions import ns as sessions_ns
from .subjects import ns as subjects_ns
from .teachers import ns as teachers_ns
from .volumes import ns as volumes_ns


def register_namespaces(api: Api) -> None:
    """Register all API namespaces."""
    api.add_namespace(health_ns, path="/health")
    api.add_namespace(subjects_ns, path="/subjects")
    api.add_namespace(teachers_ns, path="/teachers")
    api.add_namespace(rooms_ns, path="/rooms")
    api.add_namespace(sessions_ns, path="/sessions")
    api.add_namespace(generation_ns, path="/generation")
    api.add_namespace(volumes_ns, path="/volumes")


def init_api(app: Flask, url_prefix: str = "") -> Api:
    """Attach a fresh API (and its Swagger UI) to ``app``."""
    api = Api(
        app,
        version="0.1.0",
        title="EDT API",
        description="Génération et affectation automatiques des séances",
        doc=f"{url_prefix}/api/docs",
        prefix=f"{url_prefix}/api",
    )
    register_namespaces(api)
    return api
