from __future__ import annotations

from config import TestConfig
from edt import create_app
from edt.models import Session


def make_app(tmp_path, **overrides):
    settings = {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path/'test.db'}", **overrides}
    return create_app(type("FileConfig", (TestConfig,), settings))


def test_health_route(tmp_path):
    client = make_app(tmp_path).test_client()

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "database": "ok"}


def test_url_prefix_is_applied(tmp_path):
    client = make_app(tmp_path, URL_PREFIX="edt/").test_client()

    assert client.get("/edt/api/health").status_code == 200
    assert client.get("/api/health").status_code == 404


def test_seed_and_generate_commands(tmp_path):
    app = make_app(tmp_path)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed"])
    assert "initialisée" in result.output
    result = runner.invoke(args=["seed"])
    assert "déjà présentes" in result.output

    result = runner.invoke(args=["generate-sessions", "--subject", "Algorithmique", "--dry-run"])
    assert result.exit_code == 0
    assert "Algorithmique : 5 séance(s) générée(s)" in result.output
    assert "Simulation" in result.output
    with app.app_context():
        assert Session.query.count() == 0

    result = runner.invoke(args=["generate-sessions"])
    assert result.exit_code == 0
    assert "Réseaux :" in result.output
    with app.app_context():
        assert Session.query.count() > 0


def test_generate_unknown_subject_fails(tmp_path):
    runner = make_app(tmp_path).test_cli_runner()

    result = runner.invoke(args=["generate-sessions", "--subject", "Chimie"])

    assert result.exit_code != 0
    assert "Matière inconnue" in result.output
