import logging
from typing import Optional

import click
from flask import Flask
from flask.cli import with_appcontext

from config import Config, _normalise_prefix
from .extensions import db, migrate


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)

    url_prefix = _normalise_prefix(app.config.get("URL_PREFIX", ""))
    app.config["URL_PREFIX"] = url_prefix

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    app.logger.setLevel(level if isinstance(level, int) else logging.INFO)

    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401  # Ensure models registered for migrations

    with app.app_context():
        db.create_all()

    from .api import init_api

    init_api(app, url_prefix)

    @app.cli.command("seed")
    @with_appcontext
    def seed() -> None:
        """Seed initial data for development."""
        from .seed import seed_data

        created = seed_data()
        if created:
            click.echo("Base de données initialisée avec des données d'exemple.")
        else:
            click.echo("Données déjà présentes, rien à faire.")

    @app.cli.command("generate-sessions")
    @click.option("--subject", "subject_name", help="Nom de la matière (toutes par défaut).")
    @click.option("--no-teachers", is_flag=True, help="Ne pas affecter d'enseignants.")
    @click.option("--no-rooms", is_flag=True, help="Ne pas affecter de salles.")
    @click.option("--ignore-wishes", is_flag=True, help="Ignorer les vœux des enseignants.")
    @click.option("--allow-conflicts", is_flag=True, help="Autoriser les chevauchements.")
    @click.option("--dry-run", is_flag=True, help="Calculer sans enregistrer.")
    @with_appcontext
    def generate_sessions(
        subject_name: Optional[str],
        no_teachers: bool,
        no_rooms: bool,
        ignore_wishes: bool,
        allow_conflicts: bool,
        dry_run: bool,
    ) -> None:
        """Generate and place sessions automatically."""
        from .catalog import generate_all, generate_subject
        from .domain import SchedulingPolicy
        from .exceptions import InvalidSubjectConfiguration

        policy = SchedulingPolicy(
            assign_teachers=not no_teachers,
            assign_rooms=not no_rooms,
            respect_wishes=not ignore_wishes,
            avoid_conflicts=not allow_conflicts,
        )
        if subject_name:
            try:
                report = generate_subject(subject_name, policy, dry_run=dry_run)
            except InvalidSubjectConfiguration as exc:
                raise click.ClickException(str(exc)) from exc
            reports, errors = [report], {}
        else:
            run = generate_all(policy, dry_run=dry_run)
            reports, errors = run.reports, run.errors

        for report in reports:
            click.echo(f"{report.subject.name} : {report.finalise()}")
        for name, message in errors.items():
            click.echo(f"{name} : {message}", err=True)
        if dry_run:
            click.echo("Simulation : aucune séance enregistrée.")

    return app
