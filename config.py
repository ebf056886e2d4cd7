from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


DEFAULT_DAYS = "Lundi,Mardi,Mercredi,Jeudi,Vendredi,Samedi"
DEFAULT_PERIODS = "8h30-10h00,10h15-11h45,14h00-15h30,15h45-17h15,17h30-19h00"


def _normalise_prefix(raw_prefix: str) -> str:
    raw_prefix = raw_prefix.strip()
    if not raw_prefix or raw_prefix == "/":
        return ""
    if not raw_prefix.startswith("/"):
        raw_prefix = f"/{raw_prefix}"
    return raw_prefix.rstrip("/")


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    URL_PREFIX = _normalise_prefix(os.environ.get("FLASK_URL_PREFIX", ""))

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'edt.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = _flag("DB_ECHO")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Weekly grid used by the generator, canonical order is applied on load.
    EDT_DAYS = _split_list(os.environ.get("EDT_DAYS", DEFAULT_DAYS))
    EDT_PERIODS = _split_list(os.environ.get("EDT_PERIODS", DEFAULT_PERIODS))

    # Forfait-only teachers carry no session load, so they can be left out of the VHM.
    EDT_VHM_EXCLUDE_FORFAIT = _flag("EDT_VHM_EXCLUDE_FORFAIT")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    LOG_LEVEL = "WARNING"
    EDT_DAYS = _split_list(DEFAULT_DAYS)
    EDT_PERIODS = _split_list(DEFAULT_PERIODS)
    EDT_VHM_EXCLUDE_FORFAIT = False
