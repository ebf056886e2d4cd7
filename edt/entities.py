"""Expansion of a subject's group structure into session requests."""
from __future__ import annotations

from .domain import SessionRequest, SessionType, StudentGroup, Subject
from .exceptions import InvalidSubjectConfiguration


def section_letter(index: int) -> str:
    """Return ``A`` for 0, ``Z`` for 25, then ``AA``, ``AB``..."""

    if index < 0:
        raise ValueError("index must be non-negative")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def section_name(index: int) -> str:
    return f"Section {section_letter(index)}"


def _check_counts(subject: Subject) -> None:
    for attr in ("sections_cours", "td_groups", "tp_groups"):
        value = getattr(subject, attr)
        if not isinstance(value, int) or value < 0:
            raise InvalidSubjectConfiguration(
                f"{subject.name} : {attr} doit être un entier positif (reçu {value!r})"
            )


def expand(subject: Subject) -> list[SessionRequest]:
    """Lectures first (one per section), then per section its TD then TP groups."""

    _check_counts(subject)
    sections = [section_name(index) for index in range(subject.sections_cours)]
    requests = [
        SessionRequest(subject, SessionType.COURS, StudentGroup(subject.track, section))
        for section in sections
    ]
    for section in sections:
        for session_type, count in (
            (SessionType.TD, subject.td_groups),
            (SessionType.TP, subject.tp_groups),
        ):
            requests.extend(
                SessionRequest(subject, session_type, StudentGroup(subject.track, section, number))
                for number in range(1, count + 1)
            )
    return requests


def student_entities(subject: Subject) -> dict[SessionType, list[str]]:
    """Qualified group labels per session type, as displayed in group pickers."""

    entities: dict[SessionType, list[str]] = {session_type: [] for session_type in SessionType}
    for request in expand(subject):
        entities[request.session_type].append(request.group.qualified_label)
    return entities
