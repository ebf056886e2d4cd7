"""In-memory grid of placed sessions with conflict indices."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from itertools import combinations
from typing import Iterable, Iterator, Optional

from .domain import Session, SessionType, Slot, StudentGroup
from .exceptions import GridConflictError


@dataclass(frozen=True)
class GridConflict:
    kind: str
    slot: Slot
    key: str
    session_ids: tuple[int, ...]

    def describe(self) -> str:
        ids = ", ".join(str(i) for i in self.session_ids)
        return f"{self.kind} {self.key} en double le {self.slot.label} (séances {ids})"


class GridState:
    """Sessions already placed on the week, indexed for conflict checks.

    Teachers, rooms and groups are indexed per slot. Numbered groups are also
    indexed under their section, so a lecture of ``Section A`` sees every
    ``Section A – Gn`` session at the same slot and the other way round.
    Buckets hold sets of session ids; with ``allow_overlap`` a bucket may hold
    several sessions, which :meth:`find_conflicts` reports.
    """

    def __init__(self, sessions: Iterable[Session] = (), *, allow_overlap: bool = False) -> None:
        self._sessions: dict[int, Session] = {}
        self._next_id = 1
        self._by_teacher: defaultdict[tuple[Slot, str], set[int]] = defaultdict(set)
        self._by_room: defaultdict[tuple[Slot, str], set[int]] = defaultdict(set)
        self._by_group: defaultdict[tuple[Slot, str], set[int]] = defaultdict(set)
        self._by_section: defaultdict[tuple[Slot, str], set[int]] = defaultdict(set)
        self._by_stream: defaultdict[tuple[Slot, str, SessionType], set[int]] = defaultdict(set)
        for session in sessions:
            self.place(session, allow_overlap=allow_overlap)

    # -- lookups -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def sessions(self) -> list[Session]:
        return [self._sessions[key] for key in sorted(self._sessions)]

    @property
    def next_id(self) -> int:
        return self._next_id

    def get(self, session_id: int) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions_for_subject(
        self, subject: str, session_type: SessionType | None = None
    ) -> list[Session]:
        return [
            session
            for session in self.sessions
            if session.subject == subject
            and (session_type is None or session.session_type is session_type)
        ]

    def existing(
        self, subject: str, session_type: SessionType, group: StudentGroup
    ) -> Optional[Session]:
        return next(
            (
                session
                for session in self.sessions
                if session.subject == subject
                and session.session_type is session_type
                and session.group == group
            ),
            None,
        )

    def _group_ids(self, slot: Slot, group: StudentGroup) -> set[int]:
        if group.is_section:
            return set(self._by_section.get((slot, group.section_label), ()))
        return set(self._by_group.get((slot, group.qualified_label), ())) | set(
            self._by_group.get((slot, group.section_label), ())
        )

    def is_group_busy(
        self, slot: Slot, group: StudentGroup, *, ignore: int | None = None
    ) -> bool:
        return bool(self._group_ids(slot, group) - {ignore})

    def is_teacher_booked(self, slot: Slot, teacher: str, *, ignore: int | None = None) -> bool:
        return bool(self._by_teacher.get((slot, teacher), set()) - {ignore})

    def is_room_booked(self, slot: Slot, room: str, *, ignore: int | None = None) -> bool:
        return bool(self._by_room.get((slot, room), set()) - {ignore})

    def runs_in_parallel(self, slot: Slot, subject: str, session_type: SessionType) -> bool:
        return bool(self._by_stream.get((slot, subject, session_type)))

    def has_conflict(
        self,
        slot: Slot,
        group: StudentGroup,
        teacher: str | None = None,
        room: str | None = None,
    ) -> bool:
        if self.is_group_busy(slot, group):
            return True
        if teacher is not None and self.is_teacher_booked(slot, teacher):
            return True
        return room is not None and self.is_room_booked(slot, room)

    def conflicts_for(self, session: Session, *, ignore: int | None = None) -> list[str]:
        """Human readable reasons why ``session`` cannot be placed."""

        slot = session.slot
        messages = []
        if self.is_group_busy(slot, session.group, ignore=ignore):
            messages.append(
                f"Le groupe {session.group.qualified_label} a déjà une séance le {slot.label}"
            )
        for teacher in dict.fromkeys(session.teachers):
            if self.is_teacher_booked(slot, teacher, ignore=ignore):
                messages.append(f"L'enseignant {teacher} est déjà planifié le {slot.label}")
        if session.room is not None and self.is_room_booked(slot, session.room, ignore=ignore):
            messages.append(f"La salle {session.room} est déjà occupée le {slot.label}")
        return messages

    # -- mutations -------------------------------------------------------------

    def place(self, session: Session, *, allow_overlap: bool = False) -> Session:
        """Add ``session`` (or replace the one with the same id).

        Nothing is modified when the placement is refused.
        """

        if not allow_overlap:
            problems = self.conflicts_for(session, ignore=session.id)
            if problems:
                raise GridConflictError(problems)
        previous = self._sessions.get(session.id) if session.id is not None else None
        if previous is not None:
            self._unindex(previous)
        if session.id is None:
            session = replace(session, id=self._next_id)
        self._next_id = max(self._next_id, session.id + 1)
        self._sessions[session.id] = session
        self._index(session)
        return session

    def remove(self, session_id: int) -> Session:
        session = self._sessions.pop(session_id)
        self._unindex(session)
        return session

    def copy(self) -> "GridState":
        clone = GridState()
        clone._sessions = dict(self._sessions)
        clone._next_id = self._next_id
        for name in ("_by_teacher", "_by_room", "_by_group", "_by_section", "_by_stream"):
            source = getattr(self, name)
            target = getattr(clone, name)
            for key, ids in source.items():
                target[key] = set(ids)
        return clone

    def _keys(self, session: Session) -> list[tuple[defaultdict, tuple]]:
        slot = session.slot
        keys: list[tuple[defaultdict, tuple]] = [
            (self._by_group, (slot, session.group.qualified_label)),
            (self._by_section, (slot, session.group.section_label)),
            (self._by_stream, (slot, session.subject, session.session_type)),
        ]
        keys.extend((self._by_teacher, (slot, name)) for name in dict.fromkeys(session.teachers))
        if session.room is not None:
            keys.append((self._by_room, (slot, session.room)))
        return keys

    def _index(self, session: Session) -> None:
        for index, key in self._keys(session):
            index[key].add(session.id)

    def _unindex(self, session: Session) -> None:
        for index, key in self._keys(session):
            bucket = index.get(key)
            if bucket is None:
                continue
            bucket.discard(session.id)
            if not bucket:
                del index[key]

    # -- audit -------------------------------------------------------------

    def find_conflicts(self) -> list[GridConflict]:
        """Replay the indices and list every double booking."""

        conflicts = []
        for kind, index in (("Enseignant", self._by_teacher), ("Salle", self._by_room)):
            for (slot, key), ids in index.items():
                if len(ids) > 1:
                    conflicts.append(GridConflict(kind, slot, key, tuple(sorted(ids))))
        for (slot, key), ids in self._by_section.items():
            for first, second in combinations(sorted(ids), 2):
                if self._sessions[first].group.overlaps(self._sessions[second].group):
                    conflicts.append(GridConflict("Groupe", slot, key, (first, second)))
        return conflicts
