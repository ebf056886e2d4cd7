from __future__ import annotations

import json
from datetime import datetime, time, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import domain
from .extensions import db
from .utils import as_hours, format_clock


session_teacher = Table(
    "session_teacher",
    db.Model.metadata,
    Column("session_id", ForeignKey("session.id"), primary_key=True),
    Column("teacher_id", ForeignKey("teacher.id"), primary_key=True),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimeStampedModel:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Subject(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    track: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    sections_cours: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    td_groups: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tp_groups: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    volume_cours: Mapped[float] = mapped_column(Float, default=48, nullable=False)
    volume_td: Mapped[float] = mapped_column(Float, default=32, nullable=False)
    volume_tp: Mapped[float] = mapped_column(Float, default=36, nullable=False)
    nb_enseignants_tp: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    sessions: Mapped[List["Session"]] = relationship(
        back_populates="subject", cascade="all, delete-orphan"
    )
    generation_logs: Mapped[List["GenerationLog"]] = relationship(
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="GenerationLog.created_at.desc()",
    )

    __table_args__ = (
        CheckConstraint(
            "sections_cours >= 0 AND td_groups >= 0 AND tp_groups >= 0",
            name="chk_subject_group_counts",
        ),
        CheckConstraint("nb_enseignants_tp >= 1", name="chk_subject_tp_teachers"),
    )

    def to_domain(self) -> domain.Subject:
        return domain.Subject(
            name=self.name,
            track=self.track or "",
            sections_cours=self.sections_cours,
            td_groups=self.td_groups,
            tp_groups=self.tp_groups,
            volume_cours=as_hours(self.volume_cours),
            volume_td=as_hours(self.volume_td),
            volume_tp=as_hours(self.volume_tp),
            nb_enseignants_tp=self.nb_enseignants_tp,
        )


class Teacher(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    wish_1: Mapped[Optional[str]] = mapped_column(String(40))
    wish_2: Mapped[Optional[str]] = mapped_column(String(40))
    wish_3: Mapped[Optional[str]] = mapped_column(String(40))
    forfait_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    sessions: Mapped[List["Session"]] = relationship(
        secondary=session_teacher, back_populates="teachers"
    )
    supplementary_volumes: Mapped[List["SupplementaryVolume"]] = relationship(
        back_populates="teacher", cascade="all, delete-orphan"
    )
    forfaits: Mapped[List["Forfait"]] = relationship(
        back_populates="teacher", cascade="all, delete-orphan", order_by="Forfait.nature"
    )

    @property
    def wishes(self) -> list[str]:
        return [wish for wish in (self.wish_1, self.wish_2, self.wish_3) if wish]

    def set_wishes(self, wishes: list[str]) -> None:
        cleaned = [wish.strip() for wish in wishes if wish and wish.strip()]
        if len(cleaned) > domain.MAX_WISHES:
            raise ValueError(f"Au plus {domain.MAX_WISHES} vœux par enseignant")
        padded = cleaned + [None] * (domain.MAX_WISHES - len(cleaned))
        self.wish_1, self.wish_2, self.wish_3 = padded

    def to_domain(self, time_grid: domain.TimeGrid) -> domain.Teacher:
        wishes = []
        for label in self.wishes:
            try:
                wishes.append(time_grid.parse_slot(label))
            except ValueError:
                # A wish outside the configured week can never be honoured.
                continue
        return domain.Teacher(
            name=self.name,
            wishes=tuple(wishes),
            adjustments=tuple(as_hours(item.volume) for item in self.supplementary_volumes),
            forfait=sum((as_hours(f.volume) for f in self.forfaits), as_hours(0)),
            forfait_only=self.forfait_only,
        )


class SupplementaryVolume(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False, index=True)
    volume: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))

    teacher: Mapped[Teacher] = relationship(back_populates="supplementary_volumes")


class Forfait(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False, index=True)
    nature: Mapped[str] = mapped_column(String(120), nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))

    teacher: Mapped[Teacher] = relationship(back_populates="forfaits")

    __table_args__ = (
        UniqueConstraint("teacher_id", "nature", name="uq_forfait_teacher_nature"),
        CheckConstraint("volume >= 0", name="chk_forfait_volume"),
    )


class Room(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    room_type: Mapped[str] = mapped_column(String(20), default="Standard", nullable=False)

    sessions: Mapped[List["Session"]] = relationship(back_populates="room")
    preferences: Mapped[List["RoomPreference"]] = relationship(
        back_populates="room", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "room_type IN ('Amphi','Standard','STP')", name="chk_room_type"
        ),
    )

    def to_domain(self) -> domain.Room:
        return domain.Room(self.name, domain.RoomType.parse(self.room_type))


class RoomPreference(db.Model, TimeStampedModel):
    """Room tried first for a track's sessions of a given type."""

    id: Mapped[int] = mapped_column(primary_key=True)
    track: Mapped[str] = mapped_column(String(120), nullable=False)
    session_type: Mapped[str] = mapped_column(String(10), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("room.id"), nullable=False)

    room: Mapped[Room] = relationship(back_populates="preferences")

    __table_args__ = (
        UniqueConstraint("track", "session_type", name="uq_room_preference_track_type"),
    )


class Session(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False, index=True)
    session_type: Mapped[str] = mapped_column(String(10), nullable=False)
    track: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    section: Mapped[str] = mapped_column(String(40), nullable=False)
    group_number: Mapped[Optional[int]] = mapped_column(Integer)
    day: Mapped[str] = mapped_column(String(20), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    room_id: Mapped[Optional[int]] = mapped_column(ForeignKey("room.id"))
    volume: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    co_teachers: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    subject: Mapped[Subject] = relationship(back_populates="sessions")
    room: Mapped[Optional[Room]] = relationship(back_populates="sessions")
    teachers: Mapped[List[Teacher]] = relationship(
        secondary=session_teacher, back_populates="sessions", order_by="Teacher.name"
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="chk_session_time_order"),
        CheckConstraint(
            "session_type IN ('Cours','TD','TP')", name="chk_session_type"
        ),
    )

    @property
    def group(self) -> domain.StudentGroup:
        return domain.StudentGroup(self.track or "", self.section, self.group_number)

    @property
    def slot(self) -> domain.Slot:
        return domain.Slot(self.day, domain.Period(self.start_time, self.end_time))

    @property
    def slot_label(self) -> str:
        return f"{self.day} {format_clock(self.start_time)}"

    def to_domain(self) -> domain.Session:
        return domain.Session(
            subject=self.subject.name,
            session_type=domain.SessionType.parse(self.session_type),
            group=self.group,
            slot=self.slot,
            teachers=tuple(teacher.name for teacher in self.teachers),
            room=self.room.name if self.room else None,
            volume=as_hours(self.volume),
            co_teachers=self.co_teachers,
            id=self.id,
        )


class GenerationLog(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="success")
    summary: Mapped[Optional[str]] = mapped_column(Text)
    messages: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    subject: Mapped[Subject] = relationship(back_populates="generation_logs")

    __table_args__ = (
        CheckConstraint(
            "status IN ('success','warning','error')",
            name="chk_generation_log_status",
        ),
    )

    STATUS_LABELS = {
        "success": "Succès",
        "warning": "Avertissement",
        "error": "Erreur",
    }

    def parsed_messages(self) -> list[dict[str, object]]:
        try:
            payload = json.loads(self.messages or "[]")
        except (TypeError, ValueError):
            return []
        return [item for item in payload if isinstance(item, dict)]

    @property
    def status_label(self) -> str:
        return self.STATUS_LABELS.get(self.status, self.status)
