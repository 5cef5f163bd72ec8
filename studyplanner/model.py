"""
Central data model definitions used across the project.

This module defines the canonical structure of every persisted record so that:
- all modules share the same field names
- records read from disk (or from the hosted backend) are normalized once, here
- malformed records are rejected with ValueError instead of leaking into views

Persisted JSON keeps the camelCase keys (subjectId, sectionId) of the stored data,
Python attributes are snake_case. Remote rows use snake_case plus user_id.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

DEFAULT_SUBJECT_COLOR = "#3B82F6"
DEFAULT_STATUS_COLOR = "#3B82F6"
NEUTRAL_COLOR = "#e5e7eb"

DEFAULT_STATUSES = (
    ("not_started", "#F59E0B"),
    ("completed", "#34C759"),
    ("review", "#8B9467"),
)

# Lectures whose status was deleted and no status is left to fall back to
UNASSIGNED_STATUS = "unassigned"

COMPLETION_ORDER = ("not_started", "completed", "reviewed")

# one year
MAX_DURATION_MINUTES = 365 * 24 * 60


def new_id() -> str:
    return str(uuid.uuid4())


def parse_duration(value: Optional[str]) -> Optional[float]:
    """
    Minutes of a task as a number, None when no duration is stated.

    Raises ValueError for anything that is not a finite decimal in 0..MAX_DURATION_MINUTES.
    """
    if value is None or not str(value).strip():
        return None
    minutes = float(str(value).strip())
    if not math.isfinite(minutes) or not 0 <= minutes <= MAX_DURATION_MINUTES:
        raise ValueError(f"duration out of range: {value!r}")
    return minutes


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing required field {key!r}")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value if value.strip() else None


def _color(value: Any, default: str) -> str:
    if isinstance(value, str) and HEX_COLOR.match(value):
        return value
    return default


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


@dataclass
class Section:
    name: str
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(id=_required_str(data, "id"), name=_required_str(data, "name"))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Status:
    name: str
    color: str = DEFAULT_STATUS_COLOR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Status":
        return cls(name=_required_str(data, "name"), color=_color(data.get("color"), DEFAULT_STATUS_COLOR))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "color": self.color}


def default_statuses() -> List[Status]:
    return [Status(name=name, color=color) for name, color in DEFAULT_STATUSES]


@dataclass
class Subject:
    """
    One study subject. Sections and statuses are embedded (owned by the subject).
    """

    name: str
    color: str = DEFAULT_SUBJECT_COLOR
    sections: List[Section] = field(default_factory=list)
    statuses: List[Status] = field(default_factory=default_statuses)
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        raw_sections = data.get("sections")
        raw_statuses = data.get("statuses")

        sections = [Section.from_dict(s) for s in raw_sections] if isinstance(raw_sections, list) else []

        # Missing statuses get the seed; duplicate names keep the first occurrence
        if isinstance(raw_statuses, list):
            statuses: List[Status] = []
            seen: set[str] = set()
            for raw in raw_statuses:
                st = Status.from_dict(raw)
                if st.name not in seen:
                    seen.add(st.name)
                    statuses.append(st)
        else:
            statuses = default_statuses()

        return cls(
            id=_required_str(data, "id"),
            name=_required_str(data, "name"),
            color=_color(data.get("color"), DEFAULT_SUBJECT_COLOR),
            sections=sections,
            statuses=statuses,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subject":
        return cls.from_dict({"id": row.get("id"), "name": row.get("name"), "color": row.get("color")})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "sections": [s.to_dict() for s in self.sections],
            "statuses": [s.to_dict() for s in self.statuses],
        }

    def to_row(self, user_id: str) -> Dict[str, Any]:
        return {"name": self.name, "color": self.color, "user_id": user_id}

    def section_by_id(self, section_id: str) -> Optional[Section]:
        for s in self.sections:
            if s.id == section_id:
                return s
        return None

    def status_names(self) -> List[str]:
        return [s.name for s in self.statuses]


@dataclass
class Task:
    title: str
    date: str
    time: Optional[str] = None
    duration: Optional[str] = None
    notes: Optional[str] = None
    subject_id: Optional[str] = None
    completed: bool = False
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=_required_str(data, "id"),
            title=_required_str(data, "title"),
            date=_required_str(data, "date"),
            time=_optional_str(data, "time"),
            duration=_optional_str(data, "duration"),
            notes=_optional_str(data, "notes"),
            subject_id=_optional_str(data, "subjectId"),
            completed=bool(data.get("completed", False)),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Task":
        return cls.from_dict({**row, "subjectId": row.get("subject_id")})

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "date": self.date,
                "time": self.time,
                "duration": self.duration,
                "notes": self.notes,
                "subjectId": self.subject_id,
                "completed": self.completed,
            }
        )

    def to_row(self, user_id: str) -> Dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "duration": self.duration,
            "notes": self.notes,
            "completed": self.completed,
            "subject_id": self.subject_id,
            "user_id": user_id,
        }


@dataclass
class Exam:
    title: str
    date: str
    subject_id: str
    time: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Exam":
        return cls(
            id=_required_str(data, "id"),
            title=_required_str(data, "title"),
            date=_required_str(data, "date"),
            subject_id=_required_str(data, "subjectId"),
            time=_optional_str(data, "time"),
            notes=_optional_str(data, "notes"),
            completed=bool(data.get("completed", False)),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Exam":
        return cls.from_dict({**row, "subjectId": row.get("subject_id")})

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "date": self.date,
                "time": self.time,
                "subjectId": self.subject_id,
                "notes": self.notes,
                "completed": self.completed,
            }
        )

    def to_row(self, user_id: str) -> Dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "notes": self.notes,
            "completed": self.completed,
            "subject_id": self.subject_id,
            "user_id": user_id,
        }


@dataclass
class Lecture:
    """
    A lecture inside a subject. `status` names one of subject.statuses,
    `section_id` points into subject.sections ('' = no section).
    """

    name: str
    subject_id: str
    status: str = DEFAULT_STATUSES[0][0]
    notes: str = ""
    section_id: str = ""
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lecture":
        return cls(
            id=_required_str(data, "id"),
            name=_required_str(data, "name"),
            subject_id=_required_str(data, "subjectId"),
            status=_optional_str(data, "status") or DEFAULT_STATUSES[0][0],
            notes=_optional_str(data, "notes") or "",
            section_id=_optional_str(data, "sectionId") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "subjectId": self.subject_id,
            "notes": self.notes,
            "sectionId": self.section_id,
        }


@dataclass
class ChecklistLecture:
    """
    One entry of a subject's lecture checklist.

    `section` is a free-text label, `status` a difficulty key, `completed` one of COMPLETION_ORDER.
    """

    title: str
    section: str = ""
    status: str = "unknown"
    notes: str = ""
    completed: str = COMPLETION_ORDER[0]
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistLecture":
        completed = data.get("completed")
        if completed not in COMPLETION_ORDER:
            completed = COMPLETION_ORDER[0]
        return cls(
            id=_required_str(data, "id"),
            title=_required_str(data, "title"),
            section=_optional_str(data, "section") or "",
            status=_optional_str(data, "status") or "unknown",
            notes=_optional_str(data, "notes") or "",
            completed=completed,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChecklistLecture":
        return cls.from_dict(row)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "section": self.section,
            "status": self.status,
            "notes": self.notes,
            "completed": self.completed,
        }

    def to_row(self, user_id: str, subject_id: str) -> Dict[str, Any]:
        return {**{k: v for k, v in self.to_dict().items() if k != "id"}, "subject_id": subject_id, "user_id": user_id}
