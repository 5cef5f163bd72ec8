"""
Derived views: read-only projections of collection state.

Nothing here mutates its inputs or is persisted. Views are recomputed from the
current lists every time they are needed.

Calendar windows:
- task:  date + time (midnight if no time) .. + duration minutes (60 if none)
- exam:  date + time (midnight if no time) .. + 120 minutes, always
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from studyplanner.model import (
    COMPLETION_ORDER,
    NEUTRAL_COLOR,
    ChecklistLecture,
    Exam,
    Lecture,
    Section,
    Subject,
    Task,
    parse_duration,
)

logger = logging.getLogger(__name__)

TASK_DEFAULT_MINUTES = 60
EXAM_DEFAULT_MINUTES = 120

R = TypeVar("R", Task, Exam)


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    kind: str  # "task" | "exam"
    color: str
    all_day: bool = False
    subject_id: Optional[str] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Joins
# ---------------------------------------------------------------------------


def find_subject(subjects: Iterable[Subject], subject_id: Optional[str]) -> Optional[Subject]:
    if not subject_id:
        return None
    for s in subjects:
        if s.id == subject_id:
            return s
    return None


def subject_name(subjects: Iterable[Subject], subject_id: Optional[str], fallback: str = "") -> str:
    subject = find_subject(subjects, subject_id)
    return subject.name if subject else fallback


def subject_color(subjects: Iterable[Subject], subject_id: Optional[str], fallback: str = NEUTRAL_COLOR) -> str:
    subject = find_subject(subjects, subject_id)
    return subject.color if subject else fallback


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def _start_of(date_s: str, time_s: Optional[str]) -> Tuple[datetime, bool]:
    """
    Combine ISO date and optional HH:MM. Raises ValueError for malformed input.
    """
    day = datetime.strptime(date_s.strip(), "%Y-%m-%d")
    if not time_s:
        return day, True
    hh, mm = time_s.strip().split(":")[:2]
    return day.replace(hour=int(hh), minute=int(mm)), False


def _minutes(duration: Optional[str], default: int) -> float:
    """
    Stated duration in minutes (0 is honored); missing or unusable values give `default`.
    """
    try:
        value = parse_duration(duration)
    except ValueError:
        return default
    return default if value is None else value


def task_event(task: Task, subjects: Sequence[Subject]) -> CalendarEvent:
    start, all_day = _start_of(task.date, task.time)
    return CalendarEvent(
        id=task.id,
        title=task.title,
        start=start,
        end=start + timedelta(minutes=_minutes(task.duration, TASK_DEFAULT_MINUTES)),
        kind="task",
        color=subject_color(subjects, task.subject_id),
        all_day=all_day,
        subject_id=task.subject_id,
        notes=task.notes,
    )


def exam_event(exam: Exam, subjects: Sequence[Subject]) -> CalendarEvent:
    start, all_day = _start_of(exam.date, exam.time)
    return CalendarEvent(
        id=exam.id,
        title=exam.title,
        start=start,
        end=start + timedelta(minutes=EXAM_DEFAULT_MINUTES),
        kind="exam",
        color=subject_color(subjects, exam.subject_id),
        all_day=all_day,
        subject_id=exam.subject_id,
        notes=exam.notes,
    )


def calendar_events(tasks: Iterable[Task], exams: Iterable[Exam], subjects: Sequence[Subject]) -> List[CalendarEvent]:
    """
    Tasks first, then exams, each in collection order. Records with a malformed
    date or time are skipped instead of breaking the whole calendar.
    """
    events: List[CalendarEvent] = []
    for task in tasks:
        try:
            events.append(task_event(task, subjects))
        except (ValueError, OverflowError):
            logger.warning("Skipping task %s with malformed date/time", task.id)
    for exam in exams:
        try:
            events.append(exam_event(exam, subjects))
        except (ValueError, OverflowError):
            logger.warning("Skipping exam %s with malformed date/time", exam.id)
    return events


def events_between(events: Iterable[CalendarEvent], first: date, last: date) -> List[CalendarEvent]:
    """
    Events starting on a day in [first, last], ordered by start.
    """
    picked = [ev for ev in events if first <= ev.start.date() <= last]
    return sorted(picked, key=lambda ev: ev.start)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def active(records: Iterable[R]) -> List[R]:
    return [r for r in records if not r.completed]


def completed(records: Iterable[R]) -> List[R]:
    return [r for r in records if r.completed]


def by_subject(records: Iterable[R], subject_id: Optional[str]) -> List[R]:
    if not subject_id:
        return list(records)
    return [r for r in records if r.subject_id == subject_id]


def sort_by_date(records: Iterable[R]) -> List[R]:
    # untimed entries of a day sort before timed ones
    return sorted(records, key=lambda r: (r.date, r.time or ""))


def upcoming(records: Iterable[R], today: date) -> List[R]:
    """
    Not completed and dated today or later, soonest first.
    """
    iso = today.isoformat()
    return sort_by_date(r for r in records if not r.completed and r.date >= iso)


# ---------------------------------------------------------------------------
# Lectures
# ---------------------------------------------------------------------------


def group_by_section(
    subject: Subject, lectures: Iterable[Lecture]
) -> List[Tuple[Optional[Section], List[Lecture]]]:
    """
    One group per section of the subject (in subject order), then a final group
    (section None) for lectures without a section or with a section that no longer exists.
    """
    own = [lec for lec in lectures if lec.subject_id == subject.id]
    known = {s.id for s in subject.sections}

    groups: List[Tuple[Optional[Section], List[Lecture]]] = []
    for section in subject.sections:
        groups.append((section, [lec for lec in own if lec.section_id == section.id]))
    groups.append((None, [lec for lec in own if not lec.section_id or lec.section_id not in known]))
    return groups


def section_label(subject: Subject, lecture: Lecture, fallback: str = "") -> str:
    section = subject.section_by_id(lecture.section_id) if lecture.section_id else None
    return section.name if section else fallback


def status_color(subject: Subject, status: str, fallback: str = NEUTRAL_COLOR) -> str:
    for st in subject.statuses:
        if st.name == status:
            return st.color
    return fallback


def group_checklist(
    sections: Sequence[str], entries: Iterable[ChecklistLecture]
) -> List[Tuple[str, List[ChecklistLecture]]]:
    """
    Checklist entries grouped by section label (in section order); the last group,
    labelled '', holds entries without a known section. Empty groups are omitted.
    """
    entries = list(entries)
    groups: List[Tuple[str, List[ChecklistLecture]]] = []
    for name in sections:
        members = [e for e in entries if e.section == name]
        if members:
            groups.append((name, members))
    rest = [e for e in entries if not e.section or e.section not in sections]
    if rest:
        groups.append(("", rest))
    return groups


def checklist_progress(entries: Iterable[ChecklistLecture]) -> float:
    """
    Percentage (0-100) of entries that are at least completed.
    """
    entries = list(entries)
    if not entries:
        return 0.0
    done = sum(1 for e in entries if e.completed != COMPLETION_ORDER[0])
    return done * 100.0 / len(entries)
