"""
Domain collections: typed views over the CollectionStore.

Each collection owns exactly one storage key and only ever does whole-list
read-modify-write through store.update(), so that two consumers of the same key
inside one process never lose each other's changes.

    subjects = SubjectCollection(store)
    math = subjects.add(Subject(name="Math", color="#FF0000"))
    subjects.update(math.id, name="Mathematics")
    subjects.remove(math.id)
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from studyplanner.errors import ValidationError
from studyplanner.model import (
    HEX_COLOR,
    DEFAULT_STATUS_COLOR,
    UNASSIGNED_STATUS,
    ChecklistLecture,
    Exam,
    Lecture,
    Section,
    Status,
    Subject,
    Task,
    new_id,
    parse_duration,
)
from studyplanner.storage import CollectionStore

logger = logging.getLogger(__name__)

T = TypeVar("T", Subject, Task, Exam, Lecture, ChecklistLecture)


class Collection(Generic[T]):
    key: str = ""
    record_type: Type[T]

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------

    def _normalize(self, raw: List[Any]) -> List[Dict[str, Any]]:
        """
        Parse every stored record; skip malformed ones and duplicate ids.
        """
        out: List[Dict[str, Any]] = []
        seen: set[str] = set()
        for item in raw:
            try:
                if not isinstance(item, dict):
                    raise ValueError("record is not an object")
                record = self.record_type.from_dict(item)
            except ValueError as e:
                logger.warning("Skipping malformed record in '%s': %s", self.key, e)
                continue
            if record.id in seen:
                logger.warning("Skipping duplicate id %s in '%s'", record.id, self.key)
                continue
            seen.add(record.id)
            out.append(record.to_dict())
        return out

    def _raw(self) -> List[Dict[str, Any]]:
        return self.store.read(self.key, [], self._normalize)

    def _mutate(self, fn: Callable[[List[T]], List[T]]) -> None:
        def apply(raw: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            return [r.to_dict() for r in fn([self.record_type.from_dict(d) for d in raw])]

        self.store.update(self.key, [], apply, self._normalize)

    def _validated(self, record: T) -> T:
        try:
            return self.record_type.from_dict(record.to_dict())
        except ValueError as e:
            raise ValidationError(f"Invalid {self.record_type.__name__.lower()}: {e}") from e

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def list(self) -> List[T]:
        return [self.record_type.from_dict(d) for d in self._raw()]

    def get(self, record_id: str) -> Optional[T]:
        for record in self.list():
            if record.id == record_id:
                return record
        return None

    def add(self, entity: T) -> T:
        """
        Assign a fresh id, validate required fields and append.
        """
        record = self._validated(dataclasses.replace(entity, id=new_id()))
        self._mutate(lambda records: records + [record])
        return record

    def update(self, record_id: str, **changes: Any) -> Optional[T]:
        """
        Replace the record with `record_id` by a copy carrying `changes`.
        List order is preserved; an unknown id changes nothing and returns None.
        """
        if "id" in changes:
            raise ValidationError("The id of a record cannot be changed")

        current = self.get(record_id)
        if current is None:
            return None
        updated = self._validated(dataclasses.replace(current, **changes))
        self._mutate(lambda records: [updated if r.id == record_id else r for r in records])
        return updated

    def remove(self, record_id: str) -> bool:
        if self.get(record_id) is None:
            return False
        self._mutate(lambda records: [r for r in records if r.id != record_id])
        return True

    def retain(self, keep: Callable[[T], bool]) -> int:
        """
        Drop every record for which `keep` is false. Returns the number dropped.
        Nothing is written when nothing changes.
        """
        dropped = sum(1 for r in self.list() if not keep(r))
        if dropped:
            self._mutate(lambda records: [r for r in records if keep(r)])
        return dropped

    def replace_all(self, records: List[T]) -> None:
        validated = [self._validated(r) for r in records]
        self._mutate(lambda _: validated)

    def subscribe(self, callback: Callable[[List[T]], None]) -> Callable[[], None]:
        def on_change(raw: List[Dict[str, Any]]) -> None:
            callback([self.record_type.from_dict(d) for d in raw])

        return self.store.subscribe(self.key, on_change)

    def __len__(self) -> int:
        return len(self._raw())


class SubjectCollection(Collection[Subject]):
    key = "subjects"
    record_type = Subject

    def add(self, entity: Subject) -> Subject:
        if not HEX_COLOR.match(entity.color or ""):
            raise ValidationError(f"Invalid color {entity.color!r} (expected #RRGGBB)")
        return super().add(entity)

    def update(self, record_id: str, **changes: Any) -> Optional[Subject]:
        if "color" in changes and not HEX_COLOR.match(changes["color"] or ""):
            raise ValidationError(f"Invalid color {changes['color']!r} (expected #RRGGBB)")
        return super().update(record_id, **changes)

    def require(self, subject_id: str) -> Subject:
        subject = self.get(subject_id)
        if subject is None:
            raise ValidationError(f"Unknown subject: {subject_id}")
        return subject

    def add_section(self, subject_id: str, name: str) -> Section:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Section name is required")
        subject = self.require(subject_id)
        section = Section(name=name, id=new_id())
        self.update(subject_id, sections=subject.sections + [section])
        return section

    def add_status(self, subject_id: str, name: str, color: str = DEFAULT_STATUS_COLOR) -> Status:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Status name is required")
        if not HEX_COLOR.match(color or ""):
            raise ValidationError(f"Invalid color {color!r} (expected #RRGGBB)")
        subject = self.require(subject_id)
        if name in subject.status_names():
            raise ValidationError(f"Status already exists: {name}")
        status = Status(name=name, color=color)
        self.update(subject_id, statuses=subject.statuses + [status])
        return status

    def recolor_status(self, subject_id: str, name: str, color: str) -> Status:
        if not HEX_COLOR.match(color or ""):
            raise ValidationError(f"Invalid color {color!r} (expected #RRGGBB)")
        subject = self.require(subject_id)
        if name not in subject.status_names():
            raise ValidationError(f"Unknown status: {name}")
        statuses = [Status(name=s.name, color=color if s.name == name else s.color) for s in subject.statuses]
        self.update(subject_id, statuses=statuses)
        return Status(name=name, color=color)


class TaskCollection(Collection[Task]):
    key = "tasks"
    record_type = Task

    @staticmethod
    def _check_duration(duration: Optional[str]) -> None:
        try:
            parse_duration(duration)
        except ValueError:
            raise ValidationError(f"Invalid duration {duration!r} (expected minutes, e.g. 30)") from None

    def add(self, entity: Task) -> Task:
        self._check_duration(entity.duration)
        return super().add(entity)

    def update(self, record_id: str, **changes: Any) -> Optional[Task]:
        if "duration" in changes:
            self._check_duration(changes["duration"])
        return super().update(record_id, **changes)

    def toggle_completed(self, task_id: str) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        return self.update(task_id, completed=not task.completed)


class ExamCollection(Collection[Exam]):
    key = "exams"
    record_type = Exam

    def toggle_completed(self, exam_id: str) -> Optional[Exam]:
        exam = self.get(exam_id)
        if exam is None:
            return None
        return self.update(exam_id, completed=not exam.completed)


class LectureCollection(Collection[Lecture]):
    key = "lectures"
    record_type = Lecture

    def __init__(self, store: CollectionStore, subjects: SubjectCollection) -> None:
        super().__init__(store)
        self.subjects = subjects

    def add(self, entity: Lecture) -> Lecture:
        """
        New lectures start in the first status of their subject (UNASSIGNED_STATUS if it has none).
        """
        subject = self.subjects.require(entity.subject_id)
        if entity.section_id and subject.section_by_id(entity.section_id) is None:
            raise ValidationError(f"Unknown section: {entity.section_id}")
        first = subject.statuses[0].name if subject.statuses else UNASSIGNED_STATUS
        entity = dataclasses.replace(entity, status=first)
        return super().add(entity)

    def for_subject(self, subject_id: str) -> List[Lecture]:
        return [lec for lec in self.list() if lec.subject_id == subject_id]

    def set_status(self, lecture_id: str, status: str) -> Optional[Lecture]:
        return self.update(lecture_id, status=status)

    def set_notes(self, lecture_id: str, notes: str) -> Optional[Lecture]:
        return self.update(lecture_id, notes=notes)
