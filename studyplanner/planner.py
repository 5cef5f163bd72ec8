"""
Application wiring.

One Planner per process: it owns the single CollectionStore, the domain
collections built on top of it and the lifecycle coordinator that keeps them
consistent. UI layers (CLI, interactive menu, HTTP) receive a Planner instead of
touching storage directly.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Optional

from studyplanner import views
from studyplanner.checklist import LectureChecklist
from studyplanner.collection import ExamCollection, LectureCollection, SubjectCollection, TaskCollection
from studyplanner.lifecycle import LifecycleCoordinator
from studyplanner.storage import CollectionStore


class Planner:
    def __init__(self, data_dir: str | Path | None = None, store: Optional[CollectionStore] = None) -> None:
        self.store = store if store is not None else CollectionStore(data_dir)
        self.subjects = SubjectCollection(self.store)
        self.tasks = TaskCollection(self.store)
        self.exams = ExamCollection(self.store)
        self.lectures = LectureCollection(self.store, self.subjects)
        self.checklist = LectureChecklist(self.store)
        self.lifecycle = LifecycleCoordinator(
            self.store, self.subjects, self.tasks, self.exams, self.lectures, self.checklist
        ).start()

    def close(self) -> None:
        self.lifecycle.stop()

    # convenience projections used by the terminal UIs

    def calendar(self) -> List[views.CalendarEvent]:
        return views.calendar_events(self.tasks.list(), self.exams.list(), self.subjects.list())

    def week(self, day: date) -> List[views.CalendarEvent]:
        first = date.fromordinal(day.toordinal() - day.weekday())
        last = date.fromordinal(first.toordinal() + 6)
        return views.events_between(self.calendar(), first, last)
