"""
Lifecycle coordination: compensating writes when a parent record changes.

- Whenever the subjects collection changes, reconcile() drops dependent records
  whose subject no longer exists (tasks only if they reference a subject at all).
- Section and status changes of a subject rewrite the lectures pointing at them.

Every cascade runs inside one store batch: either all of its writes become
visible (and are persisted) or none of them do.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Dict, List, Optional

from studyplanner.checklist import LectureChecklist
from studyplanner.collection import ExamCollection, LectureCollection, SubjectCollection, TaskCollection
from studyplanner.errors import ValidationError
from studyplanner.model import UNASSIGNED_STATUS, Section, Subject
from studyplanner.storage import CollectionStore

logger = logging.getLogger(__name__)


class LifecycleCoordinator:
    def __init__(
        self,
        store: CollectionStore,
        subjects: SubjectCollection,
        tasks: TaskCollection,
        exams: ExamCollection,
        lectures: LectureCollection,
        checklist: LectureChecklist,
    ) -> None:
        self.store = store
        self.subjects = subjects
        self.tasks = tasks
        self.exams = exams
        self.lectures = lectures
        self.checklist = checklist
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "LifecycleCoordinator":
        """
        Subscribe to subject changes and run one reconciliation pass right away.

        The pass is skipped when the stored subjects could not be loaded: an empty
        fallback list would otherwise drop every dependent record. The dependents are
        backed up instead so a later reconciliation stays recoverable.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.subjects.subscribe(self._on_subjects_changed)
        subjects = self.subjects.list()
        if self.subjects.key in self.store.fallbacks:
            for key in (self.tasks.key, self.exams.key, self.lectures.key, self.checklist.LECTURES_KEY):
                self.store.backup(key)
            logger.warning(
                "Stored subjects in %s could not be loaded; dependent records kept (and backed up), reconciliation skipped",
                self.store.path_for(self.subjects.key),
            )
            return self
        self.reconcile(subjects)
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_subjects_changed(self, subjects: List[Subject]) -> None:
        self.reconcile(subjects)

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, subjects: Optional[List[Subject]] = None) -> Dict[str, int]:
        """
        Drop records whose subject reference does not resolve.

        - tasks: only when subjectId is set and unknown (unset is always kept)
        - exams: subjectId is required, unknown -> dropped
        - lectures and checklists: dropped together with their subject
        """
        live = {s.id for s in (subjects if subjects is not None else self.subjects.list())}

        with self.store.batch():
            dropped = {
                "tasks": self.tasks.retain(lambda t: not t.subject_id or t.subject_id in live),
                "exams": self.exams.retain(lambda e: e.subject_id in live),
                "lectures": self.lectures.retain(lambda lec: lec.subject_id in live),
                "checklist": self.checklist.drop_subjects(live),
            }

        if any(dropped.values()):
            logger.info(
                "Reconciled orphans: %s",
                ", ".join(f"{name}={n}" for name, n in dropped.items() if n),
            )
        return dropped

    # ------------------------------------------------------------------
    # cascades
    # ------------------------------------------------------------------

    def delete_subject(self, subject_id: str) -> bool:
        with self.store.batch():
            removed = self.subjects.remove(subject_id)
            if removed:
                self.reconcile()
        return removed

    def delete_section(self, subject_id: str, section_id: str) -> int:
        """
        Remove a section from its subject; its lectures move to 'no section'.
        Returns the number of moved lectures.
        """
        subject = self.subjects.require(subject_id)
        if subject.section_by_id(section_id) is None:
            raise ValidationError(f"Unknown section: {section_id}")

        moved = 0
        lectures = []
        for lec in self.lectures.list():
            if lec.subject_id == subject_id and lec.section_id == section_id:
                lec = dataclasses.replace(lec, section_id="")
                moved += 1
            lectures.append(lec)

        with self.store.batch():
            self.subjects.update(subject_id, sections=[s for s in subject.sections if s.id != section_id])
            self.lectures.replace_all(lectures)
        return moved

    def rename_section(self, subject_id: str, section_id: str, new_name: str) -> Section:
        """
        Rename a section. Lectures reference sections by id, so their label follows
        without being rewritten. Rejected as a whole on invalid input.
        """
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("Section name is required")
        subject = self.subjects.require(subject_id)
        if subject.section_by_id(section_id) is None:
            raise ValidationError(f"Unknown section: {section_id}")

        sections = [Section(name=new_name if s.id == section_id else s.name, id=s.id) for s in subject.sections]
        with self.store.batch():
            self.subjects.update(subject_id, sections=sections)
        return Section(name=new_name, id=section_id)

    def delete_status(self, subject_id: str, name: str) -> int:
        """
        Remove a status from its subject. Lectures in that status move to the first
        remaining status, or to UNASSIGNED_STATUS if none is left.
        Returns the number of reassigned lectures.
        """
        subject = self.subjects.require(subject_id)
        if name not in subject.status_names():
            raise ValidationError(f"Unknown status: {name}")

        remaining = [s for s in subject.statuses if s.name != name]
        fallback = remaining[0].name if remaining else UNASSIGNED_STATUS

        moved = 0
        lectures = []
        for lec in self.lectures.list():
            if lec.subject_id == subject_id and lec.status == name:
                lec = dataclasses.replace(lec, status=fallback)
                moved += 1
            lectures.append(lec)

        with self.store.batch():
            self.subjects.update(subject_id, statuses=remaining)
            self.lectures.replace_all(lectures)
        return moved
