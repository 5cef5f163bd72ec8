"""
Unit tests for the typed domain collections.

Collection contract:
- add assigns a fresh id and appends
- update replaces by id and keeps the list order; unknown ids change nothing
- remove filters by id
- required fields are checked before anything is written
- malformed stored records are skipped on load
"""

import json
import tempfile
import unittest
from pathlib import Path

from studyplanner.collection import ExamCollection, LectureCollection, SubjectCollection, TaskCollection
from studyplanner.errors import ValidationError
from studyplanner.model import MAX_DURATION_MINUTES, UNASSIGNED_STATUS, Exam, Lecture, Subject, Task
from studyplanner.storage import CollectionStore


class CollectionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.store = CollectionStore(self.data_dir)
        self.subjects = SubjectCollection(self.store)
        self.tasks = TaskCollection(self.store)
        self.exams = ExamCollection(self.store)
        self.lectures = LectureCollection(self.store, self.subjects)

    def tearDown(self) -> None:
        self._tmp.cleanup()


class TestCollection(CollectionTestCase):
    def test_add_update_remove_net_effect_keeps_order(self) -> None:
        a = self.tasks.add(Task(title="A", date="2024-03-01"))
        b = self.tasks.add(Task(title="B", date="2024-03-02"))
        c = self.tasks.add(Task(title="C", date="2024-03-03"))

        self.tasks.update(b.id, title="B2", time="10:00")
        self.tasks.remove(a.id)
        d = self.tasks.add(Task(title="D", date="2024-03-04"))

        self.assertEqual([t.title for t in self.tasks.list()], ["B2", "C", "D"])
        self.assertEqual([t.id for t in self.tasks.list()], [b.id, c.id, d.id])
        self.assertEqual(self.tasks.get(b.id).time, "10:00")

    def test_add_assigns_unique_ids(self) -> None:
        a = self.tasks.add(Task(title="A", date="2024-03-01", id="fixed"))
        b = self.tasks.add(Task(title="A", date="2024-03-01", id="fixed"))
        self.assertNotEqual(a.id, "fixed")
        self.assertNotEqual(a.id, b.id)
        self.assertEqual(len(self.tasks), 2)

    def test_unknown_id_is_a_noop(self) -> None:
        self.tasks.add(Task(title="A", date="2024-03-01"))
        before = self.tasks.list()
        self.assertIsNone(self.tasks.update("missing", title="X"))
        self.assertFalse(self.tasks.remove("missing"))
        self.assertEqual(self.tasks.list(), before)

    def test_id_cannot_be_changed(self) -> None:
        a = self.tasks.add(Task(title="A", date="2024-03-01"))
        with self.assertRaises(ValidationError):
            self.tasks.update(a.id, id="other")

    def test_required_fields(self) -> None:
        with self.assertRaises(ValidationError):
            self.tasks.add(Task(title="  ", date="2024-03-01"))
        with self.assertRaises(ValidationError):
            self.exams.add(Exam(title="Final", date="2024-03-01", subject_id=""))
        a = self.tasks.add(Task(title="A", date="2024-03-01"))
        with self.assertRaises(ValidationError):
            self.tasks.update(a.id, title="")
        self.assertEqual(self.tasks.get(a.id).title, "A")

    def test_task_duration_is_validated(self) -> None:
        for bad in ("inf", "nan", "-1", "abc", "1e300", str(MAX_DURATION_MINUTES + 1)):
            with self.assertRaises(ValidationError, msg=bad):
                self.tasks.add(Task(title="A", date="2024-03-01", duration=bad))
        self.assertEqual(self.tasks.list(), [])

        a = self.tasks.add(Task(title="A", date="2024-03-01", duration="0"))
        with self.assertRaises(ValidationError):
            self.tasks.update(a.id, duration="-inf")
        self.assertEqual(self.tasks.get(a.id).duration, "0")
        self.assertEqual(self.tasks.update(a.id, duration="45").duration, "45")

    def test_toggle_completed(self) -> None:
        a = self.tasks.add(Task(title="A", date="2024-03-01"))
        self.assertTrue(self.tasks.toggle_completed(a.id).completed)
        self.assertFalse(self.tasks.toggle_completed(a.id).completed)
        self.assertIsNone(self.tasks.toggle_completed("missing"))

    def test_persisted_with_camel_case_keys(self) -> None:
        s = self.subjects.add(Subject(name="Math"))
        self.tasks.add(Task(title="A", date="2024-03-01", subject_id=s.id))
        raw = json.loads((self.data_dir / "tasks.json").read_text(encoding="utf-8"))
        self.assertEqual(raw[0]["subjectId"], s.id)
        self.assertNotIn("time", raw[0])

    def test_malformed_records_are_skipped(self) -> None:
        (self.data_dir / "tasks.json").write_text(
            json.dumps(
                [
                    {"id": "1", "title": "Good", "date": "2024-03-01"},
                    {"title": "no id", "date": "2024-03-01"},
                    "junk",
                    {"id": "1", "title": "Duplicate", "date": "2024-03-02"},
                ]
            ),
            encoding="utf-8",
        )
        tasks = TaskCollection(CollectionStore(self.data_dir))
        self.assertEqual([t.title for t in tasks.list()], ["Good"])

    def test_subscribe_receives_records(self) -> None:
        seen = []
        unsubscribe = self.tasks.subscribe(seen.append)
        self.tasks.add(Task(title="A", date="2024-03-01"))
        unsubscribe()
        self.assertEqual(len(seen), 1)
        self.assertIsInstance(seen[0][0], Task)


class TestSubjects(CollectionTestCase):
    def test_new_subject_has_default_statuses(self) -> None:
        s = self.subjects.add(Subject(name="Math", color="#FF0000"))
        self.assertEqual(s.status_names(), ["not_started", "completed", "review"])
        self.assertEqual(s.sections, [])

    def test_invalid_color_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.subjects.add(Subject(name="Math", color="red"))
        s = self.subjects.add(Subject(name="Math"))
        with self.assertRaises(ValidationError):
            self.subjects.update(s.id, color="#12")
        self.assertEqual(self.subjects.get(s.id).color, "#3B82F6")

    def test_sections_and_statuses(self) -> None:
        s = self.subjects.add(Subject(name="Math"))
        sec = self.subjects.add_section(s.id, " Chapter 1 ")
        self.assertEqual(sec.name, "Chapter 1")
        self.assertEqual(self.subjects.get(s.id).section_by_id(sec.id).name, "Chapter 1")

        self.subjects.add_status(s.id, "mastered", "#00FF00")
        with self.assertRaises(ValidationError):
            self.subjects.add_status(s.id, "mastered")
        self.subjects.recolor_status(s.id, "completed", "#000000")

        statuses = {st.name: st.color for st in self.subjects.get(s.id).statuses}
        self.assertEqual(statuses["mastered"], "#00FF00")
        self.assertEqual(statuses["completed"], "#000000")

    def test_require_unknown_subject(self) -> None:
        with self.assertRaises(ValidationError):
            self.subjects.require("missing")


class TestLectures(CollectionTestCase):
    def test_lecture_starts_in_first_status(self) -> None:
        s = self.subjects.add(Subject(name="Math"))
        self.subjects.add_status(s.id, "extra")
        lec = self.lectures.add(Lecture(name="Intro", subject_id=s.id, status="extra"))
        self.assertEqual(lec.status, "not_started")
        self.assertEqual(lec.section_id, "")

    def test_lecture_of_subject_without_statuses_is_unassigned(self) -> None:
        s = self.subjects.add(Subject(name="Math", statuses=[]))
        lec = self.lectures.add(Lecture(name="Intro", subject_id=s.id, status="whatever"))
        self.assertEqual(lec.status, UNASSIGNED_STATUS)
        self.assertEqual(self.lectures.get(lec.id).status, UNASSIGNED_STATUS)

    def test_lecture_requires_known_subject_and_section(self) -> None:
        s = self.subjects.add(Subject(name="Math"))
        with self.assertRaises(ValidationError):
            self.lectures.add(Lecture(name="Intro", subject_id="missing"))
        with self.assertRaises(ValidationError):
            self.lectures.add(Lecture(name="Intro", subject_id=s.id, section_id="missing"))
        self.assertEqual(self.lectures.list(), [])

    def test_status_and_notes(self) -> None:
        s = self.subjects.add(Subject(name="Math"))
        other = self.subjects.add(Subject(name="Physics"))
        lec = self.lectures.add(Lecture(name="Intro", subject_id=s.id))
        self.lectures.add(Lecture(name="Waves", subject_id=other.id))

        self.lectures.set_status(lec.id, "completed")
        self.lectures.set_notes(lec.id, "re-read chapter 2")

        got = self.lectures.for_subject(s.id)
        self.assertEqual(len(got), 1)
        self.assertEqual(got[0].status, "completed")
        self.assertEqual(got[0].notes, "re-read chapter 2")


if __name__ == "__main__":
    unittest.main()
