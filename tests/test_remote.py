"""
Unit tests for the hosted backend client and the optimistic sync helpers.

No network: requests is replaced by unittest.mock objects.

Sync contract:
- local change first, then the remote call, both inside one store batch
- a failing remote call leaves local state (and its cascades) untouched and re-raises
"""

import json
import tempfile
import unittest
from unittest import mock

import requests

from studyplanner.checklist import LectureChecklist
from studyplanner.collection import TaskCollection
from studyplanner.errors import RemoteError
from studyplanner.model import ChecklistLecture, Exam, Subject, Task
from studyplanner.planner import Planner
from studyplanner.remote import ChecklistSync, RemoteBackend, RemoteSync, RemoteTable, pull_all
from studyplanner.storage import CollectionStore


def _response(status: int = 200, body=None) -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.content = b"" if body is None else json.dumps(body).encode("utf-8")
    resp.text = "" if body is None else json.dumps(body)
    resp.json.return_value = body
    return resp


class TestRemoteTable(unittest.TestCase):
    def setUp(self) -> None:
        self.http = mock.Mock()
        self.table = RemoteTable(self.http, "https://example.supabase.co/", "tasks", order_by="date", timeout=5)

    def test_get_all_filters_by_user_and_orders(self) -> None:
        self.http.request.return_value = _response(200, [{"id": "1"}])
        rows = self.table.get_all("u1")

        self.assertEqual(rows, [{"id": "1"}])
        method, url = self.http.request.call_args.args
        self.assertEqual((method, url), ("GET", "https://example.supabase.co/rest/v1/tasks"))
        self.assertEqual(
            self.http.request.call_args.kwargs["params"],
            {"select": "*", "user_id": "eq.u1", "order": "date.asc"},
        )

    def test_create_returns_representation(self) -> None:
        self.http.request.return_value = _response(201, [{"id": "1", "title": "A"}])
        row = self.table.create({"title": "A"})
        self.assertEqual(row, {"id": "1", "title": "A"})
        self.assertEqual(self.http.request.call_args.kwargs["headers"], {"Prefer": "return=representation"})

    def test_update_and_delete_target_id(self) -> None:
        self.http.request.return_value = _response(200, [{"id": "1"}])
        self.table.update("1", {"title": "B"})
        self.assertEqual(self.http.request.call_args.args[0], "PATCH")
        self.assertEqual(self.http.request.call_args.kwargs["params"], {"id": "eq.1"})

        self.http.request.return_value = _response(204)
        self.assertIsNone(self.table.delete("1"))
        self.assertEqual(self.http.request.call_args.args[0], "DELETE")

    def test_http_error_raises(self) -> None:
        self.http.request.return_value = _response(400, {"message": "bad column"})
        with self.assertRaises(RemoteError) as ctx:
            self.table.create({"title": "A"})
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("bad column", str(ctx.exception))

    def test_network_error_raises(self) -> None:
        self.http.request.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(RemoteError):
            self.table.get_all("u1")


class TestRemoteBackend(unittest.TestCase):
    def test_headers(self) -> None:
        backend = RemoteBackend("https://example.supabase.co", "anon", http=requests.Session())
        self.assertEqual(backend.http.headers["apikey"], "anon")
        self.assertEqual(backend.http.headers["Authorization"], "Bearer anon")
        backend.set_access_token("jwt")
        self.assertEqual(backend.http.headers["Authorization"], "Bearer jwt")
        self.assertEqual(backend.exams.url, "https://example.supabase.co/rest/v1/exams")

    def test_missing_configuration(self) -> None:
        with self.assertRaises(RemoteError):
            RemoteBackend("", "")


class SyncTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = CollectionStore(self._tmp.name)
        self.table = mock.Mock()
        self.table.table = "tasks"

    def tearDown(self) -> None:
        self._tmp.cleanup()


class TestRemoteSync(SyncTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tasks = TaskCollection(self.store)
        self.sync = RemoteSync(self.tasks, self.table, "u1")

    def test_add_sends_row(self) -> None:
        task = self.sync.add(Task(title="A", date="2024-03-01"))
        self.assertEqual(self.tasks.list(), [task])
        row = self.table.create.call_args.args[0]
        self.assertEqual(row["id"], task.id)
        self.assertEqual(row["user_id"], "u1")
        self.assertEqual(row["title"], "A")

    def test_failed_add_is_rolled_back(self) -> None:
        self.table.create.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.add(Task(title="A", date="2024-03-01"))
        self.assertEqual(self.tasks.list(), [])

    def test_failed_update_is_rolled_back(self) -> None:
        task = self.tasks.add(Task(title="A", date="2024-03-01"))
        self.table.update.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.update(task.id, title="B")
        self.assertEqual(self.tasks.get(task.id).title, "A")

    def test_update_does_not_send_user_id(self) -> None:
        task = self.tasks.add(Task(title="A", date="2024-03-01"))
        self.sync.update(task.id, completed=True)
        record_id, row = self.table.update.call_args.args
        self.assertEqual(record_id, task.id)
        self.assertNotIn("user_id", row)
        self.assertTrue(row["completed"])

    def test_failed_remove_is_rolled_back(self) -> None:
        task = self.tasks.add(Task(title="A", date="2024-03-01"))
        self.table.delete.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.remove(task.id)
        self.assertEqual([t.id for t in self.tasks.list()], [task.id])

    def test_unknown_ids_skip_remote(self) -> None:
        self.assertIsNone(self.sync.update("missing", title="B"))
        self.assertFalse(self.sync.remove("missing"))
        self.table.update.assert_not_called()
        self.table.delete.assert_not_called()

    def test_pull_replaces_local_records(self) -> None:
        self.tasks.add(Task(title="Local", date="2024-03-01"))
        self.table.get_all.return_value = [
            {"id": "r1", "title": "Remote", "date": "2024-03-02", "subject_id": None, "user_id": "u1"},
            {"id": "r2", "title": "", "date": "2024-03-02"},
        ]
        self.assertEqual(self.sync.pull(), 1)
        self.assertEqual([t.id for t in self.tasks.list()], ["r1"])


class TestChecklistSync(SyncTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.table.table = "lectures"
        self.checklist = LectureChecklist(self.store)
        self.sync = ChecklistSync(self.checklist, self.table, "u1")

    def test_add_sends_subject(self) -> None:
        entry = self.sync.add("s1", ChecklistLecture(title="Intro"))
        row = self.table.create.call_args.args[0]
        self.assertEqual((row["id"], row["subject_id"], row["user_id"]), (entry.id, "s1", "u1"))

    def test_failed_add_is_rolled_back(self) -> None:
        self.table.create.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.add("s1", ChecklistLecture(title="Intro"))
        self.assertEqual(self.checklist.lectures("s1"), [])

    def test_failed_update_is_rolled_back(self) -> None:
        entry = self.checklist.add("s1", ChecklistLecture(title="Intro"))
        self.table.update.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.update("s1", entry.id, completed="completed")
        self.assertEqual(self.checklist.get("s1", entry.id).completed, "not_started")

    def test_pull_groups_by_subject(self) -> None:
        self.table.get_all.return_value = [
            {"id": "l1", "title": "A", "subject_id": "s1"},
            {"id": "l2", "title": "B", "subject_id": "s2"},
            {"id": "l3", "title": "C", "subject_id": "s1"},
            {"id": "l4", "title": "No subject"},
        ]
        self.assertEqual(self.sync.pull(), 3)
        self.assertEqual([e.id for e in self.checklist.lectures("s1")], ["l1", "l3"])
        self.assertEqual([e.id for e in self.checklist.lectures("s2")], ["l2"])


class TestSyncCascades(unittest.TestCase):
    """
    Syncing against a full Planner: subject removal cascades to tasks and exams
    only once the backend accepted the delete.
    """

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.planner = Planner(self._tmp.name)
        self.math = self.planner.subjects.add(Subject(name="Math"))
        self.task = self.planner.tasks.add(Task(title="Sheet", date="2024-03-01", subject_id=self.math.id))
        self.exam = self.planner.exams.add(Exam(title="Final", date="2024-03-05", subject_id=self.math.id))
        self.table = mock.Mock()
        self.table.table = "subjects"
        self.sync = RemoteSync(self.planner.subjects, self.table, "u1")

    def tearDown(self) -> None:
        self.planner.close()
        self._tmp.cleanup()

    def test_rejected_subject_delete_keeps_dependents(self) -> None:
        self.table.delete.side_effect = RemoteError("rejected")
        with self.assertRaises(RemoteError):
            self.sync.remove(self.math.id)

        self.assertEqual([s.id for s in self.planner.subjects.list()], [self.math.id])
        self.assertEqual([t.id for t in self.planner.tasks.list()], [self.task.id])
        self.assertEqual([e.id for e in self.planner.exams.list()], [self.exam.id])

        # nothing reached the disk either
        fresh = Planner(self._tmp.name)
        try:
            self.assertEqual(len(fresh.subjects.list()), 1)
            self.assertEqual(len(fresh.tasks.list()), 1)
            self.assertEqual(len(fresh.exams.list()), 1)
        finally:
            fresh.close()

    def test_accepted_subject_delete_cascades(self) -> None:
        self.assertTrue(self.sync.remove(self.math.id))
        self.table.delete.assert_called_once_with(self.math.id)
        self.assertEqual(self.planner.subjects.list(), [])
        self.assertEqual(self.planner.tasks.list(), [])
        self.assertEqual(self.planner.exams.list(), [])

    def test_pull_all_replaces_everything(self) -> None:
        backend = mock.Mock()
        backend.subjects.get_all.return_value = [{"id": "s1", "name": "Physics", "color": "#00FF00"}]
        backend.tasks.get_all.return_value = [
            {"id": "t1", "title": "Lab", "date": "2024-03-02", "subject_id": "s1"},
            {"id": "t2", "title": "Orphan", "date": "2024-03-02", "subject_id": "gone"},
        ]
        backend.exams.get_all.return_value = []
        backend.lectures.get_all.return_value = [{"id": "l1", "title": "Optics", "subject_id": "s1"}]

        counts = pull_all(self.planner, backend, "u1")

        self.assertEqual(counts, {"subjects": 1, "tasks": 2, "exams": 0, "lectures": 1})
        self.assertEqual([s.id for s in self.planner.subjects.list()], ["s1"])
        # the orphan is dropped by reconciliation after the batch
        self.assertEqual([t.id for t in self.planner.tasks.list()], ["t1"])
        self.assertEqual([e.title for e in self.planner.checklist.lectures("s1")], ["Optics"])
        backend.tasks.get_all.assert_called_once_with("u1")


if __name__ == "__main__":
    unittest.main()
