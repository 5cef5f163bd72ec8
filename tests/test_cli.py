"""
Tests for CLI entry points.

These tests focus on:
- Exit codes (0 on success, non-zero on invalid input)
- Commands working against a temporary --data-dir
  (to avoid touching real user data during tests)
"""

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from studyplanner.cli import _resolve, main
from studyplanner.config import config
from studyplanner.errors import ValidationError
from studyplanner.planner import Planner


class CLITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = self._tmp.name

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_cli(self, *argv: str) -> tuple[int, str]:
        buf = io.StringIO()
        with redirect_stdout(buf):
            with self.assertRaises(SystemExit) as ctx:
                main(["--data-dir", self.data_dir, *argv])
        return ctx.exception.code, buf.getvalue()

    def subject_id(self, name: str) -> str:
        planner = Planner(self.data_dir)
        try:
            return next(s.id for s in planner.subjects.list() if s.name == name)
        finally:
            planner.close()


class TestCLI(CLITestCase):
    def test_add_subject_and_task(self) -> None:
        code, out = self.run_cli("subjects", "add", "Math", "--color", "#FF0000")
        self.assertEqual(code, 0)
        self.assertIn("Added subject: Math", out)

        sid = self.subject_id("Math")
        code, _ = self.run_cli(
            "tasks", "add", "Sheet 3", "--date", "2024-03-01", "--time", "14:00", "--duration", "30", "--subject", sid[:8]
        )
        self.assertEqual(code, 0)

        code, out = self.run_cli("tasks", "list")
        self.assertEqual(code, 0)
        self.assertIn("Sheet 3", out)
        self.assertIn("Math", out)

        code, out = self.run_cli("calendar", "--week", "2024-02-28")
        self.assertEqual(code, 0)
        self.assertIn("14:00-14:30 | task | Sheet 3", out)

    def test_invalid_input_exits_nonzero(self) -> None:
        code, out = self.run_cli("subjects", "add", "Math", "--color", "red")
        self.assertNotEqual(code, 0)
        self.assertIn("Error:", out)

        code, out = self.run_cli("tasks", "add", "Sheet", "--date", "01.03.2024")
        self.assertNotEqual(code, 0)

        code, out = self.run_cli("exams", "add", "Final", "--date", "2024-03-01", "--subject", "nope")
        self.assertNotEqual(code, 0)
        self.assertIn("Unknown subject", out)

    def test_invalid_duration_is_rejected(self) -> None:
        for value in ("inf", "nan", "-5", "abc", "1e300"):
            code, out = self.run_cli("tasks", "add", "Sheet", "--date", "2024-03-01", "--time", "14:00", "--duration", value)
            self.assertNotEqual(code, 0, value)
            self.assertIn("Invalid duration", out)

        _, out = self.run_cli("tasks", "list", "--all")
        self.assertIn("No tasks.", out)

        # zero minutes is a valid (empty) window
        code, _ = self.run_cli("tasks", "add", "Call", "--date", "2024-03-01", "--time", "14:00", "--duration", "0")
        self.assertEqual(code, 0)
        _, out = self.run_cli("calendar", "--week", "2024-03-01")
        self.assertIn("14:00-14:00 | task | Call", out)

    def test_missing_subcommand_is_usage_error(self) -> None:
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            main(["--data-dir", self.data_dir])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_remove_subject_cascades(self) -> None:
        self.run_cli("subjects", "add", "Math")
        sid = self.subject_id("Math")
        self.run_cli("exams", "add", "Final", "--date", "2024-03-01", "--subject", sid)
        self.run_cli("tasks", "add", "Free", "--date", "2024-03-01")

        code, out = self.run_cli("subjects", "remove", sid)
        self.assertEqual(code, 0)
        self.assertIn("dropped 0 tasks, 1 exams", out)

        _, out = self.run_cli("exams", "list", "--all")
        self.assertIn("No exams.", out)
        _, out = self.run_cli("tasks", "list")
        self.assertIn("Free", out)

    def test_checklist_flow(self) -> None:
        self.run_cli("subjects", "add", "Math")
        sid = self.subject_id("Math")
        self.run_cli("checklist", "sections", "--add", "Midterm")
        code, _ = self.run_cli("checklist", "add", sid, "Limits", "--section", "Midterm")
        self.assertEqual(code, 0)

        planner = Planner(self.data_dir)
        try:
            lid = planner.checklist.lectures(sid)[0].id
        finally:
            planner.close()

        _, out = self.run_cli("checklist", "cycle", sid, lid)
        self.assertIn("Limits: Easy", out)
        _, out = self.run_cli("checklist", "complete", sid, lid)
        self.assertIn("Limits: Completed", out)

        code, out = self.run_cli("checklist", "sections", "--rename", "Midterm", "Final")
        self.assertEqual(code, 0)
        _, out = self.run_cli("checklist", "list", sid)
        self.assertIn("Final", out)
        self.assertIn("100% done", out)

        code, out = self.run_cli("checklist", "difficulty", "--remove", "easy")
        self.assertNotEqual(code, 0)

    def test_export_writes_ics(self) -> None:
        self.run_cli("tasks", "add", "Read", "--date", "2024-03-01")
        out_path = Path(self.data_dir) / "out.ics"
        code, out = self.run_cli("export", str(out_path))
        self.assertEqual(code, 0)
        self.assertIn("Exported 1 events", out)
        self.assertTrue(out_path.exists())


URL = "https://example.supabase.co"


def _response(status: int = 200, body=None) -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.content = b"" if body is None else json.dumps(body).encode("utf-8")
    resp.text = "" if body is None else json.dumps(body)
    resp.json.return_value = body
    return resp


class TestAccountCommands(CLITestCase):
    """
    login / logout / whoami / sync against a fake hosted backend (requests patched).
    """

    ROUTES = {
        ("POST", "/auth/v1/token"): {"access_token": "jwt", "user": {"id": "u1", "email": "a@b.c"}},
        ("PUT", "/auth/v1/user"): {"id": "u1"},
        ("GET", "/auth/v1/user"): {"id": "u1", "email": "a@b.c"},
        ("POST", "/auth/v1/logout"): None,
        ("GET", "/rest/v1/subjects"): [{"id": "s1", "name": "Physics", "color": "#00FF00"}],
        ("GET", "/rest/v1/tasks"): [{"id": "t1", "title": "Lab report", "date": "2024-03-02", "subject_id": "s1"}],
        ("GET", "/rest/v1/exams"): [{"id": "e1", "title": "Midterm", "date": "2024-03-09", "subject_id": "s1"}],
        ("GET", "/rest/v1/lectures"): [{"id": "l1", "title": "Optics", "subject_id": "s1"}],
    }

    def setUp(self) -> None:
        super().setUp()
        self.calls = []
        patches = [
            mock.patch.object(config, "SUPABASE_URL", URL),
            mock.patch.object(config, "SUPABASE_ANON_KEY", "anon"),
            mock.patch("requests.Session.request", side_effect=self._route),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def _route(self, method: str, url: str, **kwargs) -> mock.Mock:
        path = url[len(URL):]
        self.calls.append((method, path))
        if (method, path) not in self.ROUTES:
            return _response(404, {"message": "not found"})
        body = self.ROUTES[(method, path)]
        return _response(204 if body is None else 200, body)

    def test_sync_requires_login(self) -> None:
        code, out = self.run_cli("sync")
        self.assertEqual(code, 1)
        self.assertIn("Please sign in first", out)
        self.assertEqual(self.calls, [])

        code, out = self.run_cli("whoami")
        self.assertEqual(code, 1)
        self.assertIn("Not signed in.", out)

    def test_login_then_sync_replaces_local_data(self) -> None:
        self.run_cli("tasks", "add", "Local only", "--date", "2024-03-01")

        code, out = self.run_cli("login", "a@b.c", "--password", "secret")
        self.assertEqual(code, 0)
        self.assertIn("Signed in as a@b.c", out)

        code, out = self.run_cli("whoami")
        self.assertEqual((code, out.strip()), (0, "a@b.c"))

        code, out = self.run_cli("sync")
        self.assertEqual(code, 0)
        self.assertIn("Pulled 1 subjects, 1 tasks, 1 exams, 1 lectures", out)

        planner = Planner(self.data_dir)
        try:
            self.assertEqual([s.name for s in planner.subjects.list()], ["Physics"])
            self.assertEqual([t.title for t in planner.tasks.list()], ["Lab report"])
            self.assertEqual([e.id for e in planner.exams.list()], ["e1"])
            self.assertEqual([e.title for e in planner.checklist.lectures("s1")], ["Optics"])
        finally:
            planner.close()

        code, out = self.run_cli("logout")
        self.assertEqual(code, 0)
        self.assertIn(("POST", "/auth/v1/logout"), self.calls)
        code, _ = self.run_cli("sync")
        self.assertEqual(code, 1)

    def test_missing_configuration_is_an_error(self) -> None:
        with mock.patch.object(config, "SUPABASE_URL", None):
            code, out = self.run_cli("whoami")
        self.assertEqual(code, 1)
        self.assertIn("not configured", out)


class TestResolve(unittest.TestCase):
    def test_prefix_resolution(self) -> None:
        ids = ["abc123", "abd456", "xyz"]
        self.assertEqual(_resolve(ids, "abc", "task"), "abc123")
        self.assertEqual(_resolve(ids, "xyz", "task"), "xyz")
        with self.assertRaises(ValidationError):
            _resolve(ids, "ab", "task")
        with self.assertRaises(ValidationError):
            _resolve(ids, "q", "task")
        with self.assertRaises(ValidationError):
            _resolve(ids, "", "task")


if __name__ == "__main__":
    unittest.main()
