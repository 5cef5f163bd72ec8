import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from studyplanner.export_ics import export_events_to_ics
from studyplanner.views import CalendarEvent


class TestExportICS(unittest.TestCase):
    def test_export_creates_file_and_contains_calendar(self) -> None:
        events = [
            CalendarEvent(
                id="t1",
                title="Sheet 3, part 2",
                start=datetime(2024, 3, 1, 14, 0),
                end=datetime(2024, 3, 1, 14, 30),
                kind="task",
                color="#FF0000",
                subject_id="s1",
                notes="bring; calculator",
            ),
            CalendarEvent(
                id="e1",
                title="Final",
                start=datetime(2024, 3, 5),
                end=datetime(2024, 3, 5, 2, 0),
                kind="exam",
                color="#e5e7eb",
                all_day=True,
                subject_id="gone",
            ),
        ]

        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "sub" / "out.ics"
            n = export_events_to_ics(events, out, {"s1": "Math"})
            self.assertEqual(n, 2)
            raw = out.read_bytes().decode("utf-8")

        self.assertIn("\r\n", raw)
        text = raw.replace("\r\n", "\n")
        self.assertIn("BEGIN:VCALENDAR", text)
        self.assertEqual(text.count("BEGIN:VEVENT"), 2)
        self.assertIn("UID:task-t1@studyplanner", text)
        self.assertIn("DTSTART:20240301T140000", text)
        self.assertIn("DTEND:20240301T143000", text)
        self.assertIn("SUMMARY:Sheet 3\\, part 2", text)
        self.assertIn("CATEGORIES:Math", text)
        self.assertIn("DESCRIPTION:bring\\; calculator", text)

        self.assertIn("SUMMARY:Exam: Final", text)
        self.assertIn("DTSTART;VALUE=DATE:20240305", text)
        self.assertIn("DTEND;VALUE=DATE:20240306", text)
        self.assertEqual(text.count("CATEGORIES:"), 1)


if __name__ == "__main__":
    unittest.main()
