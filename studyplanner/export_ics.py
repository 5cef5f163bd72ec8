"""
iCalendar (.ics) export.

We convert derived calendar events (tasks and exams) into a calendar file that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar

Tasks without a time become all-day entries (DTSTART;VALUE=DATE).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

from studyplanner.views import CalendarEvent


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _dt_local(dt: datetime) -> str:
    return dt.strftime("%Y%m%dT%H%M00")


def export_events_to_ics(events: Iterable[CalendarEvent], out_path: str | Path, subject_names: dict[str, str] | None = None) -> int:
    """
    Export events to an .ics file. Returns number of exported events.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    names = subject_names or {}

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append("PRODID:-//StudyPlanner//EN")
    lines.append("CALSCALE:GREGORIAN")

    dtstamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    count = 0
    for ev in events:
        title = ev.title.strip() or "StudyPlanner Event"
        prefix = "Exam: " if ev.kind == "exam" else ""
        subject = names.get(ev.subject_id or "", "")

        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{_ics_escape(f'{ev.kind}-{ev.id}')}@studyplanner")
        lines.append(f"DTSTAMP:{dtstamp}")
        if ev.all_day:
            day = ev.start.date()
            lines.append(f"DTSTART;VALUE=DATE:{day.strftime('%Y%m%d')}")
            lines.append(f"DTEND;VALUE=DATE:{(day + timedelta(days=1)).strftime('%Y%m%d')}")
        else:
            lines.append(f"DTSTART:{_dt_local(ev.start)}")
            lines.append(f"DTEND:{_dt_local(ev.end)}")
        lines.append(f"SUMMARY:{_ics_escape(prefix + title)}")
        if subject:
            lines.append(f"CATEGORIES:{_ics_escape(subject)}")
        if ev.notes and ev.notes.strip():
            lines.append(f"DESCRIPTION:{_ics_escape(ev.notes.strip())}")
        lines.append("END:VEVENT")
        count += 1

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    out.write_text("\r\n".join(lines) + "\r\n", encoding="utf-8")
    return count
