"""
CLI (Command Line Interface).

This module provides quick terminal commands over the local planner data, e.g.:

    studyplanner subjects add "Linear Algebra" --color "#FF8800"
    studyplanner tasks add "Sheet 3" --date 2024-03-01 --time 14:00 --duration 30 --subject <id>
    studyplanner exams list
    studyplanner lectures add <subject_id> "Eigenvalues" --section <section_id>
    studyplanner checklist cycle <subject_id> <lecture_id>
    studyplanner calendar --week 2024-03-01
    studyplanner export <file.ics>
    studyplanner login <email>
    studyplanner sync
    studyplanner interactive
    studyplanner serve

Ids may be abbreviated to any unique prefix (the listings show 8 characters).

Note:
- The interactive UI lives in studyplanner/interactive.py
- This CLI is intentionally simple and prints plain text (no rich formatting)
"""

from __future__ import annotations

import argparse
import getpass
import logging
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Optional

from studyplanner import views
from studyplanner.auth import AuthClient
from studyplanner.config import setup_logging
from studyplanner.errors import StudyPlannerError, ValidationError
from studyplanner.export_ics import export_events_to_ics
from studyplanner.model import ChecklistLecture, Exam, Lecture, Subject, Task, parse_duration
from studyplanner.planner import Planner
from studyplanner.remote import RemoteBackend, pull_all

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _short(record_id: str) -> str:
    return record_id[:8]


def _resolve(ids: Iterable[str], prefix: str, what: str) -> str:
    """
    Expand an abbreviated id. Exact matches win; otherwise the prefix must be unique.
    """
    prefix = (prefix or "").strip()
    if not prefix:
        raise ValidationError(f"Please provide a {what} id.")
    ids = list(ids)
    if prefix in ids:
        return prefix
    matches = [i for i in ids if i.startswith(prefix)]
    if not matches:
        raise ValidationError(f"Unknown {what}: {prefix}")
    if len(matches) > 1:
        raise ValidationError(f"Ambiguous {what} id '{prefix}' ({len(matches)} matches)")
    return matches[0]


def _subject_id(planner: Planner, prefix: str) -> str:
    return _resolve((s.id for s in planner.subjects.list()), prefix, "subject")


def _optional_subject_id(planner: Planner, prefix: Optional[str]) -> Optional[str]:
    return _subject_id(planner, prefix) if prefix else None


def _check_date(value: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid date {value!r} (expected YYYY-MM-DD)") from None
    return value


def _check_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        datetime.strptime(value, "%H:%M")
    except ValueError:
        raise ValidationError(f"Invalid time {value!r} (expected HH:MM)") from None
    return value


def _check_duration(value: Optional[str]) -> Optional[str]:
    try:
        parse_duration(value)
    except ValueError:
        raise ValidationError(f"Invalid duration {value!r} (expected minutes, e.g. 30)") from None
    return value.strip() if value and value.strip() else None


def _when(record: Any) -> str:
    return f"{record.date} {record.time}" if record.time else f"{record.date} (all day)"


def _task_line(task: Task, subjects: List[Subject]) -> str:
    mark = "x" if task.completed else " "
    bits = [f"[{mark}] {_short(task.id)}", _when(task), task.title]
    if task.duration:
        bits.append(f"{task.duration} min")
    name = views.subject_name(subjects, task.subject_id)
    if name:
        bits.append(name)
    return " | ".join(bits)


def _exam_line(exam: Exam, subjects: List[Subject]) -> str:
    mark = "x" if exam.completed else " "
    name = views.subject_name(subjects, exam.subject_id, fallback="Unknown Subject")
    return " | ".join([f"[{mark}] {_short(exam.id)}", _when(exam), exam.title, name])


def _event_line(ev: views.CalendarEvent) -> str:
    when = "all day" if ev.all_day else f"{ev.start:%H:%M}-{ev.end:%H:%M}"
    return f"{when} | {ev.kind} | {ev.title}"


# ---------------------------------------------------------------------------
# subjects
# ---------------------------------------------------------------------------


def _cmd_subjects_list(args: argparse.Namespace, planner: Planner) -> int:
    subjects = planner.subjects.list()
    if not subjects:
        print("No subjects yet.")
        return 0
    for s in subjects:
        print(f"{_short(s.id)} | {s.name} | {s.color} | {len(s.sections)} sections | {len(s.statuses)} statuses")
    return 0


def _cmd_subjects_add(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.add(Subject(name=args.name.strip(), color=args.color))
    print(f"Added subject: {subject.name} ({_short(subject.id)})")
    return 0


def _cmd_subjects_edit(args: argparse.Namespace, planner: Planner) -> int:
    changes: dict[str, Any] = {}
    if args.name:
        changes["name"] = args.name.strip()
    if args.color:
        changes["color"] = args.color
    if not changes:
        print("Nothing to change (use --name and/or --color).")
        return 1
    subject = planner.subjects.update(_subject_id(planner, args.subject_id), **changes)
    assert subject is not None
    print(f"Updated subject: {subject.name} | {subject.color}")
    return 0


def _cmd_subjects_remove(args: argparse.Namespace, planner: Planner) -> int:
    sid = _subject_id(planner, args.subject_id)
    before = (len(planner.tasks), len(planner.exams), len(planner.lectures))
    planner.lifecycle.delete_subject(sid)
    after = (len(planner.tasks), len(planner.exams), len(planner.lectures))
    print(
        f"Removed subject {_short(sid)} "
        f"(dropped {before[0] - after[0]} tasks, {before[1] - after[1]} exams, {before[2] - after[2]} lectures)"
    )
    return 0


# ---------------------------------------------------------------------------
# tasks / exams
# ---------------------------------------------------------------------------


def _filtered(records: List[Any], args: argparse.Namespace, planner: Planner) -> List[Any]:
    records = views.by_subject(records, _optional_subject_id(planner, args.subject))
    if args.completed:
        return views.completed(records)
    if not args.all:
        return views.active(records)
    return records


def _cmd_tasks_list(args: argparse.Namespace, planner: Planner) -> int:
    subjects = planner.subjects.list()
    tasks = views.sort_by_date(_filtered(planner.tasks.list(), args, planner))
    if not tasks:
        print("No tasks.")
        return 0
    for t in tasks:
        print(_task_line(t, subjects))
    return 0


def _cmd_tasks_add(args: argparse.Namespace, planner: Planner) -> int:
    task = planner.tasks.add(
        Task(
            title=args.title.strip(),
            date=_check_date(args.date),
            time=_check_time(args.time),
            duration=_check_duration(args.duration),
            notes=(args.notes or "").strip() or None,
            subject_id=_optional_subject_id(planner, args.subject),
        )
    )
    print(f"Added task: {task.title} ({_short(task.id)})")
    return 0


def _cmd_tasks_done(args: argparse.Namespace, planner: Planner) -> int:
    tid = _resolve((t.id for t in planner.tasks.list()), args.task_id, "task")
    task = planner.tasks.toggle_completed(tid)
    assert task is not None
    print(f"{'Completed' if task.completed else 'Reopened'}: {task.title}")
    return 0


def _cmd_tasks_remove(args: argparse.Namespace, planner: Planner) -> int:
    tid = _resolve((t.id for t in planner.tasks.list()), args.task_id, "task")
    planner.tasks.remove(tid)
    print(f"Removed task {_short(tid)}")
    return 0


def _cmd_exams_list(args: argparse.Namespace, planner: Planner) -> int:
    subjects = planner.subjects.list()
    exams = views.sort_by_date(_filtered(planner.exams.list(), args, planner))
    if not exams:
        print("No exams.")
        return 0
    for e in exams:
        print(_exam_line(e, subjects))
    return 0


def _cmd_exams_add(args: argparse.Namespace, planner: Planner) -> int:
    exam = planner.exams.add(
        Exam(
            title=args.title.strip(),
            date=_check_date(args.date),
            subject_id=_subject_id(planner, args.subject),
            time=_check_time(args.time),
            notes=(args.notes or "").strip() or None,
        )
    )
    print(f"Added exam: {exam.title} ({_short(exam.id)})")
    return 0


def _cmd_exams_done(args: argparse.Namespace, planner: Planner) -> int:
    eid = _resolve((e.id for e in planner.exams.list()), args.exam_id, "exam")
    exam = planner.exams.toggle_completed(eid)
    assert exam is not None
    print(f"{'Completed' if exam.completed else 'Reopened'}: {exam.title}")
    return 0


def _cmd_exams_remove(args: argparse.Namespace, planner: Planner) -> int:
    eid = _resolve((e.id for e in planner.exams.list()), args.exam_id, "exam")
    planner.exams.remove(eid)
    print(f"Removed exam {_short(eid)}")
    return 0


# ---------------------------------------------------------------------------
# lectures / sections / statuses
# ---------------------------------------------------------------------------


def _cmd_lectures_list(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.require(_subject_id(planner, args.subject_id))
    lectures = planner.lectures.for_subject(subject.id)
    if not lectures:
        print(f"No lectures for {subject.name}.")
        return 0
    for section, members in views.group_by_section(subject, lectures):
        if not members:
            continue
        print(section.name if section else "(no section)")
        for lec in members:
            print(f"  - {_short(lec.id)} | {lec.name} | {lec.status}" + (f" | {lec.notes}" if lec.notes else ""))
    return 0


def _section_id(subject: Subject, prefix: str) -> str:
    return _resolve((s.id for s in subject.sections), prefix, "section")


def _cmd_lectures_add(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.require(_subject_id(planner, args.subject_id))
    section_id = _section_id(subject, args.section) if args.section else ""
    lecture = planner.lectures.add(Lecture(name=args.name.strip(), subject_id=subject.id, section_id=section_id))
    print(f"Added lecture: {lecture.name} ({_short(lecture.id)}) [{lecture.status}]")
    return 0


def _lecture_id(planner: Planner, prefix: str) -> str:
    return _resolve((lec.id for lec in planner.lectures.list()), prefix, "lecture")


def _cmd_lectures_status(args: argparse.Namespace, planner: Planner) -> int:
    lid = _lecture_id(planner, args.lecture_id)
    lecture = planner.lectures.get(lid)
    assert lecture is not None
    subject = planner.subjects.require(lecture.subject_id)
    if args.status not in subject.status_names():
        raise ValidationError(f"Unknown status '{args.status}' (choose from: {', '.join(subject.status_names())})")
    planner.lectures.set_status(lid, args.status)
    print(f"{lecture.name}: {args.status}")
    return 0


def _cmd_lectures_notes(args: argparse.Namespace, planner: Planner) -> int:
    lid = _lecture_id(planner, args.lecture_id)
    lecture = planner.lectures.set_notes(lid, args.text)
    assert lecture is not None
    print(f"Notes saved for {lecture.name}")
    return 0


def _cmd_lectures_remove(args: argparse.Namespace, planner: Planner) -> int:
    lid = _lecture_id(planner, args.lecture_id)
    planner.lectures.remove(lid)
    print(f"Removed lecture {_short(lid)}")
    return 0


def _cmd_sections_add(args: argparse.Namespace, planner: Planner) -> int:
    section = planner.subjects.add_section(_subject_id(planner, args.subject_id), args.name)
    print(f"Added section: {section.name} ({_short(section.id)})")
    return 0


def _cmd_sections_rename(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.require(_subject_id(planner, args.subject_id))
    section = planner.lifecycle.rename_section(subject.id, _section_id(subject, args.section_id), args.name)
    print(f"Renamed section to: {section.name}")
    return 0


def _cmd_sections_remove(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.require(_subject_id(planner, args.subject_id))
    moved = planner.lifecycle.delete_section(subject.id, _section_id(subject, args.section_id))
    print(f"Removed section ({moved} lectures moved to 'no section')")
    return 0


def _cmd_statuses_add(args: argparse.Namespace, planner: Planner) -> int:
    status = planner.subjects.add_status(_subject_id(planner, args.subject_id), args.name, args.color)
    print(f"Added status: {status.name} ({status.color})")
    return 0


def _cmd_statuses_color(args: argparse.Namespace, planner: Planner) -> int:
    status = planner.subjects.recolor_status(_subject_id(planner, args.subject_id), args.name, args.color)
    print(f"Status {status.name} is now {status.color}")
    return 0


def _cmd_statuses_remove(args: argparse.Namespace, planner: Planner) -> int:
    moved = planner.lifecycle.delete_status(_subject_id(planner, args.subject_id), args.name)
    print(f"Removed status {args.name} ({moved} lectures reassigned)")
    return 0


# ---------------------------------------------------------------------------
# checklist
# ---------------------------------------------------------------------------


def _checklist_id(planner: Planner, subject_id: str, prefix: str) -> str:
    return _resolve((e.id for e in planner.checklist.lectures(subject_id)), prefix, "lecture")


def _cmd_checklist_list(args: argparse.Namespace, planner: Planner) -> int:
    subject = planner.subjects.require(_subject_id(planner, args.subject_id))
    entries = planner.checklist.lectures(subject.id)
    if not entries:
        print(f"No checklist entries for {subject.name}.")
        return 0
    difficulty = planner.checklist.difficulty_settings()
    completion = planner.checklist.completion_settings()
    print(f"{subject.name}: {views.checklist_progress(entries):.0f}% done")
    for label, members in views.group_checklist(planner.checklist.sections(), entries):
        print(label or "(no section)")
        for e in members:
            level = difficulty.get(e.status, difficulty["unknown"])["label"]
            state = completion[e.completed]["label"]
            print(f"  - {_short(e.id)} | {e.title} | {level} | {state}")
    return 0


def _cmd_checklist_add(args: argparse.Namespace, planner: Planner) -> int:
    sid = _subject_id(planner, args.subject_id)
    entry = planner.checklist.add(sid, ChecklistLecture(title=args.title, section=args.section or ""))
    print(f"Added checklist entry: {entry.title} ({_short(entry.id)})")
    return 0


def _cmd_checklist_cycle(args: argparse.Namespace, planner: Planner) -> int:
    sid = _subject_id(planner, args.subject_id)
    entry = planner.checklist.cycle_difficulty(sid, _checklist_id(planner, sid, args.lecture_id))
    assert entry is not None
    print(f"{entry.title}: {planner.checklist.difficulty_settings()[entry.status]['label']}")
    return 0


def _cmd_checklist_complete(args: argparse.Namespace, planner: Planner) -> int:
    sid = _subject_id(planner, args.subject_id)
    entry = planner.checklist.cycle_completion(sid, _checklist_id(planner, sid, args.lecture_id))
    assert entry is not None
    print(f"{entry.title}: {planner.checklist.completion_settings()[entry.completed]['label']}")
    return 0


def _cmd_checklist_remove(args: argparse.Namespace, planner: Planner) -> int:
    sid = _subject_id(planner, args.subject_id)
    lid = _checklist_id(planner, sid, args.lecture_id)
    planner.checklist.remove(sid, lid)
    print(f"Removed checklist entry {_short(lid)}")
    return 0


def _cmd_checklist_sections(args: argparse.Namespace, planner: Planner) -> int:
    cl = planner.checklist
    if args.add:
        print(f"Added section: {cl.add_section(args.add)}")
    elif args.rename:
        old, new = args.rename
        n = cl.rename_section(old, new)
        print(f"Renamed section '{old}' to '{new.strip()}' ({n} entries)")
    elif args.remove:
        n = cl.delete_section(args.remove)
        print(f"Removed section '{args.remove}' ({n} entries moved to 'no section')")
    else:
        sections = cl.sections()
        print("\n".join(sections) if sections else "No sections.")
    return 0


def _cmd_checklist_difficulty(args: argparse.Namespace, planner: Planner) -> int:
    cl = planner.checklist
    if args.add:
        key, label = args.add
        cl.add_difficulty(key, label, description=args.description or "")
        print(f"Added difficulty: {key}")
    elif args.remove:
        n = cl.remove_difficulty(args.remove)
        print(f"Removed difficulty '{args.remove}' ({n} entries reset to Unknown)")
    else:
        for key, setting in cl.difficulty_settings().items():
            print(f"{key} | {setting['label']} | {setting.get('description', '')}")
    return 0


# ---------------------------------------------------------------------------
# calendar / export
# ---------------------------------------------------------------------------


def _cmd_calendar(args: argparse.Namespace, planner: Planner) -> int:
    if args.week:
        events = planner.week(date.fromisoformat(_check_date(args.week)))
    else:
        events = sorted(planner.calendar(), key=lambda ev: ev.start)

    if not events:
        print("No events.")
        return 0

    current = None
    for ev in events:
        day = ev.start.date()
        if day != current:
            print(f"\n{day.isoformat()} ({day.strftime('%a')})")
            current = day
        print(f"  - {_event_line(ev)}")
    return 0


def _cmd_export(args: argparse.Namespace, planner: Planner) -> int:
    """
    Export tasks and exams into an iCalendar (.ics) file.
    """
    out_path = (args.out or "").strip()
    if not out_path:
        print("Please provide output .ics path.")
        return 1

    events = planner.calendar()
    if not events:
        print("No events to export.")
        return 0

    names = {s.id: s.name for s in planner.subjects.list()}
    n = export_events_to_ics(events, out_path, names)
    print(f"Exported {n} events to: {out_path}")
    return 0


# ---------------------------------------------------------------------------
# Account & hosted backend
# ---------------------------------------------------------------------------


def _password(args: argparse.Namespace) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


def _cmd_signup(args: argparse.Namespace, planner: Planner) -> int:
    auth = AuthClient.from_config(planner.store)
    auth.sign_up(args.email.strip(), _password(args), args.name.strip())
    print(f"Signed up {args.email}. Check your inbox to confirm the address.")
    return 0


def _cmd_login(args: argparse.Namespace, planner: Planner) -> int:
    auth = AuthClient.from_config(planner.store)
    # the CLI only lives for one command, so the session is always remembered
    auth.sign_in(args.email.strip(), _password(args), remember_me=True)
    print(f"Signed in as {args.email}")
    return 0


def _cmd_logout(args: argparse.Namespace, planner: Planner) -> int:
    auth = AuthClient.from_config(planner.store)
    if not auth.access_token:
        print("Not signed in.")
        return 0
    auth.sign_out()
    print("Signed out.")
    return 0


def _cmd_reset_password(args: argparse.Namespace, planner: Planner) -> int:
    AuthClient.from_config(planner.store).reset_password(args.email.strip())
    print(f"Password reset mail sent to {args.email}")
    return 0


def _cmd_whoami(args: argparse.Namespace, planner: Planner) -> int:
    user = AuthClient.from_config(planner.store).get_current_user()
    if user is None:
        print("Not signed in.")
        return 1
    print(user.get("email") or user.get("id"))
    return 0


def _cmd_sync(args: argparse.Namespace, planner: Planner) -> int:
    """
    Replace the local data with the signed-in user's data from the hosted backend.
    """
    auth = AuthClient.from_config(planner.store)
    user = auth.require_user()
    backend = RemoteBackend.from_config(auth.access_token)
    counts = pull_all(planner, backend, user["id"])
    print("Pulled " + ", ".join(f"{n} {what}" for what, n in counts.items()))
    return 0


def _cmd_interactive(args: argparse.Namespace, planner: Planner) -> int:
    from studyplanner.interactive import run_interactive

    run_interactive(planner)
    return 0


def _cmd_serve(args: argparse.Namespace, planner: Optional[Planner]) -> int:
    import uvicorn

    uvicorn.run("studyplanner.api:app", host=args.host, port=args.port)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_filters(p: argparse.ArgumentParser) -> None:
    p.add_argument("--subject", type=str, default=None, help="Only records of this subject")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--completed", action="store_true", help="Only completed records")
    group.add_argument("--all", action="store_true", help="Active and completed records")


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="studyplanner", description="StudyPlanner CLI")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory with the planner's JSON files")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (e.g. INFO, DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    def command(parent: Any, name: str, handler: Callable[..., int], help: str) -> argparse.ArgumentParser:
        p = parent.add_parser(name, help=help)
        p.set_defaults(handler=handler)
        return p

    # subjects
    p_subjects = sub.add_parser("subjects", help="Manage subjects").add_subparsers(dest="action", required=True)
    command(p_subjects, "list", _cmd_subjects_list, "List subjects")
    p = command(p_subjects, "add", _cmd_subjects_add, "Add a subject")
    p.add_argument("name", type=str)
    p.add_argument("--color", type=str, default="#3B82F6", help="Color as #RRGGBB")
    p = command(p_subjects, "edit", _cmd_subjects_edit, "Rename or recolor a subject")
    p.add_argument("subject_id", type=str)
    p.add_argument("--name", type=str, default=None)
    p.add_argument("--color", type=str, default=None)
    p = command(p_subjects, "remove", _cmd_subjects_remove, "Remove a subject (and its exams/lectures)")
    p.add_argument("subject_id", type=str)

    # tasks
    p_tasks = sub.add_parser("tasks", help="Manage tasks").add_subparsers(dest="action", required=True)
    p = command(p_tasks, "list", _cmd_tasks_list, "List tasks (active by default)")
    _add_filters(p)
    p = command(p_tasks, "add", _cmd_tasks_add, "Add a task")
    p.add_argument("title", type=str)
    p.add_argument("--date", type=str, required=True, help="YYYY-MM-DD")
    p.add_argument("--time", type=str, default=None, help="HH:MM (omit for all-day)")
    p.add_argument("--duration", type=str, default=None, help="Minutes (default window: 60)")
    p.add_argument("--subject", type=str, default=None)
    p.add_argument("--notes", type=str, default=None)
    p = command(p_tasks, "done", _cmd_tasks_done, "Toggle a task's completed flag")
    p.add_argument("task_id", type=str)
    p = command(p_tasks, "remove", _cmd_tasks_remove, "Remove a task")
    p.add_argument("task_id", type=str)

    # exams
    p_exams = sub.add_parser("exams", help="Manage exams").add_subparsers(dest="action", required=True)
    p = command(p_exams, "list", _cmd_exams_list, "List exams (upcoming by default)")
    _add_filters(p)
    p = command(p_exams, "add", _cmd_exams_add, "Add an exam")
    p.add_argument("title", type=str)
    p.add_argument("--date", type=str, required=True, help="YYYY-MM-DD")
    p.add_argument("--subject", type=str, required=True)
    p.add_argument("--time", type=str, default=None, help="HH:MM")
    p.add_argument("--notes", type=str, default=None)
    p = command(p_exams, "done", _cmd_exams_done, "Toggle an exam's completed flag")
    p.add_argument("exam_id", type=str)
    p = command(p_exams, "remove", _cmd_exams_remove, "Remove an exam")
    p.add_argument("exam_id", type=str)

    # lectures (sectioned)
    p_lectures = sub.add_parser("lectures", help="Manage lectures of a subject").add_subparsers(
        dest="action", required=True
    )
    p = command(p_lectures, "list", _cmd_lectures_list, "List lectures grouped by section")
    p.add_argument("subject_id", type=str)
    p = command(p_lectures, "add", _cmd_lectures_add, "Add a lecture")
    p.add_argument("subject_id", type=str)
    p.add_argument("name", type=str)
    p.add_argument("--section", type=str, default=None, help="Section id")
    p = command(p_lectures, "status", _cmd_lectures_status, "Set a lecture's status")
    p.add_argument("lecture_id", type=str)
    p.add_argument("status", type=str)
    p = command(p_lectures, "notes", _cmd_lectures_notes, "Replace a lecture's notes")
    p.add_argument("lecture_id", type=str)
    p.add_argument("text", type=str)
    p = command(p_lectures, "remove", _cmd_lectures_remove, "Remove a lecture")
    p.add_argument("lecture_id", type=str)

    p_sections = sub.add_parser("sections", help="Manage a subject's sections").add_subparsers(
        dest="action", required=True
    )
    p = command(p_sections, "add", _cmd_sections_add, "Add a section")
    p.add_argument("subject_id", type=str)
    p.add_argument("name", type=str)
    p = command(p_sections, "rename", _cmd_sections_rename, "Rename a section")
    p.add_argument("subject_id", type=str)
    p.add_argument("section_id", type=str)
    p.add_argument("name", type=str)
    p = command(p_sections, "remove", _cmd_sections_remove, "Remove a section")
    p.add_argument("subject_id", type=str)
    p.add_argument("section_id", type=str)

    p_statuses = sub.add_parser("statuses", help="Manage a subject's statuses").add_subparsers(
        dest="action", required=True
    )
    p = command(p_statuses, "add", _cmd_statuses_add, "Add a status")
    p.add_argument("subject_id", type=str)
    p.add_argument("name", type=str)
    p.add_argument("--color", type=str, default="#3B82F6")
    p = command(p_statuses, "color", _cmd_statuses_color, "Change a status color")
    p.add_argument("subject_id", type=str)
    p.add_argument("name", type=str)
    p.add_argument("color", type=str)
    p = command(p_statuses, "remove", _cmd_statuses_remove, "Remove a status")
    p.add_argument("subject_id", type=str)
    p.add_argument("name", type=str)

    # checklist (flat)
    p_check = sub.add_parser("checklist", help="Lecture checklist per subject").add_subparsers(
        dest="action", required=True
    )
    p = command(p_check, "list", _cmd_checklist_list, "Show a subject's checklist")
    p.add_argument("subject_id", type=str)
    p = command(p_check, "add", _cmd_checklist_add, "Add a checklist entry")
    p.add_argument("subject_id", type=str)
    p.add_argument("title", type=str)
    p.add_argument("--section", type=str, default=None, help="Section label")
    p = command(p_check, "cycle", _cmd_checklist_cycle, "Advance an entry's difficulty")
    p.add_argument("subject_id", type=str)
    p.add_argument("lecture_id", type=str)
    p = command(p_check, "complete", _cmd_checklist_complete, "Advance an entry's completion")
    p.add_argument("subject_id", type=str)
    p.add_argument("lecture_id", type=str)
    p = command(p_check, "remove", _cmd_checklist_remove, "Remove a checklist entry")
    p.add_argument("subject_id", type=str)
    p.add_argument("lecture_id", type=str)
    p = command(p_check, "sections", _cmd_checklist_sections, "List or edit section labels")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--add", type=str, metavar="NAME")
    group.add_argument("--rename", type=str, nargs=2, metavar=("OLD", "NEW"))
    group.add_argument("--remove", type=str, metavar="NAME")
    p = command(p_check, "difficulty", _cmd_checklist_difficulty, "List or edit difficulty levels")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--add", type=str, nargs=2, metavar=("KEY", "LABEL"))
    group.add_argument("--remove", type=str, metavar="KEY")
    p.add_argument("--description", type=str, default=None)

    # calendar & co
    p = command(sub, "calendar", _cmd_calendar, "Show tasks and exams as calendar events")
    p.add_argument("--week", type=str, default=None, help="Any date of the week to show (YYYY-MM-DD)")
    p = command(sub, "export", _cmd_export, "Export tasks and exams to .ics")
    p.add_argument("out", type=str, help="Output file path (e.g. out.ics)")
    # account & hosted backend
    p = command(sub, "signup", _cmd_signup, "Create an account")
    p.add_argument("email", type=str)
    p.add_argument("name", type=str)
    p.add_argument("--password", type=str, default=None, help="Asked for when omitted")
    p = command(sub, "login", _cmd_login, "Sign in (the session is remembered)")
    p.add_argument("email", type=str)
    p.add_argument("--password", type=str, default=None, help="Asked for when omitted")
    command(sub, "logout", _cmd_logout, "Sign out")
    p = command(sub, "reset-password", _cmd_reset_password, "Send a password reset mail")
    p.add_argument("email", type=str)
    command(sub, "whoami", _cmd_whoami, "Show the signed-in user")
    command(sub, "sync", _cmd_sync, "Replace local data with your data from the hosted backend")

    command(sub, "interactive", _cmd_interactive, "Interactive menu mode")
    p = command(sub, "serve", _cmd_serve, "Run the HTTP status endpoint")
    p.add_argument("--host", type=str, default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "serve":
        raise SystemExit(_cmd_serve(args, None))

    planner = Planner(args.data_dir)
    try:
        code = args.handler(args, planner)
    except StudyPlannerError as e:
        print(f"Error: {e}")
        code = 1
    finally:
        planner.close()

    if planner.store.errors:
        print(f"Warning: {len(planner.store.errors)} storage problem(s); changes may not be saved to disk.")
        for err in planner.store.errors:
            logger.debug("%s", err)

    raise SystemExit(code)
