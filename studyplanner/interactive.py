from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from studyplanner import views
from studyplanner.errors import StudyPlannerError, ValidationError
from studyplanner.export_ics import export_events_to_ics
from studyplanner.model import ChecklistLecture, Exam, Subject, Task, parse_duration
from studyplanner.planner import Planner

console = Console()

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
COMPLETION_STYLES = {"not_started": "dim", "completed": "green", "reviewed": "blue"}


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str) -> str:
    return console.input(msg)


def _pick(items: Sequence[Any], label) -> Optional[Any]:
    """
    Print a numbered list and return the chosen item (None on blank/invalid input).
    """
    if not items:
        return None
    for i, item in enumerate(items, start=1):
        _println(f"{i}) {label(item)}")
    pick = _prompt("Choose number (blank = cancel): ").strip()
    if pick.isdigit() and 1 <= int(pick) <= len(items):
        return items[int(pick) - 1]
    return None


def _swatch(color: str) -> str:
    return f"[{color}]■[/]"


def run_interactive(planner: Planner, today: Optional[date] = None) -> None:
    """
    Interactive menu loop over one Planner.
    """
    while True:
        _print_header(planner, today or date.today())

        choice = _prompt(
            "\n[1] Dashboard (tasks + upcoming exams)\n"
            "[2] Add task\n"
            "[3] Toggle task done\n"
            "[4] Add exam\n"
            "[5] Subjects\n"
            "[6] Lecture checklist\n"
            "[7] Week agenda\n"
            "[8] Export .ics\n"
            "[0] Exit\n"
            "Select: "
        ).strip()

        if choice == "0":
            _println("Bye.")
            return

        try:
            if choice == "1":
                _flow_dashboard(planner, today or date.today())
            elif choice == "2":
                _flow_add_task(planner)
            elif choice == "3":
                _flow_toggle_task(planner)
            elif choice == "4":
                _flow_add_exam(planner)
            elif choice == "5":
                _flow_subjects(planner)
            elif choice == "6":
                _flow_checklist(planner)
            elif choice == "7":
                _flow_week(planner, today or date.today())
            elif choice == "8":
                _flow_export(planner)
            else:
                _println("Invalid choice.")
        except StudyPlannerError as e:
            _println(f"[red]{escape(str(e))}[/]")

        if planner.store.errors:
            _println(f"[yellow]Warning: {len(planner.store.errors)} storage problem(s); changes may not be saved to disk.[/]")


def _print_header(planner: Planner, today: date) -> None:
    tasks = planner.tasks.list()
    exams = views.upcoming(planner.exams.list(), today)
    _println("\n=== StudyPlanner (interactive) ===")
    _println(
        f"Subjects: {len(planner.subjects)} | Open tasks: {len(views.active(tasks))} | "
        f"Upcoming exams: {len(exams)}"
    )


def _subject_cell(subjects: List[Subject], subject_id: Optional[str]) -> str:
    name = views.subject_name(subjects, subject_id)
    if not name:
        return ""
    return f"{_swatch(views.subject_color(subjects, subject_id))} {escape(name)}"


def _when(record: Task | Exam) -> str:
    return f"{record.date} {record.time}" if record.time else record.date


def _flow_dashboard(planner: Planner, today: date) -> None:
    subjects = planner.subjects.list()
    tasks = views.sort_by_date(views.active(planner.tasks.list()))
    exams = views.upcoming(planner.exams.list(), today)

    table = Table(title="Open tasks", box=box.SIMPLE)
    table.add_column("When")
    table.add_column("Task")
    table.add_column("Subject")
    for t in tasks:
        table.add_row(_when(t), escape(t.title), _subject_cell(subjects, t.subject_id))
    console.print(table if tasks else "No open tasks.")

    table = Table(title="Upcoming exams", box=box.SIMPLE)
    table.add_column("When")
    table.add_column("Exam")
    table.add_column("Subject")
    table.add_column("In")
    for e in exams:
        try:
            days = f"{(date.fromisoformat(e.date) - today).days} d"
        except ValueError:
            days = "?"
        table.add_row(_when(e), f"[bold]{escape(e.title)}[/]", _subject_cell(subjects, e.subject_id), days)
    console.print(table if exams else "No upcoming exams.")


def _ask_date(msg: str) -> Optional[str]:
    raw = _prompt(msg).strip()
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date().isoformat()
    except ValueError:
        _println("Invalid date (expected YYYY-MM-DD).")
        return None


def _ask_time(msg: str) -> Optional[str]:
    raw = _prompt(msg).strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%H:%M").strftime("%H:%M")
    except ValueError:
        _println("Invalid time, saving as all-day.")
        return None


def _ask_duration(msg: str) -> Optional[str]:
    raw = _prompt(msg).strip()
    try:
        parse_duration(raw)
    except ValueError:
        raise ValidationError(f"Invalid duration {raw!r} (expected minutes, e.g. 30)") from None
    return raw or None


def _ask_subject(planner: Planner, optional: bool = True) -> Optional[Subject]:
    subjects = planner.subjects.list()
    if not subjects:
        return None
    _println("\nSubject:" + (" (blank = none)" if optional else ""))
    return _pick(subjects, lambda s: f"{_swatch(s.color)} {escape(s.name)}")


def _flow_add_task(planner: Planner) -> None:
    title = _prompt("Title: ").strip()
    if not title:
        _println("Cancelled.")
        return
    day = _ask_date("Date (YYYY-MM-DD): ")
    if day is None:
        return
    time = _ask_time("Time (HH:MM, blank = all day): ")
    duration = _ask_duration("Duration in minutes (blank = 60): ")
    subject = _ask_subject(planner)
    task = planner.tasks.add(
        Task(title=title, date=day, time=time, duration=duration, subject_id=subject.id if subject else None)
    )
    _println(f"Added task: {escape(task.title)}")


def _flow_toggle_task(planner: Planner) -> None:
    tasks = views.sort_by_date(planner.tasks.list())
    if not tasks:
        _println("No tasks.")
        return
    task = _pick(tasks, lambda t: f"({'x' if t.completed else ' '}) {_when(t)} {escape(t.title)}")
    if task is None:
        return
    updated = planner.tasks.toggle_completed(task.id)
    if updated is not None:
        _println(f"{'Completed' if updated.completed else 'Reopened'}: {escape(updated.title)}")


def _flow_add_exam(planner: Planner) -> None:
    subject = _ask_subject(planner, optional=False)
    if subject is None:
        _println("An exam needs a subject (add one under [5] first).")
        return
    title = _prompt("Title: ").strip()
    if not title:
        _println("Cancelled.")
        return
    day = _ask_date("Date (YYYY-MM-DD): ")
    if day is None:
        return
    time = _ask_time("Time (HH:MM, blank = all day): ")
    exam = planner.exams.add(Exam(title=title, date=day, subject_id=subject.id, time=time))
    _println(f"Added exam: {escape(exam.title)}")


def _flow_subjects(planner: Planner) -> None:
    subjects = planner.subjects.list()
    if subjects:
        table = Table(title="Subjects", box=box.SIMPLE)
        table.add_column("Subject")
        table.add_column("Sections")
        table.add_column("Lectures")
        for s in subjects:
            table.add_row(
                f"{_swatch(s.color)} {escape(s.name)}",
                escape(", ".join(sec.name for sec in s.sections)),
                str(len(planner.lectures.for_subject(s.id))),
            )
        console.print(table)
    else:
        _println("No subjects yet.")

    action = _prompt("(a) Add  (d) Delete  (blank) Back: ").strip().lower()
    if action == "a":
        name = _prompt("Name: ").strip()
        color = _prompt("Color #RRGGBB (blank = #3B82F6): ").strip() or "#3B82F6"
        subject = planner.subjects.add(Subject(name=name, color=color))
        _println(f"Added subject: {escape(subject.name)}")
    elif action == "d":
        subject = _pick(subjects, lambda s: escape(s.name))
        if subject is None:
            return
        confirm = _prompt(f"Delete {escape(subject.name)} with its exams and lectures? (y/N): ").strip().lower()
        if confirm == "y":
            planner.lifecycle.delete_subject(subject.id)
            _println(f"Deleted: {escape(subject.name)}")


def _checklist_table(planner: Planner, subject: Subject, entries: List[ChecklistLecture]) -> Table:
    difficulty = planner.checklist.difficulty_settings()
    completion = planner.checklist.completion_settings()
    table = Table(
        title=f"{escape(subject.name)}: {views.checklist_progress(entries):.0f}% done",
        box=box.SIMPLE,
    )
    table.add_column("#")
    table.add_column("Section")
    table.add_column("Lecture")
    table.add_column("Difficulty")
    table.add_column("Progress")
    for i, e in enumerate(entries, start=1):
        level = difficulty.get(e.status, difficulty["unknown"])
        state = completion.get(e.completed, completion["not_started"])
        style = COMPLETION_STYLES.get(e.completed, "dim")
        table.add_row(
            str(i), escape(e.section), escape(e.title), escape(level["label"]), f"[{style}]{escape(state['label'])}[/]"
        )
    return table


def _flow_checklist(planner: Planner) -> None:
    subject = _ask_subject(planner, optional=False)
    if subject is None:
        return

    while True:
        groups = views.group_checklist(planner.checklist.sections(), planner.checklist.lectures(subject.id))
        entries = [e for _, group in groups for e in group]
        if entries:
            console.print(_checklist_table(planner, subject, entries))
        else:
            _println(f"No checklist entries for {escape(subject.name)}.")

        action = _prompt(
            "(a) Add  (d <n>) Difficulty  (c <n>) Progress  (r <n>) Remove  (blank) Back: "
        ).strip().lower()
        if not action:
            return
        if action == "a":
            title = _prompt("Title: ").strip()
            sections = planner.checklist.sections()
            section = _pick(sections, escape) if sections else None
            planner.checklist.add(subject.id, ChecklistLecture(title=title, section=section or ""))
            continue

        cmd, _, num = action.partition(" ")
        if not num.strip().isdigit() or not 1 <= int(num) <= len(entries):
            _println("Invalid choice.")
            continue
        entry = entries[int(num) - 1]
        if cmd == "d":
            planner.checklist.cycle_difficulty(subject.id, entry.id)
        elif cmd == "c":
            planner.checklist.cycle_completion(subject.id, entry.id)
        elif cmd == "r":
            planner.checklist.remove(subject.id, entry.id)
        else:
            _println("Invalid choice.")


def _flow_week(planner: Planner, today: date) -> None:
    raw = _prompt("Any date of the week (YYYY-MM-DD, blank = this week): ").strip()
    try:
        day = datetime.strptime(raw, "%Y-%m-%d").date() if raw else today
    except ValueError:
        _println("Invalid date.")
        return

    events = planner.week(day)
    monday = day - timedelta(days=day.weekday())
    iso = monday.isocalendar()
    _println(f"\n=== Week {iso[0]}-W{iso[1]:02d} ===")
    if not events:
        _println("No events in that week.")
        return

    buckets: dict[str, list[views.CalendarEvent]] = {name: [] for name in WEEKDAYS}
    for ev in events:
        buckets[WEEKDAYS[ev.start.weekday()]].append(ev)

    table = Table(box=box.SIMPLE)
    for i, name in enumerate(WEEKDAYS):
        table.add_column(f"{name} {(monday + timedelta(days=i)).strftime('%d.%m')}")
    max_len = max(len(b) for b in buckets.values())
    for r in range(max_len):
        row = []
        for name in WEEKDAYS:
            if r < len(buckets[name]):
                ev = buckets[name][r]
                when = "" if ev.all_day else f"{ev.start:%H:%M} "
                title = escape(ev.title)
                row.append(f"{_swatch(ev.color)} {when}{'[bold]' + title + '[/]' if ev.kind == 'exam' else title}")
            else:
                row.append("")
        table.add_row(*row)
    console.print(table)


def _flow_export(planner: Planner) -> None:
    events = planner.calendar()
    if not events:
        _println("No tasks or exams to export.")
        return

    downloads = Path.home() / "Downloads"
    default_name = "studyplanner.ics"

    out_in = _prompt(f"Please enter desired file name, default is {default_name}: ").strip()
    out_path = downloads / (out_in or default_name)
    if out_path.suffix.lower() != ".ics":
        out_path = out_path.with_suffix(".ics")

    names = {s.id: s.name for s in planner.subjects.list()}
    n = export_events_to_ics(events, out_path, names)

    _println(f"\nExported {n} events.")
    _println(f"Saved to: {escape(str(out_path.resolve()))}")
    _println(
        "\nNext steps:\n"
        "- Google Calendar (desktop): Settings → Import & export → Import → choose this .ics file\n"
        "- iPhone/Android: send the .ics file to yourself and tap to import\n"
    )
