"""
Per-subject lecture checklist.

Every subject has an ordered list of checklist entries (stored together under
`subject_lectures`, keyed by subject id). Entries carry:
- a free-text section label taken from the global `lecture_sections` list
- a difficulty key from `statusSettings` (cycled on click)
- a completion state from `completionStatus` (not_started -> completed -> reviewed)

Section rename/delete and difficulty removal rewrite the affected entries inside
one store batch, so callers never observe a half-applied change.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from studyplanner.errors import ValidationError
from studyplanner.model import COMPLETION_ORDER, ChecklistLecture, new_id
from studyplanner.storage import CollectionStore

logger = logging.getLogger(__name__)


DEFAULT_DIFFICULTY: Dict[str, Dict[str, str]] = {
    "unknown": {
        "label": "Unknown",
        "description": "Haven't assessed the difficulty level yet",
        "color": "bg-gray-100 text-gray-700",
        "bgColor": "bg-gray-100",
        "textColor": "text-gray-700",
    },
    "easy": {
        "label": "Easy",
        "description": "Basic concepts, quick to understand",
        "color": "bg-green-100 text-green-700",
        "bgColor": "bg-green-100",
        "textColor": "text-green-700",
    },
    "medium": {
        "label": "Medium",
        "description": "Requires focus, manageable with practice",
        "color": "bg-yellow-100 text-yellow-700",
        "bgColor": "bg-yellow-100",
        "textColor": "text-yellow-700",
    },
    "hard": {
        "label": "Hard",
        "description": "Complex concepts, needs extra attention",
        "color": "bg-orange-100 text-orange-700",
        "bgColor": "bg-orange-100",
        "textColor": "text-orange-700",
    },
    "very_hard": {
        "label": "Very Hard",
        "description": "Challenging material, requires significant effort",
        "color": "bg-red-100 text-red-700",
        "bgColor": "bg-red-100",
        "textColor": "text-red-700",
    },
}

DEFAULT_COMPLETION: Dict[str, Dict[str, str]] = {
    "not_started": {"label": "Not Started", "color": "gray", "description": "Lecture not yet started"},
    "completed": {"label": "Completed", "color": "green", "description": "Lecture completed"},
    "reviewed": {"label": "Reviewed", "color": "blue", "description": "Lecture reviewed and mastered"},
}


# ---------------------------------------------------------------------------
# Cycling rules
# ---------------------------------------------------------------------------


def next_status(current: str, keys: Sequence[str]) -> str:
    """
    Advance to the next configured key, wrapping around.

    An unknown `current` counts as index -1, i.e. the result is keys[0].
    """
    if not keys:
        raise ValueError("No statuses configured")
    try:
        idx = list(keys).index(current)
    except ValueError:
        idx = -1
    return keys[(idx + 1) % len(keys)]


def next_completion(current: Optional[str]) -> str:
    return next_status(current if current in COMPLETION_ORDER else COMPLETION_ORDER[0], COMPLETION_ORDER)


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------


class LectureChecklist:
    LECTURES_KEY = "subject_lectures"
    SECTIONS_KEY = "lecture_sections"
    DIFFICULTY_KEY = "statusSettings"
    COMPLETION_KEY = "completionStatus"

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    # -- normalization ---------------------------------------------------

    @staticmethod
    def _normalize_lectures(raw: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
        out: Dict[str, List[Dict[str, Any]]] = {}
        for subject_id, items in raw.items():
            if not isinstance(items, list):
                logger.warning("Skipping malformed checklist for subject %s", subject_id)
                continue
            entries: List[Dict[str, Any]] = []
            for item in items:
                try:
                    if not isinstance(item, dict):
                        raise ValueError("entry is not an object")
                    entries.append(ChecklistLecture.from_dict(item).to_dict())
                except ValueError as e:
                    logger.warning("Skipping malformed checklist entry of subject %s: %s", subject_id, e)
            out[subject_id] = entries
        return out

    @staticmethod
    def _normalize_sections(raw: List[Any]) -> List[str]:
        out: List[str] = []
        for name in raw:
            if isinstance(name, str) and name.strip() and name not in out:
                out.append(name)
        return out

    @staticmethod
    def _normalize_difficulty(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        # built-ins first (they can never disappear), then user additions in stored order
        out: Dict[str, Dict[str, Any]] = {}
        for key, default in DEFAULT_DIFFICULTY.items():
            stored = raw.get(key)
            out[key] = stored if isinstance(stored, dict) and stored.get("label") else dict(default)
        for key, value in raw.items():
            if key in out:
                continue
            if isinstance(value, dict) and isinstance(value.get("label"), str):
                out[key] = value
        return out

    @staticmethod
    def _normalize_completion(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for key, default in DEFAULT_COMPLETION.items():
            stored = raw.get(key)
            out[key] = stored if isinstance(stored, dict) and stored.get("label") else dict(default)
        return out

    # -- settings --------------------------------------------------------

    def difficulty_settings(self) -> Dict[str, Dict[str, Any]]:
        return self.store.read(self.DIFFICULTY_KEY, DEFAULT_DIFFICULTY, self._normalize_difficulty)

    def completion_settings(self) -> Dict[str, Dict[str, Any]]:
        return self.store.read(self.COMPLETION_KEY, DEFAULT_COMPLETION, self._normalize_completion)

    def add_difficulty(
        self,
        key: str,
        label: str,
        description: str = "",
        bg_color: str = "bg-gray-100",
        text_color: str = "text-gray-700",
    ) -> Dict[str, Any]:
        key = (key or "").strip()
        label = (label or "").strip()
        if not key or not label:
            raise ValidationError("Difficulty key and label are required")
        settings = self.difficulty_settings()
        if key in settings:
            raise ValidationError(f"Difficulty already exists: {key}")
        entry = {
            "label": label,
            "description": description,
            "color": f"{bg_color} {text_color}",
            "bgColor": bg_color,
            "textColor": text_color,
        }
        settings[key] = entry
        self.store.write(self.DIFFICULTY_KEY, settings)
        return entry

    def remove_difficulty(self, key: str) -> int:
        """
        Remove a user-defined difficulty. Entries using it fall back to 'unknown'.
        Returns the number of reassigned entries.
        """
        if key in DEFAULT_DIFFICULTY:
            raise ValidationError(f"Built-in difficulty cannot be removed: {key}")
        settings = self.difficulty_settings()
        if key not in settings:
            raise ValidationError(f"Unknown difficulty: {key}")
        del settings[key]

        changed = 0
        lectures = self._all_raw()
        for entries in lectures.values():
            for entry in entries:
                if entry["status"] == key:
                    entry["status"] = "unknown"
                    changed += 1

        with self.store.batch():
            self.store.write(self.DIFFICULTY_KEY, settings)
            self.store.write(self.LECTURES_KEY, lectures)
        return changed

    # -- sections --------------------------------------------------------

    def sections(self) -> List[str]:
        return self.store.read(self.SECTIONS_KEY, [], self._normalize_sections)

    def add_section(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Section name is required")
        sections = self.sections()
        if name in sections:
            raise ValidationError(f"Section already exists: {name}")
        self.store.write(self.SECTIONS_KEY, sections + [name])
        return name

    def rename_section(self, old: str, new: str) -> int:
        """
        Rename a section label everywhere. Validation happens before any write;
        both the section list and all labelled entries change together.
        Returns the number of relabelled entries.
        """
        new = (new or "").strip()
        sections = self.sections()
        if old not in sections:
            raise ValidationError(f"Unknown section: {old}")
        if not new:
            raise ValidationError("Section name is required")
        if new == old:
            return 0
        if new in sections:
            raise ValidationError(f"Section already exists: {new}")

        changed = 0
        lectures = self._all_raw()
        for entries in lectures.values():
            for entry in entries:
                if entry["section"] == old:
                    entry["section"] = new
                    changed += 1

        with self.store.batch():
            self.store.write(self.SECTIONS_KEY, [new if s == old else s for s in sections])
            self.store.write(self.LECTURES_KEY, lectures)
        logger.info("Renamed section %r to %r (%d entries)", old, new, changed)
        return changed

    def delete_section(self, name: str) -> int:
        """
        Remove a section label; its entries move to 'no section'.
        """
        sections = self.sections()
        if name not in sections:
            raise ValidationError(f"Unknown section: {name}")

        changed = 0
        lectures = self._all_raw()
        for entries in lectures.values():
            for entry in entries:
                if entry["section"] == name:
                    entry["section"] = ""
                    changed += 1

        with self.store.batch():
            self.store.write(self.SECTIONS_KEY, [s for s in sections if s != name])
            self.store.write(self.LECTURES_KEY, lectures)
        return changed

    # -- entries ---------------------------------------------------------

    def _all_raw(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.store.read(self.LECTURES_KEY, {}, self._normalize_lectures)

    def _save_subject(self, subject_id: str, entries: List[ChecklistLecture]) -> None:
        lectures = self._all_raw()
        lectures[subject_id] = [e.to_dict() for e in entries]
        self.store.write(self.LECTURES_KEY, lectures)

    def subject_ids(self) -> List[str]:
        return list(self._all_raw())

    def lectures(self, subject_id: str) -> List[ChecklistLecture]:
        return [ChecklistLecture.from_dict(d) for d in self._all_raw().get(subject_id, [])]

    def get(self, subject_id: str, lecture_id: str) -> Optional[ChecklistLecture]:
        for lec in self.lectures(subject_id):
            if lec.id == lecture_id:
                return lec
        return None

    def add(self, subject_id: str, entry: ChecklistLecture) -> ChecklistLecture:
        if not (entry.title or "").strip():
            raise ValidationError("Lecture title is required")
        if entry.section and entry.section not in self.sections():
            raise ValidationError(f"Unknown section: {entry.section}")
        record = dataclasses.replace(
            entry,
            id=new_id(),
            title=entry.title.strip(),
            completed=entry.completed if entry.completed in COMPLETION_ORDER else COMPLETION_ORDER[0],
        )
        self._save_subject(subject_id, self.lectures(subject_id) + [record])
        return record

    def update(self, subject_id: str, lecture_id: str, **changes: Any) -> Optional[ChecklistLecture]:
        if "id" in changes:
            raise ValidationError("The id of a record cannot be changed")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("Lecture title is required")
        if "completed" in changes and changes["completed"] not in COMPLETION_ORDER:
            raise ValidationError(f"Invalid completion state: {changes['completed']!r}")

        updated: Optional[ChecklistLecture] = None
        out: List[ChecklistLecture] = []
        for lec in self.lectures(subject_id):
            if lec.id == lecture_id:
                updated = dataclasses.replace(lec, **changes)
                out.append(updated)
            else:
                out.append(lec)
        if updated is None:
            return None
        self._save_subject(subject_id, out)
        return updated

    def remove(self, subject_id: str, lecture_id: str) -> bool:
        entries = self.lectures(subject_id)
        kept = [e for e in entries if e.id != lecture_id]
        if len(kept) == len(entries):
            return False
        self._save_subject(subject_id, kept)
        return True

    def cycle_difficulty(self, subject_id: str, lecture_id: str) -> Optional[ChecklistLecture]:
        lec = self.get(subject_id, lecture_id)
        if lec is None:
            return None
        keys = list(self.difficulty_settings())
        return self.update(subject_id, lecture_id, status=next_status(lec.status, keys))

    def cycle_completion(self, subject_id: str, lecture_id: str) -> Optional[ChecklistLecture]:
        lec = self.get(subject_id, lecture_id)
        if lec is None:
            return None
        return self.update(subject_id, lecture_id, completed=next_completion(lec.completed))

    def drop_subjects(self, keep_ids: Iterable[str]) -> int:
        """
        Remove the checklists of subjects not in `keep_ids`. Returns the number of entries dropped.
        """
        keep = set(keep_ids)
        lectures = self._all_raw()
        orphaned = [sid for sid in lectures if sid not in keep]
        if not orphaned:
            return 0
        dropped = sum(len(lectures.pop(sid)) for sid in orphaned)
        self.store.write(self.LECTURES_KEY, lectures)
        return dropped
