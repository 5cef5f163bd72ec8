"""
Hosted backend access (PostgREST, as exposed by Supabase under /rest/v1).

One RemoteTable per table (subjects, tasks, exams, lectures) with:

    get_all(user_id) -> list[row]
    create(row)      -> row
    update(id, row)  -> row
    delete(id)       -> None

Every call returns only after the backend answered; any failure (network,
HTTP status >= 400) raises RemoteError and nothing is retried.

RemoteSync / ChecklistSync apply a change to the local collection inside a store
batch and only commit it once the backend accepted it, so local state never
claims a write the backend did not accept.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import requests

from studyplanner.checklist import LectureChecklist
from studyplanner.collection import Collection
from studyplanner.config import config
from studyplanner.errors import RemoteError
from studyplanner.model import ChecklistLecture

if TYPE_CHECKING:
    from studyplanner.planner import Planner

logger = logging.getLogger(__name__)


class RemoteTable:
    def __init__(
        self,
        http: requests.Session,
        base_url: str,
        table: str,
        order_by: str = "created_at",
        timeout: float | None = None,
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.order_by = order_by
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT

    @property
    def url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else {}
        try:
            resp = self.http.request(method, self.url, params=params, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteError(f"{method} {self.table} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message") or resp.text
            except ValueError:
                detail = resp.text
            raise RemoteError(f"{method} {self.table} failed ({resp.status_code}): {detail}", resp.status_code)

        if not resp.content:
            return None
        return resp.json()

    def _single(self, data: Any) -> Dict[str, Any]:
        if isinstance(data, list) and len(data) == 1:
            return data[0]
        if isinstance(data, dict):
            return data
        raise RemoteError(f"Expected exactly one {self.table} row in response")

    def get_all(self, user_id: str) -> List[Dict[str, Any]]:
        data = self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": f"{self.order_by}.asc"},
        )
        return data or []

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self._single(self._request("POST", payload=record, prefer="return=representation"))

    def update(self, record_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        return self._single(
            self._request("PATCH", params={"id": f"eq.{record_id}"}, payload=partial, prefer="return=representation")
        )

    def delete(self, record_id: str) -> None:
        self._request("DELETE", params={"id": f"eq.{record_id}"})


class RemoteBackend:
    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not url or not api_key:
            raise RemoteError("Hosted backend is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
        self.http = http if http is not None else requests.Session()
        self.api_key = api_key
        self.http.headers.update({"apikey": api_key, "Content-Type": "application/json"})
        self.set_access_token(access_token)

        self.subjects = RemoteTable(self.http, url, "subjects", order_by="created_at")
        self.tasks = RemoteTable(self.http, url, "tasks", order_by="date")
        self.exams = RemoteTable(self.http, url, "exams", order_by="date")
        self.lectures = RemoteTable(self.http, url, "lectures", order_by="created_at")

    @classmethod
    def from_config(cls, access_token: Optional[str] = None) -> "RemoteBackend":
        return cls(config.SUPABASE_URL or "", config.SUPABASE_ANON_KEY or "", access_token)

    def set_access_token(self, access_token: Optional[str]) -> None:
        self.http.headers["Authorization"] = f"Bearer {access_token or self.api_key}"


class RemoteSync:
    """
    Keep one local collection (subjects, tasks or exams) in step with its table.

    The local change and the remote call share one store batch: when the backend
    rejects the change nothing is persisted or announced, so cascades triggered by
    the change (e.g. dropping the tasks of a removed subject) never run.
    """

    def __init__(self, collection: Collection, table: RemoteTable, user_id: str) -> None:
        self.collection = collection
        self.table = table
        self.user_id = user_id

    def pull(self) -> int:
        """
        Replace local records with the user's rows. Malformed rows are skipped.
        """
        records = []
        for row in self.table.get_all(self.user_id):
            try:
                records.append(self.collection.record_type.from_row(row))
            except ValueError as e:
                logger.warning("Skipping malformed %s row: %s", self.table.table, e)
        self.collection.replace_all(records)
        return len(records)

    def add(self, entity):
        try:
            with self.collection.store.batch():
                record = self.collection.add(entity)
                self.table.create({**record.to_row(self.user_id), "id": record.id})
        except RemoteError:
            logger.warning("Rolled back local add to %s", self.table.table)
            raise
        return record

    def update(self, record_id: str, **changes):
        try:
            with self.collection.store.batch():
                record = self.collection.update(record_id, **changes)
                if record is None:
                    return None
                row = record.to_row(self.user_id)
                row.pop("user_id", None)
                self.table.update(record_id, row)
        except RemoteError:
            logger.warning("Rolled back local update of %s %s", self.table.table, record_id)
            raise
        return record

    def remove(self, record_id: str) -> bool:
        try:
            with self.collection.store.batch():
                if not self.collection.remove(record_id):
                    return False
                self.table.delete(record_id)
        except RemoteError:
            logger.warning("Rolled back local delete of %s %s", self.table.table, record_id)
            raise
        return True


class ChecklistSync:
    """
    Same scheme for the lecture checklist; remote rows carry subject_id.
    """

    def __init__(self, checklist: LectureChecklist, table: RemoteTable, user_id: str) -> None:
        self.checklist = checklist
        self.table = table
        self.user_id = user_id

    def pull(self) -> int:
        by_subject: Dict[str, List[Dict[str, Any]]] = {}
        count = 0
        for row in self.table.get_all(self.user_id):
            subject_id = row.get("subject_id")
            try:
                entry = ChecklistLecture.from_row(row)
            except ValueError as e:
                logger.warning("Skipping malformed lectures row: %s", e)
                continue
            if not subject_id:
                continue
            by_subject.setdefault(subject_id, []).append(entry.to_dict())
            count += 1
        self.checklist.store.write(LectureChecklist.LECTURES_KEY, by_subject)
        return count

    def add(self, subject_id: str, entry: ChecklistLecture) -> ChecklistLecture:
        try:
            with self.checklist.store.batch():
                record = self.checklist.add(subject_id, entry)
                self.table.create({**record.to_row(self.user_id, subject_id), "id": record.id})
        except RemoteError:
            logger.warning("Rolled back local add of checklist entry %r", entry.title)
            raise
        return record

    def update(self, subject_id: str, lecture_id: str, **changes) -> Optional[ChecklistLecture]:
        try:
            with self.checklist.store.batch():
                record = self.checklist.update(subject_id, lecture_id, **changes)
                if record is None:
                    return None
                row = record.to_row(self.user_id, subject_id)
                row.pop("user_id", None)
                self.table.update(lecture_id, row)
        except RemoteError:
            logger.warning("Rolled back local update of checklist entry %s", lecture_id)
            raise
        return record

    def remove(self, subject_id: str, lecture_id: str) -> bool:
        try:
            with self.checklist.store.batch():
                if not self.checklist.remove(subject_id, lecture_id):
                    return False
                self.table.delete(lecture_id)
        except RemoteError:
            logger.warning("Rolled back local delete of checklist entry %s", lecture_id)
            raise
        return True


def pull_all(planner: "Planner", backend: RemoteBackend, user_id: str) -> Dict[str, int]:
    """
    Replace all local data with the signed-in user's rows, in one batch.

    The subjects table is fetched first; dependents whose subject is not among
    them are dropped by the usual reconciliation once the batch is committed.
    """
    with planner.store.batch():
        counts = {
            "subjects": RemoteSync(planner.subjects, backend.subjects, user_id).pull(),
            "tasks": RemoteSync(planner.tasks, backend.tasks, user_id).pull(),
            "exams": RemoteSync(planner.exams, backend.exams, user_id).pull(),
            "lectures": ChecklistSync(planner.checklist, backend.lectures, user_id).pull(),
        }
    logger.info("Pulled %s", ", ".join(f"{n} {k}" for k, n in counts.items()))
    return counts
