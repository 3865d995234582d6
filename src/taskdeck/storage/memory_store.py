# src/taskdeck/storage/memory_store.py

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections.abc import Mapping

from ..core.ports import Document, UserInfo

logger = logging.getLogger(__name__)


class InMemoryPersistence:
    """
    Process-local document persistence (demos, tests, `TASKDECK_DB_PATH=:memory:`).

    Documents are deep-copied in and out so callers never share state with storage.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._docs: dict[str, dict[str, Document]] = {"tasks": {}, "sprints": {}}

    def _list(self, table: str) -> list[Document]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs[table].values()]
        docs.sort(key=lambda d: str(d.get("createdAt") or ""), reverse=True)
        return docs

    def _create(self, table: str, doc: Document) -> str:
        doc_id = str(doc.get("id") or uuid.uuid4().hex)
        with self._lock:
            self._docs[table][doc_id] = copy.deepcopy(dict(doc, id=doc_id))
        return doc_id

    def _update(self, table: str, doc_id: str, fields: Document) -> None:
        with self._lock:
            current = self._docs[table].get(doc_id)
            if current is None:
                raise KeyError(f"{table} document {doc_id!r} does not exist")
            current.update(copy.deepcopy(fields))

    def _delete(self, table: str, doc_id: str) -> None:
        with self._lock:
            self._docs[table].pop(doc_id, None)

    def list_tasks(self) -> list[Document]:
        return self._list("tasks")

    def create_task(self, doc: Document) -> str:
        return self._create("tasks", doc)

    def update_task(self, task_id: str, fields: Document) -> None:
        self._update("tasks", task_id, fields)

    def delete_task(self, task_id: str) -> None:
        self._delete("tasks", task_id)

    def list_sprints(self) -> list[Document]:
        return self._list("sprints")

    def create_sprint(self, doc: Document) -> str:
        return self._create("sprints", doc)

    def update_sprint(self, sprint_id: str, fields: Document) -> None:
        self._update("sprints", sprint_id, fields)

    def delete_sprint(self, sprint_id: str) -> None:
        self._delete("sprints", sprint_id)


class StaticDirectory:
    """Dict-backed user/app directory."""

    def __init__(
        self,
        users: Mapping[str, UserInfo | str] | None = None,
        apps: Mapping[str, str] | None = None,
    ) -> None:
        self._users: dict[str, UserInfo] = {}
        for uid, info in (users or {}).items():
            self._users[uid] = info if isinstance(info, UserInfo) else UserInfo(display_name=str(info))
        self._apps: dict[str, str] = dict(apps or {})

    def add_user(self, user_id: str, display_name: str, photo_url: str | None = None) -> None:
        self._users[user_id] = UserInfo(display_name=display_name, photo_url=photo_url)

    def add_app(self, app_id: str, name: str) -> None:
        self._apps[app_id] = name

    def resolve_user(self, user_id: str) -> UserInfo | None:
        return self._users.get(user_id)

    def resolve_app(self, app_id: str) -> str | None:
        return self._apps.get(app_id)
