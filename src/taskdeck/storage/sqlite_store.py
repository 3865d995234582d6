# src/taskdeck/storage/sqlite_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import uuid
from pathlib import Path

from ..core.ports import Document

logger = logging.getLogger(__name__)

_TABLES = ("tasks", "sprints")


class SQLiteDocumentStore:
    """
    SQLite persistence for task and sprint documents.

    Each row keeps the whole document as JSON plus a couple of columns used for
    ordering. Partial updates merge the given fields into the stored document.

    Thread-safety:
    - each method opens its own SQLite connection
    (the entity store calls us from its persistence worker thread)
    """

    def __init__(self, db_path: str | Path = "taskdeck.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info(
            "SQLiteDocumentStore ready db=%s tasks=%d sprints=%d",
            self._db_path,
            self.count("tasks"),
            self.count("sprints"),
        )

    def close(self) -> None:
        """Shutdown hook (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            for table in _TABLES:
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        created_at TEXT NOT NULL DEFAULT '',
                        doc TEXT NOT NULL DEFAULT '{{}}'
                    )
                    """
                )
                cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table}(created_at)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _decode(raw: str | None) -> Document:
        if not raw:
            return {}
        try:
            val = json.loads(raw)
        except ValueError:
            logger.warning("Unreadable JSON document skipped.")
            return {}
        return val if isinstance(val, dict) else {}

    @staticmethod
    def _check_table(table: str) -> str:
        if table not in _TABLES:
            raise ValueError(f"unknown table {table!r}")
        return table

    # ---- generic document operations ----

    def count(self, table: str) -> int:
        table = self._check_table(table)
        conn = self._get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            return int(n)
        finally:
            conn.close()

    def list_documents(self, table: str) -> list[Document]:
        """All documents, newest created first."""
        table = self._check_table(table)
        conn = self._get_conn()
        try:
            rows = conn.execute(f"SELECT id, doc FROM {table} ORDER BY created_at DESC, id ASC").fetchall()
        finally:
            conn.close()

        out: list[Document] = []
        for row in rows:
            doc = self._decode(row["doc"])
            doc["id"] = row["id"]
            out.append(doc)
        return out

    def get_document(self, table: str, doc_id: str) -> Document | None:
        table = self._check_table(table)
        conn = self._get_conn()
        try:
            row = conn.execute(f"SELECT id, doc FROM {table} WHERE id = ?", (doc_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        doc = self._decode(row["doc"])
        doc["id"] = row["id"]
        return doc

    def create_document(self, table: str, doc: Document) -> str:
        table = self._check_table(table)
        doc_id = str(doc.get("id") or uuid.uuid4().hex)
        body = dict(doc, id=doc_id)

        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {table}(id, created_at, doc) VALUES (?, ?, ?)",
                (doc_id, str(body.get("createdAt") or ""), json.dumps(body, ensure_ascii=False)),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Document created table=%s id=%s", table, doc_id)
        return doc_id

    def update_document(self, table: str, doc_id: str, fields: Document) -> None:
        """Merge `fields` into the stored document. Raises KeyError when it does not exist."""
        table = self._check_table(table)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            row = cur.execute(f"SELECT doc FROM {table} WHERE id = ?", (doc_id,)).fetchone()
            if row is None:
                conn.rollback()
                raise KeyError(f"{table} document {doc_id!r} does not exist")

            doc = self._decode(row["doc"])
            doc.update(fields)
            doc["id"] = doc_id
            cur.execute(
                f"UPDATE {table} SET doc = ? WHERE id = ?",
                (json.dumps(doc, ensure_ascii=False), doc_id),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Document updated table=%s id=%s fields=%s", table, doc_id, sorted(fields))

    def delete_document(self, table: str, doc_id: str) -> None:
        table = self._check_table(table)
        conn = self._get_conn()
        try:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (doc_id,))
            conn.commit()
        finally:
            conn.close()

        logger.debug("Document deleted table=%s id=%s", table, doc_id)

    # ---- Persistence port ----

    def list_tasks(self) -> list[Document]:
        return self.list_documents("tasks")

    def create_task(self, doc: Document) -> str:
        return self.create_document("tasks", doc)

    def update_task(self, task_id: str, fields: Document) -> None:
        self.update_document("tasks", task_id, fields)

    def delete_task(self, task_id: str) -> None:
        self.delete_document("tasks", task_id)

    def list_sprints(self) -> list[Document]:
        return self.list_documents("sprints")

    def create_sprint(self, doc: Document) -> str:
        return self.create_document("sprints", doc)

    def update_sprint(self, sprint_id: str, fields: Document) -> None:
        self.update_document("sprints", sprint_id, fields)

    def delete_sprint(self, sprint_id: str) -> None:
        self.delete_document("sprints", sprint_id)
