from __future__ import annotations

import os
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple


class SaveRejected(ValueError):
    """A save request referenced something that does not exist."""


Payload = Tuple[bytes, str]


@dataclass
class Database:
    path: str
    conn: sqlite3.Connection
    lock: threading.Lock

    def _exec(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self.lock:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
            return cur

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self.lock:
            cur = self.conn.execute(sql, params)
            return cur.fetchall()

    def create_schema(self) -> None:
        self._exec(
            """
            CREATE TABLE IF NOT EXISTS screenshot_set (
                id TEXT PRIMARY KEY,
                project TEXT NOT NULL,
                test TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                position INTEGER NOT NULL,
                created_at REAL NOT NULL
            );
            """
        )
        self._exec("CREATE INDEX IF NOT EXISTS idx_set_test ON screenshot_set(project, test, position);")
        self._exec(
            """
            CREATE TABLE IF NOT EXISTS screenshot_file (
                id TEXT PRIMARY KEY,
                set_id TEXT NOT NULL REFERENCES screenshot_set(id) ON DELETE CASCADE,
                platform TEXT NOT NULL,
                content BLOB NOT NULL,
                content_type TEXT NOT NULL,
                updated_at REAL NOT NULL
            );
            """
        )
        self._exec("CREATE INDEX IF NOT EXISTS idx_file_set ON screenshot_file(set_id);")

    def load_sets(self, project: str, test: str) -> List[Dict[str, Any]]:
        sets = self._query(
            "SELECT id, name FROM screenshot_set WHERE project=? AND test=? ORDER BY position ASC",
            (project, test),
        )
        files = self._query(
            """
            SELECT f.id, f.set_id, f.platform, f.updated_at
            FROM screenshot_file f JOIN screenshot_set s ON s.id = f.set_id
            WHERE s.project=? AND s.test=?
            """,
            (project, test),
        )
        by_set: Dict[str, Dict[str, Any]] = {}
        for f in files:
            by_set.setdefault(f["set_id"], {})[f["platform"]] = {"id": f["id"]}
        return [{"id": s["id"], "name": s["name"], "files": by_set.get(s["id"], {})} for s in sets]

    def get_file(self, fid: str) -> Optional[Dict[str, Any]]:
        rows = self._query("SELECT id, content, content_type, updated_at FROM screenshot_file WHERE id=?", (fid,))
        return dict(rows[0]) if rows else None

    def replace_sets(self, project: str, test: str, screenshots: Sequence[Dict[str, Any]], payloads: Sequence[Payload]) -> int:
        """Make the stored sets for a test match ``screenshots``.

        Submitted sets keep their order; stored sets and files that are not
        submitted are deleted. A file cell with ``uploadId`` takes that payload,
        replacing the content of ``id`` when both are given.
        """
        now = time.time()
        with self.lock, self.conn:
            cur = self.conn
            known_sets = {
                r["id"]
                for r in cur.execute("SELECT id FROM screenshot_set WHERE project=? AND test=?", (project, test))
            }
            known_files = {
                r["id"]
                for r in cur.execute(
                    "SELECT f.id FROM screenshot_file f JOIN screenshot_set s ON s.id = f.set_id WHERE s.project=? AND s.test=?",
                    (project, test),
                )
            }
            kept_sets: List[str] = []
            kept_files: List[str] = []
            for position, shot in enumerate(screenshots):
                sid = shot.get("id")
                name = shot.get("name") or ""
                if sid:
                    if sid not in known_sets:
                        raise SaveRejected(f"unknown screenshot set {sid}")
                    cur.execute("UPDATE screenshot_set SET name=?, position=? WHERE id=?", (name, position, sid))
                else:
                    sid = f"ss_{uuid.uuid4().hex[:8]}"
                    cur.execute(
                        "INSERT INTO screenshot_set (id, project, test, name, position, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                        (sid, project, test, name, position, now),
                    )
                kept_sets.append(sid)
                for platform, cell in (shot.get("files") or {}).items():
                    fid = cell.get("id")
                    upload = cell.get("uploadId")
                    if fid and fid not in known_files:
                        raise SaveRejected(f"unknown screenshot file {fid}")
                    if upload is not None and not 0 <= upload < len(payloads):
                        raise SaveRejected(f"uploadId {upload} out of range")
                    if fid and upload is None:
                        cur.execute("UPDATE screenshot_file SET set_id=?, platform=? WHERE id=?", (sid, platform, fid))
                    elif fid:
                        content, content_type = payloads[upload]
                        cur.execute(
                            "UPDATE screenshot_file SET set_id=?, platform=?, content=?, content_type=?, updated_at=? WHERE id=?",
                            (sid, platform, content, content_type, now, fid),
                        )
                    elif upload is not None:
                        content, content_type = payloads[upload]
                        fid = f"sf_{uuid.uuid4().hex[:8]}"
                        cur.execute(
                            "INSERT INTO screenshot_file (id, set_id, platform, content, content_type, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                            (fid, sid, platform, content, content_type, now),
                        )
                    else:
                        raise SaveRejected(f"file for {platform} needs an id or an uploadId")
                    kept_files.append(fid)
            for fid in known_files - set(kept_files):
                cur.execute("DELETE FROM screenshot_file WHERE id=?", (fid,))
            for sid in known_sets - set(kept_sets):
                cur.execute("DELETE FROM screenshot_file WHERE set_id=?", (sid,))
                cur.execute("DELETE FROM screenshot_set WHERE id=?", (sid,))
        return len(kept_sets)


_db: Optional[Database] = None


def _connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    with conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def init(db_path: Optional[str] = None) -> Database:
    global _db
    if _db is not None:
        return _db
    path = db_path or os.environ.get("SHOTSETS_DB") or ":memory:"
    if path != ":memory:" and path.startswith("~"):
        path = os.path.expanduser(path)
    conn = _connect(path)
    _db = Database(path=path, conn=conn, lock=threading.Lock())
    _db.create_schema()
    return _db


def get() -> Database:
    if _db is None:
        return init(None)
    return _db
