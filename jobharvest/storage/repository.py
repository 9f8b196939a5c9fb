from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from jobharvest.core.models import JobRecord


class RecordSink(ABC):
    @abstractmethod
    def append(self, records: JobRecord | list[JobRecord]) -> int:
        raise NotImplementedError


class RecordRepository(RecordSink):
    def __init__(self, db_path: str = "data/jobharvest.db") -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # Appends run on worker threads; writes are serialized by the lock.
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_key TEXT,
                job_url TEXT,
                title TEXT,
                data_source TEXT,
                scraped_at TEXT,
                payload TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_records_job_url ON records(job_url);
            CREATE TABLE IF NOT EXISTS runs (
                run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT,
                finished_at TEXT,
                num_found INTEGER,
                num_saved INTEGER,
                num_failed INTEGER,
                num_dropped INTEGER,
                num_duplicates INTEGER,
                num_listing_pages INTEGER
            );
            CREATE TABLE IF NOT EXISTS run_errors (
                run_id INTEGER,
                url TEXT,
                kind TEXT,
                reason TEXT
            );
            """
        )
        self.conn.commit()

    def append(self, records: JobRecord | list[JobRecord]) -> int:
        batch = records if isinstance(records, list) else [records]
        rows = []
        for record in batch:
            payload = record.to_dict()
            rows.append(
                (
                    record.job_id or record.job_url,
                    record.job_url,
                    record.title,
                    record.data_source.value,
                    record.scraped_at,
                    json.dumps(payload, ensure_ascii=False),
                )
            )
        with self._lock:
            self.conn.executemany(
                "INSERT INTO records(job_key, job_url, title, data_source, scraped_at, payload) VALUES (?,?,?,?,?,?)",
                rows,
            )
            self.conn.commit()
        return len(rows)

    def list_records(self) -> list[dict[str, Any]]:
        rows = self.conn.execute("SELECT payload FROM records ORDER BY id").fetchall()
        return [json.loads(row["payload"]) for row in rows]

    def count_records(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM records").fetchone()[0])

    def create_run(self, started_at: str) -> int:
        cur = self.conn.execute(
            "INSERT INTO runs(started_at, finished_at, num_found, num_saved, num_failed, num_dropped, num_duplicates, num_listing_pages) VALUES (?,?,?,?,?,?,?,?)",
            (started_at, started_at, 0, 0, 0, 0, 0, 0),
        )
        self.conn.commit()
        return int(cur.lastrowid)

    def finish_run(self, run_id: int, finished_at: str, counts: dict[str, int]) -> None:
        self.conn.execute(
            "UPDATE runs SET finished_at=?, num_found=?, num_saved=?, num_failed=?, num_dropped=?, num_duplicates=?, num_listing_pages=? WHERE run_id=?",
            (
                finished_at,
                counts.get("found", 0),
                counts.get("saved", 0),
                counts.get("failed", 0),
                counts.get("dropped", 0),
                counts.get("duplicates", 0),
                counts.get("listing_pages", 0),
                run_id,
            ),
        )
        self.conn.commit()

    def add_run_error(self, run_id: int, url: str, kind: str, reason: str) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT INTO run_errors VALUES (?,?,?,?)",
                (run_id, url, kind, reason),
            )
            self.conn.commit()

    def list_runs(self) -> list[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM runs ORDER BY run_id DESC").fetchall()

    def list_failures(self) -> list[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM run_errors ORDER BY run_id DESC").fetchall()

    def close(self) -> None:
        self.conn.close()
