from __future__ import annotations

import asyncio
from pathlib import Path

from openpyxl import load_workbook

from jobharvest.core.models import DataSource, JobRecord, Location
from jobharvest.export.excel_sync import COLUMNS, ExcelSync
from jobharvest.storage.repository import RecordRepository


def mkrecord(n: int, title: str | None = None) -> JobRecord:
    return JobRecord(
        job_url=f"https://www.randstad.fr/emploi/job_{n}/",
        title=title or f"Job {n}",
        data_source=DataSource.DETAIL,
        scraped_at="2026-01-02T00:00:00Z",
        job_id=str(n),
        location=Location(city="Paris", display="Paris"),
        tags=["b", "a"],
    )


def test_repository_stores_sparse_records(tmp_path: Path) -> None:
    repo = RecordRepository(str(tmp_path / "nested" / "jobs.db"))
    assert repo.append([mkrecord(1), mkrecord(2)]) == 2
    assert repo.append(mkrecord(3)) == 1

    records = repo.list_records()
    assert repo.count_records() == 3
    assert [record["job_id"] for record in records] == ["1", "2", "3"]
    assert records[0]["tags"] == ["a", "b"]
    assert records[0]["location"] == "Paris"
    assert "company" not in records[0]


def test_repository_tracks_runs_and_failures() -> None:
    repo = RecordRepository(":memory:")
    run_id = repo.create_run("2026-01-02T00:00:00")
    repo.add_run_error(run_id, "https://www.randstad.fr/emploi/job_9/", "DETAIL", "HTTP 404")
    repo.finish_run(run_id, "2026-01-02T00:05:00", {"found": 5, "saved": 4, "failed": 1, "listing_pages": 1})

    run = repo.list_runs()[0]
    assert run["finished_at"] == "2026-01-02T00:05:00"
    assert (run["num_found"], run["num_saved"], run["num_failed"], run["num_duplicates"]) == (5, 4, 1, 0)
    failure = repo.list_failures()[0]
    assert failure["reason"] == "HTTP 404"
    repo.close()


def test_excel_sync_writes_header_and_upserts_by_url(tmp_path: Path) -> None:
    path = tmp_path / "out" / "jobs.xlsx"
    sync = ExcelSync(str(path))
    assert sync.sync([mkrecord(1).to_dict()]) == 1

    wb = load_workbook(path)
    ws = wb["Jobs"]
    assert [ws.cell(1, i).value for i in range(1, len(COLUMNS) + 1)] == COLUMNS
    assert ws.cell(2, 3).value == "Job 1"
    assert ws.cell(2, 11).value == "a, b"

    sync.sync([mkrecord(1, "Job 1 updated").to_dict(), mkrecord(2).to_dict()])
    ws = load_workbook(path)["Jobs"]
    assert ws.max_row == 3
    assert ws.cell(2, 3).value == "Job 1 updated"
    assert ws.cell(3, 1).value == "https://www.randstad.fr/emploi/job_2/"


def test_repository_accepts_appends_from_worker_threads(tmp_path: Path) -> None:
    repo = RecordRepository(str(tmp_path / "jobs.db"))

    async def go() -> list[int]:
        return await asyncio.gather(*(asyncio.to_thread(repo.append, mkrecord(n)) for n in range(1, 6)))

    assert asyncio.run(go()) == [1, 1, 1, 1, 1]
    assert repo.count_records() == 5
    assert sorted(record["job_id"] for record in repo.list_records()) == ["1", "2", "3", "4", "5"]
