"""Tests for the database layer: init, insert-if-absent, updates, jobs, credits."""

from datetime import datetime

import pytest

from affiliate_scout.core.db import (
    candidate_exists,
    create_search_job,
    debit_credits,
    get_credit_balance,
    get_search_job,
    init_db,
    insert_candidate,
    insert_search_run,
    list_candidates,
    set_credit_balance,
    update_candidate,
    update_search_job,
)
from affiliate_scout.core.schemas import CandidateResult, Platform, ProfileMetadata, SearchSummary


def _candidate(url: str = "https://blog.example.com/post", **kw: object) -> CandidateResult:
    defaults: dict[str, object] = {
        "title": "My honest review",
        "url": url,
        "platform": Platform.WEB,
        "domain": "blog.example.com",
        "found_at": datetime.now(),
    }
    defaults.update(kw)
    return CandidateResult(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"candidates", "search_jobs", "credits", "credit_transactions", "search_runs"} <= tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        p = tmp_path / "double.db"
        init_db(p).close()
        init_db(p).close()

    def test_creates_parent_dir(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        conn = init_db(tmp_path / "nested" / "dir" / "a.db")
        conn.close()
        assert (tmp_path / "nested" / "dir" / "a.db").exists()


class TestInsertCandidate:
    def test_insert_new(self, db) -> None:  # type: ignore[no-untyped-def]
        assert insert_candidate(db, "u1", _candidate()) is True
        assert candidate_exists(db, "u1", "https://blog.example.com/post")

    def test_duplicate_is_ignored(self, db) -> None:  # type: ignore[no-untyped-def]
        assert insert_candidate(db, "u1", _candidate(title="first")) is True
        assert insert_candidate(db, "u1", _candidate(title="second")) is False
        rows = list_candidates(db, "u1")
        assert len(rows) == 1
        assert rows[0]["title"] == "first"

    def test_same_url_other_owner(self, db) -> None:  # type: ignore[no-untyped-def]
        assert insert_candidate(db, "u1", _candidate()) is True
        assert insert_candidate(db, "u2", _candidate()) is True

    def test_profile_round_trips_as_dict(self, db) -> None:  # type: ignore[no-untyped-def]
        c = _candidate(
            url="https://www.tiktok.com/@creator/video/1",
            platform=Platform.TIKTOK,
            profile=ProfileMetadata(username="creator", followers=1200),
        )
        insert_candidate(db, "u1", c)
        row = list_candidates(db, "u1")[0]
        assert row["profile"]["username"] == "creator"
        assert row["traffic"] is None
        assert row["is_enriching"] is False


class TestUpdateCandidate:
    def test_updates_existing(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_candidate(db, "u1", _candidate(is_enriching=True))
        ok = update_candidate(
            db, "u1", "https://blog.example.com/post",
            {"is_enriching": False, "score": 42.0},
        )
        assert ok is True
        row = list_candidates(db, "u1")[0]
        assert row["is_enriching"] is False
        assert row["score"] == 42.0
        assert row["updated_at"] is not None

    def test_missing_row_returns_false(self, db) -> None:  # type: ignore[no-untyped-def]
        assert update_candidate(db, "u1", "https://nope.com", {"score": 1.0}) is False

    def test_unknown_column_rejected(self, db) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ValueError, match="title"):
            update_candidate(db, "u1", "https://a.com", {"title": "x"})


class TestListCandidates:
    def test_scoped_to_job(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_candidate(db, "u1", _candidate("https://a.com/1"), job_id="j1")
        insert_candidate(db, "u1", _candidate("https://a.com/2"), job_id="j2")
        rows = list_candidates(db, "u1", job_id="j1")
        assert [r["url"] for r in rows] == ["https://a.com/1"]


class TestSearchJobs:
    def test_create_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        create_search_job(db, "j1", "u1", "serum", ["Web", "TikTok"])
        job = get_search_job(db, "j1")
        assert job is not None
        assert job["state"] == "running"
        assert job["platforms"] == ["Web", "TikTok"]
        assert job["partial_counts"] == {}

    def test_update(self, db) -> None:  # type: ignore[no-untyped-def]
        create_search_job(db, "j1", "u1", "serum", ["Web"])
        assert update_search_job(db, "j1", state="done", total=3) is True
        job = get_search_job(db, "j1")
        assert job is not None
        assert job["state"] == "done"
        assert job["total"] == 3

    def test_update_unknown_job(self, db) -> None:  # type: ignore[no-untyped-def]
        assert update_search_job(db, "missing", state="done") is False

    def test_update_unknown_column(self, db) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ValueError):
            update_search_job(db, "j1", owner="someone")

    def test_get_unknown(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_search_job(db, "missing") is None


class TestCredits:
    def test_unprovisioned_is_none(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_credit_balance(db, "u1", "topic_search") is None

    def test_set_and_debit(self, db) -> None:  # type: ignore[no-untyped-def]
        set_credit_balance(db, "u1", "topic_search", 2)
        assert debit_credits(db, "u1", "topic_search", 1, "ref") == 1
        assert get_credit_balance(db, "u1", "topic_search") == 1
        tx = db.execute("SELECT amount, reference FROM credit_transactions").fetchall()
        assert [(r["amount"], r["reference"]) for r in tx] == [(-1, "ref")]

    def test_debit_insufficient(self, db) -> None:  # type: ignore[no-untyped-def]
        set_credit_balance(db, "u1", "topic_search", 0)
        assert debit_credits(db, "u1", "topic_search", 1) is None
        assert get_credit_balance(db, "u1", "topic_search") == 0

    def test_debit_unlimited(self, db) -> None:  # type: ignore[no-untyped-def]
        set_credit_balance(db, "u1", "topic_search", -1)
        assert debit_credits(db, "u1", "topic_search", 5) == -1
        assert get_credit_balance(db, "u1", "topic_search") == -1

    def test_debit_unprovisioned(self, db) -> None:  # type: ignore[no-untyped-def]
        assert debit_credits(db, "u1", "topic_search", 1) is None


class TestInsertSearchRun:
    def test_insert(self, db) -> None:  # type: ignore[no-untyped-def]
        summary = SearchSummary(keyword="serum", total=4, timed_out=True)
        row_id = insert_search_run(db, "u1", summary)
        assert row_id > 0
        row = db.execute("SELECT * FROM search_runs WHERE id = ?", (row_id,)).fetchone()
        assert row["total"] == 4
        assert row["timed_out"] == 1
