"""Tests for the request-scoped candidate writer."""

import pytest

from affiliate_scout.core.db import init_db, list_candidates
from affiliate_scout.core.schemas import CandidateResult, Platform
from affiliate_scout.pipeline.persistence import CandidateWriter

URL = "https://nailblog.de/serum-test"


def _candidate(url: str = URL, **kw: object) -> CandidateResult:
    defaults: dict[str, object] = {
        "title": "Serum im Test",
        "url": url,
        "platform": Platform.WEB,
        "domain": "nailblog.de",
        "is_enriching": True,
    }
    defaults.update(kw)
    return CandidateResult(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


class TestInsert:
    def test_insert_once(self, db) -> None:  # type: ignore[no-untyped-def]
        writer = CandidateWriter(db, "u1", job_id="j1")
        assert writer.insert_if_absent(URL, _candidate()) is True
        assert writer.insert_if_absent(URL, _candidate(title="changed")) is False
        assert writer.inserted == 1
        rows = list_candidates(db, "u1")
        assert len(rows) == 1
        assert rows[0]["title"] == "Serum im Test"
        assert rows[0]["job_id"] == "j1"

    def test_exists(self, db) -> None:  # type: ignore[no-untyped-def]
        writer = CandidateWriter(db, "u1")
        assert writer.exists_by_key(URL) is False
        writer.insert_if_absent(URL, _candidate())
        assert writer.exists_by_key(URL) is True


class TestUpdate:
    def test_update_existing(self, db) -> None:  # type: ignore[no-untyped-def]
        writer = CandidateWriter(db, "u1")
        writer.insert_if_absent(URL, _candidate())
        assert writer.update_by_key(URL, {"is_enriching": False, "score": 40.0}) is True
        row = list_candidates(db, "u1")[0]
        assert row["is_enriching"] is False
        assert row["score"] == 40.0
        assert writer.pending_count == 0

    def test_update_before_insert_is_held_then_applied(self, db) -> None:  # type: ignore[no-untyped-def]
        writer = CandidateWriter(db, "u1")
        assert writer.update_by_key(URL, {"is_enriching": False}) is False
        assert writer.update_by_key(URL, {"score": 55.0}) is False
        assert writer.pending_count == 1
        assert list_candidates(db, "u1") == []

        writer.insert_if_absent(URL, _candidate())

        row = list_candidates(db, "u1")[0]
        assert row["is_enriching"] is False
        assert row["score"] == 55.0
        assert writer.pending_count == 0

    def test_held_update_dropped_on_close(self, db) -> None:  # type: ignore[no-untyped-def]
        writer = CandidateWriter(db, "u1")
        writer.update_by_key("https://never.com/x", {"score": 10.0})
        writer.close()
        assert writer.pending_count == 0
        assert list_candidates(db, "u1") == []

    def test_other_owner_not_touched(self, db) -> None:  # type: ignore[no-untyped-def]
        CandidateWriter(db, "u2").insert_if_absent(URL, _candidate())
        writer = CandidateWriter(db, "u1")
        assert writer.update_by_key(URL, {"score": 99.0}) is False
        assert list_candidates(db, "u2")[0]["score"] == 0.0


class TestWithoutConnection:
    def test_everything_is_a_noop(self) -> None:
        writer = CandidateWriter(None, "u1")
        assert writer.insert_if_absent(URL, _candidate()) is False
        assert writer.update_by_key(URL, {"score": 1.0}) is False
        assert writer.exists_by_key(URL) is False
        assert writer.pending_count == 0
        writer.close()
