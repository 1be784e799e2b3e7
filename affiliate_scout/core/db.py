"""SQLite database layer for candidates, search jobs, credits and run tracking."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from affiliate_scout.core.schemas import CandidateResult, SearchSummary

_CANDIDATES_TABLE = """
CREATE TABLE IF NOT EXISTS candidates (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    owner           TEXT    NOT NULL,
    url             TEXT    NOT NULL,
    platform        TEXT    NOT NULL,
    title           TEXT    NOT NULL,
    snippet         TEXT    NOT NULL DEFAULT '',
    domain          TEXT    NOT NULL DEFAULT '',
    email           TEXT,
    profile_json    TEXT,
    traffic_json    TEXT,
    score           REAL    NOT NULL DEFAULT 0.0,
    is_enriching    INTEGER NOT NULL DEFAULT 0,
    job_id          TEXT,
    query           TEXT    NOT NULL DEFAULT '',
    found_at        TEXT    NOT NULL,
    updated_at      TEXT,
    UNIQUE(owner, url)
);
"""

_SEARCH_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS search_jobs (
    job_id          TEXT PRIMARY KEY,
    owner           TEXT NOT NULL,
    keyword         TEXT NOT NULL,
    platforms_json  TEXT NOT NULL,
    state           TEXT NOT NULL DEFAULT 'running',
    partial_counts_json TEXT NOT NULL DEFAULT '{}',
    total           INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_CREDITS_TABLE = """
CREATE TABLE IF NOT EXISTS credits (
    user_id         TEXT NOT NULL,
    kind            TEXT NOT NULL,
    balance         INTEGER NOT NULL,
    PRIMARY KEY (user_id, kind)
);
"""

_CREDIT_TRANSACTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS credit_transactions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT NOT NULL,
    kind            TEXT NOT NULL,
    amount          INTEGER NOT NULL,
    reference       TEXT,
    created_at      TEXT NOT NULL
);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    owner           TEXT NOT NULL,
    keyword         TEXT NOT NULL,
    summary_json    TEXT NOT NULL,
    total           INTEGER NOT NULL,
    timed_out       INTEGER NOT NULL DEFAULT 0,
    started_at      TEXT NOT NULL,
    finished_at     TEXT NOT NULL
);
"""

# Columns an enrichment update may touch. Anything else is a programming error.
_UPDATABLE_COLUMNS = frozenset(
    {"email", "profile_json", "traffic_json", "score", "is_enriching"},
)

_JOB_COLUMNS = frozenset({"state", "partial_counts_json", "total", "error"})


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_CANDIDATES_TABLE)
    conn.execute(_SEARCH_JOBS_TABLE)
    conn.execute(_CREDITS_TABLE)
    conn.execute(_CREDIT_TRANSACTIONS_TABLE)
    conn.execute(_SEARCH_RUNS_TABLE)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


def insert_candidate(
    conn: sqlite3.Connection,
    owner: str,
    candidate: CandidateResult,
    job_id: str | None = None,
) -> bool:
    """Insert a candidate, ignoring it if (owner, url) already exists.

    Returns True if a new row was inserted, False if it was a duplicate.
    An existing row is never overwritten.
    """
    c = candidate
    try:
        conn.execute(
            """
            INSERT INTO candidates
                (owner, url, platform, title, snippet, domain, email,
                 profile_json, traffic_json, score, is_enriching, job_id,
                 query, found_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                owner,
                c.url,
                c.platform.value,
                c.title,
                c.snippet,
                c.domain,
                c.email,
                c.profile.model_dump_json() if c.profile else None,
                c.traffic.model_dump_json() if c.traffic else None,
                c.score,
                int(c.is_enriching),
                job_id,
                c.query,
                c.found_at.isoformat(),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def candidate_exists(conn: sqlite3.Connection, owner: str, url: str) -> bool:
    """Check whether a candidate row exists for (owner, url)."""
    row = conn.execute(
        "SELECT 1 FROM candidates WHERE owner = ? AND url = ? LIMIT 1",
        (owner, url),
    ).fetchone()
    return row is not None


def update_candidate(
    conn: sqlite3.Connection,
    owner: str,
    url: str,
    fields: dict[str, Any],
) -> bool:
    """Update enrichment columns of an existing candidate.

    Returns False (and writes nothing) when no row matches.
    """
    unknown = set(fields) - _UPDATABLE_COLUMNS
    if unknown:
        msg = f"Cannot update candidate columns: {sorted(unknown)}"
        raise ValueError(msg)
    if not fields:
        return candidate_exists(conn, owner, url)

    assignments = ", ".join(f"{col} = ?" for col in fields)
    values = [int(v) if isinstance(v, bool) else v for v in fields.values()]
    cursor = conn.execute(
        f"UPDATE candidates SET {assignments}, updated_at = ? WHERE owner = ? AND url = ?",  # noqa: S608
        (*values, datetime.now().isoformat(), owner, url),
    )
    conn.commit()
    return cursor.rowcount > 0


def list_candidates(
    conn: sqlite3.Connection,
    owner: str,
    job_id: str | None = None,
) -> list[dict[str, Any]]:
    """Return stored candidates for an owner, optionally scoped to one search job."""
    if job_id is None:
        rows = conn.execute(
            "SELECT * FROM candidates WHERE owner = ? ORDER BY id",
            (owner,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM candidates WHERE owner = ? AND job_id = ? ORDER BY id",
            (owner, job_id),
        ).fetchall()
    return [_candidate_row(r) for r in rows]


def _candidate_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for col in ("profile_json", "traffic_json"):
        raw = data.pop(col)
        data[col.removesuffix("_json")] = json.loads(raw) if raw else None
    data["is_enriching"] = bool(data["is_enriching"])
    return data


# ---------------------------------------------------------------------------
# Search jobs (polling protocol)
# ---------------------------------------------------------------------------


def create_search_job(
    conn: sqlite3.Connection,
    job_id: str,
    owner: str,
    keyword: str,
    platforms: list[str],
) -> None:
    """Register a new search job in the 'running' state."""
    now = datetime.now().isoformat()
    conn.execute(
        """
        INSERT INTO search_jobs
            (job_id, owner, keyword, platforms_json, state, created_at, updated_at)
        VALUES (?, ?, ?, ?, 'running', ?, ?)
        """,
        (job_id, owner, keyword, json.dumps(platforms), now, now),
    )
    conn.commit()


def update_search_job(conn: sqlite3.Connection, job_id: str, **fields: Any) -> bool:
    """Update state/counters of a search job. Returns False if the job is unknown."""
    unknown = set(fields) - _JOB_COLUMNS
    if unknown:
        msg = f"Cannot update search job columns: {sorted(unknown)}"
        raise ValueError(msg)
    if not fields:
        return get_search_job(conn, job_id) is not None
    assignments = ", ".join(f"{col} = ?" for col in fields)
    cursor = conn.execute(
        f"UPDATE search_jobs SET {assignments}, updated_at = ? WHERE job_id = ?",  # noqa: S608
        (*fields.values(), datetime.now().isoformat(), job_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def get_search_job(conn: sqlite3.Connection, job_id: str) -> dict[str, Any] | None:
    """Fetch a search job as a dict, or None."""
    row = conn.execute(
        "SELECT * FROM search_jobs WHERE job_id = ?",
        (job_id,),
    ).fetchone()
    if row is None:
        return None
    data = dict(row)
    data["platforms"] = json.loads(data.pop("platforms_json"))
    data["partial_counts"] = json.loads(data.pop("partial_counts_json"))
    return data


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------


def get_credit_balance(conn: sqlite3.Connection, user_id: str, kind: str) -> int | None:
    """Return the balance for (user_id, kind), or None if never provisioned."""
    row = conn.execute(
        "SELECT balance FROM credits WHERE user_id = ? AND kind = ?",
        (user_id, kind),
    ).fetchone()
    return None if row is None else int(row["balance"])


def set_credit_balance(conn: sqlite3.Connection, user_id: str, kind: str, balance: int) -> None:
    """Set the balance for (user_id, kind). -1 means unlimited."""
    conn.execute(
        """
        INSERT INTO credits (user_id, kind, balance) VALUES (?, ?, ?)
        ON CONFLICT(user_id, kind) DO UPDATE SET balance = excluded.balance
        """,
        (user_id, kind, balance),
    )
    conn.commit()


def debit_credits(
    conn: sqlite3.Connection,
    user_id: str,
    kind: str,
    amount: int,
    reference: str | None = None,
) -> int | None:
    """Atomically subtract ``amount`` if the balance covers it.

    Returns the new balance, -1 for unlimited accounts, or None if the
    balance was insufficient or missing.
    """
    balance = get_credit_balance(conn, user_id, kind)
    if balance is None:
        return None
    if balance == -1:
        new_balance = -1
    else:
        cursor = conn.execute(
            """
            UPDATE credits SET balance = balance - ?
            WHERE user_id = ? AND kind = ? AND balance >= ?
            """,
            (amount, user_id, kind, amount),
        )
        if cursor.rowcount == 0:
            conn.rollback()
            return None
        new_balance = balance - amount
    conn.execute(
        """
        INSERT INTO credit_transactions (user_id, kind, amount, reference, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (user_id, kind, -amount, reference, datetime.now().isoformat()),
    )
    conn.commit()
    return new_balance


# ---------------------------------------------------------------------------
# Search runs
# ---------------------------------------------------------------------------


def insert_search_run(conn: sqlite3.Connection, owner: str, summary: SearchSummary) -> int:
    """Record a completed search. Returns the row ID."""
    finished_at = summary.finished_at or datetime.now()
    cursor = conn.execute(
        """
        INSERT INTO search_runs
            (owner, keyword, summary_json, total, timed_out, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            owner,
            summary.keyword,
            summary.model_dump_json(),
            summary.total,
            int(summary.timed_out),
            summary.started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0
