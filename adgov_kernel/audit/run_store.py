"""
Run Store — append-only, hash-chained audit log of finalized agent runs.

Behavioral Contract:
- Append-only. A stored run is never modified or deleted
- Each run is signed (sha256 over its JSON form) and chained to the
  previous run's signature, so tampering breaks verification
- Queryable by organization, status, entity and recency
"""

import hashlib
import json
import sqlite3
import threading
from typing import List, Optional

from adgov_kernel.models.agent import AgentRun, AgentRunStatus


def _sign(run: AgentRun) -> str:
    payload = run.model_dump(mode="json")
    payload["signature"] = ""
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode()
    ).hexdigest()


class RunStore:
    """SQLite-backed. Pass a file path to persist across processes."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS agent_runs (
                id TEXT PRIMARY KEY,
                org_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL,
                recommendation_count INTEGER NOT NULL DEFAULT 0,
                total_duration_ms REAL NOT NULL,
                started_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_agent_runs_org ON agent_runs(org_id)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_agent_runs_status ON agent_runs(status)"
        )
        self._conn.commit()

    def append(self, run: AgentRun) -> AgentRun:
        """Sign the run, chain it to the latest record and store it."""
        with self._lock:
            run.prior_record_hash = self._latest_signature()
            run.signature = _sign(run)
            self._conn.execute(
                """
                INSERT INTO agent_runs (
                    id, org_id, user_id, status, recommendation_count,
                    total_duration_ms, started_at, signature,
                    prior_record_hash, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.org_id,
                    run.user_id,
                    run.status.value,
                    len(run.recommendations),
                    run.total_duration_ms,
                    run.started_at.isoformat(),
                    run.signature,
                    run.prior_record_hash,
                    run.model_dump_json(),
                ),
            )
            self._conn.commit()
        return run

    def _latest_signature(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM agent_runs ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _rows(self, sql: str, params: tuple = ()) -> List[AgentRun]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [AgentRun.model_validate_json(r["record_json"]) for r in rows]

    def get(self, run_id: str) -> Optional[AgentRun]:
        runs = self._rows("SELECT record_json FROM agent_runs WHERE id = ?", (run_id,))
        return runs[0] if runs else None

    def query_by_org(self, org_id: str, limit: int = 50) -> List[AgentRun]:
        return self._rows(
            "SELECT record_json FROM agent_runs WHERE org_id = ? "
            "ORDER BY rowid DESC LIMIT ?",
            (org_id, limit),
        )

    def query_by_status(self, status: AgentRunStatus) -> List[AgentRun]:
        return self._rows(
            "SELECT record_json FROM agent_runs WHERE status = ? ORDER BY rowid",
            (status.value,),
        )

    def query_by_entity(self, entity_id: str) -> List[AgentRun]:
        """Runs that emitted a recommendation for the entity."""
        candidates = self._rows(
            "SELECT record_json FROM agent_runs WHERE record_json LIKE ? ORDER BY rowid",
            (f"%{entity_id}%",),
        )
        return [
            r for r in candidates
            if any(rec.entity_id == entity_id for rec in r.recommendations)
        ]

    def query_recent(self, limit: int = 50) -> List[AgentRun]:
        runs = self._rows(
            "SELECT record_json FROM agent_runs ORDER BY rowid DESC LIMIT ?", (limit,)
        )
        return list(reversed(runs))

    def verify_chain_integrity(self) -> bool:
        """False if any stored run was altered or the chain was broken."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json, signature FROM agent_runs ORDER BY rowid"
            ).fetchall()

        prior = None
        for row in rows:
            run = AgentRun.model_validate_json(row["record_json"])
            if run.signature != row["signature"] or _sign(run) != run.signature:
                return False
            if run.prior_record_hash != prior:
                return False
            prior = run.signature
        return True

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM agent_runs").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
