"""Tests for Dolt commit tagging and history parsing (no database)."""

from contextlib import contextmanager
from datetime import datetime

import pytest

from scorecard.db import dolt_client
from scorecard.db.dolt_client import Commit, DoltVersionControl, commit_message


class FakeCursor:
    """Answers the dolt_status count and DOLT_COMMIT calls; records every statement."""

    def __init__(self, pending: int, commit_hash: str = "abc123def456"):
        self.pending = pending
        self.commit_hash = commit_hash
        self.statements: list[tuple] = []
        self._last = ""

    def execute(self, sql, params=None):
        self.statements.append((sql, params))
        self._last = sql

    def fetchone(self):
        if "dolt_status" in self._last:
            return {"pending": self.pending}
        if "DOLT_COMMIT" in self._last:
            return {"hash": self.commit_hash}
        return None


@pytest.fixture
def cursor(monkeypatch):
    fake = FakeCursor(pending=2)

    @contextmanager
    def fake_get_cursor():
        yield fake

    monkeypatch.setattr(dolt_client, "get_cursor", fake_get_cursor)
    return fake


# ─── Messages ─────────────────────────────────────────────────────────────────


class TestCommitMessage:
    def test_run_id_tag(self):
        assert commit_message("2 repairs", "reconcile-20240601T000000-1a2b3c4d") == (
            "[scorecard reconcile-20240601T000000-1a2b3c4d] 2 repairs"
        )

    def test_untagged_run(self):
        assert commit_message("Close project PRJ-1") == "[scorecard] Close project PRJ-1"

    def test_commit_parses_tag(self):
        commit = Commit("h", "[scorecard recompute-20240601T000000-ff] Recompute: 3", "bot", datetime(2024, 6, 1))
        assert commit.is_engine_commit
        assert commit.run_id == "recompute-20240601T000000-ff"
        assert commit.summary == "Recompute: 3"

    def test_foreign_commit(self):
        commit = Commit("h", "Initial import", "alice", datetime(2024, 1, 1))
        assert not commit.is_engine_commit
        assert commit.run_id is None
        assert commit.summary == "Initial import"


# ─── Commit / log ─────────────────────────────────────────────────────────────


class TestDoltVersionControl:
    def test_commit_stages_and_tags(self, cursor):
        dolt = DoltVersionControl(author="ops", email="ops@example.com")
        assert dolt.commit("2 repairs", run_id="reconcile-1") == "abc123def456"

        sql, params = cursor.statements[-1]
        assert "DOLT_COMMIT" in sql
        assert params == ("ops <ops@example.com>", "[scorecard reconcile-1] 2 repairs")
        assert any("DOLT_ADD" in s for s, _ in cursor.statements)

    def test_clean_working_set_skips_commit(self, cursor):
        cursor.pending = 0
        assert DoltVersionControl().commit("nothing") is None
        assert len(cursor.statements) == 1

    def test_log_engine_only_filters_on_tag(self, monkeypatch):
        calls = []

        def fake_query(sql, params=None, fetch="all"):
            calls.append((sql, params))
            return [
                {
                    "commit_hash": "abc",
                    "message": "[scorecard reconcile-1] Reconcile: 1 repairs",
                    "committer": "scorecard",
                    "date": datetime(2024, 6, 1),
                }
            ]

        monkeypatch.setattr(dolt_client, "execute_query", fake_query)
        commits = DoltVersionControl().log(limit=5, engine_only=True)

        assert "LIKE" in calls[0][0]
        assert calls[0][1] == ("[scorecard%", 5)
        assert commits[0].run_id == "reconcile-1"
