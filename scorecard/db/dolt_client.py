"""Dolt version control operations.

Records each engine write as a Dolt commit, so every repair can be inspected
later with `dolt log` / `dolt diff`. Messages carry a `[scorecard <run id>]`
tag; `history` uses it to tie a commit back to the pass report that made it.
"""

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from .client import execute_query, get_cursor

logger = logging.getLogger(__name__)

COMMIT_TAG = "scorecard"

_TAG_PATTERN = re.compile(r"^\[" + COMMIT_TAG + r"(?: (?P<run_id>[^\]\s]+))?\] ")


def commit_message(summary: str, run_id: Optional[str] = None) -> str:
    """Tagged commit message.

    >>> commit_message("2 repairs", "reconcile-20240601T000000")
    '[scorecard reconcile-20240601T000000] 2 repairs'
    >>> commit_message("Close project PRJ-1")
    '[scorecard] Close project PRJ-1'
    """
    tag = f"{COMMIT_TAG} {run_id}" if run_id else COMMIT_TAG
    return f"[{tag}] {summary}"


@dataclass
class Commit:
    """A Dolt commit."""

    hash: str
    message: str
    author: str
    date: datetime

    @property
    def is_engine_commit(self) -> bool:
        return _TAG_PATTERN.match(self.message) is not None

    @property
    def run_id(self) -> Optional[str]:
        """Pass run id from the message tag, if the commit came from a pass."""
        match = _TAG_PATTERN.match(self.message)
        return match.group("run_id") if match else None

    @property
    def summary(self) -> str:
        """Message with the tag stripped."""
        return _TAG_PATTERN.sub("", self.message, count=1)


class DoltVersionControl:
    """Commit and inspect Dolt history.

    Exposes:
        - commit(summary, run_id): Stage and commit all working changes
        - log(limit, engine_only): Get commit history
    """

    def __init__(self, author: str | None = None, email: str | None = None):
        """Initialize version control.

        Args:
            author: Commit author name (default: from DOLT_AUTHOR env var or 'scorecard')
            email: Commit author email (default: from DOLT_EMAIL env var or 'scorecard@localhost')
        """
        self.author = author or os.environ.get("DOLT_AUTHOR", "scorecard")
        self.email = email or os.environ.get("DOLT_EMAIL", "scorecard@localhost")

    def commit(self, summary: str, run_id: Optional[str] = None) -> str | None:
        """Commit all working changes under a tagged message.

        Args:
            summary: What the engine changed
            run_id: Pass run id to tag the commit with, if it came from a pass

        Returns:
            Commit hash, or None when the working set is clean

        Example:
            hash = dolt.commit("3 repairs", run_id=report.run_id)
        """
        message = commit_message(summary, run_id)
        with get_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS pending FROM dolt_status")
            if not cursor.fetchone()["pending"]:
                logger.info(f"Nothing to commit for {message!r}")
                return None

            cursor.execute("CALL DOLT_ADD('-A')")
            cursor.execute("CALL DOLT_COMMIT('--author', %s, '-m', %s)", (f"{self.author} <{self.email}>", message))
            result = cursor.fetchone()

        commit_hash = result["hash"] if result else None
        if commit_hash:
            logger.info(f"Dolt commit {commit_hash[:8]}: {message}")
        return commit_hash

    def log(self, limit: int = 10, engine_only: bool = False) -> list[Commit]:
        """Get commit history, newest first.

        Args:
            limit: Number of commits
            engine_only: Only commits tagged by the engine
        """
        where = "WHERE message LIKE %s" if engine_only else ""
        params = (f"[{COMMIT_TAG}%", limit) if engine_only else (limit,)
        rows = execute_query(
            f"""
            SELECT commit_hash, message, committer, date
            FROM dolt_log
            {where}
            ORDER BY date DESC
            LIMIT %s
            """,
            params,
        )
        return [
            Commit(hash=row["commit_hash"], message=row["message"], author=row["committer"], date=row["date"])
            for row in (rows or [])
        ]


@lru_cache(maxsize=1)
def get_dolt() -> DoltVersionControl:
    """Get the shared DoltVersionControl instance."""
    return DoltVersionControl()
