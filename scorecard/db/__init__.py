"""DoltDB database client, repositories, and version control.

Provides:
- Thread-local connections and transactions for DoltDB (MySQL-compatible protocol)
- Repository classes for the scorecard tables
- Dolt commits for reconciliation passes
"""

from .client import apply_schema, check_connection, execute_query, get_connection, get_cursor, transaction
from .dolt_client import Commit, DoltVersionControl, get_dolt
from .repository import (
    ConsolidatedRecordRepository,
    ProjectRepository,
    RatingRepository,
    ReviewQueueRepository,
    VendorSummaryRepository,
)

__all__ = [
    # Client
    "apply_schema",
    "check_connection",
    "execute_query",
    "get_connection",
    "get_cursor",
    "transaction",
    # Version control
    "Commit",
    "DoltVersionControl",
    "get_dolt",
    # Repositories
    "ConsolidatedRecordRepository",
    "ProjectRepository",
    "RatingRepository",
    "ReviewQueueRepository",
    "VendorSummaryRepository",
]
