"""Query execution package."""

from finledger.queries.executor import LedgerQueryExecutor, QueryExecutionError

__all__ = ["LedgerQueryExecutor", "QueryExecutionError"]
