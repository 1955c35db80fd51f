"""Database operation helpers to reduce boilerplate in the stores.

Consolidates the repeated `with self._db.connection() as conn:` pattern.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy import Executable
from sqlalchemy.engine import Row

from studio_os.contracts.errors import LedgerIntegrityError

if TYPE_CHECKING:
    from studio_os.ledger.database import LedgerDB


class DatabaseOps:
    """Helper for common database operations."""

    def __init__(self, db: "LedgerDB") -> None:
        self._db = db

    def execute_fetchone(self, query: Executable) -> Row[Any] | None:
        """Execute query and return single row or None."""
        with self._db.connection() as conn:
            return conn.execute(query).fetchone()

    def execute_fetchall(self, query: Executable) -> list[Row[Any]]:
        """Execute query and return all rows."""
        with self._db.connection() as conn:
            return list(conn.execute(query).fetchall())

    def execute_insert(self, stmt: Executable) -> None:
        """Execute insert statement.

        Raises:
            LedgerIntegrityError: If zero rows are affected
        """
        with self._db.connection() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise LedgerIntegrityError("execute_insert: zero rows affected - ledger write failed")

    def execute_update(self, stmt: Executable) -> None:
        """Execute update statement.

        Raises:
            LedgerIntegrityError: If zero rows are affected (row missing or
                precondition in the WHERE clause no longer holds)
        """
        with self._db.connection() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise LedgerIntegrityError("execute_update: zero rows affected - target row missing or changed concurrently")
