from __future__ import annotations
from .errors import Rollback, tert, tressa
from .interfaces import CursorProtocol
from datetime import date, datetime, time
from decimal import Decimal
from types import TracebackType
from typing import Any, Optional, Type
import logging
import sqlite3


logger = logging.getLogger(__name__)


class Transaction:
    """Context manager for a transaction on a Database. Begins a
        transaction on entry unless one is already open, in which case
        the block joins the open transaction; pass savepoint=True to
        open a savepoint instead. Commits on a clean exit and rolls back
        when an exception propagates. A Rollback raised in the block is
        absorbed by the transaction it rolls back.
    """
    db: Database
    server: str|None
    savepoint: bool
    savepoint_name: str|None
    opened: bool

    def __init__(self, db: Database, server: str|None = None,
                 savepoint: bool = False) -> None:
        """Initialize the instance. Raises TypeError for invalid db."""
        tert(isinstance(db, Database), 'db must be a Database')
        self.db = db
        self.server = server
        self.savepoint = savepoint
        self.savepoint_name = None
        self.opened = False

    def __enter__(self) -> Database:
        """Enter the context block and return the database."""
        if not self.db.in_transaction:
            self.db.begin(self.server)
            self.opened = True
        elif self.savepoint:
            self.db.savepoint_depth += 1
            self.savepoint_name = f'autopoint_{self.db.savepoint_depth}'
            self.db.run(f'SAVEPOINT {self.savepoint_name}', self.server)
            self.opened = True
        return self.db

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> bool:
        """Exit the context block. Commit or rollback as appropriate."""
        if not self.opened:
            return False

        if self.savepoint_name is not None:
            self.db.savepoint_depth -= 1
            if exc_type is None:
                self.db.run(f'RELEASE SAVEPOINT {self.savepoint_name}', self.server)
            else:
                self.db.run(f'ROLLBACK TO SAVEPOINT {self.savepoint_name}', self.server)
        elif exc_type is None:
            self.db.commit(self.server)
        else:
            self.db.rollback(self.server)

        if exc_type is None:
            return False
        if issubclass(exc_type, Rollback):
            return True
        logger.info('transaction rolled back after %s: %s',
                    exc_type.__name__, exc_value)
        return False


class Database:
    """Base class for database connections. Bind a SQL driver by
        subclassing and implementing `_execute`, which must return an
        object implementing CursorProtocol. All SQL passes through
        `execute`, which logs each statement at DEBUG level.
    """
    literal_true: str = "'t'"
    literal_false: str = "'f'"
    in_transaction: bool
    savepoint_depth: int

    def __init__(self) -> None:
        self.in_transaction = False
        self.savepoint_depth = 0

    def _execute(self, sql: str, server: str|None = None) -> CursorProtocol:
        """Run the SQL on the driver. Must be implemented by subclasses."""
        raise NotImplementedError(f'{self.__class__.__name__} must implement _execute')

    def execute(self, sql: str, server: str|None = None) -> CursorProtocol:
        """Execute the SQL and return the cursor. Raises TypeError for
            non-str sql.
        """
        tert(type(sql) is str, 'sql must be str')
        if server is None:
            logger.debug('%s', sql)
        else:
            logger.debug('(%s) %s', server, sql)
        return self._execute(sql, server)

    def fetch(self, sql: str, server: str|None = None) -> list[dict]:
        """Run a query and return the rows as dicts."""
        cursor = self.execute(sql, server)
        columns = [d[0] for d in (cursor.description or [])]
        return [
            dict(zip(columns, row))
            for row in cursor.fetchall()
        ]

    def execute_insert(self, sql: str, server: str|None = None) -> Any:
        """Run an INSERT and return the id of the inserted row."""
        return self.execute(sql, server).lastrowid

    def execute_dui(self, sql: str, server: str|None = None) -> int:
        """Run a DELETE, UPDATE, or INSERT and return the row count."""
        return self.execute(sql, server).rowcount

    def run(self, sql: str, server: str|None = None) -> None:
        """Run the SQL, discarding any result."""
        self.execute(sql, server)

    def begin(self, server: str|None = None) -> None:
        self.run('BEGIN', server)
        self.in_transaction = True

    def commit(self, server: str|None = None) -> None:
        try:
            self.run('COMMIT', server)
        finally:
            self.in_transaction = False

    def rollback(self, server: str|None = None) -> None:
        try:
            self.run('ROLLBACK', server)
        finally:
            self.in_transaction = False

    def transaction(self, server: str|None = None,
                    savepoint: bool = False) -> Transaction:
        """Return a Transaction context manager for this database."""
        return Transaction(self, server=server, savepoint=savepoint)

    def literal(self, value: Any) -> str:
        """Render a value as an SQL literal. Raises TypeError for values
            that have no literal form.
        """
        if value is None:
            return 'NULL'
        if value is True:
            return self.literal_true
        if value is False:
            return self.literal_false
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        if isinstance(value, datetime):
            return f"'{value.isoformat(' ')}'"
        if isinstance(value, (date, time)):
            return f"'{value.isoformat()}'"
        if isinstance(value, (bytes, bytearray, memoryview)):
            return f"X'{bytes(value).hex()}'"
        if isinstance(value, (list, tuple, set)):
            return '(' + ', '.join([self.literal(v) for v in value]) + ')'
        raise TypeError(f'cannot render {type(value).__name__} as an SQL literal')


class SqliteDatabase(Database):
    """Database bound to sqlite3. Transactions are issued explicitly, so
        the connection runs in autocommit mode between them.
    """
    literal_true: str = '1'
    literal_false: str = '0'
    connection: sqlite3.Connection
    connection_info: str

    def __init__(self, connection_info: str = '') -> None:
        """Initialize the instance. Raises TypeError for non-str
            connection_info or UsageError for empty connection_info.
        """
        if not connection_info and hasattr(self, 'connection_info'):
            connection_info = self.connection_info
        tert(type(connection_info) in (str, bytes),
            'connection_info must be str or bytes')
        tressa(len(connection_info) > 0, 'cannot use with empty connection_info')
        super().__init__()
        self.connection_info = connection_info
        self.connection = sqlite3.connect(connection_info, isolation_level=None)

    def _execute(self, sql: str, server: str|None = None) -> CursorProtocol:
        return self.connection.execute(sql)

    def close(self) -> None:
        """Close the connection."""
        self.connection.close()

    def __enter__(self) -> SqliteDatabase:
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        """Exit the context block and close the connection."""
        self.close()
