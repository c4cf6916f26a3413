"""
    The interfaces used by the package. `CursorProtocol` and
    `DatabaseProtocol` must be implemented to bind the library to a new
    SQL driver; the simplest way is to subclass `Database` and implement
    its `_execute` method. `DatasetProtocol` describes the query builder
    that models delegate their SQL to, and any replacement (e.g. a test
    double that scripts row counts, or a dataset providing
    `insert_select`) can be bound to a model with `set_dataset`.
    `ModelProtocol` describes the record interface.
"""


from __future__ import annotations
from types import TracebackType
from typing import (
    Any,
    Callable,
    Iterator,
    Optional,
    Protocol,
    Type,
    runtime_checkable,
)


@runtime_checkable
class CursorProtocol(Protocol):
    """Interface showing how a DB cursor should function."""
    @property
    def rowcount(self) -> int:
        """Number of rows modified by the previous statement."""
        ...

    @property
    def lastrowid(self) -> Any:
        """Id of the row inserted by the previous statement."""
        ...

    @property
    def description(self) -> Any:
        """Column descriptions of the previous query."""
        ...

    def execute(self, sql: str, parameters: list = []) -> CursorProtocol:
        """Execute a single query with the given parameters."""
        ...

    def fetchone(self) -> Any:
        """Get one record returned by the previous query."""
        ...

    def fetchall(self) -> Any:
        """Get all records returned by the previous query."""
        ...


@runtime_checkable
class TransactionProtocol(Protocol):
    """Interface showing how a transaction context manager should behave."""
    def __enter__(self) -> DatabaseProtocol:
        """Begin the transaction unless one is already open."""
        ...

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> bool:
        """Commit, or roll back if an exception is propagating. Return
            True only to absorb a Rollback.
        """
        ...


@runtime_checkable
class DatabaseProtocol(Protocol):
    """Interface showing how a database connection should function."""
    @property
    def in_transaction(self) -> bool:
        """True while a transaction is open."""
        ...

    def execute(self, sql: str, server: str|None = None) -> CursorProtocol:
        """Execute the SQL on the connection for the given server."""
        ...

    def fetch(self, sql: str, server: str|None = None) -> list[dict]:
        """Run a query and return the rows as dicts."""
        ...

    def execute_insert(self, sql: str, server: str|None = None) -> Any:
        """Run an INSERT and return the inserted id."""
        ...

    def execute_dui(self, sql: str, server: str|None = None) -> int:
        """Run a DELETE, UPDATE, or INSERT and return the row count."""
        ...

    def run(self, sql: str, server: str|None = None) -> None:
        """Run the SQL, discarding any result."""
        ...

    def transaction(self, server: str|None = None,
                    savepoint: bool = False) -> TransactionProtocol:
        """Return a context manager wrapping a block in a transaction."""
        ...

    def literal(self, value: Any) -> str:
        """Render a value as an SQL literal."""
        ...


@runtime_checkable
class DatasetProtocol(Protocol):
    """Interface showing how a dataset (query builder) should function.
        Filtering methods return new datasets and leave the receiver
        unchanged.
    """
    @property
    def db(self) -> DatabaseProtocol:
        """The database the dataset runs on."""
        ...

    @property
    def table(self) -> str:
        """The name of the table."""
        ...

    @property
    def opts(self) -> dict:
        """Options such as server, limit, and lock."""
        ...

    def equal(self, column: str = None, data: Any = None,
              **conditions: dict[str, Any]) -> DatasetProtocol:
        """Return a dataset with 'column = data' clauses added."""
        ...

    def limit(self, limit: int) -> DatasetProtocol:
        """Return a dataset limited to the given number of rows."""
        ...

    def server(self, name: str) -> DatasetProtocol:
        """Return a dataset routed to the named server."""
        ...

    def for_update(self) -> DatasetProtocol:
        """Return a dataset that locks selected rows for update."""
        ...

    def naked(self) -> DatasetProtocol:
        """Return a dataset yielding plain dicts instead of models."""
        ...

    def select(self, *columns: str) -> DatasetProtocol:
        """Return a dataset selecting the given columns."""
        ...

    @property
    def sql(self) -> str:
        """The SELECT statement for the dataset."""
        ...

    def first(self) -> Any:
        """Return the first row, or None."""
        ...

    def all(self) -> list:
        """Return all rows."""
        ...

    def insert(self, values: dict) -> Any:
        """Insert a row and return the inserted id."""
        ...

    def update(self, values: dict) -> int:
        """Update the matching rows and return the number updated."""
        ...

    def delete(self) -> int:
        """Delete the matching rows and return the number deleted."""
        ...


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface showing how a model should function."""
    @property
    def table(self) -> str:
        """Str with the name of the table."""
        ...

    @property
    def primary_key(self) -> str|tuple[str, ...]|None:
        """Primary key column name, tuple of names, or None."""
        ...

    @property
    def columns(self) -> tuple[str, ...]:
        """Tuple of str column names."""
        ...

    @property
    def values(self) -> dict:
        """Dict of column values."""
        ...

    @property
    def changed_columns(self) -> list[str]:
        """Columns changed since the last load or save."""
        ...

    @classmethod
    def add_hook(cls, event: str, hook: Callable):
        """Add the hook for the event."""
        ...

    @classmethod
    def remove_hook(cls, event: str, hook: Callable):
        """Remove the hook for the event."""
        ...

    @classmethod
    def clear_hooks(cls, event: str = None):
        """Remove all hooks for an event. If no event is specified,
            clear all hooks for all events.
        """
        ...

    @classmethod
    def invoke_hooks(cls, event: str, *args, **kwargs) -> list:
        """Invoke the hooks for the event and return their results."""
        ...

    @classmethod
    def load(cls, values: dict) -> ModelProtocol:
        """Return an existing record built from a row."""
        ...

    @classmethod
    def find(cls, pk: Any) -> Optional[ModelProtocol]:
        """Find a record by its primary key. Return None if it does not
            exist.
        """
        ...

    @classmethod
    def query(cls, conditions: dict = None) -> DatasetProtocol:
        """Return a DatasetProtocol for the model."""
        ...

    def __hash__(self) -> int:
        """Allow inclusion in sets."""
        ...

    def __eq__(self, other) -> bool:
        """Return True if classes and values are equal, else False."""
        ...

    def __iter__(self) -> Iterator[str]:
        """Iterate over the column names present in values."""
        ...

    def pk(self) -> Any:
        """Return the primary key value."""
        ...

    def pk_hash(self) -> dict:
        """Return a dict mapping primary key columns to values."""
        ...

    def this(self) -> DatasetProtocol:
        """Return the dataset identifying this record."""
        ...

    def modified(self) -> bool:
        """True if the record has unsaved changes."""
        ...

    def save(self, *columns: str, **options) -> Optional[ModelProtocol]:
        """Insert or update the record. Return self, or None on a silent
            failure.
        """
        ...

    def save_changes(self, **options) -> Optional[ModelProtocol]:
        """Save only if modified."""
        ...

    def destroy(self, **options) -> Optional[ModelProtocol]:
        """Delete the record, running hooks."""
        ...

    def refresh(self) -> ModelProtocol:
        """Reload values from the database."""
        ...
