from __future__ import annotations
from .errors import tert, tressa, vert
from .interfaces import DatabaseProtocol
from copy import copy
from typing import Any, Callable, Iterator, Optional


class Dataset:
    """Query builder bound to a database and table. Renders literal SQL
        and runs it on the database. Filtering methods return a new
        dataset, leaving the receiver unchanged, so a dataset can be
        shared and refined. Subclass and override `insert`, `update`,
        `delete`, or `all` to substitute behavior; define `insert_select`
        to have models take the inserted row from the insert itself.
    """
    db: DatabaseProtocol
    table: str
    clauses: list[str]
    opts: dict
    row_proc: Optional[Callable[[dict], Any]]

    def __init__(self, db: DatabaseProtocol, table: str,
                 row_proc: Optional[Callable[[dict], Any]] = None) -> None:
        """Initialize the instance. Raises TypeError for invalid table
            or row_proc.
        """
        tert(type(table) is str, 'table must be str')
        vert(len(table) > 0, 'table cannot be empty')
        tert(row_proc is None or callable(row_proc), 'row_proc must be callable')
        self.db = db
        self.table = table
        self.clauses = []
        self.opts = {}
        self.row_proc = row_proc

    def __repr__(self) -> str:
        """Pretty str representation."""
        return f"{self.__class__.__name__}(table='{self.table}', sql='{self.sql}')"

    def __iter__(self) -> Iterator[Any]:
        return iter(self.all())

    def clone(self, **opts) -> Dataset:
        """Return a copy of the dataset with the given options merged in."""
        ds = copy(self)
        ds.clauses = [*self.clauses]
        ds.opts = {**self.opts, **opts}
        return ds

    def _add_clauses(self, operator: str, column: str|None, data: Any,
                     conditions: dict[str, Any]) -> Dataset:
        """Return a clone with one 'column operator data' clause per
            condition.
        """
        tert(column is None or type(column) is str, 'column must be str')
        if column is not None:
            conditions = {column: data, **conditions}
        vert(len(conditions) > 0, 'at least one condition must be given')
        ds = self.clone()
        for key, value in conditions.items():
            ds.clauses.append(f'({key} {operator} {self.db.literal(value)})')
        return ds

    def equal(self, column: str = None, data: Any = None,
              **conditions: dict[str, Any]) -> Dataset:
        """Return a dataset with 'column = data' clauses added. A None
            value renders as 'column IS NULL' and a list or tuple as
            'column IN (...)'. Can be called with `equal(column, data)`
            or `equal(column1=data1, column2=data2)`.
        """
        tert(column is None or type(column) is str, 'column must be str')
        if column is not None:
            conditions = {column: data, **conditions}
        vert(len(conditions) > 0, 'at least one condition must be given')
        ds = self.clone()
        for key, value in conditions.items():
            if value is None:
                ds.clauses.append(f'({key} IS NULL)')
            elif isinstance(value, (list, tuple)):
                vert(len(value) > 0, 'data cannot be empty')
                ds.clauses.append(f'({key} IN {self.db.literal(value)})')
            else:
                ds.clauses.append(f'({key} = {self.db.literal(value)})')
        return ds

    def where(self, *clauses: str, **conditions: dict[str, Any]) -> Dataset:
        """Return a dataset with raw SQL clauses and 'column = data'
            conditions added. Raises TypeError for non-str clauses.
        """
        tert(all([type(c) is str for c in clauses]), 'clauses must be str')
        ds = self.equal(**conditions) if conditions else self.clone()
        ds.clauses.extend([f'({c})' for c in clauses])
        return ds

    def not_equal(self, column: str = None, data: Any = None,
                  **conditions: dict[str, Any]) -> Dataset:
        """Return a dataset with 'column != data' clauses added."""
        return self._add_clauses('!=', column, data, conditions)

    def less(self, column: str = None, data: Any = None,
             **conditions: dict[str, Any]) -> Dataset:
        """Return a dataset with 'column < data' clauses added."""
        return self._add_clauses('<', column, data, conditions)

    def greater(self, column: str = None, data: Any = None,
                **conditions: dict[str, Any]) -> Dataset:
        """Return a dataset with 'column > data' clauses added."""
        return self._add_clauses('>', column, data, conditions)

    def is_null(self, column: str) -> Dataset:
        tert(type(column) is str, 'column must be str')
        ds = self.clone()
        ds.clauses.append(f'({column} IS NULL)')
        return ds

    def not_null(self, column: str) -> Dataset:
        tert(type(column) is str, 'column must be str')
        ds = self.clone()
        ds.clauses.append(f'({column} IS NOT NULL)')
        return ds

    def order_by(self, column: str, direction: str = 'asc') -> Dataset:
        """Return a dataset ordered by the column. Raises TypeError or
            ValueError for invalid column or direction.
        """
        tert(type(column) is str, 'column must be str')
        tert(type(direction) is str, 'direction must be str')
        vert(direction in ('asc', 'desc'), 'direction must be asc or desc')
        return self.clone(order=(column, direction.upper()))

    def limit(self, limit: int) -> Dataset:
        """Return a dataset limited to the given number of rows. Raises
            TypeError or ValueError for invalid limit.
        """
        tert(type(limit) is int, 'limit must be positive int')
        vert(limit > 0, 'limit must be positive int')
        return self.clone(limit=limit)

    def skip(self, offset: int) -> Dataset:
        """Return a dataset skipping the given number of rows."""
        tert(type(offset) is int, 'offset must be positive int')
        vert(offset >= 0, 'offset must be positive int')
        return self.clone(offset=offset)

    def select(self, *columns: str) -> Dataset:
        """Return a dataset selecting the given columns."""
        tert(all([type(c) is str for c in columns]), 'select columns must be str')
        return self.clone(select=[*columns])

    def server(self, name: str) -> Dataset:
        """Return a dataset routed to the named server."""
        tert(type(name) is str, 'server name must be str')
        return self.clone(server=name)

    def for_update(self) -> Dataset:
        """Return a dataset that locks the selected rows for update."""
        return self.clone(lock='FOR UPDATE')

    def naked(self) -> Dataset:
        """Return a dataset returning plain dicts."""
        ds = self.clone()
        ds.row_proc = None
        return ds

    def where_sql(self) -> str:
        """Render the WHERE clause, or '' when unfiltered."""
        if len(self.clauses) == 0:
            return ''
        if len(self.clauses) == 1:
            return f' WHERE {self.clauses[0]}'
        return f' WHERE ({" AND ".join(self.clauses)})'

    @property
    def sql(self) -> str:
        """The SELECT statement for the dataset."""
        return self.select_sql()

    def select_sql(self) -> str:
        columns = ', '.join(self.opts.get('select') or ['*'])
        sql = f'SELECT {columns} FROM {self.table}' + self.where_sql()

        if 'order' in self.opts:
            sql += ' ORDER BY {} {}'.format(*self.opts['order'])

        if 'limit' in self.opts:
            sql += f' LIMIT {self.opts["limit"]}'

            if self.opts.get('offset'):
                sql += f' OFFSET {self.opts["offset"]}'

        if 'lock' in self.opts:
            sql += f' {self.opts["lock"]}'

        return sql

    def insert_sql(self, values: dict) -> str:
        """Render the INSERT statement for the values."""
        tert(isinstance(values, dict), 'values must be dict')
        if len(values) == 0:
            return f'INSERT INTO {self.table} DEFAULT VALUES'
        columns = ', '.join(values.keys())
        literals = ', '.join([self.db.literal(v) for v in values.values()])
        return f'INSERT INTO {self.table} ({columns}) VALUES ({literals})'

    def update_sql(self, values: dict) -> str:
        """Render the UPDATE statement for the values. Raises UsageError
            when there is nothing to update.
        """
        tert(isinstance(values, dict), 'values must be dict')
        tressa(len(values) > 0, 'cannot update without values')
        assignments = ', '.join([
            f'{column} = {self.db.literal(value)}'
            for column, value in values.items()
        ])
        return f'UPDATE {self.table} SET {assignments}' + self.where_sql()

    def delete_sql(self) -> str:
        return f'DELETE FROM {self.table}' + self.where_sql()

    def all(self) -> list:
        """Run the query and return the rows, passed through row_proc
            when one is set.
        """
        rows = self.db.fetch(self.select_sql(), self.opts.get('server'))
        if self.row_proc is None:
            return rows
        return [self.row_proc(row) for row in rows]

    def first(self) -> Any:
        """Run the query limited to one row and return it, or None."""
        rows = self.limit(1).all()
        return rows[0] if rows else None

    def count(self) -> int:
        """Return the number of rows matching the query."""
        sql = f'SELECT count(*) AS count FROM {self.table}' + self.where_sql()
        rows = self.db.fetch(sql, self.opts.get('server'))
        return rows[0]['count'] if rows else 0

    def insert(self, values: dict) -> Any:
        """Insert a row and return the inserted id."""
        return self.db.execute_insert(self.insert_sql(values), self.opts.get('server'))

    def update(self, values: dict) -> int:
        """Update the matching rows and return the number updated."""
        return self.db.execute_dui(self.update_sql(values), self.opts.get('server'))

    def delete(self) -> int:
        """Delete the matching rows and return the number deleted."""
        return self.db.execute_dui(self.delete_sql(), self.opts.get('server'))
