from __future__ import annotations
from .dataset import Dataset
from .errors import (
    ConfigurationError,
    HookFailed,
    InvalidValue,
    MassAssignmentRestriction,
    NoExistingObject,
    RecordNotFound,
    ValidationFailed,
    tert,
    tressa,
)
from .interfaces import DatabaseProtocol, DatasetProtocol
from .typecast import Typecaster, default_typecaster, resolve_type
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Any, Callable, ContextManager, Iterable, Iterator, Optional
import logging
import packify


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnPolicy:
    """Which columns a mass assignment may set. When `only` is given,
        just those columns are permitted; otherwise everything not in
        `exclude`. Columns in `protected` are never permitted.
    """
    only: Optional[tuple[str, ...]] = None
    exclude: tuple[str, ...] = ()
    protected: tuple[str, ...] = ()

    def permits(self, column: str) -> bool:
        if column in self.protected:
            return False
        if self.only is not None:
            return column in self.only
        return column not in self.exclude


def _flatten(names: Iterable) -> tuple[str, ...]:
    """Flatten one level of nested lists/tuples of column names."""
    flat = []
    for name in names:
        if isinstance(name, (list, tuple, set, frozenset)):
            flat.extend(name)
        else:
            flat.append(name)
    return tuple(flat)


class SqlModel:
    """General model for mapping a SQL row to an in-memory record that
        tracks its changes and persists itself through a dataset.
    """
    table: str = 'example'
    primary_key: str|tuple[str, ...]|None = 'id'
    columns: tuple = ('id', 'name')
    db_schema: dict[str, dict] = {}
    db: Optional[DatabaseProtocol] = None
    dataset: Optional[DatasetProtocol] = None
    typecaster: Typecaster = default_typecaster

    restrict_primary_key: bool = True
    allowed_columns: Optional[tuple[str, ...]] = None
    restricted_columns: Optional[tuple[str, ...]] = None
    refresh_after_insert: bool = True

    use_transactions: bool = True
    require_modification: bool = True
    raise_on_save_failure: bool = True
    strict_param_setting: bool = True
    typecast_on_assignment: bool = True
    raise_on_typecast_failure: bool = True
    typecast_empty_string_to_nil: bool = True

    values: dict
    changed_columns: list[str]
    errors: dict[str, list[str]]
    is_new: bool
    was_new: bool
    columns_updated: Optional[dict]
    _modified: bool
    _this: Optional[DatasetProtocol]
    _event_hooks: dict[str, list[Callable]] = {}

    def __init__(self, values: dict = None, /, *, from_db: bool = False) -> None:
        """Initialize the instance. A new record takes its values through
            mass assignment and typecasting; pass from_db=True (or use
            load) to store a row directly as an existing record. Raises
            TypeError for non-dict values or MassAssignmentRestriction
            for columns that may not be set.
        """
        values = {} if values is None else values
        tert(isinstance(values, dict), 'values must be dict')
        self.values = {}
        self.changed_columns = []
        self.errors = {}
        self.is_new = not from_db
        self.was_new = False
        self.columns_updated = None
        self._modified = not from_db
        self._this = None

        if not hasattr(self.__class__, 'disable_column_property_mapping'):
            names = dir(self)
            for column in self.columns:
                if column not in names:
                    setattr(self.__class__, column, self.create_property(column))

        if from_db:
            self.values = {**values}
        else:
            self.set(values)
            self.changed_columns.clear()

        self._run_hook('after_initialize')

    @classmethod
    def _own_hooks(cls) -> dict[str, list[Callable]]:
        """Return the hook registry owned by this class. A class that has
            only inherited a registry gets a copy of it first, so changes
            never reach parent or sibling models.
        """
        if '_event_hooks' not in cls.__dict__:
            cls._event_hooks = {
                event: [*hooks] for event, hooks in cls._event_hooks.items()
            }
        return cls._event_hooks

    @classmethod
    def add_hook(cls, event: str, hook: Callable):
        """Add the hook for the event. Hooks are called with the class
            and the record; a before hook returning False aborts.
        """
        hooks = cls._own_hooks().setdefault(event, [])
        if hook not in hooks:
            hooks.append(hook)

    @classmethod
    def remove_hook(cls, event: str, hook: Callable):
        """Remove the hook for the event."""
        hooks = cls._own_hooks().get(event, [])
        if hook in hooks:
            hooks.remove(hook)

    @classmethod
    def clear_hooks(cls, event: str = None):
        """Remove all hooks for an event. If no event is specified,
            clear all hooks for all events.
        """
        if event is None:
            return cls._own_hooks().clear()
        cls._own_hooks().pop(event, None)

    @classmethod
    def invoke_hooks(cls, event: str, *args, **kwargs) -> list:
        """Invoke the hooks for the event, passing cls, *args, and
            **kwargs. Returns the list of hook results.
        """
        return [
            hook(cls, *args, **kwargs)
            for hook in [*cls._event_hooks.get(event, [])]
        ]

    @staticmethod
    def create_property(name) -> property:
        """Create a dynamic property for the column with the given name.
            Assignment through the property is typecast and tracked.
        """
        @property
        def prop(self):
            return self[name]
        @prop.setter
        def prop(self, value):
            self[name] = value
        return prop

    # overridable hooks
    def after_initialize(self) -> None: ...
    def before_validation(self) -> Optional[bool]: ...
    def validate(self) -> None:
        """Add messages to self.errors[column] for invalid values."""
        ...
    def after_validation(self) -> None: ...
    def before_save(self) -> Optional[bool]: ...
    def after_save(self) -> None: ...
    def before_insert(self) -> Optional[bool]: ...
    def after_insert(self) -> None: ...
    def before_update(self) -> Optional[bool]: ...
    def after_update(self) -> None: ...
    def before_destroy(self) -> Optional[bool]: ...
    def after_destroy(self) -> None: ...

    def _run_hook(self, event: str) -> None:
        getattr(self, event)()
        self.invoke_hooks(event, self)

    def _run_before_hook(self, event: str) -> bool:
        """Run a before hook. Returns False if the method or a registered
            hook returned False.
        """
        if getattr(self, event)() is False:
            return False
        return False not in self.invoke_hooks(event, self)

    def _check_before_hook(self, event: str) -> None:
        """Run a before hook. Raises HookFailed if it rejects."""
        if not self._run_before_hook(event):
            logger.debug('%s hook failed for %s', event, self.__class__.__name__)
            raise HookFailed(f'the {event} hook failed')

    def _raise_on_failure(self, option: Optional[bool]) -> bool:
        return self.raise_on_save_failure if option is None else option

    # attribute store
    def __getitem__(self, column: str) -> Any:
        return self.values.get(column)

    def __setitem__(self, column: str, value: Any) -> None:
        """Typecast the value and store it, marking the column changed if
            the record is new or the stored value differs in value or
            type.
        """
        value = self.typecast_value(column, value)
        stored = self.values.get(column)
        if self.is_new or column not in self.values or value != stored \
                or type(value) is not type(stored):
            if column not in self.changed_columns:
                self.changed_columns.append(column)
            self.values[column] = value
            if self.primary_key is not None and column in self.primary_key_columns():
                self._this = None

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def keys(self) -> list[str]:
        return list(self.values.keys())

    def items(self) -> list[tuple[str, Any]]:
        return list(self.values.items())

    def modified(self) -> bool:
        """True if the record is new, was marked modified, or has changed
            columns.
        """
        return self.is_new or self._modified or len(self.changed_columns) > 0

    def set_modified(self) -> SqlModel:
        """Mark the record modified until the next successful save."""
        self._modified = True
        return self

    def typecast_value(self, column: str, value: Any) -> Any:
        """Typecast a value for the column according to db_schema. Raises
            InvalidValue if the value cannot be typecast and
            raise_on_typecast_failure is set; otherwise the raw value is
            returned.
        """
        if not self.typecast_on_assignment or column not in self.db_schema:
            return value

        schema = self.db_schema[column]
        db_type = resolve_type(schema.get('type'))

        if isinstance(value, str) and value == '' and \
                self.typecast_empty_string_to_nil and \
                db_type is not None and db_type not in ('string', 'blob'):
            value = None

        if value is None:
            if schema.get('allow_null') is False and self.raise_on_typecast_failure:
                raise InvalidValue(f'None is not allowed for the {column} column')
            return value

        try:
            return self.typecaster.typecast(db_type, value)
        except InvalidValue:
            if self.raise_on_typecast_failure:
                raise
            return value

    # mass assignment
    @classmethod
    def setter_names(cls) -> set[str]:
        """Names that mass assignment can set: the columns and any public
            property with a setter.
        """
        names = set(cls.columns)
        for klass in cls.__mro__:
            for name, attr in vars(klass).items():
                if isinstance(attr, property) and attr.fset is not None \
                        and not name.startswith('_'):
                    names.add(name)
        return names

    @classmethod
    def column_policy(cls, only: Iterable[str]|bool|None = None,
                      exclude: Iterable[str]|bool|None = None) -> ColumnPolicy:
        """Build the ColumnPolicy for a mass assignment. None uses the
            class allowed_columns/restricted_columns and False means no
            list. Primary key columns are protected unless
            restrict_primary_key is False.
        """
        only = cls.allowed_columns if only is None else only
        exclude = cls.restricted_columns if exclude is None else exclude
        protected = ()
        if cls.primary_key is not None and cls.restrict_primary_key:
            protected = cls.primary_key_columns()
        return ColumnPolicy(
            only=None if only is None or only is False else _flatten(only),
            exclude=() if exclude is None or exclude is False else _flatten(exclude),
            protected=protected,
        )

    def _assign(self, name: str, value: Any) -> None:
        prop = getattr(self.__class__, name, None)
        if isinstance(prop, property) and prop.fset is not None:
            setattr(self, name, value)
        else:
            self[name] = value

    def _set_restricted(self, values: dict, only: Any, exclude: Any) -> SqlModel:
        tert(isinstance(values, dict), 'values must be dict')
        policy = self.column_policy(only, exclude)
        setters = self.setter_names()
        for name, value in values.items():
            if name in setters and policy.permits(name):
                self._assign(name, value)
            elif self.strict_param_setting:
                raise MassAssignmentRestriction(
                    f'{name} does not exist or access is restricted to it'
                )
        return self

    def set(self, values: dict) -> SqlModel:
        """Set values using the class column policy. Return self in monad
            pattern. Primary key columns cannot be set.
        """
        return self._set_restricted(values, None, None)

    def set_all(self, values: dict) -> SqlModel:
        """Set values ignoring allowed_columns and restricted_columns."""
        return self._set_restricted(values, False, False)

    def set_only(self, values: dict, *only: str|Iterable[str]) -> SqlModel:
        """Set values, permitting only the given columns."""
        return self._set_restricted(values, only, False)

    def set_except(self, values: dict, *exclude: str|Iterable[str]) -> SqlModel:
        """Set values, permitting every column except the given ones."""
        return self._set_restricted(values, False, exclude)

    def set_fields(self, values: dict, *fields: str|Iterable[str]) -> SqlModel:
        """Set each named field from values, None when missing. The
            column policy is not consulted. Raises
            MassAssignmentRestriction for a name that cannot be set.
        """
        tert(isinstance(values, dict), 'values must be dict')
        setters = self.setter_names()
        for name in _flatten(fields):
            if name not in setters:
                raise MassAssignmentRestriction(f'{name} does not exist')
            self._assign(name, values.get(name))
        return self

    def update(self, values: dict, **options) -> Optional[SqlModel]:
        """Set the values then save the changes."""
        return self.set(values).save_changes(**options)

    def update_all(self, values: dict, **options) -> Optional[SqlModel]:
        return self.set_all(values).save_changes(**options)

    def update_only(self, values: dict, *only: str|Iterable[str],
                    **options) -> Optional[SqlModel]:
        return self.set_only(values, *only).save_changes(**options)

    def update_except(self, values: dict, *exclude: str|Iterable[str],
                      **options) -> Optional[SqlModel]:
        return self.set_except(values, *exclude).save_changes(**options)

    def update_fields(self, values: dict, *fields: str|Iterable[str],
                      **options) -> Optional[SqlModel]:
        return self.set_fields(values, *fields).save_changes(**options)

    # primary key
    @classmethod
    def primary_key_columns(cls) -> tuple[str, ...]:
        """Return the primary key column names in declaration order.
            Raises ConfigurationError if the model has no primary key.
        """
        if cls.primary_key is None:
            raise ConfigurationError(f'{cls.__name__} has no primary key')
        if isinstance(cls.primary_key, str):
            return (cls.primary_key,)
        return tuple(cls.primary_key)

    def autoincrementing_primary_key(self) -> str|tuple[str, ...]|None:
        """The column assigned the id returned by an insert."""
        return self.primary_key

    def pk(self) -> Any:
        """Return the primary key value, or a tuple of values for a
            composite key. Raises ConfigurationError if the model has no
            primary key.
        """
        columns = self.primary_key_columns()
        if isinstance(self.primary_key, str):
            return self.values.get(columns[0])
        return tuple(self.values.get(c) for c in columns)

    def pk_hash(self) -> dict:
        """Return a dict mapping primary key columns to their values.
            Raises ConfigurationError if the model has no primary key.
        """
        return {c: self.values.get(c) for c in self.primary_key_columns()}

    def this(self) -> DatasetProtocol:
        """Return the dataset for this record's row: the model dataset
            filtered on the primary key and limited to one row. Raises
            ConfigurationError if the model has no primary key.
        """
        if self._this is None:
            ds = self.query().naked()
            for column, value in self.pk_hash().items():
                ds = ds.equal(column, value)
            self._this = ds.limit(1)
        return self._this

    # equality
    @classmethod
    def _encodable(cls, val: Any) -> Any:
        if isinstance(val, dict):
            return [
                [str(k), cls._encodable(v)]
                for k, v in sorted(val.items(), key=lambda i: str(i[0]))
            ]
        if isinstance(val, (list, tuple)):
            return [cls._encodable(v) for v in val]
        if isinstance(val, (date, time, Decimal)):
            return str(val)
        if isinstance(val, bool):
            return int(val)
        if isinstance(val, memoryview):
            return bytes(val)
        return val

    @classmethod
    def encode_value(cls, val: Any) -> str:
        """Encode a value for hashing. Uses the pack function from
            packify after converting temporal values and Decimals to str,
            bools to int, and dicts to sorted pairs.
        """
        return packify.pack(cls._encodable(val)).hex()

    def _identity(self) -> Any:
        if self.primary_key is not None:
            pk = self.pk()
            if isinstance(pk, tuple) and None in pk:
                pk = None
            if pk is not None:
                return pk
        return self.values

    def __hash__(self) -> int:
        """Hash on the class and primary key, or on the class and values
            when the primary key is missing. Raises TypeError for an
            unencodable value (calls packify.pack).
        """
        return hash((self.__class__, self.encode_value(self._identity())))

    def __eq__(self, other) -> bool:
        """Records are equal when they share a class and values."""
        if type(other) is not type(self):
            return False
        return self.values == other.values

    def pk_equal(self, other) -> bool:
        """True if other is of the same class with the same non-None
            primary key.
        """
        if type(other) is not type(self) or self.primary_key is None:
            return False
        pk = self.pk()
        if pk is None or (isinstance(pk, tuple) and None in pk):
            return False
        return pk == other.pk()

    def __repr__(self) -> str:
        """Pretty str representation."""
        return f"{self.__class__.__name__}(table='{self.table}', " + \
            f"primary_key={self.primary_key!r}, values={self.values}, " + \
            f"new={self.is_new})"

    def __getstate__(self) -> dict:
        """Drop the cached dataset so the record can be pickled."""
        state = {**self.__dict__}
        state['_this'] = None
        return state

    # class-level access
    @classmethod
    def query(cls, conditions: dict = None) -> DatasetProtocol:
        """Return the model dataset with any conditions applied as
            column = value filters. Raises UsageError if the model has
            neither dataset nor db.
        """
        if cls.dataset is not None:
            ds = cls.dataset
        else:
            tressa(cls.db is not None, f'{cls.__name__} has no db or dataset')
            ds = Dataset(cls.db, cls.table, row_proc=cls.load)

        for column, value in (conditions or {}).items():
            ds = ds.equal(column, value)

        return ds

    @classmethod
    def set_dataset(cls, dataset: DatasetProtocol) -> None:
        """Bind the model to a dataset, replacing the default one."""
        tert(isinstance(dataset, DatasetProtocol),
            'dataset must implement DatasetProtocol')
        cls.dataset = dataset

    @classmethod
    def load(cls, values: dict) -> SqlModel:
        """Return an existing record for a row read from the database."""
        return cls(values, from_db=True)

    @classmethod
    def create(cls, values: dict = None, **options) -> Optional[SqlModel]:
        """Build a new record from values and save it."""
        return cls(values).save(**options)

    @classmethod
    def find(cls, pk: Any) -> Optional[SqlModel]:
        """Find a record by its primary key and return it. Return None if
            it does not exist. Pass a tuple for a composite key.
        """
        columns = cls.primary_key_columns()
        pk_values = (pk,) if isinstance(cls.primary_key, str) else tuple(pk)
        tert(len(pk_values) == len(columns),
            f'pk must have {len(columns)} values')
        ds = cls.query().naked()
        for column, value in zip(columns, pk_values):
            ds = ds.equal(column, value)
        row = ds.first()
        return None if row is None else cls.load(row)

    # persistence
    def _checked_transaction(self, transaction: Optional[bool]) -> ContextManager:
        use = self.use_transactions if transaction is None else transaction
        if not use:
            return nullcontext()
        ds = self.query()
        return ds.db.transaction(server=ds.opts.get('server'))

    def valid(self, raise_on_failure: Optional[bool] = None) -> bool:
        """Run the validation hooks and return True if no errors were
            added. Raises HookFailed if before_validation rejects and the
            failure policy is to raise.
        """
        self.errors = {}
        if not self._run_before_hook('before_validation'):
            if self._raise_on_failure(raise_on_failure):
                raise HookFailed('the before_validation hook failed')
            return False
        self.validate()
        self.invoke_hooks('validate', self)
        self._run_hook('after_validation')
        return len(self.errors) == 0

    def save(self, *columns: str|Iterable[str], transaction: Optional[bool] = None,
             raise_on_failure: Optional[bool] = None, validate: bool = True,
             changed: bool = False) -> Optional[SqlModel]:
        """Insert the record if new, else update it. Return self, or None
            if the save failed silently. Pass columns to update only
            those columns. Raises ValidationFailed, HookFailed, or
            NoExistingObject as the failure policy dictates.
        """
        columns = _flatten(columns)
        should_raise = self._raise_on_failure(raise_on_failure)

        if validate and not self.valid(raise_on_failure):
            if should_raise:
                raise ValidationFailed(self.errors)
            return None

        try:
            with self._checked_transaction(transaction):
                return self._save(columns, changed)
        except HookFailed:
            if should_raise:
                raise
            return None
        # a Rollback absorbed by the transaction
        return None

    def save_changes(self, **options) -> Optional[SqlModel]:
        """Save the record if it was modified. Return None without
            touching the database otherwise.
        """
        if not self.modified():
            return None
        return self.save(changed=True, **options)

    def _save(self, columns: tuple[str, ...], changed: bool) -> SqlModel:
        self._check_before_hook('before_save')

        if self.is_new:
            self._check_before_hook('before_insert')
            self.was_new = True
            try:
                self._save_insert()
                self._run_hook('after_insert')
                self._run_hook('after_save')
            finally:
                self.was_new = False
        else:
            self._check_before_hook('before_update')
            self.columns_updated = self._update_values(columns, changed)
            try:
                self._update(self.columns_updated)
                if columns:
                    self.changed_columns[:] = [
                        c for c in self.changed_columns if c not in columns
                    ]
                else:
                    self.changed_columns.clear()
                self._this = None
                self._run_hook('after_update')
                self._run_hook('after_save')
            finally:
                self.columns_updated = None

        self._modified = False
        return self

    def _save_insert(self) -> None:
        pk_column = self._insert()
        self.is_new = False
        self._modified = False
        self._this = None
        if pk_column is not None and self.refresh_after_insert:
            self._save_refresh()
        self.changed_columns.clear()

    def _insert(self) -> Optional[str|tuple[str, ...]]:
        """Run the INSERT. Returns the primary key to refresh by, or None
            when the row came back from insert_select or there is no
            primary key.
        """
        ds = self.query()
        insert_select = getattr(ds, 'insert_select', None)
        if callable(insert_select):
            row = insert_select({**self.values})
            if row is not None:
                self.values = {**row}
                return None

        inserted_id = ds.insert({**self.values})
        pk_column = self.autoincrementing_primary_key()
        if isinstance(pk_column, str) and self.values.get(pk_column) is None:
            self.values[pk_column] = inserted_id
        return pk_column

    def _update_values(self, columns: tuple[str, ...], changed: bool) -> dict:
        """Values for the UPDATE: the given columns, the changed columns,
            or every value except unchanged primary key columns.
        """
        if columns:
            return {c: self.values[c] for c in columns if c in self.values}
        if changed:
            return {
                c: self.values[c] for c in self.changed_columns
                if c in self.values
            }
        pk_columns = () if self.primary_key is None else self.primary_key_columns()
        return {
            c: v for c, v in self.values.items()
            if c not in pk_columns or c in self.changed_columns
        }

    def _update(self, values: dict) -> None:
        """Run the UPDATE via this(). An empty update is skipped. Raises
            NoExistingObject when require_modification is set and the
            update did not modify exactly one row.
        """
        if len(values) == 0:
            return
        count = self.this().update(values)
        if self.require_modification and count != 1:
            raise NoExistingObject(f'attempt to update {self.pk_hash()} modified {count} rows')

    def _save_refresh(self) -> None:
        ds = self.this()
        if ds.opts.get('server') is None:
            ds = ds.server('default')
        self._refresh(ds)

    def _refresh(self, dataset: DatasetProtocol) -> SqlModel:
        row = dataset.naked().first()
        if row is None:
            raise RecordNotFound(f'record not found: {self.pk_hash()}')
        self.values = {**row}
        self.changed_columns.clear()
        return self

    def refresh(self) -> SqlModel:
        """Reload values from the database. Return self in monad pattern.
            Raises RecordNotFound if the row no longer exists.
        """
        self._this = None
        return self._refresh(self.this())

    def reload(self) -> SqlModel:
        return self.refresh()

    def lock(self) -> SqlModel:
        """Reload the row with a FOR UPDATE lock. Does nothing for new
            records.
        """
        if not self.is_new:
            self._refresh(self.this().for_update())
        return self

    def exists(self) -> bool:
        """True if the row for this record exists in the database."""
        if self.is_new:
            return False
        return self.this().select('1').first() is not None

    def destroy(self, transaction: Optional[bool] = None,
                raise_on_failure: Optional[bool] = None) -> Optional[SqlModel]:
        """Delete the record, running the destroy hooks. Return self, or
            None if before_destroy rejected and failure is silent.
        """
        try:
            with self._checked_transaction(transaction):
                self._check_before_hook('before_destroy')
                self.delete()
                self._run_hook('after_destroy')
                return self
        except HookFailed:
            if self._raise_on_failure(raise_on_failure):
                raise
            return None
        # a Rollback absorbed by the transaction
        return None

    def delete(self) -> SqlModel:
        """Delete the row without hooks or a transaction. Raises
            NoExistingObject when require_modification is set and the
            delete did not remove exactly one row.
        """
        count = self.this().delete()
        if self.require_modification and count != 1:
            raise NoExistingObject(f'attempt to delete {self.pk_hash()} removed {count} rows')
        return self
