"""
    Typecasting of assigned values to the declared column types. Models
    consult a Typecaster on every typecast-aware assignment. The shared
    `default_typecaster` holds the process-wide datetime representation;
    a model may use its own Typecaster instead by setting the typecaster
    class attribute.
"""

from __future__ import annotations
from .errors import InvalidValue, vert
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from os import environ
from typing import Any, Callable, Mapping
import re


DATETIME_CLASSES = ('naive', 'aware')

TYPE_ALIASES = {
    'int': 'integer',
    'bigint': 'integer',
    'real': 'float',
    'double': 'float',
    'numeric': 'decimal',
    'text': 'string',
    'varchar': 'string',
    'bytes': 'blob',
    'bool': 'boolean',
    'timestamp': 'datetime',
}

_FALSE_STRING = re.compile(r'\Af(alse)?\Z', re.IGNORECASE)
_DATE_PREFIX = re.compile(r'\A\d{4}-\d{2}-\d{2}')
_TIME_STRING = re.compile(r'\A(\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6}))?)?\Z')


def _component(value: Mapping, name: str, default: int|None = None) -> int:
    """Read an int component from a mapping of date/time parts."""
    if name in value and value[name] is not None:
        return int(value[name])
    if default is None:
        raise KeyError(name)
    return default

def resolve_type(db_type: str|None) -> str|None:
    """Return the canonical name of a column type."""
    return TYPE_ALIASES.get(db_type, db_type)

def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


class Typecaster:
    """Coerces raw values to column types. Raises InvalidValue when the
        value cannot be converted. Unknown types pass values through.
    """
    _datetime_class: str

    def __init__(self, datetime_class: str = 'naive') -> None:
        """Initialize the instance. Raises ValueError for an unknown
            datetime_class.
        """
        self.datetime_class = datetime_class

    @property
    def datetime_class(self) -> str:
        """Representation used for datetime columns: 'naive' stores
            naive datetimes in UTC; 'aware' stores timezone-aware
            datetimes, treating naive input as UTC. Setting raises
            ValueError for other values.
        """
        return self._datetime_class

    @datetime_class.setter
    def datetime_class(self, name: str) -> None:
        vert(name in DATETIME_CLASSES,
             f'datetime_class must be one of {DATETIME_CLASSES}')
        self._datetime_class = name

    def typecast(self, db_type: str|None, value: Any) -> Any:
        """Typecast value to the given column type. None is returned
            unchanged.
        """
        if value is None or db_type is None:
            return value
        db_type = resolve_type(db_type)
        method: Callable|None = getattr(self, f'typecast_{db_type}', None)
        if method is None:
            return value
        return method(value)

    def typecast_integer(self, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidValue(f'invalid value for integer: {value!r}') from e

    def typecast_float(self, value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise InvalidValue(f'invalid value for float: {value!r}') from e

    def typecast_decimal(self, value: Any) -> Decimal:
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            try:
                return Decimal(str(value))
            except InvalidOperation as e:
                raise InvalidValue(f'invalid value for decimal: {value!r}') from e
        raise InvalidValue(f'invalid value for decimal: {value!r}')

    def typecast_string(self, value: Any) -> str:
        if isinstance(value, (bytes, bytearray)):
            try:
                return bytes(value).decode('utf-8')
            except UnicodeDecodeError as e:
                raise InvalidValue(f'invalid value for string: {value!r}') from e
        return str(value)

    def typecast_blob(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode('utf-8')
        raise InvalidValue(f'invalid value for blob: {value!r}')

    def typecast_boolean(self, value: Any) -> bool|None:
        """False for False, 0, '0', 'f' and 'false' (any case); None for
            blank values such as '' and []; True otherwise.
        """
        if value is False:
            return False
        if isinstance(value, (int, float, Decimal)) and value == 0:
            return False
        if isinstance(value, str) and (value == '0' or _FALSE_STRING.match(value)):
            return False
        if _is_blank(value):
            return None
        return True

    def typecast_date(self, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return self._parse_datetime(value, 'date').date()
        if isinstance(value, Mapping):
            try:
                return date(
                    _component(value, 'year'),
                    _component(value, 'month'),
                    _component(value, 'day'),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidValue(f'invalid value for date: {value!r}') from e
        raise InvalidValue(f'invalid value for date: {value!r}')

    def typecast_time(self, value: Any) -> time:
        """Accepts times, datetimes (the time of day is kept), strings
            and mappings of hour/minute/second. A date alone is invalid.
        """
        if isinstance(value, datetime):
            return value.time()
        if isinstance(value, time):
            return value
        if isinstance(value, str):
            match = _TIME_STRING.match(value.strip())
            if match:
                hour, minute, second, fraction = match.groups()
                try:
                    return time(
                        int(hour), int(minute), int(second or 0),
                        int((fraction or '0').ljust(6, '0'))
                    )
                except ValueError as e:
                    raise InvalidValue(f'invalid value for time: {value!r}') from e
            return self._parse_datetime(value, 'time').time()
        if isinstance(value, Mapping):
            try:
                return time(
                    _component(value, 'hour'),
                    _component(value, 'minute', 0),
                    _component(value, 'second', 0),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidValue(f'invalid value for time: {value!r}') from e
        raise InvalidValue(f'invalid value for time: {value!r}')

    def typecast_datetime(self, value: Any) -> datetime:
        if isinstance(value, datetime):
            result = value
        elif isinstance(value, date):
            result = datetime(value.year, value.month, value.day)
        elif isinstance(value, str):
            result = self._parse_datetime(value, 'datetime')
        elif isinstance(value, Mapping):
            try:
                result = datetime(*[
                    _component(value, name, default)
                    for name, default in (
                        ('year', None), ('month', None), ('day', None),
                        ('hour', 0), ('minute', 0), ('second', 0),
                    )
                ])
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidValue(f'invalid value for datetime: {value!r}') from e
        else:
            raise InvalidValue(f'invalid value for datetime: {value!r}')
        return self.to_application_timestamp(result)

    def to_application_timestamp(self, value: datetime) -> datetime:
        """Convert a datetime to the configured representation."""
        if self.datetime_class == 'aware':
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @staticmethod
    def _parse_datetime(value: str, db_type: str) -> datetime:
        """Parse an ISO 8601 string that starts with a full date."""
        text = value.strip()
        if not _DATE_PREFIX.match(text):
            raise InvalidValue(f'invalid value for {db_type}: {value!r}')
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidValue(f'invalid value for {db_type}: {value!r}') from e


default_typecaster = Typecaster(environ.get('SQLRECORD_DATETIME_CLASS', 'naive'))


def set_datetime_class(name: str) -> None:
    """Set the datetime representation of the shared typecaster. Affects
        all later typecasts of every model using it.
    """
    default_typecaster.datetime_class = name

def get_datetime_class() -> str:
    """Return the datetime representation of the shared typecaster."""
    return default_typecaster.datetime_class
