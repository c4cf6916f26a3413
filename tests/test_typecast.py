from context import classes, errors, typecast
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
import unittest


class TestTypecaster(unittest.TestCase):
    def setUp(self) -> None:
        self.caster = typecast.Typecaster()
        return super().setUp()

    def test_Typecaster_rejects_unknown_datetime_class(self):
        with self.assertRaises(ValueError) as e:
            typecast.Typecaster('local')
        assert 'datetime_class' in str(e.exception)

    def test_None_passes_through_for_every_type(self):
        for db_type in ('integer', 'float', 'decimal', 'string', 'blob',
                        'boolean', 'date', 'time', 'datetime'):
            assert self.caster.typecast(db_type, None) is None

    def test_unknown_types_pass_values_through(self):
        value = object()
        assert self.caster.typecast('geometry', value) is value
        assert self.caster.typecast(None, '1') == '1'

    def test_type_aliases_resolve(self):
        assert typecast.resolve_type('int') == 'integer'
        assert typecast.resolve_type('varchar') == 'string'
        assert typecast.resolve_type('integer') == 'integer'
        assert self.caster.typecast('bigint', '12') == 12
        assert self.caster.typecast('timestamp', '2024-01-02') == datetime(2024, 1, 2)

    def test_integer(self):
        assert self.caster.typecast('integer', '1') == 1
        assert self.caster.typecast('integer', 1.9) == 1
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('integer', 'a')
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('integer', [])

    def test_float(self):
        assert self.caster.typecast('float', '1.5') == 1.5
        assert type(self.caster.typecast('float', 2)) is float
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('float', 'abc')

    def test_decimal(self):
        assert self.caster.typecast('decimal', '1.5') == Decimal('1.5')
        assert self.caster.typecast('decimal', 1.5) == Decimal('1.5')
        assert self.caster.typecast('decimal', 3) == Decimal(3)
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('decimal', 'a')
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('decimal', True)

    def test_string_and_blob(self):
        assert self.caster.typecast('string', 1) == '1'
        assert self.caster.typecast('string', b'ab') == 'ab'
        assert self.caster.typecast('blob', 'ab') == b'ab'
        assert self.caster.typecast('blob', bytearray(b'ab')) == b'ab'
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('blob', 1)

    def test_boolean(self):
        for value in ('t', 'T', 'true', 'TRUE', 'True', 1, 'y', 'yes', True, 2.5):
            assert self.caster.typecast('boolean', value) is True, value
        for value in ('f', 'F', 'false', 'FALSE', 'False', '0', 0, 0.0, False):
            assert self.caster.typecast('boolean', value) is False, value
        assert self.caster.typecast('boolean', '') is None
        assert self.caster.typecast('boolean', '  ') is None

    def test_date(self):
        assert self.caster.typecast('date', '2024-01-02') == date(2024, 1, 2)
        assert self.caster.typecast('date', datetime(2024, 1, 2, 10, 30)) == date(2024, 1, 2)
        assert self.caster.typecast('date', date(2024, 1, 2)) == date(2024, 1, 2)
        assert self.caster.typecast('date', {'year': '2024', 'month': 1, 'day': 2}) == date(2024, 1, 2)
        for value in ('garbage', '01/02/2024', time(10), {'year': 2024}, 5):
            with self.assertRaises(errors.InvalidValue):
                self.caster.typecast('date', value)

    def test_time(self):
        assert self.caster.typecast('time', '10:20:30') == time(10, 20, 30)
        assert self.caster.typecast('time', '10:20') == time(10, 20)
        assert self.caster.typecast('time', '10:20:30.5') == time(10, 20, 30, 500000)
        assert self.caster.typecast('time', '2024-01-02 10:20:30') == time(10, 20, 30)
        assert self.caster.typecast('time', datetime(2024, 1, 2, 10, 20)) == time(10, 20)
        assert self.caster.typecast('time', {'hour': 10, 'minute': '20'}) == time(10, 20)

        for value in (date(2024, 1, 2), '25:00', 'noon', {'minute': 1}):
            with self.assertRaises(errors.InvalidValue):
                self.caster.typecast('time', value)

    def test_datetime_naive(self):
        assert self.caster.typecast('datetime', '2024-01-02 10:20:30') == \
            datetime(2024, 1, 2, 10, 20, 30)
        assert self.caster.typecast('datetime', date(2024, 1, 2)) == datetime(2024, 1, 2)
        assert self.caster.typecast('datetime', {'year': 2024, 'month': 1, 'day': 2, 'hour': 5}) == \
            datetime(2024, 1, 2, 5)

        converted = self.caster.typecast('datetime', '2024-01-02T10:00:00+02:00')
        assert converted == datetime(2024, 1, 2, 8, 0)
        assert converted.tzinfo is None

        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('datetime', '10:20')
        with self.assertRaises(errors.InvalidValue):
            self.caster.typecast('datetime', 1234)

    def test_datetime_aware(self):
        caster = typecast.Typecaster('aware')
        value = caster.typecast('datetime', '2024-01-02 10:00:00')
        assert value.tzinfo is timezone.utc
        assert value == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)

        value = caster.typecast('datetime', '2024-01-02T10:00:00Z')
        assert value.utcoffset() == timedelta(0)

        offset = datetime(2024, 1, 2, 10, tzinfo=timezone(timedelta(hours=2)))
        assert caster.typecast('datetime', offset) is offset


class TestDatetimeClassSetting(unittest.TestCase):
    class Event(classes.SqlModel):
        table = 'events'
        columns = ('id', 'at')
        db_schema = {'at': {'type': 'datetime'}}

    def setUp(self) -> None:
        self.previous = typecast.get_datetime_class()
        return super().setUp()

    def tearDown(self) -> None:
        typecast.set_datetime_class(self.previous)
        return super().tearDown()

    def test_set_datetime_class_affects_later_typecasts(self):
        typecast.set_datetime_class('naive')
        assert self.Event({'at': '2024-01-02 10:00'}).at.tzinfo is None

        typecast.set_datetime_class('aware')
        assert typecast.get_datetime_class() == 'aware'
        assert self.Event({'at': '2024-01-02 10:00'}).at.tzinfo is timezone.utc

    def test_set_datetime_class_rejects_unknown_names(self):
        with self.assertRaises(ValueError):
            typecast.set_datetime_class('calendar')


class TestModelTypecasting(unittest.TestCase):
    class Typed(classes.SqlModel):
        table = 'typed'
        columns = ('id', 'n', 's', 'b', 'd', 'raw')
        db_schema = {
            'id': {'type': 'integer', 'allow_null': False},
            'n': {'type': 'integer', 'allow_null': False},
            's': {'type': 'string', 'allow_null': True},
            'b': {'type': 'boolean', 'allow_null': True},
            'd': {'type': 'date', 'allow_null': True},
        }

    def test_assignment_is_typecast(self):
        record = self.Typed()
        record.n = '1'
        record['d'] = '2024-01-02'
        record.b = 'false'
        assert record.values == {'n': 1, 'd': date(2024, 1, 2), 'b': False}

    def test_columns_missing_from_schema_are_stored_as_is(self):
        record = self.Typed()
        record.raw = '1'
        assert record.raw == '1'

    def test_empty_string_becomes_None_except_for_string_columns(self):
        record = self.Typed()
        record.s = ''
        record.b = ''
        assert record.s == ''
        assert record.b is None

    def test_None_into_non_nullable_column_raises_InvalidValue(self):
        record = self.Typed()
        with self.assertRaises(errors.InvalidValue) as e:
            record.n = None
        assert 'n column' in str(e.exception)
        with self.assertRaises(errors.InvalidValue):
            record.n = ''

    def test_empty_string_is_invalid_when_not_converted_to_None(self):
        record = self.Typed()
        record.typecast_empty_string_to_nil = False
        with self.assertRaises(errors.InvalidValue):
            record.n = ''
        record.b = ''
        assert record.b is None

    def test_raw_value_stored_when_not_raising(self):
        record = self.Typed()
        record.raise_on_typecast_failure = False
        record.n = 'a'
        assert record.n == 'a'
        record.n = None
        assert record.n is None

    def test_typecasting_can_be_disabled(self):
        record = self.Typed()
        record.typecast_on_assignment = False
        record.n = '1'
        assert record.n == '1'

    def test_change_tracking_compares_typecast_values(self):
        record = self.Typed.load({'id': 1, 'n': 2})
        record.n = '2'
        assert record.changed_columns == []
        record.n = '3'
        assert record.changed_columns == ['n']
        assert record.n == 3

    def test_new_record_values_are_typecast(self):
        record = self.Typed({'n': '5', 'd': {'year': 2024, 'month': 2, 'day': 3}})
        assert record.n == 5
        assert record.d == date(2024, 2, 3)


if __name__ == '__main__':
    unittest.main()
