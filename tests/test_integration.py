from context import classes, database, errors
from genericpath import isfile
import os
import unittest


DB_FILEPATH = 'test.db'


class Widget(classes.SqlModel):
    table = 'widgets'
    columns = ('id', 'name', 'qty')
    db_schema = {
        'id': {'type': 'integer', 'allow_null': False},
        'name': {'type': 'string', 'allow_null': True},
        'qty': {'type': 'integer', 'allow_null': False},
    }


class Pair(classes.SqlModel):
    table = 'pairs'
    primary_key = ('a', 'b')
    restrict_primary_key = False
    columns = ('a', 'b', 'note')


class TestIntegration(unittest.TestCase):
    db: database.SqliteDatabase = None

    def setUp(self) -> None:
        """Set up the test database."""
        if isfile(DB_FILEPATH):
            os.remove(DB_FILEPATH)
        self.db = database.SqliteDatabase(DB_FILEPATH)
        self.db.run('create table widgets (id integer primary key autoincrement, ' +
            'name text, qty integer not null default 0)')
        self.db.run('create table pairs (a integer, b integer, note text, ' +
            'primary key (a, b))')
        Widget.db = self.db
        Pair.db = self.db
        return super().setUp()

    def tearDown(self) -> None:
        """Close the connection and delete the test database."""
        self.db.close()
        os.remove(DB_FILEPATH)
        return super().tearDown()

    def test_create_and_find(self):
        widget = Widget.create({'name': 'bolt', 'qty': '3'})
        assert widget.values == {'id': 1, 'name': 'bolt', 'qty': 3}
        assert not widget.is_new
        assert Widget.find(1) == widget
        assert Widget.find(2) is None

    def test_insert_refresh_reads_database_defaults(self):
        widget = Widget().save()
        assert widget.values == {'id': 1, 'name': None, 'qty': 0}

    def test_save_changes_and_update(self):
        widget = Widget.create({'name': 'bolt', 'qty': 3})
        widget.qty = 5
        widget.save_changes()
        assert Widget.find(widget.id).qty == 5

        widget.update({'name': 'nut'})
        assert Widget.find(widget.id).name == 'nut'
        assert Widget.query({'name': 'nut'}).count() == 1

    def test_destroy_and_exists(self):
        widget = Widget.create({'name': 'bolt'})
        assert widget.exists()
        widget.destroy()
        assert not widget.exists()

        with self.assertRaises(errors.NoExistingObject):
            widget.destroy()

    def test_update_of_missing_row_raises_NoExistingObject(self):
        widget = Widget.load({'id': 99, 'name': 'ghost', 'qty': 1})
        with self.assertRaises(errors.NoExistingObject):
            widget.save()
        assert not self.db.in_transaction

    def test_Rollback_in_after_save_undoes_the_insert(self):
        class Discarded(Widget):
            def after_save(self):
                raise errors.Rollback()

        assert Discarded({'name': 'bolt'}).save() is None
        assert Widget.query().count() == 0

    def test_silent_failure_keeps_the_enclosing_transaction(self):
        class Rejecting(Widget):
            raise_on_save_failure = False
            def before_save(self):
                return False

        with self.db.transaction():
            Widget.create({'name': 'kept'})
            assert Rejecting({'name': 'rejected'}).save() is None

        assert [w.name for w in Widget.query().all()] == ['kept']

    def test_composite_primary_key(self):
        pair = Pair({'a': 1, 'b': 2, 'note': 'x'}).save()
        assert pair.values == {'a': 1, 'b': 2, 'note': 'x'}

        found = Pair.find((1, 2))
        assert found == pair
        found.note = 'y'
        found.save_changes()
        assert Pair.find((1, 2)).note == 'y'

        found.destroy()
        assert Pair.find((1, 2)) is None

    def test_refresh_and_reload(self):
        widget = Widget.create({'name': 'bolt', 'qty': 1})
        self.db.run('UPDATE widgets SET qty = 7')
        widget.name = 'changed'
        assert widget.refresh().qty == 7
        assert widget.name == 'bolt'
        assert widget.changed_columns == []


if __name__ == '__main__':
    unittest.main()
