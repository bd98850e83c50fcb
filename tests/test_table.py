"""Tests for SheetsDB.core.table: insert, upsert, local edits and full write-back.

All tests run against :class:`tests.base.FakeSheetsResource`; the stored rows
after each write are compared to what the worksheet should hold.
"""
import datetime
import threading

from SheetsDB.core.cache import SnapshotCache
from SheetsDB.core.materializer import ROW_ID
from SheetsDB.status import status
from tests.base import BaseTestCase, DEV_ID, PEOPLE, make_http_error


class TableReadTest(BaseTestCase):

    def test_fluent_reads(self):
        table, _ = self.make_table(PEOPLE)
        self.assertEqual(table.header, ('first_name', 'last_name', 'age', 'city'))
        self.assertEqual(len(table), 4)
        self.assertEqual(table.where('last_name', '=', 'Lee').pluck('first_name'), ['Ann', 'Cid'])
        self.assertEqual(table.order_by('first_name', 'desc').first()['first_name'], 'Dee')
        self.assertEqual(table.first()[ROW_ID], 1)
        self.assertEqual(table.all(), table.get())
        self.assertEqual(table.find(3)['first_name'], 'Cid')

    def test_queries_see_local_edits(self):
        table, _ = self.make_table(PEOPLE)
        table.update(1, {'city': 'Rome'})
        self.assertEqual(table.where('city', '=', 'Rome').ids(), [1])


class InsertTest(BaseTestCase):

    def test_insert_appends_in_header_order(self):
        table, resource = self.make_table(PEOPLE)
        row = table.insert({'city': 'Paris', 'first_name': 'Eve', 'nickname': 'dropped'})

        self.assertEqual(row, {'first_name': 'Eve', 'last_name': '', 'age': '', 'city': 'Paris', ROW_ID: 5})
        self.assertEqual(resource.rows(DEV_ID, 'People')[-1], ['Eve', '', '', 'Paris'])
        self.assertEqual(resource.methods().count('append'), 1)
        self.assertEqual(table.where('first_name', '=', 'Eve').ids(), [5])

    def test_insert_into_header_only_table(self):
        table, resource = self.make_table([['A', 'B']])
        table.insert({'a': 1, 'b': 'x'})
        self.assertEqual(resource.rows(DEV_ID, 'People'), [['A', 'B'], ['1', 'x']])

    def test_numbers_are_text_unless_the_column_is_typed(self):
        table, resource = self.make_table([['Name', 'Age', 'Score']], kinds={'age': 'int'})
        row = table.insert({'name': 'Eve', 'age': 5, 'score': 5})

        self.assertEqual(row['age'], 5)
        self.assertEqual(row['score'], '5')
        self.assertEqual(resource.stores[DEV_ID]['People'][-1], ['Eve', 5, '5'])

    def test_insert_failure_leaves_local_rows_unchanged(self):
        table, resource = self.make_table(PEOPLE)
        resource.failures['append'] = make_http_error(403, 'The caller does not have permission')
        with self.assertRaises(status.RemoteServiceError) as ctx:
            table.insert({'first_name': 'Eve'})
        self.assertEqual(ctx.exception.http_status, 403)
        self.assertEqual(ctx.exception.details, 'The caller does not have permission')
        self.assertEqual(len(table), 4)

    def test_insert_validates_typed_values_before_any_call(self):
        table, resource = self.make_table(PEOPLE, kinds={'age': 'int'})
        calls = len(resource.calls)
        with self.assertRaises(status.ValidationError):
            table.insert({'first_name': 'Eve', 'age': 'old'})
        self.assertEqual(len(resource.calls), calls)


class LocalEditTest(BaseTestCase):

    def test_update_and_delete_do_not_touch_remote(self):
        table, resource = self.make_table(PEOPLE)
        calls = len(resource.calls)
        updated = table.update({'_id': 2, 'first_name': 'ignored'}, {'age': '10'})
        deleted = table.delete(3)

        self.assertEqual(updated['age'], '10')
        self.assertEqual(deleted['first_name'], 'Cid')
        self.assertEqual(len(resource.calls), calls)
        self.assertEqual(resource.stores[DEV_ID]['People'], PEOPLE)
        self.assertTrue(table.dirty)
        self.assertEqual(table.snapshot.rows[2]['first_name'], 'Cid')

    def test_unknown_ids_and_columns(self):
        table, _ = self.make_table(PEOPLE)
        with self.assertRaises(status.NotFoundError):
            table.update(99, {'age': '1'})
        with self.assertRaises(status.NotFoundError):
            table.delete({'first_name': 'Ann', ROW_ID: 42})
        with self.assertRaises(status.ValidationError):
            table.delete({'first_name': 'Ann'})
        with self.assertRaises(status.ValidationError):
            table.update(1, {'height': 180})


class SaveTest(BaseTestCase):

    def test_save_without_changes_round_trips(self):
        values = [['First Name', 'Note'], ['  Ann ', 'x'], ['Bob'], ['Cid', '']]
        table, resource = self.make_table(values)
        self.assertTrue(table.save())

        self.assertEqual(resource.rows(DEV_ID, 'People'), [['First Name', 'Note'], ['Ann', 'x'], ['Bob'], ['Cid']])
        self.assertEqual(resource.methods()[-2:], ['clear', 'batchUpdate'])
        self.assertEqual(resource.calls[-2][2], "'People'")
        self.assertEqual(resource.calls[-1][2], ["'People'!A1"])

    def test_delete_then_save_removes_only_that_row(self):
        table, resource = self.make_table(PEOPLE)
        table.delete(2)
        table.save()

        self.assertEqual(resource.rows(DEV_ID, 'People'), [PEOPLE[0], PEOPLE[1], PEOPLE[3], ['Dee', 'Moss', '34']])
        self.assertFalse(table.dirty)
        self.assertEqual([r[ROW_ID] for r in table.get()], [1, 2, 3])

    def test_save_reconciles_edited_records(self):
        table, resource = self.make_table(PEOPLE)
        rows = table.where('last_name', '=', 'Lee').get()
        for row in rows:
            row['city'] = 'Trondheim'
        stranger = {'first_name': 'Zed', 'last_name': 'New', 'age': '1', 'city': 'Nowhere'}
        table.save(rows + [stranger, {ROW_ID: 77, 'first_name': 'Ghost'}])

        stored = resource.rows(DEV_ID, 'People')
        self.assertEqual(stored[1], ['Ann', 'Lee', '34', 'Trondheim'])
        self.assertEqual(stored[3], ['Cid', 'Lee', '101', 'Trondheim'])
        self.assertEqual(len(stored), 5)
        self.assertNotIn('Zed', [r[0] for r in stored])

    def test_save_empty_table_is_noop(self):
        table, resource = self.make_table([['A', 'B']])
        calls = len(resource.calls)
        self.assertFalse(table.save())
        self.assertEqual(len(resource.calls), calls)

    def test_delete_every_row_keeps_header(self):
        table, resource = self.make_table([['A'], ['1'], ['2']])
        table.delete(1)
        table.delete(2)
        self.assertTrue(table.save())
        self.assertEqual(resource.rows(DEV_ID, 'People'), [['A']])

    def test_typed_columns_are_written_back(self):
        values = [['Name', 'Born', 'Age'], ['Ann', '2001-02-03', '34']]
        table, resource = self.make_table(values, kinds={'born': 'date', 'age': 'int'})
        table.update(1, {'born': datetime.date(2002, 3, 4), 'age': 35})
        table.save()
        self.assertEqual(resource.rows(DEV_ID, 'People')[1], ['Ann', '2002-03-04', '35'])
        self.assertEqual(table.first()['age'], 35)

    def test_failed_write_after_clear_propagates(self):
        table, resource = self.make_table(PEOPLE)
        resource.failures['batchUpdate'] = make_http_error(500, 'Internal error')
        with self.assertRaises(status.RemoteServiceError):
            table.save()
        # no rollback: the worksheet stays cleared
        self.assertEqual(resource.rows(DEV_ID, 'People'), [])

    def test_save_uses_the_session_lock(self):
        table, _ = self.make_table(PEOPLE)
        lock = threading.RLock()
        table._lock = lock
        results = []

        def worker():
            results.append(table.save())

        with lock:
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join(timeout=0.2)
            self.assertTrue(thread.is_alive())
        thread.join(timeout=5)
        self.assertEqual(results, [True])


class UpsertTest(BaseTestCase):

    def test_upsert_updates_matching_row(self):
        table, resource = self.make_table(PEOPLE)
        row = table.upsert({'first_name': 'Bob', 'city': 'Tromso'}, key='first_name')

        self.assertEqual(row['city'], 'Tromso')
        self.assertEqual(row[ROW_ID], 2)
        stored = resource.rows(DEV_ID, 'People')
        self.assertEqual(stored[0], PEOPLE[0])
        self.assertEqual(stored[2], ['Bob', 'Stone', '9', 'Tromso'])
        self.assertEqual(len(stored), 5)
        self.assertIn(('clear', DEV_ID, "'People'!A2:D"), resource.calls)

    def test_upsert_adds_missing_row(self):
        table, resource = self.make_table(PEOPLE)
        row = table.upsert({'first_name': 'Eve', 'last_name': 'Hart'}, key='first_name')
        self.assertEqual(row[ROW_ID], 5)
        self.assertEqual(resource.rows(DEV_ID, 'People')[-1], ['Eve', 'Hart'])

    def test_upsert_twice_stores_one_row(self):
        table, resource = self.make_table(PEOPLE)
        record = {'first_name': 'Eve', 'last_name': 'Hart', 'age': '40'}
        table.upsert(record, key='first_name')
        table.upsert(record, key='first_name')
        stored = resource.rows(DEV_ID, 'People')
        self.assertEqual([r[0] for r in stored].count('Eve'), 1)
        self.assertEqual(len(table), 5)

    def test_upsert_matches_on_string_form(self):
        table, resource = self.make_table([['Code', 'Name'], ['7', 'seven']])
        table.upsert({'code': 7, 'name': 'SEVEN'}, key='code')
        self.assertEqual(resource.rows(DEV_ID, 'People'), [['Code', 'Name'], ['7', 'SEVEN']])

    def test_upsert_persists_pending_local_edits(self):
        table, resource = self.make_table(PEOPLE)
        table.delete(4)
        table.upsert({'first_name': 'Ann', 'age': '35'}, key='first_name')
        stored = resource.rows(DEV_ID, 'People')
        self.assertEqual(len(stored), 4)
        self.assertEqual(stored[1][2], '35')
        self.assertFalse(table.dirty)

    def test_upsert_clears_cells_right_of_the_header(self):
        values = [['A', 'B'], ['1', 'x', 'note1'], ['2', 'y', 'note2']]
        table, resource = self.make_table(values)
        table.delete(1)
        table.upsert({'a': '3', 'b': 'z'}, key='a')

        self.assertEqual(resource.rows(DEV_ID, 'People'), [['A', 'B'], ['2', 'y'], ['3', 'z']])
        self.assertIn(('clear', DEV_ID, "'People'!A2:C"), resource.calls)

    def test_upsert_overwrites_in_place(self):
        table, resource = self.make_table(PEOPLE)
        table.upsert({'first_name': 'Eve'}, key='first_name')
        self.assertEqual(resource.methods()[-2:], ['clear', 'batchUpdate'])
        self.assertEqual(resource.calls[-1][2], ["'People'!A2"])
        self.assertNotIn('append', resource.methods())

    def test_upsert_validation(self):
        table, _ = self.make_table(PEOPLE)
        with self.assertRaises(status.ValidationError):
            table.upsert({'first_name': 'Ann'}, key='email')
        with self.assertRaises(status.ValidationError):
            table.upsert({'city': 'Oslo'}, key='first_name')


class CacheInvalidationTest(BaseTestCase):

    def test_writes_invalidate_and_refresh_refetches(self):
        cache = SnapshotCache(max_age=0)
        table, resource = self.make_table(PEOPLE, cache=cache)
        cache.put(DEV_ID, 'People', PEOPLE)

        table.insert({'first_name': 'Eve'})
        self.assertIsNone(cache.get(DEV_ID, 'People'))

        table.update(1, {'city': 'Rome'})
        table.refresh()
        self.assertFalse(table.dirty)
        self.assertEqual(len(table), 5)
        self.assertEqual(table.first()['city'], 'Oslo')
        self.assertIsNotNone(cache.get(DEV_ID, 'People'))

        gets = resource.methods().count('get')
        table.refresh()
        self.assertEqual(resource.methods().count('get'), gets)
