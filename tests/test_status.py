"""Tests for SheetsDB.status.status."""
from SheetsDB.status import status
from SheetsDB.status.status import BaseStatusException, Status
from tests.base import BaseTestCase


class StatusExceptionTest(BaseTestCase):

    def test_every_error_has_its_own_status(self):
        errors = BaseStatusException.__subclasses__()
        self.assertEqual(
            sorted(e.__name__ for e in errors),
            ['ConfigurationError', 'EmptyTableError', 'NotFoundError', 'RemoteServiceError',
             'UnsupportedOperatorError', 'ValidationError'],
        )
        statuses = [e.status for e in errors]
        self.assertNotIn(Status.UnknownStatus, statuses)
        self.assertEqual(len(set(statuses)), len(statuses))
        for e in errors:
            self.assertNotEqual(status.get_message(e.status), 'Unknown status', e.__name__)

    def test_message_is_prefixed_with_the_status_message(self):
        ex = status.EmptyTableError('Sheet "People" has no rows.')
        self.assertEqual(str(ex), 'The table is empty. A header row is required. Sheet "People" has no rows.')
        self.assertEqual(ex.message, 'Sheet "People" has no rows.')
        self.assertEqual(str(status.ValidationError()), 'Invalid argument.')

    def test_remote_error_carries_details(self):
        ex = status.RemoteServiceError('fetch failed', http_status=404, details='Requested entity was not found.')
        self.assertEqual(ex.http_status, 404)
        self.assertEqual(ex.details, 'Requested entity was not found.')
        self.assertIsInstance(status.NotFoundError(), LookupError)
