from unittest.mock import patch

import google.auth.exceptions
from google.oauth2 import service_account

from SheetsDB.core import auth
from SheetsDB.status.status import ConfigurationError, RemoteServiceError
from tests.base import BaseTestCase, DummyCreds, SERVICE_ACCOUNT


class TestAuthManager(BaseTestCase):
    """Unit tests for the AuthManager behavior."""

    def test_account_is_validated(self):
        for account in (None, {}, {'client_email': 'a@b'}, dict(SERVICE_ACCOUNT, private_key='')):
            with self.assertRaises(ConfigurationError):
                auth.AuthManager(account)

    def test_credentials_are_created_once(self):
        dummy = DummyCreds()
        with patch.object(service_account.Credentials, 'from_service_account_info',
                          return_value=dummy) as factory:
            manager = auth.AuthManager(SERVICE_ACCOUNT)
            self.assertIs(manager.get_valid_credentials(), dummy)
            self.assertIs(manager.get_valid_credentials(), dummy)

        factory.assert_called_once_with(SERVICE_ACCOUNT, scopes=auth.DEFAULT_SCOPES)
        self.assertEqual(dummy.refreshed, 0)
        self.assertEqual(manager.principal, SERVICE_ACCOUNT['client_email'])

    def test_unparsable_key_raises_ConfigurationError(self):
        with patch.object(service_account.Credentials, 'from_service_account_info',
                          side_effect=ValueError('Could not deserialize key data.')):
            manager = auth.AuthManager(SERVICE_ACCOUNT)
            with self.assertRaises(ConfigurationError):
                manager.get_valid_credentials()

    def test_expired_token_is_refreshed(self):
        dummy = DummyCreds()
        dummy.token = 'old'
        dummy.expired = True
        with patch.object(service_account.Credentials, 'from_service_account_info', return_value=dummy):
            result = auth.AuthManager(SERVICE_ACCOUNT).get_valid_credentials()
        self.assertIs(result, dummy)
        self.assertEqual(dummy.refreshed, 1)
        self.assertFalse(dummy.expired)

    def test_refresh_failure_raises_RemoteServiceError(self):
        class FailingCreds(DummyCreds):
            def refresh(self, request):
                raise google.auth.exceptions.RefreshError('invalid_grant')

        dummy = FailingCreds()
        dummy.token = 'old'
        dummy.expired = True
        with patch.object(service_account.Credentials, 'from_service_account_info', return_value=dummy):
            with self.assertRaises(RemoteServiceError):
                auth.AuthManager(SERVICE_ACCOUNT).get_valid_credentials()

    def test_reset_forgets_credentials(self):
        with patch.object(service_account.Credentials, 'from_service_account_info',
                          side_effect=[DummyCreds(), DummyCreds()]):
            manager = auth.AuthManager(SERVICE_ACCOUNT)
            first = manager.get_valid_credentials()
            manager.reset()
            self.assertIsNot(manager.get_valid_credentials(), first)
