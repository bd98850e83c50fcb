"""
Google service-account authentication and credential management.

Builds scoped service-account credentials and keeps them fresh behind a lock so
that one session can share them across threads.
"""

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Sequence

import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from ..settings.lib import REQUIRED_SERVICE_ACCOUNT_KEYS
from ..status import status

DEFAULT_SCOPES = ['https://www.googleapis.com/auth/spreadsheets', ]


def validate_account(account: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Check that service-account info carries a principal and a private signing key.

    Returns:
        A plain dict copy of the account info.

    Raises:
        status.ConfigurationError: If the account is absent or a required field is empty.
    """
    if not account:
        raise status.ConfigurationError('A service account is required.')
    missing = [k for k in REQUIRED_SERVICE_ACCOUNT_KEYS if not account.get(k)]
    if missing:
        raise status.ConfigurationError(f'Missing required service account fields: {missing}.')
    return dict(account)


class AuthManager:
    """Manages service-account credentials with thread-safe refresh."""

    def __init__(self, account: Mapping[str, Any], scopes: Sequence[str] = DEFAULT_SCOPES):
        self.account = validate_account(account)
        self.scopes = list(scopes)
        self._lock = threading.Lock()
        self._creds: Optional[service_account.Credentials] = None

    @property
    def principal(self) -> str:
        """The service account's email address."""
        return self.account['client_email']

    def get_valid_credentials(self) -> service_account.Credentials:
        """
        Return valid credentials, creating or refreshing them as needed.

        Raises:
            status.ConfigurationError: if the private key can not be parsed.
            status.RemoteServiceError: if a token refresh fails.
        """
        with self._lock:
            if self._creds is None:
                try:
                    self._creds = service_account.Credentials.from_service_account_info(
                        self.account, scopes=self.scopes)
                except (ValueError, KeyError) as ex:
                    raise status.ConfigurationError(f'Invalid service account credentials: {ex}') from ex
                logging.debug(f'Service account credentials created for "{self.principal}".')

            # A fresh credential has no token yet; googleapiclient refreshes it on
            # first use. Only refresh here when a token we hold has expired.
            if self._creds.token and self._creds.expired:
                logging.debug('Service account token expired; refreshing.')
                try:
                    self._creds.refresh(google.auth.transport.requests.Request())
                except google.auth.exceptions.RefreshError as ex:
                    raise status.RemoteServiceError(
                        f'Failed to refresh credentials: {ex}', details=str(ex)) from ex

            return self._creds

    def reset(self) -> None:
        """Forget the cached credentials so the next call builds new ones."""
        with self._lock:
            self._creds = None
        logging.debug('Cached credentials cleared.')
