# sms_tasks/auth.py

import time
import logging
import threading
from typing import Optional, Callable

import requests

from . import config
from .errors import AuthenticationError


class M2MTokenSession:
    """
    Cached client-credentials token for calling the task API.

    One instance is shared by every request in the process. The token is
    refreshed when absent or within `refresh_margin` seconds of expiry; a
    failed refresh clears the cache and raises AuthenticationError.
    """

    def __init__(
        self,
        domain: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        audience: Optional[str],
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        refresh_margin: int = config.TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.domain = domain
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self.clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0
        self._lock = threading.Lock()

    def _fresh_token(self, now: float) -> Optional[str]:
        # Single read of the cached pair; invalidate() may run concurrently
        token, expires_at = self._token, self._expires_at
        if token is not None and expires_at > now + self.refresh_margin:
            return token
        return None

    def get_token(self) -> str:
        token = self._fresh_token(self.clock())
        if token:
            return token

        with self._lock:
            # Another thread may have refreshed while we waited
            now = self.clock()
            token = self._fresh_token(now)
            if token:
                return token
            try:
                token, expires_in = self._fetch_token()
            except AuthenticationError:
                self.invalidate()
                raise
            self._token, self._expires_at = token, now + expires_in
            logging.info(f"Obtained M2M token (expires in {expires_in}s)")
            return token

    def invalidate(self):
        self._token, self._expires_at = None, 0

    def _fetch_token(self):
        if not self.domain:
            raise AuthenticationError("Identity provider domain not configured")
        try:
            response = requests.post(
                f"https://{self.domain}/oauth/token",
                json={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'audience': self.audience,
                    'grant_type': 'client_credentials',
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
            return data['access_token'], int(data['expires_in'])
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logging.error(f"Error getting M2M token: {e}")
            raise AuthenticationError("Authentication failed") from e
