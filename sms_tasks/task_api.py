# sms_tasks/task_api.py

import logging
from typing import List, Dict, Any, Optional

import requests

from . import config
from .auth import M2MTokenSession
from .errors import TaskApiError

Task = Dict[str, Any]


class TaskApiClient:
    """HTTP/JSON client for the task API, acting on behalf of a resolved user."""

    def __init__(self, base_url: str, session: M2MTokenSession, timeout: float = config.HTTP_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.session = session
        self.timeout = timeout

    def _call(self, method: str, path: str, user_id: str, params: Optional[Dict[str, str]] = None, body: Optional[Dict[str, Any]] = None):
        # AuthenticationError from the session propagates unchanged
        token = self.session.get_token()
        url = f"{self.base_url}{path}"
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f"Bearer {token}",
            'X-User-Id': user_id,  # impersonate the SMS sender
        }
        try:
            response = requests.request(method, url, headers=headers, params=params, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logging.error(f"Task API {method} {path} failed for user {user_id}: {e}")
            raise TaskApiError(f"API call failed: {e}") from e

        if not response.ok:
            logging.error(f"Task API {method} {path} returned {response.status_code} for user {user_id}")
            raise TaskApiError(f"API call failed: {response.status_code} {response.reason}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise TaskApiError(f"API returned invalid JSON for {method} {path}") from e

    def list_open_tasks(self, user_id: str, mit_only: bool = False) -> List[Task]:
        params = {'status': 'Open'}
        if mit_only:
            params['isMIT'] = 'true'
        return self._call('GET', '/api/tasks', user_id, params=params) or []

    def get_task(self, user_id: str, task_id: str) -> Task:
        return self._call('GET', f"/api/tasks/{task_id}", user_id)

    def create_task(self, user_id: str, task_data: Dict[str, Any]) -> Task:
        return self._call('POST', '/api/tasks', user_id, body=task_data)

    def update_task(self, user_id: str, task_id: str, updates: Dict[str, Any]) -> Task:
        return self._call('PUT', f"/api/tasks/{task_id}", user_id, body=updates)
