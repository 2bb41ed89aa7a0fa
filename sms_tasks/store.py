# sms_tasks/store.py

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .models import AuditLogEntry

# --- Collections ---
USER_SETTINGS_COLLECTION = 'user_settings'
TASKS_COLLECTION = 'tasks'
RATE_LIMITS_COLLECTION = 'sms_rate_limits'
AUDIT_LOGS_COLLECTION = 'sms_audit_logs'


class FirestoreStore:
    """
    Key/value + secondary-index lookups used by the SMS pipeline.

    The tasks collection is owned by the task API; this class only reads it.
    Errors from the Firestore client propagate; callers decide whether they
    are fatal.
    """

    def __init__(self, db: firestore.Client):
        self.db = db

    # --- Short codes ---

    def _short_code_query(self, code: str, user_id: str):
        return (
            self.db.collection(TASKS_COLLECTION)
            .where(filter=FieldFilter('short_code', '==', code))
            .where(filter=FieldFilter('user_id', '==', user_id))
            .limit(1)
        )

    def short_code_exists(self, code: str, user_id: str) -> bool:
        return any(True for _ in self._short_code_query(code, user_id).stream())

    def find_task_id_by_short_code(self, code: str, user_id: str) -> Optional[str]:
        for snap in self._short_code_query(code, user_id).stream():
            return snap.id
        return None

    # --- Credentials / user settings ---

    def find_user_by_phone(self, phone_number: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Secondary-index lookup. Returns (user_id, settings) or None."""
        query = (
            self.db.collection(USER_SETTINGS_COLLECTION)
            .where(filter=FieldFilter('sms_config.phone_number', '==', phone_number))
            .limit(1)
        )
        for snap in query.stream():
            return snap.id, snap.to_dict() or {}
        return None

    def get_user_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        snap = self.db.collection(USER_SETTINGS_COLLECTION).document(user_id).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def consume_daily_quota(self, user_id: str, today: str, daily_max: int):
        """Decrements today's remaining count, resetting it on the first use of a new day."""
        doc_ref = self.db.collection(USER_SETTINGS_COLLECTION).document(user_id)
        snap = doc_ref.get()
        sms_config = (snap.to_dict() or {}).get('sms_config', {}) if snap.exists else {}

        if sms_config.get('last_reset_date') != today:
            doc_ref.set({'sms_config': {
                'last_reset_date': today,
                'daily_limit_remaining': daily_max - 1,
            }}, merge=True)
            logging.info(f"Daily SMS quota reset for user {user_id} ({today})")
        else:
            doc_ref.update({'sms_config.daily_limit_remaining': firestore.Increment(-1)})

    # --- Rate limiting ---

    def list_rate_limit_entries(self, phone_number: str, since: datetime) -> List[Dict[str, Any]]:
        """Entries newer than `since`, oldest first."""
        query = (
            self.db.collection(RATE_LIMITS_COLLECTION)
            .where(filter=FieldFilter('phone_number', '==', phone_number))
            .where(filter=FieldFilter('timestamp', '>', since))
            .order_by('timestamp')
        )
        return [snap.to_dict() for snap in query.stream()]

    def add_rate_limit_entry(self, phone_number: str, timestamp: datetime, expires_at: datetime):
        # expires_at doubles as the Firestore TTL policy field
        self.db.collection(RATE_LIMITS_COLLECTION).add({
            'phone_number': phone_number,
            'timestamp': timestamp,
            'expires_at': expires_at,
            'count': 1,
        })

    # --- Audit ---

    def add_audit_log(self, entry: AuditLogEntry):
        # Keyed by log_id so a retried write lands on the same document
        self.db.collection(AUDIT_LOGS_COLLECTION).document(entry.log_id).set(entry.to_document())
