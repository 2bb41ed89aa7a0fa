# sms_tasks/short_codes.py

import logging
import secrets
from typing import Optional

from .models import ShortCodeResult

# Lowercase letters and digits without the look-alikes 0, 1, i, l, o (31 symbols)
SHORT_CODE_ALPHABET = "abcdefghjkmnpqrstuvwxyz23456789"
MAX_ATTEMPTS = 5
ESCALATE_AFTER_ATTEMPT = 3
DEFAULT_LENGTH = 4
ESCALATED_LENGTH = 5
FALLBACK_LENGTH = 6
MIN_CODE_LENGTH = 4
MAX_CODE_LENGTH = 6


def generate_code(length: int = DEFAULT_LENGTH) -> str:
    """Generates a random code drawn uniformly from the short code alphabet."""
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def validate_code_format(code: str) -> bool:
    """Checks length (4-6) and that every character is in the alphabet."""
    if not isinstance(code, str):
        return False
    if len(code) < MIN_CODE_LENGTH or len(code) > MAX_CODE_LENGTH:
        return False
    return all(char in SHORT_CODE_ALPHABET for char in code)


class ShortCodeService:
    """Generates and resolves per-user short codes against the store."""

    def __init__(self, store):
        self.store = store

    def generate_unique_code(self, user_id: str) -> ShortCodeResult:
        """
        Tries up to MAX_ATTEMPTS codes, switching from 4 to 5 characters once the
        third attempt collides. If every attempt collides, returns an unchecked
        6-character code (attempts == MAX_ATTEMPTS).
        """
        attempts = 0
        length = DEFAULT_LENGTH

        while attempts < MAX_ATTEMPTS:
            attempts += 1
            code = generate_code(length)
            if not self.store.short_code_exists(code, user_id):
                logging.info(f"Generated short code for user {user_id} after {attempts} attempt(s)")
                return ShortCodeResult(code=code, attempts=attempts)

            if attempts == ESCALATE_AFTER_ATTEMPT:
                length = ESCALATED_LENGTH

        logging.warning(f"Short code collided {MAX_ATTEMPTS} times for user {user_id}, using {FALLBACK_LENGTH}-character fallback")
        return ShortCodeResult(code=generate_code(FALLBACK_LENGTH), attempts=attempts)

    def lookup_task_id(self, code: str, user_id: str) -> Optional[str]:
        """Resolves a short code to the owning user's task id, or None."""
        return self.store.find_task_id_by_short_code(code, user_id)
