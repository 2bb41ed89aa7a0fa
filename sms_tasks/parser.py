# sms_tasks/parser.py

import re
import logging
from datetime import date
from typing import Optional, Callable, List, Tuple

from .models import (
    ParsedCommand,
    CMD_CREATE, CMD_CLOSE, CMD_EDIT, CMD_LIST_MIT, CMD_LIST_ALL, CMD_HELP,
    HELP_SMS_KEY_SENTINEL,
)

# --- Token Patterns ---
SMS_KEY_PATTERN = re.compile(r"ID:\s*(\d{4})\b", re.IGNORECASE)
QUOTED_TITLE_PATTERN = re.compile(r'"([^"]+)"')
SMART_TITLE_PATTERN = re.compile(r"^(.+?)(?:\s+(?:MIT|LIT)\d|\s+ID:)", re.IGNORECASE | re.DOTALL)
COMMAND_KEYWORD_PATTERN = re.compile(r"^(CLOSE|EDIT|LIST|HELP)\b", re.IGNORECASE)
MIT_PATTERN = re.compile(r"\bMIT([123])\b", re.IGNORECASE)
LIT_PATTERN = re.compile(r"\bLIT(\d+)\b", re.IGNORECASE)
CREATE_DATE_PATTERN = re.compile(r"(\d{1,2}/\d{1,2}(?:/\d{4})?)")
EDIT_DATE_PATTERN = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")
FULL_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
SHORT_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})$")
CLOSE_CODE_PATTERN = re.compile(r"CLOSE\s+([a-z0-9]{4,6})", re.IGNORECASE)
EDIT_CODE_PATTERN = re.compile(r"EDIT\s+([a-z0-9]{4,6})", re.IGNORECASE)


# --- Field Extraction Helpers ---

def extract_sms_key(message: str) -> Optional[str]:
    """Returns the 4-digit key following 'ID:' or None."""
    match = SMS_KEY_PATTERN.search(message)
    return match.group(1) if match else None


def extract_quoted_title(message: str) -> Optional[str]:
    match = QUOTED_TITLE_PATTERN.search(message)
    if not match:
        return None
    return match.group(1).strip() or None


def extract_smart_title(message: str) -> Optional[str]:
    """Everything before the first MITn/LITn/ID: marker, unless it looks like another command."""
    match = SMART_TITLE_PATTERN.match(message)
    if not match:
        return None
    title = match.group(1).strip()
    if not title or COMMAND_KEYWORD_PATTERN.match(title):
        return None
    return title


def extract_priority(message: str) -> Tuple[Optional[int], Optional[bool]]:
    """Returns (priority, is_mit). MIT takes precedence over LIT."""
    # Markers inside a quoted title are part of the title
    unquoted = QUOTED_TITLE_PATTERN.sub(" ", message)
    mit_match = MIT_PATTERN.search(unquoted)
    if mit_match:
        return int(mit_match.group(1)), True
    lit_match = LIT_PATTERN.search(unquoted)
    if lit_match:
        priority = int(lit_match.group(1))
        if priority > 0:
            return priority, False
    return None, None


def parse_date(date_string: str, today: Optional[date] = None) -> Optional[str]:
    """
    Converts MM/DD/YYYY or MM/DD (current year) into YYYY-MM-DD.
    Returns None if the string is not a real calendar date.
    """
    match = FULL_DATE_PATTERN.match(date_string)
    if match:
        month, day, year = match.groups()
    else:
        match = SHORT_DATE_PATTERN.match(date_string)
        if not match:
            return None
        month, day = match.groups()
        year = str((today or date.today()).year)

    try:
        parsed = date(int(year), int(month), int(day))
    except ValueError:
        return None
    return parsed.isoformat()


def _extract_due_date(message: str, pattern, today: Optional[date]) -> Optional[str]:
    match = pattern.search(message)
    return parse_date(match.group(1), today) if match else None


# --- Command Matchers ---
# Each matcher parses one command kind and returns None when the message is malformed.

def _parse_help(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    return ParsedCommand(
        kind=CMD_HELP,
        sms_key=sms_key or HELP_SMS_KEY_SENTINEL,
        sender_phone=sender_phone,
    )


def _parse_close(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    if not sms_key:
        return None
    code_match = CLOSE_CODE_PATTERN.search(message)
    if not code_match:
        return None
    return ParsedCommand(
        kind=CMD_CLOSE,
        sms_key=sms_key,
        sender_phone=sender_phone,
        short_code=code_match.group(1).lower(),
    )


def _parse_edit(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    if not sms_key:
        return None
    code_match = EDIT_CODE_PATTERN.search(message)
    if not code_match:
        return None

    title = extract_quoted_title(message)
    priority, is_mit = extract_priority(message)
    # EDIT only accepts full MM/DD/YYYY dates
    due_date = _extract_due_date(message, EDIT_DATE_PATTERN, today)

    if not title and priority is None and not due_date:
        return None

    return ParsedCommand(
        kind=CMD_EDIT,
        sms_key=sms_key,
        sender_phone=sender_phone,
        short_code=code_match.group(1).lower(),
        title=title,
        priority=priority,
        is_mit=is_mit,
        due_date=due_date,
    )


def _parse_list_mit(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    if not sms_key:
        return None
    return ParsedCommand(kind=CMD_LIST_MIT, sms_key=sms_key, sender_phone=sender_phone)


def _parse_list_all(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    if not sms_key:
        return None
    return ParsedCommand(kind=CMD_LIST_ALL, sms_key=sms_key, sender_phone=sender_phone)


def _parse_create(message: str, sender_phone: str, today: Optional[date]) -> Optional[ParsedCommand]:
    sms_key = extract_sms_key(message)
    if not sms_key:
        return None

    title = extract_quoted_title(message) or extract_smart_title(message)
    if not title:
        return None

    priority, is_mit = extract_priority(message)
    if priority is None:
        priority, is_mit = 1, True  # default MIT1

    return ParsedCommand(
        kind=CMD_CREATE,
        sms_key=sms_key,
        sender_phone=sender_phone,
        title=title,
        priority=priority,
        is_mit=is_mit,
        due_date=_extract_due_date(message, CREATE_DATE_PATTERN, today),
    )


Matcher = Callable[[str, str, Optional[date]], Optional[ParsedCommand]]

# Priority-ordered: the first trigger that matches decides the outcome.
# CREATE is implicit and only triggers when an ID token is present.
COMMAND_MATCHERS: List[Tuple[Callable[[str], bool], Matcher]] = [
    (lambda m: re.match(r"^HELP", m, re.IGNORECASE) is not None, _parse_help),
    (lambda m: re.match(r"^CLOSE", m, re.IGNORECASE) is not None, _parse_close),
    (lambda m: re.match(r"^EDIT", m, re.IGNORECASE) is not None, _parse_edit),
    (lambda m: re.match(r"^LIST\s+MIT", m, re.IGNORECASE) is not None, _parse_list_mit),
    (lambda m: re.match(r"^LIST\s+ALL", m, re.IGNORECASE) is not None, _parse_list_all),
    (lambda m: extract_sms_key(m) is not None, _parse_create),
]


def parse(message: str, sender_phone: str, today: Optional[date] = None) -> Optional[ParsedCommand]:
    """
    Parses raw SMS text into a ParsedCommand.

    Returns None when the message does not match the command grammar.
    `today` only affects MM/DD dates without a year.
    """
    trimmed = (message or "").strip()
    for trigger, matcher in COMMAND_MATCHERS:
        if trigger(trimmed):
            command = matcher(trimmed, sender_phone, today)
            if command is None:
                logging.debug(f"Matcher {matcher.__name__} rejected message from {sender_phone}")
            return command
    return None
