# sms_tasks/formatter.py

import re
from datetime import date
from typing import List, Dict, Any, Optional

MAX_SMS_LENGTH = 250
MAX_TITLE_LENGTH = 25
ELLIPSIS = "..."
MAX_LIST_MIT = 5
MAX_LIST_LIT = 3
MISSING_CODE = "n/a"

MIT_ICON = "\U0001F4D8"  # blue book
LIT_ICON = "\U0001F4D7"  # green book

GSM_REPLACEMENTS = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    "…": "...",
}
# Anything outside basic ASCII and the pictograph block is dropped
UNSAFE_CHARS_PATTERN = re.compile("[^\x00-\x7F\U0001F300-\U0001F9FF]")

HELP_REPLY = (
    "TaskVision Commands:\n"
    "\n"
    "CREATE: \"Title\" MIT1 12/25/2025 ID:1234\n"
    "CLOSE: CLOSE a2b3 ID:1234\n"
    "EDIT: EDIT a2b3 \"New\" MIT2 ID:1234\n"
    "LIST: LIST MIT or LIST ALL ID:1234\n"
    "\n"
    "Get ID: taskvision.com/settings/sms"
)

Task = Dict[str, Any]


# --- Text Helpers ---

def sanitize(text: str) -> str:
    """Folds typographic punctuation to ASCII and strips non-transport-safe characters."""
    for unicode_char, ascii_char in GSM_REPLACEMENTS.items():
        text = text.replace(unicode_char, ascii_char)
    return UNSAFE_CHARS_PATTERN.sub("", text)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - len(ELLIPSIS)] + ELLIPSIS


def finalize(text: str) -> str:
    """Sanitize, then enforce the transport length limit."""
    return truncate(sanitize(text), MAX_SMS_LENGTH)


def truncate_title(title: Optional[str]) -> str:
    return truncate(title or "", MAX_TITLE_LENGTH)


def format_date(iso_date: str) -> Optional[str]:
    """'2025-12-25' (or a full ISO timestamp) -> '12/25'."""
    try:
        parsed = date.fromisoformat(iso_date[:10])
    except (TypeError, ValueError):
        return None
    return f"{parsed.month}/{parsed.day}"


def format_task_line(index: int, task: Task) -> str:
    """1. [a2b3] Task title (12/25)"""
    short_code = task.get('shortCode') or MISSING_CODE
    title = truncate_title(task.get('title'))
    due = format_date(task['dueDate']) if task.get('dueDate') else None
    date_suffix = f" ({due})" if due else ""
    return f"{index}. [{short_code}] {title}{date_suffix}"


def _format_section(label: str, tasks: List[Task], limit: int) -> str:
    if not tasks:
        return f"{label}: None\n"
    lines = [f"{label}:"]
    lines.extend(format_task_line(i + 1, task) for i, task in enumerate(tasks[:limit]))
    return "\n".join(lines) + "\n"


# --- Replies ---

def format_list_response(mit_tasks: List[Task], lit_tasks: List[Task]) -> str:
    message = _format_section(f"{MIT_ICON} MIT", mit_tasks, MAX_LIST_MIT)
    message += "\n"
    message += _format_section(f"{LIT_ICON} LIT", lit_tasks, MAX_LIST_LIT)
    message += "\nReply EDIT/CLOSE [code]"
    return finalize(message)


def format_list_mit_response(mit_tasks: List[Task]) -> str:
    if not mit_tasks:
        return finalize(f"{MIT_ICON} No MIT tasks found.\n\nCreate one: \"Title\" MIT1 ID:1234")
    message = _format_section(f"{MIT_ICON} MIT Tasks", mit_tasks, MAX_LIST_MIT)
    message += "\nReply CLOSE [code] to complete"
    return finalize(message)


def format_create_success(task: Task) -> str:
    short_code = task.get('shortCode') or MISSING_CODE
    message = f"Task created: [{short_code}] {truncate_title(task.get('title'))}"
    if task.get('isMIT'):
        message += f" (MIT{task.get('priority')})"
    due = format_date(task['dueDate']) if task.get('dueDate') else None
    if due:
        message += f" - Due {due}"
    return finalize(message)


def format_close_success(short_code: str, title: Optional[str]) -> str:
    return finalize(f"Task closed: [{short_code}] {truncate_title(title)}")


def format_edit_success(task: Task) -> str:
    short_code = task.get('shortCode') or MISSING_CODE
    message = f"Task updated: [{short_code}] {truncate_title(task.get('title'))}"
    if task.get('isMIT'):
        message += f" (MIT{task.get('priority')})"
    return finalize(message)


def format_error(error: str) -> str:
    return finalize(f"Error: {error}")


def format_help() -> str:
    return finalize(HELP_REPLY)


def validate_length(message: str) -> bool:
    return len(message) <= MAX_SMS_LENGTH


def character_count(message: str) -> int:
    return len(sanitize(message))
