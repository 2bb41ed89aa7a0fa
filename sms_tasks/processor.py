# sms_tasks/processor.py

import logging
from datetime import datetime, timezone
from typing import Optional, Callable, Dict, Any, List, Tuple

from . import parser, formatter
from .errors import TaskCodeNotFound
from .models import (
    ParsedCommand, ProcessResult,
    CMD_CREATE, CMD_CLOSE, CMD_EDIT, CMD_LIST_MIT, CMD_LIST_ALL, CMD_HELP,
    RESULT_SUCCESS, RESULT_ERROR, RESULT_UNAUTHORIZED, RESULT_RATE_LIMITED,
    INVALID_PHONE,
)
from .short_codes import ShortCodeService, validate_code_format
from .sms_gateway import SmsGateway
from .task_api import TaskApiClient
from .validator import SmsValidator

Task = Dict[str, Any]

# --- Reply Texts ---
PARSE_ERROR_TEXT = "Invalid format. Reply HELP for commands"
RATE_LIMITED_TEXT = "Limit reached. Try again in 1 hour"
UNAUTHORIZED_TEXT = "Unauthorized. Check your ID in Settings"
DAILY_LIMIT_TEXT = "Daily limit reached. Try tomorrow"
GENERIC_ERROR_TEXT = "Error processing. Try again later"
CODE_NOT_FOUND_TEXT = "Task code not found"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def partition_tasks(tasks: List[Task]) -> Tuple[List[Task], List[Task]]:
    """Splits tasks into (MIT, LIT), each sorted by ascending priority."""
    def by_priority(task):
        priority = task.get('priority')
        return priority if priority is not None else float('inf')

    mit_tasks = sorted((t for t in tasks if t.get('isMIT')), key=by_priority)
    lit_tasks = sorted((t for t in tasks if not t.get('isMIT')), key=by_priority)
    return mit_tasks, lit_tasks


def compute_insert_position(is_mit: bool, priority: int, mit_count: int, total_count: int) -> int:
    """
    Index into the combined [MIT tasks][LIT tasks] ordering.
    Requests past the end of a tier append instead of overflowing.
    """
    if is_mit:
        return min(priority - 1, mit_count)
    return min(mit_count + (priority - 1), total_count)


class SmsCommandProcessor:
    """
    Runs one inbound SMS through parse -> validate -> execute -> reply -> audit.

    Only replies to successfully executed commands are sent over SMS. Parse,
    auth and rate-limit failures are returned to the caller without being
    transmitted.
    """

    def __init__(
        self,
        validator: SmsValidator,
        short_codes: ShortCodeService,
        task_api: TaskApiClient,
        sms_gateway: SmsGateway,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.validator = validator
        self.short_codes = short_codes
        self.task_api = task_api
        self.sms_gateway = sms_gateway
        self.clock = clock

        self.handlers: Dict[str, Callable[[ParsedCommand, Optional[str]], str]] = {
            CMD_CREATE: self._handle_create,
            CMD_CLOSE: self._handle_close,
            CMD_EDIT: self._handle_edit,
            CMD_LIST_MIT: self._handle_list_mit,
            CMD_LIST_ALL: self._handle_list_all,
            CMD_HELP: self._handle_help,
        }

    # --- Command Handlers ---

    def _handle_create(self, cmd: ParsedCommand, user_id: str) -> str:
        short_code = self.short_codes.generate_unique_code(user_id).code
        is_mit = cmd.is_mit if cmd.is_mit is not None else True
        desired_priority = cmd.priority or 1

        all_tasks = self.task_api.list_open_tasks(user_id)
        mit_tasks, lit_tasks = partition_tasks(all_tasks)
        insert_position = compute_insert_position(is_mit, desired_priority, len(mit_tasks), len(all_tasks))
        logging.info(
            f"CREATE for user {user_id}: {'MIT' if is_mit else 'LIT'}{desired_priority}, "
            f"{len(mit_tasks)} MIT / {len(lit_tasks)} LIT open, insert at {insert_position}"
        )

        task = self.task_api.create_task(user_id, {
            'title': cmd.title,
            'description': '',
            'dueDate': cmd.due_date,
            'status': 'Open',
            'isMIT': is_mit,
            'priority': 1,  # the task API renumbers from insertPosition
            'tags': [],
            'shortCode': short_code,
            'insertPosition': insert_position,
        })
        return formatter.format_create_success(task)

    def _resolve_task_id(self, cmd: ParsedCommand, user_id: str) -> str:
        # Codes outside the alphabet can never have been issued
        if not validate_code_format(cmd.short_code):
            raise TaskCodeNotFound(cmd.short_code)
        task_id = self.short_codes.lookup_task_id(cmd.short_code, user_id)
        if not task_id:
            raise TaskCodeNotFound(cmd.short_code)
        return task_id

    def _handle_close(self, cmd: ParsedCommand, user_id: str) -> str:
        task_id = self._resolve_task_id(cmd, user_id)
        task = self.task_api.get_task(user_id, task_id)
        self.task_api.update_task(user_id, task_id, {
            'status': 'Completed',
            'completedDate': self.clock().isoformat(),
        })
        return formatter.format_close_success(cmd.short_code, task.get('title'))

    def _handle_edit(self, cmd: ParsedCommand, user_id: str) -> str:
        task_id = self._resolve_task_id(cmd, user_id)
        updates: Dict[str, Any] = {}
        if cmd.title:
            updates['title'] = cmd.title
        if cmd.priority:
            updates['priority'] = cmd.priority
        if cmd.due_date:
            updates['dueDate'] = cmd.due_date
        updated_task = self.task_api.update_task(user_id, task_id, updates)
        return formatter.format_edit_success(updated_task)

    def _handle_list_mit(self, cmd: ParsedCommand, user_id: str) -> str:
        tasks = self.task_api.list_open_tasks(user_id, mit_only=True)
        mit_tasks, _ = partition_tasks(tasks)
        return formatter.format_list_mit_response(mit_tasks)

    def _handle_list_all(self, cmd: ParsedCommand, user_id: str) -> str:
        mit_tasks, lit_tasks = partition_tasks(self.task_api.list_open_tasks(user_id))
        return formatter.format_list_response(mit_tasks, lit_tasks)

    def _handle_help(self, cmd: ParsedCommand, user_id: Optional[str]) -> str:
        return formatter.format_help()

    # --- Pipeline ---

    def _reject(self, phone_number: str, message_body: str, action: Optional[str], result: str,
                reply_text: str, timestamp: str, user_id: Optional[str] = None,
                error_message: Optional[str] = None) -> ProcessResult:
        """Audits a failed request and returns the (unsent) error reply."""
        self.validator.create_audit_log(phone_number, message_body, action, result, user_id, error_message)
        return ProcessResult(success=False, message=formatter.format_error(reply_text), timestamp=timestamp)

    def process(self, message_body: str, phone_number: str) -> ProcessResult:
        """Processes one inbound (message body, origination number) pair."""
        now = self.clock()
        timestamp = now.isoformat()
        message_body = message_body or ""

        # 1. Parse
        cmd = parser.parse(message_body, phone_number, today=now.date())
        if cmd is None:
            logging.info(f"Unparsable SMS from {phone_number}")
            return self._reject(phone_number, message_body, None, RESULT_ERROR, PARSE_ERROR_TEXT, timestamp,
                                error_message="Parse failed")

        if not self.validator.validate_phone_format(phone_number):
            logging.warning(f"Rejecting {cmd.kind} from malformed number {phone_number!r}")
            return self._reject(phone_number, message_body, cmd.kind, RESULT_UNAUTHORIZED, UNAUTHORIZED_TEXT, timestamp,
                                error_message=INVALID_PHONE)

        user_id: Optional[str] = None
        if cmd.kind != CMD_HELP:
            # 2. Hourly rate limit
            rate_limit = self.validator.check_rate_limit(phone_number)
            if not rate_limit.allowed:
                return self._reject(phone_number, message_body, cmd.kind, RESULT_RATE_LIMITED, RATE_LIMITED_TEXT, timestamp,
                                    error_message=f"Hourly limit, resets {rate_limit.reset_time}")

            # 3. Credentials
            credentials = self.validator.validate_credentials(phone_number, cmd.sms_key)
            if not credentials.valid:
                logging.warning(f"Unauthorized SMS from {phone_number}: {credentials.error}")
                return self._reject(phone_number, message_body, cmd.kind, RESULT_UNAUTHORIZED, UNAUTHORIZED_TEXT, timestamp,
                                    error_message=credentials.error)
            user_id = credentials.user_id

            # 4. Daily quota
            if not self.validator.check_daily_limit(user_id):
                return self._reject(phone_number, message_body, cmd.kind, RESULT_RATE_LIMITED, DAILY_LIMIT_TEXT, timestamp,
                                    user_id=user_id, error_message="Daily limit")

            # 5. Record usage
            self.validator.record_usage(phone_number, user_id)

        # 6-8. Execute, format, send
        try:
            reply = self.handlers[cmd.kind](cmd, user_id)
        except TaskCodeNotFound as e:
            logging.info(f"{cmd.kind} from {phone_number}: {e}")
            return self._reply_code_not_found(cmd, message_body, user_id, timestamp)
        except Exception as e:
            return self._fail_execution(cmd, message_body, user_id, timestamp, e)

        try:
            self.sms_gateway.send_text(phone_number, reply)
        except Exception as e:
            return self._fail_execution(cmd, message_body, user_id, timestamp, e)

        # 9. Audit success
        self.validator.create_audit_log(phone_number, message_body, cmd.kind, RESULT_SUCCESS, user_id,
                                        response_length=len(reply))
        logging.info(f"Processed {cmd.kind} for {phone_number}")
        return ProcessResult(success=True, message=reply, timestamp=timestamp, sent=True)

    def _reply_code_not_found(self, cmd: ParsedCommand, message_body: str, user_id: Optional[str], timestamp: str) -> ProcessResult:
        # The sender is authenticated, so this specific error is worth a text back
        reply = formatter.format_error(CODE_NOT_FOUND_TEXT)
        sent = True
        try:
            self.sms_gateway.send_text(cmd.sender_phone, reply)
        except Exception as e:
            logging.error(f"Failed to send code-not-found reply to {cmd.sender_phone}: {e}")
            sent = False
        self.validator.create_audit_log(cmd.sender_phone, message_body, cmd.kind, RESULT_ERROR, user_id,
                                        CODE_NOT_FOUND_TEXT, len(reply) if sent else None)
        return ProcessResult(success=False, message=reply, timestamp=timestamp, sent=sent)

    def _fail_execution(self, cmd: ParsedCommand, message_body: str, user_id: Optional[str], timestamp: str, error: Exception) -> ProcessResult:
        logging.exception(f"Error processing {cmd.kind} from {cmd.sender_phone}: {error}")
        self.validator.create_audit_log(cmd.sender_phone, message_body, cmd.kind, RESULT_ERROR, user_id, str(error))
        return ProcessResult(success=False, message=formatter.format_error(GENERIC_ERROR_TEXT), timestamp=timestamp)
