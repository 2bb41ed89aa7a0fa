# sms_tasks/main.py

import logging
from typing import Tuple, Optional

import functions_framework
from flask import Request

from google.cloud import firestore

from vonage_jwt import verify_signature

import phonenumbers
from phonenumbers import NumberParseException

from . import config
from .auth import M2MTokenSession
from .errors import RequestValidationError
from .processor import SmsCommandProcessor
from .short_codes import ShortCodeService
from .sms_gateway import SmsGateway, build_vonage_client
from .store import FirestoreStore
from .task_api import TaskApiClient
from .validator import SmsValidator

# --- Initialize Clients ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
    force=True
)

config.log_missing_configuration()

# Firestore Client
try:
    db = firestore.Client(project=config.GCP_PROJECT_ID)
    logging.info("Firestore client initialized successfully.")
except Exception as e:
    logging.exception(f"Failed to initialize Firestore client: {e}")
    db = None # Application should fail gracefully if DB is unavailable

# Vonage Client
vonage_client = build_vonage_client(config.VONAGE_API_KEY, config.VONAGE_API_SECRET)

# Shared across requests; refreshes itself under a lock
token_session = M2MTokenSession(
    domain=config.AUTH0_DOMAIN,
    client_id=config.AUTH0_CLIENT_ID,
    client_secret=config.AUTH0_CLIENT_SECRET,
    audience=config.AUTH0_AUDIENCE,
)


def build_processor() -> Optional[SmsCommandProcessor]:
    """Wires the pipeline from the module-level clients. Returns None without a DB."""
    if not db:
        return None
    store = FirestoreStore(db)
    return SmsCommandProcessor(
        validator=SmsValidator(store),
        short_codes=ShortCodeService(store),
        task_api=TaskApiClient(config.TASK_API_URL, token_session),
        sms_gateway=SmsGateway(vonage_client, config.SMS_ORIGINATION_NUMBER, config.SMS_CONFIGURATION_SET),
    )


processor = build_processor()


# --- Helper Functions ---

def normalize_phone_number(phone: str, default_region: str = "US") -> Optional[str]:
    """Normalize phone number to E.164 format using phonenumbers library."""
    if not phone: return None
    try:
        # Vonage delivers numbers without the leading '+'
        candidate = phone if phone.startswith('+') or len(phone) <= 10 else f"+{phone}"
        parsed_number = phonenumbers.parse(candidate, default_region)

        if not phonenumbers.is_valid_number(parsed_number):
            logging.warning(f"Invalid phone number provided: {phone}")
            return None

        return phonenumbers.format_number(parsed_number, phonenumbers.PhoneNumberFormat.E164)

    except NumberParseException as e:
        logging.warning(f"Could not parse phone number '{phone}': {e}")
        return None


def _validate_request(request: Request):
    """Validates the incoming request (method, signature). Raises RequestValidationError on failure."""
    if request.method != 'POST':
        raise RequestValidationError("Method Not Allowed", 405)

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        logging.error("Missing or invalid Authorization header for signature verification.")
        raise RequestValidationError("Unauthorized: Missing signature token", 401)

    token = auth_header.split(maxsplit=1)[1].strip()
    if not config.VONAGE_SIGNATURE_SECRET:
        logging.warning("VONAGE_SIGNATURE_SECRET not set, SKIPPING signature verification.")
    elif not verify_signature(token, config.VONAGE_SIGNATURE_SECRET):
        logging.error("Invalid Vonage signature received.")
        raise RequestValidationError("Unauthorized: Invalid signature", 401)
    else:
        logging.info("Vonage signature verified successfully.")


def _parse_incoming_message(request: Request) -> Tuple[str, str, str]:
    """Extracts (sender, text, message ID) from a Vonage inbound webhook. Raises ValueError on failure."""
    try:
        if request.is_json:
            data = request.get_json(silent=True) or {}
            sender_raw = data.get('from') or data.get('msisdn')
            message_id = data.get('message_uuid') or data.get('messageId') or 'UNKNOWN'
        elif request.form:
            data = request.form
            sender_raw = data.get('msisdn') or data.get('from')
            message_id = data.get('messageId', 'UNKNOWN')
        else:
            data = request.get_json(force=True, silent=True)
            if data is None:
                raise ValueError("Could not parse request body as JSON or Form.")
            sender_raw = data.get('from') or data.get('msisdn')
            message_id = data.get('message_uuid', 'UNKNOWN')

        if not sender_raw:
            raise ValueError("Missing sender ('from'/'msisdn') in request.")

        sender_id = normalize_phone_number(sender_raw)
        if not sender_id:
            raise ValueError(f"Could not normalize sender ('{sender_raw}') phone number.")

        message_text = (data.get('text') or '').strip()
        return sender_id, message_text, message_id

    except Exception as e:
        logging.error(f"Error parsing request data: {e}")
        logging.debug(f"Raw request body for error: {request.get_data(as_text=True)}")
        raise ValueError(f"Could not parse data: {e}")


# --- Main Handler Function ---
@functions_framework.http
def sms_webhook(request: Request):
    """
    HTTP entry point for Vonage inbound SMS.

    Always acknowledges with 200 once the request is authentic, so Vonage does
    not retry; the pipeline decides whether a reply SMS is sent.
    """
    message_id = "UNKNOWN"
    try:
        _validate_request(request)

        if not processor:
            logging.error("FATAL: SMS processor not available (Firestore client missing).")
            return "Internal Server Error: DB not configured", 500

        sender_id, message_text, message_id = _parse_incoming_message(request)
        logging.info(f"Processing message_id: {message_id} from {sender_id}")

        result = processor.process(message_text, sender_id)
        logging.info(f"Finished message_id: {message_id} (success={result.success}, sent={result.sent})")
        return "Webhook processed", 200

    except RequestValidationError as rve:
        logging.error(f"Request Validation Error: {rve} (Status: {rve.status_code})")
        return str(rve), rve.status_code
    except ValueError as ve:
        logging.error(f"Data Parsing/Value Error: {ve}")
        return f"Bad Request: {ve}", 200 # Vonage expects 200 or it will retry
    except Exception as e:
        logging.exception(f"Unhandled exception in sms_webhook (msg_id: {message_id}): {e}")
        return "Internal Server Error", 500
