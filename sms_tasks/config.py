# sms_tasks/config.py

import os
import logging

# --- Configuration ---
# Loaded from environment variables (populated by Secret Manager in deployment)
GCP_PROJECT_ID = os.environ.get('GCP_PROJECT_ID')

# Vonage (outbound SMS + inbound webhook signature)
VONAGE_API_KEY = os.environ.get('VONAGE_API_KEY')
VONAGE_API_SECRET = os.environ.get('VONAGE_API_SECRET')
VONAGE_SIGNATURE_SECRET = os.environ.get('VONAGE_SIGNATURE_SECRET')
SMS_ORIGINATION_NUMBER = os.environ.get('SMS_ORIGINATION_NUMBER')
SMS_CONFIGURATION_SET = os.environ.get('SMS_CONFIGURATION_SET', 'default')

# Task API + machine-to-machine credentials
TASK_API_URL = os.environ.get('TASK_API_URL', 'http://localhost:8000')
AUTH0_DOMAIN = os.environ.get('AUTH0_DOMAIN')
AUTH0_CLIENT_ID = os.environ.get('AUTH0_CLIENT_ID')
AUTH0_CLIENT_SECRET = os.environ.get('AUTH0_CLIENT_SECRET')
AUTH0_AUDIENCE = os.environ.get('AUTH0_AUDIENCE')
HTTP_TIMEOUT_SECONDS = float(os.environ.get('HTTP_TIMEOUT_SECONDS', '10'))
TOKEN_REFRESH_MARGIN_SECONDS = 300

# --- Limits ---
RATE_LIMIT_MAX = int(os.environ.get('RATE_LIMIT_MAX', '25'))  # per phone, per hour
RATE_LIMIT_WINDOW_SECONDS = 3600
DAILY_LIMIT_MAX = int(os.environ.get('DAILY_LIMIT_MAX', '50'))  # per user, per UTC day

# Availability over strictness: admit the request when the rate-limit/quota
# lookup itself fails. Set to "false" to deny instead.
RATE_LIMIT_FAIL_OPEN = os.environ.get('RATE_LIMIT_FAIL_OPEN', 'true').lower() != 'false'


def log_missing_configuration():
    """Logs (but does not raise on) missing essential settings."""
    if not all([VONAGE_API_KEY, VONAGE_API_SECRET]):
        logging.error("Missing Vonage API Key/Secret environment variables.")
    if not VONAGE_SIGNATURE_SECRET:
        logging.warning("VONAGE_SIGNATURE_SECRET environment variable not set. Signature verification will be skipped.")
    if not SMS_ORIGINATION_NUMBER:
        logging.error("SMS_ORIGINATION_NUMBER not set. Replies cannot be sent.")
    if not all([AUTH0_DOMAIN, AUTH0_CLIENT_ID, AUTH0_CLIENT_SECRET, AUTH0_AUDIENCE]):
        logging.error("Missing Auth0 M2M environment variables. Task API calls will fail.")
