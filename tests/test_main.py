# tests/test_main.py

import pytest
from unittest.mock import MagicMock

# Import the module we are testing
from sms_tasks import main
from sms_tasks.models import ProcessResult

# --- Fixtures ---

@pytest.fixture
def mock_request(mocker):
    """Fixture for creating a mock Flask request object."""
    mock = MagicMock(spec=main.Request)
    mock.headers = {"Authorization": "Bearer valid_token"}
    mock.method = 'POST'
    mock.is_json = False
    mock.form = {}
    mock.get_json.return_value = {}
    mock.get_data.return_value = b'' # Default empty body
    return mock

@pytest.fixture
def mock_processor(mocker):
    """Patches the module-level processor with a mock."""
    mock = MagicMock()
    mock.process.return_value = ProcessResult(success=True, message="ok", timestamp="t", sent=True)
    mocker.patch('sms_tasks.main.processor', mock)
    return mock

@pytest.fixture(autouse=True)
def mock_dependencies(mocker):
    """Auto-used fixture to mock signature verification for all tests."""
    mocker.patch('sms_tasks.main.verify_signature', return_value=True)


# --- Test Helper Functions ---

@pytest.mark.parametrize("raw_phone, candidate", [
    ("15551234567", "+15551234567"),   # Vonage omits the '+'
    ("+15551234567", "+15551234567"),
    ("5551234567", "5551234567"),      # national numbers use the default region
])
def test_normalize_phone_number_prefixes_plus(mocker, raw_phone, candidate):
    mock_parse = mocker.patch('sms_tasks.main.phonenumbers.parse', return_value=MagicMock())
    mocker.patch('sms_tasks.main.phonenumbers.is_valid_number', return_value=True)
    mocker.patch('sms_tasks.main.phonenumbers.format_number', return_value="+15551234567")

    assert main.normalize_phone_number(raw_phone) == "+15551234567"
    mock_parse.assert_called_once_with(candidate, "US")

def test_normalize_phone_number_invalid(mocker):
    mocker.patch('sms_tasks.main.phonenumbers.parse', return_value=MagicMock())
    mocker.patch('sms_tasks.main.phonenumbers.is_valid_number', return_value=False)
    assert main.normalize_phone_number("invalid number") is None

def test_normalize_phone_number_parse_error(mocker):
    mocker.patch('sms_tasks.main.phonenumbers.parse',
                 side_effect=main.NumberParseException(0, "Mock parse error"))
    assert main.normalize_phone_number("garbage") is None

@pytest.mark.parametrize("raw_phone", ["", None])
def test_normalize_phone_number_empty(raw_phone):
    assert main.normalize_phone_number(raw_phone) is None


# --- Test Request Validation ---

def test_validate_request_post_valid_sig(mock_request, mocker):
    mocker.patch('sms_tasks.main.config.VONAGE_SIGNATURE_SECRET', 'a-secret')
    mock_verify = mocker.patch('sms_tasks.main.verify_signature', return_value=True)
    try:
        main._validate_request(mock_request)
    except main.RequestValidationError:
        pytest.fail("Validation should have passed")
    mock_verify.assert_called_once_with("valid_token", 'a-secret')

def test_validate_request_get_method(mock_request):
    mock_request.method = 'GET'
    with pytest.raises(main.RequestValidationError) as excinfo:
        main._validate_request(mock_request)
    assert excinfo.value.status_code == 405

def test_validate_request_missing_auth(mock_request):
    mock_request.headers = {}
    with pytest.raises(main.RequestValidationError) as excinfo:
        main._validate_request(mock_request)
    assert excinfo.value.status_code == 401
    assert "Missing signature token" in str(excinfo.value)

def test_validate_request_invalid_sig(mock_request, mocker):
    mock_request.headers = {"Authorization": "Bearer invalid_token"}
    mocker.patch('sms_tasks.main.verify_signature', return_value=False)
    mocker.patch('sms_tasks.main.config.VONAGE_SIGNATURE_SECRET', 'a-secret')
    with pytest.raises(main.RequestValidationError) as excinfo:
        main._validate_request(mock_request)
    assert excinfo.value.status_code == 401
    assert "Invalid signature" in str(excinfo.value)

def test_validate_request_skips_verification_without_secret(mock_request, mocker):
    mocker.patch('sms_tasks.main.config.VONAGE_SIGNATURE_SECRET', None)
    mock_verify = mocker.patch('sms_tasks.main.verify_signature', return_value=False)
    main._validate_request(mock_request)
    mock_verify.assert_not_called()


# --- Test Inbound Message Parsing ---

@pytest.mark.parametrize("is_json, form_data, json_data, expected_text, expected_id", [
    (True, None, {"from": "15551112222", "text": " LIST ALL ID:1234 ", "message_uuid": "uuid-1"}, "LIST ALL ID:1234", "uuid-1"),
    (False, {"msisdn": "15551112222", "text": " HELP ", "messageId": "msg-2"}, None, "HELP", "msg-2"),
])
def test_parse_incoming_message_success(mock_request, mocker, is_json, form_data, json_data, expected_text, expected_id):
    mocker.patch('sms_tasks.main.normalize_phone_number', side_effect=lambda x, **kw: f"+{x}") # Simple mock normalization
    mock_request.is_json = is_json
    if form_data:
        mock_request.form = form_data
    if json_data:
        mock_request.get_json.return_value = json_data

    sender, text, msg_id = main._parse_incoming_message(mock_request)
    assert sender == "+15551112222"
    assert text == expected_text
    assert msg_id == expected_id

def test_parse_incoming_message_missing_sender(mock_request, mocker):
    mock_request.is_json = True
    mock_request.get_json.return_value = {"text": "HELP"}
    with pytest.raises(ValueError, match="Missing sender"):
        main._parse_incoming_message(mock_request)

def test_parse_incoming_message_failure_normalization(mock_request, mocker):
    mocker.patch('sms_tasks.main.normalize_phone_number', return_value=None) # Simulate normalization failure
    mock_request.is_json = True
    mock_request.get_json.return_value = {"from": "invalid", "text": "T"}
    with pytest.raises(ValueError, match="Could not normalize sender"):
        main._parse_incoming_message(mock_request)

def test_parse_incoming_message_unreadable_body(mock_request):
    mock_request.get_json.return_value = None
    with pytest.raises(ValueError, match="Could not parse request body"):
        main._parse_incoming_message(mock_request)

@pytest.mark.parametrize("json_data", [
    ["15551112222", "HELP"],                   # body is a list, not an object
    {"from": "16502530000", "text": 42},       # non-string text
    {"from": 15551112222, "text": "HELP"},     # non-string sender
])
def test_parse_incoming_message_malformed_payload(mock_request, json_data):
    mock_request.is_json = True
    mock_request.get_json.return_value = json_data
    with pytest.raises(ValueError, match="Could not parse data"):
        main._parse_incoming_message(mock_request)


# --- Test Main Handler ---

def test_sms_webhook_success(mock_request, mock_processor, mocker):
    mocker.patch('sms_tasks.main._parse_incoming_message', return_value=("+15551112222", "LIST ALL ID:1234", "msg1"))

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 200
    assert response == "Webhook processed"
    mock_processor.process.assert_called_once_with("LIST ALL ID:1234", "+15551112222")

def test_sms_webhook_failed_command_still_acknowledged(mock_request, mock_processor, mocker):
    mocker.patch('sms_tasks.main._parse_incoming_message', return_value=("+15551112222", "nonsense", "msg2"))
    mock_processor.process.return_value = ProcessResult(success=False, message="Error: x", timestamp="t")

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 200

def test_sms_webhook_validation_error(mock_request, mock_processor, mocker):
    mocker.patch('sms_tasks.main._validate_request', side_effect=main.RequestValidationError("Bad Sig", 401))
    mock_parse_msg = mocker.patch('sms_tasks.main._parse_incoming_message') # Should not be called

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 401
    assert response == "Bad Sig"
    mock_parse_msg.assert_not_called()
    mock_processor.process.assert_not_called()

def test_sms_webhook_without_processor(mock_request, mocker):
    mocker.patch('sms_tasks.main.processor', None)

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 500
    assert "DB not configured" in response

def test_sms_webhook_bad_payload(mock_request, mock_processor, mocker):
    mocker.patch('sms_tasks.main._parse_incoming_message', side_effect=ValueError("Missing sender"))

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 200 # Vonage would otherwise retry
    assert response.startswith("Bad Request")
    mock_processor.process.assert_not_called()

def test_sms_webhook_list_body_is_acknowledged(mock_request, mock_processor):
    mock_request.is_json = True
    mock_request.get_json.return_value = ["15551112222", "HELP"]

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 200 # Vonage would otherwise retry
    assert response.startswith("Bad Request")
    mock_processor.process.assert_not_called()

def test_sms_webhook_unexpected_error(mock_request, mock_processor, mocker):
    mocker.patch('sms_tasks.main._parse_incoming_message', return_value=("+15551112222", "HELP", "msg3"))
    mock_processor.process.side_effect = TypeError("Something unexpected")

    response, status_code = main.sms_webhook(mock_request)

    assert status_code == 500
    assert response == "Internal Server Error"


# --- Test Wiring ---

def test_build_processor_without_db(mocker):
    mocker.patch('sms_tasks.main.db', None)
    assert main.build_processor() is None

def test_build_processor_with_db(mocker):
    mocker.patch('sms_tasks.main.db', MagicMock())
    assert isinstance(main.build_processor(), main.SmsCommandProcessor)
