# tests/test_short_codes.py

import pytest
from unittest.mock import MagicMock

from sms_tasks import short_codes
from sms_tasks.short_codes import ShortCodeService, SHORT_CODE_ALPHABET, validate_code_format


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.short_code_exists.return_value = False
    return store


def test_alphabet_is_lowercase_alphanumerics_without_confusables():
    # 26 letters + 10 digits - {0, 1, i, l, o}
    assert len(SHORT_CODE_ALPHABET) == 31
    assert len(set(SHORT_CODE_ALPHABET)) == len(SHORT_CODE_ALPHABET)
    for confusable in "01ilo":
        assert confusable not in SHORT_CODE_ALPHABET
    assert SHORT_CODE_ALPHABET == SHORT_CODE_ALPHABET.lower()

def test_generate_unique_code_first_attempt(mock_store):
    result = ShortCodeService(mock_store).generate_unique_code("user-1")
    assert result.attempts == 1
    assert len(result.code) == 4
    assert set(result.code) <= set(SHORT_CODE_ALPHABET)
    mock_store.short_code_exists.assert_called_once_with(result.code, "user-1")

@pytest.mark.parametrize("collisions, expected_attempts, expected_length", [
    (1, 2, 4),
    (2, 3, 4),
    (3, 4, 5),   # escalates after the 3rd collision
    (4, 5, 5),
])
def test_generate_unique_code_escalates_length(mock_store, collisions, expected_attempts, expected_length):
    mock_store.short_code_exists.side_effect = [True] * collisions + [False]
    result = ShortCodeService(mock_store).generate_unique_code("user-1")
    assert result.attempts == expected_attempts
    assert len(result.code) == expected_length
    assert mock_store.short_code_exists.call_count == expected_attempts

def test_generate_unique_code_fallback_after_five_collisions(mock_store):
    mock_store.short_code_exists.return_value = True
    result = ShortCodeService(mock_store).generate_unique_code("user-1")
    assert result.attempts == 5
    assert len(result.code) == 6
    assert set(result.code) <= set(SHORT_CODE_ALPHABET)
    # The fallback code is returned without another existence check
    assert mock_store.short_code_exists.call_count == 5

def test_generate_code_uses_requested_length():
    for length in (4, 5, 6):
        assert len(short_codes.generate_code(length)) == length

def test_lookup_task_id_delegates_to_store(mock_store):
    mock_store.find_task_id_by_short_code.return_value = "task-42"
    assert ShortCodeService(mock_store).lookup_task_id("a2b3", "user-1") == "task-42"
    mock_store.find_task_id_by_short_code.assert_called_once_with("a2b3", "user-1")

@pytest.mark.parametrize("code", ["a2b3", "zzzz", "abcde", "23456x", "hjkmnp"])
def test_validate_code_format_accepts(code):
    assert validate_code_format(code) is True

@pytest.mark.parametrize("code", [
    "abc",        # too short
    "abcdefg",    # too long
    "A2B3",       # uppercase
    "a0b3",       # zero
    "a1b3",       # one
    "abci",       # i
    "abcl",       # l
    "abco",       # o
    "ab c",       # whitespace
    "ab-c",       # punctuation
    "",
])
def test_validate_code_format_rejects(code):
    assert validate_code_format(code) is False
