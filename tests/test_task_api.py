# tests/test_task_api.py

import pytest
import requests
from unittest.mock import MagicMock

from sms_tasks.task_api import TaskApiClient
from sms_tasks.errors import TaskApiError, AuthenticationError


def _response(payload, ok=True, status_code=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = "OK" if ok else "Server Error"
    response.json.return_value = payload
    return response


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.get_token.return_value = "m2m-token"
    return session

@pytest.fixture
def client(mock_session):
    return TaskApiClient("https://tasks.example.com/", mock_session, timeout=7)


def _expected_headers(user_id="user-1"):
    return {
        'Content-Type': 'application/json',
        'Authorization': 'Bearer m2m-token',
        'X-User-Id': user_id,
    }


def test_list_open_tasks(client, mocker):
    mock_request = mocker.patch('sms_tasks.task_api.requests.request', return_value=_response([{"TaskId": "t1"}]))
    assert client.list_open_tasks("user-1") == [{"TaskId": "t1"}]
    mock_request.assert_called_once_with(
        'GET', "https://tasks.example.com/api/tasks",
        headers=_expected_headers(), params={'status': 'Open'}, json=None, timeout=7,
    )

def test_list_open_tasks_mit_only(client, mocker):
    mock_request = mocker.patch('sms_tasks.task_api.requests.request', return_value=_response([]))
    client.list_open_tasks("user-1", mit_only=True)
    assert mock_request.call_args.kwargs['params'] == {'status': 'Open', 'isMIT': 'true'}

def test_create_task_posts_body(client, mocker):
    mock_request = mocker.patch('sms_tasks.task_api.requests.request', return_value=_response({"TaskId": "t2"}))
    body = {"title": "New", "insertPosition": 0}
    assert client.create_task("user-1", body) == {"TaskId": "t2"}
    args, kwargs = mock_request.call_args
    assert args == ('POST', "https://tasks.example.com/api/tasks")
    assert kwargs['json'] == body

def test_update_task_puts_partial_body(client, mocker):
    mock_request = mocker.patch('sms_tasks.task_api.requests.request', return_value=_response({"TaskId": "t3"}))
    client.update_task("user-2", "t3", {"title": "Renamed"})
    args, kwargs = mock_request.call_args
    assert args == ('PUT', "https://tasks.example.com/api/tasks/t3")
    assert kwargs['json'] == {"title": "Renamed"}
    assert kwargs['headers']['X-User-Id'] == "user-2"

def test_get_task(client, mocker):
    mocker.patch('sms_tasks.task_api.requests.request', return_value=_response({"TaskId": "t4", "title": "Hi"}))
    assert client.get_task("user-1", "t4")["title"] == "Hi"

def test_non_2xx_raises_task_api_error(client, mocker):
    mocker.patch('sms_tasks.task_api.requests.request', return_value=_response({}, ok=False, status_code=500))
    with pytest.raises(TaskApiError) as excinfo:
        client.get_task("user-1", "t4")
    assert excinfo.value.status_code == 500

def test_network_error_raises_task_api_error(client, mocker):
    mocker.patch('sms_tasks.task_api.requests.request', side_effect=requests.Timeout("slow"))
    with pytest.raises(TaskApiError):
        client.list_open_tasks("user-1")

def test_authentication_error_propagates(client, mock_session, mocker):
    mock_request = mocker.patch('sms_tasks.task_api.requests.request')
    mock_session.get_token.side_effect = AuthenticationError("Authentication failed")
    with pytest.raises(AuthenticationError):
        client.list_open_tasks("user-1")
    mock_request.assert_not_called()
