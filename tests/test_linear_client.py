from unittest.mock import MagicMock

import pytest
import requests

from feedback_triage.linear_client import VIEWER_QUERY, LinearAPIError, LinearClient, LinearUnavailableError


def response(status=200, body=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = body if body is not None else {"data": {"viewer": {"id": "u1", "name": "Relay Bot"}}}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return resp


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(sleeps):
    linear = LinearClient(api_key="lin_api_test", sleep=sleeps.append)
    linear.session.post = MagicMock()
    return linear


def test_api_key_is_sent_verbatim(client):
    assert client.session.headers["Authorization"] == "lin_api_test"


def test_reachable_after_transient_network_errors(client, sleeps):
    client.session.post.side_effect = [
        requests.exceptions.ConnectionError("ECONNRESET"),
        requests.exceptions.Timeout("ETIMEDOUT"),
        response(),
    ]

    viewer = client.wait_until_reachable(attempts=5, initial_delay=2)

    assert viewer["name"] == "Relay Bot"
    assert sleeps == [2, 4]
    assert client.session.post.call_count == 3


def test_gives_up_after_all_attempts(client, sleeps):
    client.session.post.side_effect = requests.exceptions.ConnectionError("ENOTFOUND")

    with pytest.raises(LinearUnavailableError, match="after 5 attempts"):
        client.wait_until_reachable(attempts=5, initial_delay=2)

    assert sleeps == [2, 4, 8, 16]
    assert client.session.post.call_count == 5


def test_auth_failure_is_not_retried(client, sleeps):
    client.session.post.return_value = response(status=401)

    with pytest.raises(LinearUnavailableError):
        client.wait_until_reachable(attempts=5, initial_delay=2)

    assert sleeps == []
    assert client.session.post.call_count == 1


def test_graphql_errors_raise(client):
    client.session.post.return_value = response(body={"errors": [{"message": "Authentication required"}]})

    with pytest.raises(LinearAPIError, match="Authentication required"):
        client.get_viewer()


def test_rate_limit_honours_retry_after(client, sleeps):
    client.session.post.side_effect = [response(status=429, headers={"Retry-After": "3"}), response()]

    data = client._request(VIEWER_QUERY)

    assert data["viewer"]["id"] == "u1"
    assert sleeps == [3]


def test_request_file_upload(client):
    upload = {"uploadUrl": "https://upload", "assetUrl": "https://uploads.linear.app/a.png", "headers": []}
    client.session.post.return_value = response(body={"data": {"fileUpload": {"success": True, "uploadFile": upload}}})

    assert client.request_file_upload("image/png", "a.png", 10) == upload
    variables = client.session.post.call_args.kwargs["json"]["variables"]
    assert variables == {"contentType": "image/png", "filename": "a.png", "size": 10}


def test_request_file_upload_refused(client):
    client.session.post.return_value = response(body={"data": {"fileUpload": {"success": False}}})
    assert client.request_file_upload("image/png", "a.png", 10) is None
