import pytest
import requests
import responses

from microcore.httpclient import ClientOptions, HttpClient, HttpStatusError, RequestOptions

URL = "http://service.example.com/api"


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


@pytest.fixture
def client():
    with HttpClient() as c:
        yield c


def test_get_decodes_json(rsps, client):
    rsps.add(responses.GET, URL, json={"ok": True, "items": [1, 2]})
    assert client.get(URL) == {"ok": True, "items": [1, 2]}
    assert rsps.calls[0].request.headers["Content-Type"] == "application/json"


def test_post_sends_json_body(rsps, client):
    rsps.add(responses.POST, URL, json={"id": 7})
    assert client.post(URL, {"a": 1}) == {"id": 7}
    assert rsps.calls[0].request.body == b'{"a":1}'


def test_get_sends_no_body(rsps, client):
    rsps.add(responses.GET, URL, json=[])
    client.get(URL)
    assert rsps.calls[0].request.body is None


def test_custom_content_type_and_headers(rsps, client):
    rsps.add(responses.POST, URL, json={})
    opts = RequestOptions(content_type="text/plain", header={"X-Trace": "abc"})
    client.post(URL, "hello", opts)
    sent = rsps.calls[0].request.headers
    assert sent["Content-Type"] == "text/plain"
    assert sent["X-Trace"] == "abc"


def test_retry_headers_are_not_sent(rsps, client):
    rsps.add(responses.GET, URL, json={})
    opts = RequestOptions(header={"RETRY-TIMES": "2", "Retry-Interval": "0"})
    client.get(URL, opts)
    sent = rsps.calls[0].request.headers
    assert "Retry-Times" not in sent
    assert "Retry-Interval" not in sent


def test_no_content_returns_none(rsps, client):
    rsps.add(responses.GET, URL, status=204)
    assert client.get(URL) is None


def test_error_status_raises_with_body(rsps, client):
    rsps.add(responses.GET, URL, json={"code": "missing"}, status=404)
    with pytest.raises(HttpStatusError) as info:
        client.get(URL)
    assert info.value.status_code == 404
    assert info.value.body == {"code": "missing"}
    assert str(info.value) == f"http code:404 url:{URL}"


def test_error_status_with_undecodable_body(rsps, client):
    rsps.add(responses.GET, URL, body="not json", status=500)
    with pytest.raises(HttpStatusError) as info:
        client.get(URL)
    assert info.value.body is None


def test_invalid_json_on_success_raises(rsps, client):
    rsps.add(responses.GET, URL, body="oops", status=200)
    with pytest.raises(ValueError):
        client.get(URL)


def test_response_handler_result_is_returned(rsps, client):
    rsps.add(responses.GET, URL, body="raw text", status=500)
    opts = RequestOptions(resp_handler=lambda resp: (resp.status_code, resp.text))
    assert client.get(URL, opts) == (500, "raw text")


def test_reset_by_peer_is_retried(rsps, client):
    rsps.add(responses.GET, URL, body=requests.ConnectionError("Connection reset by peer"))
    rsps.add(responses.GET, URL, json={"second": True})
    assert client.get(URL) == {"second": True}
    assert len(rsps.calls) == 2


def test_retries_are_bounded(rsps, client):
    rsps.add(responses.GET, URL, body=requests.ConnectionError("Connection reset by peer"))
    with pytest.raises(requests.ConnectionError):
        client.get(URL, RequestOptions(header={"RETRY-TIMES": "3"}))
    assert len(rsps.calls) == 4


def test_default_retry_is_single(rsps, client):
    rsps.add(responses.GET, URL, body=requests.ConnectionError("Connection reset by peer"))
    with pytest.raises(requests.ConnectionError):
        client.get(URL)
    assert len(rsps.calls) == 2


def test_other_errors_are_not_retried(rsps, client):
    rsps.add(responses.GET, URL, body=requests.ConnectionError("refused"))
    with pytest.raises(requests.ConnectionError):
        client.get(URL)
    assert len(rsps.calls) == 1


def test_client_keeps_options():
    opts = ClientOptions(max_connection_num=5, timeout=2.5, name="svc")
    with HttpClient(opts) as c:
        assert c.options.max_connection_num == 5
        assert c.options.name == "svc"