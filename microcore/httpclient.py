"""JSON-over-HTTP client with connection pooling and reset-by-peer retries."""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from microcore.utils import must_string

_RETRY_TIMES = "RETRY-TIMES"
_RETRY_INTERVAL = "RETRY-INTERVAL"


class HttpStatusError(Exception):
    """Raised when a response has a status other than 200 or 204.

    ``body`` holds the decoded JSON body when it could be decoded, else ``None``.
    """

    def __init__(self, status_code: int, url: str, body: Any = None) -> None:
        super().__init__(f"http code:{status_code} url:{url}")
        self.status_code = status_code
        self.url = url
        self.body = body


@dataclass
class ClientOptions:
    """Pool and timeout settings of a client; durations are in seconds."""

    max_connection_num: int = 100
    timeout: float = 60.0
    dial_timeout: float = 30.0
    idle_conn_timeout: float = 90.0
    keep_alive: float = 30.0
    tls_handshake_timeout: float = 10.0
    name: str = ""


@dataclass
class RequestOptions:
    """Per-request settings.

    The headers ``RETRY-TIMES`` and ``RETRY-INTERVAL`` (seconds) control retries
    and are not sent. ``resp_handler`` receives the raw response and its result
    is returned instead of the decoded body.
    """

    content_type: str = "application/json"
    header: Mapping[str, str] = field(default_factory=dict)
    resp_handler: Callable[[requests.Response], Any] | None = None


def _atoi(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def _decode(content: bytes) -> Any:
    return json.loads(content)


class HttpClient:
    """Sends JSON requests and decodes JSON replies."""

    def __init__(self, options: ClientOptions | None = None) -> None:
        self.options = options or ClientOptions()
        self._session = requests.Session()
        size = max(self.options.max_connection_num, 1)
        adapter = HTTPAdapter(pool_connections=size, pool_maxsize=size)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def get(self, url: str, options: RequestOptions | None = None) -> Any:
        """Send a GET request and return the decoded reply."""
        return self._handle("GET", url, None, options)

    def post(self, url: str, body: Any = None, options: RequestOptions | None = None) -> Any:
        """Send ``body`` as JSON (or raw, if it is file-like) and return the decoded reply."""
        return self._handle("POST", url, body, options)

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _handle(
        self, method: str, url: str, body: Any, options: RequestOptions | None
    ) -> Any:
        opts = options or RequestOptions()
        headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(opts.header)
        headers["Content-Type"] = opts.content_type

        retry_times, retry_interval = 1, 0
        raw_times = headers.get(_RETRY_TIMES, "")
        if raw_times:
            retry_times = _atoi(raw_times)
            del headers[_RETRY_TIMES]
        raw_interval = headers.get(_RETRY_INTERVAL, "")
        if raw_interval:
            retry_interval = _atoi(raw_interval)
            del headers[_RETRY_INTERVAL]

        resp = self._do_with_retry(method, url, body, headers, retry_times, retry_interval)

        if opts.resp_handler is not None:
            return opts.resp_handler(resp)

        if resp.status_code == 204:
            resp.close()
            return None

        try:
            content = resp.content
        finally:
            resp.close()

        if resp.status_code != 200:
            try:
                decoded = _decode(content)
            except ValueError:
                decoded = None
            raise HttpStatusError(resp.status_code, url, decoded)

        return _decode(content)

    def _do_with_retry(
        self,
        method: str,
        url: str,
        body: Any,
        headers: CaseInsensitiveDict[str],
        retry_times: int,
        retry_interval: int,
    ) -> requests.Response:
        while True:
            try:
                return self._send(method, url, body, headers)
            except (requests.RequestException, OSError) as err:
                if "reset by peer" in str(err) and retry_times > 0:
                    retry_times -= 1
                    if retry_interval:
                        time.sleep(retry_interval)
                    continue
                raise

    def _send(
        self, method: str, url: str, body: Any, headers: CaseInsensitiveDict[str]
    ) -> requests.Response:
        data = self._body(body) if method == "POST" else None
        return self._session.request(
            method,
            url,
            data=data,
            headers=headers,
            timeout=(self.options.dial_timeout, self.options.timeout),
        )

    @staticmethod
    def _body(body: Any) -> Any:
        if hasattr(body, "read"):
            return body
        return must_string(body).encode("utf-8")