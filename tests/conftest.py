"""Shared test doubles for GE Tracker sync tests."""

from dataclasses import dataclass
from typing import Any, Optional, Union

import orjson
import pytest

from getracker_sync.config_store import MemoryConfigStore
from getracker_sync.ledger_client import GeTrackerClient, HttpResponse
from getracker_sync.offer_store import LocalOfferStore

BASE_URL = "https://www.ge-tracker.com/api/profit-tracker"


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Optional[bytes]

    def json(self) -> Any:
        return orjson.loads(self.body)


class FakeTransport:
    """Scripted HttpTransport: replies are consumed in order."""

    def __init__(self):
        self.requests: list[RecordedRequest] = []
        self._replies: list[Union[HttpResponse, BaseException]] = []
        self.closed = False

    def reply(self, status: int = 200, body: Any = None) -> "FakeTransport":
        if body is None:
            raw = b""
        elif isinstance(body, bytes):
            raw = body
        else:
            raw = orjson.dumps(body)
        self._replies.append(HttpResponse(status=status, body=raw))
        return self

    def fail(self, exc: BaseException) -> "FakeTransport":
        self._replies.append(exc)
        return self

    async def request(self, method, url, headers, body=None) -> HttpResponse:
        self.requests.append(RecordedRequest(method, url, dict(headers), body))
        if not self._replies:
            raise AssertionError(f"Unexpected request: {method} {url}")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True

    def calls(self, method: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    return GeTrackerClient(api_token="test-token", base_url=BASE_URL, transport=transport)


@pytest.fixture
def config_store():
    return MemoryConfigStore()


@pytest.fixture
def store(config_store):
    return LocalOfferStore(config_store, "Zezima")
