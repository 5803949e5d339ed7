"""GE Tracker profit-tracker REST client.

Creates, lists and deletes ledger transactions. No call raises: every
operation returns a result object whose ``failure`` field says whether the
request never completed (TRANSPORT) or came back in an unexpected shape
(PARSE). Callers decide whether to retry; this client never does.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import urlsplit

import aiohttp
import orjson

from .config import DEFAULT_BASE_URL
from .types import OfferState, RemoteFailure, RemoteTransaction, whole_number

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/x.getracker.v1+json"


# ============== Transport ==============

@dataclass(slots=True)
class HttpResponse:
    """Raw HTTP response."""
    status: int
    body: bytes = b""


class HttpTransport(Protocol):
    """
    Issues one HTTP request and returns the response.

    Implementations raise ``aiohttp.ClientError`` or ``asyncio.TimeoutError``
    when no response could be obtained.
    """

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes] = None,
    ) -> HttpResponse:
        ...

    async def close(self) -> None:
        ...


class AiohttpTransport:
    """HttpTransport over a lazily created aiohttp session."""

    def __init__(self, timeout_seconds: float = 300.0):
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes] = None,
    ) -> HttpResponse:
        session = await self._get_session()
        async with session.request(method, url, headers=headers, data=body) as resp:
            return HttpResponse(status=resp.status, body=await resp.read())

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()


# ============== Results ==============

@dataclass
class ActiveTransactionsResult:
    """Active ledger transactions grouped by status group."""
    success: bool
    groups: dict[str, list[RemoteTransaction]] = field(default_factory=dict)
    failure: Optional[RemoteFailure] = None
    error_msg: str = ""

    def transactions(self) -> list[RemoteTransaction]:
        """All transactions, in group then list order."""
        return [tx for group in self.groups.values() for tx in group]


@dataclass
class CreateResult:
    """Acknowledgment from transaction creation."""
    success: bool
    remote_id: str = ""
    failure: Optional[RemoteFailure] = None
    error_msg: str = ""


@dataclass
class DeleteResult:
    """Acknowledgment from transaction deletion."""
    remote_id: str
    success: bool
    failure: Optional[RemoteFailure] = None
    error_msg: str = ""
    body: Any = None  # Informational only


class _ParseError(Exception):
    pass


# ============== Parsing ==============

def _require(obj: Any, name: str) -> Any:
    if not isinstance(obj, dict) or obj.get(name) is None:
        raise _ParseError(f"missing field {name!r}")
    return obj[name]


def _as_int(value: Any, name: str) -> int:
    try:
        return whole_number(value)
    except ValueError:
        raise _ParseError(f"field {name!r} is not an integer: {value!r}") from None


def parse_transaction(entry: Any) -> RemoteTransaction:
    """Parse one ``{id, status, order: {...}}`` descriptor."""
    order = _require(entry, "order")
    sell_price = order.get("sellPrice") if isinstance(order, dict) else None
    return RemoteTransaction(
        remote_id=str(_require(entry, "id")),
        status=str(_require(entry, "status")),
        item_id=_as_int(_require(order, "itemId"), "itemId"),
        quantity=_as_int(_require(order, "qty"), "qty"),
        buy_price=_as_int(_require(order, "buyPrice"), "buyPrice"),
        sell_price=_as_int(sell_price, "sellPrice") if sell_price is not None else None,
    )


def parse_active_transactions(payload: Any) -> dict[str, list[RemoteTransaction]]:
    """Parse the ``/active-transactions`` response body."""
    data = _require(payload, "data")
    # An account with no active transactions gets an empty JSON array
    if data == []:
        return {}
    if not isinstance(data, dict):
        raise _ParseError("'data' is not an object")

    groups: dict[str, list[RemoteTransaction]] = {}
    for group, entries in data.items():
        if not isinstance(entries, list):
            raise _ParseError(f"group {group!r} is not a list")
        groups[group] = [parse_transaction(entry) for entry in entries]
    return groups


def extract_transaction_id(payload: Any, base_url: str = DEFAULT_BASE_URL) -> str:
    """
    Find the id of a newly created transaction.

    Prefers an explicit ``id`` field (top level or under ``data``). Otherwise
    strips the ``<base_url>/`` prefix from ``resource_url``; this depends on
    the ledger keeping its URL scheme, so a URL with any other prefix falls
    back to its last path segment.
    """
    if not isinstance(payload, dict):
        raise _ParseError("response is not an object")

    candidates = [payload]
    if isinstance(payload.get("data"), dict):
        candidates.append(payload["data"])

    for obj in candidates:
        value = obj.get("id")
        if value is not None and value != "":
            return str(value)

    prefix = base_url.rstrip("/") + "/"
    for obj in candidates:
        url = obj.get("resource_url")
        if not isinstance(url, str) or not url:
            continue
        if url.startswith(prefix):
            transaction_id = url[len(prefix):].strip("/")
        else:
            transaction_id = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
        if transaction_id:
            return transaction_id

    raise _ParseError("no 'id' or usable 'resource_url' in response")


# ============== Client ==============

class GeTrackerClient:
    """
    Client for the GE Tracker profit-tracker API.

    All requests carry the bearer token given at construction.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[HttpTransport] = None,
        timeout_seconds: float = 300.0,
    ):
        """
        Initialize the client.

        Args:
            api_token: Bearer token for the ledger API
            base_url: Profit-tracker base URL
            transport: HTTP transport (defaults to an aiohttp session)
            timeout_seconds: Total request timeout for the default transport
        """
        self.base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._transport = transport or AiohttpTransport(timeout_seconds=timeout_seconds)

    def _headers(self, json_body: bool = False) -> dict[str, str]:
        headers = {
            "Accept": ACCEPT_HEADER,
            "Authorization": f"Bearer {self._api_token}",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[bytes] = None,
    ) -> HttpResponse:
        return await self._transport.request(
            method, url, self._headers(json_body=body is not None), body
        )

    async def list_active_transactions(self) -> ActiveTransactionsResult:
        """Fetch every active transaction, grouped by status."""
        url = f"{self.base_url}/active-transactions"

        try:
            resp = await self._send("GET", url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Listing active transactions failed: {e!r}")
            return ActiveTransactionsResult(
                success=False, failure=RemoteFailure.TRANSPORT, error_msg=repr(e)
            )

        if resp.status >= 400:
            logger.error(f"Listing active transactions returned HTTP {resp.status}")
            return ActiveTransactionsResult(
                success=False, failure=RemoteFailure.TRANSPORT,
                error_msg=f"HTTP {resp.status}",
            )

        try:
            groups = parse_active_transactions(orjson.loads(resp.body))
        except (orjson.JSONDecodeError, _ParseError) as e:
            logger.error(f"Unexpected active transactions response: {e}")
            return ActiveTransactionsResult(
                success=False, failure=RemoteFailure.PARSE, error_msg=str(e)
            )

        count = sum(len(group) for group in groups.values())
        logger.info(f"Fetched {count} active transactions in {len(groups)} groups")
        return ActiveTransactionsResult(success=True, groups=groups)

    async def create_transaction(
        self,
        item_id: int,
        quantity: int,
        buy_price: int,
        sell_price: int = 0,
        status: Optional[OfferState] = None,
    ) -> CreateResult:
        """
        Record a new transaction on the ledger.

        ``status`` and ``sell_price`` are only sent when ``sell_price`` is
        non-zero; the ledger then treats the transaction as already selling
        unless another status is given.
        """
        payload: dict[str, Any] = {
            "item_id": item_id,
            "qty": quantity,
            "buy_price": buy_price,
        }
        if sell_price != 0:
            payload["status"] = (status or OfferState.SELLING).remote_status
            payload["sell_price"] = sell_price

        try:
            resp = await self._send("POST", self.base_url, orjson.dumps(payload))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Creating transaction for item {item_id} failed: {e!r}")
            return CreateResult(
                success=False, failure=RemoteFailure.TRANSPORT, error_msg=repr(e)
            )

        if resp.status >= 400:
            logger.error(f"Creating transaction for item {item_id} returned HTTP {resp.status}")
            return CreateResult(
                success=False, failure=RemoteFailure.TRANSPORT,
                error_msg=f"HTTP {resp.status}",
            )

        try:
            remote_id = extract_transaction_id(orjson.loads(resp.body), self.base_url)
        except (orjson.JSONDecodeError, _ParseError) as e:
            logger.error(f"Unexpected create response for item {item_id}: {e}")
            return CreateResult(
                success=False, failure=RemoteFailure.PARSE, error_msg=str(e)
            )

        logger.info(f"Transaction added. Transaction id: {remote_id}")
        return CreateResult(success=True, remote_id=remote_id)

    async def delete_transaction(self, remote_id: str) -> DeleteResult:
        """
        Remove a transaction from the ledger.

        A 404 counts as success: the transaction is already gone.
        """
        url = f"{self.base_url}/{remote_id}"

        try:
            resp = await self._send("DELETE", url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Deleting transaction {remote_id} failed: {e!r}")
            return DeleteResult(
                remote_id=remote_id, success=False,
                failure=RemoteFailure.TRANSPORT, error_msg=repr(e),
            )

        if resp.status >= 400 and resp.status != 404:
            logger.error(f"Deleting transaction {remote_id} returned HTTP {resp.status}")
            return DeleteResult(
                remote_id=remote_id, success=False,
                failure=RemoteFailure.TRANSPORT, error_msg=f"HTTP {resp.status}",
            )

        body: Any = None
        if resp.body:
            try:
                body = orjson.loads(resp.body)
            except orjson.JSONDecodeError:
                body = resp.body.decode(errors="replace")

        logger.info(f"Delete transaction {remote_id} response: HTTP {resp.status} {body}")
        return DeleteResult(remote_id=remote_id, success=True, body=body)

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()
