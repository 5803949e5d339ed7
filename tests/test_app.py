"""Tests for GeTrackerSyncApp wiring and the stdin event feed."""

import asyncio
import io
import os

import pytest

from getracker_sync.app import GeTrackerSyncApp
from getracker_sync.config import SyncConfig
from getracker_sync.config_store import MemoryConfigStore, SQLiteConfigStore
from getracker_sync.errors import ConfigurationError
from getracker_sync.types import GrandExchangeOfferState, OfferChange, OfferRecord, OfferState

BASE_URL = "https://www.ge-tracker.com/api/profit-tracker"


def make_config(**overrides) -> SyncConfig:
    fields = dict(api_token="test-token", username="Zezima", base_url=BASE_URL)
    fields.update(overrides)
    return SyncConfig(**fields)


def make_pipe(data: bytes = b"", close_writer: bool = True):
    """Return a binary reader over an OS pipe holding ``data``, and the write fd."""
    read_fd, write_fd = os.pipe()
    os.write(write_fd, data)
    if close_writer:
        os.close(write_fd)
        write_fd = None
    return open(read_fd, "rb", buffering=0), write_fd


class UndecodableTextStream:
    """Text stream that raises a decode error in place of each None line."""

    def __init__(self, lines):
        self._lines = list(lines)

    def readline(self):
        if not self._lines:
            return ""
        line = self._lines.pop(0)
        if line is None:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return line


class BrokenStream:
    def readline(self):
        raise OSError("input closed")


EMPTY_LINE = b'{"state": "EMPTY", "item_id": 0, "total_quantity": 0}\n'


def test_invalid_config_rejected(transport):
    with pytest.raises(ConfigurationError):
        GeTrackerSyncApp(make_config(api_token=""), MemoryConfigStore(), transport)


@pytest.mark.asyncio
async def test_startup_sync_runs_before_events(transport):
    config_store = MemoryConfigStore()
    transport.reply(200, {"data": {"buying": [
        {"id": "synced", "status": "buying",
         "order": {"itemId": 4151, "qty": 1, "buyPrice": 10}},
    ]}})
    app = GeTrackerSyncApp(make_config(), config_store, transport)

    await app.start()
    try:
        await app.submit(OfferChange(GrandExchangeOfferState.BUYING, 4151, 1, price=10))
        await app.drain()
    finally:
        await app.stop()

    # The synced record already covers the offer, so no create was issued
    assert [r.method for r in transport.requests] == ["GET"]
    assert app.store.get(4151, OfferState.BUYING, 1).remote_id == "synced"
    assert app.handled_count == 1
    assert transport.closed


@pytest.mark.asyncio
async def test_sync_can_be_disabled(transport):
    app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

    await app.start()
    await app.stop()

    assert transport.requests == []


@pytest.mark.asyncio
async def test_events_from_json_lines(transport):
    transport.reply(201, {"resource_url": f"{BASE_URL}/tx-1"})
    transport.reply(200, {"message": "deleted"})
    lines = "\n".join([
        '{"state": "EMPTY", "item_id": 0, "total_quantity": 0}',
        '{"state": "BUYING", "item_id": 561, "total_quantity": 100, "price": 180}',
        "not json",
        '{"state": "BUYING", "item_id": 561}',
        "",
        '{"state": "BUYING", "item_id": 561, "total_quantity": 100, "price": 180}',
        '{"state": "CANCELLED_BUY", "item_id": 561, "total_quantity": 100, '
        '"quantity_sold": 0, "price": 180}',
    ]) + "\n"
    app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

    await app.start()
    try:
        await app.read_events(io.StringIO(lines))
    finally:
        await app.stop()

    assert [r.method for r in transport.requests] == ["POST", "DELETE"]
    assert transport.requests[1].url == f"{BASE_URL}/tx-1"
    assert app.store.get(561, OfferState.BUYING, 100) is None
    assert app.handled_count == 4


@pytest.mark.asyncio
async def test_default_store_is_sqlite(tmp_path, transport):
    db_path = tmp_path / "ge" / "config.db"
    app = GeTrackerSyncApp(
        make_config(sync_on_startup=False, db_path=str(db_path)), transport=transport,
    )
    assert isinstance(app.config_store, SQLiteConfigStore)

    await app.start()
    app.store.put(OfferRecord(4151, 1, OfferState.BUYING, remote_id="x"))
    await app.stop()

    reopened = SQLiteConfigStore(str(db_path))
    try:
        assert reopened.keys("getracker.zezima") == ["4151;BUYING;1"]
    finally:
        reopened.close()


class TestUndecodableInput:
    """Bytes that are not UTF-8 are skipped, never fatal."""

    @pytest.mark.asyncio
    async def test_invalid_utf8_from_pipe(self, transport):
        stream, _ = make_pipe(b"\xff\xfe garbage\n" + EMPTY_LINE)
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        await app.start()
        try:
            await app.read_events(stream)
        finally:
            await app.stop()
            stream.close()

        assert app.handled_count == 1

    @pytest.mark.asyncio
    async def test_invalid_utf8_from_text_wrapper(self, transport):
        stream = io.TextIOWrapper(io.BytesIO(b"\xc3\x28\n" + EMPTY_LINE), encoding="utf-8")
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        await app.start()
        try:
            await app.read_events(stream)
        finally:
            await app.stop()

        assert app.handled_count == 1

    @pytest.mark.asyncio
    async def test_decode_error_from_text_stream(self, transport):
        stream = UndecodableTextStream([None, EMPTY_LINE.decode(), None, EMPTY_LINE.decode()])
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        await app.start()
        try:
            await app.read_events(stream)
        finally:
            await app.stop()

        assert app.handled_count == 2


class TestRun:
    """run() returns on end of input, shutdown, or a failed reader."""

    @pytest.mark.asyncio
    async def test_end_of_input(self, transport):
        transport.reply(201, {"resource_url": f"{BASE_URL}/tx-1"})
        stream, _ = make_pipe(
            b'{"state": "BUYING", "item_id": 561, "total_quantity": 100, "price": 180}\n'
        )
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        try:
            await asyncio.wait_for(app.run(stream), timeout=5.0)
        finally:
            stream.close()

        assert [r.method for r in transport.requests] == ["POST"]
        assert app.handled_count == 1
        assert transport.closed

    @pytest.mark.asyncio
    async def test_shutdown_while_input_idle(self, transport):
        stream, write_fd = make_pipe(EMPTY_LINE, close_writer=False)
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        try:
            task = asyncio.create_task(app.run(stream))
            for _ in range(100):
                if app.handled_count:
                    break
                await asyncio.sleep(0.01)

            app.request_shutdown()
            await asyncio.wait_for(task, timeout=2.0)
        finally:
            os.close(write_fd)
            stream.close()

        assert app.handled_count == 1
        assert transport.closed

    @pytest.mark.asyncio
    async def test_failed_reader_does_not_hang(self, transport):
        app = GeTrackerSyncApp(make_config(sync_on_startup=False), MemoryConfigStore(), transport)

        await asyncio.wait_for(app.run(BrokenStream()), timeout=2.0)

        assert transport.closed
