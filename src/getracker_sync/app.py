"""Main application for GE Tracker sync."""

import asyncio
import logging
import os
import signal
import stat
import sys
from contextlib import aclosing
from typing import AsyncIterator, Optional

import orjson

from .config import SyncConfig
from .config_store import ConfigStore, SQLiteConfigStore
from .ledger_client import GeTrackerClient, HttpTransport
from .offer_store import LocalOfferStore
from .reconciler import OfferReconciler
from .synchronizer import StartupSynchronizer
from .types import OfferChange
from .util import setup_logging

logger = logging.getLogger(__name__)


class GeTrackerSyncApp:
    """
    Wires the store, ledger client, synchronizer and reconciler together.

    Component graph:
    StartupSynchronizer (once) --+
                                 +-> LocalOfferStore -> ConfigStore
    submit() -> queue -> OfferReconciler -> GeTrackerClient
                                 +-> LocalOfferStore

    Offer changes are handled by a single consumer task, strictly in
    arrival order, and only after the startup sync has finished.
    """

    def __init__(
        self,
        config: SyncConfig,
        config_store: Optional[ConfigStore] = None,
        transport: Optional[HttpTransport] = None,
    ):
        """
        Initialize the application.

        Args:
            config: Application configuration
            config_store: Configuration store (defaults to SQLite at config.db_path)
            transport: HTTP transport for the ledger client (defaults to aiohttp)
        """
        self.config = config
        config.validate()

        self._owns_store = config_store is None
        self.config_store = config_store or SQLiteConfigStore(config.db_path)

        self.client = GeTrackerClient(
            api_token=config.api_token,
            base_url=config.base_url,
            transport=transport,
            timeout_seconds=config.timeout_seconds,
        )
        self.store = LocalOfferStore(self.config_store, config.username)
        self.synchronizer = StartupSynchronizer(self.client, self.store)
        self.reconciler = OfferReconciler(self.client, self.store)

        self._queue: asyncio.Queue[OfferChange] = asyncio.Queue()
        self._consumer_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._handled_count = 0

    @property
    def handled_count(self) -> int:
        """Offer changes processed so far."""
        return self._handled_count

    async def start(self) -> None:
        """Run the startup sync, then begin consuming offer changes."""
        logger.info(f"Starting GE Tracker sync for {self.config.username}")

        if isinstance(self.config_store, SQLiteConfigStore):
            self.config_store.init_schema()

        if self.config.sync_on_startup:
            await self.synchronizer.run()

        self._consumer_task = asyncio.create_task(self._consume())

    async def submit(self, offer: OfferChange) -> None:
        """Queue an offer change for reconciliation."""
        await self._queue.put(offer)

    async def drain(self) -> None:
        """Wait until every queued offer change has been handled."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            offer = await self._queue.get()
            try:
                action = await self.reconciler.on_offer_changed(offer)
                logger.debug(f"{offer.state.name} item {offer.item_id}: {action.name}")
            except Exception as e:
                logger.exception(f"Failed to reconcile offer for item {offer.item_id}: {e}")
            finally:
                self._handled_count += 1
                self._queue.task_done()

    async def stop(self) -> None:
        """Stop consuming and release resources."""
        logger.info("Stopping GE Tracker sync")

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        await self.client.close()

        if self._owns_store and isinstance(self.config_store, SQLiteConfigStore):
            self.config_store.close()

    async def _input_lines(self, stream) -> AsyncIterator[bytes]:
        """
        Yield raw input lines until end of input.

        Pipes, ttys and sockets are read through the event loop, so no
        thread is left blocked on them at shutdown. Regular files and
        in-memory streams never block and are read in the executor.
        """
        loop = asyncio.get_running_loop()

        if _is_pollable(stream):
            reader = asyncio.StreamReader()
            transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), stream
            )
            try:
                while True:
                    try:
                        line = await reader.readline()
                    except ValueError as e:
                        logger.warning(f"Skipping oversized input line: {e}")
                        continue
                    if not line:
                        return
                    yield line
            finally:
                transport.close()

        source = getattr(stream, "buffer", stream)
        while True:
            try:
                line = await loop.run_in_executor(None, source.readline)
            except UnicodeDecodeError as e:
                logger.warning(f"Skipping undecodable input line: {e}")
                continue
            if not line:
                return
            yield line

    async def read_events(self, stream=None) -> None:
        """
        Feed offer changes from JSON lines until end of input.

        Lines that cannot be decoded are logged and skipped.
        """
        stream = stream or sys.stdin

        async with aclosing(self._input_lines(stream)) as lines:
            async for line in lines:
                if self._shutdown_event.is_set():
                    break
                line = line.strip()
                if not line:
                    continue

                try:
                    offer = OfferChange.from_dict(orjson.loads(line))
                except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed offer change {line!r}: {e}")
                    continue

                await self.submit(offer)

        await self.drain()
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        """Ask run() to stop."""
        self._shutdown_event.set()

    async def run(self, stream=None) -> None:
        """Run until end of input or a shutdown signal."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(self._handle_signal())
            )

        tasks: list[asyncio.Task] = []
        try:
            await self.start()
            reader = asyncio.create_task(self.read_events(stream))
            tasks = [reader, asyncio.create_task(self._shutdown_event.wait())]

            # A reader that exits for any reason ends the run too
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            if reader.done() and reader.exception():
                logger.error(f"Event reader stopped: {reader.exception()!r}")
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
            await self.stop()

    async def _handle_signal(self) -> None:
        """Handle shutdown signal."""
        logger.info("Received shutdown signal")
        self.request_shutdown()


def _is_pollable(stream) -> bool:
    """True for streams the event loop can watch (pipes, sockets, ttys)."""
    try:
        mode = os.fstat(stream.fileno()).st_mode
    except (AttributeError, OSError, ValueError):
        return False
    if stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode):
        return True
    # /dev/null is a character device too, but cannot be polled
    return stat.S_ISCHR(mode) and stream.isatty()


def main() -> None:
    """Entry point for the application."""
    config = SyncConfig.from_env()

    setup_logging(config.log_level)

    logger.info(f"Starting with config: base_url={config.base_url}")

    app = GeTrackerSyncApp(config)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
