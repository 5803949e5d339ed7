"""Startup sync of active ledger transactions into the local offer store."""

import logging
from typing import Optional

from .ledger_client import GeTrackerClient
from .offer_store import LocalOfferStore
from .types import OfferRecord, OfferState, RemoteTransaction

logger = logging.getLogger(__name__)


def record_from_remote(tx: RemoteTransaction) -> Optional[OfferRecord]:
    """
    Build a local record from a ledger transaction.

    Returns None for statuses other than buying, selling and bought.
    """
    state = OfferState.from_remote_status(tx.status)
    if state is None:
        return None

    record = OfferRecord(
        item_id=tx.item_id,
        quantity=tx.quantity,
        state=state,
        buy_price=tx.buy_price,
        remote_id=tx.remote_id,
    )
    if state == OfferState.SELLING:
        record.sell_price = tx.sell_price or 0
    return record


class StartupSynchronizer:
    """
    Overwrites local records with the ledger's active transactions.

    Runs once at boot. Every recognised transaction is written
    unconditionally; nothing is merged and nothing is deleted.
    """

    def __init__(self, client: GeTrackerClient, store: LocalOfferStore):
        self.client = client
        self.store = store

    async def run(self) -> int:
        """
        Pull active transactions and store them.

        Returns:
            Number of records written
        """
        logger.info("Updating active offers")
        result = await self.client.list_active_transactions()
        if not result.success:
            logger.error(
                f"Active offers not updated ({result.failure.name}): {result.error_msg}"
            )
            return 0

        written = 0
        for transactions in result.groups.values():
            for tx in transactions:
                record = record_from_remote(tx)
                if record is None:
                    logger.debug(f"Skipping transaction {tx.remote_id} with status {tx.status!r}")
                    continue
                self.store.put(record)
                written += 1

        logger.info(f"Active transactions have been updated: {written} records")
        return written
