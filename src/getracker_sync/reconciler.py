"""Offer reconciler: maps offer changes to ledger calls and local records.

Transition table, first match wins:

    EMPTY                                  -> ignore
    BUYING, no record                      -> create on ledger, store record
    CANCELLED_BUY, nothing sold, no record -> ignore
    CANCELLED_BUY, nothing sold, record    -> delete on ledger, drop record
    anything else                          -> ignore

Records are keyed by the state they were created in, so a cancelled buy is
looked up under BUYING. Selling, bought and partially filled offers are
never pushed to the ledger from here.
"""

import logging
from typing import Optional

from .ledger_client import GeTrackerClient
from .offer_store import LocalOfferStore
from .types import (
    GrandExchangeOfferState, OfferChange, OfferRecord, OfferState, ReconcileAction,
)

logger = logging.getLogger(__name__)


# Slot state -> persisted state the matching record was created under
_TRACKED_STATE = {
    GrandExchangeOfferState.BUYING: OfferState.BUYING,
    GrandExchangeOfferState.CANCELLED_BUY: OfferState.BUYING,
}


def tracked_state(state: GrandExchangeOfferState) -> Optional[OfferState]:
    """Persisted state used to look up the record for a slot state."""
    return _TRACKED_STATE.get(state)


class OfferReconciler:
    """
    Applies offer changes to the ledger and the local offer store.

    Not safe for concurrent use: changes must be delivered one at a time,
    otherwise two BUYING notifications for the same key can both create.
    On any ledger failure local state is left untouched.
    """

    def __init__(self, client: GeTrackerClient, store: LocalOfferStore):
        self.client = client
        self.store = store

    def find_record(self, offer: OfferChange) -> Optional[OfferRecord]:
        """Local record matching an offer, if one is tracked."""
        state = tracked_state(offer.state)
        if state is None:
            return None
        return self.store.get(offer.item_id, state, offer.total_quantity)

    async def on_offer_changed(self, offer: OfferChange) -> ReconcileAction:
        """
        Reconcile one offer change.

        Args:
            offer: Current full state of the trade slot

        Returns:
            What was done
        """
        if offer.state == GrandExchangeOfferState.EMPTY:
            logger.debug("Offer slot is empty, nothing to submit")
            return ReconcileAction.IGNORED

        if offer.state == GrandExchangeOfferState.BUYING:
            if self.find_record(offer) is not None:
                logger.debug(
                    f"Buy offer for item {offer.item_id} x{offer.total_quantity} already tracked"
                )
                return ReconcileAction.ALREADY_TRACKED
            return await self._create(offer)

        if offer.state == GrandExchangeOfferState.CANCELLED_BUY and offer.quantity_sold == 0:
            record = self.find_record(offer)
            if record is None:
                logger.info(
                    f"Cancelled buy offer for item {offer.item_id} was not tracked"
                )
                return ReconcileAction.NOT_TRACKED
            return await self._delete(record)

        logger.debug(f"No ledger update for {offer.state.name} offer on item {offer.item_id}")
        return ReconcileAction.IGNORED

    async def _create(self, offer: OfferChange) -> ReconcileAction:
        record = OfferRecord.from_offer(offer)

        result = await self.client.create_transaction(
            item_id=record.item_id,
            quantity=record.quantity,
            buy_price=record.buy_price,
            sell_price=record.sell_price,
            status=record.state,
        )
        if not result.success:
            logger.error(
                f"Buy offer for item {record.item_id} not tracked "
                f"({result.failure.name}): {result.error_msg}"
            )
            return ReconcileAction.FAILED

        record.remote_id = result.remote_id
        self.store.put(record)
        logger.info(
            f"Tracking buy offer for item {record.item_id} x{record.quantity} "
            f"as transaction {record.remote_id}"
        )
        return ReconcileAction.CREATED

    async def _delete(self, record: OfferRecord) -> ReconcileAction:
        logger.info(f"Trying to delete offer with transaction id {record.remote_id}")

        result = await self.client.delete_transaction(record.remote_id)
        if not result.success:
            logger.error(
                f"Transaction {record.remote_id} not deleted, keeping local record "
                f"({result.failure.name}): {result.error_msg}"
            )
            return ReconcileAction.FAILED

        self.store.delete(*record.key)
        return ReconcileAction.DELETED
