"""Local store of tracked offers, keyed by (item_id, state, quantity)."""

import logging
from typing import Optional

import orjson

from .config_store import ConfigStore
from .errors import RecordDecodeError
from .types import OfferRecord, OfferState
from .util import user_group

logger = logging.getLogger(__name__)


def offer_key(item_id: int, state: OfferState, quantity: int) -> str:
    """Store key for an offer, e.g. ``4151;BUYING;1``."""
    return f"{item_id};{state.value};{quantity}"


class LocalOfferStore:
    """
    Offer records for one player, persisted in a configuration store.

    All keys live in the player's group (username lower-cased), so two
    players on the same machine never see each other's offers.
    """

    def __init__(self, config_store: ConfigStore, username: str):
        self._config_store = config_store
        self._group = user_group(username)

    @property
    def group(self) -> str:
        return self._group

    def get(self, item_id: int, state: OfferState, quantity: int) -> Optional[OfferRecord]:
        """
        Load a record.

        Returns:
            The record, or None if nothing is stored or it cannot be decoded
        """
        key = offer_key(item_id, state, quantity)
        raw = self._config_store.get_configuration(self._group, key)
        if raw is None:
            return None

        try:
            return OfferRecord.from_dict(orjson.loads(raw))
        except orjson.JSONDecodeError as e:
            logger.warning(f"Stored offer {key} is not valid JSON: {e}")
        except RecordDecodeError as e:
            logger.warning(f"Stored offer {key} could not be decoded: {e}")
        return None

    def put(self, record: OfferRecord) -> None:
        """Write a record, replacing whatever was stored under its key."""
        key = offer_key(*record.key)
        self._config_store.set_configuration(
            self._group, key, orjson.dumps(record.to_dict()).decode()
        )

    def delete(self, item_id: int, state: OfferState, quantity: int) -> None:
        """Remove a record; absent keys are ignored."""
        self._config_store.unset_configuration(
            self._group, offer_key(item_id, state, quantity)
        )
