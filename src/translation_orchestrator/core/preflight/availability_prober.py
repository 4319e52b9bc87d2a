"""
Availability Prober - Confirms an uploaded object is visible before a job
is submitted against it. Object stores may only offer eventual
read-after-write visibility.
"""

import asyncio
import logging
from collections import OrderedDict

from ..exceptions import StorageError
from ..storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


class AvailabilityProber:
    """
    Probes the object store with exponential backoff.

    Remembers the most recent `max_remembered` confirmed keys so a key seen
    once keeps reading as visible for its owner.
    """

    def __init__(self, blob_store: BlobStore, max_delay: float = 8.0, sleep=asyncio.sleep,
                 max_remembered: int = 32):
        self.blob_store = blob_store
        self.max_delay = max_delay
        self.max_remembered = max_remembered
        self._sleep = sleep
        self._confirmed: "OrderedDict[str, None]" = OrderedDict()

    async def wait_until_visible(self, key: str, max_attempts: int = 5,
                                 base_delay: float = 0.5) -> bool:
        """
        Wait until `key` is visible in the object store.

        Args:
            key: Object key just written by the upload transport
            max_attempts: Number of existence checks before giving up
            base_delay: Delay before the second attempt, doubled after each miss

        Returns:
            True once the object was seen, False after exhausting all attempts
        """
        if key in self._confirmed:
            self._confirmed.move_to_end(key)
            return True

        for attempt in range(1, max_attempts + 1):
            try:
                visible = await self.blob_store.head(key)
            except StorageError as e:
                logger.warning(f"Probe {attempt}/{max_attempts} for {key} failed: {e.message}")
                visible = False

            if visible:
                logger.info(f"Object {key} visible after {attempt} attempt(s)")
                self._remember(key)
                return True

            if attempt < max_attempts:
                delay = min(base_delay * (2 ** (attempt - 1)), self.max_delay)
                logger.debug(f"Object {key} not visible yet, retrying in {delay:.2f}s")
                await self._sleep(delay)

        logger.warning(f"Object {key} not visible after {max_attempts} attempts")
        return False

    def _remember(self, key: str):
        self._confirmed[key] = None
        self._confirmed.move_to_end(key)
        while len(self._confirmed) > self.max_remembered:
            self._confirmed.popitem(last=False)
