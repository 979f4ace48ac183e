"""Modbus gateway update publisher."""

import logging
import threading
from typing import Iterable, List, Tuple

from .modbus_gateway_outstation import Outstation, OutstationError
from .modbus_gateway_types import PointUpdate

logger = logging.getLogger(__name__)


class UpdateBuilder:
    """Collects the updates of one cycle into an immutable batch."""

    def __init__(self):
        self._updates: List[PointUpdate] = []

    def update(self, point_update: PointUpdate) -> 'UpdateBuilder':
        self._updates.append(point_update)
        return self

    def extend(self, point_updates: Iterable[PointUpdate]) -> 'UpdateBuilder':
        self._updates.extend(point_updates)
        return self

    def build(self) -> Tuple[PointUpdate, ...]:
        return tuple(self._updates)

    def __len__(self) -> int:
        return len(self._updates)


class UpdatePublisher:
    """
    Applies batches to the outstation, one ``apply`` call per batch.

    Calls are serialised so concurrent endpoint units can share one outstation.
    """

    def __init__(self, outstation: Outstation):
        self.outstation = outstation
        self._lock = threading.Lock()
        self.batches_applied = 0

    def publish(self, batch: Tuple[PointUpdate, ...]) -> bool:
        """
        Apply one batch.

        Returns:
            True if the batch was applied or was empty, False if the outstation rejected it
        """
        if not batch:
            return True
        with self._lock:
            try:
                self.outstation.apply(batch)
            except OutstationError as e:
                logger.error("(FAIL) Outstation rejected batch of %d update(s): %s", len(batch), e)
                return False
            self.batches_applied += 1
        return True
