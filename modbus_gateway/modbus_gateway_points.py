"""Modbus gateway point state store."""

import logging
from typing import Dict, List, Optional

from .modbus_gateway_types import QUALITY_ONLINE, PointType, PointUpdate, Sample
from .plugin_config_decode.modbus_gateway_config_model import ModbusEndpointConfig

logger = logging.getLogger(__name__)


class EndpointPointState:
    """Last-known values and change-detection flags of one endpoint's points."""

    def __init__(self, endpoint: ModbusEndpointConfig):
        self.endpoint = endpoint
        self.last_known_value = 0
        self.last_published_connected: Optional[bool] = None
        self.status_bits: Dict[int, bool] = {point.index: False for point in endpoint.status_bits}

    def __repr__(self) -> str:
        return (f"EndpointPointState(name='{self.endpoint.name}', value={self.last_known_value}, "
                f"connected={self.last_published_connected})")


class PointStateStore:
    """
    Decides what each endpoint publishes at the end of a poll cycle.

    Every cycle produces, for one endpoint:
      - the analog value (0 once the failure count reaches the threshold,
        otherwise the last value read successfully)
      - the connection-status binary point (True means the link failed) as a
        static update, plus a quality-flagged event update when it changed
      - every status bit with its last decoded value

    The first cycle only establishes the connection-status baseline.
    Each entry is written by the unit that polls its endpoint only.
    """

    def __init__(self):
        self._states: Dict[str, EndpointPointState] = {}

    def register(self, endpoint: ModbusEndpointConfig) -> EndpointPointState:
        if endpoint.name in self._states:
            raise ValueError(f"Endpoint '{endpoint.name}' is already registered")
        state = EndpointPointState(endpoint)
        self._states[endpoint.name] = state
        return state

    def get(self, name: str) -> EndpointPointState:
        return self._states[name]

    def update(self, name: str, sample: Sample, failure_count: int) -> List[PointUpdate]:
        """
        Fold one poll result into the endpoint state and return its updates.

        Args:
            name: Endpoint name
            sample: Result of the poll cycle
            failure_count: The supervisor's failure count after the cycle
        """
        state = self._states[name]
        endpoint = state.endpoint

        if sample.valid:
            state.last_known_value = sample.value
            state.status_bits.update(sample.status_bits)

        if failure_count >= endpoint.fault_threshold:
            analog_value = 0
        else:
            analog_value = state.last_known_value

        link_failed = not sample.connected
        updates = [
            PointUpdate(PointType.ANALOG_INPUT, endpoint.analog.index, analog_value),
            PointUpdate(PointType.BINARY_INPUT, endpoint.status_index, link_failed),
        ]

        if state.last_published_connected is not None and state.last_published_connected != sample.connected:
            logger.info(
                "[%s] Connection status changed: %s",
                endpoint.name, "connected" if sample.connected else "disconnected",
                extra={"endpoint": endpoint.name},
            )
            updates.append(PointUpdate(
                PointType.BINARY_INPUT, endpoint.status_index, link_failed,
                flags=QUALITY_ONLINE, event=True,
            ))
        state.last_published_connected = sample.connected

        for point in endpoint.status_bits:
            updates.append(PointUpdate(PointType.BINARY_INPUT, point.index, state.status_bits[point.index]))

        return updates

    def __contains__(self, name: str) -> bool:
        return name in self._states

    def __len__(self) -> int:
        return len(self._states)
