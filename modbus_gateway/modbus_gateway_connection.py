"""Modbus gateway connection supervision."""

import logging
import threading
from typing import Any, Dict, Optional

from .modbus_gateway_transport import ModbusTransport
from .modbus_gateway_types import ConnectionState, TransportFailure
from .plugin_config_decode.modbus_gateway_config_model import ModbusEndpointConfig

logger = logging.getLogger(__name__)


class ConnectionSupervisor:  # pylint: disable=too-many-instance-attributes
    """
    Owns one endpoint's transport, connection state and failure accounting.

    Unlike a retrying connection manager, ``ensure_connected()`` makes exactly
    one connect attempt: the retry cadence is the caller's poll period.

    States:
        CONNECTED     transport open and usable
        DISCONNECTED  no usable transport, failure count below the threshold
        FAULTED       no usable transport, failure count at or above the threshold

    ``lock`` serialises every transport access for this endpoint; the poller
    and the command dispatcher both hold it around their operations.
    """

    def __init__(self, endpoint: ModbusEndpointConfig, transport: Optional[ModbusTransport] = None):
        self.endpoint = endpoint
        self.name = endpoint.name
        self.transport = transport or ModbusTransport(endpoint.host, endpoint.port, name=endpoint.name)
        self.fault_threshold = endpoint.fault_threshold
        self.per_cycle = endpoint.connection_mode == "per_cycle"

        self.lock = threading.Lock()
        self.state = ConnectionState.DISCONNECTED
        self.failure_count = 0
        self.last_failure: Optional[TransportFailure] = None

        self._log_extra = {"endpoint": self.name}

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def faulted(self) -> bool:
        return self.failure_count >= self.fault_threshold

    def ensure_connected(self) -> bool:
        """
        Make sure the endpoint is connected, trying once if it is not.

        The stale handle (if any) is closed before the new attempt. The
        transport is configured with the endpoint's unit id and timeouts, then
        connected; all three steps must succeed.

        Returns:
            True if the endpoint is connected
        """
        if self.connected:
            return True

        self.transport.disconnect()

        if not (self.transport.set_unit_id(self.endpoint.unit_id)
                and self.transport.set_timeouts(self.endpoint.response_timeout_s,
                                                self.endpoint.byte_timeout_s)
                and self.transport.connect()):
            self.last_failure = self.transport.last_failure
            self.transport.disconnect()
            logger.error(
                "(FAIL) [%s] Connection to %s:%s failed: %s",
                self.name, self.endpoint.host, self.endpoint.port, self.last_failure,
                extra=self._log_extra,
            )
            return False

        self._set_state(ConnectionState.CONNECTED)
        logger.info(
            "(PASS) [%s] Connected to %s:%s (unit %s)",
            self.name, self.endpoint.host, self.endpoint.port, self.endpoint.unit_id,
            extra=self._log_extra,
        )
        return True

    def mark_disconnected(self, failure: Optional[TransportFailure] = None) -> None:
        """
        Mark the connection as broken after a read or write failure.

        The handle is closed now so the next ``ensure_connected()`` starts
        from a fresh socket.
        """
        if failure is not None:
            self.last_failure = failure
        self.transport.disconnect()
        if self.connected:
            logger.warning(
                "[%s] Connection marked as disconnected, will reconnect on next cycle",
                self.name, extra=self._log_extra,
            )
        self._set_state(self._offline_state())

    def record_failure(self, failure: Optional[TransportFailure] = None) -> int:
        """Count one failed poll cycle. Returns the new failure count."""
        if failure is not None:
            self.last_failure = failure
        self.failure_count += 1
        if self.failure_count == self.fault_threshold:
            logger.warning(
                "[%s] %d consecutive failed cycles, publishing fallback value",
                self.name, self.failure_count, extra=self._log_extra,
            )
        if not self.connected:
            self._set_state(self._offline_state())
        return self.failure_count

    def record_success(self) -> None:
        """A fully successful poll cycle clears the failure count."""
        if self.failure_count:
            logger.info(
                "[%s] Recovered after %d failed cycle(s)",
                self.name, self.failure_count, extra=self._log_extra,
            )
        self.failure_count = 0
        self.last_failure = None

    def end_cycle(self) -> None:
        """Close the transport at the end of a cycle in per-cycle connection mode."""
        if self.per_cycle and self.connected:
            self.transport.disconnect()
            self._set_state(self._offline_state())

    def shutdown(self) -> None:
        """Close the transport for good."""
        with self.lock:
            self.transport.disconnect()
            self._set_state(self._offline_state())

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "faulted": self.faulted,
            "last_failure": str(self.last_failure) if self.last_failure else None,
        }

    def _offline_state(self) -> ConnectionState:
        return ConnectionState.FAULTED if self.faulted else ConnectionState.DISCONNECTED

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is self.state:
            return
        logger.debug(
            "[%s] %s -> %s", self.name, self.state.value, new_state.value,
            extra=self._log_extra,
        )
        self.state = new_state

    def __repr__(self) -> str:
        return (f"ConnectionSupervisor(name='{self.name}', state={self.state.value}, "
                f"failure_count={self.failure_count})")
