"""Modbus gateway device poller."""

import logging
from typing import Dict, List, Optional

from .modbus_gateway_connection import ConnectionSupervisor
from .modbus_gateway_types import FailureKind, Sample, TransportFailure
from .modbus_gateway_utils import decode_boolean, decode_registers

logger = logging.getLogger(__name__)


class DevicePoller:
    """
    Runs one read cycle against one endpoint.

    Reads are issued in a fixed order: the analog register(s) first, then
    every status bit in configured order. The first failure aborts the cycle
    so a torn sample is never produced.
    """

    def __init__(self, supervisor: ConnectionSupervisor):
        self.supervisor = supervisor
        self.endpoint = supervisor.endpoint
        self._log_extra = {"endpoint": self.endpoint.name}

    def poll(self) -> Sample:
        """
        Execute one poll cycle under the endpoint lock.

        Returns:
            A valid Sample with the decoded values, or an invalid one carrying
            the failure. Connectivity is captured before a per-cycle close.
        """
        supervisor = self.supervisor
        with supervisor.lock:
            try:
                sample = self._poll_locked()
                sample.connected = supervisor.connected
            finally:
                supervisor.end_cycle()
        return sample

    def _poll_locked(self) -> Sample:
        supervisor = self.supervisor

        if not supervisor.ensure_connected():
            supervisor.record_failure(supervisor.last_failure)
            return Sample(valid=False, failure=supervisor.last_failure)

        value = self._read_analog()
        status_bits = self._read_status_bits() if value is not None else None

        if value is None or status_bits is None:
            failure = supervisor.transport.last_failure or TransportFailure(
                FailureKind.READ, "read returned no data"
            )
            supervisor.mark_disconnected(failure)
            count = supervisor.record_failure(failure)
            logger.error(
                "(FAIL) [%s] Read cycle failed (%d consecutive): %s",
                self.endpoint.name, count, failure, extra=self._log_extra,
            )
            return Sample(valid=False, failure=failure)

        supervisor.record_success()
        logger.debug(
            "[%s] Read value=%s status_bits=%s",
            self.endpoint.name, value, status_bits, extra=self._log_extra,
        )
        return Sample(valid=True, value=value, status_bits=dict(status_bits))

    def _read_analog(self) -> Optional[int]:
        analog = self.endpoint.analog
        transport = self.supervisor.transport
        count = analog.register_count

        if analog.fc == 4:
            registers = transport.read_input_registers(analog.address, count)
        else:
            registers = transport.read_holding_registers(analog.address, count)

        if registers is None:
            return None
        if len(registers) < count:
            transport.last_failure = TransportFailure(
                FailureKind.READ, f"expected {count} register(s), got {len(registers)}"
            )
            return None
        return decode_registers(registers, analog.width, analog.word_order)

    def _read_status_bits(self) -> Optional[Dict[int, bool]]:
        transport = self.supervisor.transport
        status_bits: Dict[int, bool] = {}

        for point in self.endpoint.status_bits:
            if point.fc == 2:
                bits: Optional[List[bool]] = transport.read_discrete_inputs(point.address, 1)
            else:
                bits = transport.read_coils(point.address, 1)

            if not bits:
                if bits is not None:
                    transport.last_failure = TransportFailure(
                        FailureKind.READ, f"no bit returned for {point.name}"
                    )
                return None
            status_bits[point.index] = decode_boolean(bits[0], invert=point.active_low)

        return status_bits
