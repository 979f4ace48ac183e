"""Modbus gateway command dispatching and value interlocks."""

import logging
from typing import Dict, List, Optional

from .modbus_gateway_connection import ConnectionSupervisor
from .modbus_gateway_outstation import ICommandHandler
from .modbus_gateway_types import CommandStatus, FailureKind, OperateType, Sample, TransportFailure
from .plugin_config_decode.modbus_gateway_config_model import CommandPointConfig, ModbusEndpointConfig

logger = logging.getLogger(__name__)


class CommandBinding:
    """A control index bound to one endpoint's coil."""

    def __init__(self, supervisor: ConnectionSupervisor, command: CommandPointConfig):
        self.supervisor = supervisor
        self.command = command

    @property
    def index(self) -> int:
        return self.command.index

    def __repr__(self) -> str:
        return (f"CommandBinding(index={self.command.index}, endpoint='{self.supervisor.name}', "
                f"address={self.command.address}, value={self.command.value})")


class CommandDispatcher(ICommandHandler):
    """
    Turns DirectOperate requests into single coil writes.

    Each binding only reaches its own endpoint's supervisor. The write and
    the following flush run under the endpoint lock, so they never interleave
    with a poll cycle of the same endpoint.
    """

    def __init__(self):
        self._bindings: Dict[int, CommandBinding] = {}

    def bind(self, supervisor: ConnectionSupervisor, command: CommandPointConfig) -> CommandBinding:
        if command.index in self._bindings:
            raise ValueError(f"Command index {command.index} is already bound")
        binding = CommandBinding(supervisor, command)
        self._bindings[command.index] = binding
        return binding

    def bind_endpoint(self, supervisor: ConnectionSupervisor) -> List[CommandBinding]:
        """Bind every command configured on the supervisor's endpoint."""
        return [self.bind(supervisor, command) for command in supervisor.endpoint.commands]

    def binding(self, index: int) -> Optional[CommandBinding]:
        return self._bindings.get(index)

    def operate(self, kind: OperateType, index: int) -> CommandStatus:
        if kind is not OperateType.DIRECT_OPERATE:
            logger.debug("Unsupported operate type %s for index %s", kind.value, index)
            return CommandStatus.NOT_SUPPORTED

        binding = self._bindings.get(index)
        if binding is None:
            logger.debug("%s: no command mapped to index %s",
                         FailureKind.UNSUPPORTED_COMMAND.value, index)
            return CommandStatus.NOT_SUPPORTED

        supervisor = binding.supervisor
        command = binding.command
        log_extra = {"endpoint": supervisor.name}

        with supervisor.lock:
            try:
                if not supervisor.ensure_connected():
                    logger.error(
                        "(FAIL) [%s] Command '%s' (index %s): endpoint unreachable",
                        supervisor.name, command.name, index, extra=log_extra,
                    )
                    return CommandStatus.HARDWARE_ERROR

                transport = supervisor.transport
                if not (transport.write_coil(command.address, command.value) and transport.flush()):
                    failure = transport.last_failure or TransportFailure(FailureKind.WRITE, "write failed")
                    supervisor.mark_disconnected(failure)
                    logger.error(
                        "(FAIL) [%s] Command '%s' (index %s) failed: %s",
                        supervisor.name, command.name, index, failure, extra=log_extra,
                    )
                    return CommandStatus.HARDWARE_ERROR

                logger.info(
                    "(PASS) [%s] Command '%s' (index %s): coil %s set to %s",
                    supervisor.name, command.name, index, command.address, command.value,
                    extra=log_extra,
                )
                if command.verify:
                    self._read_back(supervisor, command)
                return CommandStatus.SUCCESS
            finally:
                supervisor.end_cycle()

    @staticmethod
    def _read_back(supervisor: ConnectionSupervisor, command: CommandPointConfig) -> None:
        bits = supervisor.transport.read_coils(command.address, 1)
        if not bits:
            logger.warning("[%s] Could not read back coil %s", supervisor.name, command.address,
                           extra={"endpoint": supervisor.name})
            return
        logger.info("[%s] Coil %s read back as %s", supervisor.name, command.address,
                    "ON" if bits[0] else "OFF", extra={"endpoint": supervisor.name})

    def __len__(self) -> int:
        return len(self._bindings)


class ValueInterlock:
    """
    Issues configured commands when an endpoint's analog value enters a trigger value.

    Triggers are edge based: a command fires when a valid sample equals
    ``when_value`` and the previous valid sample did not. Invalid samples
    leave the previous value untouched.
    """

    def __init__(self, endpoint: ModbusEndpointConfig, dispatcher: CommandDispatcher):
        self.endpoint = endpoint
        self.dispatcher = dispatcher
        self.previous_value: Optional[int] = None

    def evaluate(self, sample: Sample) -> List[CommandStatus]:
        if not sample.valid:
            return []

        results = []
        for interlock in self.endpoint.interlocks:
            if sample.value == interlock.when_value and self.previous_value != interlock.when_value:
                logger.info(
                    "[%s] Value %s reached, operating command index %s",
                    self.endpoint.name, sample.value, interlock.command_index,
                    extra={"endpoint": self.endpoint.name},
                )
                status = self.dispatcher.operate(OperateType.DIRECT_OPERATE, interlock.command_index)
                if status is not CommandStatus.SUCCESS:
                    logger.warning(
                        "[%s] Interlock command index %s returned %s",
                        self.endpoint.name, interlock.command_index, status.name,
                        extra={"endpoint": self.endpoint.name},
                    )
                results.append(status)

        self.previous_value = sample.value
        return results
