"""Outstation (target-protocol server) interface and in-process point database."""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Deque, Dict, List, Optional, Sequence

from .modbus_gateway_types import CommandStatus, OperateType, PointType, PointUpdate
from .plugin_config_decode.modbus_gateway_config_model import GatewayConfig, OutstationConfig

logger = logging.getLogger(__name__)


class OutstationError(RuntimeError):
    """Raised when the outstation cannot be enabled or rejects an update batch."""
    pass


class PointClass(IntEnum):
    """Event class assignment of a point."""
    CLASS_0 = 0
    CLASS_1 = 1
    CLASS_2 = 2
    CLASS_3 = 3


class StaticAnalogVariation(Enum):
    GROUP30_VAR1 = "Group30Var1"  # 32-bit with flag
    GROUP30_VAR2 = "Group30Var2"  # 16-bit with flag


class StaticBinaryVariation(Enum):
    GROUP1_VAR1 = "Group1Var1"  # packed format
    GROUP1_VAR2 = "Group1Var2"  # with flags


@dataclass
class AnalogConfig:
    clazz: PointClass = PointClass.CLASS_2
    static_variation: StaticAnalogVariation = StaticAnalogVariation.GROUP30_VAR2


@dataclass
class BinaryConfig:
    clazz: PointClass = PointClass.CLASS_1
    static_variation: StaticBinaryVariation = StaticBinaryVariation.GROUP1_VAR2


@dataclass
class DatabaseConfig:
    """Point database schema handed to the outstation at configuration time."""
    analog_inputs: Dict[int, AnalogConfig] = field(default_factory=dict)
    binary_inputs: Dict[int, BinaryConfig] = field(default_factory=dict)


def configure_database(gateway_config: GatewayConfig) -> DatabaseConfig:
    """
    Build the point database schema from the configured endpoints.

    Analog inputs are class 2 with a static variation matching the decode
    width. Binary inputs (connection status and status bits) are class 1,
    Group1Var2.
    """
    database = DatabaseConfig()
    for device in gateway_config.devices:
        variation = (StaticAnalogVariation.GROUP30_VAR1 if device.analog.width == 32
                     else StaticAnalogVariation.GROUP30_VAR2)
        database.analog_inputs[device.analog.index] = AnalogConfig(static_variation=variation)
        for index in device.binary_indices():
            database.binary_inputs[index] = BinaryConfig()
    return database


class ICommandHandler(ABC):
    """Receives control requests addressed to the outstation."""

    @abstractmethod
    def operate(self, kind: OperateType, index: int) -> CommandStatus:
        """Execute a control on ``index`` and return its status."""


class Outstation(ABC):
    """
    Interface the gateway needs from a target-protocol server.

    Implementations accept a schema at construction, apply update batches
    atomically and route inbound controls to the registered command handler.
    """

    @abstractmethod
    def enable(self) -> None:
        """Start serving. Raises OutstationError when that is not possible."""

    @abstractmethod
    def disable(self) -> None:
        """Stop serving."""

    @abstractmethod
    def apply(self, updates: Sequence[PointUpdate]) -> None:
        """Apply one batch of updates atomically."""

    @abstractmethod
    def set_command_handler(self, handler: Optional[ICommandHandler]) -> None:
        """Register the handler inbound controls are routed to."""

    @abstractmethod
    def operate(self, kind: OperateType, index: int) -> CommandStatus:
        """Deliver an inbound control as if received from the master."""


@dataclass(frozen=True)
class PointEvent:
    """A change event queued for the master."""
    point_type: PointType
    index: int
    value: Any
    flags: int
    clazz: PointClass


class PointDatabase(Outstation):
    """
    In-process outstation keeping the static point table and a bounded event buffer.

    Batches are validated against the schema before anything is written, so
    a batch is either applied completely or not at all. When the event buffer
    is full the oldest event is dropped and ``overflow`` is set until the
    events are drained.
    """

    def __init__(self, database: DatabaseConfig, params: Optional[OutstationConfig] = None):
        self.database = database
        self.params = params or OutstationConfig()
        self.enabled = False
        self.overflow = False

        self._lock = threading.Lock()
        self._handler: Optional[ICommandHandler] = None
        self._analog: Dict[int, int] = {index: 0 for index in database.analog_inputs}
        self._binary: Dict[int, bool] = {index: False for index in database.binary_inputs}
        self._events: Deque[PointEvent] = deque()

    def enable(self) -> None:
        if not self.database.analog_inputs and not self.database.binary_inputs:
            raise OutstationError("Point database is empty")
        self.enabled = True
        logger.info(
            "(PASS) Outstation enabled on %s:%s (local=%s remote=%s, %d analog, %d binary)",
            self.params.host, self.params.port, self.params.local_addr, self.params.remote_addr,
            len(self._analog), len(self._binary),
        )

    def disable(self) -> None:
        if self.enabled:
            logger.info("Outstation disabled")
        self.enabled = False

    def apply(self, updates: Sequence[PointUpdate]) -> None:
        with self._lock:
            for update in updates:
                self._check(update)

            for update in updates:
                if update.point_type is PointType.ANALOG_INPUT:
                    self._analog[update.index] = int(update.value)
                    clazz = self.database.analog_inputs[update.index].clazz
                else:
                    self._binary[update.index] = bool(update.value)
                    clazz = self.database.binary_inputs[update.index].clazz
                if update.event:
                    self._push_event(PointEvent(update.point_type, update.index,
                                                update.value, update.flags, clazz))

    def set_command_handler(self, handler: Optional[ICommandHandler]) -> None:
        self._handler = handler

    def operate(self, kind: OperateType, index: int) -> CommandStatus:
        if self._handler is None:
            return CommandStatus.NOT_SUPPORTED
        return self._handler.operate(kind, index)

    def analog(self, index: int) -> int:
        with self._lock:
            return self._analog[index]

    def binary(self, index: int) -> bool:
        with self._lock:
            return self._binary[index]

    def snapshot(self) -> Dict[str, Dict[int, Any]]:
        with self._lock:
            return {"analog_inputs": dict(self._analog), "binary_inputs": dict(self._binary)}

    def drain_events(self) -> List[PointEvent]:
        """Return and clear the queued events."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
            self.overflow = False
            return events

    def _check(self, update: PointUpdate) -> None:
        if update.point_type is PointType.ANALOG_INPUT:
            known = update.index in self.database.analog_inputs
        else:
            known = update.index in self.database.binary_inputs
        if not known:
            raise OutstationError(f"{update.point_type.value} index {update.index} is not in the database")

    def _push_event(self, event: PointEvent) -> None:
        if len(self._events) >= self.params.event_buffer_size:
            self._events.popleft()
            if not self.overflow:
                logger.warning("Event buffer full (%d), dropping oldest events", self.params.event_buffer_size)
            self.overflow = True
        self._events.append(event)

    def __repr__(self) -> str:
        return f"PointDatabase(analog={len(self._analog)}, binary={len(self._binary)}, enabled={self.enabled})"
