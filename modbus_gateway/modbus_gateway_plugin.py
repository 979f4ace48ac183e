"""Modbus gateway runtime: endpoint units, schedulers and lifecycle."""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .logger import shared_buffer_handler
from .modbus_gateway_commands import CommandDispatcher, ValueInterlock
from .modbus_gateway_connection import ConnectionSupervisor
from .modbus_gateway_outstation import Outstation, OutstationError, PointDatabase, configure_database
from .modbus_gateway_points import PointStateStore
from .modbus_gateway_poller import DevicePoller
from .modbus_gateway_publisher import UpdateBuilder, UpdatePublisher
from .modbus_gateway_transport import ModbusTransport
from .modbus_gateway_types import PointUpdate, Sample
from .modbus_gateway_utils import calculate_stagger_offsets
from .plugin_config_decode.modbus_gateway_config_model import (
    GatewayConfig,
    GatewayConfigError,
    ModbusEndpointConfig,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[ModbusEndpointConfig], ModbusTransport]
OutstationFactory = Callable[..., Outstation]

# Extra time granted to a unit on shutdown on top of its worst-case cycle
JOIN_GRACE_S = 1.0
SLEEP_INCREMENT_S = 0.1


def default_transport_factory(endpoint: ModbusEndpointConfig) -> ModbusTransport:
    return ModbusTransport(endpoint.host, endpoint.port, name=endpoint.name)


class EndpointUnit:
    """Everything needed to poll one endpoint and publish its points."""

    def __init__(self, endpoint: ModbusEndpointConfig, supervisor: ConnectionSupervisor,
                 dispatcher: CommandDispatcher):
        self.endpoint = endpoint
        self.name = endpoint.name
        self.supervisor = supervisor
        self.poller = DevicePoller(supervisor)
        self.interlock = ValueInterlock(endpoint, dispatcher) if endpoint.interlocks else None

    @property
    def worst_case_cycle_s(self) -> float:
        """
        Upper bound of one cycle: a connect plus every read timing out, then
        every interlock command timing out on connect, write, flush and read-back.
        """
        timeout_s = self.endpoint.response_timeout_s
        poll_s = timeout_s * (len(self.endpoint.status_bits) + 2)
        commands = {command.index: command for command in self.endpoint.commands}
        interlock_s = 0.0
        for interlock in self.endpoint.interlocks:
            command = commands.get(interlock.command_index)
            steps = 4 if command is not None and command.verify else 3
            interlock_s += timeout_s * steps
        return poll_s + interlock_s

    def collect(self, store: PointStateStore) -> Tuple[Sample, List[PointUpdate]]:
        sample = self.poller.poll()
        failure_count = self.supervisor.failure_count
        if not sample.valid:
            if failure_count >= self.supervisor.fault_threshold:
                logger.warning(
                    "[%s] Prolonged failure (%d cycles), publishing 0",
                    self.name, failure_count, extra={"endpoint": self.name},
                )
            else:
                logger.info(
                    "[%s] Temporary failure (%d cycles), keeping last known value",
                    self.name, failure_count, extra={"endpoint": self.name},
                )
        return sample, store.update(self.name, sample, failure_count)

    def after_publish(self, sample: Sample) -> None:
        if self.interlock is not None:
            self.interlock.evaluate(sample)

    def __repr__(self) -> str:
        return f"EndpointUnit(name='{self.name}')"


def poll_round(units: Sequence[EndpointUnit], store: PointStateStore,
               publisher: UpdatePublisher) -> Tuple[PointUpdate, ...]:
    """
    Poll every unit once and publish one combined batch.

    A round always covers every unit; shutdown is only observed between
    rounds. Interlocks run after the batch has been applied so their commands
    never change what this round publishes.
    """
    builder = UpdateBuilder()
    samples = []
    for unit in units:
        sample, updates = unit.collect(store)
        builder.extend(updates)
        samples.append((unit, sample))

    batch = builder.build()
    publisher.publish(batch)

    for unit, sample in samples:
        unit.after_publish(sample)
    return batch


class _PollingThread(threading.Thread):
    """
    Base for scheduler threads.

    ``stop_event`` is the runtime-wide cancellation token; ``stop()`` halts
    only this thread.
    """

    def __init__(self, name: str, units: Sequence[EndpointUnit], store: PointStateStore,
                 publisher: UpdatePublisher, interval_s: float, stop_event: threading.Event,
                 start_delay_s: float = 0.0):
        super().__init__(name=name, daemon=True)
        self.units = list(units)
        self.store = store
        self.publisher = publisher
        self.interval_s = interval_s
        self.stop_event = stop_event
        self.start_delay_s = start_delay_s
        self.cycles = 0
        self._halt = threading.Event()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set() or self._halt.is_set()

    @property
    def join_timeout_s(self) -> float:
        return sum(unit.worst_case_cycle_s for unit in self.units) + JOIN_GRACE_S

    def stop(self) -> None:
        logger.debug("[%s] Stop signal received.", self.name)
        self._halt.set()

    def run(self) -> None:
        logger.info("[%s] Thread started.", self.name)
        self._sleep(self.start_delay_s)

        while not self.stopping:
            cycle_start_time = time.monotonic()
            try:
                poll_round(self.units, self.store, self.publisher)
            except Exception:  # pylint: disable=broad-except
                logger.exception("(FAIL) [%s] Unexpected error in poll cycle", self.name)
            self.cycles += 1

            cycle_elapsed = time.monotonic() - cycle_start_time
            self._sleep(self.interval_s - cycle_elapsed)

        logger.info("[%s] Thread finished.", self.name)

    def _sleep(self, duration: float) -> None:
        # Small increments so both stop_event and stop() are observed promptly
        deadline = time.monotonic() + duration
        remaining = duration
        while remaining > 0 and not self.stopping:
            self.stop_event.wait(min(SLEEP_INCREMENT_S, remaining))
            remaining = deadline - time.monotonic()


class SequentialPoller(_PollingThread):
    """One thread polling every endpoint in fixed order, one batch per round."""

    def __init__(self, units: Sequence[EndpointUnit], store: PointStateStore,
                 publisher: UpdatePublisher, interval_s: float, stop_event: threading.Event):
        super().__init__("ModbusGateway-sequential", units, store, publisher, interval_s, stop_event)


class EndpointWorker(_PollingThread):
    """One thread per endpoint with its own timer and batch."""

    def __init__(self, unit: EndpointUnit, store: PointStateStore, publisher: UpdatePublisher,
                 interval_s: float, stop_event: threading.Event, start_delay_s: float = 0.0):
        super().__init__(
            f"ModbusGateway-{unit.name}-{unit.endpoint.host}:{unit.endpoint.port}",
            [unit], store, publisher, interval_s, stop_event, start_delay_s,
        )
        self.unit = unit


class GatewayRuntime:  # pylint: disable=too-many-instance-attributes
    """
    Owns the configured gateway and its threads.

    Lifecycle: ``init()`` -> ``start_loop()`` -> ``stop_loop()`` -> ``cleanup()``.
    Each step returns True on success and logs the reason on failure.
    """

    def __init__(self, transport_factory: Optional[TransportFactory] = None,
                 outstation_factory: Optional[OutstationFactory] = None):
        self.transport_factory = transport_factory or default_transport_factory
        self.outstation_factory = outstation_factory or PointDatabase
        self.stop_event = threading.Event()

        self.config: Optional[GatewayConfig] = None
        self.outstation: Optional[Outstation] = None
        self.store: Optional[PointStateStore] = None
        self.publisher: Optional[UpdatePublisher] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.units: List[EndpointUnit] = []
        self.threads: List[_PollingThread] = []

    def init(self, config_path: Optional[str] = None, config: Optional[GatewayConfig] = None,
             scheduling: Optional[str] = None) -> bool:
        """
        Load the configuration and build every component.

        Either ``config_path`` or an already populated ``config`` must be
        given; ``scheduling`` overrides the configured scheduling model.
        """
        logger.info("Modbus Gateway - Initializing...")

        try:
            if config is None:
                if not config_path:
                    raise GatewayConfigError("No configuration file given")
                config = GatewayConfig()
                config.import_config_from_file(config_path)
            if scheduling:
                config.scheduling = scheduling
            config.validate()
        except GatewayConfigError as e:
            logger.error("(FAIL) Invalid configuration: %s", e)
            return False

        logger.info("(PASS) Configuration loaded successfully: %d device(s), %s scheduling",
                    len(config.devices), config.scheduling)

        self.config = config
        self.store = PointStateStore()
        self.dispatcher = CommandDispatcher()
        self.units = []

        for endpoint in config.devices:
            supervisor = ConnectionSupervisor(endpoint, self.transport_factory(endpoint))
            self.dispatcher.bind_endpoint(supervisor)
            self.store.register(endpoint)
            self.units.append(EndpointUnit(endpoint, supervisor, self.dispatcher))

        try:
            self.outstation = self.outstation_factory(configure_database(config), config.outstation)
            self.outstation.enable()
        except OutstationError as e:
            logger.error("(FAIL) Outstation could not be enabled: %s", e)
            self.outstation = None
            return False

        self.outstation.set_command_handler(self.dispatcher)
        self.publisher = UpdatePublisher(self.outstation)
        logger.info("(PASS) Gateway initialized with %d command binding(s)", len(self.dispatcher))
        return True

    def start_loop(self) -> bool:
        """Start the scheduler thread(s) for the configured scheduling model."""
        if self.config is None or self.publisher is None:
            logger.error("(FAIL) Gateway not properly initialized")
            return False
        if self.threads:
            logger.error("(FAIL) Gateway loop already running")
            return False

        self.stop_event.clear()
        interval_s = self.config.poll_interval_ms / 1000.0

        if self.config.scheduling == "concurrent":
            offsets = calculate_stagger_offsets(len(self.units), self.config.stagger_ms)
            for unit, delay in zip(self.units, offsets):
                self.threads.append(EndpointWorker(
                    unit, self.store, self.publisher, interval_s, self.stop_event, start_delay_s=delay,
                ))
        else:
            self.threads.append(SequentialPoller(
                self.units, self.store, self.publisher, interval_s, self.stop_event,
            ))

        for thread in self.threads:
            thread.start()
            logger.info("(PASS) Started thread %s", thread.name)
        return True

    def stop_loop(self) -> bool:
        """
        Signal every thread and wait for in-flight cycles to finish.

        Returns:
            True if every thread stopped within its timeout
        """
        if not self.threads:
            logger.info("No threads to stop")
            return True

        logger.info("Modbus Gateway - Stopping main loop...")
        self.stop_event.set()

        all_stopped = True
        for thread in self.threads:
            thread.join(timeout=thread.join_timeout_s)
            if thread.is_alive():
                logger.warning("Thread %s did not stop within %.1fs", thread.name, thread.join_timeout_s)
                all_stopped = False
            else:
                logger.info("(PASS) Thread %s stopped successfully", thread.name)

        self.threads = []
        return all_stopped

    def cleanup(self) -> bool:
        """Stop the loop, close every transport and disable the outstation."""
        stopped = self.stop_loop()

        for unit in self.units:
            unit.supervisor.shutdown()

        if self.outstation is not None:
            self.outstation.set_command_handler(None)
            self.outstation.disable()

        self.units = []
        self.outstation = None
        self.publisher = None
        self.dispatcher = None
        self.store = None
        logger.info("(PASS) Cleanup completed")
        return stopped

    def run_once(self) -> Tuple[PointUpdate, ...]:
        """Run one sequential round synchronously."""
        if self.publisher is None:
            raise RuntimeError("Gateway not initialized")
        return poll_round(self.units, self.store, self.publisher)

    def status(self) -> Dict[str, Any]:
        return {
            "running": any(thread.is_alive() for thread in self.threads),
            "scheduling": self.config.scheduling if self.config else None,
            "batches_applied": self.publisher.batches_applied if self.publisher else 0,
            "endpoints": [unit.supervisor.status() for unit in self.units],
        }

    @staticmethod
    def recent_logs(count: Optional[int] = None, min_id: Optional[int] = None,
                    level: Optional[str] = None) -> List[dict]:
        return shared_buffer_handler.get_logs(count=count, min_id=min_id, level=level)
