"""Modbus gateway transport over the pymodbus synchronous TCP client."""

import logging
from typing import Any, List, Optional

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException

from .modbus_gateway_types import FailureKind, TransportFailure

logger = logging.getLogger(__name__)

MAX_UNIT_ID = 247


class ModbusTransport:  # pylint: disable=too-many-instance-attributes
    """
    Fallible Modbus TCP transport.

    Every call reports failure through its return value and ``last_failure``
    instead of raising, so callers map failures into state transitions.

    pymodbus exposes a single socket timeout; the response timeout is used for
    it and the byte timeout is kept for configuration parity.
    """

    def __init__(self, host: str, port: int, name: Optional[str] = None):
        self.host = host
        self.port = port
        self.name = name or f"{host}:{port}"
        self.unit_id = 1
        self.response_timeout = 1.0
        self.byte_timeout = 1.0

        self.client: Optional[ModbusTcpClient] = None
        self.last_failure: Optional[TransportFailure] = None

    @property
    def is_open(self) -> bool:
        return self.client is not None and self.client.connected

    def set_unit_id(self, unit_id: int) -> bool:
        """Select the slave addressed by subsequent requests."""
        if not isinstance(unit_id, int) or not 0 <= unit_id <= MAX_UNIT_ID:
            self._fail(FailureKind.CONNECT, f"invalid unit id {unit_id!r}")
            return False
        self.unit_id = unit_id
        return True

    def set_timeouts(self, response_timeout: float, byte_timeout: float) -> bool:
        """Set timeouts (seconds). Takes effect on the next connect()."""
        if response_timeout <= 0 or byte_timeout <= 0:
            self._fail(
                FailureKind.CONNECT,
                f"invalid timeouts response={response_timeout} byte={byte_timeout}",
            )
            return False
        self.response_timeout = response_timeout
        self.byte_timeout = byte_timeout
        return True

    def connect(self) -> bool:
        """
        Open the TCP connection, creating the pymodbus client if necessary.

        Returns:
            True if connected, False otherwise
        """
        if self.client is None:
            try:
                self.client = ModbusTcpClient(
                    host=self.host,
                    port=self.port,
                    timeout=self.response_timeout,
                    retries=0,
                )
            except (ModbusException, OSError, TypeError, ValueError) as e:
                self.client = None
                self._fail(FailureKind.TRANSPORT_CREATION, str(e))
                return False

        try:
            if self.client.connect():
                self.last_failure = None
                return True
        except (ModbusException, OSError) as e:
            self._fail(FailureKind.CONNECT, str(e))
            return False

        self._fail(FailureKind.CONNECT, f"unable to connect to {self.host}:{self.port}")
        return False

    def disconnect(self) -> None:
        """Close the connection and drop the client handle."""
        if self.client is None:
            return
        try:
            self.client.close()
        except (ModbusException, OSError) as e:
            logger.debug("[%s] Error closing transport: %s", self.name, e)
        finally:
            self.client = None

    def read_holding_registers(self, address: int, count: int = 1) -> Optional[List[int]]:
        """Read holding registers (FC 3). Returns None on failure."""
        response = self._execute("read_holding_registers", address, count=count)
        return None if response is None else list(response.registers[:count])

    def read_input_registers(self, address: int, count: int = 1) -> Optional[List[int]]:
        """Read input registers (FC 4). Returns None on failure."""
        response = self._execute("read_input_registers", address, count=count)
        return None if response is None else list(response.registers[:count])

    def read_coils(self, address: int, count: int = 1) -> Optional[List[bool]]:
        """Read coils (FC 1). Returns None on failure."""
        response = self._execute("read_coils", address, count=count)
        return None if response is None else list(response.bits[:count])

    def read_discrete_inputs(self, address: int, count: int = 1) -> Optional[List[bool]]:
        """Read discrete inputs (FC 2). Returns None on failure."""
        response = self._execute("read_discrete_inputs", address, count=count)
        return None if response is None else list(response.bits[:count])

    def write_coil(self, address: int, value: bool) -> bool:
        """Write a single coil (FC 5)."""
        return self._execute("write_coil", address, bool(value)) is not None

    def flush(self) -> bool:
        """
        Discard any bytes left unread on the socket.

        Returns:
            False if there is no open socket or the peer closed it
        """
        sock = getattr(self.client, "socket", None)
        if sock is None:
            self._fail(FailureKind.WRITE, "flush on a closed transport")
            return False

        try:
            sock.setblocking(False)
            while True:
                chunk = sock.recv(256)
                if not chunk:
                    self._fail(FailureKind.WRITE, "connection closed by peer")
                    return False
        except BlockingIOError:
            return True
        except OSError as e:
            self._fail(FailureKind.WRITE, str(e))
            return False
        finally:
            try:
                sock.settimeout(self.response_timeout)
            except OSError:
                pass

    def _execute(self, method_name: str, address: int, *args: Any, **kwargs: Any) -> Optional[Any]:
        kind = FailureKind.WRITE if method_name.startswith("write") else FailureKind.READ
        if self.client is None:
            self._fail(kind, f"{method_name} on a closed transport")
            return None

        try:
            response = getattr(self.client, method_name)(
                address, *args, device_id=self.unit_id, **kwargs
            )
        except (ModbusException, OSError) as e:
            self._fail(kind, f"{method_name}(addr={address}) failed: {e}")
            return None

        if response is None or response.isError():
            self._fail(kind, f"{method_name}(addr={address}) returned {response}")
            return None

        return response

    def _fail(self, kind: FailureKind, message: str) -> None:
        self.last_failure = TransportFailure(kind, message)
        logger.debug("[%s] %s", self.name, self.last_failure)

    def __repr__(self) -> str:
        return f"ModbusTransport(name='{self.name}', host='{self.host}', port={self.port}, unit_id={self.unit_id})"
