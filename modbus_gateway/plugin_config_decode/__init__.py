"""
Gateway configuration decoding package
"""

from .plugin_config_contact import PluginConfigContract, PluginConfigError
from .modbus_gateway_config_model import (
    AnalogPointConfig,
    CommandPointConfig,
    GatewayConfig,
    GatewayConfigError,
    InterlockConfig,
    ModbusEndpointConfig,
    OutstationConfig,
    StatusBitConfig,
)

__all__ = [
    'PluginConfigContract',
    'PluginConfigError',
    'AnalogPointConfig',
    'CommandPointConfig',
    'GatewayConfig',
    'GatewayConfigError',
    'InterlockConfig',
    'ModbusEndpointConfig',
    'OutstationConfig',
    'StatusBitConfig',
]
