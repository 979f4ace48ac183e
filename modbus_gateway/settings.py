"""Environment settings for the gateway process."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import dotenv_values, find_dotenv

from .plugin_config_decode.modbus_gateway_config_model import GatewayConfigError, SCHEDULING_MODES

LOG_FORMATS = ("json", "text")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class GatewaySettings:
    config_path: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "json"
    scheduling: Optional[str] = None

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> 'GatewaySettings':
        """
        Read GATEWAY_* settings from the process environment and a ``.env`` file.

        Variables already present in the environment always win over the file.
        The ``.env`` file is looked up from the working directory when
        ``env_file`` is not given.
        """
        path = env_file or find_dotenv(usecwd=True)
        values = dict(dotenv_values(path)) if path else {}
        values.update(os.environ)

        settings = cls(
            config_path=values.get("GATEWAY_CONFIG") or None,
            log_level=(values.get("GATEWAY_LOG_LEVEL") or "INFO").upper(),
            log_format=(values.get("GATEWAY_LOG_FORMAT") or "json").lower(),
            scheduling=values.get("GATEWAY_SCHEDULING") or None,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.log_level not in LOG_LEVELS:
            raise GatewayConfigError(f"Invalid GATEWAY_LOG_LEVEL: {self.log_level}. Expected one of {LOG_LEVELS}.")
        if self.log_format not in LOG_FORMATS:
            raise GatewayConfigError(f"Invalid GATEWAY_LOG_FORMAT: {self.log_format}. Expected one of {LOG_FORMATS}.")
        if self.scheduling is not None and self.scheduling not in SCHEDULING_MODES:
            raise GatewayConfigError(f"Invalid GATEWAY_SCHEDULING: {self.scheduling}. Expected one of {SCHEDULING_MODES}.")
