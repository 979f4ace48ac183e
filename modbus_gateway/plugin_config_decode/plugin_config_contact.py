#!/usr/bin/env python3
"""
Base configuration contract for gateway configuration models.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class PluginConfigError(ValueError):
    """Custom exception for configuration errors."""
    pass


class PluginConfigContract(ABC):
    """
    Abstract base class for protocol-specific configurations.
    """
    def __init__(self):
        self.name = "UNDEFINED"
        self.protocol = "UNDEFINED"
        self.config: Dict[str, Any] = {}

    @abstractmethod
    def import_config_from_file(self, file_path: str):
        """Populates the instance from a JSON file."""

    @abstractmethod
    def validate(self) -> None:
        """Validates the configuration."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(CONFIG={self.config})"
