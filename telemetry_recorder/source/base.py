"""Abstract base class for vehicle parameter sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict

from telemetry_recorder.schemas import ParameterValue


class ParameterSource(ABC):
    """Unified interface for reading one snapshot of vehicle parameters."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the adapter."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return ``True`` if the adapter connection is active."""

    @abstractmethod
    async def read_parameters(self) -> Dict[str, ParameterValue]:
        """Read the currently available parameters.

        Returns ``{parameter_name: value}``; parameters the vehicle did
        not answer are simply absent.
        """
