"""Parameter source abstraction layer.

Provides the ``ParameterSource`` ABC that the capture loop polls, and a
``SimulationSource`` that needs no hardware.  Real OBD-II transports
(Bluetooth, Wi-Fi/TCP ELM327 adapters) implement the same interface.
"""

from telemetry_recorder.source.base import ParameterSource

__all__ = ["ParameterSource"]
