"""Telemetry Recorder -- vehicle parameter recording and export engine.

Captures time-series OBD-II parameter readings into named recordings,
batches them to the persistence backend, and converts stored point sets
to and from CSV and the JSON-based BRC container.

The OBD transport and the storage backend are collaborators: see
``telemetry_recorder.source`` and ``telemetry_recorder.gateway``.
"""

__version__ = "0.1.0"
