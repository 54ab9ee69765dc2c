"""Scenario-based simulation source (no hardware required).

Each scenario lists base values and Gaussian noise per parameter, so
consecutive reads vary realistically.  Parameters with a ``dropout``
probability are occasionally missing from a read, mimicking PIDs the
adapter fails to answer.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Optional

from telemetry_recorder.schemas import ParameterValue
from telemetry_recorder.source.base import ParameterSource

SCENARIOS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "idle": {
        "RPM": {"base": 780.0, "noise": 25.0},
        "SPEED": {"base": 0.0, "noise": 0.0},
        "COOLANT_TEMP": {"base": 88.0, "noise": 0.5},
        "ENGINE_LOAD": {"base": 22.0, "noise": 1.5},
        "THROTTLE_POS": {"base": 14.5, "noise": 0.3},
        "CONTROL_MODULE_VOLTAGE": {"base": 14.1, "noise": 0.05},
        "FUEL_STATUS": {"value": "Closed loop"},
    },
    "cruise": {
        "RPM": {"base": 2150.0, "noise": 60.0},
        "SPEED": {"base": 95.0, "noise": 2.0},
        "COOLANT_TEMP": {"base": 91.0, "noise": 0.5},
        "ENGINE_LOAD": {"base": 41.0, "noise": 3.0},
        "THROTTLE_POS": {"base": 23.0, "noise": 1.5},
        "MAF": {"base": 18.5, "noise": 1.2, "dropout": 0.1},
        "INTAKE_TEMP": {"base": 32.0, "noise": 0.8, "dropout": 0.1},
        "FUEL_STATUS": {"value": "Closed loop"},
    },
    "cold_start": {
        "RPM": {"base": 1250.0, "noise": 80.0},
        "SPEED": {"base": 0.0, "noise": 0.0},
        "COOLANT_TEMP": {"base": 18.0, "noise": 1.0},
        "ENGINE_LOAD": {"base": 30.0, "noise": 2.5},
        "SHORT_FUEL_TRIM_1": {"base": 0.0, "noise": 3.0, "signed": True},
        "FUEL_STATUS": {"value": "Open loop due to insufficient engine temperature"},
    },
}


class SimulationSource(ParameterSource):
    """Produces synthetic parameter snapshots from a named scenario."""

    def __init__(self, scenario: str = "idle", seed: Optional[int] = None) -> None:
        self._scenario_name = scenario
        self._scenario: Dict[str, Dict[str, Any]] = {}
        self._random = random.Random(seed)
        self._connected = False

    # -- lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        if self._scenario_name not in SCENARIOS:
            available = ", ".join(sorted(SCENARIOS))
            raise ValueError(
                f"Unknown simulation scenario '{self._scenario_name}'. "
                f"Available: {available}"
            )
        self._scenario = SCENARIOS[self._scenario_name]
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    # -- data reads -----------------------------------------------------------

    async def read_parameters(self) -> Dict[str, ParameterValue]:
        if not self._connected:
            raise RuntimeError("SimulationSource is not connected")
        reading: Dict[str, ParameterValue] = {}
        for name, profile in self._scenario.items():
            if self._random.random() < profile.get("dropout", 0.0):
                continue
            if "value" in profile:
                reading[name] = profile["value"]
                continue
            reading[name] = self._apply_noise(
                profile["base"], profile.get("noise", 0.0), profile.get("signed", False)
            )
        return reading

    # -- internal -------------------------------------------------------------

    def _apply_noise(self, base: float, noise: float, signed: bool) -> float:
        """Apply Gaussian noise (std-dev = noise) to a base value.

        Unsigned parameters are clamped to >= 0.
        """
        if noise <= 0:
            return base
        value = base + self._random.gauss(0, noise)
        if not signed:
            value = max(0.0, value)
        return round(value, 2)
