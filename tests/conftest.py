"""Shared fixtures: a square track, quiet settings and a scripted simulation bridge."""

from collections.abc import Callable

import numpy as np
import pytest

from neuroracer.parameters import EvolutionSettings
from neuroracer.track.waypoints import WaypointTrack


class FakeBridge:
    """Scripted stand-in for the vehicle simulation."""

    def __init__(self, population_size: int, input_width: int) -> None:
        self.population_size = population_size
        self._input_width = input_width
        self.alive = np.ones(population_size, dtype=bool)
        self.positions: dict[int, tuple[float, float]] = {}
        self.inputs: dict[int, list[float]] = {}
        self.controls: dict[int, tuple[float, float]] = {}
        self.frozen: list[int] = []
        self.respawned: list[tuple[float, float, float]] = []
        self.player_respawned: list[tuple[float, float, float]] = []
        self.generations: list[int] = []
        self.finished = False

    @property
    def input_width(self) -> int:
        return self._input_width

    def read_inputs(self, agent_id: int) -> list[float]:
        return self.inputs.get(agent_id, [0.1] * self._input_width)

    def apply_controls(self, agent_id: int, steering: float, acceleration: float) -> None:
        self.controls[agent_id] = (steering, acceleration)

    def position(self, agent_id: int) -> tuple[float, float]:
        return self.positions.get(agent_id, (0.0, 0.0))

    def is_alive(self, agent_id: int) -> bool:
        return bool(self.alive[agent_id])

    def alive_count(self) -> int:
        return int(self.alive.sum())

    def freeze(self, agent_id: int) -> None:
        self.alive[agent_id] = False
        self.frozen.append(agent_id)

    def freeze_all(self) -> None:
        self.alive[:] = False

    def respawn_all(self, pose: tuple[float, float, float]) -> None:
        self.alive[:] = True
        self.respawned.append(pose)

    def respawn_player(self, pose: tuple[float, float, float]) -> None:
        self.player_respawned.append(pose)

    def publish_generation(self, generation: int) -> None:
        self.generations.append(generation)

    def simulation_finished(self) -> None:
        self.finished = True


@pytest.fixture
def square_track() -> WaypointTrack:
    return WaypointTrack([(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)])


@pytest.fixture
def make_settings() -> Callable[..., EvolutionSettings]:
    def _make(**overrides: object) -> EvolutionSettings:
        overrides.setdefault("quiet", True)
        overrides.setdefault("seed", 7)
        return EvolutionSettings.create(**overrides)

    return _make


@pytest.fixture
def make_bridge() -> Callable[[EvolutionSettings], FakeBridge]:
    def _make(settings: EvolutionSettings) -> FakeBridge:
        return FakeBridge(settings.population_size, settings.input_count)

    return _make
