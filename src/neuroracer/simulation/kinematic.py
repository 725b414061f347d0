"""
Minimal kinematic stand-in for the vehicle simulation.

Cars drive on a ring between two concentric circles. Each car reads radar
distances to the ring walls plus its speed (and, with the navigator enabled,
the direction and distance to the next waypoint), and is frozen when it
leaves the ring, stalls, or runs out of ticks.
"""

from __future__ import annotations

# Standard library
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

# Third-party libraries
import numpy as np

# Local libraries
from neuroracer import console
from neuroracer.exceptions import ConfigurationError
from neuroracer.track.waypoints import WaypointTrack

if TYPE_CHECKING:
    from neuroracer.parameters import EvolutionSettings, Pose

# Global constants
RADAR_SPREAD = math.pi
E = 1e-9


@dataclass(frozen=True)
class RingCircuit:
    inner_radius: float = 40.0
    outer_radius: float = 60.0
    waypoint_count: int = 24

    @property
    def center_radius(self) -> float:
        return (self.inner_radius + self.outer_radius) / 2

    @property
    def start_pose(self) -> Pose:
        # on the centre line, heading counter-clockwise like the waypoints
        return (self.center_radius, 0.0, math.pi / 2)

    def waypoints(self) -> WaypointTrack:
        return WaypointTrack.circle(self.center_radius, self.waypoint_count)

    def contains(self, x: float, y: float) -> bool:
        return self.inner_radius <= math.hypot(x, y) <= self.outer_radius

    def ray_distance(self, x: float, y: float, angle: float, max_range: float) -> float:
        """Distance from (x, y) along ``angle`` to the first ring wall."""
        dx, dy = math.cos(angle), math.sin(angle)
        b = x * dx + y * dy
        c0 = x * x + y * y
        hits = [max_range]
        for radius in (self.inner_radius, self.outer_radius):
            disc = b * b - (c0 - radius * radius)
            if disc < 0:
                continue
            root = math.sqrt(disc)
            hits.extend(t for t in (-b - root, -b + root) if t > E)
        return min(hits)


class KinematicBridge:
    """Implements the simulation bridge expected by ``EvolutionDriver``."""

    def __init__(
        self,
        settings: EvolutionSettings,
        circuit: RingCircuit | None = None,
        *,
        dt: float = 0.1,
        max_speed: float = 20.0,
        acceleration_rate: float = 10.0,
        turn_rate: float = 2.0,
        radar_range: float = 50.0,
        max_ticks: int = 600,
        stall_ticks: int = 30,
    ) -> None:
        self.circuit = circuit or RingCircuit()
        self.population_size = settings.population_size
        self.sensor_count = settings.sensor_count
        self.navigator = settings.navigator
        self._input_width = settings.input_count

        self.dt = dt
        self.max_speed = max_speed
        self.acceleration_rate = acceleration_rate
        self.turn_rate = turn_rate
        self.radar_range = radar_range
        self.max_ticks = max_ticks
        self.stall_ticks = stall_ticks

        if self.sensor_count > 1:
            self.radar_angles = np.linspace(-RADAR_SPREAD / 2, RADAR_SPREAD / 2, self.sensor_count)
        else:
            self.radar_angles = np.zeros(self.sensor_count)

        self.generation = 0
        self.finished = False
        self.player_respawns = 0
        self.respawn_all(settings.spawn_pose)

    @property
    def input_width(self) -> int:
        return self._input_width

    # ------------------------ SENSORS ------------------------ #
    def read_inputs(self, agent_id: int) -> list[float]:
        x, y, heading = self.x[agent_id], self.y[agent_id], self.heading[agent_id]
        inputs = [
            self.circuit.ray_distance(x, y, heading + offset, self.radar_range) / self.radar_range
            for offset in self.radar_angles
        ]
        inputs.append(self.speed[agent_id] / self.max_speed)
        if self.navigator:
            inputs.extend(self._navigator_signals(agent_id))
        return inputs

    def _navigator_signals(self, agent_id: int) -> list[float]:
        x, y = self.x[agent_id], self.y[agent_id]
        count = self.circuit.waypoint_count
        step = 2 * math.pi / count
        position_angle = math.atan2(y, x) % (2 * math.pi)
        target = (math.floor(position_angle / step) + 1) % count

        radius = self.circuit.center_radius
        tx, ty = radius * math.cos(target * step), radius * math.sin(target * step)
        bearing = math.atan2(ty - y, tx - x) - self.heading[agent_id]
        distance = math.hypot(tx - x, ty - y) / (2 * radius)
        return [math.cos(bearing), math.sin(bearing), distance]

    def position(self, agent_id: int) -> tuple[float, float]:
        return float(self.x[agent_id]), float(self.y[agent_id])

    # ------------------------ CONTROL ------------------------ #
    def apply_controls(self, agent_id: int, steering: float, acceleration: float) -> None:
        if not self.alive[agent_id]:
            return

        speed = self.speed[agent_id] + acceleration * self.acceleration_rate * self.dt
        speed = min(max(speed, -self.max_speed / 2), self.max_speed)
        heading = self.heading[agent_id] + steering * self.turn_rate * self.dt

        self.speed[agent_id] = speed
        self.heading[agent_id] = heading
        self.x[agent_id] += math.cos(heading) * speed * self.dt
        self.y[agent_id] += math.sin(heading) * speed * self.dt
        self.ticks[agent_id] += 1

        if abs(speed) < 0.1:
            self.idle[agent_id] += 1
        else:
            self.idle[agent_id] = 0

        if (
            not self.circuit.contains(self.x[agent_id], self.y[agent_id])
            or self.ticks[agent_id] >= self.max_ticks
            or self.idle[agent_id] >= self.stall_ticks
        ):
            self.freeze(agent_id)

    # ------------------------ LIVENESS ------------------------ #
    def is_alive(self, agent_id: int) -> bool:
        return bool(self.alive[agent_id])

    def alive_count(self) -> int:
        return int(self.alive.sum())

    def freeze(self, agent_id: int) -> None:
        self.alive[agent_id] = False
        self.speed[agent_id] = 0.0

    def respawn_all(self, pose: Pose) -> None:
        x, y, heading = pose
        if not self.circuit.contains(x, y):
            msg = (
                f"Spawn pose {pose} is off the ring "
                f"(radius {self.circuit.inner_radius} to {self.circuit.outer_radius})."
            )
            raise ConfigurationError(msg)

        size = self.population_size
        self.x = np.full(size, float(x))
        self.y = np.full(size, float(y))
        self.heading = np.full(size, float(heading))
        self.speed = np.zeros(size)
        self.ticks = np.zeros(size, dtype=int)
        self.idle = np.zeros(size, dtype=int)
        self.alive = np.ones(size, dtype=bool)

    def respawn_player(self, pose: Pose) -> None:
        # there is no player car in the kinematic simulation
        self.player_respawns += 1

    def publish_generation(self, generation: int) -> None:
        self.generation = generation

    def simulation_finished(self) -> None:
        self.finished = True


def main() -> None:
    """Train on the ring circuit for a few generations and plot the result."""
    from neuroracer.ec.driver import EvolutionDriver
    from neuroracer.parameters import EvolutionSettings
    from neuroracer.persistence import plot_fitness_history, save_game, save_stats

    circuit = RingCircuit()
    settings = EvolutionSettings.create(
        population_size=20,
        sensor_count=5,
        spawn_pose=circuit.start_pose,
        stop_at_generation=15,
        seed=42,
    )
    bridge = KinematicBridge(settings, circuit)
    driver = EvolutionDriver(settings, circuit.waypoints(), bridge)

    while not driver.finished:
        driver.tick()

    data = settings.output_folder
    save_stats(data / "fitness_stats.csv", driver.max_fitness, driver.median_fitness)
    plot_fitness_history(driver.max_fitness, driver.median_fitness, data / "fitness_history.png")
    save_game(driver.export_save(), data / "population.pt")
    console.log(f"Best lap share: {driver.max_fitness[-1] / circuit.waypoints().lap_length:.2%}")


if __name__ == "__main__":
    main()
