"""
Generation loop of the neuroevolution.

The driver is stepped by an external fixed-timestep loop through ``tick``.
Each tick runs every live agent's network on its sensor readings, hands the
controls to the simulation and updates the agent's fitness. When the
simulation reports that no agent is alive any more, the driver performs the
generation transition before returning:

    snapshot -> restore loaded generation -> sort -> stats -> selection
    -> recombination and mutation -> respawn -> generation += 1 -> stop check
"""

from __future__ import annotations

# Standard library
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

# Third-party libraries
import numpy as np

# Local libraries
from neuroracer import console
from neuroracer.brain.network import NeuralNetwork
from neuroracer.ec.population import PopulationSnapshot, PopulationState
from neuroracer.ec.recombination import recombine_and_mutate
from neuroracer.ec.selection import SelectionStrategy
from neuroracer.exceptions import ConfigurationError, TransitionError
from neuroracer.track.waypoints import FitnessMeter, WaypointTrack

if TYPE_CHECKING:
    from neuroracer.parameters import EvolutionSettings, Pose
    from neuroracer.persistence import SaveGame

# Global constants
FIRST_GENERATION = 1


@runtime_checkable
class SimulationBridge(Protocol):
    """What the evolution core needs from the vehicle simulation."""

    @property
    def input_width(self) -> int:
        """Width of the vector returned by ``read_inputs``."""
        ...

    def read_inputs(self, agent_id: int) -> Sequence[float]: ...

    def apply_controls(self, agent_id: int, steering: float, acceleration: float) -> None: ...

    def position(self, agent_id: int) -> Sequence[float]: ...

    def is_alive(self, agent_id: int) -> bool: ...

    def alive_count(self) -> int: ...

    def freeze(self, agent_id: int) -> None: ...

    def respawn_all(self, pose: Pose) -> None: ...

    def respawn_player(self, pose: Pose) -> None: ...

    def publish_generation(self, generation: int) -> None: ...

    def simulation_finished(self) -> None: ...


@dataclass
class Agent:
    id: int
    network: NeuralNetwork
    meter: FitnessMeter
    alive: bool = True
    failures: list[str] = field(default_factory=list)

    @property
    def fitness(self) -> float:
        return self.meter.absolute_fitness


class EvolutionDriver:
    """Owns the population and runs the generational genetic algorithm."""

    def __init__(
        self,
        settings: EvolutionSettings,
        track: WaypointTrack,
        bridge: SimulationBridge,
        *,
        selection: SelectionStrategy | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if bridge.input_width != settings.input_count:
            msg = (
                f"The simulation provides {bridge.input_width} inputs per agent, "
                f"but the networks expect {settings.input_count}."
            )
            raise ConfigurationError(msg)

        self.settings = settings
        self.track = track
        self.bridge = bridge
        self.rng = rng or np.random.default_rng(settings.seed)
        self.selection = selection or SelectionStrategy.from_settings(settings, self.rng)

        self.state = PopulationState(settings.population_size)
        self.agents = [
            Agent(
                id=i,
                network=NeuralNetwork(
                    settings.input_count,
                    settings.hidden_layer_count,
                    settings.neurons_per_layer,
                    settings.bias,
                    rng=self.rng,
                ),
                meter=FitnessMeter(track),
            )
            for i in range(settings.population_size)
        ]

        self.generation = FIRST_GENERATION
        self.finished = False
        self.is_load = False
        self._loaded_generation: int | None = None

    @property
    def networks(self) -> list[NeuralNetwork]:
        return [agent.network for agent in self.agents]

    @property
    def max_fitness(self) -> list[float]:
        return self.state.max_fitness

    @property
    def median_fitness(self) -> list[float]:
        return self.state.median_fitness

    # ------------------------ TICK ------------------------ #
    def tick(self) -> bool:
        """
        Advance every live agent by one simulation step.

        Returns
        -------
        bool
            True if the step ended the generation and a transition ran.
        """
        for agent in self.agents:
            if not agent.alive:
                continue
            if not self.bridge.is_alive(agent.id):
                agent.alive = False
                continue
            self._step_agent(agent)

        if self.bridge.alive_count() > 0:
            return False

        self.transition()
        return True

    def _step_agent(self, agent: Agent) -> None:
        try:
            steering, acceleration = agent.network(self.bridge.read_inputs(agent.id))
            self.bridge.apply_controls(agent.id, steering, acceleration)
            fitness = agent.meter.update(self.bridge.position(agent.id))
        except (ValueError, ArithmeticError, RuntimeError) as exc:
            if self.settings.fail_fast:
                raise
            console.log(f"[red]Agent {agent.id} failed and is frozen: {exc}[/red]")
            agent.failures.append(str(exc))
            agent.alive = False
            self.bridge.freeze(agent.id)
            return
        self.state.report(agent.id, fitness)

    # ------------------------ TRANSITION ------------------------ #
    def transition(self) -> None:
        """Replace the whole population by the next generation."""
        try:
            self._snapshot_networks()
            self._restore_loaded_generation()
            self.state.sort_by_fitness()
            best, median = self.state.calculate_stats()
            self.selection.select_parents(self.state)
            recombine_and_mutate(
                self.state,
                self.networks,
                self.settings.mutation_chance,
                self.settings.mutation_rate,
                self.rng,
                self.selection.randomized_slots(self.settings.population_size),
            )
            self._respawn()
        except TransitionError:
            raise
        except Exception as exc:
            msg = f"Generation {self.generation} transition failed: {exc}"
            raise TransitionError(msg) from exc

        if not self.settings.quiet:
            console.log(
                f"Generation {self.generation}: max = {best:.2f}, median = {median:.2f} "
                f"([cyan]{self.selection.name}[/cyan])",
            )

        self.generation += 1
        self.bridge.publish_generation(self.generation)

        if self.settings.stop_condition_active and self.settings.stop_at_generation < self.generation:
            self.finished = True
            self.bridge.simulation_finished()

    def _snapshot_networks(self) -> None:
        if self.generation <= FIRST_GENERATION:
            self.state.snapshot = PopulationSnapshot.from_networks(self.networks)
        else:
            self.state.require_snapshot().capture(self.networks)

    def _restore_loaded_generation(self) -> None:
        if not self.is_load:
            return
        if self._loaded_generation is not None:
            self.generation = self._loaded_generation
        self._loaded_generation = None
        self.is_load = False

    def _respawn(self) -> None:
        for agent in self.agents:
            agent.meter.reset()
            agent.alive = True
            agent.failures.clear()
        self.state.reset_fitness()

        pose = self.settings.spawn_pose
        self.bridge.respawn_all(pose)
        if self.settings.manual_control:
            self.bridge.respawn_player(pose)

    # ------------------------ PERSISTENCE ------------------------ #
    def export_save(self, *, demo: bool = False) -> SaveGame:
        """Capture the live weights (plus counter and history unless ``demo``)."""
        from neuroracer.persistence import SaveGame

        snapshot = PopulationSnapshot.from_networks(self.networks)
        if demo:
            return SaveGame(snapshot=snapshot)
        return SaveGame(
            snapshot=snapshot,
            generation_count=self.generation,
            max_fitness=list(self.state.max_fitness),
            median_fitness=list(self.state.median_fitness),
        )

    def load_save(self, save: SaveGame) -> None:
        """
        Put saved weights into the live networks.

        The fitness history is restored at once; the generation counter is
        restored by the next transition.
        """
        snapshot = save.snapshot
        if snapshot.population_size != self.settings.population_size:
            msg = (
                f"Save holds {snapshot.population_size} networks, "
                f"population size is {self.settings.population_size}."
            )
            raise ConfigurationError(msg)
        expected = self.agents[0].network.shapes
        if snapshot.shapes != list(expected):
            msg = f"Saved layer shapes {snapshot.shapes} do not match the networks {expected}."
            raise ConfigurationError(msg)

        for agent in self.agents:
            snapshot.restore(agent.id, agent.network)

        self.state.max_fitness[:] = save.max_fitness
        self.state.median_fitness[:] = save.median_fitness
        self._loaded_generation = save.generation_count
        self.is_load = True
