"""Per-generation bookkeeping: fitness records, parent pairs, weight snapshot."""

from __future__ import annotations

# Standard library
from collections.abc import Sequence
from dataclasses import dataclass
from operator import attrgetter
from typing import TYPE_CHECKING

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from neuroracer.exceptions import ConfigurationError, InvariantViolationError

if TYPE_CHECKING:
    from neuroracer.brain.network import NeuralNetwork

# Type Aliases
type LayerShape = tuple[int, int]
type NestedWeights = list[list[list[list[float]]]]


@dataclass(slots=True)
class FitnessRecord:
    id: int
    fitness: float


class PopulationSnapshot:
    """
    Weights of every network in one flat float32 buffer.

    Logically the snapshot is indexed ``[agent][layer][neuron][weight]``;
    physically each agent owns a contiguous block of ``agent_stride`` values
    in which the layers are stored row-major one after the other.
    """

    def __init__(self, population_size: int, shapes: Sequence[LayerShape]) -> None:
        if population_size <= 0:
            msg = f"Population size must be positive, got {population_size}."
            raise ConfigurationError(msg)

        self.population_size = population_size
        self.shapes: list[LayerShape] = [tuple(shape) for shape in shapes]
        self.layer_sizes = [rows * cols for rows, cols in self.shapes]
        self.layer_offsets = np.concatenate(([0], np.cumsum(self.layer_sizes)[:-1])).astype(int).tolist()
        self.agent_stride = int(sum(self.layer_sizes))
        self.buffer = np.zeros(population_size * self.agent_stride, dtype=np.float32)

    @classmethod
    def from_networks(cls, networks: Sequence[NeuralNetwork]) -> PopulationSnapshot:
        """Allocate a snapshot sized for ``networks`` and capture them."""
        if not networks:
            msg = "Cannot snapshot an empty population."
            raise ConfigurationError(msg)
        snapshot = cls(len(networks), networks[0].shapes)
        snapshot.capture(networks)
        return snapshot

    @property
    def layer_count(self) -> int:
        return len(self.shapes)

    def capture(self, networks: Sequence[NeuralNetwork]) -> None:
        """Overwrite the buffer in place with the current weights of ``networks``."""
        if len(networks) != self.population_size:
            msg = f"Expected {self.population_size} networks, got {len(networks)}."
            raise ValueError(msg)
        for agent, network in enumerate(networks):
            if list(network.shapes) != self.shapes:
                msg = f"Network {agent} has layer shapes {network.shapes}, expected {self.shapes}."
                raise ValueError(msg)
            self.agent(agent)[:] = network.get_flat_params()

    def restore(self, agent: int, network: NeuralNetwork) -> None:
        """Write agent ``agent``'s stored weights into ``network``."""
        network.set_flat_params(self.agent(agent))

    def index(self, agent: int, layer: int, neuron: int, weight: int) -> int:
        """Flat buffer offset of one weight."""
        if not 0 <= agent < self.population_size:
            msg = f"Agent index {agent} out of range."
            raise IndexError(msg)
        rows, cols = self.shapes[layer]
        if not (0 <= neuron < rows and 0 <= weight < cols):
            msg = f"Weight ({neuron}, {weight}) out of range for layer {layer} of shape {(rows, cols)}."
            raise IndexError(msg)
        return agent * self.agent_stride + self.layer_offsets[layer] + neuron * cols + weight

    def get(self, agent: int, layer: int, neuron: int, weight: int) -> float:
        return float(self.buffer[self.index(agent, layer, neuron, weight)])

    def set(self, agent: int, layer: int, neuron: int, weight: int, value: float) -> None:
        self.buffer[self.index(agent, layer, neuron, weight)] = value

    def agent(self, agent: int) -> npt.NDArray[np.float32]:
        """Writable view of one agent's weights, all layers flattened."""
        start = agent * self.agent_stride
        return self.buffer[start : start + self.agent_stride]

    def layer(self, agent: int, layer: int) -> npt.NDArray[np.float32]:
        """Writable (neurons x weights) view of one agent's layer."""
        start = agent * self.agent_stride + self.layer_offsets[layer]
        return self.buffer[start : start + self.layer_sizes[layer]].reshape(self.shapes[layer])

    def as_matrix(self) -> npt.NDArray[np.float32]:
        """View of the buffer as (population_size x agent_stride)."""
        return self.buffer.reshape(self.population_size, self.agent_stride)

    def to_nested(self) -> NestedWeights:
        """Export as nested lists ``[agent][layer][neuron][weight]``."""
        return [
            [self.layer(agent, layer).tolist() for layer in range(self.layer_count)]
            for agent in range(self.population_size)
        ]

    @classmethod
    def from_nested(cls, nested: NestedWeights) -> PopulationSnapshot:
        """Rebuild a snapshot from ``to_nested`` output, checking it is not ragged."""
        if not nested or not nested[0]:
            msg = "Saved snapshot is empty."
            raise ConfigurationError(msg)

        shapes = [np.asarray(layer, dtype=np.float32).shape for layer in nested[0]]
        if any(len(shape) != 2 for shape in shapes):
            msg = "Every saved layer must be a (neurons x weights) matrix."
            raise ConfigurationError(msg)

        snapshot = cls(len(nested), shapes)
        for agent, layers in enumerate(nested):
            if len(layers) != snapshot.layer_count:
                msg = f"Saved agent {agent} has {len(layers)} layers, expected {snapshot.layer_count}."
                raise ConfigurationError(msg)
            for layer, weights in enumerate(layers):
                weights = np.asarray(weights, dtype=np.float32)
                if weights.shape != snapshot.shapes[layer]:
                    msg = f"Saved agent {agent} layer {layer} has shape {weights.shape}, expected {snapshot.shapes[layer]}."
                    raise ConfigurationError(msg)
                snapshot.layer(agent, layer)[:] = weights
        return snapshot


class PopulationState:
    """Fitness table, parent-pair table, snapshot and history of one population."""

    def __init__(self, population_size: int) -> None:
        if population_size <= 0:
            msg = f"Population size must be positive, got {population_size}."
            raise ConfigurationError(msg)

        self.population_size = population_size
        self.fitness = np.zeros(population_size, dtype=np.float64)
        self.records = [FitnessRecord(id=i, fitness=0.0) for i in range(population_size)]

        # pairs[i] holds the two parents of the agent bred into slot i
        self.pairs = np.zeros((population_size, 2), dtype=int)
        self.snapshot: PopulationSnapshot | None = None

        self.max_fitness: list[float] = []
        self.median_fitness: list[float] = []

    def report(self, agent_id: int, fitness: float) -> None:
        self.fitness[agent_id] = fitness

    def reset_fitness(self) -> None:
        self.fitness[:] = 0.0

    def sort_by_fitness(self) -> list[FitnessRecord]:
        """Collect (id, fitness) of every agent and sort them best first."""
        for i, record in enumerate(self.records):
            record.id = i
            record.fitness = float(self.fitness[i])
        self.records.sort(key=attrgetter("fitness"), reverse=True)
        return self.records

    @property
    def elite_id(self) -> int:
        return self.records[0].id

    def fitness_of(self, agent_id: int) -> float:
        return float(self.fitness[agent_id])

    def calculate_stats(self) -> tuple[float, float]:
        """Append the max and median fitness; the records must be sorted."""
        best = float(self.fitness.max())
        median = self.fitness_of(self.records[self.population_size // 2].id)
        self.max_fitness.append(best)
        self.median_fitness.append(median)
        return best, median

    def require_snapshot(self) -> PopulationSnapshot:
        if self.snapshot is None:
            msg = "The population snapshot was read before it was taken."
            raise InvariantViolationError(msg)
        return self.snapshot
