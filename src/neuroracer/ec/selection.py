"""Parent selection strategies.

Every strategy fills the population's parent-pair table: for each slot of the
next generation, two agent ids whose snapshot weights the slot inherits from.
Strategies register themselves by ``name`` so they can be created from the
configured selection name.
"""

from __future__ import annotations

# Standard library
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

# Third-party libraries
import numpy as np

# Local libraries
from neuroracer.exceptions import ConfigurationError

if TYPE_CHECKING:
    from neuroracer.ec.population import PopulationState
    from neuroracer.parameters import EvolutionSettings

# Global constants
DEFAULT_SELECTION_PRESSURE = 3
WORST_RANDOM_KEEP_FRACTION = (4, 5)


class SelectionStrategy(ABC):
    selections_mapping: ClassVar[dict[str, type[SelectionStrategy]]] = {}
    name: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if cls.name:
            SelectionStrategy.selections_mapping[cls.name] = cls

    def __init__(
        self,
        rng: np.random.Generator,
        selection_pressure: int = DEFAULT_SELECTION_PRESSURE,
    ) -> None:
        self.rng = rng
        self.selection_pressure = selection_pressure

    @classmethod
    def from_settings(
        cls,
        settings: EvolutionSettings,
        rng: np.random.Generator,
    ) -> SelectionStrategy:
        """Create the strategy named by ``settings.selection``."""
        if settings.selection not in cls.selections_mapping:
            msg = f"Selection type '{settings.selection}' not recognized."
            raise ConfigurationError(msg)
        strategy = cls.selections_mapping[settings.selection]
        return strategy(rng, selection_pressure=settings.selection_pressure)

    @abstractmethod
    def select_parents(self, state: PopulationState) -> np.ndarray:
        """
        Fill ``state.pairs`` for every slot of the next generation.

        Parameters
        ----------
        state : PopulationState
            Population whose fitness records are already sorted best first.

        Returns
        -------
        np.ndarray
            The (population_size x 2) pair table, i.e. ``state.pairs``.
        """

    def randomized_slots(self, population_size: int) -> range:
        """Slots that receive fresh random weights instead of being bred."""
        return range(0)


class TopHalfSelection(SelectionStrategy):
    """Both parents are distinct agents drawn from the better half."""

    name = "top_half"

    def select_parents(self, state: PopulationState) -> np.ndarray:
        gene_pool = [record.id for record in state.records[: state.population_size // 2]]
        if len(gene_pool) < 2:
            msg = "Top-half selection needs at least two agents in the gene pool."
            raise ConfigurationError(msg)

        for slot in range(state.population_size):
            left = gene_pool[self.rng.integers(len(gene_pool))]
            right = left
            while right == left:
                right = gene_pool[self.rng.integers(len(gene_pool))]
            state.pairs[slot] = (left, right)
        return state.pairs


class TournamentSelection(SelectionStrategy):
    """
    First parent uniformly at random, second parent won in a tournament.

    Tournaments of ``selection_pressure`` agents are drawn without
    replacement from a pool of every agent id. When fewer than
    ``selection_pressure`` agents remain, the pool is refilled.
    """

    name = "tournament"

    def select_parents(self, state: PopulationState) -> np.ndarray:
        size = state.population_size
        if not 1 <= self.selection_pressure <= size:
            msg = f"Selection pressure {self.selection_pressure} is not in [1, {size}]."
            raise ConfigurationError(msg)

        state.pairs[:, 0] = self.rng.integers(0, size, size=size)

        paired = 0
        while paired < size:
            tournament = list(range(size))
            while len(tournament) >= self.selection_pressure and paired < size:
                picked = [self._draw(tournament) for _ in range(self.selection_pressure)]
                state.pairs[paired, 1] = self._tournament_best(picked, state)
                paired += 1
        return state.pairs

    def _draw(self, tournament: list[int]) -> int:
        # swap-remove keeps each draw O(1)
        index = int(self.rng.integers(len(tournament)))
        picked = tournament[index]
        tournament[index] = tournament[-1]
        tournament.pop()
        return picked

    @staticmethod
    def _tournament_best(picked: list[int], state: PopulationState) -> int:
        best_id = picked[0]
        best_fitness = state.fitness_of(best_id)
        for agent_id in picked[1:]:
            fitness = state.fitness_of(agent_id)
            if fitness > best_fitness:
                best_id, best_fitness = agent_id, fitness
        return best_id


class WorstRandomSelection(TournamentSelection):
    """
    Tournament pairing, but the top fifth of the slot range is re-randomised.

    The randomised slots are chosen by slot index, not by fitness rank, so
    the same slots receive fresh weights every generation.
    """

    name = "worst_random"

    def randomized_slots(self, population_size: int) -> range:
        keep, whole = WORST_RANDOM_KEEP_FRACTION
        return range(population_size * keep // whole, population_size)
