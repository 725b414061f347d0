"""Uniform recombination with multiplicative mutation."""

from __future__ import annotations

# Standard library
from collections.abc import Sequence
from typing import TYPE_CHECKING

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from neuroracer.brain.network import WEIGHT_HIGH, WEIGHT_LOW

if TYPE_CHECKING:
    from neuroracer.brain.network import NeuralNetwork
    from neuroracer.ec.population import PopulationState


def mutation_bounds(mutation_rate: float) -> tuple[float, float]:
    """Range of the scale factor applied to a mutated weight."""
    return (100 - mutation_rate) / 100, (100 + mutation_rate) / 100


def breed(
    parents: npt.NDArray[np.float32],
    mutation_chance: float,
    mutation_rate: float,
    rng: np.random.Generator,
) -> npt.NDArray[np.float32]:
    """
    Build one child from the flat weights of its two parents.

    Parameters
    ----------
    parents : npt.NDArray[np.float32]
        (2 x num_weights) snapshot rows of the two parents.
    mutation_chance : float
        Percentage of weights that are mutated, in [0, 100].
    mutation_rate : float
        Percentage spread of the mutation scale factor.
    rng : np.random.Generator
        Random source.

    Returns
    -------
    npt.NDArray[np.float32]
        The child's flat weights.
    """
    num_weights = parents.shape[1]
    low, high = mutation_bounds(mutation_rate)

    # Each weight comes from either parent with equal probability
    which_parent = rng.integers(0, 2, size=num_weights)
    inherited = parents[which_parent, np.arange(num_weights)]

    scale = rng.uniform(low, high, size=num_weights)
    mutate = rng.uniform(0.0, 100.0, size=num_weights) <= mutation_chance
    return np.where(mutate, inherited * scale, inherited).astype(np.float32)


def recombine_and_mutate(
    state: PopulationState,
    networks: Sequence[NeuralNetwork],
    mutation_chance: float,
    mutation_rate: float,
    rng: np.random.Generator,
    randomized_slots: range = range(0),
) -> None:
    """
    Overwrite every live network from the snapshot and the pair table.

    The elite (best ranked agent) gets its own snapshot weights back
    unchanged. Slots in ``randomized_slots`` get fresh weights drawn from
    [-1, 1]. Every other slot is bred from its two parents.
    """
    snapshot = state.require_snapshot()
    rows = snapshot.as_matrix()
    elite = state.elite_id

    for slot, network in enumerate(networks):
        if slot == elite:
            child = rows[slot].copy()
        elif slot in randomized_slots:
            child = rng.uniform(WEIGHT_LOW, WEIGHT_HIGH, size=snapshot.agent_stride)
        else:
            child = breed(rows[state.pairs[slot]], mutation_chance, mutation_rate, rng)
        network.set_flat_params(child)
