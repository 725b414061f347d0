"""Evolutionary computation: population bookkeeping, selection, breeding, driver."""

from neuroracer.ec.driver import Agent, EvolutionDriver, SimulationBridge
from neuroracer.ec.population import FitnessRecord, PopulationSnapshot, PopulationState
from neuroracer.ec.recombination import breed, mutation_bounds, recombine_and_mutate
from neuroracer.ec.selection import (
    SelectionStrategy,
    TopHalfSelection,
    TournamentSelection,
    WorstRandomSelection,
)

__all__ = [
    "Agent",
    "EvolutionDriver",
    "FitnessRecord",
    "PopulationSnapshot",
    "PopulationState",
    "SelectionStrategy",
    "SimulationBridge",
    "TopHalfSelection",
    "TournamentSelection",
    "WorstRandomSelection",
    "breed",
    "mutation_bounds",
    "recombine_and_mutate",
]
