"""Save files, statistics export and fitness plots."""

from __future__ import annotations

# Standard library
from dataclasses import dataclass, field
from pathlib import Path

# Third-party libraries
import numpy as np
import torch

# Local libraries
from neuroracer import console
from neuroracer.ec.population import PopulationSnapshot
from neuroracer.exceptions import ConfigurationError

# Global constants
SAVE_KEYS = ("saved_car_networks", "generation_count", "max_fitness", "median_fitness")
STATS_HEADER = "generation,max_fitness,median_fitness"


@dataclass
class SaveGame:
    """
    Everything needed to resume training.

    A demo save only carries the weights: ``generation_count`` is None and
    both histories are empty.
    """

    snapshot: PopulationSnapshot
    generation_count: int | None = None
    max_fitness: list[float] = field(default_factory=list)
    median_fitness: list[float] = field(default_factory=list)

    @property
    def is_demo(self) -> bool:
        return self.generation_count is None


def save_game(save: SaveGame, path: str | Path) -> Path:
    """Write ``save`` with ``torch.save``; the weights keep their 4D shape."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_save = {
        "saved_car_networks": save.snapshot.to_nested(),
        "generation_count": save.generation_count,
        "max_fitness": [float(v) for v in save.max_fitness],
        "median_fitness": [float(v) for v in save.median_fitness],
    }
    torch.save(to_save, path)
    console.log(f"[green]Saved population to {path}[/green]")
    return path


def load_game(path: str | Path) -> SaveGame:
    """Read a file written by ``save_game``."""
    path = Path(path)
    if not path.exists():
        msg = f"No saved population found at {path}"
        raise ConfigurationError(msg)

    loaded = torch.load(path, map_location="cpu")
    missing = [key for key in SAVE_KEYS if key not in loaded]
    if missing:
        msg = f"Save file {path} is missing {missing}."
        raise ConfigurationError(msg)

    save = SaveGame(
        snapshot=PopulationSnapshot.from_nested(loaded["saved_car_networks"]),
        generation_count=loaded["generation_count"],
        max_fitness=list(loaded["max_fitness"]),
        median_fitness=list(loaded["median_fitness"]),
    )
    console.log(f"[green]Loaded population from {path}[/green]")
    return save


def save_stats(
    path: str | Path,
    max_fitness: list[float],
    median_fitness: list[float],
) -> Path:
    """Write the fitness history as CSV, one row per generation."""
    if len(max_fitness) != len(median_fitness):
        msg = "Max and median fitness histories differ in length."
        raise ValueError(msg)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    generations = np.arange(1, len(max_fitness) + 1)
    table = np.column_stack((generations, max_fitness, median_fitness))
    np.savetxt(
        path,
        table.reshape(-1, 3),
        delimiter=",",
        header=STATS_HEADER,
        comments="",
        fmt=("%d", "%.6f", "%.6f"),
    )
    console.log(f"[green]Saved stats to {path}[/green]")
    return path


def plot_fitness_history(
    max_fitness: list[float],
    median_fitness: list[float],
    path: str | Path,
) -> Path:
    """Line plot of max and median fitness per generation."""
    import matplotlib.pyplot as plt

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    generations = range(1, len(max_fitness) + 1)

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(generations, max_fitness, marker="o", label="max")
    ax.plot(generations, median_fitness, marker="o", label="median")
    ax.set_title("Fitness Over Generations")
    ax.set_xlabel("Generation")
    ax.set_ylabel("Fitness")
    ax.legend()
    ax.grid(visible=True)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)

    console.log(f"[green]Saved plot to {path}[/green]")
    return path
