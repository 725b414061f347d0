"""Configuration surface of the evolutionary training loop."""

from __future__ import annotations

# Standard library
import tomllib
from pathlib import Path
from typing import Literal, Self

# Third-party libraries
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local libraries
from neuroracer.exceptions import ConfigurationError

# Global constants
NAVIGATOR_SIGNAL_COUNT = 4
SPEED_SIGNAL_COUNT = 1
TOURNAMENT_SELECTIONS = ("tournament", "worst_random")

# Type Aliases
type SelectionName = Literal["top_half", "tournament", "worst_random"]
type Pose = tuple[float, float, float]


class EvolutionSettings(BaseSettings):
    """Read-only inputs of the evolution core.

    Every field can be overridden from the environment with the
    ``NEURORACER_`` prefix, e.g. ``NEURORACER_POPULATION_SIZE=40``.
    """

    model_config = SettingsConfigDict(
        env_prefix="NEURORACER_",
        frozen=True,
        extra="ignore",
    )

    quiet: bool = False

    # Population
    population_size: int = Field(default=20, gt=0)
    mutation_chance: float = Field(default=50.0, ge=0.0, le=100.0)
    mutation_rate: float = Field(default=3.0, ge=0.0, le=100.0)
    selection: SelectionName = "tournament"
    selection_pressure: int = Field(default=3, ge=1)
    stop_at_generation: int | None = None
    seed: int | None = None

    # Network
    hidden_layer_count: int = Field(default=1, ge=0)
    neurons_per_layer: int = Field(default=6, ge=1)
    sensor_count: int = Field(default=5, ge=0)
    navigator: bool = False
    bias: float = 1.0

    # Simulation
    manual_control: bool = False
    spawn_pose: Pose = (0.0, 0.0, 0.0)
    fail_fast: bool = False

    # Data config
    output_folder: Path = Path.cwd() / "__data__"

    @property
    def input_count(self) -> int:
        """Width of the sensor vector fed to every network."""
        extra = NAVIGATOR_SIGNAL_COUNT if self.navigator else SPEED_SIGNAL_COUNT
        return self.sensor_count + extra

    @property
    def stop_condition_active(self) -> bool:
        return self.stop_at_generation is not None

    @model_validator(mode="after")
    def _check_selection(self) -> Self:
        if (
            self.selection in TOURNAMENT_SELECTIONS
            and self.selection_pressure > self.population_size
        ):
            msg = (
                f"Selection pressure ({self.selection_pressure}) cannot exceed "
                f"the population size ({self.population_size})."
            )
            raise ValueError(msg)
        if self.selection == "top_half" and self.population_size < 4:
            msg = "Top-half selection needs a population of at least 4."
            raise ValueError(msg)
        return self

    @classmethod
    def create(cls, **overrides: object) -> EvolutionSettings:
        """Build settings, reporting invalid values as ``ConfigurationError``."""
        try:
            return cls(**overrides)
        except ValidationError as exc:
            msg = f"Invalid evolution settings: {exc}"
            raise ConfigurationError(msg) from exc


def read_config_file(path: str | Path) -> EvolutionSettings:
    """Load settings from a TOML file.

    The file may contain ``[evolution]``, ``[network]`` and ``[simulation]``
    tables; their keys are merged and passed to ``EvolutionSettings``.
    Missing keys keep their defaults.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise ConfigurationError(msg)

    try:
        cfg = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        msg = f"Config file {path} is not valid TOML: {exc}"
        raise ConfigurationError(msg) from exc

    overrides: dict[str, object] = {}
    for table in ("evolution", "network", "simulation"):
        overrides.update(cfg.get(table, {}))
    if "spawn_pose" in overrides:
        overrides["spawn_pose"] = tuple(overrides["spawn_pose"])
    return EvolutionSettings.create(**overrides)
