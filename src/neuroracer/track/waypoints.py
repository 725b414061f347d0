"""
Progress measurement along a closed loop of waypoints.

The fitness of a car is the length of track it has covered: the sum of the
waypoint-to-waypoint distances it has fully passed, plus its distance to the
waypoint it is currently heading past. Each car tracks a window of three
consecutive waypoints (previous, current, next) on the circular sequence and
shifts the window whenever it crosses the current waypoint in either
direction, so driving backwards lowers the fitness again.
"""

from __future__ import annotations

# Standard library
from collections.abc import Sequence

# Third-party libraries
import numpy as np
import numpy.typing as npt

# Local libraries
from neuroracer.exceptions import ConfigurationError

# Global constants
MIN_WAYPOINTS = 4

# Type Aliases
type Point = Sequence[float] | npt.NDArray[np.float64]


class WaypointTrack:
    """Immutable, ordered, circular sequence of waypoints."""

    def __init__(self, points: Sequence[Point] | npt.ArrayLike) -> None:
        points = np.array(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[0] < MIN_WAYPOINTS:
            msg = (
                f"A track needs at least {MIN_WAYPOINTS} waypoints given as "
                f"an (N, D) array, got shape {points.shape}."
            )
            raise ConfigurationError(msg)

        points.setflags(write=False)
        self.points = points

        # segment_lengths[i] is the distance from waypoint i to waypoint i + 1
        lengths = np.linalg.norm(np.roll(points, -1, axis=0) - points, axis=1)
        lengths.setflags(write=False)
        self.segment_lengths = lengths

    @classmethod
    def circle(
        cls,
        radius: float,
        count: int,
        center: tuple[float, float] = (0.0, 0.0),
    ) -> WaypointTrack:
        """Evenly spaced waypoints on a circle, counter-clockwise from angle 0."""
        angles = np.linspace(0.0, 2 * np.pi, count, endpoint=False)
        points = np.column_stack(
            (center[0] + radius * np.cos(angles), center[1] + radius * np.sin(angles)),
        )
        return cls(points)

    def __len__(self) -> int:
        return self.points.shape[0]

    @property
    def dimension(self) -> int:
        return self.points.shape[1]

    @property
    def lap_length(self) -> float:
        return float(self.segment_lengths.sum())

    def wrap(self, index: int) -> int:
        return index % len(self)

    def distance_to(self, index: int, position: np.ndarray) -> float:
        return float(np.linalg.norm(self.points[index] - position))


class FitnessMeter:
    """
    Tracks one car's progress along a ``WaypointTrack``.

    Attributes
    ----------
    current_index : int
        Index of the waypoint the car is currently passing.
    saved_fitness : float
        Signed sum of the segment lengths of waypoints already passed.
    relative_fitness : float
        Distance to the current waypoint, negative when the car is on the
        previous waypoint's side of it.
    absolute_fitness : float
        ``saved_fitness + relative_fitness``; the value reported each tick.
    """

    def __init__(self, track: WaypointTrack) -> None:
        self.track = track
        self.reset()

    def reset(self) -> None:
        """Start a new run at the window (N - 1, 0, 1) with zero fitness."""
        self.current_index = 0
        self.saved_fitness = 0.0
        self.relative_fitness = 0.0
        self.absolute_fitness = 0.0

    @property
    def prev_index(self) -> int:
        return self.track.wrap(self.current_index - 1)

    @property
    def next_index(self) -> int:
        return self.track.wrap(self.current_index + 1)

    @property
    def window(self) -> tuple[int, int, int]:
        return self.prev_index, self.current_index, self.next_index

    def _signed_distance(self, position: np.ndarray) -> float:
        distance = self.track.distance_to(self.current_index, position)
        behind = self.track.distance_to(self.prev_index, position) < self.track.distance_to(
            self.next_index,
            position,
        )
        if behind and distance > 0:
            return -distance
        return distance

    def advance(self, position: Point | None = None) -> None:
        """Credit the current segment and move the window one waypoint forward."""
        self.saved_fitness += float(self.track.segment_lengths[self.current_index])
        self.current_index = self.next_index
        if position is not None:
            self.relative_fitness = self._signed_distance(np.asarray(position, dtype=np.float64))
        self.absolute_fitness = self.saved_fitness + self.relative_fitness

    def retreat(self, position: Point | None = None) -> None:
        """Debit the previous segment and move the window one waypoint back."""
        self.saved_fitness -= float(self.track.segment_lengths[self.prev_index])
        self.current_index = self.prev_index
        if position is not None:
            self.relative_fitness = self._signed_distance(np.asarray(position, dtype=np.float64))
        self.absolute_fitness = self.saved_fitness + self.relative_fitness

    def update(self, position: Point) -> float:
        """
        Measure the car at ``position`` and return its absolute fitness.

        At most one waypoint crossing is applied per call. Both crossing tests
        use the distances measured before the window moves.

        Raises
        ------
        ValueError
            If ``position`` does not have the track's dimension or is not finite.
        """
        position = np.asarray(position, dtype=np.float64)
        if position.shape != (self.track.dimension,):
            msg = f"Expected a {self.track.dimension}D position, got shape {position.shape}."
            raise ValueError(msg)
        if not np.all(np.isfinite(position)):
            msg = f"Position {position} is not finite."
            raise ValueError(msg)

        track = self.track
        prev_car = track.distance_to(self.prev_index, position)
        car_next = track.distance_to(self.next_index, position)
        current_car = track.distance_to(self.current_index, position)
        current_next = float(track.segment_lengths[self.current_index])
        prev_current = float(track.segment_lengths[self.prev_index])

        self.relative_fitness = current_car
        if prev_car < car_next and self.relative_fitness > 0:
            self.relative_fitness *= -1

        # The two tests need opposite orderings of prev_car and car_next,
        # so at most one of them passes.
        if current_car > current_next and car_next < prev_car:
            self.advance(position)
        elif current_car > prev_current and prev_car < car_next:
            self.retreat(position)

        self.absolute_fitness = self.saved_fitness + self.relative_fitness
        return self.absolute_fitness
