"""Reference simulation used for demos and integration tests."""

from neuroracer.simulation.kinematic import KinematicBridge, RingCircuit

__all__ = ["KinematicBridge", "RingCircuit"]
