"""Driver networks."""

from neuroracer.brain.network import NeuralNetwork, layer_shapes

__all__ = ["NeuralNetwork", "layer_shapes"]
