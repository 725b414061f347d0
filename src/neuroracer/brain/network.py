"""
Fixed-topology feedforward driver network.

Every layer computes ``tanh(bias + W @ x)`` with a single bias scalar shared
by the whole network. The last layer always has two outputs: steering and
acceleration, both in (-1, 1).

Topology for ``H`` hidden layers of ``M`` neurons and ``I`` inputs:
    H = 0:  (2 x I)
    H = 1:  (M x I) -> (2 x M)
    H >= 2: (M x I) -> (M x M) * (H - 1) -> (2 x M)
"""

# Standard library
from collections.abc import Sequence
from pathlib import Path

# Third-party libraries
import numpy as np
import torch
from torch import nn

# Local libraries
from neuroracer import console

# Global constants
OUTPUT_COUNT = 2
WEIGHT_LOW = -1.0
WEIGHT_HIGH = 1.0


def layer_shapes(
    input_count: int,
    hidden_layer_count: int,
    neurons_per_layer: int,
) -> list[tuple[int, int]]:
    """
    Compute the (outputs, inputs) shape of every layer.

    Parameters
    ----------
    input_count : int
        Width of the sensor vector.
    hidden_layer_count : int
        Number of hidden layers; the output layer is always added.
    neurons_per_layer : int
        Neurons in each hidden layer.

    Returns
    -------
    list[tuple[int, int]]
        ``hidden_layer_count + 1`` shapes, first layer first.
    """
    if hidden_layer_count == 0:
        return [(OUTPUT_COUNT, input_count)]

    shapes = [(neurons_per_layer, input_count)]
    shapes.extend(
        (neurons_per_layer, neurons_per_layer)
        for _ in range(hidden_layer_count - 1)
    )
    shapes.append((OUTPUT_COUNT, neurons_per_layer))
    return shapes


class NeuralNetwork(nn.Module):
    """Driver network whose weights are only changed by evolution."""

    def __init__(
        self,
        input_count: int,
        hidden_layer_count: int = 1,
        neurons_per_layer: int = 6,
        bias: float = 1.0,
        *,
        rng: np.random.Generator | None = None,
    ) -> None:
        """
        Initialize the network with uniform random weights in [-1, 1].

        Parameters
        ----------
        input_count : int
            Width of the sensor vector.
        hidden_layer_count : int, optional
            Number of hidden layers, by default 1
        neurons_per_layer : int, optional
            Neurons in each hidden layer, by default 6
        bias : float, optional
            Bias added to every neuron of every layer, by default 1.0
        rng : np.random.Generator | None, optional
            Source of the initial weights, by default a fresh generator
        """
        super().__init__()

        if input_count < 1:
            msg = f"A network needs at least one input, got {input_count}."
            raise ValueError(msg)

        self.input_count = input_count
        self.hidden_layer_count = hidden_layer_count
        self.neurons_per_layer = neurons_per_layer
        self.bias = float(bias)
        self.shapes = layer_shapes(
            input_count,
            hidden_layer_count,
            neurons_per_layer,
        )

        rng = rng or np.random.default_rng()
        self.layers = nn.ParameterList(
            nn.Parameter(
                torch.from_numpy(
                    rng.uniform(WEIGHT_LOW, WEIGHT_HIGH, size=shape),
                ).float(),
                requires_grad=False,
            )
            for shape in self.shapes
        )
        self.num_of_parameters = sum(p.numel() for p in self.layers)

    @property
    def layer_count(self) -> int:
        return len(self.shapes)

    def forward(self, inputs: Sequence[float] | np.ndarray | torch.Tensor) -> tuple[float, float]:
        """
        Run one inference step.

        Parameters
        ----------
        inputs : Sequence[float] | np.ndarray | torch.Tensor
            Sensor readings followed by speed (and navigator signals).

        Returns
        -------
        tuple[float, float]
            Steering and acceleration.

        Raises
        ------
        ValueError
            If the input width does not match the network.
        """
        x = torch.as_tensor(np.asarray(inputs, dtype=np.float32)).flatten()
        if x.numel() != self.input_count:
            msg = f"Expected {self.input_count} inputs, got {x.numel()}."
            raise ValueError(msg)

        with torch.inference_mode():
            for weights in self.layers:
                x = torch.tanh(weights @ x + self.bias)

        if torch.isnan(x).any():
            msg = f"NaN detected in network output: {x}"
            raise ValueError(msg)

        steering, acceleration = x.tolist()
        return steering, acceleration

    def get_layer(self, layer: int) -> np.ndarray:
        """Return a copy of one layer's (outputs x inputs) weight matrix."""
        return self.layers[layer].detach().cpu().numpy().copy()

    def set_layer(self, layer: int, weights: np.ndarray) -> None:
        """Overwrite one layer's weights; the shape must match exactly."""
        weights = np.asarray(weights, dtype=np.float32)
        if weights.shape != self.shapes[layer]:
            msg = (
                f"Layer {layer} expects shape {self.shapes[layer]}, "
                f"got {weights.shape}."
            )
            raise ValueError(msg)
        self.layers[layer].data = torch.from_numpy(weights.copy())

    def get_flat_params(self) -> np.ndarray:
        """Get all weights as one flat float32 vector, layer after layer."""
        return np.concatenate(
            [p.detach().cpu().numpy().ravel() for p in self.layers],
        )

    def set_flat_params(self, params: np.ndarray) -> None:
        """Set all weights from a flat vector laid out like ``get_flat_params``."""
        params = np.asarray(params, dtype=np.float32)
        if params.size != self.num_of_parameters:
            msg = (
                "Parameter vector has incorrect size. "
                f"Expected {self.num_of_parameters}, got {params.size}."
            )
            raise ValueError(msg)

        pointer = 0
        for layer, shape in enumerate(self.shapes):
            count = shape[0] * shape[1]
            self.set_layer(layer, params[pointer : pointer + count].reshape(shape))
            pointer += count

    def save(self, path: str | Path) -> None:
        """Save the layer weights to file."""
        path = Path(path)
        torch.save([p.detach().cpu() for p in self.layers], path)
        console.log(f"[green]Saved network to {path}[/green]")

    def load(self, path: str | Path) -> None:
        """Load layer weights saved with ``save``."""
        path = Path(path)
        loaded = torch.load(path, map_location="cpu")
        for layer, weights in enumerate(loaded):
            self.set_layer(layer, weights.numpy())
        console.log(f"[green]Loaded network from {path}[/green]")
