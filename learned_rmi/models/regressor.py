"""
===============================================================================
FEED-FORWARD REGRESSOR
===============================================================================
The trainable scalar function behind every RMI stage. It wraps a small torch
network but keeps the training loop outside: the caller runs forward, computes
its own loss gradient (and may rescale it), then hands that gradient back to
`backward` and applies one optimizer `step`.

    net = Regressor(batch_size=32, input_width=1, output_width=1)
    net.add(16, "relu")                 # optional hidden layers
    net.build()                         # layers + initial parameter snapshot
    net.register_optimizer(1e-3)        # Adam
    out = net.forward(batch)            # (batch_size, 1)
    net.backward(grad_wrt_out)
    net.step()

The batch shape is fixed at construction, the same way the index sizes its
batches; `predict` is the unconstrained, no-grad inference path.
===============================================================================
"""

from typing import List, Optional, Tuple

import numpy as np
import torch
from torch import nn

_ACTIVATIONS = {
    "relu": nn.ReLU,
    "tanh": nn.Tanh,
    "sigmoid": nn.Sigmoid,
    "identity": nn.Identity,
}

_INIT_SCHEMES = ("glorot_normal", "glorot_uniform", "zeros")


class Regressor:
    """Dense feed-forward regressor with a fixed training batch size."""

    def __init__(
        self,
        batch_size: int,
        input_width: int = 1,
        output_width: int = 1,
        use_bias: bool = True,
        init_scheme: str = "glorot_normal",
        generator: Optional[torch.Generator] = None,
    ):
        if init_scheme not in _INIT_SCHEMES:
            raise ValueError(f"Unknown initialization scheme: {init_scheme}")
        self.batch_size = int(batch_size)
        self.input_width = int(input_width)
        self.output_width = int(output_width)
        self.use_bias = bool(use_bias)
        self.init_scheme = init_scheme

        self._generator = generator
        self._hidden: List[Tuple[int, str]] = []
        self._network: Optional[nn.Sequential] = None
        self._optimizer: Optional[torch.optim.Optimizer] = None

        # Set by forward(), consumed by backward()
        self._last_input: Optional[torch.Tensor] = None
        self._last_output: Optional[torch.Tensor] = None

        self.initial_parameters: Optional[np.ndarray] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def add(self, width: int, activation: str = "relu") -> "Regressor":
        """Append a hidden layer of `width` units. Must precede the first forward."""
        if self._network is not None:
            raise RuntimeError("Cannot add layers after the network has been built")
        if activation not in _ACTIVATIONS:
            raise ValueError(f"Unknown activation: {activation}")
        self._hidden.append((int(width), activation))
        return self

    def build(self) -> "Regressor":
        """Create the layers (once) and snapshot their initial parameters."""
        if self._network is None:
            self._network = self._build()
            self.initial_parameters = self.parameters_vector()
        return self

    @property
    def network(self) -> nn.Sequential:
        return self.build()._network

    def _build(self) -> nn.Sequential:
        layers: List[nn.Module] = []
        width_in = self.input_width
        for width, activation in self._hidden:
            layers.append(self._dense(width_in, width))
            layers.append(_ACTIVATIONS[activation]())
            width_in = width
        layers.append(self._dense(width_in, self.output_width))
        return nn.Sequential(*layers)

    def _dense(self, width_in: int, width_out: int) -> nn.Linear:
        layer = nn.Linear(width_in, width_out, bias=self.use_bias)
        with torch.no_grad():
            if self.init_scheme == "glorot_normal":
                nn.init.xavier_normal_(layer.weight, generator=self._generator)
            elif self.init_scheme == "glorot_uniform":
                nn.init.xavier_uniform_(layer.weight, generator=self._generator)
            else:
                nn.init.zeros_(layer.weight)
            if layer.bias is not None:
                nn.init.zeros_(layer.bias)
        return layer

    def register_optimizer(self, learning_rate: float) -> None:
        # Adam: plain SGD does not converge on raw key magnitudes
        self._optimizer = torch.optim.Adam(self.network.parameters(), lr=float(learning_rate))

    # ------------------------------------------------------------------
    # Training protocol
    # ------------------------------------------------------------------
    def forward(self, batch: np.ndarray) -> np.ndarray:
        batch = np.ascontiguousarray(np.asarray(batch, dtype=np.float32).reshape(-1, self.input_width))
        if batch.shape[0] != self.batch_size:
            raise ValueError(
                f"Expected a batch of {self.batch_size} rows, got {batch.shape[0]}"
            )
        self._last_input = torch.from_numpy(batch).requires_grad_(True)
        self._last_output = self.network(self._last_input)
        return self._last_output.detach().numpy().copy()

    def backward(self, loss_gradient: np.ndarray) -> np.ndarray:
        """Backpropagate d(loss)/d(output) of the last forward; returns d(loss)/d(input)."""
        if self._last_output is None:
            raise RuntimeError("backward() called before forward()")
        grad = torch.as_tensor(
            np.asarray(loss_gradient, dtype=np.float32).reshape(self._last_output.shape)
        )
        self._last_output.backward(gradient=grad)
        input_grad = self._last_input.grad.numpy().copy()
        self._last_input = None
        self._last_output = None
        return input_grad

    def step(self) -> None:
        if self._optimizer is None:
            raise RuntimeError("No optimizer registered")
        self._optimizer.step()
        self._optimizer.zero_grad()

    # ------------------------------------------------------------------
    # Inference / introspection
    # ------------------------------------------------------------------
    def predict(self, inputs: np.ndarray) -> np.ndarray:
        """Raw network output for any number of rows, without touching gradients."""
        inputs = np.ascontiguousarray(np.asarray(inputs, dtype=np.float32).reshape(-1, self.input_width))
        with torch.no_grad():
            return self.network(torch.from_numpy(inputs)).numpy().copy()

    def parameters_vector(self) -> np.ndarray:
        with torch.no_grad():
            return np.concatenate(
                [p.detach().numpy().ravel().copy() for p in self.network.parameters()]
            )

    def num_parameters(self) -> int:
        return int(sum(p.numel() for p in self.network.parameters()))
