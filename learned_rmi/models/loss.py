"""
===============================================================================
HUBER LOSS
===============================================================================
Robust regression loss used by both RMI stages. Position labels can be very
large (up to the dataset size), so a squared loss would blow up gradients for
badly predicted positions; Huber is quadratic near zero and linear beyond
`delta`, which keeps the gradient bounded.

Usage:
    loss_fn = HuberLoss()
    value = loss_fn.loss(prediction, labels)       # scalar
    grad = loss_fn.backward(prediction, labels)    # d(loss)/d(prediction)
===============================================================================
"""

import numpy as np
import torch
import torch.nn.functional as F


class HuberLoss:
    """Mean Huber loss over a (batch, 1) prediction."""

    def __init__(self, delta: float = 1.0):
        self.delta = float(delta)

    def loss(self, prediction: np.ndarray, labels: np.ndarray) -> float:
        pred = torch.as_tensor(np.asarray(prediction), dtype=torch.float64)
        target = torch.as_tensor(np.asarray(labels), dtype=torch.float64)
        return float(F.huber_loss(pred, target, reduction="mean", delta=self.delta))

    def backward(self, prediction: np.ndarray, labels: np.ndarray) -> np.ndarray:
        """Gradient of the mean loss with respect to `prediction`."""
        pred = torch.tensor(np.asarray(prediction), dtype=torch.float64, requires_grad=True)
        target = torch.as_tensor(np.asarray(labels), dtype=torch.float64)
        value = F.huber_loss(pred, target, reduction="mean", delta=self.delta)
        (grad,) = torch.autograd.grad(value, pred)
        return grad.numpy()
